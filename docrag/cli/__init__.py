"""Command-line tools for docrag.

- ``python -m docrag.cli`` (or the ``docrag`` console script) — upload,
  inspect, query and delete documents against the configured stores.

argparse only; heavy dependencies are imported when a command needs them.
"""
