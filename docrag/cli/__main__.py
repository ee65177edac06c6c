"""Allow ``python -m docrag.cli`` execution."""

from docrag.cli.docs import main

main()
