"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ───────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. config/config.yaml  — static defaults checked into the repo
#   2. .env file           — local developer overrides (not committed)
#   3. Environment vars    — set at deploy time
#
# load_config() reads the YAML file first, then deep-merges the values
# resolved by Settings on top.
#
#   base = {"retrieval": {"top_k": 5, "strategy": "auto"}}
#   overrides = {"retrieval": {"top_k": 8}}
#   result = {"retrieval": {"top_k": 8, "strategy": "auto"}}
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from pathlib import Path

import yaml

from docrag.config.settings import Settings


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.
        settings: Pre-built settings; a fresh ``Settings()`` is read when omitted.

    Returns:
        Fully resolved configuration dictionary.  Secrets are reported only
        as configured / not configured.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    settings = settings or Settings()
    env_overrides = {
        "app": {
            "env": settings.app_env,
        },
        "chunking": {
            "size": settings.chunk_size,
            "overlap": settings.chunk_overlap,
        },
        "embedding": {
            "provider": settings.embedding_provider,
            "max_retries": settings.embedding_max_retries,
            "backoff_base_seconds": settings.embedding_backoff_base_seconds,
            "timeout_seconds": settings.embedding_timeout_seconds,
            "cache_enabled": settings.embedding_cache_enabled,
            "concurrency": settings.embedding_concurrency,
            "available_providers": settings.get_available_embedding_providers(),
        },
        "retrieval": {
            "top_k": settings.retrieval_top_k,
            "max_distance": settings.retrieval_max_distance,
            "strategy": settings.retrieval_strategy,
        },
        "storage": {
            "backend": settings.vector_store_backend,
            "document_db_path": settings.document_db_path,
            "chromadb_persist_dir": settings.chromadb_persist_dir,
            "chromadb_collection": settings.chromadb_collection,
        },
        "upload": {
            "max_bytes": settings.max_upload_bytes,
            "storage_path": settings.upload_storage_path,
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
