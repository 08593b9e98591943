"""
CodeListSync Configuration Package

Public API for loading, validating, and introspecting synchronisation
configuration.

Example:
    from CodeListSync.config import load_config

    config = load_config(
        path="codelist-sync.yaml",
        cli_overrides={"auto_confirm_downloads": True},
    )
    config_id = config.config_hash()
"""

from .loader import (
    ENV_PREFIX,
    export_config_schema,
    load_config,
    validate_config_file,
)
from .models import (
    DEFAULT_REGISTRY_URL,
    HttpSettings,
    OutputSettings,
    SyncConfig,
)

__all__ = [
    # Models
    "SyncConfig",
    "HttpSettings",
    "OutputSettings",
    "DEFAULT_REGISTRY_URL",
    # Loading/validation
    "ENV_PREFIX",
    "load_config",
    "validate_config_file",
    "export_config_schema",
]
