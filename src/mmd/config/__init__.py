"""Configuration for mermaid-serve.

Usage:
    from mmd.config import load_config

    config = load_config()
    print(config.http_root)
    print(config.resolve_file_root())
"""

from mmd.config.loader import (
    ServeConfig,
    SourceMode,
    StalenessPolicy,
    load_config,
    parse_command,
)

__all__ = [
    "ServeConfig",
    "SourceMode",
    "StalenessPolicy",
    "load_config",
    "parse_command",
]
