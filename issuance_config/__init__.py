"""
issuance_config -- single public entrypoint for client configuration.

Responsibility:
    ``get_active_config()`` is the only way runtime code obtains settings.
    YAML loading is internal to this package.

Failure modes:
    - ``FileNotFoundError`` -- configuration file missing.
    - ``ValueError`` -- schema validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits an
    ``ISSUANCE_CONFIG_TRACE`` log entry with the file path and checksum.
"""

from __future__ import annotations

import logging
from pathlib import Path

from issuance_config.loader import compute_checksum, load_yaml_file, parse_config
from issuance_config.schema import IssuanceConfig

_logger = logging.getLogger("issuance_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(path: Path | str | None = None) -> IssuanceConfig:
    """Load and validate the active configuration.

    Args:
        path: YAML file to load. Defaults to the bundled ``sets/default.yaml``.
    """
    config_path = Path(path) if path is not None else _DEFAULT_CONFIG_PATH
    data = load_yaml_file(config_path)
    config = parse_config(data)

    _logger.info(
        "ISSUANCE_CONFIG_TRACE",
        extra={
            "trace_type": "ISSUANCE_CONFIG_TRACE",
            "config_path": str(config_path),
            "checksum": compute_checksum(data),
            "api_base_url": config.api_base_url,
            "overdue_after_days": config.overdue_after_days,
        },
    )
    return config


__all__ = ["IssuanceConfig", "get_active_config"]
