"""
ledger_config -- single public entrypoint for posting configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``PostingConfig`` whose
    ``to_posting_policy()`` is what the kernel consumes.

Architecture position:
    Configuration -- sits above ``ledger_kernel``.  The kernel MUST NEVER
    import from ``ledger_config``.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``ledger_config_loaded`` log entry with the config id, version and
    SHA-256 checksum, tying postings to the configuration that governed
    them.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from ledger_config.loader import load_posting_config
from ledger_config.schema import PostingConfig

_logger = logging.getLogger("ledger_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "posting.yaml"

CONFIG_PATH_ENV = "LEDGER_CONFIG_PATH"


def get_active_config(path: Path | str | None = None) -> PostingConfig:
    """
    Load the active posting configuration.

    Resolution order: explicit ``path``, then ``LEDGER_CONFIG_PATH``, then
    the packaged default.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        InvalidConfigError: If validation fails.
    """
    resolved = Path(path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
    config = load_posting_config(resolved)

    _logger.info(
        "ledger_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "functional_currency": config.functional_currency,
            "path": str(resolved),
        },
    )
    return config


__all__ = [
    "CONFIG_PATH_ENV",
    "DEFAULT_CONFIG_PATH",
    "PostingConfig",
    "get_active_config",
]
