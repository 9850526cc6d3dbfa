"""
billing_config -- single public entrypoint for billing policy.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Services receive the returned
    ``BillingConfig`` by injection and never read YAML themselves.

Architecture position:
    Configuration -- sits above ``billing_kernel`` and below
    ``billing_modules`` / ``billing_services``.

Failure modes:
    - ``FileNotFoundError`` -- the requested YAML file does not exist.
    - ``ValueError`` -- policy validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``BILLING_CONFIG_TRACE`` log entry with version and checksum, tying
    computed totals back to the policy that governed them.
"""

from __future__ import annotations

from pathlib import Path

from billing_config.loader import load_yaml_file, parse_config
from billing_config.schema import (
    BillingConfig,
    DocumentPolicy,
    FamilyPolicy,
    ProrationPolicy,
    TaxPolicy,
)
from billing_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | str | None = None) -> BillingConfig:
    """Load, validate and return the billing configuration.

    Args:
        path: YAML file to load.  Defaults to the packaged ``defaults.yaml``.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If the policy is inconsistent.
    """
    source = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    config = parse_config(load_yaml_file(source))

    _logger.info(
        "BILLING_CONFIG_TRACE",
        extra={
            "trace_type": "BILLING_CONFIG_TRACE",
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(source),
            "family_count": len(config.families),
        },
    )
    return config


__all__ = [
    "BillingConfig",
    "DocumentPolicy",
    "FamilyPolicy",
    "ProrationPolicy",
    "TaxPolicy",
    "get_active_config",
]
