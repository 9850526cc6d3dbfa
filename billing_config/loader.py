"""
Configuration Loader (``billing_config.loader``).

Responsibility
--------------
Loads the billing policy YAML file and parses it into the frozen
``billing_config.schema`` dataclasses.  Runtime callers go through
``billing_config.get_active_config()``; this module is its tooling.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Rates are parsed through ``str`` into ``Decimal``; YAML floats never
  reach the tax math.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Inconsistent policy  -> ``ValueError`` from the schema ``__post_init__``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from billing_config.schema import (
    BillingConfig,
    DocumentPolicy,
    FamilyPolicy,
    ProrationPolicy,
    TaxPolicy,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any) -> Decimal:
    return Decimal(str(value))


def parse_tax_policy(data: dict[str, Any]) -> TaxPolicy:
    defaults = TaxPolicy()
    return TaxPolicy(
        allowed_vat_rates=tuple(
            parse_decimal(r) for r in data.get("allowed_vat_rates", defaults.allowed_vat_rates)
        ),
        min_withholding_rate=parse_decimal(
            data.get("min_withholding_rate", defaults.min_withholding_rate)
        ),
        max_withholding_rate=parse_decimal(
            data.get("max_withholding_rate", defaults.max_withholding_rate)
        ),
        default_vat_rate=parse_decimal(data.get("default_vat_rate", defaults.default_vat_rate)),
        default_withholding_rate=parse_decimal(
            data.get("default_withholding_rate", defaults.default_withholding_rate)
        ),
    )


def parse_proration_policy(data: dict[str, Any]) -> ProrationPolicy:
    return ProrationPolicy(max_period_days=int(data.get("max_period_days", 31)))


def parse_document_policy(data: dict[str, Any]) -> DocumentPolicy:
    return DocumentPolicy(
        default_due_days=int(data.get("default_due_days", 30)),
        allow_multiple_refunds=bool(data.get("allow_multiple_refunds", False)),
    )


def parse_family_policy(name: str, data: dict[str, Any]) -> FamilyPolicy:
    """Parse a ``FamilyPolicy``; prefixes, settled status and statuses are required."""
    return FamilyPolicy(
        name=name,
        regular_prefix=data["regular_prefix"],
        refund_prefix=data["refund_prefix"],
        settled_status=data["settled_status"],
        statuses=tuple(data["statuses"]),
        payment_methods=tuple(data.get("payment_methods", ())),
        default_payment_method=data.get("default_payment_method"),
        categories=tuple(data.get("categories", ())),
    )


def parse_config(data: dict[str, Any]) -> BillingConfig:
    """Assemble a ``BillingConfig`` from a parsed YAML document."""
    families = data.get("families") or {}
    return BillingConfig(
        version=str(data.get("version", "0")),
        tax=parse_tax_policy(data.get("tax") or {}),
        proration=parse_proration_policy(data.get("proration") or {}),
        documents=parse_document_policy(data.get("documents") or {}),
        families=tuple(
            parse_family_policy(name, body) for name, body in families.items()
        ),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
