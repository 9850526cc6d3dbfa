"""Per-family document definitions and payment workflows."""

from billing_modules.families import FAMILIES, DocumentFamily, get_family
from billing_modules.workflows import payment_workflow

__all__ = ["FAMILIES", "DocumentFamily", "get_family", "payment_workflow"]
