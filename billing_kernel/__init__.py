"""
Billing Kernel

Core of the property-management billing backend:
- Decimal money with a single rounding point
- Typed, coded exceptions
- Structured JSON logging
- FinancialDocument value object and the DocumentStore persistence port
- SQLAlchemy and in-memory store implementations
"""

__version__ = "0.1.0"
