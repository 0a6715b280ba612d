"""
Billing Kernel

Shared foundation for the quotation / invoice calculation core:
- Structured JSON logging with request-scoped context
- Typed exception hierarchy with machine-readable codes
- Pure Decimal value helpers, clock and workflow types
- SQLAlchemy declarative base, engine and sequence allocation
"""

__version__ = "0.1.0"
