"""
Movement Kernel

The authoritative core of the inventory movement workflow engine:
- Pure workflow tables, classifier and transition authorizer
- Compare-and-set request store (single writer of status)
- Stock ledger with per-call atomic adjustments
- Typed exceptions and structured logging
"""

__version__ = "0.1.0"
