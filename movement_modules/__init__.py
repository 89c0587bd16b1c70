"""
Movement Modules.

Thin orchestration layers over the Movement Kernel.
Each module contains:
- Workflows (state machines, role requirements, guards)
- A service facade (the command surface)

Modules:
- Procurement: supplier purchases entering a branch
- Transfer: stock moving between branches and warehouses
"""

from movement_modules import procurement, transfer

__all__ = [
    "procurement",
    "transfer",
]
