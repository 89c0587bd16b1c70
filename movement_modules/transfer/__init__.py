"""
Transfer Module (``movement_modules.transfer``).

Responsibility
--------------
Stock transfers between a branch and a warehouse: two-step review,
shipment out of the origin, receipt at the destination, and compensating
cancellation.

Architecture position
---------------------
**Modules layer** -- a declarative workflow plus a service facade.

Failure modes
-------------
* Typed ``movement_kernel.exceptions`` errors; see ``TransferService``.
"""

from movement_modules.transfer.service import TransferService
from movement_modules.transfer.workflows import STOCK_AVAILABLE, TRANSFER_WORKFLOW

__all__ = [
    "STOCK_AVAILABLE",
    "TRANSFER_WORKFLOW",
    "TransferService",
]
