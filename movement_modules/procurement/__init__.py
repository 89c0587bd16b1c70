"""
Procurement Module (``movement_modules.procurement``).

Responsibility
--------------
Supplier purchases from request to receipt: review (with supplier choice
and price fixing), payment, receipt into the destination branch, and
cancellation.

Architecture position
---------------------
**Modules layer** -- a declarative workflow plus a service facade.  All
persistence and stock movement goes through ``movement_kernel``.

Invariants enforced
-------------------
* Only receipt moves stock, and only once.
* Lines are fixed once the request leaves ``requested``.

Failure modes
-------------
* Typed ``movement_kernel.exceptions`` errors; see ``ProcurementService``.
"""

from movement_modules.procurement.service import ProcurementService
from movement_modules.procurement.workflows import PROCUREMENT_WORKFLOW

__all__ = [
    "PROCUREMENT_WORKFLOW",
    "ProcurementService",
]
