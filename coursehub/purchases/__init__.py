"""Course purchases module.

Pending purchases, hosted checkout and webhook reconciliation:
- PurchaseStatus: PENDING, COMPLETED, FAILED
- Completion enrolls the buyer exactly once
"""

from .gateway import PaymentEvent, StripeGateway
from .models import Purchase, PurchaseStatus, compute_amount
from .router import router, webhook_router
from .service import PurchaseService


__all__ = [
    "PaymentEvent",
    "Purchase",
    "PurchaseService",
    "PurchaseStatus",
    "StripeGateway",
    "compute_amount",
    "router",
    "webhook_router",
]
