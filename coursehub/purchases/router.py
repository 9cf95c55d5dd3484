"""Purchase API endpoints.

Endpoints:
- POST /v1/purchases: Start checkout for a course
- GET /v1/purchases/my: Purchase history of the current user
- POST /v1/webhooks/stripe: Payment processor notifications
"""

from typing import Annotated

import structlog
from fastapi import (
    APIRouter,
    Depends,
    Header,
    HTTPException,
    Request,
    Response,
    status,
)

from coursehub.auth.dependencies import CurrentUser, IdentityProviderDep
from coursehub.config.settings import Settings, get_settings
from coursehub.core.context import get_correlation_id
from coursehub.core.exceptions import AuthenticityError, DomainError
from coursehub.users.dependencies import UserServiceDep

from .dependencies import PurchaseServiceDep
from .schemas import (
    CheckoutEnvelope,
    PurchaseCourseRequest,
    PurchaseListEnvelope,
    PurchaseResponse,
    WebhookAck,
)
from .service import PurchaseNotFoundError


logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/v1/purchases", tags=["Purchases"])
webhook_router = APIRouter(prefix="/v1/webhooks", tags=["Webhooks"])


def checkout_origin(origin: str | None, settings: Settings) -> str:
    """Redirect base for checkout: the caller's origin only if explicitly allowed.

    A wildcard CORS setting does not allow an origin here.
    """
    allowed = {o.rstrip("/") for o in settings.cors_origins if o != "*"}
    if origin and origin.rstrip("/") in allowed:
        return origin.rstrip("/")
    return settings.frontend_url


@router.post(
    "",
    response_model=CheckoutEnvelope,
    summary="Purchase a course",
)
async def purchase_course(
    data: PurchaseCourseRequest,
    request: Request,
    service: PurchaseServiceDep,
    user_service: UserServiceDep,
    identity: IdentityProviderDep,
    current_user: CurrentUser,
    settings: Annotated[Settings, Depends(get_settings)],
) -> CheckoutEnvelope:
    """Create a pending purchase and return the hosted checkout URL.

    The buyer is enrolled once the payment processor confirms the payment.
    """
    await user_service.ensure_user(current_user.id, identity)
    purchase, session_url = await service.initiate_purchase(
        user_id=current_user.id,
        course_id=data.course_id,
        origin=checkout_origin(request.headers.get("origin"), settings),
    )
    return CheckoutEnvelope(session_url=session_url, purchase_id=purchase.id)


@router.get(
    "/my",
    response_model=PurchaseListEnvelope,
    summary="List my purchases",
)
async def list_my_purchases(
    service: PurchaseServiceDep,
    current_user: CurrentUser,
) -> PurchaseListEnvelope:
    entries = await service.list_purchases(current_user.id)
    return PurchaseListEnvelope(
        purchases=[PurchaseResponse.from_entity(p, c) for p, c in entries]
    )


# ==============================================================================
# Webhooks
# ==============================================================================


@webhook_router.post(
    "/stripe",
    response_model=WebhookAck,
    summary="Stripe webhook",
)
async def stripe_webhook(
    request: Request,
    response: Response,
    service: PurchaseServiceDep,
    stripe_signature: Annotated[str | None, Header(alias="Stripe-Signature")] = None,
) -> WebhookAck:
    """Reconcile a payment event.

    The raw body is verified against the signature header before anything
    is read from it. Unverifiable deliveries get 400 and change nothing.
    Any other failure answers 5xx so the processor delivers the event again.
    """
    payload = await request.body()
    try:
        result = await service.handle_payment_event(payload, stripe_signature)
    except AuthenticityError as e:
        logger.warning("webhook_rejected", reason=e.message)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=e.message,
        ) from e
    except PurchaseNotFoundError:
        # Acknowledge so the processor stops redelivering
        logger.warning("webhook_unknown_purchase")
        result = "unknown_purchase"
    except DomainError as e:
        # Not acknowledged: the processor redelivers the event later
        logger.error("webhook_processing_failed", code=e.code, reason=e.message)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=e.message,
        ) from e

    purchase_ref = get_correlation_id()
    if purchase_ref:
        response.headers["X-Correlation-ID"] = purchase_ref
    return WebhookAck(result=result)
