"""
Billing endpoints - plans, subscription overview, checkout, portal, Stripe webhook.
"""
from __future__ import annotations

from urllib.parse import urlparse

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from saaskit.core.config import settings
from saaskit.core.database import get_db
from saaskit.core.dependencies import (
    get_current_principal,
    require_workspace_member,
    require_workspace_permission,
)
from saaskit.core.rbac import Permission
from saaskit.core.security import Principal
from saaskit.services.entitlements_service import EntitlementsContext
from saaskit.schemas.billing import (
    CheckoutRequest,
    CheckoutResponse,
    PaymentMethodDetail,
    PlanResponse,
    PortalRequest,
    PortalResponse,
    SubscriptionDetail,
    SubscriptionOverviewData,
    SubscriptionOverviewResponse,
    WebhookAck,
)
from saaskit.services.plan_catalog_service import PlanCatalogService
from saaskit.services.subscription_service import SubscriptionService, SubscriptionServiceError
from saaskit.services.workspace_service import WorkspaceService

router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _validate_return_url(url: str) -> None:
    """
    Validate that a return URL belongs to an allowed origin.

    Uses CORS_ORIGINS as the allowlist to prevent open-redirect after
    Stripe flows.

    Raises:
        HTTPException 400 if the URL host is not in the allowlist.
    """
    allowed_origins = settings.cors_origins_list
    if "*" in allowed_origins:
        return

    parsed = urlparse(url)
    url_origin = f"{parsed.scheme}://{parsed.netloc}"
    for origin in allowed_origins:
        if url_origin == origin.rstrip("/"):
            return

    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=f"URL de retorno nao permitida: host '{parsed.netloc}' fora da allowlist.",
    )


def get_subscription_service() -> SubscriptionService:
    """SubscriptionService por request a partir das settings."""
    return SubscriptionService.from_settings()


def _raise_billing_http_error(exc: SubscriptionServiceError) -> None:
    status_code = status.HTTP_400_BAD_REQUEST
    if exc.code == "subscription_not_found":
        status_code = status.HTTP_404_NOT_FOUND
    elif exc.code == "stripe_not_configured":
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    raise HTTPException(status_code=status_code, detail=exc.detail) from exc


# ---------------------------------------------------------------------------
# Plans / subscription
# ---------------------------------------------------------------------------


@router.get("/plans", response_model=list[PlanResponse])
async def list_plans(db: AsyncSession = Depends(get_db)) -> list[PlanResponse]:
    """Catalogo de planos ativos (publico)."""
    plans = await PlanCatalogService(db).list_active_plans()
    return [PlanResponse.model_validate(plan) for plan in plans]


@router.get("/subscription", response_model=SubscriptionOverviewResponse)
async def get_subscription(
    context: EntitlementsContext = Depends(require_workspace_member),
    db: AsyncSession = Depends(get_db),
    svc: SubscriptionService = Depends(get_subscription_service),
) -> SubscriptionOverviewResponse:
    """Assinatura, plano e metodo de pagamento do workspace (qualquer membro)."""
    overview = await svc.get_subscription_overview(db, context.workspace_id)
    return SubscriptionOverviewResponse(
        success=True,
        data=SubscriptionOverviewData(
            subscription=(
                SubscriptionDetail.model_validate(overview.subscription)
                if overview.subscription is not None
                else None
            ),
            plan=PlanResponse.model_validate(overview.plan) if overview.plan is not None else None,
            payment_method=(
                PaymentMethodDetail.model_validate(overview.payment_method)
                if overview.payment_method is not None
                else None
            ),
        ),
    )


# ---------------------------------------------------------------------------
# Checkout / portal
# ---------------------------------------------------------------------------


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    body: CheckoutRequest,
    context: EntitlementsContext = Depends(require_workspace_permission(Permission.MANAGE_BILLING)),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    svc: SubscriptionService = Depends(get_subscription_service),
) -> CheckoutResponse:
    """Cria Stripe Checkout Session para o workspace (owner)."""
    success_url = body.success_url or f"{settings.FRONTEND_URL}/billing?checkout=success"
    cancel_url = body.cancel_url or f"{settings.FRONTEND_URL}/billing?checkout=cancel"
    _validate_return_url(success_url)
    _validate_return_url(cancel_url)

    workspace = await WorkspaceService(db).get_workspace(context.workspace_id)
    if workspace is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Workspace nao encontrado.")

    try:
        result = await svc.create_checkout_session(
            db,
            workspace=workspace,
            principal=principal,
            plan_id=body.plan_id,
            interval=body.interval,
            success_url=success_url,
            cancel_url=cancel_url,
        )
    except SubscriptionServiceError as exc:
        _raise_billing_http_error(exc)
    await db.commit()
    return CheckoutResponse(**result)


@router.post("/portal", response_model=PortalResponse)
async def create_portal(
    body: PortalRequest,
    context: EntitlementsContext = Depends(require_workspace_permission(Permission.MANAGE_BILLING)),
    db: AsyncSession = Depends(get_db),
    svc: SubscriptionService = Depends(get_subscription_service),
) -> PortalResponse:
    """Cria sessao do Stripe Customer Portal (owner)."""
    return_url = body.return_url or f"{settings.FRONTEND_URL}/billing"
    _validate_return_url(return_url)

    try:
        result = await svc.create_customer_portal_session(
            db,
            workspace_id=context.workspace_id,
            return_url=return_url,
        )
    except SubscriptionServiceError as exc:
        _raise_billing_http_error(exc)
    return PortalResponse(**result)


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------


@router.post("/webhook", response_model=WebhookAck, status_code=status.HTTP_200_OK)
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    svc: SubscriptionService = Depends(get_subscription_service),
) -> WebhookAck:
    """
    Stripe webhook endpoint - no JWT auth, uses Stripe signature verification.

    Responds ``{received: true}`` for processed, ignored and dropped events;
    400 on signature or storage failure so Stripe redelivers.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    try:
        await svc.handle_webhook_event(db, payload, sig_header)
    except SubscriptionServiceError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.detail,
        ) from exc

    await db.commit()
    return WebhookAck(received=True)
