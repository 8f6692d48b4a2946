"""
Subscription service - Stripe webhook reconciliation, checkout and portal.

Webhook events are the only writer of a workspace's plan fields. Each
subscription event carries Stripe's full snapshot, so applying it is a
replace keyed by workspace (replaying the same event is a no-op).
Out-of-order delivery is last-write-wins.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Optional
from uuid import UUID

import stripe
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from saaskit.core.config import settings
from saaskit.core.database import utcnow
from saaskit.core.plans import PlanTier
from saaskit.core.security import Principal
from saaskit.models.billing_event import BillingWebhookEvent
from saaskit.models.plan import SubscriptionPlan
from saaskit.models.subscription import WorkspaceSubscription
from saaskit.models.workspace import Workspace
from saaskit.schemas.webhook import (
    CheckoutCompletedEvent,
    InvoiceEvent,
    SubscriptionDeletedEvent,
    SubscriptionUpsertEvent,
    parse_webhook_event,
)
from saaskit.services.plan_catalog_service import PlanCatalogService

logger = logging.getLogger(__name__)


class SubscriptionServiceError(Exception):
    """Domain error for subscription operations."""

    def __init__(self, detail: str, code: str = "subscription_error") -> None:
        self.detail = detail
        self.code = code
        super().__init__(detail)


class StripeNotConfiguredError(SubscriptionServiceError):
    """Credenciais Stripe nao configuradas."""

    def __init__(self, detail: str = "Stripe nao configurado. Defina as variaveis STRIPE_*.") -> None:
        super().__init__(detail, code="stripe_not_configured")


class UpstreamDataError(Exception):
    """Webhook event that references a customer or price we cannot resolve."""

    def __init__(self, detail: str, code: str = "upstream_data_error") -> None:
        self.detail = detail
        self.code = code
        super().__init__(detail)


@dataclass(frozen=True)
class WebhookOutcome:
    event_id: str
    event_type: str
    status: str
    workspace_id: Optional[UUID] = None


@dataclass(frozen=True)
class SubscriptionOverview:
    subscription: Optional[WorkspaceSubscription]
    plan: Optional[SubscriptionPlan]
    payment_method: Optional[dict[str, Any]]


def _from_unix(value: Optional[int]) -> Optional[datetime]:
    """Unix timestamp do Stripe -> datetime UTC naive (padrao das colunas)."""
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=UTC).replace(tzinfo=None)


class SubscriptionService:
    """
    Applies Stripe webhook events to WorkspaceSubscription rows and talks to
    Stripe for checkout, customer portal and payment method reads.

    Use ``from_settings`` to build an instance from environment settings.
    """

    def __init__(
        self,
        *,
        secret_key: str,
        webhook_secret: str,
        webhook_tolerance: int = stripe.Webhook.DEFAULT_TOLERANCE,
    ) -> None:
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret
        self._webhook_tolerance = webhook_tolerance

    @classmethod
    def from_settings(cls) -> SubscriptionService:
        return cls(
            secret_key=settings.STRIPE_SECRET_KEY,
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
            webhook_tolerance=settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
        )

    @property
    def api_configured(self) -> bool:
        return bool(self._secret_key)

    def _configure_stripe(self) -> None:
        """Seta stripe.api_key antes de cada operacao."""
        if not self._secret_key:
            raise StripeNotConfiguredError()
        stripe.api_key = self._secret_key

    def _require_webhook_secret(self) -> None:
        """Raise if webhook_secret is empty - must be called before processing webhooks."""
        if not self._webhook_secret:
            raise StripeNotConfiguredError(
                "Stripe webhook secret nao configurado. Defina STRIPE_WEBHOOK_SECRET."
            )

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def _verify_signature(self, payload: bytes, sig_header: Optional[str]) -> dict[str, Any]:
        """
        Verifica a assinatura sobre o corpo bruto e so entao faz o parse do JSON.

        Raises:
            SubscriptionServiceError: ``invalid_webhook_signature`` ou ``invalid_webhook_payload``.
        """
        if not sig_header:
            raise SubscriptionServiceError(
                "Header stripe-signature ausente.",
                code="invalid_webhook_signature",
            )

        try:
            text = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                text,
                sig_header,
                self._webhook_secret,
                self._webhook_tolerance,
            )
        except (UnicodeDecodeError, stripe.SignatureVerificationError) as exc:
            logger.warning("webhook_signature_rejected: error=%s", exc)
            raise SubscriptionServiceError(
                "Assinatura do webhook invalida.",
                code="invalid_webhook_signature",
            ) from exc

        try:
            body = json.loads(text)
        except ValueError as exc:
            raise SubscriptionServiceError(
                "Payload do webhook invalido.",
                code="invalid_webhook_payload",
            ) from exc

        if not isinstance(body, dict) or not body.get("id") or not body.get("type"):
            raise SubscriptionServiceError(
                "Payload do webhook invalido.",
                code="invalid_webhook_payload",
            )
        return body

    async def handle_webhook_event(
        self,
        db: AsyncSession,
        payload: bytes,
        sig_header: Optional[str],
    ) -> WebhookOutcome:
        """
        Verify and dispatch a Stripe webhook event.

        Unresolvable events (unknown customer or price, malformed fields) are
        logged, recorded as ``dropped`` and acknowledged. Storage failures roll
        back and raise so Stripe redelivers.

        Returns:
            WebhookOutcome with the recorded status.
        """
        self._require_webhook_secret()
        body = self._verify_signature(payload, sig_header)

        event_id = str(body["id"])
        event_type = str(body["type"])
        data = body.get("data")
        data_object = data.get("object") if isinstance(data, dict) else None
        if not isinstance(data_object, dict):
            data_object = {}

        handler = {
            "customer.subscription.created": self._handle_subscription_upsert,
            "customer.subscription.updated": self._handle_subscription_upsert,
            "customer.subscription.deleted": self._handle_subscription_deleted,
            "checkout.session.completed": self._handle_checkout_completed,
            "invoice.payment_succeeded": self._handle_invoice,
            "invoice.payment_failed": self._handle_invoice,
        }.get(event_type)

        status = "ignored"
        workspace_id: Optional[UUID] = None
        error_message: Optional[str] = None

        try:
            if handler is not None:
                try:
                    workspace_id = await handler(db, parse_webhook_event(body))
                    status = "processed"
                except ValidationError as exc:
                    status = "dropped"
                    error_message = f"malformed_event: {exc.error_count()} validation errors"
                    logger.warning(
                        "webhook_dropped: event=%s type=%s reason=malformed errors=%s",
                        event_id,
                        event_type,
                        exc.errors(include_url=False),
                    )
                except UpstreamDataError as exc:
                    status = "dropped"
                    error_message = f"{exc.code}: {exc.detail}"
                    logger.warning(
                        "webhook_dropped: event=%s type=%s reason=%s detail=%s",
                        event_id,
                        event_type,
                        exc.code,
                        exc.detail,
                    )
            else:
                logger.debug("webhook_ignored: event=%s type=%s", event_id, event_type)

            await self._record_event(
                db,
                event_id=event_id,
                event_type=event_type,
                status=status,
                data=data_object,
                workspace_id=workspace_id,
                error_message=error_message,
            )
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.error(
                "webhook_failed: event=%s type=%s error=%s",
                event_id,
                event_type,
                exc,
            )
            raise SubscriptionServiceError(
                "Falha ao processar webhook.",
                code="webhook_processing_failed",
            ) from exc

        if status == "processed":
            logger.info(
                "webhook_processed: event=%s type=%s workspace=%s",
                event_id,
                event_type,
                workspace_id,
            )
        return WebhookOutcome(
            event_id=event_id,
            event_type=event_type,
            status=status,
            workspace_id=workspace_id,
        )

    # ------------------------------------------------------------------
    # Internal webhook handlers
    # ------------------------------------------------------------------

    async def _handle_subscription_upsert(
        self, db: AsyncSession, event: SubscriptionUpsertEvent,
    ) -> UUID:
        """customer.subscription.created/updated - full replace of the snapshot."""
        stripe_sub = event.data.object

        subscription = await self._find_subscription_by_customer(db, stripe_sub.customer)
        if subscription is None:
            raise UpstreamDataError(
                f"Nenhum workspace para o customer {stripe_sub.customer}.",
                code="unknown_customer",
            )

        resolved = await PlanCatalogService(db).resolve_price(stripe_sub.price_id)
        if resolved is None:
            raise UpstreamDataError(
                f"Price {stripe_sub.price_id} nao mapeado para nenhum plano.",
                code="unknown_price",
            )

        subscription.plan_id = resolved.plan.plan_id
        subscription.external_subscription_id = stripe_sub.id
        subscription.external_customer_id = stripe_sub.customer
        subscription.status = stripe_sub.status
        subscription.current_period_start = _from_unix(stripe_sub.period_start)
        subscription.current_period_end = _from_unix(stripe_sub.period_end)
        subscription.cancel_at_period_end = stripe_sub.cancel_at_period_end
        subscription.billing_interval = resolved.interval
        subscription.trial_start = _from_unix(stripe_sub.trial_start)
        subscription.trial_end = _from_unix(stripe_sub.trial_end)

        await db.flush()
        return subscription.workspace_id

    async def _handle_subscription_deleted(
        self, db: AsyncSession, event: SubscriptionDeletedEvent,
    ) -> UUID:
        """customer.subscription.deleted - revert workspace to free."""
        stripe_sub = event.data.object

        subscription = await self._find_subscription_by_customer(db, stripe_sub.customer)
        if subscription is None:
            raise UpstreamDataError(
                f"Nenhum workspace para o customer {stripe_sub.customer}.",
                code="unknown_customer",
            )

        self._reset_to_free(subscription)
        await db.flush()
        return subscription.workspace_id

    async def _handle_checkout_completed(
        self, db: AsyncSession, event: CheckoutCompletedEvent,
    ) -> Optional[UUID]:
        """checkout.session.completed - only observed; subscription.created carries the state."""
        session = event.data.object
        raw_workspace_id = session.metadata.get("workspace_id") or session.client_reference_id
        workspace_id = None
        if raw_workspace_id:
            try:
                workspace_id = UUID(raw_workspace_id)
            except ValueError:
                logger.warning("checkout_completed com workspace_id invalido: %s", raw_workspace_id)

        logger.info(
            "checkout_completed: session=%s workspace=%s customer=%s subscription=%s",
            session.id,
            workspace_id,
            session.customer,
            session.subscription,
        )
        return workspace_id

    async def _handle_invoice(
        self, db: AsyncSession, event: InvoiceEvent,
    ) -> UUID:
        """invoice.payment_succeeded/failed - resolve workspace for observability."""
        invoice = event.data.object
        subscription = await self._find_subscription_by_customer(db, invoice.customer)
        if subscription is None:
            raise UpstreamDataError(
                f"Nenhum workspace para o customer {invoice.customer}.",
                code="unknown_customer",
            )

        log = logger.warning if event.type == "invoice.payment_failed" else logger.info
        log(
            "%s: workspace=%s invoice=%s amount_due=%s attempt=%s",
            event.type.replace(".", "_"),
            subscription.workspace_id,
            invoice.id,
            invoice.amount_due,
            invoice.attempt_count,
        )
        return subscription.workspace_id

    @staticmethod
    def _reset_to_free(subscription: WorkspaceSubscription) -> None:
        subscription.plan_id = PlanTier.FREE.value
        subscription.external_subscription_id = None
        subscription.status = "active"
        subscription.current_period_start = utcnow()
        subscription.current_period_end = None
        subscription.cancel_at_period_end = False
        subscription.billing_interval = None
        subscription.trial_start = None
        subscription.trial_end = None

    async def _record_event(
        self,
        db: AsyncSession,
        *,
        event_id: str,
        event_type: str,
        status: str,
        data: dict[str, Any],
        workspace_id: Optional[UUID] = None,
        error_message: Optional[str] = None,
    ) -> BillingWebhookEvent:
        """Persist (or update, on redelivery) the BillingWebhookEvent record."""
        customer_id = data.get("customer")
        if isinstance(customer_id, dict):
            customer_id = customer_id.get("id")
        subscription_id = data.get("subscription")
        if subscription_id is None and event_type.startswith("customer.subscription."):
            subscription_id = data.get("id")
        if isinstance(subscription_id, dict):
            subscription_id = subscription_id.get("id")

        stmt = select(BillingWebhookEvent).where(BillingWebhookEvent.event_id == event_id)
        record = (await db.execute(stmt)).scalar_one_or_none()
        if record is None:
            record = BillingWebhookEvent(event_id=event_id, event_type=event_type, delivery_count=1)
            db.add(record)
        else:
            record.delivery_count = (record.delivery_count or 0) + 1

        record.status = status
        record.customer_id = customer_id
        record.subscription_id = subscription_id
        record.workspace_id = workspace_id
        record.error_message = error_message[:1000] if error_message else None
        await db.flush()
        return record

    # ------------------------------------------------------------------
    # Read model
    # ------------------------------------------------------------------

    async def get_subscription_overview(
        self,
        db: AsyncSession,
        workspace_id: UUID,
    ) -> SubscriptionOverview:
        """
        Subscription, plano e metodo de pagamento do workspace.

        Falhas do Stripe ao buscar o metodo de pagamento viram ``None``.
        """
        subscription = await self.get_workspace_subscription(db, workspace_id)
        if subscription is None:
            return SubscriptionOverview(subscription=None, plan=None, payment_method=None)

        plan = await PlanCatalogService(db).get_plan(subscription.plan_id)
        payment_method = None
        if subscription.external_customer_id and self.api_configured:
            payment_method = self._fetch_payment_method(subscription.external_customer_id)

        return SubscriptionOverview(
            subscription=subscription,
            plan=plan,
            payment_method=payment_method,
        )

    def _fetch_payment_method(self, customer_id: str) -> Optional[dict[str, Any]]:
        self._configure_stripe()
        try:
            customer = stripe.Customer.retrieve(
                customer_id,
                expand=["invoice_settings.default_payment_method"],
            )
            # StripeObject nao e dict: so acesso por atributo
            invoice_settings = getattr(customer, "invoice_settings", None)
            method = getattr(invoice_settings, "default_payment_method", None)
            if method is None or isinstance(method, str):
                methods = stripe.PaymentMethod.list(customer=customer_id, type="card", limit=1)
                listed = getattr(methods, "data", None) or []
                method = listed[0] if listed else None
        except stripe.StripeError as exc:
            logger.warning("payment_method_lookup_failed: customer=%s error=%s", customer_id, exc)
            return None

        if method is None:
            return None

        card = getattr(method, "card", None)
        return {
            "id": getattr(method, "id", None),
            "type": getattr(method, "type", None),
            "brand": getattr(card, "brand", None),
            "last4": getattr(card, "last4", None),
            "exp_month": getattr(card, "exp_month", None),
            "exp_year": getattr(card, "exp_year", None),
        }

    # ------------------------------------------------------------------
    # Checkout / portal
    # ------------------------------------------------------------------

    async def create_checkout_session(
        self,
        db: AsyncSession,
        *,
        workspace: Workspace,
        principal: Principal,
        plan_id: str,
        interval: str,
        success_url: str,
        cancel_url: str,
    ) -> dict[str, str]:
        """
        Create a Stripe Checkout Session for a workspace plan.

        Returns:
            dict with checkout_url and session_id.
        """
        self._configure_stripe()

        price_id = await PlanCatalogService(db).price_id_for(plan_id, interval)
        if not price_id:
            raise SubscriptionServiceError(
                "Plano nao possui preco configurado no Stripe.",
                code="plan_no_stripe_price",
            )

        subscription = await self.get_workspace_subscription(db, workspace.id)
        if subscription is None:
            raise SubscriptionServiceError(
                "Workspace sem registro de assinatura.",
                code="subscription_not_found",
            )

        customer_id = await self._ensure_customer(db, subscription, workspace, principal)
        metadata = {
            "workspace_id": str(workspace.id),
            "user_id": principal.user_id,
            "plan_id": plan_id,
        }

        session = stripe.checkout.Session.create(
            mode="subscription",
            customer=customer_id,
            client_reference_id=str(workspace.id),
            line_items=[{"price": price_id, "quantity": 1}],
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
            subscription_data={"metadata": metadata},
        )

        return {
            "checkout_url": session.url,
            "session_id": session.id,
        }

    async def _ensure_customer(
        self,
        db: AsyncSession,
        subscription: WorkspaceSubscription,
        workspace: Workspace,
        principal: Principal,
    ) -> str:
        """Um customer Stripe por workspace; uma vez gravado nunca muda."""
        if subscription.external_customer_id:
            return subscription.external_customer_id

        customer = stripe.Customer.create(
            email=principal.email,
            name=workspace.name,
            metadata={"workspace_id": str(workspace.id)},
        )
        subscription.external_customer_id = customer.id
        await db.flush()
        logger.info("stripe_customer_bound: workspace=%s customer=%s", workspace.id, customer.id)
        return customer.id

    async def create_customer_portal_session(
        self,
        db: AsyncSession,
        *,
        workspace_id: UUID,
        return_url: str,
    ) -> dict[str, str]:
        """
        Create a Stripe Customer Portal session for a workspace.

        Returns:
            dict with portal_url.
        """
        self._configure_stripe()
        subscription = await self.get_workspace_subscription(db, workspace_id)
        if subscription is None or not subscription.external_customer_id:
            raise SubscriptionServiceError(
                "Workspace ainda nao possui cliente de cobranca.",
                code="no_billing_customer",
            )

        portal = stripe.billing_portal.Session.create(
            customer=subscription.external_customer_id,
            return_url=return_url,
        )
        return {"portal_url": portal.url}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def get_workspace_subscription(
        db: AsyncSession,
        workspace_id: UUID,
    ) -> WorkspaceSubscription | None:
        return await db.get(WorkspaceSubscription, workspace_id)

    @staticmethod
    async def _find_subscription_by_customer(
        db: AsyncSession,
        customer_id: Optional[str],
    ) -> WorkspaceSubscription | None:
        if not customer_id:
            return None
        stmt = select(WorkspaceSubscription).where(
            WorkspaceSubscription.external_customer_id == customer_id,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()
