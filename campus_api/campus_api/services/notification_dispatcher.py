"""Consent-gated dispatch of payment reminders and confirmations.

Every attempt runs the same sequence::

    validate id -> reload bill -> consent gate -> render -> provider -> log

and ends in exactly one of ``blocked``, ``pending``, ``failed`` or ``sent``.
Each outcome is appended to ``notification_logs`` and committed before the
result is returned or the error is raised, so the audit trail keeps the
attempt even when the caller's own transaction is rolled back.

The bill is always reloaded from storage by id.  A confirmation triggered
right after "mark as paid" therefore sees the paid state, the current
tenant and the current amount.

INVARIANT: no provider call happens unless both consent flags are true.
"""

from __future__ import annotations

import logging

from campus_core.billing.consent import Blocked, evaluate_consent
from campus_core.billing.templates import RenderedMessage, render_confirmation, render_reminder
from campus_core.exceptions import (
    CampusBillingError,
    ConsentBlockedError,
    NotFoundError,
    ProviderError,
    ProviderUnavailableError,
    ValidationError,
)
from campus_core.models.billing import PaymentStatus
from campus_core.models.notification import (
    BulkDispatchResult,
    DispatchResult,
    NotificationStatus,
    TemplateName,
)
from campus_core.state.repository import BillContext, BillRepository, NotificationLogRepository
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from campus_api.services.delivery_provider import DeliveryProvider
from campus_api.services.receipt_service import ReceiptService

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Send template messages for bills through the delivery provider.

    Parameters
    ----------
    session:
        Session used for reads and for committing log entries.
    provider:
        Delivery provider client.
    receipts:
        Receipt renderer; required for payment confirmations.
    operator_id:
        Optional operator scope for bill lookups.
    """

    def __init__(
        self,
        session: AsyncSession,
        provider: DeliveryProvider,
        receipts: ReceiptService | None = None,
        operator_id: str | None = None,
    ) -> None:
        self._session = session
        self._provider = provider
        self._receipts = receipts
        self._bills = BillRepository(session, operator_id)
        self._logs = NotificationLogRepository(session, operator_id)

    # -- Public API -----------------------------------------------------------

    async def send_reminder(self, bill_id: str) -> DispatchResult:
        return await self._dispatch(bill_id, TemplateName.PAYMENT_REMINDER)

    async def send_payment_confirmation(self, bill_id: str) -> DispatchResult:
        """Send the paid-bill confirmation with its receipt attached.

        A confirmation already delivered for the bill is not sent again;
        the earlier outcome is returned with ``duplicate=True``.
        """
        return await self._dispatch(bill_id, TemplateName.PAYMENT_CONFIRMATION)

    async def send_bulk_reminders(self, bill_ids: list[str]) -> BulkDispatchResult:
        """Send reminders one at a time and tally the outcomes.

        ``sent`` and ``pending`` count as sent.  Any per-item error counts
        as failed and the batch continues.
        """
        result = BulkDispatchResult()
        for bill_id in bill_ids:
            try:
                outcome = await self.send_reminder(bill_id)
            except CampusBillingError as exc:
                result.failed_count += 1
                logger.warning("Bulk reminder for bill=%s failed: [%s] %s", bill_id, exc.code, exc.message)
                continue
            except SQLAlchemyError:
                await self._session.rollback()
                result.failed_count += 1
                logger.error("Bulk reminder for bill=%s hit a storage error", bill_id, exc_info=True)
                continue
            if outcome.status in (NotificationStatus.SENT, NotificationStatus.PENDING):
                result.sent_count += 1
            else:
                result.failed_count += 1

        logger.info(
            "Bulk reminders complete: requested=%d sent=%d failed=%d",
            len(bill_ids),
            result.sent_count,
            result.failed_count,
        )
        return result

    # -- Internals ------------------------------------------------------------

    async def _dispatch(self, bill_id: str, template: TemplateName) -> DispatchResult:
        if not bill_id or not bill_id.strip():
            raise ValidationError("A bill id is required")

        context = await self._bills.get_context(bill_id)
        if context is None:
            raise NotFoundError("Bill", bill_id)

        if template == TemplateName.PAYMENT_REMINDER:
            if context.bill.payment_status == PaymentStatus.PAID.value:
                raise ValidationError(f"Bill '{bill_id}' is already paid; no reminder is sent")

        if template == TemplateName.PAYMENT_CONFIRMATION:
            if context.bill.payment_status != PaymentStatus.PAID.value:
                raise ValidationError(f"Bill '{bill_id}' is not paid; no confirmation can be sent")
            earlier = await self._logs.find_sent(bill_id, template)
            if earlier is not None:
                logger.info("Confirmation for bill=%s already sent at %s; not resending", bill_id, earlier.created_at)
                return DispatchResult(
                    bill_id=bill_id,
                    tenant_id=context.tenant.tenant_id,
                    template=template,
                    status=NotificationStatus.SENT,
                    message_id=earlier.provider_message_id,
                    log_id=earlier.log_id,
                    duplicate=True,
                    logged_at=earlier.created_at,
                )

        decision = evaluate_consent(context.operator.notification_consent, context.tenant.notification_opt_in)
        if isinstance(decision, Blocked):
            message = decision.describe(context.tenant.full_name)
            await self._record(context, template, NotificationStatus.BLOCKED, error_message=decision.reason.value)
            logger.info(
                "Blocked %s for bill=%s tenant=%s: %s",
                template.value,
                bill_id,
                context.tenant.tenant_id,
                decision.reason.value,
            )
            raise ConsentBlockedError(message, reason=decision.reason.value, tenant_name=context.tenant.full_name)

        try:
            rendered = await self._render(context, template)
        except OSError as exc:
            await self._record(context, template, NotificationStatus.FAILED, error_message=f"Receipt storage: {exc}")
            logger.error("Could not render %s for bill=%s", template.value, bill_id, exc_info=True)
            raise ProviderError("Receipt could not be rendered") from exc

        try:
            ack = await self._provider.send_template(context.tenant.phone, rendered)
        except ProviderUnavailableError as exc:
            row = await self._record(context, template, NotificationStatus.PENDING, error_message=exc.message)
            logger.info("Provider unavailable; %s for bill=%s queued as pending", template.value, bill_id)
            return self._result(context, template, NotificationStatus.PENDING, row)
        except ProviderError as exc:
            await self._record(context, template, NotificationStatus.FAILED, error_message=exc.message)
            logger.error("Provider rejected %s for bill=%s: %s", template.value, bill_id, exc.message)
            raise

        row = await self._record(
            context,
            template,
            NotificationStatus.SENT,
            phone=ack.recipient,
            provider_message_id=ack.message_id,
        )
        logger.info("Sent %s for bill=%s message_id=%s", template.value, bill_id, ack.message_id)
        return self._result(context, template, NotificationStatus.SENT, row)

    async def _render(self, context: BillContext, template: TemplateName) -> RenderedMessage:
        bill = context.bill
        if template == TemplateName.PAYMENT_REMINDER:
            return render_reminder(
                tenant_name=context.tenant.full_name,
                bill_month=bill.bill_month,
                due_date=bill.due_date,
                campus_name=context.campus.name,
            )
        if self._receipts is None:
            raise ValidationError("Payment confirmation requires a receipt renderer")
        receipt = await self._receipts.render_receipt(bill.bill_id)
        return render_confirmation(
            tenant_name=context.tenant.full_name,
            amount=bill.total_amount,
            bill_month=bill.bill_month,
            receipt_url=receipt.url,
        )

    async def _record(
        self,
        context: BillContext,
        template: TemplateName,
        status: NotificationStatus,
        *,
        phone: str | None = None,
        provider_message_id: str | None = None,
        error_message: str | None = None,
    ):
        row = await self._logs.append(
            operator_id=context.bill.operator_id,
            tenant_id=context.tenant.tenant_id,
            bill_id=context.bill.bill_id,
            template=template,
            status=status,
            phone=phone or context.tenant.phone,
            provider_message_id=provider_message_id,
            error_message=error_message,
        )
        await self._session.commit()
        return row

    @staticmethod
    def _result(context: BillContext, template: TemplateName, status: NotificationStatus, row) -> DispatchResult:
        return DispatchResult(
            bill_id=context.bill.bill_id,
            tenant_id=context.tenant.tenant_id,
            template=template,
            status=status,
            message_id=row.provider_message_id,
            log_id=row.log_id,
            logged_at=row.created_at,
        )


async def send_confirmation_in_background(
    session_factory: async_sessionmaker[AsyncSession],
    provider: DeliveryProvider,
    bill_id: str,
    *,
    operator_id: str | None = None,
    storage_path: str = "/var/lib/campus/receipts",
    public_base_url: str = "http://localhost:8000",
) -> DispatchResult | None:
    """Send a payment confirmation outside the request that marked the bill paid.

    Runs in its own session after the payment has been committed.  Errors
    are logged, never raised: the payment itself already succeeded.
    """
    async with session_factory() as session:
        receipts = ReceiptService(session, operator_id, storage_path, public_base_url)
        dispatcher = NotificationDispatcher(session, provider, receipts, operator_id)
        try:
            return await dispatcher.send_payment_confirmation(bill_id)
        except ConsentBlockedError as exc:
            logger.info("Confirmation for bill=%s not sent: %s", bill_id, exc.code)
        except CampusBillingError as exc:
            logger.warning("Confirmation for bill=%s failed: [%s] %s", bill_id, exc.code, exc.message)
        except SQLAlchemyError:
            await session.rollback()
            logger.error("Confirmation for bill=%s hit a storage error", bill_id, exc_info=True)
        except OSError:
            logger.error("Confirmation for bill=%s could not write its receipt", bill_id, exc_info=True)
    return None
