"""
SQL-backed ``OrderStore``.

``save_payment`` is an upsert keyed by order id and may run concurrently
for the same order from the poll and webhook paths. Writing the same final
payment twice leaves the same row; a stale read never downgrades a
payment already stored as succeeded.
"""
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from kassa_checkout.core.models import Payment, PaymentStatus
from kassa_checkout.database.connection import Database
from kassa_checkout.database.models import OrderPayment

logger = structlog.get_logger(__name__)


class SqlOrderStore:
    """Order payment persistence over SQLAlchemy async sessions."""

    def __init__(self, database: Database):
        self.database = database

    async def get_payment_id_for_order(self, order_id: str) -> Optional[str]:
        """
        Look up the gateway payment id stored for an order.

        Args:
            order_id: Shop order id

        Returns:
            Optional[str]: Payment id, or None if the order has no payment yet
        """
        async with self.database.session() as session:
            result = await session.execute(
                select(OrderPayment.payment_id).where(OrderPayment.order_id == order_id)
            )
            return result.scalar_one_or_none()

    async def get_order_payment(self, order_id: str) -> Optional[OrderPayment]:
        async with self.database.session() as session:
            return await session.get(OrderPayment, order_id)

    async def save_payment(self, order_id: str, payment: Payment) -> None:
        """
        Insert or update the order's payment.

        Args:
            order_id: Shop order id
            payment: Payment as last returned by the gateway
        """
        try:
            async with self.database.session() as session:
                await self._upsert(session, order_id, payment)
        except IntegrityError:
            # lost an insert race for the same order: the row exists now
            logger.debug("order_payment_insert_race", order_id=order_id, payment_id=payment.id)
            async with self.database.session() as session:
                await self._upsert(session, order_id, payment)

        logger.info(
            "order_payment_saved",
            order_id=order_id,
            payment_id=payment.id,
            status=payment.status,
        )

    @staticmethod
    async def _upsert(session: AsyncSession, order_id: str, payment: Payment) -> None:
        row = await session.get(OrderPayment, order_id)
        if row is None:
            session.add(
                OrderPayment(
                    order_id=order_id,
                    payment_id=payment.id,
                    status=payment.status,
                    paid=payment.paid,
                    amount=payment.amount.value,
                    currency=payment.amount.currency,
                    payload=payment.to_api(),
                )
            )
            await session.flush()
            return

        if (
            row.payment_id == payment.id
            and row.status == PaymentStatus.SUCCEEDED.value
            and not payment.has_status(PaymentStatus.SUCCEEDED)
        ):
            logger.debug(
                "order_payment_stale_update_ignored",
                order_id=order_id,
                payment_id=payment.id,
                status=payment.status,
            )
            return

        row.payment_id = payment.id
        row.status = payment.status
        row.paid = payment.paid
        row.amount = payment.amount.value
        row.currency = payment.amount.currency
        row.payload = payment.to_api()
