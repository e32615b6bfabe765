"""Order storage for lofireads."""

from __future__ import annotations

import logging
import random
from typing import Iterable

from .errors import InvalidStatusTransitionError
from .models import (
    ORDER_TRANSITIONS,
    Address,
    CartLine,
    Order,
    OrderStatus,
    OrderTotals,
    PaymentMethod,
    _utc_in,
    _utc_now,
    generate_order_id,
    parse_timestamp,
)
from .storage import ORDERS_KEY, KeyValueStore, parse_records

logger = logging.getLogger(__name__)

FREE_SHIPPING_THRESHOLD = 50.00
FLAT_SHIPPING_FEE = 5.99
TAX_RATE = 0.08

# Estimated delivery window in days from order creation
DELIVERY_DAYS_MIN = 7
DELIVERY_DAYS_MAX = 10


def calculate_totals(lines: Iterable[CartLine]) -> OrderTotals:
    """
    Price a set of cart lines.

    Shipping is free from FREE_SHIPPING_THRESHOLD upwards, otherwise a
    flat fee. Tax applies to subtotal plus shipping.
    """
    subtotal = sum(line.book.price * line.quantity for line in lines)
    shipping = 0.0 if subtotal >= FREE_SHIPPING_THRESHOLD else FLAT_SHIPPING_FEE
    tax = (subtotal + shipping) * TAX_RATE
    return OrderTotals(
        subtotal=subtotal,
        shipping=shipping,
        tax=tax,
        total=subtotal + shipping + tax,
    )


def _newest_first(orders: list[Order]) -> list[Order]:
    return sorted(orders, key=lambda o: parse_timestamp(o.created_at), reverse=True)


class OrderStore:
    """Manages persisted orders and their status lifecycle."""

    def __init__(self, kv: KeyValueStore | None = None, enforce_transitions: bool = False):
        """
        Initialize OrderStore.

        Args:
            kv: Key-value adapter (defaults to the shared data directory).
            enforce_transitions: If True, reject status changes that skip
                or reverse the lifecycle, or leave a terminal state.
                By default any status may be set from any other.
        """
        self.kv = kv or KeyValueStore()
        self.enforce_transitions = enforce_transitions

    def _load(self) -> list[Order]:
        return parse_records(ORDERS_KEY, self.kv.get(ORDERS_KEY, []), Order.from_dict)

    def create(
        self,
        user_id: str,
        lines: Iterable[CartLine],
        shipping_address: Address,
        payment_method: PaymentMethod,
        billing_address: Address | None = None,
    ) -> Order:
        """Create an order from a snapshot of cart lines."""
        self.kv.delay(500)
        items = [CartLine(book=line.book, quantity=line.quantity) for line in lines]
        totals = calculate_totals(items)
        now = _utc_now()

        order = Order(
            id=generate_order_id(),
            user_id=user_id,
            items=items,
            subtotal=totals.subtotal,
            shipping=totals.shipping,
            tax=totals.tax,
            total=totals.total,
            shipping_address=shipping_address,
            billing_address=billing_address,
            payment_method=payment_method,
            status=OrderStatus.PROCESSING,
            created_at=now,
            updated_at=now,
            estimated_delivery=_utc_in(random.randint(DELIVERY_DAYS_MIN, DELIVERY_DAYS_MAX)),
        )

        with self.kv.transaction(ORDERS_KEY, []) as txn:
            txn.value.append(order.to_dict())

        logger.info("Created order %s for %s (total %.2f)", order.id, user_id, order.total)
        return order

    def get(self, order_id: str) -> Order | None:
        self.kv.delay(200)
        for order in self._load():
            if order.id == order_id:
                return order
        return None

    def list_for_user(self, user_id: str) -> list[Order]:
        """List a user's orders, newest first."""
        self.kv.delay(300)
        return _newest_first([o for o in self._load() if o.user_id == user_id])

    def list_all(self) -> list[Order]:
        """List every order, newest first."""
        self.kv.delay(300)
        return _newest_first(self._load())

    def update_status(
        self,
        order_id: str,
        status: OrderStatus | str,
        tracking_number: str | None = None,
    ) -> Order | None:
        """
        Change an order's status and optionally its tracking number.

        Returns:
            The updated order, or None if no order has that ID.

        Raises:
            InvalidStatusTransitionError: If enforce_transitions is on and
                the move is not allowed.
        """
        self.kv.delay(200)
        new_status = OrderStatus(status)

        with self.kv.transaction(ORDERS_KEY, []) as txn:
            for data in txn.value:
                if not isinstance(data, dict) or data.get("id") != order_id:
                    continue

                current = OrderStatus(data.get("status", OrderStatus.PROCESSING.value))
                if (
                    self.enforce_transitions
                    and new_status != current
                    and new_status not in ORDER_TRANSITIONS[current]
                ):
                    raise InvalidStatusTransitionError(order_id, current.value, new_status.value)

                data["status"] = new_status.value
                data["updated_at"] = _utc_now()
                if tracking_number:
                    data["tracking_number"] = tracking_number
                logger.info("Order %s: %s -> %s", order_id, current.value, new_status.value)
                return Order.from_dict(data)

        return None

    def cancel(self, order_id: str) -> Order | None:
        return self.update_status(order_id, OrderStatus.CANCELLED)
