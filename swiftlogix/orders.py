"""
Ship-now order submission and the customer dashboard.

Submitting an order issues two backend calls: insert the order row, then ask
the backend to create the matching shipment. The second call is secondary:
its failure is logged and the order still stands.
"""

import logging
from typing import Optional

from swiftlogix.backend import Backend, ORDERS_TABLE, RPC_CREATE_SHIPMENT_FROM_ORDER
from swiftlogix.errors import BackendError, ValidationError
from swiftlogix.metrics import record_order_outcome, record_quote
from swiftlogix.quote import calculate_quote
from swiftlogix.schemas import DashboardStats, OrderConfirmation, OrderForm, ShippingOrder
from swiftlogix.utils import generate_order_number

logger = logging.getLogger(__name__)


ADDRESS_FIELDS = (
    "origin_name", "origin_address", "origin_city", "origin_country", "origin_phone", "origin_email",
    "destination_name", "destination_address", "destination_city", "destination_country",
    "destination_phone",
)

IN_TRANSIT_STATUSES = ("confirmed", "picked_up", "in_transit")


def validate_step(form: OrderForm, step: int, quoted_price: Optional[float] = None) -> list[str]:
    """
    Return the names of the fields blocking `step`; empty when the step is complete.

    Step 1 is addresses, step 2 the package, step 3 the review (needs a quote).
    """
    if step == 1:
        return [name for name in ADDRESS_FIELDS if not getattr(form, name).strip()]
    if step == 2:
        return [] if form.weight_kg is not None and form.weight_kg > 0 else ["weight_kg"]
    if step == 3:
        return [] if quoted_price else ["quoted_price"]
    raise ValueError(f"Unknown step: {step}")


def quote_for(form: OrderForm) -> float:
    return calculate_quote(
        weight_kg=form.weight_kg or 0,
        method=form.shipping_method,
        length_cm=form.length_cm,
        width_cm=form.width_cm,
        height_cm=form.height_cm,
        insurance=form.insurance,
        declared_value=form.declared_value,
    )


def order_row(form: OrderForm, order_number: str, quoted_price: float,
              session_id: str, user_id: Optional[str]) -> dict:
    return {
        "order_number": order_number,
        "origin_name": form.origin_name,
        "origin_address": form.origin_address,
        "origin_city": form.origin_city,
        "origin_country": form.origin_country,
        "origin_phone": form.origin_phone,
        "origin_email": form.origin_email,
        "destination_name": form.destination_name,
        "destination_address": form.destination_address,
        "destination_city": form.destination_city,
        "destination_country": form.destination_country,
        "destination_phone": form.destination_phone,
        "destination_email": form.destination_email or None,
        "weight_kg": form.weight_kg,
        "length_cm": form.length_cm,
        "width_cm": form.width_cm,
        "height_cm": form.height_cm,
        "package_description": form.package_description or None,
        "declared_value": form.declared_value,
        "shipping_method": form.shipping_method,
        "insurance_included": form.insurance,
        "quoted_price": quoted_price,
        "session_id": session_id,
        "user_id": user_id,
    }


class OrderService:
    def __init__(self, backend: Backend):
        self._backend = backend

    async def submit(self, form: OrderForm, session_id: str, user_id: Optional[str] = None) -> OrderConfirmation:
        """
        Validate, price and place an order, then request its shipment.

        Raises:
            ValidationError: address or package step incomplete (nothing sent)
            BackendError: the order insert failed
        """
        for step in (1, 2):
            missing = validate_step(form, step)
            if missing:
                record_order_outcome("validation_error")
                raise ValidationError(f"Missing or invalid fields: {', '.join(missing)}")

        quoted_price = quote_for(form)
        record_quote(form.shipping_method)
        order_number = generate_order_number()

        try:
            await self._backend.insert(
                ORDERS_TABLE, order_row(form, order_number, quoted_price, session_id, user_id)
            )
        except BackendError:
            logger.error(f"Order submission failed for {order_number}")
            record_order_outcome("error")
            raise

        logger.info(f"Order placed: {order_number}, price={quoted_price}")
        record_order_outcome("created")

        tracking_number = await self._create_shipment(form, order_number)
        return OrderConfirmation(
            order_number=order_number,
            quoted_price=quoted_price,
            tracking_number=tracking_number,
        )

    async def _create_shipment(self, form: OrderForm, order_number: str) -> Optional[str]:
        try:
            result = await self._backend.rpc(RPC_CREATE_SHIPMENT_FROM_ORDER, {
                "p_order_number": order_number,
                "p_origin_city": form.origin_city,
                "p_origin_country": form.origin_country,
                "p_destination_city": form.destination_city,
                "p_destination_country": form.destination_country,
                "p_sender_name": form.origin_name,
                "p_recipient_name": form.destination_name,
                "p_weight_kg": form.weight_kg,
                "p_shipping_method": form.shipping_method,
            })
        except BackendError as e:
            logger.error(f"Shipment creation error for {order_number}: {e}")
            return None
        if isinstance(result, dict):
            return result.get("tracking_number")
        return None

    async def list_user_orders(self, user_id: str, query: Optional[str] = None) -> list[ShippingOrder]:
        rows = await self._backend.select(
            ORDERS_TABLE, eq={"user_id": user_id}, order="created_at", ascending=False
        )
        return filter_orders([ShippingOrder.model_validate(row) for row in rows], query)


def filter_orders(orders: list[ShippingOrder], query: Optional[str]) -> list[ShippingOrder]:
    """Case-insensitive match on order number, destination city or origin city."""
    if not query:
        return orders
    needle = query.lower()
    return [
        order for order in orders
        if needle in order.order_number.lower()
        or needle in order.destination_city.lower()
        or needle in order.origin_city.lower()
    ]


def dashboard_stats(orders: list[ShippingOrder]) -> DashboardStats:
    return DashboardStats(
        total=len(orders),
        pending=sum(1 for order in orders if order.status == "pending"),
        in_transit=sum(1 for order in orders if order.status in IN_TRANSIT_STATUSES),
        delivered=sum(1 for order in orders if order.status == "delivered"),
    )
