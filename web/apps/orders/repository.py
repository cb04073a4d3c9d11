"""Repository layer for persisting orders.

This module maps between the checkout domain dataclasses and the Django ORM
models. It keeps a thin interface so the processor is not coupled to ORM
details. ``get(..., lock=True)`` must be called inside
``transaction.atomic()``: it takes a row lock on the order so racing
payment callbacks for the same order are serialized.
"""

import uuid
from dataclasses import asdict
from typing import Iterable, Optional

from django.core.exceptions import ValidationError

from .domain import (
    Address,
    Order,
    OrderItem,
    OrderModifier,
    OrderStatus,
    Payment,
    PaymentStatus,
)
from .models import OrderItemModel, OrderModel, OrderModifierModel, PaymentModel


def _address(data: dict) -> Address:
    known = Address.__dataclass_fields__.keys()
    return Address(**{k: v for k, v in (data or {}).items() if k in known})


def _to_domain(obj: OrderModel) -> Order:
    return Order(
        id=obj.id,
        reference=obj.reference,
        status=OrderStatus(obj.status),
        placed=obj.placed,
        paid=obj.paid,
        receipt_sent=obj.receipt_sent,
        locale=obj.locale,
        ip_address=obj.ip_address,
        member_id=obj.member_id,
        first_name=obj.first_name,
        surname=obj.surname,
        email=obj.email,
        company=obj.company,
        billing_address=_address(obj.billing_address),
        shipping_address=_address(obj.shipping_address),
        currency=obj.currency,
        items=[
            OrderItem(
                id=i.id,
                sku=i.sku,
                title=i.title,
                quantity=i.quantity,
                unit_price_cents=i.unit_price_cents,
                calculated_total_cents=i.calculated_total_cents,
                placed=i.placed,
                paid_for=i.paid_for,
            )
            for i in obj.items.all()
        ],
        modifiers=[
            OrderModifier(
                id=m.id,
                name=m.name,
                amount_cents=m.amount_cents,
                required=m.required,
                required_before_place=m.required_before_place,
                sort=m.sort,
                placed=m.placed,
            )
            for m in obj.modifiers.all()
        ],
        payments=[
            Payment(
                id=p.id,
                gateway=p.gateway,
                amount_cents=p.amount_cents,
                currency=p.currency,
                status=PaymentStatus(p.status),
                reference=p.reference or None,
                message=p.message,
                created_at=p.created_at,
            )
            for p in obj.payments.all()
        ],
    )


class OrderRepository:
    """Repository that persists Order domain objects using Django ORM."""

    def get(self, order_id, lock: bool = False) -> Optional[Order]:
        """Load an order with its items, modifiers and payments.

        Args:
            order_id: Order UUID (or its string form).
            lock: Take a ``SELECT ... FOR UPDATE`` lock on the order row.

        Returns:
            The domain order, or None if it does not exist.
        """
        qs = OrderModel.objects.all()
        if lock:
            qs = qs.select_for_update()
        try:
            obj = qs.get(id=order_id)
        except (OrderModel.DoesNotExist, ValidationError):
            return None
        return _to_domain(obj)

    def get_for_payment(self, payment_id, lock: bool = False) -> Optional[Order]:
        order_id = (
            PaymentModel.objects.filter(id=payment_id).values_list("order_id", flat=True).first()
        )
        if order_id is None:
            return None
        return self.get(order_id, lock=lock)

    def create_cart(
        self,
        order: Order,
        member_id: Optional[int] = None,
    ) -> Order:
        """Persist a new cart with its items and modifiers.

        Returns:
            The stored order, reloaded so it carries its reference.
        """
        obj = OrderModel.objects.create(
            id=order.id,
            status=OrderModel.Status.CART,
            locale=order.locale,
            member_id=member_id,
            first_name=order.first_name,
            surname=order.surname,
            email=order.email,
            company=order.company,
            billing_address=asdict(order.billing_address),
            shipping_address=asdict(order.shipping_address),
            currency=order.currency,
            total_cents=order.grand_total(),
        )
        OrderItemModel.objects.bulk_create(
            OrderItemModel(
                order=obj,
                sku=i.sku,
                title=i.title,
                quantity=i.quantity,
                unit_price_cents=i.unit_price_cents,
            )
            for i in order.items
        )
        OrderModifierModel.objects.bulk_create(
            OrderModifierModel(
                order=obj,
                name=m.name,
                amount_cents=m.amount_cents,
                required=m.required,
                required_before_place=m.required_before_place,
                sort=m.sort,
            )
            for m in order.modifiers
        )
        return self.get(obj.id)

    def save(self, order: Order) -> None:
        OrderModel.objects.filter(id=order.id).update(
            status=order.status.value,
            placed=order.placed,
            paid=order.paid,
            receipt_sent=order.receipt_sent,
            locale=order.locale,
            ip_address=order.ip_address,
            member_id=order.member_id,
            total_cents=order.grand_total(),
        )

    def save_item(self, order: Order, item: OrderItem) -> None:
        OrderItemModel.objects.filter(id=item.id, order_id=order.id).update(
            quantity=item.quantity,
            unit_price_cents=item.unit_price_cents,
            calculated_total_cents=item.calculated_total_cents,
            placed=item.placed,
            paid_for=item.paid_for,
        )

    def save_modifier(self, order: Order, modifier: OrderModifier) -> None:
        OrderModifierModel.objects.filter(id=modifier.id, order_id=order.id).update(
            amount_cents=modifier.amount_cents,
            placed=modifier.placed,
        )

    def save_payment(self, order: Order, payment: Payment) -> None:
        PaymentModel.objects.update_or_create(
            id=payment.id,
            defaults={
                "order_id": order.id,
                "gateway": payment.gateway,
                "amount_cents": payment.amount_cents,
                "currency": payment.currency,
                "status": payment.status.value,
                "reference": payment.reference or "",
                "message": payment.message,
                "created_at": payment.created_at,
            },
        )

    def find_payment(self, order: Order, payment_id) -> Optional[Payment]:
        try:
            wanted = uuid.UUID(str(payment_id))
        except ValueError:
            return None
        return next((p for p in order.payments if p.id == wanted), None)

    def recent(self) -> Iterable[OrderModel]:
        return OrderModel.objects.order_by("-created_at", "-internal_id")
