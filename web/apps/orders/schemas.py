"""Pydantic schemas for orders.

This module exposes the request/validation schemas used by the orders API:
cart creation, payment requests, and the read models returned to clients.
"""

import re
import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


SKU_RE = re.compile(r"^[A-Z0-9_-]{3,32}$")
CURRENCIES = {"EUR", "USD", "GBP"}


class OrderItemIn(BaseModel):
    """Input schema for a single cart line item.

    Attributes:
        sku: Product SKU. Will be normalized to uppercase and validated
            against a regex (3-32 chars, uppercase letters, digits, '_' and '-').
        quantity: Positive integer indicating units requested.
        unit_price_cents: Unit price in minor units.
    """

    sku: str = Field(min_length=3, max_length=32)
    quantity: int = Field(gt=0)
    unit_price_cents: int = Field(ge=0)
    title: str = Field(default="", max_length=200)

    @field_validator("sku")
    @classmethod
    def validate_sku(cls, v: str) -> str:
        """Validate and normalize SKU to uppercase.

        Raises:
            ValueError: When the SKU does not match the expected pattern.
        """
        v2 = v.upper()
        if not SKU_RE.match(v2):
            raise ValueError("Invalid SKU format")
        return v2


class ModifierIn(BaseModel):
    """A charge on the cart. ``amount_cents`` may be null while undetermined."""

    name: str = Field(min_length=1, max_length=100)
    amount_cents: Optional[int] = None
    required: bool = False
    required_before_place: bool = False
    sort: int = 0


class AddressIn(BaseModel):
    address: str = ""
    address_line2: str = ""
    city: str = ""
    postal_code: str = ""
    state: str = ""
    country: str = Field(default="", max_length=2)
    phone: str = ""


class CreateCartDTO(BaseModel):
    """Schema for creating a cart.

    Attributes:
        items: List of `OrderItemIn` items.
        currency: 3-letter ISO currency code. Normalized to uppercase and
            validated against a small supported set.
    """

    items: list[OrderItemIn]
    modifiers: list[ModifierIn] = []
    currency: str = Field(default="EUR", min_length=3, max_length=3)
    locale: str = Field(default="", max_length=10)
    first_name: str = Field(default="", max_length=100)
    surname: str = Field(default="", max_length=100)
    email: str = Field(default="", max_length=254)
    company: str = Field(default="", max_length=100)
    billing_address: AddressIn = AddressIn()
    shipping_address: AddressIn = AddressIn()

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Validate and normalize currency code.

        Raises:
            ValueError: When the currency is not in the supported set.
        """
        v2 = v.upper()
        if v2 not in CURRENCIES:
            raise ValueError("Unsupported currency")
        return v2


class MakePaymentDTO(BaseModel):
    """Schema for starting a payment on an order.

    Attributes:
        gateway: Configured gateway name, e.g. ``Manual`` or ``Sandbox``.
        data: Gateway specific fields (card details, tokens, ...).
        success_url: Optional return URL after an offsite payment.
        cancel_url: Optional return URL after a cancelled offsite payment.
    """

    gateway: str = Field(min_length=1, max_length=50)
    data: dict = {}
    success_url: Optional[str] = Field(default=None, max_length=500)
    cancel_url: Optional[str] = Field(default=None, max_length=500)


class PaymentReadDTO(BaseModel):
    id: uuid.UUID
    gateway: str
    status: str
    amount_cents: int
    currency: str
    reference: Optional[str] = None


class OrderReadDTO(BaseModel):
    """Read model returned by the order endpoints."""

    id: uuid.UUID
    reference: str
    status: str
    amount_cents: int
    outstanding_cents: Optional[int] = None
    currency: str
    placed: Optional[datetime] = None
    paid: Optional[datetime] = None
    payments: Optional[list[PaymentReadDTO]] = None
