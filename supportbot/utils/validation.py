"""Checkout payload validation. Collects every problem instead of stopping at the first."""
from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^\+?[\d\s\-()]{10,}$")

# Used when pydantic rejects a value before our validators run (missing key, wrong type).
FALLBACK_MESSAGES = {
    "customer_name": "Customer name is required",
    "customer_email": "Customer email is required",
    "customer_phone": "Customer phone is required",
    "delivery_address": "Delivery address is required",
    "delivery_method": "Delivery method is required",
    "total_amount": "Total amount must be a positive number",
    "delivery_price": "Delivery price must not be negative",
    "items": "Items must be an array",
    "product_id": "Product ID is required",
    "product_name": "Product name is required",
    "price": "Price must be a positive number",
    "quantity": "Quantity must be a positive number",
}


def _required(value: str, message: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError(message)
    return value


class OrderItemPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    product_id: str
    product_name: str
    price: float
    quantity: int

    @field_validator("product_id")
    @classmethod
    def _product_id(cls, v: str) -> str:
        return _required(v, FALLBACK_MESSAGES["product_id"])

    @field_validator("product_name")
    @classmethod
    def _product_name(cls, v: str) -> str:
        return _required(v, FALLBACK_MESSAGES["product_name"])

    @field_validator("price")
    @classmethod
    def _price(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(FALLBACK_MESSAGES["price"])
        return v

    @field_validator("quantity")
    @classmethod
    def _quantity(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(FALLBACK_MESSAGES["quantity"])
        return v


class OrderPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    customer_name: str
    customer_email: str
    customer_phone: str
    delivery_address: str
    delivery_method: str
    total_amount: float
    delivery_price: float = 0.0
    items: list[OrderItemPayload]

    @field_validator("customer_name", "delivery_address", "delivery_method")
    @classmethod
    def _non_blank(cls, v: str, info) -> str:
        return _required(v, FALLBACK_MESSAGES[info.field_name])

    @field_validator("customer_email")
    @classmethod
    def _email(cls, v: str) -> str:
        v = _required(v, FALLBACK_MESSAGES["customer_email"])
        if not EMAIL_RE.match(v):
            raise ValueError("Invalid email format")
        return v

    @field_validator("customer_phone")
    @classmethod
    def _phone(cls, v: str) -> str:
        v = _required(v, FALLBACK_MESSAGES["customer_phone"])
        if not PHONE_RE.match(v):
            raise ValueError("Invalid phone number format")
        return v

    @field_validator("total_amount")
    @classmethod
    def _total(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(FALLBACK_MESSAGES["total_amount"])
        return v

    @field_validator("delivery_price")
    @classmethod
    def _delivery_price(cls, v: float) -> float:
        if v < 0:
            raise ValueError(FALLBACK_MESSAGES["delivery_price"])
        return v

    @field_validator("items")
    @classmethod
    def _items(cls, v: list[OrderItemPayload]) -> list[OrderItemPayload]:
        if not v:
            raise ValueError("At least one item is required")
        return v


def _field_path(loc: tuple) -> str:
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path or "body"


def _error_message(err: dict) -> str:
    if err.get("type") == "value_error":
        return str(err.get("ctx", {}).get("error") or err.get("msg"))
    names = [p for p in err.get("loc", ()) if isinstance(p, str)]
    if names and names[-1] in FALLBACK_MESSAGES:
        return FALLBACK_MESSAGES[names[-1]]
    return str(err.get("msg") or "Invalid value")


def validate_order_payload(data: Any) -> list[dict]:
    """
    Validate a checkout payload.

    Returns:
        A list of `{"field", "message"}` dicts; empty when the payload is valid.
    """
    if not isinstance(data, dict):
        return [{"field": "body", "message": "Order payload must be an object"}]
    try:
        OrderPayload.model_validate(data)
    except ValidationError as e:
        return [{"field": _field_path(err["loc"]), "message": _error_message(err)} for err in e.errors()]
    return []
