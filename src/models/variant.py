"""Schemas used by the variant selection API."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field

from src.models.money import Money
from src.models.product import Product, Variant


class ResolutionStatus(StrEnum):
    """Outcome of matching a selection against a product's variants."""

    RESOLVED = "RESOLVED"
    INCOMPLETE = "INCOMPLETE"
    NO_MATCH = "NO_MATCH"
    AMBIGUOUS = "AMBIGUOUS"


class PriceView(BaseModel):
    """Price and stock currently shown for a product or its resolved variant."""

    price_per: Money | None = None
    price_of: Money | None = None
    has_discount: bool = False
    discount_percent: int = 0
    installments: int = 1
    installment_value: Money | None = None
    stock: int = 0


class VariantStateRequest(BaseModel):
    """Incoming payload for POST /variants/state."""

    product: Product
    selection: dict[str, str] = Field(default_factory=dict)
    manual_image: str | None = Field(
        None,
        description="Image explicitly picked by the shopper (thumbnail click)",
    )
    quantity: int = Field(1, ge=1)


class VariantInitialRequest(BaseModel):
    """Incoming payload for POST /variants/initial."""

    product: Product


class VariantSelectRequest(BaseModel):
    """Incoming payload for POST /variants/select."""

    product: Product
    selection: dict[str, str] = Field(default_factory=dict)
    key: str = Field(..., min_length=1)
    value: str | None = Field(
        None,
        description="Value to select; null clears the attribute",
    )
    quantity: int = Field(1, ge=1)


class VariantState(BaseModel):
    """Everything the product view needs after a selection change."""

    attribute_index: dict[str, list[str]]
    available_values: dict[str, list[str]]
    selection: dict[str, str]
    complete: bool
    status: ResolutionStatus
    variant: Variant | None = None
    display_image: str
    thumbnails: list[str] = Field(default_factory=list)
    pricing: PriceView
    quantity: int = Field(1, description="Requested quantity kept between 1 and the stock")
    can_add_to_cart: bool
