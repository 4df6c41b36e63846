"""Cart snapshot schemas consumed by the promotion engine."""

from __future__ import annotations

from decimal import Decimal
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field

from src.models.money import ZERO, Money

PersonType = Literal["FISICA", "JURIDICA"]


class CartItem(BaseModel):
    """A single cart line."""

    product_id: str = Field(..., validation_alias=AliasChoices("product_id", "productId"))
    variant_id: str | None = Field(
        None,
        validation_alias=AliasChoices("variant_id", "variantId"),
    )
    sku: str | None = None
    unit_price: Money = Field(
        ...,
        ge=0,
        validation_alias=AliasChoices("unit_price", "unitPrice", "price"),
    )
    quantity: int = Field(..., ge=1)
    category_ids: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("category_ids", "categoryIds", "categories"),
    )
    brand_id: str | None = Field(
        None,
        validation_alias=AliasChoices("brand_id", "brandId", "brand"),
    )

    @property
    def line_key(self) -> str:
        """Identity of the line: the variant when known, otherwise the product."""
        return self.variant_id or self.product_id

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class CustomerContext(BaseModel):
    """What is known about the shopper at evaluation time."""

    customer_id: str | None = None
    first_purchase: bool | None = None
    zip_code: str | None = Field(None, validation_alias=AliasChoices("zip_code", "cep"))
    state: str | None = None
    person_type: PersonType | None = None

    @property
    def is_guest(self) -> bool:
        return not self.customer_id


class CartSnapshot(BaseModel):
    """Immutable view of a cart at one point in time."""

    items: list[CartItem] = Field(default_factory=list)
    shipping_cost: Money = Field(ZERO, ge=0)
    customer: CustomerContext = Field(default_factory=CustomerContext)

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def subtotal(self) -> Decimal:
        return sum((item.line_total for item in self.items), ZERO)

    @property
    def total(self) -> Decimal:
        return self.subtotal + self.shipping_cost

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def unique_variant_count(self) -> int:
        return len({item.line_key for item in self.items})
