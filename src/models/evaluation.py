"""Schemas describing the outcome of a promotion evaluation."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, Field

from src.models.cart import CartItem, CartSnapshot, CustomerContext, PersonType
from src.models.money import ZERO, Money
from src.models.promotion import Promotion


class SkipReason(StrEnum):
    """Why a promotion did not contribute to the result."""

    INACTIVE = "INACTIVE"
    NOT_STARTED = "NOT_STARTED"
    EXPIRED = "EXPIRED"
    INVALID_COUPON = "INVALID_COUPON"
    USAGE_LIMIT_REACHED = "USAGE_LIMIT_REACHED"
    CONDITIONS_NOT_MET = "CONDITIONS_NOT_MET"
    NOT_COMBINABLE = "NOT_COMBINABLE"


class CouponStatus(StrEnum):
    APPLIED = "APPLIED"
    INVALID_COUPON = "INVALID_COUPON"
    EXPIRED = "EXPIRED"
    USAGE_LIMIT_REACHED = "USAGE_LIMIT_REACHED"
    CONDITIONS_NOT_MET = "CONDITIONS_NOT_MET"
    NOT_COMBINABLE = "NOT_COMBINABLE"


class PromotionCategory(StrEnum):
    PRODUCT = "product"
    SHIPPING = "shipping"
    MIXED = "mixed"
    OTHER = "other"


class DiscountDisplay(BaseModel):
    """Hint for how the UI should present a promotion's discount."""

    kind: Literal["percent", "currency", "none"] = "none"
    percent: Money | None = None
    amount: Money | None = None


class PromotionDetail(BaseModel):
    id: str
    name: str
    description: str | None = None
    discount: Money = ZERO
    product_discount: Money = ZERO
    shipping_discount: Money = ZERO
    type: PromotionCategory = PromotionCategory.OTHER
    display: DiscountDisplay = Field(default_factory=DiscountDisplay)


class FreeGift(BaseModel):
    promotion_id: str
    variant_id: str | None = None
    product_id: str | None = None
    quantity: int
    is_variant: bool


class BadgeInfo(BaseModel):
    promotion_id: str
    id: str | None = None
    title: str
    image_url: str | None = None


class SkippedPromotion(BaseModel):
    id: str
    name: str
    reason: SkipReason


class EvaluationResult(BaseModel):
    """Discount breakdown for one cart snapshot."""

    discount_total: Money = ZERO
    product_discount: Money = ZERO
    shipping_discount: Money = ZERO
    promotions: list[PromotionDetail] = Field(default_factory=list)
    free_gifts: list[FreeGift] = Field(default_factory=list)
    badge_map: dict[str, BadgeInfo] = Field(default_factory=dict)
    descriptions: list[str] = Field(default_factory=list)
    skipped_promotions: list[SkippedPromotion] = Field(default_factory=list)
    coupon_code: str | None = None
    coupon_status: CouponStatus | None = None


class CouponValidation(BaseModel):
    """Response returned by POST /coupon/validate."""

    code: str
    valid: bool
    status: CouponStatus
    promotion_ids: list[str] = Field(default_factory=list)


class PromotionApplyRequest(BaseModel):
    """Checkout payload evaluated against the stored promotion catalog."""

    cart_items: list[CartItem] = Field(default_factory=list)
    customer_id: str | None = None
    first_purchase: bool | None = None
    cep: str | None = None
    state: str | None = None
    person_type: PersonType | None = None
    coupon_code: str | None = None
    shipping_cost: Money = Field(ZERO, ge=0)

    def to_snapshot(self) -> CartSnapshot:
        return CartSnapshot(
            items=self.cart_items,
            shipping_cost=self.shipping_cost,
            customer=CustomerContext(
                customer_id=self.customer_id,
                first_purchase=self.first_purchase,
                zip_code=self.cep,
                state=self.state,
                person_type=self.person_type,
            ),
        )


class CouponValidateRequest(PromotionApplyRequest):
    coupon: str = Field(..., min_length=1)


class PromotionEvaluateRequest(BaseModel):
    """Evaluate a cart against an inline promotion catalog."""

    cart: CartSnapshot
    promotions: list[Promotion] = Field(default_factory=list)
    coupon_code: str | None = None
    now: datetime | None = None


class ProductPromotions(BaseModel):
    """Promotions relevant to a product page."""

    product_id: str
    product_promotions: list[Promotion] = Field(default_factory=list)
    variant_promotions: dict[str, list[Promotion]] = Field(default_factory=dict)
    variant_main_promotions: dict[str, Promotion | None] = Field(default_factory=dict)
