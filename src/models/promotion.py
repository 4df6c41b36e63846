"""Promotion catalog schemas: conditions, actions, displays and badges.

Conditions and actions are tagged unions keyed by ``type``. The storefront API
historically sent parameters as loosely-typed blobs (``value`` / ``params``,
sometimes JSON-encoded strings with camelCase id lists); those shapes are
flattened into the typed fields before validation.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    Field,
    field_validator,
    model_validator,
)

from src.models.money import Money


class ConditionType(StrEnum):
    FIRST_ORDER = "FIRST_ORDER"
    CART_ITEM_COUNT = "CART_ITEM_COUNT"
    UNIQUE_VARIANT_COUNT = "UNIQUE_VARIANT_COUNT"
    CATEGORY = "CATEGORY"
    ZIP_CODE = "ZIP_CODE"
    PRODUCT_CODE = "PRODUCT_CODE"
    VARIANT_CODE = "VARIANT_CODE"
    STATE = "STATE"
    CATEGORY_ITEM_COUNT = "CATEGORY_ITEM_COUNT"
    CATEGORY_VARIANT_COUNT = "CATEGORY_VARIANT_COUNT"
    CATEGORY_VALUE = "CATEGORY_VALUE"
    BRAND_VALUE = "BRAND_VALUE"
    VARIANT_ITEM_COUNT = "VARIANT_ITEM_COUNT"
    PRODUCT_ITEM_COUNT = "PRODUCT_ITEM_COUNT"
    PERSON_TYPE = "PERSON_TYPE"
    USER = "USER"
    SUBTOTAL_VALUE = "SUBTOTAL_VALUE"
    TOTAL_VALUE = "TOTAL_VALUE"


class Operator(StrEnum):
    EQUAL = "EQUAL"
    NOT_EQUAL = "NOT_EQUAL"
    GREATER = "GREATER"
    GREATER_EQUAL = "GREATER_EQUAL"
    LESS = "LESS"
    LESS_EQUAL = "LESS_EQUAL"
    CONTAINS = "CONTAINS"
    NOT_CONTAINS = "NOT_CONTAINS"


class ActionType(StrEnum):
    FIXED_DISCOUNT_BY_QTY = "FIXED_DISCOUNT_BY_QTY"
    FIXED_DISCOUNT_VARIANT = "FIXED_DISCOUNT_VARIANT"
    FIXED_DISCOUNT_PRODUCT = "FIXED_DISCOUNT_PRODUCT"
    FREE_VARIANT_ITEM = "FREE_VARIANT_ITEM"
    FREE_PRODUCT_ITEM = "FREE_PRODUCT_ITEM"
    PERCENT_DISCOUNT_CATEGORY = "PERCENT_DISCOUNT_CATEGORY"
    PERCENT_DISCOUNT_VARIANT = "PERCENT_DISCOUNT_VARIANT"
    PERCENT_DISCOUNT_PRODUCT = "PERCENT_DISCOUNT_PRODUCT"
    PERCENT_DISCOUNT_BRAND = "PERCENT_DISCOUNT_BRAND"
    PERCENT_DISCOUNT_QTY_PRODUCT = "PERCENT_DISCOUNT_QTY_PRODUCT"
    PERCENT_DISCOUNT_EXTREME = "PERCENT_DISCOUNT_EXTREME"
    PERCENT_DISCOUNT_SHIPPING = "PERCENT_DISCOUNT_SHIPPING"
    PERCENT_DISCOUNT_SUBTOTAL = "PERCENT_DISCOUNT_SUBTOTAL"
    PERCENT_DISCOUNT_TOTAL_BEFORE = "PERCENT_DISCOUNT_TOTAL_BEFORE"
    PERCENT_DISCOUNT_PER_PRODUCT = "PERCENT_DISCOUNT_PER_PRODUCT"
    FIXED_DISCOUNT_BRAND = "FIXED_DISCOUNT_BRAND"
    FIXED_DISCOUNT_SHIPPING = "FIXED_DISCOUNT_SHIPPING"
    FIXED_DISCOUNT_SUBTOTAL = "FIXED_DISCOUNT_SUBTOTAL"
    FIXED_DISCOUNT_TOTAL_BEFORE = "FIXED_DISCOUNT_TOTAL_BEFORE"
    FIXED_DISCOUNT_PER_PRODUCT = "FIXED_DISCOUNT_PER_PRODUCT"
    MAX_SHIPPING_DISCOUNT = "MAX_SHIPPING_DISCOUNT"
    FIXED_VARIANT_DISCOUNT = "FIXED_VARIANT_DISCOUNT"
    FIXED_PRODUCT_DISCOUNT = "FIXED_PRODUCT_DISCOUNT"
    PERCENT_CATEGORY = "PERCENT_CATEGORY"
    PERCENT_VARIANT = "PERCENT_VARIANT"
    PERCENT_PRODUCT = "PERCENT_PRODUCT"
    PERCENT_BRAND_ITEMS = "PERCENT_BRAND_ITEMS"
    PERCENT_ITEM_COUNT = "PERCENT_ITEM_COUNT"
    PERCENT_EXTREME_ITEM = "PERCENT_EXTREME_ITEM"
    PERCENT_SHIPPING = "PERCENT_SHIPPING"
    PERCENT_SUBTOTAL = "PERCENT_SUBTOTAL"
    PERCENT_TOTAL_NO_SHIPPING = "PERCENT_TOTAL_NO_SHIPPING"
    PERCENT_TOTAL_PER_PRODUCT = "PERCENT_TOTAL_PER_PRODUCT"
    FIXED_SHIPPING = "FIXED_SHIPPING"
    FIXED_SUBTOTAL = "FIXED_SUBTOTAL"
    FIXED_TOTAL_NO_SHIPPING = "FIXED_TOTAL_NO_SHIPPING"
    FIXED_BRAND_ITEMS = "FIXED_BRAND_ITEMS"
    FIXED_TOTAL_PER_PRODUCT = "FIXED_TOTAL_PER_PRODUCT"


class DisplayType(StrEnum):
    SPOT = "SPOT"
    PRODUCT_PAGE = "PRODUCT_PAGE"


ItemScope = Literal["product", "variant", "category", "brand", "all"]

_ID_LIST_ALIASES = AliasChoices(
    "target_ids",
    "productIds",
    "variantIds",
    "categoryIds",
    "brandIds",
)


def _parse_blob(raw: Any) -> Any:
    """Decode JSON-encoded objects and arrays; scalars are left as they are."""

    if isinstance(raw, str) and raw.lstrip().startswith(("{", "[")):
        try:
            return json.loads(raw)
        except ValueError:
            return raw
    return raw


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------


class _ConditionBase(BaseModel):
    operator: Operator = Operator.EQUAL

    @model_validator(mode="before")
    @classmethod
    def _flatten_value_blob(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "value" not in data:
            return data
        value = _parse_blob(data["value"])
        flattened = {k: v for k, v in data.items() if k != "value"}
        if value is None:
            return flattened
        if isinstance(value, dict):
            flattened.update(value)
        elif isinstance(value, list):
            flattened.setdefault("values", value)
        elif isinstance(value, str) and "values" in cls.model_fields:
            flattened.setdefault("values", [value])
        else:
            flattened["value"] = value
        return flattened


class FirstOrderCondition(_ConditionBase):
    """Passes when the order is (or is not) the customer's first purchase."""

    type: Literal["FIRST_ORDER"]
    value: bool = True


class CountCondition(_ConditionBase):
    type: Literal["CART_ITEM_COUNT", "UNIQUE_VARIANT_COUNT"]
    value: int = Field(..., ge=0)


class ValueCondition(_ConditionBase):
    type: Literal["SUBTOTAL_VALUE", "TOTAL_VALUE"]
    value: Money = Field(..., ge=0)


class MembershipCondition(_ConditionBase):
    """Set membership test against cart or customer attributes."""

    type: Literal[
        "CATEGORY",
        "ZIP_CODE",
        "PRODUCT_CODE",
        "VARIANT_CODE",
        "STATE",
        "PERSON_TYPE",
        "USER",
    ]
    values: list[str] = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices(
            "values",
            "categoryIds",
            "zipCodes",
            "productIds",
            "variantIds",
            "states",
            "personTypes",
            "userIds",
        ),
    )


class ScopedCountCondition(_ConditionBase):
    type: Literal[
        "CATEGORY_ITEM_COUNT",
        "CATEGORY_VARIANT_COUNT",
        "VARIANT_ITEM_COUNT",
        "PRODUCT_ITEM_COUNT",
    ]
    target_ids: list[str] = Field(..., min_length=1, validation_alias=_ID_LIST_ALIASES)
    value: int = Field(..., ge=0)


class ScopedValueCondition(_ConditionBase):
    type: Literal["CATEGORY_VALUE", "BRAND_VALUE"]
    target_ids: list[str] = Field(..., min_length=1, validation_alias=_ID_LIST_ALIASES)
    value: Money = Field(..., ge=0)


Condition = Annotated[
    FirstOrderCondition
    | CountCondition
    | ValueCondition
    | MembershipCondition
    | ScopedCountCondition
    | ScopedValueCondition,
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


def _flatten_params(data: Any) -> Any:
    if not isinstance(data, dict) or "params" not in data:
        return data
    params = _parse_blob(data["params"])
    flattened = {k: v for k, v in data.items() if k != "params"}
    if isinstance(params, dict):
        flattened = {**params, **flattened}
    return flattened


class _ActionBase(BaseModel):
    @model_validator(mode="before")
    @classmethod
    def _flatten_params_blob(cls, data: Any) -> Any:
        return _flatten_params(data)


Percent = Annotated[Money, Field(ge=0, le=100)]


class ItemPercentAction(_ActionBase):
    """Percentage off every matched cart line."""

    type: Literal[
        "PERCENT_PRODUCT",
        "PERCENT_DISCOUNT_PRODUCT",
        "PERCENT_VARIANT",
        "PERCENT_DISCOUNT_VARIANT",
        "PERCENT_CATEGORY",
        "PERCENT_DISCOUNT_CATEGORY",
        "PERCENT_BRAND_ITEMS",
        "PERCENT_DISCOUNT_BRAND",
        "PERCENT_TOTAL_PER_PRODUCT",
        "PERCENT_DISCOUNT_PER_PRODUCT",
    ]
    percent: Percent
    target_ids: list[str] = Field(default_factory=list, validation_alias=_ID_LIST_ALIASES)


class ItemFixedAction(_ActionBase):
    """Flat amount off each matched unit, optionally limited to ``qty`` units."""

    type: Literal[
        "FIXED_PRODUCT_DISCOUNT",
        "FIXED_DISCOUNT_PRODUCT",
        "FIXED_VARIANT_DISCOUNT",
        "FIXED_DISCOUNT_VARIANT",
        "FIXED_BRAND_ITEMS",
        "FIXED_DISCOUNT_BRAND",
        "FIXED_TOTAL_PER_PRODUCT",
        "FIXED_DISCOUNT_PER_PRODUCT",
    ]
    amount: Money = Field(..., ge=0)
    target_ids: list[str] = Field(default_factory=list, validation_alias=_ID_LIST_ALIASES)
    qty: int | None = Field(None, ge=1)


class QuantityTierAction(_ActionBase):
    """Discount unlocked once the matched quantity reaches ``qty``."""

    type: Literal[
        "PERCENT_ITEM_COUNT",
        "PERCENT_DISCOUNT_QTY_PRODUCT",
        "FIXED_DISCOUNT_BY_QTY",
    ]
    qty: int = Field(..., ge=1)
    percent: Percent | None = None
    amount: Money | None = Field(None, ge=0)
    scope: ItemScope | None = None
    target_ids: list[str] = Field(default_factory=list, validation_alias=_ID_LIST_ALIASES)

    @model_validator(mode="after")
    def _check_amounts(self) -> QuantityTierAction:
        if self.type == ActionType.FIXED_DISCOUNT_BY_QTY:
            if self.amount is None:
                raise ValueError("FIXED_DISCOUNT_BY_QTY requires an amount")
        elif self.percent is None:
            raise ValueError(f"{self.type} requires a percent")
        return self

    @property
    def effective_scope(self) -> ItemScope:
        if self.scope is not None:
            return self.scope
        if not self.target_ids:
            return "all"
        return "category" if self.type == ActionType.PERCENT_ITEM_COUNT else "product"


class ExtremeItemAction(_ActionBase):
    """Percentage off the cheapest (or most expensive) units in the cart."""

    type: Literal["PERCENT_EXTREME_ITEM", "PERCENT_DISCOUNT_EXTREME"]
    percent: Percent
    qty: int = Field(1, ge=1)
    pick: Literal["lowest", "highest"] = "lowest"


class OrderPercentAction(_ActionBase):
    type: Literal[
        "PERCENT_SHIPPING",
        "PERCENT_DISCOUNT_SHIPPING",
        "PERCENT_SUBTOTAL",
        "PERCENT_DISCOUNT_SUBTOTAL",
        "PERCENT_TOTAL_NO_SHIPPING",
        "PERCENT_DISCOUNT_TOTAL_BEFORE",
    ]
    percent: Percent


class OrderFixedAction(_ActionBase):
    type: Literal[
        "FIXED_SHIPPING",
        "FIXED_DISCOUNT_SHIPPING",
        "FIXED_SUBTOTAL",
        "FIXED_DISCOUNT_SUBTOTAL",
        "FIXED_TOTAL_NO_SHIPPING",
        "FIXED_DISCOUNT_TOTAL_BEFORE",
    ]
    amount: Money = Field(..., ge=0)


class FreeItemAction(_ActionBase):
    """Gift grant; never reduces any price."""

    type: Literal["FREE_VARIANT_ITEM", "FREE_PRODUCT_ITEM"]
    target_id: str = Field(
        ...,
        validation_alias=AliasChoices("target_id", "variantId", "productId"),
    )
    qty: int = Field(1, ge=1)

    @model_validator(mode="before")
    @classmethod
    def _first_listed_target(cls, data: Any) -> Any:
        data = _flatten_params(data)
        if not isinstance(data, dict) or "target_id" in data:
            return data
        for key in ("variantIds", "productIds"):
            ids = data.get(key)
            if isinstance(ids, list) and ids:
                return {**data, "target_id": ids[0]}
        return data


class MaxShippingDiscountAction(_ActionBase):
    type: Literal["MAX_SHIPPING_DISCOUNT"]
    max_amount: Money = Field(
        ...,
        ge=0,
        validation_alias=AliasChoices("max_amount", "maxAmount", "amount"),
    )


Action = Annotated[
    ItemPercentAction
    | ItemFixedAction
    | QuantityTierAction
    | ExtremeItemAction
    | OrderPercentAction
    | OrderFixedAction
    | FreeItemAction
    | MaxShippingDiscountAction,
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Promotion
# ---------------------------------------------------------------------------


class PromotionCoupon(BaseModel):
    id: str | None = None
    code: str = Field(..., min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _wrap_plain_code(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"code": data}
        return data

    @property
    def normalized_code(self) -> str:
        return self.code.strip().upper()


class PromotionDisplay(BaseModel):
    """Merchandising copy shown on spots and product pages."""

    id: str | None = None
    title: str
    type: DisplayType | str = DisplayType.SPOT
    content: str = ""


class PromotionBadge(BaseModel):
    """Visual sticker rendered over product images."""

    id: str | None = None
    title: str
    image_url: str | None = Field(
        None,
        validation_alias=AliasChoices("image_url", "imageUrl"),
    )


class PromotionUsage(BaseModel):
    """A past redemption, used to enforce coupon limits."""

    id: str | None = None
    customer_id: str | None = None
    coupon_code: str | None = None
    created_at: datetime | None = None


class PromotionPayload(BaseModel):
    """Incoming payload used when a promotion is created."""

    name: str = Field(..., min_length=1)
    description: str | None = None
    start_date: datetime | None = Field(
        None,
        validation_alias=AliasChoices("start_date", "startDate"),
    )
    end_date: datetime | None = Field(
        None,
        validation_alias=AliasChoices("end_date", "endDate"),
    )

    has_coupon: bool = Field(False, validation_alias=AliasChoices("has_coupon", "hasCoupon"))
    multiple_coupons: bool = Field(
        False,
        validation_alias=AliasChoices("multiple_coupons", "multipleCoupons"),
    )
    reuse_same_coupon: bool = Field(
        False,
        validation_alias=AliasChoices("reuse_same_coupon", "reuseSameCoupon"),
    )
    per_user_coupon_limit: int | None = Field(
        None,
        ge=1,
        validation_alias=AliasChoices("per_user_coupon_limit", "perUserCouponLimit"),
    )
    total_coupon_count: int | None = Field(
        None,
        ge=0,
        validation_alias=AliasChoices("total_coupon_count", "totalCouponCount"),
    )
    coupons: list[PromotionCoupon] = Field(default_factory=list)

    active: bool = True
    cumulative: bool = False
    priority: int = 0

    conditions: list[Condition] = Field(default_factory=list)
    actions: list[Action] = Field(default_factory=list)
    displays: list[PromotionDisplay] = Field(default_factory=list)
    badges: list[PromotionBadge] = Field(default_factory=list)

    @field_validator("start_date", "end_date")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @model_validator(mode="after")
    def _check_window(self) -> PromotionPayload:
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be earlier than start_date")
        return self

    def accepts_coupon(self, code: str) -> bool:
        wanted = code.strip().upper()
        return any(coupon.normalized_code == wanted for coupon in self.coupons)


class Promotion(PromotionPayload):
    """Stored representation of a promotion inside the catalog."""

    id: str
    usage: list[PromotionUsage] = Field(
        default_factory=list,
        validation_alias=AliasChoices("usage", "promotionUsage"),
    )
