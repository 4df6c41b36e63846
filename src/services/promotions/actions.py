"""Evaluation of promotion actions against a cart snapshot.

All monetary effects go through a :class:`DiscountLedger` created once per
evaluation, which keeps every cart line, the shipping cost and the merchandise
total from being discounted below zero.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from decimal import Decimal

from pydantic import BaseModel, Field

from src.models.cart import CartItem, CartSnapshot
from src.models.evaluation import FreeGift
from src.models.money import ZERO, to_money
from src.models.promotion import (
    Action,
    ActionType,
    ExtremeItemAction,
    FreeItemAction,
    ItemFixedAction,
    ItemPercentAction,
    ItemScope,
    MaxShippingDiscountAction,
    OrderFixedAction,
    OrderPercentAction,
    QuantityTierAction,
)

logger = logging.getLogger(__name__)

SHIPPING_TARGET = "shipping"
ORDER_TARGET = "order"

_HUNDRED = Decimal("100")

_ITEM_SCOPES: dict[ActionType, ItemScope] = {
    ActionType.PERCENT_PRODUCT: "product",
    ActionType.PERCENT_DISCOUNT_PRODUCT: "product",
    ActionType.FIXED_PRODUCT_DISCOUNT: "product",
    ActionType.FIXED_DISCOUNT_PRODUCT: "product",
    ActionType.PERCENT_VARIANT: "variant",
    ActionType.PERCENT_DISCOUNT_VARIANT: "variant",
    ActionType.FIXED_VARIANT_DISCOUNT: "variant",
    ActionType.FIXED_DISCOUNT_VARIANT: "variant",
    ActionType.PERCENT_CATEGORY: "category",
    ActionType.PERCENT_DISCOUNT_CATEGORY: "category",
    ActionType.PERCENT_BRAND_ITEMS: "brand",
    ActionType.PERCENT_DISCOUNT_BRAND: "brand",
    ActionType.FIXED_BRAND_ITEMS: "brand",
    ActionType.FIXED_DISCOUNT_BRAND: "brand",
}

_PER_PRODUCT = {
    ActionType.PERCENT_TOTAL_PER_PRODUCT,
    ActionType.PERCENT_DISCOUNT_PER_PRODUCT,
    ActionType.FIXED_TOTAL_PER_PRODUCT,
    ActionType.FIXED_DISCOUNT_PER_PRODUCT,
}

_SHIPPING_ACTIONS = {
    ActionType.PERCENT_SHIPPING,
    ActionType.PERCENT_DISCOUNT_SHIPPING,
    ActionType.FIXED_SHIPPING,
    ActionType.FIXED_DISCOUNT_SHIPPING,
}

_SUBTOTAL_ACTIONS = {
    ActionType.PERCENT_SUBTOTAL,
    ActionType.PERCENT_DISCOUNT_SUBTOTAL,
    ActionType.FIXED_SUBTOTAL,
    ActionType.FIXED_DISCOUNT_SUBTOTAL,
}

_SCOPE_MATCHERS: dict[str, Callable[[CartItem, set[str]], bool]] = {
    "product": lambda item, ids: item.product_id in ids,
    "variant": lambda item, ids: item.variant_id in ids,
    "category": lambda item, ids: bool(ids.intersection(item.category_ids)),
    "brand": lambda item, ids: item.brand_id in ids,
    "all": lambda item, ids: True,
}


class DiscountLedger:
    """Remaining discountable value for one evaluation."""

    def __init__(self, cart: CartSnapshot) -> None:
        self._lines = [item.line_total for item in cart.items]
        self._order_taken = ZERO
        self._shipping_remaining = cart.shipping_cost

    @property
    def merchandise_remaining(self) -> Decimal:
        return max(sum(self._lines, ZERO) - self._order_taken, ZERO)

    @property
    def shipping_remaining(self) -> Decimal:
        return self._shipping_remaining

    def take_line(self, index: int, amount: Decimal) -> Decimal:
        """Discount one line, never below zero; returns what was granted."""

        granted = min(to_money(amount), self._lines[index], self.merchandise_remaining)
        granted = max(granted, ZERO)
        self._lines[index] -= granted
        return granted

    def take_order(self, amount: Decimal) -> Decimal:
        granted = max(min(to_money(amount), self.merchandise_remaining), ZERO)
        self._order_taken += granted
        return granted

    def take_shipping(self, amount: Decimal) -> Decimal:
        granted = max(min(to_money(amount), self._shipping_remaining), ZERO)
        self._shipping_remaining -= granted
        return granted


class ActionOutcome(BaseModel):
    """Monetary and non-monetary effects of one action."""

    product_discount: Decimal = ZERO
    shipping_discount: Decimal = ZERO
    gifts: list[FreeGift] = Field(default_factory=list)
    shipping_cap: Decimal | None = None
    badge_variant_ids: list[str] = Field(default_factory=list)


def item_scope(action: ItemPercentAction | ItemFixedAction) -> ItemScope:
    if ActionType(action.type) in _PER_PRODUCT:
        return "product" if action.target_ids else "all"
    return _ITEM_SCOPES[ActionType(action.type)]


def matched_lines(
    items: Sequence[CartItem],
    scope: ItemScope,
    target_ids: Sequence[str],
) -> list[int]:
    """Indexes of cart lines selected by a scope and target ids."""

    if scope != "all" and not target_ids:
        return []
    ids = set(target_ids)
    matcher = _SCOPE_MATCHERS[scope]
    return [index for index, item in enumerate(items) if matcher(item, ids)]


def _extreme_lines(items: Sequence[CartItem], action: ExtremeItemAction) -> list[tuple[int, int]]:
    """(line index, units) pairs covering ``action.qty`` cheapest or priciest units."""

    order = sorted(
        range(len(items)),
        key=lambda index: items[index].unit_price,
        reverse=action.pick == "highest",
    )
    picked: list[tuple[int, int]] = []
    remaining = action.qty
    for index in order:
        if remaining <= 0:
            break
        units = min(items[index].quantity, remaining)
        picked.append((index, units))
        remaining -= units
    return picked


def _tier_lines(items: Sequence[CartItem], action: QuantityTierAction) -> list[int]:
    lines = matched_lines(items, action.effective_scope, action.target_ids)
    if sum(items[index].quantity for index in lines) < action.qty:
        return []
    return lines


def _gift_target(action: FreeItemAction) -> str:
    kind = "variant" if action.type == ActionType.FREE_VARIANT_ITEM else "product"
    return f"gift:{kind}:{action.target_id}"


def action_targets(action: Action, cart: CartSnapshot) -> set[str]:
    """Targets an action would discount, used to detect conflicting promotions.

    Line targets are cart line keys. Shipping actions always claim ``shipping``;
    order-level actions claim ``order`` plus every line, since they reduce the
    whole merchandise value. Gifts claim the gifted variant or product. Shipping
    caps claim nothing.
    """
    items = cart.items
    if isinstance(action, (ItemPercentAction, ItemFixedAction)):
        lines = matched_lines(items, item_scope(action), action.target_ids)
    elif isinstance(action, QuantityTierAction):
        lines = _tier_lines(items, action)
    elif isinstance(action, ExtremeItemAction):
        lines = [index for index, _ in _extreme_lines(items, action)]
    elif isinstance(action, (OrderPercentAction, OrderFixedAction)):
        if ActionType(action.type) in _SHIPPING_ACTIONS:
            return {SHIPPING_TARGET}
        return {ORDER_TARGET, *(item.line_key for item in items)}
    elif isinstance(action, FreeItemAction):
        return {_gift_target(action)}
    else:
        return set()
    return {items[index].line_key for index in lines}


def _explicit_variants(items: Sequence[CartItem], lines: Sequence[int], has_targets: bool) -> list[str]:
    if not has_targets:
        return []
    return [items[index].variant_id for index in lines if items[index].variant_id]


def _order_base(action: OrderPercentAction | OrderFixedAction, cart: CartSnapshot, ledger: DiscountLedger) -> Decimal:
    if ActionType(action.type) in _SUBTOTAL_ACTIONS:
        return cart.subtotal
    return ledger.merchandise_remaining


def apply_action(action: Action, cart: CartSnapshot, ledger: DiscountLedger, promotion_id: str) -> ActionOutcome:
    """Apply a single action, recording granted amounts on the ledger."""

    items = cart.items
    outcome = ActionOutcome()

    if isinstance(action, ItemPercentAction):
        lines = matched_lines(items, item_scope(action), action.target_ids)
        for index in lines:
            amount = items[index].line_total * action.percent / _HUNDRED
            outcome.product_discount += ledger.take_line(index, amount)
        outcome.badge_variant_ids = _explicit_variants(items, lines, bool(action.target_ids))

    elif isinstance(action, ItemFixedAction):
        lines = matched_lines(items, item_scope(action), action.target_ids)
        units_left = action.qty
        for index in lines:
            item = items[index]
            units = item.quantity if units_left is None else min(item.quantity, units_left)
            if units <= 0:
                break
            per_unit = min(action.amount, item.unit_price)
            outcome.product_discount += ledger.take_line(index, per_unit * units)
            if units_left is not None:
                units_left -= units
        outcome.badge_variant_ids = _explicit_variants(items, lines, bool(action.target_ids))

    elif isinstance(action, QuantityTierAction):
        lines = _tier_lines(items, action)
        for index in lines:
            item = items[index]
            if action.type == ActionType.FIXED_DISCOUNT_BY_QTY:
                amount = min(action.amount, item.unit_price) * item.quantity
            else:
                amount = item.line_total * action.percent / _HUNDRED
            outcome.product_discount += ledger.take_line(index, amount)
        outcome.badge_variant_ids = _explicit_variants(items, lines, bool(action.target_ids))

    elif isinstance(action, ExtremeItemAction):
        for index, units in _extreme_lines(items, action):
            amount = items[index].unit_price * units * action.percent / _HUNDRED
            outcome.product_discount += ledger.take_line(index, amount)

    elif isinstance(action, OrderPercentAction):
        if ActionType(action.type) in _SHIPPING_ACTIONS:
            outcome.shipping_discount += ledger.take_shipping(
                cart.shipping_cost * action.percent / _HUNDRED
            )
        else:
            base = _order_base(action, cart, ledger)
            outcome.product_discount += ledger.take_order(base * action.percent / _HUNDRED)

    elif isinstance(action, OrderFixedAction):
        if ActionType(action.type) in _SHIPPING_ACTIONS:
            outcome.shipping_discount += ledger.take_shipping(action.amount)
        else:
            outcome.product_discount += ledger.take_order(
                min(action.amount, _order_base(action, cart, ledger))
            )

    elif isinstance(action, FreeItemAction):
        is_variant = action.type == ActionType.FREE_VARIANT_ITEM
        outcome.gifts.append(
            FreeGift(
                promotion_id=promotion_id,
                variant_id=action.target_id if is_variant else None,
                product_id=None if is_variant else action.target_id,
                quantity=action.qty,
                is_variant=is_variant,
            )
        )
        if is_variant:
            outcome.badge_variant_ids = [action.target_id]

    elif isinstance(action, MaxShippingDiscountAction):
        outcome.shipping_cap = action.max_amount

    else:
        logger.warning("Unsupported action type %s on promotion %s", getattr(action, "type", None), promotion_id)

    return outcome
