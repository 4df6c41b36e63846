"""Evaluation of promotion conditions against a cart snapshot.

Each condition evaluates to ``True``, ``False`` or ``None``. ``None`` means the
observed quantity cannot be derived from the snapshot (for example a ZIP_CODE
condition before a delivery address is known); callers treat it as a failure.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Sequence
from decimal import Decimal

from src.models.cart import CartItem, CartSnapshot
from src.models.promotion import (
    Condition,
    ConditionType,
    CountCondition,
    FirstOrderCondition,
    MembershipCondition,
    Operator,
    ScopedCountCondition,
    ScopedValueCondition,
    ValueCondition,
)

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")

_ORDERING: dict[Operator, Callable[[Decimal, Decimal], bool]] = {
    Operator.EQUAL: lambda observed, target: observed == target,
    Operator.NOT_EQUAL: lambda observed, target: observed != target,
    Operator.GREATER: lambda observed, target: observed > target,
    Operator.GREATER_EQUAL: lambda observed, target: observed >= target,
    Operator.LESS: lambda observed, target: observed < target,
    Operator.LESS_EQUAL: lambda observed, target: observed <= target,
}


def compare(observed: Decimal | int, operator: Operator, target: Decimal | int) -> bool:
    """Numeric comparison; CONTAINS/NOT_CONTAINS never hold for quantities."""

    check = _ORDERING.get(operator)
    if check is None:
        return False
    return check(Decimal(observed), Decimal(target))


def membership(is_member: bool, operator: Operator) -> bool:
    """Apply an operator to a set-membership outcome."""

    if operator in (Operator.EQUAL, Operator.CONTAINS):
        return is_member
    if operator in (Operator.NOT_EQUAL, Operator.NOT_CONTAINS):
        return not is_member
    return False


def _digits(value: str) -> str:
    return _NON_DIGITS.sub("", value)


def zip_matches(zip_code: str, patterns: Iterable[str]) -> bool:
    """Match a CEP against exact codes or ``start-end`` ranges of 8-digit CEPs."""

    wanted = _digits(zip_code)
    if not wanted:
        return False
    for pattern in patterns:
        digits = _digits(pattern)
        if len(digits) == 16:
            if int(digits[:8]) <= int(wanted) <= int(digits[8:]):
                return True
        elif digits and digits == wanted:
            return True
    return False


def _items_in_categories(items: Sequence[CartItem], ids: set[str]) -> list[CartItem]:
    return [item for item in items if ids.intersection(item.category_ids)]


_SCOPED_ITEMS: dict[ConditionType, Callable[[Sequence[CartItem], set[str]], list[CartItem]]] = {
    ConditionType.CATEGORY_ITEM_COUNT: _items_in_categories,
    ConditionType.CATEGORY_VARIANT_COUNT: _items_in_categories,
    ConditionType.CATEGORY_VALUE: _items_in_categories,
    ConditionType.BRAND_VALUE: lambda items, ids: [i for i in items if i.brand_id in ids],
    ConditionType.VARIANT_ITEM_COUNT: lambda items, ids: [i for i in items if i.variant_id in ids],
    ConditionType.PRODUCT_ITEM_COUNT: lambda items, ids: [i for i in items if i.product_id in ids],
}


def _evaluate_membership(condition: MembershipCondition, cart: CartSnapshot) -> bool | None:
    customer = cart.customer
    values = condition.values
    kind = condition.type

    if kind == ConditionType.CATEGORY:
        wanted = set(values)
        is_member = any(wanted.intersection(item.category_ids) for item in cart.items)
    elif kind == ConditionType.PRODUCT_CODE:
        is_member = any(item.product_id in values for item in cart.items)
    elif kind == ConditionType.VARIANT_CODE:
        is_member = any(item.variant_id in values for item in cart.items)
    elif kind == ConditionType.ZIP_CODE:
        if not customer.zip_code or not _digits(customer.zip_code):
            return None
        is_member = zip_matches(customer.zip_code, values)
    elif kind == ConditionType.STATE:
        if not customer.state:
            return None
        is_member = customer.state.strip().upper() in {v.strip().upper() for v in values}
    elif kind == ConditionType.PERSON_TYPE:
        if customer.person_type is None:
            return None
        is_member = customer.person_type in {v.strip().upper() for v in values}
    elif kind == ConditionType.USER:
        if customer.is_guest:
            return None
        is_member = customer.customer_id in values
    else:
        return None

    return membership(is_member, condition.operator)


def evaluate_condition(condition: Condition, cart: CartSnapshot) -> bool | None:
    """Evaluate one condition; ``None`` when its quantity is not derivable."""

    if isinstance(condition, FirstOrderCondition):
        first_purchase = cart.customer.first_purchase
        if first_purchase is None:
            return None
        return membership(first_purchase == condition.value, condition.operator)

    if isinstance(condition, CountCondition):
        observed = (
            cart.item_count
            if condition.type == ConditionType.CART_ITEM_COUNT
            else cart.unique_variant_count
        )
        return compare(observed, condition.operator, condition.value)

    if isinstance(condition, ValueCondition):
        observed = cart.subtotal if condition.type == ConditionType.SUBTOTAL_VALUE else cart.total
        return compare(observed, condition.operator, condition.value)

    if isinstance(condition, MembershipCondition):
        return _evaluate_membership(condition, cart)

    if isinstance(condition, ScopedCountCondition):
        items = _SCOPED_ITEMS[ConditionType(condition.type)](cart.items, set(condition.target_ids))
        if condition.type == ConditionType.CATEGORY_VARIANT_COUNT:
            observed = len({item.line_key for item in items})
        else:
            observed = sum(item.quantity for item in items)
        return compare(observed, condition.operator, condition.value)

    if isinstance(condition, ScopedValueCondition):
        items = _SCOPED_ITEMS[ConditionType(condition.type)](cart.items, set(condition.target_ids))
        observed = sum((item.line_total for item in items), Decimal("0"))
        return compare(observed, condition.operator, condition.value)

    logger.warning("Unsupported condition type %s", getattr(condition, "type", None))
    return None


def conditions_hold(conditions: Iterable[Condition], cart: CartSnapshot) -> bool:
    """Logical AND of all conditions; an underivable condition fails."""

    return all(evaluate_condition(condition, cart) is True for condition in conditions)
