"""Promotion evaluation: filtering, ranking, conflict resolution and aggregation."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from decimal import Decimal

from src.models.cart import CartSnapshot
from src.models.evaluation import (
    BadgeInfo,
    CouponStatus,
    CouponValidation,
    DiscountDisplay,
    EvaluationResult,
    FreeGift,
    ProductPromotions,
    PromotionCategory,
    PromotionDetail,
    SkippedPromotion,
    SkipReason,
)
from src.models.money import ZERO, to_money
from src.models.promotion import (
    ActionType,
    ExtremeItemAction,
    FreeItemAction,
    ItemFixedAction,
    ItemPercentAction,
    MembershipCondition,
    OrderFixedAction,
    OrderPercentAction,
    Promotion,
    QuantityTierAction,
    ScopedCountCondition,
)
from src.services.promotions.actions import (
    ActionOutcome,
    DiscountLedger,
    action_targets,
    apply_action,
    item_scope,
)
from src.services.promotions.conditions import conditions_hold

logger = logging.getLogger(__name__)

_FAR_FUTURE = datetime.max.replace(tzinfo=UTC)

# How far a coupon-matching promotion got before being refused; the furthest
# one decides the coupon status reported to the shopper.
_COUPON_PROGRESS: dict[SkipReason, tuple[int, CouponStatus]] = {
    SkipReason.INACTIVE: (0, CouponStatus.INVALID_COUPON),
    SkipReason.NOT_STARTED: (1, CouponStatus.EXPIRED),
    SkipReason.EXPIRED: (1, CouponStatus.EXPIRED),
    SkipReason.USAGE_LIMIT_REACHED: (2, CouponStatus.USAGE_LIMIT_REACHED),
    SkipReason.CONDITIONS_NOT_MET: (3, CouponStatus.CONDITIONS_NOT_MET),
    SkipReason.NOT_COMBINABLE: (4, CouponStatus.NOT_COMBINABLE),
}


def _utc(moment: datetime | None) -> datetime:
    if moment is None:
        return datetime.now(UTC)
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment


def _normalize_code(code: str | None) -> str | None:
    if code is None or not code.strip():
        return None
    return code.strip().upper()


def rank_key(promotion: Promotion) -> tuple[int, bool, datetime, str]:
    """Sort key: priority descending, earliest start first, then id."""

    start = promotion.start_date
    return (-promotion.priority, start is None, start or _FAR_FUTURE, promotion.id)


def rank_promotions(promotions: Iterable[Promotion]) -> list[Promotion]:
    return sorted(promotions, key=rank_key)


def window_reason(promotion: Promotion, now: datetime) -> SkipReason | None:
    if promotion.start_date is not None and now < promotion.start_date:
        return SkipReason.NOT_STARTED
    if promotion.end_date is not None and now > promotion.end_date:
        return SkipReason.EXPIRED
    return None


def coupon_usage_exhausted(promotion: Promotion, code: str, customer_id: str | None) -> bool:
    """Whether redeeming ``code`` would break one of the promotion's usage limits."""

    redemptions = [usage for usage in promotion.usage if usage.coupon_code]
    if promotion.total_coupon_count is not None and len(redemptions) >= promotion.total_coupon_count:
        return True
    if not customer_id:
        return False

    mine = [usage for usage in redemptions if usage.customer_id == customer_id]
    if promotion.per_user_coupon_limit is not None and len(mine) >= promotion.per_user_coupon_limit:
        return True
    if not promotion.reuse_same_coupon:
        return any(usage.coupon_code.strip().upper() == code for usage in mine)
    return False


def _display_hint(promotion: Promotion, discount: Decimal) -> DiscountDisplay:
    for action in promotion.actions:
        if isinstance(action, (ItemPercentAction, ExtremeItemAction, OrderPercentAction)):
            return DiscountDisplay(kind="percent", percent=action.percent)
        if isinstance(action, QuantityTierAction) and action.percent is not None:
            return DiscountDisplay(kind="percent", percent=action.percent)
        if isinstance(action, (ItemFixedAction, OrderFixedAction, QuantityTierAction)):
            return DiscountDisplay(kind="currency", amount=to_money(discount))
    return DiscountDisplay()


def _category(product_discount: Decimal, shipping_discount: Decimal) -> PromotionCategory:
    if product_discount > ZERO and shipping_discount > ZERO:
        return PromotionCategory.MIXED
    if shipping_discount > ZERO:
        return PromotionCategory.SHIPPING
    if product_discount > ZERO:
        return PromotionCategory.PRODUCT
    return PromotionCategory.OTHER


class _Applied:
    """Accumulated effects of one applied promotion during the ranking walk."""

    def __init__(self, promotion: Promotion) -> None:
        self.promotion = promotion
        self.product_discount = ZERO
        self.shipping_discount = ZERO
        self.gifts: list[FreeGift] = []
        self.badge_variant_ids: list[str] = []
        self.shipping_cap: Decimal | None = None

    def absorb(self, outcome: ActionOutcome) -> None:
        self.product_discount += outcome.product_discount
        self.shipping_discount += outcome.shipping_discount
        self.gifts.extend(outcome.gifts)
        self.badge_variant_ids.extend(outcome.badge_variant_ids)
        if outcome.shipping_cap is not None:
            self.shipping_cap = (
                outcome.shipping_cap
                if self.shipping_cap is None
                else min(self.shipping_cap, outcome.shipping_cap)
            )

    def detail(self) -> PromotionDetail:
        discount = self.product_discount + self.shipping_discount
        return PromotionDetail(
            id=self.promotion.id,
            name=self.promotion.name,
            description=self.promotion.description,
            discount=discount,
            product_discount=self.product_discount,
            shipping_discount=self.shipping_discount,
            type=_category(self.product_discount, self.shipping_discount),
            display=_display_hint(self.promotion, discount),
        )


def _enforce_shipping_cap(applied: Sequence[_Applied]) -> None:
    """Trim shipping discounts, latest-ranked first, down to the tightest cap."""

    caps = [entry.shipping_cap for entry in applied if entry.shipping_cap is not None]
    if not caps:
        return
    excess = sum((entry.shipping_discount for entry in applied), ZERO) - min(caps)
    for entry in reversed(applied):
        if excess <= ZERO:
            break
        cut = min(entry.shipping_discount, excess)
        entry.shipping_discount -= cut
        excess -= cut


def evaluate(
    cart: CartSnapshot,
    promotions: Sequence[Promotion],
    coupon_code: str | None = None,
    *,
    now: datetime | None = None,
) -> EvaluationResult:
    """Evaluate a cart snapshot against a promotion catalog.

    Never raises for steady-state situations: promotions that do not apply
    are reported in ``skipped_promotions`` with a :class:`SkipReason` and the
    outcome of a supplied coupon is reported in ``coupon_status``.
    """
    now = _utc(now)
    code = _normalize_code(coupon_code)
    result = EvaluationResult(coupon_code=code)

    if cart.is_empty:
        if code is not None:
            accepted = any(p.has_coupon and p.accepts_coupon(code) for p in promotions)
            result.coupon_status = (
                CouponStatus.CONDITIONS_NOT_MET if accepted else CouponStatus.INVALID_COUPON
            )
        return result

    customer_id = cart.customer.customer_id
    coupon_progress: list[SkipReason] = []
    candidates: list[Promotion] = []

    def skip(promotion: Promotion, reason: SkipReason) -> None:
        logger.debug("Promotion %s skipped: %s", promotion.id, reason)
        result.skipped_promotions.append(
            SkippedPromotion(id=promotion.id, name=promotion.name, reason=reason)
        )
        if code is not None and promotion.has_coupon and promotion.accepts_coupon(code):
            coupon_progress.append(reason)

    for promotion in promotions:
        if promotion.has_coupon and (code is None or not promotion.accepts_coupon(code)):
            continue
        if not promotion.active:
            skip(promotion, SkipReason.INACTIVE)
            continue
        reason = window_reason(promotion, now)
        if reason is not None:
            skip(promotion, reason)
            continue
        if promotion.has_coupon and coupon_usage_exhausted(promotion, code, customer_id):
            skip(promotion, SkipReason.USAGE_LIMIT_REACHED)
            continue
        if not conditions_hold(promotion.conditions, cart):
            skip(promotion, SkipReason.CONDITIONS_NOT_MET)
            continue
        candidates.append(promotion)

    ledger = DiscountLedger(cart)
    claimed: set[str] = set()
    applied: list[_Applied] = []
    applied_coupons: list[Promotion] = []

    for promotion in rank_promotions(candidates):
        if promotion.has_coupon and applied_coupons:
            allowed = promotion.multiple_coupons and all(p.multiple_coupons for p in applied_coupons)
            if not allowed:
                skip(promotion, SkipReason.NOT_COMBINABLE)
                continue

        targets: set[str] = set()
        for action in promotion.actions:
            targets |= action_targets(action, cart)
        if not promotion.cumulative and targets & claimed:
            skip(promotion, SkipReason.NOT_COMBINABLE)
            continue

        entry = _Applied(promotion)
        for action in promotion.actions:
            entry.absorb(apply_action(action, cart, ledger, promotion.id))
        applied.append(entry)
        if not promotion.cumulative:
            claimed |= targets
        if promotion.has_coupon:
            applied_coupons.append(promotion)

    _enforce_shipping_cap(applied)

    for entry in applied:
        promotion = entry.promotion
        result.promotions.append(entry.detail())
        result.product_discount += entry.product_discount
        result.shipping_discount += entry.shipping_discount
        result.free_gifts.extend(entry.gifts)
        if promotion.badges:
            badge = promotion.badges[0]
            for variant_id in entry.badge_variant_ids:
                result.badge_map.setdefault(
                    variant_id,
                    BadgeInfo(
                        promotion_id=promotion.id,
                        id=badge.id,
                        title=badge.title,
                        image_url=badge.image_url,
                    ),
                )
        result.descriptions.extend(d.content for d in promotion.displays if d.content)

    result.discount_total = result.product_discount + result.shipping_discount

    if code is not None:
        if applied_coupons:
            result.coupon_status = CouponStatus.APPLIED
        elif coupon_progress:
            _, result.coupon_status = max(_COUPON_PROGRESS[r] for r in coupon_progress)
        else:
            result.coupon_status = CouponStatus.INVALID_COUPON

    logger.debug(
        "Evaluated %d promotions: applied=%s discount_total=%s",
        len(promotions),
        [entry.promotion.id for entry in applied],
        result.discount_total,
    )
    return result


def validate_coupon(
    cart: CartSnapshot,
    promotions: Sequence[Promotion],
    code: str,
    *,
    now: datetime | None = None,
) -> CouponValidation:
    """Check whether a coupon code would apply to the cart right now."""

    result = evaluate(cart, promotions, code, now=now)
    normalized = _normalize_code(code) or ""
    coupon_ids = {p.id for p in promotions if p.has_coupon and p.accepts_coupon(normalized)}
    status = result.coupon_status or CouponStatus.INVALID_COUPON
    return CouponValidation(
        code=normalized,
        valid=status == CouponStatus.APPLIED,
        status=status,
        promotion_ids=[detail.id for detail in result.promotions if detail.id in coupon_ids],
    )


def referenced_ids(promotion: Promotion) -> tuple[set[str], set[str]]:
    """Product ids and variant ids a promotion explicitly names."""

    product_ids: set[str] = set()
    variant_ids: set[str] = set()

    for condition in promotion.conditions:
        if isinstance(condition, MembershipCondition):
            if condition.type == "PRODUCT_CODE":
                product_ids.update(condition.values)
            elif condition.type == "VARIANT_CODE":
                variant_ids.update(condition.values)
        elif isinstance(condition, ScopedCountCondition):
            if condition.type == "PRODUCT_ITEM_COUNT":
                product_ids.update(condition.target_ids)
            elif condition.type == "VARIANT_ITEM_COUNT":
                variant_ids.update(condition.target_ids)

    for action in promotion.actions:
        if isinstance(action, (ItemPercentAction, ItemFixedAction)):
            scope = item_scope(action)
        elif isinstance(action, QuantityTierAction):
            scope = action.effective_scope
        elif isinstance(action, FreeItemAction):
            if action.type == ActionType.FREE_VARIANT_ITEM:
                variant_ids.add(action.target_id)
            else:
                product_ids.add(action.target_id)
            continue
        else:
            continue
        if scope == "product":
            product_ids.update(action.target_ids)
        elif scope == "variant":
            variant_ids.update(action.target_ids)

    return product_ids, variant_ids


def promotions_for_product(
    promotions: Sequence[Promotion],
    product_id: str,
    variant_ids: Sequence[str] = (),
    *,
    now: datetime | None = None,
) -> ProductPromotions:
    """Live promotions naming a product or its variants, in rank order."""

    now = _utc(now)
    live = [
        promotion
        for promotion in rank_promotions(promotions)
        if promotion.active and window_reason(promotion, now) is None
    ]

    view = ProductPromotions(product_id=product_id)
    by_variant: dict[str, list[Promotion]] = {variant_id: [] for variant_id in variant_ids}
    for promotion in live:
        products, variants = referenced_ids(promotion)
        if product_id in products:
            view.product_promotions.append(promotion)
        for variant_id in by_variant:
            if variant_id in variants:
                by_variant[variant_id].append(promotion)

    view.variant_promotions = by_variant
    view.variant_main_promotions = {
        variant_id: (listed[0] if listed else None) for variant_id, listed in by_variant.items()
    }
    return view
