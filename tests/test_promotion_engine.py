"""Tests for the promotion evaluation engine."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from src.models.cart import CartSnapshot
from src.models.evaluation import CouponStatus, PromotionCategory, SkipReason
from src.models.promotion import Promotion
from src.services.promotions.engine import (
    evaluate,
    promotions_for_product,
    rank_promotions,
    validate_coupon,
)

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)


def _promotion(promotion_id, **data):
    return Promotion.model_validate({"id": promotion_id, "name": promotion_id.title(), **data})


def _percent_product(promotion_id, product_id, percent=10, **data):
    return _promotion(
        promotion_id,
        actions=[
            {
                "type": "PERCENT_DISCOUNT_PRODUCT",
                "params": {"percent": percent, "productIds": [product_id]},
            }
        ],
        **data,
    )


@pytest.fixture()
def cart(scenario_cart_payload):
    return CartSnapshot.model_validate(scenario_cart_payload)


def _skip_reasons(result):
    return {skipped.id: skipped.reason for skipped in result.skipped_promotions}


def test_subtotal_percent_after_item_count(cart):
    """3 items worth R$300 and 10% off the subtotal gives R$30."""
    # Arrange
    promotion = _promotion(
        "dez-porcento",
        conditions=[{"type": "CART_ITEM_COUNT", "operator": "GREATER_EQUAL", "value": 3}],
        actions=[{"type": "PERCENT_DISCOUNT_SUBTOTAL", "params": '{"percent": 10}'}],
    )

    # Act
    result = evaluate(cart, [promotion], now=NOW)

    # Assert
    assert result.discount_total == Decimal("30.00")
    assert result.product_discount == Decimal("30.00")
    assert result.shipping_discount == Decimal("0")
    detail = result.promotions[0]
    assert detail.type == PromotionCategory.PRODUCT
    assert detail.display.kind == "percent"
    assert detail.display.percent == Decimal("10")


def test_free_gift_has_no_monetary_value():
    cart = CartSnapshot.model_validate(
        {"items": [{"productId": "p-1", "variantId": "v-1", "unitPrice": 250, "quantity": 1}]}
    )
    promotion = _promotion(
        "brinde",
        conditions=[{"type": "SUBTOTAL_VALUE", "operator": "GREATER_EQUAL", "value": 200}],
        actions=[{"type": "FREE_VARIANT_ITEM", "params": {"variantIds": ["X"], "qty": 1}}],
    )

    result = evaluate(cart, [promotion], now=NOW)

    assert len(result.free_gifts) == 1
    gift = result.free_gifts[0]
    assert gift.variant_id == "X"
    assert gift.quantity == 1
    assert gift.is_variant is True
    assert result.discount_total == Decimal("0")
    assert result.promotions[0].type == PromotionCategory.OTHER


def test_empty_promotion_list(cart):
    result = evaluate(cart, [], now=NOW)

    assert result.discount_total == Decimal("0")
    assert result.free_gifts == []
    assert result.badge_map == {}
    assert result.coupon_status is None


def test_empty_cart_short_circuits():
    promotion = _promotion(
        "primeira-compra",
        conditions=[{"type": "FIRST_ORDER"}],
        actions=[{"type": "FIXED_SUBTOTAL", "params": {"amount": 10}}],
    )

    result = evaluate(CartSnapshot(), [promotion], now=NOW)

    assert result.discount_total == Decimal("0")
    assert result.promotions == []
    assert result.skipped_promotions == []


def test_coupon_promotion_needs_matching_code(cart):
    promotion = _promotion(
        "cupom",
        has_coupon=True,
        coupons=["BEMVINDO"],
        actions=[{"type": "FIXED_DISCOUNT_SUBTOTAL", "params": {"amount": 15}}],
    )

    without_code = evaluate(cart, [promotion], now=NOW)
    wrong_code = evaluate(cart, [promotion], "OUTRO", now=NOW)
    right_code = evaluate(cart, [promotion], "  bemvindo ", now=NOW)

    assert without_code.discount_total == Decimal("0")
    assert without_code.skipped_promotions == []
    assert wrong_code.discount_total == Decimal("0")
    assert wrong_code.coupon_status == CouponStatus.INVALID_COUPON
    assert right_code.discount_total == Decimal("15.00")
    assert right_code.coupon_status == CouponStatus.APPLIED
    assert right_code.coupon_code == "BEMVINDO"
    assert right_code.promotions[0].display.kind == "currency"


def test_coupon_status_reports_expiry_and_conditions(cart):
    expired = _promotion(
        "expirado",
        has_coupon=True,
        coupons=[{"id": "c-1", "code": "VERAO"}],
        end_date="2026-01-31T23:59:59Z",
        actions=[{"type": "PERCENT_SUBTOTAL", "params": {"percent": 5}}],
    )
    too_big = _promotion(
        "minimo",
        has_coupon=True,
        coupons=["MINIMO"],
        conditions=[{"type": "SUBTOTAL_VALUE", "operator": "GREATER_EQUAL", "value": 1000}],
        actions=[{"type": "PERCENT_SUBTOTAL", "params": {"percent": 5}}],
    )

    assert evaluate(cart, [expired], "verao", now=NOW).coupon_status == CouponStatus.EXPIRED
    assert evaluate(cart, [too_big], "MINIMO", now=NOW).coupon_status == CouponStatus.CONDITIONS_NOT_MET


def test_coupon_usage_limits(cart):
    reused = _promotion(
        "uso-unico",
        has_coupon=True,
        coupons=["UMAVEZ"],
        promotionUsage=[{"customer_id": "cust-1", "coupon_code": "umavez"}],
        actions=[{"type": "FIXED_SUBTOTAL", "params": {"amount": 10}}],
    )
    exhausted = _promotion(
        "esgotado",
        has_coupon=True,
        reuse_same_coupon=True,
        total_coupon_count=1,
        coupons=["LIMITADO"],
        promotionUsage=[{"customer_id": "cust-2", "coupon_code": "LIMITADO"}],
        actions=[{"type": "FIXED_SUBTOTAL", "params": {"amount": 10}}],
    )

    first = evaluate(cart, [reused], "UMAVEZ", now=NOW)
    second = evaluate(cart, [exhausted], "LIMITADO", now=NOW)

    assert first.coupon_status == CouponStatus.USAGE_LIMIT_REACHED
    assert _skip_reasons(first) == {"uso-unico": SkipReason.USAGE_LIMIT_REACHED}
    assert second.coupon_status == CouponStatus.USAGE_LIMIT_REACHED


def test_only_one_coupon_promotion_without_multiple_coupons(cart):
    first = _percent_product(
        "cupom-caneca", "prod-mug", has_coupon=True, coupons=["DUPLO"], cumulative=True, priority=2
    )
    second = _percent_product(
        "cupom-camiseta", "prod-tshirt", has_coupon=True, coupons=["DUPLO"], cumulative=True, priority=1
    )

    result = evaluate(cart, [second, first], "DUPLO", now=NOW)

    assert [detail.id for detail in result.promotions] == ["cupom-caneca"]
    assert _skip_reasons(result) == {"cupom-camiseta": SkipReason.NOT_COMBINABLE}
    assert result.coupon_status == CouponStatus.APPLIED

    first.multiple_coupons = True
    second.multiple_coupons = True
    stacked = evaluate(cart, [second, first], "DUPLO", now=NOW)

    assert {detail.id for detail in stacked.promotions} == {"cupom-caneca", "cupom-camiseta"}
    assert stacked.discount_total == Decimal("30.00")


def test_conflicting_non_cumulative_promotions(cart):
    low = _percent_product("baixa", "prod-tshirt", percent=50, priority=1)
    high = _percent_product("alta", "prod-tshirt", percent=10, priority=5)

    result = evaluate(cart, [low, high], now=NOW)

    assert [detail.id for detail in result.promotions] == ["alta"]
    assert _skip_reasons(result) == {"baixa": SkipReason.NOT_COMBINABLE}
    assert result.discount_total == Decimal("20.00")


def test_tie_break_by_earliest_start(cart):
    older = _percent_product("antiga", "prod-tshirt", start_date="2026-01-01T00:00:00Z")
    newer = _percent_product("nova", "prod-tshirt", start_date="2026-05-01T00:00:00Z")
    open_ended = _percent_product("sem-inicio", "prod-tshirt")

    assert [p.id for p in rank_promotions([open_ended, newer, older])] == ["antiga", "nova", "sem-inicio"]
    assert [d.id for d in evaluate(cart, [newer, older], now=NOW).promotions] == ["antiga"]


def test_non_cumulative_on_different_targets_both_apply(cart):
    shirts = _percent_product("camisetas", "prod-tshirt")
    mugs = _percent_product("canecas", "prod-mug")

    result = evaluate(cart, [shirts, mugs], now=NOW)

    assert {detail.id for detail in result.promotions} == {"camisetas", "canecas"}
    assert result.discount_total == Decimal("30.00")


def test_non_cumulative_gifts_for_same_variant_apply_once(cart):
    def gift(promotion_id, priority):
        return _promotion(
            promotion_id,
            priority=priority,
            actions=[{"type": "FREE_VARIANT_ITEM", "params": {"variantId": "brinde-x", "qty": 1}}],
        )

    result = evaluate(cart, [gift("menor", 1), gift("maior", 2)], now=NOW)

    assert [(g.promotion_id, g.variant_id) for g in result.free_gifts] == [("maior", "brinde-x")]
    assert _skip_reasons(result) == {"menor": SkipReason.NOT_COMBINABLE}


def test_gifts_for_different_variants_both_apply(cart):
    first = _promotion(
        "brinde-a",
        actions=[{"type": "FREE_VARIANT_ITEM", "params": {"variantIds": ["a"]}}],
    )
    second = _promotion(
        "brinde-b",
        actions=[{"type": "FREE_VARIANT_ITEM", "params": {"variantIds": ["b"]}}],
    )

    result = evaluate(cart, [first, second], now=NOW)

    assert sorted(g.variant_id for g in result.free_gifts) == ["a", "b"]


def test_non_cumulative_shipping_promotions_conflict_without_shipping_cost(scenario_cart_payload):
    cart = CartSnapshot.model_validate({**scenario_cart_payload, "shipping_cost": "0"})
    free_shipping = _promotion(
        "frete-gratis",
        priority=2,
        actions=[{"type": "PERCENT_SHIPPING", "params": {"percent": 100}}],
        displays=[{"title": "Frete", "content": "Frete gratis"}],
    )
    fixed_shipping = _promotion(
        "frete-cinco",
        priority=1,
        actions=[{"type": "FIXED_SHIPPING", "params": {"amount": 5}}],
        displays=[{"title": "Frete", "content": "R$5 de frete"}],
    )

    result = evaluate(cart, [fixed_shipping, free_shipping], now=NOW)

    assert [detail.id for detail in result.promotions] == ["frete-gratis"]
    assert _skip_reasons(result) == {"frete-cinco": SkipReason.NOT_COMBINABLE}
    assert result.shipping_discount == Decimal("0")
    assert result.descriptions == ["Frete gratis"]


def test_cumulative_promotions_stack(cart):
    exclusive = _percent_product("exclusiva", "prod-tshirt", priority=2)
    stacking = _percent_product("acumulativa", "prod-tshirt", cumulative=True, priority=1)

    result = evaluate(cart, [exclusive, stacking], now=NOW)

    assert len(result.promotions) == 2
    assert result.discount_total == Decimal("40.00")


def test_shipping_discount_is_capped(cart):
    free_shipping = _promotion(
        "frete",
        cumulative=True,
        actions=[{"type": "PERCENT_SHIPPING", "params": {"percent": 100}}],
    )
    cap = _promotion(
        "teto-frete",
        cumulative=True,
        actions=[{"type": "MAX_SHIPPING_DISCOUNT", "params": {"maxAmount": 5}}],
    )

    result = evaluate(cart, [free_shipping, cap], now=NOW)

    assert result.shipping_discount == Decimal("5.00")
    assert result.product_discount == Decimal("0")
    assert result.discount_total == Decimal("5.00")
    assert result.promotions[0].type == PromotionCategory.SHIPPING


def test_shipping_discount_never_exceeds_shipping_cost(cart):
    promotion = _promotion(
        "frete-fixo",
        actions=[{"type": "FIXED_DISCOUNT_SHIPPING", "params": {"amount": 50}}],
    )

    assert evaluate(cart, [promotion], now=NOW).shipping_discount == Decimal("20.00")


def test_fixed_discounts_are_clamped(cart):
    item = _promotion(
        "fixo-caneca",
        actions=[{"type": "FIXED_PRODUCT_DISCOUNT", "params": {"amount": 500, "productIds": ["prod-mug"]}}],
    )
    order = _promotion(
        "fixo-pedido",
        actions=[{"type": "FIXED_SUBTOTAL", "params": {"amount": 1000}}],
    )

    assert evaluate(cart, [item], now=NOW).discount_total == Decimal("100.00")
    assert evaluate(cart, [order], now=NOW).discount_total == Decimal("300.00")


def test_fixed_discount_limited_to_qty_units(cart):
    promotion = _promotion(
        "uma-unidade",
        actions=[{"type": "FIXED_VARIANT_DISCOUNT", "params": {"amount": 30, "variantIds": ["var-azul-p"], "qty": 1}}],
    )

    assert evaluate(cart, [promotion], now=NOW).discount_total == Decimal("30.00")


def test_mixed_category(cart):
    promotion = _promotion(
        "combo",
        actions=[
            {"type": "PERCENT_SHIPPING", "params": {"percent": 50}},
            {"type": "PERCENT_PRODUCT", "params": {"percent": 10, "productIds": ["prod-mug"]}},
        ],
    )

    detail = evaluate(cart, [promotion], now=NOW).promotions[0]

    assert detail.type == PromotionCategory.MIXED
    assert detail.shipping_discount == Decimal("10.00")
    assert detail.product_discount == Decimal("10.00")


def test_quantity_tier(cart):
    reached = _promotion(
        "leve-2",
        actions=[{"type": "PERCENT_DISCOUNT_QTY_PRODUCT", "params": {"qty": 2, "percent": 10, "productIds": ["prod-tshirt"]}}],
    )
    missed = _promotion(
        "leve-3",
        actions=[{"type": "PERCENT_DISCOUNT_QTY_PRODUCT", "params": {"qty": 3, "percent": 10, "productIds": ["prod-tshirt"]}}],
    )

    assert evaluate(cart, [reached], now=NOW).discount_total == Decimal("20.00")
    assert evaluate(cart, [missed], now=NOW).discount_total == Decimal("0")


def test_cheapest_item_discount(scenario_cart_payload):
    scenario_cart_payload["items"][1]["unitPrice"] = "40.00"
    cart = CartSnapshot.model_validate(scenario_cart_payload)
    promotion = _promotion(
        "mais-barato",
        actions=[{"type": "PERCENT_EXTREME_ITEM", "params": {"percent": 50}}],
    )

    assert evaluate(cart, [promotion], now=NOW).discount_total == Decimal("20.00")


def test_absent_target_contributes_nothing(cart):
    promotion = _percent_product("fantasma", "prod-ausente")

    result = evaluate(cart, [promotion], now=NOW)

    assert result.discount_total == Decimal("0")
    assert result.promotions[0].type == PromotionCategory.OTHER


def test_lifecycle_filters(cart):
    inactive = _percent_product("inativa", "prod-mug", active=False)
    future = _percent_product("futura", "prod-mug", start_date="2026-07-01T00:00:00")
    past = _percent_product("passada", "prod-mug", end_date="2026-05-01T00:00:00Z")

    result = evaluate(cart, [inactive, future, past], now=NOW)

    assert result.promotions == []
    assert _skip_reasons(result) == {
        "inativa": SkipReason.INACTIVE,
        "futura": SkipReason.NOT_STARTED,
        "passada": SkipReason.EXPIRED,
    }


def test_unknown_condition_excludes_promotion(scenario_cart_payload):
    cart = CartSnapshot.model_validate({**scenario_cart_payload, "customer": {}})
    promotion = _percent_product(
        "por-cep",
        "prod-mug",
        conditions=[{"type": "ZIP_CODE", "value": ["01310100"]}],
    )

    result = evaluate(cart, [promotion], now=NOW)

    assert _skip_reasons(result) == {"por-cep": SkipReason.CONDITIONS_NOT_MET}


def test_badge_goes_to_first_ranked_promotion(cart):
    def _badged(promotion_id, priority, title):
        return _promotion(
            promotion_id,
            cumulative=True,
            priority=priority,
            badges=[{"title": title, "imageUrl": f"https://cdn.example.com/{promotion_id}.png"}],
            displays=[{"title": title, "type": "SPOT", "content": f"{title} na camiseta azul"}],
            actions=[{"type": "PERCENT_VARIANT", "params": {"percent": 5, "variantIds": ["var-azul-p"]}}],
        )

    result = evaluate(cart, [_badged("segunda", 1, "Oferta"), _badged("primeira", 9, "Black Friday")], now=NOW)

    badge = result.badge_map["var-azul-p"]
    assert badge.promotion_id == "primeira"
    assert badge.title == "Black Friday"
    assert badge.image_url == "https://cdn.example.com/primeira.png"
    assert result.descriptions == ["Black Friday na camiseta azul", "Oferta na camiseta azul"]


def test_validate_coupon(cart):
    promotion = _promotion(
        "cupom",
        has_coupon=True,
        coupons=["BEMVINDO"],
        actions=[{"type": "FIXED_SUBTOTAL", "params": {"amount": 15}}],
    )

    valid = validate_coupon(cart, [promotion], "bemvindo", now=NOW)
    invalid = validate_coupon(cart, [promotion], "NADA", now=NOW)

    assert valid.valid is True
    assert valid.promotion_ids == ["cupom"]
    assert invalid.valid is False
    assert invalid.status == CouponStatus.INVALID_COUPON


def test_promotions_for_product():
    product_level = _percent_product("produto", "prod-tshirt", priority=1)
    variant_level = _promotion(
        "variante",
        priority=5,
        actions=[{"type": "PERCENT_VARIANT", "params": {"percent": 5, "variantIds": ["var-azul-p"]}}],
    )
    by_condition = _promotion(
        "condicao",
        conditions=[{"type": "VARIANT_CODE", "value": ["var-azul-p"]}],
        actions=[{"type": "PERCENT_SUBTOTAL", "params": {"percent": 5}}],
    )
    expired = _percent_product("antiga", "prod-tshirt", end_date="2025-01-01T00:00:00Z")

    view = promotions_for_product(
        [by_condition, expired, product_level, variant_level],
        "prod-tshirt",
        ["var-azul-p", "var-verde-p"],
        now=NOW,
    )

    assert [p.id for p in view.product_promotions] == ["produto"]
    assert [p.id for p in view.variant_promotions["var-azul-p"]] == ["variante", "condicao"]
    assert view.variant_promotions["var-verde-p"] == []
    assert view.variant_main_promotions["var-azul-p"].id == "variante"
    assert view.variant_main_promotions["var-verde-p"] is None
