"""Price, stock and add-to-cart gating for a product view."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from src.config import settings
from src.models.money import ZERO, to_money
from src.models.product import Product, Variant
from src.models.variant import PriceView


def effective_stock(product: Product, variant: Variant | None) -> int:
    if variant is not None and variant.stock is not None:
        return variant.stock
    return product.stock


def build_price_view(product: Product, variant: Variant | None) -> PriceView:
    """Price pair and stock to display.

    Variant prices and stock override the product's when present; otherwise
    the product-level values are shown.
    """
    price_per = product.price_per
    price_of = product.price_of
    if variant is not None:
        price_per = variant.price_per if variant.price_per is not None else price_per
        price_of = variant.price_of if variant.price_of is not None else price_of

    has_discount = (
        price_per is not None
        and price_of is not None
        and price_of > 0
        and price_per < price_of
    )
    discount_percent = 0
    if has_discount:
        ratio = (price_of - price_per) / price_of * 100
        discount_percent = int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    installments = 1
    installment_value = None
    if price_per is not None:
        if price_per > ZERO:
            installments = max(settings.MAX_INSTALLMENTS, 1)
        installment_value = to_money(price_per / installments)

    return PriceView(
        price_per=price_per,
        price_of=price_of,
        has_discount=has_discount,
        discount_percent=discount_percent,
        installments=installments,
        installment_value=installment_value,
        stock=effective_stock(product, variant),
    )


def can_add_to_cart(product: Product, variant: Variant | None) -> bool:
    """Whether a concrete, purchasable item is currently selected."""

    if product.variants and variant is None:
        return False
    if effective_stock(product, variant) > 0:
        return True
    return variant is not None and variant.allow_backorders


def clamp_quantity(requested: int, stock: int) -> int:
    """Keep a quantity stepper between 1 and the available stock."""

    upper = max(stock, 1)
    return max(1, min(requested, upper))
