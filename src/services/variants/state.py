"""One-shot product view state assembled from the resolver, image and pricing helpers."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from src.models.product import Product
from src.models.variant import VariantState
from src.services.variants.images import (
    build_attribute_image_index,
    build_thumbnails,
    resolve_display_image,
)
from src.services.variants.pricing import build_price_view, can_add_to_cart, clamp_quantity
from src.services.variants.resolver import (
    available_values,
    build_attribute_index,
    is_selection_complete,
    pick_initial_selection,
    resolve_selection,
    select_attribute,
)

logger = logging.getLogger(__name__)


def describe_variant_state(
    product: Product,
    selection: Mapping[str, str],
    manual_image: str | None = None,
    quantity: int = 1,
) -> VariantState:
    """Compute everything a product view renders for the given selection."""

    variants = product.variants
    index = build_attribute_index(variants)
    # Keys the product does not have can never match and are dropped.
    cleaned = {key: value for key, value in selection.items() if key in index}
    status, variant = resolve_selection(variants, cleaned)
    attribute_images = build_attribute_image_index(variants)
    pricing = build_price_view(product, variant)

    logger.debug(
        "Variant state for product %s: selection=%s status=%s",
        product.id,
        cleaned,
        status,
    )

    return VariantState(
        attribute_index=index,
        available_values=available_values(variants, index, cleaned),
        selection=cleaned,
        complete=is_selection_complete(index, cleaned),
        status=status,
        variant=variant,
        display_image=resolve_display_image(
            product,
            variant,
            cleaned,
            attribute_images,
            manual_override=manual_image,
        ),
        thumbnails=build_thumbnails(product, variant, cleaned, attribute_images),
        pricing=pricing,
        quantity=clamp_quantity(quantity, pricing.stock),
        can_add_to_cart=can_add_to_cart(product, variant),
    )


def initial_variant_state(product: Product) -> VariantState:
    return describe_variant_state(product, pick_initial_selection(product.variants))


def select_variant_value(
    product: Product,
    selection: Mapping[str, str],
    key: str,
    value: str | None,
    quantity: int = 1,
) -> VariantState:
    """Apply a click on an attribute value and describe the resulting state."""

    next_selection = select_attribute(product.variants, selection, key, value)
    return describe_variant_state(product, next_selection, quantity=quantity)
