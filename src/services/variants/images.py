"""Image selection for product views: swatches, main image and gallery."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

from src.config import settings
from src.models.product import Product, ProductImage, Variant

AttributeImageIndex = dict[str, dict[str, list[ProductImage]]]


def normalize_image_url(raw: str | None) -> str:
    """Turn whatever the API stored into a URL the browser can load."""

    if raw is None or not raw.strip():
        return settings.PLACEHOLDER_IMAGE_URL
    value = raw.strip()
    if value.startswith(("http://", "https://")):
        return value
    if value.startswith("/"):
        return f"{settings.asset_base_url}{value}"
    return f"{settings.asset_base_url}/files/{value.lstrip('/')}"


def primary_image(images: Sequence[ProductImage]) -> ProductImage | None:
    """The image flagged as primary, otherwise the first one."""

    for image in images:
        if image.is_primary:
            return image
    return images[0] if images else None


def build_attribute_image_index(variants: Iterable[Variant]) -> AttributeImageIndex:
    """Collect images attached to attribute values across all variants."""

    index: AttributeImageIndex = {}
    for variant in variants:
        for attribute in variant.attributes:
            bucket = index.setdefault(attribute.key, {}).setdefault(attribute.value, [])
            known = {image.url for image in bucket}
            for image in attribute.images:
                if image.url and image.url not in known:
                    bucket.append(image)
                    known.add(image.url)
    return index


def _selected_value_images(
    selection: Mapping[str, str],
    attribute_images: Mapping[str, Mapping[str, Sequence[ProductImage]]],
) -> list[ProductImage]:
    images: list[ProductImage] = []
    for key, value in selection.items():
        images.extend(attribute_images.get(key, {}).get(value, []))
    return images


def resolve_display_image(
    product: Product,
    variant: Variant | None,
    selection: Mapping[str, str],
    attribute_images: Mapping[str, Mapping[str, Sequence[ProductImage]]],
    manual_override: str | None = None,
) -> str:
    """Pick the main image.

    Priority: manual override, image of a selected attribute value, the
    resolved variant's images, the product's images, then the placeholder.
    """
    if manual_override:
        return normalize_image_url(manual_override)

    for key, value in selection.items():
        chosen = primary_image(attribute_images.get(key, {}).get(value, []))
        if chosen is not None:
            return normalize_image_url(chosen.url)

    if variant is not None:
        chosen = primary_image(variant.images)
        if chosen is not None:
            return normalize_image_url(chosen.url)

    chosen = primary_image(product.images)
    return normalize_image_url(chosen.url if chosen else None)


def build_thumbnails(
    product: Product,
    variant: Variant | None,
    selection: Mapping[str, str],
    attribute_images: Mapping[str, Mapping[str, Sequence[ProductImage]]],
) -> list[str]:
    """Ordered, de-duplicated gallery for the current selection."""

    candidates: list[ProductImage] = []
    if variant is not None:
        candidates.extend(variant.images)
    candidates.extend(_selected_value_images(selection, attribute_images))
    candidates.extend(product.images)

    thumbnails: list[str] = []
    for image in candidates:
        if not image.url:
            continue
        url = normalize_image_url(image.url)
        if url not in thumbnails:
            thumbnails.append(url)
    return thumbnails
