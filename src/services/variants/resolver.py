"""Attribute-by-attribute variant resolution.

Every function here is pure: results depend only on the arguments, so callers
may recompute them on each selection change without caching.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

from src.models.product import Variant
from src.models.variant import ResolutionStatus

AttributeIndex = dict[str, list[str]]
Selection = dict[str, str]


def variant_assignments(variant: Variant) -> Selection | None:
    """Return the variant's assignments as a mapping, or None when malformed.

    A variant listing the same key twice with different values cannot be
    matched unambiguously and is treated as having no usable attribute data.
    """
    assignments: Selection = {}
    for attribute in variant.attributes:
        previous = assignments.get(attribute.key)
        if previous is not None and previous != attribute.value:
            return None
        assignments[attribute.key] = attribute.value
    return assignments


def build_attribute_index(variants: Iterable[Variant]) -> AttributeIndex:
    """Map each attribute key to its distinct values, in first-seen order."""

    index: AttributeIndex = {}
    for variant in variants:
        for attribute in variant.attributes:
            values = index.setdefault(attribute.key, [])
            if attribute.value not in values:
                values.append(attribute.value)
    return index


def _consistent(assignments: Selection, selection: Mapping[str, str], skip_key: str | None = None) -> bool:
    return all(
        assignments.get(key) == value
        for key, value in selection.items()
        if key != skip_key
    )


def available_values(
    variants: Sequence[Variant],
    attribute_index: Mapping[str, Sequence[str]],
    selection: Mapping[str, str],
) -> AttributeIndex:
    """Values of each key still reachable under the current selection.

    A value ``v`` of key ``k`` is reachable when some variant assigns ``k=v``
    and agrees with every *other* selected key. The key being evaluated is
    ignored so the shopper can switch between its values directly.
    Selected keys the index does not know are ignored.
    """
    known = {key: value for key, value in selection.items() if key in attribute_index}
    parsed = [a for a in (variant_assignments(v) for v in variants) if a is not None]
    available: AttributeIndex = {}
    for key, values in attribute_index.items():
        available[key] = [
            value
            for value in values
            if any(
                assignments.get(key) == value and _consistent(assignments, known, key)
                for assignments in parsed
            )
        ]
    return available


def matching_variants(variants: Sequence[Variant], selection: Mapping[str, str]) -> list[Variant]:
    """Variants agreeing with every key of a (possibly partial) selection."""

    matches = []
    for variant in variants:
        assignments = variant_assignments(variant)
        if assignments is not None and _consistent(assignments, selection):
            matches.append(variant)
    return matches


def is_selection_complete(attribute_index: Mapping[str, Sequence[str]], selection: Mapping[str, str]) -> bool:
    return bool(attribute_index) and set(selection) == set(attribute_index)


def resolve_selection(
    variants: Sequence[Variant],
    selection: Mapping[str, str],
) -> tuple[ResolutionStatus, Variant | None]:
    """Resolve a selection to a single variant and report why when it cannot."""

    index = build_attribute_index(variants)
    if not is_selection_complete(index, selection):
        return ResolutionStatus.INCOMPLETE, None

    matches = [
        variant
        for variant in variants
        if variant_assignments(variant) == dict(selection)
    ]
    if not matches:
        return ResolutionStatus.NO_MATCH, None
    if len(matches) > 1:
        return ResolutionStatus.AMBIGUOUS, None
    return ResolutionStatus.RESOLVED, matches[0]


def resolve_variant(variants: Sequence[Variant], selection: Mapping[str, str]) -> Variant | None:
    """The unique variant whose assignments equal the selection, else None."""

    _, variant = resolve_selection(variants, selection)
    return variant


def pick_initial_selection(variants: Sequence[Variant]) -> Selection:
    """Default selection when a product view opens.

    Tries the first value of every key; falls back to the first variant's own
    assignments when that combination does not exist.
    """
    if not variants:
        return {}

    index = build_attribute_index(variants)
    first_values = {key: values[0] for key, values in index.items() if values}
    if resolve_variant(variants, first_values) is not None:
        return first_values

    return {attribute.key: attribute.value for attribute in variants[0].attributes}


def select_attribute(
    variants: Sequence[Variant],
    selection: Mapping[str, str],
    key: str,
    value: str | None,
) -> Selection:
    """Apply a shopper's click on an attribute value.

    Unreachable values are ignored. When the new selection narrows the
    candidates to exactly one variant, the selection is synchronised with all
    of that variant's assignments. ``value=None`` clears the key.
    """
    if value is None:
        return {k: v for k, v in selection.items() if k != key}

    index = build_attribute_index(variants)
    reachable = available_values(variants, index, selection).get(key, [])
    if value not in reachable:
        return dict(selection)

    next_selection = {**selection, key: value}
    matches = matching_variants(variants, next_selection)
    if len(matches) == 1:
        return variant_assignments(matches[0]) or next_selection
    return next_selection
