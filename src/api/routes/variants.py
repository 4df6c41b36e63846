"""Routes exposing variant resolution for product views."""

from __future__ import annotations

import logging

from fastapi import APIRouter

from src.models.variant import (
    VariantInitialRequest,
    VariantSelectRequest,
    VariantState,
    VariantStateRequest,
)
from src.services.variants.state import (
    describe_variant_state,
    initial_variant_state,
    select_variant_value,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/variants", tags=["variants"])


@router.post(
    "/state",
    response_model=VariantState,
    summary="Describe the product view for a (possibly partial) selection",
)
async def variant_state(payload: VariantStateRequest) -> VariantState:
    state = describe_variant_state(
        payload.product,
        payload.selection,
        payload.manual_image,
        payload.quantity,
    )
    logger.info(
        "Variant state computed for product %s: %s",
        payload.product.id,
        state.status,
    )
    return state


@router.post(
    "/initial",
    response_model=VariantState,
    summary="Default selection shown when a product view opens",
)
async def variant_initial(payload: VariantInitialRequest) -> VariantState:
    return initial_variant_state(payload.product)


@router.post(
    "/select",
    response_model=VariantState,
    summary="Apply a click on an attribute value",
)
async def variant_select(payload: VariantSelectRequest) -> VariantState:
    """Ignore unreachable values and sync to a variant once only one remains."""

    state = select_variant_value(
        payload.product,
        payload.selection,
        payload.key,
        payload.value,
        payload.quantity,
    )
    logger.info(
        "[variant-select]",
        extra={
            "product_id": payload.product.id,
            "key": payload.key,
            "status": str(state.status),
        },
    )
    return state
