"""Routes managing the promotion catalog and evaluating carts against it."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from redis.exceptions import RedisError

from src.models.evaluation import (
    EvaluationResult,
    ProductPromotions,
    PromotionApplyRequest,
    PromotionEvaluateRequest,
)
from src.models.promotion import Promotion, PromotionPayload
from src.services.promotions.catalog_store import (
    PromotionCatalogStore,
    get_catalog_store,
)
from src.services.promotions.engine import evaluate, promotions_for_product

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/promotions", tags=["promotions"])

CatalogDependency = Annotated[PromotionCatalogStore, Depends(get_catalog_store)]

_CATALOG_UNAVAILABLE = "Promotion catalog unavailable"


async def load_catalog(store: PromotionCatalogStore) -> list[Promotion]:
    """Read every stored promotion, translating Redis failures into a 503."""

    try:
        return await store.list_all()
    except RedisError as exc:
        logger.exception("Failed to read promotion catalog")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=_CATALOG_UNAVAILABLE,
        ) from exc


@router.post(
    "",
    response_model=Promotion,
    status_code=status.HTTP_201_CREATED,
    summary="Store a new promotion in the catalog",
)
async def create_promotion(
    payload: PromotionPayload,
    store: CatalogDependency,
) -> Promotion:
    try:
        return await store.create(payload)
    except RedisError as exc:
        logger.exception("Failed to store promotion %s", payload.name)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=_CATALOG_UNAVAILABLE,
        ) from exc


@router.get("", response_model=list[Promotion], summary="List stored promotions")
async def list_promotions(store: CatalogDependency) -> list[Promotion]:
    return await load_catalog(store)


@router.get(
    "/product/{product_id}",
    response_model=ProductPromotions,
    summary="Live promotions naming a product or its variants",
)
async def product_promotions(
    product_id: str,
    store: CatalogDependency,
    variant_id: Annotated[list[str] | None, Query()] = None,
) -> ProductPromotions:
    catalog = await load_catalog(store)
    return promotions_for_product(catalog, product_id, variant_id or [])


@router.post(
    "/apply",
    response_model=EvaluationResult,
    summary="Evaluate a checkout cart against the stored catalog",
)
async def apply_promotions(
    payload: PromotionApplyRequest,
    store: CatalogDependency,
) -> EvaluationResult:
    catalog = await load_catalog(store)
    result = evaluate(payload.to_snapshot(), catalog, payload.coupon_code)
    logger.info(
        "[promotions-apply]",
        extra={
            "customer_id": payload.customer_id,
            "items": len(payload.cart_items),
            "discount_total": str(result.discount_total),
            "coupon_status": result.coupon_status,
        },
    )
    return result


@router.post(
    "/evaluate",
    response_model=EvaluationResult,
    summary="Evaluate a cart against an inline promotion catalog",
)
async def evaluate_promotions(payload: PromotionEvaluateRequest) -> EvaluationResult:
    """Stateless variant of /apply; the caller supplies the promotions."""

    return evaluate(
        payload.cart,
        payload.promotions,
        payload.coupon_code,
        now=payload.now,
    )


@router.get(
    "/{promotion_id}",
    response_model=Promotion,
    summary="Fetch a stored promotion",
)
async def get_promotion(promotion_id: str, store: CatalogDependency) -> Promotion:
    try:
        promotion = await store.fetch(promotion_id)
    except RedisError as exc:
        logger.exception("Failed to read promotion %s", promotion_id)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=_CATALOG_UNAVAILABLE,
        ) from exc
    if promotion is None:
        raise HTTPException(status_code=404, detail="Unknown promotion id")
    return promotion


@router.delete(
    "/{promotion_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a promotion from the catalog",
)
async def delete_promotion(promotion_id: str, store: CatalogDependency) -> Response:
    try:
        removed = await store.delete(promotion_id)
    except RedisError as exc:
        logger.exception("Failed to delete promotion %s", promotion_id)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=_CATALOG_UNAVAILABLE,
        ) from exc
    if not removed:
        raise HTTPException(status_code=404, detail="Unknown promotion id")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
