"""Coupon validation route used by the checkout coupon field."""

from __future__ import annotations

import logging

from fastapi import APIRouter

from src.api.routes.promotions import CatalogDependency, load_catalog
from src.models.evaluation import CouponValidateRequest, CouponValidation
from src.services.promotions.engine import validate_coupon

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/coupon", tags=["coupons"])


@router.post(
    "/validate",
    response_model=CouponValidation,
    summary="Check whether a coupon applies to the current cart",
)
async def validate_coupon_code(
    payload: CouponValidateRequest,
    store: CatalogDependency,
) -> CouponValidation:
    catalog = await load_catalog(store)
    validation = validate_coupon(payload.to_snapshot(), catalog, payload.coupon)
    logger.info("Coupon %s validated: %s", validation.code, validation.status)
    return validation
