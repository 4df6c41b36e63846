"""Product, variant and attribute schemas as served by the commerce API."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from src.models.money import Money


class ProductImage(BaseModel):
    """Image reference attached to a product, variant or attribute value."""

    url: str = Field(..., description="Absolute URL, API path or bare file name")
    alt_text: str | None = Field(
        None,
        validation_alias=AliasChoices("alt_text", "altText"),
    )
    is_primary: bool = Field(
        False,
        validation_alias=AliasChoices("is_primary", "isPrimary"),
    )

    @model_validator(mode="before")
    @classmethod
    def _wrap_plain_url(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"url": data}
        return data


class AttributeAssignment(BaseModel):
    """A single (key, value) pair of a variant, e.g. ("Cor", "Azul")."""

    key: str = Field(..., validation_alias=AliasChoices("key", "name"))
    value: str = Field(..., validation_alias=AliasChoices("value", "val"))
    images: list[ProductImage] = Field(
        default_factory=list,
        validation_alias=AliasChoices(
            "images",
            "variantAttributeImage",
            "existingImages",
        ),
        description="Images specific to this attribute value (swatches)",
    )

    @field_validator("value", mode="before")
    @classmethod
    def _stringify_value(cls, value: Any) -> Any:
        if value is None:
            return value
        return str(value)


class Variant(BaseModel):
    """Concrete purchasable SKU of a product."""

    id: str
    sku: str | None = None
    price_of: Money | None = Field(None, ge=0, description="List price override")
    price_per: Money | None = Field(None, ge=0, description="Selling price override")
    stock: int | None = Field(None, ge=0)
    allow_backorders: bool = Field(
        False,
        validation_alias=AliasChoices("allow_backorders", "allowBackorders"),
    )
    attributes: list[AttributeAssignment] = Field(
        default_factory=list,
        validation_alias=AliasChoices(
            "attributes",
            "variantAttribute",
            "variantAttributes",
        ),
    )
    images: list[ProductImage] = Field(
        default_factory=list,
        validation_alias=AliasChoices("images", "productVariantImage"),
    )


class Product(BaseModel):
    """Product with its ordered collection of variants."""

    id: str
    name: str
    slug: str | None = None
    brand: str | None = None
    price_of: Money | None = Field(None, ge=0, description="List price")
    price_per: Money | None = Field(None, ge=0, description="Selling price")
    stock: int = Field(0, ge=0)
    images: list[ProductImage] = Field(default_factory=list)
    variants: list[Variant] = Field(default_factory=list)
