"""
Pydantic schema for the canonical catalog product with validation
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional
from decimal import Decimal
from datetime import datetime
from models.base import Category, PriceScore, ProductCondition


class NormalizedProduct(BaseModel):
    """
    Canonical, catalog-ready product.

    Ensures:
    - Title and source_url are present after trimming
    - Price is a non-negative decimal
    - Category is a member of the closed taxonomy
    """

    title: str = Field(..., min_length=1, max_length=500)
    description: str = ""
    price: Decimal = Field(..., ge=0)
    currency: str = Field("EUR", min_length=3, max_length=3)
    image_url: Optional[str] = Field(None, max_length=2048)
    source_url: str = Field(..., min_length=1, max_length=2048)
    platform: str = Field(..., min_length=1, max_length=100)
    category: Category
    condition: ProductCondition = ProductCondition.NEW
    price_score: Optional[PriceScore] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("title", "source_url", "platform", mode="before")
    @classmethod
    def strip_required(cls, v):
        if isinstance(v, str):
            v = v.strip()
        return v

    @field_validator("description", mode="before")
    @classmethod
    def clean_description(cls, v):
        if v is None:
            return ""
        return str(v).strip()

    @field_validator("currency", mode="before")
    @classmethod
    def upper_currency(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("image_url", mode="before")
    @classmethod
    def empty_image_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def to_row(self) -> dict:
        """Column values for the products table"""
        return self.model_dump(exclude={"created_at", "updated_at"})
