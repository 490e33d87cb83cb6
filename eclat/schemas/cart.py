from __future__ import annotations

from pydantic import BaseModel, Field


class CartProductIn(BaseModel):
    id: str
    category_id: str | None = None
    price: int = Field(..., ge=0)  # minor units


class CartItemIn(BaseModel):
    product: CartProductIn
    quantity: int = Field(1, ge=1, le=100)
