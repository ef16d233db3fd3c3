from datetime import datetime

from beanie import Document
from pydantic import BaseModel, Field


class ProductImage(BaseModel):
    url: str
    public_id: str | None = None


class Product(Document):
    """Catalog product. Owned by the catalog; orders read it and adjust only stock."""
    name: str
    price: int  # minor units
    discount_price: int | None = None
    stock: int = 0
    images: list[ProductImage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "products"
