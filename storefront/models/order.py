from datetime import datetime
from typing import Literal

import pymongo
from beanie import Document, Indexed, PydanticObjectId
from pydantic import BaseModel, Field, field_validator
from pymongo import IndexModel

OrderStatus = Literal["pending", "confirmed", "processing", "shipped", "delivered", "cancelled"]
PaymentStatus = Literal["pending", "completed", "failed", "refunded"]
PaymentMethod = Literal["razorpay", "cod"]

ORDER_STATUSES: tuple[str, ...] = ("pending", "confirmed", "processing", "shipped", "delivered", "cancelled")
PAYMENT_STATUSES: tuple[str, ...] = ("pending", "completed", "failed", "refunded")
NON_CANCELLABLE: tuple[str, ...] = ("shipped", "delivered")


class Customer(BaseModel):
    """Customer details copied onto the order; not a reference to a user account."""
    name: str
    email: str
    phone: str

    @field_validator("name", "phone")
    @classmethod
    def _strip(cls, v: str) -> str:
        return v.strip()

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class ShippingAddress(BaseModel):
    address: str
    city: str
    state: str
    pincode: str


class ProductSnapshot(BaseModel):
    """Product as it was when the order was placed. Never re-synced from the live product."""
    model_config = {"frozen": True}

    product_id: PydanticObjectId
    name: str
    price: int  # unit price, minor units
    quantity: int = 1
    image: str | None = None


class PaymentInfo(BaseModel):
    razorpay_order_id: str | None = None
    razorpay_payment_id: str | None = None
    razorpay_signature: str | None = None
    method: PaymentMethod = "razorpay"
    status: PaymentStatus = "pending"


class Order(Document):
    order_id: Indexed(str, unique=True)
    customer: Customer
    shipping_address: ShippingAddress
    product: ProductSnapshot
    payment: PaymentInfo = Field(default_factory=PaymentInfo)
    # Money in minor currency units (paise); total_amount = subtotal + shipping_charge + tax
    subtotal: int
    shipping_charge: int = 0
    tax: int = 0
    total_amount: int
    order_status: OrderStatus = "pending"
    tracking_number: str | None = None
    notes: str | None = None
    delivered_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "orders"
        indexes = [
            [("customer.email", pymongo.ASCENDING)],
            [("customer.phone", pymongo.ASCENDING)],
            [("order_status", pymongo.ASCENDING)],
            [("created_at", pymongo.DESCENDING)],
            IndexModel(
                [
                    ("payment.razorpay_order_id", pymongo.ASCENDING),
                    ("payment.razorpay_payment_id", pymongo.ASCENDING),
                ],
                name="payment_reference_unique",
                unique=True,
                partialFilterExpression={"payment.razorpay_payment_id": {"$type": "string"}},
            ),
        ]
