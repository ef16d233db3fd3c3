"""Order ledger: quote, verified commit with stock reservation, status lifecycle, search."""

import re
import time
from datetime import datetime
from typing import Any

from beanie import PydanticObjectId, UpdateResponse
from beanie.operators import NotIn, Set
from pymongo.errors import DuplicateKeyError

from storefront.core.audit import log_event
from storefront.core.exceptions import (
    ConflictError,
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
    PaymentAuthenticationError,
    ValidationError,
)
from storefront.core.logging import get_logger
from storefront.core.pagination import page_meta, paginate
from storefront.models.order import (
    NON_CANCELLABLE,
    ORDER_STATUSES,
    PAYMENT_STATUSES,
    Customer,
    Order,
    PaymentInfo,
    ProductSnapshot,
    ShippingAddress,
)
from storefront.services import inventory
from storefront.services import payments as payments_service
from storefront.services.sequences import next_order_id

log = get_logger(__name__)

CUSTOMER_FIELDS = ("name", "email", "phone")
ADDRESS_FIELDS = ("address", "city", "state", "pincode")
TAX = 0  # tax is included in product prices


def compute_amounts(unit_price: int, quantity: int, shipping_charge: int = 0) -> dict[str, int]:
    subtotal = unit_price * quantity
    return {
        "subtotal": subtotal,
        "shipping_charge": shipping_charge,
        "tax": TAX,
        "total_amount": subtotal + shipping_charge + TAX,
    }


def _check_quantities(quantity: int, shipping_charge: int) -> None:
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")
    if shipping_charge < 0:
        raise ValidationError("Shipping charge cannot be negative")


async def quote(product_id: str, quantity: int = 1, shipping_charge: int = 0) -> dict[str, Any]:
    """Price a purchase and open a gateway order for it. Persists nothing and leaves stock alone."""
    _check_quantities(quantity, shipping_charge)
    product = await inventory.get_product(product_id)
    if product.stock < quantity:
        raise InsufficientStockError(details={"available": product.stock, "requested": quantity})
    price = inventory.unit_price(product)
    amounts = compute_amounts(price, quantity, shipping_charge)
    gateway_order = await payments_service.create_gateway_order(
        amounts["total_amount"],
        receipt=f"order_{int(time.time() * 1000)}",
        notes={
            "productId": str(product.id),
            "productName": product.name,
            "quantity": quantity,
            "shippingCharge": shipping_charge,
        },
    )
    log.info("order_quoted", product_id=str(product.id), quantity=quantity, total_amount=amounts["total_amount"])
    return {
        "gatewayOrderId": gateway_order["id"],
        "amount": gateway_order["amount"],
        "currency": gateway_order["currency"],
        "product": {
            "id": str(product.id),
            "name": product.name,
            "price": price,
            "image": inventory.primary_image(product),
        },
        "quantity": quantity,
        "subtotal": amounts["subtotal"],
        "shippingCharge": amounts["shipping_charge"],
        "tax": amounts["tax"],
        "totalAmount": amounts["total_amount"],
    }


def missing_checkout_fields(customer: dict | None, shipping_address: dict | None) -> list[str]:
    """Dotted names of required customer/address fields that are absent or blank."""
    missing = []
    customer = customer or {}
    shipping_address = shipping_address or {}
    for field in CUSTOMER_FIELDS:
        if not str(customer.get(field) or "").strip():
            missing.append(f"customer.{field}")
    for field in ADDRESS_FIELDS:
        if not str(shipping_address.get(field) or "").strip():
            missing.append(f"shippingAddress.{field}")
    return missing


async def check_paid_order(gateway_order_id: str, product_id: str, quantity: int, total_amount: int) -> None:
    """The paid gateway order must be for this product, quantity and total."""
    gateway_order = await payments_service.fetch_gateway_order(gateway_order_id)
    if not gateway_order:
        raise PaymentAuthenticationError("Unknown payment order")
    notes = gateway_order.get("notes") or {}
    # Razorpay may hand note values back as strings.
    mismatched = (
        gateway_order.get("amount") != total_amount
        or ("productId" in notes and str(notes["productId"]) != product_id)
        or ("quantity" in notes and str(notes["quantity"]) != str(quantity))
    )
    if mismatched:
        log.warning(
            "payment_order_mismatch",
            gateway_order_id=gateway_order_id,
            paid_amount=gateway_order.get("amount"),
            total_amount=total_amount,
        )
        raise PaymentAuthenticationError("Payment does not match this order")


async def commit_order(
    *,
    gateway_order_id: str | None,
    payment_id: str | None,
    signature: str | None,
    product_id: str,
    customer: dict | None,
    shipping_address: dict | None,
    quantity: int = 1,
    shipping_charge: int = 0,
    courier_name: str | None = None,
) -> Order:
    """
    Create an order from a verified payment and take its stock.
    The order insert and the stock decrement succeed or fail together.
    """
    missing = missing_checkout_fields(customer, shipping_address)
    if missing:
        raise ValidationError("Customer details and shipping address are required", missing=missing)
    _check_quantities(quantity, shipping_charge)
    if not payments_service.verify_payment(gateway_order_id, payment_id, signature):
        raise PaymentAuthenticationError(
            "Missing payment details" if not (gateway_order_id and payment_id and signature)
            else "Invalid payment signature"
        )
    existing = await Order.find_one(
        Order.payment.razorpay_order_id == gateway_order_id,
        Order.payment.razorpay_payment_id == payment_id,
    )
    if existing:
        raise ConflictError("Payment already used for an order", details={"orderId": existing.order_id})

    product = await inventory.get_product(product_id)
    if product.stock < quantity:
        raise InsufficientStockError(details={"available": product.stock, "requested": quantity})
    price = inventory.unit_price(product)
    amounts = compute_amounts(price, quantity, shipping_charge)
    await check_paid_order(gateway_order_id, str(product.id), quantity, amounts["total_amount"])

    order = Order(
        order_id=await next_order_id(),
        customer=Customer(**{f: customer[f] for f in CUSTOMER_FIELDS}),
        shipping_address=ShippingAddress(**{f: str(shipping_address[f]).strip() for f in ADDRESS_FIELDS}),
        product=ProductSnapshot(
            product_id=product.id,
            name=product.name,
            price=price,
            quantity=quantity,
            image=inventory.primary_image(product),
        ),
        payment=PaymentInfo(
            razorpay_order_id=gateway_order_id,
            razorpay_payment_id=payment_id,
            razorpay_signature=signature,
            method="razorpay",
            status="completed",
        ),
        order_status="confirmed",
        notes=f"Shipping via {courier_name}" if courier_name else None,
        **amounts,
    )
    try:
        await order.insert()
    except DuplicateKeyError as e:
        key_pattern = (e.details or {}).get("keyPattern") or {}
        if any(k.startswith("payment.") for k in key_pattern):
            raise ConflictError("Payment already used for an order") from None
        raise

    try:
        reserved = await inventory.reserve_stock(product.id, quantity)
    except Exception:
        await order.delete()
        raise
    if not reserved:
        await order.delete()
        raise InsufficientStockError(details={"requested": quantity})

    log.info(
        "order_committed",
        order_id=order.order_id,
        product_id=str(product.id),
        quantity=quantity,
        total_amount=order.total_amount,
        gateway_order_id=gateway_order_id,
    )
    await log_event("order_created", "order", order.order_id, {"total_amount": order.total_amount}, actor="customer")
    return order


async def get_order(order_id: str | PydanticObjectId) -> Order:
    order = await Order.get(inventory.parse_object_id(order_id, "Order"))
    if not order:
        raise NotFoundError("Order not found")
    return order


def tracking_view(order: Order) -> dict[str, Any]:
    """Public projection: no customer contact or payment data."""
    return {
        "orderId": order.order_id,
        "orderStatus": order.order_status,
        "product": {
            "productId": str(order.product.product_id),
            "name": order.product.name,
            "price": order.product.price,
            "quantity": order.product.quantity,
            "image": order.product.image,
        },
        "shippingAddress": order.shipping_address.model_dump(),
        "trackingNumber": order.tracking_number,
        "createdAt": order.created_at.isoformat(),
        "deliveredAt": order.delivered_at.isoformat() if order.delivered_at else None,
    }


async def track_order(public_order_id: str) -> dict[str, Any]:
    order = await Order.find_one(Order.order_id == public_order_id)
    if not order:
        raise NotFoundError("Order not found")
    return tracking_view(order)


async def update_status(
    order_id: str | PydanticObjectId,
    order_status: str,
    tracking_number: str | None = None,
) -> Order:
    """
    Set any status from any other, except that cancelling goes through cancel_order.
    delivered_at is set only while the order is delivered.
    """
    if order_status not in ORDER_STATUSES:
        raise ValidationError(f"Invalid order status: {order_status}", invalid=["orderStatus"])
    if order_status == "cancelled":
        order = await cancel_order(order_id)
        if tracking_number:
            await order.set({Order.tracking_number: tracking_number})
        return order

    order = await get_order(order_id)
    previous = order.order_status
    now = datetime.utcnow()
    changes = {
        Order.order_status: order_status,
        Order.delivered_at: now if order_status == "delivered" else None,
        Order.updated_at: now,
    }
    if tracking_number:
        changes[Order.tracking_number] = tracking_number
    # Applies only if nobody moved the order since it was read (e.g. a concurrent cancel).
    updated = await Order.find_one(
        Order.id == order.id,
        Order.order_status == previous,
    ).update(Set(changes), response_type=UpdateResponse.NEW_DOCUMENT)
    if updated is None:
        raise ConflictError("Order was modified concurrently, retry")
    log.info("order_status_updated", order_id=updated.order_id, previous=previous, status=order_status)
    await log_event(
        "order_status_updated",
        "order",
        updated.order_id,
        {"from": previous, "to": order_status, "tracking_number": tracking_number},
        actor="admin",
    )
    return updated


async def cancel_order(order_id: str | PydanticObjectId) -> Order:
    """Cancel and give the stock back. Shipped, delivered and already-cancelled orders are refused."""
    order = await get_order(order_id)
    previous = order.order_status
    # The status flip is the guard: only one caller can move the order to cancelled.
    updated = await Order.find_one(
        Order.id == order.id,
        NotIn(Order.order_status, [*NON_CANCELLABLE, "cancelled"]),
    ).update(
        Set({Order.order_status: "cancelled", Order.updated_at: datetime.utcnow()}),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )
    if updated is None:
        current = await get_order(order.id)
        if current.order_status == "cancelled":
            raise InvalidTransitionError("Order is already cancelled")
        raise InvalidTransitionError("Cannot cancel order that is shipped or delivered")
    # Best effort: a product deleted from the catalog has no stock to restore.
    await inventory.restore_stock(updated.product.product_id, updated.product.quantity)
    log.info("order_cancelled", order_id=updated.order_id, previous=previous, quantity=updated.product.quantity)
    await log_event("order_cancelled", "order", updated.order_id, {"from": previous}, actor="admin")
    return updated


async def delete_order(order_id: str | PydanticObjectId) -> None:
    """Hard delete. Stock is not restored."""
    order = await get_order(order_id)
    await order.delete()
    log.info("order_deleted", order_id=order.order_id, order_status=order.order_status)
    await log_event("order_deleted", "order", order.order_id, {"order_status": order.order_status}, actor="admin")


def build_order_filter(
    status: str | None = None,
    payment_status: str | None = None,
    search: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> dict[str, Any]:
    """Mongo filter for the admin order search."""
    query: dict[str, Any] = {}
    if status:
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Invalid order status: {status}", invalid=["status"])
        query["order_status"] = status
    if payment_status:
        if payment_status not in PAYMENT_STATUSES:
            raise ValidationError(f"Invalid payment status: {payment_status}", invalid=["paymentStatus"])
        query["payment.status"] = payment_status
    if search and search.strip():
        pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
        query["$or"] = [
            {"order_id": pattern},
            {"customer.name": pattern},
            {"customer.email": pattern},
            {"customer.phone": pattern},
        ]
    if start_date or end_date:
        created: dict[str, datetime] = {}
        if start_date:
            created["$gte"] = start_date
        if end_date:
            created["$lte"] = end_date
        query["created_at"] = created
    return query


async def list_orders(
    page: int = 1,
    limit: int = 10,
    status: str | None = None,
    payment_status: str | None = None,
    search: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> tuple[list[Order], dict[str, int]]:
    """Newest first; returns (orders, pagination)."""
    page, limit, skip = paginate(page, limit)
    query = build_order_filter(status, payment_status, search, start_date, end_date)
    orders = await Order.find(query).sort(-Order.created_at).skip(skip).limit(limit).to_list()
    total = await Order.find(query).count()
    return orders, page_meta(page, limit, total)
