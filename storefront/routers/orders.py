from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from storefront.deps import require_admin
from storefront.services import order_stats as stats_service
from storefront.services import orders as orders_service

router = APIRouter()


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QuoteRequest(CamelModel):
    product_id: str
    quantity: int = 1
    shipping_charge: int = 0  # minor units


class CustomerIn(CamelModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None


class ShippingAddressIn(CamelModel):
    address: str | None = None
    city: str | None = None
    state: str | None = None
    pincode: str | None = None


class VerifyPaymentRequest(CamelModel):
    gateway_order_id: str | None = None
    payment_id: str | None = None
    signature: str | None = None
    product_id: str
    quantity: int = 1
    customer: CustomerIn | None = None
    shipping_address: ShippingAddressIn | None = None
    shipping_charge: int = 0
    courier_name: str | None = None


class StatusUpdateRequest(CamelModel):
    order_status: str
    tracking_number: str | None = None


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def serialize_order(order) -> dict[str, Any]:
    """Full admin view of an order."""
    return {
        "id": str(order.id),
        "orderId": order.order_id,
        "customer": order.customer.model_dump(),
        "shippingAddress": order.shipping_address.model_dump(),
        "product": {
            "productId": str(order.product.product_id),
            "name": order.product.name,
            "price": order.product.price,
            "quantity": order.product.quantity,
            "image": order.product.image,
        },
        "payment": {
            "razorpayOrderId": order.payment.razorpay_order_id,
            "razorpayPaymentId": order.payment.razorpay_payment_id,
            "razorpaySignature": order.payment.razorpay_signature,
            "method": order.payment.method,
            "status": order.payment.status,
        },
        "subtotal": order.subtotal,
        "shippingCharge": order.shipping_charge,
        "tax": order.tax,
        "totalAmount": order.total_amount,
        "orderStatus": order.order_status,
        "trackingNumber": order.tracking_number,
        "notes": order.notes,
        "deliveredAt": _iso(order.delivered_at),
        "createdAt": _iso(order.created_at),
        "updatedAt": _iso(order.updated_at),
    }


# Public


@router.post("/quote")
async def order_quote(body: QuoteRequest):
    """Price a product purchase and open a gateway order for checkout."""
    data = await orders_service.quote(body.product_id, body.quantity, body.shipping_charge)
    return {"success": True, "data": data}


@router.post("/verify-payment", status_code=201)
async def order_verify_payment(body: VerifyPaymentRequest):
    """Verify the checkout signature, then create the order and take stock."""
    order = await orders_service.commit_order(
        gateway_order_id=body.gateway_order_id,
        payment_id=body.payment_id,
        signature=body.signature,
        product_id=body.product_id,
        customer=body.customer.model_dump() if body.customer else None,
        shipping_address=body.shipping_address.model_dump() if body.shipping_address else None,
        quantity=body.quantity,
        shipping_charge=body.shipping_charge,
        courier_name=body.courier_name,
    )
    return {"success": True, "message": "Order placed successfully", "data": serialize_order(order)}


@router.get("/track/{order_id}")
async def order_track(order_id: str):
    """Public order tracking by order number."""
    return {"success": True, "data": await orders_service.track_order(order_id)}


# Admin


@router.get("", dependencies=[Depends(require_admin)])
async def orders_list(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: str | None = Query(None),
    payment_status: str | None = Query(None, alias="paymentStatus"),
    search: str | None = Query(None),
    start_date: datetime | None = Query(None, alias="startDate"),
    end_date: datetime | None = Query(None, alias="endDate"),
):
    """Search orders, newest first."""
    orders, pagination = await orders_service.list_orders(
        page=page,
        limit=limit,
        status=status,
        payment_status=payment_status,
        search=search,
        start_date=start_date,
        end_date=end_date,
    )
    return {
        "success": True,
        "data": [serialize_order(o) for o in orders],
        "pagination": pagination,
    }


@router.get("/stats", dependencies=[Depends(require_admin)])
async def orders_stats():
    return {"success": True, "data": await stats_service.order_stats()}


@router.get("/chart/revenue", dependencies=[Depends(require_admin)])
async def orders_revenue_chart():
    """Monthly completed revenue for the current year."""
    return {"success": True, "data": await stats_service.revenue_chart()}


@router.get("/chart/weekly", dependencies=[Depends(require_admin)])
async def orders_weekly_chart():
    """Orders per day for the current week (Sun-Sat)."""
    return {"success": True, "data": await stats_service.weekly_chart()}


@router.get("/{id}", dependencies=[Depends(require_admin)])
async def order_get(id: str):
    order = await orders_service.get_order(id)
    return {"success": True, "data": serialize_order(order)}


@router.put("/{id}/status", dependencies=[Depends(require_admin)])
async def order_update_status(id: str, body: StatusUpdateRequest):
    order = await orders_service.update_status(id, body.order_status, body.tracking_number)
    return {"success": True, "message": "Order status updated successfully", "data": serialize_order(order)}


@router.put("/{id}/cancel", dependencies=[Depends(require_admin)])
async def order_cancel(id: str):
    """Cancel an order that has not shipped; stock is restored."""
    order = await orders_service.cancel_order(id)
    return {"success": True, "message": "Order cancelled successfully", "data": serialize_order(order)}


@router.delete("/{id}", dependencies=[Depends(require_admin)])
async def order_delete(id: str):
    await orders_service.delete_order(id)
    return {"success": True, "message": "Order deleted successfully"}
