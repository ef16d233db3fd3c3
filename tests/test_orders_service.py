"""Order ledger against a real MongoDB test database (skipped when none is reachable)."""

import asyncio
from datetime import datetime, timedelta

import pytest
from beanie import PydanticObjectId

from storefront.core.config import get_settings
from storefront.core.exceptions import (
    ConflictError,
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
    PaymentAuthenticationError,
    ValidationError,
)
from storefront.core.security import payment_signature

pytestmark = pytest.mark.asyncio

CUSTOMER = {"name": "Asha Rao", "email": "Asha@Example.com", "phone": "9876543210"}
ADDRESS = {"address": "12 MG Road", "city": "Pune", "state": "MH", "pincode": "411001"}


async def _product(stock=5, price=1000, discount_price=None):
    from storefront.models.product import Product, ProductImage
    p = Product(
        name="Brass Diya",
        price=price,
        discount_price=discount_price,
        stock=stock,
        images=[ProductImage(url="https://img.example/diya.jpg")],
    )
    await p.insert()
    return p


# Gateway orders the stubbed Razorpay "knows", keyed by gateway order id.
PAID_ORDERS: dict[str, dict] = {}


@pytest.fixture(autouse=True)
def paid_orders(monkeypatch):
    from storefront.services import payments as payments_service
    PAID_ORDERS.clear()

    async def fake_fetch(gateway_order_id):
        return PAID_ORDERS.get(gateway_order_id)

    monkeypatch.setattr(payments_service, "fetch_gateway_order", fake_fetch)
    return PAID_ORDERS


async def _commit(product, gateway_order_id="order_ABC", payment_id="pay_123", quantity=2, shipping_charge=50, **kw):
    from storefront.services import inventory
    from storefront.services import orders as orders_service
    paid_amount = kw.pop("paid_amount", None)
    if paid_amount is None:
        paid_amount = inventory.unit_price(product) * quantity + shipping_charge
    PAID_ORDERS.setdefault(gateway_order_id, {
        "id": gateway_order_id,
        "amount": paid_amount,
        "currency": "INR",
        "notes": {"productId": str(product.id), "quantity": quantity},
    })
    kwargs = dict(
        gateway_order_id=gateway_order_id,
        payment_id=payment_id,
        signature=payment_signature(gateway_order_id, payment_id, get_settings().razorpay_key_secret),
        product_id=str(product.id),
        customer=dict(CUSTOMER),
        shipping_address=dict(ADDRESS),
        quantity=quantity,
        shipping_charge=shipping_charge,
    )
    kwargs.update(kw)
    return await orders_service.commit_order(**kwargs)


async def _stock(product):
    from storefront.models.product import Product
    return (await Product.get(product.id)).stock


async def _order_count():
    from storefront.models.order import Order
    return await Order.find_all().count()


@pytest.fixture
def gateway(monkeypatch):
    from storefront.services import payments as payments_service
    calls = []

    async def fake_create(amount_paise, receipt, notes=None):
        calls.append({"amount": amount_paise, "receipt": receipt, "notes": notes})
        return {"id": f"order_G{len(calls)}", "amount": amount_paise, "currency": "INR"}

    monkeypatch.setattr(payments_service, "create_gateway_order", fake_create)
    return calls


async def test_quote_then_commit_scenario(db, gateway):
    from storefront.services import orders as orders_service
    product = await _product(stock=5, price=1000)

    q = await orders_service.quote(str(product.id), quantity=2, shipping_charge=50)
    assert q["subtotal"] == 2000
    assert q["totalAmount"] == 2050
    assert gateway[0]["amount"] == 2050
    assert q["product"]["image"] == "https://img.example/diya.jpg"
    # quoting neither persists nor reserves
    assert await _stock(product) == 5
    assert await _order_count() == 0

    order = await _commit(product, courier_name="Delhivery")
    assert order.total_amount == 2050
    assert order.total_amount == order.subtotal + order.shipping_charge + order.tax
    assert order.order_status == "confirmed"
    assert order.payment.status == "completed"
    assert order.customer.email == "asha@example.com"
    assert order.notes == "Shipping via Delhivery"
    assert await _stock(product) == 3

    with pytest.raises(ConflictError):
        await _commit(product)
    assert await _stock(product) == 3
    assert await _order_count() == 1


async def test_quote_uses_discount_price_and_checks_stock(db, gateway):
    from storefront.services import orders as orders_service
    product = await _product(stock=1, price=1000, discount_price=750)
    q = await orders_service.quote(str(product.id))
    assert q["product"]["price"] == 750
    assert q["totalAmount"] == 750
    with pytest.raises(InsufficientStockError):
        await orders_service.quote(str(product.id), quantity=2)
    with pytest.raises(NotFoundError):
        await orders_service.quote(str(PydanticObjectId()))
    with pytest.raises(NotFoundError):
        await orders_service.quote("not-an-id")


async def test_invalid_signature_mutates_nothing(db):
    product = await _product(stock=5)
    with pytest.raises(PaymentAuthenticationError):
        await _commit(product, signature="0" * 64)
    with pytest.raises(PaymentAuthenticationError):
        await _commit(product, payment_id=None)
    assert await _stock(product) == 5
    assert await _order_count() == 0


async def test_missing_customer_fields_mutates_nothing(db):
    product = await _product(stock=5)
    with pytest.raises(ValidationError) as info:
        await _commit(product, customer={"name": "Asha", "email": "asha@example.com"})
    assert info.value.details["missing"] == ["customer.phone"]
    assert await _stock(product) == 5
    assert await _order_count() == 0


async def test_quantity_over_stock_mutates_nothing(db):
    product = await _product(stock=1)
    with pytest.raises(InsufficientStockError):
        await _commit(product, quantity=2)
    assert await _stock(product) == 1
    assert await _order_count() == 0


async def test_concurrent_commits_never_oversell(db):
    product = await _product(stock=3)
    attempts = [
        _commit(product, gateway_order_id=f"order_{i}", payment_id=f"pay_{i}", quantity=1)
        for i in range(10)
    ]
    results = await asyncio.gather(*attempts, return_exceptions=True)
    committed = [r for r in results if not isinstance(r, Exception)]
    refused = [r for r in results if isinstance(r, Exception)]
    assert len(committed) == 3
    assert all(isinstance(r, InsufficientStockError) for r in refused)
    assert await _stock(product) == 0
    assert await _order_count() == 3
    assert len({o.order_id for o in committed}) == 3


async def test_order_ids_unique_under_concurrency(db):
    from storefront.services.sequences import next_order_id
    ids = await asyncio.gather(*[next_order_id() for _ in range(300)])
    assert len(set(ids)) == 300


async def test_cancel_restores_stock(db):
    from storefront.services import orders as orders_service
    product = await _product(stock=5)
    order = await _commit(product, quantity=2)
    assert await _stock(product) == 3

    cancelled = await orders_service.cancel_order(str(order.id))
    assert cancelled.order_status == "cancelled"
    assert await _stock(product) == 5

    with pytest.raises(InvalidTransitionError):
        await orders_service.cancel_order(str(order.id))
    assert await _stock(product) == 5


@pytest.mark.parametrize("status", ["shipped", "delivered"])
async def test_cancel_refused_after_shipping(db, status):
    from storefront.services import orders as orders_service
    product = await _product(stock=5)
    order = await _commit(product, quantity=2)
    await orders_service.update_status(str(order.id), status)
    with pytest.raises(InvalidTransitionError):
        await orders_service.cancel_order(str(order.id))
    assert await _stock(product) == 3
    assert (await orders_service.get_order(str(order.id))).order_status == status


async def test_cancel_with_deleted_product(db):
    from storefront.services import orders as orders_service
    product = await _product(stock=5)
    order = await _commit(product, quantity=1)
    await product.delete()
    cancelled = await orders_service.cancel_order(str(order.id))
    assert cancelled.order_status == "cancelled"


async def test_concurrent_cancels_restore_stock_once(db):
    from storefront.services import orders as orders_service
    product = await _product(stock=5)
    order = await _commit(product, quantity=2)
    results = await asyncio.gather(
        orders_service.cancel_order(str(order.id)),
        orders_service.cancel_order(str(order.id)),
        return_exceptions=True,
    )
    refused = [r for r in results if isinstance(r, Exception)]
    assert len(refused) == 1
    assert isinstance(refused[0], InvalidTransitionError)
    assert await _stock(product) == 5


async def test_status_update_to_cancelled_restores_stock(db):
    from storefront.services import orders as orders_service
    product = await _product(stock=5)
    order = await _commit(product, quantity=2)
    updated = await orders_service.update_status(str(order.id), "cancelled")
    assert updated.order_status == "cancelled"
    assert await _stock(product) == 5


@pytest.mark.parametrize("status", ["shipped", "delivered"])
async def test_status_update_cannot_cancel_after_shipping(db, status):
    from storefront.services import orders as orders_service
    product = await _product(stock=5)
    order = await _commit(product, quantity=2)
    await orders_service.update_status(str(order.id), status)
    with pytest.raises(InvalidTransitionError):
        await orders_service.update_status(str(order.id), "cancelled")
    assert await _stock(product) == 3
    assert (await orders_service.get_order(str(order.id))).order_status == status


async def test_delivered_at_only_while_delivered(db):
    from storefront.services import orders as orders_service
    product = await _product(stock=5)
    order = await _commit(product, quantity=1)
    delivered = await orders_service.update_status(str(order.id), "delivered")
    assert delivered.delivered_at is not None
    reopened = await orders_service.update_status(str(order.id), "processing")
    assert reopened.delivered_at is None
    assert (await orders_service.get_order(str(order.id))).delivered_at is None


async def test_unknown_status_reported_as_invalid(db):
    from storefront.services import orders as orders_service
    product = await _product(stock=5)
    order = await _commit(product, quantity=1)
    with pytest.raises(ValidationError) as info:
        await orders_service.update_status(str(order.id), "lost")
    assert info.value.details == {"invalid": ["orderStatus"]}


async def test_commit_rejects_payment_for_another_amount(db):
    product = await _product(stock=20, price=1000, discount_price=750)
    # paid for one unit, claims ten
    PAID_ORDERS["order_Q1"] = {"id": "order_Q1", "amount": 750, "notes": {}}
    with pytest.raises(PaymentAuthenticationError):
        await _commit(product, gateway_order_id="order_Q1", quantity=10, shipping_charge=0)
    assert await _stock(product) == 20
    assert await _order_count() == 0


async def test_commit_rejects_payment_for_another_product(db):
    paid_for = await _product(stock=5, price=1000)
    other = await _product(stock=5, price=1000)
    PAID_ORDERS["order_Q2"] = {
        "id": "order_Q2",
        "amount": 1000,
        "notes": {"productId": str(paid_for.id), "quantity": "1"},
    }
    with pytest.raises(PaymentAuthenticationError):
        await _commit(other, gateway_order_id="order_Q2", quantity=1, shipping_charge=0)
    assert await _stock(other) == 5
    assert await _order_count() == 0

    # same gateway order, matching product: accepted
    order = await _commit(paid_for, gateway_order_id="order_Q2", quantity=1, shipping_charge=0)
    assert order.total_amount == 1000


async def test_commit_rejects_unknown_gateway_order(db):
    from storefront.services import orders as orders_service
    product = await _product(stock=5)
    with pytest.raises(PaymentAuthenticationError):
        await orders_service.commit_order(
            gateway_order_id="order_NOPE",
            payment_id="pay_1",
            signature=payment_signature("order_NOPE", "pay_1", get_settings().razorpay_key_secret),
            product_id=str(product.id),
            customer=dict(CUSTOMER),
            shipping_address=dict(ADDRESS),
        )
    assert await _stock(product) == 5
    assert await _order_count() == 0


async def test_status_update_and_tracking(db):
    from storefront.services import orders as orders_service
    product = await _product(stock=5)
    order = await _commit(product, quantity=1)

    updated = await orders_service.update_status(str(order.id), "shipped", tracking_number="AWB123")
    assert updated.tracking_number == "AWB123"
    assert updated.delivered_at is None

    updated = await orders_service.update_status(str(order.id), "delivered")
    assert updated.delivered_at is not None
    assert updated.tracking_number == "AWB123"

    view = await orders_service.track_order(order.order_id)
    assert view["orderStatus"] == "delivered"
    assert view["trackingNumber"] == "AWB123"
    assert "payment" not in view
    assert "customer" not in view

    with pytest.raises(ValidationError):
        await orders_service.update_status(str(order.id), "lost")
    with pytest.raises(NotFoundError):
        await orders_service.track_order("SF0000000000")


async def test_delete_is_hard_and_keeps_stock(db):
    from storefront.services import orders as orders_service
    product = await _product(stock=5)
    order = await _commit(product, quantity=2)
    await orders_service.delete_order(str(order.id))
    assert await _order_count() == 0
    assert await _stock(product) == 3
    with pytest.raises(NotFoundError):
        await orders_service.delete_order(str(order.id))


async def test_list_orders_search_and_pagination(db):
    from storefront.services import orders as orders_service
    product = await _product(stock=20)
    for i in range(3):
        await _commit(product, gateway_order_id=f"order_{i}", payment_id=f"pay_{i}", quantity=1)
    await _commit(
        product,
        gateway_order_id="order_x",
        payment_id="pay_x",
        quantity=1,
        customer={"name": "Vikram", "email": "vik@example.com", "phone": "9000000000"},
    )

    orders, meta = await orders_service.list_orders(page=1, limit=2)
    assert meta == {"page": 1, "limit": 2, "total": 4, "pages": 2}
    assert len(orders) == 2
    assert orders[0].created_at >= orders[1].created_at

    orders, meta = await orders_service.list_orders(search="VIK")
    assert meta["total"] == 1
    assert orders[0].customer.name == "Vikram"

    orders, meta = await orders_service.list_orders(search="900000")
    assert meta["total"] == 1

    orders, meta = await orders_service.list_orders(status="confirmed", payment_status="completed")
    assert meta["total"] == 4

    future = datetime.utcnow() + timedelta(days=1)
    orders, meta = await orders_service.list_orders(start_date=future)
    assert meta["total"] == 0


def _stored_order(created_at, total, payment_status="completed", order_status="confirmed"):
    from storefront.models.order import Customer, Order, PaymentInfo, ProductSnapshot, ShippingAddress
    return Order(
        order_id=f"SF{created_at.strftime('%m%d%H')}{total:06d}{payment_status[0]}",
        customer=Customer(**CUSTOMER),
        shipping_address=ShippingAddress(**ADDRESS),
        product=ProductSnapshot(product_id=PydanticObjectId(), name="Diya", price=total, quantity=1),
        payment=PaymentInfo(status=payment_status),
        subtotal=total,
        total_amount=total,
        order_status=order_status,
        created_at=created_at,
        updated_at=created_at,
    )


async def test_stats_and_revenue_chart(db):
    from storefront.services import order_stats
    now = datetime(2024, 6, 1, 12, 0)
    for o in [
        _stored_order(datetime(2024, 1, 10), 1000),
        _stored_order(datetime(2024, 1, 20), 500, order_status="delivered"),
        _stored_order(datetime(2024, 3, 5), 2050, order_status="shipped"),
        _stored_order(datetime(2024, 3, 6), 999, payment_status="pending", order_status="pending"),
        _stored_order(datetime(2023, 12, 31, 23, 0), 7000, order_status="cancelled"),
    ]:
        await o.insert()

    chart = await order_stats.revenue_chart(now)
    assert len(chart) == 12
    assert chart[0] == {"month": "Jan", "revenue": 1500}
    assert chart[2] == {"month": "Mar", "revenue": 2050}
    assert chart[1]["revenue"] == 0
    assert sum(b["revenue"] for b in chart) == 3550

    stats = await order_stats.order_stats()
    assert stats["totalOrders"] == 5
    assert stats["confirmedOrders"] == 1
    assert stats["pendingOrders"] == 1
    assert stats["shippedOrders"] == 1
    assert stats["deliveredOrders"] == 1
    assert stats["cancelledOrders"] == 1
    assert stats["processingOrders"] == 0
    assert stats["totalRevenue"] == 1000 + 500 + 2050 + 7000


async def test_weekly_chart(db):
    from storefront.services import order_stats
    now = datetime(2024, 5, 15, 12, 0)  # Wednesday
    for o in [
        _stored_order(datetime(2024, 5, 11, 23, 0), 1),  # previous Saturday
        _stored_order(datetime(2024, 5, 12, 10, 0), 2),
        _stored_order(datetime(2024, 5, 15, 9, 0), 3),
        _stored_order(datetime(2024, 5, 15, 11, 0), 4, payment_status="pending"),
        _stored_order(datetime(2024, 5, 18, 23, 59), 5),
        _stored_order(datetime(2024, 5, 19, 0, 0), 6),  # next Sunday
    ]:
        await o.insert()
    chart = await order_stats.weekly_chart(now)
    assert [b["orders"] for b in chart] == [1, 0, 0, 2, 0, 0, 1]
