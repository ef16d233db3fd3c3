"""Product reads and stock adjustments used by the order ledger."""

from beanie import PydanticObjectId, UpdateResponse
from beanie.odm.operators.update.general import Inc
from bson.errors import InvalidId

from storefront.core.exceptions import NotFoundError
from storefront.core.logging import get_logger
from storefront.models.product import Product

log = get_logger(__name__)


def parse_object_id(value: str | PydanticObjectId, what: str) -> PydanticObjectId:
    """Malformed ids are treated as unknown ids."""
    if isinstance(value, PydanticObjectId):
        return value
    try:
        return PydanticObjectId(value)
    except (InvalidId, TypeError):
        raise NotFoundError(f"{what} not found") from None


async def get_product(product_id: str | PydanticObjectId) -> Product:
    product = await Product.get(parse_object_id(product_id, "Product"))
    if not product:
        raise NotFoundError("Product not found")
    return product


def unit_price(product: Product) -> int:
    """Discount price when set and lower than list price, else list price."""
    if product.discount_price is not None and 0 <= product.discount_price < product.price:
        return product.discount_price
    return product.price


def primary_image(product: Product) -> str | None:
    return product.images[0].url if product.images else None


async def reserve_stock(product_id: PydanticObjectId, quantity: int) -> bool:
    """Decrement stock by quantity only if stock >= quantity. True if the update applied."""
    updated = await Product.find_one(
        Product.id == product_id,
        Product.stock >= quantity,
    ).update(
        Inc({Product.stock: -quantity}),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )
    if updated is None:
        log.info("stock_reservation_refused", product_id=str(product_id), quantity=quantity)
        return False
    log.info("stock_reserved", product_id=str(product_id), quantity=quantity, stock_after=updated.stock)
    return True


async def restore_stock(product_id: PydanticObjectId, quantity: int) -> bool:
    """Add quantity back to stock. False if the product no longer exists."""
    updated = await Product.find_one(Product.id == product_id).update(
        Inc({Product.stock: quantity}),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )
    if updated is None:
        log.warning("stock_restore_skipped", product_id=str(product_id), quantity=quantity, reason="product_missing")
        return False
    log.info("stock_restored", product_id=str(product_id), quantity=quantity, stock_after=updated.stock)
    return True
