"""Store-issued sequences and order id formatting."""

import time

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from storefront.core.config import get_settings
from storefront.models.counter import Counter

ORDER_SEQUENCE = "orders"


async def next_value(name: str) -> int:
    """Atomically increment and return the named counter (created on first use)."""
    collection = Counter.get_motor_collection()
    try:
        doc = await collection.find_one_and_update(
            {"_id": name},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        # Two first-use upserts raced; the counter exists now.
        doc = await collection.find_one_and_update(
            {"_id": name},
            {"$inc": {"seq": 1}},
            return_document=ReturnDocument.AFTER,
        )
    return doc["seq"]


def format_order_id(seq: int, now_ms: int | None = None, prefix: str | None = None) -> str:
    """<prefix><last 6 digits of epoch ms><seq, zero-padded to 4>. Unique as long as seq is."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    if prefix is None:
        prefix = get_settings().order_id_prefix
    return f"{prefix}{now_ms % 1_000_000:06d}{seq:04d}"


async def next_order_id() -> str:
    return format_order_id(await next_value(ORDER_SEQUENCE))
