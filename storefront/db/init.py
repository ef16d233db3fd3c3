import certifi
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from storefront.core.config import get_settings
from storefront.models.audit_log import AuditLog
from storefront.models.counter import Counter
from storefront.models.order import Order
from storefront.models.product import Product

DOCUMENT_MODELS = [
    Product,
    Order,
    Counter,
    AuditLog,
]


def _use_tls(uri: str) -> bool:
    """True if URI uses TLS (Atlas or explicit tls=true). Avoids TLS for plain mongodb:// in CI."""
    return "mongodb+srv://" in uri or "tls=true" in uri.lower()


async def init_db() -> None:
    settings = get_settings()
    kwargs = {}
    if _use_tls(settings.mongodb_uri):
        kwargs["tlsCAFile"] = certifi.where()
        kwargs["tlsDisableOCSPEndpointCheck"] = True
    client = AsyncIOMotorClient(settings.mongodb_uri, **kwargs)
    database = client[settings.mongodb_db_name]
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)
