from fastapi import APIRouter

from storefront.services import payments as payments_service

router = APIRouter()


@router.get("/key")
async def payments_key():
    """Publishable Razorpay key id for the checkout widget."""
    return {"success": True, "data": payments_service.get_public_key()}
