from fastapi import APIRouter, Request
from backend import config
from backend.utils.rate_limit import rate_limit_health_info

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
def health_root():
    return {"ok": True}


@router.get("/rate-limit")
def health_rate_limit(request: Request):
    return rate_limit_health_info(request)


@router.get("/config")
def health_config():
    # Présence des intégrations uniquement, jamais les secrets
    return {
        "paymentGateway": bool(config.RAZORPAY_KEY_ID and config.RAZORPAY_KEY_SECRET),
        "objectStorage": bool(config.SUPABASE_URL and config.SUPABASE_SERVICE_KEY),
        "uploadRequiresPayment": config.UPLOAD_REQUIRES_PAYMENT,
    }
