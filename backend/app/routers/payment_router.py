# routers/payment_router.py → Moolre link, callback, verification
from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.deps import get_payment_service
from app.core.rate_limit import rate_limit
from app.models.order_model import InitiatePaymentRequest, VerifyPaymentRequest
from app.services.callback_parser import read_callback_body
from app.services.moolre import MoolreClient, MoolreError, get_moolre_client, resolve_base_url
from app.services.order_store import OrderStore, OrderStoreError, get_order_store
from app.services.payments import PaymentService

router = APIRouter(prefix="/payment/moolre", tags=["Payments"])
logger = logging.getLogger("storefront")


# ========================================
# 1. CREATE HOSTED PAYMENT LINK
# ========================================
@router.post("", dependencies=[Depends(rate_limit("payment"))])
async def initiate_payment(
    payload: InitiatePaymentRequest,
    request: Request,
    gateway: MoolreClient = Depends(get_moolre_client),
    store: OrderStore = Depends(get_order_store),
):
    if not payload.order_id or not payload.amount:
        return JSONResponse({"success": False, "message": "Missing orderId or amount"}, status_code=400)

    if not gateway.configured:
        logger.error("Missing Moolre credentials")
        return JSONResponse({"success": False, "message": "Payment gateway configuration error"}, status_code=500)

    base_url = resolve_base_url(settings.APP_BASE_URL, str(request.base_url))

    try:
        link = await gateway.create_payment_link(
            order_id=payload.order_id,
            amount=payload.amount,
            customer_email=payload.customer_email,
            base_url=base_url,
        )
    except MoolreError as e:
        return JSONResponse({"success": False, "message": str(e)}, status_code=400)
    except Exception as e:
        logger.error(f"Payment API error for {payload.order_id}: {e}", exc_info=True)
        return JSONResponse({"success": False, "message": "Internal Server Error"}, status_code=500)

    # The link is already live; a bookkeeping failure only degrades the verify fallback
    try:
        saved = await store.save_payment_attempt(payload.order_id, link["externalref"], link.get("reference"))
        if not saved:
            logger.warning(f"[Payment] Order {payload.order_id} not found; externalref {link['externalref']} not recorded")
    except OrderStoreError:
        logger.warning(f"[Payment] Could not record externalref for {payload.order_id}")

    return {"success": True, "url": link["url"], "reference": link["reference"]}


# ========================================
# 2. GATEWAY CALLBACK (server-to-server)
# ========================================
@router.post("/callback", dependencies=[Depends(rate_limit("callback"))])
async def moolre_callback(request: Request, service: PaymentService = Depends(get_payment_service)):
    logger.info(f"[Callback] POST received at {datetime.now(timezone.utc).isoformat()}")
    body = await read_callback_body(request)
    try:
        status_code, content = await service.handle_callback(body)
    except Exception as e:
        logger.error(f"[Callback] Critical error: {e}", exc_info=True)
        return JSONResponse({"success": False, "message": "Internal server error"}, status_code=500)
    return JSONResponse(content, status_code=status_code)


@router.get("/callback")
async def callback_ready():
    return {"message": "Moolre callback endpoint ready", "timestamp": datetime.now(timezone.utc).isoformat()}


# ========================================
# 3. REDIRECT VERIFICATION (shopper returned)
# ========================================
@router.post("/verify", dependencies=[Depends(rate_limit("payment"))])
async def verify_payment(payload: VerifyPaymentRequest, service: PaymentService = Depends(get_payment_service)):
    try:
        status_code, content = await service.verify(payload.order_number, payload.from_redirect)
    except Exception as e:
        logger.error(f"[Verify] Error: {e}", exc_info=True)
        return JSONResponse({"success": False, "message": "Internal error"}, status_code=500)
    return JSONResponse(content, status_code=status_code)
