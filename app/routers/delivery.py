import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app import schemas
from app.db import get_db
from app.domain.core.enums import DeliveryPartner
from app.services.courier_base import CourierError, manifest_items
from app.services.couriers import build_couriers, store_location_from_settings
from app.services.delivery_admin import apply_courier_status
from app.services.delivery_policy import DeliveryQuoteError, load_dispatch_config, quote_delivery_fee

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["delivery"])


@router.post("/delivery/calculate-fee", response_model=schemas.FeeQuoteOut, response_model_exclude_none=True)
async def calculate_fee(payload: schemas.FeeQuoteIn, db: Session = Depends(get_db)):
    config = load_dispatch_config(db)
    try:
        quote = await quote_delivery_fee(
            config,
            payload.address,
            manifest_items(payload.items),
            build_couriers(config.store),
        )
    except DeliveryQuoteError as exc:
        raise HTTPException(status_code=400, detail={"error": exc.message, "details": exc.details}) from exc
    return schemas.FeeQuoteOut(
        delivery_fee=quote.fee,
        chosen_partner=quote.chosen_partner,
        warnings=quote.warnings or None,
    )


@router.post("/borzo/webhook", response_model=schemas.MessageOut)
def borzo_webhook(payload: schemas.CourierWebhookIn, db: Session = Depends(get_db)):
    order = payload.order
    if order is None or order.order_id in (None, "") or not order.status:
        raise HTTPException(status_code=400, detail="Invalid webhook payload")
    return apply_courier_status(db, str(order.order_id), order.status)


def _borzo():
    return build_couriers(store_location_from_settings())[DeliveryPartner.borzo.value]


@router.get("/borzo/order/{order_id}")
async def borzo_order_status(order_id: str) -> dict:
    try:
        return await _borzo().order_status(order_id)
    except CourierError as exc:
        logger.error("Borzo order status error for %s: %s", order_id, exc)
        raise HTTPException(status_code=500, detail="Failed to fetch order status") from exc


@router.get("/borzo/courier/{order_id}")
async def borzo_courier_info(order_id: str) -> dict:
    try:
        return await _borzo().courier_info(order_id)
    except CourierError as exc:
        logger.error("Borzo courier info error for %s: %s", order_id, exc)
        raise HTTPException(status_code=500, detail="Failed to fetch courier info") from exc
