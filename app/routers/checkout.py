"""
Checkout router: payment finalization.

Verification and persistence live in app.services.checkout; courier booking
and notifications run in the background through app.services.dispatch.
"""
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

from app import schemas
from app.auth.dependencies import get_current_user_id
from app.db import get_db
from app.services.checkout import OrderPersistenceFailed, finalize_order
from app.services.dispatch import dispatch_order
from app.services.payments import InvalidPaymentSignature, PaymentVerificationError

router = APIRouter(prefix="/api/order", tags=["checkout"])
logger = logging.getLogger(__name__)


@router.post("/finalize-payment", response_model=schemas.FinalizeOrderOut)
def finalize_payment(
    payload: schemas.FinalizeOrderIn,
    background: BackgroundTasks,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    try:
        result = finalize_order(db, user_id, payload.order_payload, payload.payment_response)
    except InvalidPaymentSignature as exc:
        logger.warning("Rejected payment %s: %s", payload.payment_response.razorpay_payment_id, exc)
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except PaymentVerificationError as exc:
        logger.error("Payment verification unavailable: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except OrderPersistenceFailed as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    if result.created and result.job is not None:
        background.add_task(dispatch_order, result.job)

    return schemas.FinalizeOrderOut(status="success", order_id=result.order_id)
