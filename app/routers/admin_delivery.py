from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app import schemas
from app.auth.dependencies import require_admin
from app.db import get_db
from app.services import delivery_admin

router = APIRouter(prefix="/api/admin", tags=["admin-delivery"], dependencies=[Depends(require_admin)])


@router.get("/settings/delivery-mode", response_model=schemas.DeliveryModeOut)
def get_delivery_mode(db: Session = Depends(get_db)):
    return delivery_admin.get_delivery_mode(db)


@router.put("/settings/delivery-mode", response_model=schemas.DeliveryModeOut)
def update_delivery_mode(payload: schemas.DeliveryModeIn, db: Session = Depends(get_db)):
    return delivery_admin.set_delivery_mode(db, payload.delivery_mode)


@router.get("/orders/pending", response_model=list[schemas.PendingOrderOut])
def list_pending_orders(db: Session = Depends(get_db)):
    return delivery_admin.list_pending_orders(db)


@router.post("/orders/{order_id}/manual-book", response_model=schemas.MessageOut)
async def manual_book(order_id: str, payload: schemas.ManualBookIn, db: Session = Depends(get_db)):
    return await delivery_admin.resolve_manually(db, order_id, payload.partner_name, payload.tracking_url)
