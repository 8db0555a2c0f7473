from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session
from dateutil import parser as dtparser
from typing import Optional

from ..database import get_db
from .. import models, schemas
from ..services.availability import get_available_slots
from ..services import lifecycle

router = APIRouter(prefix="/appointments", tags=["appointments"])


def require_client(x_client_id: Optional[str] = Header(default=None)) -> str:
    """Client identity forwarded by the auth layer."""
    client_id = (x_client_id or "").strip()
    if not client_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-Client-Id")
    return client_id


def _get_or_update_client(db: Session, client_id: str, info: Optional[schemas.ClientIn]) -> models.Client:
    client = db.get(models.Client, client_id)
    if client is None:
        client = models.Client(id=client_id)
        db.add(client)
    if info is not None:
        if info.name:
            client.name = info.name
        if info.contact:
            client.contact = info.contact
        client.consent_messages = info.consent_messages
    db.commit()
    return client


@router.get("/available-slots", response_model=schemas.SlotsResponse)
def available_slots(date: str = Query(..., description="YYYY-MM-DD"), db: Session = Depends(get_db)):
    try:
        d = dtparser.parse(date).date()
    except (ValueError, OverflowError):
        raise HTTPException(status_code=400, detail="Invalid date format. Use YYYY-MM-DD.")
    slots = get_available_slots(db, d)
    return schemas.SlotsResponse(
        date=d,
        slots=[schemas.SlotOut(start=s.start, end=s.end, available=s.available) for s in slots],
    )


@router.post("", response_model=schemas.AppointmentOut, status_code=status.HTTP_201_CREATED)
def book(req: schemas.BookRequest, client_id: str = Depends(require_client), db: Session = Depends(get_db)):
    _get_or_update_client(db, client_id, req.client)
    return lifecycle.create_appointment(
        db,
        client_id=client_id,
        day=req.date,
        start=req.start_time,
        end=req.end_time,
        client_notes=req.client_notes,
        order_item_id=req.order_item_id,
    )


@router.get("", response_model=list[schemas.AppointmentOut])
def my_appointments(client_id: str = Depends(require_client), db: Session = Depends(get_db)):
    return lifecycle.list_for_client(db, client_id)


@router.post("/{appointment_id}/cancel", response_model=schemas.AppointmentOut)
def cancel(
    appointment_id: int,
    req: Optional[schemas.CancelRequest] = None,
    client_id: str = Depends(require_client),
    db: Session = Depends(get_db),
):
    return lifecycle.cancel_appointment(
        db,
        appointment_id,
        actor=lifecycle.Actor.client(client_id),
        reason=req.reason if req else None,
    )
