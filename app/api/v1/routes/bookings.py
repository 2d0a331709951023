from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.db.session import get_db
from app.schemas.booking import BookingCreate, BookingOut
from app.services.booking_service import booking_to_dict, create_booking

router = APIRouter(tags=["bookings"])

@router.post("/public/bookings", response_model=BookingOut)
def create_public_booking(body: BookingCreate, db: Session = Depends(get_db)):
    # site bookings never carry partner fields; those arrive through the aggregator endpoints
    body = body.model_copy(update={"aggregator": None, "aggregatorUniqueId": None, "extraServices": []})
    booking = create_booking(db, body, is_admin=False)
    return booking_to_dict(db, booking)
