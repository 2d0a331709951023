import json
from datetime import date, datetime
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.services import aggregator_service
from app.services.aggregator_service import OrderRequest, SlotMaterializer

router = APIRouter(prefix="/mir-kvestov", tags=["aggregator"])


async def read_order_request(request: Request) -> OrderRequest | None:
    """Partner posts form-encoded, multipart or JSON bodies."""
    content_type = request.headers.get("content-type", "").lower()
    if content_type.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
        form = await request.form()
        return aggregator_service.build_order_request(dict(form))

    raw = (await request.body()).decode("utf-8", errors="replace").strip()
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        data = None
    if isinstance(data, dict):
        return aggregator_service.build_order_request(data)
    pairs = parse_qsl(raw, keep_blank_values=True)
    if pairs:
        return aggregator_service.build_order_request(dict(pairs))
    return None


def get_slot_materializer() -> SlotMaterializer | None:
    # schedule generation lives in the calendar service; overridden where it is wired in
    return None


def _parse_day(value: str | None) -> date | None:
    try:
        return datetime.strptime((value or "").strip(), "%Y-%m-%d").date()
    except ValueError:
        return None


@router.get("/{quest_slug}")
@router.get("/{quest_slug}.json")
def get_schedule(quest_slug: str, request: Request, db: Session = Depends(get_db)):
    # "from" is a keyword, so the range is read off the query string directly
    params = request.query_params
    return aggregator_service.get_schedule(db, quest_slug, _parse_day(params.get("from")), _parse_day(params.get("to")))


@router.post("/{quest_slug}/order")
def create_order(quest_slug: str,
                 order: OrderRequest | None = Depends(read_order_request),
                 materialize: SlotMaterializer | None = Depends(get_slot_materializer),
                 db: Session = Depends(get_db)):
    if order is None:
        return {"success": False, "message": aggregator_service.MSG_BAD_REQUEST}
    ok, message = aggregator_service.create_order(db, quest_slug, order, materialize_slots=materialize)
    if ok:
        return {"success": True}
    return {"success": False, "message": message or "Ошибка"}


@router.get("/{quest_slug}/get_price")
def get_price(quest_slug: str, date: str | None = None, time: str | None = None, db: Session = Depends(get_db)):
    parsed = aggregator_service.parse_date_time(date, time)
    if not parsed:
        return JSONResponse(status_code=400, content={"message": aggregator_service.MSG_BAD_DATE_TIME})
    return aggregator_service.get_tariffs(db, quest_slug, *parsed)


@router.get("/{quest_slug}/prepay")
def prepay(quest_slug: str, md5: str | None = None, unique_id: str | None = None, prepay: str | None = None,
           db: Session = Depends(get_db)):
    amount = aggregator_service.parse_int(prepay)
    if aggregator_service.check_prepay(db, quest_slug, md5, unique_id, amount):
        return {"success": True}
    return {"success": False}
