import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api import state
from api.dependencies import get_event_store, parse_instant
from api.metrics import EVENTS_IMPORTED_TOTAL, observe_request
from planbook.models import Event, EventCreate, EventPatch
from storage.event_store import EventStore

router = APIRouter()
logger = logging.getLogger(__name__)

ICS_MEDIA_TYPE = "text/calendar"


@router.get("/events")
async def list_events(
    start: Optional[str] = None,
    end: Optional[str] = None,
    store: EventStore = Depends(get_event_store),
) -> dict:
    """All events, or those overlapping [start, end) when both are given."""
    range_start = parse_instant(start, "start")
    range_end = parse_instant(end, "end")
    if range_start is not None and range_end is not None:
        events = store.overlapping(range_start, range_end)
    else:
        events = store.list()
    return {"events": [e.model_dump(mode="json") for e in events], "total": len(events)}


@router.get("/events/export")
async def export_events(
    start: Optional[str] = None,
    end: Optional[str] = None,
    calendar_name: str = "Planbook",
    store: EventStore = Depends(get_event_store),
) -> Response:
    started = time.time()
    text = store.export_ics(parse_instant(start, "start"), parse_instant(end, "end"), calendar_name)
    observe_request("/events/export", "ok", started)
    return Response(
        content=text,
        media_type=ICS_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="planbook.ics"'},
    )


@router.post("/events/import")
async def import_events(request: Request, store: EventStore = Depends(get_event_store)) -> dict:
    """Import the ICS document sent as the request body."""
    started = time.time()
    raw = await request.body()
    imported = store.import_ics(raw)
    state.persist()

    EVENTS_IMPORTED_TOTAL.inc(len(imported))
    observe_request("/events/import", "imported", started)
    logger.info(f"Imported {len(imported)} event(s) over HTTP")
    return {
        "status": "imported",
        "imported": len(imported),
        "events": [e.model_dump(mode="json") for e in imported],
    }


@router.get("/events/{event_id}")
async def get_event(event_id: str, store: EventStore = Depends(get_event_store)) -> Event:
    event = store.get(event_id)
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


@router.post("/events", status_code=201)
async def create_event(payload: EventCreate, store: EventStore = Depends(get_event_store)) -> Event:
    started = time.time()
    event = store.create(payload)
    state.persist()
    observe_request("/events", "created", started)
    return event


@router.patch("/events/{event_id}")
async def update_event(
    event_id: str,
    payload: EventPatch,
    store: EventStore = Depends(get_event_store),
) -> Event:
    event = store.update(event_id, payload)
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    state.persist()
    return event


@router.delete("/events/{event_id}")
async def delete_event(event_id: str, store: EventStore = Depends(get_event_store)) -> dict:
    if not store.delete(event_id):
        raise HTTPException(status_code=404, detail="Event not found")
    state.persist()
    return {"status": "deleted", "id": event_id}
