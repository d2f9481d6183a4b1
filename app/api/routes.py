import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request

from app.api.rate_limit import enforce_rate_limit
from app.schemas import BookingRequest
from app.services.dispatcher import DispatchOrchestrator

router = APIRouter()


def get_orchestrator(request: Request) -> DispatchOrchestrator:
    return request.app.state.orchestrator


@router.post("/send-email", dependencies=[Depends(enforce_rate_limit)])
async def send_email(
    payload: BookingRequest, orchestrator: DispatchOrchestrator = Depends(get_orchestrator)
):
    """
    Email a booking notification without storing the booking.

    - Validate required fields and attachment size
    - Compose the notification
    - Send through the relay with a timeout
    """
    result = await orchestrator.send_notification(payload)
    return {"success": True, "message": result.message, "emailId": result.email_id}


@router.post("/bookings", status_code=201)
async def create_booking(
    payload: BookingRequest, orchestrator: DispatchOrchestrator = Depends(get_orchestrator)
):
    """
    Store a booking, then email the notification.

    The row is written before the send is attempted, so a failed send
    leaves the stored booking in place.
    """
    result = await orchestrator.create_booking(payload)
    return {
        "success": True,
        "message": result.message,
        "bookingId": result.booking_id,
        "emailId": result.email_id,
    }


@router.get("/health")
async def health_check(request: Request):
    """Process health; answers 200 as long as the process is alive"""
    state = request.app.state
    store = getattr(state, "store", None)
    monitor = getattr(state, "monitor", None)
    started_at = getattr(state, "started_at", time.monotonic())

    return {
        "status": "healthy",
        "uptime": round(time.monotonic() - started_at, 3),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": state.settings.environment,
        "relay": monitor.state() if monitor else None,
        "database": ("connected" if await store.ping() else "disconnected") if store else None,
    }
