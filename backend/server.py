from fastapi import FastAPI, APIRouter, HTTPException
from dotenv import load_dotenv
from starlette.middleware.cors import CORSMiddleware
import logging
from pathlib import Path
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional, Dict
from datetime import datetime, timezone

from common.config import get_settings
from common.geo import Coordinate
from providers import get_providers, reload_providers
from notifications import DeadlineMonitor, MonitorClosedError, handle_notification_response
from notifications.eta import format_duration, is_late

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Created on startup, closed on shutdown
monitor: Optional[DeadlineMonitor] = None


def build_monitor() -> DeadlineMonitor:
    providers = get_providers()
    return DeadlineMonitor(
        location_provider=providers.location,
        directions=providers.directions,
        geocoder=providers.geocode,
        notification_sink=providers.notifications,
        messaging=providers.messaging,
        settings=get_settings(),
    )


def get_monitor() -> DeadlineMonitor:
    if monitor is None or monitor.closed:
        raise HTTPException(status_code=503, detail="Deadline monitor is not running")
    return monitor


app = FastAPI(title="Traffic Delay Alerts")
api_router = APIRouter(prefix="/api")


# ==================== Models ====================

class LocationUpdateRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class LocationResponse(BaseModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    updated_at: Optional[datetime] = None


class CommitmentCreateRequest(BaseModel):
    destination_name: str = Field(..., min_length=1)
    destination_address: str = Field(..., min_length=1)
    deadline: datetime

    @field_validator("destination_name", "destination_address")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()

    @field_validator("deadline")
    @classmethod
    def deadline_has_timezone(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            raise ValueError("deadline must include timezone info")
        return value


class CommitmentResponse(BaseModel):
    commitment_id: str
    destination_name: str
    destination_address: str
    destination: Dict[str, float]
    deadline: datetime
    notification_sent: bool
    created_at: datetime
    eta_seconds: Optional[float] = None
    eta_formatted: Optional[str] = None
    is_late: Optional[bool] = None


class SendMessageResponse(BaseModel):
    commitment_id: str
    sent: bool
    message: Optional[str] = None


class NotificationResponseRequest(BaseModel):
    action_id: str
    data: Dict[str, str] = Field(default_factory=dict)


class NotificationResponseResult(BaseModel):
    handled: bool


class SettingsResponse(BaseModel):
    poll_interval_seconds: float
    notifications_enabled: bool
    auto_message_enabled: bool
    message_template: str
    monitoring: bool


def _to_response(deadline_monitor: DeadlineMonitor, commitment) -> CommitmentResponse:
    doc = commitment.to_dict()
    eta = deadline_monitor.eta_for(commitment.commitment_id)
    if eta is not None:
        doc["eta_seconds"] = eta
        doc["eta_formatted"] = format_duration(eta)
        doc["is_late"] = is_late(datetime.now(timezone.utc), eta, commitment.deadline)
    return CommitmentResponse(**doc)


# ==================== Routes ====================

@api_router.get("/")
async def root():
    return {"message": "Traffic Delay Alerts API"}


@api_router.get("/health")
async def health():
    return {"status": "ok", "monitoring": monitor is not None and monitor.is_monitoring}


@api_router.post("/location", response_model=LocationResponse)
async def update_location(request: LocationUpdateRequest):
    """Push the device's latest location fix."""
    location_manager = get_providers().location
    location_manager.update(Coordinate(latitude=request.latitude, longitude=request.longitude))
    return LocationResponse(
        latitude=request.latitude,
        longitude=request.longitude,
        updated_at=location_manager.updated_at,
    )


@api_router.get("/location", response_model=LocationResponse)
async def current_location():
    location_manager = get_providers().location
    location = location_manager.current_location()
    if location is None:
        return LocationResponse()
    return LocationResponse(
        latitude=location.latitude,
        longitude=location.longitude,
        updated_at=location_manager.updated_at,
    )


@api_router.post("/commitments", response_model=CommitmentResponse, status_code=201)
async def create_commitment(request: CommitmentCreateRequest):
    """
    Add a commitment to monitor.

    The destination address is geocoded and the ETA is checked immediately,
    without waiting for the next poll.
    """
    deadline_monitor = get_monitor()
    try:
        commitment = await deadline_monitor.add_commitment(
            destination_name=request.destination_name,
            destination_address=request.destination_address,
            deadline=request.deadline,
        )
    except ValueError as e:
        logger.error(f"Invalid commitment request: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except MonitorClosedError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return _to_response(deadline_monitor, commitment)


@api_router.get("/commitments", response_model=List[CommitmentResponse])
async def list_commitments():
    deadline_monitor = get_monitor()
    return [_to_response(deadline_monitor, c) for c in deadline_monitor.commitments]


@api_router.get("/commitments/{commitment_id}", response_model=CommitmentResponse)
async def get_commitment(commitment_id: str):
    deadline_monitor = get_monitor()
    commitment = deadline_monitor.get_commitment(commitment_id)
    if commitment is None:
        raise HTTPException(status_code=404, detail="Commitment not found")
    return _to_response(deadline_monitor, commitment)


@api_router.post("/commitments/{commitment_id}/send-message", response_model=SendMessageResponse)
async def send_delay_message(commitment_id: str):
    """Send the "stuck in traffic" message for a commitment (user confirmed)."""
    deadline_monitor = get_monitor()
    if deadline_monitor.get_commitment(commitment_id) is None:
        raise HTTPException(status_code=404, detail="Commitment not found")

    message = await deadline_monitor.send_delay_message(commitment_id)
    return SendMessageResponse(commitment_id=commitment_id, sent=message is not None, message=message)


@api_router.post("/notifications/response", response_model=NotificationResponseResult)
async def notification_response(request: NotificationResponseRequest):
    """Handle an action the user took on a delay notification."""
    deadline_monitor = get_monitor()
    handled = await handle_notification_response(
        request.action_id,
        request.data,
        deadline_monitor.location_provider,
        deadline_monitor.messaging,
    )
    return NotificationResponseResult(handled=handled)


@api_router.get("/settings", response_model=SettingsResponse)
async def read_settings():
    settings = get_settings()
    return SettingsResponse(
        poll_interval_seconds=settings.poll_interval_seconds,
        notifications_enabled=settings.notifications_enabled,
        auto_message_enabled=settings.auto_message_enabled,
        message_template=settings.message_template,
        monitoring=monitor is not None and monitor.is_monitoring,
    )


# Include the router in the main app
app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def start_monitor():
    global monitor
    monitor = build_monitor()
    monitor.start_monitoring()


@app.on_event("shutdown")
async def stop_monitor():
    global monitor
    if monitor is not None:
        monitor.close()
        sink = monitor.notification_sink
        monitor = None
        if hasattr(sink, "aclose"):
            await sink.aclose()
        # Fresh providers (and HTTP clients) for the next startup
        reload_providers()
