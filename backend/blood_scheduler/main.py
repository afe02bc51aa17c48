import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from blood_scheduler.core.errors import SchedulingError
from blood_scheduler.core.settings import settings, validate_settings
from blood_scheduler.db.session import engine
from blood_scheduler.models import Base
from blood_scheduler.routers.appointments import router as appointments_router
from blood_scheduler.routers.audit import router as audit_router
from blood_scheduler.routers.blood_requests import router as blood_requests_router
from blood_scheduler.routers.capacity import router as capacity_router
from blood_scheduler.routers.donation_events import router as donation_events_router

app = FastAPI(title="Blood Donation Scheduling API", version="0.1.0")
logger = logging.getLogger("blood_scheduler.startup")


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    logger.info(
        "%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    request_id = request.headers.get("x-request-id")
    logger.exception("Unhandled server error", extra={"request_id": request_id})
    payload = {"detail": "Internal server error"}
    if request_id:
        payload["request_id"] = request_id
    return JSONResponse(status_code=500, content=payload)


@app.on_event("startup")
def startup():
    logging.basicConfig(level=settings.log_level.upper())
    validate_settings(settings)
    Base.metadata.create_all(bind=engine)
    logger.info("Scheduling engine ready (facility zone %s).", settings.facility_timezone)


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(capacity_router)
app.include_router(appointments_router)
app.include_router(donation_events_router)
app.include_router(blood_requests_router)
app.include_router(audit_router)
