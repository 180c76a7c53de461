"""
Staff admin endpoints: scheduler tick, forced check-in, test sends,
scheduler toggle and a configuration health report.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException

from radar import settings
from radar.dependencies import get_services, require_admin
from radar.gateway.agents.reply_generator import generate_test_message
from radar.gateway.channels import DeliveryError
from radar.gateway.records import AuditEvent
from radar.gateway.redact import is_us_e164, redact_phone
from radar.gateway.store import RecordNotFoundError, RecordStoreError
from radar.schemas.admin import ForceCheckinRequest, TestSendRequest, ToggleSchedulerRequest

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])
logger = logging.getLogger("radar.routers.admin")


async def _audit(services, event: AuditEvent) -> None:
    """Record an admin action; the action itself has already happened."""
    try:
        await asyncio.to_thread(services.store.add_audit_event, event)
    except RecordStoreError as exc:
        logger.error("Could not record %s audit: %s", event.event, exc)


@router.post("/run-checkins")
async def run_checkins(services=Depends(get_services)):
    """One scheduler tick (called by Cloud Scheduler)."""
    try:
        report = await services.scheduler.run_once()
    except RecordStoreError as exc:
        logger.error("Check-in tick failed: %s", exc)
        raise HTTPException(status_code=500, detail="Check-in tick failed")
    return {"ok": True, **report.to_dict()}


@router.post("/force-checkin")
async def force_checkin(request: ForceCheckinRequest, services=Depends(get_services)):
    try:
        entry = await services.scheduler.send_checkin(request.patient_id)
    except RecordNotFoundError:
        raise HTTPException(status_code=404, detail="Patient not found")
    except DeliveryError as exc:
        logger.error("Admin force check-in failed for %s: %s", request.patient_id, exc)
        raise HTTPException(status_code=502, detail="Failed to send check-in")
    except RecordStoreError as exc:
        logger.error("Admin force check-in failed for %s: %s", request.patient_id, exc)
        raise HTTPException(status_code=500, detail="Failed to record check-in")

    logger.info("Admin forced check-in for patient %s (day %d)", entry.patient_id, entry.day_index)
    return {
        "ok": True,
        "patient_id": entry.patient_id,
        "day_index": entry.day_index,
        "message_sid": entry.message_sid,
    }


@router.post("/test-send")
async def test_send(request: TestSendRequest, services=Depends(get_services)):
    if not is_us_e164(request.to):
        raise HTTPException(status_code=400, detail="Invalid phone format - use E.164 (+1XXXXXXXXXX)")

    try:
        message = generate_test_message(request.kind, request.body)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    try:
        sid = await services.gateway.send(request.to, message)
    except DeliveryError as exc:
        logger.error("Admin test send failed: %s", exc)
        raise HTTPException(status_code=502, detail="Failed to send SMS")

    redacted = redact_phone(request.to)
    await _audit(services, AuditEvent(
        actor="admin",
        entity="sms",
        entity_id=sid,
        event="admin_test_send",
        timestamp=services.clock.now(),
        meta={"to": redacted, "kind": request.kind},
    ))
    logger.info("Admin test SMS sent: %s to %s, SID: %s", request.kind, redacted, sid)
    return {"ok": True, "sid": sid, "kind": request.kind, "to": redacted}


@router.post("/toggle-scheduler")
async def toggle_scheduler(request: ToggleSchedulerRequest, services=Depends(get_services)):
    services.scheduler.set_enabled(request.enabled)
    await _audit(services, AuditEvent(
        actor="admin",
        entity="scheduler",
        entity_id="daily_checkin",
        event="scheduler_toggled",
        timestamp=services.clock.now(),
        meta={"enabled": request.enabled},
    ))
    return {"ok": True, "enabled": services.scheduler.enabled}


@router.get("/health")
async def admin_health(services=Depends(get_services)):
    return {
        "ok": True,
        "version": settings.VERSION,
        "time": services.clock.now().isoformat(),
        "twilio_configured": services.twilio_configured,
        "scheduler_enabled": services.scheduler.enabled,
        "demo_mode": services.demo_mode,
        "store": type(services.store).__name__,
    }
