"""
Triage dashboard data: summary metrics and the staff review queue.
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from radar.dependencies import get_services, require_admin
from radar.gateway.records import PatientStatus, RiskLevel, StaffQueue
from radar.gateway.store import RecordStoreError

router = APIRouter(prefix="/triage", tags=["triage"], dependencies=[Depends(require_admin)])
logger = logging.getLogger("radar.routers.triage")


def _latest_triage(store, patient_id):
    """(latest observation, its triage) or (None, None) before any reply."""
    observations = store.list_observations(patient_id)
    if not observations:
        return None, None
    latest = observations[-1]
    return latest, store.get_triage(latest.id)


def _build_metrics(store) -> dict:
    patients = store.list_patients(PatientStatus.ACTIVE)
    red = yellow = green = responded = 0
    for patient in patients:
        observation, triage = _latest_triage(store, patient.id)
        if observation is not None:
            responded += 1
        level = triage.risk_level if triage is not None else RiskLevel.ROUTINE
        if level >= RiskLevel.URGENT:
            red += 1
        elif level >= RiskLevel.REVIEW_TODAY:
            yellow += 1
        else:
            green += 1

    total = len(patients)
    return {
        "red_count": red,
        "yellow_count": yellow,
        "green_count": green,
        "total_patients": total,
        "response_rate": responded / total if total else 0,
    }


def _build_queue(store, queue: Optional[StaffQueue]) -> list[dict]:
    entries = []
    for patient in store.list_patients(PatientStatus.ACTIVE):
        observation, triage = _latest_triage(store, patient.id)
        if triage is None:
            continue
        if queue is not None and triage.queue != queue:
            continue
        entries.append({
            "patient_id": patient.id,
            "first_name": patient.first_name,
            "last_initial": patient.last_initial,
            "day_index": observation.day_index,
            "risk_level": int(triage.risk_level),
            "queue": triage.queue.value,
            "flags": triage.flags,
            "reasons": triage.reasons,
            "received_at": observation.received_at.isoformat(),
        })
    entries.sort(key=lambda e: (-e["risk_level"], e["received_at"]))
    return entries


@router.get("/metrics")
async def triage_metrics(services=Depends(get_services)):
    try:
        return await asyncio.to_thread(_build_metrics, services.store)
    except RecordStoreError as exc:
        logger.error("Error getting metrics: %s", exc)
        raise HTTPException(status_code=500, detail="Failed to fetch metrics")


@router.get("/queue")
async def triage_queue(queue: Optional[StaffQueue] = None, services=Depends(get_services)):
    """Active patients with a triaged reply, most urgent first."""
    try:
        entries = await asyncio.to_thread(_build_queue, services.store, queue)
    except RecordStoreError as exc:
        logger.error("Error building triage queue: %s", exc)
        raise HTTPException(status_code=500, detail="Failed to fetch triage queue")

    return {"count": len(entries), "items": entries}
