from fastapi import APIRouter

from radar import settings

router = APIRouter()


@router.get("/")
async def root():
    return {
        "status": "Post-Op Radar is Running",
        "endpoints": {
            "sms_webhook": "/webhooks/twilio/sms",
            "status_callback": "/webhooks/twilio/status",
            "run_checkins": "/admin/run-checkins",
            "triage_metrics": "/triage/metrics",
            "triage_queue": "/triage/queue",
        },
    }


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "postop-radar",
        "port": settings.PORT,
    }
