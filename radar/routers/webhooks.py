"""
Twilio webhooks: inbound SMS and delivery status callbacks.

Twilio posts form-encoded bodies.  Inbound messages are answered with an
empty TwiML document; the reply itself is sent through the REST API.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse, Response

from radar.dependencies import get_services
from radar.gateway.pipeline import PipelineError
from radar.gateway.store import RecordStoreError

router = APIRouter(prefix="/webhooks/twilio", tags=["webhooks"])
logger = logging.getLogger("radar.routers.webhooks")

EMPTY_TWIML = "<Response></Response>"


@router.post("/sms")
async def twilio_sms_webhook(request: Request, services=Depends(get_services)):
    form = await request.form()

    try:
        envelope = await services.ingest.to_envelope(dict(form))
        await services.pipeline.handle_inbound(envelope)
    except (PipelineError, RecordStoreError) as exc:
        logger.error("Error processing Twilio webhook: %s", exc)
        return PlainTextResponse("Internal Server Error", status_code=500)

    return Response(content=EMPTY_TWIML, media_type="text/xml")


@router.post("/status")
async def twilio_status_callback(request: Request, services=Depends(get_services)):
    form = await request.form()
    envelope = services.ingest.to_status_envelope(dict(form))

    try:
        await services.pipeline.handle_delivery_status(envelope)
    except RecordStoreError as exc:
        logger.error("Status callback error: %s", exc)
        return PlainTextResponse("Error", status_code=500)

    return PlainTextResponse("OK")
