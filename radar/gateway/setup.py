"""
Service Setup — constructs and wires every component from configuration.

Called once by the app factory.  All clients are built here with explicit
config and handed to the components that need them; nothing is a
module-level singleton.  Tests pass their own store / gateway / clock.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import ModuleType
from typing import Optional

from radar import settings
from radar.gateway.channels import SMSGateway
from radar.gateway.clock import Clock
from radar.gateway.dispatchers.stub_dispatcher import StubSMSDispatcher
from radar.gateway.dispatchers.twilio_dispatcher import TwilioConfig, TwilioSMSDispatcher
from radar.gateway.ingest.twilio_ingest import TwilioSMSIngest
from radar.gateway.pipeline import InboundPipeline
from radar.gateway.scheduler import CheckinScheduler
from radar.gateway.store import GCSRecordStore, InMemoryRecordStore, RecordStore

logger = logging.getLogger("radar.gateway.setup")


@dataclass
class RadarServices:
    """Everything the HTTP layer needs, stored on ``app.state.services``."""

    store: RecordStore
    gateway: SMSGateway
    clock: Clock
    ingest: TwilioSMSIngest
    pipeline: InboundPipeline
    scheduler: CheckinScheduler
    twilio_configured: bool = False
    demo_mode: bool = False


def build_services(
    config: ModuleType = settings,
    *,
    store: Optional[RecordStore] = None,
    gateway: Optional[SMSGateway] = None,
    clock: Optional[Clock] = None,
) -> RadarServices:
    """Wire store → gateway → clock → pipeline + scheduler."""
    logger.info("Initializing Post-Op Radar services...")

    # 1. Record store
    if store is None:
        store = _build_store(config)

    # 2. Outbound SMS
    twilio_configured = bool(
        config.TWILIO_ACCOUNT_SID and config.TWILIO_AUTH_TOKEN and config.TWILIO_FROM_NUMBER
    )
    if gateway is None:
        gateway = _build_gateway(config, twilio_configured)

    # 3. Reference clock
    if clock is None:
        clock = Clock(config.REFERENCE_TIMEZONE)

    # 4. Pipeline and scheduler share the same store / gateway / clock
    pipeline = InboundPipeline(store=store, gateway=gateway, clock=clock)
    scheduler = CheckinScheduler(
        store=store,
        gateway=gateway,
        clock=clock,
        duration_days=config.CHECKIN_DURATION_DAYS,
        send_at_local=config.CHECKIN_SEND_AT_LOCAL,
        enabled=config.SCHEDULER_ENABLED,
    )

    logger.info(
        "Services initialized: store=%s, gateway=%s, timezone=%s, scheduler_enabled=%s",
        type(store).__name__, type(gateway).__name__,
        config.REFERENCE_TIMEZONE, scheduler.enabled,
    )
    return RadarServices(
        store=store,
        gateway=gateway,
        clock=clock,
        ingest=TwilioSMSIngest(store=store),
        pipeline=pipeline,
        scheduler=scheduler,
        twilio_configured=twilio_configured,
        demo_mode=config.DEMO_MODE_ENABLED,
    )


def _build_store(config: ModuleType) -> RecordStore:
    if config.STORE_BACKEND == "gcs":
        from radar.infrastructure.gcs import GCSBucketManager

        gcs = GCSBucketManager(config.GCS_BUCKET_NAME, timeout=config.GCS_TIMEOUT)
        logger.info("Using GCS record store: %s", config.GCS_BUCKET_NAME)
        return GCSRecordStore(gcs, prefix=config.GCS_PREFIX)

    logger.info("Using in-memory record store")
    return InMemoryRecordStore()


def _build_gateway(config: ModuleType, twilio_configured: bool) -> SMSGateway:
    if not twilio_configured:
        logger.warning("Twilio not configured - outbound SMS go to the stub dispatcher")
        return StubSMSDispatcher()

    return TwilioSMSDispatcher(TwilioConfig(
        account_sid=config.TWILIO_ACCOUNT_SID,
        auth_token=config.TWILIO_AUTH_TOKEN,
        from_number=config.TWILIO_FROM_NUMBER,
        api_key_sid=config.TWILIO_API_KEY_SID,
        timeout_seconds=config.SMS_SEND_TIMEOUT,
        demo_enabled=config.DEMO_MODE_ENABLED,
        demo_route_to=config.DEMO_ROUTE_ALL_TO,
        demo_allowlist=list(config.DEMO_TEST_ALLOWLIST),
    ))
