"""
Twilio SMS Dispatcher — delivers outbound SMS through the Twilio REST API.

The client is built once from explicit configuration and injected; nothing
here reads the environment.

Demo mode: when enabled, any recipient not on the allow-list is rerouted to
a single demo handset with a ``[DEMO to:<redacted>]`` prefix so pilots never
text real patients by accident.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from radar.gateway.channels import DeliveryError, SMSGateway
from radar.gateway.redact import redact_for_logs, redact_phone

logger = logging.getLogger("radar.gateway.dispatchers.twilio")


@dataclass
class TwilioConfig:
    account_sid: str
    auth_token: str
    from_number: str
    api_key_sid: str = ""
    timeout_seconds: float = 10.0
    demo_enabled: bool = False
    demo_route_to: str = ""
    demo_allowlist: list[str] = field(default_factory=list)


class TwilioSMSDispatcher(SMSGateway):
    """Delivers SMS via Twilio."""

    channel_name = "sms"

    def __init__(self, config: TwilioConfig, client: Any = None) -> None:
        if not config.from_number:
            raise ValueError("Twilio from_number is required")
        self._config = config
        self._client = client or self._build_client(config)

    @staticmethod
    def _build_client(config: TwilioConfig):
        from twilio.http.http_client import TwilioHttpClient
        from twilio.rest import Client

        if not config.account_sid or not config.auth_token:
            raise ValueError("Twilio account_sid and auth_token are required")

        http_client = TwilioHttpClient(timeout=config.timeout_seconds)
        # API key auth when available, otherwise account SID + auth token
        if config.api_key_sid:
            client = Client(
                config.api_key_sid,
                config.auth_token,
                account_sid=config.account_sid,
                http_client=http_client,
            )
        else:
            if not config.account_sid.startswith("AC"):
                raise ValueError("Invalid Twilio account SID")
            client = Client(
                config.account_sid,
                config.auth_token,
                http_client=http_client,
            )
        logger.info("Twilio client initialized")
        return client

    async def send(self, to: str, body: str) -> str:
        """Send an SMS via Twilio, returning the message SID."""
        final_to, final_body = self._apply_demo_routing(to, self._truncate(body))
        loop = asyncio.get_running_loop()
        try:
            message = await asyncio.wait_for(
                loop.run_in_executor(
                    None,
                    lambda: self._client.messages.create(
                        body=final_body,
                        from_=self._config.from_number,
                        to=final_to,
                    ),
                ),
                timeout=self._config.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            logger.error("Twilio send timed out → %s", redact_phone(to))
            raise DeliveryError("Twilio send timed out", to=to) from exc
        except Exception as exc:
            logger.error("Twilio SMS send error → %s: %s", redact_phone(to), exc)
            raise DeliveryError(str(exc), to=to) from exc

        phone, preview = redact_for_logs(to, body)
        logger.info("Twilio SMS sent: SID=%s → %s: %s", message.sid, phone, preview)
        return message.sid

    def _apply_demo_routing(self, to: str, body: str) -> tuple[str, str]:
        cfg = self._config
        if not cfg.demo_enabled or to in cfg.demo_allowlist:
            return to, body

        if not cfg.demo_route_to:
            logger.warning("Demo mode enabled but no route-to number configured")
            return to, body

        redacted = redact_phone(to)
        logger.info("Demo routing: %s → %s", redacted, redact_phone(cfg.demo_route_to))
        return cfg.demo_route_to, f"[DEMO to:{redacted}] {body}"
