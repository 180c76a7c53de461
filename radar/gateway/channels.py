"""
Channel Abstractions — outbound SMS delivery.

The pipeline and scheduler talk to an ``SMSGateway``; they never import a
vendor SDK.  Adding a new provider is:
  1. Implement an SMSGateway subclass in dispatchers/
  2. Construct it in setup.py from settings
Zero changes to the pipeline, scheduler or store.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

logger = logging.getLogger("radar.gateway.channels")

# Twilio concatenates long bodies automatically up to this many characters
MAX_SMS_LENGTH = 1600


class DeliveryError(Exception):
    """Transport failure while handing a message to the SMS provider."""

    def __init__(self, message: str, *, to: str = "") -> None:
        super().__init__(message)
        self.to = to


class SMSGateway(ABC):
    """Abstract outbound channel."""

    channel_name: str = ""  # overridden by subclasses

    @abstractmethod
    async def send(self, to: str, body: str) -> str:
        """
        Deliver one SMS and return the provider message id.

        Raises DeliveryError on any transport failure or timeout.
        """

    @staticmethod
    def _truncate(body: str) -> str:
        if len(body) > MAX_SMS_LENGTH:
            return body[:MAX_SMS_LENGTH - 3] + "..."
        return body
