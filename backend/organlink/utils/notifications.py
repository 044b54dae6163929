from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from typing import Optional

from loguru import logger
from twilio.base.exceptions import TwilioException
from twilio.rest import Client


@dataclass
class SmsNotification:
    to: str
    body: str


def normalize_phone_number(phone: str) -> str:
    """
    Normalize a phone number to E.164 for Twilio.

    Examples:
        "+1-555-0199" -> "+15550199"
        "+1 (555) 123-4567" -> "+15551234567"
        "555-1234" -> "+5551234"
    """
    if not phone:
        return phone
    digits = re.sub(r"\D", "", phone)
    return "+" + digits


class NotificationService:
    def __init__(self, sid: str | None, token: str | None, sender_phone: str | None) -> None:
        if not sid or not token:
            logger.warning("Twilio credentials missing; SMS notifications will be mocked.")
            self.client: Optional[Client] = None
        else:
            self.client = Client(sid, token)
        self.sender_phone = sender_phone or "+1234567890"

    @classmethod
    def from_settings(cls, settings) -> "NotificationService":
        return cls(settings.twilio_sid, settings.twilio_token, settings.twilio_phone)

    async def send_sms(self, message: SmsNotification) -> bool:
        normalized_phone = normalize_phone_number(message.to)
        if self.client is None:
            logger.info("Mock SMS: {} -> {}", normalized_phone, message.body)
            return False
        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(
                None,
                lambda: self.client.messages.create(
                    to=normalized_phone,
                    from_=self.sender_phone,
                    body=message.body,
                ),
            )
        except TwilioException as exc:
            logger.warning("SMS delivery failed for {}: {}. Allocation continues.", normalized_phone, exc)
            return False
        logger.info("SMS sent to {}", normalized_phone)
        return True
