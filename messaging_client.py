#!/usr/bin/env python3
"""
WhatsApp bulk messaging client
"""

import logging
import re
from datetime import datetime
from typing import List, Optional, Union
from zoneinfo import ZoneInfo

import requests

from config import WHATSAPP_API_URL, WHATSAPP_API_KEY, WHATSAPP_TIMEOUT, COURT_NAME, TIMEZONE
from errors import TransportError
from models import SendResult

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r"^91[6-9]\d{9}$")


def validate_phone_number(phone_number: str) -> str:
    """
    Normalize an Indian mobile number to 91XXXXXXXXXX

    Raises:
        TransportError: when the number cannot be normalized
    """
    if not phone_number:
        raise TransportError("Phone number is required")

    clean_number = re.sub(r"\D", "", str(phone_number))

    if len(clean_number) == 10 and not clean_number.startswith("91"):
        clean_number = "91" + clean_number

    if not PHONE_PATTERN.match(clean_number):
        raise TransportError(f"Invalid phone number format: {phone_number}")

    return clean_number


class WhatsAppClient:
    """Sends text messages through the bulk WhatsApp API"""

    def __init__(
        self,
        api_url: str = WHATSAPP_API_URL,
        api_key: str = WHATSAPP_API_KEY,
        timeout: float = WHATSAPP_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, recipients: Union[List[str], str], message: str) -> SendResult:
        """
        Send one message to a batch of recipients

        Raises:
            TransportError: when the API key is missing or a number is invalid
        """
        if not self.api_key:
            raise TransportError("WhatsApp API key not configured")

        numbers = recipients if isinstance(recipients, list) else [recipients]
        if not numbers:
            logger.warning("⚠️ Empty recipients list")
            return SendResult(success=False, error="No recipients")

        clean_numbers = [validate_phone_number(number) for number in numbers]

        try:
            response = self.session.post(
                self.api_url,
                json={"numbers": clean_numbers, "message": message},
                headers={"x-api-key": self.api_key, "Content-Type": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"❌ Failed to send WhatsApp message to {len(clean_numbers)} recipients: {e}")
            return SendResult(success=False, error=str(e), recipients=clean_numbers)

        message_id = None
        try:
            data = response.json()
            if isinstance(data, dict):
                message_id = data.get("messageId") or data.get("message_id") or data.get("id")
        except ValueError:
            logger.warning(f"Response is not JSON: {response.text[:200]}")

        logger.info(f"✅ WhatsApp message sent to {len(clean_numbers)} recipients")
        return SendResult(
            success=True,
            message_id=str(message_id) if message_id is not None else None,
            recipients=clean_numbers,
        )

    def send_test_message(self, number: str) -> SendResult:
        now = datetime.now(ZoneInfo(TIMEZONE)).strftime("%d/%m/%Y %H:%M")
        message = (
            f"🧪 Test Message from {COURT_NAME} Monitor\n\n"
            f"Time: {now}\n\n"
            "If you receive this message, WhatsApp integration is working correctly! ✅"
        )
        return self.send([number], message)
