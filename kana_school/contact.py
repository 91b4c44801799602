import logging
from typing import Any, Optional

import requests

from .results import Err, ErrorKind, Ok, Result, storage_error, validation_error

logger = logging.getLogger(__name__)

WEBHOOK_TIMEOUT = 10


def send_contact_message(message: Any, webhook_url: Optional[str]) -> Result:
    """Relay a contact-form message to the configured Discord webhook."""
    if not isinstance(message, str) or not message.strip():
        return validation_error("Message is required")

    if not webhook_url:
        logger.error("DISCORD_WEBHOOK_URL is not configured")
        return Err(ErrorKind.CONFIGURATION, "Server configuration error")

    payload = {"content": f"New message from KanaSchool contact form:\n\n{message}"}
    try:
        response = requests.post(webhook_url, json=payload, timeout=WEBHOOK_TIMEOUT)
    except requests.RequestException:
        logger.exception("Contact webhook request failed")
        return storage_error("Failed to process request")

    if not response.ok:
        logger.error("Discord webhook error: %s %s", response.status_code, response.reason)
        return storage_error("Failed to send message")
    return Ok(None)
