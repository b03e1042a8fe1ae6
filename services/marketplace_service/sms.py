"""
Outbound SMS.

Numbers are normalised to the local international form (254XXXXXXXXX) before
sending. The ``quicksms`` provider posts JSON to the gateway through httpx; the
``console`` provider only logs, which is what development and tests use.
Failures come back as an unsuccessful SmsResult and are never raised.
"""
from typing import List, Optional
from schemas import SmsResult
import httpx
import logging
import os
import re
import time

logger = logging.getLogger(__name__)

SMS_PROVIDER = os.getenv("SMS_PROVIDER", "console")
SMS_API_URL = os.getenv("SMS_API_URL", "https://quicksms.advantasms.com/api/services/sendsms/")
SMS_API_KEY = os.getenv("SMS_API_KEY", "")
SMS_PARTNER_ID = os.getenv("SMS_PARTNER_ID", "")
SMS_SHORTCODE = os.getenv("SMS_SHORTCODE", "")
SMS_TIMEOUT_SECONDS = float(os.getenv("SMS_TIMEOUT_SECONDS", "10"))
SMS_BULK_DELAY_SECONDS = float(os.getenv("SMS_BULK_DELAY_SECONDS", "0.1"))
COUNTRY_CODE = os.getenv("SMS_COUNTRY_CODE", "254")


def format_phone_number(phone_number: str) -> str:
    digits = re.sub(r"\D", "", phone_number or "")
    if digits.startswith("0"):
        return COUNTRY_CODE + digits[1:]
    if digits and not digits.startswith(COUNTRY_CODE):
        return COUNTRY_CODE + digits
    return digits


def is_valid_phone_number(phone_number: str) -> bool:
    return 9 <= len(format_phone_number(phone_number)) <= 15


def _parse_gateway_response(phone_number: str, body: dict) -> SmsResult:
    responses = body.get("responses") or []
    first = responses[0] if responses else {}
    # Some gateway builds spell the key "respose-code"
    code = first.get("response-code") or first.get("respose-code")
    description = first.get("response-description")
    if code == 200 or description == "Success":
        return SmsResult(
            phone_number=phone_number,
            success=True,
            message_id=str(first.get("messageid")) if first.get("messageid") is not None else None,
        )
    return SmsResult(
        phone_number=phone_number,
        success=False,
        error=description or "SMS gateway rejected the message",
    )


def send_sms(phone_number: str, message: str, client: Optional[httpx.Client] = None) -> SmsResult:
    formatted = format_phone_number(phone_number)
    if not is_valid_phone_number(phone_number):
        logger.warning("Refusing to send SMS to invalid number %r", phone_number)
        return SmsResult(phone_number=formatted, success=False, error="Invalid phone number")

    if SMS_PROVIDER == "console" and client is None:
        logger.info("SMS to %s: %s", formatted, message)
        return SmsResult(phone_number=formatted, success=True, message_id="console")

    payload = {
        "apikey": SMS_API_KEY,
        "partnerID": SMS_PARTNER_ID,
        "message": message,
        "shortcode": SMS_SHORTCODE,
        "mobile": formatted,
    }
    owns_client = client is None
    http = client or httpx.Client(timeout=SMS_TIMEOUT_SECONDS)
    try:
        response = http.post(SMS_API_URL, json=payload)
        response.raise_for_status()
        result = _parse_gateway_response(formatted, response.json())
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("SMS to %s failed: %s", formatted, exc)
        return SmsResult(phone_number=formatted, success=False, error=str(exc))
    finally:
        if owns_client:
            http.close()

    if not result.success:
        logger.warning("SMS gateway refused message to %s: %s", formatted, result.error)
    return result


def send_bulk_sms(phone_numbers: List[str], message: str, client: Optional[httpx.Client] = None) -> List[SmsResult]:
    """Send one message to many numbers, sequentially, pausing between sends."""
    results = []
    for index, phone_number in enumerate(phone_numbers):
        if index and SMS_BULK_DELAY_SECONDS > 0:
            time.sleep(SMS_BULK_DELAY_SECONDS)
        results.append(send_sms(phone_number, message, client=client))
    sent = sum(1 for r in results if r.success)
    logger.info("Bulk SMS finished: %s sent, %s failed", sent, len(results) - sent)
    return results
