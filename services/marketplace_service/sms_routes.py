from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from database import get_db
from schemas import (
    SendResetSmsRequest, VerifySmsCodeRequest, ResetPasswordRequest,
    OutreachSmsResponse, WhatsAppLinksResponse, WhatsAppLink
)
from crud import (
    get_user_by_phone, create_sms_code, get_valid_sms_code, create_reset_token,
    get_valid_reset_token, get_user_by_id, hash_password
)
from errors import invalid
from auth import require_client
from matching import find_matching_providers
from models import User
from sms import send_sms, send_bulk_sms
import lifecycle
import logging
import os
import outreach

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["sms"])

APP_ENV = os.getenv("APP_ENV", "development")
SMS_CODE_TTL_MINUTES = int(os.getenv("SMS_CODE_TTL_MINUTES", "10"))
RESET_TOKEN_TTL_MINUTES = int(os.getenv("RESET_TOKEN_TTL_MINUTES", "30"))

RESET_SMS_SENT = "If this phone number is registered, a verification code will be sent"


@router.post("/send-reset-sms")
def send_reset_sms(payload: SendResetSmsRequest, db: Session = Depends(get_db)):
    phone_number = (payload.phone_number or "").strip()
    if not phone_number:
        raise invalid("Phone number is required")

    body = {"success": True, "message": RESET_SMS_SENT}
    user = get_user_by_phone(db, phone_number)
    if not user:
        logger.info("Password reset requested for an unknown phone number")
        return body

    record = create_sms_code(db, phone_number, SMS_CODE_TTL_MINUTES)
    result = send_sms(
        phone_number,
        f"Your password reset code is {record.code}. It expires in {SMS_CODE_TTL_MINUTES} minutes.",
    )
    if not result.success:
        logger.warning("Reset code SMS for user %s was not delivered: %s", user.id, result.error)
    if APP_ENV == "development":
        body["debugCode"] = record.code
    return body


@router.post("/verify-sms-code")
def verify_sms_code(payload: VerifySmsCodeRequest, db: Session = Depends(get_db)):
    record = get_valid_sms_code(db, payload.phone_number.strip(), payload.code.strip())
    user = get_user_by_phone(db, payload.phone_number.strip()) if record else None
    if not record or not user:
        raise invalid("Invalid or expired verification code")

    record.used = True
    reset = create_reset_token(db, user.id, RESET_TOKEN_TTL_MINUTES)
    db.commit()
    return {
        "success": True,
        "message": "Code verified",
        "resetToken": reset.token,
        "expiresInMinutes": RESET_TOKEN_TTL_MINUTES,
    }


@router.post("/reset-password")
def reset_password(payload: ResetPasswordRequest, db: Session = Depends(get_db)):
    record = get_valid_reset_token(db, payload.token)
    user = get_user_by_id(db, record.user_id) if record else None
    if not record or not user:
        raise invalid("Invalid or expired reset token")

    record.used = True
    user.password_hash = hash_password(payload.new_password)
    db.commit()
    logger.info("Password reset for user %s", user.id)
    return {"success": True, "message": "Password reset successfully"}


@router.post("/outreach/requests/{request_id}/sms", response_model=OutreachSmsResponse)
def send_request_sms(request_id: int, db: Session = Depends(get_db), user: User = Depends(require_client)):
    request = lifecycle.get_owned_request(db, user, request_id)
    phone_numbers = outreach.provider_phone_numbers(find_matching_providers(db, request))
    results = send_bulk_sms(phone_numbers, outreach.build_request_sms(request))
    sent = sum(1 for r in results if r.success)
    return OutreachSmsResponse(
        request_id=request.id,
        sent=sent,
        failed=len(results) - sent,
        results=results,
    )


@router.get("/outreach/requests/{request_id}/whatsapp", response_model=WhatsAppLinksResponse)
def request_whatsapp_links(request_id: int, db: Session = Depends(get_db), user: User = Depends(require_client)):
    request = lifecycle.get_owned_request(db, user, request_id)
    message = outreach.build_request_whatsapp(request)
    links = outreach.whatsapp_links(find_matching_providers(db, request), message)
    return WhatsAppLinksResponse(
        request_id=request.id,
        message=message,
        links=[WhatsAppLink(**link) for link in links],
    )
