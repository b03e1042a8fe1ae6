"""Message builders for reaching providers over SMS and WhatsApp."""
from urllib.parse import quote
from models import ClientRequest, Provider
from sms import format_phone_number, is_valid_phone_number
from typing import List
import os

APP_NAME = os.getenv("APP_NAME", "Quisells")
APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:3000")


def request_title(request: ClientRequest) -> str:
    if request.is_service:
        return request.service.name if request.service else f"Service #{request.service_id}"
    return request.product_name or "Product"


def request_url(request: ClientRequest) -> str:
    return f"{APP_BASE_URL.rstrip('/')}/provider/requests/{request.id}"


def _budget(request: ClientRequest) -> str:
    return f"KES {request.desired_price:,}" if request.desired_price is not None else "Negotiable"


def build_request_sms(request: ClientRequest) -> str:
    kind = "SERVICE" if request.is_service else "PRODUCT"
    lines = [
        f"NEW {kind} REQUEST - {APP_NAME}",
        f"{'Service' if request.is_service else 'Product'}: {request_title(request)}",
        f"Budget: {_budget(request)}",
    ]
    if request.location:
        lines.append(f"Location: {request.location}")
    lines.append(f"View: {request_url(request)}")
    return "\n".join(lines)


def build_request_whatsapp(request: ClientRequest) -> str:
    kind = "service" if request.is_service else "product"
    parts = [
        f"*New {kind} request on {APP_NAME}*",
        "",
        f"*{request_title(request)}*",
        f"Budget: {_budget(request)}",
    ]
    if request.location:
        parts.append(f"Location: {request.location}")
    if request.description:
        parts.extend(["", request.description])
    parts.extend(["", f"Respond here: {request_url(request)}"])
    return "\n".join(parts)


def whatsapp_url(phone_number: str, message: str) -> str:
    return f"https://wa.me/{format_phone_number(phone_number)}?text={quote(message)}"


def whatsapp_links(providers: List[Provider], message: str) -> List[dict]:
    links = []
    for provider in providers:
        if not provider.phone_number or not is_valid_phone_number(provider.phone_number):
            continue
        links.append({
            "provider_id": provider.id,
            "phone_number": format_phone_number(provider.phone_number),
            "url": whatsapp_url(provider.phone_number, message),
        })
    return links


def provider_phone_numbers(providers: List[Provider]) -> List[str]:
    return [p.phone_number for p in providers if p.phone_number and is_valid_phone_number(p.phone_number)]
