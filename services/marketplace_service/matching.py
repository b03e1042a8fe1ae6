"""
Provider matching for new requests and the provider request feed.

SQL narrows candidates by service, college and status; great-circle distance is
then checked in Python so the same code runs on PostgreSQL and SQLite.
"""
from sqlalchemy import or_
from sqlalchemy.orm import Session
from typing import List, Optional, Tuple
from errors import invalid
from models import Bid, BidStatus, ClientRequest, Provider, RequestStatus, Role, Service, User
from notifications import queue_notification
import json
import logging
import math
import os

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
NEARBY_RADIUS_KM = float(os.getenv("NEARBY_RADIUS_KM", "50"))
FEED_LIMIT = 100
MAX_FEED_RANGE_KM = 10000
AUTO_BID_ON_COLLEGE_MATCH = os.getenv("AUTO_BID_ON_COLLEGE_MATCH", "true").lower() in ("1", "true", "yes")


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def parse_location(location: Optional[str]) -> Optional[Tuple[float, float]]:
    """Read a JSON ``{"lat": .., "lng": ..}`` location string; free text yields None."""
    if not location:
        return None
    try:
        data = json.loads(location)
        return float(data["lat"]), float(data["lng"])
    except (ValueError, TypeError, KeyError):
        return None


def request_coordinates(request: ClientRequest) -> Optional[Tuple[float, float]]:
    if request.latitude is not None and request.longitude is not None:
        return request.latitude, request.longitude
    return parse_location(request.location)


def find_matching_providers(db: Session, request: ClientRequest) -> List[Provider]:
    query = db.query(Provider).join(User, Provider.user_id == User.id).filter(
        User.role == Role.SERVICE_PROVIDER
    )
    if request.is_service and request.service_id:
        query = query.filter(Provider.services.any(Service.id == request.service_id))
    if request.college_filter_id:
        query = query.filter(Provider.college_id == request.college_filter_id)
    providers = query.order_by(Provider.id).all()

    origin = request_coordinates(request)
    if origin is None:
        return providers
    return [
        p for p in providers
        if p.latitude is not None and p.longitude is not None
        and haversine_km(origin[0], origin[1], p.latitude, p.longitude) <= NEARBY_RADIUS_KM
    ]


def notify_nearby_providers(db: Session, request: ClientRequest) -> list:
    """
    Queue a 'new_request' notification for every matching provider.

    When the request filters on a college and AUTO_BID_ON_COLLEGE_MATCH is on,
    providers from that college also get a pending bid at the desired price.
    Runs inside the caller's transaction; returns the queued notifications.
    """
    kind = "service" if request.is_service else "product"
    queued = []
    auto_bids = 0
    for provider in find_matching_providers(db, request):
        queued.append(queue_notification(
            db,
            provider.user_id,
            "new_request",
            f"New {kind} request matching your profile",
            request.id,
        ))
        if (
            AUTO_BID_ON_COLLEGE_MATCH
            and request.college_filter_id
            and provider.college_id == request.college_filter_id
            and request.desired_price is not None
        ):
            db.add(Bid(
                request_id=request.id,
                provider_id=provider.id,
                price=request.desired_price,
                message="Automatic bid: graduate of the requested college",
                is_graduate_of_requested_college=True,
                status=BidStatus.PENDING,
            ))
            auto_bids += 1
    logger.info(
        "Request %s matched %s providers (%s auto-bids)", request.id, len(queued), auto_bids
    )
    return queued


def validate_feed_params(lat: Optional[float], lng: Optional[float], range_km: float):
    if lat is not None and not -90 <= lat <= 90:
        raise invalid("Latitude must be between -90 and 90")
    if lng is not None and not -180 <= lng <= 180:
        raise invalid("Longitude must be between -180 and 180")
    if not 0 < range_km <= MAX_FEED_RANGE_KM:
        raise invalid(f"Range must be between 0 and {MAX_FEED_RANGE_KM} km")
    if (lat is None) != (lng is None):
        raise invalid("Latitude and longitude must be provided together")


def provider_feed(
    db: Session,
    provider: Provider,
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    range_km: float = NEARBY_RADIUS_KM,
    filter_by_services: bool = False,
) -> List[ClientRequest]:
    validate_feed_params(lat, lng, range_km)

    query = db.query(ClientRequest).filter(
        ClientRequest.status == RequestStatus.OPEN,
        or_(
            ClientRequest.college_filter_id.is_(None),
            ClientRequest.college_filter_id == provider.college_id,
        ),
    )
    if filter_by_services:
        service_ids = [s.id for s in provider.services]
        if not service_ids:
            return []
        query = query.filter(
            ClientRequest.is_service.is_(True),
            ClientRequest.service_id.in_(service_ids),
        )
    requests = query.order_by(ClientRequest.created_at.desc(), ClientRequest.id.desc()).all()

    if lat is not None:
        nearby = []
        for request in requests:
            point = request_coordinates(request)
            if point and haversine_km(lat, lng, point[0], point[1]) <= range_km:
                nearby.append(request)
        requests = nearby
    return requests[:FEED_LIMIT]
