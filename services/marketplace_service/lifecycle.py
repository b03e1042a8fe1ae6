"""
Request, bid and interest lifecycle.

Every operation checks ownership and state before it writes, commits once, and
rolls back on any error. Notifications created along the way are part of the
same transaction and are pushed to live sockets only after the commit.
"""
from contextlib import contextmanager
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import List, Tuple
from crud import find_chat_room, get_college, get_provider_by_user, get_service
from errors import conflict, invalid, invalid_state, not_found
from matching import notify_nearby_providers
from models import (
    Bid, BidStatus, ChatRoom, ClientRequest, Interest, InterestStatus, Message,
    Provider, RequestStatus, User
)
from notifications import deliver, queue_notification
from schemas import BidCreate, RequestCreate, RequestUpdate
import logging

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = "Chat started for request #{request_id}. Say hello and agree on the details here."


@contextmanager
def transaction(db: Session):
    try:
        yield
        db.commit()
    except Exception:
        db.rollback()
        raise


def get_provider_profile(db: Session, user: User) -> Provider:
    provider = get_provider_by_user(db, user.id)
    if not provider:
        raise not_found("Provider profile not found")
    return provider


# Requests

def create_request(db: Session, user: User, payload: RequestCreate) -> ClientRequest:
    if payload.is_service and payload.service_id is None:
        raise invalid("Service ID is required")
    product_name = (payload.product_name or "").strip()
    if not payload.is_service and not product_name:
        raise invalid("Product name is required")
    if payload.is_service and not get_service(db, payload.service_id):
        raise not_found("Service not found")
    if payload.college_filter_id is not None and not get_college(db, payload.college_filter_id):
        raise not_found("College not found")

    request = ClientRequest(
        user_id=user.id,
        is_service=payload.is_service,
        service_id=payload.service_id if payload.is_service else None,
        product_name=None if payload.is_service else product_name,
        description=payload.description,
        desired_price=payload.desired_price,
        location=payload.location,
        latitude=payload.latitude,
        longitude=payload.longitude,
        college_filter_id=payload.college_filter_id,
        allow_interests=payload.allow_interests,
        allow_bids=payload.allow_bids,
        status=RequestStatus.OPEN,
    )
    with transaction(db):
        db.add(request)
        db.flush()
        queued = notify_nearby_providers(db, request)
    db.refresh(request)
    deliver(queued)
    logger.info("User %s opened request %s", user.id, request.id)
    return request


def get_owned_request(db: Session, user: User, request_id: int) -> ClientRequest:
    request = db.query(ClientRequest).filter(
        ClientRequest.id == request_id,
        ClientRequest.user_id == user.id
    ).first()
    if not request:
        raise not_found("Request not found")
    return request


def list_client_requests(db: Session, user: User) -> List[ClientRequest]:
    return db.query(ClientRequest).filter(
        ClientRequest.user_id == user.id
    ).order_by(ClientRequest.created_at.desc(), ClientRequest.id.desc()).all()


def update_request(db: Session, user: User, request_id: int, payload: RequestUpdate) -> ClientRequest:
    request = get_owned_request(db, user, request_id)
    if request.status != RequestStatus.OPEN:
        raise invalid_state("Request is no longer open")
    with transaction(db):
        for field, value in payload.model_dump(exclude_unset=True).items():
            setattr(request, field, value)
    db.refresh(request)
    return request


# Bids

def list_request_bids(db: Session, user: User, request_id: int) -> List[Bid]:
    request = get_owned_request(db, user, request_id)
    return db.query(Bid).filter(Bid.request_id == request.id).order_by(Bid.price, Bid.id).all()


def list_provider_bids(db: Session, user: User) -> List[Bid]:
    provider = get_provider_profile(db, user)
    return db.query(Bid).filter(
        Bid.provider_id == provider.id
    ).order_by(Bid.created_at.desc(), Bid.id.desc()).all()


def create_bid(db: Session, user: User, payload: BidCreate) -> Bid:
    provider = get_provider_profile(db, user)
    request = db.query(ClientRequest).filter(ClientRequest.id == payload.request_id).first()
    if not request:
        raise not_found("Request not found")
    if request.status != RequestStatus.OPEN:
        raise invalid_state("Request is no longer open")
    if not request.allow_bids:
        raise invalid_state("Request does not accept bids")

    bid = Bid(
        request_id=request.id,
        provider_id=provider.id,
        price=payload.price,
        message=payload.message,
        # Fixed at creation time, never recomputed
        is_graduate_of_requested_college=(
            request.college_filter_id is not None
            and request.college_filter_id == provider.college_id
        ),
        status=BidStatus.PENDING,
    )
    with transaction(db):
        db.add(bid)
        db.flush()
        note = queue_notification(
            db,
            request.user_id,
            "new_bid",
            f"New bid of KES {bid.price} on your request #{request.id}",
            bid.id,
        )
    db.refresh(bid)
    deliver([note])
    return bid


def withdraw_bid(db: Session, user: User, bid_id: int):
    provider = get_provider_profile(db, user)
    bid = db.query(Bid).filter(Bid.id == bid_id, Bid.provider_id == provider.id).first()
    if not bid:
        raise not_found("Bid not found or unauthorized")
    if bid.status != BidStatus.PENDING:
        raise invalid_state("Only pending bids can be withdrawn")
    db.delete(bid)
    db.commit()


def accept_bid(db: Session, user: User, bid_id: int) -> Tuple[Bid, ClientRequest]:
    """
    Accept one bid, close its request and reject the other pending bids.

    The request row is locked for the duration of the transaction and the
    close is a guarded UPDATE, so of two concurrent accepts only one commits.
    """
    with transaction(db):
        bid = db.query(Bid).filter(Bid.id == bid_id).first()
        request = None
        if bid:
            request = db.query(ClientRequest).filter(
                ClientRequest.id == bid.request_id
            ).with_for_update().first()
        if not bid or not request or request.user_id != user.id:
            raise not_found("Bid not found or unauthorized")
        if request.status != RequestStatus.OPEN:
            raise invalid_state("Request is no longer open")
        if bid.status != BidStatus.PENDING:
            raise invalid_state("Bid is no longer pending")

        bid.status = BidStatus.ACCEPTED
        closed = db.query(ClientRequest).filter(
            ClientRequest.id == request.id,
            ClientRequest.status == RequestStatus.OPEN
        ).update(
            {ClientRequest.status: RequestStatus.CLOSED, ClientRequest.accepted_bid_id: bid.id},
            synchronize_session=False,
        )
        if closed != 1:
            raise invalid_state("Request is no longer open")
        db.query(Bid).filter(
            Bid.request_id == request.id,
            Bid.id != bid.id,
            Bid.status == BidStatus.PENDING
        ).update({Bid.status: BidStatus.REJECTED}, synchronize_session=False)

        queued = [
            queue_notification(
                db,
                bid.provider.user_id,
                "bid_accepted",
                f"Your bid for request #{request.id} was accepted!",
                bid.id,
            ),
            queue_notification(
                db,
                user.id,
                "bid_accepted_confirmation",
                f"You accepted a bid from provider #{bid.provider_id}",
                request.id,
            ),
        ]
    db.refresh(bid)
    db.refresh(request)
    deliver(queued)
    logger.info("Request %s closed with bid %s", request.id, bid.id)
    return bid, request


def reject_bid(db: Session, user: User, bid_id: int) -> Bid:
    with transaction(db):
        bid = db.query(Bid).filter(
            Bid.id == bid_id,
            Bid.request.has(ClientRequest.user_id == user.id)
        ).first()
        if not bid:
            raise not_found("Bid not found or unauthorized")
        if bid.request.status != RequestStatus.OPEN:
            raise invalid_state("Request is no longer open")
        if bid.status != BidStatus.PENDING:
            raise invalid_state("Bid is no longer pending")
        bid.status = BidStatus.REJECTED
        note = queue_notification(
            db,
            bid.provider.user_id,
            "bid_rejected",
            f"Your bid for request #{bid.request_id} was declined",
            bid.id,
        )
    db.refresh(bid)
    deliver([note])
    return bid


# Interests

def express_interest(db: Session, user: User, request_id: int, message: str = None) -> Interest:
    provider = get_provider_profile(db, user)
    request = db.query(ClientRequest).filter(
        ClientRequest.id == request_id,
        ClientRequest.allow_interests.is_(True)
    ).first()
    if not request:
        raise not_found("Request not found or doesn't accept interests")
    if request.status != RequestStatus.OPEN:
        raise invalid_state("Request is no longer open")
    existing = db.query(Interest).filter(
        Interest.request_id == request.id,
        Interest.provider_id == provider.id
    ).first()
    if existing:
        raise conflict("Interest already exists for this request", interestId=existing.id)

    interest = Interest(
        request_id=request.id,
        provider_id=provider.id,
        message=message,
        status=InterestStatus.PENDING,
    )
    try:
        with transaction(db):
            db.add(interest)
            db.flush()
            note = queue_notification(
                db,
                request.user_id,
                "new_interest",
                f"A provider is interested in your request #{request.id}",
                interest.id,
            )
    except IntegrityError:
        raise conflict("Interest already exists for this request")
    db.refresh(interest)
    deliver([note])
    return interest


def list_provider_interests(db: Session, user: User) -> List[Interest]:
    provider = get_provider_profile(db, user)
    return db.query(Interest).filter(
        Interest.provider_id == provider.id
    ).order_by(Interest.created_at.desc(), Interest.id.desc()).all()


def list_request_interests(db: Session, user: User, request_id: int) -> List[Interest]:
    request = get_owned_request(db, user, request_id)
    return db.query(Interest).filter(
        Interest.request_id == request.id
    ).order_by(Interest.created_at.desc(), Interest.id.desc()).all()


def _owned_interest(db: Session, user: User, interest_id: int, lock: bool = False) -> Interest:
    query = db.query(Interest).filter(
        Interest.id == interest_id,
        Interest.request.has(ClientRequest.user_id == user.id)
    )
    if lock:
        query = query.with_for_update()
    interest = query.first()
    if not interest:
        raise not_found("Interest not found or unauthorized")
    return interest


def accept_interest(db: Session, user: User, interest_id: int) -> Tuple[Interest, ChatRoom, bool]:
    """
    Accept an interest and open (or reuse) the chat room for it.

    Returns (interest, room, created). Accepting an already accepted interest
    hands back the same room with created=False.
    """
    queued = []
    try:
        with transaction(db):
            interest = _owned_interest(db, user, interest_id, lock=True)
            if interest.status == InterestStatus.REJECTED:
                raise conflict("Interest has already been rejected")

            provider_user_id = interest.provider.user_id
            room = find_chat_room(db, interest.request_id, user.id, provider_user_id)
            created = room is None
            if created:
                room = ChatRoom(
                    request_id=interest.request_id,
                    client_id=user.id,
                    provider_id=provider_user_id,
                )
                db.add(room)
                db.flush()
                db.add(Message(
                    chat_room_id=room.id,
                    sender_id=user.id,
                    content=WELCOME_MESSAGE.format(request_id=interest.request_id),
                    is_system=True,
                ))

            if interest.status != InterestStatus.ACCEPTED:
                queued.append(queue_notification(
                    db,
                    provider_user_id,
                    "interest_accepted",
                    f"Your interest in request #{interest.request_id} was accepted. You can now chat with the client.",
                    room.id,
                ))
            interest.status = InterestStatus.ACCEPTED
            interest.chat_room_id = room.id
    except IntegrityError:
        # A concurrent accept created the room first
        interest = _owned_interest(db, user, interest_id)
        room = find_chat_room(db, interest.request_id, user.id, interest.provider.user_id)
        if room is None:
            raise
        return interest, room, False

    db.refresh(interest)
    db.refresh(room)
    deliver(queued)
    logger.info("Interest %s accepted into room %s (new=%s)", interest.id, room.id, created)
    return interest, room, created


def reject_interest(db: Session, user: User, interest_id: int, reason: str = None) -> Interest:
    with transaction(db):
        interest = _owned_interest(db, user, interest_id, lock=True)
        if interest.status != InterestStatus.PENDING:
            raise conflict(f"Interest has already been {interest.status.value}")
        interest.status = InterestStatus.REJECTED
        note = queue_notification(
            db,
            interest.provider.user_id,
            "interest_rejected",
            f"Your interest in request #{interest.request_id} was declined: {reason or 'No reason given'}",
            interest.id,
        )
    db.refresh(interest)
    deliver([note])
    return interest


def shortlist_interest(db: Session, user: User, interest_id: int, shortlisted: bool) -> Interest:
    """Owner-side flag for interests worth following up. Rejected ones cannot be shortlisted."""
    with transaction(db):
        interest = _owned_interest(db, user, interest_id)
        if shortlisted and interest.status == InterestStatus.REJECTED:
            raise invalid_state("Cannot shortlist a rejected interest")
        interest.is_shortlisted = shortlisted
    db.refresh(interest)
    return interest


def withdraw_interest(db: Session, user: User, interest_id: int):
    provider = get_provider_profile(db, user)
    with transaction(db):
        interest = db.query(Interest).filter(
            Interest.id == interest_id,
            Interest.provider_id == provider.id
        ).first()
        if not interest:
            raise not_found("Interest not found or unauthorized")
        if interest.status == InterestStatus.ACCEPTED:
            raise invalid_state("Cannot withdraw an accepted interest")
        owner_id = interest.request.user_id
        request_id = interest.request_id
        db.delete(interest)
        note = queue_notification(
            db,
            owner_id,
            "interest_withdrawn",
            f"A provider withdrew their interest in your request #{request_id}",
            request_id,
        )
    deliver([note])
