from sqlalchemy.orm import Session
from sqlalchemy import or_, and_, func
from models import (
    User, Role, Provider, College, Service, Notification, ChatRoom, Message,
    Category, Product, SmsVerificationCode, PasswordResetToken, Review
)
from passlib.context import CryptContext
from sms import format_phone_number
from datetime import datetime, timedelta
from typing import Optional
import hashlib
import math
import secrets
import uuid

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def _prehash_password(password: str) -> str:
    """
    Pre-hash the raw password using SHA-256 before passing it to bcrypt.
    This keeps long passwords under bcrypt's 72-byte input limit.
    """
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def hash_password(password: str) -> str:
    return pwd_context.hash(_prehash_password(password))


def verify_password(plain_password: str, password_hash: str) -> bool:
    return pwd_context.verify(_prehash_password(plain_password), password_hash)


# Users

def get_user_by_email(db: Session, email: str):
    return db.query(User).filter(func.lower(User.email) == email.lower()).first()


def get_user_by_id(db: Session, user_id: int):
    return db.query(User).filter(User.id == user_id).first()


def get_user_by_phone(db: Session, phone_number: str):
    """Match in international form, so 0712... and +254712... find the same user."""
    normalized = format_phone_number(phone_number)
    if not normalized:
        return None
    return db.query(User).filter(User.contact_phone == normalized).first()


def create_user(
    db: Session,
    email: str,
    password: str,
    name: str,
    role: Role = Role.CLIENT,
    contact_phone: Optional[str] = None,
):
    db_user = User(
        email=email.lower(),
        password_hash=hash_password(password),
        name=name,
        role=role,
        contact_phone=format_phone_number(contact_phone) if contact_phone else None,
    )
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    return db_user


# Catalog

def list_colleges(db: Session):
    return db.query(College).order_by(College.name).all()


def get_college(db: Session, college_id: int):
    return db.query(College).filter(College.id == college_id).first()


def create_college(db: Session, name: str, location: Optional[str] = None):
    college = College(name=name, location=location)
    db.add(college)
    db.commit()
    db.refresh(college)
    return college


def list_services(db: Session, category: Optional[str] = None):
    query = db.query(Service)
    if category:
        query = query.filter(Service.category == category)
    return query.order_by(Service.name).all()


def get_service(db: Session, service_id: int):
    return db.query(Service).filter(Service.id == service_id).first()


def create_service(db: Session, name: str, category: Optional[str] = None, description: Optional[str] = None):
    service = Service(name=name, category=category, description=description)
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


# Providers

PROFILE_REQUIRED_FIELDS = ("first_name", "last_name", "phone_number")


def get_provider_by_user(db: Session, user_id: int):
    return db.query(Provider).filter(Provider.user_id == user_id).first()


def upsert_provider_profile(db: Session, user_id: int, data: dict):
    """Create the provider row on first save, then apply ``data`` on top."""
    provider = get_provider_by_user(db, user_id)
    if not provider:
        provider = Provider(user_id=user_id)
        db.add(provider)

    service_ids = data.pop("service_ids", None)
    for field, value in data.items():
        setattr(provider, field, value)
    if service_ids is not None:
        provider.services = db.query(Service).filter(Service.id.in_(service_ids)).all() if service_ids else []

    provider.is_profile_complete = all(getattr(provider, f) for f in PROFILE_REQUIRED_FIELDS)
    db.commit()
    db.refresh(provider)
    return provider


# Reviews

def get_provider(db: Session, provider_id: int):
    return db.query(Provider).filter(Provider.id == provider_id).first()


def get_review(db: Session, user_id: int, provider_id: int):
    return db.query(Review).filter(
        Review.user_id == user_id,
        Review.provider_id == provider_id
    ).first()


def get_provider_reviews(db: Session, provider_id: int):
    return db.query(Review).filter(
        Review.provider_id == provider_id
    ).order_by(Review.created_at.desc(), Review.id.desc()).all()


def review_stats(db: Session, provider_id: int):
    """Average rating to one decimal (0 with no reviews) and the review count."""
    average, count = db.query(func.avg(Review.rating), func.count(Review.id)).filter(
        Review.provider_id == provider_id
    ).one()
    return round(float(average or 0), 1), count


def create_review(db: Session, user_id: int, provider: Provider, rating: int, comment: Optional[str] = None):
    review = Review(user_id=user_id, provider_id=provider.id, rating=rating, comment=comment)
    db.add(review)
    db.flush()

    # Keep the profile aggregate in step with the reviews table
    provider.rating, provider.total_reviews = review_stats(db, provider.id)
    db.commit()
    db.refresh(review)
    return review


# Notifications

def get_notifications(db: Session, user_id: int, limit: int = 50, is_read: Optional[bool] = None):
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if is_read is not None:
        query = query.filter(Notification.is_read.is_(is_read))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def get_unread_notifications(db: Session, user_id: int):
    return db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.is_read.is_(False)
    ).order_by(Notification.created_at.desc(), Notification.id.desc()).all()


def mark_notification_read(db: Session, notification_id: int, user_id: int):
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == user_id
    ).first()
    if notification:
        notification.is_read = True
        db.commit()
        db.refresh(notification)
    return notification


def mark_notifications_read(db: Session, notification_ids: list) -> int:
    if not notification_ids:
        return 0
    updated = db.query(Notification).filter(
        Notification.id.in_(notification_ids)
    ).update({"is_read": True}, synchronize_session=False)
    db.commit()
    return updated


def mark_all_read(db: Session, user_id: int) -> int:
    updated = db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.is_read.is_(False)
    ).update({"is_read": True}, synchronize_session=False)
    db.commit()
    return updated


# Chat

def find_chat_room(db: Session, request_id: Optional[int], user_a: int, user_b: int):
    participant_filter = or_(
        and_(ChatRoom.client_id == user_a, ChatRoom.provider_id == user_b),
        and_(ChatRoom.client_id == user_b, ChatRoom.provider_id == user_a),
    )
    query = db.query(ChatRoom).filter(participant_filter)
    if request_id is None:
        query = query.filter(ChatRoom.request_id.is_(None))
    else:
        query = query.filter(ChatRoom.request_id == request_id)
    return query.first()


def get_chat_room(db: Session, room_id: int):
    return db.query(ChatRoom).filter(ChatRoom.id == room_id).first()


def get_user_chat_rooms(db: Session, user_id: int):
    return db.query(ChatRoom).filter(
        or_(ChatRoom.client_id == user_id, ChatRoom.provider_id == user_id)
    ).order_by(ChatRoom.updated_at.desc(), ChatRoom.id.desc()).all()


def get_messages(db: Session, room_id: int, limit: int = 100):
    """Latest ``limit`` messages of a room, oldest first."""
    latest = db.query(Message).filter(
        Message.chat_room_id == room_id
    ).order_by(Message.created_at.desc(), Message.id.desc()).limit(limit).all()
    return list(reversed(latest))


def get_last_message(db: Session, room_id: int):
    return db.query(Message).filter(
        Message.chat_room_id == room_id
    ).order_by(Message.created_at.desc(), Message.id.desc()).first()


def count_unread_messages(db: Session, room_id: int, user_id: int) -> int:
    return db.query(func.count(Message.id)).filter(
        Message.chat_room_id == room_id,
        Message.sender_id != user_id,
        Message.is_read.is_(False)
    ).scalar() or 0


def create_message(db: Session, room: ChatRoom, sender_id: int, content: str, is_system: bool = False):
    message = Message(
        chat_room_id=room.id,
        sender_id=sender_id,
        content=content,
        is_system=is_system,
    )
    db.add(message)
    room.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(message)
    return message


def mark_messages_read(db: Session, room_id: int, user_id: int) -> int:
    updated = db.query(Message).filter(
        Message.chat_room_id == room_id,
        Message.sender_id != user_id,
        Message.is_read.is_(False)
    ).update({"is_read": True}, synchronize_session=False)
    db.commit()
    return updated


# Admin helpers

def paginate(query, page: int, limit: int):
    """Return (items, pagination dict) for a query."""
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    pagination = {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }
    return items, pagination


def get_category(db: Session, category_id: int):
    return db.query(Category).filter(Category.id == category_id).first()


def get_category_by_name(db: Session, name: str):
    return db.query(Category).filter(func.lower(Category.name) == name.lower()).first()


def count_products_in_category(db: Session, category_id: int) -> int:
    return db.query(func.count(Product.id)).filter(Product.category_id == category_id).scalar() or 0


def get_product(db: Session, product_id: int):
    return db.query(Product).filter(Product.id == product_id).first()


# SMS reset

def create_sms_code(db: Session, phone_number: str, ttl_minutes: int):
    record = SmsVerificationCode(
        phone_number=format_phone_number(phone_number),
        code=f"{secrets.randbelow(900000) + 100000}",
        expires_at=datetime.utcnow() + timedelta(minutes=ttl_minutes),
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def get_valid_sms_code(db: Session, phone_number: str, code: str):
    return db.query(SmsVerificationCode).filter(
        SmsVerificationCode.phone_number == format_phone_number(phone_number),
        SmsVerificationCode.code == code,
        SmsVerificationCode.used.is_(False),
        SmsVerificationCode.expires_at > datetime.utcnow()
    ).order_by(SmsVerificationCode.id.desc()).first()


def create_reset_token(db: Session, user_id: int, ttl_minutes: int):
    record = PasswordResetToken(
        user_id=user_id,
        token=str(uuid.uuid4()),
        expires_at=datetime.utcnow() + timedelta(minutes=ttl_minutes),
    )
    db.add(record)
    return record


def get_valid_reset_token(db: Session, token: str):
    return db.query(PasswordResetToken).filter(
        PasswordResetToken.token == token,
        PasswordResetToken.used.is_(False),
        PasswordResetToken.expires_at > datetime.utcnow()
    ).first()
