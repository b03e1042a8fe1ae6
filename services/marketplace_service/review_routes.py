from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from database import get_db
from schemas import (
    ProviderReviewsResponse, ReviewCreate, ReviewCreateResponse, ReviewResponse, ReviewStats
)
from crud import create_review, get_provider, get_provider_reviews, get_review, review_stats
from auth import get_current_user
from errors import conflict, forbidden, not_found
from models import User
from notifications import notify
import logging
import math

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reviews", tags=["reviews"])


@router.post("", response_model=ReviewCreateResponse, status_code=status.HTTP_201_CREATED)
def add_review(payload: ReviewCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    provider = get_provider(db, payload.provider_id)
    if not provider:
        raise not_found("Provider not found")
    if provider.user_id == user.id:
        raise forbidden("You cannot review your own profile")
    if get_review(db, user.id, provider.id):
        raise conflict("You have already reviewed this provider")

    # Stored as whole stars, halves round up
    rating = int(math.floor(payload.rating + 0.5))
    comment = payload.comment.strip() if payload.comment and payload.comment.strip() else None
    try:
        review = create_review(db, user.id, provider, rating, comment)
    except IntegrityError:
        db.rollback()
        raise conflict("You have already reviewed this provider")

    notify(db, provider.user_id, "new_review", f"{user.name} rated you {rating}/5", review.id)
    logger.info("Provider %s reviewed by user %s (%s stars)", provider.id, user.id, rating)
    return ReviewCreateResponse(
        review=ReviewResponse.model_validate(review),
        stats=ReviewStats(average_rating=provider.rating, review_count=provider.total_reviews),
    )


@router.get("/provider/{provider_id}", response_model=ProviderReviewsResponse)
def list_provider_reviews(provider_id: int, db: Session = Depends(get_db)):
    if not get_provider(db, provider_id):
        raise not_found("Provider not found")
    average, count = review_stats(db, provider_id)
    return ProviderReviewsResponse(
        reviews=get_provider_reviews(db, provider_id),
        stats=ReviewStats(average_rating=average, review_count=count),
    )
