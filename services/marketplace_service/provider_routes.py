from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from database import get_db
from schemas import ProviderProfileUpdate, ProviderResponse, BidCreate, BidResponse, RequestResponse
from crud import get_college, upsert_provider_profile
from errors import not_found
from auth import require_provider
from matching import NEARBY_RADIUS_KM, provider_feed
from models import User
import lifecycle

router = APIRouter(prefix="/api/provider", tags=["provider"])


@router.get("/profile", response_model=ProviderResponse)
def get_profile(db: Session = Depends(get_db), user: User = Depends(require_provider)):
    return lifecycle.get_provider_profile(db, user)


@router.put("/profile", response_model=ProviderResponse)
def save_profile(
    payload: ProviderProfileUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_provider)
):
    data = payload.model_dump(exclude_unset=True)
    if data.get("college_id") is not None and not get_college(db, data["college_id"]):
        raise not_found("College not found")
    return upsert_provider_profile(db, user.id, data)


@router.get("/requests", response_model=List[RequestResponse])
def list_available_requests(
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    range_km: float = Query(NEARBY_RADIUS_KM, alias="range"),
    filter_by_services: bool = Query(False, alias="filterByServices"),
    db: Session = Depends(get_db),
    user: User = Depends(require_provider)
):
    provider = lifecycle.get_provider_profile(db, user)
    return provider_feed(db, provider, lat, lng, range_km, filter_by_services)


@router.get("/bids", response_model=List[BidResponse])
def list_my_bids(db: Session = Depends(get_db), user: User = Depends(require_provider)):
    return lifecycle.list_provider_bids(db, user)


@router.post("/bids", response_model=BidResponse, status_code=status.HTTP_201_CREATED)
def create_bid(payload: BidCreate, db: Session = Depends(get_db), user: User = Depends(require_provider)):
    return lifecycle.create_bid(db, user, payload)


@router.delete("/bids/{bid_id}")
def withdraw_bid(bid_id: int, db: Session = Depends(get_db), user: User = Depends(require_provider)):
    lifecycle.withdraw_bid(db, user, bid_id)
    return {"message": "Bid withdrawn successfully"}
