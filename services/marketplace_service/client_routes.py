from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List
from database import get_db
from schemas import (
    RequestCreate, RequestUpdate, RequestResponse, BidWithProvider, BidResponse, BidAcceptResponse
)
from auth import require_client
from models import User
import lifecycle

router = APIRouter(prefix="/api/client", tags=["client"])


@router.get("/requests", response_model=List[RequestResponse])
def list_my_requests(db: Session = Depends(get_db), user: User = Depends(require_client)):
    return lifecycle.list_client_requests(db, user)


@router.post("/requests", response_model=RequestResponse, status_code=status.HTTP_201_CREATED)
def create_request(
    payload: RequestCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_client)
):
    return lifecycle.create_request(db, user, payload)


@router.get("/requests/{request_id}", response_model=RequestResponse)
def get_request(request_id: int, db: Session = Depends(get_db), user: User = Depends(require_client)):
    return lifecycle.get_owned_request(db, user, request_id)


@router.patch("/requests/{request_id}", response_model=RequestResponse)
def update_request(
    request_id: int,
    payload: RequestUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_client)
):
    return lifecycle.update_request(db, user, request_id, payload)


@router.get("/requests/{request_id}/bids", response_model=List[BidWithProvider])
def list_request_bids(request_id: int, db: Session = Depends(get_db), user: User = Depends(require_client)):
    return lifecycle.list_request_bids(db, user, request_id)


@router.post("/bids/{bid_id}/accept", response_model=BidAcceptResponse)
def accept_bid(bid_id: int, db: Session = Depends(get_db), user: User = Depends(require_client)):
    bid, request = lifecycle.accept_bid(db, user, bid_id)
    return BidAcceptResponse(message="Bid accepted successfully", bid=bid, request=request)


@router.post("/bids/{bid_id}/reject", response_model=BidResponse)
def reject_bid(bid_id: int, db: Session = Depends(get_db), user: User = Depends(require_client)):
    return lifecycle.reject_bid(db, user, bid_id)
