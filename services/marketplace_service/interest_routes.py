from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session
from typing import List, Optional
from database import get_db
from schemas import (
    InterestAcceptResponse, InterestCreate, InterestReject, InterestResponse, InterestShortlist
)
from auth import require_client, require_provider
from models import User
import lifecycle

router = APIRouter(prefix="/api/provider/interests", tags=["interests"])


@router.get("/my", response_model=List[InterestResponse])
def list_my_interests(db: Session = Depends(get_db), user: User = Depends(require_provider)):
    return lifecycle.list_provider_interests(db, user)


@router.get("/request/{request_id}", response_model=List[InterestResponse])
def list_request_interests(request_id: int, db: Session = Depends(get_db), user: User = Depends(require_client)):
    return lifecycle.list_request_interests(db, user, request_id)


@router.post("/{request_id}", response_model=InterestResponse, status_code=status.HTTP_201_CREATED)
def express_interest(
    request_id: int,
    payload: Optional[InterestCreate] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_provider)
):
    message = payload.message if payload else None
    return lifecycle.express_interest(db, user, request_id, message)


@router.delete("/{interest_id}")
def withdraw_interest(interest_id: int, db: Session = Depends(get_db), user: User = Depends(require_provider)):
    lifecycle.withdraw_interest(db, user, interest_id)
    return {"message": "Interest withdrawn successfully"}


@router.post("/{interest_id}/accept", response_model=InterestAcceptResponse)
def accept_interest(
    interest_id: int,
    response: Response,
    db: Session = Depends(get_db),
    user: User = Depends(require_client)
):
    interest, room, created = lifecycle.accept_interest(db, user, interest_id)
    if created:
        response.status_code = status.HTTP_201_CREATED
        message = "Interest accepted and chat room created"
    else:
        message = "Interest accepted, existing chat room reused"
    return InterestAcceptResponse(message=message, chat_room_id=room.id, interest=interest)


@router.post("/{interest_id}/reject", response_model=InterestResponse)
def reject_interest(
    interest_id: int,
    payload: Optional[InterestReject] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_client)
):
    reason = payload.reason if payload else None
    return lifecycle.reject_interest(db, user, interest_id, reason)


@router.patch("/{interest_id}/shortlist", response_model=InterestResponse)
def shortlist_interest(
    interest_id: int,
    payload: Optional[InterestShortlist] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_client)
):
    shortlisted = payload.shortlisted if payload else True
    return lifecycle.shortlist_interest(db, user, interest_id, shortlisted)
