from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
from database import get_db
from schemas import CollegeCreate, CollegeResponse, ServiceCreate, ServiceResponse
from crud import list_colleges, create_college, list_services, create_service
from auth import require_admin

router = APIRouter(prefix="/api", tags=["catalog"])


@router.get("/colleges", response_model=List[CollegeResponse])
def get_colleges(db: Session = Depends(get_db)):
    return list_colleges(db)


@router.post(
    "/colleges",
    response_model=CollegeResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def add_college(payload: CollegeCreate, db: Session = Depends(get_db)):
    return create_college(db, payload.name, payload.location)


@router.get("/services", response_model=List[ServiceResponse])
def get_services(category: Optional[str] = None, db: Session = Depends(get_db)):
    return list_services(db, category)


@router.post(
    "/services",
    response_model=ServiceResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def add_service(payload: ServiceCreate, db: Session = Depends(get_db)):
    return create_service(db, payload.name, payload.category, payload.description)
