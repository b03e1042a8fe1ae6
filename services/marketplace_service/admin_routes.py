from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session
from typing import List, Optional
from database import get_db
from schemas import (
    Page, ProductCreate, ProductUpdate, ProductResponse, BulkDeleteRequest, BulkDeleteResponse,
    CategoryCreate, CategoryUpdate, CategoryResponse, InterestResponse, RequestResponse
)
from crud import (
    paginate, get_category, get_category_by_name, count_products_in_category, get_product
)
from errors import conflict, invalid, not_found
from auth import require_admin
from models import (
    Category, ClientRequest, Interest, InterestStatus, Product, ProductStatus, RequestStatus
)
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def _ensure_category(db: Session, category_id: Optional[int]):
    if category_id is not None and not get_category(db, category_id):
        raise not_found("Category not found")


# Products

@router.get("/products", response_model=Page[ProductResponse])
def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    category_id: Optional[int] = Query(None, alias="categoryId"),
    product_status: Optional[ProductStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db)
):
    query = db.query(Product)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if product_status is not None:
        query = query.filter(Product.status == product_status)
    items, pagination = paginate(query.order_by(Product.created_at.desc(), Product.id.desc()), page, limit)
    return {"data": items, "pagination": pagination}


@router.get("/products/{product_id}", response_model=ProductResponse)
def get_product_detail(product_id: int, db: Session = Depends(get_db)):
    product = get_product(db, product_id)
    if not product:
        raise not_found("Product not found")
    return product


@router.post("/products", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
def create_product(payload: ProductCreate, db: Session = Depends(get_db)):
    _ensure_category(db, payload.category_id)
    product = Product(**payload.model_dump())
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@router.put("/products/{product_id}", response_model=ProductResponse)
def update_product(product_id: int, payload: ProductUpdate, db: Session = Depends(get_db)):
    product = get_product(db, product_id)
    if not product:
        raise not_found("Product not found")
    data = payload.model_dump(exclude_unset=True)
    _ensure_category(db, data.get("category_id"))
    for field, value in data.items():
        setattr(product, field, value)
    db.commit()
    db.refresh(product)
    return product


@router.delete("/products/{product_id}")
def delete_product(product_id: int, db: Session = Depends(get_db)):
    product = get_product(db, product_id)
    if not product:
        raise not_found("Product not found")
    db.delete(product)
    db.commit()
    return {"message": "Product deleted successfully", "id": product_id}


@router.post("/products/bulk-delete", response_model=BulkDeleteResponse)
def bulk_delete_products(payload: BulkDeleteRequest, db: Session = Depends(get_db)):
    if not payload.ids:
        raise invalid("Product IDs array is required")
    products = db.query(Product).filter(Product.id.in_(payload.ids)).all()
    if not products:
        raise not_found("No products found")

    deleted = [ProductResponse.model_validate(p) for p in products]
    for product in products:
        db.delete(product)
    db.commit()
    logger.info("Bulk deleted %s products", len(deleted))
    return BulkDeleteResponse(
        message=f"Deleted {len(deleted)} products",
        deleted_count=len(deleted),
        deleted_products=deleted,
    )


# Categories

@router.get("/categories", response_model=List[CategoryResponse])
def list_categories(db: Session = Depends(get_db)):
    return db.query(Category).order_by(Category.name).all()


@router.post("/categories", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
def create_category(payload: CategoryCreate, db: Session = Depends(get_db)):
    if get_category_by_name(db, payload.name):
        raise conflict("Category already exists")
    category = Category(**payload.model_dump())
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


@router.put("/categories/{category_id}", response_model=CategoryResponse)
def update_category(category_id: int, payload: CategoryUpdate, db: Session = Depends(get_db)):
    category = get_category(db, category_id)
    if not category:
        raise not_found("Category not found")
    data = payload.model_dump(exclude_unset=True)
    if data.get("name"):
        existing = get_category_by_name(db, data["name"])
        if existing and existing.id != category.id:
            raise conflict("Category already exists")
    for field, value in data.items():
        setattr(category, field, value)
    db.commit()
    db.refresh(category)
    return category


@router.delete("/categories/{category_id}")
def delete_category(category_id: int, db: Session = Depends(get_db)):
    category = get_category(db, category_id)
    if not category:
        raise not_found("Category not found")
    in_use = count_products_in_category(db, category_id)
    if in_use:
        raise invalid(f"Cannot delete category: {in_use} products still use it")
    db.delete(category)
    db.commit()
    return {"message": "Category deleted successfully", "id": category_id}


# Interests and requests

@router.get("/interests", response_model=Page[InterestResponse])
def list_interests(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    interest_status: Optional[InterestStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db)
):
    query = db.query(Interest)
    if interest_status is not None:
        query = query.filter(Interest.status == interest_status)
    items, pagination = paginate(query.order_by(Interest.created_at.desc(), Interest.id.desc()), page, limit)
    return {"data": items, "pagination": pagination}


@router.delete("/interests/{interest_id}")
def delete_interest(interest_id: int, db: Session = Depends(get_db)):
    interest = db.query(Interest).filter(Interest.id == interest_id).first()
    if not interest:
        raise not_found("Interest not found")
    db.delete(interest)
    db.commit()
    return {"message": "Interest deleted successfully", "id": interest_id}


@router.get("/requests", response_model=Page[RequestResponse])
def list_requests(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    request_status: Optional[RequestStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db)
):
    query = db.query(ClientRequest)
    if request_status is not None:
        query = query.filter(ClientRequest.status == request_status)
    items, pagination = paginate(query.order_by(ClientRequest.created_at.desc(), ClientRequest.id.desc()), page, limit)
    return {"data": items, "pagination": pagination}
