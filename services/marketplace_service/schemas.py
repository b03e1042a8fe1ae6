from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from pydantic.alias_generators import to_camel
from typing import ClassVar, Generic, List, Optional, Tuple, TypeVar
from datetime import datetime
from models import Role, RequestStatus, BidStatus, InterestStatus, ChatRoomStatus, ProductStatus

T = TypeVar("T")


class CamelModel(BaseModel):
    """Wire format is camelCase; snake_case names are accepted on input too."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class PartialUpdate(CamelModel):
    """PATCH/PUT body. Fields in ``not_null`` may be omitted but not sent as null."""
    not_null: ClassVar[Tuple[str, ...]] = ()

    @model_validator(mode="after")
    def reject_nulls(self):
        nulled = [f for f in self.not_null if f in self.model_fields_set and getattr(self, f) is None]
        if nulled:
            raise ValueError(f"{', '.join(to_camel(f) for f in nulled)} cannot be null")
        return self


# Auth

class UserRegister(CamelModel):
    email: EmailStr
    password: str = Field(min_length=6)
    name: str = Field(min_length=1)
    role: Role = Role.CLIENT
    contact_phone: Optional[str] = None


class UserLogin(CamelModel):
    email: EmailStr
    password: str


class UserResponse(CamelModel):
    id: int
    email: str
    name: str
    role: Role
    contact_phone: Optional[str] = None
    created_at: Optional[datetime] = None


class AuthSuccessResponse(CamelModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


# Catalog

class CollegeCreate(CamelModel):
    name: str = Field(min_length=1)
    location: Optional[str] = None


class CollegeResponse(CollegeCreate):
    id: int


class ServiceCreate(CamelModel):
    name: str = Field(min_length=1)
    category: Optional[str] = None
    description: Optional[str] = None


class ServiceResponse(ServiceCreate):
    id: int


# Providers

class ProviderProfileUpdate(CamelModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    college_id: Optional[int] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    address: Optional[str] = None
    bio: Optional[str] = None
    profile_image_url: Optional[str] = None
    service_ids: Optional[List[int]] = None


class ProviderSummary(CamelModel):
    id: int
    user_id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    college_id: Optional[int] = None
    rating: Optional[float] = None
    total_reviews: Optional[int] = None
    completed_requests: Optional[int] = None


class ProviderResponse(ProviderSummary):
    phone_number: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None
    bio: Optional[str] = None
    profile_image_url: Optional[str] = None
    is_profile_complete: bool = False
    services: List[ServiceResponse] = []


# Reviews

class ReviewCreate(CamelModel):
    provider_id: int
    rating: float = Field(ge=1, le=5)
    comment: Optional[str] = None


class ReviewResponse(CamelModel):
    id: int
    user_id: int
    provider_id: int
    rating: int
    comment: Optional[str] = None
    reviewer_name: Optional[str] = None
    created_at: Optional[datetime] = None


class ReviewStats(CamelModel):
    average_rating: float = 0.0
    review_count: int = 0


class ReviewCreateResponse(CamelModel):
    review: ReviewResponse
    stats: ReviewStats


class ProviderReviewsResponse(CamelModel):
    reviews: List[ReviewResponse]
    stats: ReviewStats


# Requests and bids

class RequestCreate(CamelModel):
    is_service: bool = True
    service_id: Optional[int] = None
    product_name: Optional[str] = None
    description: Optional[str] = None
    desired_price: Optional[int] = Field(default=None, ge=0)
    location: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    college_filter_id: Optional[int] = None
    allow_interests: bool = True
    allow_bids: bool = True


class RequestUpdate(PartialUpdate):
    not_null: ClassVar[Tuple[str, ...]] = ("allow_interests", "allow_bids")

    description: Optional[str] = None
    desired_price: Optional[int] = Field(default=None, ge=0)
    location: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    allow_interests: Optional[bool] = None
    allow_bids: Optional[bool] = None


class RequestResponse(CamelModel):
    id: int
    user_id: int
    is_service: bool
    service_id: Optional[int] = None
    product_name: Optional[str] = None
    description: Optional[str] = None
    desired_price: Optional[int] = None
    location: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    college_filter_id: Optional[int] = None
    status: RequestStatus
    allow_interests: bool
    allow_bids: bool
    accepted_bid_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BidCreate(CamelModel):
    request_id: int
    price: int = Field(gt=0)
    message: Optional[str] = None


class BidResponse(CamelModel):
    id: int
    request_id: int
    provider_id: int
    price: int
    message: Optional[str] = None
    is_graduate_of_requested_college: bool
    status: BidStatus
    created_at: Optional[datetime] = None


class BidWithProvider(BidResponse):
    provider: Optional[ProviderSummary] = None


class BidAcceptResponse(CamelModel):
    message: str
    bid: BidResponse
    request: RequestResponse


# Interests and chat

class InterestCreate(CamelModel):
    message: Optional[str] = None


class InterestReject(CamelModel):
    reason: Optional[str] = None


class InterestShortlist(CamelModel):
    shortlisted: bool = True


class InterestResponse(CamelModel):
    id: int
    request_id: int
    provider_id: int
    message: Optional[str] = None
    is_shortlisted: bool = False
    status: InterestStatus
    chat_room_id: Optional[int] = None
    created_at: Optional[datetime] = None


class InterestAcceptResponse(CamelModel):
    message: str
    chat_room_id: int
    interest: InterestResponse


class MessageCreate(CamelModel):
    content: Optional[str] = None


class MessageResponse(CamelModel):
    id: int
    chat_room_id: int
    sender_id: int
    content: str
    is_system: bool = False
    is_read: bool = False
    created_at: Optional[datetime] = None


class ChatRoomResponse(CamelModel):
    id: int
    request_id: Optional[int] = None
    client_id: int
    provider_id: int
    status: ChatRoomStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    unread_count: int = 0
    last_message: Optional[MessageResponse] = None


# Notifications

class NotificationResponse(CamelModel):
    id: int
    user_id: int
    type: str
    message: str
    related_entity_id: Optional[int] = None
    is_read: bool = False
    created_at: Optional[datetime] = None


class ReadAllResponse(CamelModel):
    message: str
    updated_count: int


# Admin

class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class Page(CamelModel, Generic[T]):
    data: List[T]
    pagination: Pagination


class CategoryCreate(CamelModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    is_active: bool = True


class CategoryUpdate(PartialUpdate):
    not_null: ClassVar[Tuple[str, ...]] = ("name", "is_active")

    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    is_active: Optional[bool] = None


class CategoryResponse(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None


class ProductCreate(CamelModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    price: int = Field(ge=0)
    stock: int = Field(default=0, ge=0)
    image_url: Optional[str] = None
    category_id: Optional[int] = None
    provider_id: Optional[int] = None
    status: ProductStatus = ProductStatus.DRAFT


class ProductUpdate(PartialUpdate):
    not_null: ClassVar[Tuple[str, ...]] = ("name", "price", "stock", "status")

    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    price: Optional[int] = Field(default=None, ge=0)
    stock: Optional[int] = Field(default=None, ge=0)
    image_url: Optional[str] = None
    category_id: Optional[int] = None
    provider_id: Optional[int] = None
    status: Optional[ProductStatus] = None


class ProductResponse(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    price: int
    stock: int = 0
    image_url: Optional[str] = None
    category_id: Optional[int] = None
    provider_id: Optional[int] = None
    status: ProductStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BulkDeleteRequest(CamelModel):
    ids: List[int] = []


class BulkDeleteResponse(CamelModel):
    message: str
    deleted_count: int
    deleted_products: List[ProductResponse]


# SMS password reset and outreach

class SendResetSmsRequest(CamelModel):
    phone_number: Optional[str] = None


class VerifySmsCodeRequest(CamelModel):
    phone_number: str
    code: str


class ResetPasswordRequest(CamelModel):
    token: str
    new_password: str = Field(min_length=6)


class SmsResult(CamelModel):
    phone_number: str
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class OutreachSmsResponse(CamelModel):
    request_id: int
    sent: int
    failed: int
    results: List[SmsResult]


class WhatsAppLink(CamelModel):
    provider_id: int
    phone_number: str
    url: str


class WhatsAppLinksResponse(CamelModel):
    request_id: int
    message: str
    links: List[WhatsAppLink]
