# app/schemas.py
import re
from pydantic import (
    BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator
)
from pydantic.alias_generators import to_camel
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from datetime import datetime
from uuid import UUID
from fastapi import HTTPException, status

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

SubmissionStatus = Literal['new', 'contacted', 'replied', 'closed', 'archived']
SubmissionPriority = Literal['low', 'medium', 'high', 'urgent']
UserRole = Literal['user', 'admin', 'agent']


class CamelModel(BaseModel):
    """camelCase on the wire, snake_case in Python; readable straight from ORM rows."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def first_error_message(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    return str(errors[0].get("msg", "Invalid request")).replace("Value error, ", "")


def parse_or_400(model, data: Dict[str, Any]):
    """Validate form-built data, turning pydantic errors into the usual 400."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=first_error_message(e))


def dump(model, obj) -> Dict[str, Any]:
    """ORM row -> camelCase JSON-ready dict."""
    return model.model_validate(obj).model_dump(by_alias=True, mode="json")


def _blank_to_none(v):
    if isinstance(v, str) and v.strip() == "":
        return None
    return v


# =======================
# 1. SHARED VALIDATORS
# =======================

class ContactFields(CamelModel):
    name: Optional[str] = Field(default=None, validate_default=True)
    email: Optional[str] = Field(default=None, validate_default=True)
    phone: Optional[str] = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: Optional[str]):
        if not v or not v.strip():
            raise ValueError('Name is required')
        return v.strip()

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: Optional[str]):
        if not v or not v.strip():
            raise ValueError('Email is required')
        v = v.strip().lower()
        if not EMAIL_PATTERN.match(v):
            raise ValueError('Invalid email format')
        return v

    @field_validator('phone', mode='before')
    @classmethod
    def clean_phone(cls, v):
        v = _blank_to_none(v)
        return v.strip() if isinstance(v, str) else v


class RequiredMessage(CamelModel):
    message: Optional[str] = Field(default=None, validate_default=True)

    @field_validator('message')
    @classmethod
    def validate_message(cls, v: str):
        cleaned = (v or "").strip()
        if not cleaned:
            raise ValueError('Message is required')
        if len(cleaned) > 5000:
            raise ValueError('Message too long (max 5000 characters)')
        return cleaned


# =======================
# 2. USERS & AUTH
# =======================

class OwnerSummary(CamelModel):
    id: UUID
    name: str
    surname: str
    email: str
    phone: Optional[str] = None
    profile_picture: Optional[str] = None


class UserOut(CamelModel):
    id: UUID
    name: str
    surname: str
    full_name: str
    email: str
    role: str
    is_active: bool
    email_verified: bool = False
    phone: Optional[str] = None
    bio: Optional[str] = None
    position: Optional[str] = None
    contact_email: Optional[str] = None
    profile_picture: Optional[str] = None
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None


class TeamMemberOut(CamelModel):
    id: UUID
    name: str
    surname: str
    full_name: str
    position: Optional[str] = None
    bio: Optional[str] = None
    phone: Optional[str] = None
    contact_email: Optional[str] = None
    profile_picture: Optional[str] = None


class RegisterRequest(CamelModel):
    name: str = Field(min_length=1, max_length=50)
    surname: str = Field(min_length=1, max_length=50)
    email: str
    password: str = Field(min_length=6)
    phone: Optional[str] = None

    @field_validator('name', 'surname')
    @classmethod
    def strip_names(cls, v: str):
        if not v.strip():
            raise ValueError('Name and surname are required')
        return v.strip()

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str):
        v = v.strip().lower()
        if not EMAIL_PATTERN.match(v):
            raise ValueError('Invalid email format')
        return v


class LoginRequest(CamelModel):
    email: str
    password: str

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v: str):
        return v.strip().lower()


class ChangePasswordRequest(CamelModel):
    current_password: str
    new_password: str = Field(min_length=6)


class ProfileUpdate(CamelModel):
    name: Optional[str] = Field(default=None, max_length=50)
    surname: Optional[str] = Field(default=None, max_length=50)
    phone: Optional[str] = None
    bio: Optional[str] = Field(default=None, max_length=1000)
    position: Optional[str] = Field(default=None, max_length=100)
    contact_email: Optional[str] = None

    @field_validator('contact_email')
    @classmethod
    def validate_contact_email(cls, v: Optional[str]):
        if v is None or v.strip() == "":
            return v
        v = v.strip().lower()
        if not EMAIL_PATTERN.match(v):
            raise ValueError('Invalid contact email format')
        return v


class UserUpdate(ProfileUpdate):
    # Only honoured when the caller is an admin
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None


class AuthResponse(CamelModel):
    success: bool = True
    message: str
    token: str
    user: UserOut


# =======================
# 3. LISTINGS (Properties)
# =======================

class LocationSchema(CamelModel):
    address: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    lat: Optional[str] = None
    lon: Optional[str] = None

    @field_validator('address', 'region', 'city', 'lat', 'lon', mode='before')
    @classmethod
    def stringify(cls, v):
        """Coordinates may arrive as numbers; everything is kept as trimmed text"""
        v = _blank_to_none(v)
        if v is None:
            return None
        return str(v).strip()


class ListingFileOut(CamelModel):
    id: UUID
    filename: str
    original_name: str
    path: str
    mimetype: str
    size: int
    is_cover: bool
    uploaded_at: Optional[datetime] = None


class ListingOut(CamelModel):
    id: UUID
    user_id: UUID
    name: str
    description: Optional[str] = None
    price: Optional[str] = None
    price_num: float = 0.0
    category: Optional[str] = None
    status: Optional[str] = None
    location: LocationSchema
    details: Dict[str, Any] = {}
    area_num: Optional[float] = None
    rooms: Optional[int] = None
    files: List[ListingFileOut] = []
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    owner: Optional[OwnerSummary] = None

    @field_validator('details', mode='before')
    @classmethod
    def details_object(cls, v):
        return v or {}


class ListingCreate(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = ""
    price: Optional[str] = ""
    category: Optional[str] = None
    status: Optional[str] = None
    location: LocationSchema = LocationSchema()
    details: Dict[str, Any] = {}

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str):
        if not v.strip():
            raise ValueError('Listing name is required')
        return v.strip()

    @field_validator('price', mode='before')
    @classmethod
    def price_as_text(cls, v):
        return "" if v is None else str(v).strip()

    @field_validator('category', 'status', mode='before')
    @classmethod
    def blank_tags(cls, v):
        return _blank_to_none(v)


class ListingUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    price: Optional[str] = None
    category: Optional[str] = None
    status: Optional[str] = None
    location: Optional[LocationSchema] = None
    details: Optional[Dict[str, Any]] = None

    @field_validator('price', mode='before')
    @classmethod
    def price_as_text(cls, v):
        return None if v is None else str(v).strip()

    @field_validator('details', mode='before')
    @classmethod
    def null_details_clears(cls, v):
        """An explicit null empties the details instead of storing JSON null"""
        return {} if v is None else v


class ListingStatusUpdate(CamelModel):
    is_active: Optional[bool] = None
    status: Optional[str] = None


class CoverRequest(CamelModel):
    file_id: UUID


class NumericRange(CamelModel):
    min: float = 0
    max: float = 0


class ListingFacets(CamelModel):
    categories: List[str] = []
    regions: List[str] = []
    cities: List[str] = []
    statuses: List[str] = []
    price: NumericRange = NumericRange()
    area: NumericRange = NumericRange()
    rooms: List[int] = []


class ListingStats(CamelModel):
    total: int
    active: int
    inactive: int
    by_status: Dict[str, int] = {}
    by_category: Dict[str, int] = {}
    new_this_week: int = 0


# =======================
# 4. INQUIRIES (Requests)
# =======================

class PropertyInquiryRequest(ContactFields):
    property_id: Optional[UUID] = Field(default=None, validate_default=True)
    message: Optional[str] = None

    @field_validator('property_id', mode='before')
    @classmethod
    def require_property(cls, v):
        if _blank_to_none(v) is None:
            raise ValueError('Property ID is required')
        return v


class LoanInquiryRequest(ContactFields):
    property_price: Optional[str] = Field(default=None, validate_default=True)
    own_contribution: Optional[str] = None
    loan_term: Optional[str] = None
    monthly_payment: Optional[str] = None
    interest_rate: Optional[str] = None

    @field_validator(
        'property_price', 'own_contribution', 'loan_term', 'monthly_payment', 'interest_rate',
        mode='before'
    )
    @classmethod
    def amounts_as_text(cls, v):
        # Calculator widgets post numbers; amounts are stored exactly as entered
        v = _blank_to_none(v)
        return None if v is None else str(v).strip()

    @field_validator('property_price')
    @classmethod
    def require_price(cls, v):
        if not v:
            raise ValueError('Property price is required')
        return v


class ContactInquiryRequest(ContactFields, RequiredMessage):
    gdpr: bool = Field(default=False, validate_default=True)

    @field_validator('gdpr')
    @classmethod
    def require_consent(cls, v: bool):
        if v is not True:
            raise ValueError('GDPR consent is required')
        return v


class PropertySubmissionRequest(ContactFields):
    message: Optional[str] = None


class PartnerInquiryRequest(ContactFields, RequiredMessage):
    pass


class EmployeeInquiryRequest(ContactFields, RequiredMessage):
    pass


# =======================
# 5. INQUIRY PAYLOADS (stored, tagged by formType)
# =======================

class PropertyInquiryPayload(CamelModel):
    form_type: Literal['property_inquiry'] = 'property_inquiry'
    property_id: str
    property_name: Optional[str] = None
    property_price: Optional[str] = None
    property_location: Optional[str] = None
    message: Optional[str] = None


class LoanInquiryPayload(CamelModel):
    form_type: Literal['loan_inquiry'] = 'loan_inquiry'
    property_price: str
    own_contribution: Optional[str] = None
    loan_term: Optional[str] = None
    monthly_payment: Optional[str] = None
    interest_rate: Optional[str] = None


class ContactInquiryPayload(CamelModel):
    form_type: Literal['contact_inquiry'] = 'contact_inquiry'
    message: str
    gdpr_accepted: bool = True


class PropertySubmissionPayload(CamelModel):
    form_type: Literal['property_submission'] = 'property_submission'
    message: Optional[str] = None


class PartnerInquiryPayload(CamelModel):
    form_type: Literal['partner_inquiry'] = 'partner_inquiry'
    message: str


class EmployeeInquiryPayload(CamelModel):
    form_type: Literal['employee_inquiry'] = 'employee_inquiry'
    message: str
    cv_file: str


InquiryPayload = Annotated[
    Union[
        PropertyInquiryPayload,
        LoanInquiryPayload,
        ContactInquiryPayload,
        PropertySubmissionPayload,
        PartnerInquiryPayload,
        EmployeeInquiryPayload,
    ],
    Field(discriminator='form_type'),
]
inquiry_payload_adapter = TypeAdapter(InquiryPayload)


class SubmissionOut(CamelModel):
    id: UUID
    form_type: str
    name: str
    email: str
    phone: Optional[str] = None
    payload: InquiryPayload
    message: Optional[str] = None
    property_id: Optional[UUID] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    status: str
    priority: Optional[str] = None
    tags: List[str] = []
    assigned_to_id: Optional[UUID] = None
    assigned_to: Optional[OwnerSummary] = None
    internal_notes: str = ""
    notes: List[str] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# =======================
# 6. INQUIRY LIFECYCLE (Admin)
# =======================

class SubmissionUpdate(CamelModel):
    status: Optional[SubmissionStatus] = None
    # Appended to the notes log, never replaces it
    internal_notes: Optional[str] = None


class ContactedRequest(CamelModel):
    note: Optional[str] = None


class PriorityRequest(CamelModel):
    priority: SubmissionPriority


class AssignRequest(CamelModel):
    user_id: UUID


class TagsRequest(CamelModel):
    tags: List[str]

    @field_validator('tags')
    @classmethod
    def clean_tags(cls, v: List[str]):
        cleaned = [t.strip() for t in v if t and t.strip()]
        if not cleaned:
            raise ValueError('At least one tag is required')
        return cleaned


# =======================
# 7. REELS
# =======================

class ReelOut(CamelModel):
    id: UUID
    user_id: UUID
    title: str
    description: Optional[str] = None
    video_url: str
    duration: Optional[str] = "0:00"
    is_published: bool
    featured: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    owner: Optional[OwnerSummary] = None


class ReelCreate(CamelModel):
    title: str = Field(min_length=1, max_length=60)
    description: Optional[str] = Field(default="", max_length=150)
    duration: Optional[str] = "0:00"
    is_published: bool = False

    @field_validator('title')
    @classmethod
    def validate_title(cls, v: str):
        if not v.strip():
            raise ValueError('Title is required')
        return v.strip()


class ReelUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=60)
    description: Optional[str] = Field(default=None, max_length=150)
    duration: Optional[str] = None
    is_published: Optional[bool] = None
    featured: Optional[bool] = None


class ReelStatusUpdate(CamelModel):
    is_published: Optional[bool] = None
    featured: Optional[bool] = None


# =======================
# 8. BLOG
# =======================

class BlogPostOut(CamelModel):
    id: UUID
    title: Optional[str] = None
    excerpt: Optional[str] = None
    content: str
    image: Optional[str] = None
    date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BlogPostCreate(CamelModel):
    title: Optional[str] = Field(default=None, max_length=255)
    excerpt: Optional[str] = None
    content: str
    date: Optional[datetime] = None

    @field_validator('content')
    @classmethod
    def validate_content(cls, v: str):
        if not v or not v.strip():
            raise ValueError('Content is required')
        return v

    @field_validator('date', mode='before')
    @classmethod
    def blank_date(cls, v):
        return _blank_to_none(v)


class BlogPostUpdate(BlogPostCreate):
    content: Optional[str] = None

    @field_validator('content')
    @classmethod
    def validate_content(cls, v: Optional[str]):
        if v is not None and not v.strip():
            raise ValueError('Content cannot be empty')
        return v
