# app/models/tables.py
import re
import uuid
from datetime import datetime, timezone
from sqlalchemy import (
    Column, String, Boolean, ForeignKey, Text, DateTime, Float, Integer, JSON, Uuid, event
)
from sqlalchemy.orm import relationship
from app.core.database import Base

# Enumerations are stored as plain strings and validated at the API layer.
USER_ROLES = ('user', 'admin', 'agent')
FORM_TYPES = (
    'property_inquiry',
    'loan_inquiry',
    'contact_inquiry',
    'property_submission',
    'partner_inquiry',
    'employee_inquiry',
)
SUBMISSION_STATUSES = ('new', 'contacted', 'replied', 'closed', 'archived')
SUBMISSION_PRIORITIES = ('low', 'medium', 'high', 'urgent')

_NUMBER_PREFIX = re.compile(r"\d+(?:\.\d+)?")
# "." or "," followed by exactly three digits groups thousands: "1.250.000", "1.250,50"
_THOUSANDS_SEPARATOR = re.compile(r"(?<=\d)[.,](?=\d{3}(?:[.,]\d|$))")


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_number(raw):
    """
    Best-effort numeric parse of a display value such as "450 000 zł" or "72,5".
    Returns None when no leading number can be found.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return float(raw)
    cleaned = re.sub(r"[^\d.,]", "", str(raw))
    cleaned = _THOUSANDS_SEPARATOR.sub("", cleaned).replace(",", ".")
    match = _NUMBER_PREFIX.match(cleaned)
    return float(match.group()) if match else None


# ==========================================
# 1. USERS (Credential Store)
# ==========================================
class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(50), nullable=False)
    surname = Column(String(50), nullable=False)
    # Always stored lower-case, so the unique index is case-insensitive
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)

    role = Column(String(20), nullable=False, default='user')
    is_active = Column(Boolean, nullable=False, default=True)
    email_verified = Column(Boolean, nullable=False, default=False)

    # Profile
    phone = Column(String(30), default="")
    bio = Column(Text, default="")
    position = Column(String(100), default="")
    contact_email = Column(String(255), default="")
    profile_picture = Column(String(500), default="")

    last_login = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    # Listings are only ever soft-deleted, so their owner cannot be removed under them
    listings = relationship("Listing", back_populates="owner")
    reels = relationship("Reel", back_populates="owner", cascade="all, delete-orphan")

    @property
    def full_name(self):
        return f"{self.name} {self.surname}"


# ==========================================
# 2. LISTINGS (Properties)
# ==========================================
class Listing(Base):
    __tablename__ = "listings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    description = Column(Text, default="")

    # Raw display price ("450 000 zł") and its numeric form used for filtering/sorting
    price = Column(String(100), default="")
    price_num = Column(Float, nullable=False, default=0.0, index=True)

    category = Column(String(50), index=True)
    status = Column(String(50), index=True)  # na_sprzedaz, do_wynajecia, ...

    # Location (exposed as a nested object)
    address = Column(String(255))
    region = Column(String(100), index=True)
    city = Column(String(100), index=True)
    lat = Column(String(30))
    lon = Column(String(30))

    # Loosely typed detail fields plus the derived columns used by the query engine
    details = Column(JSON, nullable=False, default=dict)
    area_num = Column(Float, index=True)
    rooms = Column(Integer, index=True)

    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    owner = relationship("User", back_populates="listings")
    files = relationship(
        "ListingFile",
        back_populates="listing",
        order_by="ListingFile.position",
        cascade="all, delete-orphan",
    )
    submissions = relationship("FormSubmission", back_populates="listing")

    @property
    def location(self):
        return {
            "address": self.address,
            "region": self.region,
            "city": self.city,
            "lat": self.lat,
            "lon": self.lon,
        }

    def refresh_derived_fields(self):
        """Recompute the numeric columns from their raw counterparts."""
        self.price_num = parse_number(self.price) or 0.0
        details = self.details or {}
        self.area_num = parse_number(details.get("area"))
        rooms = parse_number(details.get("rooms"))
        self.rooms = int(rooms) if rooms is not None else None


@event.listens_for(Listing, "before_insert")
@event.listens_for(Listing, "before_update")
def _listing_before_save(mapper, connection, target):
    target.refresh_derived_fields()


class ListingFile(Base):
    __tablename__ = "listing_files"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    listing_id = Column(Uuid, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    filename = Column(String(255), nullable=False)
    original_name = Column(String(255), nullable=False)
    path = Column(String(500), nullable=False)
    mimetype = Column(String(100), nullable=False)
    size = Column(Integer, nullable=False)
    is_cover = Column(Boolean, nullable=False, default=False)
    uploaded_at = Column(DateTime, default=utcnow)

    listing = relationship("Listing", back_populates="files")


# ==========================================
# 3. FORM SUBMISSIONS (Inquiries)
# ==========================================
class FormSubmission(Base):
    __tablename__ = "form_submissions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    form_type = Column(String(30), nullable=False, index=True)

    # Contact data
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    phone = Column(String(30))

    # Type-specific data, tagged by formType (see app.schemas.InquiryPayload)
    payload = Column(JSON, nullable=False, default=dict)
    # Copy of payload["message"] kept for searching
    message = Column(Text)
    property_id = Column(Uuid, ForeignKey("listings.id", ondelete="SET NULL"), nullable=True)

    # Request metadata
    ip_address = Column(String(64))
    user_agent = Column(String(500))

    # Triage
    status = Column(String(20), nullable=False, default='new', index=True)
    priority = Column(String(20))
    tags = Column(JSON, nullable=False, default=list)
    assigned_to_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    internal_notes = Column(Text, nullable=False, default="")

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    listing = relationship("Listing", back_populates="submissions")
    assigned_to = relationship("User")

    def append_note(self, text, at=None):
        """Append a timestamped line to the notes log; earlier lines are never touched."""
        stamp = (at or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
        line = f"{stamp}: {text}"
        self.internal_notes = f"{self.internal_notes}\n{line}" if self.internal_notes else line

    @property
    def notes(self):
        return [line for line in (self.internal_notes or "").split("\n") if line]


@event.listens_for(FormSubmission, "before_insert")
@event.listens_for(FormSubmission, "before_update")
def _submission_before_save(mapper, connection, target):
    target.message = (target.payload or {}).get("message")


# ==========================================
# 4. REELS
# ==========================================
class Reel(Base):
    __tablename__ = "reels"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String(60), nullable=False)
    description = Column(String(150), default="")
    video_url = Column(String(500), nullable=False)
    duration = Column(String(20), default="0:00")
    is_published = Column(Boolean, nullable=False, default=False, index=True)
    featured = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    owner = relationship("User", back_populates="reels")


# ==========================================
# 5. BLOG
# ==========================================
class BlogPost(Base):
    __tablename__ = "blog_posts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(255))
    excerpt = Column(Text)
    content = Column(Text, nullable=False)
    image = Column(String(500))
    date = Column(DateTime, default=utcnow, index=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
