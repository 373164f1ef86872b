# app/services/inquiries.py
import uuid
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple
from fastapi import HTTPException, Request, status
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from app.models import tables
from app.schemas import (
    ContactFields, PropertyInquiryRequest, PropertyInquiryPayload
)
from app.services.listing_query import Page, MAX_PAGE_SIZE
from app.services.notifications import DeliveryOutcome, NotificationDispatcher, NotificationResult
from app.utils.storage import delete_stored_file

logger = logging.getLogger(__name__)

Submission = tables.FormSubmission


@dataclass
class IntakeResult:
    submission: tables.FormSubmission
    notification: NotificationResult

    @property
    def notification_sent(self) -> bool:
        return self.notification.success

    def as_response(self, message: str) -> dict:
        return {
            "success": True,
            "message": message,
            "data": {
                "submissionId": str(self.submission.id),
                "formType": self.submission.form_type,
                "name": self.submission.name,
                "email": self.submission.email,
                "status": self.submission.status,
                "notificationSent": self.notification_sent,
            },
        }


def client_metadata(request: Request) -> Tuple[Optional[str], Optional[str]]:
    """Client IP (first X-Forwarded-For hop when proxied) and User-Agent."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = request.client.host if request.client else "unknown"
    return ip, request.headers.get("user-agent")


# ==========================================
# INTAKE
# ==========================================
def property_inquiry_payload(db: Session, data: PropertyInquiryRequest) -> PropertyInquiryPayload:
    """Snapshot of the referenced listing, taken at submission time."""
    listing = db.get(tables.Listing, data.property_id)
    if not listing or not listing.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")

    location = ", ".join(p for p in (listing.address, listing.city, listing.region) if p)
    return PropertyInquiryPayload(
        property_id=str(listing.id),
        property_name=listing.name,
        property_price=listing.price,
        property_location=location or None,
        message=data.message,
    )


def store_submission(
    db: Session,
    contact: ContactFields,
    payload,
    request: Optional[Request] = None,
) -> tables.FormSubmission:
    """Persist a new inquiry in status 'new'."""
    ip_address, user_agent = client_metadata(request) if request is not None else (None, None)
    property_id = getattr(payload, "property_id", None) if payload.form_type == 'property_inquiry' else None

    submission = Submission(
        form_type=payload.form_type,
        name=contact.name,
        email=contact.email,
        phone=contact.phone,
        payload=payload.model_dump(by_alias=True, mode="json"),
        property_id=uuid.UUID(property_id) if property_id else None,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:500] or None,
        status='new',
        tags=[],
        internal_notes="",
    )
    db.add(submission)
    db.commit()
    db.refresh(submission)
    logger.info(f"Inquiry stored: {submission.form_type} {submission.id} from {submission.email}")
    return submission


def notify_submission(
    db: Session,
    dispatcher: NotificationDispatcher,
    submission: tables.FormSubmission,
) -> NotificationResult:
    """
    Send the notifications for a stored inquiry.
    A failed notification never undoes the insert: the record is closed with a note instead.
    """
    try:
        result = dispatcher.dispatch(submission)
    except Exception as e:
        logger.error(f"Notification dispatch raised for submission {submission.id}: {e}")
        result = NotificationResult(deliveries=[
            DeliveryOutcome(recipient="dispatch", address=None, success=False, error=str(e) or type(e).__name__)
        ])

    if not result.success:
        try:
            submission.status = 'closed'
            submission.append_note(f"Notification dispatch failed: {result.error}")
            db.commit()
            db.refresh(submission)
            logger.warning(f"Inquiry {submission.id} closed after notification failure")
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Could not record notification failure on inquiry {submission.id}: {e}")

    return result


def run_intake(
    db: Session,
    dispatcher: NotificationDispatcher,
    contact: ContactFields,
    payload,
    request: Request,
    success_message: str,
    stored_files: Sequence[str] = (),
) -> dict:
    """
    Store and notify with the usual router error mapping.
    Stored files are removed only when the insert itself fails.
    """
    try:
        submission = store_submission(db, contact, payload, request)
    except HTTPException:
        db.rollback()
        _discard(stored_files)
        raise
    except IntegrityError as e:
        db.rollback()
        _discard(stored_files)
        logger.error(f"Database integrity error storing {payload.form_type}: {e}")
        raise HTTPException(status_code=409, detail="Duplicate entry or constraint violation")
    except SQLAlchemyError as e:
        db.rollback()
        _discard(stored_files)
        logger.error(f"Database error storing {payload.form_type}: {e}")
        raise HTTPException(status_code=500, detail="Database error occurred")
    except Exception as e:
        db.rollback()
        _discard(stored_files)
        logger.error(f"Unexpected error storing {payload.form_type}: {e}")
        raise HTTPException(status_code=500, detail="An unexpected error occurred")

    result = IntakeResult(submission=submission, notification=notify_submission(db, dispatcher, submission))
    return result.as_response(success_message)



def _discard(paths: Sequence[str]):
    for path in paths:
        delete_stored_file(path)


# ==========================================
# LIFECYCLE (admin)
# ==========================================
def get_submission(db: Session, submission_id) -> tables.FormSubmission:
    submission = (
        db.query(Submission)
        .options(joinedload(Submission.assigned_to))
        .filter(Submission.id == submission_id)
        .first()
    )
    if not submission:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Submission not found")
    return submission


def change_status(submission: tables.FormSubmission, new_status: str, note: Optional[str] = None):
    if new_status not in tables.SUBMISSION_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid status. Must be one of: {', '.join(tables.SUBMISSION_STATUSES)}"
        )
    submission.status = new_status
    if note and note.strip():
        submission.append_note(note.strip())


def mark_contacted(submission: tables.FormSubmission, note: Optional[str] = None):
    submission.status = 'contacted'
    text = "Marked as contacted"
    if note and note.strip():
        text = f"{text}: {note.strip()}"
    submission.append_note(text)


def set_priority(submission: tables.FormSubmission, priority: str):
    if priority not in tables.SUBMISSION_PRIORITIES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid priority. Must be one of: {', '.join(tables.SUBMISSION_PRIORITIES)}"
        )
    submission.priority = priority
    submission.append_note(f"Priority set to {priority}")


def assign(db: Session, submission: tables.FormSubmission, user_id) -> tables.User:
    handler = db.get(tables.User, user_id)
    if not handler:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User to assign not found")
    submission.assigned_to_id = handler.id
    submission.assigned_to = handler
    submission.append_note(f"Assigned to {handler.full_name}")
    return handler


def add_tags(submission: tables.FormSubmission, tags: Iterable[str]) -> List[str]:
    """Set-union onto the existing tags, keeping first-seen order. Returns the newly added ones."""
    current = list(submission.tags or [])
    added = []
    for tag in tags:
        tag = tag.strip()
        if tag and tag not in current:
            current.append(tag)
            added.append(tag)

    if added:
        # Reassign so the JSON column is flagged dirty
        submission.tags = current
        submission.append_note(f"Tags added: {', '.join(added)}")
    return added


def search_submissions(
    db: Session,
    form_type: Optional[str] = None,
    status_filter: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> Page:
    if form_type and form_type not in tables.FORM_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid type. Must be one of: {', '.join(tables.FORM_TYPES)}"
        )
    if status_filter and status_filter not in tables.SUBMISSION_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid status. Must be one of: {', '.join(tables.SUBMISSION_STATUSES)}"
        )

    page = max(int(page or 1), 1)
    limit = min(max(int(limit or 1), 1), MAX_PAGE_SIZE)

    query = db.query(Submission)
    if form_type:
        query = query.filter(Submission.form_type == form_type)
    if status_filter:
        query = query.filter(Submission.status == status_filter)

    term = (search or "").strip()
    if term:
        query = query.filter(or_(
            Submission.name.icontains(term, autoescape=True),
            Submission.email.icontains(term, autoescape=True),
            Submission.phone.icontains(term, autoescape=True),
            Submission.message.icontains(term, autoescape=True),
        ))

    total = query.count()
    items = (
        query.options(joinedload(Submission.assigned_to))
        .order_by(Submission.created_at.desc(), Submission.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return Page(items=items, total=total, page=page, limit=limit)
