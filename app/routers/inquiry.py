#routers/inquiry.py
from fastapi import APIRouter, Depends, HTTPException, Request, UploadFile, File, Form, Query
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from typing import Optional
import uuid
import logging

from app.core.database import get_db
from app.core.security import get_current_admin
from app.models import tables
from app.schemas import (
    PropertyInquiryRequest, ContactInquiryRequest, PartnerInquiryRequest, EmployeeInquiryRequest,
    ContactInquiryPayload, PartnerInquiryPayload, EmployeeInquiryPayload,
    SubmissionOut, SubmissionUpdate, ContactedRequest, PriorityRequest, AssignRequest, TagsRequest,
    dump, parse_or_400
)
from app.services import inquiries
from app.services.notifications import NotificationDispatcher, get_notification_dispatcher
from app.utils.storage import CV_DOCUMENT, save_upload, delete_stored_file

router = APIRouter()

logger = logging.getLogger(__name__)


# ==========================================
# 1. PUBLIC: PROPERTY INQUIRY
# ==========================================
@router.post("/")
def create_property_inquiry(
    data: PropertyInquiryRequest,
    request: Request,
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher)
):
    try:
        payload = inquiries.property_inquiry_payload(db, data)
    except SQLAlchemyError as e:
        logger.error(f"Database error resolving property {data.property_id}: {e}")
        raise HTTPException(status_code=500, detail="Database error occurred")

    return inquiries.run_intake(db, dispatcher, data, payload, request, "Inquiry sent successfully")


# ==========================================
# 2. PUBLIC: CONTACT / PARTNER / EMPLOYEE
# ==========================================
@router.post("/contact")
def create_contact_inquiry(
    data: ContactInquiryRequest,
    request: Request,
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher)
):
    payload = ContactInquiryPayload(message=data.message, gdpr_accepted=data.gdpr)
    return inquiries.run_intake(db, dispatcher, data, payload, request, "Message sent successfully")


@router.post("/partner")
def create_partner_inquiry(
    data: PartnerInquiryRequest,
    request: Request,
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher)
):
    payload = PartnerInquiryPayload(message=data.message)
    return inquiries.run_intake(db, dispatcher, data, payload, request, "Partnership proposal sent")


@router.post("/employee")
async def create_employee_inquiry(
    request: Request,
    name: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    phone: Optional[str] = Form(None),
    message: Optional[str] = Form(None),
    cv: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher)
):
    # Fields first, so a bad form never leaves a CV on disk
    data = parse_or_400(EmployeeInquiryRequest, {
        "name": name, "email": email, "phone": phone, "message": message,
    })
    if cv is None or not cv.filename:
        raise HTTPException(status_code=400, detail="CV file is required")

    stored = await save_upload(cv, CV_DOCUMENT)
    payload = EmployeeInquiryPayload(message=data.message, cv_file=stored.path)
    return inquiries.run_intake(
        db, dispatcher, data, payload, request, "Application sent", stored_files=[stored.path]
    )


# ==========================================
# 3. ADMIN: SUBMISSIONS
# ==========================================
@router.get("/submissions")
def list_submissions(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    type: Optional[str] = None,
    status: Optional[str] = None,
    search: Optional[str] = None,
    current_user: tables.User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    try:
        result = inquiries.search_submissions(
            db, form_type=type, status_filter=status, search=search, page=page, limit=limit
        )
        return {
            "success": True,
            "submissions": [dump(SubmissionOut, s) for s in result.items],
            "currentPage": result.page,
            "totalPages": result.total_pages,
            "totalSubmissions": result.total,
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching submissions: {e}")
        raise HTTPException(status_code=500, detail="Error fetching submissions")


@router.get("/submissions/{submission_id}")
def get_submission(
    submission_id: uuid.UUID,
    current_user: tables.User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    submission = inquiries.get_submission(db, submission_id)
    return {"success": True, "submission": dump(SubmissionOut, submission)}


def _apply(db: Session, submission_id: uuid.UUID, action, message: str, actor: tables.User):
    """Load, mutate and commit a submission with the standard error mapping."""
    try:
        submission = inquiries.get_submission(db, submission_id)
        action(submission)
        db.commit()
        submission = inquiries.get_submission(db, submission_id)
        logger.info(f"Submission {submission_id} updated by {actor.email}: {message}")
        return {"success": True, "message": message, "submission": dump(SubmissionOut, submission)}
    except HTTPException:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error updating submission {submission_id}: {e}")
        raise HTTPException(status_code=500, detail="Database error occurred")


@router.put("/submissions/{submission_id}")
def update_submission(
    submission_id: uuid.UUID,
    data: SubmissionUpdate,
    current_user: tables.User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    def action(submission):
        if data.status:
            inquiries.change_status(submission, data.status, data.internal_notes)
        elif data.internal_notes and data.internal_notes.strip():
            submission.append_note(data.internal_notes.strip())

    return _apply(db, submission_id, action, "Submission updated", current_user)


@router.patch("/submissions/{submission_id}/contacted")
def mark_contacted(
    submission_id: uuid.UUID,
    data: Optional[ContactedRequest] = None,
    current_user: tables.User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    note = data.note if data else None
    return _apply(
        db, submission_id, lambda s: inquiries.mark_contacted(s, note), "Marked as contacted", current_user
    )


@router.patch("/submissions/{submission_id}/priority")
def set_priority(
    submission_id: uuid.UUID,
    data: PriorityRequest,
    current_user: tables.User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    return _apply(
        db, submission_id, lambda s: inquiries.set_priority(s, data.priority), "Priority updated", current_user
    )


@router.patch("/submissions/{submission_id}/assign")
def assign_submission(
    submission_id: uuid.UUID,
    data: AssignRequest,
    current_user: tables.User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    return _apply(
        db, submission_id, lambda s: inquiries.assign(db, s, data.user_id), "Submission assigned", current_user
    )


@router.patch("/submissions/{submission_id}/tags")
def add_tags(
    submission_id: uuid.UUID,
    data: TagsRequest,
    current_user: tables.User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    return _apply(
        db, submission_id, lambda s: inquiries.add_tags(s, data.tags), "Tags updated", current_user
    )


@router.delete("/submissions/{submission_id}")
def delete_submission(
    submission_id: uuid.UUID,
    current_user: tables.User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    try:
        submission = inquiries.get_submission(db, submission_id)
        cv_file = (submission.payload or {}).get("cvFile")
        db.delete(submission)
        db.commit()
    except HTTPException:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error deleting submission {submission_id}: {e}")
        raise HTTPException(status_code=500, detail="Database error occurred")

    if cv_file:
        delete_stored_file(cv_file)

    logger.info(f"Submission {submission_id} deleted by {current_user.email}")
    return {"success": True, "message": "Submission deleted"}
