#routers/emails.py
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.schemas import (
    LoanInquiryRequest, PropertySubmissionRequest, LoanInquiryPayload, PropertySubmissionPayload
)
from app.services import inquiries
from app.services.notifications import NotificationDispatcher, get_notification_dispatcher

router = APIRouter()


# ==========================================
# 1. PUBLIC: LOAN CALCULATOR INQUIRY
# ==========================================
@router.post("/loan-inquiry")
def loan_inquiry(
    data: LoanInquiryRequest,
    request: Request,
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher)
):
    """
    Stores the calculator figures exactly as entered; the admin gets the details
    and the submitter a confirmation.
    """
    payload = LoanInquiryPayload(
        property_price=data.property_price,
        own_contribution=data.own_contribution,
        loan_term=data.loan_term,
        monthly_payment=data.monthly_payment,
        interest_rate=data.interest_rate,
    )
    return inquiries.run_intake(db, dispatcher, data, payload, request, "Loan inquiry sent successfully")


# ==========================================
# 2. PUBLIC: "SELL WITH US" SUBMISSION
# ==========================================
@router.post("/property-submission")
def property_submission(
    data: PropertySubmissionRequest,
    request: Request,
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher)
):
    payload = PropertySubmissionPayload(message=data.message)
    return inquiries.run_intake(db, dispatcher, data, payload, request, "Property submission sent successfully")
