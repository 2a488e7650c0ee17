"""Unauthenticated endpoints behind the marketing site's forms."""
import json
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session

from ..auth.security import require_superadmin
from ..db import get_db
from ..models.models import FormSubmission
from ..schemas.forms import BusinessQuote, ContactForm, CoverageRequest, ScheduleCall
from ..services import email as mailer
from ..services.normalization import is_valid_email


router = APIRouter(prefix="/api", tags=["public"])
logger = structlog.get_logger(__name__)


def _record(db: Session, kind: str, email: str, payload: dict) -> FormSubmission:
    submission = FormSubmission(kind=kind, email=email, payload=payload)
    db.add(submission)
    db.commit()
    db.refresh(submission)
    return submission


def _finish(db: Session, submission: FormSubmission, result: dict, message: str) -> dict:
    submission.email_sent = bool(result.get("success"))
    submission.email_error = None if submission.email_sent else result.get("error") or result.get("message")
    db.commit()
    if not submission.email_sent:
        logger.warning("form_email_not_sent", kind=submission.kind, submission_id=str(submission.id), error=submission.email_error)
    return {
        "success": True,
        "message": message,
        "submissionId": str(submission.id),
        "emailSent": submission.email_sent,
    }


def _require_email(value: Optional[str]) -> None:
    if not is_valid_email(value or ""):
        raise HTTPException(status_code=400, detail="Invalid email address")


def _attachment(upload: Optional[UploadFile]) -> Optional[mailer.Attachment]:
    if upload is None or not upload.filename:
        return None
    return mailer.Attachment(name=upload.filename, content=upload.file.read(), content_type=upload.content_type)


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


@router.post("/contact")
def contact(body: ContactForm, db: Session = Depends(get_db)):
    if not all((body.first_name, body.last_name, body.email, body.phone, body.subject, body.message)):
        raise HTTPException(status_code=400, detail="All fields are required")
    _require_email(body.email)
    submission = _record(db, "contact", body.email, body.model_dump(by_alias=True))
    result = mailer.send_contact_form_email(
        first_name=body.first_name,
        last_name=body.last_name,
        email=body.email,
        phone=body.phone,
        subject=body.subject,
        message=body.message,
    )
    return _finish(db, submission, result, "Message sent successfully")


@router.post("/coverage/request")
def coverage_request(body: CoverageRequest, db: Session = Depends(get_db)):
    if not all((body.full_name, body.email, body.phone, body.location)):
        raise HTTPException(status_code=400, detail="All required fields must be filled")
    _require_email(body.email)
    submission = _record(db, "coverage", body.email, body.model_dump(by_alias=True))
    result = mailer.send_coverage_request_email(
        full_name=body.full_name,
        email=body.email,
        phone=body.phone,
        location=body.location,
        message=body.message,
    )
    return _finish(db, submission, result, "Coverage request submitted successfully")


@router.post("/business/quote")
def business_quote(body: BusinessQuote, db: Session = Depends(get_db)):
    if not all((body.company_name, body.email, body.phone, body.requirements)):
        raise HTTPException(status_code=400, detail="All fields are required")
    _require_email(body.email)
    submission = _record(db, "quote", body.email, body.model_dump(by_alias=True))
    result = mailer.send_business_quote_email(
        company_name=body.company_name,
        email=body.email,
        phone=body.phone,
        requirements=body.requirements,
    )
    return _finish(db, submission, result, "Quote request submitted successfully")


@router.post("/business/schedule-call")
def schedule_call(body: ScheduleCall, db: Session = Depends(get_db)):
    if not all((body.full_name, body.email, body.phone)):
        raise HTTPException(status_code=400, detail="Full name, email, and phone are required")
    _require_email(body.email)
    submission = _record(db, "call", body.email, body.model_dump(by_alias=True))
    result = mailer.send_schedule_call_email(
        full_name=body.full_name,
        email=body.email,
        phone=body.phone,
        company_name=body.company_name,
        preferred_date=body.preferred_date,
        preferred_time=body.preferred_time,
        message=body.message,
    )
    return _finish(db, submission, result, "Call request submitted successfully")


def _parse_expertise(raw: Optional[str], other: Optional[str]) -> List[str]:
    """Expertise arrives as a JSON array (or a comma list from older forms); "Other" is replaced by free text."""
    raw = _clean(raw)
    if not raw:
        return []
    try:
        values = json.loads(raw)
    except ValueError:
        values = raw.split(",")
    if not isinstance(values, list):
        values = [values]
    items = [str(v).strip() for v in values if str(v).strip()]
    other = _clean(other)
    if other:
        items = [other if v.lower() == "other" else v for v in items]
    return items


@router.post("/careers/open-application")
def open_application(
    full_name: Optional[str] = Form(None, alias="fullName"),
    phone_number: Optional[str] = Form(None, alias="phoneNumber"),
    email: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    expertise: Optional[str] = Form(None),
    other_expertise: Optional[str] = Form(None, alias="otherExpertise"),
    years_experience: Optional[str] = Form(None, alias="yearsExperience"),
    brief_description: Optional[str] = Form(None, alias="briefDescription"),
    portfolio_link: Optional[str] = Form(None, alias="portfolioLink"),
    cv_file: Optional[UploadFile] = File(None, alias="cvFile"),
    certificates_file: Optional[UploadFile] = File(None, alias="certificatesFile"),
    db: Session = Depends(get_db),
):
    areas = _parse_expertise(expertise, other_expertise)
    required = (full_name, phone_number, email, location, years_experience, brief_description)
    if not all(_clean(v) for v in required) or not areas:
        raise HTTPException(status_code=400, detail="Missing required fields")
    _require_email(_clean(email))

    cv = _attachment(cv_file)
    certificates = _attachment(certificates_file)
    payload = {
        "fullName": _clean(full_name),
        "phoneNumber": _clean(phone_number),
        "email": _clean(email),
        "location": _clean(location),
        "expertise": areas,
        "yearsExperience": _clean(years_experience),
        "briefDescription": _clean(brief_description),
        "portfolioLink": _clean(portfolio_link) or None,
        "cvFileName": cv.name if cv else None,
        "certificatesFileName": certificates.name if certificates else None,
    }
    submission = _record(db, "open-application", payload["email"], payload)
    result = mailer.send_open_application_email(
        full_name=payload["fullName"],
        phone_number=payload["phoneNumber"],
        email=payload["email"],
        location=payload["location"],
        expertise=areas,
        years_experience=payload["yearsExperience"],
        brief_description=payload["briefDescription"],
        portfolio_link=payload["portfolioLink"],
        cv_file=cv,
        certificates_file=certificates,
    )
    return _finish(db, submission, result, "Application submitted successfully")


@router.post("/jobs/apply")
def job_apply(
    job_id: Optional[str] = Form(None, alias="jobId"),
    job_title: Optional[str] = Form(None, alias="jobTitle"),
    full_name: Optional[str] = Form(None, alias="fullName"),
    phone_number: Optional[str] = Form(None, alias="phoneNumber"),
    email: Optional[str] = Form(None),
    county_town: Optional[str] = Form(None, alias="countyTown"),
    years_experience: Optional[str] = Form(None, alias="yearsExperience"),
    cv_file: Optional[UploadFile] = File(None, alias="cvFile"),
    certificates_file: Optional[UploadFile] = File(None, alias="certificatesFile"),
    db: Session = Depends(get_db),
):
    required = (job_id, job_title, full_name, phone_number, email, county_town, years_experience)
    if not all(_clean(v) for v in required):
        raise HTTPException(status_code=400, detail="Missing required fields")
    _require_email(_clean(email))

    cv = _attachment(cv_file)
    certificates = _attachment(certificates_file)
    payload = {
        "jobId": _clean(job_id),
        "jobTitle": _clean(job_title),
        "fullName": _clean(full_name),
        "phoneNumber": _clean(phone_number),
        "email": _clean(email),
        "countyTown": _clean(county_town),
        "yearsExperience": _clean(years_experience),
        "cvFileName": cv.name if cv else None,
        "certificatesFileName": certificates.name if certificates else None,
    }
    submission = _record(db, "job", payload["email"], payload)
    result = mailer.send_job_application_email(
        job_title=payload["jobTitle"],
        full_name=payload["fullName"],
        phone_number=payload["phoneNumber"],
        email=payload["email"],
        county_town=payload["countyTown"],
        years_experience=payload["yearsExperience"],
        cv_file=cv,
        certificates_file=certificates,
    )
    return _finish(db, submission, result, "Application submitted successfully")


@router.get("/email/verify")
def verify_email(_=Depends(require_superadmin())):
    return mailer.verify_email_connection()
