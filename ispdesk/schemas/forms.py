from typing import Optional

from .common import TrimmedModel


class ContactForm(TrimmedModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    subject: Optional[str] = None
    message: Optional[str] = None


class CoverageRequest(TrimmedModel):
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    message: Optional[str] = None


class BusinessQuote(TrimmedModel):
    company_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    requirements: Optional[str] = None


class ScheduleCall(TrimmedModel):
    full_name: Optional[str] = None
    company_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    preferred_date: Optional[str] = None
    preferred_time: Optional[str] = None
    message: Optional[str] = None
