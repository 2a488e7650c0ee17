"""
Outbound email for the public website forms.

Messages go out through the company's cPanel mailbox. Port 587 uses STARTTLS
(required), SMTP_SECURE=true switches to implicit TLS on 465. cPanel hosts
often present self-signed certificates, so verification is relaxed.

Every send function returns a result dict instead of raising:
    {"success": True, "message": ..., "recipient": ..., "messageId": ...}
    {"success": False, "message": ..., "error": ...}
"""
import html
import smtplib
import socket
import ssl
import time
import uuid
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr, formatdate
from typing import Dict, List, Optional, Sequence, Tuple

import structlog

from ..config import settings
from .time_rules import parse_date


logger = structlog.get_logger(__name__)

CONTENT_TYPES = {
    ".pdf": "application/pdf",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}


class EmailConfigError(RuntimeError):
    pass


@dataclass
class Attachment:
    name: str
    content: bytes
    content_type: Optional[str] = None

    def resolved_content_type(self) -> str:
        if self.content_type:
            return self.content_type
        lowered = self.name.lower()
        for ext, ctype in CONTENT_TYPES.items():
            if lowered.endswith(ext):
                return ctype
        return "application/octet-stream"


def _tls_context() -> ssl.SSLContext:
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    ctx.minimum_version = ssl.TLSVersion.TLSv1
    return ctx


def _check_config() -> None:
    if not settings.smtp_user or not settings.smtp_password:
        raise EmailConfigError(
            "Email configuration is missing. Please check SMTP_USER and SMTP_PASSWORD environment variables."
        )
    if not settings.smtp_host:
        raise EmailConfigError("SMTP host is not configured. Please check SMTP_HOST environment variable.")


def _open_connection() -> smtplib.SMTP:
    timeout = settings.smtp_timeout_seconds
    logger.info("smtp_connect", host=settings.smtp_host, port=settings.smtp_port, secure=settings.smtp_secure)
    if settings.smtp_secure:
        conn = smtplib.SMTP_SSL(settings.smtp_host, settings.smtp_port, timeout=timeout, context=_tls_context())
    else:
        conn = smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=timeout)
    try:
        if not settings.smtp_secure:
            conn.ehlo()
            conn.starttls(context=_tls_context())
            conn.ehlo()
        if settings.smtp_user and settings.smtp_password:
            conn.login(settings.smtp_user, settings.smtp_password)
    except (OSError, smtplib.SMTPException):
        conn.close()
        raise
    return conn


def classify_error(exc: BaseException) -> str:
    """Turn low-level SMTP/socket failures into an actionable message."""
    if isinstance(exc, EmailConfigError):
        return str(exc)
    if isinstance(exc, ConnectionRefusedError):
        return "Cannot connect to email server. Please check SMTP_HOST and SMTP_PORT settings."
    if isinstance(exc, smtplib.SMTPAuthenticationError):
        return "Email authentication failed. Please check SMTP_USER and SMTP_PASSWORD."
    if isinstance(exc, (socket.timeout, TimeoutError)):
        return "Email server connection timed out. Please check your network and SMTP settings."
    if isinstance(exc, socket.gaierror):
        return "Email server hostname not found. Please check SMTP_HOST setting."
    return str(exc) or exc.__class__.__name__


def verify_email_connection() -> Dict[str, object]:
    try:
        _check_config()
        conn = _open_connection()
        try:
            conn.noop()
        finally:
            conn.quit()
        return {"success": True, "message": "Email server is ready"}
    except (OSError, smtplib.SMTPException, EmailConfigError) as e:
        logger.warning("smtp_verify_failed", error=str(e))
        return {"success": False, "message": "Email server connection failed", "error": classify_error(e)}


def _build_message(
    *,
    sender_name: str,
    recipient: str,
    reply_to: Optional[str],
    subject: str,
    text_body: str,
    html_body: str,
    attachments: Sequence[Attachment] = (),
    mailer: Optional[str] = None,
) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = formataddr((sender_name, settings.smtp_user or ""))
    msg["To"] = recipient
    if reply_to:
        msg["Reply-To"] = reply_to
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = f"<{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}@{settings.mail_domain}>"
    if mailer:
        msg["X-Mailer"] = mailer
    msg.set_content(text_body)
    msg.add_alternative(html_body, subtype="html")
    for att in attachments:
        maintype, subtype = att.resolved_content_type().split("/", 1)
        msg.add_attachment(att.content, maintype=maintype, subtype=subtype, filename=att.name)
    return msg


def _deliver(msg: EmailMessage, kind: str, success_message: str, failure_message: str) -> Dict[str, object]:
    recipient = msg["To"]
    try:
        _check_config()
        conn = _open_connection()
        try:
            conn.send_message(msg)
        finally:
            conn.quit()
    except (OSError, smtplib.SMTPException, EmailConfigError) as e:
        logger.warning("email_send_failed", kind=kind, recipient=recipient, error=str(e))
        return {"success": False, "message": failure_message, "error": classify_error(e)}
    logger.info("email_sent", kind=kind, recipient=recipient, message_id=msg["Message-ID"])
    return {
        "success": True,
        "message": f"{success_message} {recipient}",
        "recipient": recipient,
        "messageId": msg["Message-ID"],
    }


# ---------- templates ----------
def _fields_html(title: str, fields: List[Tuple[str, str]], footer: str) -> str:
    rows = "".join(
        f'<div class="field"><span class="label">{html.escape(label)}:</span> '
        f'<span class="value">{html.escape(str(value or "")).replace(chr(10), "<br>")}</span></div>'
        for label, value in fields
    )
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\"><style>"
        "body{font-family:Arial,sans-serif;line-height:1.6;color:#333}"
        ".container{max-width:600px;margin:0 auto;padding:20px}"
        ".header{background:linear-gradient(135deg,#0B6B3A 0%,#22C55E 100%);color:#fff;padding:20px;border-radius:8px 8px 0 0}"
        ".content{background:#f9fafb;padding:20px;border:1px solid #e5e7eb}"
        ".field{margin-bottom:15px}.label{font-weight:bold;color:#0B6B3A}"
        ".footer{background:#f3f4f6;padding:15px;text-align:center;font-size:12px;color:#6b7280}"
        "</style></head><body><div class=\"container\">"
        f"<div class=\"header\"><h2 style=\"margin:0\">{html.escape(title)}</h2></div>"
        f"<div class=\"content\">{rows}</div>"
        f"<div class=\"footer\"><p>{html.escape(footer)}</p></div>"
        "</div></body></html>"
    )


def _fields_text(title: str, fields: List[Tuple[str, str]], footer: str) -> str:
    lines = [title, ""]
    lines.extend(f"{label}: {value}" for label, value in fields)
    lines.extend(["", footer])
    return "\n".join(lines) + "\n"


def _render(title: str, fields: List[Tuple[str, str]], footer: str) -> Tuple[str, str]:
    return _fields_text(title, fields, footer), _fields_html(title, fields, footer)


def _attachment_fields(cv_file: Optional[Attachment], certificates_file: Optional[Attachment]) -> List[Tuple[str, str]]:
    fields = []
    if cv_file:
        fields.append(("CV/Resume", f"{cv_file.name} (attached)"))
    if certificates_file:
        fields.append(("Certificates", f"{certificates_file.name} (attached)"))
    return fields


# ---------- senders ----------
def send_job_application_email(
    *,
    job_title: str,
    full_name: str,
    phone_number: str,
    email: str,
    county_town: str,
    years_experience: str,
    cv_file: Optional[Attachment] = None,
    certificates_file: Optional[Attachment] = None,
) -> Dict[str, object]:
    fields = [
        ("Position Applied For", job_title),
        ("Full Name", full_name),
        ("Phone Number", phone_number),
        ("Email", email),
        ("County / Town", county_town),
        ("Years of Experience", years_experience),
    ] + _attachment_fields(cv_file, certificates_file)
    footer = (
        f"This application was submitted through the {settings.company_name} careers portal. "
        f"Please review and respond to the candidate at {email} or {phone_number}."
    )
    text_body, html_body = _render("New Job Application", fields, footer)
    msg = _build_message(
        sender_name=f"{settings.company_name} Careers",
        recipient=settings.careers_email,
        reply_to=email,
        subject=f"New Job Application: {job_title} - {full_name}",
        text_body=text_body,
        html_body=html_body,
        attachments=[a for a in (cv_file, certificates_file) if a],
        mailer=f"{settings.company_name} Careers Portal",
    )
    return _deliver(msg, "job_application", "Application email sent successfully to", "Failed to send application email")


def send_open_application_email(
    *,
    full_name: str,
    phone_number: str,
    email: str,
    location: str,
    expertise: List[str],
    years_experience: str,
    brief_description: str,
    portfolio_link: Optional[str] = None,
    cv_file: Optional[Attachment] = None,
    certificates_file: Optional[Attachment] = None,
) -> Dict[str, object]:
    fields = [
        ("Full Name", full_name),
        ("Phone Number", phone_number),
        ("Email", email),
        ("Location", location),
        ("Areas of Expertise", ", ".join(expertise)),
        ("Years of Experience", years_experience),
        ("Brief Description", brief_description),
    ]
    if portfolio_link:
        fields.append(("Portfolio", portfolio_link))
    fields += _attachment_fields(cv_file, certificates_file)
    footer = f"This open application was submitted through the {settings.company_name} careers portal."
    text_body, html_body = _render("New Open Application", fields, footer)
    msg = _build_message(
        sender_name=f"{settings.company_name} Careers",
        recipient=settings.careers_email,
        reply_to=email,
        subject=f"Open Application: {full_name} - {', '.join(expertise)}",
        text_body=text_body,
        html_body=html_body,
        attachments=[a for a in (cv_file, certificates_file) if a],
        mailer=f"{settings.company_name} Careers Portal",
    )
    return _deliver(
        msg, "open_application", "Open application email sent successfully to", "Failed to send open application email"
    )


def send_contact_form_email(
    *, first_name: str, last_name: str, email: str, phone: str, subject: str, message: str
) -> Dict[str, object]:
    fields = [
        ("Name", f"{first_name} {last_name}"),
        ("Email", email),
        ("Phone", phone),
        ("Subject", subject),
        ("Message", message),
    ]
    footer = f"Sent from the {settings.company_name} website contact form. Reply to respond to the customer."
    text_body, html_body = _render("New Contact Form Submission", fields, footer)
    msg = _build_message(
        sender_name=f"{first_name} {last_name} (Contact Form)",
        recipient=settings.support_email,
        reply_to=email,
        subject=f"Contact Form: {subject}",
        text_body=text_body,
        html_body=html_body,
    )
    return _deliver(msg, "contact_form", "Contact form email sent successfully to", "Failed to send contact form email")


def send_coverage_request_email(
    *, full_name: str, email: str, phone: str, location: str, message: Optional[str] = None
) -> Dict[str, object]:
    fields = [
        ("Full Name", full_name),
        ("Email", email),
        ("Phone", phone),
        ("Location", location),
        ("Message", message or "No additional message"),
    ]
    footer = f"Coverage request submitted through the {settings.company_name} website."
    text_body, html_body = _render("New Coverage Request", fields, footer)
    msg = _build_message(
        sender_name=f"{full_name} (Coverage Request)",
        recipient=settings.support_email,
        reply_to=email,
        subject=f"Coverage Request: {location}",
        text_body=text_body,
        html_body=html_body,
    )
    return _deliver(
        msg, "coverage_request", "Coverage request email sent successfully to", "Failed to send coverage request email"
    )


def send_business_quote_email(*, company_name: str, email: str, phone: str, requirements: str) -> Dict[str, object]:
    fields = [
        ("Company Name", company_name),
        ("Email", email),
        ("Phone", phone),
        ("Requirements", requirements),
    ]
    footer = f"Business quote request submitted through the {settings.company_name} website."
    text_body, html_body = _render("New Business Quote Request", fields, footer)
    msg = _build_message(
        sender_name=f"{company_name} (Quote Request)",
        recipient=settings.support_email,
        reply_to=email,
        subject=f"Business Quote Request: {company_name}",
        text_body=text_body,
        html_body=html_body,
    )
    return _deliver(
        msg, "business_quote", "Business quote email sent successfully to", "Failed to send business quote email"
    )


def _format_preferred_date(value: Optional[str]) -> str:
    if not value:
        return "Not specified"
    try:
        parsed = parse_date(value)
    except ValueError:
        return value
    return parsed.strftime("%A, %B %d, %Y").replace(" 0", " ")


def send_schedule_call_email(
    *,
    full_name: str,
    email: str,
    phone: str,
    company_name: Optional[str] = None,
    preferred_date: Optional[str] = None,
    preferred_time: Optional[str] = None,
    message: Optional[str] = None,
) -> Dict[str, object]:
    fields = [
        ("Full Name", full_name),
        ("Company", company_name or "Not specified"),
        ("Email", email),
        ("Phone", phone),
        ("Preferred Date", _format_preferred_date(preferred_date)),
        ("Preferred Time", preferred_time or "Not specified"),
        ("Message", message or "No additional message"),
    ]
    footer = f"Call request submitted through the {settings.company_name} business page."
    text_body, html_body = _render("New Call Request", fields, footer)
    msg = _build_message(
        sender_name=f"{full_name} (Call Request)",
        recipient=settings.support_email,
        reply_to=email,
        subject=f"Schedule Call Request: {company_name or full_name}",
        text_body=text_body,
        html_body=html_body,
    )
    return _deliver(
        msg, "schedule_call", "Schedule call email sent successfully to", "Failed to send schedule call email"
    )
