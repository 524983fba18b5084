import base64
import html
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage

import httpx

from .. import config
from ..models.job import Job
from ..models.student_profile import StudentProfile

logger = logging.getLogger(__name__)

DEFAULT_RECIPIENT_NAME = "Hiring Manager"
NOT_PROVIDED = "Not provided"


class EmailDeliveryError(RuntimeError):
    pass


@dataclass(frozen=True)
class Recipient:
    email: str | None
    name: str | None
    company_name: str | None


@dataclass(frozen=True)
class CandidateContact:
    name: str
    email: str | None
    phone: str | None
    institution: str | None
    field_of_study: str | None


@dataclass(frozen=True)
class EmailAttachment:
    filename: str
    content: bytes
    content_type: str | None = None


def resolve_recipient(job: Job) -> Recipient:
    """
    Company HR contact when the job's company has an HR email,
    otherwise the employer's contact person.
    """
    company = job.company
    if company is not None and company.hr_email:
        return Recipient(
            email=company.hr_email,
            name=company.hr_name or DEFAULT_RECIPIENT_NAME,
            company_name=company.name,
        )
    employer = job.employer
    if employer is None:
        return Recipient(email=None, name=None, company_name=None)
    return Recipient(
        email=employer.contact_person_email,
        name=employer.contact_person_name,
        company_name=employer.company_name,
    )


def candidate_contact(student: StudentProfile) -> CandidateContact:
    return CandidateContact(
        name=student.full_name or "Student",
        email=student.contact_email,
        phone=student.phone,
        institution=student.university,
        field_of_study=student.field_of_study,
    )


def cv_view_url(cv_id: int) -> str:
    return f"{config.FRONTEND_URL}/cv/{cv_id}"


def default_subject(*, job_title: str | None, candidate_name: str | None) -> str:
    return f"Job Application for {job_title or 'the position'} - {candidate_name or 'Student'}"


def default_email_body(*, candidate_name: str, job_title: str | None, cover_letter: str | None) -> str:
    # A generated cover letter is already a complete letter; send it as-is.
    if cover_letter and cover_letter.strip():
        return cover_letter
    return (
        f"I am writing to express my interest in the {job_title or 'advertised'} position.\n\n"
        "I have attached my CV for your review. I would welcome the opportunity to discuss "
        "how my skills align with your needs.\n\n"
        f"Thank you for considering my application.\n\nBest regards,\n{candidate_name}"
    )


def build_application_email(
    *,
    candidate_name: str,
    candidate_email: str | None,
    candidate_phone: str | None,
    institution: str | None,
    field_of_study: str | None,
    job_title: str | None,
    cover_letter: str | None,
    cv_url: str | None,
    custom_body: str | None,
) -> tuple[str, str]:
    """Returns (plain_text, html) for the application email."""
    body = custom_body if custom_body and custom_body.strip() else default_email_body(
        candidate_name=candidate_name, job_title=job_title, cover_letter=cover_letter
    )

    lines: list[str] = [body, "", "Applicant Information"]
    lines.append(f"Name: {candidate_name}")
    lines.append(f"Email: {candidate_email or NOT_PROVIDED}")
    lines.append(f"Phone: {candidate_phone or NOT_PROVIDED}")
    lines.append(f"University: {institution or NOT_PROVIDED}")
    lines.append(f"Major: {field_of_study or NOT_PROVIDED}")
    lines.append(f"CV: {cv_url or 'Not available'}")
    lines.append("")
    lines.append(f"Reply to this email to respond directly to {candidate_name} ({candidate_email or NOT_PROVIDED}).")
    text = "\n".join(lines)

    e = html.escape
    rows = "".join(
        f'<tr><td style="padding: 8px 0; color: #666666;">{label}:</td><td style="padding: 8px 0;">{e(value)}</td></tr>'
        for label, value in (
            ("Name", candidate_name),
            ("Email", candidate_email or NOT_PROVIDED),
            ("Phone", candidate_phone or NOT_PROVIDED),
            ("University", institution or NOT_PROVIDED),
            ("Major", field_of_study or NOT_PROVIDED),
        )
    )
    cv_link = (
        f'<p style="text-align: center;"><a href="{e(cv_url, quote=True)}">View CV</a></p>' if cv_url else ""
    )
    html_body = (
        '<html><body style="font-family: Arial, sans-serif;">'
        '<h2>New Job Application</h2>'
        f'<div style="white-space: pre-wrap;">{e(body)}</div>'
        '<h3>Applicant Information</h3>'
        f'<table style="border-collapse: collapse;">{rows}</table>'
        f"{cv_link}"
        f'<p style="color: #999999; font-size: 12px;">Click "Reply" to respond directly to '
        f"{e(candidate_name)} ({e(candidate_email or NOT_PROVIDED)}).</p>"
        "</body></html>"
    )
    return text, html_body


def _send_smtp(
    *,
    to_email: str,
    to_name: str | None,
    subject: str,
    text: str,
    html_body: str,
    reply_to: str | None,
    attachments: list[EmailAttachment],
) -> None:
    host = config.SMTP_HOST
    user = config.SMTP_USER
    password = config.SMTP_PASS
    mail_from = config.SMTP_FROM
    if not host or not user or not password or not mail_from:
        raise EmailDeliveryError("SMTP is not configured (missing SMTP_HOST/SMTP_USER/SMTP_PASS/SMTP_FROM).")

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = mail_from
    msg["To"] = f"{to_name} <{to_email}>" if to_name else to_email
    if reply_to:
        msg["Reply-To"] = reply_to
    msg.set_content(text)
    msg.add_alternative(html_body, subtype="html")
    for a in attachments:
        maintype, _, subtype = (a.content_type or "application/octet-stream").partition("/")
        msg.add_attachment(a.content, maintype=maintype, subtype=subtype or "octet-stream", filename=a.filename)

    try:
        with smtplib.SMTP(host, config.SMTP_PORT, timeout=config.EMAIL_TIMEOUT_S) as smtp:
            smtp.ehlo()
            if config.SMTP_TLS:
                smtp.starttls()
                smtp.ehlo()
            smtp.login(user, password)
            smtp.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        raise EmailDeliveryError(f"{type(e).__name__}: {e}") from e


def _send_brevo(
    *,
    to_email: str,
    to_name: str | None,
    subject: str,
    html_body: str,
    reply_to: str | None,
    reply_to_name: str | None,
    attachments: list[EmailAttachment],
) -> None:
    if not config.BREVO_API_KEY or not config.BREVO_SENDER_EMAIL:
        raise EmailDeliveryError("Brevo is not configured (missing BREVO_API_KEY/BREVO_SENDER_EMAIL).")

    payload: dict = {
        "sender": {"email": config.BREVO_SENDER_EMAIL, "name": config.BREVO_SENDER_NAME},
        "to": [{"email": to_email, "name": to_name or to_email}],
        "subject": subject,
        "htmlContent": html_body,
    }
    if reply_to:
        payload["replyTo"] = {"email": reply_to, "name": reply_to_name or reply_to}
    if attachments:
        payload["attachment"] = [
            {"name": a.filename, "content": base64.b64encode(a.content).decode("ascii")} for a in attachments
        ]

    headers = {"api-key": config.BREVO_API_KEY, "accept": "application/json"}
    try:
        with httpx.Client(timeout=config.EMAIL_TIMEOUT_S) as client:
            r = client.post(f"{config.BREVO_BASE_URL}/v3/smtp/email", json=payload, headers=headers)
    except httpx.HTTPError as e:
        raise EmailDeliveryError(f"{type(e).__name__}: {e}") from e
    if r.status_code >= 400:
        raise EmailDeliveryError(f"Brevo returned HTTP {r.status_code}: {r.text[:500]}")


def send_job_application_email(
    *,
    recipient_email: str,
    recipient_name: str | None,
    candidate_name: str,
    candidate_email: str | None,
    candidate_phone: str | None,
    institution: str | None,
    field_of_study: str | None,
    job_title: str | None,
    company_name: str | None,
    cover_letter: str | None,
    cv_url: str | None,
    custom_body: str | None,
    subject: str | None = None,
    attachments: list[EmailAttachment] | None = None,
) -> None:
    """
    Send the application email to the employer side.
    Returns on delivery, raises EmailDeliveryError otherwise.

    No idempotency key is passed to the transport: retrying after a timeout
    with unknown outcome can deliver the email twice.
    """
    attachments = list(attachments or [])
    if not config.EMAIL_ENABLED:
        logger.warning("Email is disabled. Not sending job application email to %s", recipient_email)
        raise EmailDeliveryError("Email is disabled")

    subject = (subject or "").strip() or default_subject(job_title=job_title, candidate_name=candidate_name)
    text, html_body = build_application_email(
        candidate_name=candidate_name,
        candidate_email=candidate_email,
        candidate_phone=candidate_phone,
        institution=institution,
        field_of_study=field_of_study,
        job_title=job_title,
        cover_letter=cover_letter,
        cv_url=cv_url,
        custom_body=custom_body,
    )

    logger.info(
        "Sending job application email provider=%s to=%s job=%r company=%r attachments=%s",
        config.EMAIL_PROVIDER,
        recipient_email,
        job_title,
        company_name,
        len(attachments),
    )
    if config.EMAIL_PROVIDER == "brevo":
        _send_brevo(
            to_email=recipient_email,
            to_name=recipient_name,
            subject=subject,
            html_body=html_body,
            reply_to=candidate_email,
            reply_to_name=candidate_name,
            attachments=attachments,
        )
    elif config.EMAIL_PROVIDER == "smtp":
        _send_smtp(
            to_email=recipient_email,
            to_name=recipient_name,
            subject=subject,
            text=text,
            html_body=html_body,
            reply_to=candidate_email,
            attachments=attachments,
        )
    else:
        raise EmailDeliveryError(f"Unknown EMAIL_PROVIDER {config.EMAIL_PROVIDER!r}")
    logger.info("Job application email sent to %s", recipient_email)
