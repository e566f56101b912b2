import os
import smtplib
import ssl
import logging
import socket
from smtplib import SMTPServerDisconnected, SMTPAuthenticationError
import certifi
from email.message import EmailMessage

from app.schemas.notification_schema import LeaveRequestNotice, LeaveStatusNotice, WelcomeNotice
from app.utils.dates import format_display
from app.utils.templating import render_template


def _build_message(subject: str, to: str, html_body: str, text_body: str | None = None) -> EmailMessage:
    msg = EmailMessage()
    from_email = os.getenv("FROM_EMAIL", os.getenv("SMTP_USER", "no-reply@example.com"))
    from_name = os.getenv("FROM_NAME", "Leave Management System")
    msg["Subject"] = subject
    msg["From"] = f"{from_name} <{from_email}>"
    msg["To"] = to
    if text_body:
        msg.set_content(text_body)
    # Add HTML alternative
    msg.add_alternative(html_body, subtype="html")
    return msg


def send_email_smtp(message: EmailMessage) -> None:
    host = os.getenv("SMTP_HOST", "smtp.gmail.com")
    port = int(os.getenv("SMTP_PORT", "587"))
    user = os.getenv("SMTP_USER", "")
    password = os.getenv("SMTP_PASSWORD", "")
    timeout = float(os.getenv("SMTP_TIMEOUT", "10"))
    use_ssl = os.getenv("SMTP_USE_SSL", "false").lower() in {"1", "true", "yes"}
    use_tls = os.getenv("SMTP_USE_TLS", "true").lower() in {"1", "true", "yes"}

    if not user or not password:
        raise RuntimeError("SMTP credentials missing: set SMTP_USER and SMTP_PASSWORD env vars")

    # Gmail app passwords are often shown with spaces; strip them
    password = password.replace(" ", "")

    # Auto-correct common port/protocol mismatches
    if port == 465 and not use_ssl:
        logging.getLogger("uvicorn.error").warning("SMTP configured with port 465; enabling SSL and disabling STARTTLS for compatibility")
        use_ssl = True
        use_tls = False
    if port == 587 and use_ssl:
        logging.getLogger("uvicorn.error").warning("SMTP configured with port 587 and SSL; switching to STARTTLS for compatibility")
        use_ssl = False
        use_tls = True

    context = ssl.create_default_context(cafile=certifi.where())

    try:
        if use_ssl:
            with smtplib.SMTP_SSL(host, port, timeout=timeout, context=context) as server:
                server.login(user, password)
                server.send_message(message)
            return

        with smtplib.SMTP(host, port, timeout=timeout) as server:
            server.ehlo()
            if use_tls:
                server.starttls(context=context)
                server.ehlo()
            server.login(user, password)
            server.send_message(message)
    except SMTPAuthenticationError as exc:
        raise RuntimeError(f"SMTP auth failed ({exc.smtp_code}): {exc.smtp_error.decode() if isinstance(exc.smtp_error, bytes) else exc.smtp_error}") from exc
    except (SMTPServerDisconnected, ssl.SSLError, socket.timeout) as exc:
        raise RuntimeError(f"SMTP connection failed: {type(exc).__name__}: {exc}") from exc


def send_leave_request_email(notice: LeaveRequestNotice) -> None:
    html = render_template("email/leave_request.html", {"notice": notice})
    text = (
        f"New leave request from {notice.requester_name} ({notice.requester_email})\n"
        f"Type: {notice.category}\n"
        f"Dates: {format_display(notice.start_date)} to {format_display(notice.end_date)} ({notice.days} days)\n"
        f"Reason: {notice.justification}\n\n"
        f"Approve: {notice.approve_url}\nReject: {notice.reject_url}\n"
    )
    msg = _build_message(
        subject=f"New Leave Request from {notice.requester_name}",
        to=notice.to,
        html_body=html,
        text_body=text,
    )
    send_email_smtp(msg)


def send_leave_status_email(notice: LeaveStatusNotice) -> None:
    html = render_template("email/leave_status.html", {"notice": notice})
    text = (
        f"Dear {notice.requester_name},\n\n"
        f"Your leave request has been {notice.status} by {notice.approver_name}.\n"
        f"Dates: {format_display(notice.start_date)} to {format_display(notice.end_date)} ({notice.days} days)\n"
    )
    if notice.dates_modified:
        text += (
            f"Originally requested: {format_display(notice.original_start_date)} to "
            f"{format_display(notice.original_end_date)} ({notice.original_days} days)\n"
        )
    if notice.remarks:
        text += f"Remarks: {notice.remarks}\n"
    msg = _build_message(
        subject=f"Leave Request {notice.status.capitalize()}",
        to=notice.to,
        html_body=html,
        text_body=text,
    )
    send_email_smtp(msg)


def send_welcome_email(notice: WelcomeNotice) -> None:
    html = render_template("email/welcome.html", {"notice": notice})
    text = (
        f"Dear {notice.full_name},\n\nYour account has been created.\n"
        f"Username: {notice.username}\nEmail: {notice.to}\nPassword: {notice.password}\n"
        f"Login: {notice.login_url}\n\nPlease change your password after your first login."
    )
    msg = _build_message(
        subject="Welcome to Leave Management & Attendance System",
        to=notice.to,
        html_body=html,
        text_body=text,
    )
    send_email_smtp(msg)
