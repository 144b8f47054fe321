"""
Email service for load alerts (to carriers) and bid inquiries (to brokers).
Sends over SMTP with STARTTLS; HTML bodies are rendered from templates/emails.
Senders return a status dict instead of raising so one bad address never stops a job.
"""
import os
import smtplib
from dataclasses import dataclass
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from loadnetwork.core.config import settings
from loadnetwork.schemas.alert import AlertSubscription
from loadnetwork.schemas.load import NOT_AVAILABLE, Posting

TEMPLATE_DIR = os.path.join(os.path.dirname(__file__), "..", "templates", "emails")

_env = Environment(loader=FileSystemLoader(TEMPLATE_DIR), autoescape=select_autoescape(["html"]))


@dataclass(frozen=True)
class OutboundEmail:
    to: str
    subject: str
    text: str
    html: Optional[str] = None
    reply_to: Optional[str] = None
    sender: Optional[str] = None


def _lane(load: Posting) -> str:
    origin = ", ".join(part for part in (load.origin.city, load.origin.state) if part)
    destination = ", ".join(part for part in (load.destination.city, load.destination.state) if part)
    return f"{origin} → {destination}"


def compose_load_alert(
    load: Posting,
    alert: AlertSubscription,
    origin_distance: Optional[float] = None,
    destination_distance: Optional[float] = None,
) -> OutboundEmail:
    """Alert email for a carrier whose saved lane matched a newly posted load."""
    lane = _lane(load)
    subject = f"New load match: {lane}"
    details = {
        "Pickup": load.pickup_date,
        "Delivery": load.delivery_date_time,
        "Truck": load.truck_type or NOT_AVAILABLE,
        "Miles": f"{load.miles:,}" if load.miles else NOT_AVAILABLE,
        "Weight": f"{load.weight:,} lbs" if load.weight else NOT_AVAILABLE,
        "Pieces": str(load.pieces) if load.pieces else NOT_AVAILABLE,
        "Broker": load.broker_name or NOT_AVAILABLE,
        "Broker email": load.broker_email,
    }
    text = (
        f"A new load matches your alert ({alert.origin_text} → {alert.destination_text}).\n\n"
        f"{lane}\n"
        + "\n".join(f"{label}: {value}" for label, value in details.items())
        + f"\n\nSearch the board: {settings.BASE_URL}/loads\n"
    )
    html = _env.get_template("load_alert.html").render(
        lane=lane,
        alert=alert,
        details=details,
        notes=load.broker_notes,
        origin_distance=origin_distance,
        destination_distance=destination_distance,
        board_url=f"{settings.BASE_URL}/loads",
    )
    return OutboundEmail(to=alert.user_email, subject=subject, text=text, html=html, sender=settings.EMAIL_FROM)


def compose_bid_inquiry(
    load: Posting,
    company_name: str,
    contact_email: str,
    subject: Optional[str] = None,
    message: Optional[str] = None,
) -> OutboundEmail:
    """
    Inquiry a carrier sends to the posting broker. Replies go straight to the carrier.
    Raises ValueError when the load has no broker email on file.
    """
    if not load.broker_email or load.broker_email == NOT_AVAILABLE:
        raise ValueError(f"Load {load.source_id} has no broker email")
    subject = subject or f"Inquiry on Load #{load.source_id} from {company_name}"
    message = message or "Please provide rates and more information on this load."
    lane = _lane(load)
    text = (
        f"This is an inquiry regarding load #{load.source_id} ({lane}).\n\n"
        f"From: {company_name} <{contact_email}>\n\n"
        f"{message}\n"
    )
    html = _env.get_template("bid_inquiry.html").render(
        load=load, lane=lane, company_name=company_name, contact_email=contact_email, message=message
    )
    return OutboundEmail(
        to=load.broker_email,
        subject=subject,
        text=text,
        html=html,
        reply_to=contact_email,
        sender=settings.BIDS_FROM,
    )


def send_email(email: OutboundEmail) -> Dict[str, Any]:
    """Send via SMTP. Returns {"status": "success"|"error", "message": ...}."""
    if not settings.EMAIL_USER or not settings.EMAIL_PASS:
        return {
            "status": "error",
            "message": "SMTP not configured. Set EMAIL_USER and EMAIL_PASS in .env",
        }
    try:
        msg = MIMEMultipart("alternative")
        msg["From"] = email.sender or settings.EMAIL_FROM
        msg["To"] = email.to
        msg["Subject"] = email.subject
        if email.reply_to:
            msg["Reply-To"] = email.reply_to
        msg.attach(MIMEText(email.text, "plain"))
        if email.html:
            msg.attach(MIMEText(email.html, "html"))

        with smtplib.SMTP(settings.EMAIL_HOST, settings.EMAIL_PORT) as server:
            server.starttls()
            server.login(settings.EMAIL_USER, settings.EMAIL_PASS)
            server.send_message(msg)

        return {
            "status": "success",
            "message": f"Email sent to {email.to}",
            "sent_at": datetime.now().isoformat(),
        }
    except (smtplib.SMTPException, OSError) as e:
        return {
            "status": "error",
            "message": f"Failed to send email: {e}",
        }
