# Email Dispatch (best-effort)

import os
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, Optional

import aiosmtplib
from dotenv import load_dotenv

from logging_config import logger

load_dotenv()

# --- Configuration ---
SMTP_HOST = os.getenv("SMTP_HOST", "localhost")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
EMAIL_FROM = os.getenv("EMAIL_FROM", SMTP_USER or "no-reply@projecttrack.local")
EMAIL_FROM_NAME = os.getenv("EMAIL_FROM_NAME", "ProjectTrack")

_LAYOUT = """<!DOCTYPE html>
<html>
<head>
  <style>
    body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
    .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
    .header {{ background-color: {color}; color: white; padding: 20px; text-align: center; }}
    .content {{ padding: 20px; background-color: #f9f9f9; }}
  </style>
</head>
<body>
  <div class="container">
    <div class="header"><h1>{heading}</h1></div>
    <div class="content">
      <p>Hello {fullName},</p>
      {body}
      <p>Best regards,<br>ProjectTrack Team</p>
    </div>
  </div>
</body>
</html>
"""

# template name -> (subject, heading, header colour, body)
TEMPLATES: Dict[str, tuple] = {
    "welcome": (
        "Welcome to ProjectTrack",
        "Welcome to ProjectTrack!",
        "#4CAF50",
        "<p>Thank you for registering. You can now log in and start managing your projects.</p>",
    ),
    "proposal_approved": (
        "Project Proposal Approved",
        "Project Proposal Approved!",
        "#4CAF50",
        '<p>Great news! Your project proposal "<strong>{projectTitle}</strong>" has been approved.</p>'
        "<p>You can now proceed with development and milestone submissions.</p>",
    ),
    "proposal_rejected": (
        "Project Proposal Requires Revision",
        "Project Proposal Requires Revision",
        "#f44336",
        '<p>Your project proposal "<strong>{projectTitle}</strong>" requires revision.</p>'
        "<p><strong>Reason:</strong> {reason}</p>"
        "<p>Please make the necessary changes and resubmit.</p>",
    ),
    "feedback_received": (
        "New Feedback Received",
        "New Feedback Received",
        "#2196F3",
        '<p>You have received new feedback on milestone "<strong>{milestoneTitle}</strong>".</p>'
        "<p>Log in to view the details.</p>",
    ),
    "milestone_deadline": (
        "Milestone Deadline Reminder",
        "Milestone Deadline Reminder",
        "#FF9800",
        '<p>The milestone "<strong>{milestoneTitle}</strong>" is due on <strong>{dueDate}</strong>.</p>'
        "<p>Please submit your work before the deadline.</p>",
    ),
}


def is_configured() -> bool:
    return bool(SMTP_USER and SMTP_PASSWORD)


def render_template(template: str, data: Dict[str, Any]) -> tuple:
    """Returns (subject, html) for a named template. Raises KeyError for unknown names."""
    subject, heading, color, body = TEMPLATES[template]
    values = {"fullName": "there", **data}
    html = _LAYOUT.format(
        heading=heading,
        color=color,
        fullName=values["fullName"],
        body=body.format(**values),
    )
    return subject, html


async def send_notification_email(to: Optional[str], template: str, data: Dict[str, Any]) -> bool:
    """
    Sends a templated email. Never raises: failures are logged and reported
    as False so the calling workflow is unaffected.
    """
    if not to:
        return False
    if not is_configured():
        logger.warning(f"[Email] SMTP not configured, skipping '{template}' email to {to}")
        return False

    try:
        subject, html = render_template(template, data)

        message = MIMEMultipart("alternative")
        message["From"] = f"{EMAIL_FROM_NAME} <{EMAIL_FROM}>"
        message["To"] = to
        message["Subject"] = subject
        message.attach(MIMEText(html, "html"))

        await aiosmtplib.send(
            message,
            hostname=SMTP_HOST,
            port=SMTP_PORT,
            username=SMTP_USER,
            password=SMTP_PASSWORD,
            start_tls=True,
        )
        logger.info(f"[Email] Sent '{template}' email to {to}")
        return True
    except Exception as e:
        logger.error(f"[Email] Failed to send '{template}' email to {to}: {e}")
        return False
