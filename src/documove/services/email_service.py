"""SendGrid email service for Documove invites.

Sends account invites to sellers/buyers and instruction invites to
conveyancers. Uses asyncio.to_thread to wrap the synchronous SendGrid client.
Delivery is fire-and-forget from the workflow's point of view: failures are
logged and reported as False, never raised. Services queue sends with
notify_after_commit; nothing leaves until the session commits.
"""

import asyncio
import html
import logging
from functools import partial

import sendgrid
from sendgrid.helpers.mail import Email, HtmlContent, Mail, To
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

# Strong references to in-flight notification tasks so they are not GC'd mid-send
_background_tasks: set[asyncio.Task] = set()

# Session.info key holding sends queued until the unit of work commits
_PENDING_KEY = "documove.pending_notifications"


# ---------------------------------------------------------------------------
# Configuration — read from Pydantic settings (which loads .env)
# ---------------------------------------------------------------------------


def _get_config():
    """Get email config from app settings (lazy to avoid import-time issues)."""
    from documove.app.config import get_settings
    s = get_settings()
    return s.sendgrid_api_key, s.invite_from_email, s.invite_from_name


def _get_client() -> sendgrid.SendGridAPIClient:
    """Return a configured SendGrid API client."""
    api_key, _, _ = _get_config()
    return sendgrid.SendGridAPIClient(api_key=api_key)


def _frontend_url() -> str:
    from documove.app.config import get_settings
    return get_settings().frontend_url.rstrip("/")


def _layout(heading: str, body_rows: str, cta_url: str, cta_label: str) -> str:
    """Wrap invite content in the shared Documove email layout."""
    return f"""
<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"></head>
<body style="margin: 0; padding: 20px; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; background-color: #f3f4f6;">
    <table width="600" cellpadding="0" cellspacing="0" style="background: #fff; border-radius: 8px; margin: 0 auto;">
        <tr>
            <td style="background-color: #0f2a44; padding: 24px 40px;">
                <span style="font-size: 20px; font-weight: 600; color: #ffffff;">Documove</span>
            </td>
        </tr>
        <tr>
            <td style="padding: 32px 40px;">
                <h2 style="color: #0f2a44; margin-top: 0;">{heading}</h2>
                <table width="100%" cellpadding="6" cellspacing="0" style="font-size: 15px; color: #4b5563; line-height: 1.6;">
                    {body_rows}
                </table>
                <p style="text-align: center; padding-top: 16px;">
                    <a href="{cta_url}" style="display: inline-block; background-color: #14b8a6; color: #ffffff; font-size: 16px; font-weight: 700; text-decoration: none; padding: 14px 40px; border-radius: 10px;">
                        {cta_label}
                    </a>
                </p>
            </td>
        </tr>
        <tr>
            <td style="background-color: #f9fafb; padding: 20px 40px; border-top: 1px solid #e5e7eb; font-size: 13px; color: #9ca3af;">
                &copy; 2026 Documove Ltd. You received this email because an estate agent added you to a property transaction.
            </td>
        </tr>
    </table>
</body>
</html>
"""


def _build_party_invite_html(token: str, data: dict) -> str:
    """Build the seller/buyer account invite HTML body."""
    name = html.escape(data.get("name") or "there")
    address = html.escape(data.get("address") or "your property")
    party = html.escape(data.get("party") or "client")
    body_rows = f"""
                    <tr><td>Hi {name},</td></tr>
                    <tr><td>You've been invited to track the sale of <strong>{address}</strong> on Documove as the <strong>{party}</strong>.</td></tr>
                    <tr><td>Create your account to follow each milestone, message your agent and see documents as they arrive.</td></tr>
    """
    return _layout(
        "You're invited to your property transaction",
        body_rows,
        f"{_frontend_url()}/invite/{token}",
        "Create Account &amp; View Transaction",
    )


def _build_conveyancer_invite_html(data: dict) -> str:
    """Build the conveyancer instruction invite HTML body."""
    contact = html.escape(data.get("contact_name") or "there")
    firm = html.escape(data.get("firm_name") or "your firm")
    address = html.escape(data.get("address") or "a property")
    reference = html.escape(data.get("reference_number") or "")
    body_rows = f"""
                    <tr><td>Hi {contact},</td></tr>
                    <tr><td>An estate agent would like to instruct <strong>{firm}</strong> on <strong>{address}</strong>.</td></tr>
                    <tr><td style="font-weight:600;">Reference: {reference}</td></tr>
                    <tr><td>Sign in to accept or decline the instruction.</td></tr>
    """
    return _layout(
        "New conveyancing instruction",
        body_rows,
        f"{_frontend_url()}/dashboard/invites/{data.get('invite_id', '')}",
        "Review Instruction",
    )


def _send_mail(mail: Mail) -> bool:
    """Synchronous send via SendGrid. Returns True on success."""
    client = _get_client()
    response = client.send(mail)
    if response.status_code in (200, 201, 202):
        return True
    logger.error(
        "SendGrid returned status %s: %s",
        response.status_code,
        response.body,
    )
    return False


# ---------------------------------------------------------------------------
# Public async API
# ---------------------------------------------------------------------------


async def send_party_invite(email: str, token: str, data: dict) -> bool:
    """Send an account invite to a seller or buyer.

    Args:
        email: Recipient email address.
        token: Invite token embedded in the acceptance link.
        data: Dict containing name, party and address.

    Returns:
        True on success, False on failure.
    """
    api_key, from_email, from_name = _get_config()
    if not api_key:
        logger.warning("SENDGRID_API_KEY not set — skipping party invite to %s", email)
        return False

    try:
        mail = Mail(
            from_email=Email(from_email, from_name),
            to_emails=To(email),
            subject=f"Track your property transaction for {data.get('address', 'your property')}",
            html_content=HtmlContent(_build_party_invite_html(token, data)),
        )
        result = await asyncio.to_thread(_send_mail, mail)
        if result:
            logger.info("Party invite sent to %s", email)
        return result
    except Exception:
        logger.exception("Failed to send party invite to %s", email)
        return False


async def send_conveyancer_invite(email: str, data: dict) -> bool:
    """Send an instruction invite to a conveyancer.

    Args:
        email: Recipient email address.
        data: Dict containing invite_id, firm_name, contact_name, address
              and reference_number.

    Returns:
        True on success, False on failure.
    """
    api_key, from_email, from_name = _get_config()
    if not api_key:
        logger.warning("SENDGRID_API_KEY not set — skipping conveyancer invite to %s", email)
        return False

    try:
        mail = Mail(
            from_email=Email(from_email, from_name),
            to_emails=To(email),
            subject=f"New instruction: {data.get('address', 'property transaction')}",
            html_content=HtmlContent(_build_conveyancer_invite_html(data)),
        )
        result = await asyncio.to_thread(_send_mail, mail)
        if result:
            logger.info("Conveyancer invite sent to %s", email)
        return result
    except Exception:
        logger.exception("Failed to send conveyancer invite to %s", email)
        return False


def _log_task_failure(task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background notification failed: %s", exc)


def notify_in_background(coro) -> asyncio.Task:
    """Schedule a notification coroutine without waiting for delivery."""
    task = asyncio.create_task(coro)
    _background_tasks.add(task)
    task.add_done_callback(_log_task_failure)
    return task


# ---------------------------------------------------------------------------
# Post-commit delivery
# ---------------------------------------------------------------------------


def notify_after_commit(db: AsyncSession, send, *args) -> None:
    """Queue ``send(*args)`` to be scheduled once ``db`` commits.

    Invite emails carry a token or invite id that only exists once the row is
    committed. A rollback, or a session closed without committing, discards
    the queue so no email points at a link that was never stored.
    """
    db.info.setdefault(_PENDING_KEY, []).append(partial(send, *args))


@event.listens_for(Session, "after_commit")
def _send_pending(session: Session) -> None:
    # A released savepoint is not durable yet
    if session.in_nested_transaction():
        return
    for send in session.info.pop(_PENDING_KEY, []):
        notify_in_background(send())


@event.listens_for(Session, "after_transaction_end")
def _discard_pending(session: Session, transaction) -> None:
    # Nested and flush-scoped transactions end inside the outer one
    if transaction.parent is not None:
        return
    dropped = session.info.pop(_PENDING_KEY, [])
    if dropped:
        logger.info("Discarded %d notification(s) from an uncommitted transaction", len(dropped))
