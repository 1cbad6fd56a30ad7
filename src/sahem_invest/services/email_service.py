"""SendGrid email service for Sahem Invest transactional mail.

Templates are addressed by name; each builder turns a params dict into a
subject and an HTML body. Uses asyncio.to_thread to wrap the synchronous
SendGrid client.
"""

import asyncio
import html
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

import sendgrid
from sendgrid.helpers.mail import Email, HtmlContent, Mail, To

logger = logging.getLogger(__name__)


@dataclass
class EmailResult:
    success: bool
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Configuration is read from Pydantic settings (which loads .env)
# ---------------------------------------------------------------------------


def _get_config():
    """Get email config from app settings (lazy to avoid import-time issues)."""
    from sahem_invest.app.config import get_settings
    s = get_settings()
    return s.sendgrid_api_key, s.email_from, s.email_from_name


def _get_client() -> sendgrid.SendGridAPIClient:
    """Return a configured SendGrid API client."""
    api_key, _, _ = _get_config()
    return sendgrid.SendGridAPIClient(api_key=api_key)


def _frontend_url() -> str:
    from sahem_invest.app.config import get_settings
    return get_settings().frontend_url.rstrip("/")


def _format_currency(value) -> str:
    """Format a number as $XX,XXX.XX."""
    try:
        return f"${float(value):,.2f}"
    except (ValueError, TypeError):
        return "$0.00"


def _esc(value) -> str:
    return html.escape(str(value if value is not None else ""))


def _layout(title: str, color: str, body: str) -> str:
    """Shared email shell: coloured header, white card, footer."""
    year = datetime.now(timezone.utc).year
    return f"""
<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"><meta name="viewport" content="width=device-width, initial-scale=1.0"></head>
<body style="margin: 0; padding: 0; background-color: #f8fafc; font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif;">
    <table role="presentation" width="100%" cellpadding="0" cellspacing="0" style="padding: 40px 20px;">
        <tr>
            <td align="center">
                <table role="presentation" width="600" cellpadding="0" cellspacing="0" style="background-color: #ffffff; border-radius: 12px; overflow: hidden;">
                    <tr>
                        <td style="background-color: {color}; padding: 30px; text-align: center; color: #ffffff;">
                            <span style="font-size: 24px; font-weight: 700;">{_esc(title)}</span>
                        </td>
                    </tr>
                    <tr>
                        <td style="padding: 30px; font-size: 15px; color: #333333; line-height: 1.6;">
                            {body}
                        </td>
                    </tr>
                    <tr>
                        <td style="background-color: #f8fafc; padding: 20px; text-align: center; font-size: 13px; color: #64748b;">
                            &copy; {year} Sahem Invest. All rights reserved.
                        </td>
                    </tr>
                </table>
            </td>
        </tr>
    </table>
</body>
</html>
"""


def _button(href: str, label: str) -> str:
    return (
        f'<p style="text-align: center;"><a href="{_esc(href)}" style="display: inline-block; '
        f'background-color: #23a1ff; color: #ffffff; text-decoration: none; padding: 12px 30px; '
        f'border-radius: 6px; font-weight: 600;">{_esc(label)}</a></p>'
    )


# ---------------------------------------------------------------------------
# Template builders: params -> (subject, html)
# ---------------------------------------------------------------------------


def _build_welcome(params: dict) -> tuple[str, str]:
    role = params.get("role", "INVESTOR")
    role_label = "Investor" if role == "INVESTOR" else "Partner"
    login_url = params.get("login_url") or f"{_frontend_url()}/auth/signin"
    body = f"""
        <h2>Hello {_esc(params.get("name"))},</h2>
        <p>Your {role_label.lower()} application has been approved. Your account is ready.</p>
        <div style="background: #f1f5f9; border-radius: 8px; padding: 20px; margin: 20px 0;">
            <p><strong>Email:</strong> {_esc(params.get("email"))}</p>
            <p><strong>Temporary password:</strong>
               <code style="background: #1e293b; color: #6be2c9; padding: 6px 10px; border-radius: 4px;">{_esc(params.get("temporary_password"))}</code></p>
        </div>
        <p style="background: #fef3cd; padding: 12px; border-radius: 6px; color: #92400e;">
            This is a temporary password. You will be asked to change it the first time you sign in.
        </p>
        {_button(login_url, "Sign in to your account")}
    """
    subject = f"Welcome to Sahem Invest - Your {role_label} Account is Ready"
    return subject, _layout("Welcome to Sahem Invest", "#23a1ff", body)


def _deal_status_email(params: dict, approved: bool, what: str) -> tuple[str, str]:
    title = f"{what} Approved" if approved else f"{what} Rejected"
    color = "#10B981" if approved else "#EF4444"
    message = (
        "Your changes have been approved and the deal is live for investors."
        if approved
        else "Your submission was not approved. Please review the feedback and resubmit."
    )
    reason = params.get("reason")
    feedback = f"<p><strong>Reviewer feedback:</strong> {_esc(reason)}</p>" if reason else ""
    body = f"""
        <h2>Hello {_esc(params.get("partner_name", "Partner"))},</h2>
        <div style="border-left: 4px solid {color}; padding: 10px 20px; margin: 20px 0;">
            <h3>Deal: {_esc(params.get("deal_title"))}</h3>
            <p>{message}</p>
            {feedback}
        </div>
        {_button(f"{_frontend_url()}/partner/deals", "View my deals")}
    """
    return f"{title}: {params.get('deal_title', '')}", _layout(title, color, body)


def _build_deal_update_approved(params: dict) -> tuple[str, str]:
    return _deal_status_email(params, approved=True, what="Deal Update")


def _build_deal_update_rejected(params: dict) -> tuple[str, str]:
    return _deal_status_email(params, approved=False, what="Deal Update")


def _build_deal_approved(params: dict) -> tuple[str, str]:
    return _deal_status_email(params, approved=True, what="Deal")


def _build_deal_rejected(params: dict) -> tuple[str, str]:
    return _deal_status_email(params, approved=False, what="Deal")


def _build_investment_confirmation(params: dict) -> tuple[str, str]:
    body = f"""
        <h2>Hello {_esc(params.get("name", "Investor"))},</h2>
        <p>Your investment of <strong>{_format_currency(params.get("amount"))}</strong>
           in <strong>{_esc(params.get("deal_title"))}</strong> is confirmed.</p>
        <p>Reference: {_esc(params.get("reference"))}</p>
        {_button(f"{_frontend_url()}/portfolio/investments", "View portfolio")}
    """
    return "Investment Confirmation - Sahem Invest", _layout("Investment Confirmed", "#10B981", body)


def _build_return_payment(params: dict) -> tuple[str, str]:
    body = f"""
        <h2>Hello {_esc(params.get("name", "Investor"))},</h2>
        <p>A return of <strong>{_format_currency(params.get("amount"))}</strong> from
           <strong>{_esc(params.get("deal_title"))}</strong> has been credited to your wallet.</p>
        <p>Reference: {_esc(params.get("reference"))}</p>
    """
    return "Return Payment Received - Sahem Invest", _layout("Return Payment", "#10B981", body)


def _build_password_reset(params: dict) -> tuple[str, str]:
    body = f"""
        <h2>Hello {_esc(params.get("name"))},</h2>
        <p>We received a request to reset your password. The link expires in
           {_esc(params.get("expires_minutes", 60))} minutes.</p>
        {_button(params.get("reset_url", ""), "Reset password")}
        <p>If you did not ask for this, you can ignore this email.</p>
    """
    return "Reset your password - Sahem Invest", _layout("Password Reset", "#23a1ff", body)


def _build_transaction_approved(params: dict) -> tuple[str, str]:
    kind = str(params.get("type", "Transaction")).title()
    body = f"""
        <h2>Hello {_esc(params.get("name"))},</h2>
        <p>Your {kind.lower()} of <strong>{_format_currency(params.get("amount"))}</strong>
           (reference {_esc(params.get("reference"))}) has been approved.</p>
        <p>New wallet balance: {_format_currency(params.get("new_balance"))}</p>
    """
    return f"{kind} Approved - Sahem Invest", _layout(f"{kind} Approved", "#10B981", body)


def _build_transaction_rejected(params: dict) -> tuple[str, str]:
    kind = str(params.get("type", "Transaction")).title()
    body = f"""
        <h2>Hello {_esc(params.get("name"))},</h2>
        <p>Your {kind.lower()} of <strong>{_format_currency(params.get("amount"))}</strong>
           (reference {_esc(params.get("reference"))}) was rejected.</p>
        <p><strong>Reason:</strong> {_esc(params.get("reason"))}</p>
    """
    return f"{kind} Rejected - Sahem Invest", _layout(f"{kind} Rejected", "#EF4444", body)


TEMPLATES: dict[str, Callable[[dict], tuple[str, str]]] = {
    "welcome": _build_welcome,
    "deal_update_approved": _build_deal_update_approved,
    "deal_update_rejected": _build_deal_update_rejected,
    "deal_approved": _build_deal_approved,
    "deal_rejected": _build_deal_rejected,
    "investment_confirmation": _build_investment_confirmation,
    "return_payment": _build_return_payment,
    "password_reset": _build_password_reset,
    "transaction_approved": _build_transaction_approved,
    "transaction_rejected": _build_transaction_rejected,
}


def render_template(template_name: str, params: dict) -> tuple[str, str]:
    """Return (subject, html) for a template. Raises KeyError for unknown names."""
    return TEMPLATES[template_name](params)


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


async def send_template(template_name: str, recipients: list[str] | str, params: dict) -> EmailResult:
    """Render ``template_name`` with ``params`` and send it to ``recipients``.

    Never raises: configuration problems, unknown templates and SendGrid
    errors all come back as ``EmailResult(success=False, error=...)``.
    """
    if isinstance(recipients, str):
        recipients = [recipients]
    if not recipients:
        return EmailResult(False, "No recipients")

    if template_name not in TEMPLATES:
        logger.error("Unknown email template %r", template_name)
        return EmailResult(False, f"Unknown template: {template_name}")

    api_key, email_from, from_name = _get_config()
    if not api_key:
        logger.warning("SENDGRID_API_KEY not set, skipping %s email", template_name)
        return EmailResult(False, "Email service not configured")

    try:
        subject, html_body = render_template(template_name, params)
        mail = Mail(
            from_email=Email(email_from, from_name),
            to_emails=[To(address) for address in recipients],
            subject=subject,
            html_content=HtmlContent(html_body),
        )
        sent = await asyncio.to_thread(_send_mail, mail)
        if not sent:
            return EmailResult(False, "SendGrid rejected the message")
        logger.info("%s email sent to %d recipient(s)", template_name, len(recipients))
        return EmailResult(True)
    except Exception as exc:
        logger.exception("Failed to send %s email", template_name)
        return EmailResult(False, str(exc))
