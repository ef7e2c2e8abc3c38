"""HTML bodies for transactional email."""
from __future__ import annotations

from html import escape


_BUTTON_STYLE = (
    "display: inline-block; padding: 12px 24px; margin: 20px 0; background-color: #3b82f6; "
    "color: white; text-decoration: none; border-radius: 6px;"
)


def _layout(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <title>{escape(title)}</title>
  </head>
  <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
    <h1 style="color: #333;">{escape(title)}</h1>
{body}
    <hr style="margin: 30px 0; border: none; border-top: 1px solid #ddd;">
    <p style="color: #999; font-size: 12px;">LOTOSALE</p>
  </body>
</html>
"""


def _link_block(url: str, label: str) -> str:
    safe_url = escape(url, quote=True)
    return (
        f'    <a href="{safe_url}" style="{_BUTTON_STYLE}">{escape(label)}</a>\n'
        "    <p>Or copy and paste this link into your browser:</p>\n"
        f'    <p style="color: #666; word-break: break-all;">{safe_url}</p>\n'
    )


def verification_email(verification_url: str, name: str) -> tuple[str, str]:
    body = (
        f"    <p>Hi {escape(name)},</p>\n"
        "    <p>Thank you for registering with LOTOSALE. Please verify your email address by clicking the button below:</p>\n"
        + _link_block(verification_url, "Verify Email")
        + "    <p>This link will expire in 24 hours.</p>\n"
        "    <p>If you didn't create an account, you can safely ignore this email.</p>"
    )
    return "Verify your LOTOSALE email", _layout("Verify Your Email", body)


def password_reset_email(reset_url: str, name: str) -> tuple[str, str]:
    body = (
        f"    <p>Hi {escape(name)},</p>\n"
        "    <p>We received a request to reset your password. Click the button below to create a new password:</p>\n"
        + _link_block(reset_url, "Reset Password")
        + "    <p>This link will expire in 1 hour.</p>\n"
        "    <p>If you didn't request a password reset, you can safely ignore this email.</p>"
    )
    return "Reset your LOTOSALE password", _layout("Reset Your Password", body)


_MODERATION_LINES = {
    "APPROVE_LISTING": "has been approved and is now visible to buyers.",
    "REJECT_LISTING": "was not approved.",
    "PAUSE_LISTING": "has been paused by our moderation team.",
    "RESTORE_LISTING": "has been restored and is visible to buyers again.",
    "DELETE_LISTING": "has been removed from LOTOSALE.",
}


def moderation_notice_email(*, name: str, listing_title: str, action: str, reason: str | None = None) -> tuple[str, str]:
    outcome = _MODERATION_LINES.get(action, "has been updated.")
    body = f"    <p>Hi {escape(name)},</p>\n    <p>Your listing &quot;{escape(listing_title)}&quot; {outcome}</p>"
    if reason:
        body += f"\n    <p><strong>Reason:</strong> {escape(reason)}</p>"
    return f"Update on your listing: {listing_title}", _layout("Listing Update", body)
