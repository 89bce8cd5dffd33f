"""
Email templates for device transfer and address verification.

Inline CSS only, so the messages render the same in every mail client.
Each template function returns (subject, html_body, text_body).
"""

from __future__ import annotations

from datetime import datetime
from html import escape

APP_NAME = "Playerlink"

# Colors
BG_PAGE = "#F4F5F7"
BG_CARD = "#FFFFFF"
ACCENT = "#3B5BDB"
TEXT_PRIMARY = "#1F2328"
TEXT_SECONDARY = "#59636E"
BORDER = "#D0D7DE"


def _base_layout(content: str, app_name: str = APP_NAME) -> str:
    """Wrap content in the shared card layout."""
    return f"""\
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{app_name}</title>
</head>
<body style="margin: 0; padding: 0; background-color: {BG_PAGE}; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Helvetica, Arial, sans-serif;">
    <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%">
        <tr>
            <td align="center" style="padding: 32px 16px;">
                <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="560" style="max-width: 560px; width: 100%;">
                    <tr>
                        <td style="padding-bottom: 20px; font-size: 20px; font-weight: 700; color: {ACCENT};">{app_name}</td>
                    </tr>
                    <tr>
                        <td style="background-color: {BG_CARD}; border: 1px solid {BORDER}; border-radius: 8px; padding: 32px 28px;">
                            {content}
                        </td>
                    </tr>
                    <tr>
                        <td style="padding-top: 20px; color: {TEXT_SECONDARY}; font-size: 12px; line-height: 1.5;">
                            You received this because someone entered this address in {app_name}.
                            If that wasn't you, ignore this message; nothing changes until the link is used.
                        </td>
                    </tr>
                </table>
            </td>
        </tr>
    </table>
</body>
</html>"""


def _button(url: str, label: str) -> str:
    """Render a call-to-action button."""
    return f"""\
<table role="presentation" cellspacing="0" cellpadding="0" border="0" style="margin: 24px 0;">
    <tr>
        <td style="background-color: {ACCENT}; border-radius: 6px;">
            <a href="{escape(url, quote=True)}" target="_blank" style="display: inline-block; padding: 12px 28px; color: #FFFFFF; font-size: 15px; font-weight: 600; text-decoration: none;">
                {label}
            </a>
        </td>
    </tr>
</table>"""


def _fallback_link(url: str) -> str:
    safe = escape(url, quote=True)
    return f"""\
<p style="color: {TEXT_SECONDARY}; font-size: 12px; line-height: 1.5; margin: 0;">
    If the button doesn't work, paste this address into your browser:<br>
    <a href="{safe}" style="color: {ACCENT}; word-break: break-all;">{safe}</a>
</p>"""


def magic_link(link: str, expires_minutes: int = 10) -> tuple[str, str, str]:
    """
    Device transfer link: signs the browser that opens it into the player's account.

    Returns:
        (subject, html_body, text_body)
    """
    subject = f"Your {APP_NAME} sign-in link"
    content = f"""\
<h1 style="color: {TEXT_PRIMARY}; font-size: 22px; margin: 0 0 12px 0;">Continue on this device</h1>
<p style="color: {TEXT_SECONDARY}; font-size: 15px; line-height: 1.6; margin: 0;">
    Open the link below on the device you want to play on. Signing in there
    signs out any other device.
</p>
{_button(link, "Sign in")}
<p style="color: {TEXT_SECONDARY}; font-size: 13px; line-height: 1.5; margin: 0 0 20px 0;">
    The link works once and expires in <strong style="color: {TEXT_PRIMARY};">{expires_minutes} minutes</strong>.
</p>
{_fallback_link(link)}"""
    text_body = (
        f"Continue on this device\n\n"
        f"Open this link on the device you want to play on:\n\n{link}\n\n"
        f"The link works once and expires in {expires_minutes} minutes. "
        f"Signing in there signs out any other device.\n"
    )
    return subject, _base_layout(content), text_body


def verify_email(link: str, expires_at: datetime) -> tuple[str, str, str]:
    """
    Address confirmation for a pending email claim.

    Returns:
        (subject, html_body, text_body)
    """
    subject = "Confirm your email address"
    expires_text = expires_at.strftime("%Y-%m-%d %H:%M UTC")
    content = f"""\
<h1 style="color: {TEXT_PRIMARY}; font-size: 22px; margin: 0 0 12px 0;">Confirm your email</h1>
<p style="color: {TEXT_SECONDARY}; font-size: 15px; line-height: 1.6; margin: 0;">
    Please confirm this address belongs to you.
</p>
{_button(link, "Confirm email address")}
<p style="color: {TEXT_SECONDARY}; font-size: 13px; line-height: 1.5; margin: 0 0 20px 0;">
    This link expires on <strong style="color: {TEXT_PRIMARY};">{expires_text}</strong>.
</p>
{_fallback_link(link)}"""
    text_body = (
        f"Confirm your email address\n\n"
        f"Open this link to confirm the address:\n\n{link}\n\n"
        f"This link expires on {expires_text}.\n"
    )
    return subject, _base_layout(content), text_body
