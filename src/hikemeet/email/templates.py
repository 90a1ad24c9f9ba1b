"""
Email templates for HikeMeet.

Inline CSS only; light background with the app's forest green accent.

Each template function returns (subject, html_body, text_body).
"""

from __future__ import annotations

from html import escape

BG_PAGE = "#F4F7F2"
BG_CARD = "#FFFFFF"
GREEN = "#2E7D32"
TEXT_PRIMARY = "#1B2A1F"
TEXT_SECONDARY = "#5F6B63"
BORDER = "#DDE5DA"


def _base_layout(content: str, app_name: str = "HikeMeet") -> str:
    """Wrap content in the base email layout."""
    return f"""\
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{app_name}</title>
</head>
<body style="margin: 0; padding: 0; background-color: {BG_PAGE}; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;">
    <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%" style="background-color: {BG_PAGE};">
        <tr>
            <td align="center" style="padding: 32px 16px;">
                <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="560" style="max-width: 560px; width: 100%;">
                    <tr>
                        <td align="center" style="padding-bottom: 24px;">
                            <span style="font-size: 22px; font-weight: 700; color: {GREEN};">{app_name}</span>
                        </td>
                    </tr>
                    <tr>
                        <td style="background-color: {BG_CARD}; border: 1px solid {BORDER}; border-radius: 12px; padding: 32px;">
                            {content}
                        </td>
                    </tr>
                    <tr>
                        <td align="center" style="padding-top: 24px;">
                            <p style="color: {TEXT_SECONDARY}; font-size: 12px; line-height: 1.5; margin: 0;">
                                You received this email because of activity on your {app_name} account.
                            </p>
                        </td>
                    </tr>
                </table>
            </td>
        </tr>
    </table>
</body>
</html>"""


def _greeting(name: str | None) -> str:
    return f"Hi {escape(name)}," if name else "Hi,"


def verification_code(name: str | None, code: str, expires_minutes: int) -> tuple[str, str, str]:
    """
    Password-reset verification code.

    Returns:
        (subject, html_body, text_body)
    """
    subject = "Your HikeMeet verification code"
    content = f"""\
<p style="color: {TEXT_PRIMARY}; font-size: 16px; margin: 0 0 16px 0;">{_greeting(name)}</p>
<p style="color: {TEXT_SECONDARY}; font-size: 16px; line-height: 1.6; margin: 0 0 24px 0;">
    Use this code to reset your password:
</p>
<p style="text-align: center; font-size: 32px; letter-spacing: 8px; font-weight: 700; color: {GREEN}; margin: 0 0 24px 0;">
    {escape(code)}
</p>
<p style="color: {TEXT_SECONDARY}; font-size: 13px; line-height: 1.5; margin: 0;">
    The code expires in {expires_minutes} minutes and can be used once.
    If you didn't ask for it, ignore this email.
</p>"""
    text_body = (
        f"{_greeting(name)}\n\n"
        f"Your HikeMeet verification code is {code}\n\n"
        f"It expires in {expires_minutes} minutes and can be used once.\n"
    )
    return subject, _base_layout(content), text_body


def welcome_email(name: str | None) -> tuple[str, str, str]:
    """Sent after registration."""
    subject = "Welcome to HikeMeet"
    content = f"""\
<p style="color: {TEXT_PRIMARY}; font-size: 16px; margin: 0 0 16px 0;">{_greeting(name)}</p>
<p style="color: {TEXT_SECONDARY}; font-size: 16px; line-height: 1.6; margin: 0;">
    Your account is ready. Find a trail, join a group, and meet people to hike with.
</p>"""
    text_body = (
        f"{_greeting(name)}\n\n"
        "Your account is ready. Find a trail, join a group, and meet people to hike with.\n"
    )
    return subject, _base_layout(content), text_body


def password_changed(name: str | None) -> tuple[str, str, str]:
    """Confirmation after a password update."""
    subject = "Your HikeMeet password was changed"
    content = f"""\
<p style="color: {TEXT_PRIMARY}; font-size: 16px; margin: 0 0 16px 0;">{_greeting(name)}</p>
<p style="color: {TEXT_SECONDARY}; font-size: 16px; line-height: 1.6; margin: 0;">
    Your password was just changed. If this wasn't you, reset it right away.
</p>"""
    text_body = (
        f"{_greeting(name)}\n\n"
        "Your password was just changed. If this wasn't you, reset it right away.\n"
    )
    return subject, _base_layout(content), text_body
