from __future__ import annotations

from dataclasses import dataclass
from html import escape

SITE_NAME = "Game Forum"


@dataclass(frozen=True)
class EmailMessage:
    subject: str
    html_body: str
    text_body: str


_OTP_SUBJECTS = {
    "login_mfa": "Your login code",
    "mfa_enable": "Confirm two-factor authentication",
    "password_reset": "Your password reset code",
}


def _wrap(body: str) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f"{body}"
        f'<p style="color: #999; font-size: 12px;">{SITE_NAME} - Secure Gaming Community</p>'
        "</div>"
    )


def otp_message(purpose: str, code: str, username: str, minutes: int) -> EmailMessage:
    subject = f"{_OTP_SUBJECTS[purpose]} - {SITE_NAME}"
    html_body = _wrap(
        f"<p>Hey {escape(username)},</p>"
        f'<p>Your code is <strong style="font-size: 20px;">{escape(code)}</strong></p>'
        f"<p>It expires in {minutes} minutes. If you did not ask for it, ignore this email.</p>"
    )
    text_body = f"Hey {username},\n\nYour code is {code}. It expires in {minutes} minutes."
    return EmailMessage(subject, html_body, text_body)


def password_reset_message(reset_url: str, username: str) -> EmailMessage:
    html_body = _wrap(
        f"<p>Hey {escape(username)},</p>"
        "<p>You requested to reset your password. Use the link below to choose a new one:</p>"
        f'<p><a href="{escape(reset_url, quote=True)}">Reset Password</a></p>'
        "<p><strong>This link expires in 1 hour.</strong></p>"
        "<p>If you didn't request this, just ignore this email.</p>"
    )
    text_body = f"Hey {username},\n\nReset your password here (valid for 1 hour): {reset_url}"
    return EmailMessage(f"Password Reset Request - {SITE_NAME}", html_body, text_body)


def welcome_message(username: str) -> EmailMessage:
    html_body = _wrap(
        f"<h2>Welcome to {SITE_NAME}!</h2>"
        f"<p>Hey {escape(username)},</p>"
        "<p>Thanks for joining our gaming community. You can enable two-factor "
        "authentication from your settings for extra security.</p>"
    )
    text_body = f"Hey {username},\n\nThanks for joining {SITE_NAME}!"
    return EmailMessage(f"Welcome to {SITE_NAME}!", html_body, text_body)


def duplicate_registration_message(username: str) -> EmailMessage:
    html_body = _wrap(
        f"<p>Hey {escape(username)},</p>"
        "<p>Someone tried to create a new account with this email address. "
        "You already have an account, so nothing was changed. If this was you, "
        "log in or reset your password instead.</p>"
    )
    text_body = (
        f"Hey {username},\n\nSomeone tried to register with this email address. "
        "You already have an account, so nothing was changed."
    )
    return EmailMessage(f"Registration attempt - {SITE_NAME}", html_body, text_body)


def password_changed_message(username: str) -> EmailMessage:
    html_body = _wrap(
        f"<p>Hey {escape(username)},</p>"
        "<p>Your password was just changed. If this wasn't you, reset it immediately.</p>"
    )
    text_body = f"Hey {username},\n\nYour password was just changed."
    return EmailMessage(f"Password changed - {SITE_NAME}", html_body, text_body)
