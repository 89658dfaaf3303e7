"""
HTML Email Templates
Every template returns (html, text) so SendGrid can deliver both parts
"""

from html import escape
from typing import Optional

THEME = {
    "primary": "#007bff",
    "success": "#28a745",
    "warning": "#ffc107",
    "danger": "#dc3545",
    "background": "#f8f9fa",
    "text_primary": "#212529",
}

PLATFORM_NAME = "UAE Rental Platform"

SIGNATURE_HTML = f"<br><p>Best regards,<br>{PLATFORM_NAME} Team</p>"
SIGNATURE_TEXT = f"Best regards,\n{PLATFORM_NAME} Team"


def button(url: str, label: str, color: str = THEME["primary"], text_color: str = "white") -> str:
    return (
        f'<a href="{escape(url, quote=True)}" style="background-color: {color}; color: {text_color}; '
        f'padding: 10px 20px; text-decoration: none; border-radius: 5px; display: inline-block;">'
        f"{escape(label)}</a>"
    )


def get_base_template(body_html: str) -> str:
    """Wrap a body fragment in the shared layout"""
    return f"""
    <div style="font-family: Arial, sans-serif; color: {THEME['text_primary']}; max-width: 600px; margin: 0 auto;">
      {body_html}
      {SIGNATURE_HTML}
    </div>
    """


# Colours and fallback labels per notification type
NOTIFICATION_STYLES = {
    "BOOKING": ("Booking Update", THEME["primary"], "white", "View Details"),
    "PAYMENT": ("Payment Notification", THEME["success"], "white", "View Payment"),
    "REVIEW": ("New Review", THEME["warning"], "black", "View Review"),
}


def notification_template(
    notification_type: str,
    user_name: str,
    message: str,
    action_url: Optional[str] = None,
    action_text: Optional[str] = None,
    amount: Optional[float] = None,
) -> tuple[str, str, str]:
    """Generic notification email. Returns (subject, html, text)"""
    heading, color, text_color, default_label = NOTIFICATION_STYLES.get(
        notification_type, ("Notification", THEME["primary"], "white", "View Details")
    )
    subject = f"{heading} - {PLATFORM_NAME}"

    parts = [f"<h2>Hello {escape(user_name)},</h2>", f"<p>{escape(message)}</p>"]
    text_parts = [f"Hello {user_name},", message]

    if notification_type == "PAYMENT" and amount:
        parts.append(f"<p><strong>Amount: {amount} AED</strong></p>")
        text_parts.append(f"Amount: {amount} AED")

    if action_url:
        parts.append(button(action_url, action_text or default_label, color, text_color))
        text_parts.append(f"{action_text or default_label}: {action_url}")

    text_parts.append(SIGNATURE_TEXT)
    return subject, get_base_template("\n".join(parts)), "\n\n".join(text_parts)


def email_verification_template(first_name: str, verification_url: str) -> tuple[str, str]:
    html = get_base_template(
        f"""
        <h2>Welcome to {PLATFORM_NAME}, {escape(first_name)}!</h2>
        <p>Please verify your email address by clicking the button below:</p>
        {button(verification_url, "Verify Email")}
        <p>If the button doesn't work, copy and paste this link into your browser:</p>
        <p>{escape(verification_url)}</p>
        <p>This link will expire in 24 hours.</p>
        """
    )
    text = (
        f"Welcome to {PLATFORM_NAME}, {first_name}!\n\n"
        f"Please verify your email address by visiting: {verification_url}\n\n"
        f"This link will expire in 24 hours.\n\n{SIGNATURE_TEXT}"
    )
    return html, text


def password_reset_template(first_name: str, reset_url: str) -> tuple[str, str]:
    html = get_base_template(
        f"""
        <h2>Password Reset Request</h2>
        <p>Hello {escape(first_name)},</p>
        <p>You requested a password reset for your {PLATFORM_NAME} account. Click the button below to reset your password:</p>
        {button(reset_url, "Reset Password", THEME["danger"])}
        <p>If the button doesn't work, copy and paste this link into your browser:</p>
        <p>{escape(reset_url)}</p>
        <p>This link will expire in 1 hour.</p>
        <p>If you didn't request this password reset, please ignore this email.</p>
        """
    )
    text = (
        f"Password Reset Request\n\nHello {first_name},\n\n"
        f"Visit this link to reset your password: {reset_url}\n\n"
        f"This link will expire in 1 hour.\n\n"
        f"If you didn't request this password reset, please ignore this email.\n\n{SIGNATURE_TEXT}"
    )
    return html, text


def welcome_template(first_name: str, login_url: str) -> tuple[str, str]:
    html = get_base_template(
        f"""
        <h2>Welcome to {PLATFORM_NAME}, {escape(first_name)}!</h2>
        <p>An account has been created for you by our team. You can sign in with the credentials provided to you.</p>
        {button(login_url, "Sign In")}
        """
    )
    text = f"Welcome to {PLATFORM_NAME}, {first_name}!\n\nSign in at: {login_url}\n\n{SIGNATURE_TEXT}"
    return html, text


def viewing_confirmed_template(guest_name: str, property_title: str, date: str, time: str) -> tuple[str, str]:
    html = get_base_template(
        f"""
        <h2>Viewing Request Confirmed!</h2>
        <p>Hello {escape(guest_name)},</p>
        <p>Great news! Your viewing request for <strong>"{escape(property_title)}"</strong> has been confirmed.</p>
        <div style="background-color: {THEME['background']}; padding: 15px; border-radius: 5px; margin: 20px 0;">
          <h3>Viewing Details:</h3>
          <p><strong>Property:</strong> {escape(property_title)}</p>
          <p><strong>Date:</strong> {escape(date)}</p>
          <p><strong>Time:</strong> {escape(time)}</p>
        </div>
        <p>Please arrive on time and bring a valid ID for verification.</p>
        <p>If you need to reschedule or cancel, please contact us as soon as possible.</p>
        """
    )
    text = (
        f"Viewing Request Confirmed!\n\nHello {guest_name},\n\n"
        f'Your viewing request for "{property_title}" has been confirmed.\n\n'
        f"Property: {property_title}\nDate: {date}\nTime: {time}\n\n"
        f"Please arrive on time and bring a valid ID for verification.\n\n{SIGNATURE_TEXT}"
    )
    return html, text


def viewing_rejected_template(guest_name: str, property_title: str) -> tuple[str, str]:
    html = get_base_template(
        f"""
        <h2>Viewing Request Update</h2>
        <p>Hello {escape(guest_name)},</p>
        <p>Thank you for your interest in <strong>"{escape(property_title)}"</strong>.</p>
        <p>Unfortunately, we're unable to accommodate your viewing request at the requested time.</p>
        <ul>
          <li>Browse other similar properties on our platform</li>
          <li>Contact us to discuss alternative viewing times</li>
        </ul>
        """
    )
    text = (
        f"Viewing Request Update\n\nHello {guest_name},\n\n"
        f'Thank you for your interest in "{property_title}".\n\n'
        f"Unfortunately, we're unable to accommodate your viewing request at the requested time.\n\n{SIGNATURE_TEXT}"
    )
    return html, text
