import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart

from flask import current_app

logger = logging.getLogger(__name__)

OTP_SUBJECTS = {
    "registration": "InternX - Email Verification OTP",
    "password_reset": "Password Reset OTP - InternX",
}

OTP_HEADINGS = {
    "registration": (
        "Welcome to InternX!",
        "Your OTP for email verification is:",
    ),
    "password_reset": (
        "Password Reset Request",
        "You have requested to reset your password. Your OTP is:",
    ),
}


def send_email(recipient_email, subject, html):
    """
    Send an HTML email through the configured SMTP server

    Returns:
        bool: True if the email was handed to the server, False otherwise
    """
    sender_email = current_app.config.get("EMAIL_USER")
    sender_password = current_app.config.get("EMAIL_PASSWORD")

    if not sender_email or not sender_password:
        logger.warning("⚠️ Email credentials not configured, email to %s not sent", recipient_email)
        return False

    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = sender_email
    message["To"] = recipient_email
    message.attach(MIMEText(html, "html"))

    try:
        with smtplib.SMTP_SSL(current_app.config["SMTP_HOST"], current_app.config["SMTP_PORT"]) as server:
            server.login(sender_email, sender_password)
            server.sendmail(sender_email, recipient_email, message.as_string())
    except (smtplib.SMTPException, OSError) as e:
        logger.error("❌ Failed to send email to %s: %s", recipient_email, e)
        return False

    logger.info("✅ Email sent successfully to %s", recipient_email)
    return True


def render_otp_email(otp, purpose, expiry_minutes):
    heading, lead = OTP_HEADINGS[purpose]
    return f"""
    <html>
      <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
        <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
          <h2 style="color: #16a34a;">{heading}</h2>
          <p>{lead}</p>
          <div style="background-color: #f3f4f6; padding: 20px; text-align: center; border-radius: 8px; margin: 20px 0;">
            <h1 style="color: #16a34a; font-size: 32px; letter-spacing: 8px; margin: 0;">{otp}</h1>
          </div>
          <p><strong>This OTP will expire in {expiry_minutes} minutes.</strong></p>
          <p>If you didn't request this, please ignore this email.</p>
          <hr style="border: none; border-top: 1px solid #e5e7eb; margin: 30px 0;">
          <p style="color: #6b7280; font-size: 12px;">
            This is an automated message from InternX. Please do not reply to this email.
          </p>
        </div>
      </body>
    </html>
    """


def send_otp_email(recipient_email, otp, purpose="registration", expiry_minutes=10):
    """
    Send an OTP email to the recipient

    Args:
        recipient_email: Email address to send OTP to
        otp: The OTP code to send
        purpose: "registration" or "password_reset"
        expiry_minutes: Validity window quoted in the email

    Returns:
        bool: True if email sent successfully, False otherwise
    """
    html = render_otp_email(otp, purpose, expiry_minutes)
    return send_email(recipient_email, OTP_SUBJECTS[purpose], html)
