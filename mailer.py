import logging
from typing import Dict, Optional, Tuple

import resend

import config

logger = logging.getLogger(__name__)

RESET_SUBJECT = "Your Password Reset Code"


def build_reset_email_html(code: str, user_name: str) -> str:
    return f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
  <h2 style="color: #2563eb; text-align: center;">Password Reset Code</h2>
  <div style="background: #f8fafc; padding: 30px; border-radius: 8px; text-align: center; margin: 20px 0;">
    <p style="font-size: 18px; margin-bottom: 20px;">Hello {user_name},</p>
    <p style="font-size: 16px; margin-bottom: 30px;">Your verification code is:</p>
    <div style="font-size: 32px; font-weight: bold; color: #1f2937; letter-spacing: 4px; background: white; padding: 20px; border-radius: 8px;">
      {code}
    </div>
    <p style="color: #ef4444; font-size: 14px; margin-top: 20px;">
      This code expires in {config.RESET_CODE_MINUTES} minutes
    </p>
  </div>
</div>"""


def send_email_via_resend(payload: Dict[str, object]) -> Tuple[bool, Optional[str]]:
    if not config.RESEND_API_KEY:
        return False, "Resend API key is not configured."

    resend.api_key = config.RESEND_API_KEY
    try:
        response = resend.Emails.send(payload)
    except Exception as exc:
        return False, str(exc)

    if not isinstance(response, dict) or not response.get("id"):
        return False, str(response)
    return True, None


def send_reset_code(email: str, code: str, user_name: str = "User") -> dict:
    """
    Deliver a password-reset code.

    When delivery fails the code is written to the server log instead and the
    result says so (``method == "console"``); the caller never sees an error.
    """
    payload: Dict[str, object] = {
        "from": config.EMAIL_FROM,
        "to": [email],
        "subject": RESET_SUBJECT,
        "html": build_reset_email_html(code, user_name),
        "text": f"Your password reset code is {code}. It expires in {config.RESET_CODE_MINUTES} minutes.",
    }
    sent, error = send_email_via_resend(payload)
    if sent:
        return {"sent": True, "method": "resend"}

    logger.warning("Password reset email delivery failed for %s: %s", email, error)
    logger.info("Password reset code for %s: %s (expires in %s minutes)", email, code, config.RESET_CODE_MINUTES)
    return {"sent": False, "method": "console", "error": error}
