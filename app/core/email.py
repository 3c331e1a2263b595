"""
email.py

이메일 전송(Resend HTTP API) 및 OTP 메일 템플릿.

주요 기능:
- EmailTransport.send(to, subject, html, text) → {"messageId": ...}
- 이메일 인증 / 비밀번호 재설정 OTP 메일 HTML 템플릿

설계 원칙:
- 요청 처리 중에는 직접 호출하지 않고 이메일 큐 워커에서만 호출
- 전송 실패는 EmailDeliveryError 하나로 감싸서 워커가 재시도 여부를 판단
- httpx.Client는 주입 가능 (테스트에서는 MockTransport 사용)

관련 파일:
- app.services.notifications : 이메일 큐 / 워커
- app.core.config            : RESEND_API_KEY / EMAIL_FROM

"""

import logging
from typing import Optional

import httpx

from app.core.config import Settings

logger = logging.getLogger(__name__)

VERIFICATION_SUBJECT = "Verify Your Email Address"
FORGOT_PASSWORD_SUBJECT = "Reset Your Password"


class EmailDeliveryError(Exception):
    pass


class EmailTransport:
    def __init__(self, settings: Settings, client: Optional[httpx.Client] = None):
        self.settings = settings
        self.client = client or httpx.Client(timeout=settings.EMAIL_TIMEOUT_SECONDS)

    def send(self, to: str, subject: str, html: Optional[str] = None, text: Optional[str] = None) -> dict:
        api_key = self.settings.RESEND_API_KEY.get_secret_value()
        if not api_key:
            raise EmailDeliveryError("Email transport is not configured")
        if not html and not text:
            raise EmailDeliveryError("Email body is empty")

        body = {"from": self.settings.EMAIL_FROM, "to": to, "subject": subject}
        if html:
            body["html"] = html
        if text:
            body["text"] = text

        try:
            resp = self.client.post(
                self.settings.RESEND_API_URL,
                headers={"Authorization": f"Bearer {api_key}"},
                json=body,
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise EmailDeliveryError(f"Failed to send email: {type(e).__name__}") from e

        try:
            message_id = resp.json().get("id")
        except ValueError:
            # 2xx지만 JSON이 아닌 응답: 전송은 된 것으로 보고 ID만 비움
            logger.warning("Resend returned non-JSON body status=%s", resp.status_code)
            message_id = None
        return {"messageId": message_id}

    def close(self) -> None:
        self.client.close()


def _otp_template(title: str, intro: str, otp_code: str) -> str:
    return f"""<!DOCTYPE html>
<html>
  <body style="font-family: Arial, sans-serif; background: #f6f6f6; padding: 24px;">
    <div style="max-width: 480px; margin: 0 auto; background: #ffffff; padding: 32px; border-radius: 8px;">
      <h2 style="margin-top: 0;">{title}</h2>
      <p>{intro}</p>
      <p style="font-size: 32px; font-weight: bold; letter-spacing: 8px; text-align: center;">{otp_code}</p>
      <p>This code expires in 10 minutes.</p>
      <p style="color: #888888; font-size: 12px;">If you didn't request this, you can safely ignore this email.</p>
    </div>
  </body>
</html>"""


def get_verification_email_template(otp_code: str) -> str:
    return _otp_template(
        "Verify your email address",
        "Use the code below to verify your email address.",
        otp_code,
    )


def get_forgot_password_email_template(otp_code: str) -> str:
    return _otp_template(
        "Reset your password",
        "Use the code below to reset your password.",
        otp_code,
    )
