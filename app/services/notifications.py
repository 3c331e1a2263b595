"""
services/notifications.py

이메일 알림 비동기 전송 (Notification Dispatch).

요청 처리 흐름에서는 이메일을 직접 보내지 않고
Redis 리스트 기반 큐에 작업(job)만 넣으며,
별도 워커 프로세스(scripts/email_worker.py)가 큐를 소비하여 실제 전송한다.

주요 기능:
- EmailQueue.enqueue(job_type, data, priority=, delay=)
- 인증 / 비밀번호 재설정 / 일반 메일 큐잉 헬퍼
- EmailWorker: 지연 작업 승격, 작업 처리, 실패 시 재시도

큐 구조:
- {prefix}:queue:{name}          : 즉시 처리 대상 (LIST, 앞쪽이 먼저 처리)
- {prefix}:queue:{name}:delayed  : 지연 / 재시도 대기 (ZSET, score = 실행 시각)

설계 원칙:
- priority가 있으면 큐 앞쪽에 넣어 먼저 처리
- 전송 실패 시 attempts를 늘려 backoff 후 재시도, 최대 횟수 초과 시 폐기 + 로그
- 큐잉 실패(Redis 오류)는 호출 측에 그대로 전달 (치명적 여부는 서비스가 결정)

관련 파일:
- app.core.email           : 전송(EmailTransport) / 템플릿
- app.services.auth        : OTP 메일 큐잉
- scripts/email_worker.py  : 워커 실행

"""

import json
import logging
import time
import uuid
from enum import Enum
from typing import Optional

import redis

from app.core.config import Settings
from app.core.email import (
    EmailDeliveryError,
    EmailTransport,
    FORGOT_PASSWORD_SUBJECT,
    VERIFICATION_SUBJECT,
    get_forgot_password_email_template,
    get_verification_email_template,
)

logger = logging.getLogger(__name__)


class EmailJobType(str, Enum):
    VERIFICATION_EMAIL = "verification-email"
    FORGOT_PASSWORD_EMAIL = "forgot-password-email"
    GENERIC_EMAIL = "generic-email"


class EmailQueue:
    def __init__(self, client: redis.Redis, settings: Settings):
        self.client = client
        self.settings = settings
        self.key = f"{settings.CACHE_PREFIX}:queue:{settings.EMAIL_QUEUE_NAME}"
        self.delayed_key = f"{self.key}:delayed"

    def enqueue(self, job_type: EmailJobType, data: dict, *,
                priority: Optional[int] = None, delay: Optional[float] = None) -> str:
        job = {
            "id": uuid.uuid4().hex,
            "type": job_type.value,
            "data": data,
            "attempts": 0,
            "createdAt": time.time(),
        }
        raw = json.dumps(job)
        if delay:
            self.client.zadd(self.delayed_key, {raw: time.time() + delay})
        elif priority:
            self.client.lpush(self.key, raw)
        else:
            self.client.rpush(self.key, raw)
        logger.debug("Email job queued id=%s type=%s", job["id"], job_type.value)
        return job["id"]

    def queue_verification_email(self, email: str, otp_code: str, **options) -> str:
        data = {
            "to": email,
            "subject": VERIFICATION_SUBJECT,
            "html": get_verification_email_template(otp_code),
            "otpCode": otp_code,
            "type": "emailVerification",
        }
        return self.enqueue(EmailJobType.VERIFICATION_EMAIL, data, **options)

    def queue_forgot_password_email(self, email: str, otp_code: str, **options) -> str:
        data = {
            "to": email,
            "subject": FORGOT_PASSWORD_SUBJECT,
            "html": get_forgot_password_email_template(otp_code),
            "otpCode": otp_code,
            "type": "forgotPassword",
        }
        return self.enqueue(EmailJobType.FORGOT_PASSWORD_EMAIL, data, **options)

    def queue_generic_email(self, to: str, subject: str, html: Optional[str] = None,
                            text: Optional[str] = None, **options) -> str:
        data = {"to": to, "subject": subject, "html": html, "text": text}
        return self.enqueue(EmailJobType.GENERIC_EMAIL, data, **options)

    def promote_due_jobs(self, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        promoted = 0
        for raw in self.client.zrangebyscore(self.delayed_key, 0, now):
            # 다른 워커가 먼저 가져간 경우 zrem이 0을 반환
            if self.client.zrem(self.delayed_key, raw):
                self.client.rpush(self.key, raw)
                promoted += 1
        return promoted

    def pop(self, timeout: int = 0) -> Optional[dict]:
        if timeout:
            item = self.client.blpop([self.key], timeout=timeout)
            raw = item[1] if item else None
        else:
            raw = self.client.lpop(self.key)
        return json.loads(raw) if raw else None

    def retry(self, job: dict, delay: float) -> None:
        self.client.zadd(self.delayed_key, {json.dumps(job): time.time() + delay})

    def size(self) -> int:
        return self.client.llen(self.key)

    def delayed_size(self) -> int:
        return self.client.zcard(self.delayed_key)


class EmailWorker:
    def __init__(self, queue: EmailQueue, transport: EmailTransport, settings: Settings):
        self.queue = queue
        self.transport = transport
        self.settings = settings
        self._running = False

    def _render(self, job: dict) -> tuple[Optional[str], Optional[str]]:
        data = job["data"]
        html, text = data.get("html"), data.get("text")
        if not html and data.get("otpCode"):
            if job["type"] == EmailJobType.VERIFICATION_EMAIL.value:
                html = get_verification_email_template(data["otpCode"])
            elif job["type"] == EmailJobType.FORGOT_PASSWORD_EMAIL.value:
                html = get_forgot_password_email_template(data["otpCode"])
        return html, text

    """
    작업 하나 처리

    - 전송 실패(EmailDeliveryError)와 잘못된 작업 / 예상 못한 오류 모두 같은 재시도 경로
    - 최대 시도 횟수에 도달하면 로그만 남기고 작업 폐기
    - 어떤 경우에도 예외를 밖으로 던지지 않음 (run_forever 유지)

    """

    def process(self, job: dict) -> dict:
        try:
            data = job["data"]
            html, text = self._render(job)
            info = self.transport.send(data["to"], data["subject"], html=html, text=text)
        except Exception as e:
            if not isinstance(e, EmailDeliveryError):
                logger.exception("Unexpected error in email job id=%s", job.get("id"))
            attempts = job.get("attempts", 0) + 1
            if attempts < self.settings.EMAIL_JOB_MAX_ATTEMPTS:
                job["attempts"] = attempts
                self.queue.retry(job, self.settings.EMAIL_JOB_BACKOFF_SECONDS * attempts)
                logger.warning(
                    "Email job failed, retrying id=%s type=%s attempts=%d error=%s",
                    job.get("id"), job.get("type"), attempts, e,
                )
            else:
                logger.error(
                    "Email job failed id=%s type=%s attempts=%d error=%s",
                    job.get("id"), job.get("type"), attempts, e,
                )
            return {"success": False, "error": str(e)}

        logger.info("Email sent id=%s type=%s messageId=%s", job["id"], job["type"], info.get("messageId"))
        return {"success": True, "messageId": info.get("messageId")}

    def run_once(self, timeout: int = 0) -> Optional[dict]:
        self.queue.promote_due_jobs()
        job = self.queue.pop(timeout=timeout)
        if job is None:
            return None
        return self.process(job)

    def run_forever(self, poll_timeout: int = 5) -> None:
        self._running = True
        logger.info("Email worker started queue=%s", self.queue.key)
        while self._running:
            self.run_once(timeout=poll_timeout)

    def stop(self) -> None:
        self._running = False
