"""

이메일 큐 워커 실행 스크립트.

- API 서버와 별도 프로세스로 실행
- Redis 이메일 큐(EMAIL_QUEUE_NAME)에서 작업을 꺼내 Resend API로 전송
- 실패한 작업은 backoff 후 재시도, EMAIL_JOB_MAX_ATTEMPTS 초과 시 폐기
- SIGINT / SIGTERM 수신 시 현재 작업을 마치고 종료

사용 방법
- 가상환경 접속
- (.venv) ~\backend~$ python -m scripts.email_worker

"""

import logging
import signal

from dotenv import load_dotenv
load_dotenv()

from app.core.cache import create_redis_client
from app.core.config import settings
from app.core.email import EmailTransport
from app.services.notifications import EmailQueue, EmailWorker

logger = logging.getLogger("email_worker")


def main():
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    queue = EmailQueue(create_redis_client(settings.REDIS_URL), settings)
    transport = EmailTransport(settings)
    worker = EmailWorker(queue, transport, settings)

    def _shutdown(signum, _frame):
        logger.info("Received signal %s, stopping email worker", signum)
        worker.stop()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    try:
        worker.run_forever()
    finally:
        transport.close()
        logger.info("Email worker stopped")


if __name__ == "__main__":
    main()
