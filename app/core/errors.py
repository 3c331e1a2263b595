"""
errors.py

애플리케이션 공통 에러(AppError) 정의 파일.

서비스 계층은 HTTP 프레임워크에 의존하지 않고
이 파일의 에러 클래스만 raise 하며,
app.main 에 등록된 exception handler가
에러 종류(kind) → HTTP 상태 코드로 일괄 변환한다.

에러 종류:
- BadRequestError        (400) : 잘못된 입력 / 비즈니스 규칙 위반 (예: 잘못된 OTP)
- UnauthorizedError      (401) : 인증 정보 없음 / 유효하지 않음 / 만료
- ForbiddenError         (403) : 인증은 되었으나 권한 없음 (비활성, 삭제, 미인증, 역할)
- NotFoundError          (404) : 대상 리소스 없음
- ConflictError          (409) : 고유값 충돌 (이메일 / 전화번호)
- ValidationFailedError  (422) : 요청 스키마 검증 실패
- InternalError          (500) : 예상하지 못한 오류 (메시지는 클라이언트에 노출하지 않음)

응답 형식:
    {"success": false, "message": "...", "errors": [{"field": "...", "message": "..."}]}

"""

from typing import Optional


FieldErrors = list[dict[str, str]]


def field_error(field: str, message: str) -> FieldErrors:
    return [{"field": field, "message": message}]


class AppError(Exception):
    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, errors: Optional[FieldErrors] = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"success": False, "message": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class BadRequestError(AppError):
    status_code = 400
    default_message = "Bad request"


class UnauthorizedError(AppError):
    status_code = 401
    default_message = "Unauthorized access"


class ForbiddenError(AppError):
    status_code = 403
    default_message = "Access forbidden"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Resource not found"


class ConflictError(AppError):
    status_code = 409
    default_message = "Resource conflict"


class ValidationFailedError(AppError):
    status_code = 422
    default_message = "Validation failed"


class InternalError(AppError):
    status_code = 500
    default_message = "Internal server error"
