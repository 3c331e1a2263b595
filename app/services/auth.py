"""
services/auth.py

인증(Authentication) 및 세션 수명주기 비즈니스 로직 (Auth Orchestrator).

이 파일은 회원 가입, 로그인, OTP 인증, 비밀번호 재설정,
토큰 재발급(rotation), 로그아웃(블랙리스트), Google 로그인,
게스트 로그인 및 게스트 → 정회원 전환까지
인증 흐름 전반의 상태 전이를 담당한다.

주요 기능:
- signup / login / verify_otp / resend_otp
- forgot_password / reset_password / change_password
- refresh_token / logout
- get_me / update_profile
- google_auth / guest_login / convert_guest_to_registered

설계 원칙:
- HTTP / FastAPI 의존성 없음 (라우터는 이 클래스만 호출)
- 상태 없는(stateless) 서비스: 저장소 / 캐시 / 토큰 / 외부 인증 / 이메일 큐를 생성자로 주입
- 사용자 식별 / 자격 증명 필드 변경은 이 서비스만 수행
- 로그인 실패 메시지는 "사용자 없음" / "비밀번호 불일치"를 구분하지 않음
- 가입 / 게스트 전환 시 인증 메일 큐잉 실패는 로그만 남기고 진행,
  OTP 재전송 / 비밀번호 찾기에서는 실패를 그대로 에러로 반환
- OTP는 캐시 우선 확인, 캐시에 없거나 불일치하면 DB 값으로 재확인
- 비밀번호 재설정은 forgotPassword OTP 인증 성공 후 발급되는
  재설정 허가(10분)가 있어야만 가능

관련 파일:
- app.repositories.user       : 사용자 저장소 (비밀번호 해싱 / Soft Delete)
- app.services.auth_state     : OTP / 블랙리스트 / 재설정 허가 / 사용자 캐시
- app.services.notifications  : 인증 메일 큐
- app.core.security           : 토큰 발급 / 검증
- app.core.identity           : Firebase ID 토큰 검증
- app.routers.auth            : 인증 API

"""

import hmac
import logging
import secrets
import string
import time
from datetime import timedelta
from typing import Optional

import redis

from app.core.config import Settings
from app.core.errors import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    field_error,
)
from app.core.identity import FirebaseIdentityVerifier
from app.core.security import (
    InvalidTokenError,
    TokenPair,
    TokenService,
    dummy_verify_password,
    remaining_seconds,
    verify_password,
)
from app.models.user import SignupMethod, User, UserType, as_utc, utcnow
from app.repositories.user import UserRepository
from app.schemas.auth import OtpType
from app.schemas.user import serialize_user
from app.services.auth_state import AuthStateCache
from app.services.notifications import EmailQueue

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"
INVALID_OTP = "Invalid or expired OTP code"
EXPIRED_OTP = "OTP code has expired"

_GUEST_SUFFIX_CHARS = string.ascii_lowercase + string.digits


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _secure_equals(expected: Optional[str], given: str) -> bool:
    if not expected:
        return False
    return hmac.compare_digest(str(expected), str(given))


def _random_password(prefix: str) -> str:
    # 아무도 모르는 값이라 이 비밀번호로는 로그인 불가
    return f"{prefix}_{secrets.token_urlsafe(32)}"


class AuthService:
    def __init__(
        self,
        *,
        users: UserRepository,
        state: AuthStateCache,
        tokens: TokenService,
        identity: FirebaseIdentityVerifier,
        emails: EmailQueue,
        settings: Settings,
    ):
        self.users = users
        self.state = state
        self.tokens = tokens
        self.identity = identity
        self.emails = emails
        self.settings = settings

    # 내부 공통

    @staticmethod
    def generate_otp() -> str:
        return str(secrets.randbelow(900000) + 100000)

    def _issue_tokens(self, user: User) -> TokenPair:
        pair = self.tokens.issue({"id": str(user.id), "email": user.email, "role": user.role.value})
        self.users.update_refresh_token(user, pair.refresh_token)
        return pair

    @staticmethod
    def _login_response(user: User, pair: TokenPair) -> dict:
        return {"user": serialize_user(user), "token": pair.to_dict()}

    def _stage_otp(self, user: User, otp_type: OtpType) -> str:
        code = self.generate_otp()
        expires_at = utcnow() + timedelta(seconds=self.settings.OTP_TTL_SECONDS)
        self.users.update_otp(user, code, expires_at)
        self.state.set_otp(user.email, otp_type.value, code)
        return code

    def _queue_otp_email(self, email: str, code: str, otp_type: OtpType) -> None:
        if otp_type == OtpType.FORGOT_PASSWORD:
            self.emails.queue_forgot_password_email(email, code)
        else:
            self.emails.queue_verification_email(email, code)

    def _send_verification_best_effort(self, user: User) -> None:
        code = self._stage_otp(user, OtpType.EMAIL_VERIFICATION)
        try:
            self._queue_otp_email(user.email, code, OtpType.EMAIL_VERIFICATION)
            logger.info("Verification email queued email=%s", user.email)
        except redis.RedisError:
            # 인증 메일은 resend-otp로 다시 받을 수 있으므로 가입 자체는 성공 처리
            logger.exception("Failed to queue verification email email=%s", user.email)

    def _require_user(self, user_id) -> User:
        user = self.users.find_by_id(user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def _require_user_by_email(self, email: str) -> User:
        user = self.users.find_by_email(email)
        if not user:
            raise NotFoundError("User not found", field_error("email", "User not found"))
        return user

    @staticmethod
    def _ensure_active(user: User) -> None:
        if not user.is_active or user.is_deleted:
            raise ForbiddenError(
                "Account is deactivated or deleted",
                field_error("email", "Account is deactivated or deleted"),
            )

    """
    회원 가입

    - 탈퇴하지 않은 사용자가 같은 이메일을 쓰고 있으면 409
    - 동시 가입으로 DB unique 제약에 걸려도 저장소에서 409로 변환
    - 이메일 미인증 상태로 생성, 6자리 OTP 발급 (DB + 캐시)
    - 인증 메일 큐잉 실패는 가입 실패로 보지 않음
    - 토큰은 이메일 인증 후 발급

    """

    def signup(self, *, username: str, email: str, password: str, phone: Optional[str] = None,
               signup_method: SignupMethod = SignupMethod.EMAIL) -> dict:
        email = normalize_email(email)
        if self.users.find_by_email(email):
            raise ConflictError("Email already exists", field_error("email", "Email already exists"))

        user = self.users.create(
            username=username,
            email=email,
            password=password,
            phone=phone,
            signup_method=signup_method,
            user_type=UserType.REGISTERED,
            is_email_verified=False,
        )
        self._send_verification_best_effort(user)
        return {"user": serialize_user(user)}

    """
    로그인

    - 사용자 없음 / 비밀번호 불일치는 같은 401 메시지
      (사용자가 없어도 더미 해시 검증으로 같은 시간 소모)
    - 비활성 / 탈퇴 계정은 403
    - 이메일 미인증 계정은 401
    - 성공 시 토큰 쌍 발급 및 Refresh Token 저장

    """

    def login(self, *, email: str, password: str) -> dict:
        user = self.users.find_by_email(normalize_email(email), include_deleted=True)
        if user is None:
            dummy_verify_password()
            raise UnauthorizedError(INVALID_CREDENTIALS, field_error("email", INVALID_CREDENTIALS))

        if not verify_password(password, user.password):
            raise UnauthorizedError(INVALID_CREDENTIALS, field_error("email", INVALID_CREDENTIALS))

        if user.is_deleted:
            raise ForbiddenError("Account has been deleted", field_error("email", "Account has been deleted"))
        if not user.is_active:
            raise ForbiddenError("Account is deactivated", field_error("email", "Account is deactivated"))

        if not user.is_email_verified:
            message = "Please verify your email before logging in"
            raise UnauthorizedError(message, field_error("email", message))

        pair = self._issue_tokens(user)
        return self._login_response(user, pair)

    """
    OTP 인증

    - 1차: 캐시(otp:{type}:{email}) 값과 비교
    - 2차: 캐시에 없거나 불일치하면 DB의 otp_code / otp_expires_at 확인
    - emailVerification: 이메일 인증 완료 + OTP 제거 + 토큰 발급 (자동 로그인)
    - forgotPassword: OTP 제거 + 비밀번호 재설정 허가 발급 (토큰 발급 없음)
    - 한 번 사용한 OTP는 캐시 / DB 모두에서 제거되어 재사용 불가

    """

    def verify_otp(self, *, email: str, otp: str, otp_type=OtpType.EMAIL_VERIFICATION) -> dict:
        email = normalize_email(email)
        otp_type = OtpType(otp_type)

        user = None
        cached = self.state.get_otp(email, otp_type.value)
        if not _secure_equals(cached, otp):
            # 사용자 캐시를 거치지 않고 DB에서 최신 OTP 확인
            user = self.users.find_by_email(email)
            if user is None or not _secure_equals(user.otp_code, otp):
                raise BadRequestError(INVALID_OTP, field_error("otp", INVALID_OTP))
            expires_at = as_utc(user.otp_expires_at)
            if expires_at is None or expires_at <= utcnow():
                raise BadRequestError(EXPIRED_OTP, field_error("otp", EXPIRED_OTP))

        if user is None:
            user = self._require_user_by_email(email)

        if otp_type == OtpType.EMAIL_VERIFICATION:
            user = self.users.verify_email(user)
            self.state.delete_otp(email, otp_type.value)
            logger.info("Email verified successfully email=%s", email)
            pair = self._issue_tokens(user)
            return self._login_response(user, pair)

        self.users.clear_otp(user)
        self.state.delete_otp(email, otp_type.value)
        self.state.grant_password_reset(email)
        return {"verified": True, "email": email}

    """
    OTP 재전송

    - 사용자 없으면 404
    - 새 OTP 발급 후 DB / 캐시 갱신, 종류별 템플릿으로 메일 큐잉
    - 큐잉 실패 시 OTP를 받을 방법이 없으므로 400

    """

    def resend_otp(self, *, email: str, otp_type=OtpType.EMAIL_VERIFICATION) -> dict:
        email = normalize_email(email)
        otp_type = OtpType(otp_type)
        user = self._require_user_by_email(email)

        code = self._stage_otp(user, otp_type)
        try:
            self._queue_otp_email(email, code, otp_type)
        except redis.RedisError as e:
            logger.error("Failed to queue OTP email email=%s type=%s error=%s", email, otp_type.value, e)
            raise BadRequestError("Failed to send OTP email") from e

        logger.info("OTP email queued email=%s type=%s", email, otp_type.value)
        return {"email": email}

    def forgot_password(self, *, email: str) -> dict:
        email = normalize_email(email)
        user = self._require_user_by_email(email)

        code = self._stage_otp(user, OtpType.FORGOT_PASSWORD)
        try:
            self._queue_otp_email(email, code, OtpType.FORGOT_PASSWORD)
        except redis.RedisError as e:
            logger.error("Failed to queue password reset email email=%s error=%s", email, e)
            raise BadRequestError("Failed to send password reset email") from e

        logger.info("Password reset email queued email=%s", email)
        return {"email": email}

    """
    비밀번호 재설정

    - forgotPassword OTP 인증으로 발급된 재설정 허가가 있어야 함
    - 비밀번호 해싱은 저장소에서 처리, OTP 필드 / 캐시 / 허가 모두 제거

    """

    def reset_password(self, *, email: str, password: str) -> dict:
        email = normalize_email(email)
        user = self._require_user_by_email(email)

        if not self.state.has_password_reset(email):
            message = "Password reset has not been verified"
            raise BadRequestError(message, field_error("otp", message))

        user = self.users.update_password(user, password)
        self.state.delete_otp(email, OtpType.FORGOT_PASSWORD.value)
        self.state.revoke_password_reset(email)
        logger.info("Password reset email=%s", email)
        return {"user": serialize_user(user)}

    """
    토큰 재발급 (Refresh Token Rotation)

    - 블랙리스트에 있는 토큰이면 401
    - 서명 / 만료 / 형식 오류는 모두 401
    - DB에 저장된 현재 Refresh Token과 다르면 401 (이미 교체된 토큰 재사용 감지)
    - 비활성 / 탈퇴 계정은 403
    - 새 토큰 쌍 발급 후 DB의 Refresh Token 교체

    """

    def refresh_token(self, *, refresh_token: str) -> dict:
        if self.state.is_token_blacklisted(refresh_token):
            raise UnauthorizedError("Token has been revoked")

        try:
            payload = self.tokens.verify_refresh(refresh_token)
        except InvalidTokenError as e:
            raise UnauthorizedError("Invalid or expired refresh token") from e

        user = self.users.find_by_id(payload.get("sub"), include_deleted=True)
        if not user:
            raise UnauthorizedError("User not found")

        if not _secure_equals(user.refresh_token, refresh_token):
            raise UnauthorizedError("Invalid refresh token")

        self._ensure_active(user)

        pair = self._issue_tokens(user)
        return self._login_response(user, pair)

    """
    로그아웃

    - Refresh Token이 아직 만료 전이면 남은 수명만큼 블랙리스트 등록
    - 로그아웃 요청에 사용된 Access Token도 남은 수명만큼 블랙리스트 등록
    - DB에 저장된 Refresh Token 제거

    """

    def logout(self, *, user_id, refresh_token: str, access_token: Optional[str] = None) -> None:
        try:
            payload = self.tokens.decode_refresh_allow_expired(refresh_token)
        except InvalidTokenError as e:
            raise UnauthorizedError("Invalid refresh token") from e

        if str(payload.get("sub")) != str(user_id):
            raise UnauthorizedError("Invalid refresh token")

        self.state.blacklist_token(refresh_token, remaining_seconds(payload))

        if access_token:
            try:
                access_payload = self.tokens.decode_access_allow_expired(access_token)
            except InvalidTokenError:
                logger.warning("Skip blacklisting malformed access token user_id=%s", user_id)
            else:
                self.state.blacklist_token(access_token, remaining_seconds(access_payload))

        user = self.users.find_by_id(user_id, include_deleted=True)
        if user:
            self.users.update_refresh_token(user, None)
        logger.info("User logged out user_id=%s", user_id)

    """
    비밀번호 변경 (로그인 사용자)

    - 현재 비밀번호가 틀리면 400
    - 새 비밀번호 해싱은 저장소에서 처리

    """

    def change_password(self, *, user_id, current_password: str, new_password: str) -> dict:
        user = self._require_user(user_id)

        if not verify_password(current_password, user.password):
            message = "Current password is incorrect"
            raise BadRequestError(message, field_error("currentPassword", message))

        user = self.users.update_password(user, new_password)
        return {"user": serialize_user(user)}

    def get_me(self, *, user_id) -> dict:
        cached = self.state.get_user(user_id)
        if cached:
            return {"user": cached}

        user = self._require_user(user_id)
        data = serialize_user(user)
        self.state.set_user(user.id, data)
        return {"user": data}

    """
    프로필 수정

    - username / phone / profile_picture 부분 업데이트
    - 변경 사항이 없으면 400
    - 다른 사용자가 쓰는 전화번호면 409

    """

    def update_profile(self, *, user_id, username: Optional[str] = None, phone: Optional[str] = None,
                       profile_picture: Optional[str] = None) -> dict:
        user = self._require_user(user_id)

        fields = {
            name: value
            for name, value in (("username", username), ("phone", phone), ("profile_picture", profile_picture))
            if value is not None
        }
        if not fields:
            raise BadRequestError("No changes provided")

        if phone and phone != user.phone:
            other = self.users.find_by_phone(phone)
            if other and other.id != user.id:
                raise ConflictError("Phone number already exists", field_error("phone", "Phone number already exists"))

        user = self.users.update(user, **fields)
        return {"user": serialize_user(user)}

    """
    Google 로그인 / 가입

    - Firebase ID 토큰 검증 실패는 401
    - 토큰에 이메일이 없으면 400
    - 이메일/비밀번호로 가입한 계정이 이미 있으면 409 (가입 방식 혼용 방지)
    - 기존 Google 계정: 프로필 사진 / 이름 / 인증 여부 동기화 후 토큰 발급
    - 신규: 사용 불가능한 랜덤 비밀번호로 계정 생성 후 토큰 발급

    """

    def google_auth(self, *, id_token: str, username: Optional[str] = None) -> dict:
        identity = self.identity.verify(id_token)

        if not identity.email:
            message = "Email is required for Google authentication"
            raise BadRequestError(message, field_error("idToken", message))

        email = normalize_email(identity.email)
        user = self.users.find_by_email(email)

        if user:
            if user.signup_method != SignupMethod.GOOGLE:
                raise ConflictError(
                    "An account with this email already exists. Please use email/password login.",
                    field_error("email", "Account already exists with email/password"),
                )

            updates = {}
            if identity.picture and identity.picture != user.profile_picture:
                updates["profile_picture"] = identity.picture
            if identity.name and identity.name != user.username:
                # 사용자가 직접 바꾼 이름은 덮어쓰지 않음
                if not user.username or user.username == email.split("@")[0]:
                    updates["username"] = identity.name[:50]
            if identity.email_verified and not user.is_email_verified:
                updates["is_email_verified"] = True
            if updates:
                user = self.users.update(user, **updates)

            self._ensure_active(user)

            pair = self._issue_tokens(user)
            return self._login_response(user, pair)

        phone = identity.phone_number
        if phone and self.users.find_by_phone(phone):
            phone = None

        user = self.users.create(
            username=(username or identity.name or email.split("@")[0])[:50],
            email=email,
            password=_random_password("google"),
            phone=phone,
            signup_method=SignupMethod.GOOGLE,
            user_type=UserType.REGISTERED,
            is_email_verified=identity.email_verified,
            profile_picture=identity.picture,
        )
        pair = self._issue_tokens(user)
        logger.info("Google user created email=%s user_id=%s", user.email, user.id)
        return self._login_response(user, pair)

    """
    게스트 로그인

    - guest_<timestamp>_<random>@guest.local 형식의 임시 이메일로 계정 생성
    - 이메일 인증 없이 바로 사용 (is_email_verified=True)
    - 즉시 토큰 발급

    """

    def guest_login(self, *, username: Optional[str] = None) -> dict:
        timestamp = int(time.time() * 1000)
        suffix = "".join(secrets.choice(_GUEST_SUFFIX_CHARS) for _ in range(7))

        user = self.users.create(
            username=username or f"Guest_{str(timestamp)[-6:]}",
            email=f"guest_{timestamp}_{suffix}@guest.local",
            password=_random_password("guest"),
            signup_method=SignupMethod.EMAIL,
            user_type=UserType.GUEST,
            is_email_verified=True,
        )
        pair = self._issue_tokens(user)
        logger.info("Guest user created user_id=%s username=%s", user.id, user.username)
        return self._login_response(user, pair)

    """
    게스트 → 정회원 전환

    - 게스트가 아니면 400 (아무 것도 변경하지 않음)
    - 다른 사용자가 쓰는 이메일이면 409
    - 이메일 / 비밀번호 / 이름 갱신 후 REGISTERED + 이메일 미인증 상태로 전환
    - 새 토큰 발급, 가입과 동일하게 인증 메일 발송 (실패해도 전환은 성공)

    """

    def convert_guest_to_registered(self, *, user_id, email: str, password: str,
                                    username: Optional[str] = None) -> dict:
        user = self._require_user(user_id)

        if user.user_type != UserType.GUEST:
            raise BadRequestError("User is already registered", field_error("userType", "User is already registered"))

        email = normalize_email(email)
        existing = self.users.find_by_email(email)
        if existing and existing.id != user.id:
            raise ConflictError("Email already exists", field_error("email", "Email already exists"))

        user = self.users.update(
            user,
            email=email,
            password=password,
            username=username or user.username,
            signup_method=SignupMethod.EMAIL,
            user_type=UserType.REGISTERED,
            is_email_verified=False,
        )
        pair = self._issue_tokens(user)
        self._send_verification_best_effort(user)

        logger.info("Guest converted to registered user user_id=%s email=%s", user.id, email)
        return self._login_response(user, pair)
