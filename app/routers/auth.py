"""
auth.py

인증(Authentication) 및 계정 관리 API 모음.

이 파일은 회원 가입, 로그인, OTP 인증, 비밀번호 재설정,
토큰 재발급, 로그아웃, Google / 게스트 로그인 등
사용자 인증 흐름 전반의 HTTP 엔드포인트를 제공한다.
JWT 기반 인증 방식을 사용하며, Access Token + Refresh Token 구조를 따른다.

주요 기능:
- 회원 가입 / 로그인 / Google 로그인 / 게스트 로그인
- OTP 인증 및 재전송
- 비밀번호 찾기 / 재설정 / 변경
- Refresh Token 기반 토큰 재발급 (rotation)
- 로그아웃 (토큰 블랙리스트)
- 내 정보 조회 / 프로필 수정 / 게스트 → 정회원 전환

설계 원칙:
- 라우터는 요청 검증(schemas)과 응답 포맷만 담당, 로직은 AuthService에 위임
- Access Token은 응답 바디와 HttpOnly Cookie로 함께 전달
  (게이트는 Authorization 헤더가 없으면 쿠키를 사용)
- Refresh Token은 응답 바디로 전달, 재발급 / 로그아웃 시 바디로 받음
- 에러는 AppError로 raise 되어 app.main의 handler가 JSON으로 변환

관련 파일:
- app.services.auth        : 인증 비즈니스 로직
- app.core.deps            : 인증 의존성(get_current_user), 서비스 조립
- app.schemas.auth         : 인증 관련 요청 스키마

"""

from fastapi import APIRouter, Depends, Request, Response, status

from app.core.config import settings
from app.core.deps import get_auth_service, get_current_user
from app.core.responses import success
from app.schemas.auth import (
    ChangePasswordRequest,
    ConvertGuestRequest,
    ForgotPasswordRequest,
    GoogleAuthRequest,
    GuestLoginRequest,
    LoginRequest,
    RefreshTokenRequest,
    ResendOtpRequest,
    ResetPasswordRequest,
    SignupRequest,
    UpdateProfileRequest,
    VerifyOtpRequest,
)
from app.schemas.user import CurrentUser
from app.services.auth import AuthService

router = APIRouter(prefix="/auth", tags=["auth"])


def _set_access_cookie(response: Response, result: dict) -> None:
    response.set_cookie(
        key=settings.ACCESS_COOKIE_NAME,
        value=result["token"]["accessToken"],
        httponly=True,
        secure=settings.COOKIE_SECURE,        # 로컬 False / HTTPS 운영 True
        samesite=settings.COOKIE_SAMESITE,    # "lax" 추천
        domain=settings.COOKIE_DOMAIN,        # 보통 None
        path="/",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


"""
회원 가입 API

- 이메일 기준으로 신규 회원 가입 (이메일 미인증 상태)
- 인증용 6자리 OTP를 이메일로 발송
- 토큰은 OTP 인증(verify-otp) 성공 시 발급

"""

@router.post("/signup", status_code=status.HTTP_201_CREATED)
def signup(data: SignupRequest, service: AuthService = Depends(get_auth_service)):
    result = service.signup(
        username=data.username,
        email=data.email,
        phone=data.phone,
        password=data.password,
    )
    return success(result, "User registered successfully. Please verify your email with the OTP sent.")


"""
로그인 API

- 이메일 / 비밀번호 인증
- 이메일 미인증 계정은 로그인 불가
- Access / Refresh Token 발급

"""

@router.post("/login")
def login(data: LoginRequest, response: Response, service: AuthService = Depends(get_auth_service)):
    result = service.login(email=data.email, password=data.password)
    _set_access_cookie(response, result)
    return success(result, "Login successful")


@router.post("/google")
def google_auth(data: GoogleAuthRequest, response: Response, service: AuthService = Depends(get_auth_service)):
    result = service.google_auth(id_token=data.id_token, username=data.username)
    _set_access_cookie(response, result)
    return success(result, "Google authentication successful")


@router.post("/guest")
def guest_login(response: Response, data: GuestLoginRequest | None = None,
                service: AuthService = Depends(get_auth_service)):
    result = service.guest_login(username=data.username if data else None)
    _set_access_cookie(response, result)
    return success(result, "Guest login successful")


"""
OTP 인증 API

- type=emailVerification : 이메일 인증 완료 후 토큰 발급 (자동 로그인)
- type=forgotPassword    : 비밀번호 재설정 허가 발급 (토큰 없음)

"""

@router.post("/verify-otp")
def verify_otp(data: VerifyOtpRequest, response: Response, service: AuthService = Depends(get_auth_service)):
    result = service.verify_otp(email=data.email, otp=data.otp, otp_type=data.type)
    if "token" in result:
        _set_access_cookie(response, result)
        return success(result, "Email verified successfully")
    return success(result, "OTP verified successfully")


@router.post("/resend-otp")
def resend_otp(data: ResendOtpRequest, service: AuthService = Depends(get_auth_service)):
    result = service.resend_otp(email=data.email, otp_type=data.type)
    return success(result, "OTP sent successfully")


@router.post("/forgot-password")
def forgot_password(data: ForgotPasswordRequest, service: AuthService = Depends(get_auth_service)):
    result = service.forgot_password(email=data.email)
    return success(result, "Password reset OTP sent to your email")


@router.post("/reset-password")
def reset_password(data: ResetPasswordRequest, service: AuthService = Depends(get_auth_service)):
    result = service.reset_password(email=data.email, password=data.password)
    return success(result, "Password reset successfully")


"""
토큰 재발급 API

- Refresh Token으로 새 토큰 쌍 발급
- DB에 저장된 최신 Refresh Token과 다르면 거부 (재사용 감지)
- 재발급 시 Refresh Token을 회전(rotation)

"""

@router.post("/refresh-token")
def refresh_token(data: RefreshTokenRequest, response: Response,
                  service: AuthService = Depends(get_auth_service)):
    result = service.refresh_token(refresh_token=data.refresh_token)
    _set_access_cookie(response, result)
    return success(result, "Token refreshed successfully")


"""
로그아웃 API

- Refresh Token과 현재 요청의 Access Token을 블랙리스트에 등록
- DB의 Refresh Token 제거, Access Token 쿠키 삭제

"""

@router.post("/logout")
def logout(
    data: RefreshTokenRequest,
    request: Request,
    response: Response,
    user: CurrentUser = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    service.logout(
        user_id=user.id,
        refresh_token=data.refresh_token,
        access_token=getattr(request.state, "access_token", None),
    )
    response.delete_cookie(
        key=settings.ACCESS_COOKIE_NAME,
        path="/",
        domain=settings.COOKIE_DOMAIN,
    )
    return success(None, "Logged out successfully")


@router.get("/me")
def get_me(user: CurrentUser = Depends(get_current_user), service: AuthService = Depends(get_auth_service)):
    return success(service.get_me(user_id=user.id))


@router.put("/change-password")
def change_password(
    data: ChangePasswordRequest,
    user: CurrentUser = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    result = service.change_password(
        user_id=user.id,
        current_password=data.current_password,
        new_password=data.new_password,
    )
    return success(result, "Password changed successfully")


@router.put("/profile")
def update_profile(
    data: UpdateProfileRequest,
    user: CurrentUser = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    result = service.update_profile(
        user_id=user.id,
        username=data.username,
        phone=data.phone,
        profile_picture=data.profile_picture,
    )
    return success(result, "Profile updated successfully")


"""
게스트 → 정회원 전환 API

- 게스트 계정에 이메일 / 비밀번호를 등록
- 새 토큰 발급 + 이메일 인증 OTP 발송
- 이후 이메일 인증 전까지는 보호된 API 접근 불가

"""

@router.post("/convert-guest")
def convert_guest(
    data: ConvertGuestRequest,
    response: Response,
    user: CurrentUser = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    result = service.convert_guest_to_registered(
        user_id=user.id,
        email=data.email,
        password=data.password,
        username=data.username,
    )
    _set_access_cookie(response, result)
    return success(result, "Guest account converted. Please verify your email with the OTP sent.")
