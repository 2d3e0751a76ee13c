from fastapi import APIRouter, Depends, Request, Response, status
from slowapi import Limiter
from slowapi.util import get_remote_address

from .auth_service import AuthService, to_profile
from .config import Settings
from .deps import get_auth_service, get_current_user, get_settings
from .models import User
from .responses import ok
from .schemas import LoginIn, RegisterIn, ResendVerificationIn, VerifyEmailIn

router = APIRouter(prefix="/auth", tags=["auth"])
limiter = Limiter(key_func=get_remote_address)

LOGIN_RATE_LIMIT = "5/minute"
REGISTER_RATE_LIMIT = "3/minute"


def _client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


@router.post("/register", status_code=status.HTTP_201_CREATED)
@limiter.limit(REGISTER_RATE_LIMIT)
def register(body: RegisterIn, request: Request, svc: AuthService = Depends(get_auth_service)):
    profile = svc.register(body.email, body.name, body.password, ip=_client_ip(request))
    if svc.settings.require_email_verification:
        message = "Registration successful. Please check your email to verify your account."
    else:
        message = "Registration successful. Your account is ready to use."
    return ok(request, profile, message)


@router.post("/login")
@limiter.limit(LOGIN_RATE_LIMIT)
def login(
    body: LoginIn,
    request: Request,
    response: Response,
    svc: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    result = svc.login(body.email, body.password, ip=_client_ip(request))

    # httpOnly cookie mirrors the bearer token for browser clients
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=result.access_token,
        httponly=True,
        samesite="strict",
        secure=settings.is_production,
        path="/",
        max_age=settings.jwt_access_ttl_seconds,
    )
    return ok(request, result, "Login successful")


@router.get("/logout")
def logout(
    request: Request,
    response: Response,
    user: User = Depends(get_current_user),
    svc: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    svc.logout(user.id, ip=_client_ip(request))
    response.delete_cookie(key=settings.auth_cookie_name, path="/")
    return ok(request, None, "Logout successful")


@router.post("/verify-email")
def verify_email(body: VerifyEmailIn, request: Request, svc: AuthService = Depends(get_auth_service)):
    result = svc.verify_email(body.token)
    message = "Email already verified" if result.is_already_verified else "Email verified successfully"
    return ok(request, result, message)


@router.post("/resend-verification")
def resend_verification(body: ResendVerificationIn, request: Request, svc: AuthService = Depends(get_auth_service)):
    svc.resend_verification(body.email)
    return ok(request, None, "If the account exists and is not yet verified, a verification email has been sent")


@router.get("/me")
def me(request: Request, user: User = Depends(get_current_user)):
    return ok(request, {"user": to_profile(user).dump()}, "User information retrieved successfully")
