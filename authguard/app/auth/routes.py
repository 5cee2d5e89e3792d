from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from authguard.app.auth.deps import client_ip, get_current_user, get_rate_limiter, get_settings_dep, get_user_store
from authguard.app.auth.users import User, UserStore
from authguard.app.config.settings import Settings
from authguard.app.core.logging import get_logger
from authguard.app.core.rate_limit import check_rate_limit
from authguard.app.core.security import create_access_token
from authguard.app.services.rate_limit import RateLimiter

router = APIRouter(prefix="/auth", tags=["auth"])
logger = get_logger(__name__)


def login_key(username: str) -> str:
    return f"login:user:{username.strip().lower()}"


def register_key(ip: str) -> str:
    return f"register:ip:{ip}"


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=64)
    password: str = Field(min_length=8, max_length=256)


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=1, max_length=256)


@router.post("/register", status_code=201)
def register(
    request: Request,
    body: RegisterRequest,
    limiter: RateLimiter = Depends(get_rate_limiter),
    users: UserStore = Depends(get_user_store),
) -> dict:
    check_rate_limit(limiter, register_key(client_ip(request)))

    user = users.create_user(body.username, body.password)
    if user is None:
        raise HTTPException(status_code=409, detail={"code": "USERNAME_EXISTS", "message": "Username already exists"})

    logger.info("User registered", data={"user_id": user.id})
    return {"user": user.public()}


@router.post("/login")
def login(
    body: LoginRequest,
    limiter: RateLimiter = Depends(get_rate_limiter),
    users: UserStore = Depends(get_user_store),
    settings: Settings = Depends(get_settings_dep),
) -> JSONResponse:
    key = login_key(body.username)
    decision = check_rate_limit(limiter, key)

    user = users.authenticate(body.username, body.password)
    if not user:
        logger.info("Login failed", data={"remaining_attempts": decision.remaining_attempts})
        raise HTTPException(
            status_code=401,
            detail={
                "code": "INVALID_CREDENTIALS",
                "message": "Invalid username or password",
                "remaining_attempts": decision.remaining_attempts,
            },
        )

    if user.status != "active":
        raise HTTPException(status_code=401, detail={"code": "USER_INACTIVE", "message": "Account is inactive"})

    # A successful sign-in clears the throttle record for this account.
    limiter.reset(key)
    user.last_login = datetime.now(timezone.utc)
    access_token, expires_in = create_access_token(
        user.username,
        user.role,
        secret=settings.jwt_secret,
        ttl_seconds=settings.jwt_access_ttl_seconds,
    )
    return JSONResponse(
        content={
            "user": user.public(),
            "access_token": access_token,
            "token_type": "bearer",
            "expires_in": expires_in,
        }
    )


@router.get("/me")
def me(user: User = Depends(get_current_user)) -> dict:
    return {"user": user.public()}
