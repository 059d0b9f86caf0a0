# demarcation/routes/auth.py
from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from demarcation import config
from demarcation.db import get_db
from demarcation.errors import AuthorizationError
from demarcation.models import User
from demarcation.permissions import Capability, has_capability
from demarcation.schemas import (
    LoginIn,
    MessageOut,
    PasswordChange,
    ProfileUpdate,
    RegisterIn,
    TokenOut,
    UserOut,
)
from demarcation.services import users

router = APIRouter(prefix="/api/auth", tags=["auth"])


# -----------------------------
# Dependencies
# -----------------------------
def _token_from_request(request: Request):
    auth: str = request.headers.get("Authorization") or ""
    if auth.lower().startswith("bearer "):
        return auth.split(" ", 1)[1].strip()
    return request.cookies.get(config.AUTH_COOKIE_NAME)


async def get_current_user(request: Request, db: AsyncSession = Depends(get_db)) -> User:
    """Bearer header first, then the auth cookie. The user is re-read on every request."""
    return await users.get_user_from_token(db, _token_from_request(request))


def require(capability: Capability):
    """Dependency factory: the current user, provided their role grants `capability`."""

    async def dependency(user: User = Depends(get_current_user)) -> User:
        if not has_capability(user.role, capability):
            raise AuthorizationError()
        return user

    dependency.__name__ = f"require_{capability.value}"
    return dependency


# -----------------------------
# Routes
# -----------------------------
@router.post("/register", response_model=UserOut, status_code=201)
async def register(payload: RegisterIn, db: AsyncSession = Depends(get_db)):
    return await users.register_user(db, payload.model_dump())


@router.post("/login", response_model=TokenOut)
async def login(payload: LoginIn, response: Response, db: AsyncSession = Depends(get_db)):
    user = await users.authenticate(db, payload.email, payload.password)
    token = users.create_access_token(user)
    response.set_cookie(
        key=config.AUTH_COOKIE_NAME,
        value=token,
        max_age=config.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True,
        samesite="lax",
    )
    return {
        "access_token": token,
        "token_type": "bearer",
        "expires_in": config.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        "user": user,
    }


@router.post("/logout", response_model=MessageOut)
async def logout(response: Response):
    response.delete_cookie(config.AUTH_COOKIE_NAME)
    return {"message": "Logged out"}


@router.get("/me", response_model=UserOut)
async def me(user: User = Depends(get_current_user)):
    return user


@router.patch("/me", response_model=UserOut)
async def update_me(
    payload: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await users.update_profile(db, user, payload.model_dump(exclude_unset=True))


@router.post("/change-password", response_model=MessageOut)
async def change_password(
    payload: PasswordChange,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await users.change_password(db, user, payload.current_password, payload.new_password)
    return {"message": "Password changed"}
