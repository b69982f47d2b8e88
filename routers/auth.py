import logging
from urllib.parse import urlencode

import requests
from fastapi import APIRouter, Depends, Response
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, EmailStr

import config
from database import create_document, get_db, serialize
from errors import AuthenticationError, BadRequestError, NotFoundError
from schemas import Role, User
from security import clear_auth_cookie, create_token, get_current_user, set_auth_cookie

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"


class DevLoginRequest(BaseModel):
    email: EmailStr


def _callback_url() -> str:
    return f"{config.BASE_URL}/api/auth/redirect"


def fetch_google_profile(code: str) -> dict:
    """Exchange the authorization code and return Google's userinfo."""
    try:
        token_res = requests.post(GOOGLE_TOKEN_URL, data={
            "code": code,
            "client_id": config.GOOGLE_CLIENT_ID,
            "client_secret": config.GOOGLE_CLIENT_SECRET,
            "redirect_uri": _callback_url(),
            "grant_type": "authorization_code",
        }, timeout=10)
        token_res.raise_for_status()
        access_token = token_res.json()["access_token"]
        info_res = requests.get(GOOGLE_USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"}, timeout=10)
        info_res.raise_for_status()
        return info_res.json()
    except (requests.RequestException, KeyError, ValueError):
        logger.warning("Google login failed", exc_info=True)
        raise AuthenticationError("Google login failed")


def upsert_google_user(profile: dict) -> dict:
    users = get_db()["user"]
    user = users.find_one({"google_id": profile["sub"]})
    if user:
        return user
    new_user = User(
        google_id=profile["sub"],
        email=profile["email"],
        display_name=profile.get("name") or profile["email"],
        first_name=profile.get("given_name") or "",
        last_name=profile.get("family_name") or "",
        username=f"user{profile['sub']}",
        image=profile.get("picture"),
    )
    user_id = create_document("user", new_user)
    logger.info("Created user %s from Google login", user_id)
    return users.find_one({"_id": user_id})


@router.get("/login")
def login():
    params = {
        "client_id": config.GOOGLE_CLIENT_ID,
        "redirect_uri": _callback_url(),
        "response_type": "code",
        "scope": "openid email profile",
    }
    return RedirectResponse(f"{GOOGLE_AUTH_URL}?{urlencode(params)}")


@router.api_route("/redirect", methods=["GET", "POST"])
def handle_redirect(code: str = ""):
    if not code:
        raise BadRequestError("Missing authorization code")
    user = upsert_google_user(fetch_google_profile(code))
    if user.get("is_banned"):
        raise AuthenticationError("User is banned")

    token = create_token(user, config.OAUTH_TOKEN_TTL)
    target = f"{config.CLIENT_URL}/admin" if user.get("role") == Role.ADMIN.value else config.CLIENT_URL
    response = RedirectResponse(target, status_code=302)
    set_auth_cookie(response, token, config.OAUTH_TOKEN_TTL)
    return response


@router.post("/login-dev")
def login_dev(payload: DevLoginRequest, response: Response):
    if config.APP_ENV != "development":
        raise NotFoundError()
    user = get_db()["user"].find_one({"email": payload.email})
    if not user:
        raise BadRequestError("User not found")
    if user.get("is_banned"):
        raise AuthenticationError("User is banned")
    set_auth_cookie(response, create_token(user, config.DEV_TOKEN_TTL), config.DEV_TOKEN_TTL)
    return {"message": "Logged in"}


@router.post("/logout")
def logout(response: Response):
    clear_auth_cookie(response)
    return {"message": "Logged out successfully"}


@router.get("/me")
def me(user: dict = Depends(get_current_user)):
    return {"user": serialize(user)}
