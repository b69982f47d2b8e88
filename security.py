from datetime import timedelta
from typing import Optional

import jwt
from bson import ObjectId
from fastapi import Depends, Request, Response
from pydantic import BaseModel, ValidationError

import config
from database import get_db, now_utc
from errors import AuthenticationError, BadRequestError
from repository import find_order_or_error
from schemas import Role


class TokenUser(BaseModel):
    user_id: str
    role: Role


def create_token(user: dict, expires_in: timedelta) -> str:
    now = now_utc()
    payload = {
        "user_id": str(user["_id"]),
        "role": user.get("role", Role.USER.value),
        "exp": now + expires_in,
        "iat": now,
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_token(token: str) -> TokenUser:
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")
    try:
        return TokenUser(user_id=payload.get("user_id"), role=payload.get("role"))
    except ValidationError:
        raise AuthenticationError("Unable to decode token")


def set_auth_cookie(response: Response, token: str, max_age: Optional[timedelta] = None) -> None:
    response.set_cookie(
        config.COOKIE_NAME,
        token,
        max_age=int(max_age.total_seconds()) if max_age else None,
        httponly=True,
        secure=config.is_production(),
        samesite="strict",
    )


def clear_auth_cookie(response: Response) -> None:
    response.delete_cookie(config.COOKIE_NAME)


def get_token_user(request: Request) -> TokenUser:
    token = request.cookies.get(config.COOKIE_NAME)
    if not token:
        raise AuthenticationError("Not authorized, no token provided")
    return decode_token(token)


def get_current_user(token_user: TokenUser = Depends(get_token_user)) -> dict:
    if not ObjectId.is_valid(token_user.user_id):
        raise AuthenticationError("Invalid token")
    user = get_db()["user"].find_one({"_id": ObjectId(token_user.user_id)})
    if not user:
        raise AuthenticationError("User not found")
    if user.get("is_banned"):
        raise AuthenticationError("User is banned")
    # the role in the token is authoritative for the lifetime of the token
    user["role"] = token_user.role.value
    return user


def require_admin(user: dict = Depends(get_current_user)) -> dict:
    if user["role"] != Role.ADMIN.value:
        raise AuthenticationError("Not authorized, not an admin")
    return user


def optional_user(request: Request) -> Optional[TokenUser]:
    token = request.cookies.get(config.COOKIE_NAME)
    if not token:
        return None
    try:
        return decode_token(token)
    except AuthenticationError:
        return None


def is_admin(user: Optional[dict]) -> bool:
    return bool(user) and user.get("role") == Role.ADMIN.value


def check_param_ids(request: Request) -> None:
    """Every path parameter of the route must be a valid ObjectId."""
    invalid = [
        f"Invalid ObjectId for parameter [{key}]: {value}"
        for key, value in request.path_params.items()
        if not ObjectId.is_valid(value)
    ]
    if invalid:
        raise BadRequestError(", ".join(invalid))


def order_owner(admin_bypass: bool):
    """Dependency loading the order from the ``id`` path parameter and checking who may touch it."""

    def dependency(request: Request, user: dict = Depends(get_current_user)) -> dict:
        order_id = request.path_params.get("id")
        if not order_id:
            raise BadRequestError("Parameter ID not found")
        order = find_order_or_error(order_id)
        if admin_bypass and is_admin(user):
            return order
        if order["user_id"] != user["_id"]:
            raise AuthenticationError()
        return order

    return dependency
