from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from database import get_db, now_utc, serialize, write_guard
from errors import BadRequestError
from repository import find_user_or_error
from schemas import Role
from security import check_param_ids, get_current_user, require_admin

router = APIRouter(prefix="/api/user", tags=["user"], dependencies=[Depends(check_param_ids)])


class ProfileUpdate(BaseModel):
    display_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


@router.get("")
def get_users(role: Optional[Role] = None, admin: dict = Depends(require_admin)):
    query = {"role": role.value} if role else {}
    users = list(get_db()["user"].find(query).sort("created_at", -1))
    return {"message": "Users fetched", "users": serialize(users)}


@router.put("")
def edit_profile(payload: ProfileUpdate, user: dict = Depends(get_current_user)):
    update = {k: v.strip() for k, v in payload.model_dump(exclude_none=True).items() if v.strip()}
    if not update:
        raise BadRequestError("Incomplete input")
    update["updated_at"] = now_utc()
    with write_guard("profile update"):
        get_db()["user"].update_one({"_id": user["_id"]}, {"$set": update})
    user.update(update)
    return {"message": "Profile updated", "user": serialize(user)}


@router.get("/me")
def get_me(user: dict = Depends(get_current_user)):
    return {"message": "User fetched", "user": serialize(user)}


@router.post("/{id}")
def ban_user(id: str, admin: dict = Depends(require_admin)):
    user = find_user_or_error(id)
    if user["_id"] == admin["_id"]:
        raise BadRequestError("You cannot ban yourself")
    with write_guard("user ban"):
        get_db()["user"].update_one({"_id": user["_id"]}, {"$set": {"is_banned": True, "updated_at": now_utc()}})
    user["is_banned"] = True
    return {"message": "User banned", "user": serialize(user)}
