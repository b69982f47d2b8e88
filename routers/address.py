from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from database import create_document, get_db, now_utc, oid, serialize, transaction, write_guard
from errors import AuthenticationError, BadRequestError
from repository import find_address_or_error
from schemas import Address
from security import check_param_ids, get_current_user

router = APIRouter(prefix="/api/address", tags=["address"], dependencies=[Depends(check_param_ids)])


class AddressIn(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    region: str = Field(..., min_length=1)
    province: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1)
    address_label: str = Field(..., min_length=1)
    phone_number: str = Field(..., min_length=1)


class AddressUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    region: Optional[str] = None
    province: Optional[str] = None
    city: Optional[str] = None
    address: Optional[str] = None
    postal_code: Optional[str] = None
    address_label: Optional[str] = None
    phone_number: Optional[str] = None


def _my_address(address_id: str, user: dict) -> dict:
    address = find_address_or_error(address_id)
    if address["user_id"] != user["_id"]:
        raise AuthenticationError()
    return address


@router.get("")
def get_my_addresses(user: dict = Depends(get_current_user)):
    addresses = list(get_db()["address"].find({"user_id": user["_id"]}).sort("created_at", -1))
    return {"message": "Addresses fetched successfully", "addresses": serialize(addresses)}


@router.post("", status_code=201)
def create_address(payload: AddressIn, user: dict = Depends(get_current_user)):
    addresses = get_db()["address"]
    # a user's first address becomes the default one
    is_default = addresses.count_documents({"user_id": user["_id"]}) == 0
    doc = Address(user_id=user["_id"], is_default=is_default, **payload.model_dump())
    with write_guard("address insert"):
        address_id = create_document("address", doc)
    return {"message": "New address has been created", "address": serialize(addresses.find_one({"_id": address_id}))}


@router.get("/{id}")
def get_address(id: str, user: dict = Depends(get_current_user)):
    return {"message": "Address fetched", "address": serialize(_my_address(id, user))}


@router.put("/{id}")
def edit_address(id: str, payload: AddressUpdate, user: dict = Depends(get_current_user)):
    address = _my_address(id, user)
    update = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v}
    if not update:
        raise BadRequestError("Incomplete input")
    update["updated_at"] = now_utc()
    with write_guard("address update"):
        get_db()["address"].update_one({"_id": address["_id"]}, {"$set": update})
    address.update(update)
    return {"message": "Address updated", "address": serialize(address)}


@router.delete("/{id}")
def delete_address(id: str, user: dict = Depends(get_current_user)):
    address = _my_address(id, user)
    with write_guard("address delete"):
        get_db()["address"].delete_one({"_id": address["_id"]})
    return {"message": "Address deleted"}


@router.put("/{id}/set-default")
def set_default_address(id: str, user: dict = Depends(get_current_user)):
    address = _my_address(id, user)
    addresses = get_db()["address"]
    with transaction() as session:
        addresses.update_many(
            {"user_id": user["_id"], "is_default": True, "_id": {"$ne": address["_id"]}},
            {"$set": {"is_default": False}},
            session=session,
        )
        addresses.update_one({"_id": oid(id)}, {"$set": {"is_default": True}}, session=session)
    address["is_default"] = True
    return {"message": "Default address set", "address": serialize(address)}
