"""Image uploads to Cloudinary."""
import logging
from typing import List, Optional

import cloudinary
import cloudinary.api
import cloudinary.uploader
from fastapi import UploadFile

import config
from errors import BadRequestError, DatabaseError

logger = logging.getLogger(__name__)


def _configure() -> None:
    cloudinary.config(
        cloud_name=config.CLOUDINARY_CLOUD_NAME,
        api_key=config.CLOUDINARY_API_KEY,
        api_secret=config.CLOUDINARY_API_SECRET,
        secure=True,
    )


def read_images(files: Optional[List[UploadFile]], limit: int) -> List[bytes]:
    """Check count, type and size of uploaded images and return their contents."""
    files = [f for f in (files or []) if f.filename]
    if len(files) > limit:
        raise BadRequestError(f"Too many images, at most {limit} allowed")
    contents = []
    for f in files:
        if f.content_type not in config.ALLOWED_IMAGE_TYPES:
            raise BadRequestError("Invalid image file")
        data = f.file.read()
        if len(data) > config.MAX_IMAGE_SIZE:
            raise BadRequestError(f"Image {f.filename} is larger than 10MB")
        contents.append(data)
    return contents


def upload_image(data: bytes) -> dict:
    _configure()
    try:
        res = cloudinary.uploader.upload(data, unique_filename=False)
    except Exception:
        logger.exception("Image upload failed")
        raise DatabaseError("Unable to upload image")
    return {"url": res.get("secure_url") or res["url"], "public_id": res["public_id"]}


def upload_images(contents: List[bytes]) -> List[dict]:
    uploaded = []
    try:
        for data in contents:
            uploaded.append(upload_image(data))
    except DatabaseError:
        delete_images(uploaded)
        raise
    return uploaded


def delete_images(images: List[dict]) -> None:
    """Best effort; a failure only leaks storage."""
    public_ids = [img["public_id"] for img in images or [] if img.get("public_id")]
    if not public_ids:
        return
    _configure()
    try:
        cloudinary.api.delete_resources(public_ids)
    except Exception:
        logger.warning("Unable to delete images %s", public_ids, exc_info=True)
