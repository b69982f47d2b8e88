"""
Application errors.

Every error the API raises on purpose is an ``HTTPException`` so handlers can
keep using FastAPI's own raising idiom; the subclasses only pin the status
code and a default message. ``main`` maps all of them to ``{"message": ...}``.
"""
from fastapi import HTTPException


class BadRequestError(HTTPException):
    def __init__(self, message: str = "Bad request"):
        super().__init__(status_code=400, detail=message)


class AuthenticationError(HTTPException):
    def __init__(self, message: str = "Not authorized"):
        super().__init__(status_code=401, detail=message)


class NotFoundError(HTTPException):
    def __init__(self, message: str = "Not found"):
        super().__init__(status_code=404, detail=message)


class DatabaseError(HTTPException):
    def __init__(self, message: str = "Database error, please try again"):
        super().__init__(status_code=500, detail=message)
