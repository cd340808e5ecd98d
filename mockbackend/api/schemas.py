"""
Request and response models for the users, health and error surfaces.
Data and jsonstore records are open-ended and travel as plain JSON objects.
"""

from pydantic import BaseModel, ConfigDict, field_validator
from typing import List


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator('email')
    @classmethod
    def email_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('email cannot be empty')
        return v.strip()

    @field_validator('password')
    @classmethod
    def password_must_not_be_empty(cls, v):
        if not v:
            raise ValueError('password cannot be empty')
        return v


class RegisterRequest(LoginRequest):
    """Registration keeps any extra profile fields sent along with the credentials."""
    model_config = ConfigDict(extra='allow')


class DeleteReceipt(BaseModel):
    deletedOn: int


class HealthResponse(BaseModel):
    status: str
    version: str
    collections: List[str]


class ErrorResponse(BaseModel):
    code: int
    message: str
