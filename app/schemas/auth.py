"""
Pydantic schemas for authentication endpoints.
"""
from typing import Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class RegisterRequest(BaseModel):
    """Request schema for email/password registration."""
    email: EmailStr = Field(..., description="User's email address")
    password: str = Field(..., description="User's password (min 8 characters)")
    first_name: Optional[str] = Field(default=None, alias="firstName", max_length=100)
    last_name: Optional[str] = Field(default=None, alias="lastName", max_length=100)
    user_type: Literal["candidate", "vendor"] = Field(..., alias="userType", description="Account role")

    @field_validator("password")
    @classmethod
    def validate_password_length(cls, v: str) -> str:
        """Validate password length in bytes (bcrypt limit is 72 bytes)."""
        password_bytes = v.encode("utf-8")
        if len(password_bytes) < 8:
            raise ValueError("Password must be at least 8 characters")
        if len(password_bytes) > 72:
            raise ValueError("Password too long (bcrypt limit 72 bytes)")
        return v

    model_config = ConfigDict(populate_by_name=True, json_schema_extra={
        "example": {
            "email": "jane.doe@example.com",
            "password": "SecurePass123",
            "firstName": "Jane",
            "lastName": "Doe",
            "userType": "candidate",
        }
    })


class LoginRequest(BaseModel):
    """Request schema for user login."""
    email: EmailStr = Field(..., description="User's email address")
    password: str = Field(..., min_length=1, description="User's password")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "email": "jane.doe@example.com",
            "password": "SecurePass123"
        }
    })


class RefreshRequest(BaseModel):
    refresh: str = Field(..., min_length=1, description="Refresh token")


class LogoutRequest(BaseModel):
    refresh: Optional[str] = Field(default=None, description="Refresh token to revoke")


class UserOut(BaseModel):
    id: str
    email: str
    first_name: str
    last_name: str
    user_type: str
    username: str
    membership_config: Optional[Dict[str, List[str]]] = None
    has_purchased_visibility: bool
    plan: str


class AuthResponse(BaseModel):
    """Returned by register and login."""
    user: UserOut
    access: str
    refresh: str


class TokenPairResponse(BaseModel):
    access: str
    refresh: str


class VerifyResponse(BaseModel):
    user: UserOut


class MessageResponse(BaseModel):
    message: str
