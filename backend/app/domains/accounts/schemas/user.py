from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import Optional


class UserCreate(BaseModel):
    email: EmailStr
    username: str = Field(min_length=3)
    password: str = Field(min_length=8, max_length=72)
    name: Optional[str] = None


class UserUpdate(BaseModel):
    name: Optional[str] = None


class UserResponse(BaseModel):
    id: int
    email: str
    username: Optional[str]
    name: Optional[str]
    role: str
    listing_count: int
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class UserLogin(BaseModel):
    username: str
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str


class SessionExchange(BaseModel):
    id_token: str = Field(min_length=1)


class SessionResponse(Token):
    user: UserResponse


class RoleUpdate(BaseModel):
    role: str
