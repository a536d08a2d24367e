from pydantic import BaseModel, field_validator
from typing import Optional
from datetime import datetime
from enum import Enum

class UserRole(str, Enum):
    REQUESTER = "requester"
    PM = "pm"
    PRESIDENT = "president"
    PURCHASER = "purchaser"
    ADMIN = "admin"

class UserBase(BaseModel):
    username: str
    display_name: Optional[str] = None
    role: UserRole = UserRole.REQUESTER
    can_purchase: bool = False
    can_receive: bool = False

    @field_validator('username')
    @classmethod
    def username_not_blank(cls, v):
        if not v.strip():
            raise ValueError('Username must not be blank')
        return v.strip()

class UserCreate(UserBase):
    pass

class User(UserBase):
    id: str
    created_at: datetime

class UserUpdate(BaseModel):
    display_name: Optional[str] = None
    role: Optional[UserRole] = None
    can_purchase: Optional[bool] = None
    can_receive: Optional[bool] = None

class Actor(BaseModel):
    """The authenticated user acting on the workflow."""
    id: str
    role: UserRole = UserRole.REQUESTER
    display_name: Optional[str] = None
    can_purchase: bool = False
    can_receive: bool = False

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def may_approve(self) -> bool:
        return self.role in (UserRole.PM, UserRole.PRESIDENT, UserRole.ADMIN)

    @property
    def may_purchase(self) -> bool:
        return self.can_purchase or self.role in (UserRole.PURCHASER, UserRole.ADMIN)

    @property
    def may_receive(self) -> bool:
        return self.can_receive or self.is_admin

    @classmethod
    def from_user(cls, user: dict) -> "Actor":
        return cls(
            id=user["id"],
            role=user.get("role") or UserRole.REQUESTER,
            display_name=user.get("display_name"),
            can_purchase=bool(user.get("can_purchase")),
            can_receive=bool(user.get("can_receive")),
        )

class TokenData(BaseModel):
    username: Optional[str] = None
    user_id: Optional[str] = None
