"""Domain Entities - Staff users"""
from pydantic import BaseModel, Field
from uuid import UUID, uuid4
from typing import Optional


class User(BaseModel):
    """Staff member who acts on reservations"""
    user_id: UUID = Field(default_factory=uuid4)
    username: str = Field(min_length=1, max_length=50)
    role: str = "Staff"
    email: Optional[str] = None
    full_name: Optional[str] = None
    disabled: bool = False

    class Config:
        from_attributes = True


class UserInDB(User):
    """User with hashed password for storage"""
    hashed_password: str
