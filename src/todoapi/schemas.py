"""Domain models shared by the services and both storage backends."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class Role(str, Enum):
    """The two roles an account can hold."""

    USER = "user"
    ADMIN = "admin"


class User(BaseModel):
    """Public view of an account."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    role: Role
    created_at: datetime
    updated_at: datetime


class UserInDB(User):
    """Account including its password hash; never returned to clients."""

    password_hash: str

    def public(self) -> User:
        return User.model_validate(self.model_dump(exclude={"password_hash"}))


class Todo(BaseModel):
    """A todo item owned by exactly one user."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    title: str
    description: str | None = None
    completed: bool = False
    created_at: datetime
    updated_at: datetime


class TodoChanges(BaseModel):
    """Partial update for a todo.

    A field counts as present only when it carries a value; omitted and
    ``null`` fields both leave the stored value unchanged.
    """

    title: str | None = None
    description: str | None = None
    completed: bool | None = None

    def present(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class TokenIdentity(BaseModel):
    """Identity carried by a verified access token."""

    user_id: UUID
    email: str
    role: Role


class AuthResult(BaseModel):
    token: str
    user: User
