"""Storage gateway interface shared by every persistence backend."""

from abc import ABC, abstractmethod
from typing import List
from uuid import UUID

from ..schemas import Role, Todo, TodoChanges, User, UserInDB


class StorageGateway(ABC):
    """Persistence operations used by the service layer.

    Absence is reported as ``None`` or ``False``. Backend failures of any kind
    raise :class:`todoapi.errors.StorageError`. Nothing is retried here.
    Todo lookups and writes are always scoped by owner, so a todo that belongs
    to someone else is indistinguishable from one that does not exist.
    """

    @abstractmethod
    def user_exists_by_email(self, email: str) -> bool: ...

    @abstractmethod
    def create_user(self, email: str, password_hash: str) -> User: ...

    @abstractmethod
    def find_user_by_email(self, email: str) -> UserInDB | None: ...

    @abstractmethod
    def find_user_by_id(self, user_id: UUID) -> User | None: ...

    @abstractmethod
    def list_users(self) -> List[User]:
        """Return all users, newest first."""

    @abstractmethod
    def update_user_role(self, user_id: UUID, role: Role) -> User | None: ...

    @abstractmethod
    def delete_user(self, user_id: UUID) -> bool:
        """Delete a user and their todos; ``True`` if a user row was removed."""

    @abstractmethod
    def list_todos_by_user(self, user_id: UUID) -> List[Todo]:
        """Return the user's todos, newest first."""

    @abstractmethod
    def find_todo(self, todo_id: UUID, user_id: UUID) -> Todo | None: ...

    @abstractmethod
    def create_todo(
        self, user_id: UUID, title: str, description: str | None = None
    ) -> Todo: ...

    @abstractmethod
    def update_todo(
        self, todo_id: UUID, user_id: UUID, changes: TodoChanges
    ) -> Todo | None:
        """Apply the present fields of ``changes`` to the owner's todo.

        ``updated_at`` is refreshed whenever a field is written. An empty
        changeset performs no write and returns the current todo.
        """

    @abstractmethod
    def delete_todo(self, todo_id: UUID, user_id: UUID) -> bool: ...

    @abstractmethod
    def list_all_todos(self) -> List[Todo]:
        """Return every todo of every user, newest first."""
