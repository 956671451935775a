"""Service layer for accounts, todos and administration.

Every function receives the storage gateway explicitly and never depends on
which backend is behind it. Todo operations are scoped by the acting user's
id, so another user's todo is reported as not found rather than forbidden.
"""

import logging
from typing import List
from uuid import UUID

from prometheus_client import Counter

from .errors import (
    CannotDeleteSelf,
    InvalidCredentials,
    TodoNotFound,
    UserAlreadyExists,
    UserNotFound,
    ValidationError,
)
from .schemas import AuthResult, Role, Todo, TodoChanges, User
from .security import create_access_token, dummy_verify, hash_password, verify_password
from .storage import StorageGateway


logger = logging.getLogger(__name__)

# Prometheus counters for key service events
REGISTRATION_COUNTER = Counter("user_registrations_total", "Total users registered")
LOGIN_FAILURE_COUNTER = Counter("login_failures_total", "Total rejected login attempts")
TODO_CREATED_COUNTER = Counter("todos_created_total", "Total todos created")


def _issue(user: User) -> AuthResult:
    token = create_access_token(user.id, user.email, user.role)
    return AuthResult(token=token, user=user)


def _require_title(title: str | None) -> None:
    if title is None or not title.strip():
        raise ValidationError("title must not be empty")


# --- accounts ---------------------------------------------------------------


def register(storage: StorageGateway, email: str, password: str) -> AuthResult:
    """Create a ``user`` account and return it with a fresh token."""
    if storage.user_exists_by_email(email):
        logger.info("registration rejected, email already in use")
        raise UserAlreadyExists()

    user = storage.create_user(email, hash_password(password))
    REGISTRATION_COUNTER.inc()
    logger.info("registered user id=%s", user.id)
    return _issue(user)


def login(storage: StorageGateway, email: str, password: str) -> AuthResult:
    """Authenticate by email and password.

    An unknown email and a wrong password raise the same
    :class:`InvalidCredentials` error.
    """
    user = storage.find_user_by_email(email)
    if user is None:
        dummy_verify()
        LOGIN_FAILURE_COUNTER.inc()
        raise InvalidCredentials()

    if not verify_password(password, user.password_hash):
        LOGIN_FAILURE_COUNTER.inc()
        raise InvalidCredentials()

    logger.info("user id=%s logged in", user.id)
    return _issue(user.public())


def get_profile(storage: StorageGateway, user_id: UUID) -> User:
    user = storage.find_user_by_id(user_id)
    if user is None:
        raise UserNotFound()
    return user


# --- todos ------------------------------------------------------------------


def list_todos(storage: StorageGateway, user_id: UUID) -> List[Todo]:
    return storage.list_todos_by_user(user_id)


def get_todo(storage: StorageGateway, user_id: UUID, todo_id: UUID) -> Todo:
    todo = storage.find_todo(todo_id, user_id)
    if todo is None:
        raise TodoNotFound()
    return todo


def create_todo(
    storage: StorageGateway, user_id: UUID, title: str, description: str | None = None
) -> Todo:
    _require_title(title)
    todo = storage.create_todo(user_id, title, description)
    TODO_CREATED_COUNTER.inc()
    logger.info("created todo id=%s user=%s", todo.id, user_id)
    return todo


def update_todo(
    storage: StorageGateway, user_id: UUID, todo_id: UUID, changes: TodoChanges
) -> Todo:
    """Apply a partial update; an empty changeset returns the todo unchanged."""
    if changes.title is not None:
        _require_title(changes.title)

    todo = storage.update_todo(todo_id, user_id, changes)
    if todo is None:
        raise TodoNotFound()
    return todo


def delete_todo(storage: StorageGateway, user_id: UUID, todo_id: UUID) -> None:
    if not storage.delete_todo(todo_id, user_id):
        raise TodoNotFound()
    logger.info("deleted todo id=%s user=%s", todo_id, user_id)


# --- administration ---------------------------------------------------------


def list_users(storage: StorageGateway) -> List[User]:
    return storage.list_users()


def get_user(storage: StorageGateway, user_id: UUID) -> User:
    user = storage.find_user_by_id(user_id)
    if user is None:
        raise UserNotFound()
    return user


def update_user_role(storage: StorageGateway, user_id: UUID, role: str) -> User:
    try:
        new_role = Role(role)
    except ValueError as exc:
        raise ValidationError("role must be 'user' or 'admin'") from exc

    user = storage.update_user_role(user_id, new_role)
    if user is None:
        raise UserNotFound()
    logger.info("user id=%s role set to %s", user_id, new_role.value)
    return user


def delete_user(storage: StorageGateway, acting_id: UUID, target_id: UUID) -> None:
    """Delete ``target_id``; an admin can never delete their own account.

    The self check happens before storage is touched, so it holds even when
    the account no longer exists.
    """
    if acting_id == target_id:
        raise CannotDeleteSelf()

    if not storage.delete_user(target_id):
        raise UserNotFound()
    logger.info("user id=%s deleted by id=%s", target_id, acting_id)


def list_all_todos(storage: StorageGateway) -> List[Todo]:
    return storage.list_all_todos()


def ensure_admin(storage: StorageGateway, email: str, password: str) -> User:
    """Make sure an admin account exists for ``email``.

    A missing account is created; an existing one is promoted if needed and
    keeps its current password.
    """
    existing = storage.find_user_by_email(email)
    if existing is None:
        user = storage.create_user(email, hash_password(password))
        logger.info("seeded admin account id=%s", user.id)
    elif existing.role is Role.ADMIN:
        logger.info("admin account already exists, skipping seed")
        return existing.public()
    else:
        user = existing.public()
        logger.info("promoting existing account id=%s to admin", user.id)

    promoted = storage.update_user_role(user.id, Role.ADMIN)
    if promoted is None:
        raise UserNotFound()
    return promoted
