"""Relational storage backend built on SQLAlchemy."""

import logging
from typing import List, NoReturn
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..database import SessionLocal, utcnow
from ..errors import StorageError
from ..models.todo import TodoRow
from ..models.user import UserRow
from ..schemas import Role, Todo, TodoChanges, User, UserInDB
from .base import StorageGateway

logger = logging.getLogger(__name__)


def _handle_storage_error(session: Session, exc: Exception) -> NoReturn:
    """Rollback the transaction and raise a generic storage error."""
    session.rollback()
    logger.exception("storage layer error", exc_info=exc)
    raise StorageError() from exc


class SqlStorage(StorageGateway):
    """Storage gateway that queries the relational database directly.

    Every operation runs in its own session, committed or rolled back
    before it returns.
    """

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self._session_factory = session_factory

    def user_exists_by_email(self, email: str) -> bool:
        session: Session = self._session_factory()
        try:
            return (
                session.query(UserRow.id).filter(UserRow.email == email).first()
                is not None
            )
        except SQLAlchemyError as exc:
            _handle_storage_error(session, exc)
        finally:
            session.close()

    def create_user(self, email: str, password_hash: str) -> User:
        session: Session = self._session_factory()
        try:
            row = UserRow(email=email, password_hash=password_hash, role=Role.USER.value)
            session.add(row)
            session.commit()
            session.refresh(row)
            logger.info("created user id=%s", row.id)
            return User.model_validate(row)
        except (SQLAlchemyError, PydanticValidationError) as exc:
            _handle_storage_error(session, exc)
        finally:
            session.close()

    def find_user_by_email(self, email: str) -> UserInDB | None:
        session: Session = self._session_factory()
        try:
            row = session.query(UserRow).filter(UserRow.email == email).first()
            return UserInDB.model_validate(row) if row else None
        except (SQLAlchemyError, PydanticValidationError) as exc:
            _handle_storage_error(session, exc)
        finally:
            session.close()

    def find_user_by_id(self, user_id: UUID) -> User | None:
        session: Session = self._session_factory()
        try:
            row = session.query(UserRow).filter(UserRow.id == user_id).first()
            return User.model_validate(row) if row else None
        except (SQLAlchemyError, PydanticValidationError) as exc:
            _handle_storage_error(session, exc)
        finally:
            session.close()

    def list_users(self) -> List[User]:
        session: Session = self._session_factory()
        try:
            rows = session.query(UserRow).order_by(UserRow.created_at.desc()).all()
            return [User.model_validate(row) for row in rows]
        except (SQLAlchemyError, PydanticValidationError) as exc:
            _handle_storage_error(session, exc)
        finally:
            session.close()

    def update_user_role(self, user_id: UUID, role: Role) -> User | None:
        session: Session = self._session_factory()
        try:
            row = session.query(UserRow).filter(UserRow.id == user_id).first()
            if row is None:
                return None
            row.role = Role(role).value
            row.updated_at = utcnow()
            session.commit()
            session.refresh(row)
            return User.model_validate(row)
        except (SQLAlchemyError, PydanticValidationError) as exc:
            _handle_storage_error(session, exc)
        finally:
            session.close()

    def delete_user(self, user_id: UUID) -> bool:
        session: Session = self._session_factory()
        try:
            # SQLite does not enforce the cascade unless asked to.
            session.query(TodoRow).filter(TodoRow.user_id == user_id).delete(
                synchronize_session=False
            )
            deleted = (
                session.query(UserRow)
                .filter(UserRow.id == user_id)
                .delete(synchronize_session=False)
            )
            session.commit()
            return deleted > 0
        except SQLAlchemyError as exc:
            _handle_storage_error(session, exc)
        finally:
            session.close()

    def list_todos_by_user(self, user_id: UUID) -> List[Todo]:
        session: Session = self._session_factory()
        try:
            rows = (
                session.query(TodoRow)
                .filter(TodoRow.user_id == user_id)
                .order_by(TodoRow.created_at.desc())
                .all()
            )
            return [Todo.model_validate(row) for row in rows]
        except (SQLAlchemyError, PydanticValidationError) as exc:
            _handle_storage_error(session, exc)
        finally:
            session.close()

    def find_todo(self, todo_id: UUID, user_id: UUID) -> Todo | None:
        session: Session = self._session_factory()
        try:
            row = (
                session.query(TodoRow)
                .filter(TodoRow.id == todo_id, TodoRow.user_id == user_id)
                .first()
            )
            return Todo.model_validate(row) if row else None
        except (SQLAlchemyError, PydanticValidationError) as exc:
            _handle_storage_error(session, exc)
        finally:
            session.close()

    def create_todo(
        self, user_id: UUID, title: str, description: str | None = None
    ) -> Todo:
        session: Session = self._session_factory()
        try:
            row = TodoRow(user_id=user_id, title=title, description=description)
            session.add(row)
            session.commit()
            session.refresh(row)
            return Todo.model_validate(row)
        except (SQLAlchemyError, PydanticValidationError) as exc:
            _handle_storage_error(session, exc)
        finally:
            session.close()

    def update_todo(
        self, todo_id: UUID, user_id: UUID, changes: TodoChanges
    ) -> Todo | None:
        session: Session = self._session_factory()
        try:
            row = (
                session.query(TodoRow)
                .filter(TodoRow.id == todo_id, TodoRow.user_id == user_id)
                .first()
            )
            if row is None:
                return None

            fields = changes.present()
            if not fields:
                return Todo.model_validate(row)

            for name, value in fields.items():
                setattr(row, name, value)
            row.updated_at = utcnow()
            session.commit()
            session.refresh(row)
            return Todo.model_validate(row)
        except (SQLAlchemyError, PydanticValidationError) as exc:
            _handle_storage_error(session, exc)
        finally:
            session.close()

    def delete_todo(self, todo_id: UUID, user_id: UUID) -> bool:
        session: Session = self._session_factory()
        try:
            deleted = (
                session.query(TodoRow)
                .filter(TodoRow.id == todo_id, TodoRow.user_id == user_id)
                .delete(synchronize_session=False)
            )
            session.commit()
            return deleted > 0
        except SQLAlchemyError as exc:
            _handle_storage_error(session, exc)
        finally:
            session.close()

    def list_all_todos(self) -> List[Todo]:
        session: Session = self._session_factory()
        try:
            rows = session.query(TodoRow).order_by(TodoRow.created_at.desc()).all()
            return [Todo.model_validate(row) for row in rows]
        except (SQLAlchemyError, PydanticValidationError) as exc:
            _handle_storage_error(session, exc)
        finally:
            session.close()
