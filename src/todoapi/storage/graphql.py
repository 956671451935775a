"""Storage backend that delegates persistence to a GraphQL data service.

The service is expected to expose Hasura-style root fields for the ``users``
and ``todos`` tables (``users_by_pk``, ``insert_todos_one``, ``update_todos``
and so on). Requests authenticate with the admin secret.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Type, TypeVar
from uuid import UUID

import requests
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..errors import StorageError
from ..schemas import Role, Todo, TodoChanges, User, UserInDB
from .base import StorageGateway

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

USER_FIELDS = "id email role created_at updated_at"
TODO_FIELDS = "id user_id title description completed created_at updated_at"

USER_EXISTS_QUERY = """
query UserExists($email: String!) {
  users(where: {email: {_eq: $email}}, limit: 1) { id }
}
"""

CREATE_USER_MUTATION = f"""
mutation CreateUser($email: String!, $password_hash: String!) {{
  insert_users_one(object: {{email: $email, password_hash: $password_hash, role: "user"}}) {{
    {USER_FIELDS}
  }}
}}
"""

FIND_USER_BY_EMAIL_QUERY = f"""
query FindUserByEmail($email: String!) {{
  users(where: {{email: {{_eq: $email}}}}, limit: 1) {{ {USER_FIELDS} password_hash }}
}}
"""

FIND_USER_BY_ID_QUERY = f"""
query FindUserById($id: uuid!) {{
  users_by_pk(id: $id) {{ {USER_FIELDS} }}
}}
"""

LIST_USERS_QUERY = f"""
query ListUsers {{
  users(order_by: {{created_at: desc}}) {{ {USER_FIELDS} }}
}}
"""

UPDATE_USER_ROLE_MUTATION = f"""
mutation UpdateUserRole($id: uuid!, $role: String!, $updated_at: timestamptz!) {{
  update_users_by_pk(pk_columns: {{id: $id}}, _set: {{role: $role, updated_at: $updated_at}}) {{
    {USER_FIELDS}
  }}
}}
"""

# Both root fields run in one transaction on the data service.
DELETE_USER_MUTATION = """
mutation DeleteUser($id: uuid!) {
  delete_todos(where: {user_id: {_eq: $id}}) { affected_rows }
  delete_users_by_pk(id: $id) { id }
}
"""

LIST_TODOS_BY_USER_QUERY = f"""
query ListTodosByUser($user_id: uuid!) {{
  todos(where: {{user_id: {{_eq: $user_id}}}}, order_by: {{created_at: desc}}) {{ {TODO_FIELDS} }}
}}
"""

FIND_TODO_QUERY = f"""
query FindTodo($id: uuid!, $user_id: uuid!) {{
  todos(where: {{id: {{_eq: $id}}, user_id: {{_eq: $user_id}}}}, limit: 1) {{ {TODO_FIELDS} }}
}}
"""

CREATE_TODO_MUTATION = f"""
mutation CreateTodo($user_id: uuid!, $title: String!, $description: String) {{
  insert_todos_one(object: {{user_id: $user_id, title: $title, description: $description}}) {{
    {TODO_FIELDS}
  }}
}}
"""

UPDATE_TODO_MUTATION = f"""
mutation UpdateTodo($id: uuid!, $user_id: uuid!, $changes: todos_set_input!) {{
  update_todos(where: {{id: {{_eq: $id}}, user_id: {{_eq: $user_id}}}}, _set: $changes) {{
    returning {{ {TODO_FIELDS} }}
  }}
}}
"""

DELETE_TODO_MUTATION = """
mutation DeleteTodo($id: uuid!, $user_id: uuid!) {
  delete_todos(where: {id: {_eq: $id}, user_id: {_eq: $user_id}}) { affected_rows }
}
"""

LIST_ALL_TODOS_QUERY = f"""
query ListAllTodos {{
  todos(order_by: {{created_at: desc}}) {{ {TODO_FIELDS} }}
}}
"""


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse(model: Type[ModelT], payload: Any) -> ModelT:
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        logger.error("malformed %s in graphql response", model.__name__)
        raise StorageError() from exc


def _parse_list(model: Type[ModelT], payload: Any) -> List[ModelT]:
    if not isinstance(payload, list):
        logger.error("expected a list of %s in graphql response", model.__name__)
        raise StorageError()
    return [_parse(model, item) for item in payload]


def _field(data: Dict[str, Any], name: str) -> Any:
    if name not in data:
        logger.error("graphql response is missing field %s", name)
        raise StorageError()
    return data[name]


class GraphQLStorage(StorageGateway):
    """Storage gateway backed by a remote GraphQL endpoint."""

    def __init__(
        self,
        endpoint: str,
        admin_secret: str = "",
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ):
        self.endpoint = endpoint
        self.admin_secret = admin_secret
        self.timeout = timeout
        self.session = session or requests.Session()

    def _execute(self, query: str, variables: Dict[str, Any] | None = None) -> Dict[str, Any]:
        """POST a GraphQL document and return its ``data`` object."""
        headers = {"Content-Type": "application/json"}
        if self.admin_secret:
            headers["x-hasura-admin-secret"] = self.admin_secret

        payload: Dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        try:
            response = self.session.post(
                self.endpoint, json=payload, headers=headers, timeout=self.timeout
            )
        except requests.RequestException as exc:
            logger.exception("graphql request to %s failed", self.endpoint)
            raise StorageError() from exc

        if response.status_code >= 400:
            logger.error("graphql request failed with status %s", response.status_code)
            raise StorageError()

        try:
            body = response.json()
        except ValueError as exc:
            logger.error("graphql response is not valid JSON")
            raise StorageError() from exc

        if not isinstance(body, dict):
            logger.error("graphql response has unexpected shape")
            raise StorageError()

        errors = body.get("errors")
        if errors:
            logger.error("graphql error: %s", errors[0])
            raise StorageError()

        data = body.get("data")
        if not isinstance(data, dict):
            logger.error("graphql response has no data")
            raise StorageError()
        return data

    def user_exists_by_email(self, email: str) -> bool:
        data = self._execute(USER_EXISTS_QUERY, {"email": email})
        return len(_field(data, "users") or []) > 0

    def create_user(self, email: str, password_hash: str) -> User:
        data = self._execute(
            CREATE_USER_MUTATION, {"email": email, "password_hash": password_hash}
        )
        created = _field(data, "insert_users_one")
        if created is None:
            logger.error("insert_users_one returned no row")
            raise StorageError()
        user = _parse(User, created)
        logger.info("created user id=%s", user.id)
        return user

    def find_user_by_email(self, email: str) -> UserInDB | None:
        data = self._execute(FIND_USER_BY_EMAIL_QUERY, {"email": email})
        users = _parse_list(UserInDB, _field(data, "users"))
        return users[0] if users else None

    def find_user_by_id(self, user_id: UUID) -> User | None:
        data = self._execute(FIND_USER_BY_ID_QUERY, {"id": str(user_id)})
        found = _field(data, "users_by_pk")
        return _parse(User, found) if found is not None else None

    def list_users(self) -> List[User]:
        data = self._execute(LIST_USERS_QUERY)
        return _parse_list(User, _field(data, "users"))

    def update_user_role(self, user_id: UUID, role: Role) -> User | None:
        data = self._execute(
            UPDATE_USER_ROLE_MUTATION,
            {
                "id": str(user_id),
                "role": Role(role).value,
                "updated_at": _timestamp(),
            },
        )
        updated = _field(data, "update_users_by_pk")
        return _parse(User, updated) if updated is not None else None

    def delete_user(self, user_id: UUID) -> bool:
        data = self._execute(DELETE_USER_MUTATION, {"id": str(user_id)})
        return _field(data, "delete_users_by_pk") is not None

    def list_todos_by_user(self, user_id: UUID) -> List[Todo]:
        data = self._execute(LIST_TODOS_BY_USER_QUERY, {"user_id": str(user_id)})
        return _parse_list(Todo, _field(data, "todos"))

    def find_todo(self, todo_id: UUID, user_id: UUID) -> Todo | None:
        data = self._execute(
            FIND_TODO_QUERY, {"id": str(todo_id), "user_id": str(user_id)}
        )
        todos = _parse_list(Todo, _field(data, "todos"))
        return todos[0] if todos else None

    def create_todo(
        self, user_id: UUID, title: str, description: str | None = None
    ) -> Todo:
        data = self._execute(
            CREATE_TODO_MUTATION,
            {"user_id": str(user_id), "title": title, "description": description},
        )
        created = _field(data, "insert_todos_one")
        if created is None:
            logger.error("insert_todos_one returned no row")
            raise StorageError()
        return _parse(Todo, created)

    def update_todo(
        self, todo_id: UUID, user_id: UUID, changes: TodoChanges
    ) -> Todo | None:
        fields = changes.present()
        if not fields:
            return self.find_todo(todo_id, user_id)

        fields["updated_at"] = _timestamp()
        data = self._execute(
            UPDATE_TODO_MUTATION,
            {"id": str(todo_id), "user_id": str(user_id), "changes": fields},
        )
        result = _field(data, "update_todos")
        if not isinstance(result, dict):
            logger.error("update_todos returned unexpected payload")
            raise StorageError()
        todos = _parse_list(Todo, result.get("returning"))
        return todos[0] if todos else None

    def delete_todo(self, todo_id: UUID, user_id: UUID) -> bool:
        data = self._execute(
            DELETE_TODO_MUTATION, {"id": str(todo_id), "user_id": str(user_id)}
        )
        result = _field(data, "delete_todos")
        if not isinstance(result, dict):
            logger.error("delete_todos returned unexpected payload")
            raise StorageError()
        return (result.get("affected_rows") or 0) > 0

    def list_all_todos(self) -> List[Todo]:
        data = self._execute(LIST_ALL_TODOS_QUERY)
        return _parse_list(Todo, _field(data, "todos"))
