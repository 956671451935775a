import json
import uuid

import pytest
import requests

from todoapi.errors import StorageError
from todoapi.schemas import Role, TodoChanges
from todoapi.storage.graphql import GraphQLStorage

NOW = "2024-01-01T00:00:00+00:00"


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=None):
        self.status_code = status_code
        self._body = body
        self._text = text

    def json(self):
        if self._text is not None:
            return json.loads(self._text)
        return self._body


class FakeSession:
    """Replays canned responses and records every request."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.requests.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if not self.responses:
            raise AssertionError("received more requests than expected")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_storage(*responses, admin_secret="hasura-secret"):
    session = FakeSession(responses)
    storage = GraphQLStorage(
        "http://hasura.local/v1/graphql", admin_secret=admin_secret, timeout=3, session=session
    )
    return storage, session


def todo_json(todo_id, user_id, title="Item", description="detail", completed=False):
    return {
        "id": str(todo_id),
        "user_id": str(user_id),
        "title": title,
        "description": description,
        "completed": completed,
        "created_at": NOW,
        "updated_at": NOW,
    }


def user_json(user_id, email="u@example.com", role="user", **extra):
    return {
        "id": str(user_id),
        "email": email,
        "role": role,
        "created_at": NOW,
        "updated_at": NOW,
        **extra,
    }


def test_request_shape():
    user_id = uuid.uuid4()
    storage, session = make_storage(FakeResponse(body={"data": {"todos": []}}))

    assert storage.list_todos_by_user(user_id) == []

    sent = session.requests[0]
    assert sent["url"] == "http://hasura.local/v1/graphql"
    assert sent["headers"]["x-hasura-admin-secret"] == "hasura-secret"
    assert sent["timeout"] == 3
    assert sent["json"]["variables"] == {"user_id": str(user_id)}
    assert "order_by: {created_at: desc}" in sent["json"]["query"]


def test_no_admin_secret_header_when_unset():
    storage, session = make_storage(
        FakeResponse(body={"data": {"todos": []}}), admin_secret=""
    )
    storage.list_all_todos()
    assert "x-hasura-admin-secret" not in session.requests[0]["headers"]


def test_list_todos_parses_rows():
    user_id = uuid.uuid4()
    first, second = uuid.uuid4(), uuid.uuid4()
    storage, _ = make_storage(
        FakeResponse(
            body={
                "data": {
                    "todos": [
                        todo_json(first, user_id, title="First", description="desc1"),
                        todo_json(second, user_id, title="Second", description=None, completed=True),
                    ]
                }
            }
        )
    )

    todos = storage.list_todos_by_user(user_id)
    assert [t.id for t in todos] == [first, second]
    assert todos[0].title == "First"
    assert todos[1].description is None
    assert todos[1].completed is True


def test_find_todo_found_and_missing():
    user_id, todo_id = uuid.uuid4(), uuid.uuid4()
    storage, session = make_storage(
        FakeResponse(body={"data": {"todos": [todo_json(todo_id, user_id)]}}),
        FakeResponse(body={"data": {"todos": []}}),
    )

    assert storage.find_todo(todo_id, user_id).id == todo_id
    assert storage.find_todo(todo_id, user_id) is None
    assert session.requests[0]["json"]["variables"] == {
        "id": str(todo_id),
        "user_id": str(user_id),
    }


def test_create_todo():
    user_id, todo_id = uuid.uuid4(), uuid.uuid4()
    storage, session = make_storage(
        FakeResponse(
            body={"data": {"insert_todos_one": todo_json(todo_id, user_id, title="New", description=None)}}
        )
    )

    todo = storage.create_todo(user_id, "New")
    assert todo.id == todo_id
    assert todo.description is None
    assert session.requests[0]["json"]["variables"]["description"] is None


def test_update_todo_sends_only_present_fields():
    user_id, todo_id = uuid.uuid4(), uuid.uuid4()
    storage, session = make_storage(
        FakeResponse(
            body={
                "data": {
                    "update_todos": {
                        "returning": [todo_json(todo_id, user_id, title="Updated", completed=True)]
                    }
                }
            }
        )
    )

    todo = storage.update_todo(todo_id, user_id, TodoChanges(title="Updated", completed=True))
    assert todo.title == "Updated"
    assert todo.completed is True

    changes = session.requests[0]["json"]["variables"]["changes"]
    assert set(changes) == {"title", "completed", "updated_at"}
    assert changes["title"] == "Updated"


def test_update_todo_without_changes_reads_current():
    user_id, todo_id = uuid.uuid4(), uuid.uuid4()
    storage, session = make_storage(
        FakeResponse(body={"data": {"todos": [todo_json(todo_id, user_id, title="Existing")]}})
    )

    todo = storage.update_todo(todo_id, user_id, TodoChanges())
    assert todo.title == "Existing"
    assert "mutation" not in session.requests[0]["json"]["query"]


def test_update_todo_not_matched():
    storage, _ = make_storage(FakeResponse(body={"data": {"update_todos": {"returning": []}}}))
    assert storage.update_todo(uuid.uuid4(), uuid.uuid4(), TodoChanges(title="missing")) is None


def test_delete_todo_affected_rows():
    storage, _ = make_storage(
        FakeResponse(body={"data": {"delete_todos": {"affected_rows": 1}}}),
        FakeResponse(body={"data": {"delete_todos": {"affected_rows": 0}}}),
    )
    assert storage.delete_todo(uuid.uuid4(), uuid.uuid4()) is True
    assert storage.delete_todo(uuid.uuid4(), uuid.uuid4()) is False


def test_user_operations():
    user_id = uuid.uuid4()
    storage, session = make_storage(
        FakeResponse(body={"data": {"users": []}}),
        FakeResponse(body={"data": {"insert_users_one": user_json(user_id)}}),
        FakeResponse(body={"data": {"users": [user_json(user_id, password_hash="$2b$hash")]}}),
        FakeResponse(body={"data": {"users_by_pk": None}}),
        FakeResponse(body={"data": {"update_users_by_pk": user_json(user_id, role="admin")}}),
        FakeResponse(body={"data": {"delete_todos": {"affected_rows": 2}, "delete_users_by_pk": {"id": str(user_id)}}}),
        FakeResponse(body={"data": {"delete_todos": {"affected_rows": 0}, "delete_users_by_pk": None}}),
    )

    assert storage.user_exists_by_email("u@example.com") is False
    assert storage.create_user("u@example.com", "$2b$hash").id == user_id
    assert storage.find_user_by_email("u@example.com").password_hash == "$2b$hash"
    assert storage.find_user_by_id(user_id) is None
    assert storage.update_user_role(user_id, Role.ADMIN).role is Role.ADMIN
    assert storage.delete_user(user_id) is True
    assert storage.delete_user(user_id) is False

    assert session.requests[4]["json"]["variables"]["role"] == "admin"


def test_list_users_does_not_expose_hash():
    user_id = uuid.uuid4()
    storage, session = make_storage(FakeResponse(body={"data": {"users": [user_json(user_id)]}}))
    users = storage.list_users()
    assert users[0].id == user_id
    assert "password_hash" not in session.requests[0]["json"]["query"]


@pytest.mark.parametrize(
    "response",
    [
        FakeResponse(status_code=500, body={}),
        FakeResponse(body={"errors": [{"message": "constraint violation"}]}),
        FakeResponse(text="<html>not json</html>"),
        FakeResponse(body={"data": None}),
        FakeResponse(body={"data": {"todos": [{"id": "not-a-uuid"}]}}),
        FakeResponse(body={"data": {}}),
        requests.ConnectionError("connection refused"),
        requests.Timeout("timed out"),
    ],
)
def test_backend_failures_become_storage_errors(response):
    storage, _ = make_storage(response)
    with pytest.raises(StorageError):
        storage.list_all_todos()
