import json

import pytest
import requests

from file_gateway.errors import OwnerNotFoundError, UserDirectoryError
from file_gateway.users import HTTPUserDirectory, Owner, SQLiteUserDirectory
from tests.consts import TEST_OWNER_EMAIL, TEST_OWNER_ID


def make_response(status_code: int, payload=None, body: bytes | None = None) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response._content = body if body is not None else json.dumps(payload).encode()
    response.url = "http://users.test/users/u1"
    return response


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requested = []
        self.closed = False

    def get(self, url, timeout=None):
        self.requested.append((url, timeout))
        if self.error is not None:
            raise self.error
        return self.response

    def close(self):
        self.closed = True


def test__sqlite__resolve_known_owner(users: SQLiteUserDirectory):
    assert users.resolve_owner(TEST_OWNER_ID) == Owner(TEST_OWNER_ID, TEST_OWNER_EMAIL)


def test__sqlite__unknown_owner_raises(users: SQLiteUserDirectory):
    with pytest.raises(OwnerNotFoundError) as exc_info:
        users.resolve_owner("ghost")

    assert exc_info.value.owner_id == "ghost"


def test__sqlite__add_user_replaces_address(users: SQLiteUserDirectory):
    users.add_user(TEST_OWNER_ID, "new@example.com")

    assert users.resolve_owner(TEST_OWNER_ID).address == "new@example.com"


def test__sqlite__missing_table_raises_directory_error(tmp_path):
    directory = SQLiteUserDirectory(str(tmp_path / "blank.db"))

    with pytest.raises(UserDirectoryError):
        directory.resolve_owner(TEST_OWNER_ID)


def test__http__resolve_owner():
    session = FakeSession(make_response(200, {"user_id": "u1", "email_address": TEST_OWNER_EMAIL}))
    directory = HTTPUserDirectory("http://users.test/", timeout=2.0, session=session)

    assert directory.resolve_owner("u1").address == TEST_OWNER_EMAIL
    assert session.requested == [("http://users.test/users/u1", 2.0)]


def test__http__resolve_owner_in_data_envelope():
    session = FakeSession(make_response(200, {"succeed": True, "data": {"email_address": TEST_OWNER_EMAIL}}))
    directory = HTTPUserDirectory("http://users.test", session=session)

    assert directory.resolve_owner("u1").address == TEST_OWNER_EMAIL


def test__http__owner_id_is_path_quoted():
    session = FakeSession(make_response(200, {"email_address": TEST_OWNER_EMAIL}))
    directory = HTTPUserDirectory("http://users.test", session=session)

    directory.resolve_owner("a/b")

    assert session.requested[0][0] == "http://users.test/users/a%2Fb"


def test__http__404_is_owner_not_found():
    directory = HTTPUserDirectory("http://users.test", session=FakeSession(make_response(404, {})))

    with pytest.raises(OwnerNotFoundError):
        directory.resolve_owner("u1")


def test__http__missing_address_is_owner_not_found():
    directory = HTTPUserDirectory("http://users.test", session=FakeSession(make_response(200, {"user_id": "u1"})))

    with pytest.raises(OwnerNotFoundError):
        directory.resolve_owner("u1")


@pytest.mark.parametrize(
    "session",
    [
        FakeSession(error=requests.exceptions.ConnectTimeout("timed out")),
        FakeSession(make_response(500, {"error": "boom"})),
        FakeSession(make_response(200, body=b"<html>not json</html>")),
    ],
)
def test__http__failures_are_directory_errors(session):
    directory = HTTPUserDirectory("http://users.test", session=session)

    with pytest.raises(UserDirectoryError):
        directory.resolve_owner("u1")


def test__http__close_closes_session():
    session = FakeSession()
    HTTPUserDirectory("http://users.test", session=session).close()

    assert session.closed
