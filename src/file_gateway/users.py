"""
Owner resolution.

The gateway does not own user records. It only needs to turn an owner id into
a notification address, either from the shared ``users`` table or from the
users service over HTTP.
"""

import logging
import sqlite3
from abc import ABC, abstractmethod
from contextlib import closing
from dataclasses import dataclass
from urllib.parse import quote

import requests

from file_gateway.errors import OwnerNotFoundError, UserDirectoryError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Owner:
    user_id: str
    address: str


class UserDirectory(ABC):
    """Resolves owner ids to contact addresses."""

    @abstractmethod
    def resolve_owner(self, owner_id: str) -> Owner:
        """Return the owner for ``owner_id``.

        Raises:
            OwnerNotFoundError: no such user
            UserDirectoryError: the directory could not be queried
        """

    def close(self) -> None:
        pass


class SQLiteUserDirectory(UserDirectory):
    """Reads owners from a ``users`` table (user_id, email_address)."""

    def __init__(self, db_path: str = "file_gateway.db", timeout: float = 10.0):
        self.db_path = db_path
        self.timeout = timeout

    def _get_connection(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, timeout=self.timeout)

    def init(self) -> None:
        try:
            with closing(self._get_connection()) as conn:
                conn.execute('''
                    CREATE TABLE IF NOT EXISTS users (
                        user_id VARCHAR(100) PRIMARY KEY,
                        email_address VARCHAR(255) NOT NULL
                    )
                ''')
                conn.commit()
        except sqlite3.Error as e:
            raise UserDirectoryError(f"Cannot initialize users table: {e}") from e

    def add_user(self, user_id: str, email_address: str) -> None:
        """Create or replace a user. Used to seed local environments."""
        try:
            with closing(self._get_connection()) as conn:
                conn.execute(
                    'INSERT OR REPLACE INTO users (user_id, email_address) VALUES (?, ?)',
                    (user_id, email_address),
                )
                conn.commit()
        except sqlite3.Error as e:
            raise UserDirectoryError(f"Cannot add user {user_id}: {e}") from e
        logger.info(f"Added user {user_id}")

    def resolve_owner(self, owner_id: str) -> Owner:
        try:
            with closing(self._get_connection()) as conn:
                row = conn.execute(
                    'SELECT email_address FROM users WHERE user_id = ?', (owner_id,)
                ).fetchone()
        except sqlite3.Error as e:
            logger.error(f"Error resolving owner {owner_id}: {e}")
            raise UserDirectoryError(f"Cannot query users table: {e}") from e
        if row is None:
            raise OwnerNotFoundError(owner_id)
        return Owner(user_id=owner_id, address=row[0])


class HTTPUserDirectory(UserDirectory):
    """Resolves owners through ``GET {base_url}/users/{owner_id}``.

    The users service answers with a JSON object holding ``email_address``,
    optionally wrapped in a ``data`` envelope.
    """

    def __init__(self, base_url: str, timeout: float = 5.0, session: requests.Session | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def resolve_owner(self, owner_id: str) -> Owner:
        url = f"{self.base_url}/users/{quote(owner_id, safe='')}"
        logger.info(f"Making GET request to {url}")
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"API call failed: {str(e)}")
            raise UserDirectoryError(f"Users API unreachable: {e}") from e

        if response.status_code == 404:
            raise OwnerNotFoundError(owner_id)
        try:
            response.raise_for_status()
            payload = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"API call failed: {str(e)}")
            raise UserDirectoryError(f"Bad response from users API: {e}") from e

        user = payload.get("data", payload) if isinstance(payload, dict) else None
        address = user.get("email_address") if isinstance(user, dict) else None
        if not address:
            raise OwnerNotFoundError(owner_id)
        return Owner(user_id=owner_id, address=address)

    def close(self) -> None:
        self.session.close()
