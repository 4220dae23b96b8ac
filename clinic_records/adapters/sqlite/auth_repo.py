from typing import List, Optional

from clinic_records.adapters.sqlite.core import StorageEngine
from clinic_records.common.utils import now_millis
from clinic_records.domain.user import User


class UserRepository:
    """Low-level DB operations for users."""

    def __init__(self, store: StorageEngine):
        self.store = store

    def get_by_username(self, username: str) -> Optional[User]:
        row = self.store.query_one("SELECT * FROM users WHERE username = ?", (username,))
        return self._map_row(row) if row else None

    def get_by_id(self, user_id: int) -> Optional[User]:
        row = self.store.query_one("SELECT * FROM users WHERE id = ?", (user_id,))
        return self._map_row(row) if row else None

    def get_all(self) -> List[User]:
        rows = self.store.query("SELECT * FROM users ORDER BY id ASC")
        return [self._map_row(r) for r in rows]

    def create(self, username: str, password_hash: str) -> int:
        result = self.store.run(
            "INSERT INTO users (username, password, createdAt) VALUES (?, ?, ?)",
            (username, password_hash, now_millis()),
        )
        return result.last_id

    def update_password(self, user_id: int, password_hash: str) -> bool:
        result = self.store.run(
            "UPDATE users SET password = ? WHERE id = ?",
            (password_hash, user_id),
        )
        return result.changes == 1

    def _map_row(self, row) -> User:
        return User(
            id=row['id'],
            username=row['username'],
            password_hash=row['password'] or '',
            created_at=row['createdAt'],
        )
