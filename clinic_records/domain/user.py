from dataclasses import dataclass
from typing import Optional


@dataclass
class User:
    id: int
    username: str
    password_hash: str
    created_at: Optional[int] = None

    @property
    def is_admin(self):
        return self.username == 'admin'
