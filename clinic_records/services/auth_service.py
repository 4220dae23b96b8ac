import hmac
from typing import Optional

import bcrypt
from werkzeug.security import check_password_hash

from clinic_records.adapters.sqlite.auth_repo import UserRepository
from clinic_records.common.errors import ValidationError
from clinic_records.domain.user import User


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds)).decode('utf-8')


def is_bcrypt_hash(value: str) -> bool:
    return bool(value) and value.startswith('$2')


def is_werkzeug_hash(value: str) -> bool:
    return bool(value) and value.startswith(('pbkdf2:', 'scrypt:'))


class AuthService:
    """Registration and login over the users table.

    Older backups carry plaintext passwords, and some installs stored
    werkzeug (pbkdf2/scrypt) hashes. Such rows are checked the old way once
    and rewritten as a bcrypt hash after a successful login.
    """

    def __init__(self, repo: UserRepository, bcrypt_rounds: int = 12):
        self.repo = repo
        self.bcrypt_rounds = bcrypt_rounds

    def register_user(self, username: str, password: str) -> int:
        """Create a user; returns the new id, or -1 when the username is taken."""
        username = (username or '').strip()
        if not username:
            raise ValidationError("username is required", field='username')
        if not password:
            raise ValidationError("password is required", field='password')

        if self.repo.get_by_username(username):
            return -1
        return self.repo.create(username, hash_password(password, self.bcrypt_rounds))

    def login(self, username: str, password: str) -> Optional[User]:
        user = self.repo.get_by_username((username or '').strip())
        if user is None or not password:
            return None

        stored = user.password_hash
        if is_bcrypt_hash(stored):
            try:
                password_ok = bcrypt.checkpw(password.encode('utf-8'), stored.encode('utf-8'))
            except ValueError:
                # Malformed hash, treat as a failed login
                password_ok = False
        else:
            if is_werkzeug_hash(stored):
                password_ok = check_password_hash(stored, password)
            else:
                password_ok = hmac.compare_digest(stored.encode('utf-8'), password.encode('utf-8'))
            if password_ok:
                new_hash = hash_password(password, self.bcrypt_rounds)
                self.repo.update_password(user.id, new_hash)
                user.password_hash = new_hash
                print(f"[AuthService] Migrated legacy password for {user.username} to bcrypt")

        return user if password_ok else None
