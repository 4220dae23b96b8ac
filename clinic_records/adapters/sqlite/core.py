import os
import pkgutil
import sqlite3
import sys
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from clinic_records.common.errors import (
    NestedTransactionError,
    StoreUnavailableError,
    ValidationError,
)
from clinic_records.common.utils import now_millis

# Every table the data layer (and the CSV backups) knows about, in restore order.
TABLES = ('users', 'patients', 'visits', 'payments')

STORE_EXTENSION_KEY = 'clinic_store'


@dataclass
class RunResult:
    changes: int
    last_id: Optional[int]


def _load_schema_text() -> str:
    """Load bundled schema.sql (works in source and frozen modes)."""
    try:
        schema_bytes = pkgutil.get_data('clinic_records.adapters.sqlite', 'schema.sql')
    except (OSError, ImportError):
        schema_bytes = None

    if schema_bytes:
        return schema_bytes.decode('utf-8')

    candidates = [os.path.join(os.path.dirname(__file__), 'schema.sql')]
    meipass = getattr(sys, '_MEIPASS', None)
    if meipass:
        candidates.append(os.path.join(meipass, 'clinic_records', 'adapters', 'sqlite', 'schema.sql'))
        candidates.append(os.path.join(meipass, 'schema.sql'))

    for schema_path in candidates:
        if os.path.exists(schema_path):
            with open(schema_path, 'r', encoding='utf-8') as f:
                return f.read()

    raise FileNotFoundError('schema.sql not found in package data or fallback locations')


def _enable_wal_mode(db) -> None:
    """Keep committed data safe if the process dies mid-write."""
    try:
        mode = db.execute("PRAGMA journal_mode=WAL").fetchone()[0]
        db.execute("PRAGMA synchronous=NORMAL")
        # Referential integrity is enforced by the repositories, not by sqlite.
        db.execute("PRAGMA foreign_keys=OFF")
        print(f"[StorageEngine] Journal mode: {mode}")
    except sqlite3.Error as e:
        # Non-critical, the store still works in rollback-journal mode.
        print(f"[StorageEngine] Failed to enable WAL mode: {e}")


def _check_integrity(db) -> bool:
    try:
        status = db.execute("PRAGMA integrity_check").fetchone()[0]
    except sqlite3.Error as e:
        print(f"[StorageEngine] Integrity check error: {e}")
        return True
    if status != 'ok':
        print(f"[StorageEngine] WARNING: database integrity check failed - {status}")
        return False
    return True


def _ensure_indexes(db) -> None:
    db.execute("CREATE INDEX IF NOT EXISTS idx_visits_patient_id ON visits (patientId)")
    db.execute("CREATE INDEX IF NOT EXISTS idx_payments_visit_id ON payments (visitId)")
    db.execute("CREATE INDEX IF NOT EXISTS idx_patients_created_at ON patients (createdAt DESC)")


class StorageEngine:
    """Owns the single sqlite connection used by every repository.

    All statements go through one re-entrant lock, so a transaction in flight
    on one thread makes every other caller wait until it commits or rolls back.
    """

    def __init__(self, db_path: str, timeout: float = 5.0,
                 admin_password: str = '1234', bcrypt_rounds: int = 12):
        self.db_path = db_path
        self.timeout = timeout
        self.admin_password = admin_password
        self.bcrypt_rounds = bcrypt_rounds
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._in_transaction = False
        self._columns: Dict[str, List[str]] = {}
        self.healthy = True

    # ---- lifecycle ----
    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> 'StorageEngine':
        with self._lock:
            if self._conn is not None:
                return self

            if self.db_path != ':memory:':
                db_dir = os.path.dirname(os.path.abspath(self.db_path))
                os.makedirs(db_dir, exist_ok=True)

            # isolation_level=None: the engine issues BEGIN/COMMIT itself.
            db = sqlite3.connect(
                self.db_path,
                timeout=self.timeout,
                isolation_level=None,
                check_same_thread=False,
            )
            db.row_factory = sqlite3.Row
            try:
                _enable_wal_mode(db)
                self.healthy = _check_integrity(db)
                db.executescript(_load_schema_text())
                _ensure_indexes(db)
                self._seed_default_user(db)
            except Exception:
                db.close()
                raise

            self._conn = db
            self._columns.clear()
            print(f"[StorageEngine] Opened database: {self.db_path}")
            return self

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None
            self._in_transaction = False
            print("[StorageEngine] Database closed")

    def _seed_default_user(self, db) -> None:
        exists = db.execute(
            "SELECT 1 FROM users WHERE id = 1 OR username = 'admin'"
        ).fetchone()
        if exists:
            return
        from clinic_records.services.auth_service import hash_password
        db.execute(
            "INSERT OR IGNORE INTO users (id, username, password, createdAt) VALUES (1, 'admin', ?, ?)",
            (hash_password(self.admin_password, self.bcrypt_rounds), now_millis()),
        )
        print("[StorageEngine] Seeded default admin user")

    def _require_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreUnavailableError(f"Database not initialized: {self.db_path}")
        return self._conn

    # ---- statements ----
    def run(self, sql: str, params: Sequence[Any] = ()) -> RunResult:
        with self._lock:
            cursor = self._require_connection().execute(sql, tuple(params))
            return RunResult(changes=cursor.rowcount, last_id=cursor.lastrowid)

    def query(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        with self._lock:
            rows = self._require_connection().execute(sql, tuple(params)).fetchall()
            return [dict(r) for r in rows]

    def query_one(self, sql: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._require_connection().execute(sql, tuple(params)).fetchone()
            return dict(row) if row else None

    def scalar(self, sql: str, params: Sequence[Any] = ()):
        with self._lock:
            row = self._require_connection().execute(sql, tuple(params)).fetchone()
            return row[0] if row else None

    # ---- transactions ----
    def transaction(self, work: Optional[Callable[[], Any]] = None):
        """Run ``work`` between BEGIN and COMMIT and return its result.

        Any exception from ``work`` or from COMMIT triggers a ROLLBACK and is
        re-raised unchanged. Without ``work`` this returns a context manager::

            with store.transaction():
                store.run(...)
                store.run(...)

        Transactions do not nest: calling this from inside ``work`` raises
        NestedTransactionError.
        """
        if work is None:
            return self._transaction_scope()
        with self._transaction_scope():
            return work()

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    @contextmanager
    def _transaction_scope(self):
        with self._lock:
            db = self._require_connection()
            if self._in_transaction:
                raise NestedTransactionError("transaction() cannot be called inside another transaction")
            db.execute("BEGIN")
            self._in_transaction = True
            try:
                yield self
                db.execute("COMMIT")
            except BaseException as exc:
                self._rollback(db, exc)
                raise
            finally:
                self._in_transaction = False

    def _rollback(self, db, cause: BaseException) -> None:
        try:
            db.execute("ROLLBACK")
            print(f"[StorageEngine] Transaction rolled back: {cause!r}")
        except sqlite3.Error as e:
            print(f"[StorageEngine] Failed to roll back transaction: {e}")

    # ---- identifiers ----
    def table_columns(self, table: str) -> List[str]:
        """Column names of a known table, in declaration order."""
        if table not in TABLES:
            raise ValidationError(f"Unknown table: {table}", field='table')
        if table not in self._columns:
            rows = self.query(f"PRAGMA table_info({table})")
            self._columns[table] = [r['name'] for r in rows]
        return self._columns[table]

    # ---- diagnostics ----
    def health_check(self) -> Dict[str, Any]:
        status: Dict[str, Any] = {'open': self.is_open, 'path': self.db_path}
        if not self.is_open:
            return status
        status['journal_mode'] = self.scalar("PRAGMA journal_mode")
        status['integrity'] = self.scalar("PRAGMA integrity_check")
        status['counts'] = {t: self.scalar(f"SELECT COUNT(*) FROM {t}") for t in TABLES}
        return status


def get_store() -> StorageEngine:
    """Return the process-wide store registered on the current Flask app."""
    from flask import current_app

    store = current_app.extensions.get(STORE_EXTENSION_KEY)
    if store is None or not store.is_open:
        raise StoreUnavailableError("Database store is not open")
    return store
