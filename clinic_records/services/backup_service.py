"""
CSV backup and restore.

Each table is exported as a header row of column names followed by one row
per record. Restores upsert by primary key and isolate failures per row, so a
single bad line never aborts the rest of the file.
"""

import csv
import io
import os
import shutil
import sqlite3
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from werkzeug.utils import secure_filename

from clinic_records.adapters.sqlite.core import TABLES, StorageEngine
from clinic_records.adapters.sqlite.payments_repo import recalculate_balance
from clinic_records.common.errors import (
    ImportFormatError,
    ImportRowError,
    NoDataError,
    ValidationError,
)
from clinic_records.common.utils import backup_timestamp

BACKUP_FOLDER_PREFIX = 'Backups-'

# Exported notes and comments can exceed the csv module's default field limit.
csv.field_size_limit(min(sys.maxsize, 2 ** 31 - 1))

# child table -> (foreign key column, parent table)
_PARENTS = {
    'visits': ('patientId', 'patients'),
    'payments': ('visitId', 'visits'),
}


@dataclass
class ImportResult:
    imported: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class ExportAllResult:
    folder: Path
    written: Dict[str, Path] = field(default_factory=dict)
    failed: Dict[str, str] = field(default_factory=dict)


def backup_filename(table: str, timestamp: Optional[str] = None) -> str:
    return f"{table}_backup_{timestamp or backup_timestamp()}.csv"


def table_for_filename(filename: str) -> str:
    """Resolve the target table from a backup file name such as ``patients_backup_....csv``."""
    name = os.path.basename(filename or '').lower()
    for table in TABLES:
        if name == table or name.startswith(f"{table}_") or name.startswith(f"{table}."):
            return table
    raise ImportFormatError(
        "Cannot determine table from filename. Use users_, patients_, visits_ or payments_ prefix.",
        field='filename',
    )


class _LineSink:
    """File-like target that hands each formatted CSV record back to the caller."""

    def write(self, text):
        return text


def rows_to_csv(rows: List[dict]) -> str:
    r"""Format rows as CSV with ``\n`` record endings.

    The writer is built with a ``\r\n`` terminator so QUOTE_MINIMAL quotes any
    field holding either character; that terminator is then swapped for ``\n``.
    """
    columns = list(rows[0].keys())
    writer = csv.writer(_LineSink(), quoting=csv.QUOTE_MINIMAL, lineterminator='\r\n')
    lines = [writer.writerow(columns)[:-2]]
    for row in rows:
        lines.append(writer.writerow(['' if row.get(col) is None else row.get(col) for col in columns])[:-2])
    return '\n'.join(lines) + '\n'


class BackupService:
    def __init__(self, store: StorageEngine, backup_folder: Optional[str] = None):
        self.store = store
        self.backup_dir = Path(backup_folder) if backup_folder else None

    # ---- export ----
    def export_table(self, table: str) -> str:
        self.store.table_columns(table)  # allow-list check
        rows = self.store.query(f"SELECT * FROM {table} ORDER BY id")
        if not rows:
            raise NoDataError(f"No data found in {table}")
        return rows_to_csv(rows)

    def save_table_backup(self, table: str, folder: Optional[Path] = None) -> Path:
        text = self.export_table(table)
        folder = Path(folder) if folder else self._new_backup_folder()
        folder.mkdir(parents=True, exist_ok=True)
        path = folder / backup_filename(table)
        with open(path, 'w', encoding='utf-8', newline='') as f:
            f.write(text)
        print(f"[BackupService] Backup saved: {path}")
        return path

    def export_all(self, folder: Optional[Path] = None) -> ExportAllResult:
        """Write every table into one ``Backups-<timestamp>`` folder.

        A table that cannot be exported (for instance an empty one) is
        recorded in ``failed`` and the remaining tables are still written.
        """
        result = ExportAllResult(folder=Path(folder) if folder else self._new_backup_folder())
        for table in TABLES:
            try:
                result.written[table] = self.save_table_backup(table, result.folder)
            except NoDataError as e:
                result.failed[table] = str(e)
                print(f"[BackupService] Skipped {table}: {e}")
        return result

    # ---- import ----
    def import_table(self, table: str, text: str) -> ImportResult:
        columns = self.store.table_columns(table)
        records = self._parse(text)
        header = [h.strip() for h in records[0]]

        unknown = [h for h in header if h not in columns]
        if unknown:
            raise ImportFormatError(f"Unknown column(s) for {table}: {', '.join(unknown)}", field='header')

        sql = (
            f"INSERT OR REPLACE INTO {table} ({', '.join(header)}) "
            f"VALUES ({', '.join('?' for _ in header)})"
        )
        result = ImportResult()
        touched_visits = set()

        for row_number, values in records[1:]:
            try:
                params = self._row_params(table, header, values, row_number)
                previous_visit = self._stored_visit_id(table, header, params)
                run = self.store.run(sql, params)
            except (ImportRowError, sqlite3.Error) as e:
                self._record_failure(result, row_number, e)
                continue
            result.imported += 1
            touched_visits.update(self._visits_to_recompute(table, header, params, run, previous_visit))

        if touched_visits:
            def recompute():
                for visit_id in touched_visits:
                    recalculate_balance(self.store, visit_id)
            self.store.transaction(recompute)

        print(f"[BackupService] Imported {table}: {result.imported} ok, {result.failed} failed")
        return result

    @staticmethod
    def _row_id(header: List[str], params: List):
        return params[header.index('id')] if 'id' in header else None

    def _stored_visit_id(self, table: str, header: List[str], params: List):
        """visitId a payments row held before the upsert replaces it."""
        payment_id = self._row_id(header, params)
        if table != 'payments' or payment_id is None:
            return None
        return self.store.scalar("SELECT visitId FROM payments WHERE id = ?", (payment_id,))

    def _visits_to_recompute(self, table, header, params, run, previous_visit):
        """Visits whose totalPaid/balance must be derived again after this row.

        An upserted payment can leave its old visit, and an upserted visit
        carries totals that may not match the payments already stored for it.
        """
        if table == 'visits':
            visit_id = self._row_id(header, params)
            return [visit_id if visit_id is not None else run.last_id]
        if table == 'payments':
            visits = [previous_visit]
            if 'visitId' in header:
                visits.append(params[header.index('visitId')])
            return [v for v in visits if v is not None]
        return []

    def import_file(self, path, table: Optional[str] = None) -> ImportResult:
        path = Path(path)
        table = table or table_for_filename(path.name)
        with open(path, 'r', encoding='utf-8', newline='') as f:
            return self.import_table(table, f.read())

    def _parse(self, text: str):
        """Return [header, (row_number, values), ...]; blank records are skipped."""
        if text.startswith('\ufeff'):
            text = text[1:]
        reader = csv.reader(io.StringIO(text, newline=''))
        records = []
        try:
            for values in reader:
                if not values or (len(values) == 1 and not values[0].strip()):
                    continue
                if not records:
                    records.append(values)
                else:
                    records.append((len(records) + 1, values))
        except csv.Error as e:
            raise ImportFormatError(f"CSV could not be parsed near line {reader.line_num}: {e}") from e
        if len(records) < 2:
            raise ImportFormatError("CSV file is empty or invalid")
        return records

    def _row_params(self, table: str, header: List[str], values: List[str], row_number: int):
        if len(values) != len(header):
            raise ImportRowError(
                row_number,
                f"Column count mismatch (expected {len(header)}, got {len(values)})",
            )
        params = [None if v == '' else v for v in values]

        if table in _PARENTS:
            fk_column, parent = _PARENTS[table]
            if fk_column in header:
                parent_id = params[header.index(fk_column)]
                if parent_id is None or self.store.scalar(
                    f"SELECT COUNT(*) FROM {parent} WHERE id = ?", (parent_id,)
                ) == 0:
                    raise ImportRowError(row_number, f"{fk_column} {parent_id} does not exist in {parent}")
        return params

    @staticmethod
    def _record_failure(result: ImportResult, row_number: int, error: Exception) -> None:
        result.failed += 1
        message = str(error) if isinstance(error, ImportRowError) else f"Row {row_number}: {error}"
        result.errors.append(message)
        print(f"[BackupService] Error importing row {row_number}: {error}")

    # ---- files ----
    def _require_backup_dir(self) -> Path:
        if self.backup_dir is None:
            raise ValidationError("No backup folder configured", field='backup_folder')
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        return self.backup_dir

    def _new_backup_folder(self) -> Path:
        return self._require_backup_dir() / f"{BACKUP_FOLDER_PREFIX}{backup_timestamp()}"

    def list_backup_files(self) -> List[str]:
        """CSV backups under the backup folder as relative paths, most recent first."""
        root = self._require_backup_dir()
        files = sorted(root.rglob('*.csv'), key=lambda f: f.stat().st_mtime, reverse=True)
        return [f.relative_to(root).as_posix() for f in files]

    def resolve_backup_file(self, name: str) -> Path:
        root = self._require_backup_dir()
        parts = [secure_filename(p) for p in Path(name).parts]
        if not parts or not all(parts):
            raise ValidationError(f"Invalid backup file name: {name}", field='name')
        return root.joinpath(*parts)

    def delete_backup_file(self, name: str) -> bool:
        path = self.resolve_backup_file(name)
        if not path.exists():
            return False
        path.unlink()
        return True

    def cleanup_old_backups(self, keep_count: int = 4) -> List[str]:
        """Keep only the newest ``keep_count`` Backups-* folders."""
        root = self._require_backup_dir()
        folders = sorted(
            (d for d in root.glob(f'{BACKUP_FOLDER_PREFIX}*') if d.is_dir()),
            key=lambda d: d.name,
            reverse=True,
        )
        removed = []
        for old in folders[keep_count:]:
            shutil.rmtree(old)
            removed.append(old.name)
            print(f"[BackupService] Removed old backup: {old.name}")
        return removed
