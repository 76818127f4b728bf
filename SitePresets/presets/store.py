"""
SQLite persistence for presets and their application history.

Presets are append-only records: a preset is created once, read any number of times and
eventually deleted. Ids are assigned by SQLite ``AUTOINCREMENT`` and are never reused, even
after deletion. Each real application of a preset is recorded with the previous and new
value of every setting it changed.

Every database error is surfaced as :class:`status.StoreUnavailableException`. Missing
records are reported as ``None``/``False``, not as errors.
"""

import contextlib
import dataclasses
import datetime
import enum
import logging
import pathlib
import sqlite3
from typing import Dict, Iterator, List, Optional, Tuple

from ..status import status
from .codec import SettingValue, Snapshot, SnapshotMetadata


class Table(enum.StrEnum):
    """Enum for database tables."""
    Presets = 'presets'
    PresetItems = 'preset_items'
    Applications = 'applications'
    ApplicationItems = 'application_items'


SCHEMA: Dict[Table, Dict[str, str]] = {
    Table.Presets: {
        'id': 'INTEGER PRIMARY KEY AUTOINCREMENT',
        'name': 'TEXT NOT NULL',
        'comments': 'TEXT NOT NULL',
        'author': 'TEXT NOT NULL',
        'exported_at': 'TEXT NOT NULL',
        'source_version': 'TEXT NOT NULL',
        'created_at': 'TEXT NOT NULL',
    },
    Table.PresetItems: {
        'preset_id': 'INTEGER NOT NULL',
        'position': 'INTEGER NOT NULL',
        'plugin': 'TEXT NOT NULL',
        'name': 'TEXT NOT NULL',
        'value': 'TEXT',
        'visible_value': 'TEXT NOT NULL',
    },
    Table.Applications: {
        'id': 'INTEGER PRIMARY KEY AUTOINCREMENT',
        'preset_id': 'INTEGER NOT NULL',
        'applied_at': 'TEXT NOT NULL',
    },
    Table.ApplicationItems: {
        'application_id': 'INTEGER NOT NULL',
        'position': 'INTEGER NOT NULL',
        'plugin': 'TEXT NOT NULL',
        'name': 'TEXT NOT NULL',
        'old_value': 'TEXT',
        'new_value': 'TEXT',
    },
}


def now_str() -> str:
    """Return current UTC date and time as an ISO 8601 string."""
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


@dataclasses.dataclass(frozen=True)
class Preset:
    id: int
    name: str
    snapshot: Snapshot
    created_at: str = ''


@dataclasses.dataclass(frozen=True)
class PresetSummary:
    id: int
    name: str
    created_at: str
    setting_count: int


@dataclasses.dataclass(frozen=True)
class AppliedItem:
    plugin: str
    name: str
    old_value: Optional[str]
    new_value: Optional[str]


@dataclasses.dataclass(frozen=True)
class ApplicationRecord:
    """Audit trail of one real application of a preset."""
    id: int
    preset_id: int
    applied_at: str
    items: Tuple[AppliedItem, ...] = ()


class PresetStore:
    """Preset records and application history in a single SQLite file."""

    def __init__(self, db_path: pathlib.Path) -> None:
        self.db_path: pathlib.Path = pathlib.Path(db_path)
        self._initialize_schema_if_needed()

    def __repr__(self) -> str:
        return f'<PresetStore db_path={str(self.db_path)!r}>'

    def connection(self) -> sqlite3.Connection:
        """Return a new connection to the preset database.

        Returns:
            sqlite3.Connection: Database connection object.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path), timeout=2.0)
        conn.set_progress_handler(lambda: logging.debug('Waiting on DB lock…'), 1000)
        return conn

    @contextlib.contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection that commits on success and rolls back on error.

        Raises:
            status.StoreUnavailableException: On any SQLite error.
        """
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            logging.error(f'SQLite error in preset store: {e}', exc_info=True)
            if conn:
                try:
                    conn.rollback()
                except sqlite3.Error:  # Connection already unusable
                    pass
            raise status.StoreUnavailableException(str(e)) from e
        finally:
            if conn:
                conn.close()

    def _initialize_schema_if_needed(self) -> None:
        """
        Create missing tables and verify the columns of existing ones.

        Existing data is never dropped: a table with missing columns makes the store
        unavailable instead.

        Raises:
            status.StoreUnavailableException: If the database cannot be opened or a table
                has an incompatible schema.
        """
        with self._transaction() as conn:
            for table, columns in SCHEMA.items():
                if self._table_exists_in_conn(conn, table.value):
                    cursor = conn.execute(f'PRAGMA table_info({table.value})')
                    current_columns = {row[1] for row in cursor.fetchall()}
                    missing = set(columns) - current_columns
                    if missing:
                        raise sqlite3.DatabaseError(
                            f"Table '{table.value}' is missing columns: {sorted(missing)}."
                        )
                    continue

                cols_sql = ', '.join(f'"{name}" {typedef}' for name, typedef in columns.items())
                conn.execute(f'CREATE TABLE {table.value} ({cols_sql})')
                logging.info(f"Created table '{table.value}' in {self.db_path}.")

    @classmethod
    def _table_exists_in_conn(cls, conn: sqlite3.Connection, table_name: str) -> bool:
        """Check if a table exists using an existing connection."""
        cursor = conn.execute(
            """SELECT name FROM sqlite_master WHERE type='table' AND name=?""",
            (table_name,)
        )
        return cursor.fetchone() is not None

    def create(self, snapshot: Snapshot, name: Optional[str] = None) -> int:
        """Store a snapshot as a new preset.

        Args:
            snapshot: The snapshot to store.
            name: Preset name. Defaults to the snapshot's own name.

        Returns:
            int: The new preset id.
        """
        name = name or snapshot.name
        md = snapshot.metadata
        with self._transaction() as conn:
            cursor = conn.execute(
                f'INSERT INTO {Table.Presets.value} '
                '(name, comments, author, exported_at, source_version, created_at) '
                'VALUES (?, ?, ?, ?, ?, ?)',
                (name, md.comments, md.author, md.exported_at, md.source_version, now_str())
            )
            preset_id = cursor.lastrowid
            conn.executemany(
                f'INSERT INTO {Table.PresetItems.value} '
                '(preset_id, position, plugin, name, value, visible_value) VALUES (?, ?, ?, ?, ?, ?)',
                [
                    (preset_id, idx, v.plugin, v.name, v.value, v.visible_value)
                    for idx, v in enumerate(snapshot.values)
                ]
            )
        logging.debug(f'Stored preset {preset_id} "{name}" with {len(snapshot)} settings.')
        return preset_id

    def get(self, preset_id: int) -> Optional[Preset]:
        """Return a preset by id, or None if it does not exist."""
        with self._transaction() as conn:
            row = conn.execute(
                'SELECT id, name, comments, author, exported_at, source_version, created_at '
                f'FROM {Table.Presets.value} WHERE id=?',
                (preset_id,)
            ).fetchone()
            if row is None:
                return None
            items = conn.execute(
                f'SELECT plugin, name, value, visible_value FROM {Table.PresetItems.value} '
                'WHERE preset_id=? ORDER BY position',
                (preset_id,)
            ).fetchall()

        _id, name, comments, author, exported_at, source_version, created_at = row
        # The record name wins over the exported name
        metadata = SnapshotMetadata(
            name=name,
            comments=comments,
            author=author,
            exported_at=exported_at,
            source_version=source_version,
        )
        values = tuple(SettingValue(plugin=p, name=n, value=v, visible_value=vv) for p, n, v, vv in items)
        return Preset(id=_id, name=name, snapshot=Snapshot(metadata=metadata, values=values), created_at=created_at)

    def list(self, id: Optional[int] = None, name: Optional[str] = None) -> List[PresetSummary]:
        """Return preset summaries ordered by id, optionally filtered by id and/or name."""
        clauses = []
        params = []
        if id is not None:
            clauses.append('p.id=?')
            params.append(id)
        if name is not None:
            clauses.append('p.name=?')
            params.append(name)
        where = f'WHERE {" AND ".join(clauses)}' if clauses else ''

        with self._transaction() as conn:
            rows = conn.execute(
                'SELECT p.id, p.name, p.created_at, '
                f'(SELECT COUNT(*) FROM {Table.PresetItems.value} i WHERE i.preset_id=p.id) '
                f'FROM {Table.Presets.value} p {where} ORDER BY p.id',
                params
            ).fetchall()
        return [PresetSummary(id=r[0], name=r[1], created_at=r[2], setting_count=r[3]) for r in rows]

    def delete(self, preset_id: int) -> bool:
        """Permanently delete a preset and its application history.

        Returns:
            bool: True if a preset was deleted, False if it did not exist.
        """
        with self._transaction() as conn:
            cursor = conn.execute(f'DELETE FROM {Table.Presets.value} WHERE id=?', (preset_id,))
            if cursor.rowcount == 0:
                return False
            conn.execute(f'DELETE FROM {Table.PresetItems.value} WHERE preset_id=?', (preset_id,))
            conn.execute(
                f'DELETE FROM {Table.ApplicationItems.value} WHERE application_id IN '
                f'(SELECT id FROM {Table.Applications.value} WHERE preset_id=?)',
                (preset_id,)
            )
            conn.execute(f'DELETE FROM {Table.Applications.value} WHERE preset_id=?', (preset_id,))
        logging.debug(f'Deleted preset {preset_id}.')
        return True

    def record_application(self, preset_id: int, items: List[AppliedItem]) -> int:
        """Record the settings changed by a real application of a preset.

        Returns:
            int: The new application id.
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                f'INSERT INTO {Table.Applications.value} (preset_id, applied_at) VALUES (?, ?)',
                (preset_id, now_str())
            )
            application_id = cursor.lastrowid
            conn.executemany(
                f'INSERT INTO {Table.ApplicationItems.value} '
                '(application_id, position, plugin, name, old_value, new_value) VALUES (?, ?, ?, ?, ?, ?)',
                [
                    (application_id, idx, i.plugin, i.name, i.old_value, i.new_value)
                    for idx, i in enumerate(items)
                ]
            )
        logging.debug(f'Recorded application {application_id} of preset {preset_id} ({len(items)} settings).')
        return application_id

    def application(self, application_id: int) -> Optional[ApplicationRecord]:
        """Return an application record, or None if it does not exist."""
        with self._transaction() as conn:
            row = conn.execute(
                f'SELECT id, preset_id, applied_at FROM {Table.Applications.value} WHERE id=?',
                (application_id,)
            ).fetchone()
            if row is None:
                return None
            items = conn.execute(
                f'SELECT plugin, name, old_value, new_value FROM {Table.ApplicationItems.value} '
                'WHERE application_id=? ORDER BY position',
                (application_id,)
            ).fetchall()
        return ApplicationRecord(
            id=row[0],
            preset_id=row[1],
            applied_at=row[2],
            items=tuple(AppliedItem(*i) for i in items),
        )

    def applications(self, preset_id: int) -> List[ApplicationRecord]:
        """Return the application history of a preset, oldest first."""
        with self._transaction() as conn:
            ids = [r[0] for r in conn.execute(
                f'SELECT id FROM {Table.Applications.value} WHERE preset_id=? ORDER BY id',
                (preset_id,)
            ).fetchall()]
        return [self.application(i) for i in ids]
