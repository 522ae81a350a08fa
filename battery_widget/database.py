"""
Battery history storage using SQLite.

Handles all time-series operations including:
- Creating and managing the SQLite database
- Appending snapshots (one record per capture timestamp)
- Querying the series for rendering and export
- Deleting expired snapshots
- Recovering from a corrupt database file
"""

import logging
import sqlite3
import threading
import time
from contextlib import closing, contextmanager
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from battery_widget.errors import StoreCorruptError, StoreIOError
from battery_widget.models import ChargeState, HealthState, PlugSource, Snapshot

COLUMNS = (
    "captured_at_ms",
    "level_percent",
    "charge_state",
    "plug_source",
    "health_state",
    "temperature_deci_c",
    "voltage_mv",
    "technology",
)


def _in_clause(column: str, enum_type) -> str:
    values = ", ".join(f"'{member.value}'" for member in enum_type)
    return f"{column} IN ({values})"


# Rows that can be read back as a Snapshot
VALID_ROW = " AND ".join((
    "level_percent BETWEEN 0 AND 100",
    _in_clause("charge_state", ChargeState),
    _in_clause("plug_source", PlugSource),
    _in_clause("health_state", HealthState),
))


class TimeSeriesStore:
    """
    Append-only SQLite store of battery snapshots.

    Writes are serialized by a lock. Reads run without it: the database uses
    WAL journaling, so every read statement sees a consistent committed state
    while a write is in progress.
    """

    def __init__(self, db_path: str = "data/battery_history.db", timeout: float = 5.0):
        """
        Initialize the store.

        Args:
            db_path: Path to SQLite database file
            timeout: Seconds to wait on a locked database before failing
        """
        self.db_path = Path(db_path)
        self.timeout = timeout
        self.lock = threading.Lock()
        self.logger = logging.getLogger("BatteryWidget.Store")

        with self._errors("create data directory"):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self.lock:
            self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, timeout=self.timeout)

    def _init_db(self):
        """Create the snapshot table if it doesn't exist."""
        try:
            self._create_schema()
        except sqlite3.DatabaseError as e:
            if isinstance(e, sqlite3.OperationalError):
                raise StoreIOError(f"Cannot open store {self.db_path}: {e}") from e
            self._quarantine(e)
            self._create_schema()

    def _create_schema(self):
        with closing(self._connect()) as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS battery_snapshots (
                    captured_at_ms INTEGER PRIMARY KEY,
                    level_percent INTEGER NOT NULL,
                    charge_state TEXT NOT NULL,
                    plug_source TEXT NOT NULL,
                    health_state TEXT NOT NULL,
                    temperature_deci_c INTEGER NOT NULL,
                    voltage_mv INTEGER NOT NULL,
                    technology TEXT NOT NULL
                )
            """)
            conn.commit()

    @contextmanager
    def _errors(self, operation: str):
        """Translate sqlite and OS failures into store errors."""
        try:
            yield
        except sqlite3.OperationalError as e:
            raise StoreIOError(f"{operation} failed: {e}") from e
        except sqlite3.DatabaseError as e:
            raise StoreCorruptError(f"{operation} failed on corrupt store: {e}") from e
        except OSError as e:
            raise StoreIOError(f"{operation} failed: {e}") from e

    def _quarantine(self, error: Exception):
        """
        Move a corrupt database aside so the series restarts empty.

        Caller must hold the write lock.
        """
        suffix = f".corrupt-{int(time.time())}"
        self.logger.error(f"Store {self.db_path} is corrupt ({error}), moving it aside")

        for path in (self.db_path, Path(f"{self.db_path}-wal"), Path(f"{self.db_path}-shm")):
            if path.exists():
                path.replace(path.with_name(path.name + suffix))

    def _is_healthy(self) -> bool:
        """Whether the database file passes an integrity check."""
        try:
            with closing(self._connect()) as conn:
                row = conn.execute("PRAGMA quick_check").fetchone()
        except sqlite3.OperationalError as e:
            raise StoreIOError(f"integrity check failed: {e}") from e
        except sqlite3.DatabaseError:
            return False
        return row is not None and row[0] == "ok"

    def _recover(self, error: Exception):
        with self.lock:
            # Another caller may already have replaced the corrupt file
            if self._is_healthy():
                self.logger.info(f"Store {self.db_path} already recovered")
                return
            self._quarantine(error)
            self._create_schema()

    def append(self, snapshot: Snapshot) -> bool:
        """
        Store a snapshot.

        A snapshot whose timestamp is already stored replaces that record, so
        retried captures never produce duplicates.

        Args:
            snapshot: Snapshot to store

        Returns:
            True if a new record was added, False if an existing one was replaced

        Raises:
            StoreIOError: If the database cannot be written
        """
        try:
            return self._append(snapshot)
        except StoreCorruptError as e:
            self._recover(e)
            return self._append(snapshot)

    def _append(self, snapshot: Snapshot) -> bool:
        with self.lock, self._errors("append"), closing(self._connect()) as conn:
            exists = conn.execute(
                "SELECT 1 FROM battery_snapshots WHERE captured_at_ms = ?",
                (snapshot.captured_at_millis,),
            ).fetchone()

            conn.execute("""
                INSERT OR REPLACE INTO battery_snapshots (
                    captured_at_ms, level_percent, charge_state, plug_source,
                    health_state, temperature_deci_c, voltage_mv, technology
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                snapshot.captured_at_millis,
                snapshot.level_percent,
                snapshot.charge_state.value,
                snapshot.plug_source.value,
                snapshot.health_state.value,
                snapshot.temperature_deci_c,
                snapshot.voltage_millivolts,
                snapshot.technology,
            ))
            conn.commit()

        if exists:
            self.logger.debug(f"Coalesced snapshot at {snapshot.captured_at_millis}")
        return exists is None

    def _query(self, operation: str, sql: str, params: tuple = ()) -> List[tuple]:
        """
        Run a read query.

        A corrupt store is reset and read as empty.
        """
        try:
            with self._errors(operation), closing(self._connect()) as conn:
                return conn.execute(sql, params).fetchall()
        except StoreCorruptError as e:
            self._recover(e)
            return []

    def _to_snapshots(self, rows: List[tuple]) -> List[Snapshot]:
        snapshots = []
        for row in rows:
            try:
                snapshots.append(Snapshot(
                    captured_at_millis=row[0],
                    level_percent=row[1],
                    charge_state=ChargeState(row[2]),
                    plug_source=PlugSource(row[3]),
                    health_state=HealthState(row[4]),
                    temperature_deci_c=row[5],
                    voltage_millivolts=row[6],
                    technology=row[7],
                ))
            except (ValueError, TypeError) as e:
                self.logger.warning(f"Skipping unreadable record at {row[0]}: {e}")
        return snapshots

    def latest(self) -> Optional[Snapshot]:
        """
        Get the most recent snapshot.

        Returns:
            Latest readable snapshot, or None if the store has none
        """
        rows = self._query("latest", f"""
            SELECT {", ".join(COLUMNS)} FROM battery_snapshots
            WHERE {VALID_ROW}
            ORDER BY captured_at_ms DESC
            LIMIT 1
        """)
        snapshots = self._to_snapshots(rows)
        return snapshots[0] if snapshots else None

    def range(self, since_millis: int) -> List[Snapshot]:
        """
        Get snapshots captured at or after a time, oldest first.

        Args:
            since_millis: Lower bound in epoch milliseconds

        Returns:
            List of snapshots in ascending time order
        """
        rows = self._query("range", f"""
            SELECT {", ".join(COLUMNS)} FROM battery_snapshots
            WHERE captured_at_ms >= ?
            ORDER BY captured_at_ms ASC
        """, (since_millis,))
        return self._to_snapshots(rows)

    def between(self, start_millis: int, end_millis: int) -> List[Snapshot]:
        """
        Get snapshots captured within an inclusive window, oldest first.

        Args:
            start_millis: Window start in epoch milliseconds
            end_millis: Window end in epoch milliseconds

        Returns:
            List of snapshots in ascending time order
        """
        rows = self._query("between", f"""
            SELECT {", ".join(COLUMNS)} FROM battery_snapshots
            WHERE captured_at_ms BETWEEN ? AND ?
            ORDER BY captured_at_ms ASC
        """, (start_millis, end_millis))
        return self._to_snapshots(rows)

    def recent(self, limit: int) -> List[Snapshot]:
        """
        Get the most recent N snapshots, newest first.

        Args:
            limit: Maximum number of snapshots to return

        Returns:
            List of snapshots in descending time order
        """
        if limit <= 0:
            return []

        rows = self._query("recent", f"""
            SELECT {", ".join(COLUMNS)} FROM battery_snapshots
            ORDER BY captured_at_ms DESC
            LIMIT ?
        """, (limit,))
        return self._to_snapshots(rows)

    def delete_older_than(self, cutoff_millis: int) -> int:
        """
        Delete snapshots captured before a cutoff.

        Args:
            cutoff_millis: Snapshots with a timestamp below this are removed

        Returns:
            Number of snapshots deleted

        Raises:
            StoreIOError: If the database cannot be written
        """
        try:
            with self.lock, self._errors("delete"), closing(self._connect()) as conn:
                cursor = conn.execute(
                    "DELETE FROM battery_snapshots WHERE captured_at_ms < ?",
                    (cutoff_millis,),
                )
                conn.commit()
                deleted = cursor.rowcount
        except StoreCorruptError as e:
            self._recover(e)
            return 0

        if deleted:
            self.logger.info(f"Deleted {deleted} snapshots older than {cutoff_millis}")
        return deleted

    def clear(self) -> int:
        """
        Delete every snapshot.

        Returns:
            Number of snapshots deleted
        """
        with self.lock, self._errors("clear"), closing(self._connect()) as conn:
            cursor = conn.execute("DELETE FROM battery_snapshots")
            conn.commit()
            deleted = cursor.rowcount
            conn.execute("VACUUM")

        self.logger.info(f"Cleared {deleted} snapshots")
        return deleted

    def count(self) -> int:
        """Number of stored snapshots."""
        rows = self._query("count", "SELECT COUNT(*) FROM battery_snapshots")
        return rows[0][0] if rows else 0

    def get_stats(self) -> Dict:
        """
        Get store statistics.

        Returns:
            Dictionary with snapshot count, time bounds and file size
        """
        rows = self._query("stats", """
            SELECT COUNT(*), MIN(captured_at_ms), MAX(captured_at_ms)
            FROM battery_snapshots
        """)
        count, oldest, newest = rows[0] if rows else (0, None, None)

        file_size_mb = self.db_path.stat().st_size / (1024 * 1024) if self.db_path.exists() else 0

        return {
            "snapshot_count": count,
            "oldest_millis": oldest,
            "newest_millis": newest,
            "file_size_mb": round(file_size_mb, 2),
        }

    def to_dataframe(self, since_millis: int = 0) -> pd.DataFrame:
        """
        Load snapshots into a DataFrame for export.

        Args:
            since_millis: Lower bound in epoch milliseconds

        Returns:
            pandas DataFrame ordered by capture time, with a `captured_at`
            datetime column added
        """
        query = f"""
            SELECT {", ".join(COLUMNS)} FROM battery_snapshots
            WHERE captured_at_ms >= ?
            ORDER BY captured_at_ms ASC
        """

        with self._errors("export"), closing(self._connect()) as conn:
            df = pd.read_sql_query(query, conn, params=(since_millis,))

        df.insert(0, "captured_at", pd.to_datetime(df["captured_at_ms"], unit="ms"))
        return df
