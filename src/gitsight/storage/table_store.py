"""CSV table storage for extracted records.

One directory per database holds one CSV file per record kind
(``commit.csv``, ``change.csv``, ``tag.csv``, ``snapshot.csv``, ``active.csv``).
Every file starts with a header row in ``TABLE_COLUMNS`` order.

There is no internal locking. Callers must guarantee a single writer per
destination file; the extraction batch does so by writing from one thread.
"""

import csv
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Optional

import pandas as pd

from ..errors import PersistenceError
from ..models.records import INTEGER_COLUMNS, TABLE_COLUMNS, Record, RecordKind, to_row

logger = logging.getLogger(__name__)

EXTRACTED_KINDS = (RecordKind.COMMIT, RecordKind.CHANGE, RecordKind.TAG, RecordKind.SNAPSHOT)


class TableStore:
    """Append-only CSV tables in one database directory."""

    def __init__(self, directory: Path, name: Optional[str] = None):
        self.directory = Path(directory)
        self.name = name or self.directory.name

    def path_for(self, kind: RecordKind) -> Path:
        return self.directory / f"{kind.value}.csv"

    def reset(self, kinds: Iterable[RecordKind] = EXTRACTED_KINDS) -> None:
        """Truncate the given tables and write their header rows.

        WHY: A run starts from empty tables and appends every record it
        extracts, so re-running over identical history reproduces the same
        record set instead of duplicating it.
        """
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            for kind in kinds:
                with open(self.path_for(kind), "w", newline="", encoding="utf-8") as f:
                    csv.writer(f, quoting=csv.QUOTE_MINIMAL).writerow(TABLE_COLUMNS[kind])
        except OSError as e:
            raise PersistenceError(f"Cannot initialize tables in {self.directory}: {e}") from e

    def append(self, records: Iterable[Record]) -> int:
        """Append records to their tables, grouped by kind.

        Tables that do not exist yet are created with a header row.

        Returns:
            Number of records written
        """
        by_kind: dict[RecordKind, list[tuple]] = {}
        for record in records:
            by_kind.setdefault(record.kind, []).append(to_row(record))

        written = 0
        for kind, rows in by_kind.items():
            path = self.path_for(kind)
            try:
                self.directory.mkdir(parents=True, exist_ok=True)
                needs_header = not path.exists() or path.stat().st_size == 0
                with open(path, "a", newline="", encoding="utf-8") as f:
                    writer = csv.writer(f, quoting=csv.QUOTE_MINIMAL)
                    if needs_header:
                        writer.writerow(TABLE_COLUMNS[kind])
                    writer.writerows(rows)
            except OSError as e:
                raise PersistenceError(f"Cannot write {path}: {e}") from e
            written += len(rows)
            logger.debug(f"Appended {len(rows)} rows to {path}")
        return written

    def write(self, kind: RecordKind, records: Iterable[Record]) -> int:
        """Replace a whole table with ``records``."""
        self.reset([kind])
        return self.append(records)

    def exists(self, kind: RecordKind) -> bool:
        return self.path_for(kind).is_file()

    def read_table(self, kind: RecordKind) -> pd.DataFrame:
        """Load a table as a DataFrame: count columns as integers, the rest as strings.

        Raises:
            PersistenceError: If the table is missing or unreadable
        """
        path = self.path_for(kind)
        columns = TABLE_COLUMNS[kind]
        dtypes = {c: ("int64" if c in INTEGER_COLUMNS else "string") for c in columns}
        try:
            df = pd.read_csv(path, dtype=dtypes, keep_default_na=False, encoding="utf-8")
        except FileNotFoundError as e:
            raise PersistenceError(f"Table {kind.value} not found in {self.directory}") from e
        except (OSError, ValueError, pd.errors.ParserError) as e:
            raise PersistenceError(f"Cannot read {path}: {e}") from e

        if tuple(df.columns) != columns:
            raise PersistenceError(
                f"Unexpected header in {path}: {list(df.columns)} (expected {list(columns)})"
            )
        return df
