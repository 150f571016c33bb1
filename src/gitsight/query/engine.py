"""SQL query adapter over the CSV tables.

Tables of every registered database are loaded into one in-memory SQLite
database under the name ``"<db>.<kind>"``, so statements read them as
``SELECT ... FROM "db.commit"`` (SQLite also accepts ``FROM 'db.commit'``).
The temporal and streak functions are registered on every DBAPI connection.
"""

import logging
import threading
from pathlib import Path
from typing import Optional

import pandas as pd
from sqlalchemy import create_engine, event
from sqlalchemy.exc import DBAPIError
from sqlalchemy.pool import StaticPool

from ..errors import FunctionArgumentError, GitSightError
from ..models.records import RecordKind
from ..storage.table_store import TableStore
from .streak import AGGREGATES
from .temporal import Clock, FunctionSpec, TemporalFunctions

logger = logging.getLogger(__name__)


class QueryError(GitSightError):
    """Raised when a statement fails for reasons other than a function argument."""


class QueryEngine:
    """Run SQL over registered databases with the GitSight function catalog.

    Functions raising inside SQLite surface as a generic "user-defined function
    raised exception" error. The engine records the original exception and
    re-raises it, so callers see the ``FunctionArgumentError`` that caused the
    failure.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.functions = TemporalFunctions(clock=clock)
        self.tables: dict[str, list[str]] = {}
        self._errors = threading.local()

        # A single shared connection keeps the in-memory database alive between statements
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        event.listen(self.engine, "connect", self._register_functions)

    def _register_functions(self, dbapi_connection, connection_record) -> None:
        for spec in self.functions.specs():
            dbapi_connection.create_function(
                spec.name,
                spec.num_args,
                self._capturing(spec),
                deterministic=spec.deterministic,
            )
        for aggregate in AGGREGATES:
            dbapi_connection.create_aggregate(aggregate.name, 1, self._capturing_aggregate(aggregate))

    def _remember(self, error: Exception) -> None:
        self._errors.last = error

    def _capturing(self, spec: FunctionSpec):
        func = spec.func

        def call(*args):
            try:
                return func(*args)
            except FunctionArgumentError as e:
                self._remember(e)
                raise

        call.__name__ = spec.name
        return call

    def _capturing_aggregate(self, aggregate: type):
        remember = self._remember

        class Capturing(aggregate):
            def step(self, value):
                try:
                    super().step(value)
                except FunctionArgumentError as e:
                    remember(e)
                    raise

        Capturing.__name__ = aggregate.__name__
        return Capturing

    @staticmethod
    def catalog() -> list[tuple[str, str]]:
        """Return (name, description) for every scalar function and aggregate."""
        entries = {}
        for spec in TemporalFunctions().specs():
            if spec.description:
                entries.setdefault(spec.name, spec.description)
        for aggregate in AGGREGATES:
            doc = (aggregate.__doc__ or "").strip().splitlines()
            entries[aggregate.name] = doc[0] if doc else ""
        return sorted(entries.items())

    def register_database(self, name: str, directory: Path) -> list[str]:
        """Load every table present in ``directory`` as ``"<name>.<kind>"``.

        Returns:
            Names of the tables registered
        """
        store = TableStore(Path(directory), name)
        registered = []
        for kind in RecordKind:
            if not store.exists(kind):
                continue
            df = store.read_table(kind)
            table_name = f"{name}.{kind.value}"
            df.to_sql(table_name, con=self.engine, if_exists="replace", index=False)
            registered.append(table_name)
            logger.debug(f"Registered {table_name} ({len(df)} rows)")

        if not registered:
            logger.warning(f"No tables found for database '{name}' in {directory}")
        self.tables[name] = registered
        return registered

    def execute(self, sql: str) -> pd.DataFrame:
        """Run one statement and return its result set.

        Raises:
            FunctionArgumentError: If a function in the statement got a malformed argument
            QueryError: If the statement fails for any other reason
        """
        self._errors.last = None
        try:
            with self.engine.begin() as conn:
                result = conn.exec_driver_sql(sql)
                if not result.returns_rows:
                    return pd.DataFrame()
                return pd.DataFrame(result.fetchall(), columns=list(result.keys()))
        except DBAPIError as e:
            cause = getattr(self._errors, "last", None)
            if cause is not None:
                raise cause from e
            raise QueryError(str(e.orig) if e.orig is not None else str(e)) from e
