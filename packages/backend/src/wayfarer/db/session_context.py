"""Session context binding for row-level security.

Learn: PostgreSQL RLS policies on row-secured tables compare each row's
owner_id with a per-connection setting (`app.current_account_id`). This
module writes that setting every time a connection is handed out:

    engine ──connect()──▶ engine_connect event ──▶ bind account id (or clear)
                                                  ──▶ application queries

Which account to bind is passed explicitly: `bind_engine(engine, principal)`
returns a view of the same engine (same pool) carrying the account id as an
execution option. The event listener reads the option back off the new
connection. Nothing reads request globals.

Three rules:
1. It fires on every checkout, sync or async — pooled connections outlive
   requests, so a previous request's identity must never leak through.
2. No principal → the setting is cleared, and row-secured tables return
   zero rows. Anonymous endpoints must not touch them.
3. If the bind statement fails, the connection is invalidated and
   SessionBindingError propagates. We never hand out a half-bound
   connection.

SQLite (dev + tests) has no RLS. There the account id goes into a TEMP
table, and `emulate_row_security` adds the policy's predicate to ORM
reads of row-secured entities, reading the id back from that table.
"""

import uuid
from functools import partial
from typing import Optional, Union

import structlog
from sqlalchemy import column, event, func, select, table, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.orm import ORMExecuteState, with_loader_criteria

from wayfarer.auth.principal import Principal

logger = structlog.get_logger()

ACCOUNT_OPTION = "wayfarer_account_id"

# Per-dialect statements. PostgreSQL uses a custom GUC read by the RLS
# policies; SQLite has no session variables, so a connection-local TEMP
# table stands in for them (dev + tests).
_DIALECT_STATEMENTS = {
    "postgresql": {
        "prepare": [],
        "bind": ["SELECT set_config(:name, :value, false)"],
        "clear": ["SELECT set_config(:name, '', false)"],
    },
    "sqlite": {
        "prepare": [
            "CREATE TEMP TABLE IF NOT EXISTS session_context "
            "(name TEXT PRIMARY KEY, value TEXT NOT NULL)"
        ],
        "bind": [
            "INSERT OR REPLACE INTO temp.session_context (name, value) "
            "VALUES (:name, :value)"
        ],
        "clear": ["DELETE FROM temp.session_context WHERE name = :name"],
    },
}

# Dialects whose database enforces the row policies itself.
NATIVE_ROW_SECURITY = frozenset({"postgresql"})

_session_context = table(
    "session_context", column("name"), column("value"), schema="temp"
)


class SessionBindingError(Exception):
    """The session-context statement failed; the connection was discarded."""


class SessionContextBinder:
    """Stamps the current account id onto every checked-out connection."""

    def __init__(
        self,
        variable: str = "app.current_account_id",
        statements: Optional[dict[str, dict[str, list[str]]]] = None,
    ):
        self.variable = variable
        self.statements = statements or _DIALECT_STATEMENTS

    def install(self, engine: Union[Engine, AsyncEngine]) -> None:
        """Register the connect listener on an engine (sync or async)."""
        sync_engine = getattr(engine, "sync_engine", engine)
        if sync_engine.dialect.name not in self.statements:
            raise SessionBindingError(
                f"No session-context statements for dialect {sync_engine.dialect.name!r}"
            )
        if not event.contains(sync_engine, "engine_connect", self._on_connect):
            event.listen(sync_engine, "engine_connect", self._on_connect)

    def uninstall(self, engine: Union[Engine, AsyncEngine]) -> None:
        sync_engine = getattr(engine, "sync_engine", engine)
        if event.contains(sync_engine, "engine_connect", self._on_connect):
            event.remove(sync_engine, "engine_connect", self._on_connect)

    def bind_engine(self, engine, principal: Optional[Principal]):
        """Same engine and pool, with `principal`'s account id attached.

        Every connection acquired through the returned engine (directly or
        via a Session bound to it) is stamped with that account id.
        Passing None yields connections with nothing bound.
        """
        account_id = str(principal.account_id) if principal else None
        return engine.execution_options(**{ACCOUNT_OPTION: account_id})

    def emulate_row_security(self, session_class, owner_columns: dict) -> None:
        """Filter row-secured entities where the database has no RLS.

        Every ORM SELECT run by `session_class` gets `owner == bound
        account` for each entity in `owner_columns` ({Trip: Trip.owner_id}).
        The bound account is read back from the connection, so an unbound
        connection matches nothing, same as the PostgreSQL policy.
        PostgreSQL sessions are left alone.
        """
        event.listen(
            session_class,
            "do_orm_execute",
            partial(self._filter_row_secured, owner_columns),
        )

    def bound_account_hex(self):
        """SQL expression: the account bound on this SQLite connection.

        Uuid columns are stored as 32 hex chars on SQLite, so the dashes
        of the bound value are dropped.
        """
        value = (
            select(_session_context.c.value)
            .where(_session_context.c.name == self.variable)
            .scalar_subquery()
        )
        return func.replace(value, "-", "")

    def _filter_row_secured(self, owner_columns: dict, state: ORMExecuteState) -> None:
        if not state.is_select:
            return
        if state.session.get_bind().dialect.name in NATIVE_ROW_SECURITY:
            return
        bound = self.bound_account_hex()
        state.statement = state.statement.options(*[
            with_loader_criteria(entity, owner == bound, include_aliases=True)
            for entity, owner in owner_columns.items()
        ])

    # ─── Event handler ──────────────────────────────────

    def _on_connect(self, conn: Connection) -> None:
        account_id = conn.get_execution_options().get(ACCOUNT_OPTION)
        self.apply(conn, account_id)

    def apply(self, conn: Connection, account_id: Optional[str]) -> None:
        """Bind (or clear) the account id on one connection."""
        dialect_statements = self.statements[conn.dialect.name]
        params = {"name": self.variable, "value": account_id or ""}
        sql = dialect_statements["prepare"] + (
            dialect_statements["bind"] if account_id else dialect_statements["clear"]
        )
        try:
            with conn.begin():
                for statement in sql:
                    conn.execute(text(statement), params)
        except Exception as e:
            logger.error(
                "session_context.bind_failed",
                account_id=account_id,
                error=str(e),
            )
            conn.invalidate(e)
            raise SessionBindingError(
                "Could not bind session context on database connection"
            ) from e


def current_account_id(conn: Connection, binder: SessionContextBinder) -> Optional[uuid.UUID]:
    """Read back what is bound on a connection (diagnostics and tests)."""
    if conn.dialect.name == "postgresql":
        value = conn.execute(
            text("SELECT current_setting(:name, true)"), {"name": binder.variable}
        ).scalar()
    else:
        value = conn.execute(
            text("SELECT value FROM temp.session_context WHERE name = :name"),
            {"name": binder.variable},
        ).scalar()
    return uuid.UUID(value) if value else None
