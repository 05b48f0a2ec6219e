# =============================================================================
# Session Lookup — bearer token → session / role
# =============================================================================
#
# The authentication subsystem owns a sessions table; the tracker only reads
# it. Expected columns (table name from TRACKER_SESSION_TABLE):
#
#   uuid       session identifier
#   token      bearer token issued at login
#   role_id    role the session was opened under
#   role_name  display name of that role
#
# The table is described with lightweight table()/column() constructs so it
# is not part of this project's metadata (no create_all, no migrations).
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import column, select, table
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionInfo:
    session_id: str | None
    role_id: str | None
    role_name: str | None


def _sessions_table(name: str):
    return table(
        name,
        column("uuid"),
        column("token"),
        column("role_id"),
        column("role_name"),
    )


async def resolve_session(
    session: AsyncSession,
    token: str,
    table_name: str = "user_sessions",
) -> SessionInfo | None:
    """Look up the session opened with `token`; None when unknown."""
    sessions = _sessions_table(table_name)
    stmt = (
        select(sessions.c.uuid, sessions.c.role_id, sessions.c.role_name)
        .where(sessions.c.token == token)
        .limit(1)
    )
    row = (await session.execute(stmt)).first()
    if row is None:
        logger.debug("No session found for token")
        return None

    return SessionInfo(
        session_id=str(row.uuid) if row.uuid is not None else None,
        role_id=str(row.role_id) if row.role_id is not None else None,
        role_name=row.role_name,
    )
