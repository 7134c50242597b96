"""
Database Connection and Session Management.

This module sets up the asynchronous SQLAlchemy engine and session factory
used by the server process.
"""

from cerebrin_ai.agent_core.repos.sql import create_all, create_engine, create_sessionmaker
from cerebrin_ai.server.core.config import settings

"""
engine:
    The global SQLAlchemy AsyncEngine instance, configured with the connection
    URL from settings.
"""
engine = create_engine(settings.database_url)

"""
async_session_maker:
    A global factory for creating new AsyncSession instances.
    Bound to the `engine` and configured to NOT expire on commit (typical for async).
"""
async_session_maker = create_sessionmaker(engine)


async def init_db() -> None:
    """
    Initialize the database.

    Creates all control plane tables. In production, Alembic migrations should
    be used instead.
    """
    await create_all(engine)
