"""
Database engine and session factory
===================================

Connection pool parameters:
- pool_size: resident connections (10 suits a 4-worker uvicorn)
- max_overflow: extra connections allowed at peak (pool_size + max_overflow)
- pool_timeout: max seconds to wait for a connection
- pool_recycle: recycle period (avoids PostgreSQL dropping idle connections)
- pool_pre_ping: liveness check before each checkout

The engine is built explicitly at process start (see app.services.container)
and handed to the order store; nothing here opens a connection on import.
"""

import logging
import time
from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import settings

logger = logging.getLogger("domainpub.db")


def build_engine(url: Optional[str] = None) -> Engine:
    url = url or settings.database_url

    if url.startswith("sqlite"):
        # Single shared connection so in-memory databases survive across sessions
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=settings.DB_ECHO,
        )
    else:
        engine = create_engine(
            url,
            pool_pre_ping=True,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            pool_recycle=settings.DB_POOL_RECYCLE,
            echo=settings.DB_ECHO,
        )

    _install_slow_query_logging(engine)
    return engine


# ---------------------------------------------------------------------------
# Slow query logging
# ---------------------------------------------------------------------------
def _install_slow_query_logging(engine: Engine) -> None:
    threshold_ms = settings.SLOW_QUERY_THRESHOLD_MS

    @event.listens_for(engine, "before_cursor_execute")
    def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault("query_start_time", []).append(time.perf_counter())

    @event.listens_for(engine, "after_cursor_execute")
    def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        total_ms = (time.perf_counter() - conn.info["query_start_time"].pop()) * 1000

        if total_ms >= threshold_ms:
            # Truncate long SQL to keep log volume bounded
            stmt_preview = statement[:500] + "..." if len(statement) > 500 else statement
            logger.warning(
                "Slow query detected (%.2fms >= %dms): %s",
                total_ms, threshold_ms, stmt_preview,
            )


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def get_pool_status(engine: Engine) -> dict:
    """Connection pool state for the health endpoint."""
    pool = engine.pool
    if isinstance(pool, StaticPool):
        return {"pool": "static"}
    return {
        "pool_size": pool.size(),
        "checked_in": pool.checkedin(),
        "checked_out": pool.checkedout(),
        "overflow": pool.overflow(),
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_timeout": settings.DB_POOL_TIMEOUT,
        "pool_recycle": settings.DB_POOL_RECYCLE,
    }
