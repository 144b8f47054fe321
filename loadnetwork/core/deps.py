"""
Shared store dependencies: engine, connect-with-retry, retry policy for batched writes.
Import these in jobs/services so entry points stay minimal.
"""
import logging
from typing import Callable, Optional, TypeVar

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from tenacity import (
    RetryError,
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from loadnetwork.core.config import settings

logger = logging.getLogger("store")

T = TypeVar("T")

DATABASE_URL = settings.DATABASE_URL

engine = create_engine(DATABASE_URL, echo=False, future=True, pool_pre_ping=True) if DATABASE_URL else None


class StoreConnectionError(RuntimeError):
    """Store unreachable after all connection attempts. Fatal to a scrape run."""


def get_engine() -> Engine:
    if engine is None:
        raise RuntimeError("DATABASE_URL not set in environment")
    return engine


def retrying(
    attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
    retry_on: tuple = (OperationalError,),
) -> Retrying:
    """Linear backoff: waits base_delay * attempt between tries, reraises the last error."""
    attempts = attempts if attempts is not None else settings.DB_RETRY_ATTEMPTS
    base_delay = base_delay if base_delay is not None else settings.DB_RETRY_BASE_SECONDS
    return Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_incrementing(start=base_delay, increment=base_delay),
        retry=retry_if_exception_type(retry_on),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


def with_retry(operation: Callable[[], T], attempts: Optional[int] = None, base_delay: Optional[float] = None) -> T:
    """Run a store operation under the transient-error retry policy."""
    return retrying(attempts, base_delay)(operation)


def _ping(eng: Engine) -> None:
    with eng.connect() as conn:
        conn.execute(text("SELECT 1"))


def connect_with_retry(
    eng: Engine,
    attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
) -> Engine:
    """
    Verify the store answers a ping, retrying with linear backoff.
    Raises StoreConnectionError once attempts are exhausted.
    """
    logger.info("🔌 Establishing database connection...")
    try:
        retrying(attempts, base_delay, retry_on=(SQLAlchemyError,))(_ping, eng)
    except (SQLAlchemyError, RetryError) as e:
        logger.error(f"❌ Database connection failed after retries: {e}")
        raise StoreConnectionError(f"Failed to connect to database: {e}") from e
    logger.info("✅ Database connection established")
    return eng


def reconnect(eng: Engine, attempts: Optional[int] = None, base_delay: Optional[float] = None) -> Engine:
    """Drop pooled connections (they may have idled out during a long scrape) and ping again."""
    logger.info("🔄 Reconnecting to database...")
    eng.dispose()
    return connect_with_retry(eng, attempts, base_delay)
