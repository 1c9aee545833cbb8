from __future__ import annotations

import logging
import time

from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError

from db.models.base import Base

logger = logging.getLogger(__name__)


def init_db(engine: Engine, *, retries: int = 30, sleep_seconds: float = 1.0) -> None:
    if engine.dialect.name == "sqlite":
        Base.metadata.create_all(engine)
        return

    # The database container may still be starting up
    last_error: Exception | None = None
    for attempt in range(retries):
        try:
            Base.metadata.create_all(engine)
            return
        except OperationalError as e:
            last_error = e
            logger.warning("db_init_retry", extra={"attempt": attempt + 1, "error": str(e)})
            time.sleep(sleep_seconds)
    assert last_error is not None
    raise last_error
