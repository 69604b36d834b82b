"""Fire-and-forget execution for side effects that must never abort a flow."""

import logging
from collections.abc import Callable
from typing import Any

from sqlalchemy.orm import Session

logger = logging.getLogger("brickvault")


def best_effort(action: str, func: Callable[..., Any], *args: Any, db: Session | None = None, **context: Any) -> bool:
    """Run ``func(*args)``; on failure log a warning and return False.

    ``db`` is rolled back after a failure so the enclosing request can keep
    using the session. ``context`` is only used for the log line.
    """
    try:
        func(*args)
        return True
    except Exception as e:
        if db is not None:
            db.rollback()
        details = ", ".join(f"{key}={value}" for key, value in context.items())
        logger.warning("Non-fatal failure: %s (%s) %s", action, e, details)
        return False
