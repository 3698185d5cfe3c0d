from __future__ import annotations

import logging

from quotarenew.core.config import get_settings


_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str | None = None) -> None:
    # Scripts and workers share one root handler configuration.
    resolved = (level or get_settings().log_level).upper()
    logging.basicConfig(level=resolved, format=_LOG_FORMAT)
    logging.getLogger().setLevel(resolved)
    # SQL echo is noisy at INFO during large batch runs.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
