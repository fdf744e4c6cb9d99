"""Utility script to create the initial database schema."""
from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from dating_api.core.config import get_settings
from dating_api.core.logging_config import configure_logging

from .session import Base, get_engine
from . import models  # noqa: F401  # ensure models are imported for metadata

logger = logging.getLogger(__name__)


def create_all() -> None:
    engine = get_engine()
    Base.metadata.create_all(bind=engine)


if __name__ == "__main__":
    configure_logging(get_settings().log_level)
    try:
        create_all()
        logger.info("Database tables created successfully.")
    except SQLAlchemyError as exc:
        raise SystemExit(f"Failed to create tables: {exc}") from exc
