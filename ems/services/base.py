import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session


class BaseService:
    """Holds the request session and a module logger for service classes."""

    def __init__(self, db: Session):
        self.db = db
        self._logger = logging.getLogger(self.__class__.__module__)

    @contextmanager
    def atomic(self) -> Iterator[Session]:
        """
        Run a unit of work as one transaction.
        Commits on success; rolls back everything written inside the block on any error.
        """
        try:
            yield self.db
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def log_info(self, message: str, **extra):
        self._logger.info(message, extra=extra or None)

    def log_warning(self, message: str, **extra):
        self._logger.warning(message, extra=extra or None)
