"""Shared session handling for the SQL-backed stores."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from crowdshield.errors import TransientStoreError
from crowdshield.store.sql import session_factory as default_session_factory

LOGGER = logging.getLogger(__name__)


class SqlStore:
    """Base class wiring a sessionmaker and a commit-or-rollback scope."""

    def __init__(self, *, session_factory: sessionmaker | None = None) -> None:
        self._session_factory = session_factory or default_session_factory()

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        """Yield a session that commits on success and rolls back on any error.

        Integrity violations propagate unchanged so callers can treat them as
        lost compare-and-swap races or duplicates; every other SQLAlchemy error
        becomes :class:`TransientStoreError`.
        """

        session = self._session_factory()
        try:
            yield session
            session.commit()
        except IntegrityError:
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            LOGGER.warning("Store operation failed in %s: %s", type(self).__name__, exc)
            raise TransientStoreError(f"{type(self).__name__} operation failed") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


__all__ = ["SqlStore"]
