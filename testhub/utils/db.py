"""
Transaction helpers.

transaction():       commit on success, rollback + re-raise on any exception.
                     Flask-SQLAlchemy returns the connection to the pool when
                     the app context tears down, on every path.
retry_on_conflict(): re-run a transactional callable when a concurrent writer
                     wins a primary-key race (IntegrityError).
"""

import logging
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError

from testhub.models import db

logger = logging.getLogger(__name__)

DEFAULT_CONFLICT_ATTEMPTS = 3


@contextmanager
def transaction(session=None):
    """Run the enclosed block as one atomic unit.

    Usage::

        with transaction() as session:
            session.add(obj)
    """
    session = session or db.session
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise


def retry_on_conflict(fn, attempts: int = DEFAULT_CONFLICT_ATTEMPTS):
    """Call ``fn`` until it stops raising IntegrityError or attempts run out.

    ``fn`` must open its own ``transaction()`` so every attempt starts from a
    clean session.
    """
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except IntegrityError as exc:
            if attempt == attempts:
                raise
            logger.warning(
                "Write conflict (attempt %d/%d), retrying: %s", attempt, attempts, exc.orig,
            )
    return None
