# passkit/core/session_manager.py

from contextlib import contextmanager
import logging

from flask import current_app

logger = logging.getLogger(__name__)


@contextmanager
def managed_session():
    """
    Context manager for a worker-side database session.

    A new session is created from the application's SessionLocal. On exit the
    session is committed, or in case of an exception, rolled back. The session
    is always closed.
    """
    session = current_app.SessionLocal()
    try:
        yield session
        session.commit()
    except Exception as e:
        logger.error(f"Session error: {e}")
        try:
            session.rollback()
        except Exception as rollback_error:
            logger.warning(f"Rollback failed (non-critical): {rollback_error}")
        raise
    finally:
        try:
            session.close()
        except Exception as e:
            logger.error(f"Error closing session: {e}")
