# passkit/utils/pass_locking.py

"""
Pass Locking Utilities Module

Row-level locking of Pass records for single-use redemption.

Key features:
- Pessimistic locking with SELECT FOR UPDATE
- Context manager that releases the lock by ending the transaction
- Database lock timeouts surface as LockAcquisitionError
"""

import logging
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)


class LockAcquisitionError(Exception):
    """
    Raised when a lock cannot be acquired on a pass record.

    This typically occurs when a database timeout fired while another
    transaction held the row.
    """
    pass


@contextmanager
def lock_pass_for_redemption(pass_repo, tenant_id, pass_id):
    """
    Context manager to acquire a row-level lock on a Pass.

    Concurrent redemptions of the same pass are serialized: the second caller
    blocks until the first commits and then sees the committed state.

    Args:
        pass_repo: PassRepository bound to the active session.
        tenant_id: Owning tenant of the pass.
        pass_id: The ID of the pass to lock.

    Yields:
        Pass: The locked pass, or None if it does not exist for the tenant.

    Raises:
        LockAcquisitionError: If the database refused or timed out the lock.
    """
    session = pass_repo.session
    try:
        locked = pass_repo.lock_for_update(tenant_id, pass_id)
    except OperationalError as e:
        session.rollback()
        logger.warning(f"Could not lock pass {pass_id}: {e}")
        raise LockAcquisitionError(f"Pass {pass_id} is locked by another transaction") from e

    logger.debug(f"Acquired lock on pass {pass_id}")
    try:
        yield locked
    except Exception:
        session.rollback()
        logger.debug(f"Rolled back and released lock on pass {pass_id}")
        raise
