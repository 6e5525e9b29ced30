# passkit/services/scan_event_recorder.py

"""
Scan Event Recorder

Append-only audit log of scanner attempts. Recording never fails the
caller's primary operation: errors are logged and the event is dropped.
"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from passkit.models import ScanEvent, ScanAction, ScanResult
from passkit.repositories import ScanEventRepository
from passkit.services.base_service import BaseService

logger = logging.getLogger(__name__)


class ScanEventRecorder(BaseService):

    def __init__(self, session):
        super().__init__(session)
        self.events = ScanEventRepository(session)

    def record(
        self,
        user_id: int,
        pass_id: Optional[int],
        scanner_link_id: Optional[int],
        action,
        result,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Optional[ScanEvent]:
        """
        Persist one scan event and commit it.

        Returns:
            The stored event, or None when nothing was written
        """
        if pass_id is None:
            logger.debug(f"Scan {action}/{result} for user {user_id} had no resolved pass; not recorded")
            return None

        if isinstance(action, ScanAction):
            action = action.value
        if isinstance(result, ScanResult):
            result = result.value

        event = ScanEvent(
            user_id=user_id,
            pass_id=pass_id,
            scanner_link_id=scanner_link_id,
            action=action,
            result=result,
            ip_address=ip_address,
            user_agent=(user_agent or None) and user_agent[:1000],
        )
        try:
            self.events.add(event)
            self._commit()
        except SQLAlchemyError as e:
            self._rollback()
            logger.error(f"Failed to record scan event {action}/{result} for pass {pass_id}: {e}", exc_info=True)
            return None

        logger.info(f"Scan event {action}/{result} recorded for pass {pass_id}")
        return event
