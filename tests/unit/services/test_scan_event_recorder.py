"""
ScanEventRecorder unit tests.
"""
import pytest
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from passkit.models import ScanEvent, ScanAction, ScanResult
from passkit.services import ScanEventRecorder


@pytest.fixture
def recorder(db):
    return ScanEventRecorder(db.session)


@pytest.mark.unit
class TestScanEventRecorder:

    def test_records_event_with_enum_values(self, recorder, wallet_pass, scanner_link, db):
        event = recorder.record(
            user_id=wallet_pass.user_id,
            pass_id=wallet_pass.id,
            scanner_link_id=scanner_link.id,
            action=ScanAction.REDEEM,
            result=ScanResult.SUCCESS,
            ip_address='192.168.1.20',
            user_agent='Mozilla/5.0',
        )

        stored = db.session.get(ScanEvent, event.id)
        assert stored.action == 'redeem'
        assert stored.result == 'success'
        assert stored.user_agent == 'Mozilla/5.0'
        assert stored.to_dict()['ip_address'] == '192.168.1.20'

    def test_unresolved_pass_is_not_recorded(self, recorder, tenant, db):
        assert recorder.record(tenant.id, None, None, 'redeem', 'not_found') is None
        assert db.session.query(ScanEvent).count() == 0

    def test_long_user_agent_is_truncated(self, recorder, wallet_pass):
        event = recorder.record(wallet_pass.user_id, wallet_pass.id, None, 'scan', 'success', user_agent='a' * 5000)

        assert len(event.user_agent) == 1000

    def test_database_error_is_logged_not_raised(self, recorder, wallet_pass, db):
        with patch.object(recorder, '_commit', side_effect=OperationalError('INSERT', {}, Exception('disk full'))):
            result = recorder.record(wallet_pass.user_id, wallet_pass.id, None, 'scan', 'success')

        assert result is None
        assert db.session.query(ScanEvent).count() == 0
