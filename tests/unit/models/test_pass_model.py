"""
Pass model tests.

Status is derived from the explicit timestamps with the priority
voided > redeemed > expired > active.
"""
import pytest
from datetime import datetime, timedelta

from passkit.models import Pass
from tests.factories import PassFactory, PassUpdateFactory


@pytest.mark.unit
class TestCurrentStatus:

    def test_new_pass_is_active(self, wallet_pass):
        assert wallet_pass.current_status == 'active'

    def test_expiry_in_the_past_is_expired(self, expired_pass):
        assert expired_pass.status == 'active'
        assert expired_pass.current_status == 'expired'

    def test_future_expiry_is_still_active(self, tenant, template):
        future = PassFactory(user=tenant, template=template, expires_at=datetime.utcnow() + timedelta(days=30))

        assert future.current_status == 'active'

    def test_redeemed_outranks_expired(self, tenant, template):
        p = PassFactory(
            user=tenant, template=template,
            redeemed_at=datetime.utcnow(), expires_at=datetime.utcnow() - timedelta(days=1),
        )

        assert p.current_status == 'redeemed'

    def test_voided_outranks_everything(self, tenant, template):
        p = PassFactory(user=tenant, template=template, redeemed_at=datetime.utcnow())
        p.void()

        assert p.current_status == 'voided'
        assert p.voided_at is not None

    def test_multi_use_flag(self, wallet_pass, multi_use_pass):
        assert wallet_pass.is_single_use is True
        assert multi_use_pass.is_single_use is False


@pytest.mark.unit
class TestPassFields:

    def test_enrollment(self, wallet_pass):
        assert wallet_pass.is_enrolled_in('apple')
        assert wallet_pass.is_enrolled_in('google')

    def test_serial_and_token_are_generated(self, db, tenant, template):
        a = Pass(user_id=tenant.id, pass_template_id=template.id)
        b = Pass(user_id=tenant.id, pass_template_id=template.id)
        db.session.add_all([a, b])
        db.session.commit()

        assert a.serial_number and b.serial_number and a.serial_number != b.serial_number
        assert len(a.authentication_token) == 32

    def test_scan_dict_reports_derived_status(self, expired_pass):
        assert expired_pass.to_scan_dict()['status'] == 'expired'

    def test_template_field_keys(self, template):
        assert template.field_keys == {'points', 'tier', 'name'}


@pytest.mark.unit
class TestPassUpdateModel:

    def test_append_error_keeps_earlier_errors(self, wallet_pass):
        update = PassUpdateFactory(pass_=wallet_pass)

        update.append_error('Apple: failed')
        update.append_error('Google: failed')

        assert update.error_message == 'Apple: failed\nGoogle: failed'
