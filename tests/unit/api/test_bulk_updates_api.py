"""
Bulk update API tests.
"""
import pytest

from tests.factories import BulkUpdateFactory


@pytest.mark.unit
class TestBulkUpdateApi:

    def test_start_returns_202(self, client, auth_headers, template, wallet_pass, mock_task_dispatch):
        response = client.post('/api/v1/passes/bulk-update', json={
            'pass_template_id': template.id,
            'field_key': 'tier',
            'field_value': 'gold',
            'filters': {'status': 'active'},
        }, headers=auth_headers)

        assert response.status_code == 202
        data = response.get_json()['data']
        assert data['status'] == 'pending'
        assert data['total_count'] == 1
        mock_task_dispatch['bulk'].assert_called_once()

    def test_in_flight_job_is_409(self, client, auth_headers, tenant, template):
        BulkUpdateFactory(user_id=tenant.id, pass_template_id=template.id, status='processing')

        response = client.post('/api/v1/passes/bulk-update', json={
            'pass_template_id': template.id, 'field_key': 'tier', 'field_value': 'gold',
        }, headers=auth_headers)

        assert response.status_code == 409
        assert response.get_json()['message'] == 'A bulk update is already in progress for this template.'

    def test_missing_template_is_422(self, client, auth_headers, db):
        response = client.post('/api/v1/passes/bulk-update', json={
            'pass_template_id': 31337, 'field_key': 'tier', 'field_value': 'gold',
        }, headers=auth_headers)

        assert response.status_code == 422

    def test_progress(self, client, auth_headers, tenant, template):
        job = BulkUpdateFactory(
            user_id=tenant.id, pass_template_id=template.id, status='processing',
            total_count=10, processed_count=4, failed_count=1,
        )

        response = client.get(f'/api/v1/passes/bulk-update/{job.id}', headers=auth_headers)

        assert response.status_code == 200
        data = response.get_json()['data']
        assert (data['processed_count'], data['failed_count'], data['total_count']) == (4, 1, 10)

    def test_progress_of_other_tenant_is_403(self, client, other_auth_headers, tenant, template):
        job = BulkUpdateFactory(user_id=tenant.id, pass_template_id=template.id)

        response = client.get(f'/api/v1/passes/bulk-update/{job.id}', headers=other_auth_headers)

        assert response.status_code == 403

    def test_unknown_job_is_404(self, client, auth_headers):
        assert client.get('/api/v1/passes/bulk-update/4040', headers=auth_headers).status_code == 404
