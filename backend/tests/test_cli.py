# Overview: Pytest coverage for the orgs/fbr Flask CLI commands.

import httpx
import pytest

from posfiscal.models import FbrConfig, Organization


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


class TestOrgCommands:
    def test_create_and_list(self, runner, db_session):
        result = runner.invoke(args=[
            'orgs', 'create',
            '--name', 'Gamma Mart', '--code', 'GAMMA',
            '--ntn', '1112223', '--province', 'Sindh', '--address', 'Tariq Road, Karachi',
        ])

        assert result.exit_code == 0
        assert 'PASS Created organization: Gamma Mart' in result.output
        org = db_session.query(Organization).filter_by(code='GAMMA').one()
        assert org.business_name == 'Gamma Mart'

        result = runner.invoke(args=['orgs', 'list'])
        assert 'Gamma Mart' in result.output
        assert 'not configured' in result.output

    def test_duplicate_code(self, runner, org_a):
        result = runner.invoke(args=['orgs', 'create', '--name', 'Again', '--code', 'ACME'])

        assert "FAIL Organization with code 'ACME' already exists" in result.output


class TestFbrCommands:
    def test_configure(self, runner, db_session, org_a):
        result = runner.invoke(args=['fbr', 'configure', '--org-id', str(org_a.id), '--token', 'tok-12345678', '--production'])

        assert result.exit_code == 0
        assert 'PASS FBR configured' in result.output
        assert 'production' in result.output
        assert db_session.query(FbrConfig).filter_by(org_id=org_a.id).one().sandbox_mode is False

    def test_configure_requires_token_first_time(self, runner, org_a):
        result = runner.invoke(args=['fbr', 'configure', '--org-id', str(org_a.id), '--sandbox'])

        assert 'FAIL bearer_token required' in result.output

    def test_submit(self, runner, org_a, fbr_config_a, make_product, make_sale, fbr_gateway):
        sale = make_sale(org_a, [(make_product(org_a), 2)])

        result = runner.invoke(args=['fbr', 'submit', '--sale-id', str(sale.id)])

        assert f'PASS Sale {sale.id} synced' in result.output

    def test_submit_queued_then_processed(self, runner, org_a, fbr_config_a, make_product, make_sale, fbr_gateway):
        sale = make_sale(org_a, [(make_product(org_a), 1)])
        fbr_gateway.script("submit", httpx.ReadTimeout("timed out"))

        result = runner.invoke(args=['fbr', 'submit', '--sale-id', str(sale.id)])
        assert 'queued for retry' in result.output

        result = runner.invoke(args=['fbr', 'process-queue', '--batch-size', '10'])
        assert result.exit_code == 0
        assert 'PASS Processed 1 item(s): 1 completed' in result.output

    def test_submit_unknown_sale(self, runner, db_session):
        result = runner.invoke(args=['fbr', 'submit', '--sale-id', '424242'])

        assert 'FAIL Sale not found' in result.output

    def test_retry_failed_with_nothing_to_do(self, runner, org_a, fbr_config_a, fbr_gateway):
        result = runner.invoke(args=['fbr', 'retry-failed', '--org-id', str(org_a.id)])

        assert 'No failed sales to retry.' in result.output

    def test_stats(self, runner, org_a, make_product, make_sale):
        make_sale(org_a, [(make_product(org_a), 1)], fbr_status='failed')

        result = runner.invoke(args=['fbr', 'stats', '--org-id', str(org_a.id)])

        assert result.exit_code == 0
        assert 'sales failed' in result.output
        assert 'sync rate        0.0%' in result.output

    def test_test_connection_not_configured(self, runner, org_a, fbr_gateway):
        result = runner.invoke(args=['fbr', 'test-connection', '--org-id', str(org_a.id)])

        assert 'FAIL FBR not configured for this tenant' in result.output

    def test_reference_prints_json(self, runner, org_a, fbr_config_a, fbr_gateway):
        result = runner.invoke(args=['fbr', 'reference', '--org-id', str(org_a.id), 'provinces'])

        assert result.exit_code == 0
        assert '"stateProvinceDesc": "PUNJAB"' in result.output

    def test_process_queue_rejects_zero_batch(self, runner, db_session):
        result = runner.invoke(args=['fbr', 'process-queue', '--batch-size', '0'])

        assert result.exit_code != 0
