# Overview: Pytest coverage for tenant FBR configuration and token encryption.

from datetime import datetime

import pytest
from cryptography.fernet import Fernet

from posfiscal.models import FbrConfig
from posfiscal.services import fbr_config_service
from posfiscal.services.fbr_config_service import FbrConfigError
from posfiscal.services.token_crypto import TokenEncryptionError, decrypt_token, encrypt_token


class TestTokenCrypto:
    def test_round_trip_with_derived_key(self, app):
        ciphertext = encrypt_token("bearer-secret")

        assert ciphertext != "bearer-secret"
        assert decrypt_token(ciphertext) == "bearer-secret"

    def test_rotated_key_cannot_decrypt(self, app, monkeypatch):
        ciphertext = encrypt_token("bearer-secret")
        monkeypatch.setitem(app.config, "FBR_TOKEN_ENCRYPTION_KEY", Fernet.generate_key().decode())

        with pytest.raises(TokenEncryptionError):
            decrypt_token(ciphertext)

    def test_malformed_key_is_reported(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "FBR_TOKEN_ENCRYPTION_KEY", "not-a-fernet-key")

        with pytest.raises(TokenEncryptionError, match="Invalid FBR_TOKEN_ENCRYPTION_KEY"):
            encrypt_token("bearer-secret")


class TestConfigureTenant:
    def test_create_stores_encrypted_token(self, db_session, org_a):
        config = fbr_config_service.configure_tenant(org_a.id, bearer_token="  sandbox-token-abcd1234  ")

        assert config.bearer_token_encrypted != "sandbox-token-abcd1234"
        assert config.token_hint == "1234"
        assert config.sandbox_mode is True
        assert config.is_active is True

        data = config.to_dict()
        assert data["token_hint"] == "****1234"
        assert data["environment"] == "sandbox"
        assert "bearer_token_encrypted" not in data

    def test_create_requires_token(self, db_session, org_a):
        with pytest.raises(FbrConfigError, match="bearer_token required"):
            fbr_config_service.configure_tenant(org_a.id, sandbox_mode=False)

    def test_blank_token_rejected(self, db_session, org_a):
        with pytest.raises(FbrConfigError, match="cannot be blank"):
            fbr_config_service.configure_tenant(org_a.id, bearer_token="   ")

    def test_unknown_organization(self, db_session):
        with pytest.raises(FbrConfigError, match="Organization not found"):
            fbr_config_service.configure_tenant(424242, bearer_token="abc")

    def test_update_keeps_single_row_per_tenant(self, db_session, org_a, fbr_config_a):
        fbr_config_service.configure_tenant(org_a.id, sandbox_mode=False)
        fbr_config_service.configure_tenant(org_a.id, bearer_token="live-token-5678")

        rows = db_session.query(FbrConfig).filter_by(org_id=org_a.id).all()
        assert len(rows) == 1
        assert rows[0].sandbox_mode is False
        assert rows[0].token_hint == "5678"


class TestActiveCredentials:
    def test_active_config_yields_credentials(self, db_session, org_a, fbr_config_a):
        credentials = fbr_config_service.get_active_credentials(org_a.id)

        assert credentials.org_id == org_a.id
        assert credentials.bearer_token == "sandbox-token-abcd1234"
        assert credentials.sandbox_mode is True
        assert "sandbox-token" not in repr(credentials)

    def test_no_config(self, db_session, org_a):
        assert fbr_config_service.get_active_credentials(org_a.id) is None

    def test_inactive_config(self, db_session, org_a, fbr_config_a):
        fbr_config_service.configure_tenant(org_a.id, is_active=False)

        assert fbr_config_service.get_active_credentials(org_a.id) is None

    def test_undecryptable_token_counts_as_not_configured(self, db_session, org_a, fbr_config_a):
        fbr_config_a.bearer_token_encrypted = "gAAAAA-corrupted"
        db_session.commit()

        assert fbr_config_service.get_active_credentials(org_a.id) is None

    def test_tenants_are_isolated(self, db_session, org_a, org_b, fbr_config_a):
        assert fbr_config_service.get_active_credentials(org_b.id) is None

    def test_mark_synced_overwrites_last_sync(self, db_session, org_a, fbr_config_a):
        fbr_config_service.mark_synced(org_a.id, datetime(2026, 10, 17, 9, 0))
        fbr_config_service.mark_synced(org_a.id, datetime(2026, 10, 17, 11, 0))
        db_session.commit()

        assert fbr_config_service.get_config(org_a.id).last_sync_at == datetime(2026, 10, 17, 11, 0)
