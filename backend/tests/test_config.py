"""Tests for settings loading and validation."""
import pytest
from pydantic import ValidationError

from zerolink.config import (
    AppSettings,
    AuthSettings,
    get_config,
    load_settings,
    set_config,
)


class TestDefaults:

    def test_missing_files_give_defaults(self, tmp_path):
        settings = load_settings(
            settings_file=tmp_path / "absent.settings.yaml",
            secrets_file=tmp_path / "absent.secrets.yaml",
        )
        assert settings.server.port == 5000
        assert settings.auth.verifier == "jwt"
        assert settings.auth.verify_timeout_seconds == 5.0
        assert settings.storage.db_path == "zerolink.duckdb"
        assert settings.uploads.max_file_size_bytes == 10 * 1024 * 1024
        assert "video/webm" in settings.uploads.allowed_mime_types
        assert settings.secrets.jwt.algorithm == "HS256"

    def test_empty_file_gives_defaults(self, tmp_path):
        empty = tmp_path / "zerolink.settings.yaml"
        empty.write_text("")
        settings = load_settings(settings_file=empty, secrets_file=tmp_path / "none.yaml")
        assert settings == AppSettings()


class TestLoadSettings:

    def test_settings_and_secrets_merged(self, tmp_path):
        settings_file = tmp_path / "zerolink.settings.yaml"
        settings_file.write_text(
            "server:\n"
            "  port: 8080\n"
            "auth:\n"
            "  verifier: remote\n"
            "  verify_url: http://idp.local/verify\n"
            "  verify_timeout_seconds: 2.5\n"
            "storage:\n"
            "  db_path: /tmp/chat.duckdb\n"
        )
        secrets_file = tmp_path / "zerolink.secrets.yaml"
        secrets_file.write_text("jwt:\n  secret_key: s3cret\n  audience: zerolink\n")

        settings = load_settings(settings_file=settings_file, secrets_file=secrets_file)

        assert settings.server.port == 8080
        assert settings.auth.verifier == "remote"
        assert settings.auth.verify_url == "http://idp.local/verify"
        assert settings.auth.verify_timeout_seconds == 2.5
        assert settings.storage.db_path == "/tmp/chat.duckdb"
        assert settings.secrets.jwt.secret_key == "s3cret"
        assert settings.secrets.jwt.audience == "zerolink"

    def test_unknown_verifier_rejected(self, tmp_path):
        settings_file = tmp_path / "zerolink.settings.yaml"
        settings_file.write_text("auth:\n  verifier: magic\n")
        with pytest.raises(ValidationError):
            load_settings(settings_file=settings_file, secrets_file=tmp_path / "none.yaml")


class TestAuthSettings:

    @pytest.mark.parametrize("timeout", [0, -1.0])
    def test_non_positive_timeout_rejected(self, timeout):
        with pytest.raises(ValidationError):
            AuthSettings(verify_timeout_seconds=timeout)


class TestConfigCache:

    def test_set_config_overrides_cache(self):
        custom = AppSettings()
        custom.server.port = 9999
        set_config(custom)
        try:
            assert get_config() is custom
        finally:
            set_config(None)
