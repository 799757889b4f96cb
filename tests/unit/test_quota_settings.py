"""Unit tests for configuration settings."""

import pytest

from iquota_service.config import AccessSettings, CacheSettings, OneFSSettings, Settings


class TestCacheSettings:
    """Test CacheSettings configuration."""

    def test_default_values(self, monkeypatch):
        for name in ("ENABLE_CACHE", "CACHE_EXPIRE", "NEG_CACHE_EXPIRE", "HOME_DIR"):
            monkeypatch.delenv(f"IQUOTA_CACHE_{name}", raising=False)

        settings = CacheSettings()

        assert settings.enable_cache is False
        assert settings.cache_expire == 500
        assert settings.neg_cache_expire == 86400
        assert settings.home_dir == "/home"
        assert settings.cache_only_prefix == "/panasas"
        assert settings.key_prefix == ""

    def test_env_prefix(self, monkeypatch):
        """Environment variables use the IQUOTA_CACHE_ prefix."""
        monkeypatch.setenv("IQUOTA_CACHE_ENABLE_CACHE", "true")
        monkeypatch.setenv("IQUOTA_CACHE_NEG_CACHE_EXPIRE", "3600")

        settings = CacheSettings()

        assert settings.enable_cache is True
        assert settings.neg_cache_expire == 3600

    def test_validation_constraints(self):
        with pytest.raises(ValueError):
            CacheSettings(cache_expire=0)

        with pytest.raises(ValueError):
            CacheSettings(neg_cache_expire=-5)


class TestAccessSettings:
    """Test admin list parsing."""

    def test_comma_separated(self, monkeypatch):
        monkeypatch.setenv("IQUOTA_ADMINS", "root, hpcadmin ,")
        assert AccessSettings().admins == ["root", "hpcadmin"]

    def test_json_list(self, monkeypatch):
        monkeypatch.setenv("IQUOTA_ADMINS", '["root", "wheel"]')
        assert AccessSettings().admins == ["root", "wheel"]

    def test_default_empty(self, monkeypatch):
        monkeypatch.delenv("IQUOTA_ADMINS", raising=False)
        assert AccessSettings().admins == []


class TestOneFSSettings:
    """Test OneFS connection settings."""

    def test_password_is_secret(self):
        settings = OneFSSettings(password="hunter2")
        assert "hunter2" not in repr(settings)
        assert settings.password.get_secret_value() == "hunter2"

    def test_port_range(self):
        with pytest.raises(ValueError):
            OneFSSettings(port=70000)


def test_settings_aggregate():
    """Concern settings hang off the root Settings."""
    s = Settings()
    assert isinstance(s.cache, CacheSettings)
    assert isinstance(s.access, AccessSettings)
    assert isinstance(s.onefs, OneFSSettings)
