"""Tests for configuration classes.

Tests SolidAuthSettings, its sections, layered TOML loading and the
environment variable overrides.
"""

import pytest

from pydantic import ValidationError

from solidauth.config import (
    ClientSettings,
    HttpSettings,
    PopupSettings,
    SolidAuthSettings,
    StoreSettings,
    get_settings,
    reload_settings,
)


class TestDefaults:
    """Tests for built-in defaults."""

    def test_client_defaults(self):
        """Client registration defaults match the implicit flow."""
        settings = ClientSettings()
        assert settings.redirect_uri is None
        assert settings.scope == "openid profile"
        assert settings.response_type == "id_token token"
        assert settings.grant_types == ["implicit"]

    def test_popup_defaults(self):
        """The popup is a 300x300 window named selectProviderWindow."""
        settings = PopupSettings()
        assert settings.name == "selectProviderWindow"
        assert settings.features() == "menubar=no,resizable=yes,width=300,height=300"
        assert settings.url is None
        assert settings.providers == []

    def test_store_defaults(self):
        """The memory store with a one-day correlation TTL is the default."""
        settings = StoreSettings()
        assert settings.backend == "memory"
        assert settings.correlation_ttl_seconds == 86400

    def test_http_defaults(self):
        """HTTP defaults to a 10 second timeout with TLS verification."""
        settings = HttpSettings()
        assert settings.timeout == 10.0
        assert settings.verify is True

    def test_aggregate(self):
        """SolidAuthSettings exposes every section."""
        settings = SolidAuthSettings()
        assert settings.client.scope == "openid profile"
        assert settings.log.level == "WARNING"


class TestValidation:
    """Tests for field validation."""

    def test_popup_too_small(self):
        """Popup dimensions have a minimum."""
        with pytest.raises(ValidationError):
            PopupSettings(width=10)

    def test_negative_ttl(self):
        """The TTL cannot be negative."""
        with pytest.raises(ValidationError):
            StoreSettings(correlation_ttl_seconds=-1)

    def test_unknown_backend(self):
        """Only known backends are accepted."""
        with pytest.raises(ValidationError):
            StoreSettings(backend="redis")

    def test_comma_separated_lists(self):
        """List fields accept comma-separated strings."""
        settings = PopupSettings(providers="https://a.example, https://b.example")
        assert settings.providers == ["https://a.example", "https://b.example"]


class TestEnvironment:
    """Tests for environment variable overrides."""

    def test_section_env(self, monkeypatch):
        """Section variables use SOLIDAUTH_<SECTION>__ prefixes."""
        monkeypatch.setenv("SOLIDAUTH_CLIENT__SCOPE", "openid profile email")
        monkeypatch.setenv("SOLIDAUTH_STORE__BACKEND", "file")
        settings = SolidAuthSettings()
        assert settings.client.scope == "openid profile email"
        assert settings.store.backend == "file"

    def test_list_env(self, monkeypatch):
        """List variables are comma separated."""
        monkeypatch.setenv("SOLIDAUTH_POPUP__PROVIDERS", "https://a.example,https://b.example")
        assert PopupSettings().providers == ["https://a.example", "https://b.example"]


class TestTomlLoading:
    """Tests for layered TOML configuration."""

    def test_solidauth_toml(self, tmp_path):
        """./solidauth.toml is loaded."""
        (tmp_path / "solidauth.toml").write_text(
            '[client]\nredirect_uri = "https://app.example/cb"\n', encoding="utf-8"
        )
        assert SolidAuthSettings().client.redirect_uri == "https://app.example/cb"

    def test_pyproject_section(self, tmp_path):
        """pyproject.toml [tool.solidauth] is loaded."""
        (tmp_path / "pyproject.toml").write_text(
            "[tool.solidauth.store]\ncorrelation_ttl_seconds = 60\n", encoding="utf-8"
        )
        assert SolidAuthSettings().store.correlation_ttl_seconds == 60

    def test_solidauth_toml_overrides_pyproject(self, tmp_path):
        """Later files win."""
        (tmp_path / "pyproject.toml").write_text(
            '[tool.solidauth.client]\nscope = "openid"\n', encoding="utf-8"
        )
        (tmp_path / "solidauth.toml").write_text(
            '[client]\nscope = "openid profile email"\n', encoding="utf-8"
        )
        assert SolidAuthSettings().client.scope == "openid profile email"

    def test_config_file_env(self, tmp_path, monkeypatch):
        """SOLIDAUTH_CONFIG_FILE points at an extra file."""
        path = tmp_path / "elsewhere.toml"
        path.write_text("[http]\ntimeout = 2.5\n", encoding="utf-8")
        monkeypatch.setenv("SOLIDAUTH_CONFIG_FILE", str(path))
        assert SolidAuthSettings().http.timeout == 2.5

    def test_unreadable_file_ignored(self, tmp_path, caplog):
        """A broken TOML file is skipped with a warning."""
        (tmp_path / "solidauth.toml").write_text("[client\n", encoding="utf-8")
        with caplog.at_level("WARNING", logger="solidauth.config"):
            settings = SolidAuthSettings()
        assert settings.client.scope == "openid profile"
        assert "solidauth.toml" in caplog.text


class TestExport:
    """Tests for to_toml(), to_env() and show()."""

    def test_to_toml(self):
        """Every section is exported."""
        output = SolidAuthSettings().to_toml()
        for section in ("[client]", "[popup]", "[store]", "[http]", "[log]"):
            assert section in output
        assert 'scope = "openid profile"' in output
        assert 'grant_types = ["implicit"]' in output
        assert "verify = true" in output

    def test_to_env(self):
        """Variables use the section prefixes."""
        output = SolidAuthSettings().to_env()
        assert 'export SOLIDAUTH_CLIENT__SCOPE="openid profile"' in output
        assert 'export SOLIDAUTH_STORE__CORRELATION_TTL_SECONDS="86400"' in output

    def test_show(self):
        """The table lists section titles and values."""
        output = SolidAuthSettings().show()
        assert "Client Registration" in output
        assert "selectProviderWindow" in output


class TestCache:
    """Tests for the cached settings accessor."""

    def test_cached(self):
        """get_settings() returns the same instance."""
        assert get_settings() is get_settings()

    def test_reload(self, monkeypatch):
        """reload_settings() picks up new values."""
        first = get_settings()
        monkeypatch.setenv("SOLIDAUTH_CLIENT__SCOPE", "openid")
        second = reload_settings()
        assert second is not first
        assert second.client.scope == "openid"
