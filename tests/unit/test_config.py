"""Test Settings loading, TOML files and env overrides."""

from disaster_relay.core.config import Settings, load_settings
from disaster_relay.core.enums import EnrichmentKind, Tier


class TestSettingsDefaults:
    def test_default_backends_are_in_process(self):
        settings = Settings()
        assert settings.cache.backend == "memory"
        assert settings.storage.backend == "memory"

    def test_default_ttls(self):
        enrichment = Settings().enrichment
        assert enrichment.ttl_for(EnrichmentKind.GEOCODE) == 86400
        assert enrichment.ttl_for(EnrichmentKind.IMAGE_VERIFICATION) == 3600
        assert enrichment.ttl_for(EnrichmentKind.SOCIAL_MEDIA) == 3600

    def test_default_tiers(self):
        tiers = Settings().admission.tiers
        assert (tiers[Tier.GENERAL].max_requests, tiers[Tier.GENERAL].window_seconds) == (100, 900)
        assert (tiers[Tier.STRICT].max_requests, tiers[Tier.STRICT].window_seconds) == (10, 60)
        assert (tiers[Tier.AI].max_requests, tiers[Tier.AI].window_seconds) == (5, 60)

    def test_health_paths_exempt(self):
        assert Settings().admission.exempt_paths == ["/", "/health"]

    def test_debounce_default(self):
        assert Settings().bus.debounce_ms == 300


class TestLoadSettings:
    def test_missing_file_uses_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "absent.toml")
        assert settings.port == 5000

    def test_toml_file(self, tmp_path):
        path = tmp_path / "relay.toml"
        path.write_text(
            'environment = "production"\n'
            "port = 8080\n"
            "[cache]\n"
            'backend = "redis"\n'
            'redis_url = "redis://cache:6379/1"\n'
            "[admission.tiers.strict]\n"
            "window_seconds = 30\n"
            "max_requests = 3\n"
        )
        settings = load_settings(path)
        assert settings.environment == "production"
        assert settings.port == 8080
        assert settings.cache.backend == "redis"
        assert settings.cache.redis_url == "redis://cache:6379/1"
        assert settings.admission.tiers[Tier.STRICT].max_requests == 3
        assert settings.admission.tiers[Tier.GENERAL].max_requests == 100

    def test_overrides_win_over_file(self, tmp_path):
        path = tmp_path / "relay.toml"
        path.write_text('[storage]\nbackend = "sql"\n')
        settings = load_settings(path, overrides={"storage": {"backend": "memory"}})
        assert settings.storage.backend == "memory"

    def test_env_nested_override(self, monkeypatch):
        monkeypatch.setenv("RELAY_ENVIRONMENT", "staging")
        monkeypatch.setenv("RELAY_OBSERVABILITY__LOG_LEVEL", "DEBUG")
        settings = Settings()
        assert settings.environment == "staging"
        assert settings.observability.log_level == "DEBUG"

    def test_gemini_key_read_from_named_env(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "secret")
        assert Settings().enrichment.gemini_api_key == "secret"
