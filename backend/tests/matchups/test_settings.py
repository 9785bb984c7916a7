"""Tests for environment-driven settings."""

from app.matchups.settings import DEFAULT_SLEEPER_BASE_URL, Settings


class TestSettings:
    """Tests for Settings.from_env."""

    def test_defaults(self):
        """Test that an empty environment yields the defaults."""
        settings = Settings.from_env({})

        assert settings.simulator is False
        assert settings.sleeper_base_url == DEFAULT_SLEEPER_BASE_URL
        assert settings.upstream_timeout is None
        assert settings.active_interval == 3.0
        assert settings.idle_interval == 10.0
        assert settings.reevaluate_seconds == 3600.0
        assert settings.cache_max_entries == 512
        assert settings.port == 3000

    def test_overrides(self):
        """Test that every variable is read."""
        settings = Settings.from_env(
            {
                "FANTASY_SIMULATOR": "yes",
                "SLEEPER_BASE_URL": "http://localhost:9000/v1",
                "UPSTREAM_TIMEOUT": "4",
                "POLL_INTERVAL_ACTIVE": "1.5",
                "POLL_INTERVAL_IDLE": "30",
                "POLL_REEVALUATE_SECONDS": "600",
                "SNAPSHOT_GRACE_SECONDS": "20",
                "CACHE_MAX_ENTRIES": "64",
                "LOG_LEVEL": "DEBUG",
                "PORT": "8080",
            }
        )

        assert settings.simulator is True
        assert settings.sleeper_base_url == "http://localhost:9000/v1"
        assert settings.upstream_timeout == 4.0
        assert settings.active_interval == 1.5
        assert settings.idle_interval == 30.0
        assert settings.reevaluate_seconds == 600.0
        assert settings.snapshot_grace_seconds == 20.0
        assert settings.cache_max_entries == 64
        assert settings.log_level == "DEBUG"
        assert settings.port == 8080

    def test_invalid_numbers_fall_back(self, caplog):
        """Test that unparseable values are ignored with a warning."""
        settings = Settings.from_env({"POLL_INTERVAL_IDLE": "soon", "PORT": "http"})

        assert settings.idle_interval == 10.0
        assert settings.port == 3000
        assert any("POLL_INTERVAL_IDLE" in r.message for r in caplog.records)

    def test_blank_values_use_defaults(self):
        """Test that whitespace-only values count as unset."""
        settings = Settings.from_env({"SLEEPER_BASE_URL": "  ", "POLL_INTERVAL_ACTIVE": " "})

        assert settings.sleeper_base_url == DEFAULT_SLEEPER_BASE_URL
        assert settings.active_interval == 3.0
