"""Test configuration, settings and factories."""

import logging

import pytest
import structlog

from ratelimit_gate.core.config import Settings
from ratelimit_gate.core.logging import get_logger, setup_logging
from ratelimit_gate.rl import (
    GroupPolicyConfig,
    HostnameGrouping,
    RateLimitConfig,
    RateLimitMiddleware,
    RatePolicy,
    create_rate_limit_middleware,
    create_rate_limiter,
    get_rate_limit_config,
    per_domain_config,
)
from ratelimit_gate.rl import config as rl_config
from ratelimit_gate.models.problem import ProblemDetails
from ratelimit_gate.rl.exceptions import RateLimitConfigurationError, RateLimitExceededError


class TestSettings:
    """Test configuration settings."""

    def test_default_settings(self, monkeypatch):
        """Test that default settings are loaded correctly."""
        for name in list(Settings.model_fields):
            monkeypatch.delenv(name, raising=False)
        settings = Settings(_env_file=None)

        assert settings.LOG_LEVEL == "INFO"
        assert settings.LOG_FORMAT == "json"
        assert settings.RATE_LIMIT_MAX_REQUESTS == 100
        assert settings.RATE_LIMIT_WINDOW_SECONDS == 60
        assert settings.RATE_LIMIT_GROUPING == "global"
        assert settings.RATE_LIMIT_THROW_ON_DENY is True

    def test_settings_from_env(self, monkeypatch):
        """Test that settings can be loaded from environment variables."""
        monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "7")
        monkeypatch.setenv("RATE_LIMIT_WINDOW_SECONDS", "2.5")
        monkeypatch.setenv("RATE_LIMIT_GROUPING", "hostname")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        settings = Settings(_env_file=None)

        assert settings.RATE_LIMIT_MAX_REQUESTS == 7
        assert settings.RATE_LIMIT_WINDOW_SECONDS == 2.5
        assert settings.RATE_LIMIT_GROUPING == "hostname"
        assert settings.LOG_LEVEL == "DEBUG"

    def test_get_rate_limit_config_maps_settings(self, monkeypatch):
        monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "3")
        monkeypatch.setenv("RATE_LIMIT_GROUPING", "hostname")
        monkeypatch.setenv("RATE_LIMIT_THROW_ON_DENY", "false")
        settings = Settings(_env_file=None)
        monkeypatch.setattr(rl_config, "get_settings", lambda: settings)

        config = get_rate_limit_config()

        assert config.max_requests == 3
        assert isinstance(config.group_fn, HostnameGrouping)
        assert config.throw_on_deny is False


class TestRateLimitConfig:
    """Test rate limit configuration."""

    def test_rate_limit_config_defaults(self):
        config = RateLimitConfig()

        assert config.max_requests == 100
        assert config.window_seconds == 60
        assert config.group_fn is None
        assert config.per_group == {}
        assert config.throw_on_deny is True
        assert config.auto_negotiate is True
        assert config.custom_deny_message is None

    def test_create_rate_limiter_from_mapping(self, clock):
        limiter = create_rate_limiter(
            {
                "max_requests": 1,
                "window_seconds": 30,
                "group_fn": HostnameGrouping(),
                "per_group": {"b.com": {"max_requests": 2}},
            },
            clock=clock,
        )

        assert limiter.default_policy == RatePolicy(max_requests=1, window_seconds=30)
        assert limiter.get_policy("b.com") == RatePolicy(max_requests=2, window_seconds=30)
        assert [limiter.is_allowed("http://b.com") for _ in range(3)] == [True, True, False]

    def test_create_rate_limiter_logs_through_stdlib(self, caplog, capsys):
        """Factory logging goes to the module logger, not straight to stdout."""
        with caplog.at_level(logging.DEBUG, logger="ratelimit_gate.rl.config"):
            create_rate_limiter({"max_requests": 3})

        records = [r for r in caplog.records if r.name == "ratelimit_gate.rl.config"]
        assert records and records[0].getMessage() == "Rate limiter created"
        assert records[0].max_requests == 3
        assert "Rate limiter created" not in capsys.readouterr().out

    def test_group_policy_config(self):
        observer = lambda reset: None  # noqa: E731
        override = GroupPolicyConfig(window_seconds=5, on_denied=observer).to_override()

        assert override.max_requests is None
        assert override.window_seconds == 5
        assert override.on_denied is observer

    @pytest.mark.parametrize("mapping,field_name", [
        ({"max_requests": -1}, "max_requests"),
        ({"window_seconds": 0}, "window_seconds"),
        ({"per_group": {"a": {"window_seconds": -5}}}, "window_seconds"),
        ({"group_fn": "hostname"}, "group_fn"),
    ])
    def test_invalid_config_fails_fast(self, mapping, field_name):
        with pytest.raises(RateLimitConfigurationError) as exc_info:
            create_rate_limiter(mapping)
        assert field_name in (exc_info.value.config_field or "")

    def test_non_numeric_value_is_configuration_error(self):
        with pytest.raises(RateLimitConfigurationError):
            create_rate_limiter({"max_requests": "many"})

    def test_create_rate_limit_middleware(self, clock):
        observer = lambda reset: None  # noqa: E731
        middleware = create_rate_limit_middleware(
            RateLimitConfig(
                max_requests=2,
                window_seconds=1,
                throw_on_deny=False,
                custom_deny_message="Too fast",
                auto_negotiate=False,
                on_denied=observer,
            ),
            clock=clock,
        )

        assert isinstance(middleware, RateLimitMiddleware)
        assert middleware.throw_on_deny is False
        assert middleware.custom_deny_message == "Too fast"
        assert middleware.auto_negotiate is False
        assert middleware.limiter.default_policy == RatePolicy(max_requests=2, window_seconds=1)

    def test_per_domain_config(self):
        config = per_domain_config(max_requests=10, window_seconds=1)

        assert isinstance(config.group_fn, HostnameGrouping)
        limiter = create_rate_limiter(config)
        assert limiter.group("https://api.example.com/x") == "api.example.com"


class TestLogging:
    """Test logging setup."""

    def test_setup_logging_sets_level(self):
        try:
            setup_logging(level="DEBUG", log_format="text")
            assert logging.getLogger("ratelimit_gate").level == logging.DEBUG
            assert get_logger("ratelimit_gate.test") is not None
        finally:
            structlog.reset_defaults()
            logging.getLogger("ratelimit_gate").setLevel(logging.NOTSET)


class TestErrorPayloads:
    """Test exception and problem payloads."""

    def test_rate_limit_exceeded_to_dict(self):
        error = RateLimitExceededError(reset_time_millis=0, group="api.example.com")

        data = error.to_dict()
        assert data["error_type"] == "RateLimitExceededError"
        assert data["error"] == "rate_limit_exceeded"
        assert data["group"] == "api.example.com"
        assert data["retry_after"] == 0
        assert error.message == "Rate limit exceeded. Try again after 1970-01-01T00:00:00.000+00:00"

    def test_configuration_error_to_dict(self):
        error = RateLimitConfigurationError("bad", config_field="max_requests", provided_value=-1)

        assert error.to_dict()["config_field"] == "max_requests"
        assert error.to_dict()["provided_value"] == -1

    def test_problem_details_errors(self):
        problem = ProblemDetails(status=429).set_error_message("Slow down")
        assert problem.errors == {"general": ["Slow down"]}

        problem.clear("general")
        assert problem.errors == {}
        assert problem.to_json() == '{"status":429,"errors":{}}'


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
