"""Tests for configuration."""

import pytest

from techpress.config import Settings


class TestSettings:
    """Test Settings defaults and overrides."""

    def test_defaults(self) -> None:
        settings = Settings()
        assert settings.ttl_blog_list == 3600
        assert settings.ttl_blog_detail == 3600
        assert settings.ttl_comment_list == 1800
        assert settings.invalidation_stream == "cache-invalidation"
        assert settings.invalidation_max_deliveries == 5
        assert settings.invalidation_retry_delay == 1.0
        assert settings.invalidation_queue_size == 10000

    def test_consumer_group_per_service(self) -> None:
        """Each service consumes in its own group."""
        assert Settings(service_name="blog").consumer_group == "blog-cache"
        assert Settings(service_name="user").consumer_group == "user-cache"

    def test_explicit_group_wins(self) -> None:
        settings = Settings(service_name="blog", INVALIDATION_GROUP="shared")
        assert settings.consumer_group == "shared"

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CACHE_TTL_COMMENT_LIST", "60")
        monkeypatch.setenv("TECHPRESS_SERVICE_NAME", "comments")
        settings = Settings()
        assert settings.ttl_comment_list == 60
        assert settings.service_name == "comments"
