"""Unit tests for Settings and tier configuration."""

from __future__ import annotations

from datetime import timedelta

import pytest

from mediacache.services.cache import tiers_from_settings
from mediacache.services.types import DEFAULT_TIERS, CacheTier, TierPolicy
from mediacache.settings import Settings


class TestSettings:
    def test_reads_env_style_names(self) -> None:
        settings = Settings.model_validate(
            {"REDIS_URL": "redis://cache:6379/0", "DEV_MODE": "true", "TMDB_RATE_BURST": "10"}
        )
        assert settings.redis_url == "redis://cache:6379/0"
        assert settings.dev_mode is True
        assert settings.tmdb_rate_burst == 10

    def test_unrelated_variables_are_ignored(self) -> None:
        settings = Settings.model_validate({"PATH": "/usr/bin", "HOME": "/root"})
        assert settings.cache_max_entries == 500

    def test_default_tiers_match_settings(self) -> None:
        assert tiers_from_settings(Settings()) == dict(DEFAULT_TIERS)

    def test_trending_tier(self) -> None:
        policy = tiers_from_settings(Settings())[CacheTier.TRENDING]
        assert policy.stale_after == timedelta(minutes=30)
        assert policy.expire_after == timedelta(hours=2)

    def test_stale_after_cannot_exceed_expiry(self) -> None:
        with pytest.raises(ValueError):
            TierPolicy(timedelta(hours=1), timedelta(minutes=5))
