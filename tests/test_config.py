"""Settings validation tests."""

import pytest
from pydantic import ValidationError

from bedtime.core.config import Settings


def make_settings(**overrides) -> Settings:
    fields = {
        "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
        "APP_ENV": "test",
        "_env_file": None,
    }
    fields.update(overrides)
    return Settings(**fields)  # type: ignore[arg-type]


def test_default_lease_outlives_longest_step():
    settings = make_settings()

    assert settings.longest_step_seconds == 480.0
    assert settings.orphan_lease_seconds > settings.longest_step_seconds


def test_lease_shorter_than_a_step_is_rejected():
    with pytest.raises(ValidationError, match="ORPHAN_LEASE_SECONDS"):
        make_settings(ORPHAN_LEASE_SECONDS=300, IMAGE_TIMEOUT_SECONDS=120, GENERATION_MAX_RETRIES=3)


def test_lease_must_grow_with_image_timeout():
    with pytest.raises(ValidationError, match="must exceed"):
        make_settings(IMAGE_TIMEOUT_SECONDS=200)

    settings = make_settings(IMAGE_TIMEOUT_SECONDS=200, ORPHAN_LEASE_SECONDS=900)
    assert settings.orphan_lease_seconds == 900
