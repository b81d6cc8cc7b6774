"""Shared fixtures."""

import os
from collections.abc import Generator

import pytest

from bookkeeping.shared.config import Settings


@pytest.fixture
def clean_env() -> Generator[None, None, None]:
    """Clean APP_ environment variables before and after test."""
    original_env = dict(os.environ)
    for var in [k for k in os.environ if k.upper().startswith("APP_")]:
        del os.environ[var]
    yield
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def settings() -> Settings:
    """Settings with a known organization and no .env influence."""
    return Settings(
        _env_file=None,
        company_name="Muster GmbH",
        company_aliases="Muster, Muster Handels GmbH",
    )
