"""Tests for database URL handling."""

import pytest

from medquest.core.database import get_async_database_url


class TestAsyncDatabaseUrl:
    @pytest.mark.parametrize(
        "url, expected",
        [
            ("postgres://u:p@host/db", "postgresql+asyncpg://u:p@host/db"),
            ("postgresql://u:p@host/db", "postgresql+asyncpg://u:p@host/db"),
            ("sqlite:///./medquest.db", "sqlite+aiosqlite:///./medquest.db"),
        ],
    )
    def test_plain_schemes_get_async_driver(self, url, expected):
        assert get_async_database_url(url) == expected

    @pytest.mark.parametrize(
        "url",
        ["postgresql+asyncpg://u:p@host/db", "sqlite+aiosqlite:///:memory:"],
    )
    def test_async_urls_pass_through(self, url):
        assert get_async_database_url(url) == url
