"""Tests for portal_driver.py — Playwright driver behaviour that needs no browser."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from base_exceptions import DriverSessionError
from config_manager import DriverConfig
from portal_driver import Credentials, PlaywrightPortalDriver


def attached_driver():
    driver = PlaywrightPortalDriver(DriverConfig())
    driver.page = MagicMock()
    driver.page.is_closed.return_value = False
    return driver


class TestClear:
    @pytest.mark.asyncio
    async def test_clear_empties_the_field_without_key_chords(self):
        driver = attached_driver()
        handle = AsyncMock()

        await driver.clear(handle)

        handle.fill.assert_awaited_once_with("")
        handle.press.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_clear_before_launch_is_a_session_error(self):
        driver = PlaywrightPortalDriver(DriverConfig())
        with pytest.raises(DriverSessionError):
            await driver.clear(AsyncMock())


class TestCredentials:
    def test_complete(self):
        assert Credentials("operator", "pw").is_complete()
        assert not Credentials("  ", "pw").is_complete()
        assert not Credentials("operator", "").is_complete()

    def test_masked_hides_password(self):
        assert "pw" not in Credentials("operator", "pw").masked()
