"""
portal_driver.py

Capability interface the runner uses to drive the incident portal, and its
Playwright implementation. Timeouts are reported as misses (None/False);
errors meaning the browser is gone are raised as DriverSessionError.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from base_exceptions import DriverSessionError
from config_manager import DriverConfig
from locator import ControlType, LocatorStrategy, StrategyKind

logger = logging.getLogger(__name__)


@dataclass
class Credentials:
    username: str = ""
    password: str = ""

    def is_complete(self) -> bool:
        return bool(self.username and self.username.strip() and self.password)

    def masked(self) -> str:
        return f"{self.username} / {'*' * 8}"


class PortalDriver(ABC):
    """Single stateful browser session; not safe for concurrent use"""

    @abstractmethod
    async def launch(self) -> None:
        ...

    @abstractmethod
    async def authenticate(self, credentials: Credentials) -> bool:
        ...

    @abstractmethod
    async def search(self, external_id: str) -> bool:
        """Open the record identified by ``external_id``; False when not found"""

    @abstractmethod
    async def locate(self, strategy: LocatorStrategy) -> Optional[Any]:
        """Visible, enabled element handle for ``strategy`` or None"""

    @abstractmethod
    async def clear(self, handle: Any) -> None:
        ...

    @abstractmethod
    async def set_value(self, handle: Any, value: str, control: ControlType) -> bool:
        ...

    @abstractmethod
    async def click(self, handle: Any) -> bool:
        ...

    @abstractmethod
    async def submit(self, handle: Any) -> bool:
        """Activate a save control and confirm the portal accepted it"""

    @abstractmethod
    async def close(self) -> None:
        ...


class PlaywrightPortalDriver(PortalDriver):
    """Drives the portal with an async Playwright Chromium session"""

    def __init__(self, config: DriverConfig):
        self.config = config
        self._playwright = None
        self._browser = None
        self._context = None
        self.page = None
        self.logger = logging.getLogger(f"{__name__}.PlaywrightPortalDriver")

    async def _guard(self, operation: str, action: Callable[[], Awaitable[Any]], on_timeout: Any = None) -> Any:
        """Run ``action``; timeouts become ``on_timeout``, other Playwright errors end the session"""
        if self.page is None:
            raise DriverSessionError(f"{operation}: browser not launched")
        try:
            return await action()
        except PlaywrightTimeoutError:
            self.logger.debug(f"{operation} timed out")
            return on_timeout
        except PlaywrightError as e:
            if self.page.is_closed():
                raise DriverSessionError(f"{operation}: {e}") from e
            self.logger.debug(f"{operation} failed: {e}")
            return on_timeout

    async def launch(self) -> None:
        self.logger.info(f"Launching Chromium (headless={self.config.headless})")
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.config.headless,
                slow_mo=self.config.slow_motion,
            )
            self._context = await self._browser.new_context()
            self.page = await self._context.new_page()
            self.page.set_default_timeout(self.config.timeout)
        except PlaywrightError as e:
            await self.close()
            raise DriverSessionError(f"Browser launch failed: {e}") from e

    async def _first_visible(self, selectors: List[str], timeout: int) -> Optional[Locator]:
        for selector in selectors:
            candidate = self.page.locator(selector).first
            try:
                await candidate.wait_for(state="visible", timeout=timeout)
                return candidate
            except PlaywrightTimeoutError:
                continue
        return None

    async def authenticate(self, credentials: Credentials) -> bool:
        async def _login():
            self.logger.info(f"Navigating to portal: {self.config.portal_url}")
            await self.page.goto(self.config.portal_url)

            username_input = await self._first_visible(self.config.username_selectors, self.config.element_timeout)
            password_input = await self._first_visible(self.config.password_selectors, self.config.element_timeout)
            if username_input is None or password_input is None:
                self.logger.error("Login form not found")
                return False

            await username_input.fill(credentials.username)
            await password_input.fill(credentials.password)

            submit_button = await self._first_visible(self.config.login_submit_selectors, self.config.element_timeout)
            if submit_button is None:
                await password_input.press("Enter")
            else:
                await submit_button.click()

            await self.page.wait_for_selector(self.config.login_success_selector, timeout=self.config.timeout)
            self.logger.info("🔓 Login successful")
            return True

        return await self._guard("authenticate", _login, on_timeout=False)

    async def search(self, external_id: str) -> bool:
        async def _search():
            search_input = await self._first_visible(self.config.search_input_selectors, self.config.element_timeout)
            if search_input is None:
                self.logger.warning("Search box not found")
                return False
            await search_input.fill(external_id)
            await search_input.press("Enter")

            result_selector = self.config.search_result_template.format(external_id=external_id)
            result = self.page.locator(result_selector).first
            await result.wait_for(state="visible", timeout=self.config.element_timeout)
            await result.click()
            await self.page.wait_for_load_state("networkidle", timeout=self.config.timeout)
            return True

        return await self._guard(f"search {external_id}", _search, on_timeout=False)

    def _build_locator(self, strategy: LocatorStrategy) -> Locator:
        if strategy.kind == StrategyKind.PLACEHOLDER:
            return self.page.get_by_placeholder(strategy.value)
        if strategy.kind == StrategyKind.LABEL:
            return self.page.get_by_label(strategy.value)
        if strategy.kind == StrategyKind.TEXT:
            return self.page.get_by_text(strategy.value, exact=True)
        return self.page.locator(strategy.value)

    async def locate(self, strategy: LocatorStrategy) -> Optional[Any]:
        async def _locate():
            element = self._build_locator(strategy).first
            await element.wait_for(state="visible", timeout=strategy.timeout_ms)
            if not await element.is_enabled():
                return None
            return element

        return await self._guard(f"locate {strategy.describe()}", _locate)

    async def clear(self, handle: Locator) -> None:
        async def _clear():
            await handle.fill("")

        await self._guard("clear", _clear)

    async def set_value(self, handle: Locator, value: str, control: ControlType) -> bool:
        async def _set():
            if control == ControlType.TEXT:
                await handle.press_sequentially(value, delay=self.config.type_delay)
                return True

            tag_name = (await handle.evaluate("el => el.tagName")).lower()
            if tag_name == "select":
                try:
                    await handle.select_option(label=value, timeout=self.config.element_timeout)
                except PlaywrightTimeoutError:
                    await handle.select_option(value=value, timeout=self.config.element_timeout)
                return True

            # Custom dropdown: open it, then pick the option by its text
            await handle.click()
            option_selectors = [
                f'[role="option"]:has-text("{value}")',
                f'li:has-text("{value}")',
            ]
            option = await self._first_visible(option_selectors, self.config.element_timeout)
            if option is None:
                await self.page.keyboard.type(value)
                await self.page.keyboard.press("Enter")
            else:
                await option.click()
            return True

        return await self._guard("set_value", _set, on_timeout=False)

    async def click(self, handle: Locator) -> bool:
        async def _click():
            await handle.click()
            await self.page.wait_for_load_state("domcontentloaded")
            return True

        return await self._guard("click", _click, on_timeout=False)

    async def submit(self, handle: Locator) -> bool:
        async def _submit():
            await handle.click()
            await self.page.wait_for_selector(self.config.save_confirmation_selector, timeout=self.config.timeout)
            return True

        return await self._guard("submit", _submit, on_timeout=False)

    async def close(self) -> None:
        """Release every Playwright resource; safe to call more than once"""
        for name in ("_context", "_browser"):
            resource = getattr(self, name)
            setattr(self, name, None)
            if resource is None:
                continue
            try:
                await resource.close()
            except PlaywrightError as e:
                self.logger.warning(f"Error closing {name.strip('_')}: {e}")
        self.page = None
        if self._playwright is not None:
            playwright, self._playwright = self._playwright, None
            await playwright.stop()
        self.logger.info("Browser closed")
