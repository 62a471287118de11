"""
locator.py

Ordered-fallback element location. A logical field ("Status Code") is tried
against a prioritized list of locator strategies; the first strategy that
yields a visible element wins and later strategies are never attempted.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from log_sink import LogSink

logger = logging.getLogger(__name__)

DEFAULT_STRATEGY_TIMEOUT_MS = 3000
# Slack on top of a strategy's own timeout before the resolver gives up on it
TIMEOUT_GRACE_MS = 500


class StrategyKind(str, Enum):
    CSS = "css"
    PLACEHOLDER = "placeholder"
    LABEL = "label"
    TEXT = "text"


class ControlType(str, Enum):
    SELECT = "select"
    TEXT = "text"


@dataclass(frozen=True)
class LocatorStrategy:
    """One way of finding a control, bounded by its own timeout"""
    kind: StrategyKind
    value: str
    timeout_ms: int = DEFAULT_STRATEGY_TIMEOUT_MS

    def describe(self) -> str:
        return f"{self.kind.value}={self.value!r}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_timeout_ms: int = DEFAULT_STRATEGY_TIMEOUT_MS) -> "LocatorStrategy":
        return cls(
            kind=StrategyKind(data.get('kind', 'css')),
            value=data['value'],
            timeout_ms=int(data.get('timeout_ms', default_timeout_ms)),
        )


@dataclass
class FieldLocator:
    """A logical form field and the strategies that can find it"""
    name: str
    control: ControlType = ControlType.TEXT
    strategies: List[LocatorStrategy] = field(default_factory=list)


class LocatorResolver:
    """
    Resolves logical fields to element handles through a PortalDriver.

    Misses (timeouts, nothing visible) are expected and only logged; errors
    meaning the browser session is gone are left to propagate to the runner.
    """

    def __init__(self, driver, log_sink: LogSink):
        self.driver = driver
        self.log_sink = log_sink
        self.logger = logging.getLogger(f"{__name__}.LocatorResolver")

    async def locate(self, field_name: str, strategies: Sequence[LocatorStrategy]) -> Optional[Any]:
        for index, strategy in enumerate(strategies, start=1):
            handle = await self._try_strategy(strategy)
            if handle is not None:
                self.logger.debug(f"'{field_name}' located by strategy {index}/{len(strategies)}: {strategy.describe()}")
                return handle
            self.logger.debug(f"'{field_name}' not matched by {strategy.describe()}")

        self.log_sink.warning(f"⚠️ Field '{field_name}' not found after {len(strategies)} strategies")
        return None

    async def _try_strategy(self, strategy: LocatorStrategy) -> Optional[Any]:
        bound = (strategy.timeout_ms + TIMEOUT_GRACE_MS) / 1000
        try:
            return await asyncio.wait_for(self.driver.locate(strategy), timeout=bound)
        except asyncio.TimeoutError:
            return None

    async def fill(self, field_locator: FieldLocator, value: str) -> bool:
        """
        Locate ``field_locator`` and put ``value`` into it.
        Select controls get the value directly; text controls are cleared first
        so the new value never concatenates with stale content.
        """
        handle = await self.locate(field_locator.name, field_locator.strategies)
        if handle is None:
            return False

        if field_locator.control == ControlType.TEXT:
            await self.driver.clear(handle)
        if not await self.driver.set_value(handle, value, field_locator.control):
            self.log_sink.warning(f"⚠️ Field '{field_locator.name}' found but value {value!r} was not accepted")
            return False
        self.logger.debug(f"Filled '{field_locator.name}' with {value!r}")
        return True
