"""Shared fixtures: an in-memory portal driver, default configuration and sample records."""

import asyncio
from typing import Iterable, List, Optional

import pytest

from base_exceptions import DriverSessionError
from config_manager import ConfigurationManager, IncidentAutomationConfig
from locator import ControlType, LocatorStrategy
from portal_driver import Credentials, PortalDriver
from records import ActionType, Record


class FakeElement:
    def __init__(self, key: str, value: str = ""):
        self.key = key
        self.value = value

    def __repr__(self):
        return f"FakeElement({self.key!r})"


class FakePortalDriver(PortalDriver):
    """
    PortalDriver double. Strategies whose value is in ``hidden`` never match;
    everything else resolves to a FakeElement keyed by the strategy value.
    """

    def __init__(self, known_ids: Optional[Iterable[str]] = None, hidden: Iterable[str] = (),
                 auth_ok: bool = True, save_ok: bool = True, crash_on: Iterable[str] = (),
                 prefill: Optional[dict] = None, step_delay: float = 0):
        self.known_ids = set(known_ids) if known_ids is not None else None
        self.hidden = set(hidden)
        self.auth_ok = auth_ok
        self.save_ok = save_ok
        self.crash_on = set(crash_on)
        self.step_delay = step_delay
        self.elements = {k: FakeElement(k, v) for k, v in (prefill or {}).items()}
        self.calls: List[tuple] = []
        self.launched = False
        self.close_count = 0
        self.searched: List[str] = []
        self.submitted = 0

    async def _step(self):
        await asyncio.sleep(self.step_delay)

    async def launch(self):
        self.calls.append(("launch",))
        self.launched = True

    async def authenticate(self, credentials: Credentials) -> bool:
        self.calls.append(("authenticate", credentials.username))
        await self._step()
        return self.auth_ok

    async def search(self, external_id: str) -> bool:
        self.calls.append(("search", external_id))
        self.searched.append(external_id)
        await self._step()
        if external_id in self.crash_on:
            raise DriverSessionError("Target page, context or browser has been closed")
        return self.known_ids is None or external_id in self.known_ids

    async def locate(self, strategy: LocatorStrategy):
        self.calls.append(("locate", strategy.value))
        await self._step()
        if strategy.value in self.hidden:
            return None
        return self.elements.setdefault(strategy.value, FakeElement(strategy.value))

    async def clear(self, handle: FakeElement):
        self.calls.append(("clear", handle.key))
        handle.value = ""

    async def set_value(self, handle: FakeElement, value: str, control: ControlType) -> bool:
        self.calls.append(("set_value", handle.key, value, control))
        if control == ControlType.TEXT:
            handle.value += value
        else:
            handle.value = value
        return True

    async def click(self, handle: FakeElement) -> bool:
        self.calls.append(("click", handle.key))
        return True

    async def submit(self, handle: FakeElement) -> bool:
        self.calls.append(("submit", handle.key))
        await self._step()
        if self.save_ok:
            self.submitted += 1
        return self.save_ok

    async def close(self):
        self.calls.append(("close",))
        self.close_count += 1


@pytest.fixture
def config() -> IncidentAutomationConfig:
    cfg = ConfigurationManager().get_default_configuration()
    cfg.processing.inter_record_delay_ms = 0
    cfg.processing.locator_timeout_ms = 200
    return cfg


@pytest.fixture
def fake_driver() -> FakePortalDriver:
    return FakePortalDriver()


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(username="operator", password="s3cret")


def make_records(*external_ids: str) -> List[Record]:
    return [
        Record(
            sequence_index=i,
            external_id=ext_id,
            action_type=ActionType.REPAIR,
            start_time="2024-03-01 08:30",
            end_time="2024-03-01 10:00",
            comment=f"Incident {ext_id}",
        )
        for i, ext_id in enumerate(external_ids, start=1)
    ]


@pytest.fixture
def sample_records() -> List[Record]:
    return make_records("NCR-001", "NCR-002", "NCR-003")
