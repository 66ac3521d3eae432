"""Pytest fixtures for Bouncer tests."""

from collections.abc import Callable, Generator
from datetime import UTC, datetime

import pytest
import structlog

from bouncer.clock import ManualClock, shift
from bouncer.controller import Controller, GuardRegistry
from bouncer.enforcer import ScheduledLimit
from bouncer.limits import AlwaysBlock, ViewtimeCooldownLimit, WindowCooldownLimit
from bouncer.matchers import DomainMatcher, ExactHostnameMatcher
from bouncer.messages import MemoryMessenger
from bouncer.policy import Policy
from bouncer.schedules import AlwaysSchedule

# Sunday 7 January 2024, noon UTC
T0 = datetime(2024, 1, 7, 12, 0, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """Keep logging configuration from leaking between tests."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def at() -> Callable[[int], datetime]:
    """Build a timestamp a number of milliseconds after T0."""

    def _at(ms: int) -> datetime:
        return shift(T0, ms)

    return _at


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(T0)


@pytest.fixture
def messenger() -> MemoryMessenger:
    return MemoryMessenger()


@pytest.fixture
def hn_viewtime_policy() -> Policy:
    """One second of viewtime on news.ycombinator.com, then a one second cooldown."""
    return Policy(
        name="hn",
        active=True,
        matcher=DomainMatcher("news.ycombinator.com"),
        enforcer=ScheduledLimit(AlwaysSchedule(), ViewtimeCooldownLimit(ms_viewtime=1000, ms_cooldown=1000)),
    )


@pytest.fixture
def hn_window_policy() -> Policy:
    """A one second window on news.ycombinator.com, then a one second cooldown."""
    return Policy(
        name="hn-window",
        active=True,
        matcher=DomainMatcher("news.ycombinator.com"),
        enforcer=ScheduledLimit(AlwaysSchedule(), WindowCooldownLimit(ms_window=1000, ms_cooldown=1000)),
    )


@pytest.fixture
def always_block_policy() -> Policy:
    return Policy(
        name="blocked",
        active=True,
        matcher=ExactHostnameMatcher("blocked.example.com"),
        enforcer=ScheduledLimit(AlwaysSchedule(), AlwaysBlock()),
    )


@pytest.fixture
def make_controller(clock: ManualClock, messenger: MemoryMessenger) -> Callable[..., Controller]:
    """Build a controller over the given policies, sharing the clock and messenger fixtures."""

    def _make(*policies: Policy) -> Controller:
        return Controller(GuardRegistry.from_policies(policies), messenger, clock=clock)

    return _make
