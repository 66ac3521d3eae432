"""Tests for ScheduledLimit enforcement."""

from datetime import UTC, datetime, timedelta

import pytest

from bouncer.enforcer import ScheduledLimit, enforcer_from_dict
from bouncer.errors import InvariantError, UnknownTypeError
from bouncer.limits import AlwaysBlock, ViewtimeCooldownLimit, WindowCooldownLimit
from bouncer.page import Page, PageAccess, PageEvent
from bouncer.period import PeriodicInterval
from bouncer.schedules import AlwaysSchedule, PeriodicSchedule

NOON = datetime(2024, 1, 7, 12, 0, 0, tzinfo=UTC)


def noon_plus(seconds: float) -> datetime:
    return NOON + timedelta(seconds=seconds)


def shown_page(time) -> Page:
    page = Page()
    page.record_event(time, PageEvent.FRAME_SHOW, "v")
    return page


@pytest.fixture
def ten_to_twenty() -> PeriodicSchedule:
    return PeriodicSchedule([PeriodicInterval.from_strings("10", "20")])


class TestApplyTo:
    """Tests for ScheduledLimit.apply_to()."""

    def test_viewtime_block_and_unblock(self, at):
        enforcer = ScheduledLimit(AlwaysSchedule(), ViewtimeCooldownLimit(1000, 1000))
        page = shown_page(at(0))

        enforcer.apply_to(at(1500), page)
        assert page.access() is PageAccess.BLOCKED
        assert page.ms_since_block(at(1500)) == 500

        enforcer.apply_to(at(2001), page)
        assert page.access() is PageAccess.ALLOWED

    def test_window_block_and_unblock(self, at):
        enforcer = ScheduledLimit(AlwaysSchedule(), WindowCooldownLimit(1000, 1000))
        page = shown_page(at(0))

        enforcer.apply_to(at(1500), page)
        assert page.access() is PageAccess.BLOCKED
        assert page.ms_since_block(at(1500)) == 500

        enforcer.apply_to(at(2001), page)
        assert page.access() is PageAccess.ALLOWED

    def test_repeat_application_is_stable(self, at):
        enforcer = ScheduledLimit(AlwaysSchedule(), ViewtimeCooldownLimit(1000, 1000))
        page = shown_page(at(0))
        enforcer.apply_to(at(1500), page)
        before = page.to_dict()
        enforcer.apply_to(at(1500), page)
        assert page.to_dict() == before

    @pytest.mark.parametrize(
        "limit",
        [ViewtimeCooldownLimit(1000, 1000), WindowCooldownLimit(1000, 1000)],
    )
    def test_repeat_application_on_showing_page_blocks_once(self, at, limit):
        """Re-applying at one instant long past the limit yields the same blocked page."""
        enforcer = ScheduledLimit(AlwaysSchedule(), limit)
        page = shown_page(at(0))

        enforcer.apply_to(at(5000), page)
        assert page.access() is PageAccess.BLOCKED
        before = page.to_dict()
        for _ in range(2):
            enforcer.apply_to(at(5000), page)
            assert page.to_dict() == before

    def test_limit_only_applies_inside_schedule(self, ten_to_twenty):
        enforcer = ScheduledLimit(ten_to_twenty, AlwaysBlock())
        page = Page()

        enforcer.apply_to(noon_plus(5), page)
        assert page.access() is PageAccess.ALLOWED

        enforcer.apply_to(noon_plus(12), page)
        assert page.access() is PageAccess.BLOCKED

    def test_leaving_schedule_lifts_block(self, ten_to_twenty):
        enforcer = ScheduledLimit(ten_to_twenty, AlwaysBlock())
        page = Page()
        enforcer.apply_to(noon_plus(12), page)

        enforcer.apply_to(noon_plus(25), page)
        assert page.access() is PageAccess.ALLOWED
        assert page.ms_since_update(noon_plus(25)) == 5000

    def test_entering_schedule_resets_metrics(self, ten_to_twenty):
        enforcer = ScheduledLimit(ten_to_twenty, ViewtimeCooldownLimit(60_000, 1000))
        page = shown_page(noon_plus(5))

        enforcer.apply_to(noon_plus(15), page)
        assert page.ms_viewtime(noon_plus(15)) == 5000
        assert page.ms_since_initial_visit(noon_plus(15)) == 5000


class TestCheckHints:
    """Tests for next_view_event() and next_timeline_event()."""

    def test_next_view_event_when_showing(self, at):
        enforcer = ScheduledLimit(AlwaysSchedule(), ViewtimeCooldownLimit(1000, 1000))
        page = shown_page(at(0))
        assert enforcer.next_view_event(at(300), page) == at(1000)

    def test_next_view_event_needs_visibility(self, at):
        enforcer = ScheduledLimit(AlwaysSchedule(), ViewtimeCooldownLimit(1000, 1000))
        assert enforcer.next_view_event(at(300), Page()) is None

    def test_next_view_event_unbounded_limit(self, at):
        enforcer = ScheduledLimit(AlwaysSchedule(), WindowCooldownLimit(1000, 1000))
        assert enforcer.next_view_event(at(300), shown_page(at(0))) is None

    def test_next_timeline_event_window(self, at):
        enforcer = ScheduledLimit(AlwaysSchedule(), WindowCooldownLimit(1000, 1000))
        page = shown_page(at(0))
        assert enforcer.next_timeline_event(at(300), page) == at(1000)

    def test_next_timeline_event_without_window(self, at):
        enforcer = ScheduledLimit(AlwaysSchedule(), ViewtimeCooldownLimit(1000, 1000))
        assert enforcer.next_timeline_event(at(300), shown_page(at(0))) is None

    def test_outside_schedule_reports_next_start(self, ten_to_twenty):
        enforcer = ScheduledLimit(ten_to_twenty, WindowCooldownLimit(5000, 1000))
        assert enforcer.next_timeline_event(noon_plus(5), Page()) == noon_plus(10)

    def test_window_end_before_next_start(self, ten_to_twenty):
        enforcer = ScheduledLimit(ten_to_twenty, WindowCooldownLimit(5000, 1000))
        page = shown_page(noon_plus(11))
        assert enforcer.next_timeline_event(noon_plus(12), page) == noon_plus(16)

    def test_next_start_before_window_end(self, ten_to_twenty):
        """The earlier of the two candidates is reported."""
        enforcer = ScheduledLimit(ten_to_twenty, WindowCooldownLimit(60_000, 1000))
        page = shown_page(noon_plus(11))
        assert enforcer.next_timeline_event(noon_plus(12), page) == noon_plus(70)


class TestEnforcerSerialization:
    """Tests for enforcer_from_dict()."""

    def test_round_trip(self):
        enforcer = ScheduledLimit(
            PeriodicSchedule([PeriodicInterval.from_strings("Mon 09:00:00", "Fri 17:00:00")]),
            WindowCooldownLimit(600_000, 3_600_000),
        )
        assert enforcer_from_dict(enforcer.to_dict()) == enforcer

    def test_unknown_type(self):
        with pytest.raises(UnknownTypeError):
            enforcer_from_dict({"type": "Bouncer"})

    def test_missing_limit(self):
        with pytest.raises(InvariantError):
            enforcer_from_dict({"type": "ScheduledLimit", "data": {"schedule": {"type": "AlwaysSchedule"}}})
