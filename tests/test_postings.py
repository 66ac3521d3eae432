"""Tests for guard postings."""

import random

import pytest

from bouncer.controller import ActiveTabs, GuardPostings
from bouncer.enforcer import ScheduledLimit
from bouncer.errors import InvariantError
from bouncer.limits import AlwaysBlock
from bouncer.matchers import ExactHostnameMatcher
from bouncer.policy import Guard, Policy
from bouncer.schedules import AlwaysSchedule


def make_guard(name: str) -> Guard:
    policy = Policy(
        name=name,
        active=True,
        matcher=ExactHostnameMatcher(f"{name}.example.com"),
        enforcer=ScheduledLimit(AlwaysSchedule(), AlwaysBlock()),
    )
    return Guard.create(policy)


def ids(guards) -> set[str]:
    return {guard.id for guard in guards}


class TestGuardPostings:
    """Tests for assignment queries and mutations."""

    def test_assign_and_query(self):
        a, b = make_guard("a"), make_guard("b")
        postings = GuardPostings()
        postings.assign(1, 0, a)
        postings.assign(1, 3, b)
        postings.assign(2, 0, a)

        assert ids(postings.frame(1, 0)) == {a.id}
        assert ids(postings.tab(1)) == {a.id, b.id}
        assert postings.guarded_frames(1) == [0, 3]
        assert postings.assignments(a) == [(1, 0), (2, 0)]
        assert len(postings) == 3

    def test_unknown_tab_and_frame_are_empty(self):
        postings = GuardPostings()
        assert postings.frame(9, 9) == []
        assert postings.tab(9) == []
        assert postings.tab(None) == []
        assert postings.guarded_frames(9) == []

    def test_dismiss_prunes_empty_entries(self):
        a = make_guard("a")
        postings = GuardPostings()
        postings.assign(1, 0, a)
        postings.dismiss(1, 0, a)
        assert len(postings) == 0
        assert postings.to_list() == []
        assert postings.assignments(a) == []

    def test_dismiss_keeps_guard_on_tab_with_other_frame(self):
        """A guard posted in two frames of one tab still guards the tab after one is dismissed."""
        a = make_guard("a")
        postings = GuardPostings()
        postings.assign(1, 0, a)
        postings.assign(1, 5, a)
        postings.dismiss(1, 0, a)

        assert postings.assignments(a) == [(1, 5)]
        assert postings.is_guarding_active_tab(a, ActiveTabs([1]))

    def test_is_guarding_active_tab(self):
        a = make_guard("a")
        postings = GuardPostings()
        postings.assign(2, 0, a)
        assert not postings.is_guarding_active_tab(a, ActiveTabs([1]))
        assert postings.is_guarding_active_tab(a, ActiveTabs([1, 2]))

    def test_dismiss_tab(self):
        a, b = make_guard("a"), make_guard("b")
        postings = GuardPostings()
        postings.assign(1, 0, a)
        postings.assign(1, 1, b)
        postings.assign(2, 0, b)
        postings.dismiss_tab(1)

        assert postings.tab(1) == []
        assert postings.assignments(a) == []
        assert postings.assignments(b) == [(2, 0)]

    def test_dismiss_guard(self):
        a, b = make_guard("a"), make_guard("b")
        postings = GuardPostings()
        postings.assign(1, 0, a)
        postings.assign(1, 0, b)
        postings.assign(2, 4, a)
        postings.dismiss_guard(a)

        assert postings.assignments(a) == []
        assert ids(postings.frame(1, 0)) == {b.id}
        assert postings.guarded_frames(2) == []

    def test_different_guard_with_same_id_rejected(self):
        a = make_guard("a")
        impostor = Guard(id=a.id, policy=a.policy)
        postings = GuardPostings()
        postings.assign(1, 0, a)
        with pytest.raises(InvariantError):
            postings.assign(2, 0, impostor)

    def test_random_operations_keep_indexes_consistent(self):
        """Both index tables agree after any sequence of mutations."""
        rng = random.Random(7)
        guards = [make_guard(name) for name in "abcd"]
        postings = GuardPostings()

        for _ in range(300):
            op = rng.choice(["assign", "assign", "dismiss", "dismiss_tab", "dismiss_guard"])
            guard = rng.choice(guards)
            tab_id, frame_id = rng.randint(1, 3), rng.randint(0, 2)
            if op == "assign":
                postings.assign(tab_id, frame_id, guard)
            elif op == "dismiss":
                postings.dismiss(tab_id, frame_id, guard)
            elif op == "dismiss_tab":
                postings.dismiss_tab(tab_id)
            else:
                postings.dismiss_guard(guard)

            postings._check_rep()
            for entry in postings.to_list():
                by_id = {g.id: g for g in guards}
                guard_posted = by_id[entry["guard_id"]]
                assert (entry["tab_id"], entry["frame_id"]) in postings.assignments(guard_posted)
            for g in guards:
                for tab, frame in postings.assignments(g):
                    assert g in postings.frame(tab, frame)


class TestPostingsSerialization:
    """Tests for to_list()/from_list()."""

    def test_round_trip(self):
        a, b = make_guard("a"), make_guard("b")
        postings = GuardPostings()
        postings.assign(1, 0, a)
        postings.assign(3, 2, b)
        postings.assign(3, 2, a)

        restored = GuardPostings.from_list(postings.to_list(), [a, b])
        assert restored.to_list() == postings.to_list()
        assert restored.assignments(a) == [(1, 0), (3, 2)]

    def test_unknown_guard_id(self):
        with pytest.raises(InvariantError):
            GuardPostings.from_list([{"tab_id": 1, "frame_id": 0, "guard_id": "missing"}], [])
