"""The set of tabs currently focused in their windows."""

from __future__ import annotations

from collections.abc import Iterable, Iterator


class ActiveTabs:
    def __init__(self, tab_ids: Iterable[int] = ()) -> None:
        self._tab_ids: set[int] = set(tab_ids)

    def has(self, tab_id: int | None) -> bool:
        return tab_id is not None and tab_id in self._tab_ids

    def add(self, tab_id: int) -> None:
        self._tab_ids.add(tab_id)

    def remove(self, tab_id: int | None) -> None:
        if tab_id is not None:
            self._tab_ids.discard(tab_id)

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._tab_ids))

    def __len__(self) -> int:
        return len(self._tab_ids)

    def to_list(self) -> list[int]:
        return sorted(self._tab_ids)

    @classmethod
    def from_list(cls, data: list[int]) -> ActiveTabs:
        return cls(int(tab_id) for tab_id in data)
