# domain/ordering/scope.py
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Tuple, TypeVar

T = TypeVar("T")

Scope = Tuple[str, str]


def _safe_str(x: Any) -> str:
    return x if isinstance(x, str) else "" if x is None else str(x)


class ScopedStore:
    """
    Base for stores partitioned by dining scope (hotel_id, branch_id).

    - set_scope reports whether the pair actually changed so subclasses can
      drop their hydrated data.
    - single_flight shares one running task per key between concurrent callers.
    - a completion is applied only while scope == the scope it was issued for.
    """

    def __init__(self, api: Any, *, session_id: str = "default"):
        self.api = api
        self.session_id = session_id
        self.hotel_id: str = ""
        self.branch_id: str = ""
        self._inflight: Dict[Hashable, "asyncio.Task[Any]"] = {}

    @property
    def scope(self) -> Scope:
        return (self.hotel_id, self.branch_id)

    def has_scope(self) -> bool:
        return bool(self.hotel_id and self.branch_id)

    def is_current(self, scope: Scope) -> bool:
        return scope == self.scope

    def set_scope(self, hotel_id: Optional[str], branch_id: Optional[str]) -> bool:
        hotel_id = _safe_str(hotel_id).strip()
        branch_id = _safe_str(branch_id).strip()
        if (hotel_id, branch_id) == self.scope:
            return False
        self.hotel_id = hotel_id
        self.branch_id = branch_id
        return True

    async def single_flight(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> T:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._inflight[key] = task

            def _done(t: "asyncio.Task[Any]", key: Hashable = key) -> None:
                if self._inflight.get(key) is t:
                    self._inflight.pop(key, None)

            task.add_done_callback(_done)
        # a cancelled caller must not cancel the shared fetch
        return await asyncio.shield(task)

    def in_flight(self, key: Hashable) -> bool:
        return key in self._inflight
