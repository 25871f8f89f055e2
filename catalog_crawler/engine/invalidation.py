"""Cache invalidation triggers: cookie, sort/filter tuple and settings hash."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from ..config import SearchFilters

if TYPE_CHECKING:
    from ..infra.storage import CacheStore


@dataclass(frozen=True, slots=True)
class InvalidationState:
    """Values observed at the previous check."""

    cookie: str | None = None
    filters: SearchFilters = field(default_factory=SearchFilters)
    settings_hash: str | None = None


@dataclass(frozen=True, slots=True)
class InvalidationDecision:
    invalidate: bool
    reasons: tuple[str, ...]
    state: InvalidationState


def _filter_changes(previous: SearchFilters, current: SearchFilters) -> list[str]:
    changes: list[str] = []
    if tuple(previous.type_filters) != tuple(current.type_filters):
        changes.append("type_filters")
    if previous.sort_by != current.sort_by:
        changes.append("sort_by")
    if previous.sort_order != current.sort_order:
        changes.append("sort_order")
    if previous.compatibility != current.compatibility:
        changes.append("compatibility")
    return changes


def evaluate_invalidation(
    state: InvalidationState,
    cookie: str | None,
    filters: SearchFilters,
    settings_hash: str,
) -> InvalidationDecision:
    """Compare current values with ``state`` and return the decision plus the next state.

    The settings hash only triggers once a previous hash has been recorded.
    The returned state always holds the current values.
    """

    reasons: list[str] = []
    if cookie != state.cookie:
        reasons.append("cookie")
    reasons.extend(_filter_changes(state.filters, filters))
    if state.settings_hash is not None and state.settings_hash != settings_hash:
        reasons.append("settings_hash")
    next_state = InvalidationState(cookie=cookie, filters=filters, settings_hash=settings_hash)
    return InvalidationDecision(
        invalidate=bool(reasons), reasons=tuple(reasons), state=next_state
    )


class InvalidationTracker:
    """Hold the last seen state and delete the cache file when a trigger fires."""

    def __init__(
        self,
        store: "CacheStore",
        state: InvalidationState | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.store = store
        self.state = state or InvalidationState()
        self.logger = logger or structlog.get_logger("catalog_crawler.invalidation")

    def check(
        self, cookie: str | None, filters: SearchFilters, settings_hash: str
    ) -> InvalidationDecision:
        previous = self.state
        decision = evaluate_invalidation(previous, cookie, filters, settings_hash)
        if decision.invalidate:
            self.logger.debug(
                "cache_invalidated",
                reasons=list(decision.reasons),
                previous_filters=previous.filters.model_dump(mode="json"),
                current_filters=filters.model_dump(mode="json"),
            )
            self.store.invalidate()
        self.state = decision.state
        return decision


__all__ = [
    "InvalidationDecision",
    "InvalidationState",
    "InvalidationTracker",
    "evaluate_invalidation",
]
