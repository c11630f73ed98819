"""Immutable selection state and the single mutable cell that holds it."""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from typing import Optional

from projectmap.core.backend_frontend_shared_schema import (
    SelectionResponse,
    ViewMode,
)
from projectmap.core.schema import STATUSES, TYPES, YEARS

logger = logging.getLogger(__name__)


def _toggled(values: frozenset[str], value: str) -> frozenset[str]:
    if value in values:
        return values - {value}
    return values | {value}


def _check_domain(value: str, domain: Iterable[str], dimension: str) -> None:
    if value not in domain:
        raise ValueError(f"Unknown {dimension} {value!r}, expected one of {list(domain)}")


@dataclass(frozen=True)
class SelectionState:
    """
    The user's current selection.

    Instances are never mutated; every change produces a new value so that a
    snapshot read by an event handler stays consistent for the whole event.
    """

    years: frozenset[str] = field(default_factory=frozenset)
    statuses: frozenset[str] = field(default_factory=frozenset)
    types: frozenset[str] = field(default_factory=frozenset)
    # Upper-cased region name, or None when no region is selected.
    active_region: Optional[str] = None
    view_mode: ViewMode = ViewMode.PERFORMANCE

    def toggle_year(self, year: str) -> "SelectionState":
        _check_domain(year, YEARS, "year")
        return replace(self, years=_toggled(self.years, year))

    def toggle_status(self, status: str) -> "SelectionState":
        _check_domain(status, STATUSES, "status")
        return replace(self, statuses=_toggled(self.statuses, status))

    def toggle_type(self, type_: str) -> "SelectionState":
        _check_domain(type_, TYPES, "project type")
        return replace(self, types=_toggled(self.types, type_))

    def with_region(self, region: Optional[str]) -> "SelectionState":
        return replace(self, active_region=region)

    def with_view_mode(self, view_mode: ViewMode) -> "SelectionState":
        """Switch theme, keeping categorical selections and dropping the region."""
        return replace(self, view_mode=ViewMode(view_mode), active_region=None)

    def cleared(self) -> "SelectionState":
        """Drop every filter; the view mode is kept."""
        return SelectionState(view_mode=self.view_mode)

    @property
    def active_filter_count(self) -> int:
        return len(self.years) + len(self.statuses) + len(self.types)

    def to_response(self) -> SelectionResponse:
        return SelectionResponse(
            years=sorted(self.years),
            statuses=sorted(self.statuses),
            types=sorted(self.types),
            active_region=self.active_region,
            view_mode=self.view_mode,
        )


SelectionListener = Callable[[SelectionState, SelectionState], None]


class SelectionStore:
    """
    Holds the current SelectionState.

    Long-lived event handlers keep a reference to the store, never to a selection,
    and call get_current_selection() when they fire.
    """

    def __init__(self, initial: Optional[SelectionState] = None) -> None:
        self._current = initial or SelectionState()
        self._listeners: list[SelectionListener] = []
        self.version = 0

    def get_current_selection(self) -> SelectionState:
        return self._current

    def commit(
        self, new_selection: SelectionState, expected: Optional[SelectionState] = None
    ) -> bool:
        """
        Replace the current selection.

        Args:
            new_selection: The replacement value
            expected: When given, the commit only succeeds if the current selection is
                still this exact object

        Returns:
            True if the selection was replaced
        """
        if expected is not None and self._current is not expected:
            logger.warning("Rejected selection commit from a stale snapshot")
            return False
        previous = self._current
        self._current = new_selection
        self.version += 1
        for listener in list(self._listeners):
            listener(previous, new_selection)
        return True

    def update(
        self, fn: Callable[[SelectionState], SelectionState]
    ) -> SelectionState:
        """Apply fn to the current selection and commit the result."""
        while True:
            snapshot = self._current
            new_selection = fn(snapshot)
            if self.commit(new_selection, expected=snapshot):
                return new_selection

    def subscribe(self, listener: SelectionListener) -> Callable[[], None]:
        """Register a listener called with (previous, current) after every commit."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
