# src/testlaser/state.py
#
"""
State models for the watch-mode driver.
"""

from datetime import UTC, datetime
from enum import Enum, auto

import structlog
from attrs import field, mutable

log: structlog.stdlib.BoundLogger = structlog.get_logger("state")


class WatchState(Enum):
    """Which kind of run the next trigger executes."""

    NEEDS_FULL_RUN = auto()
    NEEDS_FAILED_RUN = auto()


STATE_EMOJI_MAP = {
    WatchState.NEEDS_FULL_RUN: "🔁",
    WatchState.NEEDS_FAILED_RUN: "🎯",
}


@mutable(slots=True)
class WatchSession:
    """
    Holds the driver's state for the lifetime of one `watch` invocation.

    Termination is not a state: the driver simply stops after a full run
    that passes.
    """

    state: WatchState = field(default=WatchState.NEEDS_FULL_RUN)
    run_count: int = field(default=0)
    trigger_count: int = field(default=0)
    last_trigger_time: datetime | None = field(default=None)  # Timezone-aware (UTC)
    last_changed_paths: list[str] = field(factory=list)
    transitions: list[tuple[WatchState, WatchState]] = field(factory=list)

    @property
    def display_emoji(self) -> str:
        return STATE_EMOJI_MAP.get(self.state, "❓")

    def transition(self, new_state: WatchState) -> None:
        old_state = self.state
        if old_state == new_state:
            return
        self.state = new_state
        self.transitions.append((old_state, new_state))
        log.info(
            "Watch state changed",
            old_state=old_state.name,
            new_state=new_state.name,
            emoji_key="watch",
        )

    def record_trigger(self, paths: list[str]) -> None:
        """Records a debounced batch of file changes."""
        self.trigger_count += 1
        self.last_trigger_time = datetime.now(UTC)
        self.last_changed_paths = list(paths)
        log.debug(
            "Recorded change trigger",
            trigger_count=self.trigger_count,
            changed=len(paths),
            state=self.state.name,
        )

    def record_run(self) -> None:
        self.run_count += 1


# 🔼⚙️
