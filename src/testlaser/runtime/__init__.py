#
# src/testlaser/runtime/__init__.py
#
"""
Run orchestration and watch-mode runtime for testlaser.
"""
from .change_feed import ChangeEvent, ChangeFeed, ChangeFilter
from .orchestrator import RunOrchestrator, RunPhase, RunRequest
from .watch import WatchDriver, run_watch

__all__ = [
    "ChangeEvent",
    "ChangeFeed",
    "ChangeFilter",
    "RunOrchestrator",
    "RunPhase",
    "RunRequest",
    "WatchDriver",
    "run_watch",
]

# 🔼⚙️
