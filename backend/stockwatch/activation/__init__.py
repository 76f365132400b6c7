"""Activation window subsystem.

Public API:
    ActivationState        - ACTIVE or STANDBY
    ActivationWindow       - Daily wall-clock window
    ActiveJob              - A job that only runs while ACTIVE
    ActiveWindowController - The state machine that swaps cadences
"""

from .controller import ActivationState, ActivationWindow, ActiveJob, ActiveWindowController

__all__ = [
    "ActivationState",
    "ActivationWindow",
    "ActiveJob",
    "ActiveWindowController",
]
