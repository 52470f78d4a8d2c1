"""
Exceptions raised by the combat record pipeline.

Every error below aborts the whole run; nothing is retried and no partial
action log is written.
"""


class CombatRecordError(Exception):
    """Base class for all pipeline failures."""


class EndOfStream(CombatRecordError):
    """The video ran out of frames before an expected transition."""

    def __init__(self, frame_index):
        super().__init__(f"Video ended unexpectedly at frame {frame_index}")
        self.frame_index = frame_index


class RosterNotFoundError(CombatRecordError):
    """No roster entry was ever recognized."""


class StageNotFoundError(CombatRecordError):
    """The stage name could not be identified (or is unknown)."""


class DeployScreenNotFoundError(CombatRecordError):
    """The deploy screen never showed up, or no roster unit matched the tray."""


class ClipAnalysisError(CombatRecordError):
    """A clip produced no usable samples."""


class PhaseOrderError(CombatRecordError):
    """A phase transition tried to go backwards or re-enter a phase."""
