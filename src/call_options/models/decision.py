"""
Decision data models returned by the call controller.

A Decision tells the host runtime what to do with the call: tear it down,
record it, and/or present another caller number. The controller only decides;
applying the decision is the host's job.
"""

from enum import Enum
from typing import Optional
from dataclasses import dataclass, field


class PipelineState(Enum):
    """Progress of the decision pipeline for one call."""
    START = "start"
    SANITY_CHECKED = "sanity_checked"
    ACCOUNT_RESOLVED = "account_resolved"
    NORMALIZED = "normalized"
    BLOCK_CHECKED = "block_checked"
    MONITOR_CHECKED = "monitor_checked"
    CALLER_ID_CHECKED = "caller_id_checked"
    DONE = "done"
    ABSTAINED = "abstained"
    ABORTED = "aborted"


@dataclass
class RecordingInstruction:
    """Instruction to record the call with MixMonitor (or Monitor as fallback)."""
    path: str
    filename: str
    options: str = "b"
    fallback_name: Optional[str] = None

    def __post_init__(self):
        """Validate recording instruction."""
        if not self.path:
            raise ValueError("Recording path cannot be empty")
        if not self.filename:
            raise ValueError("Recording filename cannot be empty")

    @property
    def mixmonitor_args(self) -> str:
        """Arguments of the MixMonitor application."""
        return f"{self.path.rstrip('/')}/{self.filename},{self.options}"

    @property
    def monitor_args(self) -> Optional[str]:
        """Arguments of the legacy Monitor application."""
        if not self.fallback_name:
            return None
        return f"wav49|{self.fallback_name}|m"


@dataclass(frozen=True)
class CallerIdOverride:
    """Number (and name) to present instead of the caller's own."""
    number: str
    name: str

    def __post_init__(self):
        """Validate caller id override."""
        if not self.number:
            raise ValueError("Caller id number cannot be empty")


@dataclass
class Decision:
    """
    Outcome of the decision pipeline for one call.

    terminate is raised by the block check; record and caller_id_override are
    accumulated by the later checks and cleared when the call is terminated.
    """
    call_id: str
    state: PipelineState = PipelineState.START

    terminate: bool = False
    record: bool = False
    recording: Optional[RecordingInstruction] = None
    caller_id_override: Optional[CallerIdOverride] = None

    # Identity and number the checks worked with
    original_account_id: str = ""
    account_id: str = ""
    canonical_number: str = ""

    reason: Optional[str] = None
    steps: list = field(default_factory=list)

    @property
    def abstained(self) -> bool:
        """True when the event was not a real call and nothing was decided."""
        return self.state == PipelineState.ABSTAINED

    @property
    def account_changed(self) -> bool:
        """True when the account resolver re-mapped the billing account."""
        return bool(self.account_id) and self.account_id != self.original_account_id

    def to_dict(self) -> dict:
        """Convert to dictionary for logging/serialization."""
        return {
            "call_id": self.call_id,
            "state": self.state.value,
            "terminate": self.terminate,
            "record": self.record,
            "recording": self.recording.mixmonitor_args if self.recording else None,
            "caller_id_override": self.caller_id_override.number if self.caller_id_override else None,
            "account_id": self.account_id,
            "canonical_number": self.canonical_number,
            "reason": self.reason,
            "steps": list(self.steps),
        }
