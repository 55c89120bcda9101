"""
Pydantic models for the HTTP decision API.

Defines request/response schemas for hosts that ask for decisions over HTTP
instead of through Asterisk ARI.
"""

from datetime import datetime
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field

from call_options.models.call_context import CallContext
from call_options.models.decision import Decision


class DecideRequest(BaseModel):
    """Call-setup event sent by the host runtime."""
    call_id: str = Field(..., min_length=1, description="Unique call id (Asterisk uniqueid)")
    channel_name: str = Field(default="", description="Channel name")
    caller_number: str = Field(default="", description="Presented caller id number")
    caller_name: str = Field(default="", description="Presented caller id name")
    dialed_number: str = Field(default="", description="Number as dialed")
    account_id: str = Field(default="", description="Channel account code")

    class Config:
        json_schema_extra = {
            "example": {
                "call_id": "1733832000.42",
                "channel_name": "SIP/trunk-00000042",
                "caller_number": "0612345678",
                "caller_name": "",
                "dialed_number": "0033612345678",
                "account_id": "42",
            }
        }

    def to_context(self) -> CallContext:
        """Build the call context the controller works on."""
        return CallContext(
            call_id=self.call_id,
            channel_name=self.channel_name,
            caller_number=self.caller_number,
            caller_name=self.caller_name,
            dialed_number=self.dialed_number,
            account_id=self.account_id,
        )


class CallerIdPayload(BaseModel):
    """Caller id to present."""
    number: str
    name: str


class RecordingPayload(BaseModel):
    """Where and how to record the call."""
    path: str
    filename: str
    mixmonitor_args: str
    monitor_args: Optional[str] = None


class DecideResponse(BaseModel):
    """Decision returned to the host runtime."""
    call_id: str = Field(..., description="Unique call id")
    status: str = Field(..., description="decided, abstained or aborted")
    terminate: bool = Field(default=False, description="Tear the call down")
    record: bool = Field(default=False, description="Record the call")
    recording: Optional[RecordingPayload] = Field(None, description="Recording instruction")
    caller_id_override: Optional[CallerIdPayload] = Field(None, description="Caller id to present")
    account_id: Optional[str] = Field(None, description="Account the call is billed to")
    canonical_number: Optional[str] = Field(None, description="Destination in international form")
    reason: Optional[str] = Field(None, description="Why the call was aborted, skipped or terminated")

    @classmethod
    def from_decision(cls, decision: Decision) -> "DecideResponse":
        """Convert a pipeline decision."""
        recording = None
        if decision.recording:
            recording = RecordingPayload(
                path=decision.recording.path,
                filename=decision.recording.filename,
                mixmonitor_args=decision.recording.mixmonitor_args,
                monitor_args=decision.recording.monitor_args,
            )

        caller_id = None
        if decision.caller_id_override:
            caller_id = CallerIdPayload(
                number=decision.caller_id_override.number,
                name=decision.caller_id_override.name,
            )

        return cls(
            call_id=decision.call_id,
            status="abstained" if decision.abstained else "decided",
            terminate=decision.terminate,
            record=decision.record,
            recording=recording,
            caller_id_override=caller_id,
            account_id=decision.account_id,
            canonical_number=decision.canonical_number,
            reason=decision.reason,
        )

    @classmethod
    def aborted(cls, call_id: str, reason: str) -> "DecideResponse":
        """Response for an event that failed the sanity check."""
        return cls(call_id=call_id, status="aborted", reason=reason)


class HealthCheckResponse(BaseModel):
    """Health check response."""
    status: str = Field(..., description="Overall status: ok, degraded or error")
    database: str = Field(..., description="Policy store status")
    ari: str = Field(..., description="Asterisk ARI status: ok, error or disabled")
    timestamp: datetime = Field(..., description="Check timestamp")


class ReloadResponse(BaseModel):
    """Configuration reload response."""
    status: str = Field(..., description="reloaded")
    store_rebuilt: bool = Field(..., description="True when the store connection was replaced")
    configuration: Dict[str, Any] = Field(..., description="Redacted configuration now in effect")
