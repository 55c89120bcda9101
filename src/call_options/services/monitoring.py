"""
Monitoring (mandatory recording) resolution.

A call is recorded when any group of the account asks for it, or failing
that, when the account itself does. Store errors never cause a recording.
"""

from datetime import datetime

from call_options.config import Settings
from call_options.models.call_context import CallContext
from call_options.models.decision import Decision, PipelineState, RecordingInstruction
from call_options.services.checks import PolicyCheck
from call_options.utils.exceptions import PolicyStoreUnavailable
from call_options.utils.logger import get_logger

logger = get_logger(__name__)

DATE_FORMAT = "%Y%m%d-%H%M%S"


def build_recording(context: CallContext, settings: Settings) -> RecordingInstruction:
    """
    Build the recording instruction of a call.

    Args:
        context: Call to record
        settings: Settings snapshot holding the recording destination

    Returns:
        RecordingInstruction for MixMonitor, with the Monitor fallback name
    """
    started = (context.received_at or datetime.now()).strftime(DATE_FORMAT)
    return RecordingInstruction(
        path=settings.recording_path,
        filename=f"{context.call_id}-{started}.{settings.recording_extension}",
        options="b",
        fallback_name=f"{settings.recording_host}-{context.call_id}",
    )


class MonitoringResolver(PolicyCheck):
    """Decides whether a call must be recorded."""

    name = "monitoring"
    completed_state = PipelineState.MONITOR_CHECKED

    def must_record(self, account_id: str) -> bool:
        """
        Check the group and account monitoring flags.

        Args:
            account_id: Resolved account id

        Returns:
            True when the call must be recorded
        """
        try:
            if self.store.count_monitored_groups(account_id) > 0:
                logger.debug(f"Account {account_id} has group monitoring set")
                return True

            if self.store.is_account_monitored(account_id):
                logger.debug(f"Account {account_id} has call monitoring set")
                return True

        except PolicyStoreUnavailable as e:
            self.report_failure(account_id, e, "do not record")

        return False

    def run(self, context: CallContext, decision: Decision, settings: Settings) -> None:
        if self.must_record(context.account_id):
            decision.record = True
            decision.recording = build_recording(context, settings)
