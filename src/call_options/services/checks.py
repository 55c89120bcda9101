"""
Common contract of the decision pipeline checks.

The call controller runs a fixed, ordered list of checks. Each one reads the
call context and the decision built so far, consults the policy store, and
records its outcome on the decision. A check never raises: when its data is
unavailable it applies its own default and logs why.
"""

from abc import ABC, abstractmethod

from call_options.config import Settings
from call_options.models.call_context import CallContext
from call_options.models.decision import Decision, PipelineState
from call_options.services.policy_store import PolicyStore
from call_options.utils.logger import get_logger

logger = get_logger(__name__)


class PolicyCheck(ABC):
    """Base class for one named step of the decision pipeline."""

    def __init__(self, store: PolicyStore):
        self.store = store

    @property
    @abstractmethod
    def name(self) -> str:
        """Step name used in logs and in Decision.steps."""

    @property
    @abstractmethod
    def completed_state(self) -> PipelineState:
        """Pipeline state reached once this check has run."""

    @abstractmethod
    def run(self, context: CallContext, decision: Decision, settings: Settings) -> None:
        """
        Evaluate the check and record its outcome on the decision.

        Args:
            context: Call being decided
            decision: Decision accumulated by the previous checks
            settings: Settings snapshot taken for this call
        """

    def report_failure(self, account_id: str, error: Exception, outcome: str) -> None:
        """Log a store failure; call_id comes from the logging context."""
        logger.warning(
            f"{self.name} failed for account {account_id}: {error}. Applying default: {outcome}",
            extra={"step": self.name},
        )
