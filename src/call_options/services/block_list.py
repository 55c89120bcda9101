"""
Block-list evaluation.

An account may dial a destination unless every group it belongs to forbids
it, or the account itself forbids it. Accounts outside any group may not call
at all. Any store error blocks the call.
"""

from call_options.config import Settings
from call_options.models.call_context import CallContext
from call_options.models.decision import Decision, PipelineState
from call_options.services.checks import PolicyCheck
from call_options.utils.exceptions import PolicyStoreUnavailable
from call_options.utils.logger import get_logger

logger = get_logger(__name__)


class BlockListEvaluator(PolicyCheck):
    """Decides whether a destination is forbidden for an account."""

    name = "block_list"
    completed_state = PipelineState.BLOCK_CHECKED

    def is_blocked(self, account_id: str, canonical_number: str) -> bool:
        """
        Check group and account block rules for a destination.

        Args:
            account_id: Resolved account id
            canonical_number: Canonical destination number

        Returns:
            True when the call must be terminated
        """
        try:
            return self._evaluate(account_id, canonical_number)
        except PolicyStoreUnavailable as e:
            self.report_failure(account_id, e, "block call")
            return True

    def _evaluate(self, account_id: str, canonical_number: str) -> bool:
        group_count = self.store.count_groups(account_id)
        if group_count == 0:
            logger.warning(f"Account {account_id} is not assigned to a group")
            return True

        logger.debug(f"Account {account_id} is assigned to {group_count} group(s)")

        blocking_groups = self.store.count_blocking_groups(account_id, canonical_number)
        if blocking_groups >= group_count:
            logger.warning(
                f"Account {account_id} is not allowed to dial {canonical_number} "
                f"(each of its {group_count} group(s) forbids it)"
            )
            return True

        prefix = self.store.find_user_block(account_id, canonical_number)
        if prefix is not None:
            logger.warning(
                f"Account {account_id} is not allowed to dial {canonical_number} "
                f"(account prohibition on prefix {prefix})"
            )
            return True

        return False

    def run(self, context: CallContext, decision: Decision, settings: Settings) -> None:
        if self.is_blocked(context.account_id, decision.canonical_number):
            decision.terminate = True
            decision.reason = f"destination {decision.canonical_number} forbidden"
