"""
Call controller for the per-call decision pipeline.

Runs the checks in a fixed order for one call-setup event and returns the
decision the host runtime applies: terminate the call, record it, and/or
present another caller id.

Flow:
1. Sanity check the event (abort or abstain)
2. Resolve the billing account
3. Normalize the dialed number
4. Evaluate the block lists (signals termination immediately)
5. Resolve monitoring
6. Select a caller-id substitute
"""

from typing import Callable, List, Optional

from call_options.config import Settings, get_settings
from call_options.models.call_context import CallContext, is_account_id
from call_options.models.decision import Decision, PipelineState
from call_options.services.account_resolver import AccountResolver
from call_options.services.block_list import BlockListEvaluator
from call_options.services.caller_id import CallerIdSelector
from call_options.services.checks import PolicyCheck
from call_options.services.monitoring import MonitoringResolver
from call_options.services.number_normalizer import NumberNormalizer
from call_options.services.policy_store import PolicyStore
from call_options.utils.exceptions import SanityCheckFailed
from call_options.utils.logger import get_logger, set_call_context

logger = get_logger(__name__)

# Dialplan extensions that are not real destinations
SPECIAL_EXTENSIONS = frozenset({"s", "h", "t", "i", "failed"})

# Channel name Asterisk gives to failed call files
SPOOL_FAILED_CHANNEL = "outgoingspoolfailed"


def default_checks(store: PolicyStore) -> List[PolicyCheck]:
    """Build the pipeline checks in execution order."""
    return [
        AccountResolver(store),
        NumberNormalizer(store),
        BlockListEvaluator(store),
        MonitoringResolver(store),
        CallerIdSelector(store),
    ]


class CallController:
    """
    Decision pipeline entry point, called once per call-setup event.

    Holds no per-call state, so a single instance serves concurrent calls from
    worker threads.
    """

    def __init__(
        self,
        store: PolicyStore,
        checks: Optional[List[PolicyCheck]] = None,
        settings_provider: Callable[[], Settings] = get_settings,
    ):
        """
        Initialize call controller.

        Args:
            store: Policy store client shared by the checks
            checks: Checks to run in order (defaults to the standard pipeline)
            settings_provider: Returns the current settings snapshot
        """
        self.store = store
        self.checks = checks if checks is not None else default_checks(store)
        self.settings_provider = settings_provider

    def decide(
        self,
        context: CallContext,
        on_terminate: Optional[Callable[[CallContext], None]] = None,
    ) -> Decision:
        """
        Decide what happens to a call.

        Termination is signalled through on_terminate as soon as the block
        check forbids the call. The remaining checks still run so the logs of
        a forbidden attempt are complete, but their effects are dropped.

        Args:
            context: Call being set up; account and caller id may be rewritten
            on_terminate: Host hook tearing the call down

        Returns:
            Decision for the host runtime

        Raises:
            SanityCheckFailed: If the event is malformed
        """
        settings = self.settings_provider()
        set_call_context(context.call_id, context.account_id)

        decision = Decision(
            call_id=context.call_id,
            original_account_id=context.account_id,
            account_id=context.account_id,
            canonical_number=context.dialed_number,
        )

        try:
            abstain_reason = self._sanity_check(context, settings)
        except SanityCheckFailed as e:
            decision.state = PipelineState.ABORTED
            logger.warning(f"Sanity check has failed for call {context.call_id}: {e.reason} [ABORTING]")
            raise

        if abstain_reason:
            decision.state = PipelineState.ABSTAINED
            decision.reason = abstain_reason
            logger.debug(f"Nothing to decide for call {context.call_id}: {abstain_reason}")
            return decision

        decision.state = PipelineState.SANITY_CHECKED
        logger.info(
            f"Deciding call {context.call_id}: account {context.account_id} "
            f"from {context.caller_number or '<unknown>'} to {context.dialed_number}"
        )

        terminate_signalled = False
        for check in self.checks:
            check.run(context, decision, settings)
            decision.state = check.completed_state
            decision.steps.append(check.name)

            if check.completed_state == PipelineState.ACCOUNT_RESOLVED:
                set_call_context(context.call_id, context.account_id)

            if decision.terminate and not terminate_signalled:
                terminate_signalled = True
                self._signal_termination(context, on_terminate)

        if decision.terminate:
            if decision.record or decision.caller_id_override:
                logger.info(
                    f"Call {context.call_id} is terminated; discarding "
                    f"record={decision.record} caller_id_override={decision.caller_id_override}"
                )
            decision.record = False
            decision.recording = None
            decision.caller_id_override = None

        elif decision.caller_id_override is not None:
            context.caller_number = decision.caller_id_override.number
            context.caller_name = decision.caller_id_override.name

        decision.state = PipelineState.DONE
        logger.info(f"Decision for call {context.call_id}: {decision.to_dict()}")
        return decision

    def _sanity_check(self, context: CallContext, settings: Settings) -> Optional[str]:
        """
        Check the event is a real call with the data the checks need.

        Returns:
            Abstain reason for events that are not calls, None otherwise

        Raises:
            SanityCheckFailed: If the event is malformed
        """
        dialed = context.dialed_number or ""
        if not dialed:
            raise SanityCheckFailed("No dialed number has been passed")

        if len(dialed) > settings.max_dialed_length:
            raise SanityCheckFailed(
                f"Dialed number has wrong length, length must be between 1 and "
                f"{settings.max_dialed_length} but we have been given [{len(dialed)}]"
            )

        if (context.channel_name or "").lower() == SPOOL_FAILED_CHANNEL:
            return "outgoing spool failed"

        if dialed.lower() in SPECIAL_EXTENSIONS:
            return f"special extension [{dialed}]"

        if not context.account_id:
            raise SanityCheckFailed("Channel account code hasn't been set")

        if not is_account_id(context.account_id):
            raise SanityCheckFailed(f"Channel account code [{context.account_id}] is not an account id")

        return None

    def _signal_termination(
        self,
        context: CallContext,
        on_terminate: Optional[Callable[[CallContext], None]],
    ) -> None:
        logger.info(f"Terminating call {context.call_id}")
        if on_terminate is None:
            return

        try:
            on_terminate(context)
        except Exception as e:
            logger.exception(f"Error signalling termination of call {context.call_id}: {e}")
