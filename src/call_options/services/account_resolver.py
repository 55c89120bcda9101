"""
Account resolution for trunked accounts.

Some accounts are SIP trunks shared by several customers of the same tenant.
With trunk delegation enabled, the caller id the trunk presents is the id of
the account that really owns the call, and the call is re-billed to it.
"""

from call_options.config import Settings
from call_options.models.call_context import CallContext, is_account_id
from call_options.models.decision import Decision, PipelineState
from call_options.services.checks import PolicyCheck
from call_options.utils.exceptions import InvalidIdentity, PolicyStoreUnavailable
from call_options.utils.logger import get_logger

logger = get_logger(__name__)


class AccountResolver(PolicyCheck):
    """Re-maps the billing account from the caller id when delegation is on."""

    name = "account_resolver"
    completed_state = PipelineState.ACCOUNT_RESOLVED

    def resolve(self, account_id: str, caller_number: str) -> str:
        """
        Resolve the account that owns the call.

        Never fails: on any problem the original account is kept.

        Args:
            account_id: Account the call arrived with
            caller_number: Presented caller id number

        Returns:
            Re-mapped account id, or account_id unchanged
        """
        try:
            return self._lookup(account_id, caller_number)

        except InvalidIdentity as e:
            logger.warning(
                f"Trunk delegation is enabled for account {account_id} but caller id "
                f"[{e.caller_number}] is not an account id. Keeping original account.",
                extra={"step": self.name, "anomaly": "invalid_identity"},
            )
            return account_id

        except PolicyStoreUnavailable as e:
            self.report_failure(account_id, e, "keep original account")
            return account_id

    def _lookup(self, account_id: str, caller_number: str) -> str:
        options = self.store.get_account_options(account_id)
        if options is None or not options.trunk_delegation:
            logger.debug(f"Trunk delegation is not enabled on account {account_id}")
            return account_id

        logger.debug(f"Trunk delegation is enabled for account {account_id}")

        if not is_account_id(caller_number):
            raise InvalidIdentity("Caller id must be an account id", caller_number=caller_number)

        resolved = self.store.find_account_in_tenant(caller_number, options.tenant_id)
        if resolved is None:
            logger.warning(
                f"Caller id {caller_number} should be an account of tenant {options.tenant_id} "
                f"but no such account exists (account {account_id}). Keeping original account."
            )
            return account_id

        return resolved

    def run(self, context: CallContext, decision: Decision, settings: Settings) -> None:
        resolved = self.resolve(context.account_id, context.caller_number)

        if resolved != context.account_id:
            logger.info(f"Account re-mapped from {context.account_id} to {resolved}")

        context.account_id = resolved
        decision.account_id = resolved
