"""
Caller-id substitution from the account's number pool.

Accounts with dynamic caller id present, on domestic calls, one of their own
pool numbers sharing the destination's subscriber digit (a mobile number for
a mobile destination, a regional number for a regional one).
"""

import random
from typing import Optional

from call_options.config import Settings
from call_options.models.call_context import CallContext
from call_options.models.decision import CallerIdOverride, Decision, PipelineState
from call_options.services.checks import PolicyCheck
from call_options.utils.exceptions import PolicyStoreUnavailable
from call_options.utils.logger import get_logger

logger = get_logger(__name__)

# Seeded once per process from the OS entropy source
_rng = random.Random()


class CallerIdSelector(PolicyCheck):
    """Picks a pool number to present as caller id."""

    name = "caller_id"
    completed_state = PipelineState.CALLER_ID_CHECKED

    def __init__(self, store, rng: Optional[random.Random] = None):
        super().__init__(store)
        self.rng = rng or _rng

    def select_substitute(
        self,
        account_id: str,
        canonical_number: str,
        domestic_prefix: str = "33",
        pool_number_prefix: str = "0",
    ) -> Optional[CallerIdOverride]:
        """
        Select a pool number to present as caller id.

        Args:
            account_id: Resolved account id
            canonical_number: Canonical destination number
            domestic_prefix: Country prefix of domestic numbers
            pool_number_prefix: Prefix pool numbers are stored under

        Returns:
            CallerIdOverride, or None when no substitution applies
        """
        try:
            options = self.store.get_account_options(account_id)
        except PolicyStoreUnavailable as e:
            self.report_failure(account_id, e, "keep caller id")
            return None

        if options is None or not options.dynamic_caller_id:
            return None

        logger.debug(f"Account {account_id} has dynamic caller id enabled")

        subscriber_digit = self._subscriber_digit(canonical_number, domestic_prefix)
        if subscriber_digit is None:
            logger.debug(f"Destination {canonical_number} is not a domestic number")
            return None

        number_prefix = f"{pool_number_prefix}{subscriber_digit}"
        try:
            pool = self.store.list_pool_numbers(account_id, number_prefix)
        except PolicyStoreUnavailable as e:
            self.report_failure(account_id, e, "keep caller id")
            return None

        if not pool:
            logger.warning(
                f"Dynamic caller id is enabled but account {account_id} has no pool number "
                f"for prefix {number_prefix}"
            )
            return None

        number = self.rng.choice(pool)
        logger.debug(f"Number {number} chosen among {len(pool)} pool number(s)")
        return CallerIdOverride(number=number, name=number)

    @staticmethod
    def _subscriber_digit(canonical_number: str, domestic_prefix: str) -> Optional[str]:
        if not canonical_number.startswith(domestic_prefix):
            return None

        rest = canonical_number[len(domestic_prefix):]
        if not rest or rest[0] not in "0123456789":
            return None
        return rest[0]

    def run(self, context: CallContext, decision: Decision, settings: Settings) -> None:
        if decision.caller_id_override is not None:
            return

        decision.caller_id_override = self.select_substitute(
            context.account_id,
            decision.canonical_number,
            domestic_prefix=settings.domestic_prefix,
            pool_number_prefix=settings.pool_number_prefix,
        )
