"""
Dialed number normalization.

Turns what the caller dialed into the canonical international number the
block rules and the caller-id pool are keyed on, using the prefix translation
rules of the numbering tenant.
"""

from call_options.config import Settings
from call_options.models.call_context import CallContext
from call_options.models.decision import Decision, PipelineState
from call_options.services.checks import PolicyCheck
from call_options.utils.exceptions import PolicyStoreUnavailable
from call_options.utils.logger import get_logger

logger = get_logger(__name__)


class NumberNormalizer(PolicyCheck):
    """Applies the longest matching prefix translation rule."""

    name = "number_normalizer"
    completed_state = PipelineState.NORMALIZED

    def normalize(self, raw_number: str, tenant_id: int = 1) -> str:
        """
        Map a dialed number to its canonical form.

        A number no rule matches is already canonical and is returned as is,
        as is the raw number when the rules cannot be read.

        Args:
            raw_number: Number as dialed
            tenant_id: Tenant owning the translation rules

        Returns:
            Canonical number
        """
        try:
            rule = self.store.find_translation_rule(raw_number, tenant_id)
        except PolicyStoreUnavailable as e:
            self.report_failure("-", e, "use dialed number unchanged")
            return raw_number

        if rule is None:
            logger.debug(f"No translation rule for {raw_number}")
            return raw_number

        canonical = rule.apply(raw_number)
        logger.debug(f"International number is {canonical} (rule {rule.rule_id}, prefix {rule.prefix})")
        return canonical

    def run(self, context: CallContext, decision: Decision, settings: Settings) -> None:
        decision.canonical_number = self.normalize(context.dialed_number, settings.translation_tenant_id)
