"""
Unit tests for NumberNormalizer.
"""

import pytest
from unittest.mock import Mock

from call_options.models.call_context import CallContext
from call_options.models.decision import Decision
from call_options.services.number_normalizer import NumberNormalizer
from call_options.services.policy_store import PolicyStore
from call_options.utils.exceptions import PolicyStoreUnavailable


@pytest.fixture
def normalizer(store):
    """Normalizer backed by the in-memory store."""
    return NumberNormalizer(store)


def test_longest_prefix_rule_is_applied(normalizer, seed):
    """Test the 4-character rule beats the 2-character one."""
    seed.translation("00", 2, "")
    seed.translation("0033", 4, "+33")

    assert normalizer.normalize("0033612345678") == "+33612345678"


def test_national_number_to_international(normalizer, seed):
    """Test a national number gets the country prefix."""
    seed.translation("0", 1, "33")
    seed.translation("00", 2, "")

    assert normalizer.normalize("0612345678") == "33612345678"
    assert normalizer.normalize("0044201234567") == "44201234567"


def test_canonical_number_is_unchanged(normalizer, seed):
    """Test a number no rule matches is returned as is, repeatedly."""
    seed.translation("0", 1, "33")

    once = normalizer.normalize("33612345678")
    twice = normalizer.normalize(once)

    assert once == "33612345678"
    assert twice == once


def test_store_error_keeps_dialed_number():
    """Test normalization fails open."""
    store = Mock(spec=PolicyStore)
    store.find_translation_rule.side_effect = PolicyStoreUnavailable("connection lost")

    assert NumberNormalizer(store).normalize("0612345678") == "0612345678"


def test_run_uses_tenant_from_settings(test_settings):
    """Test run stores the canonical number on the decision."""
    store = Mock(spec=PolicyStore)
    store.find_translation_rule.return_value = None
    context = CallContext(call_id="c1", dialed_number="0612345678", account_id="42")
    decision = Decision(call_id="c1")

    NumberNormalizer(store).run(context, decision, test_settings)

    assert decision.canonical_number == "0612345678"
    store.find_translation_rule.assert_called_once_with("0612345678", test_settings.translation_tenant_id)
