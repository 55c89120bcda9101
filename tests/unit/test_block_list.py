"""
Unit tests for BlockListEvaluator.
"""

import pytest
from unittest.mock import Mock

from call_options.models.call_context import CallContext
from call_options.models.decision import Decision
from call_options.services.block_list import BlockListEvaluator
from call_options.services.policy_store import PolicyStore
from call_options.utils.exceptions import PolicyStoreUnavailable


@pytest.fixture
def evaluator(store):
    """Evaluator backed by the in-memory store."""
    return BlockListEvaluator(store)


def test_account_without_group_is_blocked(evaluator, seed):
    """Test zero group memberships block every destination."""
    seed.account(42)

    assert evaluator.is_blocked("42", "33612345678") is True
    assert evaluator.is_blocked("42", "0033612345678") is True


def test_blocked_when_every_group_blocks(evaluator, seed):
    """Test destination forbidden by all groups is blocked."""
    seed.membership(42, 1)
    seed.membership(42, 2)
    seed.group_block(1, "3389")
    seed.group_block(2, "338")

    assert evaluator.is_blocked("42", "33899123456") is True


def test_allowed_when_one_group_allows(evaluator, seed):
    """Test one permissive group is enough."""
    seed.membership(42, 1)
    seed.membership(42, 2)
    seed.group_block(1, "3389")

    assert evaluator.is_blocked("42", "33899123456") is False


def test_single_group_block(evaluator, seed):
    """Test the only group forbidding the destination blocks it."""
    seed.membership(42, 1)
    seed.group_block(1, "44")

    assert evaluator.is_blocked("42", "44201234567") is True
    assert evaluator.is_blocked("42", "33612345678") is False


def test_user_rule_blocks_despite_groups(evaluator, seed):
    """Test account-level rule blocks even when groups allow."""
    seed.membership(42, 1)
    seed.user_block(42, "3389")

    assert evaluator.is_blocked("42", "33899123456") is True
    assert evaluator.is_blocked("42", "33612345678") is False


@pytest.mark.parametrize("failing_query", ["count_groups", "count_blocking_groups", "find_user_block"])
def test_store_error_blocks(failing_query):
    """Test block evaluation fails closed at every step."""
    store = Mock(spec=PolicyStore)
    store.count_groups.return_value = 2
    store.count_blocking_groups.return_value = 0
    store.find_user_block.return_value = None
    getattr(store, failing_query).side_effect = PolicyStoreUnavailable("connection lost")

    assert BlockListEvaluator(store).is_blocked("42", "33612345678") is True


def test_run_marks_decision_for_termination(evaluator, seed, test_settings):
    """Test run raises the terminate flag."""
    context = CallContext(call_id="c1", dialed_number="0033612345678", account_id="42")
    decision = Decision(call_id="c1", canonical_number="33612345678")

    evaluator.run(context, decision, test_settings)

    assert decision.terminate is True
    assert "33612345678" in decision.reason
