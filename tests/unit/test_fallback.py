"""Tests for the fallback recovery chain."""

import asyncio
import time
from datetime import date

import pytest

from receipt_pipeline.agents import VendorParsingAgent
from receipt_pipeline.fallback import FallbackManager, FallbackStrategy
from receipt_pipeline.fallback.strategies import (
    default_strategies,
    extract_using_patterns,
    partial_recovery_strategy,
    recover_partial_data,
)
from receipt_pipeline.models.agent_result import AgentResult
from receipt_pipeline.models.fallback import FallbackContext
from receipt_pipeline.models.receipt import ExtractedReceiptData
from receipt_pipeline.utils.exceptions import DeadlineExceeded


def make_strategy(name, priority, cost=0.0, data=None, confidence=80.0, success=True,
                  error=None, applies=True, runs=None):
    """Strategy record returning a fixed outcome."""

    async def execute(context):
        if runs is not None:
            runs.append(name)
        if error is not None:
            raise error
        if not success:
            return AgentResult(success=False, agent_name=name, error="failed", error_type="ParsingError", cost=cost)
        return AgentResult.ok(name, data, confidence, time.time(), cost=cost)

    return FallbackStrategy(
        name=name,
        priority=priority,
        cost=cost,
        expected_accuracy=None,
        can_handle=lambda context: applies,
        execute=execute,
    )


def good_record(vendor="Shop", total=9.50):
    return ExtractedReceiptData(vendor=vendor, total_amount=total, subtotal=total)


@pytest.fixture
def context(market_text):
    return FallbackContext(
        raw_text=market_text,
        failed_agents=['vendor_parsing'],
        error_messages=['No text-understanding provider'],
        cost_budget_remaining=1.0,
    )


def test_offline_chain_ends_in_pattern_extraction(offline_llm_client, context):
    manager = FallbackManager(default_strategies(parsing_agent=VendorParsingAgent(offline_llm_client)))
    result = asyncio.run(manager.recover(context))

    assert result.success
    assert result.attempted == ['enhanced_generic_parsing_failed', 'pattern_based_extraction']
    assert result.strategy == 'pattern_based_extraction'
    assert result.confidence == 50
    assert result.data.vendor == "CORNER MARKET"
    assert result.data.total_amount == 16.48
    assert result.metadata['recoveryMethod'] == 'strategy_success'
    assert result.metadata['originalFailures'] == ['No text-understanding provider']


def test_strategies_run_by_priority(context):
    runs = []
    strategies = [
        make_strategy("second", 2, data=good_record("Second"), runs=runs),
        make_strategy("first", 1, data=good_record("First"), runs=runs),
    ]
    result = asyncio.run(FallbackManager(strategies).recover(context))

    assert runs == ["first"]
    assert result.data.vendor == "First"


def test_max_attempts_bounds_executions(context):
    runs = []
    strategies = [make_strategy(f"s{i}", i, success=False, runs=runs) for i in range(4)]
    result = asyncio.run(FallbackManager(strategies, max_attempts=2).recover(context))

    assert runs == ["s0", "s1"]
    assert not result.success
    assert result.strategy == 'all_failed'
    assert result.error_type == 'AllStrategiesExhausted'
    assert result.attempted == ['s0_failed', 's1_failed']


def test_spend_bounded_by_max_total_cost(context):
    runs = []
    strategies = [make_strategy(f"s{i}", i, cost=0.05, success=False, runs=runs) for i in range(3)]
    result = asyncio.run(FallbackManager(strategies, max_total_cost=0.08).recover(context))

    assert runs == ["s0"]
    assert result.cost == pytest.approx(0.05)


def test_context_budget_excludes_paid_strategies(context):
    context.cost_budget_remaining = 0.0
    runs = []
    strategies = [
        make_strategy("paid", 1, cost=0.01, data=good_record(), runs=runs),
        make_strategy("free", 2, data=good_record(), runs=runs),
    ]
    result = asyncio.run(FallbackManager(strategies).recover(context))

    assert runs == ["free"]
    assert result.strategy == "free"


def test_nothing_applicable():
    context = FallbackContext(raw_text="", cost_budget_remaining=1.0)
    result = asyncio.run(FallbackManager(default_strategies()).recover(context))

    assert not result.success
    assert result.strategy == 'none_available'
    assert result.attempted == []
    assert result.metadata['recoveryMethod'] == 'no_fallback_available'


def test_raising_strategy_recorded_and_skipped(context):
    strategies = [
        make_strategy("broken", 1, error=RuntimeError("boom")),
        make_strategy("working", 2, data=good_record()),
    ]
    result = asyncio.run(FallbackManager(strategies).recover(context))

    assert result.attempted == ['broken_failed', 'working']
    assert result.metadata['attempts'][0]['errorType'] == 'RuntimeError'


def test_terminal_error_raised_by_strategy_propagates(context):
    runs = []
    strategies = [
        make_strategy("expired", 1, error=DeadlineExceeded("fallback"), runs=runs),
        make_strategy("working", 2, data=good_record(), runs=runs),
    ]
    with pytest.raises(DeadlineExceeded):
        asyncio.run(FallbackManager(strategies).recover(context))

    assert runs == ['expired']


def test_terminal_failure_result_stops_chain(context):
    runs = []

    async def execute(attempt_context):
        runs.append("expired")
        return AgentResult.failure("expired", DeadlineExceeded("fallback"), time.time())

    strategies = [
        FallbackStrategy(name="expired", priority=1, cost=0.0, expected_accuracy=None,
                         can_handle=lambda c: True, execute=execute),
        make_strategy("working", 2, data=good_record(), runs=runs),
    ]
    result = asyncio.run(FallbackManager(strategies).recover(context))

    assert not result.success
    assert result.attempted == ['expired_failed']
    assert runs == ['expired']


def test_low_confidence_result_not_accepted(context):
    strategies = [make_strategy("weak", 1, data=good_record(), confidence=10)]
    result = asyncio.run(FallbackManager(strategies).recover(context))

    assert not result.success
    assert result.attempted == ['weak_failed']


def test_result_without_total_not_accepted(context):
    strategies = [make_strategy("no_total", 1, data=good_record(total=0.0))]
    assert not asyncio.run(FallbackManager(strategies).recover(context)).success


def test_unaccepted_data_feeds_partial_recovery(context):
    context.partial_results = [ExtractedReceiptData(date=date(2024, 9, 15))]
    strategies = [
        make_strategy("weak", 1, data=good_record("Shop", 5.00), confidence=10),
        partial_recovery_strategy(),
    ]
    result = asyncio.run(FallbackManager(strategies).recover(context))

    assert result.success
    assert result.attempted == ['weak_failed', 'partial_data_recovery']
    assert result.data.vendor == "Shop"
    assert result.data.total_amount == 5.00
    assert result.confidence == 40


def test_recover_partial_data_later_wins():
    merged = recover_partial_data([
        ExtractedReceiptData(vendor="First", total_amount=3.00, tax=0.20),
        ExtractedReceiptData(vendor="Second", total_amount=4.00),
    ])

    assert merged.vendor == "Second"
    assert merged.total_amount == 4.00
    assert merged.tax == 0.20


def test_extract_using_patterns(market_text):
    data = extract_using_patterns(market_text)

    assert data.vendor == "CORNER MARKET"
    assert data.total_amount == 16.48
    assert [item.id for item in data.line_items] == ['pattern-item-0', 'pattern-item-1']
    assert [item.total_price for item in data.line_items] == [12.99, 3.49]


def test_extract_using_patterns_skips_subtotal():
    data = extract_using_patterns("SHOP\nSubtotal 5.00\nTax 0.40\nTotal: $5.40")
    assert data.total_amount == 5.40
    assert data.line_items == []
