"""
Fallback Manager Module.

This module provides the FallbackManager class that runs the recovery
chain after a failed or low-quality parse.

Execution policy:
    - Keep strategies that can handle the context and fit the budget
    - Run them by priority, at most `max_attempts` of them
    - Stop once spend reaches `max_total_cost`
    - Accept the first result that is successful, confident enough and
      has both a vendor and a positive total
    - Stop at a terminal failure; a raised terminal error propagates

Author: ML Engineering Team
"""

import time
from dataclasses import replace
from typing import Any, Dict, List, Optional

from config import get_config
from receipt_pipeline.fallback.strategies import FallbackStrategy
from receipt_pipeline.models.agent_result import AgentResult
from receipt_pipeline.models.fallback import FallbackContext, FallbackResult
from receipt_pipeline.utils.exceptions import AllStrategiesExhausted
from receipt_pipeline.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)


class FallbackManager:
    """
    Prioritized, budget-bounded recovery chain.

    Attributes:
        strategies: Strategy records
        max_attempts: Maximum number of strategy executions
        max_total_cost: Maximum total fallback spend in USD
        min_confidence: Minimum confidence for an acceptable result

    Example:
        >>> manager = FallbackManager(default_strategies())
        >>> result = asyncio.run(manager.recover(context))
        >>> result.strategy
        'pattern_based_extraction'
    """

    def __init__(
        self,
        strategies: List[FallbackStrategy],
        max_attempts: Optional[int] = None,
        max_total_cost: Optional[float] = None
    ) -> None:
        self.strategies = sorted(strategies, key=lambda s: s.priority)
        self.max_attempts = (
            max_attempts if max_attempts is not None
            else get_config("pipeline.max_fallback_attempts", 3)
        )
        self.max_total_cost = (
            max_total_cost if max_total_cost is not None
            else get_config("pipeline.max_total_fallback_cost", 0.1)
        )
        self.min_confidence = get_config("fallback.min_confidence", 30)

    def applicable(self, context: FallbackContext, spent: float = 0.0) -> List[FallbackStrategy]:
        """Strategies that can handle the context and fit the remaining budget."""
        allowance = min(context.cost_budget_remaining - spent, self.max_total_cost - spent)
        return [
            s for s in self.strategies
            if s.can_handle(context) and s.cost <= allowance
        ]

    def is_acceptable(self, result: AgentResult) -> bool:
        """Whether a strategy result can end the chain."""
        data = result.data
        return (
            result.success
            and data is not None
            and result.confidence >= self.min_confidence
            and data.has_vendor
            and data.total_amount > 0
        )

    async def recover(self, context: FallbackContext) -> FallbackResult:
        """
        Run the recovery chain.

        Args:
            context: Failure context from the orchestrator.

        Returns:
            FallbackResult. Unsuccessful outcomes carry strategy
            'none_available' or 'all_failed'; the latter also carries
            error type AllStrategiesExhausted.
        """
        start_time = time.time()
        attempted: List[str] = []
        attempts: List[Dict[str, Any]] = []
        partials = list(context.partial_results)
        spent = 0.0

        logger.warning(f"Initiating fallback recovery for failed agents: {', '.join(context.failed_agents) or 'none'}")

        candidates = self.applicable(context)
        if not candidates:
            logger.warning("No fallback strategy applicable")
            return FallbackResult(
                success=False,
                strategy='none_available',
                processing_time=time.time() - start_time,
                metadata={
                    'originalFailures': list(context.error_messages),
                    'recoveryMethod': 'no_fallback_available',
                },
            )

        for strategy in candidates:
            if len(attempted) >= self.max_attempts:
                break
            if spent >= self.max_total_cost:
                logger.warning("Fallback cost budget exhausted, stopping attempts")
                break
            if strategy.cost > min(context.cost_budget_remaining, self.max_total_cost) - spent:
                logger.debug(f"Skipping {strategy.name}: cost {strategy.cost} exceeds remaining budget")
                continue
            if context.time_remaining is not None and time.time() - start_time >= context.time_remaining:
                logger.warning("Fallback stopped: no time remaining")
                break

            logger.info(f"Attempting fallback strategy: {strategy.name}")
            attempt_context = replace(
                context,
                partial_results=partials,
                cost_budget_remaining=context.cost_budget_remaining - spent,
            )

            try:
                result = await strategy.execute(attempt_context)
            except Exception as e:
                if getattr(e, 'terminal', False):
                    logger.error(f"Fallback strategy {strategy.name} raised terminal {type(e).__name__}: {e}")
                    raise
                logger.warning(f"Fallback strategy {strategy.name} raised: {e}")
                attempted.append(f"{strategy.name}_failed")
                attempts.append({'strategy': strategy.name, 'error': str(e), 'errorType': type(e).__name__})
                continue

            spent += result.cost
            attempts.append({
                'strategy': strategy.name,
                'success': result.success,
                'confidence': result.confidence,
                'cost': result.cost,
                'errorType': result.error_type,
            })

            if self.is_acceptable(result):
                attempted.append(strategy.name)
                logger.info(f"Fallback strategy {strategy.name} succeeded (confidence={result.confidence:.0f})")
                return FallbackResult(
                    success=True,
                    strategy=strategy.name,
                    data=result.data,
                    cost=spent,
                    confidence=result.confidence,
                    processing_time=time.time() - start_time,
                    attempted=attempted,
                    metadata={
                        'originalFailures': list(context.error_messages),
                        'recoveryMethod': 'strategy_success',
                        'attempts': attempts,
                    },
                )

            attempted.append(f"{strategy.name}_failed")
            if result.terminal:
                logger.error(f"Fallback strategy {strategy.name} failed terminally: {result.error}")
                break
            if result.data is not None:
                partials.append(result.data)
            logger.warning(
                f"Fallback strategy {strategy.name} not accepted: "
                f"{result.error or f'confidence {result.confidence:.0f} or missing vendor/total'}"
            )

        error = AllStrategiesExhausted(attempted)
        logger.error(f"{error.message}: {attempted}")
        return FallbackResult(
            success=False,
            strategy='all_failed',
            cost=spent,
            processing_time=time.time() - start_time,
            attempted=attempted,
            error=str(error),
            error_type=type(error).__name__,
            metadata={
                'originalFailures': list(context.error_messages),
                'recoveryMethod': 'all_strategies_failed',
                'attempts': attempts,
            },
        )
