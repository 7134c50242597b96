from __future__ import annotations

"""Budget guard (TCO shield).

``check`` runs before any provider call that is expected to consume tokens and
fails closed over every active rule of the workspace. ``record`` runs after
every call, successful or not, and only ever adds to the counters.

Counters are kept per calendar month (UTC), keyed ``YYYY-MM``. Resetting them
at the start of a billing cycle is done outside the control plane.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from cerebrin_ai.core.errors import BudgetExceeded

from ..repos.interfaces import BudgetRuleRepository, UsageRepository
from ..schemas.domain import BudgetDecision, UsageCounter

logger = logging.getLogger(__name__)


def current_period(now: Optional[datetime] = None) -> str:
    moment = now or datetime.now(timezone.utc)
    return moment.strftime("%Y-%m")


class BudgetGuard:
    def __init__(
        self,
        *,
        rules: BudgetRuleRepository,
        usage: UsageRepository,
        period: Callable[[], str] = current_period,
    ) -> None:
        self._rules = rules
        self._usage = usage
        self._period = period

    async def usage(self, workspace_id: str) -> UsageCounter:
        return await self._usage.get(workspace_id, self._period())

    async def check(self, workspace_id: str, agent_id: Optional[str] = None) -> BudgetDecision:
        """
        Evaluate the workspace's active rules against this period's usage.

        Returns:
            ``allowed=False`` with a reason naming the exhausted ceiling as
            soon as any rule's token or USD ceiling is met or exceeded.
        """
        rules = await self._rules.list_active(workspace_id)
        if not rules:
            return BudgetDecision(allowed=True)

        counter = await self.usage(workspace_id)
        for rule in rules:
            if rule.max_tokens_per_period is not None and counter.tokens >= rule.max_tokens_per_period:
                reason = (
                    f"Token limit ({rule.max_tokens_per_period:,}) reached for this period. "
                    f"Used: {counter.tokens:,} tokens."
                )
                logger.info(f"Budget denied: workspace={workspace_id} agent={agent_id} rule={rule.id} tokens")
                return BudgetDecision(allowed=False, reason=reason)
            if rule.max_usd_per_period is not None and counter.cost_usd >= rule.max_usd_per_period:
                reason = (
                    f"USD budget (${rule.max_usd_per_period:.2f}) exceeded for this period. "
                    f"Used: ${counter.cost_usd:.4f}."
                )
                logger.info(f"Budget denied: workspace={workspace_id} agent={agent_id} rule={rule.id} usd")
                return BudgetDecision(allowed=False, reason=reason)
        return BudgetDecision(allowed=True)

    async def ensure(self, workspace_id: str, agent_id: Optional[str] = None) -> None:
        """Raise ``BudgetExceeded`` when ``check`` denies."""
        decision = await self.check(workspace_id, agent_id)
        if not decision.allowed:
            raise BudgetExceeded(decision.reason or "Budget exceeded")

    async def record(self, workspace_id: str, tokens: int, cost_usd: float) -> None:
        """Add consumption to the current period; safe without a prior ``check``."""
        if tokens < 0 or cost_usd < 0:
            raise ValueError("usage increments must be non-negative")
        if tokens == 0 and cost_usd == 0:
            return
        await self._usage.increment(workspace_id, self._period(), tokens=tokens, cost_usd=cost_usd)
        logger.debug(f"Usage recorded: workspace={workspace_id} tokens={tokens} cost_usd={cost_usd:.6f}")
