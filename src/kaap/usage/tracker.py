"""Cost and audit tracking.

Turns completion metadata into cost, accumulates monthly totals (overall
and per model), keeps a bounded audit log and evaluates budget limits.
Budget notices never affect a response that was already served; only
``check_submission`` blocks later turns.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal
from typing import TypeVar

import structlog
from pydantic import BaseModel, TypeAdapter, ValidationError

from kaap.llm.normalizer import normalize_stored_model_id
from kaap.llm.registry import ModelRegistry
from kaap.llm.resolver import resolve_provider
from kaap.services.schemas import TurnCompletion

from .models import (
    AuditEntry,
    BudgetNotice,
    BudgetSettings,
    NoticeKind,
    TurnCharge,
    TurnContext,
    UsageTotals,
    utc_now,
)
from .store import KeyValueStore

logger = structlog.get_logger()

T = TypeVar("T")

AUDIT_LOG_KEY = "audit-log"
BUDGET_SETTINGS_KEY = "budget-settings"
DEFAULT_AUDIT_LIMIT = 500

TOKENS_PER_MILLION = Decimal(1_000_000)

_MODEL_USAGE = TypeAdapter(dict[str, UsageTotals])
_AUDIT_LOG = TypeAdapter(list[AuditEntry])


def month_key(now: datetime) -> str:
    """Calendar-month identifier, e.g. ``2025-03``."""
    return now.strftime("%Y-%m")


def usage_key(month: str) -> str:
    return f"usage-{month}"


def model_usage_key(month: str) -> str:
    return f"usage-model-{month}"


def compute_cost(
    registry: ModelRegistry,
    model_id: str,
    input_tokens: int,
    output_tokens: int,
) -> Decimal:
    """Cost of one turn in USD.

    Args:
        registry: Model registry with per-million-token prices
        model_id: Model that served the turn
        input_tokens: Prompt tokens
        output_tokens: Completion tokens

    Returns:
        Cost in USD, zero for models the registry does not know
    """
    model = registry.get(model_id)
    if model is None:
        return Decimal("0")
    input_cost = Decimal(input_tokens) / TOKENS_PER_MILLION * model.input_price_per_million
    output_cost = Decimal(output_tokens) / TOKENS_PER_MILLION * model.output_price_per_million
    return input_cost + output_cost


class UsageTracker:
    """Client-side cost accounting over a key-value store."""

    def __init__(
        self,
        store: KeyValueStore,
        registry: ModelRegistry,
        audit_limit: int = DEFAULT_AUDIT_LIMIT,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize usage tracker.

        Args:
            store: Persistent key-value store
            registry: Model registry used for pricing
            audit_limit: Number of newest audit entries kept
            clock: Current time source
        """
        self.store = store
        self.registry = registry
        self.audit_limit = audit_limit
        self.clock = clock
        self._lock = asyncio.Lock()

    def current_month(self) -> str:
        return month_key(self.clock())

    async def _read(self, key: str, adapter: TypeAdapter[T], default: T) -> T:
        raw = await self.store.get(key)
        if not raw:
            return default
        try:
            return adapter.validate_json(raw)
        except ValidationError:
            logger.warning("usage_store_corrupt", key=key)
            return default

    async def _write_model(self, key: str, value: BaseModel) -> None:
        await self.store.set(key, value.model_dump_json(by_alias=True))

    # Budget settings

    async def get_budget(self) -> BudgetSettings:
        """Stored budget settings (defaults when absent or corrupt)."""
        budget = await self._read(BUDGET_SETTINGS_KEY, TypeAdapter(BudgetSettings), BudgetSettings())
        budget.per_model_limit_usd = {
            normalize_stored_model_id(model_id): limit
            for model_id, limit in budget.per_model_limit_usd.items()
        }
        return budget

    async def set_budget(self, budget: BudgetSettings) -> None:
        await self._write_model(BUDGET_SETTINGS_KEY, budget)
        logger.info(
            "budget_updated",
            monthly_budget_usd=str(budget.monthly_budget_usd),
            alert_threshold=str(budget.alert_threshold),
            per_model_limits=len(budget.per_model_limit_usd),
        )

    # Totals

    async def monthly_usage(self, month: str | None = None) -> UsageTotals:
        """Overall totals for a month (current month by default)."""
        key = usage_key(month or self.current_month())
        return await self._read(key, TypeAdapter(UsageTotals), UsageTotals())

    async def monthly_model_usage(self, month: str | None = None) -> dict[str, UsageTotals]:
        """Per-model totals for a month (current month by default)."""
        key = model_usage_key(month or self.current_month())
        stored = await self._read(key, _MODEL_USAGE, {})

        # Deprecated ids fold into their successors
        merged: dict[str, UsageTotals] = {}
        for model_id, totals in stored.items():
            current = normalize_stored_model_id(model_id)
            previous = merged.get(current)
            merged[current] = (
                totals
                if previous is None
                else previous.add(
                    totals.input_tokens,
                    totals.output_tokens,
                    totals.total_tokens,
                    totals.cost_usd,
                )
            )
        return merged

    async def audit_log(self) -> list[AuditEntry]:
        """Audit entries, newest first."""
        entries = await self._read(AUDIT_LOG_KEY, _AUDIT_LOG, [])
        for entry in entries:
            entry.model = normalize_stored_model_id(entry.model)
            if entry.used_model:
                entry.used_model = normalize_stored_model_id(entry.used_model)
        return entries

    async def _append_audit(self, entry: AuditEntry) -> None:
        entries = [entry, *await self.audit_log()][: self.audit_limit]
        await self.store.set(AUDIT_LOG_KEY, _AUDIT_LOG.dump_json(entries, by_alias=True).decode())

    def _audit_entry(self, context: TurnContext, model_id: str) -> AuditEntry:
        return AuditEntry(
            id=str(uuid.uuid4()),
            timestamp=int(self.clock().timestamp() * 1000),
            model=model_id,
            provider=resolve_provider(model_id, self.registry).value,
            mode=context.mode,
            temperature=context.temperature,
            top_p=context.top_p,
            has_files=bool(context.file_names),
            file_names=list(context.file_names),
            memory_included=context.memory_included,
            pinned_facts_included=context.pinned_facts_included,
        )

    # Recording

    async def record_success(self, context: TurnContext, completion: TurnCompletion) -> TurnCharge:
        """Account for a served turn.

        Args:
            context: What the caller submitted
            completion: Completion metadata naming the serving model

        Returns:
            Charge for the turn, with any budget notices it triggered
        """
        model_id = completion.model or context.model
        total_tokens = completion.total_tokens or completion.input_tokens + completion.output_tokens
        cost = compute_cost(self.registry, model_id, completion.input_tokens, completion.output_tokens)
        month = self.current_month()

        async with self._lock:
            monthly = (await self.monthly_usage(month)).add(
                completion.input_tokens, completion.output_tokens, total_tokens, cost
            )
            per_model = await self.monthly_model_usage(month)
            model_totals = per_model.get(model_id, UsageTotals()).add(
                completion.input_tokens, completion.output_tokens, total_tokens, cost
            )
            per_model[model_id] = model_totals

            await self._write_model_usage(month, monthly, per_model)

            entry = self._audit_entry(context, model_id)
            entry.used_model = model_id
            entry.input_tokens = completion.input_tokens
            entry.output_tokens = completion.output_tokens
            entry.total_tokens = total_tokens
            entry.cost_usd = cost
            await self._append_audit(entry)

        budget = await self.get_budget()
        notices = evaluate_budget(budget, model_id, monthly.cost_usd, model_totals.cost_usd)

        logger.info(
            "usage_recorded",
            model=model_id,
            input_tokens=completion.input_tokens,
            output_tokens=completion.output_tokens,
            cost_usd=str(cost),
            month=month,
            notices=[n.kind.value for n in notices],
        )

        return TurnCharge(
            model=model_id,
            input_tokens=completion.input_tokens,
            output_tokens=completion.output_tokens,
            total_tokens=total_tokens,
            cost_usd=cost,
            notices=notices,
        )

    async def _write_model_usage(
        self,
        month: str,
        monthly: UsageTotals,
        per_model: dict[str, UsageTotals],
    ) -> None:
        await self._write_model(usage_key(month), monthly)
        await self.store.set(
            model_usage_key(month),
            _MODEL_USAGE.dump_json(per_model, by_alias=True).decode(),
        )

    async def record_failure(self, context: TurnContext, error: str) -> None:
        """Append an audit record for a failed turn."""
        entry = self._audit_entry(context, context.model)
        entry.error = error
        async with self._lock:
            await self._append_audit(entry)
        logger.info("turn_failure_recorded", model=context.model, error=error)

    async def check_submission(self, model_id: str) -> BudgetNotice | None:
        """Refuse a new turn once a cap has been reached.

        Args:
            model_id: Model the caller is about to use

        Returns:
            Hard-stop notice if the monthly or per-model cap is reached,
            None if the turn may proceed
        """
        budget = await self.get_budget()
        monthly = await self.monthly_usage()

        if budget.monthly_budget_usd > 0 and monthly.cost_usd >= budget.monthly_budget_usd:
            return BudgetNotice(
                kind=NoticeKind.HARD_STOP,
                message="Monthly cost limit reached. Raise the limit or wait for the next month.",
                spent_usd=monthly.cost_usd,
                limit_usd=budget.monthly_budget_usd,
            )

        limit = budget.per_model_limit_usd.get(model_id)
        if limit:
            spent = (await self.monthly_model_usage()).get(model_id, UsageTotals()).cost_usd
            if spent >= limit:
                return _model_limit_notice(model_id, spent, limit)

        return None


def evaluate_budget(
    budget: BudgetSettings,
    model_id: str,
    monthly_cost: Decimal,
    model_cost: Decimal,
) -> list[BudgetNotice]:
    """Budget notices for spend that already includes the latest turn.

    The monthly alert and the per-model cap are checked independently;
    either, both or neither may fire.

    Args:
        budget: Budget settings
        model_id: Model that served the turn
        monthly_cost: Month-to-date total spend
        model_cost: Month-to-date spend on ``model_id``

    Returns:
        Warning and/or hard-stop notices
    """
    notices: list[BudgetNotice] = []

    if budget.monthly_budget_usd > 0:
        threshold = budget.monthly_budget_usd * budget.alert_threshold
        if monthly_cost >= threshold:
            remaining = max(budget.monthly_budget_usd - monthly_cost, Decimal("0"))
            notices.append(
                BudgetNotice(
                    kind=NoticeKind.WARNING,
                    message=f"Approaching the monthly budget limit. About ${remaining:.2f} left.",
                    spent_usd=monthly_cost,
                    limit_usd=budget.monthly_budget_usd,
                )
            )

    limit = budget.per_model_limit_usd.get(model_id)
    if limit and model_cost >= limit:
        notices.append(_model_limit_notice(model_id, model_cost, limit))

    return notices


def _model_limit_notice(model_id: str, spent: Decimal, limit: Decimal) -> BudgetNotice:
    return BudgetNotice(
        kind=NoticeKind.HARD_STOP,
        message=f"Cost limit reached for model {model_id}. Switch models or raise the limit.",
        model=model_id,
        spent_usd=spent,
        limit_usd=limit,
    )
