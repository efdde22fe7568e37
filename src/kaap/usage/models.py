"""Usage accounting models.

Persisted with the camelCase keys the chat UI writes, so a store shared
with the browser client reads back unchanged.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _StoredModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=(),
    )


class UsageTotals(_StoredModel):
    """Accumulated tokens and cost."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    cost_usd: Decimal = Field(default=Decimal("0"), alias="costUSD")

    def add(
        self,
        input_tokens: int,
        output_tokens: int,
        total_tokens: int,
        cost_usd: Decimal,
    ) -> "UsageTotals":
        """Return new totals including one more turn."""
        return UsageTotals(
            input_tokens=self.input_tokens + input_tokens,
            output_tokens=self.output_tokens + output_tokens,
            total_tokens=self.total_tokens + total_tokens,
            cost_usd=self.cost_usd + cost_usd,
        )


class BudgetSettings(_StoredModel):
    """Monthly spending caps.

    A monthly budget of 0 disables the monthly checks. Per-model limits
    apply only to models listed in ``per_model_limit_usd``.
    """

    monthly_budget_usd: Decimal = Field(default=Decimal("0"), ge=0, alias="monthlyBudgetUSD")
    alert_threshold: Decimal = Field(default=Decimal("0.8"), ge=0, le=1)
    per_model_limit_usd: dict[str, Decimal] = Field(default_factory=dict, alias="perModelLimitUSD")


class AuditEntry(_StoredModel):
    """One audit record per turn, successful or failed."""

    id: str
    timestamp: int
    model: str
    provider: str
    mode: str | None = None
    temperature: float | None = None
    top_p: float | None = None
    has_files: bool = False
    file_names: list[str] = Field(default_factory=list)
    memory_included: bool = False
    pinned_facts_included: bool = False
    used_model: str | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None
    cost_usd: Decimal | None = Field(default=None, alias="costUSD")
    error: str | None = None


class TurnContext(BaseModel):
    """What the caller submitted for one turn, for the audit record."""

    model_config = ConfigDict(protected_namespaces=())

    model: str
    mode: str | None = None
    temperature: float | None = None
    top_p: float | None = None
    file_names: list[str] = Field(default_factory=list)
    memory_included: bool = False
    pinned_facts_included: bool = False


class NoticeKind(str, Enum):
    """Budget notice severity."""

    WARNING = "warning"
    HARD_STOP = "hard_stop"


class BudgetNotice(BaseModel):
    """Budget condition surfaced to the user after or before a turn."""

    model_config = ConfigDict(protected_namespaces=())

    kind: NoticeKind
    message: str
    model: str | None = None
    spent_usd: Decimal
    limit_usd: Decimal


class TurnCharge(BaseModel):
    """Cost recorded for one served turn."""

    model: str
    input_tokens: int
    output_tokens: int
    total_tokens: int
    cost_usd: Decimal
    notices: list[BudgetNotice] = Field(default_factory=list)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
