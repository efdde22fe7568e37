"""Client-side cost and audit tracking."""

from .analytics import (
    ChatAnalytics,
    ChatModelUsage,
    compute_chat_analytics,
    suggest_cost_optimizations,
)
from .models import (
    AuditEntry,
    BudgetNotice,
    BudgetSettings,
    NoticeKind,
    TurnCharge,
    TurnContext,
    UsageTotals,
)
from .store import InMemoryStore, JsonFileStore, KeyValueStore, RedisStore
from .tracker import UsageTracker, compute_cost, evaluate_budget, month_key

__all__ = [
    # Tracker
    "UsageTracker",
    "compute_cost",
    "evaluate_budget",
    "month_key",
    # Models
    "AuditEntry",
    "BudgetNotice",
    "BudgetSettings",
    "NoticeKind",
    "TurnCharge",
    "TurnContext",
    "UsageTotals",
    # Stores
    "KeyValueStore",
    "InMemoryStore",
    "RedisStore",
    "JsonFileStore",
    # Analytics
    "ChatAnalytics",
    "ChatModelUsage",
    "compute_chat_analytics",
    "suggest_cost_optimizations",
]
