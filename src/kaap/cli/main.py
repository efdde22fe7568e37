"""Kaap CLI entry point.

A terminal client for the chat gateway: it runs turns through the same
orchestrator as the HTTP API and keeps usage, budgets, the audit log and
custom models in a local JSON file (or Redis with ``CACHE_BACKEND=redis``).
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from kaap.api.config import get_cache_settings, get_chat_settings
from kaap.api.dependencies import get_orchestrator, get_registry
from kaap.cache.redis_client import close_redis, init_redis
from kaap.chat import Attachment, compose_submission, render_multi_response
from kaap.llm import ChatError, ModelDescriptor, ModelRegistry, Provider, classify_error
from kaap.llm.schemas import ChatMessage
from kaap.services import ChatTurnRequest, ConnectionTestRequest, MultiTurnRequest, TurnOrchestrator
from kaap.usage import (
    BudgetNotice,
    BudgetSettings,
    JsonFileStore,
    KeyValueStore,
    NoticeKind,
    RedisStore,
    TurnContext,
    UsageTotals,
    UsageTracker,
)
from kaap.utils import setup_logger

app = typer.Typer(name="kaap", help="Multi-provider LLM chat gateway")
models_app = typer.Typer(help="Inspect and manage models")
app.add_typer(models_app, name="models")

console = Console()

DEFAULT_STORE_PATH = Path.home() / ".kaap" / "store.json"

StoreOption = Annotated[
    Path,
    typer.Option("--store", envvar="KAAP_STORE", help="JSON file holding usage, budgets and custom models"),
]


@app.callback()
def main(
    log_level: Annotated[str, typer.Option("--log-level", help="Log level")] = "WARNING",
) -> None:
    """Configure logging for every command."""
    setup_logger(level=log_level)


@asynccontextmanager
async def open_session(store_path: Path) -> AsyncIterator[tuple[ModelRegistry, KeyValueStore, UsageTracker]]:
    """Open the store, load custom models and build a usage tracker."""
    use_redis = get_cache_settings().backend == "redis"
    store: KeyValueStore
    if use_redis:
        store = RedisStore(await init_redis())
    else:
        store = JsonFileStore(store_path)

    registry = get_registry()
    await registry.load_custom_models(store)
    tracker = UsageTracker(store, registry, audit_limit=get_chat_settings().audit_log_limit)
    try:
        yield registry, store, tracker
    finally:
        if use_redis:
            await close_redis()


def _print_notice(notice: BudgetNotice) -> None:
    style = "bold red" if notice.kind is NoticeKind.HARD_STOP else "yellow"
    console.print(notice.message, style=style)


def _print_error(error: ChatError) -> None:
    info = classify_error(error.details)
    console.print(f"{info.description}\nCode: {info.code}", style="bold red")
    console.print(error.details, style="dim")


def _read_attachments(paths: list[Path]) -> list[Attachment]:
    attachments = []
    for path in paths:
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise typer.BadParameter(f"Cannot read {path}: {e}") from e
        attachments.append(Attachment(name=path.name, content=content))
    return attachments


async def _stream_turn(
    orchestrator: TurnOrchestrator,
    tracker: UsageTracker,
    request: ChatTurnRequest,
    context: TurnContext,
) -> None:
    try:
        stream = await orchestrator.chat(request)
    except ChatError as e:
        await tracker.record_failure(context, e.details)
        _print_error(e)
        raise typer.Exit(1) from e

    if stream.model_id != context.model:
        console.print(f"Served by fallback model {stream.model_id}", style="yellow")

    try:
        async for delta in stream:
            if delta.text:
                console.print(delta.text, end="", markup=False, highlight=False)
    except ChatError as e:
        console.print()
        await tracker.record_failure(context, e.details)
        _print_error(e)
        raise typer.Exit(1) from e
    finally:
        await stream.aclose()
    console.print()

    charge = await tracker.record_success(context, stream.completion())
    console.print(
        f"[dim]{charge.model}: {charge.input_tokens} in / {charge.output_tokens} out, "
        f"${charge.cost_usd:.4f}[/dim]"
    )
    for notice in charge.notices:
        _print_notice(notice)


async def _run_chat(
    message: str,
    model: str | None,
    fallbacks: list[str],
    compare: list[str],
    mode: str | None,
    temperature: float | None,
    top_p: float | None,
    master_prompt: str | None,
    memory: str | None,
    pinned_facts: str | None,
    files: list[Path],
    store_path: Path,
) -> None:
    attachments = _read_attachments(files)
    try:
        text = compose_submission(message, attachments)
    except ChatError as e:
        _print_error(e)
        raise typer.Exit(1) from e

    async with open_session(store_path) as (_, _, tracker):
        orchestrator = get_orchestrator()
        model_id = orchestrator.primary_model(model)

        notice = await tracker.check_submission(model_id)
        if notice is not None:
            _print_notice(notice)
            raise typer.Exit(1)

        effective_temperature = orchestrator.builder.effective_temperature(None, mode, temperature)
        messages = [ChatMessage(role="user", content=text)]
        context = TurnContext(
            model=model_id,
            mode=mode,
            temperature=effective_temperature,
            top_p=top_p,
            file_names=[a.name for a in attachments],
            memory_included=bool(memory),
            pinned_facts_included=bool(pinned_facts),
        )

        if compare:
            try:
                result = await orchestrator.multi(
                    MultiTurnRequest(
                        model_ids=[model_id, *compare],
                        messages=messages,
                        model_id=model_id,
                        master_prompt=master_prompt,
                        memory=memory,
                        pinned_facts=pinned_facts,
                        work_mode=mode,
                        temperature=effective_temperature,
                        top_p=top_p,
                    )
                )
            except ChatError as e:
                _print_error(e)
                raise typer.Exit(1) from e
            console.print(Markdown(render_multi_response(result)))
            return

        await _stream_turn(
            orchestrator,
            tracker,
            ChatTurnRequest(
                messages=messages,
                model_id=model_id,
                fallback_model_ids=fallbacks,
                master_prompt=master_prompt,
                memory=memory,
                pinned_facts=pinned_facts,
                work_mode=mode,
                temperature=effective_temperature,
                top_p=top_p,
            ),
            context,
        )


@app.command()
def chat(
    message: Annotated[str, typer.Argument(help="Message to send")] = "",
    model: Annotated[Optional[str], typer.Option("--model", "-m", help="Primary model")] = None,
    fallback: Annotated[
        Optional[list[str]], typer.Option("--fallback", "-f", help="Fallback model (repeatable)")
    ] = None,
    compare: Annotated[
        Optional[list[str]],
        typer.Option("--compare", "-c", help="Also ask this model and merge the answers (repeatable)"),
    ] = None,
    mode: Annotated[Optional[str], typer.Option(help="Work mode: fast, analytical, creative, economical")] = None,
    temperature: Annotated[Optional[float], typer.Option(min=0.0, max=2.0)] = None,
    top_p: Annotated[Optional[float], typer.Option("--top-p", min=0.0, max=1.0)] = None,
    master_prompt: Annotated[Optional[str], typer.Option("--master-prompt")] = None,
    memory: Annotated[Optional[str], typer.Option(help="Conversation memory")] = None,
    pinned_facts: Annotated[Optional[str], typer.Option("--pinned-facts")] = None,
    file: Annotated[
        Optional[list[Path]], typer.Option("--file", exists=True, dir_okay=False, help="Attach a text file")
    ] = None,
    store: StoreOption = DEFAULT_STORE_PATH,
) -> None:
    """Send one message and stream the answer."""
    asyncio.run(
        _run_chat(
            message,
            model,
            fallback or [],
            compare or [],
            mode,
            temperature,
            top_p,
            master_prompt,
            memory,
            pinned_facts,
            file or [],
            store,
        )
    )


async def _run_test(model: str | None, store_path: Path) -> None:
    async with open_session(store_path):
        orchestrator = get_orchestrator()
        try:
            result = await orchestrator.test(ConnectionTestRequest(model_id=model))
        except ChatError as e:
            _print_error(e)
            raise typer.Exit(1) from e
    console.print(f"{result.model}: OK", style="bold green")
    console.print(result.text, markup=False)


@app.command()
def test(
    model: Annotated[Optional[str], typer.Option("--model", "-m", help="Model to test")] = None,
    store: StoreOption = DEFAULT_STORE_PATH,
) -> None:
    """Check that a model answers with the configured credentials."""
    asyncio.run(_run_test(model, store))


@models_app.command("list")
def list_models(store: StoreOption = DEFAULT_STORE_PATH) -> None:
    """List built-in and custom models with prices."""

    async def run() -> ModelRegistry:
        async with open_session(store) as (registry, _, _):
            return registry

    registry = asyncio.run(run())
    custom_ids = {m.id for m in registry.custom_models}

    table = Table(title="Models (USD per 1M tokens)")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Provider")
    table.add_column("Input", justify="right")
    table.add_column("Output", justify="right")
    table.add_column("Max output", justify="right")
    for m in registry.get_all():
        name = f"{m.display_name} (custom)" if m.id in custom_ids else m.display_name
        table.add_row(
            m.id,
            name,
            m.provider.value,
            str(m.input_price_per_million),
            str(m.output_price_per_million),
            str(m.max_output_tokens or "-"),
        )
    console.print(table)


def _price(value: str) -> Decimal:
    try:
        price = Decimal(value)
    except InvalidOperation as e:
        raise typer.BadParameter(f"Not a price: {value}") from e
    if price < 0:
        raise typer.BadParameter("Price cannot be negative")
    return price


@models_app.command("add")
def add_model(
    model_id: Annotated[str, typer.Argument(help="Model id as the provider names it")],
    provider: Annotated[Provider, typer.Option(help="Provider serving the model")],
    input_price: Annotated[str, typer.Option("--input-price", help="USD per 1M input tokens")] = "0",
    output_price: Annotated[str, typer.Option("--output-price", help="USD per 1M output tokens")] = "0",
    name: Annotated[Optional[str], typer.Option(help="Display name")] = None,
    max_output_tokens: Annotated[Optional[int], typer.Option("--max-output-tokens", min=1)] = None,
    store: StoreOption = DEFAULT_STORE_PATH,
) -> None:
    """Add a custom model."""
    descriptor = ModelDescriptor(
        id=model_id.strip(),
        provider=provider,
        input_price_per_million=_price(input_price),
        output_price_per_million=_price(output_price),
        display_name=name or model_id.strip(),
        max_output_tokens=max_output_tokens,
    )

    async def run() -> None:
        async with open_session(store) as (registry, kv, _):
            registry.add_custom_model(descriptor)
            await registry.save_custom_models(kv)

    asyncio.run(run())
    console.print(f"Added {descriptor.id}", style="green")


@models_app.command("remove")
def remove_model(
    model_id: Annotated[str, typer.Argument(help="Custom model id")],
    store: StoreOption = DEFAULT_STORE_PATH,
) -> None:
    """Remove a custom model."""

    async def run() -> bool:
        async with open_session(store) as (registry, kv, _):
            removed = registry.remove_custom_model(model_id)
            if removed:
                await registry.save_custom_models(kv)
            return removed

    if not asyncio.run(run()):
        console.print(f"No custom model {model_id}", style="red")
        raise typer.Exit(1)
    console.print(f"Removed {model_id}", style="green")


@app.command()
def usage(store: StoreOption = DEFAULT_STORE_PATH) -> None:
    """Show this month's spending against the budget."""

    async def run() -> tuple[str, UsageTotals, dict[str, UsageTotals], BudgetSettings]:
        async with open_session(store) as (_, _, tracker):
            return (
                tracker.current_month(),
                await tracker.monthly_usage(),
                await tracker.monthly_model_usage(),
                await tracker.get_budget(),
            )

    month, totals, per_model, budget = asyncio.run(run())

    table = Table(title=f"Usage {month}")
    table.add_column("Model", style="cyan")
    table.add_column("Input", justify="right")
    table.add_column("Output", justify="right")
    table.add_column("Cost (USD)", justify="right")
    for model_id, model_totals in sorted(per_model.items(), key=lambda kv: kv[1].cost_usd, reverse=True):
        limit = budget.per_model_limit_usd.get(model_id)
        cost = f"{model_totals.cost_usd:.4f}" + (f" / {limit}" if limit else "")
        table.add_row(model_id, str(model_totals.input_tokens), str(model_totals.output_tokens), cost)
    table.add_row(
        "[bold]Total[/bold]",
        str(totals.input_tokens),
        str(totals.output_tokens),
        f"{totals.cost_usd:.4f}"
        + (f" / {budget.monthly_budget_usd}" if budget.monthly_budget_usd > 0 else ""),
    )
    console.print(table)


@app.command()
def budget(
    monthly: Annotated[Optional[str], typer.Option(help="Monthly cap in USD (0 disables)")] = None,
    threshold: Annotated[Optional[float], typer.Option(min=0.0, max=1.0, help="Alert threshold fraction")] = None,
    model_limit: Annotated[
        Optional[list[str]], typer.Option("--model-limit", help="Per-model cap as MODEL=USD (repeatable)")
    ] = None,
    store: StoreOption = DEFAULT_STORE_PATH,
) -> None:
    """Show or update budget limits."""
    limits: dict[str, Decimal] = {}
    for item in model_limit or []:
        model_id, sep, value = item.partition("=")
        if not sep or not model_id.strip():
            raise typer.BadParameter(f"Expected MODEL=USD, got {item}")
        limits[model_id.strip()] = _price(value)

    async def run() -> BudgetSettings:
        async with open_session(store) as (_, _, tracker):
            settings = await tracker.get_budget()
            if monthly is None and threshold is None and not limits:
                return settings
            if monthly is not None:
                settings.monthly_budget_usd = _price(monthly)
            if threshold is not None:
                settings.alert_threshold = Decimal(str(threshold))
            settings.per_model_limit_usd.update(limits)
            await tracker.set_budget(settings)
            return settings

    settings = asyncio.run(run())
    console.print(f"Monthly budget: ${settings.monthly_budget_usd} (alert at {settings.alert_threshold:.0%})")
    for model_id, limit in settings.per_model_limit_usd.items():
        console.print(f"  {model_id}: ${limit}")


@app.command()
def serve(
    host: Annotated[str, typer.Option(help="Bind address")] = "127.0.0.1",
    port: Annotated[int, typer.Option(help="Port")] = 8000,
    reload: Annotated[bool, typer.Option(help="Reload on code changes")] = False,
) -> None:
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("kaap.api.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
