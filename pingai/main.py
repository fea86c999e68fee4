import asyncio
import json
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

import httpx
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from pingai.config.log import configure_logging
from pingai.config.settings import settings
from pingai.core.batch import run_batch_check, run_batch_key_check, run_single_check
from pingai.core.checker import Checker
from pingai.core.report import generate_report, generate_text_summary, overall_status, summarize
from pingai.core.schema import CheckStatus, FullCheckResult, ProviderConfig

app = typer.Typer(help="Probe LLM provider endpoints: connectivity, chat, streaming, model list and multi-turn context.")
console = Console()

STATUS_STYLES = {
    CheckStatus.SUCCESS: "[green]success[/green]",
    CheckStatus.WARNING: "[yellow]warning[/yellow]",
    CheckStatus.FAILED: "[red]failed[/red]",
}


def load_configs(path: Path) -> List[ProviderConfig]:
    """Read a JSON list of provider configurations (snake_case or camelCase keys)."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise typer.BadParameter(f"cannot read {path}: {e}")
    if not isinstance(data, list):
        raise typer.BadParameter(f"{path} must contain a JSON list of providers")
    try:
        return [ProviderConfig.model_validate(item) for item in data]
    except ValidationError as e:
        raise typer.BadParameter(f"invalid provider in {path}: {e}")


def load_keys(path: Path) -> List[str]:
    """One API key per line; blank lines and '#' comments are skipped."""
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        raise typer.BadParameter(f"cannot read {path}: {e}")
    return [line.strip() for line in lines if line.strip() and not line.strip().startswith("#")]


async def _execute(run: Callable[[Checker], Awaitable[List[FullCheckResult]]]) -> List[FullCheckResult]:
    # One client shared by every check of the run.
    async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT, follow_redirects=True) as client:
        checker = Checker(client=client, settings=settings)
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
            console=console,
        ) as progress:
            progress.add_task(description="Running checks...", total=None)
            return await run(checker)


def render(results: List[FullCheckResult]) -> None:
    for result in results:
        title = f"{result.provider_name or result.provider_id or result.base_url} · {result.model} ({result.protocol})"
        table = Table(title=title)
        table.add_column("Check", style="cyan")
        table.add_column("Status")
        table.add_column("Latency", justify="right")
        table.add_column("Message", style="magenta")
        table.add_column("Detail", overflow="fold")
        for item in result.results:
            latency = f"{item.latency} ms"
            if item.ttft:
                latency += f" (TTFT {item.ttft} ms)"
            table.add_row(item.item.value, STATUS_STYLES.get(item.status, item.status.value), latency, item.message, item.detail)
        console.print(table)
        console.print(f"Overall: {STATUS_STYLES[overall_status(result)]}  Total: {result.total_latency} ms\n")

    summary = summarize(results)
    console.print(
        f"[bold]Summary:[/bold] {summary.total} total, [green]{summary.success} success[/green], "
        f"[yellow]{summary.warning} warning[/yellow], [red]{summary.failed} failed[/red]"
    )


def emit(results: List[FullCheckResult], output: Optional[Path], text: bool) -> None:
    if text:
        console.print(generate_text_summary(results), markup=False, highlight=False)
    else:
        render(results)

    if output is not None:
        output.write_text(generate_report(results), encoding="utf-8")
        console.print(f"Report written to {output}")

    if summarize(results).failed:
        raise typer.Exit(code=1)


OutputOption = typer.Option(None, "--output", "-o", help="Write the JSON report to this file")
TextOption = typer.Option(False, "--text", help="Print the plain-text summary instead of tables")
LogLevelOption = typer.Option(None, "--log-level", help="Logging level (defaults to PINGAI_LOG_LEVEL)")


@app.command()
def check(
    base_url: str = typer.Option(..., "--base-url", help="Provider endpoint base URL"),
    api_key: str = typer.Option(..., "--api-key", envvar="PINGAI_API_KEY", help="API key"),
    model: str = typer.Option(..., "--model", help="Model name to test"),
    protocol: str = typer.Option("openai", "--protocol", help="openai, anthropic or gemini"),
    name: str = typer.Option("", "--name", help="Display name of the provider"),
    provider_id: str = typer.Option("", "--id", help="Provider id"),
    output: Optional[Path] = OutputOption,
    text: bool = TextOption,
    log_level: Optional[str] = LogLevelOption,
):
    """
    Run the full check against one provider
    """
    configure_logging(log_level or settings.LOG_LEVEL)
    config = ProviderConfig(
        base_url=base_url,
        api_key=api_key,
        model=model,
        protocol=protocol,
        provider_name=name,
        provider_id=provider_id,
    )
    console.print(f"[bold blue]Checking {name or base_url} ({protocol}, {model})[/bold blue]")

    async def run(checker: Checker) -> List[FullCheckResult]:
        return [await run_single_check(checker, config)]

    emit(asyncio.run(_execute(run)), output, text)


@app.command()
def batch(
    providers: Path = typer.Argument(..., help="JSON file with a list of provider configurations"),
    max_concurrency: Optional[int] = typer.Option(None, "--max-concurrency", help="Limit concurrent provider runs"),
    output: Optional[Path] = OutputOption,
    text: bool = TextOption,
    log_level: Optional[str] = LogLevelOption,
):
    """
    Check many providers concurrently
    """
    configure_logging(log_level or settings.LOG_LEVEL)
    configs = load_configs(providers)
    console.print(f"[bold blue]Checking {len(configs)} providers[/bold blue]")

    async def run(checker: Checker) -> List[FullCheckResult]:
        return await run_batch_check(checker, configs, max_concurrency=max_concurrency or settings.MAX_CONCURRENCY)

    emit(asyncio.run(_execute(run)), output, text)


@app.command()
def keys(
    keys_file: Path = typer.Argument(..., help="File with one API key per line"),
    base_url: str = typer.Option(..., "--base-url", help="Provider endpoint base URL"),
    model: str = typer.Option(..., "--model", help="Model name to test"),
    protocol: str = typer.Option("openai", "--protocol", help="openai, anthropic or gemini"),
    name: str = typer.Option("", "--name", help="Display name of the provider"),
    provider_id: str = typer.Option("", "--id", help="Provider id"),
    max_concurrency: Optional[int] = typer.Option(None, "--max-concurrency", help="Limit concurrent key runs"),
    output: Optional[Path] = OutputOption,
    text: bool = TextOption,
    log_level: Optional[str] = LogLevelOption,
):
    """
    Validate a pool of API keys against one provider configuration
    """
    configure_logging(log_level or settings.LOG_LEVEL)
    api_keys = load_keys(keys_file)
    if not api_keys:
        raise typer.BadParameter(f"no API keys found in {keys_file}")
    config = ProviderConfig(base_url=base_url, model=model, protocol=protocol, provider_name=name, provider_id=provider_id)
    console.print(f"[bold blue]Checking {len(api_keys)} keys against {name or base_url}[/bold blue]")

    async def run(checker: Checker) -> List[FullCheckResult]:
        return await run_batch_key_check(
            checker, config, api_keys, max_concurrency=max_concurrency or settings.MAX_CONCURRENCY
        )

    emit(asyncio.run(_execute(run)), output, text)


if __name__ == "__main__":
    app()
