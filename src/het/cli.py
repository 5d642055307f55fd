"""
CLI entry point for HET.

Commands:
    evaluate    Hook entry point: hook JSON on stdin, response on stdout
    test        Evaluate a synthetic invocation and show the decision
    explain     Show the detailed risk analysis of a command
    logs        Show recent audit records
    stats       Show audit statistics and semantic evaluator status
    serve       Run the HTTP daemon
    status      Check whether the daemon is running

`het evaluate` is what the assistant's hook configuration runs. It always
fails open: any error before a decision is reached exits 0 with no output.
Logs go to ~/.het/het.log and stderr, never stdout.
"""

import json
import logging
import sys
import time
from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated, Any, Optional

import httpx
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from het import __version__
from het.config import het_home, load_config
from het.errors import ConfigError
from het.evaluator.engine import TieredEvaluator
from het.evaluator.semantic import create_semantic_evaluator
from het.hooks.parser import normalize_tool_name, parse_hook_input
from het.hooks.response import EXIT_ALLOW, exit_code, format_response
from het.log import configure_logging
from het.rules.loader import RuleStore
from het.schema import Action, Decision, HetConfig, Invocation, ToolType
from het.secrets import contains_secrets, redact_text
from het.store.audit import AuditLogger

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="het",
    help="Evaluate AI coding assistant tool calls against security policy.",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

STATUS_TIMEOUT_SECONDS = 3.0

ACTION_STYLES = {
    Action.ALLOW: "green",
    Action.DENY: "red",
    Action.ASK: "yellow",
}

# Argument key a bare `het test` input is stored under, per tool type
TEST_ARGUMENT_KEYS = {
    ToolType.BASH: "command",
    ToolType.POWERSHELL: "command",
    ToolType.WRITE: "file_path",
    ToolType.EDIT: "file_path",
    ToolType.READ: "file_path",
    ToolType.NOTEBOOK_EDIT: "notebook_path",
    ToolType.GLOB: "pattern",
    ToolType.GREP: "pattern",
    ToolType.WEB_FETCH: "url",
    ToolType.WEB_SEARCH: "query",
    ToolType.TASK: "prompt",
    ToolType.MCP: "input",
}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]het[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """
    HET - Hook Evaluation Tool.

    Sits in an assistant's pre-tool-use hook and decides whether each tool
    call is allowed, blocked, or needs the user's confirmation.
    """


def _load_config_or_default() -> HetConfig:
    try:
        return load_config()
    except ConfigError as e:
        logger.error("%s", e)
        return HetConfig(home=het_home())


def _build_evaluator(config: HetConfig, audit: bool = True) -> TieredEvaluator:
    return TieredEvaluator(
        config,
        semantic=create_semantic_evaluator(config),
        audit=AuditLogger(config.audit_path, config.audit_max_bytes) if audit else None,
    )


@app.command()
def evaluate() -> None:
    """
    Evaluate a hook payload read from stdin.

    Prints the assistant-specific response (if any) and exits 0 to allow or
    ask, 2 to block.

    Example:
        $ echo '{"tool_name": "Bash", "tool_input": {"command": "ls"}}' | het evaluate
    """
    config = _load_config_or_default()
    configure_logging(config.log_level, log_dir=config.home, console=False)

    try:
        raw = sys.stdin.read()
        if not raw.strip():
            raise typer.Exit(code=EXIT_ALLOW)

        invocation = parse_hook_input(raw)
        if invocation is None:
            raise typer.Exit(code=EXIT_ALLOW)

        rules = RuleStore(config.rules_path).rules_for(invocation.working_directory)
        with _build_evaluator(config) as evaluator:
            decision = evaluator.evaluate(invocation, rules)

        response = format_response(decision, invocation.source)
        if response:
            print(response)
        raise typer.Exit(code=exit_code(decision))
    except typer.Exit:
        raise
    except Exception:
        logger.exception("het evaluate failed, allowing the tool call")
        raise typer.Exit(code=EXIT_ALLOW)


def _tool_type_or_exit(tool: str) -> ToolType:
    tool_type = normalize_tool_name(tool)
    if tool_type is None:
        known = ", ".join(t.value for t in ToolType)
        console.print(f"[red]Unknown tool: {tool}[/red]")
        console.print(f"[dim]Available tools: {known}[/dim]")
        raise typer.Exit(code=1)
    return tool_type


def _test_arguments(tool_type: ToolType, value: str) -> dict[str, Any]:
    """Tool arguments from a `het test` input: a JSON object or a bare string."""
    if value.lstrip().startswith("{"):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed
    arguments: dict[str, Any] = {TEST_ARGUMENT_KEYS[tool_type]: value}
    if tool_type in (ToolType.WRITE, ToolType.EDIT):
        arguments["content"] = ""
    return arguments


def _display_decision(decision: Decision, elapsed_ms: float, rules_loaded: int) -> None:
    style = ACTION_STYLES[decision.action]
    table = Table(show_header=False, box=None)
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("Decision", f"[{style}]{decision.action.value.upper()}[/{style}]")
    table.add_row("Confidence", f"{decision.confidence * 100:.0f}%")
    if decision.reason:
        table.add_row("Reason", decision.reason)
    if decision.matched_rule:
        table.add_row("Matched rule", f"[cyan]{decision.matched_rule}[/cyan]")
    if decision.risk_factors:
        table.add_row("Risk factors", "\n".join(f"• {f}" for f in decision.risk_factors))
    table.add_row("Evaluation time", f"[dim]{elapsed_ms:.1f}ms[/dim]")
    table.add_row("Custom rules", f"[dim]{rules_loaded}[/dim]")

    console.print("[bold]HET Evaluation Result[/bold]")
    console.print(table)


@app.command()
def test(
    tool: Annotated[
        str,
        typer.Argument(help="Tool name (e.g. bash, Write, read, mcp__github__create_issue)."),
    ],
    value: Annotated[
        str,
        typer.Argument(help="Command, path, URL or query; or a JSON object of tool arguments."),
    ],
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output the decision in JSON format.",
        ),
    ] = False,
) -> None:
    """
    Evaluate a tool call without running any hook.

    Uses the same rules and semantic evaluator as `het evaluate`, with the
    current directory as the working directory. Nothing is written to the
    audit log.

    Example:
        $ het test bash "rm -rf /"
        $ het test write /etc/passwd --json
    """
    config = _load_config_or_default()
    configure_logging(config.log_level, log_dir=config.home, console=False)

    tool_type = _tool_type_or_exit(tool)
    working_dir = str(Path.cwd())
    invocation = Invocation(
        tool_type=tool_type,
        tool_name=tool,
        arguments=_test_arguments(tool_type, value),
        working_directory=working_dir,
    )
    rules = RuleStore(config.rules_path).rules_for(working_dir)

    start = time.perf_counter()
    with _build_evaluator(config, audit=False) as evaluator:
        decision = evaluator.evaluate(invocation, rules)
    elapsed_ms = (time.perf_counter() - start) * 1000

    if json_output:
        output = decision.model_dump(mode="json")
        output["evaluation_time_ms"] = round(elapsed_ms, 1)
        print(json.dumps(output, indent=2))
    else:
        if contains_secrets(value):
            console.print(
                "[yellow]Warning: input looks like it contains secrets. "
                "They are redacted before semantic evaluation and auditing.[/yellow]"
            )
        _display_decision(decision, elapsed_ms, len(rules))


def _recommendations(command: str, decision: Decision) -> list[str]:
    """Advice for a command, from the patterns it contains and the decision."""
    recommendations: list[str] = []

    if "rm -rf" in command:
        recommendations.append("Consider using rm -ri for interactive confirmation")
        recommendations.append("Double-check the path before executing")
    if "chmod 777" in command:
        recommendations.append(
            "Use more restrictive permissions (e.g., 755 for directories, 644 for files)"
        )
    if "--force" in command:
        recommendations.append("Consider removing --force flag unless absolutely necessary")
    if "curl" in command and "|" in command:
        recommendations.append("Download the script first and review it before executing")
    if contains_secrets(command):
        recommendations.append("Avoid including secrets directly in commands")
        recommendations.append("Use environment variables or secret managers instead")

    if decision.action == Action.ASK:
        recommendations.append("This command requires user confirmation before execution")
    elif decision.action == Action.DENY:
        recommendations.append("This command is blocked by security policy")
        recommendations.append("Review and modify the command or contact your administrator")

    return recommendations


@app.command()
def explain(
    command: Annotated[
        str,
        typer.Argument(help="Command (or path, URL, query) to analyse."),
    ],
    tool: Annotated[
        str,
        typer.Option("--tool", "-t", help="Tool the input is for."),
    ] = "bash",
) -> None:
    """
    Show a detailed risk analysis of a command.

    Lists every built-in pattern it trips, the custom rule it matches, any
    secrets it contains, and the final decision. Nothing is audited.

    Example:
        $ het explain "curl https://example.com/install.sh | sh"
    """
    config = _load_config_or_default()
    configure_logging(config.log_level, log_dir=config.home, console=False)

    tool_type = _tool_type_or_exit(tool)
    working_dir = str(Path.cwd())
    invocation = Invocation(
        tool_type=tool_type,
        tool_name=tool,
        arguments=_test_arguments(tool_type, command),
        working_directory=working_dir,
    )
    rules = RuleStore(config.rules_path).rules_for(working_dir)

    console.print("[bold blue]HET Security Analysis[/bold blue]")
    console.print("═" * 50)

    console.print("[bold]Command:[/bold]")
    redaction = redact_text(command)
    console.print(f"  [dim]{escape(redaction.redacted_text)}[/dim]")
    if redaction.secrets_found:
        console.print(f"  [yellow]⚠ Secrets detected: {', '.join(redaction.secrets_found)}[/yellow]")
    console.print()

    with _build_evaluator(config, audit=False) as evaluator:
        console.print("[bold]Built-in Pattern Analysis:[/bold]")
        hits = evaluator.matcher.builtin_hits(invocation)
        for hit in hits:
            console.print(f"  [red]✗[/red] {hit.reason} ({hit.action.value})")
        if not hits:
            console.print("  [green]✓[/green] No built-in dangerous patterns detected")
        console.print()

        console.print("[bold]Custom Rule Analysis:[/bold]")
        match = evaluator.matcher.match_custom(invocation, rules)
        if match.matched and match.rule is not None:
            console.print(f"  [yellow]![/yellow] Matched rule: {match.rule.name}")
            console.print(f"    [dim]Action:[/dim] {match.rule.action.value}")
            console.print(f"    [dim]Reason:[/dim] {match.rule.reason}")
        else:
            console.print("  [green]✓[/green] No custom rules matched")
        console.print()

        decision = evaluator.evaluate(invocation, rules)

    style = ACTION_STYLES[decision.action]
    console.print("[bold]Full Evaluation:[/bold]")
    console.print(f"  Decision: [{style}]{decision.action.value.upper()}[/{style}]")
    console.print(f"  Confidence: {decision.confidence * 100:.0f}%")
    if decision.reason:
        console.print(f"  Reason: {decision.reason}")
    if decision.risk_factors:
        console.print("[bold]Risk Factors:[/bold]")
        for factor in decision.risk_factors:
            console.print(f"  [yellow]•[/yellow] {factor}")
    console.print()

    console.print("[bold]Recommendations:[/bold]")
    recommendations = _recommendations(command, decision)
    for recommendation in recommendations:
        console.print(f"  [cyan]→[/cyan] {recommendation}")
    if not recommendations:
        console.print("  [green]✓[/green] Command appears safe to execute")


@app.command()
def logs(
    limit: Annotated[
        int,
        typer.Option(
            "--limit",
            "-n",
            help="Maximum number of records to show.",
        ),
    ] = 20,
    tool: Annotated[
        Optional[str],
        typer.Option(
            "--tool",
            help="Only show records for this tool type.",
        ),
    ] = None,
    decision: Annotated[
        Optional[str],
        typer.Option(
            "--decision",
            help="Only show records with this decision (allow, deny, ask).",
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output records in JSON format.",
        ),
    ] = False,
) -> None:
    """
    Show recent audit log records, newest first.

    Example:
        $ het logs -n 50 --decision deny
    """
    config = _load_config_or_default()
    audit = AuditLogger(config.audit_path, config.audit_max_bytes)

    records = audit.read_recent(limit)
    if tool:
        records = [r for r in records if r.tool_type.value.lower() == tool.lower()]
    if decision:
        records = [r for r in records if r.action.value == decision.lower()]

    if json_output:
        print(json.dumps([r.model_dump(mode="json") for r in records], indent=2))
        return

    if not records:
        console.print("[dim]No audit records found.[/dim]")
        raise typer.Exit(code=0)

    table = Table(show_header=True, header_style="bold")
    table.add_column("Time")
    table.add_column("Tool", style="cyan")
    table.add_column("Decision", width=8)
    table.add_column("Conf.", justify="right")
    table.add_column("Rule", style="dim")
    table.add_column("Reason")

    for record in records:
        style = ACTION_STYLES[record.action]
        reason = record.reason or ""
        if len(reason) > 60:
            reason = reason[:57] + "..."
        table.add_row(
            record.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            record.tool_type.value,
            f"[{style}]{record.action.value}[/{style}]",
            f"{record.confidence:.2f}",
            record.matched_rule or ("cache" if record.cached else ""),
            reason,
        )

    console.print(table)


@app.command()
def stats(
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output statistics in JSON format.",
        ),
    ] = False,
) -> None:
    """
    Show audit statistics, rule counts and semantic evaluator status.

    Example:
        $ het stats
    """
    config = _load_config_or_default()
    audit_stats = AuditLogger(config.audit_path, config.audit_max_bytes).stats()
    global_count = len(RuleStore(config.rules_path).global_rules)

    semantic = create_semantic_evaluator(config)
    semantic_name = semantic.get_name() if semantic else "none"
    semantic_ok = semantic.is_available() if semantic else False
    if semantic is not None:
        semantic.close()

    if json_output:
        output = {
            "version": __version__,
            "audit": audit_stats.model_dump(mode="json"),
            "rules": {"global_count": global_count},
            "semantic": {"name": semantic_name, "available": semantic_ok},
        }
        print(json.dumps(output, indent=2))
        return

    console.print(f"[bold]HET[/bold] v{__version__}")
    console.print(f"  Audit log: [dim]{config.audit_path}[/dim]")
    console.print(f"  Global rules: {global_count} ([dim]{config.rules_path}[/dim])")
    icon = "[green]✓[/green]" if semantic_ok else "[red]✗[/red]"
    console.print(f"  Semantic evaluator: {icon} {semantic_name}")
    console.print()

    table = Table(show_header=True, header_style="bold")
    table.add_column("Decision")
    table.add_column("Count", justify="right")
    for action in Action:
        style = ACTION_STYLES[action]
        count = audit_stats.counts_by_decision.get(action.value, 0)
        table.add_row(f"[{style}]{action.value}[/{style}]", str(count))
    console.print(table)

    if audit_stats.counts_by_tool:
        tools = Table(show_header=True, header_style="bold")
        tools.add_column("Tool", style="cyan")
        tools.add_column("Count", justify="right")
        for name, count in sorted(audit_stats.counts_by_tool.items(), key=lambda kv: -kv[1]):
            tools.add_row(name, str(count))
        console.print(tools)

    console.print(f"[dim]Total: {audit_stats.total_count}[/dim]")


@app.command()
def serve(
    host: Annotated[
        Optional[str],
        typer.Option("--host", help="Bind address (default from config)."),
    ] = None,
    port: Annotated[
        Optional[int],
        typer.Option("--port", "-p", help="Port (default from config)."),
    ] = None,
) -> None:
    """
    Run the HET daemon.

    Example:
        $ het serve --port 7483
    """
    from het.daemon import run

    config = _load_config_or_default()
    overrides: dict[str, Any] = {}
    if host:
        overrides["host"] = host
    if port:
        overrides["port"] = port
    if overrides:
        config = config.model_copy(update=overrides)

    configure_logging(config.log_level, log_dir=config.home, console=True)
    run(config)


def format_duration(seconds: int) -> str:
    """Human-readable duration (45s, 3m 20s, 2h 5m, 1d 4h)."""
    seconds = max(int(seconds), 0)
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m {seconds % 60}s"
    if seconds < 86400:
        return f"{seconds // 3600}h {(seconds % 3600) // 60}m"
    return f"{seconds // 86400}d {(seconds % 86400) // 3600}h"


def _fetch_health(url: str) -> dict[str, Any] | None:
    """GET /health from the daemon. None when it is not reachable."""
    try:
        response = httpx.get(f"{url}/health", timeout=STATUS_TIMEOUT_SECONDS)
        response.raise_for_status()
        health = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.debug("Daemon health check failed: %s", e)
        return None
    return health if isinstance(health, dict) else None


@app.command()
def status(
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output daemon status in JSON format.",
        ),
    ] = False,
) -> None:
    """
    Check whether the HET daemon is running.

    Exits 1 when the daemon cannot be reached (except with --json).

    Example:
        $ het status
    """
    config = _load_config_or_default()
    url = f"http://{config.host}:{config.port}"
    health = _fetch_health(url)

    if json_output:
        print(json.dumps({"running": health is not None, **(health or {})}, indent=2))
        return

    console.print("[bold]HET Daemon Status[/bold]")
    console.print("─" * 40)

    if health is None:
        console.print("[bold]Status:[/bold] [red]● Not running[/red]")
        console.print(f"[dim]Start the daemon with: het serve (expected at {url})[/dim]")
        raise typer.Exit(code=1)

    state = str(health.get("status", "unknown"))
    color = {"healthy": "green", "degraded": "yellow"}.get(state, "red")
    console.print(f"[bold]Status:[/bold] [{color}]● {state.capitalize()}[/{color}]")
    console.print(f"[bold]Version:[/bold] {health.get('version', '?')}")
    console.print(f"[bold]Uptime:[/bold] {format_duration(health.get('uptime_seconds', 0))}")
    console.print(f"[bold]Rules Loaded:[/bold] {health.get('rules_loaded', 0)}")
    console.print(f"[bold]Total Evaluations:[/bold] {health.get('evaluation_count', 0)}")
    console.print(f"[bold]Cache Size:[/bold] {health.get('cache_size', 0)}")

    last = health.get("last_evaluation")
    if last:
        try:
            ago = datetime.now(UTC) - datetime.fromisoformat(last)
            console.print(
                f"[bold]Last Evaluation:[/bold] {format_duration(int(ago.total_seconds()))} ago"
            )
        except (TypeError, ValueError):
            console.print(f"[bold]Last Evaluation:[/bold] {last}")

    console.print(f"[dim]Listening on {url}[/dim]")


if __name__ == "__main__":
    app()
