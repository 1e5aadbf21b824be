"""CLI for Conductor.

Provides command-line access to runs, routing, agents, skills, providers,
sessions and run history.
"""

import asyncio
import json
import logging
import sys
from dataclasses import asdict
from datetime import datetime, timezone

import click
from rich.console import Console
from rich.table import Table

from conductor.config import DEFAULT_AGENT_ID, ConductorConfig
from conductor.errors import ConductorError
from conductor.filesystem import LocalFileSystem
from conductor.log import configure_logging, set_debug_mode
from conductor.manifests import DEFAULT_PROVIDER_ID, FileManifestSource
from conductor.models import InvokeOptions, SkillInstallRequest
from conductor.orchestration import OrchestrationService
from conductor.paths import ConductorPaths
from conductor.providers import ProviderService
from conductor.sessions import FileSessionStore
from conductor.skills import FileSkillInstaller
from conductor.telemetry import create_metrics, setup_telemetry
from conductor.trace import RunTrace, list_traces

console = Console()


def build_service(
    config: ConductorConfig, tracer=None
) -> tuple[OrchestrationService, FileManifestSource]:
    """Wire the orchestration service to the file-backed adapters."""
    manifests = FileManifestSource()
    providers = ProviderService.from_config(config)
    service = OrchestrationService(
        agent_port=providers,
        session_port=FileSessionStore(),
        manifest_source=manifests,
        skill_installer=FileSkillInstaller(),
        file_port=LocalFileSystem(),
        config=config,
        tracer=tracer,
    )
    return service, manifests


@click.group()
@click.version_option(package_name="conductor")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def cli(debug: bool) -> None:
    """Conductor - planner-driven multi-agent orchestration."""
    config = ConductorConfig.from_env()
    configure_logging(
        log_dir=config.log_dir,
        console_level=logging.DEBUG if debug else logging.WARNING,
    )
    if debug:
        set_debug_mode(True)


@cli.command()
@click.argument("message")
@click.option("--agent", "-a", default=DEFAULT_AGENT_ID, help="Entry agent id")
@click.option("--new-session", is_flag=True, help="Start a fresh session")
@click.option("--no-session", is_flag=True, help="Run without session history")
@click.option("--model", "-m", default=None, help="Model passed to the provider")
def run(
    message: str, agent: str, new_session: bool, no_session: bool, model: str | None
) -> None:
    """Run a message through an agent (the orchestrator plans and delegates)."""
    try:
        code = asyncio.run(_run(message, agent, new_session, no_session, model))
    except ConductorError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    sys.exit(code)


async def _run(
    message: str,
    agent: str,
    new_session: bool,
    no_session: bool,
    model: str | None,
) -> int:
    """Internal async implementation of a run."""
    config = ConductorConfig.from_env()
    tracer, meter = setup_telemetry(config)
    create_metrics(meter)

    paths = ConductorPaths.from_home(config.home_dir)
    service, manifests = build_service(config, tracer=tracer)
    await manifests.ensure_default_agent(paths)

    with console.status("Running..."):
        result = await service.run_agent(
            paths,
            agent,
            InvokeOptions(
                message=message,
                force_new_session=new_session,
                disable_session=no_session,
                model=model,
            ),
        )

    if result.stdout:
        click.echo(result.stdout, nl=not result.stdout.endswith("\n"))
    if result.code != 0 and result.stderr.strip():
        console.print(f"[red]{result.stderr.strip()}[/red]")

    steps = len(result.orchestration.steps) if result.orchestration else 0
    console.print(
        f"[dim]run {result.run_id} | agent {result.agent_id} | "
        f"code {result.code} | steps {steps} | trace {result.trace_path}[/dim]"
    )
    return 0 if result.code == 0 else 1


@cli.command()
@click.argument("message")
@click.option("--agent", "-a", default=DEFAULT_AGENT_ID, help="Entry agent id")
def route(message: str, agent: str) -> None:
    """Show where a message would be routed, as JSON."""
    config = ConductorConfig.from_env()
    paths = ConductorPaths.from_home(config.home_dir)
    service, _ = build_service(config)
    decision = asyncio.run(service.route_message(paths, agent, message))
    click.echo(json.dumps(asdict(decision), indent=2))


@cli.command()
def agents() -> None:
    """List known agents."""
    config = ConductorConfig.from_env()
    paths = ConductorPaths.from_home(config.home_dir)
    try:
        manifests = asyncio.run(FileManifestSource().list_manifests(paths))
    except ConductorError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    if not manifests:
        console.print("[yellow]No agents found[/yellow]")
        return

    table = Table(title="Agents")
    table.add_column("Id")
    table.add_column("Name")
    table.add_column("Provider")
    table.add_column("Receives")
    table.add_column("Delegates")
    table.add_column("Description")

    for manifest in manifests:
        meta = manifest.metadata
        table.add_row(
            manifest.agent_id,
            meta.name,
            meta.provider,
            "yes" if meta.delegation.can_receive else "no",
            "yes" if meta.delegation.can_delegate else "no",
            meta.description,
        )

    console.print(table)


@cli.command("agent-create")
@click.argument("name")
@click.option("--description", "-d", default="", help="What the agent is good at")
@click.option("--provider", "-p", default=DEFAULT_PROVIDER_ID, help="Provider id")
@click.option("--tag", "tags", multiple=True, help="Routing tag (repeatable)")
@click.option("--priority", default=50, type=int, help="Routing priority")
@click.option(
    "--delegate/--no-delegate", default=False, help="Allow the agent to delegate"
)
def agent_create(
    name: str,
    description: str,
    provider: str,
    tags: tuple[str, ...],
    priority: int,
    delegate: bool,
) -> None:
    """Create a new agent."""
    config = ConductorConfig.from_env()
    paths = ConductorPaths.from_home(config.home_dir)
    manifests = FileManifestSource()
    try:
        manifest = asyncio.run(
            manifests.create_agent(
                paths,
                name,
                description=description,
                provider=provider,
                tags=list(tags),
                priority=priority,
                can_delegate=delegate,
            )
        )
    except ConductorError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    console.print(f"[green]Created agent[/green] {manifest.agent_id} at {manifest.path}")


@cli.command("skill-install")
@click.argument("skill_name")
@click.option("--agent", "-a", default=DEFAULT_AGENT_ID, help="Target agent id")
@click.option("--from", "source_path", default=None, help="Skill directory or SKILL.md")
@click.option("--description", "-d", default=None, help="Description for a generated skill")
def skill_install(
    skill_name: str, agent: str, source_path: str | None, description: str | None
) -> None:
    """Install a skill for an agent."""
    config = ConductorConfig.from_env()
    paths = ConductorPaths.from_home(config.home_dir)
    try:
        result = asyncio.run(
            FileSkillInstaller().install_skill(
                paths,
                SkillInstallRequest(
                    skill_name=skill_name,
                    agent_id=agent,
                    source_path=source_path,
                    description=description,
                ),
            )
        )
    except ConductorError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    action = "Replaced" if result.replaced else "Installed"
    console.print(
        f"[green]{action} skill[/green] {result.skill_id} for {result.agent_id} "
        f"({result.source}) at {result.installed_path}"
    )


@cli.command()
def providers() -> None:
    """List registered providers."""
    config = ConductorConfig.from_env()
    service = ProviderService.from_config(config)
    for provider_id in service.provider_ids():
        click.echo(provider_id)


@cli.group()
def session() -> None:
    """Inspect agent sessions."""


@session.command("list")
@click.option("--agent", "-a", default=DEFAULT_AGENT_ID, help="Agent id")
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
def session_list(agent: str, as_json: bool) -> None:
    """List sessions for an agent."""
    config = ConductorConfig.from_env()
    paths = ConductorPaths.from_home(config.home_dir)
    sessions = asyncio.run(FileSessionStore().list_sessions(paths, agent))

    if as_json:
        click.echo(json.dumps([asdict(s) for s in sessions], indent=2))
        return
    if not sessions:
        console.print("[yellow]No sessions found[/yellow]")
        return

    table = Table(title=f"Sessions: {agent}")
    table.add_column("Key")
    table.add_column("Id")
    table.add_column("Updated")
    table.add_column("Compactions", justify="right")

    for summary in sessions:
        updated = datetime.fromtimestamp(summary.updated_at, tz=timezone.utc)
        table.add_row(
            summary.session_key,
            summary.session_id,
            updated.strftime("%Y-%m-%d %H:%M"),
            str(summary.compaction_count),
        )

    console.print(table)


@session.command("history")
@click.option("--agent", "-a", default=DEFAULT_AGENT_ID, help="Agent id")
@click.option("--session", "session_ref", default=None, help="Session key, id or name")
@click.option("--limit", "-n", default=None, type=int, help="Last N records")
@click.option("--include-compaction", is_flag=True, help="Show compaction summaries")
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
def session_history(
    agent: str,
    session_ref: str | None,
    limit: int | None,
    include_compaction: bool,
    as_json: bool,
) -> None:
    """Show the transcript of one session."""
    config = ConductorConfig.from_env()
    paths = ConductorPaths.from_home(config.home_dir)
    result = asyncio.run(
        FileSessionStore().get_history(
            paths,
            agent,
            session_ref=session_ref,
            limit=limit,
            include_compaction=include_compaction,
        )
    )

    if as_json:
        click.echo(json.dumps(asdict(result), indent=2))
        return

    console.print(f"Session key: {result.session_key}")
    if result.session_id:
        console.print(f"Session id: {result.session_id}")
    if not result.messages:
        console.print("[yellow]No transcript messages[/yellow]")
        return

    for record in result.messages:
        if record.get("type") == "compaction":
            console.print(f"[dim]summary:[/dim] {record['summary']}")
        else:
            console.print(f"[bold]{record['role']}:[/bold] {record['content']}")


@cli.command()
@click.option("--limit", "-n", default=10, help="Number of runs to show")
def history(limit: int) -> None:
    """Show history of runs."""
    config = ConductorConfig.from_env()
    paths = ConductorPaths.from_home(config.home_dir)

    runs = list_traces(paths.runs_dir, limit=limit)
    if not runs:
        console.print("[yellow]No runs found[/yellow]")
        return

    table = Table(title="Run History")
    table.add_column("Run")
    table.add_column("Started")
    table.add_column("Agent")
    table.add_column("Steps", justify="right")
    table.add_column("Code", justify="right")
    table.add_column("Message")

    for summary in runs:
        message = summary.user_message.replace("\n", " ")
        table.add_row(
            summary.run_id,
            summary.started_at[:16].replace("T", " "),
            summary.entry_agent_id,
            str(summary.steps),
            str(summary.code),
            message if len(message) <= 60 else f"{message[:57]}...",
        )

    console.print(table)


@cli.command()
@click.argument("run_id")
def show(run_id: str) -> None:
    """Print the trace of a run as JSON."""
    config = ConductorConfig.from_env()
    paths = ConductorPaths.from_home(config.home_dir)

    run_trace = RunTrace.load(paths.runs_dir, run_id)
    if run_trace is None:
        console.print(f"[red]No trace found for run {run_id}[/red]")
        sys.exit(1)

    click.echo(run_trace.to_json(), nl=False)


def main() -> None:
    """Main entry point for the conductor CLI."""
    cli()


if __name__ == "__main__":
    main()
