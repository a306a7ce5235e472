"""CLI commands for vm-heartbeat."""

import click


def _load_config():
    """Load config, turning parse errors into a click error."""
    from vm_heartbeat.config import Config

    try:
        return Config.load()
    except ValueError as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.version_option(package_name="vm-heartbeat")
def main() -> None:
    """Collect JVM process heartbeats from a local agent."""
    pass


@main.command()
@click.option(
    "--format", "-f", "fmt", type=click.Choice(["table", "json"]), default="table",
    help="Output format",
)
@click.option(
    "--filter", "filters", multiple=True,
    help="Process name fragment (repeatable, overrides pid_filters)",
)
def collect(fmt: str, filters: tuple[str, ...]) -> None:
    """Run one collection cycle and print the records."""
    import asyncio
    import json

    from vm_heartbeat import logging as console
    from vm_heartbeat.client import make_http_client
    from vm_heartbeat.collector import HeartbeatCollector
    from vm_heartbeat.sink import MemoryAccumulator

    config = _load_config()
    if filters:
        config.endpoints.pid_filters = list(filters)
    console.configure(config)

    async def run_once():
        acc = MemoryAccumulator()
        async with make_http_client(config.http) as http:
            report = await HeartbeatCollector(config, http).run_cycle(acc)
        return report

    report = asyncio.run(run_once())

    if fmt == "json":
        click.echo(
            json.dumps(
                {
                    "records": [r.to_dict() for r in report.records],
                    "errors": [e.to_dict() for e in report.errors],
                    "fatal": report.fatal.to_dict() if report.fatal else None,
                },
                indent=2,
                default=str,
            )
        )
    elif report.records:
        click.echo(
            f"{'PID':>7}  {'Name':30}  {'Uptime':>10}  {'Threads':>7}  "
            f"{'Classes':>8}  {'Heap used':>12}"
        )
        click.echo("-" * 86)
        from vm_heartbeat.formatting import format_bytes, format_uptime

        for record in report.records:
            f = record.fields
            click.echo(
                f"{f['pid']:>7}  {f['name'][:30]:30}  {format_uptime(f['up_time']):>10}  "
                f"{f['threads_threads_live']:>7}  {f['classes_loaded_classes']:>8}  "
                f"{format_bytes(sum(f['memory_genused'])):>12}"
            )
    elif report.ok:
        click.echo("No processes reported.")

    for err in report.errors:
        click.echo(f"error: {err}", err=True)
    if report.fatal is not None:
        click.echo(f"error: {report.fatal}", err=True)
        raise SystemExit(1)


@main.command()
def discover() -> None:
    """List the processes the agent reports."""
    import asyncio

    from vm_heartbeat.client import discover as discover_processes
    from vm_heartbeat.client import make_http_client
    from vm_heartbeat.errors import HeartbeatError
    from vm_heartbeat.filters import filter_pids

    config = _load_config()

    async def run_once():
        async with make_http_client(config.http) as http:
            return await discover_processes(http, config.endpoints.all_pids_url)

    try:
        descriptors = asyncio.run(run_once())
    except HeartbeatError as e:
        raise click.ClickException(str(e)) from e

    if not descriptors:
        click.echo("No processes discovered.")
        return

    selected = filter_pids(descriptors, config.endpoints.pid_filters)
    click.echo(f"{'PID':>7}  {'Sel':3}  {'Name':30}  Description")
    click.echo("-" * 75)
    for d in descriptors:
        mark = "*" if d.id in selected else ""
        click.echo(f"{d.id:>7}  {mark:3}  {d.name[:30]:30}  {d.description}")


@main.command()
def run() -> None:
    """Collect every system.interval seconds until interrupted."""
    import asyncio

    from vm_heartbeat.daemon import run_daemon

    asyncio.run(run_daemon(_load_config()))


@main.group()
def config() -> None:
    """Configuration management commands."""
    pass


@config.command("show")
def config_show() -> None:
    """Display current configuration."""
    from vm_heartbeat.config import Config

    path = Config().config_path
    if not path.exists():
        click.echo(f"No config file at {path}; defaults in effect:\n")
        click.echo(Config().to_toml())
        return
    click.echo(f"Config file: {path}\n")
    click.echo(path.read_text())


@config.command("path")
def config_path() -> None:
    """Print the config file location."""
    from vm_heartbeat.config import Config

    click.echo(str(Config().config_path))


@config.command("reset")
@click.confirmation_option(prompt="Reset config to defaults?")
def config_reset() -> None:
    """Reset configuration to defaults."""
    from vm_heartbeat import logging as console
    from vm_heartbeat.config import Config

    config = Config()
    config.save()
    console.config_created(str(config.config_path))
