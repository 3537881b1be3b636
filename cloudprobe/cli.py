"""
Cloudprobe - Command line entry point

Thin orchestration layer that:
1. Loads configuration (.env, environment, optional YAML file)
2. Configures logging
3. Wires the modules together and runs the probe loop or a cleanup sweep
"""

import asyncio
import logging
import os
import socket
import sys
import time
from dataclasses import replace
from typing import Optional

import click
from dotenv import load_dotenv

from cloudprobe import __version__
from cloudprobe.config.provider import EnvConfigProvider, Settings, YamlConfigProvider, load_settings
from cloudprobe.logging_config import configure_logging
from cloudprobe.modules.alarm import build_dispatcher
from cloudprobe.modules.executor import CommandExecutor, SubprocessRunner
from cloudprobe.modules.report import ProbeIdentity, Reporter
from cloudprobe.modules.scenario import ProbeRunner, default_catalog
from cloudprobe.modules.stats import MetricsCollector
from cloudprobe.modules.storage import StorageModule, open_remainder_store

logger = logging.getLogger("cloudprobe.cli")


def _load(config_file: Optional[str]) -> Settings:
    provider = YamlConfigProvider(config_file) if config_file else EnvConfigProvider()
    return load_settings(provider)


def _with_execution_log(settings: Settings) -> Settings:
    probe = settings.probe
    if not probe.execution_log:
        probe = replace(probe, execution_log=f"{probe.prefix}{int(time.time())}.log")
    return replace(settings, probe=probe)


async def _run(settings: Settings, cleanup_only: bool) -> int:
    probe = settings.probe
    alarms = build_dispatcher(settings.alarm, probe.prefix)
    metrics = MetricsCollector()
    executor = CommandExecutor(
        SubprocessRunner(),
        metrics,
        alarms,
        error_wait=probe.error_wait,
        escalation_interval=probe.escalation_interval,
    )
    storage = StorageModule(settings.storage.redis_url) if settings.storage.is_configured else None
    store = await open_remainder_store(settings.storage, storage)
    identity = ProbeIdentity(
        cloud=os.getenv("OS_CLOUD", ""),
        version=__version__,
        prefix=probe.prefix,
        host=socket.gethostname(),
        project=os.getenv("OS_PROJECT_NAME", ""),
    )
    reporter = Reporter(
        metrics,
        identity,
        alarms,
        send_stats=probe.send_stats,
        report_dir=probe.report_dir,
        report_interval=probe.report_interval,
    )
    runner = ProbeRunner(
        settings,
        default_catalog(probe, settings.timeouts),
        executor,
        metrics,
        reporter,
        alarms,
        store,
    )

    try:
        if cleanup_only:
            remaining = await runner.cleanup()
            return 1 if remaining else 0
        summary = await runner.run()
        logger.info(f"{summary.successful_runs}/{summary.runs} successful runs")
        return 0 if summary.ok else 1
    finally:
        close = getattr(alarms, "close", None)
        if close is not None:
            await close()
        if storage is not None:
            await storage.disconnect()


@click.group()
@click.version_option(__version__, prog_name="cloudprobe")
@click.option("--config", "config_file", type=click.Path(exists=True, dir_okay=False),
              help="YAML file overlaid on the CLOUDPROBE_* environment")
@click.option("--log-level", default="INFO", show_default=True,
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False))
@click.pass_context
def main(ctx: click.Context, config_file: Optional[str], log_level: str):
    """Cloud control plane reliability probe."""
    load_dotenv()
    ctx.ensure_object(dict)
    ctx.obj["config_file"] = config_file
    ctx.obj["log_level"] = log_level.upper()


@main.command()
@click.option("--prefix", help="Name prefix of all created resources")
@click.option("-n", "--vms", type=int, help="Number of servers per run")
@click.option("--zones", help="Comma separated availability zones")
@click.option("-i", "--iterations", type=int, help="Number of runs (-1 = forever)")
@click.option("-e", "--error-wait", type=float, help="Seconds to pause after an API error (<0 = ask)")
@click.option("--vm-error-wait", type=float, help="Seconds to pause after a probe error (<0 = ask)")
@click.option("-s", "--send-stats/--no-send-stats", default=None, help="Send statistics as a note")
@click.option("--report-interval", type=float, help="Report every N seconds instead of daily")
@click.option("--per-item", is_flag=True, default=False, help="Poll each resource individually")
@click.option("--execution-log", type=click.Path(dir_okay=False), help="Execution log file")
@click.pass_context
def run(ctx: click.Context, prefix, vms, zones, iterations, error_wait, vm_error_wait,
        send_stats, report_interval, per_item, execution_log):
    """Deploy, verify and tear down repeatedly."""
    try:
        settings = _load(ctx.obj["config_file"])
        overrides = {
            "prefix": prefix,
            "vms": vms,
            "zones": [z.strip() for z in zones.split(",") if z.strip()] if zones else None,
            "iterations": iterations,
            "error_wait": error_wait,
            "vm_error_wait": vm_error_wait,
            "send_stats": send_stats,
            "report_interval": report_interval,
            "execution_log": execution_log,
        }
        probe = replace(settings.probe, **{k: v for k, v in overrides.items() if v is not None})
        probe.validate()
    except ValueError as e:
        raise click.UsageError(str(e))

    settings = _with_execution_log(replace(settings, probe=probe))
    probe = settings.probe
    if per_item:
        settings = replace(settings, polling=replace(settings.polling, use_bulk=False))

    configure_logging(probe.execution_log, ctx.obj["log_level"])
    logger.info(f"cloudprobe {__version__}: prefix {probe.prefix}, {probe.vms} VMs, "
                f"zones {','.join(probe.zones)}, execution log {probe.execution_log}")
    sys.exit(asyncio.run(_run(settings, cleanup_only=False)))


@main.command()
@click.argument("prefix")
@click.option("--execution-log", type=click.Path(dir_okay=False), help="Execution log file")
@click.pass_context
def cleanup(ctx: click.Context, prefix: str, execution_log: Optional[str]):
    """Delete everything whose name starts with PREFIX."""
    try:
        settings = _load(ctx.obj["config_file"])
        probe = replace(settings.probe, prefix=prefix)
        if execution_log:
            probe = replace(probe, execution_log=execution_log)
        probe.validate()
    except ValueError as e:
        raise click.UsageError(str(e))
    settings = _with_execution_log(replace(settings, probe=probe))
    configure_logging(settings.probe.execution_log, ctx.obj["log_level"])
    sys.exit(asyncio.run(_run(settings, cleanup_only=True)))


if __name__ == "__main__":
    main()
