"""CLI entry point for mindustry-probe.

    mindustry-probe probe --targets servers_v7.json [options]
    python -m mindustry_probe.cli probe --fetch --save

Results are printed to stdout in the flow JSON format; logs go to stderr.
"""

import json
import sys
from pathlib import Path
from typing import Callable, Optional

import click

from . import __version__
from .codec.decoder import decode_hex
from .config import ProbeConfig, load_config, setup_logging
from .discovery.replies import ReplySet
from .errors import DecodeError, ProbeError
from .reporting.json_reporter import JsonReporter
from .runner.aggregator import aggregate
from .runner.executor import ExecutionConfig, RoundExecutor, RoundResult, RoundScheduler
from .targets.parser import load_targets
from .targets.schema import Target
from .targets.validator import validate_targets
from .transport.server_list import ServerListClient


@click.group()
@click.version_option(__version__, prog_name="mindustry-probe")
def main():
    """Query Mindustry servers over UDP and report their status."""


@main.command()
@click.option("--targets", "targets_file", type=click.Path(dir_okay=False),
              help="Server list file (.json or .yaml).")
@click.option("--fetch", is_flag=True, help="Download the server list before each round.")
@click.option("--config", "config_file", type=click.Path(dir_okay=False),
              help="YAML configuration file.")
@click.option("--timeout", type=float, help="Receive window in seconds (default: 30).")
@click.option("--bind-port", type=int, help="Local UDP port (default: 65415).")
@click.option("--save", is_flag=True, help="Save raw capture, report and non-responding list.")
@click.option("--output-dir", type=click.Path(file_okay=False), help="Directory for saved files.")
@click.option("--interval", type=float, help="Repeat rounds every N seconds.")
@click.option("--rounds", type=int, help="Stop after N rounds (with --interval).")
@click.option("--pretty", is_flag=True, help="Pretty print output.")
@click.option("--log-level", help="Logging level (default: INFO).")
def probe(targets_file, fetch, config_file, timeout, bind_port, save, output_dir,
          interval, rounds, pretty, log_level):
    """Probe every server in the list and print the report."""
    config = _load_config(config_file, log_level, bind_port=bind_port, output_dir=output_dir,
                          interval=interval)

    if not targets_file and not fetch:
        output_error("Provide --targets FILE or --fetch.")
        sys.exit(1)

    reporter = JsonReporter()
    loader = _target_loader(config, targets_file, fetch)
    executor = RoundExecutor(config, ExecutionConfig(save_report=save, timeout=timeout))

    def emit(result: RoundResult) -> None:
        click.echo(reporter.to_json_string(result.to_flow_json(), pretty=pretty))

    if interval is None and rounds is None:
        try:
            targets = loader()
        except (OSError, ValueError, ProbeError) as e:
            output_error(f"Failed to load targets: {e}")
            sys.exit(1)

        result = executor.run(targets)
        emit(result)
        if not result.success:
            sys.exit(1)
        return

    scheduler = RoundScheduler(executor, loader, on_round=emit)
    results = scheduler.run(max_rounds=rounds)
    if not results or not results[-1].success:
        sys.exit(1)


@main.command()
@click.option("--output", default="servers_v7.json", show_default=True,
              type=click.Path(dir_okay=False), help="Where to save the list.")
@click.option("--config", "config_file", type=click.Path(dir_okay=False),
              help="YAML configuration file.")
@click.option("--log-level", help="Logging level (default: INFO).")
def fetch(output, config_file, log_level):
    """Download the public server list."""
    config = _load_config(config_file, log_level)

    try:
        with ServerListClient(config.mirrors, request_timeout=config.request_timeout) as client:
            path = client.download(output)
    except (OSError, ProbeError) as e:
        output_error(f"Download failed: {e}", command="fetch")
        sys.exit(1)

    click.echo(json.dumps({
        "success": True,
        "command": "fetch",
        "data": {"path": str(path)},
        "message": f"Server list saved to {path}",
    }, ensure_ascii=False))


@main.command()
@click.argument("payload")
def decode(payload):
    """Decode one hex-encoded status payload."""
    try:
        record = decode_hex(payload)
    except DecodeError as e:
        output_error(str(e), command="decode")
        sys.exit(1)

    click.echo(json.dumps({
        "success": True,
        "command": "decode",
        "data": record.to_dict(),
        "message": f"Decoded {record.name}",
    }, ensure_ascii=False))


@main.command()
@click.argument("raw_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--targets", "targets_file", type=click.Path(exists=True, dir_okay=False),
              help="Server list, to list non-responding targets.")
@click.option("--config", "config_file", type=click.Path(dir_okay=False),
              help="YAML configuration file.")
@click.option("--pretty", is_flag=True, help="Pretty print output.")
def report(raw_file, targets_file, config_file, pretty):
    """Rebuild the report from a saved raw capture."""
    config = _load_config(config_file, None)

    try:
        with open(raw_file, "r", encoding="utf-8") as f:
            reply_set = ReplySet.from_raw_capture(json.load(f))
        targets = load_targets(targets_file, config.default_port) if targets_file else []
    except (OSError, ValueError) as e:
        output_error(f"Failed to read capture: {e}", command="report")
        sys.exit(1)

    reporter = JsonReporter()
    data = reporter.generate(aggregate(reply_set, targets, default_port=config.default_port))
    click.echo(reporter.to_json_string(data, pretty=pretty))


def _load_config(config_file: Optional[str], log_level: Optional[str], **overrides) -> ProbeConfig:
    try:
        config = load_config(config_file).with_overrides(log_level=log_level, **overrides)
    except (OSError, ValueError) as e:
        output_error(f"Invalid configuration: {e}")
        sys.exit(1)

    setup_logging(config.log_level)
    return config


def _target_loader(
    config: ProbeConfig,
    targets_file: Optional[str],
    fetch_list: bool,
) -> Callable[[], list[Target]]:
    """Build the callable that supplies targets for each round."""

    def load() -> list[Target]:
        if fetch_list:
            with ServerListClient(config.mirrors, request_timeout=config.request_timeout) as client:
                targets = client.fetch_targets(config.default_port)
        else:
            targets = load_targets(Path(targets_file), config.default_port)

        validation = validate_targets(targets)
        if not validation.valid:
            errors_str = "; ".join(f"{e.path}: {e.message}" for e in validation.errors)
            raise ValueError(f"Invalid targets: {errors_str}")
        return targets

    return load


def output_error(message: str, command: str = "probe", **extra):
    """Output error in flow JSON format."""
    output = {
        "success": False,
        "command": command,
        "data": extra or None,
        "message": message,
    }
    click.echo(json.dumps(output, ensure_ascii=False))


if __name__ == "__main__":
    main()
