"""Round executor - orchestrates discovery rounds.

Coordinates one round:
1. Probe all targets (UDP)
2. Aggregate and decode replies
3. Save raw capture, report and non-responding list

and runs rounds back to back on a fixed interval.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..config import ProbeConfig
from ..discovery.probe_engine import ProbeEngine
from ..discovery.replies import ReplySet
from ..errors import BindError, ProbeError
from ..reporting.json_reporter import JsonReporter
from ..targets.schema import Target
from .aggregator import Report, aggregate

logger = logging.getLogger(__name__)


@dataclass
class RoundResult:
    """Complete result of one discovery round."""
    targets: list[Target]
    reply_set: ReplySet = field(default_factory=ReplySet)
    report: Report = field(default_factory=Report)
    duration_ms: int = 0
    error: Optional[str] = None
    saved_paths: dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.error is None

    def to_flow_json(self) -> dict:
        """Convert to CLI JSON output."""
        return JsonReporter().generate_flow_output(
            self.report,
            duration_ms=self.duration_ms,
            error=self.error,
            saved_paths=self.saved_paths,
        )


@dataclass
class ExecutionConfig:
    """Per-run options on top of ProbeConfig."""
    save_report: bool = False
    timeout: Optional[float] = None


class RoundExecutor:
    """Runs probe, aggregation and reporting for one round at a time."""

    def __init__(
        self,
        config: Optional[ProbeConfig] = None,
        execution: Optional[ExecutionConfig] = None,
        engine: Optional[ProbeEngine] = None,
        reporter: Optional[JsonReporter] = None,
    ):
        """Initialize round executor.

        Args:
            config: Probe settings shared by engine and reporter.
            execution: Per-run options.
            engine: Probe engine (default: built from config).
            reporter: Report writer (default: JsonReporter()).
        """
        self.config = config or ProbeConfig()
        self.execution = execution or ExecutionConfig()
        self.engine = engine or ProbeEngine(self.config)
        self._reporter = reporter or JsonReporter()

    def run(self, targets: list[Target]) -> RoundResult:
        """Run one round synchronously.

        A BindError ends the round and is reported in RoundResult.error;
        per-target failures are part of the report.
        """
        start_time = time.time()
        result = RoundResult(targets=list(targets))

        try:
            result.reply_set = self.engine.probe_sync(result.targets, self.execution.timeout)
        except BindError as e:
            result.error = str(e)
            logger.error("Round aborted: %s", e)
            result.duration_ms = int((time.time() - start_time) * 1000)
            return result

        result.report = aggregate(
            result.reply_set,
            result.targets,
            default_port=self.config.default_port,
        )
        result.duration_ms = int((time.time() - start_time) * 1000)

        if self.execution.save_report:
            result.saved_paths = self._save(result)

        return result

    def _save(self, result: RoundResult) -> dict[str, str]:
        """Save round files. Write failures are logged."""
        try:
            return self._reporter.save_round(result.report, result.reply_set, self.config)
        except OSError as e:
            logger.error("Failed to save round files: %s", e)
            return {}


class RoundScheduler:
    """Runs rounds sequentially on a fixed interval.

    A round always finishes, and its endpoint is closed, before the next
    one starts, so rounds never overlap on the bound port.
    """

    def __init__(
        self,
        executor: RoundExecutor,
        target_loader: Callable[[], list[Target]],
        interval: Optional[float] = None,
        on_round: Optional[Callable[[RoundResult], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize round scheduler.

        Args:
            executor: Executor that runs each round.
            target_loader: Called before every round to get fresh targets.
            interval: Seconds between round starts. Default: config.interval.
            on_round: Optional callback(RoundResult) after each round.
            sleep: Sleep function (replaceable in tests).
        """
        self.executor = executor
        self.target_loader = target_loader
        self.interval = executor.config.interval if interval is None else interval
        self.on_round = on_round
        self._sleep = sleep

    def run(self, max_rounds: Optional[int] = None) -> list[RoundResult]:
        """Run rounds until max_rounds is reached or interrupted.

        Returns:
            Results of the completed rounds (only the last one is kept when
            max_rounds is None).
        """
        results: list[RoundResult] = []
        rounds = 0

        try:
            while max_rounds is None or rounds < max_rounds:
                started = time.time()
                rounds += 1

                try:
                    targets = self.target_loader()
                except (OSError, ValueError, ProbeError) as e:
                    logger.error("Round %d skipped, could not load targets: %s", rounds, e)
                    targets = None

                if targets is not None:
                    result = self.executor.run(targets)
                    logger.info("Round %d finished in %d ms", rounds, result.duration_ms)
                    if max_rounds is None:
                        results = [result]
                    else:
                        results.append(result)
                    if self.on_round:
                        self.on_round(result)

                if max_rounds is not None and rounds >= max_rounds:
                    break

                wait = self.interval - (time.time() - started)
                if wait > 0:
                    self._sleep(wait)

        except KeyboardInterrupt:
            logger.info("Scheduler interrupted after %d rounds", rounds)

        return results
