"""JSON report generator for discovery rounds.

Writes the three round files:
- raw capture: every reply per key, hex encoded, before decoding
- parsed report: one decoded (or failed) entry per responding server
- non-responding list: targets that never answered
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from ..config import ProbeConfig
from ..discovery.replies import ReplySet

if TYPE_CHECKING:
    from ..runner.aggregator import Report

logger = logging.getLogger(__name__)


class JsonReporter:
    """Generates JSON reports from discovery rounds."""

    def generate(
        self,
        report: "Report",
        reply_set: Optional[ReplySet] = None,
        duration_ms: int = 0,
        error: Optional[str] = None,
    ) -> dict[str, Any]:
        """Generate a combined report dictionary.

        Args:
            report: Aggregated round report.
            reply_set: Raw replies, included when given.
            duration_ms: Round duration in milliseconds.
            error: Round-level error message, if the round failed.

        Returns:
            Report dictionary ready for JSON serialization.
        """
        data = report.to_dict()
        data["timestamp"] = datetime.now(timezone.utc).isoformat()
        data["status"] = "failed" if error else "completed"
        data["summary"]["duration_ms"] = duration_ms
        data["error"] = error
        if reply_set is not None:
            data["raw"] = reply_set.to_raw_capture()
        return data

    def save(self, data: Any, path: Path) -> Path:
        """Save data to a JSON file.

        Args:
            data: JSON-serializable data.
            path: Output file path.

        Returns:
            Path to the saved file.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        return path

    def save_round(
        self,
        report: "Report",
        reply_set: ReplySet,
        config: ProbeConfig,
    ) -> dict[str, str]:
        """Save the raw capture, parsed report and non-responding list.

        Returns:
            Mapping of file kind ("raw", "report", "no_response") to path.
        """
        paths = {
            "raw": self.save(reply_set.to_raw_capture(), config.raw_path),
            "report": self.save(report.servers_dict(), config.report_path),
            "no_response": self.save(
                [t.to_dict() for t in report.non_responding],
                config.no_response_path,
            ),
        }
        for kind, path in paths.items():
            logger.info("Saved %s file: %s", kind, path)
        return {kind: str(path) for kind, path in paths.items()}

    def to_json_string(self, data: Any, pretty: bool = True) -> str:
        """Convert data to a JSON string.

        Args:
            data: JSON-serializable data.
            pretty: If True, format with indentation.

        Returns:
            JSON string.
        """
        if pretty:
            return json.dumps(data, indent=2, ensure_ascii=False)
        return json.dumps(data, ensure_ascii=False)

    def generate_flow_output(
        self,
        report: "Report",
        duration_ms: int = 0,
        error: Optional[str] = None,
        saved_paths: Optional[dict[str, str]] = None,
        command: str = "probe",
    ) -> dict[str, Any]:
        """Generate the CLI JSON envelope.

        Follows the flow JSON output standard:
        {
            "success": bool,
            "command": "probe",
            "data": { ... },
            "message": str
        }
        """
        data: dict[str, Any] = report.to_dict()
        data["summary"]["duration_ms"] = duration_ms

        if saved_paths:
            data["files"] = saved_paths

        summary = data["summary"]
        if error:
            message = f"Round failed: {error}"
        else:
            message = (
                f"{summary['responding']} servers responded "
                f"({summary['failed']} undecodable), "
                f"{summary['non_responding']} without reply"
            )

        return {
            "success": error is None,
            "command": command,
            "data": data,
            "message": message,
        }
