"""Reply aggregator.

Turns a closed ReplySet into a Report: one entry per responding key,
built from that key's latest reply, plus the list of targets that never
answered.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

from ..codec.decoder import ServerRecord, decode_status
from ..config import DEFAULT_SERVER_PORT
from ..discovery.replies import Reply, ReplySet
from ..errors import DecodeError
from ..targets.schema import Target, display_address

logger = logging.getLogger(__name__)


def _isoformat(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, timezone.utc).isoformat()


@dataclass
class ReportEntry:
    """Outcome for one responding server."""
    address: str
    key: str
    reply_count: int
    last_seen: float
    payload_size: int
    raw_hex: str = ""
    record: Optional[ServerRecord] = None
    error: Optional[str] = None
    all_responses: list[dict[str, Any]] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.record is None

    def to_dict(self) -> dict[str, Any]:
        if self.record is None:
            return {
                "failed": True,
                "error": self.error,
                "payload_size": self.payload_size,
                "address": self.address,
                "reply_count": self.reply_count,
                "last_updated": _isoformat(self.last_seen),
                "raw_hex": self.raw_hex,
                "all_responses": self.all_responses,
            }

        data = self.record.to_dict()
        data.update({
            "reply_count": self.reply_count,
            "last_updated": _isoformat(self.last_seen),
            "payload_size": self.payload_size,
            "raw_hex": self.raw_hex,
            "all_responses": self.all_responses,
        })
        return data


@dataclass
class Report:
    """Result of aggregating one round."""
    entries: dict[str, ReportEntry] = field(default_factory=dict)
    non_responding: list[Target] = field(default_factory=list)
    generated_at: float = field(default_factory=time.time)

    @property
    def succeeded(self) -> list[ReportEntry]:
        return [e for e in self.entries.values() if not e.failed]

    @property
    def failed(self) -> list[ReportEntry]:
        return [e for e in self.entries.values() if e.failed]

    @property
    def total_players(self) -> int:
        return sum(e.record.player_count for e in self.succeeded)

    def servers_dict(self) -> dict[str, dict[str, Any]]:
        return {address: entry.to_dict() for address, entry in self.entries.items()}

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated_at": _isoformat(self.generated_at),
            "summary": {
                "responding": len(self.entries),
                "decoded": len(self.succeeded),
                "failed": len(self.failed),
                "non_responding": len(self.non_responding),
                "players": self.total_players,
            },
            "servers": self.servers_dict(),
            "non_responding": [t.to_dict() for t in self.non_responding],
        }


def select_authoritative(replies: Iterable[Reply]) -> Reply:
    """Pick the latest reply; equal timestamps go to the later arrival."""
    latest: Optional[Reply] = None
    for reply in replies:
        if latest is None or reply.received_at >= latest.received_at:
            latest = reply
    if latest is None:
        raise ValueError("No replies to select from")
    return latest


def aggregate(
    reply_set: ReplySet,
    targets: Iterable[Target] = (),
    default_port: int = DEFAULT_SERVER_PORT,
    decoder: Callable[[bytes], ServerRecord] = decode_status,
) -> Report:
    """Aggregate a closed ReplySet into a Report.

    Args:
        reply_set: Replies of one round.
        targets: Targets that were probed; those without replies are
            listed as non-responding.
        default_port: Port omitted from display addresses.
        decoder: Payload decoder.

    Returns:
        Report with one entry per key in the ReplySet.
    """
    report = Report()

    for key, replies in reply_set.items():
        reply = select_authoritative(replies)
        address = display_address(key, default_port)
        entry = ReportEntry(
            address=address,
            key=key,
            reply_count=len(replies),
            last_seen=reply.received_at,
            payload_size=reply.size,
            raw_hex=reply.payload_hex,
            all_responses=[
                {"timestamp": int(r.received_at * 1000), "response": r.payload_hex}
                for r in replies
            ],
        )

        try:
            entry.record = decoder(reply.payload)
        except DecodeError as e:
            entry.error = str(e)
            logger.warning("Could not decode reply from %s: %s", key, e)

        if address in report.entries:
            # host and host:default_port collapse to the same address
            logger.warning("Duplicate report address %s (key %s)", address, key)
            address = key
            entry.address = key
        report.entries[address] = entry

    report.non_responding = [
        target for target in _unique(targets)
        if target.key not in reply_set
    ]

    logger.info(
        "Aggregated %d responding servers (%d failed to decode), %d without reply",
        len(report.entries), len(report.failed), len(report.non_responding),
    )
    return report


def _unique(targets: Iterable[Target]) -> list[Target]:
    seen: set[str] = set()
    unique = []
    for target in targets:
        if target.key not in seen:
            seen.add(target.key)
            unique.append(target)
    return unique
