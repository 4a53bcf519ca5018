"""Reply containers produced by the probe engine."""

from dataclasses import dataclass
from typing import Iterator

from ..targets.schema import split_key


@dataclass(frozen=True)
class Reply:
    """One datagram received during a round."""
    received_at: float
    source_address: str
    source_port: int
    payload: bytes

    @property
    def source_key(self) -> str:
        return f"{self.source_address}:{self.source_port}"

    @property
    def size(self) -> int:
        return len(self.payload)

    @property
    def payload_hex(self) -> str:
        return self.payload.hex()


class ReplySet:
    """Replies grouped by correlation key, in arrival order.

    Written only by the probe engine while the receive window is open.
    The engine freezes the set when the window closes; from then on it is
    read-only.
    """

    def __init__(self) -> None:
        self._entries: dict[str, list[Reply]] = {}
        self._frozen = False

    def add(self, key: str, reply: Reply) -> None:
        if self._frozen:
            raise RuntimeError("ReplySet is frozen; the receive window has closed")
        self._entries.setdefault(key, []).append(reply)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def total_replies(self) -> int:
        return sum(len(replies) for replies in self._entries.values())

    def keys(self) -> list[str]:
        return list(self._entries)

    def items(self) -> Iterator[tuple[str, tuple[Reply, ...]]]:
        for key, replies in self._entries.items():
            yield key, tuple(replies)

    def __getitem__(self, key: str) -> tuple[Reply, ...]:
        return tuple(self._entries[key])

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def to_raw_capture(self) -> dict[str, list[dict]]:
        """Archive form: key -> [{timestamp (ms), response (hex)}]."""
        return {
            key: [
                {
                    "timestamp": int(reply.received_at * 1000),
                    "response": reply.payload_hex,
                }
                for reply in replies
            ]
            for key, replies in self._entries.items()
        }

    @classmethod
    def from_raw_capture(cls, data: dict) -> "ReplySet":
        """Rebuild a frozen ReplySet from its archive form.

        The source address of each reply is taken from its key, since the
        archive keeps only the correlated key.

        Raises:
            ValueError: If the data is not in archive form.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Raw capture must be a mapping, got {type(data).__name__}")

        reply_set = cls()
        for key, records in data.items():
            if not isinstance(records, list):
                raise ValueError(f"Replies for '{key}' must be a list")
            host, port = split_key(key)
            for record in records:
                try:
                    reply = Reply(
                        received_at=float(record["timestamp"]) / 1000,
                        source_address=host,
                        source_port=port or 0,
                        payload=bytes.fromhex(record["response"]),
                    )
                except (KeyError, TypeError, ValueError) as e:
                    raise ValueError(f"Invalid reply record for '{key}': {e}") from e
                reply_set.add(key, reply)
        reply_set.freeze()
        return reply_set
