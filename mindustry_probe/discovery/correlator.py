"""Maps reply source addresses back to the targets that were probed.

Replies are matched, in order, by:
1. declared host:port equal to the source address and port
2. resolved address of a declared host, with the same port
3. port alone (first declared target on that port)

Anything else keeps its raw address:port key so unexpected responders
still show up in the report.

The port-only match is a heuristic for servers behind NAT that answer
from a different address. When several targets share the port the
first declared one wins; the ambiguity is logged, not resolved.
"""

import logging
from collections import defaultdict

from ..targets.schema import Target

logger = logging.getLogger(__name__)


class ReplyCorrelator:
    """Correlation table for one round."""

    def __init__(self, targets: list[Target]):
        self._by_key: dict[str, Target] = {}
        self._by_port: dict[int, list[Target]] = defaultdict(list)
        self._resolved: dict[tuple[str, int], Target] = {}
        self._warned: set[str] = set()

        for target in targets:
            if target.key in self._by_key:
                continue
            self._by_key[target.key] = target
            self._by_port[target.port].append(target)

    def register_resolved(self, target: Target, address: str) -> None:
        """Record the address a target's host resolved to."""
        self._resolved.setdefault((address, target.port), target)

    def correlate(self, address: str, port: int) -> str:
        """Return the correlation key for a reply from address:port."""
        raw_key = f"{address}:{port}"

        if raw_key in self._by_key:
            return raw_key

        target = self._resolved.get((address, port))
        if target is not None:
            return target.key

        candidates = self._by_port.get(port)
        if candidates:
            if len(candidates) > 1 and raw_key not in self._warned:
                self._warned.add(raw_key)
                logger.warning(
                    "Reply from %s matches %d targets on port %d by port only; using %s",
                    raw_key, len(candidates), port, candidates[0].key,
                )
            return candidates[0].key

        logger.debug("Reply from %s matches no target", raw_key)
        return raw_key
