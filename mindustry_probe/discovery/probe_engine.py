"""UDP probe engine.

Sends the status request to every target from one fixed local port and
collects all replies that arrive within a fixed receive window.

Servers answer to the port the request came from, so the engine binds a
known local port (65415 by default) and reuses it for every request in
the round.
"""

import asyncio
import logging
import socket
import time
from typing import Callable, Optional

from ..config import ProbeConfig
from ..errors import BindError, SendError
from ..targets.schema import Target
from .correlator import ReplyCorrelator
from .replies import Reply, ReplySet

logger = logging.getLogger(__name__)


class _ProbeProtocol(asyncio.DatagramProtocol):
    """Forwards datagrams to the engine's handler."""

    def __init__(self, on_datagram: Callable[[bytes, tuple], None]):
        self.transport: Optional[asyncio.DatagramTransport] = None
        self.closed = asyncio.get_running_loop().create_future()
        self._on_datagram = on_datagram

    def connection_made(self, transport) -> None:
        self.transport = transport

    def datagram_received(self, data: bytes, addr: tuple) -> None:
        try:
            self._on_datagram(data, addr)
        except Exception:
            logger.exception("Failed to record datagram from %s", addr)

    def error_received(self, exc: Exception) -> None:
        logger.warning("Socket error: %s", exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        if not self.closed.done():
            self.closed.set_result(None)


class ProbeEngine:
    """Runs discovery rounds on a single UDP endpoint.

    One engine may run many rounds, one at a time. Each round opens a
    fresh endpoint and closes it before returning.
    """

    def __init__(self, config: Optional[ProbeConfig] = None):
        """Initialize probe engine.

        Args:
            config: Probe settings. Default: ProbeConfig().
        """
        self.config = config or ProbeConfig()

    async def probe(
        self,
        targets: list[Target],
        timeout: Optional[float] = None,
    ) -> ReplySet:
        """Probe all targets and collect replies for a fixed window.

        Args:
            targets: Servers to probe.
            timeout: Receive window in seconds. Default: config.timeout.

        Returns:
            Frozen ReplySet keyed by correlation key.

        Raises:
            BindError: If the local UDP port cannot be bound.
        """
        timeout = self.config.timeout if timeout is None else timeout
        replies = ReplySet()

        if not targets:
            logger.info("No targets to probe")
            replies.freeze()
            return replies

        correlator = ReplyCorrelator(targets)

        def on_datagram(data: bytes, addr: tuple) -> None:
            reply = Reply(
                received_at=time.time(),
                source_address=addr[0],
                source_port=addr[1],
                payload=bytes(data),
            )
            key = correlator.correlate(reply.source_address, reply.source_port)
            replies.add(key, reply)
            logger.debug("Reply from %s recorded as %s (%d bytes)", reply.source_key, key, reply.size)

        loop = asyncio.get_running_loop()
        try:
            transport, protocol = await loop.create_datagram_endpoint(
                lambda: _ProbeProtocol(on_datagram),
                local_addr=(self.config.bind_host, self.config.bind_port),
                family=socket.AF_INET,
            )
        except OSError as e:
            raise BindError(self.config.bind_host, self.config.bind_port, str(e)) from e

        local = transport.get_extra_info("sockname")
        logger.info("UDP client bound to %s:%d, probing %d targets", local[0], local[1], len(targets))

        sends: list[asyncio.Task] = []
        try:
            sends = [
                asyncio.create_task(self._send(transport, target, correlator))
                for target in targets
            ]
            await asyncio.sleep(timeout)
        finally:
            for task in sends:
                if not task.done():
                    task.cancel()
            results = await asyncio.gather(*sends, return_exceptions=True)
            transport.close()
            # the socket is released only once connection_lost has run
            await protocol.closed
            replies.freeze()

        sent = sum(1 for r in results if r is True)
        logger.info(
            "Round closed: %d/%d requests sent, %d replies from %d sources",
            sent, len(targets), replies.total_replies, len(replies),
        )
        return replies

    def probe_sync(
        self,
        targets: list[Target],
        timeout: Optional[float] = None,
    ) -> ReplySet:
        """Run probe() to completion on a new event loop."""
        return asyncio.run(self.probe(targets, timeout))

    async def _send(
        self,
        transport: asyncio.DatagramTransport,
        target: Target,
        correlator: ReplyCorrelator,
    ) -> bool:
        """Resolve and send the request to one target. Errors are logged."""
        loop = asyncio.get_running_loop()
        try:
            infos = await loop.getaddrinfo(
                target.host,
                target.port,
                family=socket.AF_INET,
                type=socket.SOCK_DGRAM,
            )
            if not infos:
                raise OSError(f"No address for {target.host}")
            address = infos[0][4]
            correlator.register_resolved(target, address[0])
            transport.sendto(self.config.request_payload, address)
        except (OSError, ValueError) as e:
            logger.warning("%s", SendError(target.key, str(e)))
            return False

        logger.debug("Sent request to %s via %s", target.key, address[0])
        return True
