# tests/test_probe_engine.py
import asyncio
import logging
import socket

import pytest

from mindustry_probe.config import ProbeConfig
from mindustry_probe.discovery import (
    BindError,
    ProbeEngine,
    Reply,
    ReplyCorrelator,
    ReplySet,
)
from mindustry_probe.runner import aggregate
from mindustry_probe.targets import Target, display_address


class Responder(asyncio.DatagramProtocol):
    """Local stand-in for a game server: answers every request with payloads."""

    def __init__(self, payloads):
        self.payloads = payloads
        self.requests = []
        self.transport = None

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data, addr):
        self.requests.append((data, addr))
        for payload in self.payloads:
            self.transport.sendto(payload, addr)


def _engine() -> ProbeEngine:
    return ProbeEngine(ProbeConfig(bind_host="127.0.0.1", bind_port=0))


async def _round(payloads, host="127.0.0.1", timeout=0.3):
    loop = asyncio.get_running_loop()
    transport, responder = await loop.create_datagram_endpoint(
        lambda: Responder(payloads), local_addr=("127.0.0.1", 0)
    )
    port = transport.get_extra_info("sockname")[1]
    try:
        replies = await _engine().probe([Target(host, port, "Local")], timeout=timeout)
    finally:
        transport.close()
    return port, responder, replies


def _fake_resolver(mapping):
    async def getaddrinfo(self, host, port, *args, **kwargs):
        if host not in mapping:
            raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")
        return [(socket.AF_INET, socket.SOCK_DGRAM, 17, "", (mapping[host], port))]
    return getaddrinfo


def test_probe_collects_every_reply_in_order():
    port, responder, replies = asyncio.run(_round([b"first", b"second"]))

    key = f"127.0.0.1:{port}"
    assert replies.keys() == [key]
    assert [r.payload for r in replies[key]] == [b"first", b"second"]
    assert replies[key][0].source_key == key
    assert replies[key][0].received_at <= replies[key][1].received_at
    assert replies.frozen


def test_probe_sends_fixed_request():
    _, responder, _ = asyncio.run(_round([b"x"]))
    assert [data for data, _ in responder.requests] == [b"\xfe\x01"]


def test_probe_waits_full_window():
    async def timed():
        loop = asyncio.get_running_loop()
        started = loop.time()
        await _round([b"x"], timeout=0.3)
        return loop.time() - started

    assert asyncio.run(timed()) >= 0.29


def test_empty_targets_returns_immediately():
    replies = asyncio.run(_engine().probe([], timeout=10))
    assert len(replies) == 0
    assert replies.frozen


def test_probe_sync():
    replies = _engine().probe_sync([], timeout=0.1)
    assert len(replies) == 0


def test_hostname_target_keeps_declared_key(monkeypatch):
    monkeypatch.setattr(
        asyncio.BaseEventLoop, "getaddrinfo", _fake_resolver({"example.test": "127.0.0.1"})
    )
    port, _, replies = asyncio.run(_round([b"x"], host="example.test"))
    assert replies.keys() == [f"example.test:{port}"]


def test_unresolvable_target_is_logged_not_raised(monkeypatch, caplog):
    monkeypatch.setattr(asyncio.BaseEventLoop, "getaddrinfo", _fake_resolver({}))
    alpha = Target("a.test", 6567, "Alpha")

    with caplog.at_level(logging.WARNING, logger="mindustry_probe.discovery.probe_engine"):
        replies = _engine().probe_sync([alpha], timeout=0.1)

    assert len(replies) == 0
    assert "a.test:6567" in caplog.text

    report = aggregate(replies, [alpha])
    assert report.entries == {}
    assert report.non_responding == [alpha]


def test_bind_failure_raises_bind_error():
    blocker = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    blocker.bind(("127.0.0.1", 0))
    port = blocker.getsockname()[1]
    try:
        engine = ProbeEngine(ProbeConfig(bind_host="127.0.0.1", bind_port=port))
        with pytest.raises(BindError) as exc:
            engine.probe_sync([Target("127.0.0.1", 6567)], timeout=0.1)
        assert exc.value.port == port
    finally:
        blocker.close()


def test_rounds_can_reuse_bound_port():
    probe_port = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    probe_port.bind(("127.0.0.1", 0))
    port = probe_port.getsockname()[1]
    probe_port.close()

    engine = ProbeEngine(ProbeConfig(bind_host="127.0.0.1", bind_port=port))
    target = [Target("127.0.0.1", 9)]
    engine.probe_sync(target, timeout=0.05)
    engine.probe_sync(target, timeout=0.05)


def test_back_to_back_rounds_in_one_loop_reuse_bound_port():
    probe_port = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    probe_port.bind(("127.0.0.1", 0))
    port = probe_port.getsockname()[1]
    probe_port.close()

    engine = ProbeEngine(ProbeConfig(bind_host="127.0.0.1", bind_port=port))
    target = [Target("127.0.0.1", 9)]

    async def two_rounds():
        first = await engine.probe(target, timeout=0.05)
        second = await engine.probe(target, timeout=0.05)
        return first, second

    first, second = asyncio.run(two_rounds())
    assert first.frozen and second.frozen


def test_correlator_exact_match():
    correlator = ReplyCorrelator([Target("10.0.0.1", 6567), Target("10.0.0.2", 6567)])
    assert correlator.correlate("10.0.0.2", 6567) == "10.0.0.2:6567"


def test_correlator_prefers_resolved_address():
    a, b = Target("a.test", 6567), Target("b.test", 6567)
    correlator = ReplyCorrelator([a, b])
    correlator.register_resolved(b, "198.51.100.7")
    assert correlator.correlate("198.51.100.7", 6567) == "b.test:6567"


def test_correlator_matches_by_port_behind_nat():
    correlator = ReplyCorrelator([Target("example.com", 6567, "Example")])
    key = correlator.correlate("203.0.113.5", 6567)

    assert key == "example.com:6567"
    assert display_address(key, 6567) == "example.com"


def test_correlator_warns_on_ambiguous_port(caplog):
    correlator = ReplyCorrelator([Target("a.test", 6567), Target("b.test", 6567)])
    with caplog.at_level(logging.WARNING, logger="mindustry_probe.discovery.correlator"):
        assert correlator.correlate("203.0.113.5", 6567) == "a.test:6567"
        correlator.correlate("203.0.113.5", 6567)
    assert caplog.text.count("port only") == 1


def test_correlator_keeps_raw_key_for_unknown_sender():
    correlator = ReplyCorrelator([Target("a.test", 6567)])
    assert correlator.correlate("192.0.2.9", 4000) == "192.0.2.9:4000"


def test_reply_set_is_read_only_after_freeze():
    replies = ReplySet()
    replies.add("a:1", Reply(1.0, "a", 1, b"x"))
    replies.freeze()
    with pytest.raises(RuntimeError):
        replies.add("a:1", Reply(2.0, "a", 1, b"y"))


def test_raw_capture_round_trip():
    replies = ReplySet()
    replies.add("1.2.3.4:6567", Reply(1.5, "1.2.3.4", 6567, b"\x01\x02"))
    replies.add("1.2.3.4:6567", Reply(2.0, "1.2.3.4", 6567, b"\x03"))

    raw = replies.to_raw_capture()
    assert raw == {"1.2.3.4:6567": [
        {"timestamp": 1500, "response": "0102"},
        {"timestamp": 2000, "response": "03"},
    ]}

    restored = ReplySet.from_raw_capture(raw)
    assert restored.frozen
    assert [r.payload for r in restored["1.2.3.4:6567"]] == [b"\x01\x02", b"\x03"]
    assert restored["1.2.3.4:6567"][0].source_port == 6567


def test_raw_capture_rejects_bad_records():
    with pytest.raises(ValueError):
        ReplySet.from_raw_capture({"a:1": [{"timestamp": 1}]})
