# tests/test_executor.py
import json

from mindustry_probe.codec import ServerRecord, encode_status
from mindustry_probe.config import ProbeConfig
from mindustry_probe.discovery import BindError, Reply, ReplySet
from mindustry_probe.reporting import JsonReporter
from mindustry_probe.runner import ExecutionConfig, RoundExecutor, RoundScheduler
from mindustry_probe.targets import Target, load_targets


ALPHA = Target("1.2.3.4", 6567, "Alpha")
BETA = Target("b.test", 6568, "Beta")


class FakeEngine:
    """Returns canned replies instead of touching the network."""

    def __init__(self, payloads=None, error=None):
        self.payloads = payloads or {}
        self.error = error
        self.calls = []

    def probe_sync(self, targets, timeout=None):
        self.calls.append((list(targets), timeout))
        if self.error:
            raise self.error
        replies = ReplySet()
        for key, payload in self.payloads.items():
            host, port = key.rsplit(":", 1)
            replies.add(key, Reply(100.0, host, int(port), payload))
        replies.freeze()
        return replies


def _status(name: str) -> bytes:
    return encode_status(ServerRecord(name=name, map="Frozen Forest", description="hi", player_count=2))


def test_run_round():
    engine = FakeEngine({"1.2.3.4:6567": _status("Alpha")})
    executor = RoundExecutor(ProbeConfig(), ExecutionConfig(timeout=0.5), engine=engine)

    result = executor.run([ALPHA, BETA])

    assert result.success
    assert engine.calls == [([ALPHA, BETA], 0.5)]
    assert result.report.entries["1.2.3.4"].record.name == "Alpha"
    assert result.report.non_responding == [BETA]
    assert result.saved_paths == {}


def test_run_round_saves_three_files(tmp_path):
    engine = FakeEngine({"1.2.3.4:6567": _status("Alpha")})
    config = ProbeConfig(output_dir=tmp_path)
    executor = RoundExecutor(config, ExecutionConfig(save_report=True), engine=engine)

    result = executor.run([ALPHA, BETA])

    raw = json.loads((tmp_path / "output.json").read_text(encoding="utf-8"))
    parsed = json.loads((tmp_path / "responses.json").read_text(encoding="utf-8"))
    missing = json.loads((tmp_path / "serveip.json").read_text(encoding="utf-8"))

    assert raw == {"1.2.3.4:6567": [{"timestamp": 100000, "response": _status("Alpha").hex()}]}
    assert parsed["1.2.3.4"]["name"] == "Alpha"
    assert missing == [{"host": "b.test", "port": 6568, "name": "Beta"}]
    assert set(result.saved_paths) == {"raw", "report", "no_response"}


def test_bind_error_fails_round():
    engine = FakeEngine(error=BindError("0.0.0.0", 65415, "Address already in use"))
    result = RoundExecutor(engine=engine).run([ALPHA])

    assert not result.success
    assert "65415" in result.error
    assert result.report.entries == {}

    output = result.to_flow_json()
    assert output["success"] is False
    assert output["message"].startswith("Round failed")


def test_flow_output():
    engine = FakeEngine({"1.2.3.4:6567": _status("Alpha"), "9.9.9.9:6567": b"\x01"})
    result = RoundExecutor(engine=engine).run([ALPHA, BETA])

    output = result.to_flow_json()
    assert output["success"] is True
    assert output["command"] == "probe"
    assert output["message"] == "2 servers responded (1 undecodable), 1 without reply"
    assert output["data"]["servers"]["9.9.9.9"]["failed"] is True


def test_reporter_generate_includes_raw():
    engine = FakeEngine({"1.2.3.4:6567": _status("Alpha")})
    result = RoundExecutor(engine=engine).run([ALPHA])

    data = JsonReporter().generate(result.report, result.reply_set, duration_ms=5)
    assert data["status"] == "completed"
    assert data["summary"]["duration_ms"] == 5
    assert list(data["raw"]) == ["1.2.3.4:6567"]
    assert json.loads(JsonReporter().to_json_string(data, pretty=False)) == data


def test_scheduler_runs_rounds_sequentially():
    engine = FakeEngine()
    sleeps = []
    rounds = []
    scheduler = RoundScheduler(
        RoundExecutor(engine=engine),
        target_loader=lambda: [ALPHA],
        interval=60,
        on_round=rounds.append,
        sleep=sleeps.append,
    )

    results = scheduler.run(max_rounds=3)

    assert len(results) == 3
    assert rounds == results
    assert len(engine.calls) == 3
    # no sleep after the last round
    assert len(sleeps) == 2
    assert all(0 < s <= 60 for s in sleeps)


def test_scheduler_skips_round_when_targets_fail_to_load():
    engine = FakeEngine()
    attempts = []

    def loader():
        attempts.append(1)
        if len(attempts) == 1:
            raise ValueError("bad list")
        return [ALPHA]

    scheduler = RoundScheduler(RoundExecutor(engine=engine), loader, interval=0, sleep=lambda s: None)
    results = scheduler.run(max_rounds=2)

    assert len(attempts) == 2
    assert len(results) == 1
    assert len(engine.calls) == 1


def test_scheduler_stops_on_keyboard_interrupt():
    def interrupt(_):
        raise KeyboardInterrupt

    scheduler = RoundScheduler(RoundExecutor(engine=FakeEngine()), lambda: [ALPHA],
                               interval=10, sleep=interrupt)
    results = scheduler.run()
    assert len(results) == 1


def test_scheduler_survives_malformed_yaml_list(tmp_path):
    path = tmp_path / "servers.yaml"
    path.write_text("- name: [unclosed\n", encoding="utf-8")
    engine = FakeEngine()

    scheduler = RoundScheduler(RoundExecutor(engine=engine), lambda: load_targets(path),
                               interval=0, sleep=lambda s: None)
    results = scheduler.run(max_rounds=2)

    assert results == []
    assert engine.calls == []
