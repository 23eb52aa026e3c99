import json

import pytest

from shipgate import cli


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch):
    monkeypatch.setattr(cli, "init_logging", lambda **kwargs: None)
    for key in ("SHIPGATE_STORAGE_ROOT", "SHIPGATE_HISTORY_LIMIT", "SHIPGATE_WRITE_REPORTS"):
        monkeypatch.delenv(key, raising=False)


def _write_context(tmp_path, context):
    path = tmp_path / "metrics.json"
    path.write_text(json.dumps(context))
    return path


def _run(tmp_path, *args):
    return cli.main(["--storage-root", str(tmp_path / "state"), *args])


def test_run_passes_and_writes_report(tmp_path, capsys, passing_context):
    context_path = _write_context(tmp_path, passing_context)

    assert _run(tmp_path, "run", "--context", str(context_path)) == 0

    out = capsys.readouterr().out
    assert "Overall status: PASS" in out
    assert "Ready for deployment" in out
    reports = list((tmp_path / "state" / "reports").glob("quality-gate-execution-*.md"))
    assert len(reports) == 1
    assert (tmp_path / "state" / "settings" / "quality-gates.json").is_file()
    assert len(json.loads((tmp_path / "state" / "reports" / "quality-gate-history.json").read_text())) == 3


def test_run_failure_exit_code_and_json_output(tmp_path, capsys, passing_context):
    context_path = _write_context(tmp_path, dict(passing_context, critical_bugs=4))

    assert _run(tmp_path, "run", "--context", str(context_path), "--json") == 1

    payload = json.loads(capsys.readouterr().out)
    assert payload["result"]["overallStatus"] == "fail"
    assert payload["result"]["summary"]["blocked"] is True
    assert payload["gates"]["critical-functionality"]["name"] == "Critical Functionality"


def test_exception_lifecycle(tmp_path, capsys, passing_context):
    assert _run(
        tmp_path,
        "exceptions", "create",
        "--gate", "critical-functionality",
        "--criteria", "test-pass-rate",
        "--reason", "Flaky suite",
        "--approver", "qa-lead",
        "--expires-in-hours", "4",
    ) == 0
    exception_id = capsys.readouterr().out.strip()
    assert exception_id.startswith("exception-")

    context_path = _write_context(tmp_path, dict(passing_context, test_pass_rate=10))
    assert _run(tmp_path, "run", "--context", str(context_path)) == 0
    capsys.readouterr()

    assert _run(tmp_path, "exceptions", "list", "--active-only") == 0
    listed = json.loads(capsys.readouterr().out)
    assert [e["id"] for e in listed] == [exception_id]

    assert _run(tmp_path, "exceptions", "deactivate", exception_id) == 0
    assert _run(tmp_path, "exceptions", "deactivate", "exception-nope") == 1
    capsys.readouterr()

    assert _run(tmp_path, "run", "--context", str(context_path)) == 1


def test_thresholds_adjust(tmp_path, capsys):
    assert _run(tmp_path, "thresholds", "adjust", "major", "--min-pass-rate", "85") == 0

    assert json.loads(capsys.readouterr().out) == {"minPassRate": 85.0, "maxFailures": 1}

    assert _run(tmp_path, "thresholds", "adjust", "major", "--min-pass-rate", "-5") == 2


def test_config_replace_rejects_invalid_document(tmp_path, capsys):
    assert _run(tmp_path, "config", "show") == 0
    document = json.loads(capsys.readouterr().out)
    document["gates"][0]["criteria"][0]["operator"] = "~"
    bad_path = tmp_path / "bad.json"
    bad_path.write_text(json.dumps(document))

    assert _run(tmp_path, "config", "replace", str(bad_path)) == 2
    assert "Invalid configuration" in capsys.readouterr().err


def test_history_show_limit(tmp_path, capsys, passing_context):
    context_path = _write_context(tmp_path, passing_context)
    _run(tmp_path, "run", "--context", str(context_path))
    capsys.readouterr()

    assert _run(tmp_path, "history", "show", "--limit", "2") == 0

    history = json.loads(capsys.readouterr().out)
    assert [e["gateId"] for e in history] == ["performance-standards", "quality-metrics"]


def test_corrupt_state_is_reported(tmp_path, capsys):
    settings_dir = tmp_path / "state" / "settings"
    settings_dir.mkdir(parents=True)
    (settings_dir / "quality-gates.json").write_text("{")

    assert _run(tmp_path, "config", "show") == 2
    assert "error:" in capsys.readouterr().err
