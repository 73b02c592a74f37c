"""scripts/current_trm.py against an unreachable upstream."""

import importlib.util
from pathlib import Path

import pytest

SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "current_trm.py"


@pytest.fixture
def current_trm():
    spec = importlib.util.spec_from_file_location("current_trm", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_unreachable_feed_exits_with_error(current_trm, tmp_path, monkeypatch, capsys):
    config = tmp_path / "settings.yaml"
    config.write_text(
        "database:\n  url: sqlite:///unused.db\n"
        "exchange_rate:\n  url: http://127.0.0.1:9/trm.json\n  timeout_seconds: 1\n"
    )
    monkeypatch.delenv("RUMBO_TRM_URL", raising=False)

    exit_code = current_trm.main(["--config", str(config)])

    assert exit_code == 1
    assert "ERROR: TRM rate is currently unavailable" in capsys.readouterr().err
