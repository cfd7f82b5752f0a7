"""
Service Plumbing Tests - config, Truth setup, logging, record loading, CLI.
"""

import asyncio
import io
import json

import pytest

from shared.logutil import LogUtil
from shared.setup_base import SetupBase

from ..intel.config import PulseConfig
from ..intel.models import ActivityType, RecordBundle, TransactionKind
from ..main import main

TRUTH = {
    "components": {
        "pulse": {
            "meta": {"name": "Pulse"},
            "env": {"LOG_LEVEL": "INFO", "PULSE_PORT": "8096"},
            "pulse": {"max_alerts": 2, "namespace": "user42"},
            "unrelated": {"ignored": True},
        }
    }
}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ("LOG_LEVEL", "PULSE_DEBUG", "PULSE_REDIS_URL", "PULSE_HOST",
                "PULSE_PORT", "TRUTH_FILE"):
        monkeypatch.delenv(key, raising=False)


# =============================================================================
# Config
# =============================================================================

class TestPulseConfig:

    def test_defaults(self):
        cfg = PulseConfig.from_config({})

        assert cfg.max_alerts == 3
        assert cfg.dismiss_cooldown_days == 7
        assert cfg.alert_max_age_days == 30
        assert cfg.namespace == "pulse"
        assert cfg.port == 8096

    def test_structural_block(self):
        cfg = PulseConfig.from_config({
            "pulse": {"max_alerts": "2", "port": "9000", "unknown": 1},
        })

        assert cfg.max_alerts == 2
        assert cfg.port == 9000
        assert not hasattr(cfg, "unknown")

    def test_env_overrides_block(self, monkeypatch):
        monkeypatch.setenv("PULSE_PORT", "9100")
        monkeypatch.setenv("PULSE_REDIS_URL", "redis://cache:6379/2")

        cfg = PulseConfig.from_config({"pulse": {"port": 9000}})

        assert cfg.port == 9100
        assert cfg.redis_url == "redis://cache:6379/2"


class TestSetupBase:

    def test_build_config(self):
        cfg = SetupBase("pulse").build_config(TRUTH)

        assert cfg["service_name"] == "pulse"
        assert cfg["LOG_LEVEL"] == "INFO"
        assert cfg["pulse"] == {"max_alerts": 2, "namespace": "user42"}
        assert "unrelated" not in cfg

    def test_shell_env_wins(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")

        cfg = SetupBase("pulse").build_config(TRUTH)

        assert cfg["LOG_LEVEL"] == "DEBUG"

    def test_missing_component(self):
        with pytest.raises(RuntimeError):
            SetupBase("other").build_config(TRUTH)

    def test_load_from_truth_file(self, tmp_path, monkeypatch):
        path = tmp_path / "truth.json"
        path.write_text(json.dumps(TRUTH), encoding="utf-8")
        monkeypatch.setenv("TRUTH_FILE", str(path))

        cfg = asyncio.run(SetupBase("pulse").load())

        assert PulseConfig.from_config(cfg).namespace == "user42"

    def test_unreadable_truth_file(self, tmp_path):
        with pytest.raises(RuntimeError):
            SetupBase("pulse").load_truth_file(str(tmp_path / "missing.json"))


# =============================================================================
# Logging
# =============================================================================

class TestLogUtil:

    def test_line_format(self):
        stream = io.StringIO()
        LogUtil("pulse", stream=stream).child("engine").info("run complete")

        line = stream.getvalue()
        assert "[pulse:engine][INFO]" in line
        assert line.rstrip().endswith("run complete")

    def test_debug_hidden_by_default(self):
        stream = io.StringIO()
        logger = LogUtil("pulse", stream=stream)

        logger.debug("noise")

        assert stream.getvalue() == ""

    def test_configure_from_config(self):
        stream = io.StringIO()
        logger = LogUtil("pulse", stream=stream)

        logger.configure_from_config({"LOG_LEVEL": "DEBUG"})
        logger.debug("visible")

        assert logger.level_name() == "DEBUG"
        assert "visible" in stream.getvalue()

    def test_env_debug_flag(self, monkeypatch):
        monkeypatch.setenv("PULSE_DEBUG", "true")

        assert LogUtil("pulse").debug_enabled

    def test_error_level_filters_warnings(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        stream = io.StringIO()
        logger = LogUtil("pulse", stream=stream)

        logger.warn("quiet")
        logger.error("loud")

        assert "quiet" not in stream.getvalue()
        assert "loud" in stream.getvalue()


# =============================================================================
# Record loading
# =============================================================================

class TestRecordBundle:

    def test_parses_sections(self):
        bundle = RecordBundle.from_dict({
            "transactions": [
                {"id": 1, "kind": "income", "amount": "2500", "date": "2026-03-01T09:30:00Z"},
            ],
            "subscriptions": [{"id": "s", "name": "Music", "amount": 9.99}],
            "price_history": [{"product_name": "Milk", "price": 1.1}],
            "mental_records": [{"date": "2026-03-18", "moodLevel": 3, "tags": ["work"]}],
            "physical_records": [{"date": "2026-03-18", "activityType": "run", "durationMin": 25}],
        })

        assert bundle.transactions[0].kind == TransactionKind.INCOME
        assert bundle.transactions[0].amount == 2500.0
        assert bundle.transactions[0].id == "1"
        assert bundle.subscriptions[0].monthly_cost == pytest.approx(9.99)
        assert bundle.mental_records[0].tags == ("work",)
        assert bundle.physical_records[0].activity_type == ActivityType.RUN

    def test_malformed_entries_skipped(self):
        stream = io.StringIO()
        bundle = RecordBundle.from_dict(
            {
                "transactions": [
                    {"id": "ok", "amount": 5, "date": "2026-03-18"},
                    {"id": "neg", "amount": -5, "date": "2026-03-18"},
                    {"id": "nodate", "amount": 5},
                ],
                "mental_records": [{"date": "2026-03-18", "mood_level": 9}],
                "physical_records": [{"date": "not a date"}],
            },
            logger=LogUtil("pulse", stream=stream),
        )

        assert [t.id for t in bundle.transactions] == ["ok"]
        assert bundle.mental_records == []
        assert bundle.physical_records == []
        assert stream.getvalue().count("[WARN]") == 4

    def test_non_object_entries_skipped(self):
        stream = io.StringIO()
        bundle = RecordBundle.from_dict(
            {
                "transactions": [1, "x", None, {"id": "ok", "amount": 5, "date": "2026-03-18"}],
                "mental_records": [[3], {"date": "2026-03-18", "mood_level": 3}],
            },
            logger=LogUtil("pulse", stream=stream),
        )

        assert [t.id for t in bundle.transactions] == ["ok"]
        assert len(bundle.mental_records) == 1
        assert stream.getvalue().count("[WARN]") == 4

    def test_non_list_section_treated_as_empty(self):
        stream = io.StringIO()
        bundle = RecordBundle.from_dict(
            {"transactions": 5, "physical_records": {"date": "2026-03-18"}},
            logger=LogUtil("pulse", stream=stream),
        )

        assert bundle.transactions == []
        assert bundle.physical_records == []
        assert stream.getvalue().count("[WARN]") == 2

    @pytest.mark.parametrize("amount", ["inf", float("inf"), "-inf", "nan"])
    def test_non_finite_amounts_rejected(self, amount):
        bundle = RecordBundle.from_dict({
            "transactions": [{"id": "t", "amount": amount, "date": "2026-03-18"}],
            "subscriptions": [{"id": "s", "amount": amount}],
        })

        assert bundle.transactions == []
        assert bundle.subscriptions == []

    @pytest.mark.parametrize("level,expected", [(3.7, None), ("2.5", None), (True, None), (4.0, 4), ("5", 5)])
    def test_mood_level_must_be_integral(self, level, expected):
        bundle = RecordBundle.from_dict({"mental_records": [{"date": "2026-03-18", "mood_level": level}]})

        assert [r.mood_level for r in bundle.mental_records] == ([expected] if expected else [])

    def test_missing_sections(self):
        bundle = RecordBundle.from_dict({})

        assert bundle.transactions == []
        assert bundle.price_history == []


# =============================================================================
# CLI
# =============================================================================

class TestCli:

    def test_run_prints_result(self, tmp_path, capsys):
        path = tmp_path / "records.json"
        path.write_text(json.dumps({}), encoding="utf-8")

        code = main(["run", str(path), "--now", "2026-03-18T12:00:00"])

        out = json.loads(capsys.readouterr().out)
        assert code == 0
        assert [a["id"] for a in out["alerts"]] == [
            "phys_alert_critical", "econ_no_records", "mental_no_records",
        ]
        assert out["generated_at"] == "2026-03-18T12:00:00"

    def test_invalid_now(self, tmp_path):
        path = tmp_path / "records.json"
        path.write_text("{}", encoding="utf-8")

        assert main(["run", str(path), "--now", "someday"]) == 2

    def test_records_file_must_hold_object(self, tmp_path):
        path = tmp_path / "records.json"
        path.write_text("[1, 2]", encoding="utf-8")

        assert main(["run", str(path)]) == 2

    def test_bad_entries_do_not_abort_run(self, tmp_path, capsys):
        path = tmp_path / "records.json"
        path.write_text(json.dumps({"transactions": [1, None], "mental_records": 7}), encoding="utf-8")

        code = main(["run", str(path), "--now", "2026-03-18T12:00:00+00:00"])

        out = json.loads(capsys.readouterr().out)
        assert code == 0
        assert out["generated_at"] == "2026-03-18T12:00:00+00:00"

    def test_missing_file(self, tmp_path):
        assert main(["run", str(tmp_path / "nope.json")]) == 2
