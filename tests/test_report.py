"""Tests for report.py — failure recording and report files."""

import json

import pytest
import yaml

from opus_fuzz.report import (
    HarnessFailure,
    HistoryEntry,
    Reporter,
    write_config,
    write_report,
)


class TestReporter:
    def test_fail_raises_and_records(self, custom_config, float_setting):
        reporter = Reporter(seed=1234)
        with pytest.raises(HarnessFailure) as exc_info:
            reporter.fail("encode", "boom", configuration=custom_config, setting=float_setting)
        entry = exc_info.value.entry
        assert str(exc_info.value) == "encode: boom"
        assert reporter.failed
        assert reporter.failures == [entry]
        assert entry.configuration["sample_rate"] == 48000
        assert entry.setting["complexity"] == 10
        assert "custom_encode: 1" in entry.diagnostic
        assert "complexity: 10" in entry.diagnostic
        assert entry.diagnostic.endswith("seed: 1234")

    def test_fail_without_context(self):
        reporter = Reporter()
        with pytest.raises(HarnessFailure) as exc_info:
            reporter.fail("generate", "no memory")
        assert exc_info.value.entry.configuration == {}
        assert exc_info.value.entry.setting is None
        assert exc_info.value.entry.diagnostic == ""

    def test_mismatch_does_not_raise(self, standard_config, int_setting):
        reporter = Reporter(seed=5)
        entry = reporter.mismatch(0.3, 0.1, standard_config, int_setting)
        assert not reporter.failed
        assert reporter.mismatches == [entry]
        assert entry.rms == 0.3
        assert "32000 bps" in entry.diagnostic

    def test_mismatch_is_logged(self, standard_config, int_setting, caplog):
        with caplog.at_level("WARNING", logger="opus_fuzz.report"):
            Reporter().mismatch(0.3, 0.1, standard_config, int_setting)
        assert "Encoder doesn't match decoder" in caplog.text


class TestReportFiles:
    def test_write_report(self, tmp_path, custom_config, float_setting):
        reporter = Reporter(seed=9)
        reporter.mismatch(0.5, 0.1, custom_config, float_setting)
        history = [
            HistoryEntry(
                configuration=custom_config.to_dict(),
                setting=float_setting.to_dict(),
                frames=10, encoded_bytes=40, rms=0.5, outcome="mismatch",
            )
        ]
        path = tmp_path / "out" / "report.json"
        write_report(path, {"seed": 9}, reporter, history)

        with open(path) as f:
            report = json.load(f)
        assert report["summary"] == {"seed": 9}
        assert report["failures"] == []
        assert report["mismatches"][0]["rms"] == 0.5
        assert report["history"][0]["outcome"] == "mismatch"
        assert report["history"][0]["configuration"]["frame_size"] == 480

    def test_write_config(self, tmp_path):
        path = tmp_path / "config.yaml"
        write_config(path, {"seed": 3, "num_configurations": 5, "library": None})
        with open(path) as f:
            loaded = yaml.safe_load(f)
        assert loaded == {"seed": 3, "num_configurations": 5, "library": None}
