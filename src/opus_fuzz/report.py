"""Failure recording and report files — report.json, config.yaml."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import NoReturn

import yaml

logger = logging.getLogger(__name__)


@dataclass
class FailureEntry:
    stage: str  # "create_mode", "configure", "encode", "decode", ...
    error: str
    configuration: dict = field(default_factory=dict)
    setting: dict | None = None
    diagnostic: str = ""


@dataclass
class MismatchEntry:
    rms: float
    threshold: float
    configuration: dict = field(default_factory=dict)
    setting: dict = field(default_factory=dict)
    diagnostic: str = ""


@dataclass
class HistoryEntry:
    configuration: dict
    setting: dict
    frames: int = 0
    encoded_bytes: int = 0
    rms: float | None = None
    outcome: str = "pass"  # "pass", "mismatch", "fail"


class HarnessFailure(Exception):
    """A hard failure: codec contract violated, the whole run stops."""

    def __init__(self, entry: FailureEntry):
        super().__init__(f"{entry.stage}: {entry.error}")
        self.entry = entry


class Reporter:
    """Collects hard failures and soft RMS mismatches for one run."""

    def __init__(self, seed: int | None = None):
        self.seed = seed
        self.failures: list[FailureEntry] = []
        self.mismatches: list[MismatchEntry] = []

    @property
    def failed(self) -> bool:
        return bool(self.failures)

    def _diagnostic(self, configuration, setting) -> str:
        parts = []
        if configuration is not None:
            parts.append(configuration.describe())
        if setting is not None:
            parts.append(setting.describe())
        if self.seed is not None:
            parts.append(f"seed: {self.seed}")
        return ", ".join(parts)

    def fail(self, stage: str, error: str, configuration=None, setting=None) -> NoReturn:
        """Record a hard failure and abort the run by raising HarnessFailure."""
        entry = FailureEntry(
            stage=stage,
            error=error,
            configuration=configuration.to_dict() if configuration is not None else {},
            setting=setting.to_dict() if setting is not None else None,
            diagnostic=self._diagnostic(configuration, setting),
        )
        self.failures.append(entry)
        logger.error("%s failed: %s (%s)", stage, error, entry.diagnostic)
        raise HarnessFailure(entry)

    def mismatch(self, rms: float, threshold: float, configuration, setting) -> MismatchEntry:
        """Record an RMS deviation beyond tolerance. Never aborts."""
        entry = MismatchEntry(
            rms=rms,
            threshold=threshold,
            configuration=configuration.to_dict(),
            setting=setting.to_dict(),
            diagnostic=self._diagnostic(configuration, setting),
        )
        self.mismatches.append(entry)
        logger.warning(
            "Encoder doesn't match decoder: RMS mismatch %f > %f (%s)",
            rms, threshold, entry.diagnostic,
        )
        return entry


def write_report(
    path: Path,
    summary: dict,
    reporter: Reporter,
    history: list[HistoryEntry],
) -> None:
    """Write report.json with the run summary, per-setting history and findings."""
    report = {
        "summary": summary,
        "failures": [asdict(e) for e in reporter.failures],
        "mismatches": [asdict(e) for e in reporter.mismatches],
        "history": [asdict(h) for h in history],
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(report, f, indent=2)


def write_config(path: Path, effective_config: dict) -> None:
    """Write effective configuration as config.yaml."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.dump(effective_config, f, default_flow_style=False, sort_keys=True)
