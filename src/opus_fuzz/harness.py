"""Harness driver — configurations, then setting mutations, then round trips."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from pathlib import Path

from tqdm import tqdm

from opus_fuzz.audio import write_wav_atomic
from opus_fuzz.codecs.base import CodecBackend
from opus_fuzz.report import (
    HarnessFailure,
    HistoryEntry,
    Reporter,
    write_config,
    write_report,
)
from opus_fuzz.rng import FastRand
from opus_fuzz.roundtrip import run_round_trip
from opus_fuzz.sampler import (
    EncoderSetting,
    FuzzConfiguration,
    draw_configuration,
    draw_settings,
    is_legal,
)
from opus_fuzz.session import CodecSession
from opus_fuzz.sweep import SWEEP_AMPLITUDE, SWEEP_DURATION_S, SignalBuffer, generate_sweep
from opus_fuzz.validate import RMS_THRESHOLD, check_rms

logger = logging.getLogger(__name__)

# Upper bound on draws per requested configuration; skipped draws are retried.
MAX_DRAWS_PER_CONFIGURATION = 100

SWEEP_BIT_DEPTH = 16


@dataclass
class HarnessConfig:
    num_configurations: int = 5
    num_setting_changes: int = 40
    sweep_duration: float = SWEEP_DURATION_S
    sweep_amplitude: float = SWEEP_AMPLITUDE
    rms_check: bool = False
    rms_threshold: float = RMS_THRESHOLD
    float_api: bool = True
    fail_on_mismatch: bool = False
    library: str | None = None
    report_dir: str | None = None
    artifacts_dir: str | None = None
    verbose: bool = False


class Harness:
    def __init__(self, config: HarnessConfig, backend: CodecBackend, seed: int):
        self.config = config
        self.backend = backend
        self.seed = seed
        self.rng = FastRand(seed)
        self.reporter = Reporter(seed)
        self.history: list[HistoryEntry] = []
        self.configurations_tested = 0
        self.configurations_skipped = 0

    def run(self) -> dict:
        """Run the whole sampled space. Returns summary dict."""
        check = self.rng.next() % 65535
        logger.info("Random seed: %d (%04X)", self.seed, check)

        float_api = self.config.float_api and self.backend.float_api
        if self.config.float_api and not self.backend.float_api:
            logger.info("%s has no float API, using integer samples only", self.backend.name)
        logger.info(
            "Testing various Opus/OpusCustom combinations%s across %d encoder(s) "
            "and %d setting change(s) each.",
            " with RMS validation" if self.config.rms_check else "",
            self.config.num_configurations, self.config.num_setting_changes,
        )

        error = None
        try:
            self._run_configurations(float_api)
        except HarnessFailure as e:
            error = f"{e} ({e.entry.diagnostic})"

        summary = self._summary(error)
        self._write_outputs(summary)
        return summary

    def _run_configurations(self, float_api: bool) -> None:
        wanted = self.config.num_configurations
        max_draws = wanted * MAX_DRAWS_PER_CONFIGURATION
        draws = 0
        with tqdm(total=wanted, desc="Fuzzing configurations", unit="config") as pbar:
            while self.configurations_tested < wanted and draws < max_draws:
                draws += 1
                configuration = draw_configuration(self.rng)
                if configuration is None or not is_legal(configuration):
                    self.configurations_skipped += 1
                    continue
                self._run_configuration(configuration, float_api)
                self.configurations_tested += 1
                pbar.update(1)

        if self.configurations_tested < wanted:
            logger.warning(
                "Only %d of %d configurations accepted after %d draws",
                self.configurations_tested, wanted, draws,
            )

    def _run_configuration(self, configuration: FuzzConfiguration, float_api: bool) -> None:
        """Create handles once, then apply and round-trip every setting."""
        signals: dict[bool, SignalBuffer] = {}
        settings = draw_settings(
            self.rng,
            self.config.num_setting_changes,
            float_api=float_api,
            matched_datatypes=self.config.rms_check,
        )

        with CodecSession(self.backend, configuration, self.reporter) as session:
            for index, setting in enumerate(settings):
                session.apply(setting)
                logger.debug("test: %s, %s", configuration.describe(), setting.describe())

                if setting.float_encode not in signals:
                    signals[setting.float_encode] = self._generate(configuration, setting)
                signal = signals[setting.float_encode]

                entry = HistoryEntry(configuration=configuration.to_dict(), setting=setting.to_dict())
                self.history.append(entry)
                try:
                    result = run_round_trip(
                        session, signal, setting, validate_rms=self.config.rms_check,
                    )
                except HarnessFailure:
                    entry.outcome = "fail"
                    self._save_artifacts(index, configuration, signal)
                    raise

                entry.frames = result.frames
                entry.encoded_bytes = result.encoded_bytes
                entry.rms = result.rms
                if result.rms is not None and not check_rms(result.rms, self.config.rms_threshold):
                    entry.outcome = "mismatch"
                    self.reporter.mismatch(
                        result.rms, self.config.rms_threshold, configuration, setting,
                    )
                    self._save_artifacts(index, configuration, signal, result.decoded)

    def _generate(self, configuration: FuzzConfiguration, setting: EncoderSetting) -> SignalBuffer:
        signal, _ = generate_sweep(
            self.config.sweep_amplitude,
            SWEEP_BIT_DEPTH,
            configuration.sample_rate,
            configuration.channels,
            setting.float_encode,
            self.config.sweep_duration,
        )
        if signal is None:
            self.reporter.fail(
                "generate", "could not allocate sweep buffer",
                configuration=configuration, setting=setting,
            )
        return signal

    def _save_artifacts(self, index, configuration, signal, decoded=None) -> None:
        """Write the input (and reconstruction, if any) of a failing round trip."""
        if not self.config.artifacts_dir:
            return
        case_dir = (
            Path(self.config.artifacts_dir)
            / f"seed{self.seed}_config{self.configurations_tested:02d}_setting{index:02d}"
        )
        write_wav_atomic(case_dir / "input.wav", signal.data, signal.sample_rate, signal.channels)
        if decoded is not None:
            write_wav_atomic(case_dir / "decoded.wav", decoded, signal.sample_rate, signal.channels)
        logger.info("Saved failing case audio to %s", case_dir)

    def _summary(self, error: str | None) -> dict:
        summary = {
            "seed": self.seed,
            "backend": self.backend.name,
            "configurations_tested": self.configurations_tested,
            "configurations_skipped": self.configurations_skipped,
            "round_trips": sum(1 for h in self.history if h.outcome != "fail"),
            "failures": len(self.reporter.failures),
            "mismatches": len(self.reporter.mismatches),
        }
        if error:
            summary["error"] = error
        return summary

    def _write_outputs(self, summary: dict) -> None:
        if not self.config.report_dir:
            return
        report_dir = Path(self.config.report_dir)
        write_report(report_dir / "report.json", summary, self.reporter, self.history)
        effective = asdict(self.config)
        effective["seed"] = self.seed
        write_config(report_dir / "config.yaml", effective)
        logger.info("Wrote report to %s", report_dir)
