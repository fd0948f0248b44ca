"""CLI entry point for opus-fuzz."""

from __future__ import annotations

import logging
import os
import sys

import click
import yaml
from dotenv import load_dotenv

# Load .env before the seed and library lookups read the environment (SEED, OPUS_LIBRARY)
load_dotenv()

from opus_fuzz import __version__
from opus_fuzz.codecs.base import CodecUnavailableError
from opus_fuzz.codecs.libopus import LibopusBackend
from opus_fuzz.harness import Harness, HarnessConfig
from opus_fuzz.rng import SEED_ENV_VAR, resolve_seed
from opus_fuzz.sweep import SWEEP_DURATION_S
from opus_fuzz.validate import RMS_THRESHOLD

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )


def _load_config_file(config_path: str) -> dict:
    """Load YAML config file and return as flat dict."""
    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    # Flatten nested 'rms' key
    flat = {}
    rms = data.pop("rms", {})
    for k, v in rms.items():
        flat[f"rms_{k}"] = v
    flat.update(data)
    return flat


def _pick(cli_value, file_config: dict, key: str, default):
    """An explicit CLI value wins, then the config file, then the default."""
    if cli_value is not None:
        return cli_value
    return file_config.get(key, default)


def _print_summary(result: dict) -> None:
    """Print human-readable summary."""
    if result.get("error"):
        click.echo(f"\nError: {result['error']}", err=True)
        click.echo(f"Reproduce with: opus-fuzz {result['seed']}", err=True)
        return

    click.echo("\nopus-fuzz — Complete")
    click.echo("=" * 40)
    click.echo(f"Seed: {result['seed']}")
    click.echo(f"Backend: {result['backend']}")
    click.echo(f"Configurations tested: {result['configurations_tested']}")
    click.echo(f"Configurations skipped: {result['configurations_skipped']}")
    click.echo(f"Round trips: {result['round_trips']}")
    if result["mismatches"]:
        click.echo(f"RMS mismatches: {result['mismatches']}")
    click.echo("Tests completed successfully.")


# ignore_unknown_options lets a negative SEED such as -5 reach the argument
@click.command(context_settings={"ignore_unknown_options": True})
@click.version_option(version=__version__, prog_name="opus-fuzz")
@click.argument("seed", required=False)
@click.option("--configurations", type=int, default=None,
              help="Number of encoder/decoder configurations to fuzz [default: 5]")
@click.option("--settings", type=int, default=None,
              help="Setting changes per configuration [default: 40]")
@click.option("--duration", type=float, default=None,
              help="Sine sweep duration in seconds [default: 60]")
@click.option("--rms-check", is_flag=True, default=False,
              help="Compare reconstruction against the input (RMS deviation)")
@click.option("--rms-threshold", type=float, default=None,
              help="Maximum RMS deviation before a mismatch is reported [default: 0.1]")
@click.option("--no-float-api", is_flag=True, default=False,
              help="Only use integer samples")
@click.option("--fail-on-mismatch", is_flag=True, default=False,
              help="Exit non-zero when any RMS mismatch was reported")
@click.option("--library", default=None, envvar="OPUS_LIBRARY",
              help="Path to the libopus shared library (also: OPUS_LIBRARY env var)")
@click.option("--report-dir", type=click.Path(), default=None,
              help="Directory for report.json and config.yaml")
@click.option("--artifacts-dir", type=click.Path(), default=None,
              help="Directory for audio of failing round trips")
@click.option("--config", "config_file", type=click.Path(exists=True), default=None,
              help="Path to YAML config file")
@click.option("--verbose", "-v", is_flag=True, default=False,
              help="Verbose logging")
def main(
    seed, configurations, settings, duration, rms_check, rms_threshold,
    no_float_api, fail_on_mismatch, library, report_dir, artifacts_dir,
    config_file, verbose,
):
    """Fuzz libopus encode/decode round trips across standard and custom modes.

    SEED makes a run reproducible; without it the SEED environment variable
    is used, then the clock.
    """
    _setup_logging(verbose)

    file_config = {}
    if config_file:
        file_config = _load_config_file(config_file)

    # CLI values take precedence over config file
    harness_config = HarnessConfig(
        num_configurations=_pick(configurations, file_config, "configurations", 5),
        num_setting_changes=_pick(settings, file_config, "settings", 40),
        sweep_duration=_pick(duration, file_config, "duration", SWEEP_DURATION_S),
        rms_check=rms_check or file_config.get("rms_check", False),
        rms_threshold=_pick(rms_threshold, file_config, "rms_threshold", RMS_THRESHOLD),
        float_api=not (no_float_api or file_config.get("no_float_api", False)),
        fail_on_mismatch=fail_on_mismatch or file_config.get("fail_on_mismatch", False),
        library=library or file_config.get("library"),
        report_dir=report_dir or file_config.get("report_dir"),
        artifacts_dir=artifacts_dir or file_config.get("artifacts_dir"),
        verbose=verbose,
    )

    run_seed, source = resolve_seed(seed)
    if source == "environment":
        click.echo(f"  Random seed set from the environment ({SEED_ENV_VAR}={os.environ[SEED_ENV_VAR]}).", err=True)

    try:
        backend = LibopusBackend(harness_config.library)
    except CodecUnavailableError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not backend.supports_custom:
        click.echo("Error: libopus was built without custom modes (--enable-custom-modes).", err=True)
        sys.exit(1)

    harness = Harness(harness_config, backend, run_seed)
    result = harness.run()
    _print_summary(result)

    if result.get("error"):
        sys.exit(1)
    if harness_config.fail_on_mismatch and result["mismatches"]:
        click.echo(f"Error: {result['mismatches']} RMS mismatch(es) reported", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
