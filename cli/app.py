"""Command line driver: run the parameter sweep and report the best battery setup.

Usage:
    python -m cli.app [--config PATH] [--plot PATH] [--skip-load-shift]

The YAML configuration path defaults to $BATSIM_CONFIG (which may be set in a
.env file) and falls back to ./config.yaml.
"""

import argparse
import json
import os
import sys
from pathlib import Path
import holidays
import yaml
from dotenv import load_dotenv
from loguru import logger

from cli.log_config import setup_logging
from core.batsim import (
    ConsumptionSettings,
    ConsumptionTable,
    LoadShiftEstimator,
    ParameterSweep,
    PriceSettings,
    PriceTable,
    StorageSettings,
    SweepSettings,
    TraceRecorder,
)
from core.batsim.exceptions import (
    ConsumptionDataUnavailableError,
    PriceDataUnavailableError,
    SystemConfigurationError,
)

CONFIG_ENV = "BATSIM_CONFIG"
DEFAULT_CONFIG = "config.yaml"


def load_options(config_path: str | Path) -> dict:
    """Load options from a YAML file, using its options section when present."""
    config_path = Path(config_path)
    if not config_path.exists():
        logger.warning(f"Config file {config_path} not found, using defaults")
        return {}

    try:
        with open(config_path) as f:
            config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise SystemConfigurationError(
            component="config", message=f"Invalid YAML in {config_path}: {e!s}"
        ) from e

    if not isinstance(config, dict):
        raise SystemConfigurationError(
            component="config", message=f"{config_path} must contain a mapping of options"
        )

    if "options" in config:
        logger.info(f"Loaded options from {config_path} (options section)")
        options = config["options"] or {}
        if not isinstance(options, dict):
            raise SystemConfigurationError(
                component="config", message=f"options in {config_path} must be a mapping"
            )
        return options

    logger.info(f"Loaded options from {config_path}")
    return config


def load_consumption(
    settings: ConsumptionSettings, price_table: PriceTable
) -> ConsumptionTable:
    """Load the configured profiles with the holidays of the simulated years."""
    holiday_dates = ()
    if settings.holiday_country:
        price_range = price_table.get_range()
        years = range(price_range.start.year, price_range.end.year + 1)
        try:
            holiday_dates = holidays.country_holidays(settings.holiday_country, years=years)
        except NotImplementedError as e:
            raise SystemConfigurationError(
                component="consumption",
                message=f"Unknown holiday country '{settings.holiday_country}'",
            ) from e

    paths = [Path(settings.profiles_dir) / profile for profile in settings.profiles]
    return ConsumptionTable.from_profiles(
        paths, holiday_dates=holiday_dates, tz=price_table.timezone
    )


def run(options: dict, plot_path: str | None = None, load_shift: bool = True) -> dict:
    """Run the full simulation for the given options.

    Returns:
        Summary with the best sweep point and the load-shift estimate
    """
    price_settings = PriceSettings().from_config(options)
    consumption_settings = ConsumptionSettings().from_config(options)
    storage_settings = StorageSettings().from_config(options)
    sweep_settings = SweepSettings().from_config(options)

    price_table = PriceTable.from_csv(
        price_settings.prices_csv,
        surcharge_per_kwh=price_settings.surcharge_per_kwh,
        tz=price_settings.zone_info(),
    )
    consumption_table = load_consumption(consumption_settings, price_table)

    logger.info(f"Average price: {price_table.get_average_price():.4f}")
    logger.info("Starting battery simulation...")

    sweep = ParameterSweep(
        price_table,
        consumption_table,
        sweep_settings,
        storage_settings=storage_settings,
        fixed_price_per_kwh=price_settings.fixed_price_per_kwh,
    )
    outcome = sweep.run()
    best = outcome.best.to_dict()
    logger.info(f"BEST RESULT: {json.dumps(best)}")
    savings = outcome.best.result.savings
    logger.info(f"Savings against the fixed price: {savings:.2f}")

    summary = {
        "best": best,
        "savings": savings,
        "evaluated": len(outcome.points),
        "loadShiftPrice": None,
    }

    if plot_path:
        recorder = TraceRecorder()
        sweep.replay(outcome.best, recorder)
        recorder.write_csv(plot_path)
        logger.info(f"All values of the best result written to {plot_path}")

    if load_shift:
        shifted = LoadShiftEstimator(price_table, consumption_table).estimate()
        logger.info(f"Price if consumption moves to the best price periods: {shifted:.2f}")
        summary["loadShiftPrice"] = shifted

    return summary


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="batsim", description="Simulate a home battery against dynamic prices"
    )
    parser.add_argument("--config", help=f"YAML config file (default: ${CONFIG_ENV})")
    parser.add_argument("--plot", metavar="PATH", help="Write the hourly trace of the best run")
    parser.add_argument(
        "--skip-load-shift", action="store_true", help="Skip the load-shift estimate"
    )
    parser.add_argument("--log-level", help="Log level (default: $LOG_LEVEL or INFO)")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    # Load environment variables
    load_dotenv()
    setup_logging(args.log_level or os.environ.get("LOG_LEVEL", "INFO"))

    config_path = args.config or os.environ.get(CONFIG_ENV, DEFAULT_CONFIG)
    try:
        options = load_options(config_path)
        run(options, plot_path=args.plot, load_shift=not args.skip_load_shift)
    except (
        SystemConfigurationError,
        PriceDataUnavailableError,
        ConsumptionDataUnavailableError,
    ) as e:
        logger.error(f"Simulation failed: {e!s}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
