"""Command-line runner for one-off report jobs. Use --help for usage."""

import argparse
import asyncio
import json
import logging
import os
import sys
from datetime import date
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

from ads_reporting.models import ReportConfiguration, ReportJobSpec
from ads_reporting.service import AdsReportingService
from config.config import load_config
from core.errors.exceptions import AdsSyncError, ConfigurationError
from core.logging.setup import setup_logging
from core.oauth2.models import REPORTING_SLOT, SELLER_DATA_SLOT
from core.utils.json_serializers import json_serializer

# __main__.py is at src/ads_reporting/__main__.py, so root is 3 levels up
PROJECT_ROOT = Path(__file__).parent.parent.parent

REFRESH_TOKEN_ENV_VARS = {
    REPORTING_SLOT: "ADS_REFRESH_TOKEN",
    SELLER_DATA_SLOT: "SELLER_DATA_REFRESH_TOKEN",
}

logger = logging.getLogger(__name__)


def _csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="python -m ads_reporting",
        description="Run advertising report jobs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # List advertising profiles for an account
    python -m ads_reporting profiles --principal acct-1

    # Search term report for one profile
    python -m ads_reporting run-report --principal acct-1 --profile-id 1234567890 \\
        --ad-product SPONSORED_PRODUCTS --report-type spSearchTerm \\
        --columns campaignId,searchTerm,clicks,cost --group-by searchTerm \\
        --start 2024-05-01 --end 2024-05-07

Refresh tokens are read from ADS_REFRESH_TOKEN and SELLER_DATA_REFRESH_TOKEN.
        """,
    )
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-dir",
        type=str,
        default=None,
        help="Log directory path (default: from LOG_DIR env var or ./logs)",
    )
    parser.add_argument(
        "--log-to-stdout",
        action="store_true",
        help="Send all log output to stdout only, skipping file handlers. "
        "Can also be set via LOG_TO_STDOUT environment variable.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    report = subparsers.add_parser("run-report", help="Create, poll and download one report")
    report.add_argument("--principal", required=True, help="Account id the tokens belong to")
    report.add_argument("--profile-id", required=True, help="Advertising profile id")
    report.add_argument("--ad-product", default="SPONSORED_PRODUCTS")
    report.add_argument("--report-type", required=True, help="Report type id, e.g. spSearchTerm")
    report.add_argument("--columns", required=True, type=_csv, help="Comma-separated columns")
    report.add_argument("--group-by", type=_csv, default=[], help="Comma-separated groupBy")
    report.add_argument("--time-unit", choices=["SUMMARY", "DAILY"], default="SUMMARY")
    report.add_argument("--start", required=True, type=date.fromisoformat, help="YYYY-MM-DD")
    report.add_argument("--end", required=True, type=date.fromisoformat, help="YYYY-MM-DD")
    report.add_argument("--name", default=None, help="Report name (default: generated)")
    report.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write decoded rows to this JSON file",
    )

    profiles = subparsers.add_parser("profiles", help="List advertising profiles")
    profiles.add_argument("--principal", required=True, help="Account id the tokens belong to")
    profiles.add_argument("--country", default=None, help="Only print the id for this country code")

    return parser.parse_args(argv)


def refresh_tokens_from_env() -> dict[str, str]:
    tokens = {}
    for slot, env_var in REFRESH_TOKEN_ENV_VARS.items():
        value = os.getenv(env_var)
        if value:
            tokens[slot] = value
    return tokens


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


async def run_report(service: AdsReportingService, args: argparse.Namespace, tokens: dict) -> int:
    spec = ReportJobSpec(
        profile_id=args.profile_id,
        name=args.name,
        start_date=args.start,
        end_date=args.end,
        configuration=ReportConfiguration(
            ad_product=args.ad_product,
            report_type_id=args.report_type,
            columns=args.columns,
            group_by=args.group_by,
            time_unit=args.time_unit,
        ),
    )
    result = await service.run_report_job(args.principal, tokens, spec)

    if result.success and args.output:
        args.output.write_text(json.dumps(result.data, default=json_serializer))
        logger.info(f"Wrote {result.row_count} rows to {args.output}")

    print(json.dumps(result.summary(), indent=2, default=json_serializer))
    return 0 if result.success else 1


async def show_profiles(service: AdsReportingService, args: argparse.Namespace, tokens: dict) -> int:
    profiles = await service.list_profiles(args.principal, tokens)
    if args.country:
        profile_id = service.client.find_profile_id(profiles, args.country)
        if profile_id is None:
            print(f"No profile for country {args.country.upper()}", file=sys.stderr)
            return 1
        print(profile_id)
        return 0

    print(json.dumps(profiles, indent=2, default=json_serializer))
    return 0


async def _run(args: argparse.Namespace) -> int:
    config = load_config(config_path=args.config)
    tokens = refresh_tokens_from_env()
    if REPORTING_SLOT not in tokens:
        raise ConfigurationError(f"{REFRESH_TOKEN_ENV_VARS[REPORTING_SLOT]} is not set")

    async with AdsReportingService.from_config(config) as service:
        if args.command == "run-report":
            return await run_report(service, args, tokens)
        return await show_profiles(service, args, tokens)


def main(argv: list[str] | None = None) -> int:
    load_dotenv(PROJECT_ROOT / ".env")
    args = parse_args(argv)

    setup_logging(
        name="ads_reporting",
        log_dir=Path(args.log_dir or os.getenv("LOG_DIR") or "logs"),
        json_format=_env_flag("JSON_LOGS", default="true"),
        console_level=getattr(logging, args.log_level),
        log_to_stdout=args.log_to_stdout or _env_flag("LOG_TO_STDOUT"),
    )

    try:
        return asyncio.run(_run(args))
    except (FileNotFoundError, ConfigurationError, ValidationError) as e:
        logger.error("Configuration error", extra={"error_message": str(e)[:500]})
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except AdsSyncError as e:
        logger.error("Request failed", extra={"error_category": e.category.value})
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received, shutting down...")
        return 130


if __name__ == "__main__":
    sys.exit(main())
