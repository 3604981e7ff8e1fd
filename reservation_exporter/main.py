"""Partner Reservation Exporter - Main Entry Point."""
import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

import structlog

from .activity_log import ActivityLog, ActivityLogProcessor
from .browser_automation import ReservationExportAutomation
from .config_loader import build_scraper_config, load_environment, load_settings
from .exceptions import ExporterError
from .mailbox import MailboxSession


def run_web_server(host: str = "0.0.0.0", port: int = 3000):
    """Start the dashboard and HTTP API server."""
    import uvicorn
    from .web.app import app

    print(f"\n{'=' * 60}")
    print("RESERVATION EXPORTER - DASHBOARD")
    print(f"{'=' * 60}")
    print(f"Starting web server on http://{host}:{port}")
    print(f"{'=' * 60}\n")

    uvicorn.run(app, host=host, port=port, log_level="info")


def configure_logging(
    verbose: bool = False, activity_log: Optional[ActivityLog] = None
) -> None:
    """Configure structured logging.

    Args:
        verbose: Enable debug level logging if True.
        activity_log: If given, INFO and above events are mirrored into it
            for the dashboard.
    """
    log_level = logging.DEBUG if verbose else logging.INFO

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if activity_log is not None:
        processors.append(ActivityLogProcessor(activity_log))
    processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=log_level,
        stream=sys.stdout,
    )


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        description="Partner Reservation Exporter - card and payment details to Excel",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Export the reservations listed in a sheet
  python -m reservation_exporter.main -i input/reservations.xlsx

  # Run with visible browser for debugging
  python -m reservation_exporter.main -i input/reservations.xlsx --visible

  # One property only, with virtual-card balances
  python -m reservation_exporter.main -i input/reservations.xlsx --property 12345 --card-activity

  # Start the dashboard and HTTP API
  python -m reservation_exporter.main --web
        """,
    )
    parser.add_argument(
        "--input",
        "-i",
        type=Path,
        help="Path to the reservations sheet, xlsx or csv (required for CLI mode)",
    )
    parser.add_argument(
        "--output",
        "-o",
        default="./output",
        type=Path,
        help="Output directory for the export (default: ./output)",
    )
    parser.add_argument(
        "--settings",
        "-s",
        type=Path,
        default=Path("config/settings.yaml"),
        help="Path to settings.yaml configuration file",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        help="Path to a .env file with portal and Gmail credentials",
    )
    parser.add_argument(
        "--property",
        help="Process only the property with this name or id",
    )
    parser.add_argument(
        "--visible",
        action="store_true",
        help="Run browser with visible window (for debugging)",
    )
    parser.add_argument(
        "--card-activity",
        action="store_true",
        help="Also read each virtual card's remaining balance (slower - opens a tab per reservation)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--web",
        action="store_true",
        help="Start the dashboard server instead of CLI",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=3000,
        help="Port for web server (default: 3000)",
    )
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Host for web server (default: 0.0.0.0)",
    )

    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    """Run the reservation export.

    Returns:
        Exit code: 0 on success, 2 missing file or input, 3 validation
        error, 4 unexpected error, 5 scraping failure, 130 interrupted.
    """
    args = parse_args(argv)

    # Web UI mode
    if args.web:
        run_web_server(host=args.host, port=args.port)
        return 0

    # CLI mode requires input file
    if not args.input:
        print("Error: --input/-i is required for CLI mode", file=sys.stderr)
        print("Use --web to start the dashboard instead", file=sys.stderr)
        return 2

    env = load_environment(args.env_file)
    activity_log = ActivityLog(Path(env["activity_log_path"]))
    activity_log.ensure_exists()
    configure_logging(args.verbose, activity_log)

    logger = structlog.get_logger()

    if not env["portal_email"] or not env["portal_password"]:
        print("Error: PORTAL_EMAIL and PORTAL_PASSWORD must be set", file=sys.stderr)
        return 2

    try:
        settings = load_settings(args.settings if args.settings.exists() else None)
        config = build_scraper_config(
            settings,
            input_file=args.input,
            output_dir=args.output,
            headless=False if args.visible else None,
            capture_card_activity=True if args.card_activity else None,
        )

        mailbox = MailboxSession.from_environment(env)
        if not mailbox.load_credentials():
            print(
                "Error: no Gmail token found; authorize via the dashboard's /auth route first",
                file=sys.stderr,
            )
            return 2

        logger.info(
            "starting_export",
            input_file=str(config.input_file),
            output_dir=str(config.output_dir),
            headless=config.headless,
            card_activity=config.capture_card_activity,
        )

        print(f"\n{'=' * 60}")
        print("PARTNER RESERVATION EXPORT")
        print(f"{'=' * 60}")
        print(f"Input: {config.input_file}")
        print(f"Card activity: {'ENABLED' if config.capture_card_activity else 'DISABLED'}")
        print(f"{'=' * 60}\n")

        automation = ReservationExportAutomation(
            config,
            email=env["portal_email"],
            password=env["portal_password"],
            code_provider=mailbox.fetch_verification_code,
            property_filter=args.property,
        )
        result = automation.run_export()

        elapsed = result.elapsed_seconds
        elapsed_str = f"{int(elapsed // 60)}m {int(elapsed % 60)}s"
        print(f"\n{'=' * 60}")
        print("EXPORT COMPLETE")
        print(f"{'=' * 60}")
        print(f"Duration: {elapsed_str}")
        print(f"Properties: {result.properties_processed}")
        print(f"Reservations: {len(result.records)}")
        if result.output_path:
            print(f"Results saved to: {result.output_path}")
        else:
            print("No reservations found - nothing exported.")
        print(f"{'=' * 60}\n")

        return 0

    except FileNotFoundError as e:
        logger.error("file_not_found", error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 2

    except ValueError as e:
        logger.error("validation_error", error=str(e))
        print(f"Validation Error: {e}", file=sys.stderr)
        return 3

    except ExporterError as e:
        logger.error("export_failed", error=str(e), error_type=type(e).__name__)
        print(f"Export failed: {e}", file=sys.stderr)
        return 5

    except KeyboardInterrupt:
        logger.info("interrupted_by_user")
        print("\nExport interrupted by user.", file=sys.stderr)
        return 130

    except Exception as e:
        logger.exception("unexpected_error", error=str(e))
        print(f"Unexpected Error: {e}", file=sys.stderr)
        return 4


if __name__ == "__main__":
    sys.exit(main())
