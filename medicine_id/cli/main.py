"""Command-line interface for identifying medicines from photos."""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

from ..errors import MedicineIdError
from ..history.cache import RecentHistoryCache
from ..history.storage import LocalStore
from ..inference_service.client import IdentificationClient
from ..records import MedicineRecord
from ..session import ScanSession

logger = logging.getLogger(__name__)

DISCLAIMER = "Always consult a healthcare professional before taking any medication."


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def format_captured_at(captured_at) -> str:
    if not isinstance(captured_at, (int, float)):
        return "-"
    return datetime.fromtimestamp(captured_at / 1000).strftime("%Y-%m-%d %H:%M")


def format_report(record: MedicineRecord) -> str:
    """Render a record as a plain-text report."""
    lines = [
        f"{record.medicine_name}",
        f"  Generic name:  {record.generic_name}",
        f"  Dosage:        {record.dosage}",
    ]
    if record.has_manufacturer:
        lines.append(f"  Manufacturer:  {record.manufacturer}")
    lines += [
        "",
        "Uses:",
        f"  {record.uses}",
        "Side Effects:",
        f"  {record.side_effects}",
        "Precautions:",
        f"  {record.precautions}",
        "",
        f"Confidence: {record.confidence}",
    ]
    if record.captured_at is not None:
        lines.append(f"Scanned: {format_captured_at(record.captured_at)}")
    lines += ["", DISCLAIMER]
    return "\n".join(lines)


def format_history(entries) -> str:
    if not entries:
        return "No recent scans."
    return "\n".join(
        f"[{i}] {entry.medicine_name} - {entry.dosage} ({format_captured_at(entry.captured_at)})"
        for i, entry in enumerate(entries)
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Identify a medicine from a photo of the pill or its packaging"
    )
    parser.add_argument(
        "--store",
        type=Path,
        default=None,
        help="Path to the local storage file (default: ~/.medicine_id/local_storage.json or MEDICINE_ID_HOME)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    identify = subparsers.add_parser("identify", help="Identify the medicine in an image")
    identify.add_argument("image", type=Path, help="Path to a JPG, PNG, WEBP or HEIC photo")
    identify.add_argument(
        "--service-url",
        type=str,
        default=None,
        help="Inference proxy URL (default: INFERENCE_SERVICE_URL env or http://127.0.0.1:8002)",
    )
    identify.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Request timeout in seconds",
    )

    subparsers.add_parser("history", help="List recent scans")

    show = subparsers.add_parser("show", help="Show a recent scan again")
    show.add_argument("index", type=int, help="Position in the recent scans list")

    return parser


def main(argv=None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        history = RecentHistoryCache(LocalStore(args.store))

        if args.command == "identify":
            client = IdentificationClient(service_url=args.service_url, timeout=args.timeout)
            try:
                session = ScanSession(client, history)
                session.select_file(args.image)
                print("Analyzing...", file=sys.stderr)
                print(format_report(session.analyze()))
            finally:
                client.close()
        elif args.command == "history":
            print(format_history(history.load()))
        elif args.command == "show":
            history.load()
            print(format_report(history.select(args.index)))
    except MedicineIdError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
