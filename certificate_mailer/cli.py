"""
Command-line entry point.

    certificate-mailer run [--dry-run | --test] [--input PATH] [--template PATH]
    certificate-mailer preview [--name NAME] [--event EVENT]
    certificate-mailer verify CERTIFICATE_ID
    certificate-mailer check-file PATH
    certificate-mailer logs
"""

import argparse
import logging
import os
import sys
from datetime import datetime
from typing import List, Optional

from .config import BatchConfig, DeliveryMode, load_config
from .errors import CertificateMailerError
from .excel_reader import validate_file_structure
from .ledger import Ledger, VerificationStore
from .pipeline import CertificatePipeline
from .records import BatchResult


def configure_logging(log_dir: str, level: int = logging.INFO) -> None:
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, f"app-{datetime.now().strftime('%Y-%m-%d')}.log")
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(sys.stdout)
        ],
        force=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="certificate-mailer",
        description="Generate participation certificates and deliver them by email",
    )
    parser.add_argument("--env-file", help="Path to a .env file (default: ./.env)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Process the participant file and send certificates")
    mode = run.add_mutually_exclusive_group()
    mode.add_argument("--dry-run", action="store_true", help="Render and record everything, send nothing")
    mode.add_argument("--test", action="store_true", help="Send every certificate to ADMIN_EMAIL")
    run.add_argument("--input", help="Participant file (.xlsx, .xls or .csv)")
    run.add_argument("--template", help="Certificate template image")

    preview = subparsers.add_parser("preview", help="Render a sample certificate with the current layout")
    preview.add_argument("--name", default="John Smith", help="Name to print (default: John Smith)")
    preview.add_argument("--event", help="Event to print (default: EVENT_NAME)")

    verify = subparsers.add_parser("verify", help="Look up a certificate by its ID")
    verify.add_argument("certificate_id")

    check = subparsers.add_parser("check-file", help="Check a participant file's structure")
    check.add_argument("path")

    subparsers.add_parser("logs", help="Show the most recent delivery log")
    return parser


def _config_from_args(args: argparse.Namespace) -> BatchConfig:
    overrides = {}
    if getattr(args, "dry_run", False):
        overrides["mode"] = DeliveryMode.DRY_RUN
    elif getattr(args, "test", False):
        overrides["mode"] = DeliveryMode.TEST
    if getattr(args, "input", None):
        overrides["input_path"] = args.input
    if getattr(args, "template", None):
        overrides["template_path"] = args.template
    return load_config(dotenv_path=args.env_file, **overrides)


def print_summary(result: BatchResult) -> None:
    print("\n" + "=" * 60)
    print("CERTIFICATE DELIVERY SUMMARY")
    print("=" * 60)
    print(f"Total participants: {result.total}")
    print(f"Successful: {result.success}")
    print(f"Failed: {result.failed}")

    if result.errors:
        print("\nFailed participants:")
        for error in result.errors:
            print(f"  {error['participant']}: {error['error']}")
    print("=" * 60)


def _run(config: BatchConfig) -> int:
    pipeline = CertificatePipeline()
    result = pipeline.run_batch(config)
    print_summary(result)
    return 0


def _preview(config: BatchConfig, args: argparse.Namespace) -> int:
    path = CertificatePipeline().render_preview(config, name=args.name, event=args.event)
    print(f"Preview written to {path}")
    return 0


def _verify(config: BatchConfig, certificate_id: str) -> int:
    record = VerificationStore(config.verification_store_path).get(certificate_id)
    if record is None:
        print(f"Certificate {certificate_id} was not found")
        return 1
    print(f"Certificate ID: {record.certificate_id}")
    print(f"Participant:    {record.name}")
    print(f"Event:          {record.event}")
    print(f"Issued at:      {record.issued_at}")
    print(f"Status:         {record.status}")
    return 0


def _check_file(path: str) -> int:
    ok, message = validate_file_structure(path)
    print(message)
    return 0 if ok else 1


def _logs(config: BatchConfig) -> int:
    delivery_log = Ledger.latest_delivery_log(config.log_dir)
    if delivery_log is None:
        print("No delivery logs found")
        return 0
    print(f"Delivery log: {delivery_log.path}")
    for entry in delivery_log.read_entries():
        line = f"{entry['Timestamp']}  {entry['Status']:<7}  {entry['CertificateID']}  {entry['Name']} <{entry['Email']}>"
        if entry.get("Error"):
            line += f"  ({entry['Error']})"
        print(line)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main function for the certificate mailer.

    Handles command-line arguments and dispatches to the requested command.
    """
    args = build_parser().parse_args(argv)

    try:
        config = _config_from_args(args)
        configure_logging(config.log_dir)

        if args.command == "run":
            return _run(config)
        if args.command == "preview":
            return _preview(config, args)
        if args.command == "verify":
            return _verify(config, args.certificate_id)
        if args.command == "check-file":
            return _check_file(args.path)
        return _logs(config)
    except CertificateMailerError as e:
        logging.error(f"Certificate mailer failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
