"""Command line entry point: extract, map and submit auction invoices."""
import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from auction_invoice.config import Settings
from auction_invoice.core.exceptions import AuctionInvoiceError, wrap_exception
from auction_invoice.core.ledger_mapper import bill_to_payload
from auction_invoice.core.models import Attachment, LedgerAuthContext
from auction_invoice.logging_config import setup_logging
from auction_invoice.pipeline import InvoicePipeline
from auction_invoice.services.extraction import InvoiceExtractor, resolve_media_type
from auction_invoice.services.ledger import LedgerClient

logger = logging.getLogger("auction_invoice.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Auction invoice extraction and ledger bill preparation")
    parser.add_argument("--logs", default=None, help="Logs folder (default: LOGS_FOLDER setting, 'logs')")
    parser.add_argument("--log-level", default=None, help="Console log level (default: LOG_LEVEL setting, INFO)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    extract = subparsers.add_parser("extract", help="Extract an invoice image or PDF to canonical JSON")
    extract.add_argument("file", type=Path, help="Invoice image or PDF")
    extract.add_argument("--mime-type", default=None, help="Override the guessed MIME type")

    map_cmd = subparsers.add_parser("map", help="Map an invoice JSON file to a draft ledger bill")
    map_cmd.add_argument("invoice_json", type=Path, help="Invoice JSON (bare or wrapped in InvoiceData)")
    map_cmd.add_argument("--account-code", required=True, help="Ledger expense account code")

    submit = subparsers.add_parser("submit", help="Submit an invoice JSON file as a draft bill")
    submit.add_argument("invoice_json", type=Path, help="Invoice JSON (bare or wrapped in InvoiceData)")
    submit.add_argument("--account-code", required=True, help="Ledger expense account code")
    submit.add_argument("--access-token", required=True, help="Ledger OAuth access token")
    submit.add_argument("--tenant-id", required=True, help="Ledger tenant id")
    submit.add_argument("--attach", type=Path, default=None, help="Original invoice file to attach")
    submit.add_argument("--mime-type", default=None, help="MIME type of the attached file")
    return parser


async def run_extract(settings: Settings, args: argparse.Namespace) -> dict:
    extractor = InvoiceExtractor.from_settings(settings)
    invoice = await extractor.extract(args.file.read_bytes(), args.file.name, args.mime_type)
    return invoice.model_dump(by_alias=True, mode="json")


def run_map(settings: Settings, args: argparse.Namespace) -> dict:
    payload = json.loads(args.invoice_json.read_text(encoding="utf-8"))
    bill = InvoicePipeline.from_settings(settings).prepare_bill(payload, args.account_code)
    return bill_to_payload(bill)


async def run_submit(settings: Settings, args: argparse.Namespace) -> dict:
    payload = json.loads(args.invoice_json.read_text(encoding="utf-8"))
    auth = LedgerAuthContext(access_token=args.access_token, tenant_id=args.tenant_id)
    attachment = None
    if args.attach:
        attachment = Attachment(
            file_name=args.attach.name,
            content=args.attach.read_bytes(),
            mime_type=resolve_media_type(args.attach.name, args.mime_type),
        )

    async with LedgerClient.from_settings(settings) as ledger:
        pipeline = InvoicePipeline.from_settings(settings, ledger=ledger)
        result = await pipeline.submit(payload, args.account_code, auth, attachment)
    return result.model_dump()


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    settings = Settings()
    setup_logging(Path(args.logs or settings.logs_folder), level=args.log_level or settings.log_level)

    try:
        if args.command == "extract":
            output = asyncio.run(run_extract(settings, args))
        elif args.command == "map":
            output = run_map(settings, args)
        else:
            output = asyncio.run(run_submit(settings, args))
    except AuctionInvoiceError as exc:
        error = exc
    except (OSError, json.JSONDecodeError) as exc:
        # Missing, unreadable or malformed input files
        error = wrap_exception(f"cli.{args.command}", exc, {"command": args.command})
    else:
        json.dump(output, sys.stdout, indent=2)
        sys.stdout.write("\n")
        return 0

    attempts = getattr(error, "attempts", None)
    suffix = f" after {attempts} attempt(s)" if attempts else ""
    logger.error(f"{args.command} failed{suffix}: {error.message}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
