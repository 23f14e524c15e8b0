"""Entry point for running share sessions and host checks from a shell."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
import sys

from dotenv import load_dotenv

# Ensure project root is on sys.path when running as a script
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from sharehandoff.config import Settings
from sharehandoff.descriptor import to_payload
from sharehandoff.host import HostBridge
from sharehandoff.models import LocalAttachment
from sharehandoff.session import ShareSession
from sharehandoff.utils import isoformat_utc

load_dotenv()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Hand shared content over to the host app.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    share = subparsers.add_parser("share", help="Run one share session over local attachments")
    share.add_argument("--url", action="append", default=[], help="Link to share")
    share.add_argument("--text", action="append", default=[], help="Plain text to share")
    share.add_argument("--file", action="append", default=[], type=Path, help="File to share")
    share.add_argument("--caption", help="User text typed into the share sheet")

    subparsers.add_parser("check", help="Take the most recent staged share, if any")
    subparsers.add_parser("pending", help="List staged shares still waiting for the host")

    open_parser = subparsers.add_parser("open", help="Handle a deep-link address as the host")
    open_parser.add_argument("address")

    subparsers.add_parser("images-dir", help="Print the shared images directory")
    return parser


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def build_attachments(args: argparse.Namespace) -> list[LocalAttachment]:
    attachments = [LocalAttachment.for_url(url) for url in args.url]
    attachments.extend(LocalAttachment.for_text(text) for text in args.text)
    for path in args.file:
        if not path.is_file():
            raise SystemExit(f"Not a file: {path}")
        attachments.append(LocalAttachment.for_path(path))
    if not attachments and not args.caption:
        raise SystemExit("Nothing to share: pass --url, --text, --file or --caption.")
    return attachments


def run_share(settings: Settings, args: argparse.Namespace) -> int:
    attachments = build_attachments(args)
    session = ShareSession.from_settings(
        settings, on_complete=lambda: logging.info("Share sheet dismissed")
    )
    outcome = asyncio.run(session.run(attachments, caption=args.caption))

    summary = {
        "mode": outcome.mode,
        "address": outcome.address,
        "descriptor": outcome.descriptor,
        "shared": to_payload(outcome.shared) if outcome.shared is not None else None,
        "errors": [str(error) for error in outcome.errors],
    }
    if outcome.shared is not None:
        summary["shared_at"] = isoformat_utc(outcome.shared.timestamp)
    print(json.dumps(summary, ensure_ascii=False, indent=2))
    return 0 if outcome.triggered and not outcome.errors else 1


def run_open(settings: Settings, address: str) -> int:
    bridge = HostBridge.from_settings(settings)
    bridge.on_data_received(lambda payload: print(json.dumps(payload, ensure_ascii=False)))
    bridge.on_url_received(lambda payload: print(json.dumps(payload, ensure_ascii=False)))
    handled = asyncio.run(bridge.handle_open_url(address))
    if not handled:
        logging.warning("Address %s is not handled by this host", address)
        return 1
    return 0


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    settings = Settings()
    configure_logging(settings.log_level)

    if args.command == "share":
        sys.exit(run_share(settings, args))

    if args.command == "open":
        sys.exit(run_open(settings, args.address))

    bridge = HostBridge.from_settings(settings)
    if args.command == "check":
        print(json.dumps(bridge.check_shared_content(), ensure_ascii=False))
    elif args.command == "pending":
        for name in bridge.consumer.pending():
            print(name)
    elif args.command == "images-dir":
        directory = bridge.get_shared_images_directory()
        if directory is None:
            sys.exit(1)
        print(directory)


if __name__ == "__main__":
    main()
