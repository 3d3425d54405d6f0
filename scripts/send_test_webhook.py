#!/usr/bin/env python3
"""
Dev helper: send a test inbound-email webhook to a running mail router.

Builds an Inbound Parse style payload (multipart by default, JSON with
--json), sends it with the relay client's User-Agent, and prints whatever the
router relays back from the backend.

Usage
-----
# Basic: multipart payload to the lead-extraction address on localhost:3000
python scripts/send_test_webhook.py

# Another recipient
python scripts/send_test_webhook.py --to owlhome@aiaparse.indiveloper.com

# Attach a file
python scripts/send_test_webhook.py --file path/to/lead.csv

# Send JSON instead of multipart
python scripts/send_test_webhook.py --json

# Show the live route table instead of sending an email
python scripts/send_test_webhook.py --list-routes

# Target a deployed router
python scripts/send_test_webhook.py --url https://router.example.com

Environment / .env
------------------
PORT   Used for the default --url (default: 3000).
"""

import argparse
import json
import os
import sys
import textwrap
from pathlib import Path

import httpx
from dotenv import load_dotenv

RELAY_USER_AGENT = "Sendlib/1.0"
DEFAULT_RECIPIENT = "test@aiaparse.indiveloper.com"


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------

def _build_fields(from_email: str, to_address: str, subject: str, text: str) -> dict:
    """Text fields of an inbound email, named the way Inbound Parse names them."""
    return {
        "from": from_email,
        "to": to_address,
        "subject": subject,
        "text": text,
        "envelope": json.dumps({"to": [to_address], "from": from_email}),
    }


def _detect_content_type(filename: str) -> str:
    ext = Path(filename).suffix.lower()
    return {
        ".csv": "text/csv",
        ".pdf": "application/pdf",
        ".txt": "text/plain",
        ".json": "application/json",
    }.get(ext, "application/octet-stream")


# ---------------------------------------------------------------------------
# Pretty printer
# ---------------------------------------------------------------------------

def _print_response(response: httpx.Response) -> None:
    status = response.status_code
    symbol = "OK" if 200 <= status < 300 else "FAIL"
    print(f"\n[{symbol}] HTTP {status}")
    try:
        print(json.dumps(response.json(), indent=2))
    except ValueError:
        print(response.text)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main() -> int:
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")

    parser = argparse.ArgumentParser(
        prog="send_test_webhook.py",
        description="Send a test inbound-email webhook to the mail router.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            Examples:
              python scripts/send_test_webhook.py
              python scripts/send_test_webhook.py --to sclead@aiaparse.indiveloper.com
              python scripts/send_test_webhook.py --file lead.csv --json
              python scripts/send_test_webhook.py --list-routes
        """),
    )
    parser.add_argument(
        "--url",
        default=f"http://localhost:{os.getenv('PORT', '3000')}",
        help="Router base URL (default: http://localhost:$PORT)",
    )
    parser.add_argument(
        "--to",
        dest="to_address",
        default=DEFAULT_RECIPIENT,
        help=f"Recipient address used for routing (default: {DEFAULT_RECIPIENT})",
    )
    parser.add_argument(
        "--from",
        dest="from_email",
        default="sender@example.com",
        help="Sender address (default: sender@example.com)",
    )
    parser.add_argument("--subject", default="Test inbound email")
    parser.add_argument("--text", default="This is a test email body.")
    parser.add_argument(
        "--file",
        default=None,
        metavar="PATH",
        help="Attach a file (multipart only).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Send a JSON body instead of multipart/form-data.",
    )
    parser.add_argument(
        "--user-agent",
        default=RELAY_USER_AGENT,
        help=f"User-Agent to send (default: {RELAY_USER_AGENT}). Anything else is rejected.",
    )
    parser.add_argument(
        "--list-routes",
        action="store_true",
        help="Fetch /list-routes instead of sending an email.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the payload without sending it.",
    )

    args = parser.parse_args()
    base_url = args.url.rstrip("/")

    if args.list_routes:
        try:
            _print_response(httpx.get(f"{base_url}/list-routes", timeout=30))
        except httpx.ConnectError:
            print(f"\nERROR: Could not connect to {base_url}", file=sys.stderr)
            return 1
        return 0

    fields = _build_fields(args.from_email, args.to_address, args.subject, args.text)

    files = None
    if args.file:
        if args.json:
            print("ERROR: --file cannot be combined with --json", file=sys.stderr)
            return 1
        file_path = Path(args.file)
        if not file_path.exists():
            print(f"ERROR: File not found: {file_path}", file=sys.stderr)
            return 1
        files = {
            "attachment1": (
                file_path.name,
                file_path.read_bytes(),
                _detect_content_type(file_path.name),
            )
        }

    print(f"Endpoint  : {base_url}/")
    print(f"Encoding  : {'json' if args.json else 'multipart/form-data'}")
    print(f"From      : {args.from_email}")
    print(f"To        : {args.to_address}")
    print(f"Subject   : {args.subject}")
    if files:
        print(f"Attachment: {args.file}")

    if args.dry_run:
        print("\n[DRY RUN] Fields:")
        print(json.dumps(fields, indent=2))
        return 0

    headers = {"User-Agent": args.user_agent}
    try:
        if args.json:
            response = httpx.post(f"{base_url}/", json=fields, headers=headers, timeout=30)
        else:
            response = httpx.post(
                f"{base_url}/", data=fields, files=files, headers=headers, timeout=30,
            )
    except httpx.ConnectError:
        print(
            f"\nERROR: Could not connect to {base_url}\n"
            "Is the router running? Start it with:\n"
            "  FUNCTIONS_DOMAIN=<functions host> mailrouter",
            file=sys.stderr,
        )
        return 1

    _print_response(response)
    return 0 if 200 <= response.status_code < 300 else 1


if __name__ == "__main__":
    sys.exit(main())
