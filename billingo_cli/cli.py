"""
Billingo CLI - Command-line interface for the Billingo API v3.

This layer provides the user-facing commands, using the SDK layer for all
API operations. It handles:
- Argument parsing
- JSON payload loading (--file / --data)
- Pretty tables for humans, JSON for piping/automation
- Turning every CLIError into a one-line message and exit code 1
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from dotenv import find_dotenv, load_dotenv

from billingo_cli import __version__
from billingo_cli.config import API_KEY, ConfigStore, mask_secret, normalize_key
from billingo_cli.core.client import CLIError, InputError
from billingo_cli.core.types import PaginatedResponse
from billingo_cli.sdk import DEFAULT_PER_PAGE, DOCUMENT_FILTERS, BillingoClient

logger = logging.getLogger(__name__)

# =============================================================================
# Output Helpers
# =============================================================================


FORMATS = ("json", "pretty")
MAX_COLUMN_WIDTH = 40

# (singular, plural) names used in human-readable messages
RESOURCE_NAMES = {
    "documents": ("document", "documents"),
    "partners": ("partner", "partners"),
    "products": ("product", "products"),
    "bank_accounts": ("bank account", "bank accounts"),
    "document_blocks": ("document block", "document blocks"),
}

# Table columns per resource: (header, dotted path into the item)
LIST_COLUMNS = {
    "documents": [
        ("ID", "id"),
        ("Number", "invoice_number"),
        ("Partner", "partner.name"),
        ("Type", "type"),
        ("Total", "gross_total"),
        ("Currency", "currency"),
        ("Payment", "payment_status"),
    ],
    "partners": [
        ("ID", "id"),
        ("Name", "name"),
        ("Tax Code", "taxcode"),
        ("City", "address.city"),
        ("Emails", "emails"),
    ],
    "products": [
        ("ID", "id"),
        ("Name", "name"),
        ("Net Price", "net_unit_price"),
        ("Currency", "currency"),
        ("Unit", "unit"),
        ("VAT", "vat"),
    ],
    "bank_accounts": [
        ("ID", "id"),
        ("Name", "name"),
        ("Account Number", "account_number"),
        ("Currency", "currency"),
    ],
    "document_blocks": [
        ("ID", "id"),
        ("Name", "name"),
        ("Prefix", "prefix"),
        ("Type", "type"),
    ],
}


def is_tty() -> bool:
    """Check if stdout is a TTY (human) or pipe (machine)."""
    return sys.stdout.isatty()


def json_output(data: Any) -> None:
    """Print JSON output."""
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def error_output(error: CLIError, output_format: str) -> None:
    """Print a one-line error to stderr and exit."""
    if output_format == "json":
        print(json.dumps(error.to_dict(), ensure_ascii=False, default=str), file=sys.stderr)
    else:
        print(f"Error: {error.message}", file=sys.stderr)
    sys.exit(1)


def success_output(data: Any) -> None:
    """Print an API response body unchanged."""
    json_output(data)


def message_output(args: argparse.Namespace, message: str, **extra: Any) -> None:
    """Print a confirmation line (pretty) or a success object (json)."""
    if args.format == "json":
        json_output({"success": True, "message": message, **extra})
    else:
        print(message)


def lookup(item: Any, path: str) -> Any:
    """Resolve a dotted path (e.g. ``partner.name``) in a JSON object."""
    value = item
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def format_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return ", ".join(format_cell(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def table_output(headers: list[str], rows: list[list[str]]) -> None:
    """Print a formatted table for human output."""
    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))
    widths = [min(w, MAX_COLUMN_WIDTH) for w in widths]

    # Header
    header_line = "  ".join(h.ljust(w) for h, w in zip(headers, widths))
    print(header_line)
    print("-" * len(header_line))

    # Rows
    for row in rows:
        print("  ".join(cell[:w].ljust(w) for cell, w in zip(row, widths)).rstrip())


def page_output(args: argparse.Namespace, page: PaginatedResponse) -> None:
    """Print one page of a list endpoint."""
    if args.format == "json":
        json_output(page.to_dict())
        return

    _, plural = RESOURCE_NAMES[args.resource]
    if not page.data:
        print(f"No {plural} found.")
        return

    columns = LIST_COLUMNS[args.resource]
    table_output(
        [header for header, _ in columns],
        [[format_cell(lookup(item, path)) for _, path in columns] for item in page.data],
    )
    print(f"\nPage {page.current_page} of {page.last_page} ({page.total} {plural})")


# =============================================================================
# Input Helpers
# =============================================================================


def load_payload(args: argparse.Namespace) -> Any:
    """Parse the JSON payload given with --file or --data."""
    if getattr(args, "file", None):
        source = "--file"
        try:
            if args.file == "-":
                text = sys.stdin.read()
            else:
                text = Path(args.file).read_text(encoding="utf-8")
        except FileNotFoundError:
            raise InputError(f"File not found: {args.file}") from None
        except OSError as e:
            raise InputError(f"Cannot read {args.file}: {e.strerror or e}") from e
    elif getattr(args, "data", None) is not None:
        source = "--data"
        text = args.data
    else:
        raise InputError("No data provided. Provide data with --file or --data")

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise InputError(f"Invalid JSON in {source}: {e}") from e


def split_emails(value: str | None) -> list[str]:
    if not value:
        return []
    return [email.strip() for email in value.split(",") if email.strip()]


# =============================================================================
# Resource Commands (documents, partners, products, bank accounts, blocks)
# =============================================================================


def _singular(args: argparse.Namespace) -> str:
    return RESOURCE_NAMES[args.resource][0]


def cmd_list(client: BillingoClient, args: argparse.Namespace) -> None:
    """List one page of a resource."""
    operations = getattr(client, args.resource)
    if args.resource == "documents":
        filters = {name: getattr(args, name, None) for name in DOCUMENT_FILTERS}
        page = operations.list_page(args.page, args.per_page, **filters)
    else:
        page = operations.list_page(args.page, args.per_page)
    page_output(args, page)


def cmd_get(client: BillingoClient, args: argparse.Namespace) -> None:
    """Get a resource by ID."""
    success_output(getattr(client, args.resource).get(args.id))


def cmd_create(client: BillingoClient, args: argparse.Namespace) -> None:
    """Create a resource from a JSON payload."""
    data = load_payload(args)
    success_output(getattr(client, args.resource).create(data))


def cmd_update(client: BillingoClient, args: argparse.Namespace) -> None:
    """Replace a resource with a JSON payload."""
    data = load_payload(args)
    success_output(getattr(client, args.resource).update(args.id, data))


def cmd_delete(client: BillingoClient, args: argparse.Namespace) -> None:
    """Delete a resource."""
    getattr(client, args.resource).delete(args.id)
    message_output(args, f"{_singular(args).capitalize()} {args.id} deleted")


# =============================================================================
# Document Actions
# =============================================================================


def cmd_documents_cancel(client: BillingoClient, args: argparse.Namespace) -> None:
    """Cancel a document (issues a cancellation document)."""
    success_output(client.documents.cancel(args.id))


def cmd_documents_download(client: BillingoClient, args: argparse.Namespace) -> None:
    """Download a document as PDF."""
    content = client.documents.download(args.id)
    output = Path(args.output or f"document-{args.id}.pdf")
    try:
        output.write_bytes(content)
    except OSError as e:
        raise InputError(f"Cannot write {output}: {e.strerror or e}") from e
    message_output(args, f"Document {args.id} saved to {output}", path=str(output), bytes=len(content))


def cmd_documents_send(client: BillingoClient, args: argparse.Namespace) -> None:
    """Send a document by email."""
    emails = split_emails(args.emails)
    result = client.documents.send(args.id, emails=emails, subject=args.subject, message=args.message)
    if args.format == "json":
        success_output(result)
    elif emails:
        print(f"Document {args.id} sent to {', '.join(emails)}")
    else:
        print(f"Document {args.id} sent")


def cmd_documents_public_url(client: BillingoClient, args: argparse.Namespace) -> None:
    """Get the public download URL of a document."""
    result = client.documents.public_url(args.id)
    if args.format == "pretty" and isinstance(result, dict) and result.get("public_url"):
        print(result["public_url"])
    else:
        success_output(result)


def cmd_documents_payments(client: BillingoClient, args: argparse.Namespace) -> None:
    """Get the payment history of a document."""
    success_output(client.documents.payments(args.id))


def cmd_documents_update_payments(client: BillingoClient, args: argparse.Namespace) -> None:
    """Replace the payment history of a document."""
    data = load_payload(args)
    success_output(client.documents.update_payments(args.id, data))


def cmd_documents_online_szamla(client: BillingoClient, args: argparse.Namespace) -> None:
    """Check the Online Számla (NAV) status of a document."""
    success_output(client.documents.online_szamla(args.id))


# =============================================================================
# Organization, Currencies, Utilities
# =============================================================================


def cmd_organization_get(client: BillingoClient, _args: argparse.Namespace) -> None:
    """Get organization data."""
    success_output(client.organization.get())


def cmd_currencies_convert(client: BillingoClient, args: argparse.Namespace) -> None:
    """Get the conversion rate between two currencies."""
    success_output(client.currencies.convert(args.from_currency, args.to_currency))


def cmd_utils_convert_id(client: BillingoClient, args: argparse.Namespace) -> None:
    """Convert a legacy (API v2) ID to a v3 ID."""
    success_output(client.utils.convert_legacy_id(args.id))


# =============================================================================
# Config Commands
# =============================================================================


def _display_value(name: str, value: str | None) -> str:
    if value is None:
        return "(not set)"
    return mask_secret(value) if name == API_KEY else value


def cmd_config_set(_client: BillingoClient, args: argparse.Namespace) -> None:
    """Store a configuration value."""
    name = ConfigStore().set(args.key, args.value)
    message_output(args, f"Configuration updated: {name} = {_display_value(name, args.value)}", key=name)


def cmd_config_get(_client: BillingoClient, args: argparse.Namespace) -> None:
    """Print a stored configuration value."""
    name = normalize_key(args.key)
    value = ConfigStore().get(name)
    if value is None:
        raise InputError(f'Configuration key "{name}" is not set')
    if args.format == "json":
        json_output({"key": name, "value": value})
    else:
        print(value)


def cmd_config_unset(_client: BillingoClient, args: argparse.Namespace) -> None:
    """Remove a stored configuration value."""
    name = normalize_key(args.key)
    if ConfigStore().unset(name):
        message_output(args, f"Configuration key {name} removed", key=name)
    else:
        message_output(args, f"Configuration key {name} was not set", key=name)


def cmd_config_list(_client: BillingoClient, args: argparse.Namespace) -> None:
    """Show the effective configuration and where each value comes from."""
    store = ConfigStore()
    sources = store.sources()

    if args.format == "json":
        json_output(
            {
                "path": str(store.path),
                "values": {
                    name: {"value": _display_value(name, value) if value else None, "source": source}
                    for name, (value, source) in sources.items()
                },
            }
        )
        return

    print(f"Configuration file: {store.path}")
    for name, (value, source) in sources.items():
        print(f"  {name.ljust(8)}  {_display_value(name, value)}  ({source})")


def cmd_config_clear(_client: BillingoClient, args: argparse.Namespace) -> None:
    """Delete all stored configuration."""
    ConfigStore().clear()
    message_output(args, "Configuration cleared")


def cmd_config_path(_client: BillingoClient, args: argparse.Namespace) -> None:
    """Print the configuration file location."""
    path = ConfigStore().path
    if args.format == "json":
        json_output({"path": str(path), "exists": path.exists()})
    else:
        print(path)


# =============================================================================
# Main CLI
# =============================================================================


def _add_payload_arguments(parser: argparse.ArgumentParser, what: str) -> None:
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--file", "-f", help=f"JSON file with {what} data (or - for stdin)")
    group.add_argument("--data", "-d", help=f"JSON string with {what} data")


def _add_paging_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--page", "-p", type=int, default=1, help="Page number (default: 1)")
    parser.add_argument(
        "--per-page",
        type=int,
        default=DEFAULT_PER_PAGE,
        help=f"Results per page (default: {DEFAULT_PER_PAGE})",
    )


def _add_crud_commands(
    group_sub: Any,
    resource: str,
    actions: tuple[str, ...],
    common: argparse.ArgumentParser,
) -> dict[str, argparse.ArgumentParser]:
    """Register list/get/create/update/delete subcommands for a resource."""
    singular, plural = RESOURCE_NAMES[resource]
    parsers: dict[str, argparse.ArgumentParser] = {}

    if "list" in actions:
        p = group_sub.add_parser("list", help=f"List {plural}", parents=[common])
        _add_paging_arguments(p)
        p.set_defaults(func=cmd_list, resource=resource)
        parsers["list"] = p

    if "get" in actions:
        p = group_sub.add_parser("get", help=f"Get {singular} details", parents=[common])
        p.add_argument("id", help=f"{singular.capitalize()} ID")
        p.set_defaults(func=cmd_get, resource=resource)
        parsers["get"] = p

    if "create" in actions:
        p = group_sub.add_parser("create", help=f"Create a {singular}", parents=[common])
        _add_payload_arguments(p, singular)
        p.set_defaults(func=cmd_create, resource=resource)
        parsers["create"] = p

    if "update" in actions:
        p = group_sub.add_parser("update", help=f"Update a {singular}", parents=[common])
        p.add_argument("id", help=f"{singular.capitalize()} ID")
        _add_payload_arguments(p, singular)
        p.set_defaults(func=cmd_update, resource=resource)
        parsers["update"] = p

    if "delete" in actions:
        p = group_sub.add_parser("delete", help=f"Delete a {singular}", parents=[common])
        p.add_argument("id", help=f"{singular.capitalize()} ID")
        p.set_defaults(func=cmd_delete, resource=resource)
        parsers["delete"] = p

    return parsers


def create_parser() -> argparse.ArgumentParser:  # noqa: PLR0915
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="billingo",
        description="Billingo CLI - Command-line interface for the Billingo API v3 (Hungarian invoicing)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Output Modes:
  TTY (human):  Pretty tables for lists, indented JSON for single objects
  Pipe:         JSON everywhere (override with --format)

Examples:
  billingo config set apiKey <your-api-key>
  billingo documents list --page 1 --per-page 25 --payment-status outstanding
  billingo documents create --file invoice.json
  billingo documents download 12345 -o invoice.pdf
  billingo partners create --data '{"name": "Acme Kft."}'
  billingo currencies convert --from HUF --to EUR

API documentation: https://api.billingo.hu/v3/swagger
Get an API key:    https://app.billingo.hu/api-key
""",
    )
    parser.add_argument("--format", choices=FORMATS, help="Output format (default: pretty on a TTY, json when piped)")
    parser.add_argument("--verbose", action="store_true", help="Log HTTP requests to stderr")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Lets --format also follow the subcommand
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--format", choices=FORMATS, default=argparse.SUPPRESS, help="Output format")

    # ========== Config ==========
    config = subparsers.add_parser("config", help="Manage CLI configuration (API key, base URL)")
    config.set_defaults(func=lambda _c, _a: config.print_help())
    config_sub = config.add_subparsers(dest="subcommand")

    c_set = config_sub.add_parser("set", help="Set a configuration value", parents=[common])
    c_set.add_argument("key", help="apiKey or baseUrl")
    c_set.add_argument("value", help="Value to store")
    c_set.set_defaults(func=cmd_config_set)

    c_get = config_sub.add_parser("get", help="Print a configuration value", parents=[common])
    c_get.add_argument("key", help="apiKey or baseUrl")
    c_get.set_defaults(func=cmd_config_get)

    c_unset = config_sub.add_parser("unset", help="Remove a configuration value", parents=[common])
    c_unset.add_argument("key", help="apiKey or baseUrl")
    c_unset.set_defaults(func=cmd_config_unset)

    c_list = config_sub.add_parser("list", help="Show effective configuration", parents=[common])
    c_list.set_defaults(func=cmd_config_list)

    c_clear = config_sub.add_parser("clear", help="Delete all stored configuration", parents=[common])
    c_clear.set_defaults(func=cmd_config_clear)

    c_path = config_sub.add_parser("path", help="Print the configuration file location", parents=[common])
    c_path.set_defaults(func=cmd_config_path)

    # ========== Documents ==========
    documents = subparsers.add_parser("documents", aliases=["docs", "invoices"], help="Manage documents (invoices)")
    documents.set_defaults(func=lambda _c, _a: documents.print_help())
    documents_sub = documents.add_subparsers(dest="subcommand")

    doc_parsers = _add_crud_commands(documents_sub, "documents", ("list", "get", "create", "delete"), common)
    d_list = doc_parsers["list"]
    d_list.add_argument("--block-id", type=int, help="Filter by document block ID")
    d_list.add_argument("--partner-id", type=int, help="Filter by partner ID")
    d_list.add_argument("--payment-method", help="Filter by payment method (e.g. cash, wire_transfer)")
    d_list.add_argument("--payment-status", help="Filter by payment status (e.g. paid, outstanding)")
    d_list.add_argument("--type", help="Filter by document type (e.g. invoice, proforma, draft)")
    d_list.add_argument("--start-date", help="Filter by start date (YYYY-MM-DD)")
    d_list.add_argument("--end-date", help="Filter by end date (YYYY-MM-DD)")
    d_list.add_argument("--start-number", type=int, help="Filter by start document number")
    d_list.add_argument("--end-number", type=int, help="Filter by end document number")
    d_list.add_argument("--start-year", type=int, help="Filter by start year")
    d_list.add_argument("--end-year", type=int, help="Filter by end year")

    d_cancel = documents_sub.add_parser("cancel", help="Cancel a document", parents=[common])
    d_cancel.add_argument("id", help="Document ID")
    d_cancel.set_defaults(func=cmd_documents_cancel)

    d_download = documents_sub.add_parser("download", help="Download document as PDF", parents=[common])
    d_download.add_argument("id", help="Document ID")
    d_download.add_argument("--output", "-o", help="Output file path (default: document-<id>.pdf)")
    d_download.set_defaults(func=cmd_documents_download)

    d_send = documents_sub.add_parser("send", help="Send document via email", parents=[common])
    d_send.add_argument("id", help="Document ID")
    d_send.add_argument("--emails", "-e", help="Comma-separated email addresses")
    d_send.add_argument("--subject", "-s", help="Email subject")
    d_send.add_argument("--message", "-m", help="Email message")
    d_send.set_defaults(func=cmd_documents_send)

    d_public_url = documents_sub.add_parser("public-url", help="Get public download URL", parents=[common])
    d_public_url.add_argument("id", help="Document ID")
    d_public_url.set_defaults(func=cmd_documents_public_url)

    d_payments = documents_sub.add_parser("payments", help="Get payment history", parents=[common])
    d_payments.add_argument("id", help="Document ID")
    d_payments.set_defaults(func=cmd_documents_payments)

    d_update_payments = documents_sub.add_parser(
        "update-payments", help="Replace payment history", parents=[common]
    )
    d_update_payments.add_argument("id", help="Document ID")
    _add_payload_arguments(d_update_payments, "payment")
    d_update_payments.set_defaults(func=cmd_documents_update_payments)

    d_online_szamla = documents_sub.add_parser(
        "online-szamla", help="Check Online Számla (NAV) status", parents=[common]
    )
    d_online_szamla.add_argument("id", help="Document ID")
    d_online_szamla.set_defaults(func=cmd_documents_online_szamla)

    # ========== Partners / Products / Bank Accounts ==========
    crud = ("list", "get", "create", "update", "delete")

    partners = subparsers.add_parser("partners", help="Manage partners (customers, suppliers)")
    partners.set_defaults(func=lambda _c, _a: partners.print_help())
    _add_crud_commands(partners.add_subparsers(dest="subcommand"), "partners", crud, common)

    products = subparsers.add_parser("products", help="Manage products")
    products.set_defaults(func=lambda _c, _a: products.print_help())
    _add_crud_commands(products.add_subparsers(dest="subcommand"), "products", crud, common)

    bank_accounts = subparsers.add_parser("bank-accounts", aliases=["banks"], help="Manage bank accounts")
    bank_accounts.set_defaults(func=lambda _c, _a: bank_accounts.print_help())
    _add_crud_commands(bank_accounts.add_subparsers(dest="subcommand"), "bank_accounts", crud, common)

    # ========== Document Blocks ==========
    blocks = subparsers.add_parser("document-blocks", aliases=["blocks"], help="List document blocks (invoice pads)")
    blocks.set_defaults(func=lambda _c, _a: blocks.print_help())
    _add_crud_commands(blocks.add_subparsers(dest="subcommand"), "document_blocks", ("list",), common)

    # ========== Organization ==========
    organization = subparsers.add_parser("organization", aliases=["org"], help="Organization information")
    organization.set_defaults(func=lambda _c, _a: organization.print_help())
    organization_sub = organization.add_subparsers(dest="subcommand")

    o_get = organization_sub.add_parser("get", help="Get organization data", parents=[common])
    o_get.set_defaults(func=cmd_organization_get)

    # ========== Currencies ==========
    currencies = subparsers.add_parser("currencies", aliases=["currency"], help="Currency conversion rates")
    currencies.set_defaults(func=lambda _c, _a: currencies.print_help())
    currencies_sub = currencies.add_subparsers(dest="subcommand")

    cur_convert = currencies_sub.add_parser("convert", help="Get conversion rate", parents=[common])
    cur_convert.add_argument("--from", dest="from_currency", required=True, help="Source currency code (e.g. HUF)")
    cur_convert.add_argument("--to", dest="to_currency", required=True, help="Target currency code (e.g. EUR)")
    cur_convert.set_defaults(func=cmd_currencies_convert)

    # ========== Utilities ==========
    utils = subparsers.add_parser("utils", help="Utility functions")
    utils.set_defaults(func=lambda _c, _a: utils.print_help())
    utils_sub = utils.add_subparsers(dest="subcommand")

    u_convert = utils_sub.add_parser("convert-id", help="Convert legacy API ID to v3 ID", parents=[common])
    u_convert.add_argument("id", help="Legacy ID")
    u_convert.set_defaults(func=cmd_utils_convert_id)

    return parser


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    # A .env in the working directory may provide BILLINGO_* variables
    load_dotenv(find_dotenv(usecwd=True))

    parser = create_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    if not args.command:
        parser.print_help()
        sys.exit(0)

    if args.format is None:
        args.format = "pretty" if is_tty() else "json"

    # Create client (the API key is only required once a request is made)
    config = ConfigStore().load()
    logger.debug("Using base URL %s (API key %s)", config.base_url, "set" if config.has_api_key else "not set")
    client = BillingoClient.from_config(config)

    # Run command (all subparsers have default funcs that print help)
    try:
        args.func(client, args)
    except CLIError as e:
        error_output(e, args.format)
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    main()
