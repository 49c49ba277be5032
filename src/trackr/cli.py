#!/usr/bin/env python3
"""Command-line interface for Trackr.

This module provides CLI commands for bookkeeping against the local
store and for synchronizing with the remote merge service.
Uses only core/ modules - no UI dependencies.

Commands:
    serve                   Run the sync server
    register                Register a company and its admin
    login / logout          Start or end a session
    lock / unlock           PIN lock screen
    add-account             Open an account
    add-product             Add a product
    add-party               Add a client or vendor
    add-user                Add a staff user with a PIN
    post                    Post a transaction
    delete-transaction      Delete a transaction and reverse its effects
    approve-user            Approve a pending user
    reject-user             Reject a pending user
    list <collection>       Show a collection
    set-endpoint <url>      Configure the sync endpoint
    push / pull             Sync with the remote partition
    status                  Show session and sync status
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from trackr.core.app import Application
from trackr.core.config import Config
from trackr.core.models import (
    COLLECTION_KEYS,
    AccountType,
    EntityType,
    PaymentStatus,
    TransactionType,
    UserRole,
)
from trackr.core.sync_engine import SyncResult
from trackr.core.sync_server import create_sync_server, endpoint_path
from trackr.core.validation import DuplicateRegistrationError, ValidationError

logger = logging.getLogger(__name__)

# Commands that change the store; a pending auto-push is sent before exit
MUTATING_COMMANDS = {
    "register",
    "add-account",
    "add-product",
    "add-party",
    "add-user",
    "post",
    "delete-transaction",
    "approve-user",
    "reject-user",
}


def format_record(record: Dict[str, Any]) -> str:
    """Format a record as a single line of text."""
    label = record.get("name") or record.get("category") or record.get("email") or ""
    details = []
    for field in ("type", "role", "status", "paymentStatus", "amount", "balance", "stock", "sku", "email"):
        if field in record and record[field] not in (None, "") and record[field] != label:
            details.append(f"{field}={record[field]}")
    return f"{record.get('id')}  {label}  {' '.join(details)}".rstrip()


def print_result(result: SyncResult, action: str, args: argparse.Namespace) -> int:
    """Print a SyncResult and map it to an exit code."""
    if args.format == "json":
        print(json.dumps({
            "action": action,
            "success": result.success,
            "attempted": result.attempted,
            "merged": result.merged,
            "errors": result.errors,
        }, indent=2))
    elif result.success:
        merged = f" (merged: {', '.join(result.merged)})" if result.merged else ""
        print(f"{action.capitalize()} completed{merged}")
    elif not result.attempted:
        print(f"{action.capitalize()} skipped: {'; '.join(result.errors)}")
    else:
        print(f"{action.capitalize()} failed:", file=sys.stderr)
        for error in result.errors:
            print(f"  - {error}", file=sys.stderr)
    return 0 if result.success or not result.attempted else 1


def print_outcome(
    action: str,
    ok: bool,
    args: argparse.Namespace,
    message: str,
    error: str,
    **fields: Any,
) -> int:
    """Report a command that either succeeds or fails, in the chosen format.

    Args:
        action: Command name reported in JSON output
        ok: Whether the command succeeded
        args: Parsed arguments (for ``format``)
        message: Text printed on success
        error: Text printed to stderr on failure
        **fields: Extra values included in JSON output

    Returns:
        Exit code (0 on success, 1 on failure)
    """
    if args.format == "json":
        output = {"action": action, "success": ok, **fields}
        if not ok:
            output["error"] = error
        print(json.dumps(output))
    elif ok:
        print(message)
    else:
        print(f"Error: {error}", file=sys.stderr)
    return 0 if ok else 1


def print_created(kind: str, record_id: str, args: argparse.Namespace) -> int:
    if args.format == "json":
        print(json.dumps({"id": record_id, "kind": kind}))
    else:
        print(f"Created {kind} with ID: {record_id}")
    return 0


def cmd_serve(config: Config, args: argparse.Namespace) -> int:
    """Run the sync server until interrupted.

    Args:
        config: Config instance
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    host = args.host or config.get("server_host", "0.0.0.0")
    port = args.port or config.get_server_port()
    app = create_sync_server(config=config)
    print(f"Serving {endpoint_path(config.get('deployment_id'))} on {host}:{port}")
    app.run(host=host, port=port)
    return 0


def cmd_register(app: Application, args: argparse.Namespace) -> int:
    """Register a company and sign its admin in."""
    try:
        user_id = app.ledger.register(
            company_name=args.company,
            admin_name=args.name,
            email=args.email,
            password=args.password,
            pin=args.pin,
        )
    except DuplicateRegistrationError as e:
        print(f"Error: {e.email} is already registered", file=sys.stderr)
        return 1
    if args.format == "json":
        print(json.dumps({"id": user_id, "status": "PENDING"}))
    else:
        print(f"Registered. Admin ID: {user_id} (awaiting approval)")
    return 0


def cmd_login(app: Application, args: argparse.Namespace) -> int:
    user_id = app.ledger.login(args.email, args.password)
    return print_outcome(
        "login", user_id is not None, args,
        f"Signed in as {user_id}", "Invalid email or password", user_id=user_id,
    )


def cmd_logout(app: Application, args: argparse.Namespace) -> int:
    app.ledger.logout()
    return print_outcome("logout", True, args, "Signed out", "")


def cmd_lock(app: Application, args: argparse.Namespace) -> int:
    app.ledger.lock()
    return print_outcome("lock", True, args, "Locked", "")


def cmd_unlock(app: Application, args: argparse.Namespace) -> int:
    ok = app.ledger.unlock(args.pin, user_id=args.user)
    return print_outcome(
        "unlock", ok, args, "Unlocked", "Incorrect PIN", user_id=app.store.current_user_id,
    )


def cmd_add_account(app: Application, args: argparse.Namespace) -> int:
    account_id = app.ledger.add_account(args.name, type=args.type, balance=args.balance)
    return print_created("account", account_id, args)


def cmd_add_product(app: Application, args: argparse.Namespace) -> int:
    product_id = app.ledger.add_product(
        args.name,
        sku=args.sku,
        categories=args.categories,
        purchase_price=args.purchase_price,
        selling_price=args.selling_price,
        stock=args.stock,
        min_stock=args.min_stock,
    )
    return print_created("product", product_id, args)


def cmd_add_party(app: Application, args: argparse.Namespace) -> int:
    entity_id = app.ledger.add_entity(
        args.name, type=args.type, email=args.email, phone=args.phone, balance=args.balance
    )
    return print_created("party", entity_id, args)


def cmd_add_user(app: Application, args: argparse.Namespace) -> int:
    user_id = app.ledger.add_staff_user(args.name, args.pin, role=args.role)
    return print_created("user", user_id, args)


def cmd_post(app: Application, args: argparse.Namespace) -> int:
    """Post a transaction."""
    tx_id = app.ledger.post_transaction(
        amount=args.amount,
        type=args.type,
        account_id=args.account or "",
        category=args.category,
        date=args.date,
        note=args.note or "",
        to_account_id=args.to_account,
        entity_id=args.party,
        product_id=args.product,
        quantity=args.quantity,
        payment_status=args.payment_status,
    )
    return print_created("transaction", tx_id, args)


def cmd_delete_transaction(app: Application, args: argparse.Namespace) -> int:
    tx_id = args.transaction_id
    return print_outcome(
        "delete-transaction", app.ledger.delete_transaction(tx_id), args,
        f"Deleted transaction {tx_id}", f"Transaction {tx_id} not found", id=tx_id,
    )


def cmd_approve_user(app: Application, args: argparse.Namespace) -> int:
    return print_outcome(
        "approve-user", app.ledger.approve_user(args.user_id), args,
        f"Approved user {args.user_id}", f"User {args.user_id} not found", id=args.user_id,
    )


def cmd_reject_user(app: Application, args: argparse.Namespace) -> int:
    return print_outcome(
        "reject-user", app.ledger.reject_user(args.user_id), args,
        f"Rejected user {args.user_id}", f"User {args.user_id} not found", id=args.user_id,
    )


def cmd_list(app: Application, args: argparse.Namespace) -> int:
    """Show one collection of the local store.

    Args:
        app: Application instance
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    data = app.store.get(args.collection)

    if args.format == "json":
        print(json.dumps(data, indent=2, ensure_ascii=False))
        return 0

    if isinstance(data, dict):
        for key, value in data.items():
            print(f"{key}: {json.dumps(value, ensure_ascii=False)}")
        return 0

    if not data:
        print(f"No {args.collection} found.")
        return 0
    for record in data:
        print(format_record(record))
    return 0


def cmd_set_endpoint(app: Application, args: argparse.Namespace) -> int:
    app.config.set_sync_endpoint(args.url)
    app.resolver.set_endpoint(args.url)
    message = f"Sync endpoint set to {args.url}" if args.url else "Sync endpoint cleared"
    return print_outcome("set-endpoint", True, args, message, "", endpoint=args.url or None)


def cmd_push(app: Application, args: argparse.Namespace) -> int:
    return print_result(app.engine.push(), "push", args)


def cmd_pull(app: Application, args: argparse.Namespace) -> int:
    return print_result(app.engine.pull(), "pull", args)


def cmd_status(app: Application, args: argparse.Namespace) -> int:
    """Show session and sync status."""
    user = app.store.current_user()
    status = {
        "user": user.get("email") if user else None,
        "role": user.get("role") if user else None,
        "company_id": user.get("companyId") if user else None,
        "locked": app.store.is_locked,
        "online": app.engine.is_online,
        "endpoint": app.engine.endpoint,
        "partition": app.engine.partition_key(),
        "auto_sync": app.engine.auto_sync_enabled(),
        "transactions": len(app.store.get("transactions")),
    }
    if args.format == "json":
        print(json.dumps(status, indent=2))
    else:
        for key, value in status.items():
            print(f"{key.replace('_', ' ').capitalize()}: {value if value is not None else '-'}")
    return 0


COMMANDS = {
    "register": cmd_register,
    "login": cmd_login,
    "logout": cmd_logout,
    "lock": cmd_lock,
    "unlock": cmd_unlock,
    "add-account": cmd_add_account,
    "add-product": cmd_add_product,
    "add-party": cmd_add_party,
    "add-user": cmd_add_user,
    "post": cmd_post,
    "delete-transaction": cmd_delete_transaction,
    "approve-user": cmd_approve_user,
    "reject-user": cmd_reject_user,
    "list": cmd_list,
    "set-endpoint": cmd_set_endpoint,
    "push": cmd_push,
    "pull": cmd_pull,
    "status": cmd_status,
}


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with every subcommand."""
    parser = argparse.ArgumentParser(
        prog="trackr",
        description="Offline-first bookkeeping with multi-tenant sync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config-dir", type=Path, help="Custom configuration directory")
    parser.add_argument(
        "--format",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)"
    )
    parser.add_argument("--offline", action="store_true", help="Do not contact the sync server")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    serve_parser = subparsers.add_parser("serve", help="Run the sync server")
    serve_parser.add_argument("--host", help="Bind address (default: from config)")
    serve_parser.add_argument("--port", type=int, help="Port (default: from config)")

    register_parser = subparsers.add_parser("register", help="Register a company and its admin")
    register_parser.add_argument("--company", required=True, help="Company name")
    register_parser.add_argument("--name", required=True, help="Admin name")
    register_parser.add_argument("--email", required=True, help="Admin email")
    register_parser.add_argument("--password", required=True, help="Admin password")
    register_parser.add_argument("--pin", help="4-digit PIN (default: 1234)")

    login_parser = subparsers.add_parser("login", help="Sign in")
    login_parser.add_argument("email")
    login_parser.add_argument("password")

    subparsers.add_parser("logout", help="Sign out")
    subparsers.add_parser("lock", help="Show the PIN lock screen")

    unlock_parser = subparsers.add_parser("unlock", help="Unlock with a PIN")
    unlock_parser.add_argument("pin")
    unlock_parser.add_argument("--user", help="Switch to this user ID")

    account_parser = subparsers.add_parser("add-account", help="Open an account")
    account_parser.add_argument("name")
    account_parser.add_argument("--type", choices=[t.value for t in AccountType], default="BANK")
    account_parser.add_argument("--balance", type=float, default=0.0, help="Opening balance")

    product_parser = subparsers.add_parser("add-product", help="Add a product")
    product_parser.add_argument("name")
    product_parser.add_argument("--sku", help="SKU (generated if omitted)")
    product_parser.add_argument("--categories", nargs="*", default=[])
    product_parser.add_argument("--purchase-price", type=float, default=0.0)
    product_parser.add_argument("--selling-price", type=float, default=0.0)
    product_parser.add_argument("--stock", type=float, default=0)
    product_parser.add_argument("--min-stock", type=float, default=5)

    party_parser = subparsers.add_parser("add-party", help="Add a client or vendor")
    party_parser.add_argument("name")
    party_parser.add_argument("--type", choices=[t.value for t in EntityType], default="CLIENT")
    party_parser.add_argument("--email")
    party_parser.add_argument("--phone")
    party_parser.add_argument("--balance", type=float, default=0.0, help="Opening balance")

    user_parser = subparsers.add_parser("add-user", help="Add a staff user")
    user_parser.add_argument("name")
    user_parser.add_argument("pin")
    user_parser.add_argument(
        "--role",
        choices=[UserRole.STAFF.value, UserRole.MANAGER.value, UserRole.ADMIN.value],
        default=UserRole.STAFF.value,
    )

    post_parser = subparsers.add_parser("post", help="Post a transaction")
    post_parser.add_argument("type", choices=[t.value for t in TransactionType])
    post_parser.add_argument("amount", type=float)
    post_parser.add_argument("--account", help="Account ID (required when PAID)")
    post_parser.add_argument("--to-account", help="Destination account ID for transfers")
    post_parser.add_argument("--category")
    post_parser.add_argument("--date", help="ISO date (default: now)")
    post_parser.add_argument("--note")
    post_parser.add_argument("--party", help="Client/vendor ID")
    post_parser.add_argument("--product", help="Product ID")
    post_parser.add_argument("--quantity", type=float)
    post_parser.add_argument(
        "--payment-status",
        choices=[s.value for s in PaymentStatus],
        default=PaymentStatus.PAID.value,
    )

    delete_parser = subparsers.add_parser("delete-transaction", help="Delete a transaction")
    delete_parser.add_argument("transaction_id")

    approve_parser = subparsers.add_parser("approve-user", help="Approve a pending user")
    approve_parser.add_argument("user_id")

    reject_parser = subparsers.add_parser("reject-user", help="Reject a pending user")
    reject_parser.add_argument("user_id")

    list_parser = subparsers.add_parser("list", help="Show a collection")
    list_parser.add_argument("collection", choices=list(COLLECTION_KEYS))

    endpoint_parser = subparsers.add_parser("set-endpoint", help="Configure the sync endpoint")
    endpoint_parser.add_argument("url", help="Endpoint URL, or '' to clear")

    subparsers.add_parser("push", help="Push the local snapshot")
    subparsers.add_parser("pull", help="Pull and merge the remote partition")
    subparsers.add_parser("status", help="Show session and sync status")

    return parser


def run(args: argparse.Namespace) -> int:
    """Execute a parsed command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code
    """
    config = Config(config_dir=args.config_dir)

    if args.command == "serve":
        return cmd_serve(config, args)

    handler = COMMANDS.get(args.command)
    if handler is None:
        print(f"Error: Unknown command '{args.command}'", file=sys.stderr)
        return 1

    app = Application(config=config)
    app.start(monitor=False, resolve=False)
    if args.offline:
        app.engine.set_online(False)
    try:
        exit_code = handler(app, args)
        if args.command in MUTATING_COMMANDS:
            result = app.engine.flush_pending_push()
            if result is not None and not result.success:
                logger.warning(f"Auto-push failed: {'; '.join(result.errors)}")
        return exit_code
    except ValidationError as e:
        print(f"Error: Invalid {e.field} - {e.message}", file=sys.stderr)
        return 1
    finally:
        app.stop()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the trackr command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 1

    return run(args)


if __name__ == "__main__":
    sys.exit(main())
