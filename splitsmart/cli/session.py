"""Session command handlers used by the unified CLI."""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from decimal import Decimal
from pathlib import Path

from splitsmart.application.sessions import ExternalResult, SessionWorkspace
from splitsmart.receipt.formatter import (
    format_allocation,
    format_receipt,
    format_sessions,
    format_transcript,
)
from splitsmart.receipt.serialization import PayloadError, amount_from_input
from splitsmart.runtime import get_logger, get_paths, load_config, set_home
from splitsmart.runtime.ai_client import AIServiceClient
from splitsmart.runtime.kv_store import FileKeyValueStore
from splitsmart.runtime.session_store import SessionStore

logger = get_logger(__name__)


@contextmanager
def open_workspace(args: argparse.Namespace) -> Iterator[SessionWorkspace]:
    """Open the on-disk session store and wrap it in a workspace."""
    if getattr(args, "home", None):
        set_home(args.home)
    config = load_config(getattr(args, "config", None) or get_paths().config_file)
    if not getattr(args, "home", None):
        set_home(config.storage.home)

    paths = get_paths()
    paths.ensure_directories()
    with SessionStore(FileKeyValueStore(paths.store)) as store:
        yield SessionWorkspace(store, AIServiceClient.from_config(config))


def _parse_amount(raw: str) -> Decimal:
    try:
        return amount_from_input(raw)
    except PayloadError as e:
        print(f"Error: {e}")
        sys.exit(1)


def _require_saved(workspace: SessionWorkspace, status: str) -> None:
    if status != "saved":
        print(f"Not allowed while the session is in the {workspace.state.value} state.")
        if workspace.receipt is None:
            print("Upload a receipt first (splitsmart upload <image>).")
        sys.exit(1)


def _report_external(workspace: SessionWorkspace, result: ExternalResult) -> None:
    logger.debug("External operation finished: %s", result.status)
    if result.message:
        print(result.message)
    if result.status == "applied":
        return
    if result.status in ("rejected", "busy"):
        print(f"Not allowed while the session is in the {workspace.state.value} state.")
    elif result.status == "discarded":
        print("The active session changed; result discarded.")
    sys.exit(1)


def _read_image(path_arg: str) -> tuple[bytes, str]:
    path = Path(path_arg)
    if not path.is_file():
        print(f"Error: file not found: {path}")
        sys.exit(1)
    return path.read_bytes(), path.name


def _print_receipt(workspace: SessionWorkspace) -> None:
    if workspace.receipt is None:
        print("No receipt yet. Upload one with: splitsmart upload <image>")
        return
    print(format_receipt(workspace.receipt))


# --- Sessions ---


def cmd_sessions(args: argparse.Namespace) -> None:
    with open_workspace(args) as workspace:
        print(format_sessions(workspace.sessions(), workspace.session_id))


def cmd_new(args: argparse.Namespace) -> None:
    with open_workspace(args) as workspace:
        session_id = workspace.new_session(args.name)
        print(f"Created and switched to session {session_id}")


def cmd_switch(args: argparse.Namespace) -> None:
    with open_workspace(args) as workspace:
        if not workspace.switch_session(args.session_id):
            print(f"Unknown session: {args.session_id}")
            sys.exit(1)
        print(f"Switched to session {args.session_id}")


def cmd_rename(args: argparse.Namespace) -> None:
    with open_workspace(args) as workspace:
        if not any(meta.id == args.session_id for meta in workspace.sessions()):
            print(f"Unknown session: {args.session_id}")
            sys.exit(1)
        workspace.rename_session(args.session_id, args.name)


def cmd_delete(args: argparse.Namespace) -> None:
    with open_workspace(args) as workspace:
        active_id = workspace.delete_session(args.session_id)
        print(f"Active session: {active_id}")


def cmd_show(args: argparse.Namespace) -> None:
    """Print the active receipt followed by the chat transcript."""
    with open_workspace(args) as workspace:
        _print_receipt(workspace)
        print()
        print(format_transcript(workspace.messages))


def cmd_summary(args: argparse.Namespace) -> None:
    with open_workspace(args) as workspace:
        allocation = workspace.summary()
        if allocation is None or workspace.receipt is None:
            print("No receipt yet. Upload one with: splitsmart upload <image>")
            return
        print(format_allocation(allocation, workspace.receipt.currency))


def cmd_reset(args: argparse.Namespace) -> None:
    with open_workspace(args) as workspace:
        if workspace.reset() == "busy":
            print("A receipt is still being analyzed.")
            sys.exit(1)
        print("Session cleared.")


# --- Receipt edits ---


def cmd_add_item(args: argparse.Namespace) -> None:
    with open_workspace(args) as workspace:
        _require_saved(workspace, workspace.add_item())
        _print_receipt(workspace)


def cmd_edit_item(args: argparse.Namespace) -> None:
    price = _parse_amount(args.price) if args.price is not None else None
    if args.quantity is not None and args.quantity < 1:
        print("Error: quantity must be at least 1")
        sys.exit(1)
    with open_workspace(args) as workspace:
        status = workspace.edit_item(args.item_id, name=args.name, price=price, quantity=args.quantity)
        _require_saved(workspace, status)
        _print_receipt(workspace)


def cmd_delete_item(args: argparse.Namespace) -> None:
    with open_workspace(args) as workspace:
        _require_saved(workspace, workspace.delete_item(args.item_id))
        _print_receipt(workspace)


def cmd_assign(args: argparse.Namespace) -> None:
    """Toggle a person on an item; new names are remembered as friends."""
    with open_workspace(args) as workspace:
        receipt = workspace.receipt
        item = next((i for i in receipt.items if i.id == args.item_id), None) if receipt else None
        if item is not None and args.person.strip() not in item.assigned_to:
            status = workspace.add_assignee(args.item_id, args.person)
        else:
            status = workspace.toggle_assignment(args.item_id, args.person)
        _require_saved(workspace, status)
        _print_receipt(workspace)


def cmd_weight(args: argparse.Namespace) -> None:
    with open_workspace(args) as workspace:
        _require_saved(workspace, workspace.update_weight(args.item_id, args.person, args.delta))
        _print_receipt(workspace)


def cmd_tax(args: argparse.Namespace) -> None:
    amount = _parse_amount(args.amount)
    with open_workspace(args) as workspace:
        status = workspace.set_tax_percent(amount) if args.percent else workspace.set_tax(amount)
        _require_saved(workspace, status)
        _print_receipt(workspace)


def cmd_tip(args: argparse.Namespace) -> None:
    amount = _parse_amount(args.amount)
    with open_workspace(args) as workspace:
        status = workspace.set_tip_percent(amount) if args.percent else workspace.set_tip(amount)
        _require_saved(workspace, status)
        _print_receipt(workspace)


# --- AI-backed commands ---


def cmd_upload(args: argparse.Namespace) -> None:
    """Parse a receipt photo into the active session."""
    image_bytes, filename = _read_image(args.image)
    with open_workspace(args) as workspace:
        _report_external(workspace, asyncio.run(workspace.upload_receipt(image_bytes, filename)))
        _print_receipt(workspace)


def cmd_append(args: argparse.Namespace) -> None:
    image_bytes, filename = _read_image(args.image)
    with open_workspace(args) as workspace:
        _report_external(workspace, asyncio.run(workspace.append_receipt(image_bytes, filename)))
        _print_receipt(workspace)


def cmd_chat(args: argparse.Namespace) -> None:
    with open_workspace(args) as workspace:
        _report_external(workspace, asyncio.run(workspace.send_message(args.text)))


def cmd_tag_dietary(args: argparse.Namespace) -> None:
    with open_workspace(args) as workspace:
        _report_external(workspace, asyncio.run(workspace.tag_dietary()))
        _print_receipt(workspace)


def cmd_roast(args: argparse.Namespace) -> None:
    with open_workspace(args) as workspace:
        _report_external(workspace, asyncio.run(workspace.roast()))


# --- Preferences ---


def cmd_friends(args: argparse.Namespace) -> None:
    with open_workspace(args) as workspace:
        if args.action == "add":
            if workspace.add_friend(args.name or "") is None:
                print("Error: friend name must not be blank")
                sys.exit(1)
        elif args.action == "remove":
            workspace.remove_friend(args.name or "")
        for name in workspace.friends():
            print(name)


def cmd_theme(args: argparse.Namespace) -> None:
    with open_workspace(args) as workspace:
        if args.theme is not None:
            workspace.set_theme(args.theme)
        print(workspace.theme or "(system default)")


def cmd_serve(args: argparse.Namespace) -> None:
    """Start the FastAPI backend."""
    from splitsmart.application.server import serve

    if args.home:
        set_home(args.home)
    config = load_config(args.config or get_paths().config_file)
    host = args.host or config.server.host
    port = args.port or config.server.port

    print(f"Starting SplitSmart backend on {host}:{port}")
    print("Press Ctrl+C to stop")

    serve(host, port)
