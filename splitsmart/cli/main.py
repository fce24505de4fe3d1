#!/usr/bin/env python3

import argparse
import logging
from collections.abc import Callable, Sequence

from splitsmart.runtime import set_log_level


def _coerce_exit_code(code: object) -> int:
    if code is None:
        return 0
    if isinstance(code, int):
        return code
    return 1


def _run_command(command: Callable[[argparse.Namespace], None], args: argparse.Namespace) -> int:
    """
    Run a command handler, turning its sys.exit() into a return code.

    This keeps process termination centralized in this module's entrypoint.
    """
    try:
        command(args)
    except SystemExit as exc:
        return _coerce_exit_code(exc.code)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="splitsmart",
        description="Split a restaurant bill between friends",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Typical flow:
  splitsmart upload receipt.jpg    Parse a receipt photo into the active session
  splitsmart chat "Ann had the salad"
  splitsmart assign 3 Bob          Toggle Bob on item #3
  splitsmart tip 18 --percent
  splitsmart summary               Who owes what

Sessions:
  sessions / new / switch / rename / delete manage saved receipts.
  Every change is saved immediately under --home (default: ~/.splitsmart).
""",
    )
    parser.add_argument("--home", default=None, help="Data directory (default: $SPLITSMART_HOME or ~/.splitsmart)")
    parser.add_argument("--config", default=None, help="Config file (default: <home>/config.toml)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # sessions
    subparsers.add_parser("sessions", help="List saved sessions (* marks the active one)")
    new_parser = subparsers.add_parser("new", help="Create a session and switch to it")
    new_parser.add_argument("name", nargs="?", default=None, help="Session name (default: Receipt N)")
    switch_parser = subparsers.add_parser("switch", help="Switch the active session")
    switch_parser.add_argument("session_id")
    rename_parser = subparsers.add_parser("rename", help="Rename a session")
    rename_parser.add_argument("session_id")
    rename_parser.add_argument("name")
    delete_parser = subparsers.add_parser("delete", help="Delete a session")
    delete_parser.add_argument("session_id")

    subparsers.add_parser("show", help="Show the active receipt and chat transcript")
    subparsers.add_parser("summary", help="Show who owes what")
    subparsers.add_parser("reset", help="Clear the active session and start over")

    # AI-backed commands
    upload_parser = subparsers.add_parser("upload", help="Parse a receipt photo")
    upload_parser.add_argument("image", help="Path to receipt image")
    append_parser = subparsers.add_parser("append", help="Add items from another receipt photo")
    append_parser.add_argument("image", help="Path to receipt image")
    chat_parser = subparsers.add_parser("chat", help="Assign items in plain language")
    chat_parser.add_argument("text", help="e.g. \"John had the salad\"")
    subparsers.add_parser("tag-dietary", help="Tag items as Vegan, Gluten-Free, Spicy, ...")
    subparsers.add_parser("roast", help="Get a lighthearted roast of the bill")

    # receipt edits
    subparsers.add_parser("add-item", help="Add a blank item")
    edit_item_parser = subparsers.add_parser("edit-item", help="Edit an item")
    edit_item_parser.add_argument("item_id", type=int)
    edit_item_parser.add_argument("--name", default=None)
    edit_item_parser.add_argument("--price", default=None, help="Line total")
    edit_item_parser.add_argument("--quantity", type=int, default=None)
    delete_item_parser = subparsers.add_parser("delete-item", help="Delete an item")
    delete_item_parser.add_argument("item_id", type=int)
    assign_parser = subparsers.add_parser("assign", help="Toggle a person on an item")
    assign_parser.add_argument("item_id", type=int)
    assign_parser.add_argument("person")
    weight_parser = subparsers.add_parser("weight", help="Change a person's share weight on an item")
    weight_parser.add_argument("item_id", type=int)
    weight_parser.add_argument("person")
    weight_parser.add_argument("delta", type=int, help="e.g. 1 or -1 (weights never drop below 1)")

    for name, label in (("tax", "Set the tax"), ("tip", "Set the tip")):
        amount_parser = subparsers.add_parser(name, help=label)
        amount_parser.add_argument("amount")
        amount_parser.add_argument("--percent", action="store_true", help="Treat amount as a percent of the subtotal")

    # preferences
    friends_parser = subparsers.add_parser("friends", help="List, add or remove friends")
    friends_parser.add_argument("action", nargs="?", choices=["add", "remove"], default=None)
    friends_parser.add_argument("name", nargs="?", default=None)
    theme_parser = subparsers.add_parser("theme", help="Show or set the UI theme")
    theme_parser.add_argument("theme", nargs="?", choices=["light", "dark"], default=None)

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Start the local HTTP backend")
    serve_parser.add_argument("--host", default=None, help="Host to bind to (default: from config, 127.0.0.1)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port to bind to (default: from config, 8080)")

    return parser


_HANDLERS = {
    "sessions": "cmd_sessions",
    "new": "cmd_new",
    "switch": "cmd_switch",
    "rename": "cmd_rename",
    "delete": "cmd_delete",
    "show": "cmd_show",
    "summary": "cmd_summary",
    "reset": "cmd_reset",
    "upload": "cmd_upload",
    "append": "cmd_append",
    "chat": "cmd_chat",
    "tag-dietary": "cmd_tag_dietary",
    "roast": "cmd_roast",
    "add-item": "cmd_add_item",
    "edit-item": "cmd_edit_item",
    "delete-item": "cmd_delete_item",
    "assign": "cmd_assign",
    "weight": "cmd_weight",
    "tax": "cmd_tax",
    "tip": "cmd_tip",
    "friends": "cmd_friends",
    "theme": "cmd_theme",
    "serve": "cmd_serve",
}


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    if args.verbose:
        set_log_level(logging.DEBUG)

    if args.command == "friends" and args.action is not None and not args.name:
        print(f"friends {args.action} needs a name")
        return 1

    # Handlers pull in the HTTP stack; load them only once a command runs.
    from splitsmart.cli import session

    return _run_command(getattr(session, _HANDLERS[args.command]), args)


if __name__ == "__main__":
    raise SystemExit(main())
