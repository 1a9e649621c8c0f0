"""Command-line interface for solidauth configuration and store maintenance."""

from __future__ import annotations

import argparse
import json
import os
import sys

from pathlib import Path
from typing import TYPE_CHECKING

from .exceptions import StoreError
from .log import configure_logging, redact_sensitive_data


if TYPE_CHECKING:
    from collections.abc import Sequence

    from .store import KeyValueStore


def main(argv: Sequence[str] | None = None) -> int:
    """Run the main CLI entry point.

    Parameters
    ----------
    argv : Sequence[str], optional
        Arguments to parse (default: ``sys.argv[1:]``).

    Returns
    -------
    int
        Exit code.
    """
    parser = argparse.ArgumentParser(
        prog="solidauth",
        description="solidauth configuration and store tools",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # config command
    config_parser = subparsers.add_parser(
        "config",
        help="Show or export configuration",
    )
    config_group = config_parser.add_mutually_exclusive_group()
    config_group.add_argument(
        "--show",
        action="store_true",
        help="Show current configuration",
    )
    config_group.add_argument(
        "--toml",
        action="store_true",
        help="Export configuration as TOML",
    )
    config_group.add_argument(
        "--env",
        action="store_true",
        help="Export configuration as environment variables",
    )
    config_group.add_argument(
        "--sources",
        action="store_true",
        help="Show configuration file sources",
    )
    config_parser.add_argument(
        "--output",
        "-o",
        type=str,
        help="Output file path (default: stdout)",
    )

    # store command
    store_parser = subparsers.add_parser(
        "store",
        help="Inspect or clean up a file-backed store",
    )
    store_parser.add_argument(
        "action",
        choices=["list", "prune", "clear"],
        help="list records, prune expired state records, or remove every record",
    )
    store_parser.add_argument(
        "--path",
        "-p",
        type=str,
        default=None,
        help="Store file (default: configured store path)",
    )
    store_parser.add_argument(
        "--ttl",
        type=int,
        default=None,
        help="Correlation record TTL in seconds for prune (default: configured value)",
    )

    args = parser.parse_args(argv)

    from .config import SolidAuthSettings

    configure_logging(SolidAuthSettings().log)

    if args.command == "config":
        return handle_config(args)
    if args.command == "store":
        return handle_store(args)
    parser.print_help()
    return 0


def handle_config(args: argparse.Namespace) -> int:
    """Handle the config command.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command line arguments.

    Returns
    -------
    int
        Exit code.
    """
    from .config import SolidAuthSettings

    if args.sources:
        return show_config_sources()

    settings = SolidAuthSettings()

    if args.toml:
        output = settings.to_toml()
    elif args.env:
        output = settings.to_env()
    else:
        output = settings.show()

    if args.output:
        Path(args.output).write_text(output, encoding="utf-8")
        print(f"Configuration written to {args.output}")
    else:
        print(output)

    return 0


def show_config_sources() -> int:
    """Show configuration file sources and their status.

    Returns
    -------
    int
        Exit code.
    """
    sources = [
        ("Built-in defaults", "", True),
        ("pyproject.toml [tool.solidauth]", "pyproject.toml", None),
        ("./solidauth.toml", "solidauth.toml", None),
        (
            "~/.config/solidauth/config.toml",
            str(Path.home() / ".config" / "solidauth" / "config.toml"),
            None,
        ),
        ("SOLIDAUTH_CONFIG_FILE", os.environ.get("SOLIDAUTH_CONFIG_FILE", ""), None),
        ("Environment variables", "SOLIDAUTH_* vars", None),
    ]

    print("Configuration Sources (in order of precedence):\n")
    print(f"{'Source':<40} {'Status':<15} {'Path'}")
    print("-" * 80)

    for name, path_str, forced_status in sources:
        if forced_status is True:
            status = "✓ Active"
            path_display = ""
        elif name == "Environment variables":
            env_vars = sorted(k for k in os.environ if k.startswith("SOLIDAUTH_"))
            if env_vars:
                status = f"✓ {len(env_vars)} vars"
                path_display = ", ".join(env_vars[:3])
                if len(env_vars) > 3:
                    path_display += "..."
            else:
                status = "✗ No vars"
                path_display = ""
        elif not path_str:
            status = "✗ Not set"
            path_display = ""
        else:
            path = Path(path_str).expanduser()
            status = "✓ Found" if path.exists() else "✗ Not found"
            path_display = str(path)

        print(f"{name:<40} {status:<15} {path_display}")

    print("\nNote: Later sources override earlier ones.")
    return 0


def format_store_value(value: str, width: int = 60) -> str:
    """Render a store value for display with secrets redacted."""
    try:
        data = json.loads(value)
    except json.JSONDecodeError:
        text = value
    else:
        if isinstance(data, (dict, list)):
            text = json.dumps(redact_sensitive_data(data), sort_keys=True)
        else:
            text = value
    if len(text) > width:
        text = text[: width - 3] + "..."
    return text


def _open_store(path: str | None) -> KeyValueStore:
    from .config import SolidAuthSettings
    from .store import JsonFileStore

    return JsonFileStore(path or SolidAuthSettings().store.path)


def handle_store(args: argparse.Namespace) -> int:
    """Handle the store command.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command line arguments.

    Returns
    -------
    int
        Exit code.
    """
    from .config import SolidAuthSettings
    from .store import AuthStore

    store = _open_store(args.path)

    try:
        if args.action == "list":
            keys = sorted(store.keys())
            if not keys:
                print("Store is empty")
            for key in keys:
                print(f"{key:<50} {format_store_value(store.get(key) or '')}")
            return 0

        if args.action == "prune":
            ttl = args.ttl
            if ttl is None:
                ttl = SolidAuthSettings().store.correlation_ttl_seconds
            removed = AuthStore(store, correlation_ttl_seconds=ttl).prune_correlation_records()
            print(f"Pruned {len(removed)} correlation record(s)")
            return 0

        store.clear()
        print("Store cleared")
        return 0
    except StoreError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
