import argparse
from datetime import datetime
from typing import Any, Callable, Dict, Optional, TypeVar

from bento_cli.context import AppContext

T = TypeVar("T")


def integer_arg(value: str) -> int:
    try:
        return int(value, 10)
    except (TypeError, ValueError):
        raise argparse.ArgumentTypeError(f"invalid integer value: {value!r}")


def global_flags() -> argparse.ArgumentParser:
    """Output flags accepted after any subcommand too.

    Defaults are suppressed so a subcommand never overwrites a value given
    before it on the command line.
    """
    p = argparse.ArgumentParser(add_help=False)
    p.add_argument("--json", action="store_true", default=argparse.SUPPRESS,
                   help="Output machine-readable JSON")
    p.add_argument("--quiet", action="store_true", default=argparse.SUPPRESS,
                   help="Suppress non-essential output (errors still print)")
    p.add_argument("--debug", action="store_true", default=argparse.SUPPRESS,
                   help="Log API requests to stderr")
    return p


def add_safety_flags(p: argparse.ArgumentParser) -> argparse.ArgumentParser:
    p.add_argument("--dry-run", action="store_true", help="Preview changes without executing")
    p.add_argument("--limit", type=integer_arg, metavar="N", help="Limit the operation to N items")
    p.add_argument("--sample", type=integer_arg, metavar="N", help="Show N sample items in the preview")
    p.add_argument("--confirm", action="store_true", help="Skip confirmation prompts")
    return p


def add_group(sub, name: str, help_text: str, parents) -> Any:
    """Command group (e.g. ``tags``) whose own subcommands live in the returned subparsers."""
    group = sub.add_parser(name, help=help_text, description=help_text, parents=parents)
    group.set_defaults(group_parser=group)
    return group.add_subparsers(dest=f"{name}_cmd", metavar="<command>")


def fetch(ctx: AppContext, message: str, call: Callable[..., T], *args, **kwargs) -> T:
    """Run a read-only API call behind a spinner."""
    ctx.output.start_spinner(message)
    try:
        value = call(*args, **kwargs)
    except Exception:
        ctx.output.fail_spinner()
        raise
    ctx.output.stop_spinner()
    return value


def format_date(value: Optional[str], with_time: bool = False) -> str:
    if not value:
        return "N/A"
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return str(value)
    return parsed.strftime("%b %d, %Y %H:%M" if with_time else "%b %d, %Y")


def attributes(entity: Dict[str, Any]) -> Dict[str, Any]:
    return entity.get("attributes") or {}
