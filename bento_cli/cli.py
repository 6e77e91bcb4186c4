import argparse
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv
from rich.logging import RichHandler

from bento_cli import __version__
from bento_cli.commands import register_all
from bento_cli.commands.common import global_flags
from bento_cli.config import ConfigError
from bento_cli.context import AppContext
from bento_cli.errors import EXIT_ERROR, EXIT_INTERRUPTED, EXIT_USAGE, ApiError, CommandError, usage_error
from bento_cli.output import OutputMode

log = logging.getLogger(__name__)


class BentoArgumentParser(argparse.ArgumentParser):
    """Raises usage errors instead of exiting so they reach the output layer."""

    def error(self, message):
        raise usage_error(f"{message} (see '{self.prog} --help')")


def build_parser() -> argparse.ArgumentParser:
    p = BentoArgumentParser(
        prog="bento",
        description="Bento CLI - command-line interface for Bento email marketing",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    p.add_argument("--quiet", action="store_true", help="Suppress non-essential output (errors still print)")
    p.add_argument("--debug", action="store_true", help="Log API requests to stderr")
    p.set_defaults(group_parser=p)

    sub = p.add_subparsers(dest="cmd", metavar="<command>")
    register_all(sub, [global_flags()])
    return p


def configure_logging(ctx: AppContext, debug: bool) -> None:
    handler = RichHandler(console=ctx.output.err_console, show_path=False)
    logging.basicConfig(level=logging.DEBUG if debug else logging.WARNING,
                        format="%(message)s", datefmt="[%X]", handlers=[handler], force=True)
    # urllib3 logs every connection at DEBUG; the client already logs requests
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def main(argv: Optional[List[str]] = None, ctx: Optional[AppContext] = None) -> int:
    argv = sys.argv[1:] if argv is None else list(argv)
    ctx = ctx or AppContext.create()
    out = ctx.output

    # Parse errors are reported before flags are known, so honour --json early
    if "--json" in argv:
        out.mode = OutputMode.JSON
    try:
        args = build_parser().parse_args(argv)
    except CommandError as ex:
        out.report_error(ex.message, ex.exit_code)
        return ex.exit_code

    if args.json and args.quiet:
        out.report_error("Cannot use --json and --quiet together.", EXIT_USAGE)
        return EXIT_USAGE
    out.mode = OutputMode.JSON if args.json else OutputMode.QUIET if args.quiet else OutputMode.NORMAL
    configure_logging(ctx, args.debug)

    handler = getattr(args, "handler", None)
    if handler is None:
        if out.is_json():
            out.json_error("No command provided. Pass a command or remove --json.", EXIT_USAGE)
            return EXIT_USAGE
        if not out.is_quiet():
            args.group_parser.print_help()
        return 0

    try:
        return handler(ctx, args)
    except CommandError as ex:
        out.report_error(ex.message, ex.exit_code, ex.details)
        return ex.exit_code
    except ApiError as ex:
        log.debug("API error %s (status %s)", ex.kind.value, ex.status_code)
        out.report_error(str(ex), ex.exit_code)
        return ex.exit_code
    except ConfigError as ex:
        out.report_error(str(ex), EXIT_ERROR)
        return EXIT_ERROR
    except KeyboardInterrupt:
        out.fail_spinner()
        out.report_error("Cancelled.", EXIT_INTERRUPTED)
        return EXIT_INTERRUPTED
    except Exception as ex:
        log.debug("Unhandled error", exc_info=True)
        out.fail_spinner()
        out.report_error(str(ex) or ex.__class__.__name__, EXIT_ERROR)
        return EXIT_ERROR


def run() -> None:
    load_dotenv()
    sys.exit(main())


if __name__ == "__main__":
    run()
