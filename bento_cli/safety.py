"""
Guardrails for bulk mutations.

Every command that changes more than one record goes through
``Safety.protect``: it caps the item list (--limit), shows a preview
(--sample), stops on --dry-run, asks for confirmation when needed and only
then calls the operation's ``execute`` exactly once.

Confirmation rules, in order:
  1. --confirm or BENTO_AUTO_CONFIRM set   -> run without asking
  2. no terminal                          -> refuse
  3. operation marked dangerous           -> ask
  4. item count >= confirm threshold      -> ask
  5. otherwise                            -> run without asking
"""

import logging
import math
import os
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, Sequence, TypeVar

from rich.console import Console
from rich.prompt import Confirm

from bento_cli.errors import EXIT_OK, EXIT_REFUSED
from bento_cli.output import Output
from bento_cli.report import AUTO_CONFIRM_ENV, Reporter

log = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_CONFIRM_THRESHOLD = 10
DEFAULT_SAMPLE_SIZE = 5
TRUTHY = {"1", "true", "yes", "on"}


def coerce_positive_int(value: Any) -> Optional[int]:
    """Positive integer or None. Fractions are floored; junk and values <= 0 become None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(numeric) or numeric <= 0:
        return None
    return int(math.floor(numeric)) or None


def is_truthy_env(value: Optional[str]) -> bool:
    if not value:
        return False
    return value.strip().lower() in TRUTHY


@dataclass(frozen=True)
class SafetyConfig:
    confirm_threshold: int = DEFAULT_CONFIRM_THRESHOLD
    default_sample_size: int = DEFAULT_SAMPLE_SIZE

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SafetyConfig":
        environ = os.environ if environ is None else environ
        threshold = coerce_positive_int(environ.get("BENTO_CONFIRM_THRESHOLD"))
        sample = coerce_positive_int(environ.get("BENTO_SAMPLE_SIZE"))
        return cls(threshold or DEFAULT_CONFIRM_THRESHOLD, sample or DEFAULT_SAMPLE_SIZE)


@dataclass(frozen=True)
class SafetyOptions:
    dry_run: bool = False
    limit: Optional[int] = None
    sample: Optional[int] = None
    confirm: bool = False

    @classmethod
    def from_args(cls, args: Any) -> "SafetyOptions":
        """Normalize raw CLI flags (argparse namespace or anything with the attributes)."""
        return cls(
            dry_run=bool(getattr(args, "dry_run", False)),
            limit=coerce_positive_int(getattr(args, "limit", None)),
            sample=coerce_positive_int(getattr(args, "sample", None)),
            confirm=bool(getattr(args, "confirm", False)),
        )


@dataclass
class BulkOperation(Generic[T, R]):
    name: str
    items: Sequence[T]
    execute: Callable[[List[T]], R]
    format_item: Optional[Callable[[T, int], Dict[str, Any]]] = None
    preview: Optional[Callable[[List[T]], None]] = None
    is_dangerous: bool = False


class Decision(str, Enum):
    PROCEED = "proceed"
    PROMPT = "prompt"
    REFUSE = "refuse"


class Outcome(str, Enum):
    NO_OP = "no_op"
    DRY_RUN = "dry_run"
    REFUSED = "refused"
    CANCELLED = "cancelled"
    CONFIRMED = "confirmed"
    EXECUTED = "executed"


@dataclass
class ProtectResult(Generic[R]):
    outcome: Outcome
    count: int = 0
    value: Optional[R] = None
    preview: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def executed(self) -> bool:
        return self.outcome == Outcome.EXECUTED

    @property
    def exit_code(self) -> int:
        return EXIT_REFUSED if self.outcome == Outcome.REFUSED else EXIT_OK


def decide_confirmation(count: int, *, confirm: bool, is_dangerous: bool, interactive: bool,
                        auto_confirm: bool, threshold: int) -> Decision:
    if confirm or auto_confirm:
        return Decision.PROCEED
    if not interactive:
        return Decision.REFUSE
    if is_dangerous:
        return Decision.PROMPT
    if count >= threshold:
        return Decision.PROMPT
    return Decision.PROCEED


def resolve_sample_size(requested: Optional[int], total: int, default: int) -> int:
    if total <= 0:
        return 0
    if not requested or requested <= 0:
        return min(default, total)
    return min(requested, total)


def format_sample(operation: BulkOperation, sample: Sequence[Any]) -> List[Dict[str, Any]]:
    if operation.format_item:
        return [operation.format_item(item, index) for index, item in enumerate(sample)]
    rows = []
    for index, item in enumerate(sample):
        if isinstance(item, Mapping):
            rows.append(dict(item))
        else:
            rows.append({"index": index, "value": str(item)})
    return rows


def _ask(message: str) -> bool:
    # stdout is reserved for results and JSON envelopes
    return Confirm.ask(message, default=False, console=Console(stderr=True))


def _stdio_is_tty() -> bool:
    return sys.stdin.isatty() and sys.stdout.isatty()


class Safety:
    def __init__(self, output: Output, config: Optional[SafetyConfig] = None,
                 confirm_prompt: Callable[[str], bool] = _ask,
                 is_interactive: Callable[[], bool] = _stdio_is_tty,
                 environ: Optional[Mapping[str, str]] = None):
        self.output = output
        self.config = config or SafetyConfig()
        self.confirm_prompt = confirm_prompt
        self.is_interactive = is_interactive
        self.environ = os.environ if environ is None else environ
        self.reporter = Reporter(output)

    def auto_confirm_enabled(self) -> bool:
        return is_truthy_env(self.environ.get(AUTO_CONFIRM_ENV))

    def protect(self, operation: BulkOperation[T, R], options: SafetyOptions) -> ProtectResult[R]:
        items = list(operation.items)
        total = len(items)

        if total == 0:
            self.reporter.no_work(operation.name)
            return ProtectResult(Outcome.NO_OP)

        if options.limit and options.limit < total:
            self.output.info(f"Limiting {operation.name} to {options.limit} of {total} item(s).")
            items = items[:options.limit]

        count = len(items)
        sample_items = items[:resolve_sample_size(options.sample, count, self.config.default_sample_size)]
        formatted = format_sample(operation, sample_items)
        self.render_preview(operation, count, sample_items, formatted)

        if options.dry_run:
            self.reporter.dry_run(operation.name, count, formatted)
            return ProtectResult(Outcome.DRY_RUN, count, preview=formatted)

        decision = decide_confirmation(
            count,
            confirm=options.confirm,
            is_dangerous=operation.is_dangerous,
            interactive=self.is_interactive(),
            auto_confirm=self.auto_confirm_enabled(),
            threshold=self.config.confirm_threshold,
        )
        log.debug("%s: %d item(s), decision=%s", operation.name, count, decision.value)

        if decision == Decision.REFUSE:
            self.reporter.refused(operation.name)
            return ProtectResult(Outcome.REFUSED, count)

        if decision == Decision.PROMPT:
            if not self.confirm_prompt(f"Proceed with {operation.name} on {count} item(s)?"):
                self.reporter.cancelled()
                return ProtectResult(Outcome.CANCELLED, count)

        self.output.start_spinner(f"Executing {operation.name}...")
        try:
            value = operation.execute(items)
        except Exception:
            self.output.fail_spinner(f"{operation.name} failed")
            raise
        self.output.stop_spinner(f"{operation.name} complete")
        return ProtectResult(Outcome.EXECUTED, count, value=value)

    def confirm_action(self, message: str, confirm: bool = False, name: str = "operation") -> Outcome:
        """Gate a single irreversible action. Returns CONFIRMED, REFUSED or CANCELLED."""
        if confirm or self.auto_confirm_enabled():
            return Outcome.CONFIRMED
        if not self.is_interactive():
            self.reporter.refused(name)
            return Outcome.REFUSED
        if not self.confirm_prompt(message):
            self.reporter.cancelled()
            return Outcome.CANCELLED
        return Outcome.CONFIRMED

    def render_preview(self, operation: BulkOperation, count: int, sample_items: List[Any],
                       formatted: List[Dict[str, Any]]) -> None:
        if not self.output.is_human():
            return

        if operation.is_dangerous:
            self.output.warn("This operation cannot be undone. Use --dry-run to preview and --confirm to skip prompts.")

        self.output.info(f"{operation.name}: {count} item(s)")
        if formatted:
            self.output.table(formatted)
        else:
            self.output.info("No matching records to preview.")

        if count > len(formatted):
            self.output.info(
                f"Previewing {len(formatted)} of {count} item(s). Use --sample to change the sample size."
            )

        if operation.preview:
            operation.preview(sample_items)
