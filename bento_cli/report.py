from typing import Any, Dict, List

from bento_cli.errors import EXIT_REFUSED
from bento_cli.output import Output, envelope

AUTO_CONFIRM_ENV = "BENTO_AUTO_CONFIRM"


def refusal_message(name: str) -> str:
    return (
        f"Cannot run {name} without --confirm in non-interactive mode. "
        f"Re-run with --confirm or set {AUTO_CONFIRM_ENV}=true."
    )


class Reporter:
    """Turns the non-executed terminal states of a bulk operation into output."""

    def __init__(self, output: Output):
        self.output = output

    def no_work(self, name: str) -> None:
        if self.output.is_quiet():
            return
        if self.output.is_json():
            self.output.json(envelope(
                {"dryRun": True, "action": name, "wouldAffect": 0, "preview": []}, 0,
            ))
            return
        self.output.warn(f"No items found for {name}. Nothing to do.")

    def dry_run(self, name: str, count: int, preview: List[Dict[str, Any]]) -> None:
        if self.output.is_json():
            self.output.json(envelope(
                {"dryRun": True, "action": name, "wouldAffect": count, "preview": preview}, count,
            ))
            return
        self.output.info("Dry run complete. No changes were made.")

    def refused(self, name: str) -> None:
        message = refusal_message(name)
        if self.output.is_json():
            self.output.json_error(message, EXIT_REFUSED)
            return
        self.output.warn(message)

    def cancelled(self) -> None:
        if self.output.is_json():
            self.output.json(envelope({"cancelled": True}, 0))
            return
        self.output.warn("Operation cancelled.")
