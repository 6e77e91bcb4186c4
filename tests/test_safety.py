import json
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from bento_cli.errors import EXIT_OK, EXIT_REFUSED
from bento_cli.output import Output, OutputMode
from bento_cli.safety import (BulkOperation, Decision, Outcome, Safety, SafetyConfig, SafetyOptions, _ask,
                              coerce_positive_int, decide_confirmation, is_truthy_env, resolve_sample_size)

from .conftest import Prompter, envelope_from


def make_safety(mode=OutputMode.NORMAL, interactive=True, answer=True, environ=None, config=None):
    prompter = Prompter(answer)
    output = Output(mode)
    safety = Safety(output, config or SafetyConfig(), confirm_prompt=prompter,
                    is_interactive=lambda: interactive, environ=environ or {})
    return safety, prompter


def operation(items, dangerous=False, **kwargs):
    execute = MagicMock(side_effect=lambda chosen: len(chosen))
    return BulkOperation(name="Test Op", items=items, execute=execute, is_dangerous=dangerous, **kwargs), execute


class TestProtect:
    def test_empty_items_is_a_no_op(self, capsys):
        safety, prompter = make_safety()
        op, execute = operation([])
        result = safety.protect(op, SafetyOptions(confirm=True))
        assert result.outcome == Outcome.NO_OP
        assert result.exit_code == EXIT_OK
        execute.assert_not_called()
        assert prompter.messages == []
        assert "Nothing to do" in capsys.readouterr().err

    def test_empty_items_json_reports_zero(self, capsys):
        safety, _ = make_safety(mode=OutputMode.JSON)
        op, execute = operation([])
        safety.protect(op, SafetyOptions())
        env = envelope_from(capsys.readouterr().out)
        assert env["success"] is True
        assert env["data"]["wouldAffect"] == 0
        execute.assert_not_called()

    def test_limit_passes_a_prefix_in_order(self):
        safety, _ = make_safety()
        items = [f"user{i}@x.com" for i in range(8)]
        op, execute = operation(items)
        result = safety.protect(op, SafetyOptions(limit=3, confirm=True))
        execute.assert_called_once_with(items[:3])
        assert result.count == 3
        assert result.value == 3

    def test_limit_larger_than_items_keeps_everything(self):
        safety, _ = make_safety()
        op, execute = operation(["a", "b"])
        safety.protect(op, SafetyOptions(limit=50, confirm=True))
        execute.assert_called_once_with(["a", "b"])

    @pytest.mark.parametrize("confirm", [True, False])
    @pytest.mark.parametrize("dangerous", [True, False])
    def test_dry_run_never_executes(self, confirm, dangerous):
        safety, prompter = make_safety()
        op, execute = operation(list(range(20)), dangerous=dangerous)
        result = safety.protect(op, SafetyOptions(dry_run=True, confirm=confirm))
        assert result.outcome == Outcome.DRY_RUN
        assert result.count == 20
        execute.assert_not_called()
        assert prompter.messages == []

    def test_dry_run_json_envelope(self, capsys):
        safety, _ = make_safety(mode=OutputMode.JSON)
        op, _ = operation(["a@x.com", "b@x.com", "c@x.com"], format_item=lambda e, i: {"email": e})
        safety.protect(op, SafetyOptions(dry_run=True, limit=2))
        env = envelope_from(capsys.readouterr().out)
        assert env["data"] == {
            "dryRun": True,
            "action": "Test Op",
            "wouldAffect": 2,
            "preview": [{"email": "a@x.com"}, {"email": "b@x.com"}],
        }
        assert env["meta"]["count"] == 2

    def test_confirm_flag_skips_prompt(self):
        safety, prompter = make_safety()
        op, execute = operation(list(range(30)), dangerous=True)
        result = safety.protect(op, SafetyOptions(confirm=True))
        assert result.outcome == Outcome.EXECUTED
        execute.assert_called_once()
        assert prompter.messages == []

    @pytest.mark.parametrize("value", ["1", "true", "YES", " on "])
    def test_auto_confirm_env_skips_prompt(self, value):
        safety, prompter = make_safety(interactive=False, environ={"BENTO_AUTO_CONFIRM": value})
        op, execute = operation(list(range(30)), dangerous=True)
        assert safety.protect(op, SafetyOptions()).executed
        execute.assert_called_once()
        assert prompter.messages == []

    def test_non_interactive_without_confirm_refuses(self, capsys):
        safety, prompter = make_safety(interactive=False)
        op, execute = operation(["a"])
        result = safety.protect(op, SafetyOptions())
        assert result.outcome == Outcome.REFUSED
        assert result.exit_code == EXIT_REFUSED
        execute.assert_not_called()
        assert prompter.messages == []
        assert "without --confirm" in capsys.readouterr().err

    def test_refusal_json_goes_to_stderr(self, capsys):
        safety, _ = make_safety(mode=OutputMode.JSON, interactive=False)
        op, _ = operation(["a"])
        safety.protect(op, SafetyOptions())
        captured = capsys.readouterr()
        assert captured.out == ""
        env = envelope_from(captured.err)
        assert env["success"] is False
        assert env["meta"]["code"] == EXIT_REFUSED
        assert "BENTO_AUTO_CONFIRM" in env["error"]

    def test_threshold_prompts_once(self):
        safety, prompter = make_safety(config=SafetyConfig(confirm_threshold=10))
        op, execute = operation(list(range(10)))
        safety.protect(op, SafetyOptions())
        assert prompter.messages == ["Proceed with Test Op on 10 item(s)?"]
        execute.assert_called_once()

    def test_below_threshold_runs_without_prompt(self):
        safety, prompter = make_safety(config=SafetyConfig(confirm_threshold=10))
        op, execute = operation(list(range(9)))
        safety.protect(op, SafetyOptions())
        assert prompter.messages == []
        execute.assert_called_once()

    def test_dangerous_prompts_even_for_one_item(self):
        safety, prompter = make_safety()
        op, execute = operation(["a"], dangerous=True)
        safety.protect(op, SafetyOptions())
        assert len(prompter.messages) == 1
        execute.assert_called_once()

    def test_declined_prompt_cancels(self, capsys):
        safety, _ = make_safety(mode=OutputMode.JSON, answer=False)
        op, execute = operation(["a"], dangerous=True)
        result = safety.protect(op, SafetyOptions())
        assert result.outcome == Outcome.CANCELLED
        assert result.exit_code == EXIT_OK
        execute.assert_not_called()
        env = envelope_from(capsys.readouterr().out)
        assert env["success"] is True
        assert env["data"] == {"cancelled": True}

    def test_sample_is_independent_of_limit(self):
        safety, _ = make_safety()
        op, _ = operation(list(range(10)))
        for limit in (None, 5, 10):
            result = safety.protect(op, SafetyOptions(dry_run=True, sample=2, limit=limit))
            assert len(result.preview) == 2

    def test_default_sample_size_from_config(self):
        safety, _ = make_safety(config=SafetyConfig(default_sample_size=3))
        op, _ = operation(list(range(10)))
        result = safety.protect(op, SafetyOptions(dry_run=True))
        assert result.preview == [{"index": i, "value": str(i)} for i in range(3)]

    def test_execute_failure_propagates(self):
        safety, _ = make_safety()
        op = BulkOperation(name="Boom", items=["a"], execute=MagicMock(side_effect=RuntimeError("nope")))
        with pytest.raises(RuntimeError, match="nope"):
            safety.protect(op, SafetyOptions(confirm=True))

    def test_human_preview_mentions_sample_hint(self, capsys):
        safety, _ = make_safety()
        hook = MagicMock()
        op, _ = operation([f"u{i}@x.com" for i in range(7)], dangerous=True,
                          format_item=lambda e, i: {"email": e}, preview=hook)
        safety.protect(op, SafetyOptions(dry_run=True, sample=2))
        captured = capsys.readouterr()
        assert "cannot be undone" in captured.err
        assert "Previewing 2 of 7 item(s)" in captured.out
        assert "Dry run complete" in captured.out
        hook.assert_called_once_with(["u0@x.com", "u1@x.com"])

    def test_json_mode_skips_preview_hook(self, capsys):
        safety, _ = make_safety(mode=OutputMode.JSON)
        hook = MagicMock()
        op, _ = operation(["a"], preview=hook)
        safety.protect(op, SafetyOptions(dry_run=True))
        hook.assert_not_called()
        json.loads(capsys.readouterr().out)


class TestDecision:
    @pytest.mark.parametrize("kwargs, expected", [
        (dict(confirm=True, is_dangerous=True, interactive=False, auto_confirm=False), Decision.PROCEED),
        (dict(confirm=False, is_dangerous=True, interactive=False, auto_confirm=True), Decision.PROCEED),
        (dict(confirm=False, is_dangerous=False, interactive=False, auto_confirm=False), Decision.REFUSE),
        (dict(confirm=False, is_dangerous=True, interactive=True, auto_confirm=False), Decision.PROMPT),
        (dict(confirm=False, is_dangerous=False, interactive=True, auto_confirm=False), Decision.PROCEED),
    ])
    def test_gate_order(self, kwargs, expected):
        assert decide_confirmation(3, threshold=10, **kwargs) == expected

    def test_threshold_is_inclusive(self):
        common = dict(confirm=False, is_dangerous=False, interactive=True, auto_confirm=False, threshold=5)
        assert decide_confirmation(4, **common) == Decision.PROCEED
        assert decide_confirmation(5, **common) == Decision.PROMPT


class TestConfirmAction:
    def test_confirm_flag(self):
        safety, prompter = make_safety(interactive=False)
        assert safety.confirm_action("Really?", confirm=True) == Outcome.CONFIRMED
        assert prompter.messages == []

    def test_refuses_without_terminal(self, capsys):
        safety, _ = make_safety(interactive=False)
        assert safety.confirm_action("Really?", name="Delete Tag") == Outcome.REFUSED
        assert "Cannot run Delete Tag" in capsys.readouterr().err

    def test_prompt_answers(self):
        safety, prompter = make_safety(answer=False)
        assert safety.confirm_action("Really?") == Outcome.CANCELLED
        prompter.answer = True
        assert safety.confirm_action("Really?") == Outcome.CONFIRMED
        assert prompter.messages == ["Really?", "Really?"]

    def test_default_prompt_writes_to_stderr(self):
        with patch("bento_cli.safety.Confirm.ask", return_value=True) as ask:
            assert _ask("Proceed?") is True
        assert ask.call_args.args == ("Proceed?",)
        assert ask.call_args.kwargs["console"].stderr is True


class TestOptions:
    @pytest.mark.parametrize("raw, expected", [
        (None, None), (0, None), (-3, None), ("abc", None), (True, None),
        (2.9, 2), ("7", 7), (float("inf"), None),
    ])
    def test_coerce_positive_int(self, raw, expected):
        assert coerce_positive_int(raw) == expected

    def test_from_args(self):
        args = SimpleNamespace(dry_run=True, limit=0, sample=4, confirm=False)
        assert SafetyOptions.from_args(args) == SafetyOptions(dry_run=True, limit=None, sample=4, confirm=False)

    def test_from_args_missing_attributes(self):
        assert SafetyOptions.from_args(SimpleNamespace()) == SafetyOptions()

    def test_config_from_env(self):
        config = SafetyConfig.from_env({"BENTO_CONFIRM_THRESHOLD": "25", "BENTO_SAMPLE_SIZE": "-1"})
        assert config == SafetyConfig(confirm_threshold=25, default_sample_size=5)

    @pytest.mark.parametrize("value, expected", [
        (None, False), ("", False), ("0", False), ("false", False), ("True", True), (" yes ", True),
    ])
    def test_truthy_env(self, value, expected):
        assert is_truthy_env(value) is expected

    @pytest.mark.parametrize("requested, total, expected", [
        (None, 10, 5), (0, 10, 5), (-2, 10, 5), (2, 10, 2), (20, 3, 3), (None, 3, 3), (4, 0, 0),
    ])
    def test_resolve_sample_size(self, requested, total, expected):
        assert resolve_sample_size(requested, total, 5) == expected
