from unittest.mock import call

import pytest

from bento_cli.cli import main
from bento_cli.errors import EXIT_FILE_IO, EXIT_REFUSED, EXIT_USAGE, EXIT_VALIDATION, ApiError, Err, ErrorKind
from bento_cli.safety import SafetyConfig

from .conftest import envelope_from


@pytest.fixture()
def contacts(tmp_path):
    def _write(rows, name="contacts.csv", header="email,name,tags"):
        path = tmp_path / name
        path.write_text("\n".join([header, *rows]) + "\n", encoding="utf-8")
        return str(path)
    return _write


class TestTag:
    def test_add_single_email_with_confirm(self, make_ctx, client, capsys):
        ctx = make_ctx()
        code = main(["subscribers", "tag", "--email", "A@X.com", "--add", "vip", "--confirm", "--json"], ctx)
        assert code == 0
        client.add_tag.assert_called_once_with("a@x.com", "vip")
        client.remove_tag.assert_not_called()
        env = envelope_from(capsys.readouterr().out)
        assert env["data"] == {"updated": 1, "added": ["vip"], "removed": []}
        assert env["meta"]["count"] == 1

    def test_add_then_remove_per_email_in_order(self, make_ctx, client, tmp_path):
        path = tmp_path / "list.txt"
        path.write_text("a@x.com\nb@x.com\n", encoding="utf-8")
        ctx = make_ctx(interactive=True)
        code = main(["subscribers", "tag", "--file", str(path), "--add", "vip,beta",
                     "--remove", "trial", "--confirm"], ctx)
        assert code == 0
        assert client.method_calls == [
            call.add_tag("a@x.com", "vip"), call.add_tag("a@x.com", "beta"), call.remove_tag("a@x.com", "trial"),
            call.add_tag("b@x.com", "vip"), call.add_tag("b@x.com", "beta"), call.remove_tag("b@x.com", "trial"),
        ]

    def test_requires_add_or_remove(self, make_ctx, capsys):
        code = main(["subscribers", "tag", "--email", "a@x.com"], make_ctx())
        assert code == EXIT_USAGE
        assert "--add and/or --remove" in capsys.readouterr().err

    def test_requires_target(self, make_ctx):
        assert main(["subscribers", "tag", "--add", "vip"], make_ctx()) == EXIT_USAGE

    def test_small_non_dangerous_batch_runs_without_prompt(self, make_ctx, client, prompter):
        code = main(["subscribers", "tag", "--email", "a@x.com", "--add", "vip"], make_ctx(interactive=True))
        assert code == 0
        assert prompter.messages == []
        client.add_tag.assert_called_once()


class TestImport:
    def test_refused_without_confirm_when_not_interactive(self, make_ctx, client, contacts, capsys):
        path = contacts(["a@x.com,A,", "b@x.com,B,"])
        code = main(["subscribers", "import", path, "--limit", "1"], make_ctx(interactive=False))
        assert code == EXIT_REFUSED
        client.import_subscribers.assert_not_called()
        assert "Cannot run Import Subscribers without --confirm" in capsys.readouterr().err

    def test_dry_run_previews_without_importing(self, make_ctx, client, contacts, capsys):
        path = contacts(["a@x.com,A,vip", "b@x.com,B,", "c@x.com,C,"])
        code = main(["subscribers", "import", path, "--dry-run", "--json"], make_ctx())
        assert code == 0
        client.import_subscribers.assert_not_called()
        env = envelope_from(capsys.readouterr().out)
        assert env["data"]["dryRun"] is True
        assert env["data"]["action"] == "Import Subscribers"
        assert env["data"]["wouldAffect"] == 3
        assert [row["email"] for row in env["data"]["preview"]] == ["a@x.com", "b@x.com", "c@x.com"]

    def test_dry_run_human_summary(self, make_ctx, client, contacts, capsys):
        path = contacts(["a@x.com,A,vip", "b@x.com,B,", "c@x.com,C,"])
        assert main(["subscribers", "import", path, "--dry-run"], make_ctx()) == 0
        out = capsys.readouterr().out
        assert "Import Subscribers: 3 item(s)" in out
        assert "Dry run complete. No changes were made." in out
        client.import_subscribers.assert_not_called()

    def test_confirmed_import_sends_payload(self, make_ctx, client, contacts, capsys):
        client.import_subscribers.return_value = {"imported": 2, "failed": 0}
        path = contacts(["a@x.com,Alice,vip;beta,Acme", "b@x.com,,,"], header="email,name,tags,company")
        code = main(["subscribers", "import", path, "--confirm", "--json"], make_ctx())
        assert code == 0
        client.import_subscribers.assert_called_once_with([
            {"email": "a@x.com", "name": "Alice", "company": "Acme", "tags": "vip,beta"},
            {"email": "b@x.com"},
        ])
        env = envelope_from(capsys.readouterr().out)
        assert env["data"] == {"imported": 2}
        assert env["meta"]["count"] == 2

    def test_invalid_rows_abort_before_any_call(self, make_ctx, client, contacts, capsys):
        path = contacts(["a@x.com,A,", "broken,B,"])
        code = main(["subscribers", "import", path, "--confirm", "--json"], make_ctx())
        assert code == EXIT_VALIDATION
        client.import_subscribers.assert_not_called()
        env = envelope_from(capsys.readouterr().err)
        assert env["success"] is False
        assert env["meta"]["errors"][0]["line"] == 3

    def test_missing_file(self, make_ctx, tmp_path):
        assert main(["subscribers", "import", str(tmp_path / "none.csv")], make_ctx()) == EXIT_FILE_IO

    def test_declined_prompt(self, make_ctx, client, contacts, prompter):
        prompter.answer = False
        path = contacts(["a@x.com,A,"])
        assert main(["subscribers", "import", path], make_ctx(interactive=True)) == 0
        assert len(prompter.messages) == 1
        client.import_subscribers.assert_not_called()

    def test_api_failure_is_reported(self, make_ctx, client, contacts, capsys):
        client.import_subscribers.side_effect = ApiError(Err(ErrorKind.VALIDATION_ERROR, "Validation error: bad"))
        path = contacts(["a@x.com,A,"])
        code = main(["subscribers", "import", path, "--confirm", "--json"], make_ctx())
        assert code == EXIT_VALIDATION
        assert envelope_from(capsys.readouterr().err)["error"] == "Validation error: bad"


class TestPerEmail:
    def test_unsubscribe_large_file_with_confirm(self, make_ctx, client, prompter, contacts):
        emails = [f"user{i:02d}@x.com" for i in range(12)]
        path = contacts(emails, name="big.csv", header="email")
        ctx = make_ctx(interactive=True, config=SafetyConfig(confirm_threshold=10))
        assert main(["subscribers", "unsubscribe", "--file", path, "--confirm"], ctx) == 0
        assert prompter.messages == []
        assert client.unsubscribe.call_args_list == [call(e) for e in emails]

    def test_unsubscribe_envelope(self, make_ctx, client, capsys):
        code = main(["subscribers", "unsubscribe", "--email", "a@x.com", "--confirm", "--json"], make_ctx())
        assert code == 0
        assert envelope_from(capsys.readouterr().out)["data"] == {"updated": 1, "action": "unsubscribe"}

    def test_suppress_and_unsuppress(self, make_ctx, client, capsys):
        assert main(["subscribers", "suppress", "--email", "a@x.com", "--confirm"], make_ctx()) == 0
        client.unsubscribe.assert_called_once_with("a@x.com")
        assert main(["subscribers", "suppress", "--email", "a@x.com", "--unsuppress", "--confirm"], make_ctx()) == 0
        client.subscribe.assert_called_once_with("a@x.com")
        assert "Unsuppressed 1 subscriber(s)." in capsys.readouterr().out

    def test_subscribe_prompts_because_dangerous(self, make_ctx, client, prompter):
        assert main(["subscribers", "subscribe", "--email", "a@x.com"], make_ctx(interactive=True)) == 0
        assert prompter.messages == ["Proceed with Re-subscribe Subscribers on 1 item(s)?"]
        client.subscribe.assert_called_once_with("a@x.com")

    def test_dry_run_needs_no_credentials(self, make_ctx, capsys):
        ctx = make_ctx(with_client=False)
        code = main(["subscribers", "unsubscribe", "--email", "a@x.com", "--dry-run", "--json"], ctx)
        assert code == 0
        assert envelope_from(capsys.readouterr().out)["data"]["wouldAffect"] == 1

    def test_execution_without_credentials_fails(self, make_ctx, capsys):
        ctx = make_ctx(with_client=False)
        code = main(["subscribers", "unsubscribe", "--email", "a@x.com", "--confirm", "--json"], ctx)
        assert code == 1
        assert "bento auth login" in envelope_from(capsys.readouterr().err)["error"]

    def test_limit_applies_to_file_order(self, make_ctx, client, contacts):
        path = contacts(["c@x.com", "a@x.com", "b@x.com"], header="email")
        main(["subscribers", "unsubscribe", "--file", path, "--limit", "2", "--confirm"], make_ctx())
        assert client.unsubscribe.call_args_list == [call("c@x.com"), call("a@x.com")]

    def test_empty_list_is_no_op(self, make_ctx, client, tmp_path, capsys):
        path = tmp_path / "empty.txt"
        path.write_text("\n", encoding="utf-8")
        assert main(["subscribers", "unsubscribe", "--file", str(path), "--confirm"], make_ctx()) == 0
        client.unsubscribe.assert_not_called()
        assert "Nothing to do" in capsys.readouterr().err

    def test_bad_limit_is_usage_error(self, make_ctx, client, capsys):
        code = main(["subscribers", "unsubscribe", "--email", "a@x.com", "--limit", "many"], make_ctx())
        assert code == EXIT_USAGE
        assert "invalid integer value" in capsys.readouterr().err
        client.unsubscribe.assert_not_called()


class TestSearch:
    SUBSCRIBER = {
        "id": "1",
        "attributes": {
            "uuid": "u-1",
            "email": "a@x.com",
            "fields": {"first_name": "Ada", "plan": "pro"},
            "cached_tag_ids": ["10"],
            "unsubscribed_at": None,
        },
    }

    def test_found_with_tag_names(self, make_ctx, client, capsys):
        client.get_subscriber.return_value = self.SUBSCRIBER
        client.get_tags.return_value = [{"id": "10", "attributes": {"name": "vip"}}]
        assert main(["subscribers", "search", "--email", "a@x.com", "--json"], make_ctx()) == 0
        client.get_subscriber.assert_called_once_with(email="a@x.com", uuid=None)
        row = envelope_from(capsys.readouterr().out)["data"][0]
        assert row["name"] == "Ada"
        assert row["tags"] == ["vip"]
        assert row["status"] == "active"

    def test_tag_filter_misses(self, make_ctx, client, capsys):
        client.get_subscriber.return_value = self.SUBSCRIBER
        client.get_tags.return_value = [{"id": "10", "attributes": {"name": "vip"}}]
        assert main(["subscribers", "search", "--email", "a@x.com", "--tag", "lead", "--json"], make_ctx()) == 0
        assert envelope_from(capsys.readouterr().out)["data"] == []

    def test_field_filter(self, make_ctx, client, capsys):
        client.get_subscriber.return_value = self.SUBSCRIBER
        args = ["subscribers", "search", "--uuid", "u-1", "--field", "plan=pro", "--json"]
        assert main(args, make_ctx()) == 0
        assert len(envelope_from(capsys.readouterr().out)["data"]) == 1

    def test_not_found(self, make_ctx, client, capsys):
        client.get_subscriber.return_value = None
        assert main(["subscribers", "search", "--email", "a@x.com"], make_ctx()) == 0
        assert "No subscribers found." in capsys.readouterr().out

    def test_needs_email_or_uuid(self, make_ctx):
        assert main(["subscribers", "search"], make_ctx()) == EXIT_USAGE

    def test_bad_field_filter(self, make_ctx):
        assert main(["subscribers", "search", "--email", "a@x.com", "--field", "plan"], make_ctx()) == EXIT_USAGE
