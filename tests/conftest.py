import json
from typing import List
from unittest.mock import MagicMock

import pytest

from bento_cli.config import ConfigManager
from bento_cli.context import AppContext
from bento_cli.output import Output, OutputMode
from bento_cli.safety import Safety, SafetyConfig

ENV_VARS = (
    "BENTO_AUTO_CONFIRM", "BENTO_CONFIRM_THRESHOLD", "BENTO_SAMPLE_SIZE",
    "BENTO_PUBLISHABLE_KEY", "BENTO_SECRET_KEY", "BENTO_SITE_UUID",
    "BENTO_API_BASE", "BENTO_DASHBOARD_URL", "BENTO_TIMEOUT", "XDG_CONFIG_HOME",
)


class Prompter:
    """Stand-in for the interactive confirmation prompt."""

    def __init__(self, answer: bool = True):
        self.answer = answer
        self.messages: List[str] = []

    def __call__(self, message: str) -> bool:
        self.messages.append(message)
        return self.answer


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("BENTO_CONFIG_PATH", str(tmp_path / "config.json"))


@pytest.fixture()
def config_path(tmp_path) -> str:
    return str(tmp_path / "config.json")


@pytest.fixture()
def prompter() -> Prompter:
    return Prompter()


@pytest.fixture()
def client() -> MagicMock:
    return MagicMock(name="BentoClient")


@pytest.fixture()
def make_ctx(config_path, prompter, client):
    """Factory for an AppContext wired to stubs.

    Consoles write to sys.stdout/sys.stderr at call time, so ``capsys`` sees
    everything the command prints.
    """
    def factory(interactive: bool = False, environ=None, mode: OutputMode = OutputMode.NORMAL,
                with_client: bool = True, config: SafetyConfig = None) -> AppContext:
        environ = {} if environ is None else environ
        output = Output(mode)
        safety = Safety(output, config or SafetyConfig(), confirm_prompt=prompter,
                        is_interactive=lambda: interactive, environ=environ)
        return AppContext(output, ConfigManager(config_path), safety,
                          client=client if with_client else None,
                          client_factory=lambda profile: client, environ=environ)
    return factory


@pytest.fixture()
def ctx(make_ctx) -> AppContext:
    return make_ctx()


def envelope_from(text: str) -> dict:
    """The single JSON envelope printed on a stream."""
    lines = [line for line in text.splitlines() if line.strip()]
    assert len(lines) == 1, f"expected one envelope line, got: {text!r}"
    return json.loads(lines[0])
