"""Shared pytest fixtures."""

from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import pytest

from devenv_update.config import UpdateConfig
from devenv_update.execution import CommandResult, CommandRunner
from devenv_update.sections import SectionContext

Response = Union[CommandResult, List[CommandResult]]


class FakeRunner(CommandRunner):
    """Scripted runner: maps a joined command line to canned results.

    A list of results is consumed in order and its last item repeats.
    Unknown commands succeed with no output.
    """

    def __init__(self, responses: Optional[Dict[str, Response]] = None, tools: Iterable[str] = (), dry_run=False):
        super().__init__(dry_run=dry_run)
        self.responses = dict(responses or {})
        self.tools = set(tools)
        self.calls: List[str] = []

    def exists(self, name: str) -> bool:
        return name in self.tools

    def run(self, cmd) -> CommandResult:
        key = " ".join(str(part) for part in cmd)
        self.calls.append(key)
        response = self.responses.get(key)
        if response is None:
            return CommandResult(0, [])
        if isinstance(response, list):
            return response.pop(0) if len(response) > 1 else response[0]
        return response

    def count(self, key: str) -> int:
        return sum(1 for call in self.calls if call == key)


def output(text: str, exit_code: int = 0) -> CommandResult:
    return CommandResult(exit_code, text.strip("\n").splitlines())


@pytest.fixture
def config(tmp_path: Path) -> UpdateConfig:
    return UpdateConfig(config_dir=tmp_path / "cfg")


@pytest.fixture
def make_runner():
    return FakeRunner


@pytest.fixture
def make_output():
    return output


@pytest.fixture
def make_ctx(config: UpdateConfig, tmp_path: Path):
    def factory(runner: CommandRunner, **kwargs) -> SectionContext:
        kwargs.setdefault("artifacts_dir", tmp_path / "artifacts")
        return SectionContext(runner=runner, config=config, **kwargs)

    return factory
