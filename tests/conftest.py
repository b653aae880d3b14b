import pytest

from project_selector import Project


class ScriptedConsole:
    """Feeds canned answers to the selector and records everything it prints."""

    def __init__(self, answers):
        self._answers = list(answers)
        self.prompts = []
        self.lines = []

    def prompt(self, message):
        self.prompts.append(message)
        if not self._answers:
            raise EOFError
        return self._answers.pop(0)

    def out(self, line=""):
        self.lines.append(line)

    @property
    def text(self):
        return "\n".join(self.lines)

    @property
    def remaining(self):
        return len(self._answers)


@pytest.fixture
def console_factory():
    return ScriptedConsole


@pytest.fixture
def five_projects():
    return [
        Project("p1", "Echo"),
        Project("p2", "Alpha"),
        Project("p3", "Delta"),
        Project("p4", "Charlie"),
        Project("p5", "Bravo"),
    ]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in (
        "AZDO_ORG",
        "AZDO_PAT",
        "AZDO_WEBHOOK_URL",
        "AZDO_WEBHOOK_TOKEN",
        "AZDO_WEBHOOK_HEADER",
        "AZDO_WEBHOOK_EVENTS",
        "AZDO_TEAM_DELAY_S",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("azdo_config.load_dotenv", lambda: False)
    return monkeypatch
