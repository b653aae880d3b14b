import json
import subprocess

import pytest

from azdo_cli import USER_PAGE_SIZE, AzureCli, AzureCliError


class _Runner:
    def __init__(self, outputs):
        self._outputs = list(outputs)
        self.calls = []

    def __call__(self, cmd, **kwargs):
        self.calls.append((cmd, kwargs))
        stdout, returncode = self._outputs.pop(0)
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr="boom" if returncode else "")


def _cli(outputs):
    runner = _Runner(outputs)
    return AzureCli("https://dev.azure.com/contoso", "pat", executable="az", runner=runner), runner


def test_run_passes_org_output_and_token():
    cli, runner = _cli([(json.dumps([{"name": "Team A"}]), 0)])
    teams = cli.list_teams("Proj")

    assert teams == [{"name": "Team A"}]
    cmd, kwargs = runner.calls[0]
    assert cmd == [
        "az", "devops", "team", "list", "--project", "Proj",
        "--org", "https://dev.azure.com/contoso", "--output", "json",
    ]
    assert kwargs["env"]["AZURE_DEVOPS_EXT_PAT"] == "pat"


def test_non_zero_exit_raises():
    cli, _ = _cli([("", 1)])
    with pytest.raises(AzureCliError, match="exit 1"):
        cli.list_team_members("Proj", "Team A")


def test_invalid_json_raises():
    cli, _ = _cli([("not json", 0)])
    with pytest.raises(AzureCliError, match="invalid JSON"):
        cli.list_projects()


def test_list_user_entitlements_pages_until_short_page():
    full_page = {"members": [{"id": str(i)} for i in range(USER_PAGE_SIZE)]}
    last_page = {"members": [{"id": "last"}]}
    cli, runner = _cli([(json.dumps(full_page), 0), (json.dumps(last_page), 0)])

    members = cli.list_user_entitlements()

    assert len(members) == USER_PAGE_SIZE + 1
    second_cmd = runner.calls[1][0]
    assert second_cmd[second_cmd.index("--skip") + 1] == str(USER_PAGE_SIZE)


def test_list_projects_reads_value_envelope():
    cli, _ = _cli([(json.dumps({"value": [{"id": "1", "name": "One", "state": "wellFormed"}]}), 0)])
    assert cli.list_projects() == [{"id": "1", "name": "One"}]


def test_missing_executable_raises(monkeypatch):
    monkeypatch.setattr("azdo_cli.shutil.which", lambda _name: None)
    with pytest.raises(AzureCliError, match="not found"):
        AzureCli("https://dev.azure.com/contoso", "pat")
