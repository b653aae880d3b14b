"""
Azure DevOps CLI Runner

Runs `az devops` subcommands (from the azure-devops extension of the Azure
CLI) and decodes their JSON output.
"""
import json
import logging
import os
import shutil
import subprocess

log = logging.getLogger(__name__)

USER_PAGE_SIZE = 500


class AzureCliError(RuntimeError):
    """Raised when an az command cannot be run or returns unusable output."""


class AzureCli:
    """
    Executes `az devops` commands against one organization.

    The personal access token is handed to the CLI through the
    AZURE_DEVOPS_EXT_PAT environment variable, which the azure-devops
    extension reads instead of requiring `az login`.
    """

    def __init__(self, org_url, pat, executable=None, runner=subprocess.run):
        self.org_url = org_url
        self.pat = pat
        self.executable = executable or self._resolve_executable()
        self._runner = runner

    @staticmethod
    def _resolve_executable():
        binary = shutil.which("az")
        if binary is None:
            raise AzureCliError("Azure CLI executable 'az' not found on PATH")
        return binary

    def run(self, *args):
        """
        Runs one az command and returns its decoded JSON output.

        Args:
            *args (str): Arguments after the executable, e.g. ("devops", "project", "list")

        Returns:
            The parsed JSON document (dict or list), or None for empty output

        Raises:
            AzureCliError: If the command fails or its output is not JSON
        """
        cmd = [self.executable, *args, "--org", self.org_url, "--output", "json"]
        env = dict(os.environ)
        env["AZURE_DEVOPS_EXT_PAT"] = self.pat
        log.debug(f"Running: {' '.join(cmd[1:])}")
        try:
            result = self._runner(cmd, capture_output=True, text=True, env=env, check=False)
        except OSError as e:
            raise AzureCliError(f"Could not run az: {e}") from e

        if result.returncode != 0:
            stderr = (result.stderr or "").strip().replace('\n', ' ')
            raise AzureCliError(f"az {' '.join(args)} failed (exit {result.returncode}): {stderr}")

        output = (result.stdout or "").strip()
        if not output:
            return None
        try:
            return json.loads(output)
        except json.JSONDecodeError as e:
            raise AzureCliError(f"az {' '.join(args)} returned invalid JSON: {e}") from e

    def list_user_entitlements(self):
        """
        Fetches every user entitlement in the organization, one page at a time.

        Returns:
            list: Raw entitlement records (each with 'id', 'user' and 'accessLevel')
        """
        members = []
        skip = 0
        while True:
            data = self.run("devops", "user", "list", "--top", str(USER_PAGE_SIZE), "--skip", str(skip))
            page = (data or {}).get("members", []) if isinstance(data, dict) else (data or [])
            members.extend(page)
            log.debug(f"  -> Found {len(page)} users on this page. Total users: {len(members)}")
            if len(page) < USER_PAGE_SIZE:
                return members
            skip += len(page)

    def list_projects(self):
        data = self.run("devops", "project", "list", "--top", "1000")
        page = (data or {}).get("value", []) if isinstance(data, dict) else (data or [])
        return [{"id": p.get("id"), "name": p.get("name")} for p in page]

    def list_teams(self, project_name):
        return self.run("devops", "team", "list", "--project", project_name) or []

    def list_team_members(self, project_name, team_name):
        return self.run("devops", "team", "list-member", "--project", project_name, "--team", team_name) or []
