#!/usr/bin/env python3
"""
Azure DevOps Team Membership Report

Generates a CSV report of active users and the teams they belong to across
selected projects. Uses the azure-devops extension of the Azure CLI.

Usage:
  python3 team_membership_report.py
  python3 team_membership_report.py --org <organization> --output members.csv
  python3 team_membership_report.py --delay 1.0

Dependencies:
  pip install python-dotenv
  az extension add --name azure-devops

Configuration:
  Create a .env file with: AZDO_ORG, AZDO_PAT
  Optional: AZDO_TEAM_DELAY_S
"""
import argparse
import csv
import logging
import sys
import time

from azdo_cli import AzureCli, AzureCliError
from azdo_config import (
    EXIT_CONFIG_ERROR,
    EXIT_FAILED,
    ConfigError,
    RunOutcome,
    add_common_arguments,
    load_config,
    setup_logging,
)
from project_selector import projects_from_api, select_projects

log = logging.getLogger(__name__)

REPORT_COLUMNS = ["DisplayName", "Email", "Project", "TeamName", "Status"]


def sanitize_for_csv(value):
    """
    Sanitizes a value for CSV export to prevent formula injection.

    Args:
        value: The value to sanitize (can be any type)

    Returns:
        The sanitized value. If the value is a string starting with
        dangerous characters ('=', '+', '-', '@'), it prepends a single quote.
    """
    if isinstance(value, str) and value.startswith(('=', '+', '-', '@')):
        return f"'{value}"
    return value


def build_active_user_map(entitlements):
    """
    Indexes active user entitlements by lowercased user id.

    Args:
        entitlements (list): Raw records from `az devops user list`

    Returns:
        dict: user id -> {'display_name', 'email', 'status'} for active users only
    """
    active = {}
    for entry in entitlements:
        status = (entry.get("accessLevel") or {}).get("status") or ""
        if status.lower() != "active":
            continue
        user = entry.get("user") or {}
        user_id = entry.get("id") or user.get("originId")
        if not user_id:
            continue
        active[str(user_id).lower()] = {
            "display_name": user.get("displayName", ""),
            "email": user.get("mailAddress") or user.get("principalName", ""),
            "status": status,
        }
    return active


def collect_team_rows(cli, projects, active_users, delay_s):
    """
    Builds one report row per active member per team per project.

    Failures listing a project's teams or a team's members are logged and
    that project or team is skipped.

    Args:
        cli (AzureCli): The Azure DevOps CLI runner
        projects (list): Selected Project objects
        active_users (dict): Output of build_active_user_map
        delay_s (float): Pause after each team member lookup

    Returns:
        list: Row dicts keyed by REPORT_COLUMNS
    """
    rows = []
    for project in projects:
        log.info(f"Project: {project.name}")
        try:
            teams = cli.list_teams(project.name)
        except AzureCliError as e:
            log.error(f"  Could not list teams for project {project.name}: {e}")
            continue
        log.debug(f"  -> Found {len(teams)} teams")

        for team in teams:
            team_name = team.get("name", "")
            try:
                members = cli.list_team_members(project.name, team_name)
            except AzureCliError as e:
                log.error(f"  Could not list members of team {team_name}: {e}")
                continue
            finally:
                time.sleep(delay_s)

            kept = 0
            for member in members:
                identity = member.get("identity") or {}
                user = active_users.get(str(identity.get("id", "")).lower())
                if user is None:
                    continue
                rows.append({
                    "DisplayName": user["display_name"] or identity.get("displayName", ""),
                    "Email": user["email"] or identity.get("uniqueName", ""),
                    "Project": project.name,
                    "TeamName": team_name,
                    "Status": user["status"],
                })
                kept += 1
            log.info(f"  Team {team_name}: {kept} active of {len(members)} members")
    return rows


def write_csv_report(rows, filename):
    """
    Writes the report rows to a CSV file.

    Every cell is quoted and sanitized to prevent CSV injection. An empty
    report still produces a file with the header row.

    Args:
        rows (list): Row dicts keyed by REPORT_COLUMNS
        filename (str): Output filename for the CSV report

    Raises:
        OSError: If the file cannot be written
    """
    if not rows:
        log.warning("No active team members found; writing header only.")

    log.info(f"Writing CSV report: {filename}")
    with open(filename, "w", newline="", encoding="utf-8") as csvfile:
        writer = csv.writer(csvfile, quoting=csv.QUOTE_ALL)
        writer.writerow(REPORT_COLUMNS)
        for row in rows:
            writer.writerow([sanitize_for_csv(row.get(k, "")) for k in REPORT_COLUMNS])
    log.info(f"✅ Report generation complete: {filename} ({len(rows)} rows)")


def run_team_report(cli, config, output_filename, prompt=input):
    """
    Orchestrates one report run: active users, projects, selection, teams, CSV.

    Returns:
        RunOutcome: FAILED if users or projects cannot be listed or the CSV
        cannot be written, CANCELLED if the user cancels, COMPLETED otherwise
    """
    log.info(f"Organization: {config.organization}")
    log.info("Step 1: Fetching active users...")
    try:
        active_users = build_active_user_map(cli.list_user_entitlements())
    except AzureCliError as e:
        log.error(f"Could not list users: {e}")
        return RunOutcome.FAILED
    log.info(f"Found {len(active_users)} active users.")

    log.info("Step 2: Fetching projects...")
    try:
        projects = projects_from_api(cli.list_projects())
    except AzureCliError as e:
        log.error(f"Could not list projects: {e}")
        return RunOutcome.FAILED
    if not projects:
        log.error("No projects found or accessible in this organization.")
        return RunOutcome.FAILED
    log.info(f"Found {len(projects)} projects.")

    log.info("Step 3: Selecting projects...")
    selected = select_projects(projects, prompt=prompt)
    if not selected:
        log.info("No projects selected. Nothing to do.")
        return RunOutcome.CANCELLED

    log.info("Step 4: Collecting team memberships...")
    rows = collect_team_rows(cli, selected, active_users, config.team_delay_s)

    log.info("Step 5: Generating report...")
    try:
        write_csv_report(rows, output_filename)
    except OSError as e:
        log.error(f"Could not write report {output_filename}: {e}")
        return RunOutcome.FAILED
    return RunOutcome.COMPLETED


def build_parser():
    parser = argparse.ArgumentParser(
        description="Azure DevOps Team Membership Report - export active users per team to CSV.",
        epilog="""
Examples:
  python3 team_membership_report.py
  python3 team_membership_report.py --org contoso --output contoso_members.csv
""",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    add_common_arguments(parser)
    parser.add_argument("--output", metavar="FILE", help="CSV output path (default: azdo_team_members_<org>.csv).")
    parser.add_argument("--delay", type=float, help="Seconds to wait between team member lookups (default: 0.5).")
    return parser


def main(argv=None):
    """Entry point: parse flags, load configuration and generate the report."""
    args = build_parser().parse_args(argv)
    setup_logging(args.debug)

    try:
        config = load_config(args)
    except ConfigError as e:
        log.error(f"Config error: {e}")
        return EXIT_CONFIG_ERROR

    try:
        cli = AzureCli(config.org_url, config.pat)
    except AzureCliError as e:
        log.error(str(e))
        return EXIT_FAILED

    output_filename = args.output or f"azdo_team_members_{config.organization}.csv"
    return run_team_report(cli, config, output_filename).exit_code


if __name__ == "__main__":
    sys.exit(main())
