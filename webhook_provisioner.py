#!/usr/bin/env python3
"""
Azure DevOps Webhook Provisioner

Ensures every selected project has a service hook subscription for each
configured work item event, forwarding events to an external ingestion URL
with a bearer token in a custom HTTP header. Existing subscriptions with the
same project, event type and URL are left alone, so re-running is safe.

Usage:
  python3 webhook_provisioner.py
  python3 webhook_provisioner.py --org <organization> --url <ingestion-url>
  python3 webhook_provisioner.py --dry-run

Dependencies:
  pip install requests python-dotenv

Configuration:
  Create a .env file with:
    AZDO_ORG, AZDO_PAT, AZDO_WEBHOOK_URL, AZDO_WEBHOOK_TOKEN
  Optional: AZDO_WEBHOOK_HEADER, AZDO_WEBHOOK_EVENTS
"""
import argparse
import logging
import sys
from dataclasses import dataclass

from azdo_client import AzureDevOpsClient, AzureDevOpsError
from azdo_config import (
    EXIT_CONFIG_ERROR,
    ConfigError,
    RunOutcome,
    add_common_arguments,
    load_config,
    setup_logging,
)
from project_selector import projects_from_api, select_projects

log = logging.getLogger(__name__)


@dataclass
class ProvisionSummary:
    created: int = 0
    existing: int = 0
    failed: int = 0


def build_subscription_payload(project_id, event_type, config):
    """
    Builds the body for a new web hook subscription.

    Args:
        project_id (str): ID of the project to subscribe to
        event_type (str): Work item event identifier, e.g. 'workitem.created'
        config (AdminConfig): Supplies the target URL, header name and bearer token

    Returns:
        dict: Payload for POST _apis/hooks/subscriptions
    """
    return {
        "publisherId": "tfs",
        "eventType": event_type,
        "resourceVersion": "1.0",
        "consumerId": "webHooks",
        "consumerActionId": "httpRequest",
        "publisherInputs": {
            "projectId": project_id,
        },
        "consumerInputs": {
            "url": config.webhook_url,
            "httpHeaders": f"{config.webhook_header}:Bearer {config.webhook_token}",
            "resourceDetailsToSend": "all",
            "messagesToSend": "none",
            "detailedMessagesToSend": "none",
        },
    }


def find_subscription(subscriptions, project_id, event_type, url):
    """Returns the first subscription matching (project, event type, URL), or None."""
    for sub in subscriptions:
        if (
            sub.get("eventType") == event_type
            and (sub.get("publisherInputs") or {}).get("projectId") == project_id
            and (sub.get("consumerInputs") or {}).get("url") == url
        ):
            return sub
    return None


def fetch_existing_subscriptions(client):
    """
    Fetches all existing subscriptions, degrading to an empty list on failure.

    Without the list, duplicate detection is off but provisioning still runs.
    """
    log.info("Fetching existing service hook subscriptions...")
    try:
        subscriptions = client.list_subscriptions()
    except AzureDevOpsError as e:
        log.warning(f"Could not fetch existing subscriptions ({e}); continuing without duplicate detection.")
        return []
    log.info(f"Found {len(subscriptions)} existing subscriptions.")
    return subscriptions


def provision_webhooks(client, projects, subscriptions, config):
    """
    Creates the missing subscriptions for every project and event type.

    A failure for one event type is logged and counted; the remaining event
    types and projects are still processed.

    Args:
        client (AzureDevOpsClient): The Azure DevOps API client instance
        projects (list): Selected Project objects
        subscriptions (list): Existing subscriptions; created ones are appended
        config (AdminConfig): Resolved configuration

    Returns:
        ProvisionSummary: Counts of created, existing and failed subscriptions
    """
    summary = ProvisionSummary()
    for project in projects:
        log.info(f"Project: {project.name}")
        for event_type in config.event_types:
            if find_subscription(subscriptions, project.id, event_type, config.webhook_url) is not None:
                log.info(f"  = {event_type}: already exists, skipping.")
                summary.existing += 1
                continue

            payload = build_subscription_payload(project.id, event_type, config)
            if config.dry_run:
                log.info(f"  ~ {event_type}: would be created (dry run).")
                summary.created += 1
                continue

            try:
                created = client.create_subscription(payload)
            except AzureDevOpsError as e:
                log.error(f"  ! {event_type}: creation failed: {e}")
                summary.failed += 1
                continue
            subscriptions.append(created or payload)
            log.info(f"  + {event_type}: created (id {(created or {}).get('id', 'unknown')}).")
            summary.created += 1
    return summary


def run_webhook_provisioning(client, config, prompt=input):
    """
    Orchestrates one provisioning run: list, select, provision, summarize.

    Returns:
        RunOutcome: FAILED if the project list cannot be obtained,
        CANCELLED if the user cancels the selection, COMPLETED otherwise
    """
    log.info(f"Organization: {config.organization}")
    log.info("Step 1: Fetching projects...")
    try:
        projects = projects_from_api(client.list_projects())
    except AzureDevOpsError as e:
        log.error(f"Could not list projects: {e}")
        return RunOutcome.FAILED
    if not projects:
        log.error("No projects found or accessible in this organization.")
        return RunOutcome.FAILED
    log.info(f"Found {len(projects)} projects.")

    log.info("Step 2: Selecting projects...")
    selected = select_projects(projects, prompt=prompt)
    if not selected:
        log.info("No projects selected. Nothing to do.")
        return RunOutcome.CANCELLED

    log.info("Step 3: Provisioning webhooks...")
    subscriptions = fetch_existing_subscriptions(client)
    summary = provision_webhooks(client, selected, subscriptions, config)

    verb = "would be created" if config.dry_run else "created"
    log.info(
        f"✅ Done. {summary.created} {verb}, {summary.existing} already present, {summary.failed} failed."
    )
    return RunOutcome.COMPLETED


def build_parser():
    parser = argparse.ArgumentParser(
        description="Azure DevOps Webhook Provisioner - ensure work item webhooks exist for selected projects.",
        epilog="""
Examples:
  python3 webhook_provisioner.py
  python3 webhook_provisioner.py --org contoso --url https://ingest.example.com/hooks
  python3 webhook_provisioner.py --dry-run
""",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    add_common_arguments(parser)
    parser.add_argument("--url", help="Ingestion URL to deliver events to (overrides AZDO_WEBHOOK_URL).")
    parser.add_argument("--dry-run", action="store_true", help="Show what would be created without creating anything.")
    return parser


def main(argv=None):
    """Entry point: parse flags, load configuration and run the provisioning."""
    args = build_parser().parse_args(argv)
    setup_logging(args.debug)

    try:
        config = load_config(args, require_webhook=True)
    except ConfigError as e:
        log.error(f"Config error: {e}")
        return EXIT_CONFIG_ERROR

    client = AzureDevOpsClient(config.org_url, config.pat, timeout=config.timeout_s)
    return run_webhook_provisioning(client, config).exit_code


if __name__ == "__main__":
    sys.exit(main())
