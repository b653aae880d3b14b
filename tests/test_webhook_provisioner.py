from unittest.mock import patch

import requests

from azdo_client import AzureDevOpsClient, AzureDevOpsError
from azdo_config import AdminConfig, RunOutcome
from project_selector import Project
import webhook_provisioner
from webhook_provisioner import (
    build_subscription_payload,
    find_subscription,
    provision_webhooks,
    run_webhook_provisioning,
)

URL = "https://ingest.example.com/hooks"
EVENTS = ("workitem.created", "workitem.updated")


def _config(**kwargs):
    values = {
        "organization": "contoso",
        "pat": "pat",
        "webhook_url": URL,
        "webhook_token": "bearer-123",
        "event_types": EVENTS,
    }
    values.update(kwargs)
    return AdminConfig(**values)


def _existing(project_id, event_type, url=URL):
    return {
        "eventType": event_type,
        "publisherInputs": {"projectId": project_id},
        "consumerInputs": {"url": url},
        "status": "enabled",
    }


class FakeClient:
    def __init__(self, projects=None, subscriptions=None, fail_events=(), fail_listing=False, fail_subscriptions=False):
        self.projects = projects if projects is not None else [{"id": "1", "name": "P1"}, {"id": "2", "name": "P2"}]
        self.subscriptions = subscriptions or []
        self.fail_events = set(fail_events)
        self.fail_listing = fail_listing
        self.fail_subscriptions = fail_subscriptions
        self.created = []

    def list_projects(self):
        if self.fail_listing:
            raise AzureDevOpsError("Authentication failed", status_code=401)
        return self.projects

    def list_subscriptions(self):
        if self.fail_subscriptions:
            raise AzureDevOpsError("HTTP Error 500", status_code=500)
        return list(self.subscriptions)

    def create_subscription(self, payload):
        if payload["eventType"] in self.fail_events:
            raise AzureDevOpsError("HTTP Error 400", status_code=400)
        self.created.append(payload)
        return dict(payload, id=f"sub-{len(self.created)}")


def _answers(*values):
    items = list(values)

    def prompt(_message):
        if not items:
            raise EOFError
        return items.pop(0)

    return prompt


def test_payload_shape():
    payload = build_subscription_payload("proj-1", "workitem.created", _config())
    assert payload["publisherId"] == "tfs"
    assert payload["consumerId"] == "webHooks"
    assert payload["consumerActionId"] == "httpRequest"
    assert payload["publisherInputs"] == {"projectId": "proj-1"}
    assert payload["consumerInputs"] == {
        "url": URL,
        "httpHeaders": "Authorization:Bearer bearer-123",
        "resourceDetailsToSend": "all",
        "messagesToSend": "none",
        "detailedMessagesToSend": "none",
    }


def test_custom_header_name():
    payload = build_subscription_payload("p", "workitem.created", _config(webhook_header="X-Ingest-Auth"))
    assert payload["consumerInputs"]["httpHeaders"] == "X-Ingest-Auth:Bearer bearer-123"


def test_find_subscription_requires_all_three_keys():
    subs = [_existing("1", "workitem.created", url="https://other.example.com")]
    assert find_subscription(subs, "1", "workitem.created", URL) is None
    subs.append(_existing("1", "workitem.created"))
    assert find_subscription(subs, "1", "workitem.created", URL) is subs[1]


def test_existing_subscriptions_mean_zero_creations():
    client = FakeClient()
    subs = [_existing("1", e) for e in EVENTS]
    summary = provision_webhooks(client, [Project("1", "P1")], subs, _config())
    assert client.created == []
    assert (summary.created, summary.existing, summary.failed) == (0, 2, 0)


def test_creates_only_missing_subscriptions():
    client = FakeClient()
    subs = [_existing("1", "workitem.created")]
    summary = provision_webhooks(client, [Project("1", "P1"), Project("2", "P2")], subs, _config())
    created = [(p["publisherInputs"]["projectId"], p["eventType"]) for p in client.created]
    assert created == [("1", "workitem.updated"), ("2", "workitem.created"), ("2", "workitem.updated")]
    assert summary.created == 3
    assert len(subs) == 4


def test_creation_failure_does_not_stop_other_items():
    client = FakeClient(fail_events={"workitem.created"})
    summary = provision_webhooks(client, [Project("1", "P1"), Project("2", "P2")], [], _config())
    assert [p["eventType"] for p in client.created] == ["workitem.updated", "workitem.updated"]
    assert summary.failed == 2
    assert summary.created == 2


def test_dry_run_creates_nothing():
    client = FakeClient()
    summary = provision_webhooks(client, [Project("1", "P1")], [], _config(dry_run=True))
    assert client.created == []
    assert summary.created == 2


def test_run_all_projects_completes():
    client = FakeClient()
    outcome = run_webhook_provisioning(client, _config(), prompt=_answers("3"))
    assert outcome is RunOutcome.COMPLETED
    assert len(client.created) == 4


def test_run_cancelled_selection():
    client = FakeClient()
    outcome = run_webhook_provisioning(client, _config(), prompt=_answers(""))
    assert outcome is RunOutcome.CANCELLED
    assert client.created == []


def test_run_fails_when_projects_cannot_be_listed():
    outcome = run_webhook_provisioning(FakeClient(fail_listing=True), _config(), prompt=_answers("3"))
    assert outcome is RunOutcome.FAILED


def test_run_continues_without_subscription_list():
    client = FakeClient(subscriptions=[_existing("1", e) for e in EVENTS], fail_subscriptions=True)
    outcome = run_webhook_provisioning(client, _config(), prompt=_answers("2", "P2", "y"))
    assert outcome is RunOutcome.COMPLETED
    assert [p["publisherInputs"]["projectId"] for p in client.created] == ["1", "1"]


def test_main_returns_config_error_without_settings(clean_env):
    clean_env.setenv("AZDO_ORG", "contoso")
    clean_env.setenv("AZDO_PAT", "secret")
    assert webhook_provisioner.main([]) == 2


def test_main_wires_client_and_exit_code(clean_env):
    clean_env.setenv("AZDO_ORG", "contoso")
    clean_env.setenv("AZDO_PAT", "secret")
    clean_env.setenv("AZDO_WEBHOOK_URL", URL)
    clean_env.setenv("AZDO_WEBHOOK_TOKEN", "bearer-123")
    seen = {}

    def fake_run(client, config):
        seen["org_url"] = client.org_url
        seen["dry_run"] = config.dry_run
        return RunOutcome.FAILED

    clean_env.setattr(webhook_provisioner, "run_webhook_provisioning", fake_run)
    assert webhook_provisioner.main(["--dry-run"]) == 1
    assert seen == {"org_url": "https://dev.azure.com/contoso", "dry_run": True}


class _SignInPage:
    status_code = 203
    headers = {}
    text = "<html>Sign in</html>"

    def raise_for_status(self) -> None:
        return None

    def json(self):
        raise requests.exceptions.JSONDecodeError("Expecting value", self.text, 0)


def test_sign_in_page_counts_each_creation_as_failed():
    client = AzureDevOpsClient("https://dev.azure.com/contoso", "pat")
    projects = [Project("1", "P1"), Project("2", "P2")]
    with patch.object(client.session, "request", return_value=_SignInPage()):
        summary = provision_webhooks(client, projects, [], _config())
    assert (summary.created, summary.failed) == (0, 4)


def test_sign_in_page_on_listing_fails_the_run_cleanly():
    client = AzureDevOpsClient("https://dev.azure.com/contoso", "pat")
    with patch.object(client.session, "request", return_value=_SignInPage()):
        outcome = run_webhook_provisioning(client, _config(), prompt=_answers("3"))
    assert outcome is RunOutcome.FAILED


def test_unreadable_subscription_list_degrades_to_empty():
    class UnreadableClient(FakeClient):
        def list_subscriptions(self):
            raise AzureDevOpsError("Invalid JSON in response", status_code=200)

    client = UnreadableClient()
    assert webhook_provisioner.fetch_existing_subscriptions(client) == []


def test_find_subscription_tolerates_null_inputs():
    subs = [
        {"eventType": "workitem.created", "publisherInputs": None, "consumerInputs": None},
        _existing("1", "workitem.created"),
    ]
    assert find_subscription(subs, "1", "workitem.created", URL) is subs[1]


def test_projects_without_id_are_skipped():
    client = FakeClient(projects=[{"id": None, "name": "Ghost"}, {"name": "Nameless"}, {"id": "2", "name": "P2"}])
    outcome = run_webhook_provisioning(client, _config(), prompt=_answers("3"))
    assert outcome is RunOutcome.COMPLETED
    assert {p["publisherInputs"]["projectId"] for p in client.created} == {"2"}
