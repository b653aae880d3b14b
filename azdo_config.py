"""
Azure DevOps Admin Configuration

Shared configuration, logging setup and exit codes for the Azure DevOps
admin tools (webhook provisioning and team membership reporting).

Configuration:
  Create a .env file with at least:
    AZDO_ORG="your-organization"
    AZDO_PAT="your_personal_access_token"
"""
import enum
import logging
import os
import sys
from dataclasses import dataclass

from dotenv import load_dotenv

log = logging.getLogger(__name__)

API_VERSION = "7.1"
BASE_URL_TEMPLATE = "https://dev.azure.com/{organization}"

DEFAULT_EVENT_TYPES = (
    "workitem.created",
    "workitem.updated",
    "workitem.deleted",
    "workitem.restored",
    "workitem.commented",
)
DEFAULT_WEBHOOK_HEADER = "Authorization"
DEFAULT_TEAM_DELAY_S = 0.5
DEFAULT_TIMEOUT_S = 60

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG_ERROR = 2


class ConfigError(ValueError):
    """Raised when a required setting is missing or malformed."""


class RunOutcome(enum.Enum):
    """How a tool run ended. Cancelling a selection is not a failure."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def exit_code(self):
        return EXIT_FAILED if self is RunOutcome.FAILED else EXIT_OK


@dataclass(frozen=True)
class AdminConfig:
    organization: str
    pat: str
    webhook_url: str = ""
    webhook_token: str = ""
    webhook_header: str = DEFAULT_WEBHOOK_HEADER
    event_types: tuple = DEFAULT_EVENT_TYPES
    team_delay_s: float = DEFAULT_TEAM_DELAY_S
    timeout_s: int = DEFAULT_TIMEOUT_S
    dry_run: bool = False

    @property
    def org_url(self):
        return BASE_URL_TEMPLATE.format(organization=self.organization)


def parse_csv_list(raw):
    """Splits a comma-separated setting into a tuple of trimmed, non-empty values."""
    if not raw:
        return ()
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _parse_float(name, raw, default):
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ConfigError(f"{name} must not be negative, got {raw!r}")
    return value


def get_pat():
    """
    Gets the personal access token from the environment or a user prompt.

    Returns:
        str: The Azure DevOps personal access token

    Raises:
        ConfigError: If no token is available and the user enters none
    """
    pat = os.getenv("AZDO_PAT")
    if not pat:
        try:
            pat = input("Enter your Azure DevOps Personal Access Token: ").strip()
        except EOFError:
            pat = ""
        if not pat:
            raise ConfigError("AZDO_PAT is required.")
    return pat


def load_config(args, require_webhook=False):
    """
    Builds an AdminConfig from .env, the process environment and parsed CLI flags.

    CLI flags win over environment variables. The .env file is loaded without
    overriding variables that are already set.

    Args:
        args (argparse.Namespace): Parsed arguments. Recognized attributes are
            org, url, delay, timeout and dry_run; missing ones are ignored.
        require_webhook (bool): Whether the webhook URL and bearer token are mandatory

    Returns:
        AdminConfig: The resolved configuration

    Raises:
        ConfigError: If a required setting is missing or malformed
    """
    load_dotenv()

    organization = getattr(args, "org", None) or os.getenv("AZDO_ORG", "")
    organization = organization.strip()
    if not organization:
        raise ConfigError("AZDO_ORG (or --org) is required.")

    webhook_url = getattr(args, "url", None) or os.getenv("AZDO_WEBHOOK_URL", "")
    webhook_token = os.getenv("AZDO_WEBHOOK_TOKEN", "")
    event_types = parse_csv_list(os.getenv("AZDO_WEBHOOK_EVENTS")) or DEFAULT_EVENT_TYPES
    if require_webhook:
        if not webhook_url:
            raise ConfigError("AZDO_WEBHOOK_URL (or --url) is required.")
        if not webhook_token:
            raise ConfigError("AZDO_WEBHOOK_TOKEN is required.")

    delay = getattr(args, "delay", None)
    if delay is None:
        delay = _parse_float("AZDO_TEAM_DELAY_S", os.getenv("AZDO_TEAM_DELAY_S"), DEFAULT_TEAM_DELAY_S)
    elif delay < 0:
        raise ConfigError(f"--delay must not be negative, got {delay}")

    timeout = getattr(args, "timeout", None) or DEFAULT_TIMEOUT_S

    return AdminConfig(
        organization=organization,
        pat=get_pat(),
        webhook_url=webhook_url,
        webhook_token=webhook_token,
        webhook_header=os.getenv("AZDO_WEBHOOK_HEADER") or DEFAULT_WEBHOOK_HEADER,
        event_types=event_types,
        team_delay_s=delay,
        timeout_s=timeout,
        dry_run=bool(getattr(args, "dry_run", False)),
    )


def setup_logging(debug=False):
    log_level = logging.DEBUG if debug else logging.INFO
    # All logs go to stdout so they interleave with the interactive prompts.
    logging.basicConfig(level=log_level, format="%(levelname)s: %(message)s", stream=sys.stdout)


def add_common_arguments(parser):
    """Registers the flags shared by both tools on an argparse parser."""
    parser.add_argument("--org", metavar="ORGANIZATION", help="Azure DevOps organization name (overrides AZDO_ORG).")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging for verbose output.")
    parser.add_argument(
        "--timeout",
        type=int,
        default=DEFAULT_TIMEOUT_S,
        help=f"Request timeout in seconds (default: {DEFAULT_TIMEOUT_S}).",
    )
    return parser
