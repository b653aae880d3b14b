"""
Azure DevOps REST Client

Thin wrapper around the Azure DevOps organization REST API used by the
admin tools: project listing and service hook subscriptions.
"""
import logging

import requests

from azdo_config import API_VERSION

log = logging.getLogger(__name__)

CONTINUATION_HEADER = "x-ms-continuationtoken"
PROJECT_PAGE_SIZE = 100


class AzureDevOpsError(Exception):
    """Raised when a request to the Azure DevOps REST API fails."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class AzureDevOpsClient:
    """
    A client for interacting with the Azure DevOps REST API.

    This class handles:
    - Authentication via personal access token (basic auth, empty username)
    - Continuation-token paging for project listing
    - Error logging, with failures surfaced as AzureDevOpsError
    - Listing and creating service hook subscriptions
    """

    def __init__(self, org_url, pat, timeout=60):
        """
        Initialize the Azure DevOps API client.

        Args:
            org_url (str): Organization base URL, e.g. https://dev.azure.com/contoso
            pat (str): Personal access token for authentication
            timeout (int): Request timeout in seconds (default: 60)

        Raises:
            ValueError: If pat is not provided
        """
        if not pat:
            raise ValueError("Personal access token is required.")

        self.org_url = org_url.rstrip("/")
        self.timeout = timeout
        self.session = self._create_session(pat)

    def _create_session(self, pat):
        session = requests.Session()
        session.auth = ("", pat)
        session.headers.update({
            "Accept": "application/json",
            "Content-Type": "application/json",
        })
        return session

    def _request(self, method, url, params=None, json=None):
        """
        Makes an API request using the configured session.

        Args:
            method (str): HTTP method (e.g., 'GET', 'POST')
            url (str): The API endpoint URL
            params (dict, optional): Query parameters for the request
            json (dict, optional): JSON body for the request

        Returns:
            requests.Response: The response object

        Raises:
            AzureDevOpsError: For HTTP error statuses, the 203 sign-in page and connection failures.
        """
        query = {"api-version": API_VERSION}
        if params:
            query.update(params)
        try:
            response = self.session.request(method, url, params=query, json=json, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code
            if status in [401, 403]:
                message = f"Authentication failed (HTTP {status}). Please check your AZDO_PAT."
            elif status == 404:
                message = f"Resource not found (HTTP 404) at {url}. Check the organization name."
            else:
                error_details = e.response.text.replace('\n', ' ').replace('\r', '')
                message = f"HTTP Error {status} for {url}: {error_details}"
            log.error(message)
            raise AzureDevOpsError(message, status_code=status) from e
        except requests.exceptions.RequestException as e:
            message = f"API request failed for {url}: {e}"
            log.error(message)
            raise AzureDevOpsError(message) from e

        # A bad or expired PAT gets a 203 with an HTML sign-in page.
        if response.status_code == 203:
            message = "Authentication failed (HTTP 203 sign-in page). Please check your AZDO_PAT."
            log.error(message)
            raise AzureDevOpsError(message, status_code=203)
        return response

    def _json(self, response, url):
        try:
            return response.json()
        except ValueError as e:
            message = f"Invalid JSON in response from {url}: {e}"
            log.error(message)
            raise AzureDevOpsError(message, status_code=response.status_code) from e

    def list_projects(self):
        """
        Fetches every project in the organization.

        Azure DevOps pages the project list and hands back the next page's
        token in the x-ms-continuationtoken response header.

        Returns:
            list: List of dicts with 'id' and 'name' for every project

        Raises:
            AzureDevOpsError: If any page cannot be fetched
        """
        url = f"{self.org_url}/_apis/projects"
        projects = []
        continuation = None
        while True:
            params = {"$top": PROJECT_PAGE_SIZE}
            if continuation:
                params["continuationToken"] = continuation
            log.debug(f"Fetching projects page (continuation={continuation})")
            response = self._request("GET", url, params=params)
            page = self._json(response, url).get("value", [])
            projects.extend({"id": p.get("id"), "name": p.get("name")} for p in page)
            continuation = response.headers.get(CONTINUATION_HEADER)
            if not continuation or not page:
                break
        log.debug(f"Fetched {len(projects)} projects in total")
        return projects

    def list_subscriptions(self):
        url = f"{self.org_url}/_apis/hooks/subscriptions"
        response = self._request("GET", url)
        return self._json(response, url).get("value", [])

    def create_subscription(self, payload):
        """
        Creates a service hook subscription.

        Args:
            payload (dict): Subscription body as accepted by the hooks API

        Returns:
            dict: The created subscription as returned by the API

        Raises:
            AzureDevOpsError: If the request fails
        """
        url = f"{self.org_url}/_apis/hooks/subscriptions"
        response = self._request("POST", url, json=payload)
        return self._json(response, url)
