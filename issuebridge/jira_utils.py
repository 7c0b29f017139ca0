"""Jira-side helpers: app URLs and the per-subscription objects given to handlers."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from issuebridge import config
from issuebridge.issue_keys import extract_project_keys


def _base_url(jira_host: Any) -> str:
    if not isinstance(jira_host, str):
        return ""
    return jira_host.strip().rstrip("/")


def get_jira_app_url(jira_host: Any) -> str:
    """Post-install page of the app inside a Jira site, or "" without a host."""
    base = _base_url(jira_host)
    if not base:
        return ""
    return f"{base}/plugins/servlet/ac/com.github.integration.{config.INSTANCE_NAME}/github-post-install-page"


def get_jira_marketplace_url(jira_host: Any) -> str:
    base = _base_url(jira_host)
    if not base:
        return ""
    return f"{base}/jira/marketplace/discover/app/{config.MARKETPLACE_APP_KEY}"


@dataclass
class JiraClient:
    """Destination handle for one subscription."""

    jira_host: str
    installation_id: int
    subscription_id: int | None = None

    @property
    def base_url(self) -> str:
        return _base_url(self.jira_host)

    def issue_url(self, issue_key: str) -> str:
        return f"{self.base_url}/browse/{issue_key}"


@dataclass
class JiraUtilities:
    """Per-subscription utility bundle wrapping the keys found in the event."""

    jira_host: str
    issue_keys: list[str] = field(default_factory=list)

    @property
    def project_keys(self) -> list[str]:
        return extract_project_keys(self.issue_keys)

    @property
    def app_url(self) -> str:
        return get_jira_app_url(self.jira_host)

    def issue_urls(self) -> dict[str, str]:
        base = _base_url(self.jira_host)
        return {key: f"{base}/browse/{key}" for key in self.issue_keys}


def build_jira_client(subscription: Any) -> JiraClient:
    return JiraClient(
        jira_host=subscription.jiraHost,
        installation_id=subscription.installationId,
        subscription_id=subscription.id,
    )
