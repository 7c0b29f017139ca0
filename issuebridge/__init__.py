"""issuebridge: fan source-control events out to Jira subscriptions."""

__version__ = "0.1.0"
