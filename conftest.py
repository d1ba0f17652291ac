"""Shared fixtures: a recording PuppetDB client double and a sample configuration."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import pytest

from puppetdb_browser.PuppetDB.config import InstanceConfig, parse_config
from puppetdb_browser.PuppetDB.model import ProviderContext
from puppetdb_browser.PuppetDB.puppetdb import QueryResponse
from puppetdb_browser.PuppetDB.query import Expr, serialize


class RecordingClient:
    """Answers requests from canned data and remembers every call."""

    def __init__(self, responses: Dict[str, Any], calls: List[Tuple[str, Optional[str]]]) -> None:
        self.responses = responses
        self.calls = calls

    def request(self, resource: str, query: Optional[Expr] = None) -> QueryResponse:
        self.calls.append((resource, serialize(query)))
        return QueryResponse(resource=resource, data=self.responses[resource], status_code=200)


class RecordingFactory:
    def __init__(self, responses: Optional[Dict[str, Any]] = None) -> None:
        self.responses: Dict[str, Any] = dict(responses or {})
        self.calls: List[Tuple[str, Optional[str]]] = []
        self.configs: List[InstanceConfig] = []

    def __call__(self, config: InstanceConfig) -> RecordingClient:
        self.configs.append(config)
        return RecordingClient(self.responses, self.calls)


SAMPLE_REPORTS = [
    {
        "end_time": "2024-05-01T10:00:00.000Z",
        "environment": "production",
        "status": "changed",
        "noop": False,
        "puppet_version": "7.28.0",
        "producer": "puppet.example.com",
        "hash": "aaa111",
    },
    {
        "end_time": "2024-05-01T10:00:00.000Z",
        "environment": "production",
        "status": "unchanged",
        "noop": True,
        "puppet_version": "7.28.0",
        "producer": "puppet.example.com",
        "hash": "bbb222",
    },
]


@pytest.fixture
def config() -> Dict[str, InstanceConfig]:
    return parse_config({"pe1": {"puppetdb_url": "https://x", "cacert": "ca", "rbac_token": "t"}})


@pytest.fixture
def factory() -> RecordingFactory:
    return RecordingFactory(
        {
            "nodes": [{"certname": "n1", "deactivated": None}],
            "catalogs/n1": {"certname": "n1", "resources": [{"type": "Class", "title": "Main"}]},
            "facts": [
                {"certname": "n1", "name": "kernel", "value": "Linux"},
                {"certname": "n1", "name": "os", "value": {"family": "RedHat", "release": {"major": "9"}}},
            ],
            "reports": SAMPLE_REPORTS,
        }
    )


@pytest.fixture
def context(config, factory) -> ProviderContext:
    return ProviderContext(config=config, client_factory=factory)
