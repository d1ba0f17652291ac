from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Type

from puppetdb_browser.base import Fetch, ProviderObject
from puppetdb_browser.errors import AuthConfigError, MalformedResponseError, UnknownEntryError
from puppetdb_browser.PuppetDB.config import InstanceConfig
from puppetdb_browser.PuppetDB.puppetdb import PuppetDBClient, QueryResponse, build_client
from puppetdb_browser.PuppetDB.query import and_, equals, extract

logger = logging.getLogger(__name__)

NODES_DIR = "nodes"
CATALOG_FILE = "catalog.json"
FACTS_DIR = "facts"
REPORTS_DIR = "reports"

# Reports rely on end_time and hash. The others are included as useful metadata.
REPORT_METADATA_FIELDS: Dict[str, str] = {
    "end_time": "string",
    "environment": "string",
    "status": "string",
    "noop": "boolean",
    "puppet_version": "string",
    "producer": "string",
    "hash": "string",
}

REPORT_METADATA_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {k: {"type": v} for k, v in REPORT_METADATA_FIELDS.items()},
}


def make_readable(value: Any) -> str:
    """Strings pass through untouched; anything else is pretty-printed JSON."""
    if isinstance(value, str):
        return value
    return json.dumps(value, indent=2)


def parse_timestamp(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError) as exc:
        raise MalformedResponseError(f"Invalid report end_time: {value!r}") from exc


def _records(response: QueryResponse) -> List[Dict[str, Any]]:
    data = response.data
    if not isinstance(data, list) or not all(isinstance(r, dict) for r in data):
        raise MalformedResponseError(
            f"Expected a list of records from {response.resource}, got {type(data).__name__}"
        )
    return data


def _require(record: Dict[str, Any], key: str, resource: str) -> Any:
    if key not in record:
        raise MalformedResponseError(f"Record from {resource} is missing '{key}'")
    return record[key]


@dataclass(frozen=True)
class ProviderContext:
    """Root configuration shared (read-only) by every entry of one provider."""

    config: Mapping[str, InstanceConfig]
    client_factory: Callable[[InstanceConfig], PuppetDBClient] = build_client

    def client(self, pe_name: str) -> PuppetDBClient:
        conf = self.config.get(pe_name)
        if conf is None:
            raise AuthConfigError(f"No configuration for instance '{pe_name}'")
        return self.client_factory(conf)


@dataclass(frozen=True)
class PuppetEntry(ProviderObject):
    context: ProviderContext = field(repr=False, compare=False)


@dataclass(frozen=True)
class WPPuppetRoot(PuppetEntry):
    LABEL = "puppet"
    SINGLETON = True
    PARENT_OF = ("WPInstance",)

    @property
    def id(self) -> str:
        return "/"

    def identity(self) -> Tuple[str, ...]:
        return (self.LABEL,)

    def list_children(self) -> List["WPInstance"]:
        return [WPInstance(title=name, context=self.context) for name in self.context.config]


@dataclass(frozen=True)
class WPInstance(PuppetEntry):
    """One configured PuppetDB endpoint; its title is the instance name."""

    LABEL = "pe_instance"
    PARENT_OF = ("WPNodesCollection",)

    @property
    def id(self) -> str:
        return f"/{self.title}"

    def identity(self) -> Tuple[str, ...]:
        return (self.title,)

    def list_children(self) -> List["WPNodesCollection"]:
        return [WPNodesCollection(title=NODES_DIR, context=self.context, pe_name=self.title)]


@dataclass(frozen=True)
class WPNodesCollection(PuppetEntry):
    pe_name: str

    LABEL = "nodes_dir"
    SINGLETON = True
    PARENT_OF = ("WPNode",)
    STATE_FIELDS = ("pe_name",)

    @property
    def id(self) -> str:
        return f"/{self.pe_name}/{self.title}"

    def identity(self) -> Tuple[str, ...]:
        return (self.pe_name, NODES_DIR)

    def list_children(self) -> List["WPNode"]:
        response = self.context.client(self.pe_name).request("nodes", None)
        return [
            WPNode(
                title=str(_require(node, "certname", response.resource)),
                context=self.context,
                pe_name=self.pe_name,
                metadata=node,
            )
            for node in _records(response)
        ]


@dataclass(frozen=True)
class WPNode(PuppetEntry):
    """A managed host. Its three children are built once, at construction."""

    pe_name: str
    metadata: Optional[Dict[str, Any]] = field(default=None, compare=False)
    _children: Tuple[PuppetEntry, ...] = field(init=False, repr=False, compare=False)

    LABEL = "node"
    PARENT_OF = ("WPCatalog", "WPFactsCollection", "WPReportsCollection")
    STATE_FIELDS = ("pe_name",)
    FETCH = Fetch.EAGER

    def __post_init__(self) -> None:
        children = (
            WPCatalog(title=CATALOG_FILE, context=self.context, node_name=self.title, pe_name=self.pe_name),
            WPFactsCollection(title=FACTS_DIR, context=self.context, node_name=self.title, pe_name=self.pe_name),
            WPReportsCollection(title=REPORTS_DIR, context=self.context, node_name=self.title, pe_name=self.pe_name),
        )
        object.__setattr__(self, "_children", children)

    @property
    def id(self) -> str:
        return f"/{self.pe_name}/{NODES_DIR}/{self.title}"

    def identity(self) -> Tuple[str, ...]:
        return (self.pe_name, self.title)

    def list_children(self) -> Tuple[PuppetEntry, ...]:
        return self._children

    def prefetched_children(self) -> Tuple[PuppetEntry, ...]:
        return self._children

    def attached_metadata(self) -> Optional[Dict[str, Any]]:
        return self.metadata


@dataclass(frozen=True)
class NodeScopedEntry(PuppetEntry):
    node_name: str
    pe_name: str

    STATE_FIELDS = ("node_name", "pe_name")

    @property
    def id(self) -> str:
        return f"/{self.pe_name}/{NODES_DIR}/{self.node_name}/{self.title}"


@dataclass(frozen=True)
class WPCatalog(NodeScopedEntry):
    LABEL = "catalog"
    SINGLETON = True

    def identity(self) -> Tuple[str, ...]:
        return (self.pe_name, self.node_name, "catalog")

    def read(self) -> str:
        response = self.context.client(self.pe_name).request(f"catalogs/{self.node_name}", None)
        return make_readable(response.data)


@dataclass(frozen=True)
class WPFactsCollection(NodeScopedEntry):
    LABEL = "facts_dir"
    SINGLETON = True
    PARENT_OF = ("WPFact",)

    def identity(self) -> Tuple[str, ...]:
        return (self.pe_name, self.node_name, FACTS_DIR)

    def list_children(self) -> List["WPFact"]:
        response = self.context.client(self.pe_name).request(
            "facts", equals("certname", self.node_name)
        )
        return [
            WPFact(
                title=str(_require(fact, "name", response.resource)),
                context=self.context,
                value=_require(fact, "value", response.resource),
                node_name=self.node_name,
                pe_name=self.pe_name,
            )
            for fact in _records(response)
        ]


@dataclass(frozen=True)
class WPFact(PuppetEntry):
    """A fact value, captured from the facts listing."""

    value: Any
    node_name: str
    pe_name: str
    _content: str = field(init=False, repr=False, compare=False)

    LABEL = "fact"
    STATE_FIELDS = ("value", "node_name", "pe_name")
    FETCH = Fetch.EAGER

    def __post_init__(self) -> None:
        object.__setattr__(self, "_content", make_readable(self.value))

    @property
    def id(self) -> str:
        return f"/{self.pe_name}/{NODES_DIR}/{self.node_name}/{FACTS_DIR}/{self.title}"

    def identity(self) -> Tuple[str, ...]:
        return (self.pe_name, self.node_name, FACTS_DIR, self.title)

    def read(self) -> str:
        return self._content

    def prefetched_content(self) -> str:
        return self._content


@dataclass(frozen=True)
class WPReportsCollection(NodeScopedEntry):
    LABEL = "reports_dir"
    SINGLETON = True
    PARENT_OF = ("WPReport",)

    def identity(self) -> Tuple[str, ...]:
        return (self.pe_name, self.node_name, REPORTS_DIR)

    def list_children(self) -> List["WPReport"]:
        response = self.context.client(self.pe_name).request(
            "reports",
            extract(list(REPORT_METADATA_FIELDS), equals("certname", self.node_name)),
        )
        return [
            WPReport(
                title=str(_require(report, "end_time", response.resource)),
                context=self.context,
                node_name=self.node_name,
                pe_name=self.pe_name,
                hash=str(_require(report, "hash", response.resource)),
                metadata=report,
            )
            for report in _records(response)
        ]


@dataclass(frozen=True)
class WPReport(PuppetEntry):
    """One Puppet run, titled by its end_time and identified by its hash."""

    node_name: str
    pe_name: str
    hash: str
    metadata: Optional[Dict[str, Any]] = field(default=None, compare=False)
    mtime: datetime = field(init=False, compare=False)

    LABEL = "report"
    STATE_FIELDS = ("node_name", "pe_name", "hash")
    METADATA_SCHEMA = REPORT_METADATA_SCHEMA
    ATTRIBUTES = ("mtime",)

    def __post_init__(self) -> None:
        object.__setattr__(self, "mtime", parse_timestamp(self.title))

    @property
    def segment(self) -> str:
        return f"{self.title}-{self.hash}"

    @property
    def id(self) -> str:
        return f"/{self.pe_name}/{NODES_DIR}/{self.node_name}/{REPORTS_DIR}/{self.segment}"

    def identity(self) -> Tuple[str, ...]:
        return (self.pe_name, self.node_name, self.hash)

    def read(self) -> str:
        response = self.context.client(self.pe_name).request(
            "reports",
            and_(equals("certname", self.node_name), equals("hash", self.hash)),
        )
        return make_readable(response.data)

    def attached_metadata(self) -> Optional[Dict[str, Any]]:
        return self.metadata

    def _extra_fields(self) -> dict[str, object]:
        return {"mtime": self.mtime.isoformat()}


ENTRY_TYPES: Dict[str, Type[PuppetEntry]] = {
    cls.__name__: cls
    for cls in (
        WPPuppetRoot,
        WPInstance,
        WPNodesCollection,
        WPNode,
        WPCatalog,
        WPFactsCollection,
        WPFact,
        WPReportsCollection,
        WPReport,
    )
}


def reconstruct(state: Mapping[str, Any], context: ProviderContext) -> PuppetEntry:
    """Rebuild an entry from its persisted state record without visiting its ancestors."""
    class_name = state.get("class")
    cls = ENTRY_TYPES.get(class_name) if isinstance(class_name, str) else None
    if cls is None:
        raise UnknownEntryError(f"Unknown entry class {class_name!r}")
    missing = [name for name in ("name", *cls.STATE_FIELDS) if name not in state]
    if missing:
        raise UnknownEntryError(f"State for {class_name} is missing {', '.join(missing)}")
    kwargs = {name: state[name] for name in cls.STATE_FIELDS}
    logger.debug("Reconstructing %s %s", class_name, state["name"])
    return cls(title=str(state["name"]), context=context, **kwargs)
