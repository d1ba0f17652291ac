"""Tests for the PuppetDB entry hierarchy."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from puppetdb_browser.base import Fetch
from puppetdb_browser.errors import AuthConfigError, MalformedResponseError, UnknownEntryError
from puppetdb_browser.PuppetDB.model import (
    REPORT_METADATA_FIELDS,
    ProviderContext,
    WPCatalog,
    WPFact,
    WPFactsCollection,
    WPInstance,
    WPNode,
    WPNodesCollection,
    WPPuppetRoot,
    WPReport,
    WPReportsCollection,
    make_readable,
    reconstruct,
)

from conftest import RecordingFactory, SAMPLE_REPORTS


def _node(context: ProviderContext) -> WPNode:
    return WPNode(title="n1", context=context, pe_name="pe1", metadata={"certname": "n1"})


class TestWalk:
    def test_end_to_end(self, context, factory) -> None:
        instances = WPPuppetRoot(title="puppet", context=context).list_children()
        assert [(type(i), i.title) for i in instances] == [(WPInstance, "pe1")]

        collections = instances[0].list_children()
        assert [(type(c), c.title) for c in collections] == [(WPNodesCollection, "nodes")]
        assert factory.calls == []

        nodes = collections[0].list_children()
        assert [(type(n), n.title) for n in nodes] == [(WPNode, "n1")]
        assert nodes[0].attached_metadata() == {"certname": "n1", "deactivated": None}
        assert factory.calls == [("nodes", None)]

        children = nodes[0].list_children()
        assert [type(c) for c in children] == [WPCatalog, WPFactsCollection, WPReportsCollection]
        assert [c.LABEL for c in children] == ["catalog", "facts_dir", "reports_dir"]

        content = children[0].read()
        assert factory.calls[-1] == ("catalogs/n1", None)
        assert json.loads(content)["certname"] == "n1"

    def test_client_built_from_instance_config(self, context, factory) -> None:
        WPNodesCollection(title="nodes", context=context, pe_name="pe1").list_children()

        assert [c.name for c in factory.configs] == ["pe1"]
        assert factory.configs[0].puppetdb_url == "https://x"


class TestNode:
    def test_children_fixed_without_requests(self, context, factory) -> None:
        factory.responses.clear()
        node = _node(context)

        first = node.list_children()
        second = node.list_children()

        assert [c.title for c in first] == ["catalog.json", "facts", "reports"]
        assert first is second
        assert node.prefetched_children() is first
        assert factory.calls == []

    def test_children_carry_node_and_instance(self, context) -> None:
        for child in _node(context).list_children():
            assert child.node_name == "n1"
            assert child.pe_name == "pe1"

    def test_is_eager(self) -> None:
        assert WPNode.FETCH is Fetch.EAGER
        assert WPNodesCollection.FETCH is Fetch.LAZY

    def test_missing_certname(self, context, factory) -> None:
        factory.responses["nodes"] = [{"name": "n1"}]

        with pytest.raises(MalformedResponseError):
            WPNodesCollection(title="nodes", context=context, pe_name="pe1").list_children()

    def test_non_list_response(self, context, factory) -> None:
        factory.responses["nodes"] = {"error": "nope"}

        with pytest.raises(MalformedResponseError):
            WPNodesCollection(title="nodes", context=context, pe_name="pe1").list_children()


class TestFacts:
    def test_lists_facts_for_node(self, context, factory) -> None:
        facts = WPFactsCollection(
            title="facts", context=context, node_name="n1", pe_name="pe1"
        ).list_children()

        assert [f.title for f in facts] == ["kernel", "os"]
        assert factory.calls == [("facts", '["=","certname","n1"]')]

    def test_read_issues_no_request(self, context, factory) -> None:
        fact = WPFact(title="kernel", context=context, value="Linux", node_name="n1", pe_name="pe1")

        assert fact.read() == "Linux"
        assert fact.prefetched_content() == "Linux"
        assert factory.calls == []
        assert factory.configs == []

    def test_structured_value_pretty_printed(self, context) -> None:
        value = {"family": "RedHat", "release": {"major": "9"}}
        fact = WPFact(title="os", context=context, value=value, node_name="n1", pe_name="pe1")

        assert fact.read() == json.dumps(value, indent=2)
        assert "\n" in fact.read()


class TestReports:
    def test_listing_projects_metadata_fields(self, context, factory) -> None:
        reports = WPReportsCollection(
            title="reports", context=context, node_name="n1", pe_name="pe1"
        ).list_children()

        resource, query = factory.calls[0]
        assert resource == "reports"
        assert json.loads(query) == [
            "extract",
            list(REPORT_METADATA_FIELDS),
            ["=", "certname", "n1"],
        ]
        assert [r.hash for r in reports] == ["aaa111", "bbb222"]
        assert reports[0].attached_metadata() == SAMPLE_REPORTS[0]

    def test_same_end_time_distinct_entries(self, context, factory) -> None:
        first, second = WPReportsCollection(
            title="reports", context=context, node_name="n1", pe_name="pe1"
        ).list_children()

        assert first.title == second.title
        assert first.identity() != second.identity()
        assert first != second

        factory.calls.clear()
        first.read()
        second.read()
        assert [json.loads(q) for _, q in factory.calls] == [
            ["and", ["=", "certname", "n1"], ["=", "hash", "aaa111"]],
            ["and", ["=", "certname", "n1"], ["=", "hash", "bbb222"]],
        ]

    def test_ids_unique_when_end_times_match(self, context) -> None:
        first, second = WPReportsCollection(
            title="reports", context=context, node_name="n1", pe_name="pe1"
        ).list_children()

        assert first.id == "/pe1/nodes/n1/reports/2024-05-01T10:00:00.000Z-aaa111"
        assert second.id == "/pe1/nodes/n1/reports/2024-05-01T10:00:00.000Z-bbb222"
        assert first.to_dict()["title"] == "2024-05-01T10:00:00.000Z"

    def test_mtime_from_end_time(self, context) -> None:
        report = WPReport(
            title="2024-05-01T10:00:00.000Z",
            context=context,
            node_name="n1",
            pe_name="pe1",
            hash="aaa111",
        )

        assert report.mtime == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
        assert report.to_dict()["mtime"] == "2024-05-01T10:00:00+00:00"

    def test_invalid_end_time(self, context) -> None:
        with pytest.raises(MalformedResponseError):
            WPReport(title="yesterday", context=context, node_name="n1", pe_name="pe1", hash="h")

    def test_metadata_schema(self) -> None:
        schema = WPReport.describe()["metadata_schema"]

        assert schema["type"] == "object"
        assert schema["properties"]["noop"] == {"type": "boolean"}
        assert set(schema["properties"]) == {
            "end_time", "environment", "status", "noop", "puppet_version", "producer", "hash",
        }


class TestReconstruct:
    def test_round_trip_every_entry_type(self, context, factory) -> None:
        root = WPPuppetRoot(title="puppet", context=context)
        instance = root.list_children()[0]
        nodes_dir = instance.list_children()[0]
        node = nodes_dir.list_children()[0]
        catalog, facts_dir, reports_dir = node.list_children()
        fact = facts_dir.list_children()[1]
        report = reports_dir.list_children()[1]

        for entry in (root, instance, nodes_dir, node, catalog, facts_dir, fact, reports_dir, report):
            state = json.loads(json.dumps(entry.persisted_state()))
            rebuilt = reconstruct(state, context)
            assert type(rebuilt) is type(entry)
            assert rebuilt == entry
            assert rebuilt.id == entry.id
            assert rebuilt.identity() == entry.identity()

    def test_rebuilt_entries_behave_the_same(self, context, factory) -> None:
        report = WPReportsCollection(
            title="reports", context=context, node_name="n1", pe_name="pe1"
        ).list_children()[0]
        fact = WPFact(title="os", context=context, value={"a": 1}, node_name="n1", pe_name="pe1")
        node = _node(context)

        factory.calls.clear()
        assert reconstruct(report.persisted_state(), context).read() == report.read()
        assert factory.calls[0] == factory.calls[1]
        assert reconstruct(fact.persisted_state(), context).read() == fact.read()
        assert reconstruct(node.persisted_state(), context).list_children() == node.list_children()

    def test_state_holds_no_credentials(self, context) -> None:
        state = WPCatalog(title="catalog.json", context=context, node_name="n1", pe_name="pe1").persisted_state()

        assert state == {"class": "WPCatalog", "name": "catalog.json", "node_name": "n1", "pe_name": "pe1"}

    def test_unknown_class(self, context) -> None:
        with pytest.raises(UnknownEntryError):
            reconstruct({"class": "Nope", "name": "x"}, context)

    def test_missing_field(self, context) -> None:
        with pytest.raises(UnknownEntryError):
            reconstruct({"class": "WPReport", "name": "2024-05-01T10:00:00Z", "node_name": "n1"}, context)

    def test_unknown_instance(self) -> None:
        context = ProviderContext(config={}, client_factory=RecordingFactory())
        entry = WPNodesCollection(title="nodes", context=context, pe_name="gone")

        with pytest.raises(AuthConfigError):
            entry.list_children()


class TestMakeReadable:
    def test_string_unchanged(self) -> None:
        assert make_readable("plain\ntext") == "plain\ntext"

    @pytest.mark.parametrize("value", [1, True, None, [1, 2], {"k": "v"}])
    def test_other_values_are_json(self, value) -> None:
        assert json.loads(make_readable(value)) == value


class TestSchemas:
    def test_capabilities(self) -> None:
        assert WPPuppetRoot.capabilities() == ["list"]
        assert WPCatalog.capabilities() == ["read"]
        assert WPFact.capabilities() == ["read"]
        assert WPReport.capabilities() == ["read", "metadata"]

    def test_singletons(self) -> None:
        singletons = {
            cls.__name__
            for cls in (WPPuppetRoot, WPInstance, WPNodesCollection, WPNode, WPCatalog,
                        WPFactsCollection, WPFact, WPReportsCollection, WPReport)
            if cls.SINGLETON
        }
        assert singletons == {
            "WPPuppetRoot", "WPNodesCollection", "WPCatalog", "WPFactsCollection", "WPReportsCollection",
        }


class TestObjectCounts:
    def test_lazy_containers_advertise_children(self, context) -> None:
        node = _node(context)
        catalog, facts_dir, reports_dir = node.list_children()

        assert WPInstance(title="pe1", context=context).to_dict()["objects"] == 1
        assert WPNodesCollection(title="nodes", context=context, pe_name="pe1").to_dict()["objects"] == 1
        assert facts_dir.to_dict()["objects"] == 1
        assert reports_dir.to_dict()["objects"] == 1

    def test_node_reports_exact_count(self, context) -> None:
        assert _node(context).to_dict()["objects"] == 3

    def test_leaves_report_zero(self, context) -> None:
        fact = WPFact(title="kernel", context=context, value="Linux", node_name="n1", pe_name="pe1")
        catalog = WPCatalog(title="catalog.json", context=context, node_name="n1", pe_name="pe1")

        assert fact.to_dict()["objects"] == 0
        assert catalog.to_dict()["objects"] == 0
