"""Tests for the CycloneDX dependency-graph parser."""

import copy

from depextract.schemas.sbom import BomRelationship, Component, NameVersion
from depextract.services.sbom_parser import (
    BillOfMaterialsParser,
    extract_license,
    parse_sbom,
    resolve_name_version,
)


class TestExtractLicense:
    def test_string(self):
        assert extract_license("MIT") == "MIT"

    def test_array_first_entry_wins(self):
        licenses = [{"license": {"id": "MIT"}}, {"license": {"id": "Apache-2.0"}}]
        assert extract_license(licenses) == "MIT"

    def test_array_uses_name_when_no_id(self):
        assert extract_license([{"license": {"name": "Custom License"}}]) == "Custom License"

    def test_single_nested_object(self):
        assert extract_license({"license": {"id": "BSD-3-Clause"}}) == "BSD-3-Clause"

    def test_expression_entries_are_ignored(self):
        assert extract_license([{"expression": "MIT OR Apache-2.0"}]) is None

    def test_empty(self):
        assert extract_license(None) is None
        assert extract_license([]) is None


class TestResolveNameVersion:
    def test_explicit_fields(self):
        component = Component(name="express", version="4.18.2", purl="pkg:npm/other@1.0.0")
        assert resolve_name_version(component) == NameVersion("express", "4.18.2")

    def test_falls_back_to_purl(self):
        component = Component(purl="pkg:npm/%40angular/core@16.0.0")
        assert resolve_name_version(component) == NameVersion("@angular/core", "16.0.0")

    def test_version_from_purl_when_only_name_given(self):
        component = Component(name="requests", purl="pkg:pypi/requests@2.31.0")
        assert resolve_name_version(component) == NameVersion("requests", "2.31.0")

    def test_unresolvable_version(self):
        assert resolve_name_version(Component(name="no-version")) is None
        assert resolve_name_version(Component(purl="pkg:npm/no-version")) is None


class TestParse:
    def test_direct_and_transitive_classification(self, cyclonedx_bom):
        parsed = parse_sbom(cyclonedx_bom)
        by_name = {d.name: d for d in parsed.dependencies}

        assert by_name["express"].is_direct is True
        assert by_name["express"].source == "dependencies"
        assert by_name["jest"].is_direct is True
        assert by_name["accepts"].is_direct is False
        assert by_name["accepts"].source == "transitive"
        assert by_name["mime-types"].is_direct is False

    def test_unreachable_components_are_not_emitted(self, cyclonedx_bom):
        parsed = parse_sbom(cyclonedx_bom)
        assert "orphan" not in {d.name for d in parsed.dependencies}
        assert parsed.total_components == 5

    def test_name_and_version_from_purl(self, cyclonedx_bom):
        parsed = parse_sbom(cyclonedx_bom)
        mime = next(d for d in parsed.dependencies if d.name == "mime-types")
        assert mime.version == "2.1.35"

    def test_licenses(self, cyclonedx_bom):
        by_name = {d.name: d for d in parse_sbom(cyclonedx_bom).dependencies}
        assert by_name["express"].license == "MIT"
        assert by_name["jest"].license == "MIT"
        assert by_name["accepts"].license is None

    def test_relationships_are_unfiltered(self, cyclonedx_bom):
        parsed = parse_sbom(cyclonedx_bom)
        assert BomRelationship("root", "pkg:npm/express@4.18.2") in parsed.relationships
        assert (
            BomRelationship("pkg:npm/accepts@1.3.8", "pkg:npm/mime-types@2.1.35")
            in parsed.relationships
        )
        assert len(parsed.relationships) == 4

    def test_ref_lookup_covers_every_resolvable_component(self, cyclonedx_bom):
        parsed = parse_sbom(cyclonedx_bom)
        assert parsed.ref_lookup["pkg:npm/orphan@1.0.0"] == NameVersion("orphan", "1.0.0")
        assert parsed.ref_lookup["pkg:npm/mime-types@2.1.35"].key == "mime-types@2.1.35"
        assert "root" not in parsed.ref_lookup

    def test_is_pure(self, cyclonedx_bom):
        original = copy.deepcopy(cyclonedx_bom)
        first = parse_sbom(cyclonedx_bom)
        second = parse_sbom(cyclonedx_bom)
        assert first == second
        assert cyclonedx_bom == original

    def test_missing_root_yields_no_dependencies(self, cyclonedx_bom):
        del cyclonedx_bom["metadata"]
        parsed = parse_sbom(cyclonedx_bom)
        assert parsed.dependencies == []
        assert parsed.direct_refs == []
        assert len(parsed.relationships) == 4

    def test_root_without_dependency_entry(self, cyclonedx_bom):
        cyclonedx_bom["dependencies"] = [
            d for d in cyclonedx_bom["dependencies"] if d["ref"] != "root"
        ]
        parsed = parse_sbom(cyclonedx_bom)
        assert parsed.dependencies == []

    def test_cycles_terminate(self):
        bom = {
            "metadata": {"component": {"bom-ref": "root"}},
            "components": [
                {"bom-ref": "a", "name": "a", "version": "1"},
                {"bom-ref": "b", "name": "b", "version": "1"},
            ],
            "dependencies": [
                {"ref": "root", "dependsOn": ["a"]},
                {"ref": "a", "dependsOn": ["b"]},
                {"ref": "b", "dependsOn": ["a", "root"]},
            ],
        }
        parsed = parse_sbom(bom)
        assert [d.name for d in parsed.dependencies] == ["a", "b"]

    def test_component_without_version_is_skipped(self):
        bom = {
            "metadata": {"component": {"bom-ref": "root"}},
            "components": [{"bom-ref": "x", "name": "x"}],
            "dependencies": [{"ref": "root", "dependsOn": ["x"]}],
        }
        parsed = parse_sbom(bom)
        assert parsed.dependencies == []
        assert parsed.skipped_components == 1

    def test_camel_case_bom_ref_keys(self):
        bom = {
            "metadata": {"component": {"bomRef": "root"}},
            "components": [
                {"bomRef": "a", "name": "a", "version": "1.0"},
                {"bomRef": "b", "name": "b", "version": "2.0"},
            ],
            "dependencies": [
                {"ref": "root", "dependsOn": ["a"]},
                {"ref": "a", "dependsOn": ["b"]},
            ],
        }
        parsed = parse_sbom(bom)
        assert [(d.name, d.is_direct) for d in parsed.dependencies] == [("a", True), ("b", False)]
        assert parsed.skipped_components == 0

    def test_repeated_dependency_entries_merge(self):
        adjacency = BillOfMaterialsParser._build_adjacency(
            [
                {"ref": "a", "dependsOn": ["b"]},
                {"ref": "a", "dependsOn": ["b", "c"]},
            ]
        )
        assert adjacency == {"a": ["b", "c"]}

    def test_malformed_entries_are_ignored(self):
        bom = {
            "metadata": {"component": {"bom-ref": "root"}},
            "components": ["not-a-dict", {"bom-ref": "a", "name": "a", "version": "1"}],
            "dependencies": [{"dependsOn": ["a"]}, {"ref": "root", "dependsOn": ["a"]}],
        }
        parsed = parse_sbom(bom)
        assert [d.name for d in parsed.dependencies] == ["a"]


class TestCollectReachable:
    def test_discovery_order(self):
        adjacency = {"a": ["c", "d"], "b": ["d"], "c": ["e"]}
        assert BillOfMaterialsParser.collect_reachable(["a", "b"], adjacency) == [
            "a",
            "b",
            "c",
            "d",
            "e",
        ]

    def test_empty_start(self):
        assert BillOfMaterialsParser.collect_reachable([], {"a": ["b"]}) == []
