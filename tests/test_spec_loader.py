"""Tests for declared resource file loading."""

from pathlib import Path

import pytest
import yaml

from lightstep_operator.models import DashboardSpec, StreamSpec
from lightstep_operator.reconciler import ResourceState, ResourceStatus
from lightstep_operator.spec_loader import (
    MAX_SPEC_FILE_SIZE_BYTES,
    ResourceDocument,
    SpecLoadError,
    dump_resources,
    load_resources,
    parse_resources,
)

VALID_FILE = """
resources:
  - kind: stream
    project: web
    spec:
      stream_name: Checkout errors
      query: '"error" IN ("true")'
  - kind: dashboard
    project: web
    id: dash1
    spec:
      dashboard_name: Checkout
      stream_ids: [s1, s2]
"""


class TestParseResources:
    """Tests for parse_resources."""

    def test_valid(self) -> None:
        documents = parse_resources(VALID_FILE)

        assert len(documents) == 2
        assert documents[0].kind == "stream"
        assert documents[0].id is None
        assert isinstance(documents[0].spec, StreamSpec)
        expected = DashboardSpec(dashboard_name="Checkout", stream_ids=["s1", "s2"])
        assert documents[1].spec == expected

    def test_empty_file(self) -> None:
        assert parse_resources("") == []

    def test_not_a_mapping(self) -> None:
        with pytest.raises(SpecLoadError) as exc_info:
            parse_resources("- a\n- b\n")

        assert "mapping" in str(exc_info.value)

    def test_invalid_yaml(self) -> None:
        with pytest.raises(SpecLoadError) as exc_info:
            parse_resources("resources: [unclosed")

        assert "Invalid YAML" in str(exc_info.value)

    def test_unknown_kind(self) -> None:
        content = "resources:\n  - kind: notebook\n    project: web\n    spec: {}\n"

        with pytest.raises(SpecLoadError) as exc_info:
            parse_resources(content)

        message = str(exc_info.value)
        assert "resources.0.kind" in message
        assert "notebook" in message

    def test_spec_errors_point_at_field(self) -> None:
        """Test that validation errors name the document and field."""
        content = (
            "resources:\n"
            "  - kind: stream_condition\n"
            "    project: web\n"
            "    spec:\n"
            "      condition_name: Errors\n"
            "      expression: x > 1\n"
            "      evaluation_window_ms: 0\n"
            "      stream_id: s1\n"
        )

        with pytest.raises(SpecLoadError) as exc_info:
            parse_resources(content, "resources.yaml")

        message = str(exc_info.value)
        assert "resources.yaml" in message
        assert "resources.0.spec.evaluation_window_ms" in message

    def test_unknown_spec_field(self) -> None:
        content = (
            "resources:\n"
            "  - kind: stream\n"
            "    project: web\n"
            "    spec: {stream_name: a, query: b, colour: red}\n"
        )

        with pytest.raises(SpecLoadError) as exc_info:
            parse_resources(content)

        assert "colour" in str(exc_info.value)

    def test_all_errors_reported(self) -> None:
        content = (
            "resources:\n"
            "  - {kind: stream, project: web, spec: {stream_name: a}}\n"
            "  - {kind: dashboard, project: web, spec: {}}\n"
        )

        with pytest.raises(SpecLoadError) as exc_info:
            parse_resources(content)

        message = str(exc_info.value)
        assert "resources.0.spec.query" in message
        assert "resources.1.spec.dashboard_name" in message

    def test_missing_project(self) -> None:
        with pytest.raises(SpecLoadError) as exc_info:
            parse_resources("resources:\n  - {kind: stream, spec: {}}\n")

        assert "resources.0.project" in str(exc_info.value)


class TestLoadResources:
    """Tests for load_resources."""

    def test_load(self, tmp_path: Path) -> None:
        path = tmp_path / "resources.yaml"
        path.write_text(VALID_FILE)

        assert len(load_resources(path)) == 2

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(SpecLoadError) as exc_info:
            load_resources(tmp_path / "nope.yaml")

        assert "not found" in str(exc_info.value)

    def test_oversized_file(self, tmp_path: Path) -> None:
        """Test that files over the size limit are rejected before parsing."""
        path = tmp_path / "huge.yaml"
        path.write_text("#" * (MAX_SPEC_FILE_SIZE_BYTES + 1))

        with pytest.raises(SpecLoadError) as exc_info:
            load_resources(path)

        assert "maximum size" in str(exc_info.value)


class TestResourceDocument:
    """Tests for conversion between documents and reconciler state."""

    def test_to_state_without_id(self) -> None:
        document = parse_resources(VALID_FILE)[0]

        state = document.to_state()

        assert state.status == ResourceStatus.ABSENT
        assert state.id is None

    def test_to_state_with_id(self) -> None:
        document = parse_resources(VALID_FILE)[1]

        state = document.to_state()

        assert state.status == ResourceStatus.CREATED
        assert state.reference == "web.dash1"

    def test_from_state(self) -> None:
        state = ResourceState(
            kind="stream",
            project="web",
            spec=StreamSpec(stream_name="a", query="b"),
            id="s9",
            status=ResourceStatus.CREATED,
        )

        document = ResourceDocument.from_state(state)

        assert document.to_dict() == {
            "kind": "stream",
            "project": "web",
            "id": "s9",
            "spec": {"stream_name": "a", "query": "b", "custom_data": []},
        }


def test_dump_then_parse_preserves_documents() -> None:
    documents = parse_resources(VALID_FILE)

    dumped = dump_resources(documents)

    assert parse_resources(dumped) == documents
    assert list(yaml.safe_load(dumped)["resources"][1]) == ["kind", "project", "id", "spec"]


@pytest.mark.parametrize(
    "field,value",
    [
        ("operand", "sideways"),
        ("timeseries_operator", "median"),
        ("aggregation_method", "mode"),
    ],
)
def test_declared_enumerations_are_checked(field: str, value: str) -> None:
    spec = {
        "condition_name": "Requests",
        "expression": {"operand": "above", "thresholds": {"critical": 1}},
        "metric_queries": [
            {
                "query_name": "a",
                "metric": "requests",
                "timeseries_operator": "rate",
                "group_by": {"aggregation_method": "sum"},
            }
        ],
    }
    if field == "operand":
        spec["expression"]["operand"] = value
    elif field == "timeseries_operator":
        spec["metric_queries"][0]["timeseries_operator"] = value
    else:
        spec["metric_queries"][0]["group_by"]["aggregation_method"] = value
    content = yaml.safe_dump(
        {"resources": [{"kind": "metric_condition", "project": "web", "spec": spec}]}
    )

    with pytest.raises(SpecLoadError) as exc_info:
        parse_resources(content)

    assert field in str(exc_info.value)
