"""Resource kinds supported by the reconciler.

Each kind knows its collection path and how to translate between its
declared spec and the wire model. Lifecycle logic lives in reconciler.py.

Metric conditions and alerts share the metric_alerts endpoint and type tag;
their payloads are told apart by query shape before decoding.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .errors import ResourceTypeMismatchError, UnresolvedReferenceError
from .models import (
    ALERT_VARIANT,
    METRIC_CONDITION_VARIANT,
    Alert,
    AlertAttributes,
    AlertSpec,
    Dashboard,
    DashboardAttributes,
    DashboardSpec,
    MetricCondition,
    MetricConditionAttributes,
    MetricConditionSpec,
    Relationship,
    Stream,
    StreamAttributes,
    StreamCondition,
    StreamConditionAttributes,
    StreamConditionRelationships,
    StreamConditionSpec,
    StreamReference,
    StreamSpec,
    metric_alert_variant,
)
from .reconciler import Reconciler, ResourceKind

if TYPE_CHECKING:
    from .client import APIClient


def custom_data_to_wire(entries: list[dict[str, str]]) -> dict[str, dict[str, str]] | None:
    """Key custom data entries by their "name" field."""
    if not entries:
        return None
    return {
        entry["name"]: {k: v for k, v in entry.items() if k != "name"} for entry in entries
    }


def custom_data_from_wire(data: dict[str, dict[str, str]] | None) -> list[dict[str, str]]:
    if not data:
        return []
    return [{"name": name, **values} for name, values in data.items()]


# =============================================================================
# Streams and Dashboards
# =============================================================================


class StreamKind(ResourceKind[StreamSpec, Stream]):
    name = "stream"
    collection = "streams"
    spec_type = StreamSpec
    wire_type = Stream

    def to_wire(self, spec: StreamSpec, resource_id: str | None = None) -> Stream:
        return Stream(
            id=resource_id,
            attributes=StreamAttributes(
                name=spec.stream_name,
                query=spec.query,
                custom_data=custom_data_to_wire(spec.custom_data),
            ),
        )

    async def to_spec(self, client: APIClient, wire: Stream) -> StreamSpec:
        return StreamSpec(
            stream_name=wire.attributes.name,
            query=wire.attributes.query,
            custom_data=custom_data_from_wire(wire.attributes.custom_data),
        )


class DashboardKind(ResourceKind[DashboardSpec, Dashboard]):
    name = "dashboard"
    collection = "dashboards"
    spec_type = DashboardSpec
    wire_type = Dashboard

    def to_wire(self, spec: DashboardSpec, resource_id: str | None = None) -> Dashboard:
        return Dashboard(
            id=resource_id,
            attributes=DashboardAttributes(
                name=spec.dashboard_name,
                streams=[StreamReference(id=stream_id) for stream_id in spec.stream_ids],
            ),
        )

    async def to_spec(self, client: APIClient, wire: Dashboard) -> DashboardSpec:
        return DashboardSpec(
            dashboard_name=wire.attributes.name,
            stream_ids=[stream.id for stream in wire.attributes.streams],
        )


# =============================================================================
# Stream Conditions
# =============================================================================


class StreamConditionKind(ResourceKind[StreamConditionSpec, StreamCondition]):
    name = "stream_condition"
    collection = "conditions"
    spec_type = StreamConditionSpec
    wire_type = StreamCondition

    def to_wire(
        self, spec: StreamConditionSpec, resource_id: str | None = None
    ) -> StreamCondition:
        return StreamCondition(
            id=resource_id,
            attributes=StreamConditionAttributes(
                name=spec.condition_name,
                expression=spec.expression,
                evaluation_window_ms=spec.evaluation_window_ms,
            ),
            relationships=StreamConditionRelationships(
                stream=Relationship(id=spec.stream_id),
            ),
        )

    async def to_spec(self, client: APIClient, wire: StreamCondition) -> StreamConditionSpec:
        return StreamConditionSpec(
            condition_name=wire.attributes.name,
            expression=wire.attributes.expression,
            evaluation_window_ms=wire.attributes.evaluation_window_ms,
            stream_id=await resolve_relationship(client, wire.relationships.stream),
        )


async def resolve_relationship(client: APIClient, relationship: Relationship) -> str:
    """Return the id of a related resource, following its link when needed."""
    if relationship.id:
        return relationship.id
    if relationship.links is not None and relationship.links.related:
        return await client.get_by_link(relationship.links.related)
    raise UnresolvedReferenceError("relationship has neither an id nor a related link")


# =============================================================================
# Metric Conditions and Alerts
# =============================================================================

METRIC_ALERT_VARIANTS: dict[str, Any] = {
    METRIC_CONDITION_VARIANT: MetricCondition,
    ALERT_VARIANT: Alert,
}


class MetricAlertKind(ResourceKind[Any, Any]):
    """Base for kinds served from the metric_alerts endpoint."""

    collection = "metric_alerts"

    async def fetch(self, client: APIClient, project: str, resource_id: str) -> Any:
        wire = await client.call_api_variant(
            "GET",
            self.resource_path(project, resource_id),
            metric_alert_variant,
            METRIC_ALERT_VARIANTS,
        )
        if not isinstance(wire, self.wire_type):
            raise ResourceTypeMismatchError(
                f"{project}.{resource_id} is not a {self.name}: found {type(wire).__name__}"
            )
        return wire


class MetricConditionKind(MetricAlertKind):
    name = "metric_condition"
    spec_type = MetricConditionSpec
    wire_type = MetricCondition

    def to_wire(
        self, spec: MetricConditionSpec, resource_id: str | None = None
    ) -> MetricCondition:
        return MetricCondition(
            id=resource_id,
            attributes=MetricConditionAttributes(
                name=spec.condition_name,
                description=spec.description,
                expression=spec.expression,
                queries=spec.metric_queries,
                alerting_rules=spec.alerting_rules,
            ),
        )

    async def to_spec(self, client: APIClient, wire: MetricCondition) -> MetricConditionSpec:
        return MetricConditionSpec(
            condition_name=wire.attributes.name,
            description=wire.attributes.description,
            expression=wire.attributes.expression,
            metric_queries=wire.attributes.queries,
            alerting_rules=wire.attributes.alerting_rules,
        )


class AlertKind(MetricAlertKind):
    name = "alert"
    spec_type = AlertSpec
    wire_type = Alert

    def to_wire(self, spec: AlertSpec, resource_id: str | None = None) -> Alert:
        return Alert(
            id=resource_id,
            attributes=AlertAttributes(
                name=spec.alert_name,
                description=spec.description,
                expression=spec.expression,
                queries=spec.queries,
                alerting_rules=spec.alerting_rules,
            ),
        )

    async def to_spec(self, client: APIClient, wire: Alert) -> AlertSpec:
        return AlertSpec(
            alert_name=wire.attributes.name,
            description=wire.attributes.description,
            expression=wire.attributes.expression,
            queries=wire.attributes.queries,
            alerting_rules=wire.attributes.alerting_rules,
        )


# =============================================================================
# Registry
# =============================================================================

KIND_REGISTRY: dict[str, ResourceKind[Any, Any]] = {
    kind.name: kind
    for kind in (
        StreamKind(),
        DashboardKind(),
        StreamConditionKind(),
        MetricConditionKind(),
        AlertKind(),
    )
}


def get_kind(name: str) -> ResourceKind[Any, Any]:
    """Get the resource kind registered under ``name``.

    Raises:
        ValueError: If the kind is not recognized.
    """
    kind = KIND_REGISTRY.get(name)
    if kind is None:
        valid_kinds = list(KIND_REGISTRY.keys())
        raise ValueError(f"Unknown resource kind '{name}'. Valid kinds: {valid_kinds}")
    return kind


def reconciler_for(client: APIClient, name: str) -> Reconciler[Any, Any]:
    """Build a reconciler for the named kind."""
    return Reconciler(client, get_kind(name))
