"""Pydantic models for Lightstep resources.

Two families of models live here:

1. Wire models: the JSON:API-shaped payloads found under the envelope's
   "data" key ({type, id, attributes, relationships}).
2. Declared specs: the attributes a user declares for a resource. The
   reconciler translates between the two.

Wire models ignore unknown fields so that additions on the server side do
not break decoding. Declared specs reject unknown fields to catch typos.

Enumerated values (operands, operators, aggregation methods) are checked
only for user input, validated with DECLARED_CONTEXT. Whatever the server
returns is accepted so a read reports drift instead of failing to decode.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, ValidationInfo, field_validator

VALID_OPERANDS = {"above", "below"}
VALID_TIMESERIES_OPERATORS = {"rate", "delta", "last", "min", "max", "avg"}
VALID_AGGREGATION_METHODS = {"sum", "avg", "max", "min", "count", "count_non_zero"}

# Validation context for user-declared input
DECLARED_CONTEXT = {"declared": True}


def is_declared(info: ValidationInfo) -> bool:
    return bool(info.context and info.context.get("declared"))


# =============================================================================
# Shared Wire Models
# =============================================================================


class ResourceIdentifier(BaseModel):
    """Minimal view of any resource, used to extract an identifier."""

    model_config = {"extra": "ignore"}

    type: str | None = None
    id: Annotated[str, Field(min_length=1)]


class Links(BaseModel):
    """Links to related objects."""

    model_config = {"extra": "ignore"}

    related: str | None = None


class Relationship(BaseModel):
    """Reference to another resource, inline by id or by link."""

    model_config = {"extra": "ignore"}

    id: str | None = None
    links: Links | None = None


# =============================================================================
# Streams
# =============================================================================


class StreamAttributes(BaseModel):
    model_config = {"extra": "ignore"}

    name: str
    query: str
    custom_data: dict[str, dict[str, str]] | None = None


class Stream(BaseModel):
    """A stream: a saved span query."""

    model_config = {"extra": "ignore"}

    type: Literal["stream"] = "stream"
    id: str | None = None
    attributes: StreamAttributes


# =============================================================================
# Dashboards
# =============================================================================


class StreamReference(BaseModel):
    """A stream as embedded in a dashboard.

    The server returns the stream's name and query as well; only the id is
    meaningful for reconciliation.
    """

    model_config = {"extra": "ignore"}

    id: str


class DashboardAttributes(BaseModel):
    model_config = {"extra": "ignore"}

    name: str
    streams: list[StreamReference] = Field(default_factory=list)


class Dashboard(BaseModel):
    """A stream dashboard."""

    model_config = {"extra": "ignore"}

    type: Literal["dashboard"] = "dashboard"
    id: str | None = None
    attributes: DashboardAttributes


# =============================================================================
# Stream Conditions
# =============================================================================


class StreamConditionAttributes(BaseModel):
    model_config = {"extra": "ignore"}

    name: str
    expression: str
    evaluation_window_ms: int
    custom_data: dict[str, dict[str, str]] | None = None


class StreamConditionRelationships(BaseModel):
    model_config = {"extra": "ignore"}

    stream: Relationship


class StreamCondition(BaseModel):
    """A condition evaluated over a stream.

    Responses reference the stream by link rather than by inline id.
    """

    model_config = {"extra": "ignore"}

    type: Literal["condition"] = "condition"
    id: str | None = None
    attributes: StreamConditionAttributes
    relationships: StreamConditionRelationships


# =============================================================================
# Metric Alerts (metric conditions and alerts)
# =============================================================================


class Thresholds(BaseModel):
    model_config = {"extra": "ignore"}

    critical: float | None = None
    warning: float | None = None


class AlertExpression(BaseModel):
    """Threshold expression shared by metric conditions and alerts."""

    model_config = {"extra": "ignore"}

    is_multi: bool = False
    is_no_data: bool = False
    operand: str | None = None
    thresholds: Thresholds = Field(default_factory=Thresholds)

    @field_validator("operand")
    @classmethod
    def validate_operand(cls, v: str | None, info: ValidationInfo) -> str | None:
        if is_declared(info) and v is not None and v not in VALID_OPERANDS:
            raise ValueError(f"operand must be one of {VALID_OPERANDS}")
        return v


class LabelFilter(BaseModel):
    model_config = {"extra": "ignore"}

    key: Annotated[str, Field(min_length=1)]
    value: str


class GroupBy(BaseModel):
    model_config = {"extra": "ignore"}

    aggregation_method: str
    label_keys: list[str] = Field(default_factory=list)

    @field_validator("aggregation_method")
    @classmethod
    def validate_aggregation_method(cls, v: str, info: ValidationInfo) -> str:
        if is_declared(info) and v not in VALID_AGGREGATION_METHODS:
            raise ValueError(f"aggregation_method must be one of {VALID_AGGREGATION_METHODS}")
        return v


class MetricQuery(BaseModel):
    """A query built from a metric name, operator, filters and grouping."""

    model_config = {"extra": "ignore"}

    query_name: Annotated[str, Field(min_length=1)]
    hidden: bool = False
    display: str | None = None
    metric: Annotated[str, Field(min_length=1)]
    timeseries_operator: str
    filters: list[LabelFilter] = Field(default_factory=list)
    group_by: GroupBy | None = None

    @field_validator("timeseries_operator")
    @classmethod
    def validate_timeseries_operator(cls, v: str, info: ValidationInfo) -> str:
        if is_declared(info) and v not in VALID_TIMESERIES_OPERATORS:
            raise ValueError(f"timeseries_operator must be one of {VALID_TIMESERIES_OPERATORS}")
        return v


class TQLQuery(BaseModel):
    """A query written in the query language."""

    model_config = {"extra": "ignore"}

    query_name: Annotated[str, Field(min_length=1)]
    hidden: bool = False
    display: str | None = None
    tql: Annotated[str, Field(min_length=1)]


class AlertingRule(BaseModel):
    """Notification destination and how often to re-notify."""

    model_config = {"extra": "ignore"}

    destination_id: Annotated[str, Field(min_length=1)]
    update_interval_ms: Annotated[int, Field(ge=0)] = 0


class MetricConditionAttributes(BaseModel):
    model_config = {"extra": "ignore"}

    name: str
    description: str = ""
    expression: AlertExpression
    queries: list[MetricQuery]
    alerting_rules: list[AlertingRule] = Field(default_factory=list)


class AlertAttributes(BaseModel):
    model_config = {"extra": "ignore"}

    name: str
    description: str = ""
    expression: AlertExpression
    queries: list[TQLQuery]
    alerting_rules: list[AlertingRule] = Field(default_factory=list)


class MetricCondition(BaseModel):
    """A metric alert whose queries are built from metric names."""

    model_config = {"extra": "ignore"}

    type: Literal["metric_alert"] = "metric_alert"
    id: str | None = None
    attributes: MetricConditionAttributes


class Alert(BaseModel):
    """A metric alert whose queries are written in the query language."""

    model_config = {"extra": "ignore"}

    type: Literal["metric_alert"] = "metric_alert"
    id: str | None = None
    attributes: AlertAttributes


METRIC_CONDITION_VARIANT = "metric_condition"
ALERT_VARIANT = "alert"


def metric_alert_variant(data: Any) -> str:
    """Tell metric conditions and alerts apart.

    Both are served from the same endpoint with the same type tag; alerts are
    the ones whose queries carry a "tql" field.
    """
    if not isinstance(data, dict):
        return "unknown"
    attributes = data.get("attributes")
    if not isinstance(attributes, dict):
        return "unknown"
    queries = attributes.get("queries") or []
    if any(isinstance(q, dict) and q.get("tql") for q in queries):
        return ALERT_VARIANT
    return METRIC_CONDITION_VARIANT


# =============================================================================
# Declared Specs
# =============================================================================


class StreamSpec(BaseModel):
    """Declared stream."""

    model_config = {"extra": "forbid"}

    stream_name: Annotated[str, Field(min_length=1)]
    query: Annotated[str, Field(min_length=1)]
    # Each entry must carry a "name" key; the name becomes the entry's key
    # on the wire and the remaining pairs its values.
    custom_data: list[dict[str, str]] = Field(default_factory=list)

    @field_validator("custom_data")
    @classmethod
    def validate_custom_data(cls, v: list[dict[str, str]]) -> list[dict[str, str]]:
        seen: set[str] = set()
        for entry in v:
            name = entry.get("name")
            if not name:
                raise ValueError("every custom_data entry needs a non-empty 'name'")
            if name in seen:
                raise ValueError(f"duplicate custom_data name: {name}")
            seen.add(name)
        return v


class DashboardSpec(BaseModel):
    """Declared stream dashboard."""

    model_config = {"extra": "forbid"}

    dashboard_name: Annotated[str, Field(min_length=1)]
    stream_ids: list[str] = Field(default_factory=list)


class StreamConditionSpec(BaseModel):
    """Declared stream condition."""

    model_config = {"extra": "forbid"}

    condition_name: Annotated[str, Field(min_length=1)]
    expression: Annotated[str, Field(min_length=1)]
    evaluation_window_ms: Annotated[int, Field(gt=0)]
    stream_id: Annotated[str, Field(min_length=1)]


class MetricConditionSpec(BaseModel):
    """Declared metric condition."""

    model_config = {"extra": "forbid"}

    condition_name: Annotated[str, Field(min_length=1)]
    description: str = ""
    expression: AlertExpression
    metric_queries: Annotated[list[MetricQuery], Field(min_length=1)]
    alerting_rules: list[AlertingRule] = Field(default_factory=list)


class AlertSpec(BaseModel):
    """Declared alert."""

    model_config = {"extra": "forbid"}

    alert_name: Annotated[str, Field(min_length=1)]
    description: str = ""
    expression: AlertExpression
    queries: Annotated[list[TQLQuery], Field(min_length=1)]
    alerting_rules: list[AlertingRule] = Field(default_factory=list)
