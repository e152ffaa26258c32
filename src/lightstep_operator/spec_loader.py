"""Declared resource file loading with validation.

A spec file lists the resources to keep in sync:

    resources:
      - kind: stream
        project: my-project
        id: 8xYqz1   # optional, filled in once created
        spec:
          stream_name: Checkout errors
          query: service IN ("checkout") AND "error" IN ("true")

SECURITY: File reads enforce a size limit. Input validation is performed at
the boundary so malformed files fail before any API call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from .models import DECLARED_CONTEXT
from .reconciler import ResourceState, ResourceStatus
from .resources import get_kind

logger = logging.getLogger(__name__)

MAX_SPEC_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max spec file


class SpecLoadError(Exception):
    """Raised when spec loading or validation fails."""

    pass


class RawDocument(BaseModel):
    """One declared resource as written in a spec file, spec not yet validated."""

    model_config = {"extra": "forbid"}

    kind: str
    project: Annotated[str, Field(min_length=1)]
    id: str | None = None
    spec: dict[str, Any] = Field(default_factory=dict)


class SpecFile(BaseModel):
    model_config = {"extra": "forbid"}

    resources: list[RawDocument] = Field(default_factory=list)


@dataclass(frozen=True)
class ResourceDocument:
    """One declared resource with its spec validated for its kind."""

    kind: str
    project: str
    spec: BaseModel
    id: str | None = None

    def to_state(self) -> ResourceState[Any]:
        """Build the reconciler state for this document."""
        return ResourceState(
            kind=self.kind,
            project=self.project,
            spec=self.spec,
            id=self.id,
            status=ResourceStatus.CREATED if self.id else ResourceStatus.ABSENT,
        )

    @classmethod
    def from_state(cls, state: ResourceState[Any]) -> ResourceDocument:
        return cls(kind=state.kind, project=state.project, spec=state.spec, id=state.id)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind, "project": self.project}
        if self.id:
            data["id"] = self.id
        data["spec"] = self.spec.model_dump(exclude_none=True)
        return data


def _format_errors(error: ValidationError, prefix: str = "") -> list[str]:
    errors = []
    for detail in error.errors():
        loc = ".".join(str(x) for x in detail["loc"])
        errors.append(f"  - {prefix}{loc}: {detail['msg']}")
    return errors


def parse_resources(content: str, source: str = "<string>") -> list[ResourceDocument]:
    """Parse and validate spec file content.

    Raises:
        SpecLoadError: If the content is not valid YAML or fails validation.
    """
    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {source}: {e}") from e

    if raw_data is None:
        return []

    if not isinstance(raw_data, dict):
        raise SpecLoadError(f"Spec file must contain a YAML mapping: {source}")

    try:
        spec_file = SpecFile.model_validate(raw_data)
    except ValidationError as e:
        error_list = "\n".join(_format_errors(e))
        raise SpecLoadError(f"Validation failed for {source}:\n{error_list}") from e

    documents: list[ResourceDocument] = []
    errors: list[str] = []
    for index, raw in enumerate(spec_file.resources):
        prefix = f"resources.{index}."
        try:
            kind = get_kind(raw.kind)
        except ValueError as e:
            errors.append(f"  - {prefix}kind: {e}")
            continue
        try:
            spec = kind.spec_type.model_validate(raw.spec, context=DECLARED_CONTEXT)
        except ValidationError as e:
            errors.extend(_format_errors(e, prefix=f"{prefix}spec."))
            continue
        documents.append(
            ResourceDocument(kind=kind.name, project=raw.project, spec=spec, id=raw.id)
        )

    if errors:
        error_list = "\n".join(errors)
        raise SpecLoadError(f"Validation failed for {source}:\n{error_list}")

    return documents


def load_resources(path: Path) -> list[ResourceDocument]:
    """Load and validate declared resources from a YAML file.

    Raises:
        SpecLoadError: If the file cannot be loaded or fails validation.
    """
    if not path.exists():
        raise SpecLoadError(f"Spec file not found: {path}")

    # SECURITY: Check file size before reading to prevent DoS
    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise SpecLoadError(f"Failed to stat spec file {path}: {e}") from e

    if file_size > MAX_SPEC_FILE_SIZE_BYTES:
        raise SpecLoadError(
            f"Spec file exceeds maximum size of {MAX_SPEC_FILE_SIZE_BYTES} bytes: {path}"
        )

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecLoadError(f"Failed to read spec file {path}: {e}") from e

    resources = parse_resources(content, str(path))
    logger.info("Loaded %d resource(s) from %s", len(resources), path)
    return resources


def dump_resources(resources: list[ResourceDocument]) -> str:
    """Serialize resources back into spec file YAML."""
    return yaml.safe_dump(
        {"resources": [doc.to_dict() for doc in resources]},
        sort_keys=False,
        allow_unicode=True,
    )
