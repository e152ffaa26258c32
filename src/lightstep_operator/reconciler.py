"""CRUD reconciliation lifecycle shared by every resource kind.

A declared resource moves through these states:

    absent  --create-->  created  --read (404)-->  absent
                            |
                            +--delete-->  deleted

The identifier is never chosen locally: it comes from the server on create
(or from the user on import) and is used for every later call. Create and
update are followed by a read so that local state holds the server's
canonical form (e.g. normalized queries), not the submitted one.

Kind-specific details (wire shape, paths, link resolution) are supplied by
a ResourceKind; see resources.py.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel

from .envelope import wrap
from .errors import (
    APIClientError,
    APIRejectionError,
    ResourceTypeMismatchError,
    UnresolvedReferenceError,
    is_not_found,
)
from .models import ResourceIdentifier

if TYPE_CHECKING:
    from .client import APIClient

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=BaseModel)
W = TypeVar("W", bound=BaseModel)

IMPORT_REFERENCE_SEPARATOR = "."


class ImportReferenceError(ValueError):
    """Raised when an import reference is not of the form <project>.<id>."""

    pass


class PartialCreateError(Exception):
    """Raised when a resource was created but could not be read back.

    The resource exists remotely. ``state`` holds its server-assigned id so
    the caller can store it instead of creating the resource again.
    """

    def __init__(self, state: ResourceState[Any], error: Exception) -> None:
        super().__init__(
            f"{state.kind} {state.reference} was created but could not be read back: {error}"
        )
        self.state = state
        self.error = error


class ResourceStatus(str, Enum):
    """Lifecycle state of a declared resource."""

    ABSENT = "absent"
    CREATED = "created"
    DELETED = "deleted"


@dataclass(frozen=True)
class ResourceState(Generic[S]):
    """Locally tracked view of one resource.

    Owned by the caller; the reconciler returns updated copies and never
    persists anything itself.
    """

    kind: str
    project: str
    spec: S
    id: str | None = None
    status: ResourceStatus = ResourceStatus.ABSENT

    @property
    def exists(self) -> bool:
        """Whether the resource is known to exist remotely."""
        return self.id is not None and self.status == ResourceStatus.CREATED

    @property
    def reference(self) -> str | None:
        """Composite <project>.<id> reference, usable for import."""
        if self.id is None:
            return None
        return f"{self.project}{IMPORT_REFERENCE_SEPARATOR}{self.id}"


def parse_import_reference(reference: str) -> tuple[str, str]:
    """Split a "<project>.<id>" reference.

    Raises:
        ImportReferenceError: If the reference is not exactly two non-empty parts.
    """
    parts = reference.split(IMPORT_REFERENCE_SEPARATOR)
    if len(parts) != 2 or not all(parts):
        raise ImportReferenceError(
            f"Expecting an ID formed as '<project>.<resource_id>' (provided: {reference!r})"
        )
    return parts[0], parts[1]


class ResourceKind(ABC, Generic[S, W]):
    """Kind-specific encoding, decoding and paths for one resource type."""

    name: ClassVar[str]
    collection: ClassVar[str]
    spec_type: ClassVar[type[BaseModel]]
    wire_type: ClassVar[type[BaseModel]]

    def collection_path(self, project: str) -> str:
        return f"projects/{project}/{self.collection}"

    def resource_path(self, project: str, resource_id: str) -> str:
        return f"{self.collection_path(project)}/{resource_id}"

    @abstractmethod
    def to_wire(self, spec: S, resource_id: str | None = None) -> W:
        """Translate declared attributes into the wire shape."""

    @abstractmethod
    async def to_spec(self, client: APIClient, wire: W) -> S:
        """Translate a fetched resource back into declared attributes.

        Link-referenced objects are resolved here.
        """

    async def fetch(self, client: APIClient, project: str, resource_id: str) -> W:
        """Fetch one resource by id."""
        return await client.call_api(
            "GET",
            self.resource_path(project, resource_id),
            None,
            self.wire_type,  # type: ignore[arg-type]
        )


class Reconciler(Generic[S, W]):
    """Create, read, update, delete and import resources of one kind."""

    def __init__(self, client: APIClient, kind: ResourceKind[S, W]) -> None:
        self._client = client
        self._kind = kind

    @property
    def kind(self) -> ResourceKind[S, W]:
        return self._kind

    async def create(self, project: str, spec: S) -> ResourceState[S]:
        """Create the resource, then read it back.

        Returns:
            State holding the server-assigned id and server-canonical spec.

        Raises:
            PartialCreateError: If the create succeeded but the read back
                failed. Carries the state with the new id.
        """
        created = await self._client.call_api(
            "POST",
            self._kind.collection_path(project),
            wrap(self._kind.to_wire(spec)),
            ResourceIdentifier,
        )
        logger.debug(
            "Created resource",
            extra={"kind": self._kind.name, "project": project, "resource_id": created.id},
        )

        state = ResourceState(
            kind=self._kind.name,
            project=project,
            spec=spec,
            id=created.id,
            status=ResourceStatus.CREATED,
        )
        try:
            return await self.read(state)
        except (APIClientError, ResourceTypeMismatchError, UnresolvedReferenceError) as e:
            logger.warning(
                "Created resource could not be read back",
                extra={
                    "kind": self._kind.name,
                    "project": project,
                    "resource_id": created.id,
                    "error": str(e),
                },
            )
            raise PartialCreateError(state, e) from e

    async def read(self, state: ResourceState[S]) -> ResourceState[S]:
        """Refresh state from the server.

        A 404 means the resource was deleted out of band: the returned state
        has its id cleared so the caller recreates it. Any other error is raised.
        """
        resource_id = _require_id(state)

        try:
            wire = await self._kind.fetch(self._client, state.project, resource_id)
        except APIRejectionError as e:
            if not is_not_found(e):
                raise
            logger.debug(
                "Resource no longer exists, clearing identifier",
                extra={
                    "kind": self._kind.name,
                    "project": state.project,
                    "resource_id": resource_id,
                },
            )
            return replace(state, id=None, status=ResourceStatus.ABSENT)

        spec = await self._kind.to_spec(self._client, wire)
        return replace(state, spec=spec, status=ResourceStatus.CREATED)

    async def update(self, state: ResourceState[S]) -> ResourceState[S]:
        """Replace all attributes of an existing resource, then read it back."""
        resource_id = _require_id(state)

        await self._client.call_api(
            "PUT",
            self._kind.resource_path(state.project, resource_id),
            wrap(self._kind.to_wire(state.spec, resource_id)),
        )
        logger.debug(
            "Updated resource",
            extra={"kind": self._kind.name, "project": state.project, "resource_id": resource_id},
        )
        return await self.read(state)

    async def delete(self, state: ResourceState[S]) -> ResourceState[S]:
        """Delete the resource.

        Deleting a resource that is already gone succeeds.
        """
        resource_id = _require_id(state)

        try:
            await self._client.call_api(
                "DELETE", self._kind.resource_path(state.project, resource_id)
            )
        except APIRejectionError as e:
            if not is_not_found(e):
                raise
            logger.debug(
                "Resource already deleted",
                extra={
                    "kind": self._kind.name,
                    "project": state.project,
                    "resource_id": resource_id,
                },
            )

        return replace(state, id=None, status=ResourceStatus.DELETED)

    async def import_resource(self, reference: str) -> ResourceState[S]:
        """Adopt an existing remote resource from a "<project>.<id>" reference.

        Raises:
            ImportReferenceError: If the reference is malformed. Raised before
                any request is made.
            APIRejectionError: If the resource does not exist.
        """
        project, resource_id = parse_import_reference(reference)

        wire = await self._kind.fetch(self._client, project, resource_id)
        spec = await self._kind.to_spec(self._client, wire)
        return ResourceState(
            kind=self._kind.name,
            project=project,
            spec=spec,
            id=resource_id,
            status=ResourceStatus.CREATED,
        )


def _require_id(state: ResourceState[S]) -> str:
    if state.id is None:
        raise ValueError(f"{state.kind} in project {state.project} has no identifier")
    return state.id
