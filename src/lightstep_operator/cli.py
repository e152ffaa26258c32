"""Lightstep Operator CLI (lso).

Keeps Lightstep resources in sync with a declarative YAML file.

Usage:
    lso apply resources.yaml           # Create, update or refresh resources
    lso apply resources.yaml --write   # ...and store ids back into the file
    lso import stream my-project.8xYqz1
    lso delete dashboard my-project.3Fa9w0
    lso kinds

Connection settings come from the environment (see config.py).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import click
import yaml

from . import __version__
from .client import APIClient
from .config import ClientConfig, ConfigurationError
from .errors import APIClientError, ResourceTypeMismatchError, UnresolvedReferenceError
from .reconciler import (
    ImportReferenceError,
    PartialCreateError,
    ResourceState,
    ResourceStatus,
    parse_import_reference,
)
from .resources import KIND_REGISTRY, reconciler_for
from .spec_loader import ResourceDocument, SpecLoadError, dump_resources, load_resources

logger = logging.getLogger(__name__)

T = TypeVar("T")

ClientFactory = Callable[[], APIClient]

# Outcomes reported by apply
ACTION_CREATED = "created"
ACTION_RECREATED = "recreated"
ACTION_UPDATED = "updated"
ACTION_UNCHANGED = "unchanged"

KIND_CHOICE = click.Choice(sorted(KIND_REGISTRY))


def client_from_env() -> APIClient:
    """Build an API client from environment configuration."""
    return APIClient.from_config(ClientConfig.from_env())


def run_with_client(ctx: click.Context, operation: Callable[[APIClient], Awaitable[T]]) -> T:
    """Run an async operation against a fresh client.

    Raises:
        click.ClickException: If configuration is invalid or an API call fails.
    """
    factory: ClientFactory = ctx.obj["client_factory"]

    async def runner() -> T:
        async with factory() as client:
            return await operation(client)

    try:
        return asyncio.run(runner())
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e
    except APIClientError as e:
        raise click.ClickException(f"API call failed (status {e.status_code}): {e.message}") from e
    except (
        ImportReferenceError,
        PartialCreateError,
        ResourceTypeMismatchError,
        UnresolvedReferenceError,
    ) as e:
        raise click.ClickException(str(e)) from e


async def apply_document(
    client: APIClient, document: ResourceDocument
) -> tuple[ResourceDocument, str]:
    """Bring one declared resource in line with the server.

    Returns:
        The document as the server now holds it, and the action taken.
    """
    reconciler = reconciler_for(client, document.kind)
    state = document.to_state()

    if state.id is None:
        state = await reconciler.create(state.project, state.spec)
        action = ACTION_CREATED
    else:
        current = await reconciler.read(state)
        if current.id is None:
            # Deleted out of band
            state = await reconciler.create(state.project, state.spec)
            action = ACTION_RECREATED
        elif current.spec != document.spec:
            state = await reconciler.update(state)
            action = ACTION_UPDATED
        else:
            state = current
            action = ACTION_UNCHANGED

    logger.info(
        "Applied resource",
        extra={"kind": document.kind, "reference": state.reference, "action": action},
    )
    return ResourceDocument.from_state(state), action


async def apply_documents(
    client: APIClient,
    documents: list[ResourceDocument],
    results: list[tuple[ResourceDocument, str]],
) -> list[tuple[ResourceDocument, str]]:
    """Apply documents in file order, appending each outcome to ``results``.

    ``results`` is filled as documents complete, so after a failure it still
    holds every document applied so far. A resource created but not read
    back is recorded with its new id before the error is raised.
    """
    for document in documents:
        try:
            results.append(await apply_document(client, document))
        except PartialCreateError as e:
            results.append((ResourceDocument.from_state(e.state), ACTION_CREATED))
            raise
    return results


def merge_results(
    documents: list[ResourceDocument], results: list[tuple[ResourceDocument, str]]
) -> list[ResourceDocument]:
    """Applied documents followed by the ones never reached."""
    return [document for document, _ in results] + documents[len(results) :]


# =============================================================================
# Main CLI Group
# =============================================================================


@click.group()
@click.version_option(version=__version__, prog_name="lso")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Lightstep Operator CLI (lso).

    Declarative management of Lightstep streams, dashboards, conditions
    and alerts.

    \b
    Required environment:
        LIGHTSTEP_API_KEY  API key
        LIGHTSTEP_ORG      Organization name
    """
    ctx.ensure_object(dict)
    ctx.obj.setdefault("client_factory", client_from_env)


@cli.command()
@click.argument("spec_file", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--write", "-w", is_flag=True, help="Write ids and server specs back to the file")
@click.pass_context
def apply(ctx: click.Context, spec_file: Path, write: bool) -> None:
    """Create, refresh or update every resource declared in SPEC_FILE.

    When a document fails, the ones applied before it are still reported
    and, with --write, stored so their ids are not lost.
    """
    try:
        documents = load_resources(spec_file)
    except SpecLoadError as e:
        raise click.ClickException(str(e)) from e

    results: list[tuple[ResourceDocument, str]] = []
    try:
        run_with_client(ctx, lambda client: apply_documents(client, documents, results))
    finally:
        if results:
            summary = [
                {
                    "kind": document.kind,
                    "reference": document.to_state().reference,
                    "action": action,
                }
                for document, action in results
            ]
            click.echo(yaml.safe_dump(summary, sort_keys=False), nl=False)

        if write and results:
            updated = merge_results(documents, results)
            spec_file.write_text(dump_resources(updated), encoding="utf-8")
            click.secho(f"Wrote {len(updated)} resource(s) to {spec_file}", fg="green", err=True)


@cli.command("import")
@click.argument("kind", type=KIND_CHOICE)
@click.argument("reference")
@click.pass_context
def import_(ctx: click.Context, kind: str, reference: str) -> None:
    """Print an existing resource as a declared document.

    REFERENCE has the form <project>.<resource_id>.
    """
    try:
        parse_import_reference(reference)
    except ImportReferenceError as e:
        raise click.BadParameter(str(e), param_hint="REFERENCE") from e

    async def operation(client: APIClient) -> ResourceState[Any]:
        return await reconciler_for(client, kind).import_resource(reference)

    state = run_with_client(ctx, operation)
    click.echo(dump_resources([ResourceDocument.from_state(state)]), nl=False)


@cli.command()
@click.argument("kind", type=KIND_CHOICE)
@click.argument("reference")
@click.pass_context
def delete(ctx: click.Context, kind: str, reference: str) -> None:
    """Delete a resource. Deleting a resource that is already gone succeeds.

    REFERENCE has the form <project>.<resource_id>.
    """
    try:
        project, resource_id = parse_import_reference(reference)
    except ImportReferenceError as e:
        raise click.BadParameter(str(e), param_hint="REFERENCE") from e

    # Delete only needs the identifier
    state: ResourceState[Any] = ResourceState(
        kind=kind,
        project=project,
        spec=None,
        id=resource_id,
        status=ResourceStatus.CREATED,
    )

    async def operation(client: APIClient) -> ResourceState[Any]:
        return await reconciler_for(client, kind).delete(state)

    run_with_client(ctx, operation)
    click.secho(f"Deleted {kind} {reference}", fg="green")


@cli.command()
def kinds() -> None:
    """List supported resource kinds."""
    for name in sorted(KIND_REGISTRY):
        click.echo(f"{name}\t{KIND_REGISTRY[name].collection}")
