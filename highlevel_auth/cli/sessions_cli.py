# highlevel_auth/cli/sessions_cli.py
import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer
from pydantic import ValidationError
from typing_extensions import Annotated

from ..auth.models import PrincipalKind, SessionRecord
from ..errors import HighLevelError
from ..settings import settings
from ..storage import AbstractCredentialStore, create_credential_store
from ..transport.client import HighLevelClient
from ..utils.security import mask_token
from .config import HIGHLEVEL_CLI_OUTPUT

T = TypeVar("T")

app = typer.Typer(
    name="sessions",
    help="Inspect, refresh and establish stored sessions.",
    no_args_is_help=True
)


def build_store() -> AbstractCredentialStore:
    """Store for the configured backend, scoped to the configured client id."""
    store = create_credential_store()
    store.set_client_id(settings.client_id)
    return store


def build_client() -> HighLevelClient:
    """Client able to talk to the OAuth endpoints; needs HIGHLEVEL_CLIENT_ID and HIGHLEVEL_CLIENT_SECRET."""
    return HighLevelClient(store=build_store())


def _run(work: Callable[[], Awaitable[T]]) -> T:
    try:
        return asyncio.run(work())
    except HighLevelError as e:
        typer.secho(f"Error: {e.message}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _open_client() -> HighLevelClient:
    try:
        return build_client()
    except ValidationError as e:
        typer.secho(
            f"CLI Error: client credentials are not configured: {e.errors()[0].get('msg')}",
            fg=typer.colors.RED
        )
        raise typer.Exit(code=1)


def _format_expiry(expire_at: Optional[int]) -> str:
    if expire_at is None:
        return "never"
    return datetime.fromtimestamp(expire_at / 1000, tz=timezone.utc).isoformat()


def _session_summary(record: SessionRecord) -> dict:
    return {
        "resource_id": record.resource_id,
        "principal_kind": record.principal_kind.value,
        "parent_id": record.parent_id,
        "expire_at": _format_expiry(record.expire_at),
        "access_token": mask_token(record.access_token),
        "has_refresh_token": record.refresh_token is not None,
        "scope": record.scope,
    }


def _echo(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2))


@app.command("list")
def list_sessions(
    output: Annotated[Optional[str], typer.Option(help="Output format: 'table' or 'json'.")] = None,
):
    """List sessions stored for the configured application."""
    async def work():
        store = build_store()
        await store.initialize()
        try:
            return await store.list_sessions()
        finally:
            await store.teardown()

    records = _run(work)
    if not records:
        typer.secho("No sessions stored.", fg=typer.colors.YELLOW)
        return

    if (output or HIGHLEVEL_CLI_OUTPUT) == "json":
        _echo([_session_summary(r) for r in records])
        return
    for record in records:
        parent = f" (company {record.parent_id})" if record.parent_id else ""
        typer.echo(
            f"{record.resource_id}\t{record.principal_kind.value}{parent}\t"
            f"expires {_format_expiry(record.expire_at)}"
        )


@app.command("show")
def show_session(
    resource_id: Annotated[str, typer.Argument(help="Company or location id.")]
):
    """Show one stored session with its tokens masked."""
    async def work():
        store = build_store()
        await store.initialize()
        try:
            return await store.get_session(resource_id)
        finally:
            await store.teardown()

    record = _run(work)
    if record is None:
        typer.secho(f"No session stored for '{resource_id}'.", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    _echo(_session_summary(record))


@app.command("delete")
def delete_session(
    resource_id: Annotated[str, typer.Argument(help="Company or location id.")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation.")] = False,
):
    """Remove a stored session."""
    if not yes:
        typer.confirm(f"Delete the stored session for '{resource_id}'?", abort=True)

    async def work():
        store = build_store()
        await store.initialize()
        try:
            await store.delete_session(resource_id)
        finally:
            await store.teardown()

    _run(work)
    typer.secho(f"Deleted session for '{resource_id}'.", fg=typer.colors.GREEN)


@app.command("refresh")
def refresh_session(
    resource_id: Annotated[str, typer.Argument(help="Company or location id.")]
):
    """Force a refresh of a stored session, falling back to the parent company for locations."""
    client = _open_client()

    async def work():
        async with client:
            return await client.refresh_engine.refresh_for_retry(resource_id)

    authorization = _run(work)
    if authorization is None:
        typer.secho(f"No session stored for '{resource_id}'.", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    token = authorization.split(" ", 1)[-1]
    typer.secho(f"Refreshed session for '{resource_id}': {mask_token(token)}", fg=typer.colors.GREEN)


@app.command("exchange")
def exchange_code(
    code: Annotated[str, typer.Option(prompt=True, help="Authorization code from the install redirect.")],
    user_type: Annotated[str, typer.Option(help="'Company' or 'Location'.")] = "Location",
    redirect_uri: Annotated[Optional[str], typer.Option(help="Redirect URI used in the install flow.")] = None,
):
    """Exchange an authorization code and store the resulting session."""
    try:
        principal_kind = PrincipalKind.parse(user_type)
    except ValueError as e:
        typer.secho(f"CLI Error: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    client = _open_client()
    credentials = client.credentials

    async def work():
        async with client:
            grant = await client.oauth_endpoint.exchange_authorization_code(
                code,
                credentials.client_id,
                credentials.client_secret,
                principal_kind,
                redirect_uri=redirect_uri
            )
            kind = grant.principal_kind or principal_kind
            resource_id = grant.company_id if kind is PrincipalKind.COMPANY else grant.location_id
            if not resource_id:
                raise HighLevelError(f"Token response did not include a {kind.value.lower()} id.")
            return await client.refresh_engine.persist_grant(resource_id, grant, principal_kind=kind)

    record = _run(work)
    typer.secho(
        f"Stored {record.principal_kind.value} session for '{record.resource_id}'.",
        fg=typer.colors.GREEN
    )
