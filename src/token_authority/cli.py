"""Command-line interface for token authority operations.

Example:
    >>> # From terminal:
    >>> # token-authority --version
    >>> # token-authority init-db --db token_authority.db
    >>> # token-authority decode <jwt>
    >>> # token-authority decode <jwt> --key signing.pem
    >>> # token-authority revoke <jwt> --db token_authority.db --hint refresh_token
    >>> # token-authority sessions <grant-id> --db token_authority.db
    >>> # token-authority pkce
    >>> # token-authority keys generate --out signing.pem
"""

import asyncio
import json
import os
from pathlib import Path
from typing import Annotated, Optional

import typer

from token_authority import __version__
from token_authority.authority import TokenAuthority
from token_authority.clients import StaticClientResolver
from token_authority.config import (
    ENV_SIGNING_ALGORITHM,
    ENV_SIGNING_KEY_PATH,
    KEY_FILE_ALGORITHM,
    AuthorityConfig,
)
from token_authority.errors import ConfigurationError, MalformedTokenError
from token_authority.keys import generate_signing_key, serialize_private_key
from token_authority.models.enums import TokenKind
from token_authority.pkce import compute_code_challenge, generate_code_verifier
from token_authority.stores import STORAGE_PATH_ENV, SQLiteAuthorityStore
from token_authority.stores.sqlite import DEFAULT_DB_PATH
from token_authority.tokens import TokenCodec

app = typer.Typer(help="Token authority CLI.")

keys_app = typer.Typer(help="Ed25519 signing key management.")
app.add_typer(keys_app, name="keys")

PRIVATE_KEY_FILE_MODE = 0o600


def _db_path(db: Optional[Path]) -> Path:
    if db is not None:
        return Path(db)
    return Path(os.environ.get(STORAGE_PATH_ENV, DEFAULT_DB_PATH))


def _config_error(exc: ConfigurationError) -> typer.Exit:
    typer.echo(f"Error: {exc.message}", err=True)
    return typer.Exit(code=1)


def _load_config(key: Optional[Path] = None) -> AuthorityConfig:
    """Read TOKEN_AUTHORITY_* settings; ``--key`` selects EdDSA with that key file."""
    environ = dict(os.environ)
    if key is not None:
        environ[ENV_SIGNING_KEY_PATH] = str(key)
        if not environ.get(ENV_SIGNING_ALGORITHM):
            environ[ENV_SIGNING_ALGORITHM] = KEY_FILE_ALGORITHM
    try:
        return AuthorityConfig.from_env(environ)
    except ConfigurationError as exc:
        raise _config_error(exc) from exc


def _version_callback(value: bool) -> None:
    """Print the version and exit when requested."""
    if value:
        typer.echo(__version__)
        raise typer.Exit()


VERSION_OPTION = typer.Option(
    False,
    "--version",
    help="Show token authority version and exit.",
    callback=_version_callback,
    is_eager=True,
)

KeyOption = Annotated[
    Optional[Path],
    typer.Option("--key", "-k", help="Ed25519 PEM signing key (implies EdDSA)."),
]


@app.callback()
def cli(version: bool = VERSION_OPTION) -> None:
    """Token authority CLI entrypoint."""


@app.command("init-db")
def init_db(
    db: Annotated[
        Optional[Path],
        typer.Option("--db", "-d", help="Path to the SQLite database."),
    ] = None,
) -> None:
    """Create the grant and session tables."""
    path = _db_path(db)
    path.parent.mkdir(parents=True, exist_ok=True)
    asyncio.run(SQLiteAuthorityStore(db_path=path).initialize())
    typer.echo(f"Initialized token authority database at {path}")


@app.command("decode")
def decode(
    token: str = typer.Argument(..., help="Access or refresh token (JWT)."),
    key: KeyOption = None,
) -> None:
    """Verify a token's signature with the configured key and print its claims."""
    try:
        codec = TokenCodec.from_config(_load_config(key))
    except ConfigurationError as exc:
        raise _config_error(exc) from exc
    try:
        claims = codec.decode(token.strip())
    except MalformedTokenError as exc:
        raise typer.BadParameter(exc.message) from exc
    typer.echo(json.dumps(claims, indent=2, sort_keys=True))


@app.command("revoke")
def revoke(
    token: str = typer.Argument(..., help="Access or refresh token (JWT) to revoke."),
    db: Annotated[
        Optional[Path],
        typer.Option("--db", "-d", help="Path to the SQLite database."),
    ] = None,
    hint: Annotated[
        Optional[str],
        typer.Option("--hint", help="Token type hint: access_token or refresh_token."),
    ] = None,
    key: KeyOption = None,
) -> None:
    """Revoke a token's session and its grant's active session."""
    if hint is not None and hint not in {kind.value for kind in TokenKind}:
        raise typer.BadParameter(f"Unknown token type hint: {hint}")
    try:
        authority = TokenAuthority(
            _load_config(key), SQLiteAuthorityStore(db_path=_db_path(db)), StaticClientResolver()
        )
    except ConfigurationError as exc:
        raise _config_error(exc) from exc
    asyncio.run(authority.revoke(token.strip(), hint))
    typer.echo("Revocation processed")


@app.command("sessions")
def sessions(
    grant_id: str = typer.Argument(..., help="Authorization grant id."),
    db: Annotated[
        Optional[Path],
        typer.Option("--db", "-d", help="Path to the SQLite database."),
    ] = None,
) -> None:
    """List the sessions of a grant lineage, oldest first."""
    store = SQLiteAuthorityStore(db_path=_db_path(db))
    lineage = asyncio.run(store.list_sessions_for_grant(grant_id.strip()))
    if not lineage:
        typer.echo(f"No sessions for grant {grant_id}")
        return
    for session in lineage:
        typer.echo(f"{session.id}  {session.status.value:<9}  {session.created_at.isoformat()}")


@app.command("pkce")
def pkce() -> None:
    """Print a fresh PKCE code_verifier and its S256 code_challenge."""
    verifier = generate_code_verifier()
    typer.echo(f"code_verifier: {verifier}")
    typer.echo(f"code_challenge: {compute_code_challenge(verifier)}")
    typer.echo("code_challenge_method: S256")


@keys_app.command("generate")
def keys_generate(
    out: Annotated[
        Path,
        typer.Option(..., "--out", "-o", help="Output path for the private key PEM file."),
    ],
) -> None:
    """Write a new Ed25519 signing key to a PEM file (mode 0600)."""
    if out.exists() and out.is_dir():
        raise typer.BadParameter(f"Output path is a directory: {out}")
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(serialize_private_key(generate_signing_key()))
    try:
        out.chmod(PRIVATE_KEY_FILE_MODE)
    except OSError as exc:
        typer.echo(f"Warning: could not set file permissions to 0600: {exc}", err=True)
    typer.echo(f"Private key written to {out}")


def main() -> None:
    """Run the token authority CLI."""
    app()


if __name__ == "__main__":
    main()
