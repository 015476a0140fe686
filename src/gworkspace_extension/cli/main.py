"""Command-line interface for gworkspace-extension."""

import asyncio
import logging
import sys

import click

from gworkspace_extension.__version__ import __version__
from gworkspace_extension.auth.models import TokenStorageType


@click.group()
@click.version_option(version=__version__)
@click.option("--debug", is_flag=True, help="Log debug output to stderr")
def main(debug: bool) -> None:
    """Google Workspace extension - OAuth setup and credential management.

    Credentials are stored in the OS keychain, or in an encrypted file
    when no keychain is available.
    """
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command()
def login() -> None:
    """Sign in with Google in the browser and store the credentials.

    Reuses stored credentials when they already cover every required scope.
    """
    from gworkspace_extension.auth import OAuthManager

    manager = OAuthManager()

    click.echo("Starting OAuth authentication flow...")
    click.echo("Browser will open for Google consent...")
    click.echo("")

    try:
        asyncio.run(manager.get_authenticated_client())
    except Exception as e:
        click.echo(f"❌ Authentication failed: {e}")
        sys.exit(1)

    click.echo("✓ Authentication successful!")


@main.command()
def status() -> None:
    """Show the storage backend and stored token status."""
    from gworkspace_extension.auth import OAuthManager, TokenStatus

    manager = OAuthManager()

    async def _collect():
        storage_type = await manager.credential_storage.get_storage_type()
        token_status, token = await manager.get_status()
        return storage_type, token_status, token

    storage_type, token_status, token = asyncio.run(_collect())

    click.echo("Google Workspace Extension Status:")
    click.echo(f"  Storage: {_storage_label(storage_type)}")
    click.echo(f"  Token: {token_status.value}")

    if token is not None and token_status != TokenStatus.MISSING:
        click.echo(f"  Scopes: {len(token.scopes)} granted")
        click.echo(f"  Refresh token: {'yes' if token.refresh_token else 'no'}")


@main.command("clear-auth")
def clear_auth() -> None:
    """Delete stored authentication credentials."""
    from gworkspace_extension.auth import OAuthManager

    manager = OAuthManager()

    try:
        cleared = asyncio.run(manager.clear_credentials())
    except Exception as e:
        click.echo(f"❌ Failed to clear authentication credentials: {e}", err=True)
        sys.exit(1)

    if cleared:
        click.echo("Authentication credentials cleared successfully.")
    else:
        click.echo("No stored authentication credentials found.")


@main.command()
def doctor() -> None:
    """Check installation and authentication status.

    Verifies:
    1. Python dependencies installed
    2. Credential storage backend
    3. Token validity
    """
    from gworkspace_extension.auth import OAuthManager, TokenStatus

    click.echo("Google Workspace Extension Status:")
    click.echo("")

    # Check dependencies
    click.echo("Dependencies:")
    try:
        import cryptography  # noqa: F401
        import google.auth  # noqa: F401
        import google_auth_oauthlib  # noqa: F401
        import keyring  # noqa: F401

        click.echo("  ✓ google-auth installed")
        click.echo("  ✓ google-auth-oauthlib installed")
        click.echo("  ✓ keyring installed")
        click.echo("  ✓ cryptography installed")
    except ImportError as e:
        click.echo(f"  ❌ Missing dependency: {e}")
        sys.exit(1)

    click.echo("")

    manager = OAuthManager()

    async def _collect():
        storage_type = await manager.credential_storage.get_storage_type()
        return storage_type, await manager.get_status()

    storage_type, (token_status, token) = asyncio.run(_collect())

    click.echo("Authentication:")
    click.echo(f"  Storage backend: {_storage_label(storage_type)}")

    if token_status == TokenStatus.MISSING:
        click.echo("  ❌ Not authenticated")
        click.echo("")
        click.echo("Run 'gworkspace-extension login' to authenticate.")
        sys.exit(1)
    elif token_status == TokenStatus.INVALID:
        click.echo("  ❌ Stored token is missing required scopes")
        click.echo("")
        click.echo("Run 'gworkspace-extension login' to re-authenticate.")
        sys.exit(1)
    elif token_status == TokenStatus.EXPIRED:
        click.echo("  ⚠️  Access token expired (refresh token will be used)")
    elif token_status == TokenStatus.VALID:
        click.echo("  ✓ Authenticated")
        if token is not None:
            click.echo(f"  Scopes: {len(token.scopes)} configured")

    click.echo("")
    click.echo("✓ Ready to use!")


def _storage_label(storage_type: TokenStorageType | None) -> str:
    if storage_type is None:
        return "custom"
    return "OS keychain" if storage_type == TokenStorageType.KEYCHAIN else "encrypted file"


if __name__ == "__main__":
    main()
