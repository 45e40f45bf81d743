"""
Command-line interface for contact_share.

Provides CLI commands for authentication, zone setup, listing, adding,
sharing and accepting contacts stored in a CloudKit container.

Usage:
    # Show help
    contact-share --help

    # Store the web auth token after signing in
    contact-share auth

    # Create the zone and show all contacts
    contact-share init
    contact-share list

    # Add and share a contact
    contact-share add "Jane Doe" 555-0100
    contact-share share "Jane Doe"
"""

import logging
import sys
from pathlib import Path

import click

from contact_share import __version__
from contact_share.api.cloudkit_api import CloudKitAPI, CloudKitAPIError
from contact_share.api.store import RecordStore
from contact_share.auth.cloudkit_auth import (
    AuthenticationError,
    CloudKitAuth,
    CloudKitCredentials,
)
from contact_share.cli.formatters import (
    print_accept_results,
    print_share,
    print_state,
)
from contact_share.config.generator import save_config_file
from contact_share.config.loader import DEFAULT_CONFIG_FILE, ConfigError, ConfigLoader
from contact_share.config.settings import Settings
from contact_share.storage.db import SyncDatabase
from contact_share.sync.engine import SyncEngine
from contact_share.sync.sharing import ShareError, ShareResolver
from contact_share.sync.state import Error, Loaded
from contact_share.sync.zone import ZONE_CREATED_FLAG
from contact_share.utils import resolve_config_dir, state_db_path
from contact_share.utils.logging import cleanup_old_logs, get_logger, setup_logging

# Errors reported as a plain message instead of a traceback
EXPECTED_ERRORS = (CloudKitAPIError, ShareError, AuthenticationError, ValueError)

# Server codes meaning the container itself is misconfigured
CONTAINER_ERROR_CODES = ("BAD_CONTAINER", "BAD_DATABASE")

# Server codes meaning the user must sign in (again)
SIGN_IN_ERROR_CODES = ("AUTHENTICATION_REQUIRED", "ACCESS_DENIED")


def get_config_file(config_dir: Path, config_file: str | None) -> Path:
    """Get the configuration file path."""
    if config_file:
        return Path(config_file)
    return config_dir / DEFAULT_CONFIG_FILE


def get_settings(ctx: click.Context) -> Settings:
    return Settings.from_dict(ctx.obj.get("config", {}))


def get_auth(ctx: click.Context) -> CloudKitAuth:
    settings = get_settings(ctx)
    return CloudKitAuth(
        settings.container_identifier,
        config_dir=ctx.obj["config_dir"],
        api_token_env=settings.api_token_env,
    )


def create_api(settings: Settings, credentials: CloudKitCredentials) -> CloudKitAPI:
    return CloudKitAPI(
        settings.container_identifier,
        credentials,
        environment=settings.environment,
        page_size=settings.api_page_size,
        max_retries=settings.api_max_retries,
        initial_retry_delay=settings.api_initial_retry_delay,
        max_retry_delay=settings.api_max_retry_delay,
        timeout=settings.api_timeout,
    )


def create_store(ctx: click.Context) -> RecordStore:
    """
    Build the record store for the configured container.

    Raises:
        AuthenticationError: If no API token is available
    """
    settings = get_settings(ctx)
    credentials = get_auth(ctx).get_credentials(settings.api_token)
    return create_api(settings, credentials)


def open_database(config_dir: Path) -> SyncDatabase:
    """
    Return the local state database, creating its directory if needed.

    Use the result as a context manager so the connection is closed.
    """
    config_dir.mkdir(parents=True, mode=0o700, exist_ok=True)
    return SyncDatabase(str(state_db_path(config_dir)))


def create_engine(ctx: click.Context, store: RecordStore, db: SyncDatabase) -> SyncEngine:
    settings = get_settings(ctx)
    return SyncEngine(
        store,
        db,
        zone_name=settings.zone_name,
        max_workers=settings.max_workers,
    )


def report_error(logger: logging.Logger, error: Exception) -> None:
    """Log an error and exit with status 1."""
    if isinstance(error, EXPECTED_ERRORS):
        logger.error(f"{type(error).__name__}: {error}")
    else:
        logger.exception(f"Unexpected error: {error}")
    click.echo(click.style(f"An error occurred: {error}", fg="red"), err=True)
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="contact-share")
@click.option(
    "--verbose", "-v", is_flag=True, help="Enable verbose output with detailed logging."
)
@click.option(
    "--config-dir",
    "-c",
    type=click.Path(exists=False, file_okay=False, dir_okay=True),
    envvar="CONTACT_SHARE_CONFIG_DIR",
    help="Configuration directory path (default: ~/.contact-share).",
)
@click.option(
    "--config-file",
    "-f",
    type=click.Path(exists=False, file_okay=True, dir_okay=False),
    envvar="CONTACT_SHARE_CONFIG_FILE",
    help="Configuration file path (default: <config-dir>/config.yaml).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    config_dir: str | None,
    config_file: str | None,
) -> None:
    """
    Sync and share contacts through CloudKit.

    Keeps your contacts in a private zone of a CloudKit container and lets
    you share single contacts with other accounts via a link.
    """
    ctx.ensure_object(dict)

    resolved_config_dir = resolve_config_dir(config_dir)
    resolved_config_file = get_config_file(resolved_config_dir, config_file)

    ctx.obj["config_dir"] = resolved_config_dir
    ctx.obj["config_file"] = resolved_config_file

    # Load configuration file; the CLI still works without one
    config = {}
    try:
        loader = ConfigLoader(config_dir=resolved_config_dir)
        config = loader.load_from_file(resolved_config_file)
        if config:
            loader.validate(config)
    except ConfigError as e:
        click.echo(
            click.style(f"Warning: Configuration error: {e}", fg="yellow"), err=True
        )
        config = {}

    ctx.obj["config"] = config

    settings = Settings.from_dict(config)
    effective_verbose = verbose or settings.verbose
    ctx.obj["verbose"] = effective_verbose

    log_dir = resolved_config_dir / "logs"
    if settings.log_dir:
        log_dir = Path(settings.log_dir).expanduser()

    setup_logging(verbose=effective_verbose, log_dir=log_dir, enable_file_logging=True)
    cleanup_old_logs(log_dir=log_dir, keep_count=settings.log_retention_count)


# =============================================================================
# Init-Config Command
# =============================================================================


@cli.command("init-config")
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Overwrite existing configuration file if it exists.",
)
@click.pass_context
def init_config_command(ctx: click.Context, force: bool) -> None:
    """
    Generate a default configuration file.

    Examples:

        contact-share init-config

        contact-share init-config --force
    """
    logger = get_logger(__name__)
    config_file = ctx.obj["config_file"]

    click.echo(f"Creating configuration file: {config_file}")

    success, error = save_config_file(config_file, overwrite=force)

    if success:
        click.echo(click.style("Configuration file created successfully!", fg="green"))
        click.echo(f"\nLocation: {config_file}")
        click.echo("\nNext steps:")
        click.echo("1. Set container_identifier and your API token")
        click.echo("2. Run 'contact-share auth' to sign in")
    else:
        click.echo(click.style(f"Error: {error}", fg="red"), err=True)
        logger.error(f"Failed to create configuration file: {error}")
        sys.exit(1)


# =============================================================================
# Auth Commands
# =============================================================================


@cli.command("auth")
@click.option("--token", "-t", help="Web auth token obtained after signing in.")
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Replace the stored token even if one exists.",
)
@click.pass_context
def auth_command(ctx: click.Context, token: str | None, force: bool) -> None:
    """
    Store the web auth token of the signed-in user.

    Without --token, prints the sign-in page for the container and asks
    for the token returned after signing in.

    Examples:

        contact-share auth

        contact-share auth --token <ckWebAuthToken> --force
    """
    logger = get_logger(__name__)
    settings = get_settings(ctx)

    try:
        auth = get_auth(ctx)

        if not force and auth.is_authenticated():
            click.echo(
                click.style(
                    f"Already authenticated for {settings.container_identifier}.",
                    fg="green",
                )
            )
            click.echo("Use --force to replace the stored token.")
            return

        if not token:
            api_token = auth.resolve_api_token(settings.api_token)
            if not api_token:
                raise AuthenticationError(
                    "No CloudKit API token found. Set 'api_token' in config.yaml "
                    f"or export {settings.api_token_env}."
                )
            api = create_api(settings, CloudKitCredentials(api_token=api_token))
            sign_in_url = api.get_sign_in_url()
            if sign_in_url:
                click.echo("Sign in at the following page:")
                click.echo(f"  {sign_in_url}")
            token = click.prompt("Web auth token", hide_input=True)

        auth.save_web_auth_token(token)
        click.echo(click.style("Web auth token saved.", fg="green"))
        logger.info(f"Authentication completed for {settings.container_identifier}")

    except Exception as e:
        report_error(logger, e)


@cli.command("clear-auth")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt.")
@click.pass_context
def clear_auth_command(ctx: click.Context, yes: bool) -> None:
    """
    Clear the stored web auth token.

    Example:

        contact-share clear-auth --yes
    """
    logger = get_logger(__name__)

    if not yes:
        click.confirm("Clear the stored web auth token?", abort=True)

    try:
        if get_auth(ctx).clear():
            click.echo(click.style("Web auth token cleared.", fg="green"))
        else:
            click.echo("No web auth token found.")
    except Exception as e:
        report_error(logger, e)


# =============================================================================
# Status Command
# =============================================================================


@cli.command("status")
@click.pass_context
def status_command(ctx: click.Context) -> None:
    """
    Show credentials, zone and container status.

    Example:

        contact-share status
    """
    logger = get_logger(__name__)
    settings = get_settings(ctx)
    config_dir = ctx.obj["config_dir"]

    try:
        auth = get_auth(ctx)
        auth_status = auth.get_auth_status(settings.api_token)

        click.echo("=== Contact Share Status ===\n")
        click.echo(f"Configuration directory: {auth_status['config_dir']}")
        click.echo(f"Container: {auth_status['container']} ({settings.environment})")
        click.echo(f"Zone: {settings.zone_name}")

        api_token = (
            "Found" if auth_status["api_token"] else click.style("Not found", fg="red")
        )
        web_token = (
            click.style("Stored", fg="green")
            if auth_status["web_auth_token"]
            else click.style("Not signed in", fg="yellow")
        )
        click.echo(f"API token: {api_token}")
        click.echo(f"Web auth token: {web_token}")

        db_path = state_db_path(config_dir)
        if db_path.exists():
            with SyncDatabase(str(db_path)) as db:
                created = db.get_flag(ZONE_CREATED_FLAG)
            click.echo(f"Zone created: {'Yes' if created else 'No'}")
        else:
            click.echo("Zone created: No (run 'contact-share init')")

        click.echo()

        if not auth_status["api_token"]:
            click.echo(click.style("Setup required: CloudKit API token not found.", fg="yellow"))
            click.echo(f"Set 'api_token' in config.yaml or export {settings.api_token_env}.")
            return

        try:
            with open_database(ctx.obj["config_dir"]) as db:
                create_engine(ctx, create_store(ctx), db).check_readiness()
        except CloudKitAPIError as e:
            logger.debug(f"Readiness check failed: {e}")
            click.echo(click.style(f"Not ready: {e}", fg="red"))
            if e.server_error_code in CONTAINER_ERROR_CODES:
                click.echo(
                    "Check container_identifier and environment in config.yaml "
                    "and that the container exists."
                )
            elif e.server_error_code in SIGN_IN_ERROR_CODES:
                click.echo("Sign in with: contact-share auth --force")
            sys.exit(1)

        click.echo(click.style("Ready!", fg="green"))

    except Exception as e:
        report_error(logger, e)


# =============================================================================
# Contact Commands
# =============================================================================


@cli.command("init")
@click.pass_context
def init_command(ctx: click.Context) -> None:
    """
    Create the contact zone if needed and show all contacts.

    Example:

        contact-share init
    """
    logger = get_logger(__name__)

    try:
        with open_database(ctx.obj["config_dir"]) as db:
            state = create_engine(ctx, create_store(ctx), db).initialize()
    except Exception as e:
        report_error(logger, e)
        return

    print_state(state, ctx.obj["verbose"])
    if isinstance(state, Error):
        sys.exit(1)


@cli.command("list")
@click.pass_context
def list_command(ctx: click.Context) -> None:
    """
    Show your contacts and contacts shared with you.

    Example:

        contact-share list
    """
    logger = get_logger(__name__)

    try:
        with open_database(ctx.obj["config_dir"]) as db:
            state = create_engine(ctx, create_store(ctx), db).refresh()
    except Exception as e:
        report_error(logger, e)
        return

    print_state(state, ctx.obj["verbose"])
    if isinstance(state, Error):
        sys.exit(1)


@cli.command("add")
@click.argument("name")
@click.argument("phone")
@click.pass_context
def add_command(ctx: click.Context, name: str, phone: str) -> None:
    """
    Add a contact to your zone.

    Example:

        contact-share add "Jane Doe" 555-0100
    """
    logger = get_logger(__name__)

    if not name.strip() or not phone.strip():
        raise click.BadParameter("Name and phone number must not be empty.")

    try:
        with open_database(ctx.obj["config_dir"]) as db:
            engine = create_engine(ctx, create_store(ctx), db)
            engine.add_contact(name, phone)
            click.echo(click.style(f"Added {name}.", fg="green"))
            state = engine.refresh()
    except Exception as e:
        report_error(logger, e)
        return

    print_state(state, ctx.obj["verbose"])
    if isinstance(state, Error):
        sys.exit(1)


@cli.command("share")
@click.argument("contact")
@click.pass_context
def share_command(ctx: click.Context, contact: str) -> None:
    """
    Share one of your contacts and print its link.

    CONTACT is the record id or the exact name of the contact.

    Example:

        contact-share share "Jane Doe"
    """
    logger = get_logger(__name__)

    try:
        store = create_store(ctx)
        with open_database(ctx.obj["config_dir"]) as db:
            state = create_engine(ctx, store, db).refresh()
        if isinstance(state, Error):
            raise state.error

        private = state.private if isinstance(state, Loaded) else ()
        matches = [c for c in private if c.id == contact] or [
            c for c in private if c.name == contact
        ]
        if not matches:
            raise ValueError(f"No contact named or identified by '{contact}'")
        if len(matches) > 1:
            raise ValueError(
                f"'{contact}' matches {len(matches)} contacts; use the id instead "
                f"(see 'contact-share --verbose list')"
            )

        resolver = ShareResolver(store, get_settings(ctx).container_identifier)
        share, container = resolver.fetch_or_create_share(matches[0])
        print_share(share, container)

    except Exception as e:
        report_error(logger, e)


@cli.command("accept")
@click.argument("url_or_guid")
@click.pass_context
def accept_command(ctx: click.Context, url_or_guid: str) -> None:
    """
    Accept a share link so the contact appears under "Shared With Me".

    Example:

        contact-share accept https://www.icloud.com/share/0aBcD
    """
    logger = get_logger(__name__)

    try:
        store = create_store(ctx)
        resolver = ShareResolver(store, get_settings(ctx).container_identifier)
        metadata = resolver.resolve_metadata(url_or_guid)
        results = resolver.accept_share(metadata)
        print_accept_results(results)
    except Exception as e:
        report_error(logger, e)


# =============================================================================
# Reset Command
# =============================================================================


@cli.command("reset")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt.")
@click.pass_context
def reset_command(ctx: click.Context, yes: bool) -> None:
    """
    Forget that the contact zone was created.

    The next 'init' creates the zone again. This does NOT delete the zone
    or any contact.

    Example:

        contact-share reset --yes
    """
    logger = get_logger(__name__)
    db_path = state_db_path(ctx.obj["config_dir"])

    if not db_path.exists():
        click.echo("No state database found. Nothing to reset.")
        return

    if not yes:
        click.confirm("Clear the local zone marker?", abort=True)

    try:
        with SyncDatabase(str(db_path)) as db:
            db.clear_all_flags()
        click.echo(click.style("Local state has been reset.", fg="green"))
        logger.info("Local state reset completed")
    except Exception as e:
        report_error(logger, e)
