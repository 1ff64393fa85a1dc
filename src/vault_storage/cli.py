"""Command-line interface for vault-storage."""

from pathlib import Path

import click
from dotenv import load_dotenv

from .adapter import StorageAdapter
from .auth import StaticTokenAuthProvider
from .config import DeploymentContext, load_settings
from .exceptions import NotFoundError, RevisionConflictError, VaultStorageError
from .logging_config import configure_logging

EXIT_ERROR = 1
EXIT_NOT_FOUND = 2
EXIT_CONFLICT = 3


def echo_success(message, quiet=False):
    """Echo success message in green."""
    if not quiet:
        click.secho(f"✅ {message}", fg="green", err=True)


def echo_error(message):
    """Echo error message in red."""
    click.secho(f"❌ {message}", fg="red", err=True)


def echo_warning(message):
    """Echo warning message in yellow."""
    click.secho(f"⚠️  {message}", fg="yellow", err=True)


def run_operation(ctx, func, *args):
    """Run an adapter call, mapping expected outcomes to exit codes."""
    try:
        return func(*args)
    except NotFoundError as e:
        echo_warning(f"Not found: {e.path}")
        ctx.exit(EXIT_NOT_FOUND)
    except RevisionConflictError as e:
        echo_warning(f"Revision conflict on {e.path}; current revision: {e.revision}")
        ctx.exit(EXIT_CONFLICT)
    except VaultStorageError as e:
        echo_error(str(e))
        ctx.exit(EXIT_ERROR)


@click.group()
@click.version_option(version="0.1.0")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False),
    default="vault-storage.yaml",
    show_default=True,
    help="YAML settings file",
)
@click.option(
    "--context",
    "deployment",
    type=click.Choice([c.value for c in DeploymentContext]),
    default=DeploymentContext.DESKTOP.value,
    show_default=True,
    help="Deployment context selecting the OAuth registration",
)
@click.option("--token", envvar="VAULT_STORAGE_TOKEN", help="Static bearer token (skips MSAL)")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit JSON-formatted logs")
@click.option("--log-file", type=click.Path(dir_okay=False), help="Also write logs to this file")
@click.pass_context
def main(ctx, config_path, deployment, token, quiet, verbose, json_logs, log_file):
    """Read and write files in blob storage with revision checks."""
    load_dotenv()
    configure_logging(
        level="DEBUG" if verbose else "WARNING", json_format=json_logs, log_file=log_file
    )

    ctx.ensure_object(dict)
    ctx.obj["QUIET"] = quiet
    ctx.obj["CONFIG_PATH"] = config_path
    ctx.obj["CONTEXT"] = DeploymentContext(deployment)
    ctx.obj["TOKEN"] = token


def get_adapter(ctx) -> StorageAdapter:
    """Build the adapter from the options stored on the click context."""
    obj = ctx.obj
    if "ADAPTER" not in obj:
        try:
            settings = load_settings(obj["CONFIG_PATH"])
            auth_provider = StaticTokenAuthProvider(obj["TOKEN"]) if obj["TOKEN"] else None
            obj["ADAPTER"] = StorageAdapter.from_settings(
                settings, context=obj["CONTEXT"], auth_provider=auth_provider
            )
        except (FileNotFoundError, VaultStorageError) as e:
            echo_error(str(e))
            ctx.exit(EXIT_ERROR)
    return obj["ADAPTER"]


@main.command()
@click.argument("path")
@click.pass_context
def stat(ctx, path):
    """Print the current revision of PATH."""
    info = run_operation(ctx, get_adapter(ctx).stat, path)
    click.echo(info.revision)


@main.command()
@click.argument("path")
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write content to file")
@click.pass_context
def load(ctx, path, output):
    """Download PATH to stdout or a file."""
    result = run_operation(ctx, get_adapter(ctx).load, path)
    if output:
        Path(output).write_bytes(result.content)
        echo_success(f"Saved {len(result.content)} bytes to {output}", ctx.obj["QUIET"])
        click.echo(result.revision)
    else:
        stdout = click.get_binary_stream("stdout")
        stdout.write(result.content)
        stdout.flush()


@main.command()
@click.argument("path")
@click.argument("source", type=click.Path(exists=True, dir_okay=False))
@click.option("--rev", "revision", help="Revision the upload is based on (omit to create)")
@click.pass_context
def save(ctx, path, source, revision):
    """Upload SOURCE to PATH, checked against --rev."""
    data = Path(source).read_bytes()
    info = run_operation(ctx, get_adapter(ctx).save, path, data, revision)
    echo_success(f"Saved {path}", ctx.obj["QUIET"])
    click.echo(info.revision)


@main.command(name="ls")
@click.argument("directory", required=False, default="")
@click.pass_context
def list_command(ctx, directory):
    """List DIRECTORY (the root when omitted)."""
    entries = run_operation(ctx, get_adapter(ctx).list, directory)
    for entry in entries:
        suffix = "/" if entry.is_directory else ""
        click.echo(f"{entry.path}{suffix}\t{entry.revision}")


@main.command(name="rm")
@click.argument("path")
@click.pass_context
def remove(ctx, path):
    """Delete PATH."""
    run_operation(ctx, get_adapter(ctx).remove, path)
    echo_success(f"Removed {path}", ctx.obj["QUIET"])


@main.command()
@click.pass_context
def logout(ctx):
    """Revoke the cached access token."""
    get_adapter(ctx).logout()
    echo_success("Logged out", ctx.obj["QUIET"])


if __name__ == "__main__":
    main()
