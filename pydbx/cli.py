"""CLI interface for pydbx."""

import logging
from pathlib import Path
from typing import Any, Optional

import click
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TimeElapsedColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)

from .api import DropboxClient
from .auth import authorize_url
from .config import config
from .exceptions import DbxAPIError, DbxRetryExhaustedError
from .output import OutputFormatter
from .utils import DEFAULT_MAX_RETRIES, VALID_ROOTS, parse_size

logger = logging.getLogger(__name__)


@click.group()
@click.option(
    "--access-token", "-t", envvar="DBX_ACCESS_TOKEN", help="Dropbox access token"
)
@click.option(
    "--root",
    type=click.Choice(VALID_ROOTS),
    default=None,
    help="Root namespace for paths (default: from config, or auto)",
)
@click.option("--locale", default=None, help="Locale hint sent with requests")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="pydbx")
@click.pass_context
def main(
    ctx: Any,
    access_token: Optional[str],
    root: Optional[str],
    locale: Optional[str],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """pydbx - Work with files in Dropbox from the command line."""
    ctx.ensure_object(dict)
    ctx.obj["access_token"] = access_token
    ctx.obj["root"] = root
    ctx.obj["locale"] = locale
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("pydbx").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


def _get_client(ctx: Any) -> DropboxClient:
    """Create a client from the global options, or exit if unconfigured."""
    access_token = ctx.obj.get("access_token")
    out: OutputFormatter = ctx.obj["out"]

    if not config.is_configured() and not access_token:
        out.error("Access token not configured.")
        out.info("Run 'dbx init' to configure your access token")
        ctx.exit(1)

    try:
        return DropboxClient(
            access_token=access_token,
            root=ctx.obj.get("root"),
            locale=ctx.obj.get("locale"),
        )
    except DbxAPIError as e:
        out.error(str(e))
        ctx.exit(1)


def _show_metadata(out: OutputFormatter, metadata: Any, message: str) -> None:
    if out.json_output:
        out.output_json(metadata.to_dict())
    else:
        out.success(message)


@main.command()
@click.option(
    "--access-token",
    "-t",
    prompt="Enter your Dropbox access token",
    hide_input=True,
    help="Dropbox access token",
)
@click.pass_context
def init(ctx: Any, access_token: str) -> None:
    """Initialize pydbx configuration.

    Stores your access token in ~/.config/pydbx/config for future use.
    """
    out: OutputFormatter = ctx.obj["out"]

    out.info("Validating access token...")
    try:
        client = DropboxClient(access_token=access_token, root=ctx.obj.get("root"))
        account = client.get_account_info()
        out.success(f"✓ Token is valid for {account.display_name}")
    except DbxAPIError as e:
        out.error(f"Token validation failed: {e}")
        if not click.confirm("Save access token anyway?", default=False):
            out.warning("Configuration cancelled.")
            ctx.exit(1)

    config.save_access_token(access_token)
    out.print_summary(
        "Initialization Complete",
        [
            ("Status", "✓ Configuration saved successfully"),
            ("Config file", str(config.get_config_path())),
        ],
    )


@main.command("authorize-url")
@click.argument("app_key")
@click.option(
    "--redirect-uri",
    "-r",
    required=True,
    help="Redirect URI registered for the app",
)
def authorize_url_cmd(app_key: str, redirect_uri: str) -> None:
    """Print the URL to authorize APP_KEY and obtain an access token."""
    click.echo(authorize_url(app_key, redirect_uri))


@main.command()
@click.pass_context
def account(ctx: Any) -> None:
    """Show account and quota information."""
    out: OutputFormatter = ctx.obj["out"]
    client = _get_client(ctx)

    try:
        info = client.get_account_info()
    except DbxAPIError as e:
        out.error(str(e))
        ctx.exit(1)

    if out.json_output:
        out.output_json(info.to_dict())
        return

    quota = info.quota_info
    out.print_summary(
        "Account",
        [
            ("Name", info.display_name),
            ("Email", info.email),
            ("UID", str(info.uid)),
            ("Country", info.country),
            ("Used", f"{out.format_size(quota.used)} / {out.format_size(quota.quota)}"),
        ],
    )


@main.command()
@click.argument("path", default="/")
@click.option("--deleted", "-d", is_flag=True, help="Include deleted entries")
@click.option("--rev", default="", help="Show metadata of a specific revision")
@click.option(
    "--limit", type=int, default=10000, help="Maximum number of entries to list"
)
@click.pass_context
def ls(ctx: Any, path: str, deleted: bool, rev: str, limit: int) -> None:
    """List a folder or show metadata of a file.

    PATH: Remote path (default: /)
    """
    out: OutputFormatter = ctx.obj["out"]
    client = _get_client(ctx)

    try:
        metadata = client.get_file_metadata(
            path, file_limit=limit, include_deleted=deleted, rev=rev
        )
    except DbxAPIError as e:
        out.error(str(e))
        ctx.exit(1)

    if out.json_output:
        out.output_json(metadata.to_dict())
    elif metadata.is_dir:
        out.print_entries(metadata.contents)
    else:
        out.print_entries([metadata])


@main.command()
@click.argument("path")
@click.option(
    "--output", "-o", type=click.Path(path_type=Path), help="Local output path"
)
@click.option("--rev", default="", help="Download a specific revision")
@click.pass_context
def get(ctx: Any, path: str, output: Optional[Path], rev: str) -> None:
    """Download a file.

    PATH: Remote file path
    """
    out: OutputFormatter = ctx.obj["out"]
    client = _get_client(ctx)
    output = output or Path(path.rstrip("/").rsplit("/", 1)[-1])

    try:
        metadata = client.download_file(path, output, rev=rev)
    except DbxAPIError as e:
        out.error(str(e))
        ctx.exit(1)

    _show_metadata(out, metadata, f"Downloaded {path} -> {output}")


@main.command()
@click.argument("path")
@click.option(
    "--output", "-o", type=click.Path(path_type=Path), help="Local output path"
)
@click.option("--format", "fmt", type=click.Choice(["jpeg", "png"]), default="jpeg")
@click.option(
    "--size", type=click.Choice(["xs", "s", "m", "l", "xl"]), default="s"
)
@click.pass_context
def thumbnail(
    ctx: Any, path: str, output: Optional[Path], fmt: str, size: str
) -> None:
    """Download a thumbnail of an image.

    PATH: Remote image path
    """
    out: OutputFormatter = ctx.obj["out"]
    client = _get_client(ctx)

    try:
        entry = client.thumbnails(path, format=fmt, size=size)
    except DbxAPIError as e:
        out.error(str(e))
        ctx.exit(1)

    name = path.rstrip("/").rsplit("/", 1)[-1]
    output = output or Path(f"{Path(name).stem}_{size}.{fmt}")
    output.write_bytes(entry.data)
    out.success(f"Thumbnail saved to {output}")


@main.command()
@click.argument(
    "local_path", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
@click.argument("path")
@click.option("--parent-rev", default="", help="Revision this upload replaces")
@click.option(
    "--no-overwrite", is_flag=True, help="Rename instead of overwriting"
)
@click.pass_context
def put(
    ctx: Any, local_path: Path, path: str, parent_rev: str, no_overwrite: bool
) -> None:
    """Upload a small file in a single request.

    LOCAL_PATH: Local file to upload
    PATH: Remote destination path
    """
    out: OutputFormatter = ctx.obj["out"]
    client = _get_client(ctx)

    try:
        with open(local_path, "rb") as f:
            metadata = client.put_file(
                f.read(), path, parent_rev=parent_rev, overwrite=not no_overwrite
            )
    except DbxAPIError as e:
        out.error(str(e))
        ctx.exit(1)

    _show_metadata(out, metadata, f"Uploaded {local_path} -> {metadata.path}")


@main.command()
@click.argument(
    "local_path", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
@click.argument("path")
@click.option(
    "--chunk-size",
    "-c",
    default="4MB",
    help="Chunk size, e.g. 512KB, 4MB (default: 4MB)",
)
@click.option(
    "--retries",
    "-r",
    type=click.IntRange(min=1),
    default=DEFAULT_MAX_RETRIES,
    help="Attempts per chunk before giving up",
)
@click.option("--no-progress", is_flag=True, help="Disable progress bar")
@click.pass_context
def upload(
    ctx: Any,
    local_path: Path,
    path: str,
    chunk_size: str,
    retries: int,
    no_progress: bool,
) -> None:
    """Upload a file of any size with a chunked upload session.

    LOCAL_PATH: Local file to upload
    PATH: Remote destination path
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        chunk_size_bytes = parse_size(chunk_size)
    except ValueError:
        out.error(f"Invalid chunk size: {chunk_size}")
        ctx.exit(1)

    client = _get_client(ctx)
    file_size = local_path.stat().st_size

    if not no_progress and not out.quiet and not out.json_output:
        progress_display: Optional[Progress] = Progress(
            "[progress.description]{task.description}",
            BarColumn(),
            "[progress.percentage]{task.percentage:>3.0f}%",
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeElapsedColumn(),
            TimeRemainingColumn(),
            refresh_per_second=10,
        )
    else:
        progress_display = None
        out.progress_message(
            f"Uploading {local_path} ({out.format_size(file_size)})"
        )

    try:
        progress_callback = None
        if progress_display:
            progress_display.start()
            task_id = progress_display.add_task(
                f"[cyan]{local_path.name}", total=file_size
            )

            def progress_callback(bytes_uploaded: int, total_bytes: int) -> None:
                progress_display.update(
                    task_id, completed=bytes_uploaded, total=total_bytes
                )

        metadata = client.upload_by_chunked(
            local_path,
            path,
            chunk_size=chunk_size_bytes,
            retry_count=retries,
            progress_callback=progress_callback,
        )
    except KeyboardInterrupt:
        out.warning("\nUpload cancelled by user")
        ctx.exit(130)
    except DbxRetryExhaustedError as e:
        out.error(f"Upload failed: {e}")
        ctx.exit(1)
    except DbxAPIError as e:
        out.error(str(e))
        ctx.exit(1)
    finally:
        if progress_display:
            progress_display.stop()

    _show_metadata(out, metadata, f"Uploaded {local_path} -> {metadata.path}")


@main.command()
@click.option("--cursor", "-c", default="", help="Cursor from a previous call")
@click.option("--all", "fetch_all", is_flag=True, help="Follow has_more to the end")
@click.pass_context
def delta(ctx: Any, cursor: str, fetch_all: bool) -> None:
    """Show changes since CURSOR."""
    out: OutputFormatter = ctx.obj["out"]
    client = _get_client(ctx)

    pages = []
    try:
        while True:
            result = client.delta(cursor)
            pages.append(result)
            cursor = result.cursor
            if not (fetch_all and result.has_more):
                break
    except DbxAPIError as e:
        out.error(str(e))
        ctx.exit(1)

    if out.json_output:
        out.output_json([page.to_dict() for page in pages])
        return

    for page in pages:
        if page.reset:
            out.warning("Reset: discard local state before applying changes")
        for entry in page.entries:
            marker = "-" if entry.is_deleted else "+"
            out.print(f"{marker} {entry.path}")
    out.info(f"Cursor: {cursor}")


@main.command()
@click.argument("path")
@click.option("--limit", type=int, default=10, help="Maximum revisions to list")
@click.pass_context
def revisions(ctx: Any, path: str, limit: int) -> None:
    """List revisions of a file."""
    out: OutputFormatter = ctx.obj["out"]
    client = _get_client(ctx)

    try:
        revs = client.revisions(path, rev_limit=limit)
    except DbxAPIError as e:
        out.error(str(e))
        ctx.exit(1)

    if out.json_output:
        out.output_json([rev.to_dict() for rev in revs])
        return
    for rev in revs:
        out.print(f"{rev.rev}  {rev.modified}  {out.format_size(rev.bytes)}")


@main.command()
@click.argument("path")
@click.argument("rev")
@click.pass_context
def restore(ctx: Any, path: str, rev: str) -> None:
    """Restore PATH to revision REV."""
    out: OutputFormatter = ctx.obj["out"]
    client = _get_client(ctx)

    try:
        metadata = client.restore(path, rev)
    except DbxAPIError as e:
        out.error(str(e))
        ctx.exit(1)

    _show_metadata(out, metadata, f"Restored {path} to {rev}")


@main.command()
@click.argument("query")
@click.option("--path", "-p", default="/", help="Folder to search in")
@click.option("--limit", type=int, default=1000, help="Maximum results")
@click.option("--deleted", "-d", is_flag=True, help="Include deleted entries")
@click.pass_context
def search(ctx: Any, query: str, path: str, limit: int, deleted: bool) -> None:
    """Search for files whose names contain QUERY."""
    out: OutputFormatter = ctx.obj["out"]
    client = _get_client(ctx)

    try:
        results = client.search(
            path, query, file_limit=limit, include_deleted=deleted
        )
    except DbxAPIError as e:
        out.error(str(e))
        ctx.exit(1)

    if out.json_output:
        out.output_json([item.to_dict() for item in results])
    elif results:
        out.print_entries(results)
    else:
        out.info("No results")


def _link_command(ctx: Any, path: str, fetch: Any) -> None:
    out: OutputFormatter = ctx.obj["out"]
    try:
        result = fetch(path)
    except DbxAPIError as e:
        out.error(str(e))
        ctx.exit(1)

    if out.json_output:
        out.output_json(result)
    else:
        for key, value in result.items():
            out.print(f"{key}: {value}")


@main.command()
@click.argument("path")
@click.option("--long-url", is_flag=True, help="Return the full URL")
@click.pass_context
def share(ctx: Any, path: str, long_url: bool) -> None:
    """Create a shareable link to PATH."""
    client = _get_client(ctx)
    _link_command(ctx, path, lambda p: client.shares(p, short_url=not long_url))


@main.command()
@click.argument("path")
@click.pass_context
def media(ctx: Any, path: str) -> None:
    """Create a direct streaming link to PATH."""
    client = _get_client(ctx)
    _link_command(ctx, path, client.media)


@main.command("copy-ref")
@click.argument("path")
@click.pass_context
def copy_ref(ctx: Any, path: str) -> None:
    """Create a copy reference to PATH."""
    client = _get_client(ctx)
    _link_command(ctx, path, client.copy_ref)


@main.command()
@click.argument("source")
@click.argument("to_path")
@click.option(
    "--ref", "is_ref", is_flag=True, help="SOURCE is a copy reference, not a path"
)
@click.pass_context
def cp(ctx: Any, source: str, to_path: str, is_ref: bool) -> None:
    """Copy SOURCE to TO_PATH.

    SOURCE is a remote path, or a copy reference when --ref is given.
    """
    out: OutputFormatter = ctx.obj["out"]
    client = _get_client(ctx)

    try:
        if is_ref:
            metadata = client.copy("", to_path, from_copy_ref=source)
        else:
            metadata = client.copy(source, to_path)
    except DbxAPIError as e:
        out.error(str(e))
        ctx.exit(1)

    _show_metadata(out, metadata, f"Copied to {metadata.path}")


@main.command()
@click.argument("path")
@click.pass_context
def mkdir(ctx: Any, path: str) -> None:
    """Create a folder."""
    out: OutputFormatter = ctx.obj["out"]
    client = _get_client(ctx)

    try:
        metadata = client.create_folder(path)
    except DbxAPIError as e:
        out.error(str(e))
        ctx.exit(1)

    _show_metadata(out, metadata, f"Folder created: {metadata.path}")


@main.command()
@click.argument("path")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def rm(ctx: Any, path: str, yes: bool) -> None:
    """Delete a file or folder."""
    out: OutputFormatter = ctx.obj["out"]
    client = _get_client(ctx)

    if not yes and not click.confirm(f"Delete {path}?", default=False):
        out.warning("Deletion cancelled.")
        return

    try:
        metadata = client.delete(path)
    except DbxAPIError as e:
        out.error(str(e))
        ctx.exit(1)

    _show_metadata(out, metadata, f"Deleted: {path}")


@main.command()
@click.argument("from_path")
@click.argument("to_path")
@click.pass_context
def mv(ctx: Any, from_path: str, to_path: str) -> None:
    """Move FROM_PATH to TO_PATH."""
    out: OutputFormatter = ctx.obj["out"]
    client = _get_client(ctx)

    try:
        metadata = client.move(from_path, to_path)
    except DbxAPIError as e:
        out.error(str(e))
        ctx.exit(1)

    _show_metadata(out, metadata, f"Moved {from_path} -> {metadata.path}")


if __name__ == "__main__":
    main()
