from contextlib import contextmanager
import json
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError
import typer

from .__about__ import __version__ as version
from .builder import build_snapshot
from .console import decorate, set_verbosity, user_error, user_info, user_warning
from .context import SyncContext
from .errors import SyncError
from .locator import find_previous, locate_snapshot, looks_like_manifest_file
from .publisher import publish_snapshot
from .registry import blob_links, delete_snapshot, list_snapshots
from .restore import restore_snapshot
from .settings import Settings
from .store import is_record_identifier
from .util import human_size

DEFAULT_RESTORE_DIR = Path("./restored-dir")

app = typer.Typer(no_args_is_help=True)
""" Entrypoint for CLI tool. """


def make_context() -> SyncContext:
    try:
        settings = Settings()
    except ValidationError as e:
        user_error(f"Invalid configuration:\n{e}")
        raise typer.Exit(code=1)
    return SyncContext.of_settings(settings)


def emit(obj: Any):
    """Structured results go to stdout, one JSON object per line."""
    print(json.dumps(obj))


@contextmanager
def reporting_errors(action: str):
    """Report a SyncError as a failure summary and exit with code 1."""
    try:
        yield
    except SyncError as e:
        user_error(str(e))
        cause = e.__cause__
        if cause is not None and str(cause) not in str(e):
            user_error(f"caused by: {cause}")
        user_info(decorate(f"{action} failed.", "red"))
        raise typer.Exit(code=1)


def version_callback(value: bool):
    if value:
        typer.echo(version)
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs."),
):
    """Snapshot directories into a content-addressed store and restore them anywhere."""
    set_verbosity(verbose)


@app.command()
def upload(
    path: Path = typer.Argument(..., exists=True, file_okay=False, dir_okay=True),
    name: Optional[str] = typer.Option(
        None, help="Snapshot name. Defaults to the directory's name."
    ),
    manifest_dir: Path = typer.Option(
        Path("."), help="Where to write <name>-manifest.json."
    ),
    no_local_manifest: bool = typer.Option(
        False, "--no-local-manifest", help="Don't write a local copy of the manifest."
    ),
):
    """Upload the directory, sending only files that changed since the last snapshot of the same name."""
    ctx = make_context()
    name = name or path.resolve().name
    with reporting_errors("Upload"):
        previous = find_previous(ctx, name)
        if previous is not None:
            user_info(f"Found previous snapshot of {name} from {previous.created_at:%Y-%m-%d %H:%M:%S}")
        result = build_snapshot(ctx, path, previous=previous, name=name)
        published = publish_snapshot(
            ctx, result.manifest, None if no_local_manifest else manifest_dir
        )
    m = result.manifest
    user_info(f"Uploaded {len(result.uploaded)} new or modified files")
    if result.reused:
        user_info(f"Skipped {len(result.reused)} unchanged files")
    user_info(decorate(f"Upload complete: {len(m.files)} files ({human_size(m.total_size)}).", "green"))
    emit(
        {
            "identifier": published.identifier,
            "manifest": str(published.manifest_path) if published.manifest_path else None,
            "name": m.name,
            "files": len(m.files),
            "totalSize": m.total_size,
            "uploaded": len(result.uploaded),
            "reused": len(result.reused),
        }
    )


@app.command()
def status(
    path: Path = typer.Argument(..., exists=True, file_okay=False, dir_okay=True),
    name: Optional[str] = typer.Option(None, help="Snapshot name. Defaults to the directory's name."),
):
    """Show what an upload would send, without uploading anything."""
    ctx = make_context()
    name = name or path.resolve().name
    with reporting_errors("Status"):
        previous = find_previous(ctx, name)
        result = build_snapshot(ctx, path, previous=previous, name=name, dry_run=True)
    for p in result.uploaded + result.deduplicated:
        user_info(f"+ {p}")
    user_info(f"{len(result.uploaded) + len(result.deduplicated)} to upload, {len(result.reused)} unchanged")
    emit(
        {
            "name": name,
            "previous": previous is not None,
            "toUpload": result.uploaded + result.deduplicated,
            "unchanged": result.reused,
        }
    )


@app.command()
def download(
    source: Optional[str] = typer.Argument(
        None, help="Record identifier (at://...) or local manifest file. Defaults to the latest snapshot."
    ),
    out_dir: Optional[Path] = typer.Argument(None, help="Directory to restore into."),
    name: Optional[str] = typer.Option(None, help="Restore the latest snapshot with this name."),
):
    """Restore a snapshot into a directory.

    With a single argument that is neither a record identifier nor a manifest
    file, the argument is taken as the output directory and the latest
    snapshot is restored.
    """
    if source is not None and out_dir is None:
        if not (is_record_identifier(source) or looks_like_manifest_file(source)):
            source, out_dir = None, Path(source)
    out_dir = out_dir or DEFAULT_RESTORE_DIR
    ctx = make_context()
    with reporting_errors("Restore"):
        located = locate_snapshot(ctx, source, name=name)
    m = located.manifest
    user_info(
        f"Restoring {m.name} ({len(m.files)} files, {human_size(m.total_size)}) into {out_dir}"
    )
    result = restore_snapshot(ctx, m, out_dir)
    emit(
        {
            "identifier": located.identifier,
            "name": m.name,
            "destination": str(out_dir),
            "total": result.total,
            "restored": len(result.restored),
            "failed": len(result.failures),
        }
    )
    if result.ok:
        user_info(decorate(f"Restore complete: {result.total} files.", "green"))
        return
    for relpath, err in result.failures:
        user_error(f"{relpath}: {err}")
    if result.restored:
        user_warning(f"Partial restore: {len(result.failures)} of {result.total} files failed.")
    else:
        user_error(f"Restore failed: all {result.total} files failed.")
    raise typer.Exit(code=1)


@app.command("list")
def list_(
    name: Optional[str] = typer.Option(None, help="Only snapshots with this name."),
):
    """List snapshot records, newest first."""
    ctx = make_context()
    with reporting_errors("List"):
        snaps = list_snapshots(ctx, name=name)
    user_info(f"Found {len(snaps)} snapshot records")
    for s in snaps:
        emit(s.to_json())


@app.command()
def delete(identifier: str = typer.Argument(..., help="Record identifier (at://...).")):
    """Delete a snapshot record. The uploaded content is not deleted."""
    ctx = make_context()
    with reporting_errors("Delete"):
        delete_snapshot(ctx, identifier)
    user_info(decorate("Record deleted.", "green"))
    user_info("The blobs referenced by this record still exist in the store.")
    emit({"deleted": identifier})


@app.command()
def links(
    source: Optional[str] = typer.Argument(
        None, help="Record identifier (at://...) or local manifest file. Defaults to the latest snapshot."
    ),
    name: Optional[str] = typer.Option(None, help="Use the latest snapshot with this name."),
):
    """Print a direct download link for every file of a snapshot."""
    ctx = make_context()
    with reporting_errors("Links"):
        located = locate_snapshot(ctx, source, name=name)
        for relpath, url in blob_links(ctx, located.manifest):
            emit({"path": relpath, "url": url})


if __name__ == "__main__":
    app()
