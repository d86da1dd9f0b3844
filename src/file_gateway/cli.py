# cli.py
import logging
from datetime import timedelta

import click

from file_gateway.errors import BlobStoreError, MetadataIndexError, UserDirectoryError
from file_gateway.index import SQLiteMetadataIndex
from file_gateway.logging_config import configure_logging
from file_gateway.reconcile import reconcile as run_reconcile
from file_gateway.settings import get_settings
from file_gateway.storage import create_blob_store
from file_gateway.users import SQLiteUserDirectory

logger = logging.getLogger(__name__)


@click.group()
def cli():
    """CLI commands for the file gateway"""
    configure_logging(get_settings().log_level)


@cli.command()
def show_config():
    """Show current configuration"""
    settings = get_settings()

    print("Current Configuration:")
    for name, value in settings.describe().items():
        print(f"  {name}: {value}")


@cli.command()
def init_db():
    """Create the metadata index and users tables"""
    settings = get_settings()
    try:
        SQLiteMetadataIndex(settings.db_path, timeout=settings.index_timeout_seconds).init()
        SQLiteUserDirectory(settings.db_path, timeout=settings.index_timeout_seconds).init()
    except (MetadataIndexError, UserDirectoryError) as e:
        raise click.ClickException(str(e))
    print(f"✅ Database initialized at {settings.db_path}")


@cli.command()
@click.argument("user_id")
@click.argument("email_address")
def add_user(user_id, email_address):
    """Add a user to the local users table"""
    settings = get_settings()
    directory = SQLiteUserDirectory(settings.db_path, timeout=settings.index_timeout_seconds)
    try:
        directory.init()
        directory.add_user(user_id, email_address)
    except UserDirectoryError as e:
        raise click.ClickException(str(e))
    print(f"✅ Added user {user_id} <{email_address}>")


@cli.command()
@click.option("--host", default="0.0.0.0", help="Interface to bind")
@click.option("--port", default=8000, type=int, help="Port to listen on")
def serve(host, port):
    """Run the API with uvicorn"""
    import uvicorn

    from file_gateway.main import create_app

    uvicorn.run(create_app(get_settings()), host=host, port=port)


@cli.command()
@click.option("--delete-orphans", is_flag=True, default=False,
              help="Delete blobs that have no metadata record")
@click.option("--grace-seconds", type=float, default=None,
              help="Ignore unreferenced blobs younger than this (defaults to ORPHAN_GRACE_SECONDS)")
def reconcile(delete_orphans, grace_seconds):
    """Report drift between the blob store and the metadata index"""
    settings = get_settings()
    if grace_seconds is None:
        grace_seconds = settings.orphan_grace_seconds
    blob_store = create_blob_store(settings)
    index = SQLiteMetadataIndex(settings.db_path, timeout=settings.index_timeout_seconds)
    try:
        report = run_reconcile(
            blob_store, index, delete_orphans=delete_orphans, min_age=timedelta(seconds=grace_seconds)
        )
    except (BlobStoreError, MetadataIndexError) as e:
        raise click.ClickException(f"Reconciliation failed: {e}")
    finally:
        blob_store.close()

    print(f"Orphaned blobs: {len(report.orphaned_keys)}")
    for key in report.orphaned_keys:
        print(f"  {key}")
    if report.recent_keys:
        print(f"Skipped recent unreferenced blobs: {len(report.recent_keys)}")
    print(f"Records with missing blobs: {len(report.missing_ids)}")
    for file_id in report.missing_ids:
        print(f"  {file_id}")
    if delete_orphans:
        print(f"Deleted: {len(report.deleted_keys)}, failed: {len(report.failed_deletes)}")
    if report.clean:
        print("✅ Blob store and index are consistent")


if __name__ == "__main__":
    cli()
