"""
Command-line interface for CloudBox SDK.

Provides commands to configure credentials, upload files with resumable
chunked uploads, download files and inspect the account.
"""

import sys
import json
import logging
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TaskProgressColumn
from rich.panel import Panel

from .auth import CredentialManager, EnvironmentTokenProvider
from .client import CloudBoxClient
from .exceptions import CloudBoxError
from .models import UploadProgress
from .utils import format_file_size, parse_file_size


console = Console()


class CLIContext:
    """CLI context object to share state between commands."""

    def __init__(self):
        self.client: Optional[CloudBoxClient] = None
        self.credentials = CredentialManager()
        self.root = "sandbox"

    def get_client(self) -> CloudBoxClient:
        """Get authenticated client."""
        if self.client is None:
            self.client = CloudBoxClient(
                token_provider=EnvironmentTokenProvider(self.credentials),
                root=self.root,
            )

        return self.client


cli_context = CLIContext()


@click.group()
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.option('--root', type=click.Choice(['sandbox', 'dropbox']), default='sandbox', help='Access root')
@click.pass_context
def cli(ctx, debug, root):
    """CloudBox CLI - upload and download files from CloudBox."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug
    cli_context.root = root

    if debug:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(name)s %(levelname)s %(message)s")
        console.print("[dim]Debug mode enabled[/dim]")


@cli.command()
@click.option('--consumer-key', prompt=True, help='Application consumer key')
@click.option('--consumer-secret', prompt=True, hide_input=True, help='Application consumer secret')
@click.option('--access-token', help='OAuth access token')
@click.option('--access-token-secret', help='OAuth access token secret')
def config(consumer_key, consumer_secret, access_token, access_token_secret):
    """Store CloudBox credentials in ~/.cloudbox/credentials.json."""
    values = {
        'consumer_key': consumer_key,
        'consumer_secret': consumer_secret,
        'access_token': access_token,
        'access_token_secret': access_token_secret,
    }

    try:
        for key, value in values.items():
            if value:
                cli_context.credentials.store_credential(key, value, persistent=True)
    except CloudBoxError as e:
        console.print(f"❌ {e}")
        sys.exit(1)

    console.print("✅ Credentials saved successfully!")


@cli.command()
@click.option('--json', 'output_json', is_flag=True, help='Output as JSON')
def account(output_json):
    """Show account information."""
    try:
        info = cli_context.get_client().account_info()
    except CloudBoxError as e:
        console.print(f"❌ Failed to get account info: {e}")
        sys.exit(1)

    if output_json:
        console.print(json.dumps(info, indent=2, default=str))
        return

    table = Table(title="CloudBox Account")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Name", str(info.get('display_name', 'unknown')))
    table.add_row("Email", str(info.get('email', 'unknown')))
    table.add_row("User ID", str(info.get('uid', 'unknown')))

    quota = info.get('quota_info') or {}
    if quota:
        used = quota.get('normal', 0) + quota.get('shared', 0)
        table.add_row("Used", format_file_size(used))
        table.add_row("Quota", format_file_size(quota.get('quota', 0)))

    console.print(table)


@cli.command()
@click.argument('file', type=click.Path(exists=True, dir_okay=False))
@click.option('--path', 'remote_dir', default='', help='Remote directory to upload into')
@click.option('--name', 'remote_name', help='Remote filename (defaults to the local name)')
@click.option('--no-overwrite', is_flag=True, help='Keep an existing remote file')
@click.option('--chunk-size', default='4MB', help='Chunk size, e.g. 4MB or 512KB')
@click.option('--upload-id', help='Upload session to resume')
@click.option('--offset', type=int, default=0, help='Bytes the resumed session already holds')
def upload(file, remote_dir, remote_name, no_overwrite, chunk_size, upload_id, offset):
    """Upload a file with a resumable chunked upload."""
    try:
        chunk_bytes = parse_file_size(chunk_size)
    except ValueError as e:
        console.print(f"❌ {e}")
        sys.exit(1)

    file_path = Path(file)

    try:
        client = cli_context.get_client()

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console
        ) as progress:
            task = progress.add_task(f"Uploading {file_path.name}", total=100)

            def progress_callback(prog: UploadProgress):
                progress.update(task, completed=prog.percentage)

            metadata = client.chunked_upload(
                file_path,
                filename=remote_name,
                path=remote_dir,
                overwrite=not no_overwrite,
                chunk_size=chunk_bytes,
                upload_id=upload_id,
                offset=offset,
                progress_callback=progress_callback,
            )
            progress.update(task, completed=100)

        console.print(f"✅ Uploaded: {metadata.path} ({format_file_size(metadata.bytes)})")

    except CloudBoxError as e:
        console.print(f"❌ Upload failed: {e}")
        if e.session is not None:
            console.print(Panel(
                f"Upload ID: {e.session.upload_id}\n"
                f"Offset: {e.session.offset}\n\n"
                f"Resume with: --upload-id {e.session.upload_id} --offset {e.session.offset}",
                title="Resume",
                border_style="yellow"
            ))
        sys.exit(1)


@cli.command()
@click.argument('remote_path')
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='Output file path')
@click.option('--rev', help='Revision to download')
def download(remote_path, output, rev):
    """Download a file from CloudBox."""
    local_path = Path(output) if output else Path(Path(remote_path).name)

    try:
        client = cli_context.get_client()
        with console.status(f"Downloading {remote_path}..."):
            with open(local_path, "wb") as sink:
                client.get_file(remote_path, sink, revision=rev)
    except CloudBoxError as e:
        local_path.unlink(missing_ok=True)
        console.print(f"❌ Download failed: {e}")
        sys.exit(1)

    console.print(f"✅ Downloaded: {local_path} ({format_file_size(local_path.stat().st_size)})")


if __name__ == '__main__':
    cli()
