import os

import click

from .. import manifest as manifest_module
from ..cli_logger import logger


@click.command()
@click.argument("directory", required=False)
@click.option("--key", default=None, help="Print only the value of this key.")
@click.pass_context
def manifest(ctx, directory, key):
    """Show the build manifest in DIRECTORY (defaults to --path)."""
    directory = directory or ctx.obj["path"]
    path = manifest_module.get_manifest_path(directory)
    values = manifest_module.read_manifest(directory)
    if not values:
        logger.error(f"Error: No build manifest found at {os.path.abspath(path)}")
        return

    if key:
        if key not in values:
            logger.error(f"Error: Key '{key}' not found in the build manifest")
            return
        click.echo(values[key])
        return
    click.echo(manifest_module.serialize_manifest(values), nl=False)
