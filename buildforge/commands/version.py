import importlib.metadata

import click

from ..cli_logger import logger


@click.command()
def version():
    """Print the version of buildforge."""
    try:
        ver = importlib.metadata.version("buildforge")
        click.echo(f"buildforge version {ver}")
    except importlib.metadata.PackageNotFoundError:
        logger.error("Error: Could not determine the version of buildforge. Is it installed correctly?")
