import os

import click

from .. import config as config_module
from ..cli_logger import logger
from ..decorators import handle_exceptions


@click.group()
@click.pass_context
def config(ctx):
    """View the buildforge.toml configuration file."""
    pass


@config.command()
@click.pass_context
def view(ctx):
    """View the buildforge.toml file."""
    config_path = os.path.join(ctx.obj["path"], config_module.CONFIG_FILE)
    if not os.path.exists(config_path):
        logger.error(f"Error: No {config_module.CONFIG_FILE} found.")
        return
    with open(config_path, "r") as f:
        click.echo(f.read())


@config.command()
@click.argument("key")
@click.pass_context
@handle_exceptions
def get(ctx, key):
    """Get a value from the buildforge.toml file (e.g. build.platform_name)."""
    conf = config_module.load_config(path=ctx.obj["path"])
    if not conf:
        logger.error(f"Error: No {config_module.CONFIG_FILE} found.")
        return

    value = conf
    try:
        for k in key.split("."):
            value = value[k]
        click.echo(value)
    except (KeyError, TypeError):
        logger.error(f"Error: Key '{key}' not found in {config_module.CONFIG_FILE}")
