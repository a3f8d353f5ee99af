import functools
import os
import sys

import click

from .cli_logger import logger
from .config import load_build_configuration, parse_properties
from .errors import BuildForgeError


def handle_exceptions(func):
    """A decorator to handle common exceptions for CLI commands."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except click.Abort:
            logger.warning("\nCommand aborted by user.")
            sys.exit(1)
        except BuildForgeError as e:
            logger.error(f"Error: {e.format_message()}")
            sys.exit(e.exit_code)
        except FileNotFoundError as e:
            logger.error(f"Error: File not found - {e}")
            logger.exception(*sys.exc_info())
            sys.exit(1)
    return wrapper


def build_options(func):
    """Options shared by the commands that generate a build script."""
    options = [
        click.option("--destination", "-o", "destination_dir", default=None,
                     help="Directory the build output is copied or published to."),
        click.option("--intermediate-dir", "-i", default=None,
                     help="Copy the source here and build the copy instead."),
        click.option("--manifest-dir", default=None, help="Directory the build manifest is written to."),
        click.option("--platform", "platform_name", default=None, help="Build for this platform only (e.g. nodejs)."),
        click.option("--platform-version", default=None, help="Runtime version of the selected platform."),
        click.option("--property", "-P", "properties", multiple=True, metavar="KEY=VALUE",
                     help="Platform build property. Can be given multiple times."),
        click.option("--dynamic-install/--no-dynamic-install", "enable_dynamic_install", default=None,
                     help="Install missing toolchains while the script runs."),
        click.option("--multi-platform/--no-multi-platform", "enable_multi_platform_build", default=None,
                     help="Build every detected platform instead of requiring exactly one."),
        click.option("--package/--no-package", "should_package", default=None,
                     help="Create a package of the app after building it."),
        click.option("--operation-id", default=None, help="Identifier recorded in the manifest."),
        click.option("--tools-dir", default=None, help="Directory holding installed toolchains."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def configuration_from_options(ctx, **options):
    """Loads the BuildConfiguration for the project at --path, applying command line overrides."""
    for key in ("destination_dir", "intermediate_dir", "manifest_dir", "tools_dir"):
        if options.get(key):
            options[key] = os.path.abspath(options[key])
    options["properties"] = parse_properties(options.get("properties"))
    return load_build_configuration(ctx.obj["path"], **options)
