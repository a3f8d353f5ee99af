import sys

import click

from .. import manifest
from ..builder import BuildScriptGenerator, run_build_script
from ..cli_logger import logger
from ..decorators import build_options, configuration_from_options, handle_exceptions


@click.command()
@build_options
@click.option("--verbose", "-v", is_flag=True, help="Show the output of the build script.")
@click.pass_context
@handle_exceptions
def build(ctx, verbose, **options):
    """Generate the build script for the project at --path and run it."""
    conf = configuration_from_options(ctx, **options)
    generated = BuildScriptGenerator(conf).generate()
    logger.info(f"Building {conf.source_dir} for {', '.join(generated.platforms)}...")

    if not run_build_script(generated, cwd=conf.source_dir, verbose=verbose):
        logger.error("Build failed. Please check the logs for details.")
        sys.exit(1)

    manifest_dir = conf.manifest_dir or conf.destination_dir or conf.intermediate_dir or conf.source_dir
    logger.success(f"Build completed. Manifest written to {manifest.get_manifest_path(manifest_dir)}")
