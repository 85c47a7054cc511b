"""
Command line entry point.

    puppetchef RECIPE [-c/--conf FILE] [--syntax-check]

Exit codes: 0 success, 1 unreadable input file, 255 invalid recipe or
failed run.
"""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import click
import structlog

from core import __version__
from core.config import ConfigLoader, DEFAULT_CONFIG_FILE
from core.errors import ConfigError
from core.log import configure_logging
from core.recipe import parse_recipe
from browser.manager import BrowserManager
from orchestrator.runner import RecipeRunner, EXIT_FAILURE, EXIT_SUCCESS
from rules.registry import load_plugins


EXIT_BAD_INPUT = 1

logger = structlog.get_logger()


@click.command(name="puppetchef")
@click.version_option(__version__, prog_name="puppetchef")
@click.option(
    "-c", "--conf",
    "conf",
    default=None,
    metavar="FILE",
    help=f"config file (default: {DEFAULT_CONFIG_FILE})",
)
@click.option("--syntax-check", is_flag=True, default=False, help="validate recipe only")
@click.argument("recipe_file", metavar="RECIPE")
def cli(conf: Optional[str], syntax_check: bool, recipe_file: str) -> None:
    """Run a browser automation RECIPE (YAML)."""
    loader = ConfigLoader()

    try:
        config = loader.load_config(conf)
    except ConfigError as e:
        click.echo(f"Error reading or parsing config file: {e.message}", err=True)
        sys.exit(EXIT_BAD_INPUT)

    configure_logging(config.logging)

    try:
        data = loader.load_file(Path(recipe_file))
    except ConfigError as e:
        click.echo(f"Error reading or parsing recipe file: {e.message}", err=True)
        sys.exit(EXIT_BAD_INPUT)

    try:
        recipe = parse_recipe(data, source=recipe_file)
        plugins = load_plugins(recipe.namespaces)
    except ConfigError as e:
        click.echo(e.message, err=True)
        sys.exit(EXIT_FAILURE)

    if syntax_check:
        click.echo("syntax ok")
        sys.exit(EXIT_SUCCESS)

    runner = RecipeRunner(BrowserManager(config.browser), plugins)
    retcode = asyncio.run(runner.run(recipe))
    logger.debug("exit", retcode=retcode)
    sys.exit(retcode)


if __name__ == "__main__":
    cli()
