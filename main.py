"""
Entrypoint: load config, connect to mongodb, run the updater
"""

import asyncio

import click
import structlog
from pymongo.errors import PyMongoError

from wpcrawler.config import Config, ConfigError
from wpcrawler.fetcher import HTTPFetcher, resolve_ca_bundle
from wpcrawler.logs import configure_logging
from wpcrawler.storage import MongoStorage
from wpcrawler.worker import Updater

logger = structlog.get_logger(__name__)


def print_progress(package, result, completed, total):
    percent = completed / total * 100 if total else 100.0
    click.echo(click.style(f"{percent:04.1f}%", fg='green') + f" Fetched {package.name}")
    if result.transport_failed:
        click.echo(click.style(f"Error while fetching {result.url} ({result.error})", fg='red'), err=True)


def build_fetcher(fetcher_config: dict, concurrent: int) -> HTTPFetcher:
    ca_bundle = resolve_ca_bundle(
        fetcher_config.get('ca_bundle'),
        platforms=fetcher_config.get('ca_bundle_platforms', ['win']),
    )
    return HTTPFetcher(
        user_agent=fetcher_config['user_agent'],
        timeout=float(fetcher_config['timeout']),
        max_redirects=fetcher_config['max_redirects'],
        max_connections=concurrent,
        max_response_size=fetcher_config['max_response_size'],
        ca_bundle=ca_bundle,
    )


async def run_update(config: Config, concurrent: int):
    """Initialize dependencies and update every due package"""
    async with build_fetcher(config.fetcher, concurrent) as fetcher:
        storage = MongoStorage(config=config.as_dict())
        if not storage.connect():
            raise click.ClickException("Failed to connect to MongoDB")

        try:
            storage.create_indexes()
            updater = Updater(storage, fetcher, max_concurrent=concurrent, progress=print_progress)
            return await updater.run()
        finally:
            storage.close()


@click.group()
def cli():
    """Keep wordpress.org plugin and theme versions up to date."""
    pass


@cli.command()
@click.option('--concurrent', type=click.IntRange(min=1), default=None,
              help='Max concurrent connections (default: fetcher.concurrent from config, 10)')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False), default=None,
              help='Path to config.yaml')
def update(concurrent, config_path):
    """Update version info for individual plugins and themes"""
    try:
        config = Config(config_path)
    except ConfigError as e:
        raise click.ClickException(str(e))

    configure_logging(config.logging.get('level', 'INFO'), config.logging.get('format', 'console'))
    concurrent = concurrent or config.fetcher['concurrent']

    try:
        summary = asyncio.run(run_update(config, concurrent))
    except ConfigError as e:
        raise click.ClickException(str(e))
    except PyMongoError as e:
        logger.error("update_aborted", error=str(e), exc_info=True)
        raise click.ClickException(f"Registry write failed: {e}")

    click.echo(
        f"Updated {summary.completed}/{summary.total} packages: "
        f"{summary.activated} active, {summary.deactivated} inactive"
    )


if __name__ == "__main__":
    cli()
