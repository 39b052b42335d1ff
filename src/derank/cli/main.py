"""Main CLI entry point for derank.

Provides command group with global options and subcommands for building
reference indexes and extracting rank vectors.
"""

import logging
from pathlib import Path

import click

from derank import __version__
from derank.annotation import has_reference_index
from derank.cli.annotate_cmd import annotate
from derank.cli.ranks_cmd import ranks
from derank.config.loader import load_config
from derank.persistence import PipelineStore


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


@click.group()
@click.option(
    '--config',
    type=click.Path(exists=True, path_type=Path),
    default='config/default.yaml',
    help='Path to pipeline configuration YAML file'
)
@click.option(
    '--verbose',
    is_flag=True,
    help='Enable verbose logging (DEBUG level)'
)
@click.pass_context
def cli(ctx, config, verbose):
    """derank: gene rank vectors from differential expression tables.

    Detects identifier, mean expression and statistic columns, remaps
    identifiers to each organism's base namespace, and writes deduplicated
    rank vectors for rank-based enrichment analysis.
    """
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logging.debug("Verbose logging enabled")


@cli.command()
@click.pass_context
def info(ctx):
    """Display pipeline information and configuration summary."""
    config_path = ctx.obj['config_path']

    click.echo(f"derank v{__version__}")
    click.echo(f"Config: {config_path}")
    click.echo()

    try:
        config = load_config(config_path)

        click.echo(f"Config Hash: {config.config_hash()[:16]}...")
        click.echo()

        click.echo(click.style("Detection:", bold=True))
        click.echo(f"  Sample Size:        {config.detection.sample_size}")
        click.echo(f"  Match Threshold:    {config.detection.match_threshold}")
        click.echo(f"  Organism Threshold: {config.detection.organism_match_threshold}")
        click.echo(f"  Strip Versions:     {config.detection.strip_version_suffix}")
        click.echo(f"  Seed:               {config.detection.seed}")
        click.echo()

        click.echo(click.style("Column Aliases:", bold=True))
        click.echo(f"  baseMean: {', '.join(config.aliases.base_mean)}")
        click.echo(f"  stat:     {', '.join(config.aliases.stat)}")
        click.echo()

        click.echo(click.style("Organisms:", bold=True))
        with PipelineStore.from_config(config) as store:
            for name, source in config.annotation.organisms.items():
                cached = has_reference_index(store, name)
                status = click.style("cached", fg='green') if cached else click.style("not built", fg='yellow')
                click.echo(
                    f"  {name} ({source.species}): "
                    f"{', '.join(source.id_namespaces)} [{status}]"
                )
        click.echo()
        click.echo(f"DuckDB Path: {config.duckdb_path}")

    except Exception as e:
        click.echo(click.style(f"Error loading config: {e}", fg='red'), err=True)
        ctx.exit(1)


# Register commands
cli.add_command(annotate)
cli.add_command(ranks)


if __name__ == '__main__':
    cli()
