"""Annotate command: build per-organism reference indexes.

Orchestrates the reference index flow:
1. Load config
2. Check for existing checkpoints
3. Enumerate base genes and map alternate namespaces via mygene
4. Validate namespace coverage
5. Save to DuckDB
"""

import logging
import sys
from pathlib import Path

import click

from derank.annotation import (
    MyGeneAnnotationProvider,
    ReferenceIndexValidator,
    build_reference_index,
    has_reference_index,
    save_reference_index,
)
from derank.config.loader import load_config
from derank.persistence import PipelineStore

logger = logging.getLogger(__name__)


@click.command('annotate')
@click.option(
    '--organism',
    'organisms',
    multiple=True,
    help='Organism to build (repeatable; default: all configured organisms)'
)
@click.option(
    '--force',
    is_flag=True,
    help='Rebuild reference indexes even if checkpoints exist'
)
@click.option(
    '--min-coverage',
    type=float,
    default=0.5,
    help='Minimum fraction of base genes each alternate namespace must cover (default: 0.5)'
)
@click.pass_context
def annotate(ctx, organisms, force, min_coverage):
    """Build reference annotation indexes from mygene.info.

    For each organism, enumerates base-namespace genes, maps them to every
    alternate namespace and to display names, validates coverage, and saves
    the index to DuckDB. Skips organisms already built (use --force).

    Examples:

        # Build all configured organisms
        derank annotate

        # Rebuild only human
        derank annotate --organism human --force
    """
    config_path = ctx.obj['config_path']
    click.echo(click.style("=== Reference Annotation ===", bold=True))
    click.echo()

    store = None
    try:
        click.echo("Loading configuration...")
        config = load_config(config_path)
        click.echo(click.style(f"  Config loaded: {config_path}", fg='green'))
        click.echo()

        configured = config.annotation.organisms
        selected = list(organisms) or list(configured)
        unknown = [name for name in selected if name not in configured]
        if unknown:
            click.echo(click.style(
                f"Unknown organism(s): {', '.join(unknown)} "
                f"(configured: {', '.join(configured)})",
                fg='red'
            ), err=True)
            sys.exit(1)

        store = PipelineStore.from_config(config)
        validator = ReferenceIndexValidator(min_coverage=min_coverage)
        built = 0

        for name in selected:
            source = configured[name]
            click.echo(click.style(f"--- {name} ({source.species}) ---", bold=True))

            if has_reference_index(store, name) and not force:
                click.echo(click.style(
                    "  Reference index checkpoint exists. Skipping (use --force to rebuild).",
                    fg='yellow'
                ))
                click.echo()
                continue

            provider = MyGeneAnnotationProvider(
                species=source.species,
                namespace_fields=source.id_namespaces,
                batch_size=config.annotation.batch_size,
                gene_query=config.annotation.gene_query,
            )
            index = build_reference_index(
                provider,
                organism=name,
                id_namespaces=list(source.id_namespaces),
                name_namespace=source.name_namespace,
                strip_version_suffix=config.detection.strip_version_suffix,
            )
            click.echo(f"  {len(index.base_ids)} {index.base_namespace} genes")

            result = validator.validate(index)
            for msg in result.messages:
                if 'FAILED' in msg:
                    click.echo(click.style(f"  {msg}", fg='red'))
                elif 'WARNING' in msg:
                    click.echo(click.style(f"  {msg}", fg='yellow'))
                else:
                    click.echo(f"  {msg}")

            if not result.passed:
                for namespace, rate in result.coverage.items():
                    if rate < min_coverage:
                        report_path = Path(config.data_dir) / f"unmapped_{name}_{namespace}.txt"
                        validator.save_unmapped_report(index, namespace, report_path)
                        click.echo(f"  Unmapped genes saved to: {report_path}")
                click.echo(click.style(
                    f"Reference index validation failed for {name}",
                    fg='red'
                ), err=True)
                sys.exit(1)

            save_reference_index(store, index)
            built += 1
            click.echo(click.style(f"  Saved reference index for {name}", fg='green'))
            click.echo()

        click.echo(click.style(
            f"Annotation complete ({built} built, {len(selected) - built} cached)",
            fg='green',
            bold=True
        ))

    except Exception as e:
        click.echo(click.style(f"Annotation failed: {e}", fg='red'), err=True)
        logger.exception("Annotate command failed")
        sys.exit(1)
    finally:
        if store is not None:
            store.close()
