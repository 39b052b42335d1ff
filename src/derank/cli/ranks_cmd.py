"""Ranks command: detect table metadata and write a gene rank vector."""

import logging
import sys
from pathlib import Path

import click
import polars as pl

from derank.annotation import load_reference_index
from derank.config.loader import load_config, load_config_with_overrides
from derank.detection import Unresolved, resolve_metadata
from derank.persistence import PipelineStore, ProvenanceTracker
from derank.ranks import annotate_ranks, get_ranks

logger = logging.getLogger(__name__)

TAB_SUFFIXES = {".tsv", ".tab", ".txt"}


def read_table(path: Path) -> pl.DataFrame:
    """Read a delimited differential expression table (TSV or CSV by suffix)."""
    suffixes = [s.lower() for s in path.suffixes]
    if suffixes and suffixes[-1] == ".gz":
        suffixes = suffixes[:-1]
    separator = "\t" if suffixes and suffixes[-1] in TAB_SUFFIXES else ","
    return pl.read_csv(path, separator=separator, infer_schema_length=10000)


@click.command('ranks')
@click.argument(
    'input_path',
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    '--output', '-o',
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help='Output TSV path (default: <data_dir>/<input name>.ranks.tsv)'
)
@click.option('--organism', default=None, help='Organism name (skip organism detection)')
@click.option('--id-column', default=None, help='Identifier column (requires --id-type)')
@click.option('--id-type', default=None, help='Identifier namespace (requires --id-column)')
@click.option('--base-mean-column', default=None, help='Mean expression column')
@click.option(
    '--no-base-mean',
    is_flag=True,
    help='Ignore mean expression; deduplicate by absolute statistic'
)
@click.option('--stat-column', default=None, help='Ranking statistic column')
@click.option('--seed', type=int, default=None, help='Random seed for row sampling')
@click.option(
    '--detect-only',
    is_flag=True,
    help='Only report detected metadata, do not write ranks'
)
@click.pass_context
def ranks(ctx, input_path, output, organism, id_column, id_type,
          base_mean_column, no_base_mean, stat_column, seed, detect_only):
    """Detect metadata of a DE table and write its gene rank vector.

    Identifier column, namespace and organism are detected against the
    reference indexes built by `derank annotate` unless given explicitly.

    Examples:

        # Fully automatic
        derank ranks deseq2_results.tsv -o ranks.tsv

        # Identifier column known, statistic detected
        derank ranks limma.csv --id-column gene --id-type Symbol
    """
    config_path = ctx.obj['config_path']
    click.echo(click.style("=== Rank Vector ===", bold=True))
    click.echo()

    store = None
    try:
        if seed is not None:
            config = load_config_with_overrides(config_path, {"detection.seed": seed})
        else:
            config = load_config(config_path)
        provenance = ProvenanceTracker.from_config(config)

        store = PipelineStore.from_config(config)
        indexes = {}
        for name in config.annotation.organisms:
            index = load_reference_index(store, name)
            if index is not None:
                indexes[name] = index
        if not indexes:
            click.echo(click.style(
                "No reference indexes found. Run `derank annotate` first.",
                fg='red'
            ), err=True)
            sys.exit(1)
        click.echo(f"Reference indexes: {', '.join(indexes)}")

        table = read_table(input_path)
        click.echo(f"Loaded {input_path}: {table.height} rows, {table.width} columns")
        click.echo()
        provenance.record_step('read_table', {
            'path': str(input_path),
            'rows': table.height,
            'columns': table.columns,
        })

        descriptor = resolve_metadata(
            table,
            indexes,
            organism=organism,
            id_column=id_column,
            id_type=id_type,
            base_mean_column=Unresolved.NOT_REQUESTED if no_base_mean else base_mean_column,
            stat_column=stat_column,
            detection=config.detection,
            aliases=config.aliases,
        )
        summary = descriptor.summary()
        provenance.record_step('resolve_metadata', summary)

        click.echo(click.style("Detected metadata:", bold=True))
        click.echo(f"  Organism:    {summary['organism']}")
        click.echo(f"  ID type:     {summary['id_type']}")
        if descriptor.match_ratio is not None:
            click.echo(f"  Match ratio: {descriptor.match_ratio:.1%}")
        for name, spec in summary['columns'].items():
            click.echo(f"  {name:<12} <- {spec}")
        click.echo()

        required = [f for f in descriptor.unresolved_fields() if f != "columns.baseMean"]
        if required:
            click.echo(click.style(
                f"Unresolved metadata: {', '.join(required)}. "
                "Specify them explicitly (see --help).",
                fg='red'
            ), err=True)
            sys.exit(1)

        if detect_only:
            click.echo(click.style("Detection complete", fg='green'))
            return

        rank_vector = get_ranks(
            table,
            descriptor,
            indexes,
            max_genes=config.ranks.max_genes,
            strip_version_suffix=config.detection.strip_version_suffix,
        )
        rank_vector = annotate_ranks(rank_vector, indexes[descriptor.organism])
        provenance.record_step('extract_ranks', {'genes': rank_vector.height})

        if output is None:
            output = Path(config.data_dir) / f"{input_path.name.split('.')[0]}.ranks.tsv"
        output.parent.mkdir(parents=True, exist_ok=True)
        rank_vector.write_csv(output, separator="\t")
        sidecar = provenance.save_sidecar(output)

        click.echo(click.style(f"Wrote {rank_vector.height} ranked genes to {output}", fg='green'))
        click.echo(f"Provenance: {sidecar}")

    except Exception as e:
        click.echo(click.style(f"Rank extraction failed: {e}", fg='red'), err=True)
        logger.exception("Ranks command failed")
        sys.exit(1)
    finally:
        if store is not None:
            store.close()
