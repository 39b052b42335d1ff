"""Unit tests for metadata detection.

Tests alias column lookup, identifier column/namespace detection, organism
selection, and metadata descriptor resolution with synthetic reference indexes.
"""

import polars as pl
import pytest

from derank.annotation import ReferenceAnnotationIndex
from derank.config import ColumnAliases, DetectionConfig
from derank.detection import (
    DerivedColumn,
    Unresolved,
    find_column,
    find_id_column,
    find_id_column_across_organisms,
    is_resolved,
    resolve_metadata,
)


def make_index(organism: str, prefix: str, offset: int, n: int = 100) -> ReferenceAnnotationIndex:
    """Synthetic index: Entrez base IDs, Ensembl and Symbol alternates."""
    base = [str(offset + i) for i in range(n)]
    return ReferenceAnnotationIndex(
        organism=organism,
        base_namespace="Entrez",
        base_ids=base,
        gene_names={gene: f"{prefix}SYM{i}" for i, gene in enumerate(base)},
        alternate_maps={
            "Ensembl": {f"{prefix}{i:011d}": gene for i, gene in enumerate(base)},
            "Symbol": {f"{prefix}SYM{i}": gene for i, gene in enumerate(base)},
        },
    )


@pytest.fixture
def human():
    return make_index("human", "ENSG", 1000)


@pytest.fixture
def mouse():
    return make_index("mouse", "ENSMUSG", 50000)


def de_table(ids: list, stat_name: str = "stat") -> pl.DataFrame:
    n = len(ids)
    return pl.DataFrame({
        "baseMean": [10.5 + i for i in range(n)],
        "gene_id": ids,
        stat_name: [0.25 * i - 3.0 for i in range(n)],
        "padj": [0.01] * n,
    })


# find_column

def test_find_column_case_insensitive():
    """Alias 't' matches column 'T'."""
    table = pl.DataFrame({"id": ["a"], "T": [1.0], "baseMean": [2.0]})
    assert find_column(table, ["stat", "t"]) == "T"


def test_find_column_no_match():
    table = pl.DataFrame({"id": ["a"], "baseMean": [2.0]})
    assert find_column(table, ["stat", "t"]) is None


def test_find_column_alias_priority():
    """Earlier alias wins even when a later alias matches a column further left."""
    table = pl.DataFrame({"logFC": [1.0], "t": [2.0], "stat": [3.0]})
    assert find_column(table, ["stat", "t", "logfc"]) == "stat"
    assert find_column(table, ["t", "logfc"]) == "t"


def test_find_column_leftmost_for_same_alias():
    table = pl.DataFrame({"x": [0], "LOGFC": [1.0], "logFC": [2.0]})
    assert find_column(table, ["logfc"]) == "LOGFC"


# find_id_column

def test_exact_base_ids_detected(human):
    """Entrez IDs stored as integers match the base namespace with ratio 1."""
    table = de_table([int(g) for g in human.base_ids])
    match = find_id_column(table, human.id_sets())

    assert match.column == "gene_id"
    assert match.namespace == "Entrez"
    assert match.match_ratio == 1.0


@pytest.mark.parametrize("namespace", ["Ensembl", "Symbol"])
def test_exact_alternate_ids_detected(human, namespace):
    ids = list(human.alternate_maps[namespace])
    match = find_id_column(de_table(ids), human.id_sets())

    assert match.column == "gene_id"
    assert match.namespace == namespace
    assert match.match_ratio == 1.0


def test_sampled_detection_is_reproducible(human):
    """Tables larger than sample_size are sampled; same seed gives same result."""
    ids = list(human.alternate_maps["Ensembl"])
    table = de_table(ids)

    first = find_id_column(table, human.id_sets(), sample_size=30, seed=7)
    second = find_id_column(table, human.id_sets(), sample_size=30, seed=7)

    assert first == second
    assert first.column == "gene_id"
    assert first.namespace == "Ensembl"
    assert first.match_ratio == 1.0


def test_majority_namespace_wins(human):
    """70% Symbol / 30% Ensembl column -> Symbol with ratio 0.7."""
    symbols = list(human.alternate_maps["Symbol"])[:70]
    ensembl = list(human.alternate_maps["Ensembl"])[70:100]
    match = find_id_column(de_table(symbols + ensembl), human.id_sets())

    assert match.column == "gene_id"
    assert match.namespace == "Symbol"
    assert match.match_ratio == pytest.approx(0.7)


def test_version_suffix_stripped(human):
    """ENSG00000000001.5 matches ENSG00000000001 unless stripping is disabled."""
    versioned = [f"{ensembl_id}.{i % 9 + 1}" for i, ensembl_id in enumerate(human.alternate_maps["Ensembl"])]
    table = de_table(versioned)

    match = find_id_column(table, human.id_sets())
    assert match.namespace == "Ensembl"
    assert match.match_ratio == 1.0

    unstripped = find_id_column(table, human.id_sets(), strip_version_suffix=False)
    assert unstripped.match_ratio == 0.0


def test_numeric_columns_not_stripped():
    """Decimal numbers are not mistaken for versioned accessions."""
    table = pl.DataFrame({"value": ["1.5", "2.5"], "other": ["x", "y"]})
    match = find_id_column(table, {"Base": {"1"}, "Numbers": {"1.5", "2.5"}})

    assert match.column == "value"
    assert match.namespace == "Numbers"
    assert match.match_ratio == 1.0


def test_no_match_returns_best_effort(human):
    """Nothing matches -> first column, first namespace, ratio 0."""
    table = pl.DataFrame({"a": ["x", "y"], "b": ["z", "w"]})
    match = find_id_column(table, human.id_sets())

    assert match.column == "a"
    assert match.namespace == "Entrez"
    assert match.match_ratio == 0.0


def test_tie_break_first_column_then_first_namespace():
    reference = {"Base": {"zzz"}, "A": {"x1", "x2"}, "B": {"x1", "x2"}}
    table = pl.DataFrame({
        "left": ["x1", "x2", "q", "r"],
        "right": ["x1", "x2", "s", "t"],
    })
    match = find_id_column(table, reference)

    assert match.column == "left"
    assert match.namespace == "A"
    assert match.match_ratio == 0.5


def test_distinct_values_counted():
    """Repeated identifiers count once toward the match."""
    table = pl.DataFrame({"id": ["g1", "g1", "g1", "g2"]})
    match = find_id_column(table, {"Base": {"g1", "g2"}}, match_threshold=0.6)

    assert match.match_ratio == 0.5


def test_zero_columns_rejected(human):
    with pytest.raises(ValueError, match="no columns"):
        find_id_column(pl.DataFrame(), human.id_sets())


def test_zero_rows_rejected(human):
    with pytest.raises(ValueError, match="no rows"):
        find_id_column(pl.DataFrame({"id": []}, schema={"id": pl.Utf8}), human.id_sets())


def test_empty_reference_sets_rejected():
    with pytest.raises(ValueError, match="reference"):
        find_id_column(pl.DataFrame({"id": ["a"]}), {})


# find_id_column_across_organisms

def test_organism_selected(human, mouse):
    table = de_table(list(mouse.alternate_maps["Ensembl"]))
    best, candidates = find_id_column_across_organisms(
        table, {"human": human, "mouse": mouse}
    )

    assert best.organism == "mouse"
    assert best.namespace == "Ensembl"
    assert best.column == "gene_id"
    assert [c.organism for c in candidates] == ["human", "mouse"]


def test_organism_unresolved_below_threshold(human, mouse):
    """50% Symbol / 50% Ensembl -> best ratio 0.5 < 0.6 -> no organism."""
    symbols = list(human.alternate_maps["Symbol"])[:50]
    ensembl = list(human.alternate_maps["Ensembl"])[50:100]
    best, candidates = find_id_column_across_organisms(
        de_table(symbols + ensembl), {"human": human, "mouse": mouse}
    )

    assert best is None
    assert candidates[0].match_ratio == pytest.approx(0.5)


def test_organism_resolved_at_majority(human, mouse):
    symbols = list(human.alternate_maps["Symbol"])[:70]
    ensembl = list(human.alternate_maps["Ensembl"])[70:100]
    best, _ = find_id_column_across_organisms(
        de_table(symbols + ensembl), {"human": human, "mouse": mouse}
    )

    assert best.organism == "human"
    assert best.namespace == "Symbol"


# resolve_metadata

def test_resolve_metadata_auto(human, mouse):
    table = de_table(list(human.alternate_maps["Ensembl"]))
    descriptor = resolve_metadata(table, {"human": human, "mouse": mouse})

    assert descriptor.organism == "human"
    assert descriptor.id_type == "Ensembl"
    assert descriptor.columns == {"ID": "gene_id", "baseMean": "baseMean", "stat": "stat"}
    assert descriptor.match_ratio == 1.0
    assert descriptor.unresolved_fields() == []


def test_resolve_metadata_limma_columns(human):
    table = pl.DataFrame({
        "Symbol": list(human.alternate_maps["Symbol"]),
        "logFC": [0.1] * 100,
        "AveExpr": [5.0] * 100,
        "t": [1.0] * 100,
    })
    descriptor = resolve_metadata(table, {"human": human})

    assert descriptor.columns["ID"] == "Symbol"
    assert descriptor.columns["baseMean"] == "AveExpr"
    # t has priority over logFC
    assert descriptor.columns["stat"] == "t"


def test_resolve_metadata_partial_override_rejected(human):
    table = de_table(human.base_ids)
    with pytest.raises(ValueError, match="partial override"):
        resolve_metadata(table, {"human": human}, id_column="gene_id")
    with pytest.raises(ValueError, match="partial override"):
        resolve_metadata(table, {"human": human}, id_type="Entrez")


def test_resolve_metadata_unknown_organism(human):
    with pytest.raises(ValueError, match="Unknown organism"):
        resolve_metadata(de_table(human.base_ids), {"human": human}, organism="yeast")


def test_resolve_metadata_unresolved_marked(human, mouse):
    table = pl.DataFrame({"probe": [f"P{i}" for i in range(20)], "value": [1.0] * 20})
    descriptor = resolve_metadata(table, {"human": human, "mouse": mouse})

    assert descriptor.organism is Unresolved.NO_MATCH
    assert descriptor.id_type is Unresolved.NO_MATCH
    assert descriptor.columns["ID"] is Unresolved.NO_MATCH
    assert descriptor.columns["baseMean"] is Unresolved.NO_MATCH
    assert descriptor.columns["stat"] is Unresolved.NO_MATCH
    assert descriptor.match_ratio is None
    assert descriptor.unresolved_fields() == [
        "organism", "id_type", "columns.ID", "columns.baseMean", "columns.stat",
    ]


def test_resolve_metadata_override_infers_organism(human, mouse):
    table = de_table(human.base_ids)

    single = resolve_metadata(table, {"human": human}, id_column="gene_id", id_type="Entrez")
    assert single.organism == "human"
    assert single.match_ratio is None

    # Both organisms have Entrez -> ambiguous without an explicit organism
    ambiguous = resolve_metadata(
        table, {"human": human, "mouse": mouse}, id_column="gene_id", id_type="Entrez"
    )
    assert ambiguous.organism is Unresolved.NO_MATCH
    assert ambiguous.columns["ID"] == "gene_id"

    explicit = resolve_metadata(
        table, {"human": human, "mouse": mouse},
        organism="mouse", id_column="gene_id", id_type="Entrez",
    )
    assert explicit.organism == "mouse"


def test_resolve_metadata_organism_restricts_detection(human, mouse):
    """Naming an organism restricts detection to its index."""
    table = de_table(list(human.alternate_maps["Ensembl"]))
    descriptor = resolve_metadata(table, {"human": human, "mouse": mouse}, organism="mouse")

    assert descriptor.organism is Unresolved.NO_MATCH


def test_resolve_metadata_keeps_supplied_specs(human):
    derived = DerivedColumn(pl.col("stat") * 2, description="double stat")
    descriptor = resolve_metadata(
        de_table(human.base_ids),
        {"human": human},
        base_mean_column=Unresolved.NOT_REQUESTED,
        stat_column=derived,
    )

    assert descriptor.columns["baseMean"] is Unresolved.NOT_REQUESTED
    assert descriptor.columns["stat"] is derived
    assert not is_resolved(descriptor.columns["baseMean"])
    assert descriptor.unresolved_fields() == ["columns.baseMean"]
    assert descriptor.summary()["columns"]["stat"] == "<derived: double stat>"


def test_resolve_metadata_uses_config(human):
    """Detection and alias settings come from config models."""
    table = pl.DataFrame({
        "gene": human.base_ids,
        "score": [1.0] * 100,
        "stat": [2.0] * 100,
    })
    descriptor = resolve_metadata(
        table,
        {"human": human},
        detection=DetectionConfig(organism_match_threshold=0.9, seed=3),
        aliases=ColumnAliases(base_mean=[], stat=["score"]),
    )

    assert descriptor.organism == "human"
    assert descriptor.columns["stat"] == "score"
    assert descriptor.columns["baseMean"] is Unresolved.NO_MATCH


def test_float_ids_match_integer_references(human):
    """Entrez IDs read as floats (1001.0) match references written as 1001."""
    ids = [None] + [float(gene) for gene in human.base_ids[1:]]
    table = de_table(ids)
    assert table.schema["gene_id"] == pl.Float64

    match = find_id_column(table, human.id_sets())

    assert match.column == "gene_id"
    assert match.namespace == "Entrez"
    assert match.match_ratio == pytest.approx(0.99)


def test_float_ids_nan_ignored(human):
    ids = [float("nan")] + [float(gene) for gene in human.base_ids[1:]]
    best, _ = find_id_column_across_organisms(de_table(ids), {"human": human})

    assert best.organism == "human"
    assert best.match_ratio == pytest.approx(0.99)


def test_refseq_version_suffix_stripped():
    table = pl.DataFrame({"transcript": ["NM_000546.6", "NR_024540.1", "XM_011522452.3"]})
    reference = {"Entrez": {"7157"}, "RefSeq": {"NM_000546", "NR_024540", "XM_011522452"}}

    match = find_id_column(table, reference)

    assert match.namespace == "RefSeq"
    assert match.match_ratio == 1.0
