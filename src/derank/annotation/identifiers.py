"""Text forms of gene identifiers shared by detection, ranks and index building."""

import polars as pl

# Accession with a trailing version number, e.g. ENSG00000141510.17, NM_000546.5
VERSION_SUFFIX_PATTERN = r"^([A-Za-z_]+\d+)\.\d+$"


def strip_version_suffix_expr(expr: pl.Expr) -> pl.Expr:
    """Remove accession version suffixes from a string expression."""
    return expr.str.replace(VERSION_SUFFIX_PATTERN, "${1}")


def identifier_text_expr(column: str, dtype: pl.DataType) -> pl.Expr:
    """Render an identifier column as text.

    Whole-number floats are written without a decimal part (1000.0 -> "1000"),
    so Entrez IDs read into a float column (e.g. a pandas column holding NaN)
    still match their reference. NaN becomes null.

    Args:
        column: Column name
        dtype: Column dtype in the source table

    Returns:
        Utf8 expression named after column
    """
    expr = pl.col(column)
    if dtype.is_float():
        expr = expr.fill_nan(None)
        whole = expr.is_finite() & (expr == expr.floor())
        expr = (
            pl.when(whole)
            .then(expr.cast(pl.Int64, strict=False).cast(pl.Utf8))
            .otherwise(expr.cast(pl.Utf8))
        )
    return expr.cast(pl.Utf8, strict=False).alias(column)
