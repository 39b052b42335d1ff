"""Table helpers: input conversion and alias-based column lookup."""

from typing import Any, Sequence

import polars as pl


def as_table(data: Any) -> pl.DataFrame:
    """Convert a rectangular dataset to a polars DataFrame.

    Accepts a polars DataFrame (returned as is), a LazyFrame (collected), or
    anything the DataFrame constructor accepts (dict of columns, pandas
    DataFrame, list of records).
    """
    if isinstance(data, pl.DataFrame):
        return data
    if isinstance(data, pl.LazyFrame):
        return data.collect()
    return pl.DataFrame(data)


def find_column(table: pl.DataFrame, aliases: Sequence[str]) -> str | None:
    """Find the column matching the highest-priority alias.

    Matching is case-insensitive. Aliases are tried in order; for the first
    alias that matches any column, the leftmost matching column is returned.

    Args:
        table: Table to search
        aliases: Candidate column names in priority order

    Returns:
        Column name as it appears in the table, or None if no alias matches

    Examples:
        >>> find_column(pl.DataFrame({"id": [], "T": []}), ["stat", "t"])
        'T'
    """
    lowered = [column.lower() for column in table.columns]
    for alias in aliases:
        alias = alias.lower()
        for position, column in enumerate(lowered):
            if column == alias:
                return table.columns[position]
    return None
