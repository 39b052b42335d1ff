"""Gene annotation provider backed by mygene batch queries.

Enumerates base gene keys for an organism and maps them to other identifier
namespaces. Handles edge cases like notfound results, missing fields, and
nested/list-valued mygene fields.
"""

import logging
from typing import Any, Iterable, Protocol

import mygene
import polars as pl
from requests.exceptions import ConnectionError, HTTPError, Timeout
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from derank.annotation.models import DEFAULT_ID_NAMESPACES

logger = logging.getLogger(__name__)

_mygene_retry = retry(
    stop=stop_after_attempt(5),
    wait=wait_exponential(multiplier=1, min=2, max=60),
    retry=retry_if_exception_type((HTTPError, Timeout, ConnectionError)),
    reraise=True,
)


class AnnotationProvider(Protocol):
    """Keyed gene annotation source used to build reference indexes."""

    def keys(self, namespace: str) -> list[str]:
        """All gene keys of a namespace."""
        ...

    def map_names(
        self, keys: list[str], namespace: str, name_namespace: str
    ) -> dict[str, str | None]:
        """Display name for each key (None when the provider has none)."""
        ...

    def select(
        self, keys: list[str], from_namespace: str, to_namespace: str
    ) -> pl.DataFrame:
        """Map keys to another namespace.

        Returns an unfiltered frame with columns named after the two
        namespaces. Missing mappings appear as null values and one key may
        produce several rows.
        """
        ...


def _field_values(hit: dict[str, Any], field_path: str) -> list[str]:
    """Extract all values of a dotted mygene field from a hit.

    mygene returns a scalar, a list, a dict, or a list of dicts at each
    level (e.g. ensembl can be one dict or a list of dicts).
    """
    current: list[Any] = [hit]
    for part in field_path.split("."):
        next_level: list[Any] = []
        for item in current:
            if isinstance(item, dict) and part in item:
                value = item[part]
                if isinstance(value, list):
                    next_level.extend(value)
                else:
                    next_level.append(value)
        current = next_level

    values: list[str] = []
    for item in current:
        if item is None or isinstance(item, (dict, list)):
            continue
        values.append(str(item))
    return values


class MyGeneAnnotationProvider:
    """Annotation provider using the mygene.info API.

    Namespace names (Entrez, Ensembl, ...) are translated to mygene fields
    through namespace_fields. Queries run in batches with retry on
    transient network errors.
    """

    def __init__(
        self,
        species: str,
        namespace_fields: dict[str, str] | None = None,
        batch_size: int = 1000,
        gene_query: str = 'type_of_gene:"protein-coding"',
    ):
        """Initialize the provider.

        Args:
            species: mygene species name or taxonomy ID (e.g., human, 9606)
            namespace_fields: Namespace name -> mygene field
                (default: Entrez, RefSeq, Ensembl, Symbol)
            batch_size: Number of keys per querymany call (default: 1000)
            gene_query: Query used to enumerate base gene keys
        """
        self.species = species
        self.namespace_fields = dict(namespace_fields or DEFAULT_ID_NAMESPACES)
        self.batch_size = batch_size
        self.gene_query = gene_query
        self.mg = mygene.MyGeneInfo()
        logger.info(
            f"Initialized MyGeneAnnotationProvider for species={species} "
            f"with batch_size={batch_size}"
        )

    def _field(self, namespace: str) -> str:
        if namespace not in self.namespace_fields:
            raise ValueError(
                f"No mygene field configured for namespace '{namespace}' "
                f"(configured: {list(self.namespace_fields)})"
            )
        return self.namespace_fields[namespace]

    @_mygene_retry
    def _query(self, field_name: str) -> list[dict]:
        return list(self.mg.query(
            self.gene_query,
            species=self.species,
            fields=field_name,
            fetch_all=True,
        ))

    @_mygene_retry
    def _querymany(self, batch: list[str], scope: str, field_name: str) -> dict:
        return self.mg.querymany(
            batch,
            scopes=scope,
            fields=field_name,
            species=self.species,
            returnall=True,
        )

    def keys(self, namespace: str) -> list[str]:
        """Enumerate all gene keys of a namespace matching gene_query.

        Returns:
            Keys in first-seen order, deduplicated
        """
        field_name = self._field(namespace)
        logger.info(
            f"Querying mygene for {namespace} keys "
            f"({self.gene_query}, species={self.species})"
        )
        results = self._query(field_name)
        logger.info(f"Retrieved {len(results)} results from mygene")

        keys: dict[str, None] = {}
        for hit in results:
            for value in _field_values(hit, field_name):
                keys.setdefault(value, None)

        logger.info(f"Extracted {len(keys)} unique {namespace} keys")
        return list(keys)

    def select(
        self,
        keys: list[str],
        from_namespace: str,
        to_namespace: str,
    ) -> pl.DataFrame:
        """Map keys from one namespace to another via querymany.

        Args:
            keys: Keys in from_namespace
            from_namespace: Namespace of the keys (used as query scope)
            to_namespace: Namespace to retrieve

        Returns:
            DataFrame with Utf8 columns [from_namespace, to_namespace];
            keys without a mapping get a null to_namespace value
        """
        scope = self._field(from_namespace)
        field_name = self._field(to_namespace)

        total = len(keys)
        total_batches = (total + self.batch_size - 1) // self.batch_size
        sources: list[str] = []
        targets: list[str | None] = []

        for i in range(0, total, self.batch_size):
            batch = keys[i:i + self.batch_size]
            logger.info(
                f"Mapping {from_namespace} -> {to_namespace}: batch "
                f"{i // self.batch_size + 1}/{total_batches} ({len(batch)} keys)"
            )
            batch_results = self._querymany(batch, scope, field_name)

            for hit in batch_results.get("out", []):
                query = str(hit.get("query", ""))
                if hit.get("notfound", False):
                    sources.append(query)
                    targets.append(None)
                    continue

                values = _field_values(hit, field_name)
                if not values:
                    sources.append(query)
                    targets.append(None)
                    continue
                for value in values:
                    sources.append(query)
                    targets.append(value)

        return pl.DataFrame(
            {from_namespace: sources, to_namespace: targets},
            schema={from_namespace: pl.Utf8, to_namespace: pl.Utf8},
        )

    def map_names(
        self,
        keys: list[str],
        namespace: str,
        name_namespace: str,
    ) -> dict[str, str | None]:
        """Map keys to display names, taking the first name per key."""
        names: dict[str, str | None] = {key: None for key in keys}
        table = self.select(keys, namespace, name_namespace)
        for key, name in table.iter_rows():
            if names.get(key) is None and name is not None:
                names[key] = name
        return names


def unique_in_order(values: Iterable[Any]) -> list[str]:
    """Stringify values and drop repeats, keeping first occurrence."""
    return list(dict.fromkeys(str(v) for v in values if v is not None))
