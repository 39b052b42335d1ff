"""Validation gates for reference annotation index quality.

Checks that an index has usable base IDs and that each alternate namespace
covers enough of the base genes to support identifier remapping.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from derank.annotation.models import ReferenceAnnotationIndex

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of a validation check.

    Attributes:
        passed: Whether validation passed
        messages: List of validation messages (warnings, errors)
        coverage: Alternate namespace -> fraction of base genes mapped (0-1)
    """
    passed: bool
    messages: list[str] = field(default_factory=list)
    coverage: dict[str, float] = field(default_factory=dict)


def namespace_coverage(index: ReferenceAnnotationIndex, namespace: str) -> float:
    """Fraction of base genes reachable from an alternate namespace."""
    if not index.base_ids:
        return 0.0
    mapped_genes = set(index.alternate_maps[namespace].values())
    return len(mapped_genes.intersection(index.base_ids)) / len(index.base_ids)


class ReferenceIndexValidator:
    """Validator for reference annotation indexes.

    Enforces configurable namespace coverage thresholds and produces
    validation reports.
    """

    def __init__(
        self,
        min_coverage: float = 0.5,
        warn_coverage: float = 0.8
    ):
        """Initialize index validator.

        Args:
            min_coverage: Minimum alternate namespace coverage to pass (default: 0.5)
            warn_coverage: Coverage below this triggers warning (default: 0.8)
        """
        self.min_coverage = min_coverage
        self.warn_coverage = warn_coverage
        logger.info(
            f"Initialized ReferenceIndexValidator: min_coverage={min_coverage}, "
            f"warn_coverage={warn_coverage}"
        )

    def validate(self, index: ReferenceAnnotationIndex) -> ValidationResult:
        """Validate a reference index.

        Fails if the index has no base IDs or any alternate namespace covers
        fewer than min_coverage of the base genes. Issues a warning for
        coverage between min_coverage and warn_coverage.

        Args:
            index: ReferenceAnnotationIndex to check

        Returns:
            ValidationResult with pass/fail status, messages and coverage
        """
        messages: list[str] = []
        coverage: dict[str, float] = {}
        passed = True

        gene_count = len(index.base_ids)
        if gene_count == 0:
            messages.append(
                f"FAILED: No {index.base_namespace} base IDs for organism "
                f"'{index.organism}'"
            )
            passed = False
        else:
            messages.append(
                f"{gene_count} {index.base_namespace} base IDs for organism "
                f"'{index.organism}'"
            )

        named = sum(1 for gene in index.base_ids if index.gene_name(gene))
        messages.append(f"Display names: {named}/{gene_count} genes")

        for namespace in index.alternate_maps:
            rate = namespace_coverage(index, namespace)
            coverage[namespace] = rate

            if rate < self.min_coverage:
                messages.append(
                    f"FAILED: {namespace} coverage {rate:.1%} is below "
                    f"minimum threshold {self.min_coverage:.1%}"
                )
                passed = False
            elif rate < self.warn_coverage:
                messages.append(
                    f"WARNING: {namespace} coverage {rate:.1%} is below "
                    f"warning threshold {self.warn_coverage:.1%}"
                )
            else:
                messages.append(f"PASSED: {namespace} coverage {rate:.1%}")

        logger.info(
            f"Validation result for {index.organism}: "
            f"{'PASSED' if passed else 'FAILED'} ({gene_count} genes)"
        )

        return ValidationResult(
            passed=passed,
            messages=messages,
            coverage=coverage,
        )

    def save_unmapped_report(
        self,
        index: ReferenceAnnotationIndex,
        namespace: str,
        output_path: Path
    ) -> None:
        """Save base genes with no ID in an alternate namespace for review.

        Args:
            index: ReferenceAnnotationIndex to report on
            namespace: Alternate namespace to check
            output_path: Path to output file
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        mapped_genes = set(index.alternate_maps[namespace].values())
        unmapped = [gene for gene in index.base_ids if gene not in mapped_genes]
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

        with output_path.open('w') as f:
            f.write(f"# {index.base_namespace} IDs without {namespace} mapping\n")
            f.write(f"# Organism: {index.organism}\n")
            f.write(f"# Generated: {timestamp}\n")
            f.write(f"# Total unmapped: {len(unmapped)}\n")
            f.write("#\n")
            for gene in unmapped:
                f.write(f"{gene}\n")

        logger.info(
            f"Saved {len(unmapped)} unmapped {index.base_namespace} IDs to {output_path}"
        )
