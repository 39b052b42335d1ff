"""derank: detect identifier and statistic columns in differential expression
tables and build deduplicated gene rank vectors for enrichment analysis."""

__version__ = "0.1.0"
