"""Command-line interface for derank."""
