"""Command pipelines behind the CLI."""
