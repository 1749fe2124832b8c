"""Command line entry point for mermaid-serve."""
