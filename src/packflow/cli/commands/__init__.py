"""CLI command modules, registered by ``packflow.cli.main``."""
