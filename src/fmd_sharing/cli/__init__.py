"""Typer commands of the fmd-sharing CLI."""
