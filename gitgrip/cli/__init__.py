"""Typer command-line interface (``gr``)."""
