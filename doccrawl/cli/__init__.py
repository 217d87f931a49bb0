"""CLI command modules for doccrawl.

This package contains the Typer command groups together with the exit codes
and error handling shared by every command.
"""
