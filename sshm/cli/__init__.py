"""Typer command-line interface for sshm."""
