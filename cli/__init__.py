"""Command line client for the sensor aggregation service."""

from importlib import import_module


def main() -> None:
    """Console-script entry point; imports the Typer app lazily."""
    import_module("cli.app").app()


# ``cli.app`` must keep resolving to the module so tests can patch ``cli.app.ApiClient``.
__all__ = ["main"]
