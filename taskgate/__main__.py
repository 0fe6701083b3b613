"""Main entry point when executing taskgate as a package.

This allows running the package using python -m taskgate.
"""

from taskgate.main import cli_entry_point

if __name__ == "__main__":
    cli_entry_point()
