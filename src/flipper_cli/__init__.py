"""
Flipper CLI - A host-side client for the Flipper serial shell
"""

__version__ = "0.1.0"

from flipper_cli.main import main

# This function is a direct entry point for CLI use
def cli_main():
    """
    Entry point for the CLI command.
    This function is referenced in pyproject.toml
    """
    import sys
    sys.exit(main())
