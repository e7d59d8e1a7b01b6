"""tierforge command-line interface.

Exposes:
    cli -- Click group entry point (registered as ``tierforge`` script).
"""

from tierforge.cli.main import cli

__all__ = ["cli"]
