"""Entry point for `python -m tierforge`.

Usage:
    python -m tierforge plan -f declarations/three_tier.yaml
"""

from __future__ import annotations

from tierforge.cli import cli

cli()
