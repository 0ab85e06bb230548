"""Allow ``python -m fbascaffold``."""

from fbascaffold.cli import run

run()
