"""Allow ``python -m labfold``."""

from labfold.cli import main

main()
