"""Allow ``python -m procmux``."""

from procmux.cli import main

main()
