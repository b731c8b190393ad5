"""Allow running the session manager with ``python -m alza_compare.session_manager``."""

from .manager import main

main()
