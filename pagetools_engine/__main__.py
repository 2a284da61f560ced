"""Entry point for running pagetools_engine as a module.

Usage:
    python -m pagetools_engine <command> [options]
"""
from .cli import main

if __name__ == "__main__":
    raise SystemExit(main())
