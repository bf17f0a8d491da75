"""Entry point for running vocabsnap as a module.

Usage:
    python -m vocabsnap <command> [options]
"""
from .cli import main

if __name__ == "__main__":
    raise SystemExit(main())
