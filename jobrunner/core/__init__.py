"""Core (pure) library layer.

This package is intended to be side-effect free and safe to import from:
- the job pool (worker threads)
- CLI entrypoints
- tests

It must not spawn processes or install signal handlers at import time.
"""
