"""Bounded-parallelism runner for shell command lists.

Reads one shell command per line from a job file and runs them as independent
processes, never more than ``p`` at a time.
"""

__version__ = "0.1.0"
