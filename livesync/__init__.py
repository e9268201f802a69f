"""livesync — a live-update reconciliation engine.

Watches LiveUpdate objects and their dependencies (file watches, workload
discovery, apply results, image builds) and syncs changed files into the
running containers they target.
"""

__version__ = "0.1.0"
