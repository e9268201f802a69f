"""Sync — applying accumulated file changes to running containers.

This package provides:
- Path resolution: mapping changed local files to container paths
- Boiling: deciding which run steps must execute for a set of changes
- Container updaters: the docker and kubectl-exec mutation mechanisms
- The sync engine that drives an updater across every target container
"""
