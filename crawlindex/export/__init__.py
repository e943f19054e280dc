"""
Static corpus export.
"""

from .snapshot import SnapshotExporter

__all__ = ['SnapshotExporter']
