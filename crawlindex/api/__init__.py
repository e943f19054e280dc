"""
REST query surface over the page store.
"""

from .app import create_app

__all__ = ['create_app']
