"""
Battery Widget - Battery history store and widget renderer

Captures battery snapshots, keeps a retention-bounded history in SQLite and
renders that history into icon, text, table and graph widget surfaces.
"""

__version__ = "1.0.0"
__author__ = "Battery Widget Team"
