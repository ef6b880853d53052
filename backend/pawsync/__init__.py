# backend/pawsync/__init__.py
"""
pawsync - image acquisition and synchronization pipeline for pet records.
"""

__version__ = "1.0.0"
