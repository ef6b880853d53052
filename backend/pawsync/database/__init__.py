"""
Database package for pawsync

Usage:
    from pawsync.database import async_db
    from pawsync.database.pet_image_status_operations import PetImageStatusOperations

    status_ops = PetImageStatusOperations(async_db)
"""

from .core import AsyncDatabase

# Shared database instance, opened by the API lifespan or the worker CLI
async_db = AsyncDatabase()

__all__ = ["AsyncDatabase", "async_db"]
