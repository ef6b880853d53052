# backend/pawsync/services/__init__.py
"""
Business services for pawsync.

Modules are imported directly (``from pawsync.services.image_converter import
ImageConverter``); use build_services() in service_container.py to wire the
whole set against a database and an object store.
"""
