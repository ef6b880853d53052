# backend/pawsync/utils/__init__.py
