from . import health_routers, image_routers, sync_routers

__all__ = [
    "health_routers",
    "image_routers",
    "sync_routers",
]
