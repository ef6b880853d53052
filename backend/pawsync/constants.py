# backend/pawsync/constants.py
"""
Global Constants for pawsync

Centralized location for application constants to avoid hardcoded values
throughout the codebase. Runtime-tunable values live in config.py and use the
DEFAULT_* values below as their defaults.
"""

from typing import Dict, List, Tuple

from .enums import ImageVariant, PetType

# =============================================================================
# OBJECT STORE KEY LAYOUT
# =============================================================================

# pets/{type}s/{petId}/{filename} - shared with the capture workflow and the
# presentation layer, do not change without migrating stored objects.
PET_KEY_ROOT = "pets"

VARIANT_FILENAMES: Dict[ImageVariant, str] = {
    ImageVariant.SCREENSHOT: "screenshot.png",
    ImageVariant.ORIGINAL: "original.jpg",
    ImageVariant.OPTIMIZED: "optimized.webp",
}

VARIANT_CONTENT_TYPES: Dict[ImageVariant, str] = {
    ImageVariant.SCREENSHOT: "image/png",
    ImageVariant.ORIGINAL: "image/jpeg",
    ImageVariant.OPTIMIZED: "image/webp",
}

PET_TYPE_LIST = [pet_type.value for pet_type in PetType]

# =============================================================================
# CAPTURE
# =============================================================================

DEFAULT_NAVIGATION_TIMEOUT_MS = 15000
DEFAULT_SETTLE_DELAY_MS = 2000
DEFAULT_VIEWPORT: Tuple[int, int] = (1280, 720)
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Below the site header, above the fold
DEFAULT_FALLBACK_CLIP: Dict[str, int] = {"x": 0, "y": 200, "width": 800, "height": 600}

# Ordered "main photo" heuristics for the listing site. First match wins.
DEFAULT_PHOTO_SELECTORS: List[str] = [
    '.main_thumb.img_container img[src*="image.pet-home.jp"]',
    ".main_thumb img[alt]",
    '.img_container img[src*="user_file"]',
    '.photo_area img[src*="image.pet-home.jp"]',
    'img[src*="_th320.jpg"]',
    'img[src*="_th320.jpeg"]',
]

# Substrings of img src values that are UI chrome or placeholders
DEFAULT_CHROME_FILTERS: List[str] = [
    "ui_img.png",
    "global_images",
]

BROWSER_LAUNCH_ARGS: List[str] = [
    "--disable-dev-shm-usage",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-gpu",
]

# =============================================================================
# CONVERSION
# =============================================================================

DEFAULT_MAX_DIMENSION = 800
DEFAULT_JPEG_QUALITY = 85
DEFAULT_WEBP_QUALITY = 80
JPEG_BACKGROUND_COLOR = (255, 255, 255)

# =============================================================================
# ORCHESTRATION
# =============================================================================

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_BACKOFF_SECONDS = 2.0
DEFAULT_CONCURRENCY = 5
DEFAULT_INTER_REQUEST_DELAY_SECONDS = 1.0
DEFAULT_BATCH_TIMEOUT_SECONDS = 1800
DEFAULT_SWEEP_LIMIT = 50
# Screenshot requests younger than this are still in flight, not stalled
DEFAULT_PENDING_STALL_SECONDS = 3600

# =============================================================================
# READINESS
# =============================================================================

DEFAULT_MIN_DOGS = 30
DEFAULT_MIN_CATS = 30
DEFAULT_MIN_COVERAGE = 0.8
DEFAULT_COMPLETENESS_TARGET = 60
READINESS_ROW_ID = "current"

# =============================================================================
# RECONCILIATION
# =============================================================================

DEFAULT_RECONCILE_SAMPLE_SIZE = 10
RECONCILE_ALL = "all"

# =============================================================================
# WORKFLOW DISPATCH
# =============================================================================

GITHUB_API_BASE_URL = "https://api.github.com"
GITHUB_ACCEPT_HEADER = "application/vnd.github.v3+json"
DEFAULT_DISPATCH_BATCH_SIZE = 10
DEFAULT_DISPATCH_BATCH_DELAY_SECONDS = 30.0
DISPATCH_REQUEST_TIMEOUT_SECONDS = 15

# =============================================================================
# IMAGE SERVING
# =============================================================================

DEFAULT_RETRY_AFTER_SECONDS = 30
JPEG_CACHE_MAX_AGE_SECONDS = 86400
WEBP_CACHE_MAX_AGE_SECONDS = 604800
