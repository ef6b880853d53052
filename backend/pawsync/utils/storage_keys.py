# backend/pawsync/utils/storage_keys.py
"""
Object-store key layout for pet images.

    pets/{type}s/{petId}/screenshot.png   raw capture
    pets/{type}s/{petId}/original.jpg     converted JPEG
    pets/{type}s/{petId}/optimized.webp   converted WebP

The layout is shared with the external capture workflow and the presentation
layer. Every module builds keys through these helpers.
"""

import re
from typing import Optional, Union

from pydantic import BaseModel

from ..constants import PET_KEY_ROOT, VARIANT_FILENAMES
from ..enums import ImageVariant, PetType

_FILENAME_TO_VARIANT = {name: variant for variant, name in VARIANT_FILENAMES.items()}

_PET_KEY_PATTERN = re.compile(
    rf"^{PET_KEY_ROOT}/(dogs|cats)/([^/]+)/([^/]+)$"
)


class PetImageKey(BaseModel):
    """Parsed form of a pet image key."""

    pet_type: PetType
    pet_id: str
    variant: Optional[ImageVariant] = None


def _type_value(pet_type: Union[PetType, str]) -> str:
    return PetType(pet_type).value


def type_prefix(pet_type: Union[PetType, str]) -> str:
    """Prefix for every object of one pet type, e.g. ``pets/dogs/``"""
    return f"{PET_KEY_ROOT}/{_type_value(pet_type)}s/"


def pet_directory(pet_type: Union[PetType, str], pet_id: str) -> str:
    """Prefix for every object of one pet, e.g. ``pets/dogs/123/``"""
    return f"{type_prefix(pet_type)}{pet_id}/"


def image_key(
    pet_type: Union[PetType, str], pet_id: str, variant: Union[ImageVariant, str]
) -> str:
    """Object key for one variant of a pet image"""
    return f"{pet_directory(pet_type, pet_id)}{VARIANT_FILENAMES[ImageVariant(variant)]}"


def screenshot_key(pet_type: Union[PetType, str], pet_id: str) -> str:
    return image_key(pet_type, pet_id, ImageVariant.SCREENSHOT)


def original_key(pet_type: Union[PetType, str], pet_id: str) -> str:
    return image_key(pet_type, pet_id, ImageVariant.ORIGINAL)


def optimized_key(pet_type: Union[PetType, str], pet_id: str) -> str:
    return image_key(pet_type, pet_id, ImageVariant.OPTIMIZED)


def parse_pet_key(key: str) -> Optional[PetImageKey]:
    """
    Extract pet type, id and variant from an object key.

    Keys under a pet directory with an unknown filename parse with
    ``variant=None``. Keys outside the layout return None.
    """
    match = _PET_KEY_PATTERN.match(key)
    if not match:
        return None

    pet_type = PetType.DOG if match.group(1) == "dogs" else PetType.CAT
    return PetImageKey(
        pet_type=pet_type,
        pet_id=match.group(2),
        variant=_FILENAME_TO_VARIANT.get(match.group(3)),
    )


def is_valid_pet_image_key(key: str) -> bool:
    """True when key is one of the three known variants of a pet image"""
    parsed = parse_pet_key(key)
    return parsed is not None and parsed.variant is not None
