# backend/pawsync/models/dispatch_model.py
"""
Workflow dispatch payload models.

The external workflow runner receives ``{pets_batch, batch_id}`` where
``pets_batch`` is a JSON-encoded array of camelCase pet items. The field
names are shared with that runner and must stay stable.
"""

import json
from typing import List, Optional

from pydantic import BaseModel, Field

from ..enums import PetType
from .pet_model import PetCandidate

PET_ID_PREFIX = "pethome_"


class DispatchPetItem(BaseModel):
    """One pet as the workflow runner sees it."""

    id: str
    petId: str
    type: PetType
    name: Optional[str] = None
    sourceUrl: Optional[str] = None

    @classmethod
    def from_candidate(cls, candidate: PetCandidate) -> "DispatchPetItem":
        return cls(
            id=candidate.pet_id,
            petId=candidate.pet_id.removeprefix(PET_ID_PREFIX),
            type=candidate.pet_type,
            name=candidate.name,
            sourceUrl=candidate.source_url,
        )

    def to_candidate(self) -> PetCandidate:
        return PetCandidate(
            pet_id=self.id,
            pet_type=self.type,
            name=self.name,
            source_url=self.sourceUrl,
        )


class DispatchPayload(BaseModel):
    """Inputs of one workflow_dispatch call."""

    pets_batch: List[DispatchPetItem] = Field(default_factory=list)
    batch_id: str

    def to_inputs(self) -> dict:
        """Workflow inputs are strings, so the batch travels JSON-encoded."""
        return {
            "pets_batch": json.dumps(
                [item.model_dump(mode="json") for item in self.pets_batch]
            ),
            "batch_id": self.batch_id,
        }

    @classmethod
    def from_inputs(cls, pets_batch: str, batch_id: str) -> "DispatchPayload":
        items = json.loads(pets_batch)
        if not isinstance(items, list):
            raise ValueError("pets_batch must be a JSON array")
        return cls(
            pets_batch=[DispatchPetItem.model_validate(item) for item in items],
            batch_id=batch_id,
        )


class DispatchResult(BaseModel):
    """Summary of one dispatch run."""

    batches_dispatched: int = 0
    pets_dispatched: int = 0
    batch_ids: List[str] = Field(default_factory=list)
    failed_batches: List[str] = Field(default_factory=list)
