# backend/tests/unit/test_dispatch_model.py
"""Tests for the workflow dispatch payload."""

import json

import pytest
from pydantic import ValidationError

from pawsync.enums import PetType
from pawsync.models.dispatch_model import DispatchPayload, DispatchPetItem
from pawsync.models.pet_model import PetCandidate


@pytest.mark.unit
class TestDispatchPayload:
    def test_item_from_candidate_strips_prefix(self):
        item = DispatchPetItem.from_candidate(
            PetCandidate(pet_id="pethome_42", pet_type=PetType.DOG, source_url="https://x/42")
        )

        assert item.id == "pethome_42"
        assert item.petId == "42"
        assert item.sourceUrl == "https://x/42"

    def test_id_without_prefix_kept(self):
        item = DispatchPetItem.from_candidate(PetCandidate(pet_id="abc", pet_type=PetType.CAT))

        assert item.petId == "abc"

    def test_inputs_are_strings(self):
        payload = DispatchPayload(
            pets_batch=[DispatchPetItem(id="pethome_1", petId="1", type=PetType.CAT)],
            batch_id="batch-1",
        )

        inputs = payload.to_inputs()

        assert isinstance(inputs["pets_batch"], str)
        assert json.loads(inputs["pets_batch"])[0]["type"] == "cat"

    def test_from_inputs_to_candidates(self):
        raw = json.dumps(
            [{"id": "pethome_7", "petId": "7", "type": "dog", "name": "Pochi", "sourceUrl": "https://x/7"}]
        )

        payload = DispatchPayload.from_inputs(raw, "batch-9")
        candidate = payload.pets_batch[0].to_candidate()

        assert payload.batch_id == "batch-9"
        assert candidate.pet_id == "pethome_7"
        assert candidate.pet_type == PetType.DOG
        assert candidate.source_url == "https://x/7"

    @pytest.mark.parametrize("raw", ['{"id": "1"}', "not json"])
    def test_malformed_batch(self, raw):
        with pytest.raises(ValueError):
            DispatchPayload.from_inputs(raw, "b")

    def test_unknown_pet_type(self):
        with pytest.raises(ValidationError):
            DispatchPayload.from_inputs('[{"id": "1", "petId": "1", "type": "bird"}]', "b")
