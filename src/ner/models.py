"""Pydantic models for NER entities."""
from __future__ import annotations
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field


class Entity(BaseModel):
    """A single recognized entity (one token with a non-"O" label)."""
    model_config = ConfigDict(frozen=True)

    text: str
    score: float = Field(ge=0.0, le=1.0)
    label: str


class LabelPrediction(NamedTuple):
    """Decoder output for one surviving (batch, position) cell."""
    batch_index: int
    position_index: int
    label: str
    score: float


class NERResult(BaseModel):
    """NER output for a single input text."""
    entities: list[Entity] = []
    entity_labels: list[str] = []

    @classmethod
    def from_entities(cls, entities: list[Entity]) -> "NERResult":
        return cls(
            entities=entities,
            entity_labels=sorted({e.label for e in entities}),
        )
