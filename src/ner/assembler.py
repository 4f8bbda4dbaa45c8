"""Entity assembler: map decoder predictions back to text fragments."""
from __future__ import annotations
from collections.abc import Sequence

import torch

from .models import Entity, LabelPrediction


def assemble_entities(predictions: Sequence[LabelPrediction],
                      input_ids: torch.Tensor, tokenizer) -> list[Entity]:
    """One Entity per prediction, in prediction order.

    The text is the detokenized single token id found at the prediction's
    cell of the padded batch. Adjacent tokens are not merged into spans.
    """
    entities = []
    for pred in predictions:
        token_id = int(input_ids[pred.batch_index, pred.position_index])
        text = tokenizer.decode(
            [token_id],
            skip_special_tokens=True,
            clean_up_tokenization_spaces=True,
        )
        entities.append(Entity(text=text, score=pred.score, label=pred.label))
    return entities


def group_by_input(predictions: Sequence[LabelPrediction],
                   entities: Sequence[Entity], num_inputs: int) -> list[list[Entity]]:
    """Split the flat entity list into one list per input text."""
    groups: list[list[Entity]] = [[] for _ in range(num_inputs)]
    for pred, entity in zip(predictions, entities):
        groups[pred.batch_index].append(entity)
    return groups
