"""Label decoder: turn per-token logits into (batch, position, label, score) predictions."""
from __future__ import annotations
import logging
from collections.abc import Mapping

import torch

from .errors import ConfigurationError, InputError
from .labels import NON_ENTITY_ID
from .models import LabelPrediction

log = logging.getLogger(__name__)


def softmax(logits: torch.Tensor, dim: int = -1) -> torch.Tensor:
    """Numerically stable softmax: the row maximum is subtracted before exp().

    Half-precision logits are upcast to float32; float32/float64 keep their dtype.
    """
    if logits.dtype in (torch.float16, torch.bfloat16):
        logits = logits.float()
    shifted = logits - logits.max(dim=dim, keepdim=True).values
    exp = shifted.exp()
    return exp / exp.sum(dim=dim, keepdim=True)


class LabelDecoder:
    """Select the most likely label per token and keep the non-"O" ones.

    Predictions come out batch-major then position-major: every prediction
    for input i precedes those for input i+1, left to right within an input.
    """

    def __init__(self, label_mapping: Mapping[int, str]):
        self.label_mapping = label_mapping

    def scores(self, logits: torch.Tensor) -> torch.Tensor:
        if logits.dim() != 3:
            raise InputError(
                f"Expected logits of shape (batch, seq_len, num_labels), got {tuple(logits.shape)}"
            )
        return softmax(logits, dim=-1)

    def lookup(self, label_id: int) -> str:
        try:
            return self.label_mapping[label_id]
        except KeyError:
            raise ConfigurationError.unmapped_label(label_id, self.label_mapping.keys()) from None

    def decode(self, logits: torch.Tensor,
               mask: torch.Tensor | None = None) -> list[LabelPrediction]:
        """Decode a (batch, seq_len, num_labels) logits tensor.

        Cells where `mask` is 0 (padding) are skipped. An unmapped label id
        aborts the whole call with ConfigurationError.
        """
        scores = self.scores(logits)
        # torch.argmax returns the first maximal index, so ties go to the lowest id
        best_ids = scores.argmax(dim=-1)
        best_scores = scores.gather(-1, best_ids.unsqueeze(-1)).squeeze(-1)

        keep = best_ids != NON_ENTITY_ID
        if mask is not None:
            keep &= mask.to(torch.bool)

        predictions = []
        # nonzero() enumerates in row-major order, which is the ordering contract
        for batch_idx, pos_idx in keep.nonzero().tolist():
            label_id = int(best_ids[batch_idx, pos_idx])
            predictions.append(LabelPrediction(
                batch_index=batch_idx,
                position_index=pos_idx,
                label=self.lookup(label_id),
                score=float(best_scores[batch_idx, pos_idx]),
            ))

        log.debug("Decoded %d entity tokens from logits of shape %s",
                  len(predictions), tuple(logits.shape))
        return predictions
