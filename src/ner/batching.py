"""Batch builder: tokenize a list of texts and right-pad them into one rectangular tensor."""
from __future__ import annotations
import logging
from collections.abc import Sequence

import torch

from .errors import InputError

log = logging.getLogger(__name__)

PAD_TOKEN_ID = 0
DEFAULT_MAX_LENGTH = 128


def pad_sequences(token_ids: Sequence[Sequence[int]], pad_id: int = PAD_TOKEN_ID) -> torch.Tensor:
    """Right-pad every sequence to the longest one and stack them.

    Returns an int64 tensor of shape (len(token_ids), max_len). max_len is
    computed from this batch only; it is 0 when every sequence is empty.
    """
    if not token_ids:
        raise InputError("Cannot build a batch from zero sequences")

    max_len = max(len(ids) for ids in token_ids)
    rows = [list(ids) + [pad_id] * (max_len - len(ids)) for ids in token_ids]
    return torch.tensor(rows, dtype=torch.long).reshape(len(rows), max_len)


def padding_mask(input_ids: torch.Tensor, lengths: Sequence[int]) -> torch.Tensor:
    """1 for real token cells, 0 for right-padding cells."""
    positions = torch.arange(input_ids.shape[1]).unsqueeze(0)
    return (positions < torch.tensor(lengths).unsqueeze(1)).long()


def build_batch(tokenizer, texts: Sequence[str],
                max_length: int = DEFAULT_MAX_LENGTH,
                pad_id: int = PAD_TOKEN_ID) -> tuple[torch.Tensor, torch.Tensor]:
    """Tokenize `texts` independently and assemble the padded batch.

    Truncation to `max_length` (longest-first) is left to the tokenizer.
    Returns (input_ids, attention_mask), both on CPU.
    """
    if isinstance(texts, str):
        raise InputError("Expected a sequence of texts, got a single string")
    if not texts:
        raise InputError("Input batch is empty; at least one text is required")
    for i, text in enumerate(texts):
        if not isinstance(text, str):
            raise InputError(f"Input {i} is {type(text).__name__}, expected str")

    encoded = tokenizer(
        list(texts),
        add_special_tokens=True,
        truncation="longest_first",
        max_length=max_length,
    )
    token_ids = encoded["input_ids"]
    lengths = [len(ids) for ids in token_ids]

    input_ids = pad_sequences(token_ids, pad_id=pad_id)
    log.debug("Built batch of shape %s", tuple(input_ids.shape))
    return input_ids, padding_mask(input_ids, lengths)
