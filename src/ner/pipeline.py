"""Named Entity Recognition pipeline.

Extracts entities (person, location, organization, miscellaneous) from text
with a BERT token-classification model, e.g. the cased BERT-large checkpoint
fine-tuned on CoNLL-03:

    ner_model = NERModel.from_files(vocab_path, config_path, weights_path, device="auto")
    ner_model.predict(["My name is Amy. I live in Paris.", "Paris is a city in France."])
    # [Entity(text='Amy', score=0.9986, label='I-PER'),
    #  Entity(text='Paris', score=0.9985, label='I-LOC'),
    #  Entity(text='Paris', score=0.9988, label='I-LOC'),
    #  Entity(text='France', score=0.9993, label='I-LOC')]

One entity is produced per token whose predicted label is not the "O" tag
(id 0); adjacent tokens of the same type are not joined.
"""
from __future__ import annotations
import inspect
import logging
from collections.abc import Mapping, Sequence
from pathlib import Path

import torch

from .assembler import assemble_entities, group_by_input
from .batching import DEFAULT_MAX_LENGTH, build_batch
from .config import NERSettings
from .decoder import LabelDecoder
from .errors import ResourceLoadError
from .labels import freeze_label_mapping, label_mapping_from_config, load_label_mapping
from .models import Entity, LabelPrediction

log = logging.getLogger(__name__)


def resolve_device(device: str | torch.device = "auto") -> torch.device:
    """Map "auto" / "cpu" / "cuda[:n]" to a torch.device available on this host."""
    if isinstance(device, str) and device == "auto":
        return torch.device("cuda" if torch.cuda.is_available() else "cpu")
    try:
        resolved = torch.device(device)
    except (RuntimeError, TypeError) as exc:
        raise ResourceLoadError("device", None, f"invalid device {device!r}: {exc}") from exc
    if resolved.type == "cuda":
        if not torch.cuda.is_available():
            raise ResourceLoadError("device", None, f"{resolved} requested but CUDA is not available")
        if resolved.index is not None and resolved.index >= torch.cuda.device_count():
            raise ResourceLoadError(
                "device", None,
                f"{resolved} requested but only {torch.cuda.device_count()} CUDA device(s) present",
            )
    return resolved


def _read_vocab(vocab_path: Path) -> dict[str, int]:
    """One WordPiece token per line; the line number is the token id."""
    vocab: dict[str, int] = {}
    with open(vocab_path, "r", encoding="utf-8") as f:
        for index, line in enumerate(f):
            vocab[line.rstrip("\n")] = index
    return vocab


def load_wordpiece_tokenizer(vocab_path: str | Path):
    """Cased BertTokenizer over a vocab.txt file.

    transformers 4.x reads the file through `vocab_file=`; 5.x expects the
    token -> id dict through `vocab=` and ignores `vocab_file`. The result is
    checked against the file either way.
    """
    from transformers import BertTokenizer

    vocab_path = Path(vocab_path)
    if not vocab_path.is_file():
        raise ResourceLoadError("vocabulary", vocab_path, "file not found")
    try:
        vocab = _read_vocab(vocab_path)
    except (OSError, UnicodeDecodeError) as exc:
        raise ResourceLoadError("vocabulary", vocab_path, str(exc)) from exc
    if not vocab:
        raise ResourceLoadError("vocabulary", vocab_path, "file is empty")

    try:
        if "vocab" in inspect.signature(BertTokenizer.__init__).parameters:
            tokenizer = BertTokenizer(vocab=vocab, do_lower_case=False)
        else:
            tokenizer = BertTokenizer(vocab_file=str(vocab_path), do_lower_case=False)
    except (OSError, ValueError, TypeError) as exc:
        raise ResourceLoadError("vocabulary", vocab_path, str(exc)) from exc

    loaded = tokenizer.get_vocab()
    mismatched = [tok for tok, idx in vocab.items() if loaded.get(tok) != idx]
    if len(loaded) != len(vocab) or mismatched:
        raise ResourceLoadError(
            "vocabulary", vocab_path,
            f"tokenizer holds {len(loaded)} tokens, file has {len(vocab)} "
            f"({len(mismatched)} with a different id)",
        )
    return tokenizer


def _load_state_dict(weights_path: Path) -> dict:
    if not weights_path.exists():
        raise ResourceLoadError("weights", weights_path, "file not found")
    try:
        if weights_path.suffix == ".safetensors":
            from safetensors.torch import load_file
            return load_file(str(weights_path), device="cpu")
        return torch.load(weights_path, map_location="cpu", weights_only=True)
    except Exception as exc:
        raise ResourceLoadError("weights", weights_path, f"unreadable weights file: {exc}") from exc


class NERModel:
    """Token-level NER over a tokenizer and a token-classification model.

    The tokenizer, model, label mapping and device are fixed at construction
    and only read afterwards, so one instance can serve many `predict` calls.
    """

    def __init__(self, tokenizer, model, label_mapping: Mapping[int, str],
                 device: str | torch.device = "cpu",
                 max_length: int = DEFAULT_MAX_LENGTH):
        self._device = resolve_device(device)
        self._tokenizer = tokenizer
        self._label_mapping = freeze_label_mapping(label_mapping)
        self._decoder = LabelDecoder(self._label_mapping)
        self._max_length = max_length
        try:
            self._model = model.to(self._device)
        except RuntimeError as exc:
            raise ResourceLoadError("device", None, f"cannot move model to {self._device}: {exc}") from exc
        self._model.eval()

    @classmethod
    def from_files(cls, vocab_path: str | Path, config_path: str | Path,
                   weights_path: str | Path, device: str | torch.device = "auto",
                   max_length: int = DEFAULT_MAX_LENGTH) -> "NERModel":
        """Build from a WordPiece vocabulary, a JSON config and a PyTorch state dict."""
        from transformers import BertConfig, BertForTokenClassification

        vocab_path, config_path, weights_path = Path(vocab_path), Path(config_path), Path(weights_path)
        resolved = resolve_device(device)

        tokenizer = load_wordpiece_tokenizer(vocab_path)
        label_mapping = load_label_mapping(config_path)
        try:
            config = BertConfig.from_json_file(str(config_path))
        except (OSError, ValueError, TypeError) as exc:
            raise ResourceLoadError("configuration", config_path, str(exc)) from exc

        log.info("Loading BERT NER model from %s (device=%s, %d labels)",
                 weights_path, resolved, len(label_mapping))
        model = BertForTokenClassification(config)
        state_dict = _load_state_dict(weights_path)
        # Only the model's own parameters are looked up; extra checkpoint
        # entries (e.g. bert.pooler.*) are ignored
        try:
            result = model.load_state_dict(state_dict, strict=False)
        except RuntimeError as exc:
            raise ResourceLoadError(
                "weights", weights_path, f"incompatible with configuration: {exc}"
            ) from exc
        if result.missing_keys:
            raise ResourceLoadError(
                "weights", weights_path,
                f"incompatible with configuration: missing {', '.join(result.missing_keys)}",
            )
        if result.unexpected_keys:
            log.debug("Ignoring %d unused checkpoint entries: %s",
                      len(result.unexpected_keys), ", ".join(result.unexpected_keys))

        return cls(tokenizer, model, label_mapping, device=resolved, max_length=max_length)

    @classmethod
    def from_pretrained(cls, name_or_path: str | Path, device: str | torch.device = "auto",
                        max_length: int = DEFAULT_MAX_LENGTH) -> "NERModel":
        """Build through the transformers Auto classes (Hub id or saved directory)."""
        from transformers import AutoModelForTokenClassification, AutoTokenizer

        resolved = resolve_device(device)
        log.info("Loading HuggingFace NER model: %s (device=%s)", name_or_path, resolved)
        try:
            tokenizer = AutoTokenizer.from_pretrained(str(name_or_path))
        except (OSError, ValueError) as exc:
            raise ResourceLoadError("vocabulary", name_or_path, str(exc)) from exc
        try:
            model = AutoModelForTokenClassification.from_pretrained(str(name_or_path))
        except (OSError, ValueError, RuntimeError) as exc:
            raise ResourceLoadError("weights", name_or_path, str(exc)) from exc

        label_mapping = label_mapping_from_config(model.config)
        return cls(tokenizer, model, label_mapping, device=resolved, max_length=max_length)

    @classmethod
    def from_settings(cls, settings: NERSettings) -> "NERModel":
        if settings.uses_local_files:
            return cls.from_files(
                settings.vocab_path, settings.config_path, settings.weights_path,
                device=settings.device, max_length=settings.max_length,
            )
        return cls.from_pretrained(settings.model_name, device=settings.device,
                                   max_length=settings.max_length)

    @property
    def device(self) -> torch.device:
        return self._device

    @property
    def label_mapping(self) -> Mapping[int, str]:
        return self._label_mapping

    @property
    def max_length(self) -> int:
        return self._max_length

    @property
    def tokenizer(self):
        return self._tokenizer

    def _run(self, texts: Sequence[str]) -> tuple[list[LabelPrediction], list[Entity]]:
        input_ids, attention_mask = build_batch(self._tokenizer, texts, self._max_length)
        if input_ids.shape[1] == 0:
            log.warning("All %d input(s) tokenized to zero tokens; no entities", len(texts))
            return [], []

        with torch.no_grad():
            output = self._model(
                input_ids=input_ids.to(self._device),
                attention_mask=attention_mask.to(self._device),
            )
        logits = output.logits if hasattr(output, "logits") else output[0]
        logits = logits.detach().to("cpu")

        predictions = self._decoder.decode(logits, mask=attention_mask)
        entities = assemble_entities(predictions, input_ids, self._tokenizer)
        return predictions, entities

    def predict(self, texts: Sequence[str]) -> list[Entity]:
        """Extract entities from a batch of texts.

        Entities of texts[0] come first, then texts[1], ..., each in token
        order. Returns [] when nothing but the "O" label is predicted.
        """
        _, entities = self._run(texts)
        return entities

    def predict_per_input(self, texts: Sequence[str]) -> list[list[Entity]]:
        """Same as `predict`, with entities grouped per input text."""
        predictions, entities = self._run(texts)
        return group_by_input(predictions, entities, len(texts))
