# tests/conftest.py
import pytest
import torch
from transformers.modeling_outputs import TokenClassifierOutput

# CoNLL-03 tag set, id 0 is "O"
CONLL_LABELS = {
    0: "O", 1: "B-MISC", 2: "I-MISC", 3: "B-PER", 4: "I-PER",
    5: "B-ORG", 6: "I-ORG", 7: "B-LOC", 8: "I-LOC",
}

VOCAB = [
    "[PAD]", "[UNK]", "[CLS]", "[SEP]", "[MASK]",
    "My", "name", "is", "Amy", ".", "I", "live", "in", "Paris",
    "a", "city", "France", "The", "quick", "brown", "fox", "jumps",
    "New", "York", "Google", "##s",
]

# word -> tag predicted by the lookup model; everything else is "O"
WORD_TAGS = {
    "Amy": "I-PER",
    "Paris": "I-LOC",
    "France": "I-LOC",
    "New": "I-LOC",
    "York": "I-LOC",
    "Google": "I-ORG",
}


class LookupTokenClassifier(torch.nn.Module):
    """Emits fixed logits per token id: `confidence` on the assigned label, 0 elsewhere."""

    def __init__(self, token_labels: dict[int, int], vocab_size: int,
                 num_labels: int, confidence: float = 6.0):
        super().__init__()
        table = torch.zeros(vocab_size, num_labels)
        table[:, 0] = confidence
        for token_id, label_id in token_labels.items():
            table[token_id] = 0.0
            table[token_id, label_id] = confidence
        self.register_buffer("table", table)
        self.calls = 0

    def forward(self, input_ids, attention_mask=None):
        self.calls += 1
        return TokenClassifierOutput(logits=self.table[input_ids])


@pytest.fixture
def vocab_file(tmp_path):
    path = tmp_path / "vocab.txt"
    path.write_text("\n".join(VOCAB) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def tokenizer(vocab_file):
    from src.ner.pipeline import load_wordpiece_tokenizer
    return load_wordpiece_tokenizer(vocab_file)


@pytest.fixture
def make_lookup_model():
    label_ids = {name: i for i, name in CONLL_LABELS.items()}

    def _make(word_tags=None, extra=None):
        word_tags = WORD_TAGS if word_tags is None else word_tags
        token_labels = {VOCAB.index(w): label_ids[t] for w, t in word_tags.items()}
        token_labels.update(extra or {})
        return LookupTokenClassifier(token_labels, len(VOCAB), len(CONLL_LABELS))

    return _make


@pytest.fixture
def ner_model(tokenizer, make_lookup_model):
    from src.ner.pipeline import NERModel
    return NERModel(tokenizer, make_lookup_model(), CONLL_LABELS, device="cpu")


@pytest.fixture
def label_mapping():
    return dict(CONLL_LABELS)


@pytest.fixture
def token_id():
    return VOCAB.index


@pytest.fixture
def save_tiny_bert(label_mapping):
    """Write a randomly initialised one-layer BERT token classifier to disk."""
    from transformers import BertConfig, BertForTokenClassification

    def _save(directory, hidden_size=16, id2label=None):
        id2label = label_mapping if id2label is None else id2label
        directory.mkdir(parents=True, exist_ok=True)
        config = BertConfig(
            vocab_size=len(VOCAB), hidden_size=hidden_size, num_hidden_layers=1,
            num_attention_heads=2, intermediate_size=32, max_position_embeddings=64,
            id2label=id2label, label2id={v: k for k, v in id2label.items()},
        )
        torch.manual_seed(0)
        model = BertForTokenClassification(config)
        config_path = directory / "config.json"
        weights_path = directory / "model.pt"
        config.to_json_file(str(config_path))
        torch.save(model.state_dict(), weights_path)
        return config_path, weights_path

    return _save
