"""FastAPI application exposing the NER extraction endpoint."""
from __future__ import annotations
import logging

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from src.ner.errors import ConfigurationError, InputError, ResourceLoadError
from src.ner.models import Entity

log = logging.getLogger(__name__)

app = FastAPI(
    title="BERT NER API",
    description="Token-level named entity recognition (PER, LOC, ORG, MISC).",
    version="1.0.0",
)

# ---------------------------------------------------------------------------
# Lazy-loaded global resources
# ---------------------------------------------------------------------------
_model = None


def _get_model():
    global _model
    if _model is None:
        from src.ner.config import load_settings
        from src.ner.pipeline import NERModel
        _model = NERModel.from_settings(load_settings())
    return _model


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------
class ExtractRequest(BaseModel):
    texts: list[str] = Field(..., min_length=1, description="Texts to extract entities from")


class ExtractResponse(BaseModel):
    entities: list[Entity]
    entity_labels: list[str]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------
@app.post("/api/entities/extract", response_model=ExtractResponse)
def extract_entities(req: ExtractRequest):
    """Extract named entities from the given texts, in input then token order."""
    try:
        model = _get_model()
    except ResourceLoadError as exc:
        log.exception("NER model unavailable")
        raise HTTPException(status_code=503, detail=str(exc))
    try:
        entities = model.predict(req.texts)
    except InputError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except ConfigurationError as exc:
        log.exception("Label mapping mismatch")
        raise HTTPException(status_code=500, detail=str(exc))

    return ExtractResponse(
        entities=entities,
        entity_labels=sorted({e.label for e in entities}),
    )


@app.get("/api/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}
