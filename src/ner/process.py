"""NER batch stage: reads JSONL rows with a "text" field, runs NER, writes rows back with entities."""
from __future__ import annotations
import json
import logging
from pathlib import Path

from tqdm import tqdm

from .models import NERResult
from .pipeline import NERModel

log = logging.getLogger(__name__)


def _read_rows(input_path: Path) -> list[dict]:
    rows = []
    with open(input_path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line:
                rows.append(json.loads(line))
    return rows


def _has_text(row) -> bool:
    return isinstance(row, dict) and isinstance(row.get("text"), str) and bool(row["text"].strip())


def process_file(
    input_path: Path,
    output_path: Path,
    model: NERModel,
    batch_size: int = 32,
) -> dict:
    """Process a single JSONL file with NER.

    Returns: {"input": str, "output": str, "total": int, "with_entities": int}
    """
    input_path = Path(input_path)
    output_path = Path(output_path)
    rows = _read_rows(input_path)

    # Rows without a usable text string never reach the model
    results = [NERResult() for _ in rows]
    pending = [i for i, r in enumerate(rows) if _has_text(r)]
    if len(pending) < len(rows):
        log.debug("%s: %d row(s) without text", input_path, len(rows) - len(pending))

    for start in range(0, len(pending), batch_size):
        chunk = pending[start:start + batch_size]
        texts = [rows[i]["text"] for i in chunk]
        for i, entities in zip(chunk, model.predict_per_input(texts)):
            results[i] = NERResult.from_entities(entities)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with_entities = 0
    with open(output_path, "w", encoding="utf-8") as out:
        for row, result in zip(rows, results):
            # Non-object rows are wrapped so every output line is an object
            if not isinstance(row, dict):
                row = {"value": row}
            row["entities"] = [e.model_dump() for e in result.entities]
            row["entity_labels"] = result.entity_labels
            if result.entities:
                with_entities += 1
            out.write(json.dumps(row, ensure_ascii=False) + "\n")

    return {
        "input": str(input_path),
        "output": str(output_path),
        "total": len(rows),
        "with_entities": with_entities,
    }


def process_tree(
    input_dir: str | Path,
    output_dir: str | Path,
    model: NERModel,
    batch_size: int = 32,
    pattern: str = "*.jsonl",
) -> list[dict]:
    """Walk input_dir for JSONL files and run NER on each.

    Args:
        input_dir: directory holding input JSONL files (searched recursively)
        output_dir: mirror of input_dir receiving the annotated files
        model: shared NERModel instance
        batch_size: texts per model call
        pattern: glob for input files
    """
    input_dir = Path(input_dir)
    output_dir = Path(output_dir)

    files = sorted(input_dir.rglob(pattern))
    if not files:
        log.warning("No %s files found under %s", pattern, input_dir)
        return []

    log.info("Found %d files to process", len(files))

    tasks = []
    for fp in files:
        rel = fp.relative_to(input_dir)
        out_fp = output_dir / rel
        # Skip files already up to date
        if out_fp.exists() and out_fp.stat().st_mtime > fp.stat().st_mtime:
            log.debug("Skipping %s (up to date)", rel)
            continue
        tasks.append((fp, out_fp))

    if not tasks:
        log.info("All files up to date, nothing to process")
        return []

    results = [process_file(fp, out_fp, model, batch_size=batch_size)
               for fp, out_fp in tqdm(tasks, desc="NER")]

    total_rows = sum(r["total"] for r in results)
    total_with = sum(r["with_entities"] for r in results)
    log.info(
        "NER complete: %d files, %d rows, %d with entities (%.1f%%)",
        len(results), total_rows, total_with,
        100.0 * total_with / max(total_rows, 1),
    )
    return results
