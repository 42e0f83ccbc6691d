"""Document reader for bulk loads.

Reads raw entity documents from JSON (an array, a single object, or an
object wrapping a ``records``/``data`` array), JSON Lines, or CSV/TSV.
Documents are yielded in chunks and are not validated here; every
document goes through the structural validator on its way into the
store.
"""

import json
import logging
from pathlib import Path
from typing import Any, Iterator

import pandas as pd

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".json", ".jsonl", ".ndjson", ".csv", ".tsv")


def _extract_records(raw_data: Any, source: str) -> list[dict]:
    if isinstance(raw_data, list):
        return raw_data
    if isinstance(raw_data, dict):
        for key in ("records", "data"):
            if isinstance(raw_data.get(key), list):
                return raw_data[key]
        return [raw_data]
    raise ValueError(f"Unsupported JSON structure in {source}: expected array or object, got {type(raw_data).__name__}")


def _csv_documents(df: pd.DataFrame) -> list[dict]:
    # Empty cells are absent fields
    df = df.astype(object).where(pd.notna(df), None)
    documents = []
    for row in df.to_dict(orient="records"):
        documents.append({key.strip(): value for key, value in row.items() if value not in (None, "")})
    return documents


def read_documents(source: str, chunk_size: int = 500) -> Iterator[list[dict]]:
    """Yield the documents of ``source`` in chunks of at most ``chunk_size``.

    Raises:
        FileNotFoundError: If the source doesn't exist
        ValueError: If the format is unsupported or the file is malformed
    """
    source_path = Path(source)
    if not source_path.exists():
        raise FileNotFoundError(f"Source not found: {source}")
    suffix = source_path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise ValueError(f"Unsupported source format {suffix!r}; expected one of {list(SUPPORTED_SUFFIXES)}")

    if suffix in (".csv", ".tsv"):
        delimiter = "\t" if suffix == ".tsv" else ","
        try:
            chunks = pd.read_csv(
                source_path, chunksize=chunk_size, delimiter=delimiter,
                dtype=str, keep_default_na=False, encoding="utf-8",
            )
            for chunk_df in chunks:
                yield _csv_documents(chunk_df)
        except pd.errors.EmptyDataError:
            logger.warning(f"Empty CSV source: {source}")
        except pd.errors.ParserError as e:
            raise ValueError(f"Malformed CSV in {source}: {e}")
        return

    try:
        with open(source_path, "r", encoding="utf-8") as f:
            if suffix == ".json":
                records = _extract_records(json.load(f), source)
            else:
                records = [json.loads(line) for line in f if line.strip()]
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {source}: {e}")

    logger.info(f"Read {len(records)} document(s) from {source}")
    for start in range(0, len(records), chunk_size):
        yield records[start:start + chunk_size]
