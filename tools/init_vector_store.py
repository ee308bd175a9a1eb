from __future__ import annotations

"""CLI utility to create the pgvector schema and load seed documents."""

import argparse
import asyncio
import json
from pathlib import Path

from src.app.settings import settings
from src.rag.search import SimilaritySearch


def load_seed_documents(path: Path) -> list[dict[str, str]]:
    """Read ``{"chunk_id", "title", "contents"}`` objects from a JSON-lines file."""
    documents: list[dict[str, str]] = []
    for line_number, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        if not line.strip():
            continue
        record = json.loads(line)
        missing = [key for key in ("chunk_id", "title", "contents") if not record.get(key)]
        if missing:
            raise SystemExit(f"{path}:{line_number}: missing {', '.join(missing)}")
        documents.append(
            {
                "chunk_id": str(record["chunk_id"]),
                "title": str(record["title"]),
                "contents": str(record["contents"]),
            }
        )
    return documents


async def initialize(search: SimilaritySearch, documents: list[dict[str, str]]) -> int:
    """Ensure the schema exists, then embed and insert each document."""
    await search.ensure_schema()
    for document in documents:
        await search.add_document(document["chunk_id"], document["title"], document["contents"])
    return len(documents)


def main() -> None:
    """Initialize the configured vector store using app settings."""
    parser = argparse.ArgumentParser(description="Create the vector table and load documents.")
    parser.add_argument(
        "--seed",
        type=Path,
        default=None,
        help="JSON-lines file with chunk_id, title and contents per line.",
    )
    args = parser.parse_args()

    from src.app.dependencies import get_similarity_search

    documents = load_seed_documents(args.seed) if args.seed else []
    added = asyncio.run(initialize(get_similarity_search(), documents))
    print(f"Schema ready for table '{settings.postgres_table}', added {added} documents")


if __name__ == "__main__":
    main()
