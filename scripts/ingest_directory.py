"""
Bulk-ingest every text file under a directory into the knowledge base.

Usage: python scripts/ingest_directory.py <directory> [--pattern "*.md"]

Each file becomes one document whose id is derived from its relative path,
so running the script again re-indexes the same documents instead of
duplicating them.
"""

import argparse
import asyncio
from pathlib import Path

from dotenv import load_dotenv
load_dotenv()

from kb_assistant.api.dependencies import get_ingestion_service, get_vector_store
from kb_assistant.core.errors import KnowledgeBaseError
from kb_assistant.core.logging import configure_logging
from kb_assistant.config import settings
from kb_assistant.db import async_engine, init_db


def _document_id(root: Path, path: Path) -> str:
    return "file-" + path.relative_to(root).as_posix().replace("/", "__")


async def main(directory: str, pattern: str) -> int:
    configure_logging(settings.log_level, json_output=settings.log_json)
    settings.require_provider_credentials()

    root = Path(directory).resolve()
    files = sorted(p for p in root.rglob(pattern) if p.is_file())
    print(f"Found {len(files)} files under {root}.")
    if not files:
        return 0

    await init_db()
    store = get_vector_store()
    if not await store.initialize():
        print("Vector store unavailable; aborting.")
        return 1

    ingestion = get_ingestion_service()
    failures = 0

    for i, path in enumerate(files):
        print(f"Processing ({i + 1}/{len(files)}): {path.name}")
        text = path.read_text(encoding="utf-8", errors="replace")
        if not text.strip():
            continue

        try:
            result = await ingestion.reindex_document(
                _document_id(root, path),
                text,
                file_name=path.name,
            )
        except KnowledgeBaseError as e:
            failures += 1
            print(f"Error ingesting {path.name}: {e}")
            continue

        print(f"  {result.chunks} chunks stored as {result.document_id}")

    await async_engine.dispose()
    print(f"Done! {len(files) - failures} files ingested, {failures} failed.")
    return 1 if failures else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("directory")
    parser.add_argument("--pattern", default="*.txt")
    args = parser.parse_args()
    raise SystemExit(asyncio.run(main(args.directory, args.pattern)))
