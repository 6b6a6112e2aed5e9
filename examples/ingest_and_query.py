#!/usr/bin/env python3
"""
Context Engine Example - Ingest a directory and retrieve context

This example demonstrates the full flow:
- Creating a directory data source
- Background processing into a per-source collection
- Semantic retrieval with the fuzzy fallback
- Rendering the labeled context block

Run this example:
    python examples/ingest_and_query.py path/to/documents "who is sarah chin"

Prerequisites:
    - OpenAI API key set as OPENAI_API_KEY environment variable
    - ChromaDB reachable at CHROMA_HOST, or VECTOR_STORE_PROVIDER=local
"""

import asyncio
import os
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from context_engine import (
    ContextEngine,
    SourceStatus,
    get_config,
    setup_logging,
    setup_prometheus_metrics,
)


async def run(directory: str, query: str) -> None:
    config = get_config()
    setup_logging(config.logging, config.environment)
    setup_prometheus_metrics()

    engine = ContextEngine.from_config(config)
    await engine.initialize()

    print(f"📂 Creating data source for {directory}")
    source = await engine.create_data_source(
        name=Path(directory).name or "documents", kind="directory", path=directory
    )

    await engine.controller.wait_for_pending()
    source = engine.get_data_source(source.id)

    if source.status is not SourceStatus.READY:
        print(f"❌ Processing failed: {source.error_message}")
        return

    print(f"✅ Indexed {source.document_count} chunks")

    peek = await engine.peek_collection(source.vector_store_id)
    print(f"🔍 Collection holds {peek['count']} records")

    contexts = await engine.retrieve_context(query, source.vector_store_id)
    print(f"🧠 Retrieved {len(contexts)} contexts for: {query}")
    for i, context in enumerate(contexts, 1):
        print(f"  {i}. [{context['retrievalMethod']}] {context['source']}")

    print(engine.build_context_block(contexts))

    await engine.close()


def main():
    """Run the ingest and query example."""
    print("🚀 Context Engine Example")
    print("=" * 50)

    if len(sys.argv) < 3:
        print("Usage: python examples/ingest_and_query.py <directory> <query>")
        return

    if not os.getenv("OPENAI_API_KEY"):
        print("❌ Error: OPENAI_API_KEY environment variable not set")
        return

    asyncio.run(run(sys.argv[1], sys.argv[2]))


if __name__ == "__main__":
    main()
