#!/usr/bin/env python3
"""Example: Query a knowledge base and print the assembled context."""

import os
import sys

from kb_retrieval import EngineSettings, KnowledgeBaseStore


def main():
    settings = EngineSettings.from_env()
    if not settings.store_path:
        settings.store_path = "./kb/knowledge_bases.json"
    kb_id = os.getenv("KB_ID")
    
    if not os.path.exists(settings.store_path):
        print(f"Error: Knowledge base store not found: {settings.store_path}")
        print("Run example_build.py first or set KB_STORE_PATH environment variable")
        sys.exit(1)
    
    store = KnowledgeBaseStore.from_settings(settings)
    summaries = store.list_summaries()
    if not summaries:
        print("Error: store contains no knowledge bases")
        sys.exit(1)
    if not kb_id:
        kb_id = summaries[-1].id
    
    print("=" * 60)
    print("Knowledge Base Query Example")
    print("=" * 60)
    for summary in summaries:
        marker = "*" if summary.id == kb_id else " "
        print(
            f"{marker} {summary.id}  {summary.name}  "
            f"({len(summary.sources)} sources, {summary.total_chunks} chunks, ~{summary.total_tokens} tokens)"
        )
    print()
    print("Enter queries (or 'quit' to exit)")
    print("=" * 60)
    print()
    
    while True:
        query = input("Query: ").strip()
        if not query or query.lower() in ("quit", "exit", "q"):
            break
        
        print()
        
        try:
            chunks = store.query(kb_id, query, top_k=5)
            if not chunks:
                print("No relevant chunks.")
                print()
                continue
            
            print(f"Top {len(chunks)} results:")
            print()
            kb = store.get_full(kb_id)
            for rank, chunk in enumerate(chunks, start=1):
                source = kb.sources[chunk.source_index]
                print(f"[{rank}] Source: {source.label or source.kind.value}")
                if chunk.page_number:
                    print(f"    Page:  {chunk.page_number}")
                excerpt = chunk.text
                if len(excerpt) > 150:
                    excerpt = excerpt[:150].rstrip() + "..."
                print(f"    Text:  {excerpt}")
                print()
            
            context = store.build_context(kb_id, query)
            print(f"Assembled context: {len(context)} chars")
            print()
        
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)
            print()
    
    print("Goodbye!")


if __name__ == "__main__":
    main()
