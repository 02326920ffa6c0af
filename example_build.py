#!/usr/bin/env python3
"""Example: Ingest a directory of documents into a knowledge base."""

import os
import sys

from kb_retrieval import EngineSettings, KnowledgeBaseStore, ingest_directory


def main():
    # Configuration
    source_dir = os.getenv("SOURCE_DIR", "./docs")
    kb_name = os.getenv("KB_NAME", "Documents")
    kb_id = os.getenv("KB_ID")
    settings = EngineSettings.from_env()
    if not settings.store_path:
        settings.store_path = "./kb/knowledge_bases.json"
    
    # Validate source directory
    if not os.path.isdir(source_dir):
        print(f"Error: Source directory not found: {source_dir}")
        print("Set SOURCE_DIR environment variable or create ./docs directory")
        sys.exit(1)
    
    print("=" * 60)
    print("Knowledge Base Ingestion")
    print("=" * 60)
    print(f"Source directory: {source_dir}")
    print(f"Store file:       {settings.store_path}")
    print(f"Target tokens:    {settings.chunking.target_tokens}")
    print(f"Overlap tokens:   {settings.chunking.overlap_tokens}")
    print("=" * 60)
    print()
    
    store = KnowledgeBaseStore.from_settings(settings)
    
    try:
        if not kb_id:
            kb_id = store.create(kb_name, f"Ingested from {source_dir}").id
            print(f"Created knowledge base: {kb_id}")
        
        report = ingest_directory(store, kb_id, source_dir)
        kb = store.get_full(kb_id)
        
        print()
        print("=" * 60)
        print("Ingestion completed!")
        print("=" * 60)
        print(f"KB id:         {kb_id}")
        print(f"Files added:   {report.file_count}")
        print(f"Chunks added:  {report.chunks_added} (~{report.tokens_added} tokens)")
        print(f"KB totals:     {kb.total_chunks} chunks, ~{kb.total_tokens} tokens")
        print(f"Skipped files: {len(report.skipped_files)}")
        print(f"Failed files:  {len(report.failed_files)}")
        if report.failed_files:
            print("\nFailed files:")
            for path in report.failed_files[:10]:
                print(f"  - {path}")
            if len(report.failed_files) > 10:
                print(f"  ... and {len(report.failed_files) - 10} more")
        print("=" * 60)
    
    except Exception as e:
        print(f"\nError during ingestion: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
