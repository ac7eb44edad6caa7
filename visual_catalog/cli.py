# cli.py

import argparse
import asyncio
import json
from pathlib import Path

from visual_catalog.components.collection_indexer import CatalogItem, CollectionIndexer
from visual_catalog.components.similarity_search import SimilaritySearchEngine
from visual_catalog.config import SystemConfig
from visual_catalog.utils.file_utils import format_file_size, get_image_files
from visual_catalog.utils.logging_config import setup_logging


async def init_command(engine: SimilaritySearchEngine, args) -> int:
    """Load the model and open the store"""
    ready = await engine.initialize()
    print(f"Embedding model: {engine.model_state.value}")
    print(f"Vector store: {engine.store_state.value}")
    return 0 if ready else 1


async def add_command(engine: SimilaritySearchEngine, args) -> int:
    """Embed one photo and store it under an id"""
    indexer = CollectionIndexer(engine)
    if await indexer.index_item(CatalogItem(item_id=args.id, image_ref=args.image)):
        print(f"Stored embedding for {args.id}")
        return 0

    print(f"Error: could not index {args.image}")
    return 1


async def remove_command(engine: SimilaritySearchEngine, args) -> int:
    """Delete the embedding stored under an id"""
    if await engine.remove_embedding(args.id):
        print(f"Removed embedding for {args.id}")
        return 0

    print(f"Error: could not remove {args.id}")
    return 1


async def search_command(engine: SimilaritySearchEngine, args) -> int:
    """Execute similarity search from command line"""
    print(f"Searching for items similar to: {args.query}")

    query = await engine.generate_embedding(args.query)
    if query is None:
        print("Error: could not embed the query image.")
        return 1

    results = await engine.find_similar(query, args.top_k)

    # Output results
    print(f"\nTop {len(results)} similar items:")
    for i, match in enumerate(results, 1):
        print(f"{i}. {match.entity_id} (similarity: {match.similarity:.4f})")

    # Save results to JSON if requested
    if args.output:
        output_data = [
            {"entity_id": match.entity_id, "similarity": match.similarity}
            for match in results
        ]
        with open(args.output, 'w') as f:
            json.dump(output_data, f, indent=2)
        print(f"\nResults saved to: {args.output}")

    return 0


async def index_command(engine: SimilaritySearchEngine, args) -> int:
    """Index images from directory, using file names as ids"""
    print(f"Indexing images from: {args.directory}")

    image_paths = get_image_files(args.directory, recursive=not args.no_recursive)
    if not image_paths:
        print("No images to index.")
        return 0

    items = [CatalogItem(item_id=Path(p).stem, image_ref=p) for p in image_paths]
    stored = await CollectionIndexer(engine).reindex(items)
    print(f"Indexed {stored} of {len(items)} images")
    return 0 if stored == len(items) else 1


async def stats_command(engine: SimilaritySearchEngine, args) -> int:
    """Print store statistics"""
    stats = await engine.stats()
    if stats is None:
        print("Error: vector store unavailable")
        return 1

    print(f"Embeddings: {stats['count']}")
    print(f"Stored: {format_file_size(stats['total_bytes'])}")
    return 0


async def _run(args) -> int:
    config = SystemConfig.load(args.config)
    setup_logging(config, structured=args.structured_logs)

    async with SimilaritySearchEngine(config) as engine:
        return await args.func(engine, args)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Visual Catalog - photo similarity search for a collection"
    )
    parser.add_argument('-c', '--config', default='config.yaml',
                        help='YAML configuration file')
    parser.add_argument('--structured-logs', action='store_true',
                        help='Also write JSON-lines logs')
    subparsers = parser.add_subparsers(dest='command', help='Commands')

    init_parser = subparsers.add_parser('init', help='Load the model and open the store')
    init_parser.set_defaults(func=init_command)

    add_parser = subparsers.add_parser('add', help='Store the embedding of one photo')
    add_parser.add_argument('id', help='Item identifier')
    add_parser.add_argument('image', help='Path or file:// URI of the photo')
    add_parser.set_defaults(func=add_command)

    remove_parser = subparsers.add_parser('remove', help='Delete a stored embedding')
    remove_parser.add_argument('id', help='Item identifier')
    remove_parser.set_defaults(func=remove_command)

    # Similarity search command
    search_parser = subparsers.add_parser('search', help='Search for similar items')
    search_parser.add_argument('query', help='Path to query image')
    search_parser.add_argument('-k', '--top-k', type=int, default=None,
                              help='Number of results to return')
    search_parser.add_argument('-o', '--output', help='Output JSON file for results')
    search_parser.set_defaults(func=search_command)

    # Index command
    index_parser = subparsers.add_parser('index', help='Index images from directory')
    index_parser.add_argument('directory', help='Directory containing images')
    index_parser.add_argument('--no-recursive', action='store_true',
                              help='Do not descend into subdirectories')
    index_parser.set_defaults(func=index_command)

    stats_parser = subparsers.add_parser('stats', help='Show store statistics')
    stats_parser.set_defaults(func=stats_command)

    return parser


def main_cli(argv=None) -> int:
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main_cli())
