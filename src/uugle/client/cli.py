"""
Command-line interface for the uugle engine.
Indexes harvested payloads, searches the index and manages the stored data.
"""
import argparse
import asyncio
import json
import logging
import sys

from uugle.common.config import DATABASE_PATH, DEFAULT_PAGE_SIZE
from uugle.common.errors import UugleError
from uugle.common.models import DocumentKind, SearchPage
from uugle.common.utils import configure_logging
from uugle.engine import SearchEngine

logger = logging.getLogger("uugle.cli")


def format_results_for_cli(results, query):
    """Format search results for command-line display."""
    if not results:
        return f"No results found for '{query}'"

    output = [f"Search results for '{query}':"]
    output.append("-" * 80)

    for i, result in enumerate(results, 1):
        page = result.page
        title = f"{page.book_name} - {page.name}" if page.book_name else page.name
        output.append(f"{i}. {title}")
        if page.breadcrumbs:
            output.append(f"   Path: {' > '.join(crumb.name for crumb in page.breadcrumbs)}")
        output.append(f"   URL: {result.url}")
        output.append("-" * 80)

    return "\n".join(output)


def format_books_for_cli(books):
    if not books:
        return "No books indexed yet"
    lines = [f"{book.document_key}  {book.name}  (updated {book.last_update.isoformat()})" for book in books]
    return "\n".join(lines)


def build_parser():
    parser = argparse.ArgumentParser(description='Index and search books and management documents')
    parser.add_argument('--db', default=DATABASE_PATH, help='Path of the SQLite database')
    parser.add_argument('--verbose', action='store_true', help='Enable debug logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    index_parser = subparsers.add_parser('index', help='Index a harvested payload stored as JSON')
    index_parser.add_argument('file', help='Payload JSON file')
    index_parser.add_argument('--kind', choices=[kind.value for kind in DocumentKind],
                              default=DocumentKind.STRUCTURED.value, help='Source shape of the payload')

    search_parser = subparsers.add_parser('search', help='Search the index')
    search_parser.add_argument('query', nargs='?', default='', help='Search query')
    search_parser.add_argument('--book', help='Restrict results to one document key')
    search_parser.add_argument('--page', type=int, default=0, help='Result page number (0-based)')
    search_parser.add_argument('--page-size', type=int, default=DEFAULT_PAGE_SIZE, help='Results per page')

    subparsers.add_parser('books', help='List indexed books')

    export_parser = subparsers.add_parser('export', help='Export books and pages to JSON')
    export_parser.add_argument('file', help='Target JSON file')

    import_parser = subparsers.add_parser('import', help='Import books and pages from JSON')
    import_parser.add_argument('file', help='Source JSON file')

    subparsers.add_parser('rebuild', help='Rebuild the search index from stored pages')

    delete_parser = subparsers.add_parser('delete-book', help='Delete a book and its pages')
    delete_parser.add_argument('key', help='Document key of the book')

    subparsers.add_parser('clear', help='Delete every book, page and the index')
    return parser


def _read_json(path):
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


async def run_command(args):
    async with SearchEngine(db_path=args.db) as engine:
        await engine.initialize_index()

        if args.command == 'index':
            outcome = await engine.handle_index_request(_read_json(args.file), args.kind)
            print(json.dumps(outcome, indent=2))
            return 0 if outcome['success'] else 1

        if args.command == 'search':
            if args.book:
                results = await engine.search_with_filters(args.query, args.book, args.page_size, args.page)
            else:
                results = await engine.search(args.query)
            if isinstance(results, SearchPage):
                print(format_results_for_cli(results.pages, args.query or args.book))
                print(f"Page {args.page + 1} of {results.total_pages}" + (" (more available)" if results.has_more else ""))
            else:
                print(format_results_for_cli(results, args.query))
            return 0

        if args.command == 'books':
            print(format_books_for_cli(await engine.get_available_books()))
            return 0

        if args.command == 'export':
            data = await engine.export_data()
            with open(args.file, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)
            print(f"Exported {len(data['books'])} books and {len(data['pages'])} pages to {args.file}")
            return 0

        if args.command == 'import':
            result = await engine.import_data(_read_json(args.file))
            print(f"Import completed: added {result['booksAdded']} books and {result['pagesAdded']} pages. "
                  f"Search index rebuilt.")
            return 0

        if args.command == 'rebuild':
            await engine.rebuild_index()
            print(f"Search index rebuilt ({engine.index.doc_count()} pages)")
            return 0

        if args.command == 'delete-book':
            deleted = await engine.delete_book(args.key)
            print(f"Deleted book {args.key} and {deleted} pages")
            return 0

        if args.command == 'clear':
            await engine.clear_all()
            print("All records deleted")
            return 0

    return 2


def main(argv=None):
    """Main function to run the command-line interface."""
    args = build_parser().parse_args(argv)
    configure_logging(level=logging.DEBUG if args.verbose else logging.INFO)
    try:
        return asyncio.run(run_command(args))
    except (UugleError, OSError, ValueError) as e:
        logger.error(f"Command '{args.command}' failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
