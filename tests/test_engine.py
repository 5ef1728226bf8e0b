"""
Tests for the engine facade: index lifecycle, maintenance and interchange.
"""
import os
import tempfile
import unittest

from uugle.common.errors import ImportFormatError
from uugle.common.models import DocumentKind
from uugle.engine import SearchEngine, create_fallback_document, prepare_document_data

from payloads import BOOK_KEY, MNGKIT_KEY, MNGKIT_URL, FakeClock, book_payload, mngkit_payload


class TestPayloadHelpers(unittest.TestCase):
    def test_prepare_nested_document(self):
        data = {'url': MNGKIT_URL, 'data': {'document': {'name': 'Plan'}}}
        self.assertEqual(prepare_document_data(data), {'document': {'name': 'Plan'}, 'url': MNGKIT_URL})

    def test_prepare_bare_document(self):
        data = {'url': MNGKIT_URL, 'name': 'Plan'}
        self.assertEqual(prepare_document_data(data)['document'], data)

    def test_fallback_document(self):
        fallback = create_fallback_document({'url': 'https://uuapp.plus4u.net/uu-managementkit-maing02/ws/document'})
        self.assertEqual(fallback['document'], {'name': 'Document from uuapp.plus4u.net', 'id': 'document'})


class EngineTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.temp_dir.name, 'books.db')
        self.clock = FakeClock()
        self.engine = SearchEngine(db_path=self.db_path, clock=self.clock)
        await self.engine.open()

    async def asyncTearDown(self):
        await self.engine.close()
        self.temp_dir.cleanup()


class TestIndexLifecycle(EngineTestCase):
    async def test_index_persists_across_engines(self):
        await self.engine.initialize_index()
        await self.engine.index_document(book_payload())
        await self.engine.close()

        reopened = SearchEngine(db_path=self.db_path)
        async with reopened:
            await reopened.initialize_index()
            self.assertEqual(reopened.index.doc_count(), 4)
            self.assertTrue(await reopened.search('accordion'))

    async def test_indexing_initializes_index(self):
        self.assertIsNone(self.engine.index)
        await self.engine.index_document(book_payload())
        self.assertIs(self.engine.query_engine.index, self.engine.index)
        self.assertTrue(await self.engine.search('introduction'))

    async def test_rebuild_matches_stored_pages(self):
        await self.engine.index_document(book_payload())
        async with self.engine.store.transaction() as tx:
            pages = await tx.get_pages_by_key(BOOK_KEY)
            await tx.delete_page(pages[0].id)

        await self.engine.rebuild_index()

        self.assertEqual(self.engine.index.doc_count(), 3)
        self.assertIs(self.engine.indexer.index, self.engine.index)

    async def test_delete_page(self):
        await self.engine.index_document(book_payload())
        page = next(p for p in await self.engine.store.get_pages_by_key(BOOK_KEY) if p.code == 'D')

        self.assertTrue(await self.engine.delete_page(page.id))
        self.assertEqual(await self.engine.search('appendix'), [])
        self.assertFalse(await self.engine.delete_page(page.id))

    async def test_deleting_last_page_deletes_book(self):
        await self.engine.index_document(mngkit_payload(), DocumentKind.LOOSE)
        for page in await self.engine.store.get_pages_by_key(MNGKIT_KEY):
            self.assertTrue(await self.engine.delete_page(page.id))

        self.assertEqual(await self.engine.get_available_books(), [])
        outcome = await self.engine.index_document(mngkit_payload(), DocumentKind.LOOSE)
        self.assertFalse(outcome.skipped)

    async def test_delete_book(self):
        await self.engine.index_document(book_payload())
        await self.engine.index_document(mngkit_payload(), DocumentKind.LOOSE)

        self.assertEqual(await self.engine.delete_book(BOOK_KEY), 4)

        self.assertEqual([book.document_key for book in await self.engine.get_available_books()], [MNGKIT_KEY])
        self.assertEqual(await self.engine.search('accordion'), [])
        self.assertTrue(await self.engine.search('warehouse'))

    async def test_clear_all(self):
        await self.engine.index_document(book_payload())
        await self.engine.clear_all()

        self.assertEqual(await self.engine.get_available_books(), [])
        self.assertEqual(self.engine.index.doc_count(), 0)
        self.assertIsNotNone(await self.engine.store.get_index_dump())

    async def test_reindex_after_clear(self):
        await self.engine.index_document(book_payload())
        await self.engine.clear_all()
        outcome = await self.engine.index_document(book_payload())
        self.assertFalse(outcome.skipped)
        self.assertEqual(outcome.added, 4)


class TestInterchange(EngineTestCase):
    async def test_export_then_import_into_empty_store(self):
        await self.engine.index_document(book_payload())
        exported = await self.engine.export_data()
        self.assertEqual(len(exported['books']), 1)
        self.assertEqual(len(exported['pages']), 4)
        self.assertIn('exportDate', exported)

        other = SearchEngine(db_path=os.path.join(self.temp_dir.name, 'other.db'))
        async with other:
            result = await other.import_data(exported)
            self.assertEqual(result, {'booksAdded': 1, 'pagesAdded': 4, 'wasEmptyDatabase': True})
            self.assertEqual(other.index.doc_count(), 4)
            self.assertTrue(await other.search('accordion'))

    async def test_import_skips_known_records(self):
        await self.engine.index_document(book_payload())
        exported = await self.engine.export_data()
        exported['pages'].append({
            'documentKey': BOOK_KEY, 'code': 'Z', 'name': 'Imported Page', 'bookName': 'Developer Guide',
        })

        result = await self.engine.import_data(exported)

        self.assertEqual(result, {'booksAdded': 0, 'pagesAdded': 1, 'wasEmptyDatabase': False})
        self.assertTrue(await self.engine.search('imported'))

    async def test_import_accepts_legacy_key_field(self):
        data = {
            'books': [{'awid': 'legacy', 'name': 'Old Book', 'lastUpdate': '2023-01-01T00:00:00Z'}],
            'pages': [{'awid': 'legacy', 'code': 'home', 'name': 'Home', 'bookName': 'Old Book'}],
        }
        result = await self.engine.import_data(data)
        self.assertEqual((result['booksAdded'], result['pagesAdded']), (1, 1))
        book = (await self.engine.get_available_books())[0]
        self.assertEqual(book.document_key, 'legacy')

    async def test_import_skips_code_collisions(self):
        await self.engine.index_document(book_payload())
        data = {'books': [], 'pages': [{'documentKey': BOOK_KEY, 'code': 'A', 'name': 'Different', 'bookName': 'X'}]}
        result = await self.engine.import_data(data)
        self.assertEqual(result['pagesAdded'], 0)

    async def test_import_rejects_bad_shape(self):
        for data in ({'books': []}, {'pages': []}, {'books': {}, 'pages': []}, ['books']):
            with self.assertRaises(ImportFormatError):
                await self.engine.import_data(data)

    async def test_import_rejects_bad_record(self):
        with self.assertRaises(ImportFormatError):
            await self.engine.import_data({'books': [{'name': 'No key'}], 'pages': []})


class TestRequestHandlers(EngineTestCase):
    async def test_index_request_outcome(self):
        outcome = await self.engine.handle_index_request(book_payload(), 'structured')
        self.assertEqual(outcome, {'success': True, 'documentKey': BOOK_KEY, 'skipped': False, 'added': 4, 'removed': 0})

    async def test_index_request_reports_bad_url(self):
        outcome = await self.engine.handle_index_request(book_payload(url='https://example.com/x'))
        self.assertFalse(outcome['success'])
        self.assertIn('invalid bookkit page url', outcome['error'])

    async def test_index_request_reports_unknown_kind(self):
        outcome = await self.engine.handle_index_request(book_payload(), 'pdf')
        self.assertFalse(outcome['success'])
        self.assertIn('Unknown document kind', outcome['error'])

    async def test_index_request_requires_data(self):
        self.assertFalse((await self.engine.handle_index_request(None))['success'])
        self.assertEqual(
            await self.engine.handle_index_request({'document': {}}, 'loose'),
            {'success': False, 'error': 'Missing URL in data'},
        )

    async def test_loose_request_falls_back_to_url_document(self):
        data = {'url': MNGKIT_URL, 'document': ['unexpected', 'shape']}
        outcome = await self.engine.handle_index_request(data, 'loose')

        self.assertTrue(outcome['success'])
        book = await self.engine.store.get_book_by_key(MNGKIT_KEY)
        self.assertEqual(book.name, 'Document from uuapp.plus4u.net')

    async def test_search_request_before_initialization(self):
        response = await self.engine.handle_search_request('accordion')
        self.assertEqual(response['results'], [])
        self.assertIn('initialized', response['error'])

    async def test_search_request_shapes(self):
        await self.engine.handle_index_request(book_payload())

        plain = await self.engine.handle_search_request('accordion')
        self.assertEqual((plain['hasMore'], plain['totalPages']), (False, 1))
        self.assertEqual({result['code'] for result in plain['results']}, {'B', 'C'})

        listing = await self.engine.handle_search_request('', BOOK_KEY, page=0, page_size=3)
        self.assertEqual((listing['hasMore'], listing['totalPages']), (True, 2))
        self.assertEqual(len(listing['results']), 3)

    async def test_books_request(self):
        await self.engine.handle_index_request(book_payload())
        response = await self.engine.handle_books_request()
        self.assertEqual([book['documentKey'] for book in response['books']], [BOOK_KEY])


if __name__ == '__main__':
    unittest.main()
