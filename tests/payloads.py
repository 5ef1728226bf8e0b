"""
Sample payloads shared by the test modules.
"""
from datetime import datetime, timedelta, timezone

BOOK_KEY = 'ed11ec379073476db0aa295ad6c00178'
BOOK_URL = f'https://uuapp.plus4u.net/uu-bookkit-maing01/78462435-{BOOK_KEY}/book/page?code=home'

MNGKIT_URL = 'https://uuapp.plus4u.net/uu-managementkit-maing02/4ee2e6c0b6a14d6bb6b5e5bcee3cbb2e/document?oid=5f1a2b3c4d&pageOid=p1'
MNGKIT_KEY = '5f1a2b3c4d'


def book_payload(menu=None, item_map=None, name='Developer Guide', url=BOOK_URL):
    """Structured payload as harvested from a book."""
    if menu is None:
        menu = [
            {'page': 'A', 'label': {'en': 'Introduction'}, 'indent': 0},
            {'page': 'B', 'label': {'en': 'UU5.Bricks.Accordion'}, 'indent': 1},
            {'page': 'C', 'label': {'en': 'Accordion Props'}, 'indent': 2},
        ]
    if item_map is None:
        item_map = {
            'A': {'label': {'en': 'Introduction'}, 'state': 'active'},
            'B': {'label': {'en': 'UU5.Bricks.Accordion'}, 'state': 'active'},
            'C': {'label': {'en': 'Accordion Props'}, 'state': 'closed'},
            'D': {'label': {'en': 'Hidden Appendix'}, 'state': 'active'},
        }
    return {
        'url': url,
        'loadBook': {
            'name': {'en': name, 'cs': 'Prirucka'},
            'primaryLanguage': 'en',
            'menu': menu,
            'theme': {'main': '#1565c0'},
        },
        'getBookStructure': {'itemMap': item_map},
    }


def mngkit_payload(url=MNGKIT_URL, document=None):
    """Loosely-structured payload as harvested from a management document."""
    if document is None:
        document = {
            'name': 'Quarterly Plan',
            'oid': MNGKIT_KEY,
            'pageList': [
                {'pageOid': 'p1', 'name': 'Goals'},
                {'pageOid': 'p2', 'name': 'Budget', 'state': 'draft'},
            ],
            'requestedPage': {
                'content': {'title': 'Goals', 'content': [{'text': 'Ship the warehouse migration'}]},
            },
        }
    return {'url': url, 'document': document}


class FakeClock:
    """Controllable replacement for the indexer's clock."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
