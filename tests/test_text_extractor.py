"""
Tests for text extraction from content trees.
"""
import json
import unittest

from uugle.indexer.text_extractor import collect_strings, extract_text, extract_text_from_uu5_json


class TestExtractText(unittest.TestCase):
    def test_properties_then_children_in_order(self):
        node = {
            'title': 'Setup',
            'text': 'Install   the\nCLI',
            'content': [{'text': 'first'}, {'text': 'second'}],
            'sectionList': [{'name': 'third'}],
        }
        self.assertEqual(extract_text(node), 'Setup Install the CLI first second third')

    def test_header_object_is_walked(self):
        node = {'header': {'title': 'Panel', 'content': [{'text': 'caption'}]}}
        self.assertEqual(extract_text(node), 'Panel caption')

    def test_panels_are_walked(self):
        node = {
            'mainPanel': {'text': 'main'},
            'sidePanel': {'text': 'side'},
            'topSection': {'text': 'top'},
            'bottomSection': {'text': 'bottom'},
        }
        self.assertEqual(extract_text(node), 'main side top bottom')

    def test_table_widget_payload(self):
        rows = [['Name', 'Value'], ['Alpha', {'label': 'Beta'}]]
        node = {
            'uu5Tag': 'Uu5TilesBricks.Table',
            'props': {'data': '<uu5json/>' + json.dumps(rows)},
        }
        self.assertEqual(extract_text(node), 'Name Value Alpha Beta')

    def test_table_props_ignored_for_other_widgets(self):
        node = {'uu5Tag': 'UU5.Bricks.Div', 'props': {'data': '<uu5json/>["hidden"]'}}
        self.assertEqual(extract_text(node), '')

    def test_malformed_uu5json_contributes_nothing(self):
        node = {
            'title': 'Report',
            'uu5Tag': 'Uu5TilesBricks.Table',
            'props': {'data': '<uu5json/>[not json'},
        }
        self.assertEqual(extract_text(node), 'Report')

    def test_non_object_yields_empty_string(self):
        for value in (None, 'plain text', 42, ['a', 'b']):
            self.assertEqual(extract_text(value), '')

    def test_malformed_children_never_raise(self):
        node = {'title': 'Root', 'content': [None, 'loose string', {'text': 'kept'}], 'mainPanel': 5}
        self.assertEqual(extract_text(node), 'Root kept')


class TestUu5Json(unittest.TestCase):
    def test_requires_marker(self):
        self.assertEqual(extract_text_from_uu5_json('["a"]'), '')

    def test_collect_strings_depth_first(self):
        data = {'a': ['x', {'b': 'y'}], 'c': 3, 'd': 'z'}
        self.assertEqual(collect_strings(data), ['x', 'y', 'z'])


if __name__ == '__main__':
    unittest.main()
