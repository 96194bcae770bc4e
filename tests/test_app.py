import unittest
import sys
import tempfile
from pathlib import Path

# Add project root to sys.path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from mdreader import app as host
from mdreader.core.config import ReaderConfig

DOC = """---
title: Guide
---
# Guide

Read the guide carefully. The guide is short.

![diagram](img/diagram.png)

## Setup

Install it.

## Usage

Use it.
"""


class TestViewerApp(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        (self.root / 'img').mkdir()
        (self.root / 'img' / 'diagram.png').write_bytes(b'\x89PNG\r\n')
        self.doc_path = self.root / 'guide.md'
        self.doc_path.write_text(DOC, encoding='utf-8')

        host.configure(ReaderConfig(max_file_size=4096))
        host.app.config['TESTING'] = True
        self.client = host.app.test_client()

    def tearDown(self):
        self._tmp.cleanup()

    def open_doc(self):
        return self.client.post('/api/open', json={'path': str(self.doc_path)})

    def test_no_document_yet(self):
        resp = self.client.get('/api/document')
        self.assertEqual(resp.status_code, 404)
        self.assertIn('error', resp.get_json())

    def test_open_and_fetch(self):
        resp = self.open_doc()
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()['name'], 'guide.md')

        data = self.client.get('/api/document').get_json()
        self.assertEqual([h['id'] for h in data['headings']], ['guide', 'setup', 'usage'])
        self.assertEqual(data['active'], 'guide')
        self.assertNotIn('title: Guide', data['html'])
        self.assertIn('src="/assets/img/diagram.png"', data['html'])
        self.assertEqual(data['word_count']['minutes'], 1)

    def test_viewer_page(self):
        self.open_doc()
        resp = self.client.get('/')
        self.assertEqual(resp.status_code, 200)
        page = resp.get_data(as_text=True)
        self.assertIn('guide.md', page)
        self.assertIn('href="#setup"', page)

    def test_switching_documents_updates_page_data(self):
        self.open_doc()
        first = self.client.get('/api/document').get_json()
        other = self.root / 'changelog.md'
        other.write_text("# Changelog\n\n## Version 2\n\nFaster search.\n", encoding='utf-8')
        self.client.post('/api/open', json={'path': str(other)})

        data = self.client.get('/api/document').get_json()
        self.assertGreater(data['generation'], first['generation'])
        self.assertEqual(data['name'], 'changelog.md')
        self.assertEqual([h['id'] for h in data['headings']], ['changelog', 'version-2'])
        self.assertEqual(data['active'], 'changelog')
        self.assertEqual(data['word_count']['words'], 7)

    def test_viewer_page_hooks_for_live_updates(self):
        self.open_doc()
        page = self.client.get('/').get_data(as_text=True)
        self.assertIn('id="doc-name"', page)
        self.assertIn('id="doc-stats"', page)
        self.assertIn('renderToc(data.headings, data.active)', page)

    def test_asset_route(self):
        self.open_doc()
        resp = self.client.get('/assets/img/diagram.png')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data, b'\x89PNG\r\n')
        resp.close()
        self.assertEqual(self.client.get('/assets/../guide.md').status_code, 404)
        self.assertEqual(self.client.get('/assets/img/missing.png').status_code, 404)

    def test_active_heading(self):
        self.open_doc()
        payload = {
            'positions': [{'id': 'guide', 'top': -300}, {'id': 'setup', 'top': 40}, {'id': 'usage', 'top': 400}],
            'viewport': {'scroll_top': 300, 'client_height': 600, 'scroll_height': 3000},
        }
        resp = self.client.post('/api/toc/active', json=payload)
        self.assertEqual(resp.get_json(), {'active': 'setup'})

    def test_active_heading_rejects_bad_payload(self):
        self.open_doc()
        resp = self.client.post('/api/toc/active', json={'positions': []})
        self.assertEqual(resp.status_code, 400)

    def test_search_flow(self):
        self.open_doc()
        data = self.client.post('/api/search', json={'query': 'GUIDE'}).get_json()
        # heading + two in the paragraph
        self.assertEqual(data['total'], 3)
        self.assertEqual(data['status'], '1 of 3')
        self.assertEqual(data['element_id'], 'find_match_1')

        data = self.client.post('/api/search/previous').get_json()
        self.assertEqual(data['current'], 3)
        data = self.client.post('/api/search/next').get_json()
        self.assertEqual(data['current'], 1)

        data = self.client.delete('/api/search').get_json()
        self.assertEqual(data['status'], '')
        self.assertNotIn('<mark', data['html'])

    def test_announcements(self):
        self.open_doc()
        self.client.post('/api/toc/open', json={'open': True})
        messages = self.client.get('/api/announcements').get_json()['messages']
        self.assertEqual(messages, ['Opened guide.md', 'Table of contents opened'])
        self.assertEqual(self.client.get('/api/announcements').get_json()['messages'], [])

    def test_open_errors(self):
        self.assertEqual(self.client.post('/api/open', json={}).status_code, 400)
        self.assertEqual(self.client.post('/api/open', json={'path': str(self.root / 'nope.md')}).status_code, 404)

        big = self.root / 'big.md'
        big.write_text('x' * 5000, encoding='utf-8')
        self.assertEqual(self.client.post('/api/open', json={'path': str(big)}).status_code, 413)

        binary = self.root / 'binary.md'
        binary.write_bytes(b'\xff\xfe\x00bad')
        self.assertEqual(self.client.post('/api/open', json={'path': str(binary)}).status_code, 400)

    def test_failed_open_keeps_current_document(self):
        self.open_doc()
        self.client.post('/api/open', json={'path': str(self.root / 'nope.md')})
        self.assertEqual(self.client.get('/api/document').get_json()['name'], 'guide.md')

    def test_version(self):
        self.assertIn('version', self.client.get('/api/version').get_json())


if __name__ == '__main__':
    unittest.main()
