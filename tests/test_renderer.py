import unittest
import sys
from pathlib import Path
from unittest.mock import patch

from bs4 import BeautifulSoup

# Add project root to sys.path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from mdreader.core.assets import FileUriResolver, RouteAssetResolver
from mdreader.core.document import Document
from mdreader.core.renderer import Renderer, convert_github_alerts, render, render_html, strip_front_matter


def soup_of(md_text, **kwargs):
    return BeautifulSoup(render_html(md_text, **kwargs), 'html.parser')


class TestHeadings(unittest.TestCase):
    def test_duplicate_headings_get_suffix(self):
        result = render("# Test\n\n# Test\n\n# Test")
        self.assertEqual([h.id for h in result.headings], ["test", "test-1", "test-2"])

    def test_heading_text_excludes_permalink(self):
        result = render("## Getting Started")
        self.assertEqual(result.headings[0].text, "Getting Started")
        self.assertEqual(result.headings[0].level, 2)

    def test_permalink_markup(self):
        soup = soup_of("# Intro")
        h1 = soup.find('h1')
        self.assertEqual(h1['id'], 'intro')
        link = h1.find('a', class_='header-anchor')
        self.assertEqual(link['href'], '#intro')
        self.assertEqual(link['aria-hidden'], 'true')
        self.assertEqual(link.get_text(), '#')

    def test_accents_are_folded(self):
        result = render("# Café Déjà Vu")
        self.assertEqual(result.headings[0].id, "cafe-deja-vu")

    def test_explicit_id_is_kept(self):
        result = render("# Title {#custom}\n\n# Title")
        self.assertEqual([h.id for h in result.headings], ["custom", "title"])

    def test_symbol_only_heading_uses_fallback(self):
        result = render("# !!!")
        self.assertEqual(result.headings[0].id, "section")

    def test_raw_html_heading_cannot_reuse_an_id(self):
        result = render('# A\n\n<h2 id="a">Raw</h2>\n\n## A\n')
        self.assertEqual([h.id for h in result.headings], ["a", "a-2", "a-1"])
        self.assertEqual(len({h.id for h in result.headings}), 3)

    def test_renamed_heading_keeps_matching_permalink(self):
        soup = soup_of('<h1 id="intro">Raw</h1>\n\n# Intro\n')
        ids = [h['id'] for h in soup.find_all('h1')]
        self.assertEqual(ids, ['intro', 'intro-1'])
        link = soup.find_all('h1')[1].find('a', class_='header-anchor')
        self.assertEqual(link['href'], '#intro-1')

    def test_h5_is_anchored_but_not_in_toc(self):
        soup = soup_of("##### Deep")
        self.assertEqual(soup.find('h5')['id'], 'deep')
        self.assertEqual(render("##### Deep").headings, ())


class TestFrontMatter(unittest.TestCase):
    def test_front_matter_is_invisible(self):
        body = "# Hello\n\nText."
        with_meta = "---\ntitle: Hello\ntags: [a, b]\n---\n" + body
        self.assertEqual(render_html(with_meta), render_html(body))

    def test_crlf_front_matter(self):
        self.assertEqual(strip_front_matter("---\r\ntitle: x\r\n---\r\nBody"), "Body")

    def test_only_leading_block_is_removed(self):
        text = "Intro\n\n---\nnot: meta\n---\n"
        self.assertEqual(strip_front_matter(text), text)

    def test_empty_front_matter(self):
        self.assertEqual(strip_front_matter("---\n---\nBody"), "Body")


class TestPreProcessing(unittest.TestCase):
    def test_github_alert_becomes_admonition(self):
        soup = soup_of("> [!WARNING]\n> Back up first.\n> Really.\n\nAfter.")
        box = soup.find('div', class_='admonition')
        self.assertIn('warning', box['class'])
        self.assertEqual(box.find('p', class_='admonition-title').get_text(), 'Warning')
        self.assertIn('Back up first.', box.get_text())
        self.assertNotIn('After.', box.get_text())

    def test_alert_inside_fence_untouched(self):
        text = convert_github_alerts("```\n> [!NOTE]\n```")
        self.assertEqual(text, "```\n> [!NOTE]\n```")

    def test_plain_blockquote_untouched(self):
        soup = soup_of("> just a quote")
        self.assertIsNotNone(soup.find('blockquote'))

    def test_toc_marker_removed(self):
        html = render_html("[TOC]\n\n# Only heading")
        self.assertNotIn('[TOC]', html)


class TestCodeBlocks(unittest.TestCase):
    def test_known_language_is_highlighted(self):
        soup = soup_of("```python\nprint('hi')\n```")
        pre = soup.find('pre')
        self.assertIn('code-block', pre['class'])
        code = pre.find('code')
        self.assertEqual(code['class'], ['highlight', 'language-python'])
        self.assertIsNotNone(code.find('span'))
        self.assertIn("print('hi')", code.get_text())

    def test_unknown_language_is_escaped_text(self):
        soup = soup_of("```nosuchlanguage\n<b>bold?</b>\n```")
        code = soup.find('pre').find('code')
        self.assertEqual(code['class'], ['highlight'])
        self.assertIsNone(code.find('b'))
        self.assertIn('<b>bold?</b>', code.get_text())

    def test_no_language(self):
        soup = soup_of("```\nplain\n```")
        code = soup.find('pre').find('code')
        self.assertEqual(code['class'], ['highlight'])
        self.assertEqual(code.get_text().strip(), 'plain')


class TestStructure(unittest.TestCase):
    def test_tables_are_wrapped(self):
        soup = soup_of("| a | b |\n|---|---|\n| 1 | 2 |")
        table = soup.find('table')
        self.assertEqual(table.parent.name, 'div')
        self.assertIn('table-wrapper', table.parent['class'])

    def test_table_alignment_survives(self):
        soup = soup_of("| a |\n|:-:|\n| 1 |")
        self.assertEqual(soup.find('td')['align'], 'center')

    def test_external_links_open_safely(self):
        soup = soup_of("[site](https://example.com)")
        a = soup.find('a')
        self.assertEqual(a['target'], '_blank')
        self.assertEqual(set(a['rel']), {'noopener', 'noreferrer'})

    def test_internal_links_untouched(self):
        soup = soup_of("[jump](#intro) and [mail](mailto:a@b.c)")
        for a in soup.find_all('a'):
            self.assertFalse(a.has_attr('target'))

    def test_task_list(self):
        soup = soup_of("- [x] done\n- [ ] todo")
        boxes = soup.find_all('input')
        self.assertEqual(len(boxes), 2)
        self.assertTrue(all(b['type'] == 'checkbox' for b in boxes))
        self.assertTrue(all(b.has_attr('disabled') for b in boxes))
        self.assertTrue(boxes[0].has_attr('checked'))
        self.assertFalse(boxes[1].has_attr('checked'))


class TestSafety(unittest.TestCase):
    def test_script_tags_removed(self):
        html = render_html("Hello\n\n<script>alert('x')</script>\n\nBye")
        self.assertNotIn('<script', html.lower())

    def test_event_handlers_removed(self):
        html = render_html('<img src="a.png" onerror="alert(1)">\n\n<p onclick="x()">p</p>')
        self.assertNotIn('onerror', html)
        self.assertNotIn('onclick', html)

    def test_javascript_links_removed(self):
        html = render_html("[click](javascript:alert(1))")
        self.assertNotIn('javascript:', html)

    def test_fallback_on_render_failure(self):
        with patch('mdreader.core.renderer.render_markdown', side_effect=RuntimeError("boom")):
            html = render_html("<b>raw</b> & text")
        soup = BeautifulSoup(html, 'html.parser')
        pre = soup.find('pre')
        self.assertEqual(pre['class'], ['render-fallback'])
        self.assertEqual(pre.get_text(), "<b>raw</b> & text")
        self.assertIsNone(soup.find('b'))


class TestMath(unittest.TestCase):
    def test_math_left_literal_until_ready(self):
        html = render_html("Euler: $e^{i\\pi} + 1 = 0$")
        self.assertNotIn('<math', html)
        self.assertIn('$', html)

    def test_math_rendered_when_ready(self):
        html = render_html("Inline $x^2$ here.\n\n$$\n\\frac{a}{b}\n$$", capabilities={'math'})
        soup = BeautifulSoup(html, 'html.parser')
        maths = soup.find_all('math')
        self.assertEqual(len(maths), 2)
        self.assertIsNotNone(soup.find('mfrac'))
        self.assertNotIn('<script', html)


class TestAssets(unittest.TestCase):
    def setUp(self):
        import tempfile
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        (self.root / 'img').mkdir()
        (self.root / 'img' / 'logo.png').write_bytes(b'\x89PNG')
        self.location = str(self.root / 'doc.md')

    def tearDown(self):
        self._tmp.cleanup()

    def test_route_resolver(self):
        soup = soup_of("![logo](img/logo.png)", source_location=self.location, resolver=RouteAssetResolver())
        self.assertEqual(soup.find('img')['src'], '/assets/img/logo.png')

    def test_missing_asset_left_unchanged(self):
        soup = soup_of("![x](img/missing.png)", source_location=self.location, resolver=RouteAssetResolver())
        self.assertEqual(soup.find('img')['src'], 'img/missing.png')

    def test_escape_is_refused(self):
        soup = soup_of("![x](../secret.png)", source_location=self.location, resolver=RouteAssetResolver())
        self.assertEqual(soup.find('img')['src'], '../secret.png')

    def test_file_uri_resolver_scheme_is_allowed(self):
        soup = soup_of("![logo](img/logo.png)", source_location=self.location, resolver=FileUriResolver())
        src = soup.find('img')['src']
        self.assertTrue(src.startswith('file://'))
        self.assertTrue(src.endswith('/img/logo.png'))

    def test_absolute_urls_untouched(self):
        soup = soup_of("![x](https://example.com/a.png)", source_location=self.location, resolver=RouteAssetResolver())
        self.assertEqual(soup.find('img')['src'], 'https://example.com/a.png')

    def test_no_location_no_resolution(self):
        soup = soup_of("![logo](img/logo.png)", resolver=RouteAssetResolver())
        self.assertEqual(soup.find('img')['src'], 'img/logo.png')


class TestRendererCache(unittest.TestCase):
    def test_same_input_is_cached(self):
        renderer = Renderer()
        doc = Document("# Cached")
        first = renderer.render(doc)
        second = renderer.render(doc)
        self.assertIs(first, second)
        self.assertEqual(renderer.cache_info().hits, 1)

    def test_capability_change_is_a_miss(self):
        renderer = Renderer()
        doc = Document("$x$")
        renderer.render(doc)
        renderer.render(doc, {'math'})
        self.assertEqual(renderer.cache_info().misses, 2)

    def test_empty_document(self):
        result = Renderer().render(Document(""))
        self.assertEqual(result.html, "")
        self.assertEqual(result.headings, ())


if __name__ == '__main__':
    unittest.main()
