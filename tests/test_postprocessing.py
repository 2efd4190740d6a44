import tempfile
import unittest
from pathlib import Path

from filerelay import postprocessing
from filerelay.app import create_app
from filerelay.config import ServerSettings
from filerelay.retention import RetentionScheduler
from filerelay.storage import EphemeralStore


class MarkdownSummaryTests(unittest.TestCase):
    def test_title_and_description(self):
        contents = "intro\n# Release notes\n\n![banner](b.png)\nFirst line\n\nSecond line\n"
        title, description = postprocessing.extract_markdown_summary(contents, "notes.md")
        self.assertEqual(title, "Release notes")
        self.assertEqual(description, "First line\nSecond line")

    def test_description_is_capped(self):
        body = "\n".join(f"line {index}" for index in range(25))
        _, description = postprocessing.extract_markdown_summary(f"# T\n{body}", "x.md")
        self.assertEqual(len(description.splitlines()), postprocessing.MAX_DESCRIPTION_LINES)
        self.assertTrue(description.startswith("line 0"))

    def test_file_name_is_fallback_title(self):
        title, description = postprocessing.extract_markdown_summary(
            "plain words\n![x](y)\nmore", "bright-bee.md"
        )
        self.assertEqual(title, "bright-bee.md")
        self.assertEqual(description, "plain words\nmore")

    def test_heading_needs_a_space(self):
        title, _ = postprocessing.extract_markdown_summary("#hashtag\n# Real", "x.md")
        self.assertEqual(title, "Real")

    def test_repeated_heading_markers_are_stripped(self):
        title, _ = postprocessing.extract_markdown_summary("# # Deep\nbody", "x.md")
        self.assertEqual(title, "Deep")

    def test_only_newlines_split_lines(self):
        contents = "# Title\r\nform\x0cfeed\u2028kept\r\nnext"
        title, description = postprocessing.extract_markdown_summary(contents, "x.md")
        self.assertEqual(title, "Title")
        self.assertEqual(description, "form\x0cfeed\u2028kept\nnext")


class ProcessTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.directory = Path(self.tmp.name)
        self.app = create_app(
            ServerSettings(upload_token="secret"),
            EphemeralStore(parent=self.tmp.name),
            RetentionScheduler(60),
        )
        self.context = self.app.test_request_context()
        self.context.push()

    def tearDown(self):
        self.context.pop()
        self.tmp.cleanup()

    def _write(self, filename: str, data: bytes) -> Path:
        path = self.directory / filename
        path.write_bytes(data)
        return path

    def test_passthrough_for_other_extensions(self):
        for filename in ("plain.txt", "image.png", "archive.bin", "noext"):
            with self.subTest(filename=filename):
                path = self._write(filename, b"raw")
                self.assertIsNone(postprocessing.process(path))

    def test_markdown_page(self):
        path = self._write(
            "quiet-quail.md",
            "# Shopping <list>\n\nEggs & milk\n<script>alert(1)</script>\n".encode("utf-8"),
        )

        response = postprocessing.process(path)
        body = response.get_data(as_text=True)

        self.assertEqual(response.mimetype, "text/html")
        self.assertIn("<title>Shopping &lt;list&gt;</title>", body)
        self.assertIn('content="Eggs &amp; milk', body)
        self.assertIn("&lt;script&gt;alert(1)&lt;/script&gt;", body)
        self.assertNotIn("<script>alert(1)</script>", body)
        self.assertIn(postprocessing.PAGE_BACKGROUND, body)
        self.assertIn('<pre id="source">', body)

    def test_full_html_document_gets_dark_head(self):
        source = (
            "<html><head><title>export</title></head>"
            '<body><pre style="background-color:#ffffff;color:#000000;font-family:monospace">'
            "x = 1</pre></body></html>"
        )
        path = self._write("neat-newt.html", source.encode("utf-8"))

        body = postprocessing.process(path).get_data(as_text=True)

        self.assertTrue(body.startswith("<html><head><meta charset"))
        self.assertIn("<title>neat-newt.html</title>", body)
        self.assertIn(postprocessing.DARK_BACKGROUND, body)
        self.assertNotIn(postprocessing.PAGE_BACKGROUND, body)
        self.assertIn("background-color:#121212;", body)
        self.assertIn("color:#ffffff;", body)
        self.assertIn("font-family: 'Hack Nerd Font', 'Hack', monospace", body)
        self.assertNotIn("#ffffff;color:#000000", body)
        self.assertIn("<title>export</title>", body)

    def test_html_fragment_is_wrapped(self):
        path = self._write("odd-orca.html", b"<p>Hello <em>there</em></p>")

        body = postprocessing.process(path).get_data(as_text=True)

        self.assertTrue(body.startswith("<!DOCTYPE html>"))
        self.assertIn("<p>Hello <em>there</em></p>", body)
        self.assertIn("<title>odd-orca.html</title>", body)
        self.assertIn(postprocessing.PAGE_BACKGROUND, body)

    def test_undecodable_content_propagates(self):
        path = self._write("bad-bat.md", b"# title\n\xff\xfe broken")
        with self.assertRaises(UnicodeDecodeError):
            postprocessing.process(path)

    def test_missing_file_propagates(self):
        with self.assertRaises(FileNotFoundError):
            postprocessing.process(self.directory / "gone-gnu.html")


if __name__ == "__main__":
    unittest.main()
