import importlib.util
import subprocess
import sys
import tempfile
import unittest
from io import BytesIO
from pathlib import Path
from unittest import mock

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "display_protocol"))
sys.path.insert(0, str(ROOT / "packages" / "renderer"))

from PIL import Image

from termpix_renderer import office, web
from termpix_renderer.documents import Source
from termpix_renderer.errors import CollaboratorUnavailable, DecodeFailed
from termpix_renderer.models import PixelFormat
from termpix_renderer.text import pick_lexer, render_text
from termpix_renderer.vector import qpa_platform, render_svg

SVG = (
    b"<svg xmlns='http://www.w3.org/2000/svg' width='100' height='50'>"
    b"<rect width='100' height='50' fill='#ff0000'/></svg>"
)


def _png_bytes(size=(5, 3)):
    buf = BytesIO()
    Image.new("RGBA", size, (0, 0, 255, 255)).save(buf, format="PNG")
    return buf.getvalue()


def _fonts_available():
    from pygments.formatters.img import FontNotFound, ImageFormatter

    try:
        ImageFormatter(image_format="png")
    except (FontNotFound, OSError):
        return False
    return True


@unittest.skipIf(importlib.util.find_spec("PySide6") is None, "PySide6 not installed")
class SvgTests(unittest.TestCase):
    def test_size_hint_drives_raster_size(self):
        seen = []

        def hint(width, height):
            seen.append((width, height))
            return 40, 20

        page = render_svg(SVG, hint)
        self.assertEqual(seen, [(100, 50)])
        self.assertEqual((page.width, page.height), (40, 20))
        self.assertEqual(page.pixel_format, PixelFormat.RGBA8)
        self.assertEqual(len(page.pixels), 40 * 20 * 4)
        self.assertEqual(page.pixels[:4], bytes([255, 0, 0, 255]))

    def test_intrinsic_size_without_hint(self):
        page = render_svg(SVG)
        self.assertEqual((page.width, page.height), (100, 50))

    def test_invalid_markup(self):
        with self.assertRaises(DecodeFailed):
            render_svg(b"<svg")


class QtPlatformTests(unittest.TestCase):
    def test_windowing_plugins_are_replaced(self):
        for value in ("", "  ", "xcb", "wayland"):
            with self.subTest(value=value):
                self.assertEqual(qpa_platform({"QT_QPA_PLATFORM": value}), "offscreen")
        self.assertEqual(qpa_platform({}), "offscreen")

    def test_headless_plugins_are_kept(self):
        self.assertEqual(qpa_platform({"QT_QPA_PLATFORM": "minimal"}), "minimal")
        self.assertEqual(qpa_platform({"QT_QPA_PLATFORM": "offscreen"}), "offscreen")


class TextTests(unittest.TestCase):
    def test_pick_lexer(self):
        self.assertEqual(pick_lexer("x = 1", language="python").name, "Python")
        self.assertIn("Python", pick_lexer("x = 1\n", filename="tool.py").name)
        with self.assertRaises(DecodeFailed):
            pick_lexer("x", language="no-such-language")

    def test_invalid_utf8(self):
        with self.assertRaises(DecodeFailed):
            render_text(b"\xff\xfe\xfa")

    def test_missing_fontconfig(self):
        missing = FileNotFoundError(2, "No such file or directory", "fc-list")
        with mock.patch("termpix_renderer.text.ImageFormatter", side_effect=missing):
            with self.assertRaises(CollaboratorUnavailable) as ctx:
                render_text(b"print('hi')\n", language="python")
        self.assertEqual(ctx.exception.dependency, "fontconfig (fc-list)")
        self.assertIn("fontconfig", str(ctx.exception))

    def test_unknown_style(self):
        if not _fonts_available():
            self.skipTest("no monospace font for Pygments")
        with self.assertRaises(DecodeFailed):
            render_text(b"x = 1\n", language="python", style="no-such-style")

    def test_render_highlighted_page(self):
        if not _fonts_available():
            self.skipTest("no monospace font for Pygments")
        short = render_text(b"x = 1\n", language="python")
        longer = render_text(b"x = 1\ny = 2\nz = 3\n", language="python")
        self.assertEqual(short.pixel_format, PixelFormat.RGBA8)
        self.assertGreater(short.width, 0)
        self.assertGreater(longer.height, short.height)


class OfficeConversionTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.work = Path(self._tmp.name) / "office"
        self.calls = []

    def tearDown(self):
        self._tmp.cleanup()

    def _fake_soffice(self, source, out_dir, timeout):
        self.calls.append(source.suffix)
        (out_dir / f"{source.stem}.pdf").write_bytes(b"%PDF-converted")

    def test_kept_conversion_is_reused(self):
        with mock.patch.object(office, "_run_soffice", side_effect=self._fake_soffice):
            first = office.convert_to_pdf(b"doc", "docx", self.work)
            second = office.convert_to_pdf(b"doc", "docx", self.work)
        self.assertEqual(first, b"%PDF-converted")
        self.assertEqual(second, first)
        self.assertEqual(self.calls, [".docx"])
        self.assertEqual([p.suffix for p in self.work.iterdir()], [".pdf"])

    def test_reuse_disabled_drops_kept_conversion(self):
        with mock.patch.object(office, "_run_soffice", side_effect=self._fake_soffice):
            office.convert_to_pdf(b"doc", "docx", self.work)
            pdf = office.convert_to_pdf(b"doc", "docx", self.work, reuse=False)
        self.assertEqual(pdf, b"%PDF-converted")
        self.assertEqual(len(self.calls), 2)
        self.assertEqual(list(self.work.iterdir()), [])

    def test_without_work_dir_nothing_is_kept(self):
        with mock.patch.object(office, "_run_soffice", side_effect=self._fake_soffice):
            office.convert_to_pdf(b"doc", "odt")
            office.convert_to_pdf(b"doc", "odt")
        self.assertEqual(self.calls, [".odt", ".odt"])
        self.assertFalse(self.work.exists())

    def test_missing_output(self):
        self.work.mkdir()
        with mock.patch.object(office, "_run_soffice"):
            with self.assertRaises(DecodeFailed) as ctx:
                office.convert_to_pdf(b"doc", "docx", self.work)
        self.assertIn("produced no PDF", str(ctx.exception))
        self.assertEqual(list(self.work.iterdir()), [])

    def test_timeout(self):
        expired = subprocess.TimeoutExpired(cmd="soffice", timeout=5)
        with mock.patch.object(office.subprocess, "run", side_effect=expired):
            with self.assertRaises(DecodeFailed) as ctx:
                office.convert_to_pdf(b"doc", "docx", timeout=5)
        self.assertIn("timed out after 5s", str(ctx.exception))

    def test_conversion_error_carries_stderr(self):
        failed = subprocess.CalledProcessError(1, "soffice", stderr=b"source file could not be loaded")
        with mock.patch.object(office.subprocess, "run", side_effect=failed):
            with self.assertRaises(DecodeFailed) as ctx:
                office.convert_to_pdf(b"doc", "docx")
        self.assertIn("could not be loaded", str(ctx.exception))

    def test_missing_soffice(self):
        with mock.patch.object(office.subprocess, "run", side_effect=FileNotFoundError("soffice")):
            with self.assertRaises(CollaboratorUnavailable):
                office.convert_to_pdf(b"doc", "docx")


class _FakePage:
    def __init__(self, log):
        self.log = log

    def goto(self, url, **kwargs):
        self.log.append(("goto", url))

    def set_content(self, html, **kwargs):
        self.log.append(("set_content", html))

    def screenshot(self, **kwargs):
        self.log.append(("screenshot", kwargs.get("full_page")))
        return _png_bytes()


class _FakeBrowser:
    def __init__(self, log):
        self.log = log

    def new_page(self, viewport):
        self.log.append(("viewport", viewport["width"]))
        return _FakePage(self.log)

    def close(self):
        self.log.append(("close", None))


class _FakePlaywright:
    def __init__(self, log):
        self.log = log
        self.chromium = self

    def launch(self, headless):
        return _FakeBrowser(self.log)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class WebTargetTests(unittest.TestCase):
    def test_url_source(self):
        source = Source(name="https://example.com", url="https://example.com")
        self.assertEqual(web._target(source), ("https://example.com", None))

    def test_path_source(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "page.html"
            path.write_text("<html></html>", encoding="utf-8")
            url, html = web._target(Source.from_path(path))
        self.assertTrue(url.startswith("file://"))
        self.assertTrue(url.endswith("/page.html"))
        self.assertIsNone(html)

    def test_inline_html(self):
        markup = "<!DOCTYPE html>\n<html><body>hi</body></html>\n"
        self.assertEqual(web._target(Source.from_bytes(markup.encode("utf-8"))), (None, markup))

    def test_piped_url_and_path(self):
        self.assertEqual(web._target(Source.from_bytes(b"https://example.com/\n")), ("https://example.com/", None))
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "page.html"
            path.write_text("<html></html>", encoding="utf-8")
            url, _ = web._target(Source.from_bytes(str(path).encode("utf-8")))
        self.assertEqual(url, path.resolve().as_uri())

    def test_invalid_utf8(self):
        with self.assertRaises(DecodeFailed):
            web._target(Source.from_bytes(b"<html>\xff\xfe"))

    @unittest.skipIf(importlib.util.find_spec("playwright") is None, "playwright not installed")
    def test_screenshot_inline_html(self):
        log = []
        with mock.patch.object(web, "_sync_playwright", return_value=lambda: _FakePlaywright(log)):
            page = web.screenshot_html(Source.from_bytes(b"<html>hi</html>"), viewport_width=640)
        self.assertEqual((page.width, page.height), (5, 3))
        self.assertEqual(
            log,
            [("viewport", 640), ("set_content", "<html>hi</html>"), ("screenshot", True), ("close", None)],
        )


if __name__ == "__main__":
    unittest.main()
