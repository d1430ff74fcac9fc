import sys
import tempfile
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "core"))
sys.path.insert(0, str(ROOT / "packages" / "display_protocol"))
sys.path.insert(0, str(ROOT / "packages" / "renderer"))

from termpix_core.cache import CacheKey, RenderCache, serialize_page
from termpix_renderer.models import PixelFormat, RasterPage


def _page(number=2):
    return RasterPage(
        width=3,
        height=2,
        pixel_format=PixelFormat.RGBA8,
        pixels=bytes(range(24)),
        page_number=number,
    )


class CacheKeyTests(unittest.TestCase):
    def test_fingerprint_is_stable_and_order_independent(self):
        a = CacheKey.build("digest", 2, {"dpi": 150, "grayscale": False})
        b = CacheKey.build("digest", 2, {"grayscale": False, "dpi": 150})
        self.assertEqual(a.fingerprint, b.fingerprint)

    def test_fingerprint_tracks_render_options_and_page(self):
        base = CacheKey.build("digest", 2, {"dpi": 150})
        self.assertNotEqual(base.fingerprint, CacheKey.build("digest", 2, {"dpi": 300}).fingerprint)
        self.assertNotEqual(base.fingerprint, CacheKey.build("digest", 3, {"dpi": 150}).fingerprint)
        self.assertNotEqual(base.fingerprint, CacheKey.build("other", 2, {"dpi": 150}).fingerprint)


class RenderCacheTests(unittest.TestCase):
    def test_miss_then_hit(self):
        with tempfile.TemporaryDirectory() as tmp:
            cache = RenderCache(Path(tmp))
            key = CacheKey.build("digest", 2, {"dpi": 150})
            self.assertIsNone(cache.lookup(key))
            self.assertTrue(cache.store(key, _page()))
            self.assertEqual(cache.lookup(key), _page())
            self.assertEqual((cache.hits, cache.misses, cache.stores), (1, 1, 1))

    def test_store_is_idempotent(self):
        with tempfile.TemporaryDirectory() as tmp:
            cache = RenderCache(Path(tmp))
            key = CacheKey.build("digest", 2)
            cache.store(key, _page())
            before = cache.path_for(key).read_bytes()
            cache.store(key, _page())
            self.assertEqual(cache.entry_count(), 1)
            self.assertEqual(cache.path_for(key).read_bytes(), before)
            self.assertEqual(before, serialize_page(key, _page()))

    def test_sixteen_bit_pages_survive(self):
        page = RasterPage(width=1, height=1, pixel_format=PixelFormat.RGBA16, pixels=bytes(range(8)))
        with tempfile.TemporaryDirectory() as tmp:
            cache = RenderCache(Path(tmp))
            key = CacheKey.build("digest", 1)
            cache.store(key, page)
            self.assertEqual(cache.lookup(key), page)

    def test_disabled_cache_always_misses(self):
        with tempfile.TemporaryDirectory() as tmp:
            cache = RenderCache(Path(tmp), enabled=False)
            key = CacheKey.build("digest", 2)
            self.assertFalse(cache.store(key, _page()))
            self.assertIsNone(cache.lookup(key))
            self.assertEqual(cache.entry_count(), 0)

    def test_corrupt_entry_is_a_miss_and_removed(self):
        with tempfile.TemporaryDirectory() as tmp:
            cache = RenderCache(Path(tmp))
            key = CacheKey.build("digest", 2)
            path = cache.path_for(key)
            path.parent.mkdir(parents=True)
            path.write_bytes(b"not a cache entry")
            with self.assertLogs("termpix", level="WARNING"):
                self.assertIsNone(cache.lookup(key))
            self.assertFalse(path.exists())

    def test_entry_for_other_key_is_rejected(self):
        with tempfile.TemporaryDirectory() as tmp:
            cache = RenderCache(Path(tmp))
            key = CacheKey.build("digest", 2)
            other = CacheKey.build("digest", 3)
            path = cache.path_for(key)
            path.parent.mkdir(parents=True)
            path.write_bytes(serialize_page(other, _page()))
            self.assertIsNone(cache.lookup(key))

    def test_truncated_pixels_are_rejected(self):
        with tempfile.TemporaryDirectory() as tmp:
            cache = RenderCache(Path(tmp))
            key = CacheKey.build("digest", 2)
            cache.store(key, _page())
            path = cache.path_for(key)
            path.write_bytes(path.read_bytes()[:-5])
            self.assertIsNone(cache.lookup(key))

    def test_unwritable_directory_degrades(self):
        with tempfile.TemporaryDirectory() as tmp:
            blocker = Path(tmp) / "blocker"
            blocker.write_text("file", encoding="utf-8")
            cache = RenderCache(blocker / "cache")
            key = CacheKey.build("digest", 2)
            with self.assertLogs("termpix", level="WARNING"):
                self.assertFalse(cache.store(key, _page()))
            self.assertIsNone(cache.lookup(key))

    def test_discard(self):
        with tempfile.TemporaryDirectory() as tmp:
            cache = RenderCache(Path(tmp))
            key = CacheKey.build("digest", 2)
            cache.store(key, _page())
            cache.discard(key)
            cache.discard(key)
            self.assertEqual(cache.entry_count(), 0)


if __name__ == "__main__":
    unittest.main()
