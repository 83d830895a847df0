import tempfile
import unittest
from pathlib import Path

from aiohttp import web
from aiohttp.test_utils import TestServer
from PIL import Image

from personalmotd.errors import SkinDecodeError, SkinNetworkError, SkinNotFoundError
from personalmotd.skins import ImageCache, SkinFetcher, decode_image, different, encode_png


def _solid(size=(4, 4), color=(200, 30, 30, 255)) -> Image.Image:
    return Image.new("RGBA", size, color)


class DifferentTests(unittest.TestCase):
    def test_image_is_not_different_from_itself_or_a_copy(self) -> None:
        image = _solid()
        self.assertFalse(different(image, image))
        self.assertFalse(different(image, image.copy()))

    def test_absent_images_are_always_different(self) -> None:
        image = _solid()
        self.assertTrue(different(None, image))
        self.assertTrue(different(image, None))
        self.assertTrue(different(None, None))

    def test_size_mismatch_is_different(self) -> None:
        self.assertTrue(different(_solid((4, 4)), _solid((4, 5))))

    def test_single_pixel_change_is_different(self) -> None:
        first = _solid((64, 64))
        second = first.copy()
        second.putpixel((63, 63), (200, 30, 30, 254))
        self.assertTrue(different(first, second))

    def test_decoded_png_matches_source(self) -> None:
        image = _solid((64, 32), (1, 2, 3, 4))
        self.assertFalse(different(image, decode_image(encode_png(image))))


class ImageCacheTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.directory = Path(self._tmp.name) / "player-skins"
        self.cache = ImageCache(self.directory, "skin")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_miss_returns_none(self) -> None:
        self.assertIsNone(self.cache.read("Alice"))
        self.assertIsNone(self.cache.read(None))
        self.assertNotIn("Alice", self.cache)

    def test_write_then_read(self) -> None:
        image = _solid((64, 64))
        path = self.cache.write("Alice", image)

        self.assertEqual(path, self.directory / "Alice.png")
        self.assertIn("Alice", self.cache)
        self.assertFalse(different(self.cache.read("Alice"), image))
        self.assertEqual([entry.name for entry in self.directory.iterdir()], ["Alice.png"])

    def test_write_overwrites_previous_entry(self) -> None:
        self.cache.write("Alice", _solid(color=(1, 1, 1, 255)))
        replacement = _solid(color=(2, 2, 2, 255))
        self.cache.write("Alice", replacement)
        self.assertFalse(different(self.cache.read("Alice"), replacement))

    def test_unusable_identity_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            self.cache.write("../escape", _solid())
        with self.assertLogs("personalmotd.skins", level="WARNING"):
            self.assertIsNone(self.cache.read("../escape"))

    def test_corrupt_entry_reads_as_miss(self) -> None:
        self.directory.mkdir(parents=True)
        (self.directory / "Alice.png").write_bytes(b"not a png")
        with self.assertLogs("personalmotd.skins", level="WARNING"):
            self.assertIsNone(self.cache.read("Alice"))


class SkinFetcherTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.skin = _solid((64, 64), (10, 20, 30, 255))
        app = web.Application()
        app.router.add_get("/skins/{name}", self._handle)
        self.server = TestServer(app)
        await self.server.start_server()
        self.template = f"http://{self.server.host}:{self.server.port}/skins/{{PLAYERNAME}}"

    async def asyncTearDown(self) -> None:
        await self.server.close()

    async def _handle(self, request: web.Request) -> web.Response:
        name = request.match_info["name"]
        if name == "Alice":
            return web.Response(body=encode_png(self.skin), content_type="image/png")
        if name == "Broken":
            return web.Response(body=b"definitely not a png", content_type="image/png")
        if name == "Forbidden":
            return web.Response(status=403)
        if name == "Down":
            return web.Response(status=500)
        return web.Response(status=404)

    async def test_fetch_decodes_remote_skin(self) -> None:
        fetched = await SkinFetcher(self.template).fetch("Alice")
        self.assertEqual(fetched.mode, "RGBA")
        self.assertFalse(different(fetched, self.skin))

    async def test_missing_skin_raises_not_found(self) -> None:
        fetcher = SkinFetcher(self.template)
        with self.assertRaises(SkinNotFoundError):
            await fetcher.fetch("Nobody")
        with self.assertRaises(SkinNotFoundError):
            await fetcher.fetch("Forbidden")

    async def test_server_error_raises_network_error(self) -> None:
        with self.assertRaises(SkinNetworkError):
            await SkinFetcher(self.template).fetch("Down")

    async def test_undecodable_body_raises_decode_error(self) -> None:
        with self.assertRaises(SkinDecodeError) as ctx:
            await SkinFetcher(self.template).fetch("Broken")
        self.assertEqual(ctx.exception.identity, "Broken")

    async def test_unreachable_host_raises_network_error(self) -> None:
        port = self.server.port
        await self.server.close()
        fetcher = SkinFetcher(f"http://127.0.0.1:{port}/skins/{{PLAYERNAME}}", timeout=2)
        with self.assertRaises(SkinNetworkError):
            await fetcher.fetch("Alice")


class LocalSkinFetcherTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    async def test_local_template_reads_files(self) -> None:
        skin = _solid((64, 64))
        skin.save(self.root / "Alice.png", format="PNG")
        fetcher = SkinFetcher(str(self.root / "{PLAYERNAME}.png"))

        self.assertFalse(different(await fetcher.fetch("Alice"), skin))
        with self.assertRaises(SkinNotFoundError):
            await fetcher.fetch("Bob")

    def test_url_for_quotes_identity(self) -> None:
        fetcher = SkinFetcher("http://skins.example/{PLAYERNAME}.png")
        self.assertEqual(fetcher.url_for("Alice"), "http://skins.example/Alice.png")
        self.assertEqual(fetcher.url_for("a b/c"), "http://skins.example/a%20b%2Fc.png")


if __name__ == "__main__":
    unittest.main()
