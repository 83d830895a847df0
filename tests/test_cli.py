import io
import os
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest import mock

import yaml
from PIL import Image

from personalmotd.addresses import AddressIdentityStore
from personalmotd.cli import build_parser, main, resolve_data_dir, resolve_server_root

GREY = (50, 50, 50, 255)
RED = (200, 30, 30, 255)


class CliTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.data_dir = self.root / "data"
        self.data_dir.mkdir()
        self.skin_dir = self.root / "skins"
        self.skin_dir.mkdir()
        skin = Image.new("RGBA", (64, 64), (0, 0, 0, 0))
        skin.paste(RED, (8, 8, 16, 16))
        skin.save(self.skin_dir / "Alice.png", format="PNG")
        Image.new("RGBA", (64, 64), GREY).save(self.root / "server-icon.png", format="PNG")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _run(self, *argv: str):
        buffer = io.StringIO()
        with redirect_stdout(buffer):
            code = main(["--data-dir", str(self.data_dir), "--server-root", str(self.root), *argv])
        return code, buffer.getvalue().splitlines()

    def test_addresses_prints_bindings(self) -> None:
        AddressIdentityStore({"10.0.0.2": "Carol", "10.0.0.1": "Dave"}).save_file(
            self.data_dir / "addressmap.yml"
        )

        code, lines = self._run("addresses")

        self.assertEqual(code, 0)
        self.assertEqual(
            lines,
            ["Stored address mappings: 2", "  10.0.0.1 -> Dave", "  10.0.0.2 -> Carol"],
        )

    def test_render_writes_icon(self) -> None:
        out = self.root / "out" / "icon.png"

        code, _ = self._run("render", "--skin", str(self.skin_dir / "Alice.png"), "--out", str(out))

        self.assertEqual(code, 0)
        with Image.open(out) as icon:
            self.assertEqual(icon.size, (64, 64))
            self.assertEqual(icon.convert("RGBA").getpixel((0, 0)), RED)
            self.assertEqual(icon.convert("RGBA").getpixel((40, 40)), GREY)

    def test_render_reports_unreadable_skin(self) -> None:
        broken = self.root / "broken.png"
        broken.write_bytes(b"nope")
        with self.assertLogs("personalmotd.cli", level="ERROR"):
            code, _ = self._run("render", "--skin", str(broken), "--out", str(self.root / "x.png"))
        self.assertEqual(code, 1)
        self.assertFalse((self.root / "x.png").exists())

    def test_generate_uses_configured_skin_source(self) -> None:
        (self.data_dir / "config.yml").write_text(
            yaml.safe_dump({"skin-url": str(self.skin_dir / "{PLAYERNAME}.png")}),
            encoding="utf-8",
        )

        code, lines = self._run("generate", "Alice")

        self.assertEqual(code, 0)
        self.assertEqual(lines, ["Alice: PERSISTED"])
        self.assertTrue((self.data_dir / "personal-icons" / "Alice.png").is_file())
        self.assertTrue((self.data_dir / "player-skins" / "Alice.png").is_file())

    def test_generate_fails_for_missing_skin(self) -> None:
        (self.data_dir / "config.yml").write_text(
            yaml.safe_dump({"skin-url": str(self.skin_dir / "{PLAYERNAME}.png")}),
            encoding="utf-8",
        )

        code, lines = self._run("generate", "Alice", "Nobody")

        self.assertEqual(code, 1)
        self.assertEqual(lines[0], "Alice: PERSISTED")
        self.assertTrue(lines[1].startswith("Nobody: FETCH_FAILED ("))

    def test_parser_requires_a_command(self) -> None:
        with redirect_stderr(io.StringIO()), self.assertRaises(SystemExit):
            build_parser().parse_args([])

    def test_explicit_data_dir_wins(self) -> None:
        self.assertEqual(resolve_data_dir(self.data_dir), self.data_dir)

    def test_server_root_defaults_to_environment_then_cwd(self) -> None:
        with mock.patch.dict(os.environ, {"PERSONALMOTD_SERVER_ROOT": str(self.root)}):
            self.assertEqual(resolve_server_root(None), self.root)
        with mock.patch.dict(os.environ, {"PERSONALMOTD_SERVER_ROOT": ""}):
            self.assertEqual(resolve_server_root(None), Path.cwd())
        self.assertEqual(resolve_server_root(self.data_dir), self.data_dir)


if __name__ == "__main__":
    unittest.main()
