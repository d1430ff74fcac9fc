import shlex
import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "display_protocol"))
sys.path.insert(0, str(ROOT / "packages" / "renderer"))

from termpix_renderer.errors import CollaboratorUnavailable, DecodeFailed
from termpix_renderer.plugin import PluginSpec, run_plugin

PY = shlex.quote(sys.executable)


def _spec(script, **kwargs):
    return PluginSpec(name="test", command=f"{PY} -c {shlex.quote(script)}" + kwargs.pop("suffix", ""), **kwargs)


@unittest.skipIf(sys.platform == "win32", "commands are split shell-style")
class RunPluginTests(unittest.TestCase):
    def test_stdin_to_stdout(self):
        spec = _spec("import sys; sys.stdout.buffer.write(sys.stdin.buffer.read()[::-1])")
        self.assertEqual(run_plugin(spec, b"abc"), b"cba")

    def test_file_placeholders(self):
        spec = _spec(
            "import shutil, sys; shutil.copyfile(sys.argv[1], sys.argv[2])",
            suffix=" @IN@ @OUT@",
            placeholder="@IN@",
            output_placeholder="@OUT@",
        )
        self.assertEqual(run_plugin(spec, b"payload"), b"payload")

    def test_non_zero_exit(self):
        with self.assertRaises(DecodeFailed):
            run_plugin(_spec("raise SystemExit(3)"), b"x")

    def test_empty_output(self):
        with self.assertRaises(DecodeFailed):
            run_plugin(_spec("pass"), b"x")

    def test_missing_program(self):
        spec = PluginSpec(name="gone", command="termpix-no-such-converter --flag")
        with self.assertRaises(CollaboratorUnavailable):
            run_plugin(spec, b"x")

    def test_placeholder_must_appear(self):
        with self.assertRaises(DecodeFailed):
            run_plugin(_spec("pass", placeholder="@IN@"), b"x")

    def test_placeholders_must_differ(self):
        with self.assertRaises(DecodeFailed):
            run_plugin(_spec("pass", suffix=" @X@", placeholder="@X@", output_placeholder="@X@"), b"x")


class PluginMatchTests(unittest.TestCase):
    def test_matches_extension_or_magic(self):
        spec = PluginSpec(name="heic", command="conv", extensions=(".HEIC",), magic_bytes=("zz", "0000"))
        self.assertTrue(spec.matches(b"", "heic"))
        self.assertTrue(spec.matches(b"\x00\x00\x01", "bin"))
        self.assertFalse(spec.matches(b"\x01", "png"))


if __name__ == "__main__":
    unittest.main()
