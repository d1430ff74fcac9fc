import json
import sys
import tempfile
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "core"))
sys.path.insert(0, str(ROOT / "packages" / "display_protocol"))
sys.path.insert(0, str(ROOT / "packages" / "renderer"))

from termpix_core.cache import RenderCache
from termpix_core.config import load_config
from termpix_core.diagnostics import build_doctor_payload, redact
from termpix_display.models import TerminalGeometry


class DiagnosticsTests(unittest.TestCase):
    def test_doctor_payload(self):
        cfg = load_config(Path("/tmp/nonexistent-termpix-config.json"))
        cfg.plugins = {"private": {"command": "conv", "api_token": "abc"}}
        with tempfile.TemporaryDirectory() as tmp:
            cache = RenderCache(Path(tmp))
            geometry = TerminalGeometry(columns=80, rows=24, cell_width=10, cell_height=20)
            payload = build_doctor_payload(cfg, cache, geometry)

        self.assertEqual(payload["cache"]["entries"], 0)
        self.assertEqual(payload["terminal"]["width_px"], 800)
        self.assertIn("soffice", payload["collaborators"])
        self.assertIn("pypdfium2", payload["collaborators"])
        self.assertTrue(payload["input_types"]["image"])
        self.assertEqual(payload["config"]["plugins"]["private"]["api_token"], "***REDACTED***")
        json.dumps(payload)

    def test_redact_nested(self):
        value = {"a": [{"password": "x", "keep": 1}], "auth_header": "y"}
        self.assertEqual(redact(value), {"a": [{"password": "***REDACTED***", "keep": 1}], "auth_header": "***REDACTED***"})


if __name__ == "__main__":
    unittest.main()
