"""Office documents converted to PDF with a headless LibreOffice."""

from __future__ import annotations

import hashlib
import logging
import shutil
import subprocess
import tempfile
from pathlib import Path

from .errors import CollaboratorUnavailable, DecodeFailed

OFFICE_EXTENSIONS = frozenset(
    {"doc", "docx", "odt", "rtf", "xls", "xlsx", "ods", "ppt", "pptx", "odp"}
)
SOFFICE = "soffice"

logger = logging.getLogger("termpix.renderer")


def soffice_available() -> bool:
    return shutil.which(SOFFICE) is not None


def _run_soffice(source: Path, out_dir: Path, timeout: float) -> None:
    cmd = [SOFFICE, "--headless", "--convert-to", "pdf", "--outdir", str(out_dir), str(source)]
    try:
        subprocess.run(cmd, capture_output=True, timeout=timeout, check=True)
    except FileNotFoundError as exc:
        raise CollaboratorUnavailable("LibreOffice (soffice)", "install LibreOffice and put soffice on PATH") from exc
    except subprocess.TimeoutExpired as exc:
        raise DecodeFailed(f"Office conversion timed out after {timeout:.0f}s") from exc
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or b"").decode("utf-8", "replace").strip()
        raise DecodeFailed(f"Office conversion failed: {stderr or exc}") from exc


def convert_to_pdf(
    data: bytes,
    extension: str,
    work_dir: Path | None = None,
    timeout: float = 120.0,
    reuse: bool = True,
) -> bytes:
    """Convert an office document to PDF bytes.

    With a ``work_dir`` the converted PDF is kept as ``<sha256>.pdf`` and
    reused on the next call for identical content. ``reuse=False`` drops
    any kept conversion and converts in a throwaway directory.
    """
    digest = hashlib.sha256(data).hexdigest()
    if work_dir is not None:
        cached = work_dir / f"{digest}.pdf"
        if not reuse:
            try:
                cached.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("could not drop kept conversion %s: %s", cached, exc, extra={"event": "office_cache_error"})
        elif cached.exists():
            logger.debug("office conversion reused", extra={"event": "office_cache_hit"})
            return cached.read_bytes()

    if work_dir is None or not reuse:
        with tempfile.TemporaryDirectory(prefix="termpix-office-") as tmp:
            return _convert(data, digest, extension, Path(tmp), timeout)

    work_dir.mkdir(parents=True, exist_ok=True)
    return _convert(data, digest, extension, work_dir, timeout)


def _convert(data: bytes, digest: str, extension: str, out_dir: Path, timeout: float) -> bytes:
    source = out_dir / f"{digest}.{extension or 'bin'}"
    source.write_bytes(data)
    logger.info("converting office document to PDF", extra={"event": "office_convert"})
    try:
        _run_soffice(source, out_dir, timeout)
    finally:
        source.unlink(missing_ok=True)
    pdf_path = out_dir / f"{digest}.pdf"
    if not pdf_path.exists():
        raise DecodeFailed("Office conversion produced no PDF")
    return pdf_path.read_bytes()
