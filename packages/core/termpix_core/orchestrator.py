"""Per-file viewing pipeline with parallel page work and ordered emission."""

from __future__ import annotations

import sys
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, TextIO

from termpix_display import (
    EncodedImage,
    KittyEncoder,
    TerminalGeometry,
    TerminalTransport,
    TerminalWriteError,
    TransmissionMode,
)
from termpix_renderer import (
    DecodeFailed,
    Document,
    FitKind,
    FitPolicy,
    InputType,
    PageSelection,
    RasterPage,
    RendererGateway,
    Source,
    ViewerError,
    compute_target_size,
    prepare,
)

from .cache import CacheKey, RenderCache
from .logging_setup import get_logger

EXIT_OK = 0
EXIT_USAGE = 2
EXIT_RENDER = 3
EXIT_OUTPUT = 4


class ViewState(str, Enum):
    IDLE = "idle"
    RESOLVE_TYPE = "resolve_type"
    SELECT_PAGES = "select_pages"
    ACQUIRE_PAGES = "acquire_pages"
    EMIT = "emit"
    DONE = "done"
    FAILED = "failed"


class PageErrorPolicy(str, Enum):
    SKIP = "skip"
    ABORT = "abort"


@dataclass(frozen=True)
class ViewRequest:
    selection: PageSelection = field(default_factory=PageSelection.first_page)
    input_type: InputType = InputType.AUTO
    policy: FitPolicy = field(default_factory=FitPolicy)
    background: tuple[int, int, int, int] | None = None
    mode: TransmissionMode = TransmissionMode.PNG
    output: Path | None = None
    overwrite: bool = False
    printname: bool = False
    on_page_error: PageErrorPolicy = PageErrorPolicy.SKIP
    workers: int = 4


@dataclass
class ViewResult:
    name: str
    exit_code: int = EXIT_OK
    emitted: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    ignored: list[int] = field(default_factory=list)
    written: list[Path] = field(default_factory=list)
    error: str | None = None


def output_paths(target: Path, pages: list[int]) -> dict[int, Path]:
    """One file per page; a single page keeps the exact target name."""
    if len(pages) == 1:
        return {pages[0]: target}
    return {p: target.with_name(f"{target.stem}-{p}{target.suffix}") for p in pages}


class Orchestrator:
    def __init__(
        self,
        gateway: RendererGateway,
        cache: RenderCache,
        geometry: TerminalGeometry,
        transport: TerminalTransport | None = None,
        encoder: KittyEncoder | None = None,
        errors: TextIO | None = None,
    ) -> None:
        self.gateway = gateway
        self.cache = cache
        self.geometry = geometry
        self.transport = transport or TerminalTransport()
        self.encoder = encoder or KittyEncoder()
        self.errors = errors if errors is not None else sys.stderr
        self.state = ViewState.IDLE
        self._log = get_logger()
        self._events: list[dict[str, Any]] = []

    def recent_events(self, limit: int = 200) -> list[dict[str, Any]]:
        return self._events[-limit:]

    def _log_event(self, event: str, **fields: Any) -> None:
        row = {
            "ts_utc": datetime.now(timezone.utc).isoformat(),
            "event": event,
            "state": self.state.value,
        }
        row.update(fields)
        self._events.append(row)
        if len(self._events) > 1000:
            self._events = self._events[-1000:]
        self._log.debug("%s %s", event, fields, extra={"event": event})

    def _report(self, message: str) -> None:
        print(message, file=self.errors)

    def clear(self) -> int:
        try:
            self.transport.send_unit(KittyEncoder.delete_all())
            self.transport.flush()
        except TerminalWriteError as exc:
            self._report(f"Error: {exc}")
            return EXIT_OUTPUT
        self._log_event("clear")
        return EXIT_OK

    def run(self, sources: list[Source], request: ViewRequest) -> int:
        code = EXIT_OK
        for source in sources:
            result = self.view(source, request)
            code = max(code, result.exit_code)
        return code

    def view(self, source: Source, request: ViewRequest) -> ViewResult:
        result = ViewResult(name=source.name)
        try:
            self._view(source, request, result)
        except FileExistsError as exc:
            self._fail(result, EXIT_USAGE, str(exc))
        except TerminalWriteError as exc:
            self._fail(result, EXIT_OUTPUT, str(exc))
        except ViewerError as exc:
            self._fail(result, exc.exit_code, str(exc))
        else:
            if result.failed:
                result.exit_code = EXIT_RENDER
            self.state = ViewState.DONE
        self._log_event(
            "view_done",
            name=source.name,
            exit_code=result.exit_code,
            emitted=result.emitted,
            failed=result.failed,
        )
        return result

    def _fail(self, result: ViewResult, code: int, message: str) -> None:
        self.state = ViewState.FAILED
        result.exit_code = code
        result.error = message
        self._report(f"Error: {message}")
        self._log.error("view failed for %s: %s", result.name, message, extra={"event": "view_failed"})

    def _size_hint(self, policy: FitPolicy):
        if policy.kind == FitKind.NO_RESIZE:
            return None
        geometry = self.geometry
        return lambda w, h: compute_target_size((w, h), policy, geometry)

    def _view(self, source: Source, request: ViewRequest, result: ViewResult) -> None:
        self.state = ViewState.RESOLVE_TYPE
        document = self.gateway.open(source, request.input_type, self._size_hint(request.policy))
        with document:
            self.state = ViewState.SELECT_PAGES
            selected, ignored = request.selection.resolve(document.page_count)
            result.ignored = ignored
            if ignored:
                self._log.warning(
                    "ignoring page(s) %s beyond page count %d of %s",
                    ignored,
                    document.page_count,
                    source.name,
                    extra={"event": "pages_ignored"},
                )

            targets: dict[int, Path] = {}
            if request.output is not None:
                targets = output_paths(request.output, selected)
                if not request.overwrite:
                    for path in targets.values():
                        if path.exists():
                            raise FileExistsError(f"Output file already exists: {path} (use --overwrite)")

            if request.printname:
                self._report(source.name)

            self._log_event("pages_selected", name=source.name, pages=selected, input_type=document.input_type.value)
            self._pump(document, selected, request, targets, result)

    def _pump(
        self,
        document: Document,
        selected: list[int],
        request: ViewRequest,
        targets: dict[int, Path],
        result: ViewResult,
    ) -> None:
        self.state = ViewState.ACQUIRE_PAGES
        workers = max(1, request.workers)
        window = workers * 2
        pending: deque[tuple[int, Future[EncodedImage]]] = deque()

        stop = False
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="termpix-page") as pool:
            try:
                for number, future in self._schedule(pool, document, selected, request):
                    pending.append((number, future))
                    while len(pending) >= window:
                        stop = self._emit_next(document, pending, request, targets, result) or stop
                    if stop:
                        break
                # Pages already in flight still reach the terminal after an abort.
                while pending:
                    stop = self._emit_next(document, pending, request, targets, result) or stop
            except BaseException:
                for _, future in pending:
                    future.cancel()
                raise

    def _schedule(
        self,
        pool: ThreadPoolExecutor,
        document: Document,
        selected: list[int],
        request: ViewRequest,
    ) -> Iterator[tuple[int, Future[EncodedImage]]]:
        if document.random_access:
            for number in selected:
                yield number, pool.submit(self._process_page, document, number, request)
            return
        # Sequential documents decode here in order; a failed page keeps its slot.
        for number, outcome in self.gateway.iter_pages(document, selected):
            if isinstance(outcome, DecodeFailed):
                future: Future[EncodedImage] = Future()
                future.set_exception(outcome)
            else:
                future = pool.submit(self._finish_page, outcome, request)
            yield number, future

    def _emit_next(
        self,
        document: Document,
        pending: deque[tuple[int, Future[EncodedImage]]],
        request: ViewRequest,
        targets: dict[int, Path],
        result: ViewResult,
    ) -> bool:
        number, future = pending.popleft()
        try:
            image = future.result()
        except DecodeFailed as exc:
            return self._page_failed(document, number, exc, request, result)

        self.state = ViewState.EMIT
        if targets:
            path = self.transport.write_file(image, targets[number], overwrite=request.overwrite)
            result.written.append(path)
        else:
            self.transport.send_image(image)
        result.emitted.append(number)
        self._log_event("page_emitted", page=number, image_id=image.image_id, bytes=len(image.payload))
        return False

    def _page_failed(
        self,
        document: Document,
        number: int,
        exc: DecodeFailed,
        request: ViewRequest,
        result: ViewResult,
    ) -> bool:
        result.failed.append(number)
        self._report(f"Error rendering {document.name} page {number}: {exc}")
        self._log.warning(
            "page %d of %s failed: %s",
            number,
            document.name,
            exc,
            extra={"event": "page_failed"},
        )
        return request.on_page_error == PageErrorPolicy.ABORT

    def _cache_key(self, document: Document, number: int) -> CacheKey | None:
        if not document.cache_eligible or not document.identity:
            return None
        return CacheKey.build(document.identity, number, document.render_options)

    def acquire(self, document: Document, number: int) -> RasterPage:
        """Return a page from the cache, rendering and storing it on a miss."""
        key = self._cache_key(document, number)
        if key is None:
            return document.render_page(number)
        if not self.cache.enabled:
            self.cache.discard(key)
            return document.render_page(number)

        page = self.cache.lookup(key)
        if page is not None:
            return page
        page = document.render_page(number)
        self.cache.store(key, page)
        return page

    def _process_page(self, document: Document, number: int, request: ViewRequest) -> EncodedImage:
        try:
            page = self.acquire(document, number)
        except DecodeFailed as exc:
            if exc.page_number is None:
                exc.page_number = number
            raise
        return self._finish_page(page, request)

    def _finish_page(self, page: RasterPage, request: ViewRequest) -> EncodedImage:
        try:
            frame = prepare(page, request.policy, self.geometry, request.background)
        except (ValueError, OSError) as exc:
            raise DecodeFailed(f"Failed to prepare page: {exc}", page_number=page.page_number) from exc
        return self.encoder.encode(frame, request.mode)
