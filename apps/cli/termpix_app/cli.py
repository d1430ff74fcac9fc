"""Command-line entrypoint for viewing images and documents in the terminal."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from importlib import metadata
from pathlib import Path

from termpix_core import (
    EXIT_OK,
    EXIT_OUTPUT,
    EXIT_USAGE,
    AppConfig,
    Orchestrator,
    PageErrorPolicy,
    RenderCache,
    ViewRequest,
    build_doctor_payload,
    cache_dir,
    config_path,
    configure_logging,
    get_logger,
    load_config,
    save_config,
)
from termpix_display import (
    StreamReplay,
    TerminalTransport,
    TransmissionMode,
    is_interactive,
    query_geometry,
)
from termpix_renderer import (
    FitKind,
    FitPolicy,
    InputType,
    PageSelection,
    RendererGateway,
    Source,
    parse_color,
    parse_pages,
)
from termpix_renderer.documents import URL_PREFIXES


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, sort_keys=True, default=str))


def _error(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)


def _installed_version() -> str:
    try:
        return metadata.version("termpix")
    except metadata.PackageNotFoundError:
        return "0.1.0"


def cmd_config_path(_args: argparse.Namespace) -> int:
    path = config_path()
    if not path.exists():
        save_config(AppConfig(), path)
    print(path)
    return EXIT_OK


def cmd_doctor(args: argparse.Namespace, cfg: AppConfig) -> int:
    cache = RenderCache(cache_dir(cfg), enabled=cfg.cache.enabled and not args.no_cache)
    _print_json(build_doctor_payload(cfg, cache, _geometry(cfg)))
    return EXIT_OK


def cmd_replay(args: argparse.Namespace) -> int:
    try:
        report = StreamReplay().run_file(Path(args.replay))
    except OSError as exc:
        _error(f"Failed to read capture: {exc}")
        return EXIT_USAGE
    payload = asdict(report)
    for image in payload["images"]:
        image.pop("chunks", None)
    payload["success"] = not report.errors
    _print_json(payload)
    return EXIT_OK if not report.errors else EXIT_USAGE


def _geometry(cfg: AppConfig):
    return query_geometry(
        fallback_cell_width=cfg.terminal.fallback_cell_width,
        fallback_cell_height=cfg.terminal.fallback_cell_height,
        reserved_rows=cfg.terminal.reserved_rows,
    )


def fit_policy(args: argparse.Namespace, cfg: AppConfig) -> FitPolicy:
    if args.width or args.height:
        return FitPolicy.explicit(width=args.width, height=args.height)
    if args.fit:
        return FitPolicy(kind=FitKind(args.fit))
    return FitPolicy(kind=FitKind(cfg.display.fit))


def page_selection(args: argparse.Namespace) -> PageSelection:
    if args.all:
        return PageSelection.every_page()
    if args.pages is None:
        return PageSelection.first_page()
    return parse_pages(args.pages)


def background(args: argparse.Namespace, cfg: AppConfig) -> tuple[int, int, int, int] | None:
    if not (args.background or args.color or cfg.display.background):
        return None
    return parse_color(args.color or cfg.display.background_color)


def collect_sources(args: argparse.Namespace) -> tuple[list[Source], int]:
    sources: list[Source] = []
    code = EXIT_OK
    for raw in args.files:
        if raw == "-":
            sources.append(Source.from_bytes(sys.stdin.buffer.read()))
            continue
        if raw.startswith(URL_PREFIXES):
            sources.append(Source(name=raw, url=raw))
            continue
        path = Path(raw).expanduser()
        if not path.exists():
            _error(f"No such file: {raw}")
            code = EXIT_USAGE
            continue
        sources.append(Source.from_path(path))
    if not args.files and not args.tty and not is_interactive(sys.stdin):
        sources.append(Source.from_bytes(sys.stdin.buffer.read()))
    return sources, code


def build_request(args: argparse.Namespace, cfg: AppConfig) -> ViewRequest:
    return ViewRequest(
        selection=page_selection(args),
        input_type=InputType(args.input),
        policy=fit_policy(args, cfg),
        background=background(args, cfg),
        mode=TransmissionMode(args.mode or cfg.display.mode),
        output=Path(args.output).expanduser() if args.output else None,
        overwrite=args.overwrite,
        printname=args.printname,
        on_page_error=PageErrorPolicy(cfg.pipeline.on_page_error),
        workers=cfg.pipeline.workers,
    )


def cmd_view(args: argparse.Namespace, cfg: AppConfig) -> int:
    log = get_logger()
    geometry = _geometry(cfg)
    cache = RenderCache(cache_dir(cfg), enabled=cfg.cache.enabled and not args.no_cache)
    gateway = RendererGateway(
        cfg.render_options(language=args.language),
        plugins=cfg.plugin_specs(),
        work_dir=cache.directory / "office",
        reuse_conversions=cache.enabled,
    )
    orchestrator = Orchestrator(
        gateway,
        cache,
        geometry,
        transport=TerminalTransport(newline=not args.no_newline),
    )

    if args.clear:
        return orchestrator.clear()

    try:
        request = build_request(args, cfg)
    except ValueError as exc:
        _error(str(exc))
        return EXIT_USAGE

    sources, code = collect_sources(args)
    if not sources:
        if code == EXIT_OK:
            _error("No input files given and nothing piped on stdin")
            code = EXIT_USAGE
        return code

    if request.output is None and not args.tty and not is_interactive(sys.stdout):
        _error("Output is not a terminal; use --tty to force or --output to write a file")
        return EXIT_OUTPUT

    log.info(
        "viewing %d source(s) mode=%s fit=%s pages=%s",
        len(sources),
        request.mode.value,
        request.policy.kind.value,
        request.selection.describe(),
        extra={"event": "view_start"},
    )
    return max(code, orchestrator.run(sources, request))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="termpix", description="Display images and documents in the terminal")
    parser.add_argument("files", nargs="*", help="Files or URLs to display; '-' reads stdin")

    size = parser.add_argument_group("size")
    size.add_argument("-w", "--width", type=int, default=None, help="Target width in pixels")
    size.add_argument("-H", "--height", type=int, default=None, help="Target height in pixels")
    fit = size.add_mutually_exclusive_group()
    fit.add_argument("-f", "--fullwidth", dest="fit", action="store_const", const="fullwidth", help="Fit to terminal width")
    fit.add_argument("-F", "--fullheight", dest="fit", action="store_const", const="fullheight", help="Fit to terminal height")
    fit.add_argument("-r", "--resize", dest="fit", action="store_const", const="resize", help="Fit inside the terminal")
    fit.add_argument("-n", "--noresize", dest="fit", action="store_const", const="noresize", help="Keep source resolution")

    source = parser.add_argument_group("input")
    source.add_argument(
        "-i",
        "--input",
        default=InputType.AUTO.value,
        choices=[t.value for t in InputType],
        help="Override input type detection",
    )
    pages = source.add_mutually_exclusive_group()
    pages.add_argument("-P", "--pages", default=None, help="Page selector such as 1-3,5")
    pages.add_argument("-a", "--all", action="store_true", help="Show every page")
    source.add_argument("-l", "--language", default=None, help="Language for syntax highlighting of text input")

    out = parser.add_argument_group("output")
    out.add_argument("-b", "--background", action="store_true", help="Composite transparent images over a color")
    out.add_argument("-C", "--color", default=None, help="Background color as RRGGBB")
    out.add_argument("-m", "--mode", default=None, choices=[m.value for m in TransmissionMode], help="Transmission mode")
    out.add_argument("-o", "--output", default=None, help="Write the encoded image to a file instead")
    out.add_argument("--overwrite", action="store_true", help="Replace existing output files")
    out.add_argument("-p", "--printname", action="store_true", help="Print the file name before each image")
    out.add_argument("--no-newline", action="store_true", help="Do not print a newline after each image")
    out.add_argument("-t", "--tty", action="store_true", help="Ignore stdin/stdout terminal checks")
    out.add_argument("-c", "--clear", "--remove", dest="clear", action="store_true", help="Remove all images")

    misc = parser.add_argument_group("misc")
    misc.add_argument("--no-cache", action="store_true", help="Bypass and drop cached renders")
    misc.add_argument("--config-path", action="store_true", help="Print the settings file path")
    misc.add_argument("--doctor", action="store_true", help="Print diagnostics as JSON")
    misc.add_argument("--replay", default=None, metavar="CAPTURE", help="Check a captured escape stream")
    misc.add_argument("--verbose", action="store_true", help="Log to stderr")
    misc.add_argument("--version", action="version", version=f"%(prog)s {_installed_version()}")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(console=args.verbose)

    for value in (args.width, args.height):
        if value is not None and value < 1:
            parser.error("width and height must be >= 1")
    if (args.width is not None or args.height is not None) and args.fit:
        parser.error("-w/--width and -H/--height cannot be combined with -f, -F, -r or -n")

    if args.config_path:
        return cmd_config_path(args)
    if args.replay:
        return cmd_replay(args)

    cfg = load_config()
    if args.doctor:
        return cmd_doctor(args, cfg)
    return cmd_view(args, cfg)


if __name__ == "__main__":
    raise SystemExit(main())
