"""User-configured external converters."""

from __future__ import annotations

import shlex
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from .errors import CollaboratorUnavailable, DecodeFailed
from .models import InputType

PLUGIN_OUTPUTS = (InputType.IMAGE, InputType.SVG, InputType.PDF, InputType.HTML)


@dataclass(frozen=True)
class PluginSpec:
    name: str
    command: str
    output: InputType = InputType.IMAGE
    extensions: tuple[str, ...] = ()
    magic_bytes: tuple[str, ...] = ()
    placeholder: str | None = None
    output_placeholder: str | None = None
    timeout_s: float = 120.0

    def matches(self, data: bytes, extension: str) -> bool:
        for hex_str in self.magic_bytes:
            try:
                magic = bytes.fromhex(hex_str)
            except ValueError:
                continue
            if magic and data.startswith(magic):
                return True
        return extension.lower() in {e.lower().lstrip(".") for e in self.extensions}


@dataclass
class _Invocation:
    args: list[str]
    input_path: Path | None = None
    output_path: Path | None = None
    replaced: dict[str, bool] = field(default_factory=dict)


def _build_invocation(spec: PluginSpec, tmp: Path) -> _Invocation:
    parts = shlex.split(spec.command)
    if not parts:
        raise DecodeFailed(f"Plugin '{spec.name}' command is empty")
    if spec.placeholder and spec.placeholder == spec.output_placeholder:
        raise DecodeFailed(f"Plugin '{spec.name}': input placeholder equals output placeholder")

    inv = _Invocation(args=[parts[0]])
    replacements: list[tuple[str, Path]] = []
    if spec.placeholder:
        inv.input_path = tmp / "input_tmp"
        replacements.append((spec.placeholder, inv.input_path))
    if spec.output_placeholder:
        inv.output_path = tmp / "output_tmp"
        replacements.append((spec.output_placeholder, inv.output_path))
    # Longer placeholders first so "{{}}" wins over "{}".
    replacements.sort(key=lambda item: len(item[0]), reverse=True)

    for arg in parts[1:]:
        for placeholder, path in replacements:
            if placeholder in arg:
                arg = arg.replace(placeholder, str(path))
                inv.replaced[placeholder] = True
        inv.args.append(arg)

    for placeholder, _ in replacements:
        if not inv.replaced.get(placeholder):
            raise DecodeFailed(f"Plugin '{spec.name}': placeholder {placeholder!r} not found in arguments")
    return inv


def run_plugin(spec: PluginSpec, data: bytes) -> bytes:
    """Run the plugin command and return what it produced."""
    with tempfile.TemporaryDirectory(prefix="termpix-plugin-") as tmp:
        inv = _build_invocation(spec, Path(tmp))
        if inv.input_path is not None:
            inv.input_path.write_bytes(data)
            feed = {"stdin": subprocess.DEVNULL}
        else:
            feed = {"input": data}
        try:
            result = subprocess.run(inv.args, stdout=subprocess.PIPE, timeout=spec.timeout_s, **feed)
        except FileNotFoundError as exc:
            raise CollaboratorUnavailable(f"plugin program '{inv.args[0]}'") from exc
        except subprocess.TimeoutExpired as exc:
            raise DecodeFailed(f"Plugin '{spec.name}' timed out") from exc

        if result.returncode != 0:
            raise DecodeFailed(f"Plugin '{spec.name}' exited with code {result.returncode}")
        if inv.output_path is not None:
            try:
                output = inv.output_path.read_bytes()
            except OSError as exc:
                raise DecodeFailed(f"Failed to read plugin output file: {exc}") from exc
        else:
            output = result.stdout

    if not output:
        raise DecodeFailed(f"Plugin '{spec.name}' returned no output")
    return output
