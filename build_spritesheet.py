#!/usr/bin/env python3
"""
Build CSS sprite images from a sprite manifest.

- Reads sprite declarations and image references from a JSON manifest
  (see sprite_manifest.py for the format)
- Stacks the images of each sprite vertically or horizontally, honoring
  alignment, margins and repeat
- Draws identical images once
- Writes each sprite as PNG, GIF or JPG, as indexed color when that loses
  nothing, plus an optional "-legacy" raster for renderers without alpha
- Writes a JSON report with the background-position of every reference

Usage:
    python build_spritesheet.py sprites.json
    python build_spritesheet.py sprites.json --root web --output-dir build/web
    python build_spritesheet.py sprites.json --depth indexed --legacy
    python build_spritesheet.py sprites.json --document-root web --report out/sprites.json
"""

from __future__ import annotations

import argparse
import io
import json
import posixpath
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from PIL import Image, UnidentifiedImageError
from rich.console import Console
from rich.table import Table
from tqdm import tqdm

from color_reduction import ColorReducer
from sprite_layout import get_layout
from sprite_manifest import SpriteManifest, load_manifest
from sprite_messages import (
    ConsoleMessageSink,
    LevelCounterMessageSink,
    MessageKind,
    MessageLevel,
    MessageLog,
)
from sprite_model import (
    CompositeArtifact,
    DepthPolicy,
    PixelFormat,
    PlacementRequest,
    PlacementResult,
    SpriteDeclaration,
    SpriteReference,
)
from sprite_parameters import DEFAULT_REPORT_NAME, BuildParameters
from sprite_paths import make_timestamp, resolve_image_path, strip_query
from sprite_resources import FileSystemResourceHandler, ResourceHandler, change_root

console = Console()

PIL_FORMATS = {
    PixelFormat.PNG: "PNG",
    PixelFormat.GIF: "GIF",
    PixelFormat.JPG: "JPEG",
}
JPEG_QUALITY = 95


class SpriteWriteError(RuntimeError):
    """A sprite image could not be encoded or written."""


def encode_image(image: Image.Image, pixel_format: PixelFormat) -> bytes:
    buffer = io.BytesIO()
    if pixel_format is PixelFormat.JPG:
        image.convert("RGB").save(buffer, "JPEG", quality=JPEG_QUALITY)
    else:
        image.save(buffer, PIL_FORMATS[pixel_format])
    return buffer.getvalue()


class SpriteBuilder:
    """Builds and writes every sprite of a manifest.

    One instance may run several batches; all sprites of one build_all()
    call share the same ${date} timestamp.
    """

    def __init__(self, parameters: BuildParameters, log: MessageLog,
                 resources: Optional[ResourceHandler] = None, progress: bool = False):
        self.parameters = parameters
        self.log = log
        self.resources = resources or FileSystemResourceHandler(
            parameters.root_dir, parameters.document_root_dir)
        self.reducer = ColorReducer(parameters, log)
        self.progress = progress
        self.counter = LevelCounterMessageSink()
        self.log.add_sink(self.counter)
        self.artifacts: Dict[str, CompositeArtifact] = {}

    # ---- decoding -----------------------------------------------------------

    def load_image(self, reference: SpriteReference) -> Optional[Image.Image]:
        """Decodes the image a reference points at, or warns and returns None."""
        try:
            path = self.resources.resolve_path(reference.source or "", reference.image_path)
        except ValueError as e:
            self.log.warning(MessageKind.CANNOT_LOAD_IMAGE, reference.image_path, str(e))
            return None

        try:
            handle = self.resources.open_input(path)
        except OSError as e:
            self.log.warning(MessageKind.CANNOT_LOAD_IMAGE, path, e.strerror or str(e))
            return None

        self.log.info(MessageKind.READING_IMAGE, path)
        with handle:
            try:
                with Image.open(handle) as im:
                    return im.convert("RGBA")
            except UnidentifiedImageError:
                self.log.warning(MessageKind.UNSUPPORTED_INDIVIDUAL_IMAGE_FORMAT, path)
            except (OSError, Image.DecompressionBombError) as e:
                self.log.warning(MessageKind.CANNOT_LOAD_IMAGE, path, str(e))
        return None

    def load_requests(self, references: List[SpriteReference]) -> List[PlacementRequest]:
        requests = []
        for reference in references:
            with self.log.located(reference.source, reference.line):
                image = self.load_image(reference)
            if image is not None:
                requests.append(PlacementRequest.from_reference(reference, image))
        return requests

    # ---- writing ------------------------------------------------------------

    def image_file(self, stylesheet: str, image_path: str) -> str:
        """Where a resolved sprite path (no query string) is written."""
        path = self.resources.resolve_path(stylesheet, image_path)
        if not image_path.startswith("/") and self.parameters.has_output_dir:
            return change_root(path, ".", self.parameters.output_dir.as_posix())
        return path

    def encode_sprite(self, artifact: CompositeArtifact, image: Image.Image,
                      timestamp: str, legacy: bool = False) -> Tuple[str, bytes]:
        """Encodes a raster and resolves its path. Returns the file to write and its bytes."""
        declaration = artifact.declaration
        try:
            data = encode_image(image, declaration.format)
        except (OSError, ValueError, KeyError) as e:
            self.log.error(MessageKind.CANNOT_ENCODE_SPRITE_IMAGE, declaration.sprite_id,
                           str(declaration.format), str(e))
            raise SpriteWriteError(f"Cannot encode sprite '{declaration.sprite_id}': {e}") from e

        resolved = resolve_image_path(declaration, data, timestamp, legacy)
        if legacy:
            artifact.resolved_legacy_path = resolved
        else:
            artifact.resolved_path = resolved

        try:
            file = self.image_file(declaration.source or "", strip_query(resolved))
        except ValueError as e:
            self.log.error(MessageKind.CANNOT_WRITE_SPRITE_IMAGE, resolved, str(e))
            raise SpriteWriteError(f"Cannot write sprite image {resolved}: {e}") from e
        return file, data

    def write_sprite(self, artifact: CompositeArtifact, image: Image.Image, file: str, data: bytes) -> str:
        self.log.info(MessageKind.WRITING_SPRITE_IMAGE, image.width, image.height,
                      artifact.declaration.sprite_id, file)
        try:
            with self.resources.open_output(file) as out:
                out.write(data)
        except OSError as e:
            self.log.error(MessageKind.CANNOT_WRITE_SPRITE_IMAGE, file, e.strerror or str(e))
            raise SpriteWriteError(f"Cannot write sprite image {file}: {e}") from e
        return file

    # ---- building -----------------------------------------------------------

    def build_sprite(self, declaration: SpriteDeclaration, references: List[SpriteReference],
                     timestamp: str) -> Optional[CompositeArtifact]:
        """Lays out, reduces and writes one sprite. Returns None if nothing was drawn."""
        requests = self.load_requests(references)
        layout = get_layout(declaration.layout)
        artifact = layout.build_composite(declaration, requests, self.log)
        if artifact is None:
            with self.log.located(declaration.source, declaration.line):
                self.log.info(MessageKind.SKIPPING_EMPTY_SPRITE, declaration.sprite_id)
            return None

        with self.log.located(declaration.source, declaration.line):
            primary, legacy = self.reducer.render(artifact)
            outputs = [(primary, self.encode_sprite(artifact, primary, timestamp))]
            if legacy is not None:
                outputs.append((legacy, self.encode_sprite(artifact, legacy, timestamp, legacy=True)))
            for image, (file, data) in outputs:
                self.write_sprite(artifact, image, file, data)
        return artifact

    def build_all(self, manifest: SpriteManifest) -> Dict[str, List[PlacementResult]]:
        """Builds every referenced sprite; results are grouped by stylesheet."""
        start = time.monotonic()
        timestamp = make_timestamp()
        warnings_before = self.counter.count(MessageLevel.WARN)

        by_sprite = manifest.references_by_sprite()
        sprite_ids = [sprite_id for sprite_id in manifest.declarations if sprite_id in by_sprite]

        results: Dict[str, List[PlacementResult]] = {}
        for sprite_id in tqdm(sprite_ids, desc="Building sprites", disable=not self.progress):
            declaration = manifest.declarations[sprite_id]
            artifact = self.build_sprite(declaration, by_sprite[sprite_id], timestamp)
            if artifact is None:
                continue
            self.artifacts[sprite_id] = artifact
            for request, result in artifact.results.items():
                results.setdefault(request.source or "", []).append(result)

        elapsed = int((time.monotonic() - start) * 1000)
        warnings = self.counter.count(MessageLevel.WARN) - warnings_before
        if warnings:
            self.log.status(MessageKind.PROCESSING_COMPLETED_WITH_WARNINGS, elapsed, warnings)
        else:
            self.log.status(MessageKind.PROCESSING_COMPLETED, elapsed)
        return results

    # ---- reporting ----------------------------------------------------------

    def image_url(self, artifact: CompositeArtifact, stylesheet: str, legacy: bool = False) -> str:
        """Sprite image path as it should be written in ``stylesheet``."""
        resolved = artifact.resolved_legacy_path if legacy else artifact.resolved_path
        declaring = artifact.declaration.source or ""
        if resolved is None or resolved.startswith("/") or stylesheet == declaring:
            return resolved

        query_at = resolved.find("?")
        query = resolved[query_at:] if query_at >= 0 else ""
        target = self.resources.resolve_path(declaring, strip_query(resolved))
        return posixpath.relpath(target, posixpath.dirname(stylesheet) or ".") + query

    def report(self, results: Dict[str, List[PlacementResult]]) -> dict:
        sprites = {}
        for sprite_id, artifact in self.artifacts.items():
            entry = {
                "image": artifact.resolved_path,
                "layout": artifact.declaration.layout,
                "format": str(artifact.declaration.format),
                "width": artifact.width,
                "height": artifact.height,
                "images": len(artifact.results),
            }
            if artifact.scale_ratio != 1.0:
                entry["backgroundSize"] = "{}px {}px".format(*artifact.scaled_size)
            if artifact.has_legacy:
                entry["legacyImage"] = artifact.resolved_legacy_path
            sprites[sprite_id] = entry

        stylesheets = {}
        for stylesheet, placements in results.items():
            rows = []
            for result in placements:
                request = result.request
                artifact = self.artifacts[request.sprite_id]
                row = {
                    "line": request.line,
                    "sprite": request.sprite_id,
                    "image": request.image_path,
                    "spriteImage": self.image_url(artifact, stylesheet),
                    "backgroundPosition": result.background_position,
                }
                if artifact.has_legacy:
                    row["legacySpriteImage"] = self.image_url(artifact, stylesheet, legacy=True)
                rows.append(row)
            stylesheets[stylesheet] = rows
        return {"sprites": sprites, "stylesheets": stylesheets}


def print_summary(builder: SpriteBuilder):
    table = Table(title="Sprites")
    table.add_column("Sprite")
    table.add_column("Layout")
    table.add_column("Size", justify="right")
    table.add_column("Images", justify="right")
    table.add_column("Format")
    table.add_column("File")
    for sprite_id, artifact in builder.artifacts.items():
        file_name = artifact.resolved_path or "-"
        if artifact.has_legacy:
            file_name += f" (+ {artifact.resolved_legacy_path})"
        table.add_row(
            sprite_id,
            artifact.declaration.layout,
            f"{artifact.width}x{artifact.height}",
            str(len(artifact.results)),
            str(artifact.declaration.format),
            file_name,
        )
    console.print(table)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Build CSS sprite images from a JSON sprite manifest."
    )
    parser.add_argument("manifest", help="Sprite manifest (JSON).")
    parser.add_argument(
        "--root",
        default=None,
        help="Directory stylesheet paths in the manifest are relative to. "
             "Default: the manifest's directory.",
    )
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Write sprite images here, mirroring their place under --root. "
             "Default: next to the stylesheets.",
    )
    parser.add_argument(
        "--document-root",
        default=None,
        help="Directory that image paths starting with '/' are relative to.",
    )
    parser.add_argument(
        "--depth",
        choices=[d.value for d in DepthPolicy],
        default=DepthPolicy.AUTO.value,
        help="PNG color depth: auto (indexed when lossless), indexed or direct (default: auto).",
    )
    parser.add_argument(
        "--legacy",
        action="store_true",
        help="Also write a '-legacy' indexed raster for truecolor PNG sprites with transparency.",
    )
    parser.add_argument(
        "--log-level",
        choices=[level.name.lower() for level in MessageLevel],
        default="info",
        help="Lowest message level to print (default: info).",
    )
    parser.add_argument(
        "--report",
        default=None,
        help=f"Where to write the JSON placement report. Default: {DEFAULT_REPORT_NAME} "
             "in the output directory or next to the manifest.",
    )
    args = parser.parse_args(argv)

    manifest_path = Path(args.manifest)
    if not manifest_path.exists():
        console.print(f"[red]Manifest not found: {manifest_path}[/red]")
        return 1

    root_dir = Path(args.root) if args.root else manifest_path.parent
    parameters = BuildParameters(
        root_dir=root_dir,
        output_dir=Path(args.output_dir).resolve() if args.output_dir else None,
        document_root_dir=Path(args.document_root).resolve() if args.document_root else None,
        depth=DepthPolicy.parse(args.depth),
        legacy_raster=args.legacy,
        log_level=MessageLevel.parse(args.log_level),
    )

    log = MessageLog(ConsoleMessageSink(min_level=parameters.log_level))
    builder = SpriteBuilder(parameters, log, progress=True)
    try:
        manifest = load_manifest(manifest_path, log)
        results = builder.build_all(manifest)
    except SpriteWriteError as e:
        console.print(f"[red]{e}[/red]")
        return 1

    if not builder.artifacts:
        console.print("[yellow]No sprites were built.[/yellow]")
    else:
        print_summary(builder)

    if args.report:
        report_path = Path(args.report)
    else:
        report_path = (parameters.output_dir or manifest_path.parent) / DEFAULT_REPORT_NAME
    report_path.parent.mkdir(parents=True, exist_ok=True)
    with open(report_path, "w") as f:
        json.dump(builder.report(results), f, indent=2)
    console.print(f"[green]Saved report:[/green] {report_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
