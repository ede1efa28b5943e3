"""Build-wide settings, filled from the command line or by callers."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from sprite_messages import MessageLevel
from sprite_model import DepthPolicy

DEFAULT_DEPTH = DepthPolicy.AUTO
DEFAULT_LEGACY_RASTER = False
DEFAULT_LOG_LEVEL = MessageLevel.INFO
DEFAULT_REPORT_NAME = "sprites.report.json"


@dataclass
class BuildParameters:
    # Directory the manifest's stylesheet paths are relative to.
    root_dir: Path = Path(".")
    # Where sprite images go; None writes them next to their stylesheets.
    output_dir: Optional[Path] = None
    # Directory that image paths starting with '/' resolve against.
    document_root_dir: Optional[Path] = None
    depth: DepthPolicy = DEFAULT_DEPTH
    legacy_raster: bool = DEFAULT_LEGACY_RASTER
    log_level: MessageLevel = DEFAULT_LOG_LEVEL

    def __post_init__(self):
        self.root_dir = Path(self.root_dir)
        if self.output_dir is not None:
            self.output_dir = Path(self.output_dir)
        if self.document_root_dir is not None:
            self.document_root_dir = Path(self.document_root_dir)

    @property
    def has_output_dir(self) -> bool:
        return self.output_dir is not None
