"""Diagnostics for sprite builds.

Every message has a level, a kind (with a printf-style text) and, when known,
the stylesheet and line it originates from. The engine never prints by
itself: it hands messages to a MessageLog, which forwards them to sinks.

Sinks:
- MemoryMessageSink   keeps messages in a list (tests, reports)
- LevelCounterMessageSink counts messages per level (exit status, summary)
- ConsoleMessageSink  prints through rich
"""

from __future__ import annotations

import contextlib
import enum
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from rich.console import Console


class MessageLevel(enum.IntEnum):
    INFO = 1
    # Issues that only affect the legacy-compatible raster.
    LEGACY_NOTICE = 2
    WARN = 3
    ERROR = 4
    STATUS = 5

    @classmethod
    def parse(cls, value: str) -> "MessageLevel":
        return cls[value.strip().upper().replace("-", "_")]


class MessageKind(enum.Enum):
    CANNOT_LOAD_IMAGE = "Cannot load image: %s due to: %s."
    UNSUPPORTED_INDIVIDUAL_IMAGE_FORMAT = "Unsupported format of image loaded from: %s."
    READING_IMAGE = "Reading image from %s."
    WRITING_SPRITE_IMAGE = "Writing sprite image of size %s x %s for sprite '%s' to %s."
    CANNOT_WRITE_SPRITE_IMAGE = "Cannot write sprite image: %s due to %s."
    CANNOT_ENCODE_SPRITE_IMAGE = "Cannot encode sprite image '%s' as %s due to %s."
    SKIPPING_EMPTY_SPRITE = "Sprite '%s' has no drawable images, skipping."

    ONLY_LEFT_OR_RIGHT_ALIGNMENT_ALLOWED = (
        "Only 'left', 'right', 'center' or 'repeat' alignment allowed on vertical sprites, "
        "found: %s. Using 'left'."
    )
    ONLY_TOP_OR_BOTTOM_ALIGNMENT_ALLOWED = (
        "Only 'top', 'bottom', 'center' or 'repeat' alignment allowed on horizontal sprites, "
        "found: %s. Using 'top'."
    )
    UNSUPPORTED_ALIGNMENT = "Unsupported alignment: %s. Supported alignments are: %s."
    IGNORING_NEGATIVE_MARGIN_VALUE = "Values of %s must not be negative, using 0."
    CANNOT_PARSE_MARGIN_VALUE = "Cannot parse margin value: %s."

    IMAGE_FRACTIONAL_SCALE_VALUE = (
        "Image '%s' scaled to a fractional size: %s x %s. The image may look blurry."
    )
    FRACTIONAL_SCALE_VALUE = (
        "Sprite '%s' scaled to a fractional size: %s x %s. The sprite may look blurry."
    )

    TOO_MANY_COLORS_FOR_INDEXED_COLOR = (
        "Sprite '%s' requires %d colors, but the maximum for indexed color mode is %d. "
        "Image quality will be degraded."
    )
    ALPHA_CHANNEL_LOSS_IN_INDEXED_COLOR = (
        "Alpha channel of sprite '%s' cannot be encoded in indexed color mode. "
        "Image quality will be degraded."
    )
    USING_WHITE_MATTE_COLOR_AS_DEFAULT = (
        "Defaulting to white matte color to render partial transparencies of sprite '%s'."
    )
    IGNORING_MATTE_COLOR_NO_PARTIAL_TRANSPARENCY = (
        "Ignoring sprite-matte-color on sprite '%s' because the sprite image does not "
        "contain partially transparent areas."
    )
    IGNORING_MATTE_COLOR_NO_SUPPORT = (
        "Ignoring sprite-matte-color on sprite '%s' because its output format does not "
        "require matting or does not support transparency."
    )

    SPRITE_ID_NOT_FOUND = "'sprite' property is required."
    SPRITE_IMAGE_URL_NOT_FOUND = "'sprite-image' property is required."
    SPRITE_REF_NOT_FOUND = "'sprite-ref' property is required."
    IMAGE_PATH_NOT_FOUND = "'image' property is required."
    REFERENCED_SPRITE_NOT_FOUND = "Referenced sprite: %s not found."
    IGNORING_SPRITE_IMAGE_REDEFINITION = "Ignoring sprite image redefinition of '%s'."
    UNSUPPORTED_PROPERTIES_FOUND = "Unsupported properties found: %s."
    UNSUPPORTED_LAYOUT = "Unsupported layout: %s. Supported layouts are: %s."
    UNSUPPORTED_SPRITE_IMAGE_FORMAT = "Format of image: %s is not supported. Supported formats are: %s."
    CANNOT_DETERMINE_IMAGE_FORMAT = "Cannot determine image format from file name: %s."
    UNSUPPORTED_LEGACY_MODE = "Unsupported legacy mode: %s. Supported legacy modes are: %s."
    IGNORING_LEGACY_MODE = "The sprite-legacy-mode applies only to PNG sprites. Ignoring for a %s sprite."
    UNSUPPORTED_UID_TYPE = "Unsupported uid type: %s. Supported uid types are: %s."
    UNSUPPORTED_VARIABLE_IN_SPRITE_IMAGE_PATH = "Unsupported variable in sprite image path: %s."
    MALFORMED_COLOR = "Malformed color: %s."
    MALFORMED_SCALE = "Malformed scale ratio: %s, using 1.0."

    PROCESSING_COMPLETED = "Sprite processing completed in %d ms."
    PROCESSING_COMPLETED_WITH_WARNINGS = "Sprite processing completed in %d ms with %d warning(s)."

    def format(self, arguments: Tuple) -> str:
        if not arguments:
            return self.value
        return self.value % arguments


@dataclass(frozen=True)
class Message:
    level: MessageLevel
    kind: MessageKind
    arguments: Tuple = ()
    source: Optional[str] = None
    line: Optional[int] = None

    @property
    def text(self) -> str:
        return self.kind.format(self.arguments)

    def __str__(self) -> str:
        out = f"{self.level.name}: {self.text}"
        if self.source is not None:
            out += f" ({self.source}"
            if self.line is not None:
                out += f", line: {self.line}"
            out += ")"
        return out


class MessageSink:
    def add(self, message: Message) -> None:
        raise NotImplementedError


@dataclass
class MemoryMessageSink(MessageSink):
    messages: List[Message] = field(default_factory=list)

    def add(self, message: Message) -> None:
        self.messages.append(message)

    def of_kind(self, kind: MessageKind) -> List[Message]:
        return [m for m in self.messages if m.kind is kind]

    def of_level(self, level: MessageLevel) -> List[Message]:
        return [m for m in self.messages if m.level is level]


@dataclass
class LevelCounterMessageSink(MessageSink):
    counts: Dict[MessageLevel, int] = field(default_factory=dict)

    def add(self, message: Message) -> None:
        self.counts[message.level] = self.counts.get(message.level, 0) + 1

    def count(self, level: MessageLevel) -> int:
        return self.counts.get(level, 0)


_LEVEL_STYLES = {
    MessageLevel.INFO: "dim",
    MessageLevel.LEGACY_NOTICE: "cyan",
    MessageLevel.WARN: "yellow",
    MessageLevel.ERROR: "red",
    MessageLevel.STATUS: "green",
}


class ConsoleMessageSink(MessageSink):
    """Prints messages at or above ``min_level``."""

    def __init__(self, console: Optional[Console] = None, min_level: MessageLevel = MessageLevel.INFO):
        self.console = console or Console(stderr=True)
        self.min_level = min_level

    def add(self, message: Message) -> None:
        if message.level < self.min_level:
            return
        style = _LEVEL_STYLES[message.level]
        # markup off: paths and css text may contain square brackets
        self.console.print(str(message), style=style, markup=False, highlight=False)


class MessageLog:
    """Fans messages out to sinks, stamping the current source location."""

    def __init__(self, *sinks: MessageSink):
        self.sinks: List[MessageSink] = list(sinks)
        self._source: Optional[str] = None
        self._line: Optional[int] = None

    def add_sink(self, sink: MessageSink) -> None:
        self.sinks.append(sink)

    @contextlib.contextmanager
    def located(self, source: Optional[str], line: Optional[int] = None) -> Iterator["MessageLog"]:
        previous = (self._source, self._line)
        self._source, self._line = source, line
        try:
            yield self
        finally:
            self._source, self._line = previous

    def log(self, level: MessageLevel, kind: MessageKind, *arguments) -> None:
        message = Message(level, kind, tuple(arguments), self._source, self._line)
        for sink in self.sinks:
            sink.add(message)

    def info(self, kind: MessageKind, *arguments) -> None:
        self.log(MessageLevel.INFO, kind, *arguments)

    def notice(self, kind: MessageKind, *arguments) -> None:
        self.log(MessageLevel.LEGACY_NOTICE, kind, *arguments)

    def warning(self, kind: MessageKind, *arguments) -> None:
        self.log(MessageLevel.WARN, kind, *arguments)

    def error(self, kind: MessageKind, *arguments) -> None:
        self.log(MessageLevel.ERROR, kind, *arguments)

    def status(self, kind: MessageKind, *arguments) -> None:
        self.log(MessageLevel.STATUS, kind, *arguments)
