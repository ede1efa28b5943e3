"""Resolves the sprite-image path template of a sprite.

Supported variables:
    ${sprite}  sprite id
    ${md5}     MD5 of the encoded sprite image
    ${date}    timestamp of the current build batch

Examples:
    ../img/${sprite}.png          -> ../img/mysprite.png
    ../img/${sprite}-${md5}.png   -> ../img/mysprite-3f2a....png
    ../img/sprite.png  (uid md5)  -> ../img/sprite.png?3f2a...

The legacy raster is written next to the primary one with a "-legacy" suffix
on the file name: ../img/sprite.png?x -> ../img/sprite-legacy.png?x
"""

from __future__ import annotations

import hashlib
import re
import time
from typing import List

from sprite_model import SpriteDeclaration, UidType

LEGACY_SUFFIX = "-legacy"
SPRITE_VARIABLE = "${sprite}"
MD5_VARIABLE = "${md5}"
DATE_VARIABLE = "${date}"
ALLOWED_VARIABLES = ("sprite", "md5", "date")

_VARIABLE_RE = re.compile(r"\$\{([a-z]*)\}")


def make_timestamp() -> str:
    """Milliseconds since the epoch, shared by all sprites of one batch."""
    return str(int(time.time() * 1000))


def unsupported_variables(path: str) -> List[str]:
    return [name for name in _VARIABLE_RE.findall(path) if name not in ALLOWED_VARIABLES]


def compute_md5(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


def add_legacy_suffix(path: str) -> str:
    slash = path.rfind("/")
    head, name = path[:slash + 1], path[slash + 1:]

    query_at = name.find("?")
    dot = name.rfind(".", 0, query_at if query_at >= 0 else len(name))
    if dot >= 0:
        return head + name[:dot] + LEGACY_SUFFIX + name[dot:]
    if query_at >= 0:
        return head + name[:query_at] + LEGACY_SUFFIX + name[query_at:]
    return head + name + LEGACY_SUFFIX


def strip_query(path: str) -> str:
    query_at = path.find("?")
    return path if query_at < 0 else path[:query_at]


def resolve_image_path(declaration: SpriteDeclaration, image_bytes: bytes,
                       timestamp: str, legacy: bool = False) -> str:
    """Returns the path the sprite is referenced by, query string included."""
    path = declaration.image_path

    if (declaration.uid_type is not UidType.NONE
            and MD5_VARIABLE not in path and DATE_VARIABLE not in path):
        path += f"?${{{declaration.uid_type}}}"

    if MD5_VARIABLE in path:
        path = path.replace(MD5_VARIABLE, compute_md5(image_bytes))
    path = path.replace(DATE_VARIABLE, timestamp)
    path = path.replace(SPRITE_VARIABLE, declaration.sprite_id)

    if legacy:
        path = add_legacy_suffix(path)
    return path
