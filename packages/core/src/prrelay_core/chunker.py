"""Split a unified diff into bounded-size chunks without breaking hunks apart.

A diff is first cut into *segments*. A file segment is a file header plus the
file's first hunk; every further hunk of that file is a hunk segment of its
own. Segments are then packed greedily into chunks of at most
``max_chunk_size`` characters. A segment is never split, so a single segment
larger than the limit becomes its own oversized chunk.

Keeping a header together with its first hunk means a chunk never ends on a
bare file header: a file is listed only by chunks that carry at least one of
its hunks, or its header when the file has no hunks at all (pure renames,
binary files, mode changes). Hunk segments remember the file they belong to,
so every chunk holding a piece of a file lists that file.

Paths are read from the header with ``unidiff``. When unidiff cannot make
sense of a header, the path is taken from the ``diff --git``/``diff --cc``
line instead.

Empty input (``None``, ``""`` or whitespace only) yields ``[EMPTY_CHUNK]``,
a single sentinel chunk with no content, no files and size 0. Callers check
``chunk.is_empty`` to tell "nothing to review" apart from a real chunk.

Nothing in this module raises on malformed diff text: lines that cannot be
classified simply stay with the segment they appear in.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from unidiff import PatchSet
from unidiff.constants import DEV_NULL
from unidiff.errors import UnidiffParseError

from prrelay_core.models import EMPTY_CHUNK, DiffChunk

logger = logging.getLogger(__name__)

_HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
_LINE_RE = re.compile(r"[^\n]*\n|[^\n]+")

_GIT_HEADER_PREFIXES = ("diff --git ", "diff --cc ", "diff --combined ")

FILE = "file"
HUNK = "hunk"
LEADING = "leading"


@dataclass(frozen=True)
class Segment:
    """A header line and the lines that follow it, up to the next boundary."""

    text: str
    kind: str
    file: str | None = None

    @property
    def size(self) -> int:
        return len(self.text)


class _SegmentBuilder:
    """Collects lines for the segment currently being parsed."""

    def __init__(self, kind: str, file: str | None = None):
        self.kind = kind
        self.file = file
        self.lines: list[str] = []
        self.header_end: int | None = None
        self.has_old_marker = False

    @property
    def has_hunk(self) -> bool:
        return self.header_end is not None

    def build(self) -> Segment:
        file = self.file
        if self.kind == FILE and file is None:
            header = self.lines if self.header_end is None else self.lines[: self.header_end]
            file = header_path("".join(header))
        return Segment(text="".join(self.lines), kind=self.kind, file=file)


def _unquote(path: str) -> str:
    """Decode a C-style quoted path as git writes it (``"a/caf\\303\\251"``)."""
    if len(path) < 2 or path[0] != '"' or path[-1] != '"':
        return path
    body = path[1:-1]
    try:
        return body.encode("latin-1", "backslashreplace").decode("unicode_escape").encode("latin-1").decode("utf-8")
    except UnicodeError:
        return body


def _strip_side(path: str) -> str | None:
    if path[:2] in ("a/", "b/"):
        path = path[2:]
    return path or None


def _git_line_path(header: str) -> str | None:
    """Read the path from the first header line when unidiff cannot."""
    first = header.split("\n", 1)[0].rstrip("\r")
    for prefix in ("diff --cc ", "diff --combined "):
        if first.startswith(prefix):
            return _unquote(first[len(prefix) :].strip()) or None
    if not first.startswith("diff --git "):
        return None

    rest = first[len("diff --git ") :].strip()
    if '"' in rest:
        # Both sides are quoted when either needs it; the last token is the destination.
        target = rest[rest.rindex(' "') + 1 :] if ' "' in rest else rest
        return _strip_side(_unquote(target))
    if " b/" in rest:
        return rest.rsplit(" b/", 1)[1] or None
    return _strip_side(rest)


def header_path(header: str) -> str | None:
    """Return the path a file header describes.

    Renames and copies report the destination, deletions the old path.
    Returns None when no path can be found.
    """
    first = header.split("\n", 1)[0]
    if first.startswith(("diff --cc ", "diff --combined ")) or (first.startswith("diff --git ") and '"' in first):
        return _git_line_path(header)

    try:
        patch_set = PatchSet(header.replace("\r\n", "\n"))
    except UnidiffParseError as e:
        logger.debug("unidiff could not parse file header, using the diff line: %s", e)
        return _git_line_path(header)

    if not len(patch_set):
        return _git_line_path(header)

    patched_file = patch_set[-1]
    source, target = patched_file.source_file, patched_file.target_file
    path = target if target and target != DEV_NULL else source
    if not path or path == DEV_NULL:
        return None
    if patched_file.is_binary_file:
        logger.debug("Binary file in diff: %s", path)
    return _strip_side(_unquote(path))


def _hunk_counts(line: str) -> tuple[int, int] | None:
    match = _HUNK_HEADER_RE.match(line)
    if not match:
        return None
    old_len = int(match.group(2)) if match.group(2) is not None else 1
    new_len = int(match.group(4)) if match.group(4) is not None else 1
    return old_len, new_len


def split_segments(diff: str) -> list[Segment]:
    """Cut ``diff`` into file, hunk and leading segments.

    Joining the text of the returned segments reproduces ``diff`` exactly,
    including ``\\r\\n`` line endings.
    """
    if not diff:
        return []

    lines = _LINE_RE.findall(diff)
    segments: list[Segment] = []
    current: _SegmentBuilder | None = None
    current_file: str | None = None
    old_left = new_left = 0

    def start(kind: str, file: str | None = None) -> _SegmentBuilder:
        nonlocal current, current_file
        if current is not None:
            segment = current.build()
            segments.append(segment)
            if segment.kind == FILE:
                current_file = segment.file
        current = _SegmentBuilder(kind, file)
        return current

    for i, line in enumerate(lines):
        bare = line.rstrip("\r\n")

        # Inside a hunk whose header gave line counts, body lines are content
        # no matter what they look like ("--- x" is a removed line here).
        if old_left > 0 or new_left > 0:
            marker = bare[:1]
            if marker == "\\":
                current.lines.append(line)
                continue
            if marker == "-" and old_left > 0:
                old_left -= 1
                current.lines.append(line)
                continue
            if marker == "+" and new_left > 0:
                new_left -= 1
                current.lines.append(line)
                continue
            if marker in (" ", "") and old_left > 0 and new_left > 0:
                old_left -= 1
                new_left -= 1
                current.lines.append(line)
                continue
            old_left = new_left = 0

        if bare.startswith("@@"):
            # The first hunk of a file stays with its header.
            if current is not None and current.kind == FILE and not current.has_hunk:
                current.header_end = len(current.lines)
            else:
                start(HUNK, current_file)
            counts = _hunk_counts(bare)
            if counts is None:
                logger.debug("Unparseable hunk header: %r", bare[:80])
            else:
                old_left, new_left = counts
            current.lines.append(line)
            continue

        if bare.startswith(_GIT_HEADER_PREFIXES):
            start(FILE).lines.append(line)
            continue

        if bare.startswith(("File: ", "Index: ")):
            path = bare.split(":", 1)[1].strip()
            start(FILE, _unquote(path) or None).lines.append(line)
            continue

        # A "---"/"+++" pair opens a new file unless it completes the header
        # that a "diff --git" line already started.
        next_line = lines[i + 1] if i + 1 < len(lines) else ""
        completes_header = (
            current is not None
            and current.kind == FILE
            and not current.has_hunk
            and not current.has_old_marker
        )
        if bare.startswith("--- ") and next_line.startswith("+++ ") and not completes_header:
            builder = start(FILE)
            builder.has_old_marker = True
            builder.lines.append(line)
            continue

        if current is None:
            current = _SegmentBuilder(LEADING)
        if current.kind == FILE and not current.has_hunk and bare.startswith("--- "):
            current.has_old_marker = True
        current.lines.append(line)

    if current is not None:
        segments.append(current.build())
    return segments


def _make_chunk(segments: list[Segment]) -> DiffChunk:
    content = "".join(s.text for s in segments)
    files = tuple(dict.fromkeys(s.file for s in segments if s.file))
    return DiffChunk(content=content, files=files, size=len(content))


def chunk_diff(diff: str | None, max_chunk_size: int) -> list[DiffChunk]:
    """Pack the segments of ``diff`` into chunks of at most ``max_chunk_size``.

    ``max_chunk_size`` is trusted; validate it with
    ``prrelay_core.config.validate_chunk_size`` before calling.
    """
    if diff is None or not diff.strip():
        return [EMPTY_CHUNK]

    chunks: list[DiffChunk] = []
    pending: list[Segment] = []
    pending_size = 0

    for segment in split_segments(diff):
        if pending and pending_size + segment.size > max_chunk_size:
            chunks.append(_make_chunk(pending))
            pending, pending_size = [], 0

        pending.append(segment)
        pending_size += segment.size

        # Only reachable when the segment is alone: it is oversized and
        # must not share a chunk with anything that follows.
        if pending_size > max_chunk_size:
            logger.debug("Segment of %d chars exceeds chunk size %d", segment.size, max_chunk_size)
            chunks.append(_make_chunk(pending))
            pending, pending_size = [], 0

    if pending:
        chunks.append(_make_chunk(pending))

    logger.debug("Split %d chars of diff into %d chunk(s)", len(diff), len(chunks))
    return chunks
