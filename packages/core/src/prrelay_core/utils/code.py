import fnmatch
import logging

logger = logging.getLogger(__name__)

NON_CODE_EXTENSIONS = {
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".svg",
    ".ico",
    ".webp",
    ".bmp",
    ".pdf",
    ".woff",
    ".woff2",
    ".ttf",
    ".eot",
    ".otf",
    ".mp4",
    ".mp3",
    ".wav",
    ".ogg",
    ".zip",
    ".tar",
    ".gz",
    ".rar",
    ".7z",
    ".lock",  # e.g. package-lock.json, Pipfile.lock
}


def is_code_file(file_name: str) -> bool:
    return not any(file_name.lower().endswith(ext) for ext in NON_CODE_EXTENSIONS)


def matches_skip_pattern(path: str, pattern: str) -> bool:
    """Return True if ``path`` matches one skip pattern.

    Supports:
    - fnmatch globs on the full path: "src/generated/*.py"
    - fnmatch globs on the basename: "*.lock", "*.min.js"
    - Directory names/prefixes: "dist/", "vendor" (matches any file within that tree)
    """
    if fnmatch.fnmatch(path, pattern):
        return True
    if fnmatch.fnmatch(path.rsplit("/", 1)[-1], pattern):
        return True
    prefix = pattern.rstrip("/") + "/"
    return path.startswith(prefix) or ("/" + prefix) in path


def filter_files(files, skip_patterns) -> list[str]:
    """Drop every path that matches one of ``skip_patterns``.

    Non-string entries in either list are ignored and a new list is always
    returned, so the caller's list is never mutated.
    """
    if not files:
        return []
    paths = [f for f in files if isinstance(f, str) and f]
    patterns = [p for p in (skip_patterns or []) if isinstance(p, str) and p.strip()]
    if not patterns:
        return paths

    kept = []
    for path in paths:
        if any(matches_skip_pattern(path, p.strip()) for p in patterns):
            logger.debug("Skipping %s (matches skip pattern)", path)
            continue
        kept.append(path)
    return kept
