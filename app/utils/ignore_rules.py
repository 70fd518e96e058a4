"""
Ignore Rules
============
Rules for skipping generated files, dependencies, and non-source artifacts
when listing a repository for audit.

Ignored patterns:
    - vendored / dependency dirs (node_modules/, vendor/, .venv/, ...)
    - build output (dist/, build/, .next/, target/, ...)
    - lock files (package-lock.json, poetry.lock, Cargo.lock, ...)
    - minified bundles and source maps
    - anything whose extension is not in the text allow-list

Priority:
    Files are ordered README → manifests → everything else (by path), so
    the budgeted prompt always shows the most informative files in full.
"""
import posixpath
from typing import Iterable, List

IGNORED_DIRS = frozenset({
    "node_modules", "vendor", "third_party", "bower_components",
    ".git", ".github", ".venv", "venv", "env", "__pycache__",
    "dist", "build", "out", "target", ".next", ".nuxt", ".cache",
    "coverage", ".idea", ".vscode",
})

LOCKFILES = frozenset({
    "package-lock.json", "yarn.lock", "pnpm-lock.yaml", "bun.lockb",
    "poetry.lock", "Pipfile.lock", "uv.lock", "Cargo.lock", "Gemfile.lock",
    "composer.lock", "go.sum", "mix.lock", "flake.lock",
})

TEXT_EXTENSIONS = frozenset({
    ".py", ".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs", ".go", ".rs",
    ".java", ".kt", ".scala", ".rb", ".php", ".cs", ".c", ".h", ".cpp",
    ".hpp", ".swift", ".sh", ".sql", ".vue", ".svelte", ".html", ".css",
    ".scss", ".md", ".json", ".toml", ".yaml", ".yml", ".ini", ".cfg",
    ".xml", ".gradle", ".txt",
})

# Extension-less files worth reading
TEXT_FILENAMES = frozenset({"Dockerfile", "Makefile", "Procfile", "LICENSE"})

MANIFEST_FILENAMES = frozenset({
    "package.json", "pyproject.toml", "requirements.txt", "setup.py",
    "Cargo.toml", "go.mod", "pom.xml", "build.gradle", "Gemfile",
    "composer.json", "wrangler.toml", "Dockerfile",
})


def is_ignored_path(path: str) -> bool:
    """True if `path` lives under an ignored dir, is a lockfile, or isn't text-like."""
    parts = path.replace("\\", "/").strip("/").split("/")
    if any(part in IGNORED_DIRS for part in parts[:-1]):
        return True

    filename = parts[-1]
    if filename in LOCKFILES:
        return True
    if filename.endswith((".min.js", ".min.css", ".map")):
        return True
    if filename in TEXT_FILENAMES:
        return False

    _, ext = posixpath.splitext(filename)
    return ext.lower() not in TEXT_EXTENSIONS


def _priority(path: str) -> int:
    filename = posixpath.basename(path)
    depth = path.count("/")
    if filename.lower().startswith("readme") and depth == 0:
        return 0
    if filename in MANIFEST_FILENAMES and depth == 0:
        return 1
    if filename in MANIFEST_FILENAMES:
        return 2
    return 3


def prioritise_paths(paths: Iterable[str]) -> List[str]:
    """Stable priority order: root README, root manifests, nested manifests, rest by path."""
    return sorted(paths, key=lambda p: (_priority(p), p))
