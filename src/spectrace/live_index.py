"""In-memory, incrementally updated index backing the language server.

Each file contributes either spec definitions or code markers. An update
computes the file's new contribution without holding the lock, then swaps the
old contribution for the new one under the lock, so readers never observe a
partially removed file.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from enum import StrEnum
from functools import partial
from pathlib import Path
import threading
from typing import Sequence

import structlog

from spectrace.analysis.file_collection import is_ignored, path_matches, read_text, scatter_gather
from spectrace.analysis.identifiers import IdKind, SourceLocation
from spectrace.analysis.marker_scanner import CodeMarker, MarkerKind, code_files, scan_content
from spectrace.analysis.spec_parser import SpecDefinition, parse_spec_content, spec_files_for
from spectrace.config import CheckConfig

logger = structlog.get_logger(__name__)


class IndexState(StrEnum):
    EMPTY = "empty"
    BUILDING = "building"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class FileContribution:
    path: str
    definitions: tuple[SpecDefinition, ...] = ()
    markers: tuple[CodeMarker, ...] = ()


class LiveIndex:
    def __init__(self, config: CheckConfig | None = None, root: Path | None = None) -> None:
        self._lock = threading.Lock()
        self._state = IndexState.EMPTY
        self._config = config or CheckConfig()
        self._root = (root or Path(".")).resolve()
        self._definitions: dict[str, SpecDefinition] = {}
        self._definitions_by_file: dict[str, tuple[SpecDefinition, ...]] = {}
        self._markers_by_file: dict[str, tuple[CodeMarker, ...]] = {}
        self._locations: dict[MarkerKind, dict[str, list[SourceLocation]]] = {
            kind: defaultdict(list) for kind in MarkerKind
        }

    @property
    def state(self) -> IndexState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._state is IndexState.READY

    @property
    def config(self) -> CheckConfig:
        return self._config

    @property
    def root(self) -> Path:
        return self._root

    # Contribution computation (no lock held)

    def is_spec_file(self, path: Path) -> bool:
        relative = self.relative(path)
        return path_matches(relative, self._config.spec_globs) and not is_ignored(
            path, self._root, self._config.spec_ignore
        )

    def is_ignored_code(self, path: Path) -> bool:
        return is_ignored(path, self._root, self._config.code_ignore) or is_ignored(
            path, self._root, self._config.ignore_markers
        )

    def contribution_for(self, path: Path, text: str | None = None) -> FileContribution:
        key = str(path)
        spec = self.is_spec_file(path)
        if not spec and self.is_ignored_code(path):
            return FileContribution(key)
        if text is None:
            text = read_text(path)
        if text is None:
            return FileContribution(key)
        if spec:
            spec_file = parse_spec_content(key, text, self._config.cross_ref_patterns)
            return FileContribution(key, definitions=spec_file.definitions)
        return FileContribution(key, markers=scan_content(key, text, self._config.markers).markers)

    # Mutation (lock held by callers)

    def _drop(self, path: str) -> None:
        for dropped in self._definitions_by_file.pop(path, ()):
            current = self._definitions.get(dropped.id)
            if current is None or current.location.path != path:
                continue
            fallback = self._surviving_definition(dropped.id)
            if fallback is None:
                del self._definitions[dropped.id]
            else:
                self._definitions[dropped.id] = fallback
        for marker in self._markers_by_file.pop(path, ()):
            by_id = self._locations[marker.kind]
            remaining = [loc for loc in by_id.get(marker.id, ()) if loc.path != path]
            if remaining:
                by_id[marker.id] = remaining
            else:
                by_id.pop(marker.id, None)

    def _surviving_definition(self, identifier: str) -> SpecDefinition | None:
        """Latest remaining definition of an id shadowed by a dropped file."""
        found = None
        for definitions in self._definitions_by_file.values():
            for definition in definitions:
                if definition.id == identifier:
                    found = definition
        return found

    def _insert(self, contribution: FileContribution) -> None:
        if contribution.definitions:
            self._definitions_by_file[contribution.path] = contribution.definitions
            for definition in contribution.definitions:
                self._definitions[definition.id] = definition
        if contribution.markers:
            self._markers_by_file[contribution.path] = contribution.markers
            for marker in contribution.markers:
                self._locations[marker.kind][marker.id].append(marker.location)

    def _clear(self) -> None:
        self._definitions.clear()
        self._definitions_by_file.clear()
        self._markers_by_file.clear()
        for by_id in self._locations.values():
            by_id.clear()

    # Public updates

    def rebuild(self, config: CheckConfig, root: Path) -> None:
        """Index every spec and code file under ``root`` from disk."""
        with self._lock:
            self._state = IndexState.BUILDING
            self._config = config
            self._root = root.resolve()
        try:
            spec_paths = spec_files_for(config, self._root)
            known = set(spec_paths)
            code_paths = [path for path in code_files(config, self._root) if path not in known]
            contributions = scatter_gather(
                partial(self.contribution_for, text=None),
                [*spec_paths, *code_paths],
                stage="live index build",
            )
        except Exception:
            with self._lock:
                self._clear()
                self._state = IndexState.FAILED
            raise
        with self._lock:
            self._clear()
            for contribution in contributions:
                self._insert(contribution)
            self._state = IndexState.READY
        logger.debug(
            "live_index_built",
            root=str(self._root),
            ids=len(self._definitions),
            marker_files=len(self._markers_by_file),
        )

    def update_file(self, path: Path, text: str | None = None) -> None:
        """Re-index one file, from ``text`` when given, else from disk."""
        contribution = self.contribution_for(path, text)
        with self._lock:
            self._drop(contribution.path)
            self._insert(contribution)
        logger.debug(
            "live_index_updated",
            path=contribution.path,
            definitions=len(contribution.definitions),
            markers=len(contribution.markers),
        )

    def remove_file(self, path: Path) -> None:
        with self._lock:
            self._drop(str(path))
        logger.debug("live_index_removed", path=str(path))

    # Queries

    def relative(self, path: Path | str) -> str:
        candidate = Path(path)
        try:
            return candidate.relative_to(self._root).as_posix()
        except ValueError:
            return candidate.as_posix()

    def id_count(self) -> int:
        with self._lock:
            return len(self._definitions) if self.ready else 0

    def definition(self, identifier: str) -> SpecDefinition | None:
        with self._lock:
            if not self.ready:
                return None
            return self._definitions.get(identifier)

    def definitions(self, kinds: Sequence[IdKind] = tuple(IdKind)) -> list[SpecDefinition]:
        with self._lock:
            if not self.ready:
                return []
            return [item for item in self._definitions.values() if item.kind in kinds]

    def markers_in(self, path: Path | str) -> tuple[CodeMarker, ...]:
        with self._lock:
            if not self.ready:
                return ()
            return self._markers_by_file.get(str(path), ())

    def marker_files(self) -> dict[str, tuple[CodeMarker, ...]]:
        with self._lock:
            if not self.ready:
                return {}
            return dict(self._markers_by_file)

    def marker_at(self, path: Path | str, line: int, character: int) -> CodeMarker | None:
        """Return the marker id under a 0-based editor position."""
        for marker in self.markers_in(path):
            if marker.line == line + 1 and marker.start_column <= character < marker.end_column:
                return marker
        return None

    def locations(self, kind: MarkerKind, identifier: str) -> tuple[SourceLocation, ...]:
        with self._lock:
            if not self.ready:
                return ()
            return tuple(self._locations[kind].get(identifier, ()))

    def implementations(self, identifier: str) -> tuple[SourceLocation, ...]:
        return self.locations(MarkerKind.IMPL, identifier)

    def tests(self, identifier: str) -> tuple[SourceLocation, ...]:
        return self.locations(MarkerKind.TEST, identifier)
