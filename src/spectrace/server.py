from __future__ import annotations

from pathlib import Path
import re
from typing import Any, Callable
from urllib.parse import unquote, urlparse

import structlog
from pygls.lsp.server import LanguageServer
from lsprotocol import types

from spectrace import __version__
from spectrace.analysis.file_collection import read_text
from spectrace.analysis.findings import FindingCode
from spectrace.analysis.identifiers import IdKind, feature_code
from spectrace.analysis.marker_scanner import CodeMarker, MarkerKind
from spectrace.config import DEFAULT_MARKERS, load_check_config
from spectrace.live_index import LiveIndex
from spectrace.schema import IndexStatusDTO

logger = structlog.get_logger(__name__)

INDEX_STATUS_NOTIFICATION = "spectrace/indexStatus"
TRACE_COMMAND = "spectrace.trace"
DIAGNOSTIC_SOURCE = "spectrace"
COMPLETION_TRIGGERS = [" ", ":"]
_DETAIL_LIMIT = 80

_KIND_LABELS = {
    IdKind.REQUIREMENT: "Requirement",
    IdKind.AC: "Acceptance Criterion",
    IdKind.PROPERTY: "Property",
    IdKind.COMPONENT: "Design Component",
}


class SpectraceServer(LanguageServer):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.live_index = LiveIndex()


server = SpectraceServer("spectrace", __version__)


def _uri_to_path(uri: str) -> Path:
    parsed = urlparse(uri)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    return Path(uri)


def _path_to_uri(path: str) -> str:
    candidate = Path(path)
    return candidate.as_uri() if candidate.is_absolute() else path


def _marker_range(marker: CodeMarker) -> types.Range:
    line = marker.line - 1
    return types.Range(
        start=types.Position(line=line, character=marker.start_column),
        end=types.Position(line=line, character=marker.end_column),
    )


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'' if count == 1 else 's'}"


# Providers: pure functions of the live index.


def provide_hover(index: LiveIndex, path: Path, position: types.Position) -> types.Hover | None:
    marker = index.marker_at(path, position.line, position.character)
    if marker is None:
        return None
    definition = index.definition(marker.id)
    if definition is None:
        value = f"**{marker.id}** — _ID not found in any spec file_"
    else:
        lines = [
            f"### {_KIND_LABELS[definition.kind]}: `{definition.id}`",
            "",
            definition.text or "_No description found_",
            "",
            f"**Feature:** {feature_code(definition.id)}",
            f"**Defined in:** {index.relative(definition.location.path)}:{definition.location.line}",
        ]
        counts = []
        impl_count = len(index.implementations(marker.id))
        test_count = len(index.tests(marker.id))
        if impl_count:
            counts.append(_plural(impl_count, "impl"))
        if test_count:
            counts.append(_plural(test_count, "test"))
        if counts:
            lines.extend(["", f"_{' · '.join(counts)}_"])
        value = "\n".join(lines)
    return types.Hover(
        contents=types.MarkupContent(kind=types.MarkupKind.Markdown, value=value),
        range=_marker_range(marker),
    )


def provide_definition(
    index: LiveIndex, path: Path, position: types.Position
) -> types.Location | None:
    marker = index.marker_at(path, position.line, position.character)
    if marker is None:
        return None
    definition = index.definition(marker.id)
    if definition is None:
        return None
    line = definition.location.line - 1
    return types.Location(
        uri=_path_to_uri(definition.location.path),
        range=types.Range(
            start=types.Position(line=line, character=0),
            end=types.Position(line=line, character=0),
        ),
    )


def provide_diagnostics(index: LiveIndex, path: Path) -> list[types.Diagnostic]:
    diagnostics: list[types.Diagnostic] = []
    for marker in index.markers_in(path):
        if index.definition(marker.id) is not None:
            continue
        diagnostics.append(
            types.Diagnostic(
                range=_marker_range(marker),
                message=f"Orphaned marker: '{marker.id}' is not defined in any spec file",
                severity=types.DiagnosticSeverity.Error,
                source=DIAGNOSTIC_SOURCE,
                code=FindingCode.ORPHANED_MARKER.value,
            )
        )
    return diagnostics


def _completion_kinds(before_cursor: str, tokens: tuple[str, ...]) -> tuple[IdKind, ...]:
    impl_token, test_token, component_token = (list(tokens) + list(DEFAULT_MARKERS))[:3]

    def _typed(token: str) -> bool:
        pattern = rf"{re.escape(token)}:\s*(?:[\w.-]+\s*,\s*)*[\w.-]*$"
        return re.search(pattern, before_cursor) is not None

    if _typed(component_token):
        return (IdKind.COMPONENT,)
    if _typed(impl_token) or _typed(test_token):
        return (IdKind.AC, IdKind.PROPERTY)
    return ()


def provide_completion(
    index: LiveIndex, line_text: str, character: int
) -> list[types.CompletionItem]:
    kinds = _completion_kinds(line_text[:character], index.config.markers)
    if not kinds:
        return []
    items: list[types.CompletionItem] = []
    for definition in index.definitions(kinds):
        feature = feature_code(definition.id)
        text = definition.text
        truncated = text[:_DETAIL_LIMIT] + ("…" if len(text) > _DETAIL_LIMIT else "")
        counts = []
        impl_count = len(index.implementations(definition.id))
        test_count = len(index.tests(definition.id))
        if impl_count:
            counts.append(f"{impl_count} impl")
        if test_count:
            counts.append(f"{test_count} test")
        suffix = f" ({', '.join(counts)})" if counts else ""
        location = f"{index.relative(definition.location.path)}:{definition.location.line}"
        items.append(
            types.CompletionItem(
                label=definition.id,
                kind=types.CompletionItemKind.Reference,
                detail=f"[{feature}] {truncated}",
                documentation=types.MarkupContent(
                    kind=types.MarkupKind.Markdown,
                    value="\n".join([f"**{definition.id}**{suffix}", "", text, "", f"_{location}_"]),
                ),
                sort_text=f"{feature}-{definition.id}",
            )
        )
    items.sort(key=lambda item: item.sort_text or item.label)
    return items


def prepare_rename(
    index: LiveIndex, path: Path, position: types.Position
) -> types.PrepareRenamePlaceholder | None:
    marker = index.marker_at(path, position.line, position.character)
    if marker is None or index.definition(marker.id) is None:
        return None
    return types.PrepareRenamePlaceholder(range=_marker_range(marker), placeholder=marker.id)


def provide_rename(
    index: LiveIndex, path: Path, position: types.Position, new_name: str
) -> types.WorkspaceEdit | None:
    marker = index.marker_at(path, position.line, position.character)
    if marker is None:
        return None
    old_id, new_id = marker.id, new_name.strip()
    if not new_id or new_id == old_id:
        return None
    changes: dict[str, list[types.TextEdit]] = {}
    for file_path, markers in index.marker_files().items():
        edits = [
            types.TextEdit(range=_marker_range(item), new_text=new_id)
            for item in markers
            if item.id == old_id
        ]
        if edits:
            changes.setdefault(_path_to_uri(file_path), []).extend(edits)
    definition = index.definition(old_id)
    spec_text = read_text(Path(definition.location.path)) if definition is not None else None
    if definition is not None and spec_text is not None:
        boundary = re.compile(rf"(?<![\w-]){re.escape(old_id)}(?![\w-])")
        spec_edits = [
            types.TextEdit(
                range=types.Range(
                    start=types.Position(line=line_index, character=match.start()),
                    end=types.Position(line=line_index, character=match.end()),
                ),
                new_text=new_id,
            )
            for line_index, line in enumerate(spec_text.splitlines())
            for match in boundary.finditer(line)
        ]
        if spec_edits:
            changes.setdefault(_path_to_uri(definition.location.path), []).extend(spec_edits)
    if not changes:
        return None
    return types.WorkspaceEdit(changes=changes)


def provide_code_lens(index: LiveIndex, path: Path) -> list[types.CodeLens]:
    lenses: list[types.CodeLens] = []
    for marker in index.markers_in(path):
        if marker.kind is MarkerKind.IMPL:
            count = len(index.tests(marker.id))
            title = f"{marker.id} — {_plural(count, 'test')}" if count else f"{marker.id} — no tests"
        elif marker.kind is MarkerKind.TEST:
            count = len(index.implementations(marker.id))
            title = (
                f"{marker.id} — {_plural(count, 'impl')}"
                if count
                else f"{marker.id} — no implementations"
            )
        else:
            continue
        line = marker.line - 1
        lenses.append(
            types.CodeLens(
                range=types.Range(
                    start=types.Position(line=line, character=0),
                    end=types.Position(line=line, character=0),
                ),
                command=types.Command(title=title, command=TRACE_COMMAND, arguments=[marker.id]),
            )
        )
    return lenses


# Handlers: thin adapters from LSP params onto the providers.


def _workspace_root(ls: SpectraceServer) -> Path:
    root_path = ls.workspace.root_path
    return Path(root_path) if root_path else Path.cwd()


def _send_index_status(ls: SpectraceServer) -> None:
    index = ls.live_index
    status = IndexStatusDTO(ready=index.ready, id_count=index.id_count())
    ls.protocol.notify(INDEX_STATUS_NOTIFICATION, status.to_payload())


def _publish(ls: SpectraceServer, uri: str, diagnostics: list[types.Diagnostic]) -> None:
    ls.text_document_publish_diagnostics(
        types.PublishDiagnosticsParams(uri=uri, diagnostics=diagnostics)
    )


def _reindex_document(ls: SpectraceServer, uri: str) -> None:
    document = ls.workspace.get_text_document(uri)
    path = _uri_to_path(uri)
    ls.live_index.update_file(path, document.source)
    _publish(ls, uri, provide_diagnostics(ls.live_index, path))


@server.feature(types.INITIALIZED)
def initialized(ls: SpectraceServer, params: types.InitializedParams) -> None:
    root = _workspace_root(ls)
    try:
        ls.live_index.rebuild(load_check_config(root=root), root)
    except Exception as exc:
        logger.error("live_index_build_failed", root=str(root), error=str(exc))
        ls.window_log_message(
            types.LogMessageParams(
                type=types.MessageType.Error,
                message=f"spectrace: index build failed: {exc}",
            )
        )
    _send_index_status(ls)


@server.feature(types.TEXT_DOCUMENT_DID_OPEN)
def did_open(ls: SpectraceServer, params: types.DidOpenTextDocumentParams) -> None:
    _reindex_document(ls, params.text_document.uri)


@server.feature(types.TEXT_DOCUMENT_DID_CHANGE)
def did_change(ls: SpectraceServer, params: types.DidChangeTextDocumentParams) -> None:
    _reindex_document(ls, params.text_document.uri)


@server.feature(types.TEXT_DOCUMENT_DID_CLOSE)
def did_close(ls: SpectraceServer, params: types.DidCloseTextDocumentParams) -> None:
    _publish(ls, params.text_document.uri, [])


@server.feature(types.WORKSPACE_DID_CHANGE_WATCHED_FILES)
def did_change_watched_files(
    ls: SpectraceServer, params: types.DidChangeWatchedFilesParams
) -> None:
    for change in params.changes:
        path = _uri_to_path(change.uri)
        if change.type == types.FileChangeType.Deleted:
            ls.live_index.remove_file(path)
        else:
            ls.live_index.update_file(path)
    _send_index_status(ls)


@server.feature(types.TEXT_DOCUMENT_HOVER)
def hover(ls: SpectraceServer, params: types.HoverParams) -> types.Hover | None:
    return provide_hover(ls.live_index, _uri_to_path(params.text_document.uri), params.position)


@server.feature(types.TEXT_DOCUMENT_DEFINITION)
def definition(ls: SpectraceServer, params: types.DefinitionParams) -> types.Location | None:
    return provide_definition(
        ls.live_index, _uri_to_path(params.text_document.uri), params.position
    )


@server.feature(
    types.TEXT_DOCUMENT_COMPLETION,
    types.CompletionOptions(trigger_characters=COMPLETION_TRIGGERS),
)
def completion(ls: SpectraceServer, params: types.CompletionParams) -> types.CompletionList:
    document = ls.workspace.get_text_document(params.text_document.uri)
    lines = document.lines
    line_text = lines[params.position.line] if params.position.line < len(lines) else ""
    items = provide_completion(ls.live_index, line_text, params.position.character)
    return types.CompletionList(is_incomplete=False, items=items)


@server.feature(types.TEXT_DOCUMENT_CODE_LENS)
def code_lens(ls: SpectraceServer, params: types.CodeLensParams) -> list[types.CodeLens]:
    return provide_code_lens(ls.live_index, _uri_to_path(params.text_document.uri))


@server.feature(types.TEXT_DOCUMENT_PREPARE_RENAME)
def prepare_rename_handler(
    ls: SpectraceServer, params: types.PrepareRenameParams
) -> types.PrepareRenamePlaceholder | None:
    return prepare_rename(ls.live_index, _uri_to_path(params.text_document.uri), params.position)


@server.feature(types.TEXT_DOCUMENT_RENAME)
def rename(ls: SpectraceServer, params: types.RenameParams) -> types.WorkspaceEdit | None:
    return provide_rename(
        ls.live_index,
        _uri_to_path(params.text_document.uri),
        params.position,
        params.new_name,
    )


def start(start_fn: Callable[[], None] | None = None) -> None:
    """Start the language server on stdio."""
    (start_fn or server.start_io)()


if __name__ == "__main__":  # pragma: no cover
    start()  # pragma: no cover
