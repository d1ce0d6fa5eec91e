"""
Directive dispatcher.

Runs parsed directives strictly in order against the record store and the
retrieval engine. Every directive produces exactly one result at its own
position, success or failure; one failing directive never stops the rest.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .parser import Directive, DirectiveKind, DirectiveParser
from .schemas import (
    AddRecordParams,
    DeleteRecordParams,
    EditRecordParams,
    QueryRecordParams,
    RetrieveUserDataParams,
    SaveUserDataParams,
)
from ..core.errors import ContinuityError, DirectiveValidationError, RecordNotFoundError
from ..core.retrieval import RetrievalEngine
from ..core.schema import KnowledgeRecord, user_data_category
from ..core.store import RecordStore
from ..util.logging import logger

STATUS_OK = "ok"
STATUS_NOT_FOUND = "not_found"
STATUS_ERROR = "error"


class EventType(str, Enum):
    RECORD_ADDED = "record_added"
    RECORD_UPDATED = "record_updated"
    RECORD_DELETED = "record_deleted"
    DIRECTIVE_PROCESSED = "directive_processed"
    ERROR = "error"


EventListener = Callable[[EventType, Dict[str, Any]], None]


def _serialize(value: Any) -> Any:
    if isinstance(value, KnowledgeRecord):
        return value.to_dict()
    if isinstance(value, list):
        return [_serialize(v) for v in value]
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    return value


@dataclass
class DirectiveResult:
    """Outcome of one directive, at the same index as the directive."""
    index: int
    kind: str
    status: str
    data: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK

    def to_dict(self) -> Dict[str, Any]:
        result = {"index": self.index, "kind": self.kind, "status": self.status}
        if self.data is not None:
            result["data"] = _serialize(self.data)
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass
class ProcessResult:
    """Directive-stripped text plus one result per parsed directive."""
    text: str
    directives: List[Directive] = field(default_factory=list)
    results: List[DirectiveResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "directives": [d.to_dict() for d in self.directives],
            "results": [r.to_dict() for r in self.results],
        }


class DirectiveDispatcher:
    """Maps each validated directive to its store or retrieval operation."""

    def __init__(self, store: RecordStore, retrieval: RetrievalEngine,
                 parser: Optional[DirectiveParser] = None, index_on_create: bool = True):
        self.store = store
        self.retrieval = retrieval
        self.parser = parser or DirectiveParser()
        self.index_on_create = index_on_create
        self._listeners: List[EventListener] = []
        self._handlers = {
            DirectiveKind.ADD_RECORD: self._add_record,
            DirectiveKind.EDIT_RECORD: self._edit_record,
            DirectiveKind.DELETE_RECORD: self._delete_record,
            DirectiveKind.QUERY_RECORDS: self._query_records,
            DirectiveKind.SAVE_KEYED_FACT: self._save_keyed_fact,
            DirectiveKind.RETRIEVE_KEYED_FACT: self._retrieve_keyed_fact,
        }

    # Host notification

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, event: EventType, data: Dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, data)
            except Exception as e:
                # Host callbacks must not break directive processing
                logger.error(f"Event listener failed for {event.value}: {e}")

    # Processing

    async def process_response(self, text: str, scope: str) -> ProcessResult:
        """Parse text, run every directive in order and strip the blocks."""
        directives = self.parser.parse(text)
        results = []
        for index, directive in enumerate(directives):
            results.append(await self.dispatch(index, directive, scope))

        return ProcessResult(
            text=self.parser.strip(text),
            directives=directives,
            results=results
        )

    async def dispatch(self, index: int, directive: Directive, scope: str) -> DirectiveResult:
        kind = directive.kind.value
        try:
            params = self.parser.validate(directive)
        except DirectiveValidationError as e:
            logger.log_validation_error(kind, e.errors)
            self._emit(EventType.ERROR, {"message": "Invalid directive", "directive": directive, "errors": e.errors})
            return self._finish(DirectiveResult(index=index, kind=kind, status=STATUS_ERROR, error=str(e)))

        try:
            result = await self._handlers[directive.kind](index, params, scope)
        except RecordNotFoundError as e:
            result = DirectiveResult(index=index, kind=kind, status=STATUS_NOT_FOUND, error=str(e))
        except ContinuityError as e:
            result = DirectiveResult(index=index, kind=kind, status=STATUS_ERROR, error=str(e))
        except Exception as e:
            logger.error(f"Unexpected failure executing {kind}: {e}")
            result = DirectiveResult(index=index, kind=kind, status=STATUS_ERROR, error=str(e))

        if result.status == STATUS_ERROR:
            self._emit(EventType.ERROR, {"message": "Error executing directive", "directive": directive,
                                         "error": result.error})
        else:
            self._emit(EventType.DIRECTIVE_PROCESSED, {"directive": directive, "result": result})
        return self._finish(result)

    def _finish(self, result: DirectiveResult) -> DirectiveResult:
        details = {"error": result.error} if result.error else None
        logger.log_directive(result.index, result.kind, result.status, details)
        return result

    # Handlers

    async def _create_indexed(self, scope: str, content: str, indexed_text: Optional[str] = None,
                              **fields: Any) -> KnowledgeRecord:
        # Embed and check first: a failure then leaves both store and index untouched
        vector = None
        if self.index_on_create:
            vector = await self.retrieval.embed_for_index(content if indexed_text is None else indexed_text)

        record = self.store.create(scope, content, **fields)
        if vector is not None:
            await self.retrieval.index_record(record, text=indexed_text, vector=vector)

        self._emit(EventType.RECORD_ADDED, {"record": record})
        return record

    async def _add_record(self, index: int, params: AddRecordParams, scope: str) -> DirectiveResult:
        record = await self._create_indexed(
            scope,
            params.content,
            category=params.category,
            priority=params.priority,
            origin_reference=params.origin_reference
        )
        return DirectiveResult(index=index, kind=DirectiveKind.ADD_RECORD.value, status=STATUS_OK, data=record)

    async def _edit_record(self, index: int, params: EditRecordParams, scope: str) -> DirectiveResult:
        record = self.store.update(params.id, **params.changes())
        self._emit(EventType.RECORD_UPDATED, {"record": record})
        return DirectiveResult(index=index, kind=DirectiveKind.EDIT_RECORD.value, status=STATUS_OK, data=record)

    async def _delete_record(self, index: int, params: DeleteRecordParams, scope: str) -> DirectiveResult:
        deleted = self.store.delete(params.id)
        if deleted:
            self._emit(EventType.RECORD_DELETED, {"id": params.id})
        return DirectiveResult(index=index, kind=DirectiveKind.DELETE_RECORD.value, status=STATUS_OK,
                               data={"id": params.id, "deleted": deleted})

    async def _query_records(self, index: int, params: QueryRecordParams, scope: str) -> DirectiveResult:
        records = self.store.query(scope, category=params.category, priority=params.priority)
        return DirectiveResult(index=index, kind=DirectiveKind.QUERY_RECORDS.value, status=STATUS_OK, data=records)

    async def _save_keyed_fact(self, index: int, params: SaveUserDataParams, scope: str) -> DirectiveResult:
        # Earlier facts under the same key are kept; lookups pick the newest
        record = await self._create_indexed(
            scope,
            params.value,
            indexed_text=f"{params.key}: {params.value}",
            category=user_data_category(params.key)
        )
        return DirectiveResult(index=index, kind=DirectiveKind.SAVE_KEYED_FACT.value, status=STATUS_OK,
                               data={"key": params.key, "value": params.value, "id": record.id})

    async def _retrieve_keyed_fact(self, index: int, params: RetrieveUserDataParams, scope: str) -> DirectiveResult:
        kind = DirectiveKind.RETRIEVE_KEYED_FACT.value

        if params.key is not None:
            fact = self.retrieval.retrieve_by_key(scope, params.key)
            return DirectiveResult(index=index, kind=kind, status=STATUS_OK,
                                   data={"key": fact.key, "value": fact.value})

        hits = await self.retrieval.retrieve_by_query(scope, params.query_text, limit=params.limit)
        results = [
            {
                "key": hit.record.user_data_key,
                "value": hit.record.content,
                "score": hit.score,
                "id": hit.record.id,
            }
            for hit in hits
        ]
        return DirectiveResult(index=index, kind=kind, status=STATUS_OK,
                               data={"query": params.query_text, "results": results})
