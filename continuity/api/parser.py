"""
Directive parser.

Finds structured tag blocks embedded in free text, extracts their typed
parameters and validates them per directive kind. Block tag names are
case-sensitive; inner field tags are not. A block is closed by the first
closing tag of the same name, so blocks never nest or overlap.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import ValidationError as PydanticValidationError

from .schemas import (
    AddRecordParams,
    DeleteRecordParams,
    DirectiveParams,
    EditRecordParams,
    QueryRecordParams,
    RetrieveUserDataParams,
    SaveUserDataParams,
)
from ..core.errors import DirectiveValidationError
from ..core.schema import Priority


class DirectiveKind(str, Enum):
    ADD_RECORD = "add_record"
    EDIT_RECORD = "edit_record"
    DELETE_RECORD = "delete_record"
    QUERY_RECORDS = "query_record"
    SAVE_KEYED_FACT = "save_user_data"
    RETRIEVE_KEYED_FACT = "retrieve_user_data"


_BLOCK_RE = re.compile(
    r"<(" + "|".join(kind.value for kind in DirectiveKind) + r")>(.*?)</\1>",
    re.DOTALL
)

# parameter name -> (field tag, spans lines)
_FIELDS: Dict[str, Tuple[str, bool]] = {
    "origin_reference": ("linenumber", False),
    "category": ("category", False),
    "priority": ("priority", False),
    "content": ("context", True),
    "id": ("id", False),
    "key": ("key", False),
    "value": ("value", True),
    "query_text": ("query", True),
    "limit": ("limit", False),
}

_FIELD_RES = {
    name: re.compile(
        rf"<{tag}>(.*?)</{tag}>",
        re.IGNORECASE | (re.DOTALL if multiline else 0)
    )
    for name, (tag, multiline) in _FIELDS.items()
}

_KIND_FIELDS: Dict[DirectiveKind, Tuple[str, ...]] = {
    DirectiveKind.ADD_RECORD: ("origin_reference", "category", "priority", "content"),
    DirectiveKind.EDIT_RECORD: ("id", "content", "category", "priority"),
    DirectiveKind.DELETE_RECORD: ("id",),
    DirectiveKind.QUERY_RECORDS: ("category", "priority"),
    DirectiveKind.SAVE_KEYED_FACT: ("key", "value"),
    DirectiveKind.RETRIEVE_KEYED_FACT: ("key", "query_text", "limit"),
}

_KIND_PARAMS: Dict[DirectiveKind, Type[DirectiveParams]] = {
    DirectiveKind.ADD_RECORD: AddRecordParams,
    DirectiveKind.EDIT_RECORD: EditRecordParams,
    DirectiveKind.DELETE_RECORD: DeleteRecordParams,
    DirectiveKind.QUERY_RECORDS: QueryRecordParams,
    DirectiveKind.SAVE_KEYED_FACT: SaveUserDataParams,
    DirectiveKind.RETRIEVE_KEYED_FACT: RetrieveUserDataParams,
}


@dataclass
class Directive:
    """A parsed structured-tag instruction."""
    kind: DirectiveKind
    parameters: Dict[str, Any] = field(default_factory=dict)
    span: Optional[Tuple[int, int]] = None

    def to_dict(self) -> Dict[str, Any]:
        parameters = {
            k: (v.value if isinstance(v, Priority) else v)
            for k, v in self.parameters.items()
        }
        return {"kind": self.kind.value, "parameters": parameters}


class DirectiveParser:
    """Extracts, validates and strips directive blocks."""

    def parse(self, text: str) -> List[Directive]:
        """Directives in the order their blocks appear in text."""
        directives = []
        for match in _BLOCK_RE.finditer(text):
            kind = DirectiveKind(match.group(1))
            directives.append(Directive(
                kind=kind,
                parameters=self._parse_parameters(kind, match.group(2)),
                span=match.span()
            ))
        return directives

    def _parse_parameters(self, kind: DirectiveKind, body: str) -> Dict[str, Any]:
        parameters: Dict[str, Any] = {}

        for name in _KIND_FIELDS[kind]:
            match = _FIELD_RES[name].search(body)
            if not match:
                continue
            raw = match.group(1).strip()

            if name == "priority":
                # Tokens outside the enumeration are dropped, not rejected
                priority = Priority.parse(raw)
                if priority is not None:
                    parameters[name] = priority
            elif name == "limit":
                if raw.isascii() and raw.isdigit():
                    parameters[name] = int(raw)
            else:
                parameters[name] = raw

        return parameters

    def validate(self, directive: Directive) -> DirectiveParams:
        """
        Validate a parsed directive.

        Returns the typed parameters, or raises DirectiveValidationError
        listing every problem found.
        """
        model = _KIND_PARAMS[directive.kind]
        try:
            return model(**directive.parameters)
        except PydanticValidationError as e:
            errors = []
            for error in e.errors():
                location = ".".join(str(part) for part in error["loc"])
                message = error["msg"].removeprefix("Value error, ")
                errors.append(f"{location}: {message}" if location else message)
            raise DirectiveValidationError(directive.kind.value, errors) from e

    def is_valid(self, directive: Directive) -> bool:
        try:
            self.validate(directive)
        except DirectiveValidationError:
            return False
        return True

    def strip(self, text: str) -> str:
        """Remove every recognized directive block, valid or not."""
        return _BLOCK_RE.sub("", text)
