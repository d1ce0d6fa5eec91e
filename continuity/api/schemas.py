"""
Directive parameter schemas.

Parsing extracts raw parameters; these models decide whether a directive is
valid for its kind. Empty optional strings count as absent.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from ..core.schema import Priority


class DirectiveParams(BaseModel):
    model_config = ConfigDict(extra='forbid', frozen=True)

    @field_validator('*', mode='before')
    @classmethod
    def blank_optional_is_absent(cls, v, info):
        field = cls.model_fields[info.field_name]
        if isinstance(v, str) and not v.strip() and not field.is_required():
            return None
        return v


class AddRecordParams(DirectiveParams):
    content: str
    category: Optional[str] = None
    priority: Optional[Priority] = None
    origin_reference: Optional[str] = None

    @field_validator('content')
    @classmethod
    def content_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('content cannot be empty')
        return v


class EditRecordParams(DirectiveParams):
    id: str
    content: Optional[str] = None
    category: Optional[str] = None
    priority: Optional[Priority] = None

    @field_validator('id')
    @classmethod
    def id_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('id cannot be empty')
        return v

    @model_validator(mode='after')
    def must_change_something(self):
        if self.content is None and self.category is None and self.priority is None:
            raise ValueError('edit_record needs at least one of content, category or priority')
        return self

    def changes(self):
        """Fields to merge into the record."""
        return self.model_dump(exclude={'id'}, exclude_none=True)


class DeleteRecordParams(DirectiveParams):
    id: str

    @field_validator('id')
    @classmethod
    def id_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('id cannot be empty')
        return v


class QueryRecordParams(DirectiveParams):
    category: Optional[str] = None
    priority: Optional[Priority] = None


class SaveUserDataParams(DirectiveParams):
    key: str
    value: str

    @field_validator('key')
    @classmethod
    def key_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('key cannot be empty')
        return v


class RetrieveUserDataParams(DirectiveParams):
    key: Optional[str] = None
    query_text: Optional[str] = None
    limit: Optional[int] = None

    @field_validator('limit')
    @classmethod
    def limit_must_be_positive(cls, v):
        if v is not None and v < 1:
            raise ValueError('limit must be >= 1')
        return v

    @model_validator(mode='after')
    def exactly_one_lookup(self):
        if self.key is None and self.query_text is None:
            raise ValueError('retrieve_user_data needs a key or a query')
        if self.key is not None and self.query_text is not None:
            raise ValueError('retrieve_user_data takes a key or a query, not both')
        return self
