"""
Base Model for SellMate domain entities

Stored documents use camelCase field names; Python code uses snake_case.
Every entity accepts both on input and dumps camelCase via to_document().
"""

from datetime import datetime, timezone
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    """Timezone-aware current time (UTC)."""
    return datetime.now(timezone.utc)


class DomainModel(BaseModel):
    """
    Base for all persisted shapes.

    Field names and nesting must survive a store/load cycle unchanged, so
    serialization always goes through the camelCase aliases.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        use_enum_values=False,
    )

    def to_document(self) -> Dict[str, Any]:
        """
        Dump as a JSON-compatible document with stored field names.

        Fields that were set to null stay in the document as null; optional
        fields that were never set are left out.
        """
        document = self.model_dump(by_alias=True, mode="json")
        _drop_unset_nulls(self, document)
        return document

    @classmethod
    def from_document(cls, document: Dict[str, Any]):
        """Load from a stored document."""
        return cls.model_validate(document)


def _drop_unset_nulls(model: BaseModel, document: Dict[str, Any]) -> None:
    for name, field in type(model).model_fields.items():
        key = field.alias or to_camel(name)
        if key not in document:
            continue
        value = getattr(model, name)
        if value is None:
            if name not in model.model_fields_set:
                del document[key]
        elif isinstance(value, BaseModel):
            _drop_unset_nulls(value, document[key])
        elif isinstance(value, list):
            for item, dumped in zip(value, document[key]):
                if isinstance(item, BaseModel):
                    _drop_unset_nulls(item, dumped)
