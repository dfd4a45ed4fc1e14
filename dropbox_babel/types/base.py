"""Base models for Babel structs and unions."""

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class BabelStruct(BaseModel):
    """A Babel struct. Unknown fields from newer servers are ignored."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class BabelUnion(BaseModel):
    """
    A Babel union, tagged on the wire by ``.tag``.

    Subclasses list their variants in ``TAGS``; a variant carrying a value
    stores it in the field named after the tag. Struct-valued variants
    arrive with their fields inlined next to ``.tag`` and are folded into
    that field here. Unknown tags collapse to ``other``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    TAGS: ClassVar[tuple[str, ...]] = ("other",)
    STRUCT_VARIANTS: ClassVar[tuple[str, ...]] = ()

    tag: str = Field(alias=".tag")

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {".tag": data}
        if not isinstance(data, dict):
            return data
        tag = data.get(".tag", data.get("tag"))
        if tag in cls.STRUCT_VARIANTS and tag not in data:
            inlined = {k: v for k, v in data.items() if k not in (".tag", "tag")}
            return {".tag": tag, tag: inlined}
        return data

    @field_validator("tag", mode="before")
    @classmethod
    def _open_tag(cls, value: Any) -> Any:
        if isinstance(value, str) and value not in cls.TAGS:
            if "other" in cls.TAGS:
                return "other"
            raise ValueError(f"Unknown {cls.__name__} tag: {value!r}")
        return value

    def is_tag(self, tag: str) -> bool:
        return self.tag == tag

    def __str__(self) -> str:
        value = getattr(self, self.tag, None) if self.tag in type(self).model_fields else None
        if value is None:
            return f"{type(self).__name__}.{self.tag}"
        return f"{type(self).__name__}.{self.tag}({value})"
