from __future__ import annotations

"""Structured reply documents and the chunk fold that builds them.

A document is an ordered tuple of typed parts. Streamed replies arrive as
chunks that either append a part, extend the last part's text, or carry
side-channel metadata. ``apply_chunk`` is a pure fold over those chunks:
parts are only ever appended or extended, never removed or reordered.

Unknown part or chunk discriminants are kept as ``OpaquePart`` so a newer
provider format never drops content.
"""

from dataclasses import dataclass, field, replace
from typing import Any, ClassVar, Dict, Iterable, List, Mapping, Optional, Tuple, Type, Union

# Provider placeholder that shows up in sample payloads and must never be taken for a real id.
PLACEHOLDER_CHAT_ID = "hello-world"


@dataclass(frozen=True)
class Part:
    kind: ClassVar[str] = "text"
    text_key: ClassVar[str] = "text"

    text: str = ""
    data: Mapping[str, Any] = field(default_factory=dict)

    def extend(self, delta: str) -> "Part":
        return replace(self, text=self.text + delta)

    def to_dict(self) -> Dict[str, Any]:
        out = dict(self.data)
        out["type"] = self.kind
        out[self.text_key] = self.text
        return out

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "Part":
        data = {k: v for k, v in raw.items() if k not in ("type", cls.text_key)}
        value = raw.get(cls.text_key)
        return cls(text=value if isinstance(value, str) else "", data=data)


@dataclass(frozen=True)
class TextPart(Part):
    kind: ClassVar[str] = "text"


@dataclass(frozen=True)
class ReasoningPart(Part):
    kind: ClassVar[str] = "reasoning"


@dataclass(frozen=True)
class TaskPart(Part):
    kind: ClassVar[str] = "task"


@dataclass(frozen=True)
class CodeEditPart(Part):
    kind: ClassVar[str] = "code-edit"
    text_key: ClassVar[str] = "code"


@dataclass(frozen=True)
class MathPart(Part):
    kind: ClassVar[str] = "math"
    text_key: ClassVar[str] = "latex"


@dataclass(frozen=True)
class OpaquePart(Part):
    """A part whose discriminant is not known; its raw fields are kept verbatim."""

    kind: ClassVar[str] = "opaque"

    type_name: str = ""

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        if self.type_name:
            out["type"] = self.type_name
        else:
            out.pop("type", None)
        if not self.text and self.text_key not in self.data:
            out.pop(self.text_key, None)
        return out

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "OpaquePart":
        type_name = raw.get("type")
        data = {k: v for k, v in raw.items() if k not in ("type", cls.text_key)}
        value = raw.get(cls.text_key)
        return cls(
            text=value if isinstance(value, str) else "",
            data=data,
            type_name=type_name if isinstance(type_name, str) else "",
        )


PART_TYPES: Dict[str, Type[Part]] = {
    cls.kind: cls for cls in (TextPart, ReasoningPart, TaskPart, CodeEditPart, MathPart)
}


def parse_part(raw: Any) -> Part:
    if isinstance(raw, str):
        return TextPart(text=raw)
    if not isinstance(raw, Mapping):
        raise ValueError(f"part must be an object, got {type(raw).__name__}")
    part_cls = PART_TYPES.get(str(raw.get("type")))
    if part_cls is None:
        return OpaquePart.from_raw(raw)
    return part_cls.from_raw(raw)


@dataclass(frozen=True)
class Document:
    parts: Tuple[Part, ...] = ()
    complete: bool = False

    def __len__(self) -> int:
        return len(self.parts)

    @property
    def last(self) -> Optional[Part]:
        return self.parts[-1] if self.parts else None

    @property
    def text(self) -> str:
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))

    def finalize(self) -> "Document":
        return replace(self, complete=True)

    def to_list(self) -> List[Dict[str, Any]]:
        return [p.to_dict() for p in self.parts]

    @classmethod
    def from_list(cls, items: Iterable[Any], complete: bool = True) -> "Document":
        return cls(parts=tuple(parse_part(item) for item in items), complete=complete)


# Chunks -------------------------------------------------------------------


@dataclass(frozen=True)
class AppendPart:
    part: Part
    kind: ClassVar[str] = "append-part"


@dataclass(frozen=True)
class ExtendLastPart:
    delta: str
    kind: ClassVar[str] = "extend-last-part"


@dataclass(frozen=True)
class Metadata:
    payload: Mapping[str, Any]
    kind: ClassVar[str] = "metadata"


Chunk = Union[AppendPart, ExtendLastPart, Metadata]


def parse_chunk(obj: Any) -> Chunk:
    """Turn one decoded protocol unit into a chunk.

    Raises ValueError when a known chunk kind is missing its payload. An
    unknown ``type`` becomes an appended opaque part.
    """
    if not isinstance(obj, Mapping):
        raise ValueError("chunk must be a JSON object")
    kind = obj.get("type")
    if kind == AppendPart.kind:
        if "part" not in obj:
            raise ValueError("append-part chunk without a part")
        return AppendPart(parse_part(obj["part"]))
    if kind == ExtendLastPart.kind:
        delta = obj.get("delta")
        if not isinstance(delta, str):
            raise ValueError("extend-last-part chunk needs a string delta")
        return ExtendLastPart(delta)
    if kind == Metadata.kind:
        payload = obj.get("payload")
        if not isinstance(payload, Mapping):
            raise ValueError("metadata chunk needs an object payload")
        return Metadata(dict(payload))
    return AppendPart(OpaquePart.from_raw(obj))


def apply_chunk(document: Document, chunk: Chunk) -> Document:
    if isinstance(chunk, AppendPart):
        return replace(document, parts=document.parts + (chunk.part,))
    if isinstance(chunk, ExtendLastPart):
        last = document.last
        if last is None:
            return replace(document, parts=(TextPart(text=chunk.delta),))
        return replace(document, parts=document.parts[:-1] + (last.extend(chunk.delta),))
    # metadata never touches the document
    return document


# Provider id search --------------------------------------------------------


def _accept_chat_id(value: Any) -> bool:
    return isinstance(value, str) and len(value) > 10 and value != PLACEHOLDER_CHAT_ID


def _accept_plain_id(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    return ("-" in value and len(value) > 20) or (len(value) > 15 and value != PLACEHOLDER_CHAT_ID)


def find_chat_id(obj: Any) -> Optional[str]:
    """Depth-first search for a provider-assigned chat id.

    Within one object a ``chatId`` field wins over an ``id`` field; across
    objects the first acceptable value in traversal order is returned.
    """
    if isinstance(obj, Document):
        obj = obj.to_list()
    if isinstance(obj, Part):
        obj = obj.to_dict()
    if isinstance(obj, Mapping):
        if _accept_chat_id(obj.get("chatId")):
            return obj["chatId"]
        if _accept_plain_id(obj.get("id")):
            return obj["id"]
        children: Iterable[Any] = obj.values()
    elif isinstance(obj, (list, tuple)):
        children = obj
    else:
        return None
    for child in children:
        found = find_chat_id(child)
        if found:
            return found
    return None
