from enum import StrEnum
from typing import Annotated, Literal
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, model_validator

from collector.core.languages import Language


class SourceUnit(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    content: str | bytes
    language: Language | None = None

    @property
    def is_remote(self) -> bool:
        return urlparse(self.path).scheme in ("http", "https")

    @property
    def text(self) -> str:
        if isinstance(self.content, bytes):
            return self.content.decode("utf-8", errors="replace")
        return self.content


class CommentSpan(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: int
    end: int
    body: str


class CollectionMode(StrEnum):
    CODE = "CODE"
    STRING = "STRING"
    BUFFER = "BUFFER"


class CollectionKind(BaseModel):
    model_config = ConfigDict(frozen=True)

    mode: CollectionMode
    language: Language | None = None

    @model_validator(mode="after")
    def _language_only_for_code(self) -> "CollectionKind":
        if (self.mode is CollectionMode.CODE) != (self.language is not None):
            raise ValueError("a language is required for CODE and not allowed otherwise")
        return self

    def __str__(self) -> str:
        if self.mode is CollectionMode.CODE:
            return f"CODE{{{self.language}}}"
        return str(self.mode)


class FunctionDefinition(BaseModel):
    type: Literal["define"] = "define"
    name: str
    input_type: str
    output_type: str
    code: str
    start: int
    end: int


class BlockOpen(BaseModel):
    type: Literal["open"] = "open"
    ref: str
    kind: CollectionKind
    functions: list[str] = Field(default_factory=list)
    start: int
    end: int


class BlockClose(BaseModel):
    type: Literal["close"] = "close"
    start: int
    end: int


Directive = Annotated[FunctionDefinition | BlockOpen | BlockClose, Field(discriminator="type")]


class CollectionBlock(BaseModel):
    model_config = ConfigDict(frozen=True)

    ref: str
    kind: CollectionKind
    functions: list[str] = Field(default_factory=list)
    start: int
    end: int
