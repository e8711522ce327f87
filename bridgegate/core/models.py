"""Wire models for the source (messages) and canonical (chat completions) protocols."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator


class ContentBlock(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = ""
    text: str | None = None


class SourceMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: str = ""
    # str | list[ContentBlock] | 其他任意形状，保持解码后的原值交给 extractor
    content: Any = ""


class SourceRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    model: str = ""
    messages: list[SourceMessage] = Field(default_factory=list)
    max_tokens: StrictInt | None = None
    temperature: float | None = None
    top_p: float | None = None
    system: Any = None

    @field_validator("max_tokens", "temperature", "top_p", mode="before")
    @classmethod
    def _reject_non_numeric(cls, value: Any) -> Any:
        # lax 模式会把 "1.5" / true 转成数字，这里按 JSON 类型严格拒绝
        if isinstance(value, (bool, str)):
            raise ValueError("must be a JSON number")
        return value


class CanonicalMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: str
    content: str


class CanonicalRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    model: str
    messages: tuple[CanonicalMessage, ...] = ()
    max_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class ChoiceMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    content: str | None = None


class Choice(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: ChoiceMessage = Field(default_factory=ChoiceMessage)
    finish_reason: str | None = None

    @field_validator("message", mode="before")
    @classmethod
    def _null_message(cls, value: Any) -> Any:
        return ChoiceMessage() if value is None else value


class CanonicalUsage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    prompt_tokens: int | None = None
    completion_tokens: int | None = None


class CanonicalResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    model: str = ""
    choices: list[Choice] = Field(default_factory=list)
    usage: CanonicalUsage = Field(default_factory=CanonicalUsage)
    error: Any = None

    # 上游可能对空字段返回 null，按零值处理而不是判为无效响应
    @field_validator("id", "model", mode="before")
    @classmethod
    def _null_text(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("choices", mode="before")
    @classmethod
    def _null_choices(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("usage", mode="before")
    @classmethod
    def _null_usage(cls, value: Any) -> Any:
        return CanonicalUsage() if value is None else value


class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class SourceUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0


class SourceResponse(BaseModel):
    id: str
    type: Literal["message"] = "message"
    role: Literal["assistant"] = "assistant"
    content: list[TextContent] = Field(default_factory=list)
    model: str = ""
    stop_reason: str | None = None
    stop_sequence: None = None
    usage: SourceUsage = Field(default_factory=SourceUsage)
