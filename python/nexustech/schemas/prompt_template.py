"""Prompt template Pydantic schemas."""

from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

PlaceholderTypeValue = Literal["text", "number", "textarea", "dropdown"]
TemplateScope = Literal["all", "system", "mine"]

# =============================================================================
# Nested documents
# =============================================================================


class TemplatePlaceholder(BaseModel):
    """A fill-in slot referenced from template_content by name."""

    name: str = Field(..., min_length=1, max_length=100)
    label: str = Field(..., min_length=1, max_length=200)
    type: PlaceholderTypeValue
    default_value: str | None = None
    options: list[str] | None = None
    optional: bool = False
    description: str | None = None

    @model_validator(mode="after")
    def dropdown_needs_options(self) -> "TemplatePlaceholder":
        if self.type == "dropdown" and not self.options:
            raise ValueError("dropdown placeholders need at least one option")
        return self


class TemplateLlmConfig(BaseModel):
    model_name: str | None = None
    temperature: float | None = Field(default=None, ge=0, le=2, allow_inf_nan=False)
    max_tokens: int | None = Field(default=None, ge=1)
    top_p: float | None = Field(default=None, ge=0, le=1, allow_inf_nan=False)


# =============================================================================
# Request Schemas
# =============================================================================


class CreatePromptTemplateRequest(BaseModel):
    """Request body for creating a prompt template."""

    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    template_content: str = Field(..., min_length=1)
    is_active: bool = True
    icon: str | None = Field(default=None, max_length=32)
    tag_ids: list[UUID] | None = None
    placeholders: list[TemplatePlaceholder] | None = None
    llm_config: TemplateLlmConfig | None = None

    @model_validator(mode="after")
    def placeholder_names_unique(self) -> "CreatePromptTemplateRequest":
        names = [placeholder.name for placeholder in self.placeholders or []]
        if len(names) != len(set(names)):
            raise ValueError("placeholder names must be unique")
        return self


class UpdatePromptTemplateRequest(BaseModel):
    """Partial update; omitted fields are unchanged."""

    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    template_content: str | None = Field(default=None, min_length=1)
    is_active: bool | None = None
    icon: str | None = Field(default=None, max_length=32)
    tag_ids: list[UUID] | None = None
    placeholders: list[TemplatePlaceholder] | None = None
    llm_config: TemplateLlmConfig | None = None


# =============================================================================
# Response Schemas
# =============================================================================


class PromptTemplateOut(BaseModel):
    id: UUID
    name: str
    description: str
    template_content: str
    is_system_defined: bool
    is_active: bool
    icon: str | None
    tag_ids: list[UUID] | None
    placeholders: list[TemplatePlaceholder] | None
    llm_config: TemplateLlmConfig | None
    usage_count: int
    last_used_at: int | None
    owner_id: str | None
    created_at: int
    updated_at: int

    model_config = ConfigDict(from_attributes=True)
