"""Structured data extraction from free-text agent output.

Coordinators answer in prose with an embedded JSON object. Extraction is
behind a small protocol so the regex scrape can be replaced by a provider's
native structured output without touching the engine.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Protocol, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)
_BRACED = re.compile(r"\{.*\}", re.DOTALL)

ModelT = TypeVar("ModelT", bound=BaseModel)


class StructuredOutputExtractor(Protocol):
    def extract(self, text: str) -> dict[str, Any] | None: ...


class RegexJsonExtractor:
    """Pull the first JSON object out of text.

    Fenced code blocks are tried first, then the outermost ``{...}`` span.
    """

    def extract(self, text: str) -> dict[str, Any] | None:
        if not text:
            return None
        candidates = [m.group(1) for m in _FENCED_JSON.finditer(text)]
        braced = _BRACED.search(text)
        if braced:
            candidates.append(braced.group(0))

        for candidate in candidates:
            try:
                data = json.loads(candidate)
            except json.JSONDecodeError:
                continue
            if isinstance(data, dict):
                return data
        logger.debug("No JSON object found in %d chars of output", len(text))
        return None


def extract_or(extractor: StructuredOutputExtractor, text: str, fallback: Any) -> Any:
    """Extracted mapping, or ``fallback`` when nothing usable was found."""
    data = extractor.extract(text)
    return fallback if data is None else data


def extract_model(
    extractor: StructuredOutputExtractor, text: str, model: type[ModelT]
) -> ModelT | None:
    """Extract and validate ``text`` against ``model``; ``None`` on any failure."""
    data = extractor.extract(text)
    if data is None:
        return None
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        logger.debug("Extracted JSON does not match %s: %s", model.__name__, e)
        return None


class PlanTaskPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: str = ""
    description: str = ""
    agent_id: str = Field(alias="agentId")
    dependencies: list[str] = Field(default_factory=list)
    priority: str = "medium"
    estimated_duration: str | None = Field(default=None, alias="estimatedDuration")
    deliverables: list[str] = Field(default_factory=list)
    inputs: Any = Field(default_factory=dict)


class PlanPayload(BaseModel):
    """Task breakdown returned by the coordinator."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    tasks: list[PlanTaskPayload] = Field(min_length=1)
    execution_order: str | None = Field(default=None, alias="executionOrder")
    success_criteria: list[str] | str | None = Field(default=None, alias="successCriteria")

    def criteria(self) -> list[str]:
        if self.success_criteria is None:
            return []
        if isinstance(self.success_criteria, str):
            return [self.success_criteria]
        return list(self.success_criteria)


class DecisionPayload(BaseModel):
    """Adaptive-mode verdict on whether to run the next task."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    should_execute: bool = Field(alias="shouldExecute")
    reason: str | None = None
    modifications: dict[str, Any] = Field(default_factory=dict)
