"""Agent handles and the registry the engine resolves them from.

An agent is anything with an async ``execute(prompt, ...)`` returning an
:class:`AgentResponse`. :class:`ProviderAgent` adapts an LLM provider to
that shape; tests and embedders can register their own handles.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from packflow.errors import AgentNotFoundError, PackflowError
from packflow.providers.base import CompletionRequest, Provider
from packflow.workflow.models import AgentConfig

from .models import TaskError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[dict[str, Any]], None]


class AgentMetadata(BaseModel):
    tokens_used: int = 0
    execution_time: int = 0
    tools_used: list[str] = Field(default_factory=list)


class AgentResponse(BaseModel):
    """What an agent hands back for one prompt."""

    success: bool
    output: Any = None
    metadata: AgentMetadata = Field(default_factory=AgentMetadata)
    error: TaskError | None = None

    @property
    def text(self) -> str:
        """Output flattened to text, for JSON extraction."""
        if self.output is None:
            return ""
        if isinstance(self.output, str):
            return self.output
        if isinstance(self.output, (list, tuple)):
            return "\n".join(str(part) for part in self.output)
        return str(self.output)


@runtime_checkable
class Agent(Protocol):
    async def execute(
        self,
        prompt: str,
        *,
        timeout: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> AgentResponse: ...


class ProviderAgent:
    """Runs prompts for one configured agent through an LLM provider.

    Args:
        config: Agent configuration; its ``system_prompt`` and ``model`` are
            forwarded with every request
        provider: Initialized provider
        execution_id: Optional run id attached to requests for tracing
    """

    def __init__(self, config: AgentConfig, provider: Provider, execution_id: str | None = None):
        self.config = config
        self.provider = provider
        self.execution_id = execution_id

    def _build_request(self, prompt: str) -> CompletionRequest:
        return CompletionRequest(
            prompt=prompt,
            system_prompt=self.config.system_prompt or None,
            model=self.config.model,
            agent_id=self.config.id,
            execution_id=self.execution_id,
            metadata={"agent_name": self.config.name or self.config.id},
        )

    async def execute(
        self,
        prompt: str,
        *,
        timeout: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> AgentResponse:
        if on_progress:
            on_progress({"agent_id": self.config.id, "stage": "started"})

        start = time.monotonic()
        request = self._build_request(prompt)
        try:
            call = self.provider.complete_async(request)
            if timeout:
                response = await asyncio.wait_for(call, timeout=timeout / 1000)
            else:
                response = await call
        except asyncio.TimeoutError:
            logger.warning("Agent %s timed out after %s ms", self.config.id, timeout)
            return AgentResponse(
                success=False,
                error=TaskError(
                    message=f"Agent {self.config.id} timed out after {timeout} ms",
                    code="TASK_TIMEOUT",
                ),
                metadata=AgentMetadata(execution_time=int((time.monotonic() - start) * 1000)),
            )
        except PackflowError as e:
            logger.warning("Agent %s provider call failed: %s", self.config.id, e.message)
            return AgentResponse(
                success=False,
                error=TaskError(message=e.message, code=e.code, details=e.details or None),
                metadata=AgentMetadata(execution_time=int((time.monotonic() - start) * 1000)),
            )

        elapsed = int((time.monotonic() - start) * 1000)
        if on_progress:
            on_progress({"agent_id": self.config.id, "stage": "completed", "duration_ms": elapsed})
        return AgentResponse(
            success=True,
            output=response.content,
            metadata=AgentMetadata(tokens_used=response.tokens_used, execution_time=elapsed),
        )


class AgentRegistry:
    """Agent configurations and their executable handles, keyed by id."""

    def __init__(self) -> None:
        self._configs: dict[str, AgentConfig] = {}
        self._handles: dict[str, Agent] = {}

    @classmethod
    def from_provider(cls, configs: Iterable[AgentConfig], provider: Provider) -> AgentRegistry:
        registry = cls()
        for config in configs:
            registry.register(config, ProviderAgent(config, provider))
        return registry

    def register(self, config: AgentConfig, handle: Agent) -> None:
        if config.id in self._configs:
            logger.debug("Replacing agent %s", config.id)
        self._configs[config.id] = config
        self._handles[config.id] = handle

    def unregister(self, agent_id: str) -> bool:
        self._handles.pop(agent_id, None)
        return self._configs.pop(agent_id, None) is not None

    def get_agent_by_id(self, agent_id: str) -> AgentConfig | None:
        return self._configs.get(agent_id)

    def get_handle(self, agent_id: str) -> Agent:
        """Return the handle for ``agent_id``.

        Raises:
            AgentNotFoundError: If no agent is registered under that id
        """
        handle = self._handles.get(agent_id)
        if handle is None:
            raise AgentNotFoundError(agent_id)
        return handle

    def agent_configs(self) -> list[AgentConfig]:
        return list(self._configs.values())

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._handles

    def __len__(self) -> int:
        return len(self._handles)
