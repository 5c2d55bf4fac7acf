"""Workflow execution engine.

A run takes a :class:`TaskPlan` (from the coordinator via :meth:`execute`,
or from workflow stages via :meth:`execute_workflow`) and dispatches its
tasks to agents in one of three modes:

- ``sequential``: one task at a time in plan order; each prompt sees every
  earlier result.
- ``parallel``: tasks run in dependency batches with ``asyncio.gather``;
  batch-mates never see each other's output.
- ``adaptive``: sequential, but the coordinator decides before each task
  whether it runs and may adjust its inputs.

Task failures are recorded and the run carries on. Only fatal conditions
(missing agents, planning failure, invalid graphs, aborts, cancellation)
end a run early, and even then :meth:`execute` returns a result instead of
raising.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from packflow.config.settings import Settings, get_settings
from packflow.errors import (
    AgentNotFoundError,
    AgentTimeoutError,
    CoordinatorNotFoundError,
    DependencyFailedError,
    ExecutionCancelledError,
    InvalidDependencyGraphError,
    PackflowError,
    PlanningError,
    PlanRejectedError,
    TaskExecutionError,
    WorkflowError,
)
from packflow.utils.retry import RetryConfig
from packflow.workflow.conditions import StageOutcome, StageStatus, evaluate_condition
from packflow.workflow.dependencies import validate_dependencies
from packflow.workflow.graph import build_dependency_graph, topological_levels
from packflow.workflow.models import ConditionType, WorkflowConfig, utcnow
from packflow.workflow.planner import ExecutionPlan, generate_execution_plan

from .agents import Agent, AgentRegistry, AgentResponse
from .context import SharedContext
from .control import RunControl
from .events import EventSink, EventType, LoggingEventSink, WorkflowEvent
from .extraction import (
    DecisionPayload,
    PlanPayload,
    RegexJsonExtractor,
    StructuredOutputExtractor,
    extract_model,
)
from .models import (
    SYNTHESIS_KEY,
    DependencyFailurePolicy,
    EngineConfig,
    ExecutionMode,
    ExecutionRecord,
    PlannedTask,
    RunMetadata,
    RunStatus,
    TaskError,
    TaskMetadata,
    TaskPlan,
    TaskResult,
    WorkflowRequest,
    WorkflowResult,
)
from .planning import create_default_plan, plan_from_payload, plan_from_workflow
from .prompts import (
    build_decision_prompt,
    build_planning_prompt,
    build_synthesis_prompt,
    build_task_prompt,
)
from .store import ExecutionStore, create_execution_store

logger = logging.getLogger(__name__)

PlanConfirmation = Callable[[TaskPlan], "bool | Awaitable[bool]"]


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _merge_inputs(inputs: Any, modifications: dict[str, Any]) -> Any:
    if isinstance(inputs, dict):
        return {**inputs, **modifications}
    if inputs in (None, "", []):
        return dict(modifications)
    return {"input": inputs, **modifications}


@dataclass
class _Run:
    """Mutable bookkeeping for one run."""

    execution_id: str
    request: WorkflowRequest
    context: SharedContext
    workflow_id: str | None = None
    status: RunStatus = RunStatus.PENDING
    plan: TaskPlan | None = None
    execution_plan: ExecutionPlan | None = None
    results: dict[str, TaskResult] = field(default_factory=dict)
    stage_gates: dict[str, str | None] = field(default_factory=dict)
    agents_used: list[str] = field(default_factory=list)
    overhead_tokens: int = 0
    dispatched: bool = False
    created_at: datetime = field(default_factory=utcnow)
    started: float = field(default_factory=time.monotonic)

    def use_agent(self, agent_id: str) -> None:
        if agent_id not in self.agents_used:
            self.agents_used.append(agent_id)

    def log_extra(self, **fields: Any) -> dict[str, Any]:
        return {"execution_id": self.execution_id, "workflow_id": self.workflow_id, **fields}


class WorkflowEngine:
    """Runs task plans against a team of agents.

    Args:
        config: Team, mode and execution options
        registry: Agent configurations and handles
        settings: Engine settings, ``get_settings()`` when omitted
        store: Where run records are saved; chosen from settings when omitted
        events: Event sink, logging only when omitted
        extractor: JSON extraction strategy for coordinator output
        control: Shared pause/cancel handle
        confirm_plan: Called with the plan when a request requires
            confirmation; may be sync or async, returning False rejects it
    """

    def __init__(
        self,
        config: EngineConfig,
        registry: AgentRegistry,
        *,
        settings: Settings | None = None,
        store: ExecutionStore | None = None,
        events: EventSink | None = None,
        extractor: StructuredOutputExtractor | None = None,
        control: RunControl | None = None,
        confirm_plan: PlanConfirmation | None = None,
    ):
        self.config = config
        self.registry = registry
        self.settings = settings or get_settings()
        self.store = store or create_execution_store(self.settings)
        self.events: EventSink = events or LoggingEventSink()
        self.extractor: StructuredOutputExtractor = extractor or RegexJsonExtractor()
        self.control = control or RunControl()
        self.confirm_plan = confirm_plan
        self._session_context: SharedContext | None = None
        self._current: _Run | None = None

    @property
    def status(self) -> RunStatus:
        return self._current.status if self._current else RunStatus.PENDING

    @property
    def execution_id(self) -> str | None:
        return self._current.execution_id if self._current else None

    @property
    def shared_context(self) -> SharedContext | None:
        return self._current.context if self._current else None

    def pause(self) -> None:
        self.control.pause()

    def resume(self) -> None:
        self.control.resume()

    def cancel(self) -> None:
        self.control.cancel()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def execute(self, request: WorkflowRequest) -> WorkflowResult:
        """Plan ``request`` with the coordinator and run the plan."""
        run = self._start_run(request)
        try:
            self._set_status(run, RunStatus.PLANNING)
            run.plan = await self._create_plan(run)
            await self._confirm(run)
            await self._dispatch(run)
            return await self._complete(run)
        except Exception as e:
            return self._fail(run, e)

    async def execute_workflow(
        self, workflow: WorkflowConfig, request: WorkflowRequest | None = None
    ) -> WorkflowResult:
        """Run the stages of ``workflow`` as a task plan.

        The dependency graph is validated first; an invalid graph fails the
        run before any task is dispatched. The workflow's execution count is
        bumped once tasks have been dispatched.
        """
        request = request or WorkflowRequest(
            description=workflow.description or workflow.name or workflow.id
        )
        run = self._start_run(request, workflow_id=workflow.id)
        try:
            validation = validate_dependencies(workflow)
            if not validation.is_valid:
                raise InvalidDependencyGraphError(
                    f"Workflow {workflow.id} has an invalid dependency graph",
                    validation.error_messages,
                )
            self._set_status(run, RunStatus.PLANNING)
            graph = build_dependency_graph(workflow)
            run.execution_plan = generate_execution_plan(workflow, graph)
            run.plan = plan_from_workflow(workflow, graph)
            await self._confirm(run)
            await self._dispatch(run)
            result = await self._complete(run)
        except Exception as e:
            result = self._fail(run, e)

        if run.dispatched:
            workflow.record_execution()
        return result

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    def _start_run(self, request: WorkflowRequest, workflow_id: str | None = None) -> _Run:
        # A cancel or pause belongs to the run it was issued against
        if self.control.is_cancelled or self.control.is_paused:
            logger.debug("Clearing pause/cancel left over from a previous run")
        self.control.reset()

        if self.config.execution.cross_session_sharing and self._session_context is not None:
            context = self._session_context
        else:
            context = SharedContext()
        self._session_context = context

        run = _Run(
            execution_id=f"exec-{uuid.uuid4().hex[:12]}",
            request=request,
            context=context,
            workflow_id=workflow_id or self.config.id,
        )
        self._current = run
        logger.info(
            "Starting execution %s in %s mode",
            run.execution_id,
            self.config.mode.value,
            extra=run.log_extra(),
        )
        return run

    def _set_status(self, run: _Run, status: RunStatus) -> None:
        previous = run.status
        run.status = status
        logger.debug(
            "Execution %s: %s -> %s",
            run.execution_id,
            previous.value,
            status.value,
            extra=run.log_extra(),
        )
        self._emit(run, EventType.STATUS, status=status.value, previous=previous.value)

    def _emit(
        self, run: _Run, event_type: EventType, task_id: str | None = None, **payload: Any
    ) -> None:
        event = WorkflowEvent(
            type=event_type, execution_id=run.execution_id, task_id=task_id, payload=payload
        )
        try:
            self.events.emit(event)
        except Exception as e:
            logger.warning("Event sink failed for %s: %s", event_type.value, e)

    async def _confirm(self, run: _Run) -> None:
        if not run.request.require_confirmation:
            return
        plan = run.plan
        if self.confirm_plan is None:
            logger.info(
                "Plan %s requires confirmation but no callback is set; proceeding",
                plan.id,
                extra=run.log_extra(),
            )
        else:
            approved = self.confirm_plan(plan)
            if inspect.isawaitable(approved):
                approved = await approved
            if not approved:
                raise PlanRejectedError(f"Plan {plan.id} was rejected")
        self._set_status(run, RunStatus.CONFIRMED)

    async def _dispatch(self, run: _Run) -> None:
        if self.config.mode == ExecutionMode.ADAPTIVE:
            self._require_coordinator("adaptive execution")
        if self.config.execution.result_synthesis:
            self._require_coordinator("synthesis")

        self._set_status(run, RunStatus.RUNNING)
        run.dispatched = True
        if self.config.mode == ExecutionMode.PARALLEL:
            await self._run_parallel(run)
        elif self.config.mode == ExecutionMode.ADAPTIVE:
            await self._run_adaptive(run)
        else:
            await self._run_sequential(run)

    async def _checkpoint(self, run: _Run) -> None:
        """Honour cancel and pause between tasks or batches."""
        if self.control.is_cancelled:
            raise ExecutionCancelledError("Execution was cancelled")
        if not self.control.is_paused:
            return

        self._set_status(run, RunStatus.PAUSED)
        self._save(run)
        logger.info("Execution %s paused", run.execution_id, extra=run.log_extra())
        await self.control.wait_if_paused()
        if self.control.is_cancelled:
            raise ExecutionCancelledError("Execution was cancelled while paused")
        self._set_status(run, RunStatus.RUNNING)
        logger.info("Execution %s resumed", run.execution_id, extra=run.log_extra())

    async def _complete(self, run: _Run) -> WorkflowResult:
        if self.control.is_cancelled:
            raise ExecutionCancelledError("Execution was cancelled")
        await self._synthesize(run)

        self._set_status(run, RunStatus.COMPLETED)
        result = self._build_result(run, success=True)
        self._emit(
            run,
            EventType.EXECUTION_COMPLETE,
            tasks=len(result.results),
            failed=len(result.failed_tasks),
            execution_time=result.metadata.execution_time,
        )
        self._save(run, result)
        logger.info(
            "Execution %s completed: %d results, %d failed",
            run.execution_id,
            len(result.results),
            len(result.failed_tasks),
            extra=run.log_extra(duration_ms=result.metadata.execution_time),
        )
        return result

    def _fail(self, run: _Run, exc: Exception) -> WorkflowResult:
        if isinstance(exc, PackflowError):
            error = TaskError(message=exc.message, code=exc.code, details=exc.details or None)
            logger.error(
                "Execution %s failed [%s]: %s",
                run.execution_id,
                exc.code,
                exc.message,
                extra=run.log_extra(),
            )
        else:
            error = TaskError(
                message=str(exc) or type(exc).__name__,
                code=WorkflowError.code,
                details={"type": type(exc).__name__},
            )
            logger.error(
                "Execution %s failed unexpectedly",
                run.execution_id,
                exc_info=exc,
                extra=run.log_extra(),
            )

        cancelled = isinstance(exc, (ExecutionCancelledError, PlanRejectedError))
        self._set_status(run, RunStatus.CANCELLED if cancelled else RunStatus.FAILED)
        result = self._build_result(run, success=False, error=error)
        self._emit(run, EventType.EXECUTION_ERROR, code=error.code, message=error.message)
        self._save(run, result)
        return result

    def _build_result(
        self, run: _Run, success: bool, error: TaskError | None = None
    ) -> WorkflowResult:
        tokens = sum(r.metadata.tokens_used for r in run.results.values()) + run.overhead_tokens
        return WorkflowResult(
            success=success,
            execution_id=run.execution_id,
            status=run.status,
            plan=run.plan,
            execution_plan=run.execution_plan,
            results=dict(run.results),
            metadata=RunMetadata(
                execution_time=_elapsed_ms(run.started),
                tokens_used=tokens,
                agents_used=list(run.agents_used),
            ),
            error=error,
        )

    def _save(self, run: _Run, result: WorkflowResult | None = None) -> None:
        record = ExecutionRecord(
            id=run.execution_id,
            workflow_id=run.workflow_id,
            status=run.status,
            request=run.request,
            result=result,
            shared_context=run.context.snapshot(),
            created_at=run.created_at,
            updated_at=utcnow(),
        )
        try:
            self.store.save(record)
        except Exception as e:
            logger.warning(
                "Could not save execution record %s: %s", run.execution_id, e, extra=run.log_extra()
            )

    # ------------------------------------------------------------------
    # Coordinator
    # ------------------------------------------------------------------

    def _require_coordinator(self, purpose: str) -> Agent:
        coordinator_id = self.config.coordinator_id
        if not coordinator_id or coordinator_id not in self.registry:
            raise CoordinatorNotFoundError(coordinator_id or "(unset)", purpose)
        return self.registry.get_handle(coordinator_id)

    async def _call_coordinator(self, run: _Run, coordinator: Agent, prompt: str) -> AgentResponse:
        timeout = self.settings.default_task_timeout_ms
        response = await self.control.race(
            asyncio.wait_for(coordinator.execute(prompt, timeout=timeout), timeout / 1000)
        )
        run.use_agent(self.config.coordinator_id)
        return response

    async def _create_plan(self, run: _Run) -> TaskPlan:
        coordinator = self._require_coordinator("planning")
        prompt = build_planning_prompt(self.config, run.request)
        try:
            response = await self._call_coordinator(run, coordinator, prompt)
        except ExecutionCancelledError:
            raise
        except asyncio.TimeoutError as e:
            raise PlanningError("Coordinator timed out while planning") from e
        except Exception as e:
            raise PlanningError(f"Coordinator failed while planning: {e}") from e

        run.overhead_tokens += response.metadata.tokens_used
        if not response.success:
            message = response.error.message if response.error else "no plan returned"
            raise PlanningError(f"Coordinator could not produce a plan: {message}")

        payload = extract_model(self.extractor, response.text, PlanPayload)
        plan = None
        if payload is not None:
            plan = plan_from_payload(payload, self.config, run.request, self.settings)
        if plan is None:
            logger.warning(
                "Could not use the coordinator's plan, falling back to the default plan",
                extra=run.log_extra(),
            )
            plan = create_default_plan(self.config, run.request, self.settings)

        logger.info(
            "Plan %s has %d tasks (%s)",
            plan.id,
            len(plan.tasks),
            plan.source,
            extra=run.log_extra(),
        )
        return plan

    async def _decide(
        self, run: _Run, coordinator: Agent, task: PlannedTask
    ) -> DecisionPayload | None:
        """Ask whether ``task`` should run; ``None`` means run it as planned."""
        prompt = build_decision_prompt(task, run.results)
        try:
            response = await self._call_coordinator(run, coordinator, prompt)
        except ExecutionCancelledError:
            raise
        except Exception as e:
            logger.warning(
                "Decision for task %s failed, executing as planned: %s",
                task.id,
                e,
                extra=run.log_extra(task_id=task.id),
            )
            return None

        run.overhead_tokens += response.metadata.tokens_used
        decision = None
        if response.success:
            decision = extract_model(self.extractor, response.text, DecisionPayload)
        if decision is None:
            logger.warning(
                "Could not parse decision for task %s, executing as planned",
                task.id,
                extra=run.log_extra(task_id=task.id),
            )
        return decision

    async def _synthesize(self, run: _Run) -> None:
        if not self.config.execution.result_synthesis:
            return
        coordinator = self._require_coordinator("synthesis")
        prompt = build_synthesis_prompt(run.request, run.results)
        started = time.monotonic()
        try:
            response = await self._call_coordinator(run, coordinator, prompt)
        except ExecutionCancelledError:
            raise
        except Exception as e:
            logger.warning(
                "Synthesis failed, keeping individual results: %s", e, extra=run.log_extra()
            )
            return

        result = self._to_result(response, started)
        if not result.success:
            logger.warning(
                "Synthesis failed, keeping individual results: %s",
                result.error.message if result.error else "unknown error",
                extra=run.log_extra(),
            )
            return
        run.results[SYNTHESIS_KEY] = result
        self._emit(run, EventType.TASK_COMPLETE, SYNTHESIS_KEY, success=True, skipped=False)

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------

    async def _run_sequential(self, run: _Run) -> None:
        for task in run.plan.tasks:
            await self._checkpoint(run)
            reason = self._gate(run, task)
            if reason:
                self._record(run, task, TaskResult.skip(reason))
                continue
            result = await self._invoke(run, task, self._task_prompt(run, task))
            self._record(run, task, result)

    async def _run_adaptive(self, run: _Run) -> None:
        coordinator = self._require_coordinator("adaptive execution")
        for task in run.plan.tasks:
            await self._checkpoint(run)
            reason = self._gate(run, task)
            if reason:
                self._record(run, task, TaskResult.skip(reason))
                continue

            decision = await self._decide(run, coordinator, task)
            if decision is not None and not decision.should_execute:
                self._record(
                    run, task, TaskResult.skip(decision.reason or "Skipped by coordinator")
                )
                continue
            if decision is not None and decision.modifications:
                task = task.model_copy(
                    update={"inputs": _merge_inputs(task.inputs, decision.modifications)}
                )

            result = await self._invoke(run, task, self._task_prompt(run, task))
            self._record(run, task, result)

    async def _run_parallel(self, run: _Run) -> None:
        tasks = {task.id: task for task in run.plan.tasks}
        edges = [(dep, task.id) for task in run.plan.tasks for dep in task.dependencies]
        limit = self.settings.parallel_limit
        semaphore = asyncio.Semaphore(limit) if limit > 0 else None

        for batch in topological_levels(tasks, edges):
            await self._checkpoint(run)
            runnable: list[PlannedTask] = []
            for task_id in batch:
                task = tasks[task_id]
                reason = self._gate(run, task)
                if reason:
                    self._record(run, task, TaskResult.skip(reason))
                else:
                    runnable.append(task)

            for task in runnable:
                self._resolve_agent(task)
            # Prompts are built before dispatch so batch-mates stay invisible.
            prompts = {task.id: self._task_prompt(run, task) for task in runnable}

            logger.debug(
                "Dispatching batch of %d tasks", len(runnable), extra=run.log_extra()
            )
            outcomes = await asyncio.gather(
                *(self._bounded(semaphore, self._invoke(run, t, prompts[t.id])) for t in runnable),
                return_exceptions=True,
            )
            for task, outcome in zip(runnable, outcomes, strict=True):
                if isinstance(outcome, BaseException):
                    outcome = TaskResult.failure(
                        str(outcome) or type(outcome).__name__,
                        TaskExecutionError.code,
                        {"type": type(outcome).__name__},
                    )
                self._record(run, task, outcome)

    @staticmethod
    async def _bounded(
        semaphore: asyncio.Semaphore | None, call: Awaitable[TaskResult]
    ) -> TaskResult:
        if semaphore is None:
            return await call
        async with semaphore:
            return await call

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def _resolve_agent(self, task: PlannedTask) -> Agent:
        if task.agent_id not in self.registry:
            raise AgentNotFoundError(task.agent_id, task.id)
        return self.registry.get_handle(task.agent_id)

    def _gate(self, run: _Run, task: PlannedTask) -> str | None:
        """Skip reason for ``task``, or ``None`` when it should run.

        Raises:
            DependencyFailedError: Under the ``abort`` policy
        """
        policy = self.config.execution.on_dependency_failure
        for dep in task.dependencies:
            dep_result = run.results.get(dep)
            if dep_result is None or dep_result.success:
                continue
            if policy == DependencyFailurePolicy.ABORT:
                raise DependencyFailedError(task.id, dep)
            if policy == DependencyFailurePolicy.SKIP:
                return f"dependency {dep} failed"
            break

        if task.stage_id:
            return self._stage_gate(run, task.stage_id)
        return None

    def _stage_gate(self, run: _Run, stage_id: str) -> str | None:
        if stage_id in run.stage_gates:
            return run.stage_gates[stage_id]

        reason = None
        for edge in run.plan.stage_dependencies:
            if edge.to_stage != stage_id or edge.from_stage == stage_id:
                continue
            upstream = self._stage_outcome(run, edge.from_stage)
            if not evaluate_condition(edge.condition, upstream):
                if edge.condition.type == ConditionType.CUSTOM:
                    label = edge.condition.custom_expression
                else:
                    label = edge.condition.type.value
                reason = f"condition '{label}' on {edge.from_stage} -> {stage_id} not met"
                logger.warning(
                    "Skipping stage %s: %s",
                    stage_id,
                    reason,
                    extra=run.log_extra(stage_id=stage_id),
                )
                break

        run.stage_gates[stage_id] = reason
        return reason

    def _stage_outcome(self, run: _Run, stage_id: str) -> StageOutcome:
        task_ids = run.plan.stage_tasks(stage_id)
        if not task_ids:
            skipped = self._stage_gate(run, stage_id) is not None
            return StageOutcome(
                stage_id=stage_id,
                status=StageStatus.SKIPPED if skipped else StageStatus.SUCCESS,
            )
        results = {
            task_id: run.results[task_id].model_dump(mode="json")
            for task_id in task_ids
            if task_id in run.results
        }
        return StageOutcome.from_results(stage_id, results)

    def _task_prompt(self, run: _Run, task: PlannedTask) -> str:
        dependency_results = {d: run.results[d] for d in task.dependencies if d in run.results}
        shared = None
        if self.config.execution.shared_context:
            shared = {
                key: value
                for key, value in run.context.outputs().items()
                if key.removesuffix("_output") not in dependency_results
            }
        return build_task_prompt(task, dependency_results, shared)

    def _task_timeout(self, run: _Run, task: PlannedTask) -> int:
        if run.request.timeout:
            return min(task.timeout, run.request.timeout)
        return task.timeout

    def _retry_config(self, task: PlannedTask) -> RetryConfig:
        policy = task.retry_policy
        if not self.config.execution.auto_retry or policy is None:
            return RetryConfig()
        return RetryConfig.from_backoff_ms(
            policy.max_retries, policy.backoff_ms, self.settings.max_retry_backoff_ms
        )

    async def _invoke(self, run: _Run, task: PlannedTask, prompt: str) -> TaskResult:
        """Run ``task`` with retries; only a missing agent raises."""
        agent = self._resolve_agent(task)
        retry = self._retry_config(task)
        timeout = self._task_timeout(run, task)

        attempts = 0
        while True:
            attempts += 1
            result = await self._attempt(run, task, agent, prompt, timeout)
            if result.success or attempts >= retry.max_attempts:
                break
            if result.error and result.error.code == ExecutionCancelledError.code:
                break
            delay = retry.calculate_delay(attempts - 1)
            logger.warning(
                "Task %s failed [%s], retrying in %.1fs",
                task.id,
                result.error.code if result.error else "?",
                delay,
                extra=run.log_extra(task_id=task.id, attempt=attempts),
            )
            try:
                await self.control.race(asyncio.sleep(delay))
            except ExecutionCancelledError:
                break

        result.metadata.attempts = attempts
        return result

    async def _attempt(
        self, run: _Run, task: PlannedTask, agent: Agent, prompt: str, timeout: int
    ) -> TaskResult:
        started = time.monotonic()
        run.use_agent(task.agent_id)

        def on_progress(progress: dict[str, Any]) -> None:
            self._emit(run, EventType.PROGRESS, task.id, **progress)

        try:
            response = await self.control.race(
                asyncio.wait_for(
                    agent.execute(prompt, timeout=timeout, on_progress=on_progress),
                    timeout / 1000,
                )
            )
        except ExecutionCancelledError:
            return TaskResult.failure(
                f"Task {task.id} was cancelled",
                ExecutionCancelledError.code,
                execution_time=_elapsed_ms(started),
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Task %s timed out after %d ms",
                task.id,
                timeout,
                extra=run.log_extra(task_id=task.id, agent_id=task.agent_id),
            )
            return TaskResult.failure(
                f"Task {task.id} timed out after {timeout} ms",
                AgentTimeoutError.code,
                {"timeout_ms": timeout},
                execution_time=_elapsed_ms(started),
            )
        except Exception as e:
            logger.warning(
                "Task %s raised %s: %s",
                task.id,
                type(e).__name__,
                e,
                extra=run.log_extra(task_id=task.id, agent_id=task.agent_id),
            )
            return TaskResult.failure(
                str(e) or type(e).__name__,
                TaskExecutionError.code,
                {"type": type(e).__name__},
                execution_time=_elapsed_ms(started),
            )
        return self._to_result(response, started)

    @staticmethod
    def _to_result(response: AgentResponse, started: float) -> TaskResult:
        error = None
        if not response.success:
            error = response.error or TaskError(
                message="Agent reported failure", code="AGENT_ERROR"
            )
        return TaskResult(
            success=response.success,
            output=response.output,
            metadata=TaskMetadata(
                execution_time=response.metadata.execution_time or _elapsed_ms(started),
                tokens_used=response.metadata.tokens_used,
                tools_used=list(response.metadata.tools_used),
            ),
            error=error,
        )

    def _record(self, run: _Run, task: PlannedTask, result: TaskResult) -> None:
        run.results[task.id] = result
        if self.config.execution.shared_context or self.config.mode == ExecutionMode.ADAPTIVE:
            run.context.record(task.id, result)

        extra = run.log_extra(
            task_id=task.id,
            agent_id=task.agent_id,
            stage_id=task.stage_id,
            duration_ms=result.metadata.execution_time,
        )
        if result.skipped:
            logger.info("Task %s skipped: %s", task.id, result.reason, extra=extra)
        elif result.success:
            logger.info("Task %s completed", task.id, extra=extra)
        else:
            logger.error(
                "Task %s failed [%s]: %s",
                task.id,
                result.error.code if result.error else "?",
                result.error.message if result.error else "",
                extra=extra,
            )
        self._emit(
            run,
            EventType.TASK_COMPLETE,
            task.id,
            success=result.success,
            skipped=result.skipped,
            error_code=result.error.code if result.error else None,
        )
