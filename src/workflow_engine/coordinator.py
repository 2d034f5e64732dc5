"""
Execution coordinator: the state machine driving one workflow run.

    pending -> running -> completed
                       -> failed

The coordinator walks the graph from the trigger node, one node at a
time. After every node it records the result in the execution state
and persists it before choosing the next edge, so a crash leaves the
last finished node recoverable. Any handler error (transform fallbacks
aside) ends the run as failed; there is no resume from the failed node.
"""

import asyncio
import inspect
import logging
from typing import Any, Optional

from opentelemetry import trace

from .errors import ExecutionCancelledError, GraphCycleError, InvalidTransitionError, WorkflowEngineError
from .graphs.base import WorkflowGraph, ensure_valid
from .graphs.edges import next_edge
from .graphs.nodes import NodeContext, get_handler
from .models.execution import Execution, ExecutionState, ExecutionStatus
from .models.workflow import Node, NodeKind, Workflow
from .persistence.store import ExecutionStore
from .tools.agents import AgentExecutor
from .tools.webhooks import WebhookDispatcher

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def describe_error(error: Exception) -> str:
    """Human-readable error string stored on failed executions."""
    message = getattr(error, "message", None) or str(error) or "Unknown error"
    return f"{type(error).__name__}: {message}"


class ExecutionCoordinator:
    """
    Runs executions of validated workflows.

    One coordinator is shared by all runs; every piece of per-run
    state lives in locals of ``run`` so concurrent runs never share
    mutable data.
    """

    def __init__(
        self,
        store: ExecutionStore,
        agent_executor: Optional[AgentExecutor] = None,
        webhook_dispatcher: Optional[WebhookDispatcher] = None,
        max_steps: int = 100,
        default_timeout_seconds: Optional[float] = 300,
    ):
        """
        Args:
            store: Execution persistence adapter
            agent_executor: Collaborator used by agent nodes
            webhook_dispatcher: Optional delivery of completion events
            max_steps: Node visits allowed per run before GraphCycleError
            default_timeout_seconds: Per-run budget when the caller gives none
        """
        self.store = store
        self.agent_executor = agent_executor
        self.webhook_dispatcher = webhook_dispatcher
        self.max_steps = max_steps
        self.default_timeout_seconds = default_timeout_seconds

    def prepare(self, workflow: Workflow) -> WorkflowGraph:
        """Validate ``workflow``; raises InvalidGraphError before anything is persisted."""
        return ensure_valid(workflow)

    async def execute(
        self,
        workflow: Workflow,
        input_data: Any,
        user_id: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
        timeout_seconds: Optional[float] = None,
    ) -> Execution:
        """Validate, create and run an execution in the current task."""
        graph = self.prepare(workflow)
        execution = await self.store.create_execution(workflow.id, input_data, user_id=user_id)
        return await self.run(graph, execution, cancel_event=cancel_event, timeout_seconds=timeout_seconds)

    async def run(
        self,
        graph: WorkflowGraph,
        execution: Execution,
        cancel_event: Optional[asyncio.Event] = None,
        timeout_seconds: Optional[float] = None,
    ) -> Execution:
        """
        Drive a pending execution to a terminal status.

        Returns:
            The terminal execution record
        """
        state = ExecutionState(
            execution_id=execution.id,
            workflow_id=execution.workflow_id,
            status=ExecutionStatus.RUNNING,
            input=execution.input,
        )
        context = NodeContext(
            execution_id=execution.id,
            workflow_id=execution.workflow_id,
            user_id=execution.user_id,
            agent_executor=self.agent_executor,
        )
        timeout = timeout_seconds if timeout_seconds is not None else self.default_timeout_seconds
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout else None

        with tracer.start_as_current_span("workflow.execution") as span:
            span.set_attribute("execution.id", execution.id)
            span.set_attribute("workflow.id", execution.workflow_id)

            try:
                logger.info(f"Running execution {execution.id} of workflow {execution.workflow_id}")
                await self.store.update_execution_status(execution.id, ExecutionStatus.RUNNING)

                result = await self._traverse(graph, state, context, cancel_event, deadline)

                state.status = ExecutionStatus.COMPLETED
                state.result = result
                state.warnings = list(context.warnings)
                finished = await self.store.update_execution_status(
                    execution.id,
                    ExecutionStatus.COMPLETED,
                    result=result,
                    warnings=context.warnings,
                )
                await self._save_terminal_state(state)

                logger.info(f"Execution {execution.id} completed after {len(state.node_results)} nodes")
                span.set_attribute("execution.status", ExecutionStatus.COMPLETED.value)
                await self._notify(finished, "workflow.completed", {"result": result})
                return finished

            except WorkflowEngineError as e:
                logger.error(f"Execution {execution.id} failed: {describe_error(e)}")
                span.set_attribute("execution.status", ExecutionStatus.FAILED.value)
                return await self._fail(state, context, describe_error(e))

            except Exception as e:
                logger.exception(f"Execution {execution.id} crashed")
                span.record_exception(e)
                span.set_attribute("execution.status", ExecutionStatus.FAILED.value)
                return await self._fail(state, context, describe_error(e))

            finally:
                self.store.release(execution.id)

    async def _traverse(
        self,
        graph: WorkflowGraph,
        state: ExecutionState,
        context: NodeContext,
        cancel_event: Optional[asyncio.Event],
        deadline: Optional[float],
    ) -> Any:
        node: Optional[Node] = graph.trigger
        node_input = state.input
        steps = 0
        output = None

        while node is not None:
            self._check_cancelled(node, cancel_event, deadline)

            steps += 1
            if steps > self.max_steps:
                raise GraphCycleError(
                    f"Step ceiling of {self.max_steps} exceeded at node {node.id}; "
                    "the workflow likely contains a cycle",
                    steps=steps - 1,
                )

            state.current_node_id = node.id
            await self.store.save_execution_state(state)

            output = await self._invoke(node, node_input, context, deadline)

            # In-flight work that finished after a cancel request is discarded
            self._check_cancelled(node, cancel_event, deadline, after=True)

            state.node_results[node.id] = output
            state.warnings = list(context.warnings)
            await self.store.update_execution_status(
                state.execution_id,
                ExecutionStatus.RUNNING,
                current_node_id=node.id,
                warnings=context.warnings,
            )
            await self.store.save_execution_state(state)

            edge = next_edge(graph, node, branch=output if node.kind == NodeKind.CONDITION else None)
            if edge is None:
                break

            # Condition nodes route their input unchanged to the chosen branch
            if node.kind != NodeKind.CONDITION:
                node_input = output
            node = graph.get_node(edge.target)

        return output

    async def _invoke(self, node: Node, node_input: Any, context: NodeContext, deadline: Optional[float]) -> Any:
        handler = get_handler(node.kind)

        with tracer.start_as_current_span("workflow.node") as span:
            span.set_attribute("execution.id", context.execution_id)
            span.set_attribute("node.id", node.id)
            span.set_attribute("node.kind", node.kind.value)
            logger.debug(f"[{context.execution_id}] Dispatching node {node.id} ({node.kind.value})")

            output = handler(node_input, node, context)
            if not inspect.isawaitable(output):
                return output

            if deadline is None:
                return await output

            remaining = deadline - asyncio.get_running_loop().time()
            try:
                return await asyncio.wait_for(output, timeout=max(remaining, 0))
            except asyncio.TimeoutError:
                raise ExecutionCancelledError(
                    f"Execution timed out while running node {node.id}",
                    reason="timeout",
                )

    def _check_cancelled(
        self,
        node: Node,
        cancel_event: Optional[asyncio.Event],
        deadline: Optional[float],
        after: bool = False,
    ):
        where = f"after node {node.id}" if after else f"before node {node.id}"
        if cancel_event is not None and cancel_event.is_set():
            raise ExecutionCancelledError(f"Execution cancelled {where}", reason="cancelled")
        if deadline is not None and asyncio.get_running_loop().time() >= deadline:
            raise ExecutionCancelledError(f"Execution timed out {where}", reason="timeout")

    async def _fail(self, state: ExecutionState, context: NodeContext, error: str) -> Execution:
        state.warnings = list(context.warnings)

        try:
            execution = await self.store.update_execution_status(
                state.execution_id,
                ExecutionStatus.FAILED,
                error=error,
                warnings=context.warnings,
            )
        except InvalidTransitionError:
            # The durable record already reached a terminal status; it wins
            execution = await self.store.get_execution(state.execution_id)
            logger.warning(
                f"Execution {execution.id} is already {execution.status.value}; "
                f"not recording failure: {error}"
            )
            state.status = execution.status
            state.result = execution.result
            state.error = execution.error
            await self._save_terminal_state(state)
            return execution

        state.status = ExecutionStatus.FAILED
        state.error = error
        await self._save_terminal_state(state)

        await self._notify(execution, "workflow.failed", {"error": error})
        return execution

    async def _save_terminal_state(self, state: ExecutionState):
        """Mirror a terminal status into the progress snapshot without raising."""
        try:
            await self.store.save_execution_state(state)
            return
        except Exception as e:
            logger.warning(f"Could not save final state of execution {state.execution_id}: {e}")

        # A stale running snapshot must not outlive the run
        try:
            await self.store.discard_execution_state(state.execution_id)
        except Exception as e:
            logger.error(f"Could not discard stale state of execution {state.execution_id}: {e}")

    async def _notify(self, execution: Execution, event: str, data: dict):
        if self.webhook_dispatcher is None:
            return
        payload = {
            "execution_id": execution.id,
            "workflow_id": execution.workflow_id,
            "status": ExecutionStatus(execution.status).value,
            **data,
        }
        try:
            await self.webhook_dispatcher.dispatch(execution.workflow_id, event, payload)
        except Exception as e:
            logger.warning(f"Webhook dispatch for execution {execution.id} failed: {e}")
