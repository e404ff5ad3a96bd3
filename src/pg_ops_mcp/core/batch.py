"""Batch processing of operations over a sequence of work items."""

import logging
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Sequence, Union

from pg_ops_mcp.core.builder import build_statement
from pg_ops_mcp.core.connection import DatabaseConnection
from pg_ops_mcp.core.executor import QueryExecutor, shape_result
from pg_ops_mcp.errors import QueryError, ValidationError
from pg_ops_mcp.models.config import EffectiveConfig
from pg_ops_mcp.models.operations import (
    OperationDescriptor,
    OperationType,
    descriptor_from_params,
    parse_operation,
)
from pg_ops_mcp.models.query import BatchItemOutcome

logger = logging.getLogger(__name__)

Item = Mapping[str, Any]
# Supplies the operation parameters for one item: (item, index) -> parameters
ParameterSource = Callable[[Item, int], Mapping[str, Any]]
ConnectionFactory = Callable[[EffectiveConfig], DatabaseConnection]


class BatchState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


def merge_item_parameters(base: Mapping[str, Any]) -> ParameterSource:
    """
    Parameter source that overlays each item's values on shared parameters.

    A column map given both in base and item is merged key by key, the
    item winning.
    """

    def resolve(item: Item, index: int) -> dict[str, Any]:
        params = dict(base)
        for key, value in item.items():
            if key in ("columns_map", "columnsMap") and isinstance(value, Mapping):
                shared = params.get(key)
                if isinstance(shared, Mapping):
                    value = {**shared, **value}
            params[key] = value
        return params

    return resolve


class BatchProcessor:
    """Runs one operation for every item, sequentially, over one pool.

    The continue_on_fail flag is the single policy switch: when set, a
    ValidationError or QueryError becomes a failed outcome for that item and
    the run goes on; otherwise the run aborts and the error propagates.
    """

    def __init__(
        self,
        config: EffectiveConfig,
        *,
        continue_on_fail: bool = False,
        executor: Optional[QueryExecutor] = None,
        connection_factory: ConnectionFactory = DatabaseConnection,
    ):
        """
        Initialize batch processor.

        Args:
            config: Resolved connection configuration
            continue_on_fail: Record item failures instead of aborting
            executor: Statement executor
            connection_factory: Creates the pool owner for a run
        """
        self.config = config
        self.continue_on_fail = continue_on_fail
        self.executor = executor or QueryExecutor()
        self.connection_factory = connection_factory
        self.state = BatchState.IDLE

    async def run(
        self,
        operation: Union[str, OperationType],
        items: Sequence[Item],
        parameters: Union[ParameterSource, Mapping[str, Any]],
    ) -> list[BatchItemOutcome]:
        """
        Run the operation once per item.

        Args:
            operation: Operation tag (executeQuery, select, insert, update, delete)
            items: Work items; an empty sequence runs the operation once
            parameters: Shared parameters, or a callable resolving them per item

        Returns:
            One outcome per item, in input order

        Raises:
            ConfigurationError: If the operation is unknown (before any item runs)
            ValidationError: If an item is invalid and continue_on_fail is off
            QueryError: If an item fails in the database and continue_on_fail is off
        """
        op = parse_operation(operation)
        resolve = (
            parameters if callable(parameters) else merge_item_parameters(parameters)
        )
        work = list(items) or [{}]

        logger.info(
            f"Running {op.value} for {len(work)} item(s) "
            f"(continue_on_fail={self.continue_on_fail})"
        )

        outcomes: list[BatchItemOutcome] = []
        self.state = BatchState.RUNNING

        try:
            # The pool lives exactly as long as this block
            async with self.connection_factory(self.config) as db:
                for index, item in enumerate(work):
                    try:
                        data = await self._process_item(db, op, resolve(item, index))
                    except (ValidationError, QueryError) as e:
                        logger.error(f"Item {index} failed: {e}")
                        if not self.continue_on_fail:
                            logger.info(
                                f"Aborting {op.value} batch after {len(outcomes)} "
                                f"completed item(s) of {len(work)}"
                            )
                            raise
                        outcomes.append(BatchItemOutcome.failed(index, e))
                    else:
                        outcomes.append(BatchItemOutcome.ok(index, data))
        except BaseException:
            self.state = BatchState.ABORTED
            raise

        self.state = BatchState.COMPLETED
        failed = sum(1 for outcome in outcomes if not outcome.success)
        logger.info(
            f"Completed {op.value} batch: {len(outcomes)} outcome(s), {failed} failed"
        )
        return outcomes

    async def _process_item(
        self,
        db: DatabaseConnection,
        operation: OperationType,
        params: Mapping[str, Any],
    ) -> dict[str, Any]:
        descriptor: OperationDescriptor = descriptor_from_params(operation, params)
        statement = build_statement(descriptor)

        async with db.get_connection() as conn:
            result = await self.executor.execute(conn, statement)

        return shape_result(descriptor, result)
