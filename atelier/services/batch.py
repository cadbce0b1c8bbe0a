"""Bounded-concurrency order processing with per-order error isolation."""

import asyncio
from typing import Awaitable, Callable, Iterable

from atelier.errors import OrderNotFound, TransitionRejected
from atelier.observability.logging import get_logger
from atelier.observability.metrics import job_orders_total
from atelier.schemas.jobs import PassResult
from atelier.schemas.orders import Order


logger = get_logger(__name__)

# Returns True when the order was changed, False when there was nothing to do.
OrderHandler = Callable[[Order], Awaitable[bool]]


async def process_orders(
    job: str,
    pass_name: str,
    orders: Iterable[Order],
    handler: OrderHandler,
    max_concurrency: int,
) -> PassResult:
    """
    Run ``handler`` over every order, at most ``max_concurrency`` at a time.

    A guard rejection or a vanished order counts as skipped; any other error
    counts as failed. Neither stops the remaining orders.

    Args:
        job: Job name for metrics and logs
        pass_name: Pass name for metrics and logs
        orders: Orders to process
        handler: Per-order coroutine
        max_concurrency: Semaphore size

    Returns:
        PassResult: Successful, skipped and failed counts with error messages
    """
    result = PassResult()
    semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def run_one(order: Order) -> None:
        async with semaphore:
            try:
                changed = await handler(order)
            except TransitionRejected as e:
                logger.debug("Order skipped", job=job, pass_name=pass_name,
                             order_name=order.name, reason=e.reason)
                outcome = "skipped"
                result.record_skip()
            except OrderNotFound:
                logger.warning("Order vanished before write", job=job, pass_name=pass_name,
                               order_id=order.id)
                outcome = "skipped"
                result.record_skip()
            except Exception as e:
                logger.error("Order processing failed", job=job, pass_name=pass_name,
                             order_id=order.id, order_name=order.name,
                             error_type=type(e).__name__, error=str(e))
                outcome = "failed"
                result.record_failure(order.name, e)
            else:
                if changed:
                    outcome = "successful"
                    result.record_success()
                else:
                    outcome = "skipped"
                    result.record_skip()
            job_orders_total.labels(job=job, pass_name=pass_name, outcome=outcome).inc()

    await asyncio.gather(*(run_one(order) for order in orders))
    return result
