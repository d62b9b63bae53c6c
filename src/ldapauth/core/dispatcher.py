"""
Task dispatcher for blocking directory operations.

Requests are executed on a thread pool. Their completion callbacks are not
run on the worker thread: the finished request is posted back to a
completion context owned by the submitting side (a queue drained by the
owning thread, or an asyncio event loop) and the callback runs there.

A LivenessGuard counts submitted-but-not-dispatched requests so the host
does not exit, or close its event loop, while work is pending.
"""

import asyncio
import enum
import functools
import logging
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from typing import Any, Callable, Optional

from ..config.models import DispatcherConfig
from ..exceptions import ArgumentError, CompletionLostError, RequestStateError, SchedulingError
from ..requests import DirectoryRequest
from .executor import DirectoryOperationExecutor

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.5


class RequestState(enum.Enum):
    CREATED = "created"
    QUEUED = "queued"
    EXECUTING = "executing"
    COMPLETED = "completed"
    DISPATCHED = "dispatched"
    RELEASED = "released"
    ABANDONED = "abandoned"


_TRANSITIONS = {
    RequestState.CREATED: {RequestState.QUEUED},
    RequestState.QUEUED: {RequestState.EXECUTING},
    RequestState.EXECUTING: {RequestState.COMPLETED},
    # ABANDONED: the completion context went away before dispatch
    RequestState.COMPLETED: {RequestState.DISPATCHED, RequestState.ABANDONED},
    RequestState.DISPATCHED: {RequestState.RELEASED},
}


class FailedOutcome:
    """Outcome of an operation that raised instead of returning."""

    def __init__(self, error: BaseException, empty_result: Any):
        self.error = error
        self.empty_result = empty_result

    def callback_args(self):
        return self.error, self.empty_result


class PendingRequest:
    """Lifecycle record for one submitted request, owned by the dispatcher."""

    def __init__(self, request: DirectoryRequest):
        self.request: Optional[DirectoryRequest] = request
        self.operation = request.operation
        self.target = f"{request.host}:{request.port}"
        self.state = RequestState.CREATED
        self.outcome = None
        self._completion: Optional[Callable] = request.completion

    def advance(self, state: RequestState) -> None:
        if state not in _TRANSITIONS.get(self.state, ()):
            raise RequestStateError(
                f"Illegal {self.operation} transition: {self.state.name} -> {state.name}"
            )
        self.state = state

    def run(self, executor) -> None:
        """Worker thread side: execute and capture the outcome as data."""
        self.advance(RequestState.EXECUTING)
        try:
            self.outcome = self.request.execute(executor)
        except Exception as e:
            logger.exception(f"Unexpected error in {self.operation} worker")
            self.outcome = FailedOutcome(e, self.request.empty_result)
        self.advance(RequestState.COMPLETED)

    def dispatch(self) -> None:
        """Calling context side: invoke the completion exactly once, then release."""
        self.advance(RequestState.DISPATCHED)
        error, result = self.outcome.callback_args()
        completion = self._completion
        try:
            completion(error, result)
        finally:
            self.release()

    def release(self) -> None:
        self.advance(RequestState.RELEASED)
        self._drop()

    def abandon(self) -> None:
        """Terminal state for a completed request that can no longer be dispatched."""
        self.advance(RequestState.ABANDONED)
        self._drop()

    def _drop(self) -> None:
        self._completion = None
        self.request = None
        self.outcome = None


class LivenessGuard:
    """Thread-safe count of outstanding requests."""

    def __init__(self):
        self._count = 0
        self._condition = threading.Condition()

    @property
    def count(self) -> int:
        with self._condition:
            return self._count

    def acquire(self) -> int:
        with self._condition:
            self._count += 1
            return self._count

    def try_acquire(self, limit: int) -> bool:
        """Increment unless ``limit`` requests are already outstanding."""
        with self._condition:
            if self._count >= limit:
                return False
            self._count += 1
            return True

    def release(self) -> int:
        with self._condition:
            if self._count <= 0:
                raise RequestStateError("Liveness guard released more often than acquired")
            self._count -= 1
            if self._count == 0:
                self._condition.notify_all()
            return self._count

    @contextmanager
    def held(self):
        self.acquire()
        try:
            yield self
        finally:
            self.release()

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until nothing is outstanding. Returns False on timeout."""
        with self._condition:
            return self._condition.wait_for(lambda: self._count == 0, timeout)


_process_guard = LivenessGuard()


def default_guard() -> LivenessGuard:
    """The process-wide guard used by the module-level API."""
    return _process_guard


class QueueCompletionContext:
    """
    Completion queue drained by the thread that created it.
    
    Workers post finished requests from any thread; callbacks only run when
    the owning thread calls drain().
    """

    closed = False

    def __init__(self):
        self._queue: "queue.Queue[Callable[[], None]]" = queue.Queue()
        self.owner = threading.get_ident()

    def post(self, callback: Callable[[], None]) -> None:
        self._queue.put(callback)

    def drain(self, block: bool = False, timeout: Optional[float] = None) -> int:
        """
        Run posted callbacks on the calling thread.
        
        Args:
            block: Wait for at least one callback if none is ready
            timeout: Maximum wait when blocking
            
        Returns:
            Number of callbacks run
        """
        if threading.get_ident() != self.owner:
            raise RuntimeError("Completions must be processed on the thread that owns the dispatcher")
        
        ran = 0
        if block:
            try:
                callback = self._queue.get(timeout=timeout)
            except queue.Empty:
                return 0
            callback()
            ran += 1
        
        while True:
            try:
                callback = self._queue.get_nowait()
            except queue.Empty:
                return ran
            callback()
            ran += 1


class AsyncioCompletionContext:
    """
    Delivers completions on an asyncio event loop.

    The loop must outlive the work submitted against it. Await
    ``dispatcher.wait_idle_async()``, or use the dispatcher with
    ``async with``, before the loop stops; a completion that arrives after
    the loop has closed is lost and reported by ``shutdown()``.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.loop = loop or asyncio.get_running_loop()

    @property
    def closed(self) -> bool:
        return self.loop.is_closed()

    def post(self, callback: Callable[[], None]) -> None:
        self.loop.call_soon_threadsafe(callback)

    def drain(self, block: bool = False, timeout: Optional[float] = None) -> int:
        # The event loop runs posted callbacks itself.
        return 0


class TaskDispatcher:
    """
    Offloads blocking directory operations to a worker pool.
    
    submit() never blocks on the directory and never calls the completion
    itself. Each request's completion is invoked exactly once, on the
    completion context, after the worker has closed its connection.
    """
    
    def __init__(self,
                 executor: Optional[DirectoryOperationExecutor] = None,
                 config: Optional[DispatcherConfig] = None,
                 context=None,
                 guard: Optional[LivenessGuard] = None):
        """
        Initialize dispatcher.
        
        Args:
            executor: Runs the directory operations
            config: Worker pool settings
            context: Completion context (a QueueCompletionContext owned by the
                     current thread if None)
            guard: Liveness guard (a private one if None). A guard shared by
                   several dispatchers counts, and limits, all their work.
        """
        self.config = config or DispatcherConfig()
        self.executor = executor or DirectoryOperationExecutor()
        self.context = context or QueueCompletionContext()
        self.guard = guard or LivenessGuard()
        
        self._pool = ThreadPoolExecutor(
            max_workers=self.config.max_workers,
            thread_name_prefix=self.config.thread_name_prefix
        )
        self._closed = False
        self._lost = []
        self._lost_lock = threading.Lock()

    @property
    def outstanding(self) -> int:
        return self.guard.count
    
    @property
    def lost_completions(self) -> list:
        """CompletionLostError for every request abandoned without a callback."""
        with self._lost_lock:
            return list(self._lost)
    
    def submit(self, request: DirectoryRequest) -> None:
        """
        Schedule a request and return immediately.
        
        Raises:
            ArgumentError: If ``request`` is not a DirectoryRequest
            SchedulingError: If the dispatcher is shut down, its completion
                             context is closed or too many requests are
                             outstanding; no callback follows
        """
        if not isinstance(request, DirectoryRequest):
            raise ArgumentError(f"Expected a DirectoryRequest, got {type(request).__name__}")
        if self._closed:
            raise SchedulingError("Dispatcher is shut down")
        if getattr(self.context, "closed", False):
            raise SchedulingError("Completion context is closed")

        pending = PendingRequest(request)
        if not self.guard.try_acquire(self.config.max_pending):
            raise SchedulingError(f"Worker pool exhausted: {self.config.max_pending} requests outstanding")
        
        pending.advance(RequestState.QUEUED)
        try:
            self._pool.submit(self._run, pending)
        except RuntimeError as e:
            self.guard.release()
            raise SchedulingError(f"Worker pool unavailable: {e}") from e
        
        logger.debug(f"Queued {request.operation} for {request.host}:{request.port}")
    
    def _run(self, pending: PendingRequest) -> None:
        pending.run(self.executor)
        try:
            self.context.post(functools.partial(self._dispatch, pending))
        except RuntimeError as e:
            # The event loop closed while the request was running.
            lost = CompletionLostError(
                f"{pending.operation} completion for {pending.target} was not delivered: {e}"
            )
            pending.abandon()
            with self._lost_lock:
                self._lost.append(lost)
            logger.error(str(lost))
            self.guard.release()
    
    def _dispatch(self, pending: PendingRequest) -> None:
        try:
            pending.dispatch()
        finally:
            self.guard.release()
    
    def process_completions(self, block: bool = False, timeout: Optional[float] = None) -> int:
        """Run completions that are ready. Must be called on the owning thread."""
        return self.context.drain(block=block, timeout=timeout)
    
    def run_until_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Process completions until no request is outstanding.
        
        Returns:
            False if ``timeout`` seconds passed first
        """
        if isinstance(self.context, AsyncioCompletionContext):
            raise RuntimeError("run_until_idle() cannot drive an asyncio context; use wait_idle_async()")
        
        deadline = None if timeout is None else time.monotonic() + timeout
        while self.outstanding > 0:
            wait = _POLL_INTERVAL
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                wait = min(wait, remaining)
            self.process_completions(block=True, timeout=wait)
        return True
    
    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until outstanding work is dispatched by another thread or loop."""
        return self.guard.wait_idle(timeout)
    
    async def wait_idle_async(self, timeout: Optional[float] = None) -> bool:
        """Await outstanding work while the event loop keeps running completions."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.guard.wait_idle, timeout)
    
    def shutdown(self, wait: bool = True) -> None:
        """
        Refuse new work and stop the pool. Queued requests still run.

        Raises:
            CompletionLostError: With ``wait``, if any finished request could
                                 not be handed to the completion context
        """
        self._closed = True
        self._pool.shutdown(wait=wait)
        logger.debug("Dispatcher shut down")

        lost = self.lost_completions
        if wait and lost:
            raise CompletionLostError(
                f"{len(lost)} completions were not delivered; first: {lost[0]}"
            ) from lost[0]

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit: finish queued work and deliver its completions."""
        try:
            self.shutdown(wait=True)
        finally:
            if not isinstance(self.context, AsyncioCompletionContext):
                self.process_completions()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Keep the loop running until every completion has been delivered."""
        try:
            await self.wait_idle_async()
        finally:
            self.shutdown(wait=True)
