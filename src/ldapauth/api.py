"""
Module-level authenticate() and search().

Both validate their arguments, submit to a process-wide default dispatcher
and return at once. The owning thread receives callbacks by calling
process_completions() or run_until_idle(). Callbacks still outstanding when
the interpreter exits are delivered by an exit hook on the owning thread.
"""

import atexit
import logging
import threading
from typing import Any, Callable, Optional

from .config import Config, load_config, validate_config
from .core.dispatcher import QueueCompletionContext, TaskDispatcher, default_guard
from .core.executor import DirectoryOperationExecutor
from .core.logging import setup_logging
from .exceptions import SchedulingError
from .requests import AuthenticateRequest, SearchRequest

logger = logging.getLogger(__name__)

_default_dispatcher: Optional[TaskDispatcher] = None
_lock = threading.Lock()
_exit_hook_registered = False


def _deliver_at_exit() -> None:
    """Drain the default dispatcher before the interpreter goes away."""
    dispatcher = _default_dispatcher
    if dispatcher is None or not dispatcher.outstanding:
        return
    
    context = dispatcher.context
    if not isinstance(context, QueueCompletionContext) or context.owner != threading.get_ident():
        logger.warning(
            f"Exiting with {dispatcher.outstanding} requests outstanding on a context this thread cannot drain"
        )
        return
    
    logger.debug(f"Delivering {dispatcher.outstanding} outstanding completions before exit")
    dispatcher.run_until_idle()


def _build_dispatcher(config: Config, context=None) -> TaskDispatcher:
    global _exit_hook_registered
    validate_config(config)
    if not _exit_hook_registered:
        atexit.register(_deliver_at_exit)
        _exit_hook_registered = True
    return TaskDispatcher(
        executor=DirectoryOperationExecutor(config),
        config=config.dispatcher,
        context=context,
        guard=default_guard()
    )


def configure(config: Optional[Config] = None, context=None) -> TaskDispatcher:
    """
    Replace the default dispatcher and apply the logging settings.
    
    Args:
        config: Configuration (loaded via load_config() if None)
        context: Completion context; defaults to a queue owned by the calling thread
        
    Raises:
        SchedulingError: If the current default dispatcher still has work outstanding
    """
    global _default_dispatcher
    with _lock:
        if _default_dispatcher is not None:
            if _default_dispatcher.outstanding:
                raise SchedulingError(
                    f"Cannot reconfigure with {_default_dispatcher.outstanding} requests outstanding"
                )
            _default_dispatcher.shutdown(wait=False)
        config = config or load_config()
        setup_logging(config.logging)
        _default_dispatcher = _build_dispatcher(config, context)
        return _default_dispatcher


def get_default_dispatcher() -> TaskDispatcher:
    """
    Return the default dispatcher, creating it from load_config() on first use.
    
    A dispatcher created here leaves logging to the host; call configure()
    to have the ``logging`` section applied.
    """
    global _default_dispatcher
    with _lock:
        if _default_dispatcher is None:
            _default_dispatcher = _build_dispatcher(load_config())
            logger.debug("Created default dispatcher")
        return _default_dispatcher


def authenticate(host: str, port: int, username: str, password: str,
                 callback: Callable[[Optional[BaseException], bool], Any]) -> None:
    """
    Check credentials with a simple bind, without blocking.
    
    ``callback(error, authenticated)`` is called once: ``(None, True)`` on a
    successful bind, ``(None, False)`` on rejected credentials and
    ``(DirectoryConnectionError, False)`` if the server cannot be reached.
    
    Raises:
        ArgumentError: On malformed arguments; nothing is scheduled
        SchedulingError: If the request cannot be queued; no callback follows
    """
    request = AuthenticateRequest.create(
        host=host, port=port, username=username, password=password, completion=callback
    )
    get_default_dispatcher().submit(request)


def search(host: str, port: int, username: str, password: str, base: str, search_filter: str,
           callback: Callable[[Optional[BaseException], Any], Any]) -> None:
    """
    Bind, search under ``base`` and resolve the first match's groups, without blocking.
    
    ``callback(error, result)`` is called once with an AttributeResult whose
    ``allGroups`` entry lists every group the entry belongs to, directly or
    through nesting. The search is attempted even if the bind fails.
    
    Raises:
        ArgumentError: On malformed arguments; nothing is scheduled
        SchedulingError: If the request cannot be queued; no callback follows
    """
    request = SearchRequest.create(
        host=host, port=port, username=username, password=password,
        search_base=base, search_filter=search_filter, completion=callback
    )
    get_default_dispatcher().submit(request)


def process_completions(block: bool = False, timeout: Optional[float] = None) -> int:
    """Run ready callbacks of the default dispatcher on the calling thread."""
    return get_default_dispatcher().process_completions(block=block, timeout=timeout)


def run_until_idle(timeout: Optional[float] = None) -> bool:
    """Run callbacks of the default dispatcher until nothing is outstanding."""
    return get_default_dispatcher().run_until_idle(timeout=timeout)
