"""OS process control for forwarding agents the engine does not hold handles to."""

import psutil

from ..common.logging import get_logger

logger = get_logger(__name__)


def process_alive(pid: int) -> bool:
    """True if ``pid`` exists and is not a zombie."""
    try:
        return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return False


def terminate_process(pid: int, timeout: float = 5.0) -> bool:
    """Stop a process and its children gracefully, force killing if needed.

    The agent launcher spawns the session plugin as a child, so the whole
    tree is signalled. A pid that is already gone counts as stopped.

    Args:
        pid: Process id to stop
        timeout: Seconds to wait after SIGTERM before SIGKILL

    Returns:
        True if nothing from the tree is left running
    """
    try:
        parent = psutil.Process(pid)
        children = parent.children(recursive=True)
    except psutil.NoSuchProcess:
        logger.debug("Process not running, nothing to stop", pid=pid)
        return True
    except psutil.AccessDenied as e:
        logger.error("Not allowed to inspect process", pid=pid, error=str(e))
        return False

    procs = [parent, *children]
    logger.info("Stopping forwarding agent", pid=pid, children=[c.pid for c in children])

    for proc in procs:
        try:
            proc.terminate()
        except psutil.NoSuchProcess:
            continue
        except psutil.AccessDenied as e:
            logger.warning("Not allowed to terminate process", pid=proc.pid, error=str(e))

    _gone, alive = psutil.wait_procs(procs, timeout=timeout)
    if alive:
        logger.warning(
            "Process did not terminate gracefully, force killing",
            pids=[p.pid for p in alive],
        )
        for proc in alive:
            try:
                proc.kill()
            except psutil.NoSuchProcess:
                continue
            except psutil.AccessDenied as e:
                logger.error("Failed to kill process", pid=proc.pid, error=str(e))
        _gone, alive = psutil.wait_procs(alive, timeout=timeout)

    if alive:
        logger.error("Processes survived SIGKILL", pids=[p.pid for p in alive])
        return False
    return True
