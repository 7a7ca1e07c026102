"""Actions on a single process."""

import logging

import psutil

logger = logging.getLogger(__name__)


def terminate(pid: int, force: bool = False) -> bool:
    """
    Send SIGTERM (or SIGKILL when ``force`` is set) to a process.

    Returns:
        True if the signal was sent, False if the process is gone, access
        was denied, or ``pid`` is not a real process id.
    """
    if pid <= 0:
        return False
    try:
        proc = psutil.Process(pid)
        if force:
            proc.kill()
        else:
            proc.terminate()
    except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess) as exc:
        logger.info("cannot signal pid %d: %s", pid, exc)
        return False
    return True
