"""Single-instance guard built on a PID file.

The PID file also routes ``--signal``: a second invocation reads the PID
of the running instance and sends it ``SIGHUP`` to start pruning.
"""

import asyncio
import os
import signal
from pathlib import Path
from typing import Optional

import psutil

from go_cache_prune.core.errors import InstanceGuardError
from go_cache_prune.core.logging_utils import get_module_logger

logger = get_module_logger("InstanceGuard")

PID_FILE_MODE = 0o440
PRUNE_SIGNAL = signal.SIGHUP


def read_pid_file(path: Path) -> int:
    """Return the PID stored in ``path``.

    Raises:
        FileNotFoundError: the file does not exist
        ValueError: the contents are not a positive integer
    """
    text = path.read_text(encoding="utf-8").strip()
    pid = int(text)
    if pid <= 0:
        raise ValueError(f"invalid PID {pid}")
    return pid


def is_process_alive(pid: int) -> bool:
    if not psutil.pid_exists(pid):
        return False
    try:
        return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        # Exists, but owned by someone else.
        return True


def ensure_not_running(path: Path) -> None:
    """Fail if ``path`` names a live process; used when no PID file is written."""
    try:
        existing = read_pid_file(Path(path))
    except (OSError, ValueError):
        return
    if existing != os.getpid() and is_process_alive(existing):
        raise InstanceGuardError(f"go-cache-prune is already running (pid {existing})")


class PidFileGuard:
    """Hold the PID file for the lifetime of a run.

    Refuses to start while the file names a live process. A file left
    behind by a dead process, or one that cannot be parsed, is replaced.
    The file is removed again on every exit path.
    """

    def __init__(self, path: Path, *, pid: Optional[int] = None) -> None:
        self.path = Path(path)
        self.pid = pid if pid is not None else os.getpid()
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        self._clear_stale()
        try:
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, PID_FILE_MODE)
        except FileExistsError:
            raise InstanceGuardError("go-cache-prune is already running") from None
        except OSError as exc:
            raise InstanceGuardError(f"creating PID file: {exc}") from exc
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(str(self.pid))
        except OSError as exc:
            self._unlink()
            raise InstanceGuardError(f"writing PID file: {exc}") from exc
        self._held = True
        logger.debug("wrote PID %d to %s", self.pid, self.path)

    def release(self) -> None:
        if not self._held:
            return
        self._held = False
        self._unlink()
        logger.debug("removed PID file %s", self.path)

    def _clear_stale(self) -> None:
        try:
            existing = read_pid_file(self.path)
        except FileNotFoundError:
            return
        except (OSError, ValueError) as exc:
            logger.warning("replacing unreadable PID file %s: %s", self.path, exc)
            self._unlink()
            return

        if existing != self.pid and is_process_alive(existing):
            raise InstanceGuardError(f"go-cache-prune is already running (pid {existing})")

        logger.warning("replacing stale PID file %s (pid %d is not running)", self.path, existing)
        self._unlink()

    def _unlink(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("removing PID file %s: %s", self.path, exc)

    def __enter__(self) -> "PidFileGuard":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


async def signal_running_instance(
    pid_file: Path,
    *,
    timeout: Optional[float] = None,
    sig: int = PRUNE_SIGNAL,
) -> int:
    """Tell the instance named in ``pid_file`` to prune, then wait for it to exit.

    Returns the PID that was signalled.

    Raises:
        InstanceGuardError: the PID file is missing or malformed, the
            process is gone, or it did not exit within ``timeout``.
    """
    try:
        pid = await asyncio.to_thread(read_pid_file, Path(pid_file))
    except OSError as exc:
        raise InstanceGuardError(f"reading PID file: {exc}") from exc
    except ValueError as exc:
        raise InstanceGuardError(f"parsing PID from PID file: {exc}") from exc

    try:
        process = psutil.Process(pid)
        process.send_signal(sig)
    except psutil.NoSuchProcess:
        raise InstanceGuardError(f"signaling go-cache-prune process: pid {pid} is not running") from None
    except psutil.AccessDenied as exc:
        raise InstanceGuardError(f"signaling go-cache-prune process: {exc}") from exc

    logger.info("sent %s to pid %d, waiting for it to finish", signal.Signals(sig).name, pid)
    try:
        await asyncio.to_thread(process.wait, timeout)
    except psutil.TimeoutExpired:
        raise InstanceGuardError(
            f"waiting for go-cache-prune process {pid}: still running after {timeout}s"
        ) from None
    except psutil.NoSuchProcess:
        pass
    return pid


__all__ = [
    "PidFileGuard",
    "ensure_not_running",
    "PID_FILE_MODE",
    "PRUNE_SIGNAL",
    "is_process_alive",
    "read_pid_file",
    "signal_running_instance",
]
