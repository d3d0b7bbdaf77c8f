"""Debounced watch-and-recompile loop over a single content file"""

import os
import subprocess
import sys
import threading
from pathlib import Path
from typing import Any, Callable, Optional

from loguru import logger
from watchfiles import Change, watch

from tmpltr.errors import TmpltrError, WatchError


def _same_file(target: Path) -> Callable[[Change, str], bool]:
    def _filter(change: Change, path: str) -> bool:
        return Path(path).resolve() == target
    return _filter


def run_compile(compile_once: Callable[[], Any]) -> bool:
    """Run one compile; failures are logged so the loop can keep going."""
    try:
        compile_once()
    except (TmpltrError, OSError) as e:
        logger.error(f"compilation error: {e}")
        return False
    return True


def watch_and_compile(
    path: Path,
    compile_once: Callable[[], Any],
    debounce_ms: int = 300,
    stop_event: Optional[threading.Event] = None,
    initial: bool = True,
) -> int:
    """Compile, then recompile once per debounced batch of changes to ``path``.

    The parent directory is watched and filtered down to the file, so editors
    that save through a rename are still seen. Compiles run on this thread and
    never overlap. Returns the number of successful compiles when the stop
    event is set.
    """
    target = Path(path).resolve()
    if not target.exists():
        raise WatchError(f"watching file: {path} does not exist")

    compiled = int(run_compile(compile_once)) if initial else 0
    logger.info(f"watching {path} for changes")
    try:
        for changes in watch(
            target.parent,
            watch_filter=_same_file(target),
            debounce=debounce_ms,
            stop_event=stop_event,
            recursive=False,
        ):
            logger.debug(f"watch: {len(changes)} change(s) to {target.name}")
            compiled += run_compile(compile_once)
    except (OSError, RuntimeError) as e:
        raise WatchError(str(e)) from e
    return compiled


def open_file(path: Path) -> None:
    """Open a file with the platform's default viewer."""
    if sys.platform == "darwin":
        subprocess.Popen(["open", str(path)])
    elif sys.platform.startswith("win"):
        os.startfile(str(path))
    else:
        subprocess.Popen(["xdg-open", str(path)], stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
