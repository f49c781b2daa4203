"""Session Controller — read-only view of the agents' tmux session.

Each running agent owns one window in a shared tmux session, named after the
work item it is handling (e.g. ``issue-42-fix-login``).  This module only
enumerates those windows; starting, stopping and repairing them belongs to
the pipeline scripts.

All tmux commands use list-mode ``subprocess.run`` with a timeout.  A missing
binary, a missing session, a timeout or undecodable output resolve to ``None``.

Author: Ahmed Adel Bakr Alderai
"""

from __future__ import annotations

import logging
import shlex
import subprocess

from config import TMUX_SESSION

logger = logging.getLogger(__name__)


class SessionController:
    """Enumerates agent windows inside a tmux session.

    Parameters
    ----------
    session_name:
        Name of the tmux session hosting the agent windows.
    timeout:
        Timeout in seconds for each tmux command.
    """

    def __init__(
        self,
        session_name: str = TMUX_SESSION,
        *,
        timeout: int = 10,
    ) -> None:
        self.session_name = session_name
        self.timeout = timeout

    def _tmux_run(self, args: list[str]) -> subprocess.CompletedProcess | None:
        """Run ``tmux`` with *args*; ``None`` if it could not run at all."""
        full_args = ["tmux"] + args
        cmd_str = " ".join(shlex.quote(a) for a in full_args)
        logger.debug("tmux exec: %s", cmd_str)

        try:
            return subprocess.run(
                full_args,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            logger.warning(
                "tmux command timed out after %ds: %s", self.timeout, cmd_str
            )
            return None
        except FileNotFoundError:
            logger.debug("tmux binary not found on PATH")
            return None
        except OSError as exc:
            logger.warning("tmux command failed with OS error: %s", exc)
            return None
        except ValueError as exc:
            # UnicodeDecodeError on a window name that is not valid UTF-8
            logger.warning("tmux output could not be decoded: %s", exc)
            return None

    def list_windows(self) -> list[str] | None:
        """Return the window names of the session, or ``None`` if unavailable."""
        result = self._tmux_run([
            "list-windows",
            "-t", self.session_name,
            "-F", "#{window_name}",
        ])
        if result is None:
            return None

        if result.returncode != 0:
            logger.debug(
                "tmux list-windows failed (rc=%d): %s",
                result.returncode,
                result.stderr.strip()[:200],
            )
            return None

        return [line.strip() for line in result.stdout.splitlines() if line.strip()]


def find_session_window(windows: list[str] | None, issue_number: int) -> str | None:
    """Return the first window whose name contains *issue_number*.

    This is a plain substring match, so issue 12 also matches a window named
    ``issue-123-foo``.  Callers rely on the current behaviour; tightening it
    is an open decision.
    """
    if not windows:
        return None
    needle = str(issue_number)
    for name in windows:
        if needle in name:
            return name
    return None
