"""Optional readiness wait after a task call such as ``just start-db``.

Without a configured check the runner moves straight on to the next line, so
``pg_ctl start`` followed by ``diesel setup`` can still race the server.
"""

from __future__ import annotations

import subprocess
import time

from runbook import log


def probe(check: str, shell: list[str]) -> bool:
    """Run *check* once, quietly. Return ``True`` when it exits 0."""
    try:
        proc = subprocess.run(
            [*shell, check],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    except FileNotFoundError:
        return False
    return proc.returncode == 0


def wait_until_ready(
    check: str,
    shell: list[str],
    *,
    timeout: float,
    interval: float,
) -> bool:
    """Poll *check* until it succeeds or *timeout* seconds pass."""
    deadline = time.monotonic() + timeout
    attempt = 0
    while True:
        attempt += 1
        if probe(check, shell):
            log.debug(f"Ready after {attempt} probe(s): {check}")
            return True
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return False
        log.debug(f"Not ready yet ({check}), retrying in {interval:g}s")
        time.sleep(min(interval, remaining))
