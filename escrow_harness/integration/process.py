"""
Bounded subprocess execution (imperative shell).

Shared by the subprocess oracle and the introspection client: both talk to an
external program over stdin/stdout and must not hang or buffer unbounded
output when that program misbehaves.

Guarantees:
- wall-clock timeout covering write, read and exit,
- hard caps on stdout/stderr size,
- the child runs in its own session and its whole process group is killed on
  any early exit, so no zombies or orphaned grandchildren are left behind.
"""

from __future__ import annotations

import os
import select
import signal
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Sequence


class BoundedProcessError(RuntimeError):
    """The child could not be run to completion within its limits."""


@dataclass(frozen=True)
class ProcessOutput:
    rc: int
    stdout: bytes
    stderr: bytes

    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace").strip()


def run_bounded(
    cmd: Sequence[str],
    *,
    input_bytes: bytes = b"",
    cwd: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
    timeout_s: float,
    max_stdout_bytes: int,
    max_stderr_bytes: int,
) -> ProcessOutput:
    """
    Run `cmd` feeding `input_bytes` on stdin; return exit code and output.

    `env`, when given, is the child's complete environment. The caller's own
    environment is never modified.

    Raises:
        ValueError: If the limits are not positive or cmd is empty
        BoundedProcessError: On spawn failure, timeout, output overflow or pipe errors
    """
    if not cmd:
        raise ValueError("cmd must be non-empty")
    if not isinstance(timeout_s, (int, float)) or timeout_s <= 0:
        raise ValueError("timeout_s must be positive")
    if not isinstance(max_stdout_bytes, int) or max_stdout_bytes <= 0:
        raise ValueError("max_stdout_bytes must be positive")
    if not isinstance(max_stderr_bytes, int) or max_stderr_bytes <= 0:
        raise ValueError("max_stderr_bytes must be positive")

    try:
        proc = subprocess.Popen(
            list(cmd),
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            start_new_session=True,
            close_fds=True,
            cwd=str(cwd) if cwd is not None else None,
            env=dict(env) if env is not None else None,
            bufsize=0,
        )
    except OSError as exc:
        raise BoundedProcessError(f"failed to start {cmd[0]}: {exc}") from exc

    def _kill_proc_group() -> None:
        # start_new_session=True makes the child its own process group leader.
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            return
        except OSError:
            try:
                proc.kill()
            except OSError:
                return

    def _abort(reason: str) -> BoundedProcessError:
        _kill_proc_group()
        try:
            proc.wait(timeout=0.2)
        except subprocess.TimeoutExpired:
            pass
        return BoundedProcessError(reason)

    assert proc.stdin is not None and proc.stdout is not None and proc.stderr is not None
    try:
        for stream in (proc.stdin, proc.stdout, proc.stderr):
            try:
                os.set_blocking(stream.fileno(), False)
            except OSError as exc:
                # Non-blocking pipes enforce the write-side timeout when the child never reads.
                raise _abort(f"non-blocking pipes unavailable: {exc}") from exc

        stdout_buf = bytearray()
        stderr_buf = bytearray()

        stdin_view = memoryview(bytes(input_bytes))
        stdin_off = 0
        stdin_open = True
        stdout_open = True
        stderr_open = True
        if len(stdin_view) == 0:
            stdin_open = False
            try:
                proc.stdin.close()
            except OSError as exc:
                raise _abort("stdin close error") from exc

        deadline = time.monotonic() + float(timeout_s)
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise _abort(f"timed out after {timeout_s}s")

            rlist = []
            if stdout_open:
                rlist.append(proc.stdout)
            if stderr_open:
                rlist.append(proc.stderr)
            wlist = []
            if stdin_open and stdin_off < len(stdin_view):
                wlist.append(proc.stdin)

            if not rlist and not wlist:
                break

            try:
                ready_r, ready_w, _ = select.select(rlist, wlist, [], min(0.1, remaining))
            except (OSError, ValueError) as exc:
                raise _abort("select error") from exc
            if not ready_r and not ready_w:
                continue

            for stream in ready_w:
                try:
                    n = stream.write(stdin_view[stdin_off : stdin_off + 4096])
                except BrokenPipeError as exc:
                    raise _abort("stdin broken pipe") from exc
                except BlockingIOError:
                    continue
                if n is None:
                    n = 0
                stdin_off += int(n)
                if stdin_off >= len(stdin_view):
                    stdin_open = False
                    try:
                        proc.stdin.close()
                    except OSError as exc:
                        raise _abort("stdin close error") from exc

            for stream in ready_r:
                try:
                    chunk = stream.read(4096)
                except BlockingIOError:
                    continue
                except OSError as exc:
                    raise _abort("stdout/stderr read error") from exc
                if not chunk:
                    if stream is proc.stdout:
                        stdout_open = False
                    else:
                        stderr_open = False
                    continue

                if stream is proc.stdout:
                    stdout_buf += chunk
                    if len(stdout_buf) > max_stdout_bytes:
                        raise _abort("stdout too large")
                else:
                    stderr_buf += chunk
                    if len(stderr_buf) > max_stderr_bytes:
                        raise _abort("stderr too large")

            if not stdout_open and not stderr_open and not stdin_open:
                break

        if stdin_off < len(stdin_view):
            raise _abort("stdin incomplete write")
        rc = proc.poll()
        if rc is None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise _abort(f"timed out after {timeout_s}s")
            try:
                rc = proc.wait(timeout=remaining)
            except subprocess.TimeoutExpired as exc:
                raise _abort(f"timed out after {timeout_s}s") from exc

        return ProcessOutput(rc=int(rc), stdout=bytes(stdout_buf), stderr=bytes(stderr_buf))
    finally:
        # Ensure the child is not left as a zombie, even if we returned early.
        if proc.returncode is None:
            _kill_proc_group()
            try:
                proc.wait(timeout=0.2)
            except subprocess.TimeoutExpired:
                pass
