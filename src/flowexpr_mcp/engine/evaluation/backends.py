"""
Evaluation backends.

Both backends implement the same contract: given the helper-function bundle,
the expression and a plain context mapping, return the raw result and (when
the backend can tell) the set of context names the evaluation read. Contexts
and results pass through JSON on both backends, so tuples come back as lists
and non-string keys as strings.

- ExternalPythonBackend (primary): one worker subprocess per call, JSON over
  stdio. Reports accessed names. Timeouts kill the worker.
- EmbeddedPythonBackend (legacy): in-process sandboxed evaluation on a worker
  thread. Does not report accessed names. Timeouts abandon a detached daemon
  thread whose late result is discarded.

Backends raise ``BackendError`` for evaluation failures and the builtin
``TimeoutError`` when a bounded call exceeds its deadline. Callers should not
depend on anything else about a backend's errors.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ... import sandbox

logger = logging.getLogger(__name__)

WORKER_MODULE = "flowexpr_mcp.sandbox.worker"


class BackendError(Exception):
    """Evaluation failed inside a backend.

    Attributes:
        error_type: Name of the exception type raised by the evaluation
    """

    def __init__(self, message: str, error_type: str = "Error"):
        self.error_type = error_type
        super().__init__(message)


@dataclass(frozen=True)
class EvaluationResult:
    """
    Raw backend output.

    Attributes:
        value: Raw evaluation result
        accessed_names: Context names read during evaluation, or None when the
            backend does not track reads
    """

    value: Any
    accessed_names: frozenset[str] | None = None


class EvaluationBackend(ABC):
    """Interchangeable expression evaluation backend."""

    name: str
    tracks_accessed_names: bool

    @abstractmethod
    async def eval(
        self, functions_source: str, expression: str, context: dict[str, Any]
    ) -> EvaluationResult:
        """Evaluate without a deadline."""
        pass

    @abstractmethod
    async def test(
        self,
        functions_source: str,
        expression: str,
        context: dict[str, Any],
        timeout: float,
    ) -> EvaluationResult:
        """Evaluate, raising TimeoutError if no result within ``timeout`` seconds."""
        pass


class ExternalPythonBackend(EvaluationBackend):
    """
    Evaluate in a separate Python process.

    Each call spawns ``python -m flowexpr_mcp.sandbox.worker``,
    writes one JSON request to its stdin and reads one JSON response.

    Args:
        python_executable: Interpreter to run the worker with (default: current)
    """

    name = "external"
    tracks_accessed_names = True

    def __init__(self, python_executable: str | None = None):
        self.python_executable = python_executable or sys.executable

    async def eval(
        self, functions_source: str, expression: str, context: dict[str, Any]
    ) -> EvaluationResult:
        return await self._run(functions_source, expression, context, timeout=None)

    async def test(
        self,
        functions_source: str,
        expression: str,
        context: dict[str, Any],
        timeout: float,
    ) -> EvaluationResult:
        return await self._run(functions_source, expression, context, timeout=timeout)

    async def _run(
        self,
        functions_source: str,
        expression: str,
        context: dict[str, Any],
        timeout: float | None,
    ) -> EvaluationResult:
        try:
            plain_context = sandbox.round_trip(context, "Context")
        except sandbox.SerializationError as e:
            raise BackendError(sandbox.describe_error(e), type(e).__name__) from e
        payload = json.dumps(
            {"functions": functions_source, "expression": expression, "context": plain_context}
        )

        process = await asyncio.create_subprocess_exec(
            self.python_executable,
            "-m",
            WORKER_MODULE,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=self._worker_env(),
        )

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                process.communicate(payload.encode("utf-8")), timeout=timeout
            )
        except TimeoutError:
            process.kill()
            await process.wait()
            logger.warning(f"Evaluation worker killed after {timeout} seconds")
            raise

        stdout = stdout_bytes.decode("utf-8") if stdout_bytes else ""
        if process.returncode != 0 or not stdout:
            stderr = stderr_bytes.decode("utf-8").strip() if stderr_bytes else ""
            raise BackendError(
                f"Evaluation worker exited with code {process.returncode}: {stderr}",
                "WorkerError",
            )

        try:
            response = json.loads(stdout)
        except json.JSONDecodeError as e:
            raise BackendError(f"Invalid response from evaluation worker: {e}", "ProtocolError") from e

        if "error" in response:
            error = response["error"]
            raise BackendError(error.get("message", ""), error.get("type", "Error"))

        return EvaluationResult(
            value=response.get("result"),
            accessed_names=frozenset(response.get("accessed", [])),
        )

    @staticmethod
    def _worker_env() -> dict[str, str]:
        """Environment for the worker, with this package importable."""
        env = dict(os.environ)
        package_root = str(Path(__file__).resolve().parents[3])
        existing = env.get("PYTHONPATH")
        env["PYTHONPATH"] = f"{package_root}{os.pathsep}{existing}" if existing else package_root
        return env


class EmbeddedPythonBackend(EvaluationBackend):
    """
    Evaluate in-process through the shared sandbox.

    Accessed names are not tracked; the function bundle is expected to define
    the no-op ``accessed`` hook so helpers can call it.
    """

    name = "embedded"
    tracks_accessed_names = False

    async def eval(
        self, functions_source: str, expression: str, context: dict[str, Any]
    ) -> EvaluationResult:
        loop = asyncio.get_running_loop()

        def _run() -> Any:
            return self._evaluate(functions_source, expression, context)

        return EvaluationResult(await loop.run_in_executor(None, _run))

    async def test(
        self,
        functions_source: str,
        expression: str,
        context: dict[str, Any],
        timeout: float,
    ) -> EvaluationResult:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()

        def runner() -> None:
            try:
                result = self._evaluate(functions_source, expression, context)
            except BackendError as e:
                _settle_threadsafe(loop, future, error=e)
            else:
                _settle_threadsafe(loop, future, result=result)

        thread = threading.Thread(target=runner, name="flowexpr-embedded-eval", daemon=True)
        thread.start()

        try:
            value = await asyncio.wait_for(future, timeout=timeout)
        except TimeoutError:
            logger.warning(f"Embedded evaluation abandoned after {timeout} seconds")
            raise
        return EvaluationResult(value)

    @staticmethod
    def _evaluate(functions_source: str, expression: str, context: dict[str, Any]) -> Any:
        try:
            plain_context = sandbox.round_trip(context, "Context")
            result = sandbox.run(functions_source, expression, plain_context)
            return sandbox.round_trip(result, "Result")
        except Exception as e:
            raise BackendError(sandbox.describe_error(e), type(e).__name__) from e


def _settle_threadsafe(
    loop: asyncio.AbstractEventLoop,
    future: asyncio.Future[Any],
    result: Any = None,
    error: BaseException | None = None,
) -> None:
    def settle() -> None:
        # Deadline already passed: the late outcome is discarded
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)

    try:
        loop.call_soon_threadsafe(settle)
    except RuntimeError:
        # Event loop closed after the caller gave up on this evaluation
        logger.debug("Discarding embedded evaluation result: event loop is closed")


def create_backend(kind: str, python_executable: str | None = None) -> EvaluationBackend:
    """
    Instantiate the backend selected by configuration.

    Args:
        kind: "external" (primary) or "embedded" (legacy)
        python_executable: Interpreter for the external worker

    Raises:
        ValueError: Unknown backend kind
    """
    if kind == ExternalPythonBackend.name:
        return ExternalPythonBackend(python_executable)
    if kind == EmbeddedPythonBackend.name:
        return EmbeddedPythonBackend()
    raise ValueError(
        f"Unknown expression backend '{kind}'. "
        f"Available backends: {ExternalPythonBackend.name}, {EmbeddedPythonBackend.name}"
    )


__all__ = [
    "BackendError",
    "EmbeddedPythonBackend",
    "EvaluationBackend",
    "EvaluationResult",
    "ExternalPythonBackend",
    "create_backend",
]
