"""
Stepped runner for transpiled programs.

The instrumented program is a generator: every ``yield`` is a pause point.
``run`` starts it and stops at the first pause, ``advance`` moves it to the
next one, ``reset`` closes it. Nothing runs between commands.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from errors import RunnerBusyError, StepLimitExceeded, UnsupportedConstructError
from lens_runtime import SAFE_BUILTINS, LensRuntime, Pause
from memory import Memory
from transpiler import FILENAME, PROGRAM_ENTRY, RUNTIME, TranspileResult, transpile

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 10000


class RunState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    ABORTED = "aborted"


@dataclass
class Snapshot:
    line: Optional[int] = None
    variables: Dict[str, Any] = field(default_factory=dict)
    heap: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    stack: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class ExecutionError:
    type: str
    message: str
    line: Optional[int] = None


@dataclass
class RunnerState:
    state: RunState
    snapshot: Snapshot
    output: str = ""
    error: Optional[ExecutionError] = None
    diagnostics: list = field(default_factory=list)

    @property
    def running(self) -> bool:
        return self.state is RunState.RUNNING


class CodeRunner:
    def __init__(self, memory: Optional[Memory] = None, max_steps: int = DEFAULT_MAX_STEPS):
        self.memory = memory if memory is not None else Memory()
        self.max_steps = max_steps
        self.state = RunState.IDLE
        self.snapshot = Snapshot()
        self.error: Optional[ExecutionError] = None
        self.transpiled: Optional[TranspileResult] = None
        self.steps = 0
        self._runtime: Optional[LensRuntime] = None
        # the suspended program; holding it is holding the pause token
        self._program = None
        self._observers: List[Callable[[RunnerState], None]] = []

    @property
    def is_running(self) -> bool:
        return self.state is RunState.RUNNING

    @property
    def current_line(self) -> Optional[int]:
        return self.snapshot.line

    @property
    def output(self) -> str:
        return self._runtime.text if self._runtime is not None else ""

    def subscribe(self, callback: Callable[[RunnerState], None]) -> Callable[[], None]:
        self._observers.append(callback)

        def unsubscribe():
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def current_state(self) -> RunnerState:
        diagnostics = list(self.transpiled.diagnostics) if self.transpiled else []
        return RunnerState(state=self.state, snapshot=self.snapshot, output=self.output,
                           error=self.error, diagnostics=diagnostics)

    # --- commands ---------------------------------------------------------

    def run(self, code: str) -> RunnerState:
        if self.is_running:
            raise RunnerBusyError("a program is already running, reset it first")
        return self.run_transpiled(transpile(code))

    def run_transpiled(self, transpiled: TranspileResult) -> RunnerState:
        if self.is_running:
            raise RunnerBusyError("a program is already running, reset it first")
        self.memory.clear()
        self.transpiled = transpiled
        self.snapshot = Snapshot()
        self.error = None
        self.steps = 0
        self._runtime = LensRuntime(self.memory, self.max_steps)
        for diagnostic in transpiled.diagnostics:
            logger.warning("line %s: %s", diagnostic.line, diagnostic.message)

        namespace = {"__builtins__": SAFE_BUILTINS, RUNTIME: self._runtime}
        try:
            exec(compile(transpiled.code, FILENAME, "exec"), namespace)
            self._program = namespace[PROGRAM_ENTRY]()
        except Exception as exc:
            self._fail(exc)
            return self.current_state()

        logger.info("Execution started")
        self.state = RunState.RUNNING
        self._resume()
        return self.current_state()

    def advance(self) -> RunnerState:
        """Let the program run to its next pause. No-op when nothing is paused."""
        if self.is_running and self._program is not None:
            self._resume()
        return self.current_state()

    def reset(self) -> RunnerState:
        aborted = self._program is not None
        if aborted:
            # GeneratorExit unwinds the program's frames at the pause it sits on
            self._program.close()
            self._program = None
        self.memory.clear()
        self._runtime = None
        self.transpiled = None
        self.snapshot = Snapshot()
        self.error = None
        self.steps = 0
        self.state = RunState.ABORTED if aborted else RunState.IDLE
        logger.info("Execution reset")
        self._notify()
        return self.current_state()

    # --- internals --------------------------------------------------------

    def _resume(self):
        try:
            pause: Pause = next(self._program)
        except StopIteration:
            self._finish()
            return
        except Exception as exc:
            self._fail(exc)
            return

        self.steps += 1
        if self.steps > self.max_steps:
            self._program.close()
            self._fail(StepLimitExceeded(self.max_steps))
            return
        logger.debug("Paused at line %s", pause.line)
        self.snapshot = Snapshot(
            line=pause.line,
            variables=dict(pause.variables),
            heap=self.memory.snapshot_heap(),
            stack=self.memory.snapshot_stack(),
        )
        self._notify()

    def _finish(self):
        logger.info("Execution completed after %d steps", self.steps)
        self._program = None
        self.state = RunState.IDLE
        self.snapshot = Snapshot(heap=self.memory.snapshot_heap())
        self._notify()

    def _fail(self, exc: Exception):
        line = self._error_line(exc)
        logger.warning("Execution error on line %s: %s: %s", line, type(exc).__name__, exc)
        self.error = ExecutionError(type=type(exc).__name__, message=str(exc), line=line)
        self._program = None
        self.state = RunState.IDLE
        self.snapshot = Snapshot(heap=self.memory.snapshot_heap(),
                                 stack=self.memory.snapshot_stack())
        self._notify()

    def _error_line(self, exc) -> Optional[int]:
        if isinstance(exc, UnsupportedConstructError):
            return exc.line
        if isinstance(exc, SyntaxError) and exc.filename == FILENAME and exc.lineno:
            return self.transpiled.source_line(exc.lineno)
        line = None
        tb = exc.__traceback__
        while tb is not None:
            if tb.tb_frame.f_code.co_filename == FILENAME:
                line = self.transpiled.source_line(tb.tb_lineno)
            tb = tb.tb_next
        return line if line is not None else self.snapshot.line

    def _notify(self):
        state = self.current_state()
        for callback in list(self._observers):
            try:
                callback(state)
            except Exception:
                logger.exception("Runner observer failed")
