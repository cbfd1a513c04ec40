"""Extension hooks for tumi.

An extension is a Python file defining ``tumi_register(hooks)``. It receives
the program's HookRegistry and may subscribe to command events or ask to be
called after every N executed transitions. ``.tmx`` files list extension
paths, one per line, relative to the pointer file.
"""

from __future__ import annotations
import os
import runpy
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from errors import TMExtensionError


EVENTS = (
    "program_start",
    "before_command",
    "after_command",
    "on_error",
    "program_end",
)

REGISTER_FUNCTION = "tumi_register"
POINTER_SUFFIX = ".tmx"


@dataclass(frozen=True)
class StepContext:
    step_index: int
    machine: str
    step: Any  # machine.Step
    location: Any  # SourceLocation | None


StepHandler = Callable[[Any, StepContext], None]


def _empty_handlers() -> Dict[str, List[Callable[..., None]]]:
    return {event: [] for event in EVENTS}


@dataclass
class HookRegistry:
    handlers: Dict[str, List[Callable[..., None]]] = field(default_factory=_empty_handlers)
    # (every_n, handler)
    step_rules: List[Tuple[int, StepHandler]] = field(default_factory=list)

    def on(self, event: str) -> Callable[[Callable[..., None]], Callable[..., None]]:
        if event not in EVENTS:
            raise TMExtensionError(f"Unknown event '{event}' (expected one of {', '.join(EVENTS)})")

        def register(handler: Callable[..., None]) -> Callable[..., None]:
            self.handlers[event].append(handler)
            return handler

        return register

    def every(self, every_n: int) -> Callable[[StepHandler], StepHandler]:
        if every_n < 1:
            raise TMExtensionError(f"Step interval must be at least 1, got {every_n}")

        def register(handler: StepHandler) -> StepHandler:
            self.step_rules.append((every_n, handler))
            return handler

        return register

    def emit(self, event: str, *args: Any) -> None:
        for handler in self.handlers[event]:
            handler(*args)

    @property
    def has_step_rules(self) -> bool:
        return bool(self.step_rules)

    def after_step(self, interpreter: Any, ctx: StepContext) -> None:
        for every_n, handler in self.step_rules:
            if ctx.step_index % every_n == 0:
                handler(interpreter, ctx)


def expand_paths(paths: Iterable[str]) -> List[str]:
    """Absolute extension paths, with each .tmx file replaced by its entries."""
    out: List[str] = []
    for path in paths:
        if not path.lower().endswith(POINTER_SUFFIX):
            out.append(os.path.abspath(path))
            continue
        try:
            with open(path, "r", encoding="utf-8") as handle:
                lines = handle.read().splitlines()
        except OSError as exc:
            raise TMExtensionError(f"Cannot read pointer file {path}: {exc}") from exc
        base = os.path.dirname(os.path.abspath(path))
        for raw in lines:
            entry = raw.partition("#")[0].strip()
            if entry:
                out.append(os.path.normpath(os.path.join(base, entry)))
    return out


def load_extensions(paths: Iterable[str], hooks: Optional[HookRegistry] = None) -> HookRegistry:
    hooks = hooks if hooks is not None else HookRegistry()
    for path in expand_paths(paths):
        if not os.path.isfile(path):
            raise TMExtensionError(f"Extension not found: {path}")
        stem = os.path.splitext(os.path.basename(path))[0]
        namespace = runpy.run_path(path, run_name=f"tumi_ext_{stem}")
        register = namespace.get(REGISTER_FUNCTION)
        if not callable(register):
            raise TMExtensionError(f"Extension {path} must define {REGISTER_FUNCTION}(hooks)")
        register(hooks)
    return hooks
