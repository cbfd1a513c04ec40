"""Counts executed transitions per machine and prints a summary at program end."""

from __future__ import annotations
from collections import Counter
from typing import Any

from extensions import HookRegistry, StepContext


def tumi_register(hooks: HookRegistry) -> None:
    counts: Counter = Counter()

    @hooks.every(1)
    def _count(interpreter: Any, ctx: StepContext) -> None:
        counts[ctx.machine] += 1

    @hooks.on("program_end")
    def _summary(interpreter: Any, results: Any) -> None:
        for machine, total in sorted(counts.items()):
            interpreter.output_sink(f"{machine}: {total} steps")
