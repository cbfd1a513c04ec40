from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterator, Optional, Set, Tuple, Union

from errors import ConfigurationError
from interner import HALT, HALT_NAME, StateInterner, SymbolInterner
from tape import Tape


class Move(Enum):
    LEFT = "left"
    RIGHT = "right"
    STAY = "stay"

    @property
    def delta(self) -> int:
        return _MOVE_DELTA[self]

    @property
    def arrow(self) -> str:
        return _MOVE_ARROW[self]


_MOVE_DELTA = {Move.LEFT: -1, Move.RIGHT: 1, Move.STAY: 0}
_MOVE_ARROW = {Move.LEFT: "<-", Move.RIGHT: "->", Move.STAY: "--"}


@dataclass(frozen=True)
class Transition:
    from_state: int
    read_symbol: int
    write_symbol: int
    move: Move
    next_state: int

    @property
    def key(self) -> Tuple[int, int]:
        return (self.from_state, self.read_symbol)


class TransitionTable:
    """Deterministic (state, symbol) -> Transition map for one machine."""

    def __init__(self) -> None:
        self._entries: Dict[Tuple[int, int], Transition] = {}

    def insert(self, transition: Transition) -> Transition:
        key = transition.key
        if key in self._entries:
            raise ConfigurationError(
                f"Duplicate transition for (state {key[0]}, symbol {key[1]})"
            )
        self._entries[key] = transition
        return transition

    def lookup(self, state: int, symbol: int) -> Optional[Transition]:
        return self._entries.get((state, symbol))

    def states(self) -> Set[int]:
        out: Set[int] = set()
        for t in self._entries.values():
            out.add(t.from_state)
            out.add(t.next_state)
        return out

    def symbols(self) -> Set[int]:
        out: Set[int] = set()
        for t in self._entries.values():
            out.add(t.read_symbol)
            out.add(t.write_symbol)
        return out

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[Transition]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(frozen=True)
class Halted:
    state: int
    head: int
    steps: int = 0

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failed:
    state: int
    head: int
    symbol: Optional[int]
    reason: str
    steps: int = 0

    @property
    def ok(self) -> bool:
        return False


ExecutionOutcome = Union[Halted, Failed]


@dataclass(frozen=True)
class Step:
    index: int
    state: int
    read_symbol: int
    transition: Transition
    head_before: int
    head_after: int


StepCallback = Callable[[Step], None]


class TuringMachine:
    def __init__(
        self,
        name: str,
        states: StateInterner,
        symbols: SymbolInterner,
        transitions: Optional[TransitionTable] = None,
    ) -> None:
        self.name = name
        self.states = states
        self.symbols = symbols
        self.transitions = transitions if transitions is not None else TransitionTable()
        self.current_state = HALT
        self.head = 0

    def add_transition(self, transition: Transition) -> Transition:
        try:
            return self.transitions.insert(transition)
        except ConfigurationError as exc:
            raise ConfigurationError(
                f"Machine '{self.name}': duplicate transition for "
                f"({self.states.describe(transition.from_state)}, {self.symbols.describe(transition.read_symbol)})",
                machine=self.name,
            ) from exc

    def check_halt_reserved(self) -> None:
        if len(self.states) == 0 or self.states.resolve(HALT) != HALT_NAME:
            raise ConfigurationError(
                f"State id {HALT} must be the halting state {HALT_NAME!r}", machine=self.name
            )

    def run(
        self,
        tape: Tape,
        start_state: int,
        head: int = 0,
        *,
        max_steps: Optional[int] = None,
        on_step: Optional[StepCallback] = None,
    ) -> ExecutionOutcome:
        """Drive the machine until it halts or no transition applies.

        There is no step bound unless ``max_steps`` is given, in which case
        running out of steps is reported as a failure.
        """
        self.check_halt_reserved()
        self.current_state = start_state
        self.head = head
        lookup = self.transitions.lookup
        steps = 0
        while self.current_state != HALT:
            if max_steps is not None and steps >= max_steps:
                return Failed(
                    state=self.current_state,
                    head=self.head,
                    symbol=None,
                    reason=f"step limit of {max_steps} exceeded",
                    steps=steps,
                )
            read_symbol = tape.read(self.head)
            transition = lookup(self.current_state, read_symbol)
            if transition is None:
                return Failed(
                    state=self.current_state,
                    head=self.head,
                    symbol=read_symbol,
                    reason=(
                        f"no transition defined for ({self.states.describe(self.current_state)}, "
                        f"{self.symbols.describe(read_symbol)})"
                    ),
                    steps=steps,
                )
            tape.write(self.head, transition.write_symbol)
            before = self.head
            self.head += transition.move.delta
            self.current_state = transition.next_state
            if on_step is not None:
                on_step(Step(steps, transition.from_state, read_symbol, transition, before, self.head))
            steps += 1
        return Halted(state=self.current_state, head=self.head, steps=steps)
