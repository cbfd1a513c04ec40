from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Union

from errors import TMParseError
from lexer import COMMAND_TOKENS, MOVE_TOKENS, Lexer, Token


# Handles index into Ast.nodes. Nodes never hold references to each other,
# only handles, so the whole tree lives in one flat list.
NodeHandle = int

MOVE_NAMES = {
    "MOVE_LEFT": "left",
    "MOVE_RIGHT": "right",
    "STAY": "stay",
}


@dataclass
class SourceLocation:
    file: str
    line: int
    column: int
    statement: str


@dataclass
class Node:
    location: SourceLocation


@dataclass
class RootNode(Node):
    declarations: List[NodeHandle]
    commands: List[NodeHandle]


@dataclass
class DeclarationNode(Node):
    name: NodeHandle
    transitions: List[NodeHandle]


@dataclass
class TransitionNode(Node):
    from_state: NodeHandle
    read_symbol: NodeHandle
    write_symbol: NodeHandle
    move: NodeHandle
    next_state: NodeHandle


@dataclass
class CommandNode(Node):
    kind: str
    machine: NodeHandle
    head: NodeHandle
    start_state: NodeHandle
    tape: NodeHandle


@dataclass
class SymbolNode(Node):
    value: str


@dataclass
class MoveNode(Node):
    move: str


@dataclass
class NumberNode(Node):
    value: int


@dataclass
class TapeNode(Node):
    values: List[NodeHandle]


AnyNode = Union[RootNode, DeclarationNode, TransitionNode, CommandNode, SymbolNode, MoveNode, NumberNode, TapeNode]


# ---- decoded form handed to the interpreter ----


@dataclass(frozen=True)
class TransitionDecl:
    from_state: str
    read_symbol: str
    write_symbol: str
    move: str
    next_state: str


@dataclass
class MachineDecl:
    name: str
    transitions: List[TransitionDecl]
    location: Optional[SourceLocation] = None


@dataclass
class RunCommand:
    kind: str
    machine: str
    head: int
    start_state: str
    tape: List[str]
    location: Optional[SourceLocation] = None


@dataclass
class Program:
    declarations: List[MachineDecl] = field(default_factory=list)
    commands: List[RunCommand] = field(default_factory=list)


@dataclass
class Ast:
    nodes: List[AnyNode]
    root: NodeHandle = 0

    def node(self, handle: NodeHandle) -> AnyNode:
        return self.nodes[handle]

    def symbol(self, handle: NodeHandle) -> str:
        node = self.nodes[handle]
        if not isinstance(node, SymbolNode):
            raise TMParseError(f"Node {handle} is {type(node).__name__}, expected SymbolNode")
        return node.value

    def decode(self) -> Program:
        """Flatten the tree into machine declarations and run commands."""
        root = self.nodes[self.root]
        assert isinstance(root, RootNode)
        program = Program()
        for handle in root.declarations:
            decl = self.nodes[handle]
            assert isinstance(decl, DeclarationNode)
            transitions: List[TransitionDecl] = []
            for t_handle in decl.transitions:
                t = self.nodes[t_handle]
                assert isinstance(t, TransitionNode)
                move = self.nodes[t.move]
                assert isinstance(move, MoveNode)
                transitions.append(
                    TransitionDecl(
                        from_state=self.symbol(t.from_state),
                        read_symbol=self.symbol(t.read_symbol),
                        write_symbol=self.symbol(t.write_symbol),
                        move=move.move,
                        next_state=self.symbol(t.next_state),
                    )
                )
            program.declarations.append(
                MachineDecl(name=self.symbol(decl.name), transitions=transitions, location=decl.location)
            )
        for handle in root.commands:
            cmd = self.nodes[handle]
            assert isinstance(cmd, CommandNode)
            head = self.nodes[cmd.head]
            tape = self.nodes[cmd.tape]
            assert isinstance(head, NumberNode) and isinstance(tape, TapeNode)
            program.commands.append(
                RunCommand(
                    kind=cmd.kind,
                    machine=self.symbol(cmd.machine),
                    head=head.value,
                    start_state=self.symbol(cmd.start_state),
                    tape=[self.symbol(v) for v in tape.values],
                    location=cmd.location,
                )
            )
        return program


class Parser:
    def __init__(self, tokens: List[Token], filename: str, source_lines: List[str]):
        self.tokens = tokens
        self.filename = filename
        self.source_lines = source_lines
        self.index = 0
        self.nodes: List[AnyNode] = []

    def parse(self) -> Ast:
        # Reserve handle 0 for the root; it is filled in once everything else is parsed.
        first = self._peek()
        self.nodes.append(RootNode(location=self._location_from_token(first), declarations=[], commands=[]))
        declarations: List[NodeHandle] = []
        commands: List[NodeHandle] = []
        while self._peek().type != "EOF":
            if self._match("NEWLINE"):
                continue
            token = self._peek()
            if token.type in COMMAND_TOKENS:
                commands.append(self._parse_command())
            elif token.type == "SYMBOL" and self._peek_next().type == "COLON":
                declarations.append(self._parse_declaration())
            else:
                raise TMParseError(
                    f"Expected machine declaration or command but found {token.type} {token.value!r} "
                    f"at {self.filename}:{token.line}:{token.column}"
                )
        root = self.nodes[0]
        assert isinstance(root, RootNode)
        root.declarations = declarations
        root.commands = commands
        return Ast(nodes=self.nodes, root=0)

    def _add(self, node: AnyNode) -> NodeHandle:
        self.nodes.append(node)
        return len(self.nodes) - 1

    def _parse_declaration(self) -> NodeHandle:
        name_token = self._peek()
        name = self._parse_symbol()
        self._consume("COLON")
        self._consume("NEWLINE")
        transitions: List[NodeHandle] = []
        while self._peek().type == "SYMBOL" and self._peek_next().type != "COLON":
            transitions.append(self._parse_transition())
        return self._add(DeclarationNode(location=self._location_from_token(name_token), name=name, transitions=transitions))

    def _parse_transition(self) -> NodeHandle:
        first = self._peek()
        from_state = self._parse_symbol()
        read_symbol = self._parse_symbol()
        write_symbol = self._parse_symbol()
        move = self._parse_move()
        next_state = self._parse_symbol()
        self._consume("NEWLINE")
        return self._add(
            TransitionNode(
                location=self._location_from_token(first),
                from_state=from_state,
                read_symbol=read_symbol,
                write_symbol=write_symbol,
                move=move,
                next_state=next_state,
            )
        )

    def _parse_command(self) -> NodeHandle:
        keyword = self._peek()
        self.index += 1
        machine = self._parse_symbol()
        head = self._parse_number()
        start_state = self._parse_symbol()
        tape = self._parse_tape()
        self._consume("NEWLINE")
        return self._add(
            CommandNode(
                location=self._location_from_token(keyword),
                kind=keyword.value,
                machine=machine,
                head=head,
                start_state=start_state,
                tape=tape,
            )
        )

    def _parse_symbol(self) -> NodeHandle:
        token = self._consume("SYMBOL")
        return self._add(SymbolNode(location=self._location_from_token(token), value=token.value))

    def _parse_move(self) -> NodeHandle:
        token = self._peek()
        if token.type not in MOVE_TOKENS:
            raise TMParseError(
                f"Expected move ('->', '<-' or '--') but found {token.type} {token.value!r} "
                f"at {self.filename}:{token.line}:{token.column}"
            )
        self.index += 1
        return self._add(MoveNode(location=self._location_from_token(token), move=MOVE_NAMES[token.type]))

    def _parse_number(self) -> NodeHandle:
        token = self._consume("SYMBOL")
        try:
            value = int(token.value, 10)
        except ValueError:
            raise TMParseError(
                f"Expected a decimal head position but found {token.value!r} "
                f"at {self.filename}:{token.line}:{token.column}"
            ) from None
        return self._add(NumberNode(location=self._location_from_token(token), value=value))

    def _parse_tape(self) -> NodeHandle:
        lbracket = self._consume("LBRACKET")
        values: List[NodeHandle] = []
        while self._peek().type == "SYMBOL":
            values.append(self._parse_symbol())
            if not self._match("COMMA"):
                break
        self._consume("RBRACKET")
        return self._add(TapeNode(location=self._location_from_token(lbracket), values=values))

    def _consume(self, token_type: str) -> Token:
        token = self._peek()
        if token.type != token_type:
            raise TMParseError(
                f"Expected token {token_type} but found {token.type} {token.value!r} "
                f"at {self.filename}:{token.line}:{token.column}"
            )
        self.index += 1
        return token

    def _match(self, token_type: str) -> bool:
        if self._peek().type == token_type:
            self.index += 1
            return True
        return False

    def _peek(self) -> Token:
        return self.tokens[self.index]

    def _peek_next(self) -> Token:
        if self.index + 1 >= len(self.tokens):
            return self.tokens[-1]
        return self.tokens[self.index + 1]

    def _location_from_token(self, token: Token) -> SourceLocation:
        line_index = token.line - 1
        statement = ""
        if 0 <= line_index < len(self.source_lines):
            statement = self.source_lines[line_index].strip()
        return SourceLocation(file=self.filename, line=token.line, column=token.column, statement=statement)


def parse_source(text: str, filename: str = "<string>") -> Program:
    tokens = Lexer(text, filename).tokenize()
    return Parser(tokens, filename, text.splitlines()).parse().decode()
