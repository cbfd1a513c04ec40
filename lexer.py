from __future__ import annotations
from dataclasses import dataclass
from typing import List

from errors import TMParseError


@dataclass
class Token:
    type: str
    value: str
    line: int
    column: int


KEYWORDS = {
    "run": "RUN",
    "trace": "TRACE",
    "render": "RENDER",
    "->": "MOVE_RIGHT",
    "<-": "MOVE_LEFT",
    "--": "STAY",
}

COMMAND_TOKENS = {"RUN", "TRACE", "RENDER"}
MOVE_TOKENS = {"MOVE_LEFT", "MOVE_RIGHT", "STAY"}

SYMBOLS = {
    "[": "LBRACKET",
    "]": "RBRACKET",
    ",": "COMMA",
    ":": "COLON",
}

SYMBOL_CHARS = frozenset("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_-<>.")

BOM = "\ufeff"


class Lexer:
    def __init__(self, text: str, filename: str) -> None:
        self.text = text
        self.filename = filename
        self.index = 1 if text.startswith(BOM) else 0
        self.line = 1
        self.column = 1

    def tokenize(self) -> List[Token]:
        tokens: List[Token] = []
        tokens_append = tokens.append
        _advance = self._advance
        symbols = SYMBOLS
        symbol_chars = SYMBOL_CHARS
        text = self.text
        n = len(text)

        while self.index < n:
            ch: str = text[self.index]
            if ch == " " or ch == "\t" or ch == "\r":
                _advance()
                continue
            if ch == "\n":
                # Blank lines carry no meaning; keep at most one NEWLINE in a row
                # and never start the stream with one.
                if tokens and tokens[-1].type != "NEWLINE":
                    tokens_append(Token("NEWLINE", "\n", self.line, self.column))
                _advance()
                continue
            if ch == "#":
                self._consume_comment()
                continue
            if ch in symbols:
                tokens_append(Token(symbols[ch], ch, self.line, self.column))
                _advance()
                continue
            if ch in symbol_chars:
                tokens_append(self._consume_symbol())
                continue
            raise TMParseError(
                f"Unexpected character {ch!r} at {self.filename}:{self.line}:{self.column}"
            )
        if tokens and tokens[-1].type != "NEWLINE":
            # The final line may omit its newline.
            tokens_append(Token("NEWLINE", "\n", self.line, self.column))
        tokens_append(Token("EOF", "", self.line, self.column))
        return tokens

    def _consume_comment(self) -> None:
        text = self.text
        n = len(text)
        _advance = self._advance
        while self.index < n and text[self.index] != "\n":
            _advance()

    def _consume_symbol(self) -> Token:
        line, col = self.line, self.column
        chars: List[str] = []
        text = self.text
        n = len(text)
        _advance = self._advance
        while self.index < n and text[self.index] in SYMBOL_CHARS:
            chars.append(text[self.index])
            _advance()
        value = "".join(chars)
        return Token(KEYWORDS.get(value, "SYMBOL"), value, line, col)

    def _advance(self) -> None:
        if self.text[self.index] == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        self.index += 1
