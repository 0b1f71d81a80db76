"""
Dotted field paths such as "variationSalesPrices.0.price", parsed once into
tokens and walked over plain dict/list trees.
"""
from typing import Any, List, Tuple, Union

Token = Union[str, int]

MISSING = object()


class FieldPath:
    __slots__ = ("raw", "tokens")

    def __init__(self, raw: str):
        if not raw or not raw.strip():
            raise ValueError("Field path must not be empty")
        self.raw = raw.strip()
        self.tokens: Tuple[Token, ...] = tuple(self._parse(self.raw))

    @staticmethod
    def _parse(raw: str) -> List[Token]:
        tokens: List[Token] = []
        for part in raw.split("."):
            if part == "":
                raise ValueError(f"Empty segment in field path '{raw}'")
            tokens.append(int(part) if part.isdigit() else part)
        return tokens

    def get(self, data: Any, default: Any = MISSING) -> Any:
        """Value at this path, or `default` when any segment is missing."""
        current = data
        for token in self.tokens:
            if current is None:
                return default
            if isinstance(token, int):
                if not isinstance(current, list) or token >= len(current):
                    return default
                current = current[token]
            else:
                if not isinstance(current, dict) or token not in current:
                    return default
                current = current[token]
        return current

    def set(self, data: dict, value: Any) -> None:
        """Write value, creating intermediate dicts/lists as the next token requires."""
        current: Any = data
        for token, next_token in zip(self.tokens, self.tokens[1:]):
            container = [] if isinstance(next_token, int) else {}
            if isinstance(token, int):
                while len(current) <= token:
                    current.append(None)
                if current[token] is None:
                    current[token] = container
                current = current[token]
            else:
                if current.get(token) is None:
                    current[token] = container
                current = current[token]

        last = self.tokens[-1]
        if isinstance(last, int):
            while len(current) <= last:
                current.append(None)
        current[last] = value

    def __eq__(self, other: object) -> bool:
        return isinstance(other, FieldPath) and other.tokens == self.tokens

    def __hash__(self) -> int:
        return hash(self.tokens)

    def __repr__(self) -> str:
        return f"FieldPath('{self.raw}')"
