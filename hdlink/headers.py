"""Ordered, case-insensitive key/value list used for options and headers."""

from __future__ import annotations

from collections.abc import Iterator

_C_WHITESPACE = " \t\n\v\f\r"
_FORMAT_LIMIT = 1023


class HeaderList:
    """Keys compare without regard to ASCII case; each keeps its first spelling."""

    def __init__(self) -> None:
        self._entries: dict[str, tuple[str, str]] = {}

    @staticmethod
    def _fold(key: str) -> str:
        return key.lower()

    def set(self, key: str, value: str) -> None:
        """Set ``key`` to ``value``, keeping the position of an existing entry."""
        folded = self._fold(key)
        existing = self._entries.get(folded)
        stored_key = existing[0] if existing else key
        self._entries[folded] = (stored_key, value)

    def get(self, key: str) -> str | None:
        """Return the value for ``key`` or ``None``."""
        entry = self._entries.get(self._fold(key))
        return entry[1] if entry else None

    def check(self, key: str, value: str) -> bool:
        """Tell whether ``key`` is present with ``value``, ignoring case."""
        current = self.get(key)
        return current is not None and current.lower() == value.lower()

    def set_from_string(self, data: str) -> tuple[str, str]:
        """Store a ``key: value`` line and return the trimmed pair."""
        key, sep, value = data.partition(":")
        if not sep:
            raise ValueError(f"no ':' in header line {data!r}")
        key = key.strip(_C_WHITESPACE)
        value = value.strip(_C_WHITESPACE)
        self.set(key, value)
        return key, value

    def set_format(self, key: str, fmt: str, *args: object) -> None:
        """Store a printf-style formatted value, cut to 1023 characters."""
        self.set(key, (fmt % args)[:_FORMAT_LIMIT])

    def remove(self, key: str) -> None:
        """Remove ``key``; raise ``KeyError`` when it is absent."""
        try:
            del self._entries[self._fold(key)]
        except KeyError:
            raise KeyError(key) from None

    def clear(self) -> None:
        self._entries.clear()

    def items(self) -> list[tuple[str, str]]:
        """Return the entries as ``(key, value)`` pairs in insertion order."""
        return list(self._entries.values())

    def __iter__(self) -> Iterator[str]:
        return (key for key, _ in self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self._fold(key) in self._entries

    def __repr__(self) -> str:
        return f"HeaderList({self.items()!r})"