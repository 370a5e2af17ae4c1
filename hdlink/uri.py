"""Split a URI into scheme, credentials, host, port, path, query and fragment."""

from __future__ import annotations

from dataclasses import dataclass

_SCHEME_SEPARATOR = "://"


@dataclass(frozen=True)
class ParsedUri:
    """Components of a URI; absent parts are ``None``, the path is never empty."""

    scheme: str
    host: str | None = None
    port: str | None = None
    path: str = "/"
    query: str | None = None
    fragment: str | None = None
    username: str | None = None
    password: str | None = None

    def describe(self) -> str:
        """Return one line for each non-empty component."""
        labelled = (
            ("scheme", self.scheme),
            ("Host", self.host),
            ("path", self.path),
            ("port", self.port),
            ("username", self.username),
            ("password", self.password),
            ("fragment", self.fragment),
        )
        return "\n".join(f"{label}: {value}" for label, value in labelled if value)


def _split(text: str, stops: str, track_brackets: bool) -> tuple[str, str | None, str]:
    """Split ``text`` at the first stop character outside square brackets."""
    in_brackets = False
    for pos, char in enumerate(text):
        if track_brackets:
            if char == "[" and not in_brackets:
                in_brackets = True
            elif char == "]" and in_brackets:
                in_brackets = False
        if not in_brackets and char in stops:
            return text[:pos], char, text[pos + 1 :]
    return text, None, ""


def _split_fragment(text: str) -> tuple[str, str | None]:
    head, sep, tail = text.partition("#")
    return head, (tail if sep else None)


def _full_path(raw: str | None) -> str:
    return f"/{raw}" if raw else "/"


def parse_uri(url: str) -> ParsedUri:
    """Parse ``url``; text without ``://`` followed by anything is all scheme."""
    index = url.find(_SCHEME_SEPARATOR)
    if index < 0 or index + len(_SCHEME_SEPARATOR) >= len(url):
        return ParsedUri(scheme=url)

    scheme = url[:index]
    rest = url[index + len(_SCHEME_SEPARATOR) :]

    first, delim, tail = _split(rest, ":#/", track_brackets=True)
    if delim is None:
        return ParsedUri(scheme=scheme, host=first)
    if delim == "#":
        return ParsedUri(scheme=scheme, host=first, fragment=tail)
    if delim == "/":
        path, fragment = _split_fragment(tail)
        return ParsedUri(scheme=scheme, host=first, path=_full_path(path), fragment=fragment)

    second, delim, tail = _split(tail, "@/#", track_brackets=False)
    if delim is None:
        return ParsedUri(scheme=scheme, host=first, port=second)
    if delim == "/":
        path, fragment = _split_fragment(tail)
        return ParsedUri(
            scheme=scheme, host=first, port=second, path=_full_path(path), fragment=fragment
        )
    if delim == "#":
        return ParsedUri(scheme=scheme, host=first, port=second, fragment=tail)

    username, password = first, second
    host, delim, tail = _split(tail, ":/#", track_brackets=True)
    credentials = {"scheme": scheme, "host": host, "username": username, "password": password}
    if delim is None:
        return ParsedUri(**credentials)
    if delim == "#":
        return ParsedUri(**credentials, fragment=tail)
    if delim == "/":
        path, fragment = _split_fragment(tail)
        return ParsedUri(**credentials, path=_full_path(path), fragment=fragment)

    port, delim, tail = _split(tail, "/?#", track_brackets=False)
    if delim is None:
        return ParsedUri(**credentials, port=port)
    if delim == "#":
        return ParsedUri(**credentials, port=port, fragment=tail)
    if delim == "?":
        query, fragment = _split_fragment(tail)
        return ParsedUri(**credentials, port=port, query=query, fragment=fragment)
    path, fragment = _split_fragment(tail)
    return ParsedUri(**credentials, port=port, path=_full_path(path), fragment=fragment)