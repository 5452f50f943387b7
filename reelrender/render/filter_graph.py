"""Typed FFmpeg filter graph builder.

A graph is a list of chains (``[in]filter,filter[out]``) joined with ``;``.
Filter option values must be numbers, trusted ``Expr`` literals built by this
package, or ``EscapedText`` produced by one of the escape helpers below. A
plain ``str`` is rejected when the filter is constructed, so user text can
never reach the graph unescaped.

FFmpeg unescapes a ``-filter_complex`` value in up to three passes:

1. the graph parser (``\\ ' [ ] , ;``)
2. the filter option parser (``\\ ' :``)
3. drawtext's own text expansion (``\\ %``)

Each helper escapes innermost level first.
"""

import re
from dataclasses import dataclass, field
from typing import Union

_LABEL_RE = re.compile(r"^[A-Za-z0-9_:.]+$")
_NAME_RE = re.compile(r"^[a-z_][a-z0-9_]*$")


class EscapedText(str):
    """A string that has been escaped for use as a filter option value."""


class Expr(str):
    """A trusted expression or literal written by the graph builder itself."""


FilterValue = Union[int, float, EscapedText, Expr]


def _escape_chars(value: str, chars: str) -> str:
    out = []
    for ch in value:
        if ch in chars:
            out.append("\\")
        out.append(ch)
    return "".join(out)


def _escape_option_level(value: str) -> str:
    return _escape_chars(value, "\\':")


def _escape_graph_level(value: str) -> str:
    return _escape_chars(value, "\\'[],;")


def escape_filter_value(value: str) -> EscapedText:
    """Escape an arbitrary string (e.g. a file path) as an option value."""
    return EscapedText(_escape_graph_level(_escape_option_level(str(value))))


def escape_drawtext(text: str | None) -> EscapedText:
    """Escape free text for drawtext's ``text`` option.

    Newline runs collapse to a single space. Backslash and percent are
    escaped for drawtext's expansion, then backslash, single quote and colon
    for the option parser, then the graph parser's special characters.
    """
    cleaned = re.sub(r"[\r\n]+", " ", str(text or "")).strip()
    expansion_safe = _escape_chars(cleaned, "\\%")
    return escape_filter_value(expansion_safe)


def visible_before(end_s: float) -> Expr:
    """Gate that is true while ``t < end_s``."""
    return Expr(f"lt(t\\,{end_s:.3f})")


def visible_between(start_s: float, end_s: float) -> Expr:
    """Gate that is true while ``start_s <= t <= end_s``."""
    return Expr(f"between(t\\,{start_s:.3f}\\,{end_s:.3f})")


def visible_window(start_s: float, end_s: float) -> Expr:
    """Gate that is true while ``start_s <= t < end_s``."""
    return Expr(f"gte(t\\,{start_s:.3f})*lt(t\\,{end_s:.3f})")


def _format_value(value: FilterValue) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (EscapedText, Expr)):
        return str(value)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        text = f"{value:.6f}".rstrip("0").rstrip(".")
        return text or "0"
    raise TypeError(f"Unsupported filter value type: {type(value).__name__}")


@dataclass
class Filter:
    """A single filter such as ``scale=w=1080:h=1920``."""

    name: str
    options: list[tuple[str, FilterValue]] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not _NAME_RE.match(self.name):
            raise ValueError(f"Invalid filter name: {self.name!r}")
        for key, value in self.options:
            if not _NAME_RE.match(key):
                raise ValueError(f"Invalid option name for {self.name}: {key!r}")
            if isinstance(value, str) and not isinstance(value, (EscapedText, Expr)):
                raise TypeError(
                    f"Option {self.name}.{key} received unescaped text; "
                    "use escape_drawtext() or escape_filter_value()"
                )
            _format_value(value)

    def serialize(self) -> str:
        if not self.options:
            return self.name
        opts = ":".join(f"{key}={_format_value(value)}" for key, value in self.options)
        return f"{self.name}={opts}"


def _check_label(label: str) -> str:
    if not _LABEL_RE.match(label):
        raise ValueError(f"Invalid pad label: {label!r}")
    return label


@dataclass
class FilterChain:
    """Filters applied in sequence between labeled input and output pads."""

    inputs: list[str]
    filters: list[Filter]
    outputs: list[str]

    def __post_init__(self) -> None:
        if not self.filters:
            raise ValueError("A filter chain needs at least one filter")
        for label in [*self.inputs, *self.outputs]:
            _check_label(label)

    def serialize(self) -> str:
        ins = "".join(f"[{label}]" for label in self.inputs)
        outs = "".join(f"[{label}]" for label in self.outputs)
        body = ",".join(f.serialize() for f in self.filters)
        return f"{ins}{body}{outs}"


class FilterGraph:
    """Ordered collection of filter chains."""

    def __init__(self) -> None:
        self._chains: list[FilterChain] = []
        self._outputs: set[str] = set()

    def add(
        self,
        inputs: list[str],
        filters: list[Filter],
        outputs: list[str],
    ) -> FilterChain:
        chain = FilterChain(inputs=inputs, filters=filters, outputs=outputs)
        for label in outputs:
            if label in self._outputs:
                raise ValueError(f"Duplicate output label: {label}")
        self._outputs.update(outputs)
        self._chains.append(chain)
        return chain

    def has_filter(self, name: str) -> bool:
        return any(f.name == name for chain in self._chains for f in chain.filters)

    def serialize(self) -> str:
        if not self._chains:
            raise ValueError("Filter graph is empty")
        return ";".join(chain.serialize() for chain in self._chains)


# Convenience constructors -------------------------------------------------


def drawtext(text: EscapedText, **options: FilterValue) -> Filter:
    """Build a drawtext filter; ``text`` must come from ``escape_drawtext``."""
    if not isinstance(text, EscapedText):
        raise TypeError("drawtext text must be escaped with escape_drawtext()")
    return Filter("drawtext", [("text", text), *options.items()])
