"""
Content rendering pipeline.

Turns untrusted message text into a tree of typed nodes:

1. escape ``&``, ``<`` and ``>`` so model-authored markup stays visible text
2. rewrite ``\\( \\)`` and ``\\[ \\]`` math into ``$``/``$$`` delimiters
3. markdown with math and highlighted fenced code
4. parse the HTML into ``ElementNode``/``TextNode``/``OpaqueNode``
5. undo step 1 in text nodes and turn ``style`` strings into mappings

Markdown never decodes entities itself, so prose, code and math all carry
exactly one extra layer of escaping into step 5. Text the model writes as an
entity, e.g. ``&lt;``, is shown as typed.

Each stage is pure. A failure anywhere degrades to the original text as a
single text node, a message is never left undisplayable.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import structlog
from markdown_it import MarkdownIt
from mdit_py_plugins.dollarmath import dollarmath_plugin
from markdown_it.common.utils import escapeHtml
from pygments.lexers import get_lexer_by_name
from pygments.styles import get_style_by_name
from pygments.token import STANDARD_TYPES
from pygments.util import ClassNotFound

from .html_tree import ElementNode, HtmlTreeParser, Node, StdlibHtmlTreeParser, TextNode

logger = structlog.get_logger()

_ESCAPES = {"&": "&amp;", "<": "&lt;", ">": "&gt;"}
_UNESCAPES = {entity: char for char, entity in _ESCAPES.items()}
_ESCAPE_PATTERN = re.compile("[&<>]")
_UNESCAPE_PATTERN = re.compile("&(?:amp|lt|gt);")
_HYPHENATED = re.compile(r"-([a-z])")

MATH_DELIMITERS = (("\\(", "\\)"), ("\\[", "\\]"))


class RenderDegradation(Exception):
    """A pipeline stage could not produce output."""

    def __init__(self, stage: str, cause: Exception):
        super().__init__(f"{stage}: {cause}")
        self.stage = stage
        self.cause = cause


def escape_text(text: str) -> str:
    return _ESCAPE_PATTERN.sub(lambda m: _ESCAPES[m.group(0)], text)


def unescape_text(text: str) -> str:
    """Exact inverse of :func:`escape_text`; other entities are left alone."""
    return _UNESCAPE_PATTERN.sub(lambda m: _UNESCAPES[m.group(0)], text)


def _wrap_math(body: str) -> str:
    delimiter = "$$" if "\n" in body else "$"
    return delimiter + body + delimiter


def normalize_math_delimiters(text: str) -> str:
    """Rewrite ``\\(..\\)`` and ``\\[..\\]`` spans into dollar-delimited math."""
    result = []
    position = 0
    while position < len(text):
        start = -1
        closer = ""
        for opener, candidate in MATH_DELIMITERS:
            index = text.find(opener, position)
            if index != -1 and (start == -1 or index < start):
                start, closer = index, candidate
        if start == -1:
            result.append(text[position:])
            break

        result.append(text[position:start])
        end = text.find(closer, start + 2)
        if end == -1:
            # Unclosed: the rest of the input is the math body
            result.append(_wrap_math(text[start + 2:]))
            break
        result.append(_wrap_math(text[start + 2:end]))
        position = end + 2
    return "".join(result)


def camel_case_property(name: str) -> str:
    return _HYPHENATED.sub(lambda m: m.group(1).upper(), name)


def parse_style(style: str) -> Dict[str, str]:
    """Parse ``"font-weight: bold; color: red"`` into ``{"fontWeight": "bold", ...}``."""
    parsed = {}
    for entry in style.split(";"):
        name, separator, value = entry.partition(":")
        name, value = name.strip(), value.strip()
        if separator and name and value:
            parsed[camel_case_property(name)] = value
    return parsed


def normalize_node(node: Node) -> Node:
    """Unescape text and structure ``style`` attributes, recursively."""
    if isinstance(node, TextNode):
        return TextNode(unescape_text(node.text))
    if isinstance(node, ElementNode):
        attributes = dict(node.attributes)
        style = node.style
        if "style" in attributes:
            style = parse_style(attributes.pop("style"))
        return ElementNode(
            tag=node.tag,
            attributes=attributes,
            children=[normalize_node(child) for child in node.children],
            style=style,
        )
    return node


@dataclass
class RenderResult:
    nodes: List[Node] = field(default_factory=list)
    degraded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "degraded": self.degraded,
            "nodes": [node.to_dict() for node in self.nodes],
        }


class ContentRenderer:
    """Renders message text into a render tree."""

    def __init__(
        self,
        parser: Optional[HtmlTreeParser] = None,
        highlight_inline_styles: bool = True,
    ) -> None:
        self.parser = parser or StdlibHtmlTreeParser()
        self.highlight_inline_styles = highlight_inline_styles
        self._style = get_style_by_name("default")
        self._token_attributes: Dict[Any, str] = {}
        self.markdown = (
            MarkdownIt(
                "js-default",
                {
                    "html": True,
                    "linkify": True,
                    "typographer": True,
                    "highlight": self._highlight,
                },
            )
            .use(dollarmath_plugin, allow_space=True, allow_digits=True, double_inline=True)
            # Entities come from stage 1 only; decoding them here as well would
            # turn a literal "&lt;" typed by the model into "<"
            .disable("entity")
        )

    def _token_attribute(self, token_type) -> str:
        """``style="..."`` or ``class="..."`` for a Pygments token type."""
        if token_type in self._token_attributes:
            return self._token_attributes[token_type]

        if self.highlight_inline_styles:
            style = self._style.style_for_token(token_type)
            rules = []
            if style["color"]:
                rules.append(f"color: #{style['color']}")
            if style["bgcolor"]:
                rules.append(f"background-color: #{style['bgcolor']}")
            if style["bold"]:
                rules.append("font-weight: bold")
            if style["italic"]:
                rules.append("font-style: italic")
            if style["underline"]:
                rules.append("text-decoration: underline")
            attribute = f' style="{"; ".join(rules)}"' if rules else ""
        else:
            ancestor = token_type
            while ancestor not in STANDARD_TYPES:
                ancestor = ancestor.parent
            css_class = STANDARD_TYPES[ancestor]
            attribute = f' class="{css_class}"' if css_class else ""

        self._token_attributes[token_type] = attribute
        return attribute

    def _highlight(self, code: str, lang: str, attrs: str = "") -> str:
        """Highlighted HTML for a fenced block, or "" to use the default escaping."""
        if not lang:
            return ""
        try:
            lexer = get_lexer_by_name(lang)
        except ClassNotFound:
            return ""
        try:
            # Tokenize what the model typed; each token is escaped on its own so
            # no entity is split across spans.
            parts = []
            for token_type, value in lexer.get_tokens(unescape_text(code)):
                text = escapeHtml(escape_text(value))
                attribute = self._token_attribute(token_type)
                parts.append(f"<span{attribute}>{text}</span>" if attribute else text)
            return "".join(parts)
        except Exception as e:
            logger.debug("highlight_failed", language=lang, error=str(e))
            return ""

    @staticmethod
    def _stage(name: str, func: Callable[[Any], Any], value: Any) -> Any:
        try:
            return func(value)
        except Exception as e:
            raise RenderDegradation(name, e) from e

    def to_html(self, text: str) -> str:
        """Stages 1-3: escaped, math-normalized markdown rendered to HTML."""
        escaped = self._stage("escape", escape_text, text)
        normalized = self._stage("math", normalize_math_delimiters, escaped)
        return self._stage("markdown", self.markdown.render, normalized)

    def render(self, text: str) -> RenderResult:
        try:
            html = self.to_html(text)
            nodes = self._stage("parse", self.parser.parse, html)
            nodes = self._stage("normalize", lambda ns: [normalize_node(n) for n in ns], nodes)
            return RenderResult(nodes=nodes)
        except RenderDegradation as e:
            logger.warning("render_degraded", stage=e.stage, error=str(e.cause))
            return RenderResult(nodes=[TextNode(text)], degraded=True)
