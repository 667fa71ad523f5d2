"""Render tree nodes and the HTML fragment parser that produces them."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from html.parser import HTMLParser
from typing import Any, Dict, List, Optional, Tuple, Union

# Elements that never have children or a closing tag
VOID_ELEMENTS = frozenset([
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "param", "source", "track", "wbr",
])

# HTML attribute names that the view layer spells differently
ATTRIBUTE_NAMES = {
    "class": "className",
    "for": "htmlFor",
    "accesskey": "accessKey",
    "autocomplete": "autoComplete",
    "autofocus": "autoFocus",
    "cellpadding": "cellPadding",
    "cellspacing": "cellSpacing",
    "charset": "charSet",
    "colspan": "colSpan",
    "contenteditable": "contentEditable",
    "crossorigin": "crossOrigin",
    "datetime": "dateTime",
    "enctype": "encType",
    "frameborder": "frameBorder",
    "http-equiv": "httpEquiv",
    "maxlength": "maxLength",
    "readonly": "readOnly",
    "rowspan": "rowSpan",
    "srcset": "srcSet",
    "tabindex": "tabIndex",
    "usemap": "useMap",
    "xlink:href": "xlinkHref",
    "xml:lang": "xmlLang",
    "xmlns:xlink": "xmlnsXlink",
}


@dataclass
class TextNode:
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass
class ElementNode:
    tag: str
    attributes: Dict[str, str] = field(default_factory=dict)
    children: List["Node"] = field(default_factory=list)
    style: Optional[Dict[str, str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "element",
            "tag": self.tag,
            "attributes": dict(self.attributes),
            "style": dict(self.style) if self.style is not None else None,
            "children": [child.to_dict() for child in self.children],
        }


@dataclass
class OpaqueNode:
    """Comments, declarations and other non-element markup, passed through untouched."""

    kind: str
    data: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "opaque", "kind": self.kind, "data": self.data}


Node = Union[TextNode, ElementNode, OpaqueNode]


def normalize_attribute_name(name: str) -> str:
    return ATTRIBUTE_NAMES.get(name, name)


class HtmlTreeParser(ABC):
    """Turns an HTML fragment into a list of top-level nodes."""

    @abstractmethod
    def parse(self, html: str) -> List[Node]:
        pass


class _TreeBuilder(HTMLParser):

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.roots: List[Node] = []
        self._stack: List[ElementNode] = []

    def _append(self, node: Node) -> None:
        siblings = self._stack[-1].children if self._stack else self.roots
        if isinstance(node, TextNode) and siblings and isinstance(siblings[-1], TextNode):
            siblings[-1].text += node.text
            return
        siblings.append(node)

    def _element(self, tag: str, attrs: List[Tuple[str, Optional[str]]]) -> ElementNode:
        attributes = {
            normalize_attribute_name(name): "" if value is None else value
            for name, value in attrs
        }
        return ElementNode(tag=tag, attributes=attributes)

    def handle_starttag(self, tag, attrs):
        node = self._element(tag, attrs)
        self._append(node)
        if tag not in VOID_ELEMENTS:
            self._stack.append(node)

    def handle_startendtag(self, tag, attrs):
        self._append(self._element(tag, attrs))

    def handle_endtag(self, tag):
        # Close up to the nearest matching open element; stray end tags are ignored
        for depth in range(len(self._stack) - 1, -1, -1):
            if self._stack[depth].tag == tag:
                del self._stack[depth:]
                return

    def handle_data(self, data):
        if data:
            self._append(TextNode(data))

    def handle_comment(self, data):
        self._append(OpaqueNode("comment", data))

    def handle_decl(self, decl):
        self._append(OpaqueNode("declaration", decl))

    def handle_pi(self, data):
        self._append(OpaqueNode("processing_instruction", data))

    def unknown_decl(self, data):
        self._append(OpaqueNode("unknown_declaration", data))


class StdlibHtmlTreeParser(HtmlTreeParser):
    """Tree parser built on :mod:`html.parser`; tolerant of unclosed tags."""

    def parse(self, html: str) -> List[Node]:
        builder = _TreeBuilder()
        builder.feed(html)
        builder.close()
        return builder.roots
