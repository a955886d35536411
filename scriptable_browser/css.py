"""CSS parsing, selector matching and styling functions.

A tiny subset of CSS: tag, ``#id`` and ``.class`` selectors (alone or
compounded, e.g. ``fieldset.ignored``), descendant selectors and
comma-separated selector lists. Rules the parser does not understand,
such as attribute selectors or pseudo-classes, are skipped whole so
that the rest of the sheet still applies. :func:`style` walks a DOM
tree and computes each node's style from the user agent sheet plus the
page's ``<style>`` elements.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple, Union

from .dom import Element, Text, tree_to_list


class TagSelector:
    """Selects elements by tag name, id and classes."""
    def __init__(self, tag: Optional[str], elt_id: Optional[str] = None, classes: Tuple[str, ...] = ()) -> None:
        self.tag = tag
        self.id = elt_id
        self.classes = classes
        self.priority = (100 if elt_id else 0) + 10 * len(classes) + (1 if tag else 0)

    @classmethod
    def from_text(cls, text: str) -> "TagSelector":
        """Build a selector from a compound token such as ``div#a.b``."""
        tag, elt_id, classes = "", None, []
        current, kind = "", "tag"
        for ch in text + "\0":
            if ch in "#.\0":
                if kind == "tag":
                    tag = current.casefold()
                elif kind == "id":
                    elt_id = current
                elif current:
                    classes.append(current)
                current, kind = "", ("id" if ch == "#" else "class")
            else:
                current += ch
        return cls(tag or None, elt_id, tuple(classes))

    def matches(self, node: Any) -> bool:
        if not isinstance(node, Element):
            return False
        if self.tag and self.tag != node.tag:
            return False
        if self.id and node.attributes.get("id") != self.id:
            return False
        if self.classes:
            have = node.attributes.get("class", "").split()
            if not all(c in have for c in self.classes):
                return False
        return True


class DescendantSelector:
    """Matches elements that are descendants of a given ancestor selector."""
    def __init__(self, ancestor: Union[TagSelector, 'DescendantSelector'], descendant: TagSelector) -> None:
        self.ancestor = ancestor
        self.descendant = descendant
        self.priority = ancestor.priority + descendant.priority

    def matches(self, node: Any) -> bool:
        if not self.descendant.matches(node):
            return False
        parent = getattr(node, 'parent', None)
        while parent:
            if self.ancestor.matches(parent):
                return True
            parent = getattr(parent, 'parent', None)
        return False


Selector = Union[TagSelector, DescendantSelector]
Rule = Tuple[Selector, Dict[str, str]]


class CSSParser:
    """Parse a simple CSS stylesheet into a list of (selector, properties) tuples."""
    def __init__(self, s: str) -> None:
        self.s = s
        self.i = 0

    def whitespace(self) -> None:
        while self.i < len(self.s):
            if self.s[self.i].isspace():
                self.i += 1
            elif self.s.startswith("/*", self.i):
                end = self.s.find("*/", self.i + 2)
                self.i = len(self.s) if end == -1 else end + 2
            else:
                break

    def literal(self, literal: str) -> None:
        if not (self.i < len(self.s) and self.s[self.i] == literal):
            raise ValueError(f"Expected '{literal}' at {self.i}")
        self.i += 1

    def word(self) -> str:
        start = self.i
        while self.i < len(self.s) and (
            self.s[self.i].isalnum() or self.s[self.i] in "#-._%"
        ):
            self.i += 1
        if not (self.i > start):
            raise ValueError(f"Expected word at {self.i}")
        return self.s[start:self.i]

    def value(self) -> str:
        start = self.i
        while self.i < len(self.s) and self.s[self.i] not in ";}":
            self.i += 1
        val = self.s[start:self.i].strip()
        if val.endswith("!important"):
            val = val[: -len("!important")].strip()
        if not val:
            raise ValueError(f"Expected value at {start}")
        return val

    def ignore_until(self, chars: List[str]) -> Optional[str]:
        while self.i < len(self.s):
            if self.s[self.i] in chars:
                return self.s[self.i]
            self.i += 1
        return None

    def pair(self) -> Tuple[str, str]:
        prop = self.word()
        self.whitespace()
        self.literal(":")
        self.whitespace()
        return prop.casefold(), self.value()

    def body(self) -> Dict[str, str]:
        pairs: Dict[str, str] = {}
        while self.i < len(self.s) and self.s[self.i] != "}":
            try:
                prop, val = self.pair()
                pairs[prop] = val
                self.whitespace()
                if self.i < len(self.s) and self.s[self.i] == ";":
                    self.literal(";")
                    self.whitespace()
            except ValueError:
                why = self.ignore_until([";", "}"])
                if why == ";":
                    self.literal(";")
                    self.whitespace()
                else:
                    break
        return pairs

    def selector(self) -> Selector:
        out: Selector = TagSelector.from_text(self.word())
        self.whitespace()
        while self.i < len(self.s) and self.s[self.i] not in "{,":
            out = DescendantSelector(out, TagSelector.from_text(self.word()))
            self.whitespace()
        return out

    def selector_list(self) -> List[Selector]:
        selectors = [self.selector()]
        while self.i < len(self.s) and self.s[self.i] == ",":
            self.literal(",")
            self.whitespace()
            selectors.append(self.selector())
        return selectors

    def parse(self) -> List[Rule]:
        rules: List[Rule] = []
        while self.i < len(self.s):
            try:
                self.whitespace()
                if self.i >= len(self.s):
                    break
                selectors = self.selector_list()
                self.literal("{")
                self.whitespace()
                body = self.body()
                self.literal("}")
                for selector in selectors:
                    rules.append((selector, body))
            except ValueError:
                why = self.ignore_until(["}"])
                if why == "}":
                    self.literal("}")
                    self.whitespace()
                else:
                    break
        return rules


def cascade_priority(rule: Rule) -> int:
    selector, _ = rule
    return selector.priority


DEFAULT_STYLE_SHEET: List[Rule] = [
    (TagSelector("body"), {"background-color": "white", "color": "black"}),
    (DescendantSelector(TagSelector("body"), TagSelector("a")), {"color": "blue"}),
    (TagSelector("h1"), {"font-size": "24px", "font-weight": "bold"}),
    (TagSelector("h2"), {"font-size": "20px", "font-weight": "bold"}),
    (TagSelector("h3"), {"font-size": "18px", "font-weight": "bold"}),
    (TagSelector("button"), {"background-color": "orange"}),
    (TagSelector("head"), {"display": "none"}),
    (TagSelector("script"), {"display": "none"}),
    (TagSelector("style"), {"display": "none"}),
    (TagSelector("i"), {"font-style": "italic"}),
    (TagSelector("em"), {"font-style": "italic"}),
    (TagSelector("b"), {"font-weight": "bold"}),
    (TagSelector("strong"), {"font-weight": "bold"}),
]

INHERITED_PROPERTIES: Dict[str, str] = {
    "font-size": "16px",
    "font-style": "normal",
    "font-weight": "normal",
    "color": "black",
}


def page_style_rules(nodes: Any) -> List[Rule]:
    """Collect the rules of every ``<style>`` element in the document."""
    rules: List[Rule] = []
    for node in tree_to_list(nodes, []):
        if isinstance(node, Element) and node.tag == "style":
            sheet = "".join(c.text for c in node.children if isinstance(c, Text))
            rules.extend(CSSParser(sheet).parse())
    return rules


def style(node: Any, rules: List[Rule]) -> None:
    """Recursively apply styles to the DOM tree based on CSS rules."""
    node.style = {}
    for prop, default_value in INHERITED_PROPERTIES.items():
        if getattr(node, 'parent', None):
            node.style[prop] = getattr(node.parent, 'style', {}).get(prop, default_value)
        else:
            node.style[prop] = default_value
    for selector, body in rules:
        if selector.matches(node):
            node.style.update(body)
    if node.style.get("font-size", "").endswith("%"):
        try:
            parent_px = float(getattr(node.parent, 'style', {}).get("font-size", INHERITED_PROPERTIES["font-size"])[:-2])
            pct = float(node.style["font-size"][:-1]) / 100.0
            node.style["font-size"] = str(pct * parent_px) + "px"
        except (AttributeError, ValueError):
            node.style["font-size"] = INHERITED_PROPERTIES["font-size"]
    for c in getattr(node, 'children', []):
        style(c, rules)
