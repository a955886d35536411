"""DOM definitions for the scriptable browser.

This module contains the DOM node classes (:class:`Text` and
:class:`Element`) and a small HTML parser that builds a tree from raw
HTML strings. The contents of ``<script>`` and ``<style>`` elements are
kept verbatim as a single text child so the page view can run inline
scripts and apply inline style sheets, including the ``<style>``
elements injected next to a user script.
"""

from __future__ import annotations

import html
from typing import Any, Dict, List, Optional, Tuple

# Elements whose contents are raw text rather than markup
RAW_TEXT_TAGS = ("script", "style")


class Text:
    """A leaf node representing a run of text in the DOM."""
    def __init__(self, text: str, parent: Optional['Element']) -> None:
        self.text: str = text
        self.children: List[Any] = []
        self.parent: Optional[Element] = parent
        self.style: Dict[str, str] = {}

    def __repr__(self) -> str:
        return repr(self.text)


class Element:
    """A node representing an HTML element and its children."""
    def __init__(self, tag: str, attributes: Dict[str, str], parent: Optional['Element']) -> None:
        self.tag: str = tag
        self.attributes: Dict[str, str] = attributes
        self.children: List[Any] = []
        self.parent: Optional[Element] = parent
        self.style: Dict[str, str] = {}

    def __repr__(self) -> str:
        return "<" + self.tag + ">"


def tree_to_list(tree: Any, out: List[Any]) -> List[Any]:
    """Flatten the DOM tree into a list using preorder traversal."""
    out.append(tree)
    for c in getattr(tree, "children", []):
        tree_to_list(c, out)
    return out


def find_element(tree: Any, tag: str) -> Optional[Element]:
    """Return the first element with the given tag, in document order."""
    for node in tree_to_list(tree, []):
        if isinstance(node, Element) and node.tag == tag:
            return node
    return None


def get_element_by_id(tree: Any, elt_id: str) -> Optional[Element]:
    for node in tree_to_list(tree, []):
        if isinstance(node, Element) and node.attributes.get("id") == elt_id:
            return node
    return None


def text_content(node: Any) -> str:
    """Concatenate the text of every descendant of ``node``."""
    return "".join(n.text for n in tree_to_list(node, []) if isinstance(n, Text))


class HTMLParser:
    """A very small HTML parser supporting tag and text nodes.

    The parser builds a tree of :class:`Text` and :class:`Element`
    objects and implicitly inserts ``<html>``, ``<head>`` and ``<body>``
    elements when they are omitted from the document. Character
    references in text are decoded; comments and doctypes are dropped.
    """

    SELF_CLOSING_TAGS = [
        "area", "base", "br", "col", "embed", "hr", "img", "input",
        "link", "meta", "param", "source", "track", "wbr",
    ]
    HEAD_TAGS = [
        "base", "basefont", "bgsound", "noscript",
        "link", "meta", "title", "style", "script",
    ]

    def __init__(self, body: str) -> None:
        self.body: str = body
        self.unfinished: List[Any] = []

    def parse(self) -> Element:
        """Parse the HTML and return the root ``<html>`` element."""
        i = 0
        n = len(self.body)
        while i < n:
            lt = self.body.find("<", i)
            if lt == -1:
                self.add_text(self.body[i:])
                break
            if lt > i:
                self.add_text(self.body[i:lt])
            if self.body.startswith("<!--", lt):
                end = self.body.find("-->", lt + 4)
                i = n if end == -1 else end + 3
                continue
            gt = self.body.find(">", lt + 1)
            if gt == -1:
                break
            tag = self.add_tag(self.body[lt + 1:gt])
            i = gt + 1
            if tag in RAW_TEXT_TAGS:
                close = self.body.lower().find("</" + tag, i)
                end = n if close == -1 else close
                if end > i:
                    self.add_raw_text(self.body[i:end])
                i = end
        return self.finish()

    def get_attributes(self, text: str) -> Tuple[str, Dict[str, str]]:
        parts = text.split()
        if not parts:
            return "", {}
        tag = parts[0].casefold()
        attributes: Dict[str, str] = {}
        for attrpair in parts[1:]:
            if attrpair == "/":
                continue
            if "=" in attrpair:
                key, value = attrpair.split("=", 1)
                if len(value) >= 2 and value[0] in ["'", '"'] and value[-1] == value[0]:
                    value = value[1:-1]
                attributes[key.casefold()] = html.unescape(value)
            else:
                attributes[attrpair.casefold()] = ""
        return tag, attributes

    def implicit_tags(self, tag: Optional[str]) -> None:
        """Automatically insert <html>, <head>, and <body> tags if needed."""
        while True:
            open_tags = [node.tag for node in self.unfinished]
            if open_tags == [] and tag != "html":
                self.add_tag("html")
            elif open_tags == ["html"] and tag not in ["head", "body", "/html"]:
                if tag in self.HEAD_TAGS:
                    self.add_tag("head")
                else:
                    self.add_tag("body")
            elif open_tags == ["html", "head"] and tag not in ["/head"] + self.HEAD_TAGS:
                self.add_tag("/head")
            else:
                break

    def add_text(self, text: str) -> None:
        if text.isspace():
            return
        self.implicit_tags(None)
        parent = self.unfinished[-1]
        parent.children.append(Text(html.unescape(text), parent))

    def add_raw_text(self, text: str) -> None:
        parent = self.unfinished[-1]
        parent.children.append(Text(text, parent))

    def add_tag(self, tagtext: str) -> str:
        """Open, close or append the tag in ``tagtext``; return its name."""
        if tagtext.startswith("!") or tagtext.startswith("?"):
            return ""
        if tagtext.endswith("/"):
            tagtext = tagtext[:-1]
        tag, attributes = self.get_attributes(tagtext)
        if not tag:
            return ""
        self.implicit_tags(tag)
        if tag.startswith("/"):
            if len(self.unfinished) == 1:
                return tag
            # Ignore stray closing tags that do not match anything open
            if tag[1:] not in [node.tag for node in self.unfinished]:
                return tag
            while len(self.unfinished) > 1:
                node = self.unfinished.pop()
                parent = self.unfinished[-1]
                parent.children.append(node)
                if node.tag == tag[1:]:
                    break
        elif tag in self.SELF_CLOSING_TAGS:
            parent = self.unfinished[-1]
            parent.children.append(Element(tag, attributes, parent))
        else:
            parent = self.unfinished[-1] if self.unfinished else None
            self.unfinished.append(Element(tag, attributes, parent))
        return tag

    def finish(self) -> Element:
        """Close any still-open tags and return the root."""
        if not self.unfinished:
            self.implicit_tags(None)
        while len(self.unfinished) > 1:
            node = self.unfinished.pop()
            parent = self.unfinished[-1]
            parent.children.append(node)
        return self.unfinished.pop()
