"""Display a styled DOM in a Tk ``Text`` widget.

The browser does no box layout of its own. :func:`flatten` turns the
styled DOM into a list of text runs, inserting line breaks around block
elements, and :class:`TextRenderer` writes those runs into a ``Text``
widget, which takes care of wrapping and scrolling. Runs inside links,
buttons and other clickable elements are bound so that a click is
reported back with the element that was hit.
"""

from __future__ import annotations

import tkinter
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple

from .css import INHERITED_PROPERTIES
from .dom import Element, Text

BLOCK_ELEMENTS: List[str] = [
    "html", "body", "article", "section", "nav", "aside",
    "h1", "h2", "h3", "h4", "h5", "h6", "hgroup", "header",
    "footer", "address", "p", "hr", "pre", "blockquote",
    "ol", "ul", "menu", "li", "dl", "dt", "dd", "figure",
    "figcaption", "main", "div", "table", "tr", "form", "fieldset",
    "legend", "details", "summary",
]
CLICKABLE_TAGS = ("a", "button", "input")

# (size in px, weight, slant, color)
StyleKey = Tuple[int, str, str, str]


class Run(NamedTuple):
    text: str
    style: StyleKey
    target: Optional[Element]


def style_key(node: Any) -> StyleKey:
    s = getattr(node, "style", {}) or {}
    size_text = s.get("font-size", INHERITED_PROPERTIES["font-size"])
    try:
        size = int(float(size_text[:-2])) if size_text.endswith("px") else 16
    except ValueError:
        size = 16
    weight = s.get("font-weight", "normal")
    bold = weight == "bold" or (weight.isdigit() and int(weight) >= 600)
    slant = "italic" if s.get("font-style") == "italic" else "roman"
    return size, ("bold" if bold else "normal"), slant, s.get("color", "black")


def _newline(runs: List[Run], node: Any) -> None:
    if runs and not runs[-1].text.endswith("\n"):
        runs.append(Run("\n", style_key(node), None))


def flatten(node: Any, runs: Optional[List[Run]] = None,
            target: Optional[Element] = None, pre: bool = False) -> List[Run]:
    """Collect the visible text runs under ``node`` in document order."""
    if runs is None:
        runs = []
    if getattr(node, "style", {}).get("display") == "none":
        return runs
    if isinstance(node, Text):
        text = node.text if pre else " ".join(node.text.split())
        if text:
            if not pre and runs and not runs[-1].text[-1:].isspace():
                text = " " + text
            runs.append(Run(text, style_key(node), target))
        return runs
    if not isinstance(node, Element):
        return runs
    if node.tag == "br":
        runs.append(Run("\n", style_key(node), None))
        return runs
    if node.tag in CLICKABLE_TAGS or "onclick" in node.attributes:
        target = node
    block = node.tag in BLOCK_ELEMENTS
    if block:
        _newline(runs, node)
    if node.tag == "input":
        runs.append(Run(" [" + node.attributes.get("value", "") + "] ", style_key(node), target))
    for child in node.children:
        flatten(child, runs, target, pre or node.tag == "pre")
    if block:
        _newline(runs, node)
    return runs


class TextRenderer:
    """Writes text runs into a ``tkinter.Text`` widget."""

    def __init__(self, widget: tkinter.Text, on_click: Callable[[Element], None]) -> None:
        self.widget = widget
        self.on_click = on_click
        self._style_tags: Dict[StyleKey, str] = {}
        self._target_tags: List[str] = []

    def render(self, nodes: Any) -> None:
        self.widget.config(state="normal")
        self.widget.delete("1.0", "end")
        for tag in self._target_tags:
            self.widget.tag_delete(tag)
        self._target_tags = []
        targets: Dict[int, str] = {}
        for run in flatten(nodes):
            tags = [self._style_tag(run.style)]
            if run.target is not None:
                key = id(run.target)
                if key not in targets:
                    targets[key] = self._target_tag(run.target)
                tags.append(targets[key])
            self.widget.insert("end", run.text, tuple(tags))
        self.widget.config(state="disabled")

    def _style_tag(self, key: StyleKey) -> str:
        if key not in self._style_tags:
            size, weight, slant, color = key
            name = f"style{len(self._style_tags)}"
            font: Tuple[Any, ...] = ("Helvetica", -size)
            font += tuple(x for x in (weight, slant) if x not in ("normal", "roman"))
            self.widget.tag_configure(name, font=font)
            try:
                self.widget.winfo_rgb(color)
            except tkinter.TclError:
                pass
            else:
                self.widget.tag_configure(name, foreground=color)
            self._style_tags[key] = name
        return self._style_tags[key]

    def _target_tag(self, elt: Element) -> str:
        name = f"target{len(self._target_tags)}"
        self._target_tags.append(name)
        if elt.tag == "a":
            self.widget.tag_configure(name, underline=True)
        self.widget.tag_bind(name, "<Button-1>", lambda e, elt=elt: self.on_click(elt))
        self.widget.tag_bind(name, "<Enter>", lambda e: self.widget.config(cursor="hand2"))
        self.widget.tag_bind(name, "<Leave>", lambda e: self.widget.config(cursor=""))
        return name
