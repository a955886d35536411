"""JavaScript execution context for the scriptable browser.

This module wraps the DukPy interpreter to provide a small DOM-like API
to JavaScript code running in pages: element lookup and creation,
``innerHTML``/``textContent``, attributes, event listeners, timers,
``alert()`` and ``console.log``. Page scripts and injected user scripts
share one :class:`JSContext` per page load.

Errors raised while evaluating code surface as :class:`JavaScriptError`
carrying the interpreter's message.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import dukpy

from .css import CSSParser
from .dom import Element, HTMLParser, Text, find_element, get_element_by_id, text_content, tree_to_list

logger = logging.getLogger(__name__)


class JavaScriptError(Exception):
    """An exception thrown by JavaScript code during evaluation."""


# Runtime script implementing a minimal DOM API in JavaScript. It is
# executed once per JSContext and forwards operations back into Python
# via call_python.
RUNTIME_JS = """
var window = (function() { return this; })();
function Node(handle) { this.handle = handle; }
function wrap(handle) { return handle == -1 ? null : new Node(handle); }
function wrapAll(handles) {
  var out = [];
  for (var i = 0; i < handles.length; i++) out.push(new Node(handles[i]));
  return out;
}
var LISTENERS = {};
Node.prototype.addEventListener = function(type, listener) {
  if (!LISTENERS[this.handle]) LISTENERS[this.handle] = {};
  var dict = LISTENERS[this.handle];
  if (!dict[type]) dict[type] = [];
  dict[type].push(listener);
};
Node.prototype.dispatchEvent = function(evt) {
  var list = (LISTENERS[this.handle] && LISTENERS[this.handle][evt.type]) || [];
  for (var i = 0; i < list.length; i++) list[i].call(this, evt);
  var do_default = evt.do_default;
  if (evt.do_bubble) {
    var parent = wrap(call_python("getParent", this.handle));
    if (parent) do_default = parent.dispatchEvent(evt) && do_default;
  }
  return do_default;
};
function Event(type) {
  this.type = type;
  this.do_default = true;
  this.do_bubble = true;
}
Event.prototype.preventDefault = function() { this.do_default = false; };
Event.prototype.stopPropagation = function() { this.do_bubble = false; };
var document = {
  querySelectorAll: function(sel) {
    return wrapAll(call_python("querySelectorAll", sel.toString()));
  },
  querySelector: function(sel) {
    var all = this.querySelectorAll(sel);
    return all.length ? all[0] : null;
  },
  getElementById: function(id) {
    return wrap(call_python("getElementById", id.toString()));
  },
  createElement: function(tag) {
    return new Node(call_python("createElement", tag.toString().toLowerCase()));
  }
};
Object.defineProperty(document, "head", {
  get: function() { return wrap(call_python("documentElement", "head")); }
});
Object.defineProperty(document, "body", {
  get: function() { return wrap(call_python("documentElement", "body")); }
});
Object.defineProperty(Node.prototype, "children", {
  get: function() { return wrapAll(call_python("children", this.handle)); }
});
Object.defineProperty(Node.prototype, "parentNode", {
  get: function() { return wrap(call_python("getParent", this.handle)); }
});
Object.defineProperty(Node.prototype, "innerHTML", {
  get: function() { return call_python("innerHTML_get", this.handle); },
  set: function(value) { call_python("innerHTML_set", this.handle, value.toString()); }
});
Object.defineProperty(Node.prototype, "textContent", {
  get: function() { return call_python("textContent_get", this.handle); },
  set: function(value) { call_python("textContent_set", this.handle, value.toString()); }
});
Object.defineProperty(Node.prototype, "id", {
  get: function() { return call_python("getAttribute", this.handle, "id"); },
  set: function(value) { call_python("setAttribute", this.handle, "id", value.toString()); }
});
Object.defineProperty(Node.prototype, "className", {
  get: function() { return call_python("getAttribute", this.handle, "class"); },
  set: function(value) { call_python("setAttribute", this.handle, "class", value.toString()); }
});
Node.prototype.getAttribute = function(attr) {
  return call_python("getAttribute", this.handle, attr.toString());
};
Node.prototype.setAttribute = function(attr, val) {
  call_python("setAttribute", this.handle, attr.toString(), val.toString());
};
Node.prototype.appendChild = function(child) {
  call_python("appendChild", this.handle, child.handle);
  return child;
};
Node.prototype.insertBefore = function(child, ref) {
  call_python("insertBefore", this.handle, child.handle, ref ? ref.handle : -1);
  return child;
};
Node.prototype.removeChild = function(child) {
  call_python("removeChild", this.handle, child.handle);
  return child;
};
var TIMERS = {};
var NEXT_TIMER = 1;
function setTimeout(fn, ms) {
  var id = NEXT_TIMER++;
  TIMERS[id] = fn;
  call_python("setTimeout", id, ms || 0);
  return id;
}
function clearTimeout(id) { delete TIMERS[id]; }
function __runTimer(id) {
  var fn = TIMERS[id];
  delete TIMERS[id];
  if (fn) fn();
}
function alert(message) { call_python("alert", String(message)); }
var console = {
  log: function() {
    var parts = [];
    for (var i = 0; i < arguments.length; i++) parts.push(String(arguments[i]));
    call_python("console_log", parts.join(" "));
  }
};
console.error = console.log;
console.warn = console.log;
null;
"""

EVENT_DISPATCH_JS = "new Node(dukpy.handle).dispatchEvent(new Event(dukpy.type))"
TIMER_JS = "__runTimer(dukpy.id)"
# Functions are not valid evaljs results
RUN_JS = "var __result = (0, eval)(dukpy.source); typeof __result === 'function' ? null : __result;"


class JSContext:
    """A per-page JavaScript execution environment.

    ``page`` is the owning :class:`~scriptable_browser.page.PageView`.
    The context calls back into it when scripts mutate the DOM
    (``page.invalidate()``), schedule timers (``page.schedule``) or
    call ``alert()`` (``page.alert``).
    """
    def __init__(self, page: Any) -> None:
        self.page = page
        self.interp = dukpy.JSInterpreter()
        self.node_to_handle: Dict[int, int] = {}
        self.handle_to_node: Dict[int, Any] = {}
        exports = {
            "querySelectorAll": self.querySelectorAll,
            "getElementById": self.getElementById,
            "documentElement": self.documentElement,
            "createElement": self.createElement,
            "children": self.children,
            "getParent": self.getParent,
            "getAttribute": self.getAttribute,
            "setAttribute": self.setAttribute,
            "innerHTML_get": self.innerHTML_get,
            "innerHTML_set": self.innerHTML_set,
            "textContent_get": self.textContent_get,
            "textContent_set": self.textContent_set,
            "appendChild": self.appendChild,
            "insertBefore": self.insertBefore,
            "removeChild": self.removeChild,
            "setTimeout": self.setTimeout,
            "alert": self.alert,
            "console_log": self.console_log,
        }
        for name, func in exports.items():
            self.interp.export_function(name, func)
        try:
            self.interp.evaljs(RUNTIME_JS)
        except dukpy.JSRuntimeError as ex:
            raise JavaScriptError(str(ex)) from ex

    # Handle management; nodes are keyed by identity
    def get_handle(self, elt: Any) -> int:
        key = id(elt)
        if key not in self.node_to_handle:
            h = len(self.node_to_handle)
            self.node_to_handle[key] = h
            self.handle_to_node[h] = elt
        return self.node_to_handle[key]

    def _element(self, handle: int) -> Optional[Element]:
        node = self.handle_to_node.get(handle)
        return node if isinstance(node, Element) else None

    # Exported functions callable from JS
    def querySelectorAll(self, selector_text: str) -> List[int]:
        try:
            selector = CSSParser(selector_text).selector()
        except ValueError:
            return []
        nodes = [n for n in tree_to_list(self.page.nodes, []) if selector.matches(n)]
        return [self.get_handle(n) for n in nodes]

    def getElementById(self, elt_id: str) -> int:
        node = get_element_by_id(self.page.nodes, elt_id)
        return -1 if node is None else self.get_handle(node)

    def documentElement(self, tag: str) -> int:
        """Return ``document.head`` or ``document.body``, creating it if the page has none."""
        root = self.page.nodes
        if root is None:
            return -1
        node = find_element(root, tag)
        if node is None:
            node = Element(tag, {}, root)
            if tag == "head":
                root.children.insert(0, node)
            else:
                root.children.append(node)
        return self.get_handle(node)

    def createElement(self, tag: str) -> int:
        return self.get_handle(Element(tag, {}, None))

    def children(self, handle: int) -> List[int]:
        node = self._element(handle)
        if node is None:
            return []
        return [self.get_handle(c) for c in node.children if isinstance(c, Element)]

    def getParent(self, handle: int) -> int:
        node = self.handle_to_node.get(handle)
        parent = getattr(node, "parent", None)
        return -1 if parent is None else self.get_handle(parent)

    def getAttribute(self, handle: int, attr: str) -> str:
        node = self._element(handle)
        return "" if node is None else node.attributes.get(attr, "")

    def setAttribute(self, handle: int, attr: str, value: str) -> None:
        node = self._element(handle)
        if node is None:
            return
        node.attributes[attr] = value
        self.page.invalidate()

    def innerHTML_get(self, handle: int) -> str:
        node = self.handle_to_node.get(handle)
        if node is None:
            return ""
        return "".join(self._serialize(child) for child in getattr(node, "children", []))

    def innerHTML_set(self, handle: int, s: str) -> None:
        node = self._element(handle)
        if node is None:
            return
        if node.tag in ("style", "script"):
            node.children = [Text(s, node)]
        else:
            parsed = HTMLParser("<body>" + s + "</body>").parse()
            body = find_element(parsed, "body")
            new_children = body.children if body is not None else []
            for c in new_children:
                c.parent = node
            node.children = new_children
        self.page.invalidate()

    def textContent_get(self, handle: int) -> str:
        node = self.handle_to_node.get(handle)
        return "" if node is None else text_content(node)

    def textContent_set(self, handle: int, s: str) -> None:
        node = self._element(handle)
        if node is None:
            return
        node.children = [Text(s, node)]
        self.page.invalidate()

    def _detach(self, child: Any) -> None:
        if getattr(child, "parent", None) is not None:
            try:
                child.parent.children.remove(child)
            except ValueError:
                pass

    def appendChild(self, parent_handle: int, child_handle: int) -> None:
        parent = self._element(parent_handle)
        child = self.handle_to_node.get(child_handle)
        if parent is None or child is None:
            return
        self._detach(child)
        child.parent = parent
        parent.children.append(child)
        self.page.invalidate()

    def insertBefore(self, parent_handle: int, child_handle: int, ref_handle: int) -> None:
        parent = self._element(parent_handle)
        child = self.handle_to_node.get(child_handle)
        if parent is None or child is None:
            return
        self._detach(child)
        child.parent = parent
        ref = self.handle_to_node.get(ref_handle)
        if ref in parent.children:
            parent.children.insert(parent.children.index(ref), child)
        else:
            parent.children.append(child)
        self.page.invalidate()

    def removeChild(self, parent_handle: int, child_handle: int) -> None:
        parent = self._element(parent_handle)
        child = self.handle_to_node.get(child_handle)
        if parent is None or child not in parent.children:
            return
        parent.children.remove(child)
        child.parent = None
        self.page.invalidate()

    def setTimeout(self, timer_id: int, ms: int) -> None:
        self.page.schedule(int(ms), lambda: self._fire_timer(timer_id))

    def _fire_timer(self, timer_id: int) -> None:
        # Timers outlive the page load that set them; a stale context
        # must not touch the new document.
        if self.page.js is not self:
            return
        try:
            self.interp.evaljs(TIMER_JS, id=timer_id)
        except dukpy.JSRuntimeError as ex:
            logger.warning("JS error in timer: %s", ex)

    def alert(self, message: str) -> None:
        self.page.alert(message)

    def console_log(self, message: str) -> None:
        logger.info("console: %s", message)

    def _serialize(self, node: Any) -> str:
        if isinstance(node, Text):
            return node.text
        if isinstance(node, Element):
            attrs: List[str] = []
            for k, v in node.attributes.items():
                if v == "":
                    attrs.append(k)
                else:
                    val = v.replace('"', '&quot;')
                    attrs.append(f'{k}="{val}"')
            attr_str = (" " + " ".join(attrs)) if attrs else ""
            if node.tag in HTMLParser.SELF_CLOSING_TAGS:
                return f"<{node.tag}{attr_str}>"
            inner = "".join(self._serialize(c) for c in node.children)
            return f"<{node.tag}{attr_str}>" + inner + f"</{node.tag}>"
        return ""

    # High-level operations
    def run(self, code: str) -> Any:
        """Evaluate ``code`` and return its result.

        :raises JavaScriptError: If the code throws or fails to parse.
        """
        try:
            return self.interp.evaljs(RUN_JS, source=code)
        except dukpy.JSRuntimeError as ex:
            raise JavaScriptError(str(ex)) from ex

    def dispatch_event(self, type: str, elt: Any) -> bool:
        """Dispatch ``type`` on ``elt``; return True if the default was prevented."""
        handle = self.node_to_handle.get(id(elt))
        if handle is None:
            return False
        try:
            do_default = self.interp.evaljs(EVENT_DISPATCH_JS, type=type, handle=handle)
        except dukpy.JSRuntimeError as ex:
            logger.warning("JS error in %s handler: %s", type, ex)
            return False
        return not bool(do_default)
