"""The page surface the browser shell displays and injects scripts into.

A :class:`PageView` owns the navigation history and, for the current
page, the DOM tree and its :class:`~scriptable_browser.javascript.JSContext`.
Loading a page fetches the document, parses it, runs the page's own
scripts, applies its style sheets and hands the result to a renderer.

The view reports each load to a *delegate* (the browser shell):

* ``navigation_started()`` before the request is made;
* ``navigation_finished()`` once the page is parsed, scripted and
  rendered, with :attr:`PageView.url` pointing at it;
* ``navigation_failed(address, error)`` when the request fails; the
  previous page stays displayed;
* ``show_alert(title, message)`` for ``alert()`` calls made by scripts.

All work is scheduled on the UI event loop through ``scheduler``, which
has the signature of ``tkinter.Misc.after``: ``scheduler(ms, func)``.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from typing import Any, Callable, Dict, List, Optional, Tuple

from .css import DEFAULT_STYLE_SHEET, cascade_priority, page_style_rules, style
from .dom import Element, HTMLParser, Text, find_element, text_content, tree_to_list
from .javascript import JavaScriptError, JSContext
from .networking import URL, decode_body

logger = logging.getLogger(__name__)

Fetch = Callable[[URL, Optional[str]], Tuple[URL, Dict[str, str], bytes]]


def fetch_url(url: URL, referrer: Optional[str]) -> Tuple[URL, Dict[str, str], bytes]:
    return url.request(referrer=referrer)


class PageView:
    """Navigation history plus the DOM and script context of the current page."""

    def __init__(
        self,
        delegate: Any,
        scheduler: Callable[[int, Callable[[], None]], Any],
        renderer: Any = None,
        fetch: Fetch = fetch_url,
    ) -> None:
        self.delegate = delegate
        self.scheduler = scheduler
        self.renderer = renderer
        self.fetch = fetch
        self.history: List[URL] = []
        self.history_index: int = -1
        # Set only once a navigation has finished
        self.url: Optional[URL] = None
        self.nodes: Optional[Element] = None
        self.js: Optional[JSContext] = None
        self.title: str = ""
        self._render_pending = False

    # Navigation and history management
    @property
    def can_go_back(self) -> bool:
        return self.history_index > 0

    @property
    def can_go_forward(self) -> bool:
        return self.history_index + 1 < len(self.history)

    def load(self, url: URL) -> None:
        """Navigate to ``url``, dropping any forward history."""
        self._load(url)

    def go_back(self) -> None:
        if self.can_go_back:
            self._load(self.history[self.history_index - 1], self.history_index - 1)

    def go_forward(self) -> None:
        if self.can_go_forward:
            self._load(self.history[self.history_index + 1], self.history_index + 1)

    def reload(self) -> None:
        if self.url is not None:
            self._load(self.url, self.history_index)

    def _load(self, url: URL, index: Optional[int] = None) -> bool:
        """Fetch and show ``url``; return whether it loaded.

        ``index`` is the history entry being revisited, or ``None`` for
        a new entry. History is committed before the page is shown so
        the delegate sees the new back/forward state when notified.
        """
        self.delegate.navigation_started()
        referrer = str(self.url) if self.url is not None else None
        try:
            final_url, headers, body = self.fetch(url, referrer)
            text = decode_body(headers, body)
        except (OSError, ValueError) as ex:
            # ValueError covers undecodable bodies and bad redirect targets
            logger.warning("failed to load %s: %s", url, ex)
            self.delegate.navigation_failed(str(url), ex)
            return False
        if index is None:
            del self.history[self.history_index + 1:]
            self.history.append(final_url)
            self.history_index = len(self.history) - 1
        else:
            self.history_index = index
        self.show_document(final_url, text)
        return True

    def show_document(self, url: URL, html_text: str) -> None:
        """Replace the current page with ``html_text`` loaded from ``url``."""
        self.url = url
        self.nodes = HTMLParser(html_text).parse()
        title = find_element(self.nodes, "title")
        self.title = text_content(title).strip() if title is not None else url.host
        try:
            self.js = JSContext(self)
        except JavaScriptError as ex:
            logger.warning("could not start the script runtime for %s: %s", url, ex)
            self.js = None
        else:
            self.run_page_scripts()
        self.render()
        self.delegate.navigation_finished()

    def run_page_scripts(self) -> None:
        """Run inline and external ``<script>`` elements in document order."""
        scripts = [n for n in tree_to_list(self.nodes, [])
                   if isinstance(n, Element) and n.tag == "script"]
        for node in scripts:
            if "src" in node.attributes:
                try:
                    script_url = self.url.resolve(node.attributes["src"])
                    _, headers, body = self.fetch(script_url, str(self.url))
                    code = decode_body(headers, body)
                except (OSError, ValueError) as ex:
                    logger.warning("could not load script %s: %s", node.attributes["src"], ex)
                    continue
            else:
                code = "".join(c.text for c in node.children if isinstance(c, Text))
            try:
                self.js.run(code)
            except JavaScriptError as ex:
                logger.warning("JS error in page script: %s", ex)

    # Rendering
    def invalidate(self) -> None:
        """Schedule a re-render after the DOM changed."""
        if not self._render_pending:
            self._render_pending = True
            self.schedule(0, self.render)

    def render(self) -> None:
        self._render_pending = False
        if self.nodes is None:
            return
        rules = list(DEFAULT_STYLE_SHEET) + page_style_rules(self.nodes)
        rules.sort(key=cascade_priority)
        style(self.nodes, rules)
        if self.renderer is not None:
            self.renderer.render(self.nodes)

    # Script evaluation
    def evaluate_javascript(self, source: str) -> "Future[Any]":
        """Evaluate ``source`` in the current page on the next turn of the event loop.

        The returned future resolves with the script's result, or fails
        with :class:`JavaScriptError`.
        """
        future: "Future[Any]" = Future()
        future.set_running_or_notify_cancel()
        self.schedule(0, lambda: self._evaluate(source, future))
        return future

    def _evaluate(self, source: str, future: "Future[Any]") -> None:
        if self.js is None:
            future.set_exception(JavaScriptError("No page is loaded"))
            return
        try:
            result = self.js.run(source)
        except JavaScriptError as ex:
            future.set_exception(ex)
        else:
            future.set_result(result)

    # Callbacks from JSContext and the renderer
    def schedule(self, ms: int, func: Callable[[], None]) -> None:
        self.scheduler(ms, func)

    def alert(self, message: str) -> None:
        self.delegate.show_alert("Alert", message)

    def click(self, elt: Element) -> None:
        """Handle a click on ``elt``: dispatch it to scripts, then follow links."""
        if self.js is not None and self.js.dispatch_event("click", elt):
            return
        node: Any = elt
        while node is not None and not (isinstance(node, Element) and node.tag == "a"):
            node = node.parent
        if node is not None and "href" in node.attributes and self.url is not None:
            try:
                target = self.url.resolve(node.attributes["href"])
            except ValueError as ex:
                logger.debug("ignoring link %r: %s", node.attributes["href"], ex)
                return
            self.load(target)
