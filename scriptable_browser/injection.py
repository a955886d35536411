"""Decides when the user script runs in the current page.

The :class:`InjectionController` is driven by the browser shell at two
points of every page load, :meth:`~InjectionController.navigation_started`
and :meth:`~InjectionController.navigation_finished`, and optionally by
the user pressing the "Run script" button. It runs the adapter's script
at most once per page load, and only on pages whose URL matches one of
the adapter's execution filters.

The controller talks to two collaborators:

``view``
    The page surface. It must provide ``url`` (``None`` before the
    first finished load) and ``evaluate_javascript(source)``, which
    returns a :class:`concurrent.futures.Future` resolved on the UI
    event loop: with a result on success, or with a
    :class:`~scriptable_browser.javascript.JavaScriptError` when the
    script throws.

``ui``
    The shell. It must provide ``show_alert(title, message)``,
    ``show_error(message)`` and ``set_script_button_enabled(enabled)``.
"""

from __future__ import annotations

import enum
import logging
from concurrent.futures import Future
from typing import Any

from .adapters import ScriptAdapter

logger = logging.getLogger(__name__)

NO_SCRIPT_MESSAGE = (
    "There is no user script loaded!  If you meant to use one, run "
    "\"scriptable-browser-script download\" or \"scriptable-browser-script load\" "
    "and then start the browser again."
)

CSS_INSERT_JS = (
    "var style = document.createElement('style'); "
    "style.innerHTML = '{css}'; "
    "document.head.appendChild(style);"
)


class LoadState(enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    INJECTED = "injected"


def js_string_literal(text: str) -> str:
    """Escape ``text`` for use inside a single-quoted JavaScript string."""
    return (
        text.replace("\\", "\\\\")
        .replace("'", "\\'")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )


class InjectionController:
    """Runs the adapter's script at most once per page load."""

    def __init__(self, adapter: ScriptAdapter, view: Any, ui: Any) -> None:
        self.adapter = adapter
        self.view = view
        self.ui = ui
        self.script_already_added = False
        # An evaluation dispatched for the current load has not completed yet
        self.script_pending = False
        self.state = LoadState.IDLE
        # Bumped on every navigation start so completions from an
        # earlier page cannot mark the current one as injected.
        self.load_id = 0

    # Navigation lifecycle
    def navigation_started(self) -> None:
        self.load_id += 1
        self.script_already_added = False
        self.script_pending = False
        self.state = LoadState.LOADING
        self.ui.set_script_button_enabled(True)

    def navigation_finished(self) -> None:
        self.state = LoadState.INJECTED if self.script_already_added else LoadState.LOADED
        self.run_user_script_for_reviews()
        self.insert_css()

    # Injection
    def run_user_script_for_reviews(self) -> None:
        """Run the user script if any execution filter is a substring of the current URL."""
        url = self.view.url
        if url is None:
            return
        url_string = str(url)
        filters = self.adapter.execution_filters
        if not filters:
            self.run_user_script()
            return
        for script_filter in filters:
            if script_filter in url_string:
                self.run_user_script()
                break
            logger.debug("filter %s does not match url %s", script_filter, url_string)

    def run_user_script(self) -> None:
        if self.script_already_added or self.script_pending:
            logger.debug("script already run or pending")
            return
        if not self.adapter.has_script():
            logger.debug("no script configured: %r", self.adapter.script_string)
            self.ui.show_alert(None, NO_SCRIPT_MESSAGE)
            return
        load_id = self.load_id
        self.script_pending = True
        future = self.view.evaluate_javascript(self.adapter.script_string)
        future.add_done_callback(lambda f: self._script_finished(f, load_id))

    def _script_finished(self, future: Future, load_id: int) -> None:
        if load_id != self.load_id:
            logger.debug("ignoring script result from a previous page load")
            return
        self.script_pending = False
        error = future.exception()
        if error is not None:
            logger.debug("user script failed: %r", error)
            self.ui.show_error(str(error))
            return
        self.script_already_added = True
        self.state = LoadState.INJECTED
        self.ui.set_script_button_enabled(False)

    def insert_css(self) -> None:
        css = self.adapter.additional_css
        source = CSS_INSERT_JS.format(css=js_string_literal(css))
        future = self.view.evaluate_javascript(source)
        future.add_done_callback(self._css_finished)

    def _css_finished(self, future: Future) -> None:
        error = future.exception()
        if error is not None:
            logger.warning("could not insert adapter CSS: %s", error)
