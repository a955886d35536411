"""Browser window: address bar, navigation buttons and dialogs.

The :class:`Browser` builds a Tk window around a
:class:`~scriptable_browser.page.PageView` and an
:class:`~scriptable_browser.injection.InjectionController`. It acts as
the page view's delegate, forwarding the navigation lifecycle to the
controller and keeping the chrome (spinner, address, back/forward
buttons) in step with the page.

Run it with ``scriptable-browser [URL]`` or ``python -m
scriptable_browser.browser [URL]``. The user script is read from the
store written by ``scriptable-browser-script``.
"""

from __future__ import annotations

import argparse
import logging
import sys
import tkinter
import tkinter.messagebox
import tkinter.ttk
from typing import List, Optional

from . import config
from .adapters import ScriptAdapter, create_adapter
from .injection import InjectionController
from .networking import URL, InvalidURLError
from .page import PageView
from .render import TextRenderer
from .storage import USER_SCRIPT_KEY, KeyValueStore

logger = logging.getLogger(__name__)

NO_SCRIPT_WARNING = (
    "You haven't loaded a userScript. To do so, run \"scriptable-browser-script "
    "download\" or \"scriptable-browser-script load <file>\". Or dismiss this alert "
    "and browse normally, if you like."
)


class ErrorDialog(tkinter.Toplevel):
    """A window showing an error message in a scrollable, read-only text box."""

    def __init__(self, master: tkinter.Misc, text: Optional[str] = None, title: str = "Error") -> None:
        super().__init__(master)
        self.title(title)
        self.transient(master)
        body = tkinter.Text(self, wrap="word", width=60, height=12)
        body.insert("1.0", text or "")
        body.config(state="disabled")
        body.pack(fill="both", expand=True, padx=6, pady=6)
        tkinter.Button(self, text="Close", command=self.destroy).pack(pady=(0, 6))
        self.bind("<Escape>", lambda e: self.destroy())


class Browser:
    """Main browser window."""

    def __init__(self, adapter: ScriptAdapter, start_url: Optional[str] = None) -> None:
        self.window = tkinter.Tk()
        self.window.title("Scriptable Browser")
        # Chrome: spinner, address bar, run-script, back/forward
        self.chrome = tkinter.Frame(self.window)
        self.spinner = tkinter.ttk.Progressbar(self.chrome, mode="indeterminate", length=40)
        self.address = tkinter.Entry(self.chrome, width=60, justify="center", fg="gray25")
        self.script_btn = tkinter.Button(self.chrome, text="Run script", command=self.run_script)
        self.back_btn = tkinter.Button(self.chrome, text="<", width=2, command=self.go_back)
        self.fwd_btn = tkinter.Button(self.chrome, text=">", width=2, command=self.go_forward)
        self.spinner.pack(side="left", padx=4)
        self.address.pack(side="left", fill="x", expand=True, padx=4)
        self.script_btn.pack(side="left")
        self.back_btn.pack(side="left")
        self.fwd_btn.pack(side="left")
        self.chrome.pack(fill="x")
        # Page content
        content = tkinter.Frame(self.window)
        self.text = tkinter.Text(content, wrap="word", width=100, height=40, padx=12, pady=12,
                                 background="white", highlightthickness=0, cursor="")
        scrollbar = tkinter.Scrollbar(content, command=self.text.yview)
        self.text.config(yscrollcommand=scrollbar.set, state="disabled")
        scrollbar.pack(side="right", fill="y")
        self.text.pack(side="left", fill="both", expand=True)
        content.pack(fill="both", expand=True)

        self.address.bind("<Return>", lambda e: self.go_address())
        self.page = PageView(self, scheduler=self.window.after,
                             renderer=TextRenderer(self.text, on_click=self._page_click))
        self.adapter = adapter
        self.controller = InjectionController(adapter, self.page, self)
        self._set_navigation_button_mode(self.back_btn, False)
        self._set_navigation_button_mode(self.fwd_btn, False)

        if not adapter.has_script():
            self.window.after_idle(lambda: self.show_alert("Warning", NO_SCRIPT_WARNING))
        if start_url:
            self.window.after_idle(lambda: self.load_address(start_url))

    # PageView delegate
    def navigation_started(self) -> None:
        self.controller.navigation_started()
        self.spinner.start(10)
        self.window.config(cursor="watch")
        # The load below blocks; paint the spinner first
        self.window.update_idletasks()

    def navigation_finished(self) -> None:
        self.spinner.stop()
        self.window.config(cursor="")
        self.controller.navigation_finished()
        self.window.title(self.page.title or "Scriptable Browser")
        self.address.delete(0, "end")
        self.address.insert(0, str(self.page.url))
        self._set_navigation_button_mode(self.fwd_btn, self.page.can_go_forward)
        self._set_navigation_button_mode(self.back_btn, self.page.can_go_back)

    def navigation_failed(self, address: str, error: Exception) -> None:
        self.spinner.stop()
        self.window.config(cursor="")
        self.show_error(f"Could not load page for URL: \"{address}\"\n\n{error}")

    def show_alert(self, title: Optional[str], message: str) -> None:
        tkinter.messagebox.showinfo(title or "", message, parent=self.window)

    # InjectionController UI
    def show_error(self, message: Optional[str] = None) -> None:
        ErrorDialog(self.window, message or "Unknown Error")

    def set_script_button_enabled(self, enabled: bool) -> None:
        self.script_btn.config(state="normal" if enabled else "disabled")

    # Commands
    def load_address(self, address: Optional[str]) -> None:
        if address is None:
            return
        address = address.strip()
        if not address:
            return
        if "://" not in address:
            address = "https://" + address
        try:
            url = URL(address)
        except InvalidURLError:
            self.show_error(f"Could not load page for URL: \"{address}\"")
            return
        self.page.load(url)

    def go_address(self) -> None:
        self.load_address(self.address.get())
        self.text.focus_set()

    def go_back(self) -> None:
        self.page.go_back()

    def go_forward(self) -> None:
        self.page.go_forward()

    def run_script(self) -> None:
        self.controller.run_user_script_for_reviews()

    def _page_click(self, elt) -> None:
        self.page.click(elt)

    def _set_navigation_button_mode(self, button: tkinter.Button, enable: bool) -> None:
        if enable:
            button.config(state="normal", fg="gray25")
        else:
            button.config(state="disabled", fg="gray75")


def parse(argv: Optional[List[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(prog="scriptable-browser", description="Browse with a user script")
    ap.add_argument("url", nargs="?", default=None, help="Page to open (default from config)")
    ap.add_argument("--config", default=None, help="Path to YAML config")
    ap.add_argument("--adapter", default=None, help="Script adapter name (overrides config)")
    ap.add_argument("--store", default=None, help="Path to the script store (overrides config)")
    ap.add_argument("-v", "--verbose", action="store_true", help="Enable debug output")
    return ap.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for ``scriptable-browser``."""
    args = parse(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")
    settings = config.load(args.config)
    store = KeyValueStore(args.store or settings["store_path"])
    script = store.get(USER_SCRIPT_KEY)
    try:
        adapter = create_adapter(args.adapter or settings["adapter"], script, settings)
    except KeyError as ex:
        print(ex.args[0], file=sys.stderr)
        return 2
    logger.debug("adapter %s, script of %d characters", adapter.name, len(adapter.script_string or ""))
    Browser(adapter, args.url or settings["start_url"])
    tkinter.mainloop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
