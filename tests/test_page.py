import pytest

pytest.importorskip("dukpy")

from scriptable_browser.adapters import WaniKaniOverrideAdapter
from scriptable_browser.dom import get_element_by_id, text_content
from scriptable_browser.injection import InjectionController, LoadState
from scriptable_browser.javascript import JavaScriptError
from scriptable_browser.networking import URL
from scriptable_browser import page as page_module
from scriptable_browser.page import PageView

REVIEW_URL = "https://www.wanikani.com/review/session"

PAGES = {
    "https://example.org/": "<title>Home</title><p id='greeting'>Hello</p><a href='/next'>next</a>",
    "https://example.org/next": "<p>Second page</p>",
    "https://example.org/scripted": (
        "<body><p id='out'>before</p>"
        "<script>document.getElementById('out').textContent = 'after';</script></body>"
    ),
    "https://example.org/alerting": "<script>alert('hi from page');</script>",
    REVIEW_URL: "<body><div id='answer-form'>Answer</div></body>",
}


def fake_fetch(url, referrer):
    key = str(url)
    if key not in PAGES:
        raise OSError(f"connection refused: {key}")
    return url, {"content-type": "text/html; charset=utf-8"}, PAGES[key].encode("utf-8")


def run_now(ms, func):
    func()


class Delegate:
    def __init__(self):
        self.events = []
        self.alerts = []
        self.failures = []

    def navigation_started(self):
        self.events.append("started")

    def navigation_finished(self):
        self.events.append("finished")

    def navigation_failed(self, address, error):
        self.failures.append((address, str(error)))

    def show_alert(self, title, message):
        self.alerts.append((title, message))


class Recorder:
    def __init__(self):
        self.rendered = 0

    def render(self, nodes):
        self.rendered += 1


def make_page():
    delegate = Delegate()
    renderer = Recorder()
    page = PageView(delegate, scheduler=run_now, renderer=renderer, fetch=fake_fetch)
    return page, delegate, renderer


# --- Loading and history ---

def test_load_reports_lifecycle_and_sets_url():
    page, delegate, renderer = make_page()
    assert page.url is None
    page.load(URL("https://example.org/"))
    assert delegate.events == ["started", "finished"]
    assert str(page.url) == "https://example.org/"
    assert page.title == "Home"
    assert renderer.rendered >= 1

def test_history_back_and_forward():
    page, delegate, _ = make_page()
    page.load(URL("https://example.org/"))
    page.load(URL("https://example.org/next"))
    assert page.can_go_back and not page.can_go_forward
    page.go_back()
    assert str(page.url) == "https://example.org/"
    assert page.can_go_forward and not page.can_go_back
    page.go_forward()
    assert str(page.url) == "https://example.org/next"

def test_new_load_drops_forward_history():
    page, _, _ = make_page()
    page.load(URL("https://example.org/"))
    page.load(URL("https://example.org/next"))
    page.go_back()
    page.load(URL("https://example.org/scripted"))
    assert not page.can_go_forward
    assert [str(u) for u in page.history] == ["https://example.org/", "https://example.org/scripted"]

def test_history_is_committed_before_finish_is_reported():
    """The delegate sees the new back/forward state when a load finishes."""
    page, delegate, _ = make_page()
    seen = []
    delegate.navigation_finished = lambda: seen.append((page.url.path, page.can_go_back, page.can_go_forward))
    page.load(URL("https://example.org/"))
    page.load(URL("https://example.org/next"))
    page.go_back()
    page.go_forward()
    assert seen == [("/", False, False), ("/next", True, False), ("/", False, True), ("/next", True, False)]

def test_failed_load_keeps_previous_page():
    page, delegate, _ = make_page()
    page.load(URL("https://example.org/"))
    page.load(URL("https://example.org/missing"))
    assert delegate.failures[0][0] == "https://example.org/missing"
    assert "connection refused" in delegate.failures[0][1]
    assert str(page.url) == "https://example.org/"
    assert len(page.history) == 1

def test_bad_redirect_target_is_reported_as_failure():
    """A redirect to an unsupported scheme fails the load instead of escaping it."""
    delegate = Delegate()
    page = PageView(delegate, scheduler=run_now,
                    fetch=lambda url, referrer: (url.resolve("ftp://elsewhere/file"), {}, b""))
    page.load(URL("https://example.org/"))
    assert delegate.events == ["started"]
    assert "Unsupported scheme" in delegate.failures[0][1]
    assert page.url is None and page.history == []

def test_link_click_navigates():
    page, _, _ = make_page()
    page.load(URL("https://example.org/"))
    link = [n for n in page.nodes.children[1].children if getattr(n, "tag", None) == "a"][0]
    page.click(link.children[0])
    assert str(page.url) == "https://example.org/next"


# --- Page scripts ---

def test_inline_scripts_run_on_load():
    page, _, _ = make_page()
    page.load(URL("https://example.org/scripted"))
    assert text_content(get_element_by_id(page.nodes, "out")) == "after"

def test_page_alert_reaches_delegate():
    page, delegate, _ = make_page()
    page.load(URL("https://example.org/alerting"))
    assert delegate.alerts == [("Alert", "hi from page")]


# --- Script evaluation ---

def test_evaluate_javascript_resolves_future():
    page, _, _ = make_page()
    page.load(URL("https://example.org/"))
    future = page.evaluate_javascript("1 + 2")
    assert future.result() == 3

def test_evaluate_javascript_error():
    page, _, _ = make_page()
    page.load(URL("https://example.org/"))
    future = page.evaluate_javascript("undefinedFunction();")
    error = future.exception()
    assert isinstance(error, JavaScriptError)
    assert str(error)

def test_evaluate_before_any_page_fails():
    page, _, _ = make_page()
    assert isinstance(page.evaluate_javascript("1").exception(), JavaScriptError)

def test_evaluation_is_deferred_to_the_event_loop():
    queue = []
    page = PageView(Delegate(), scheduler=lambda ms, f: queue.append(f), fetch=fake_fetch)
    page.show_document(URL("https://example.org/"), PAGES["https://example.org/"])
    future = page.evaluate_javascript("1")
    assert not future.done()
    while queue:
        queue.pop(0)()
    assert future.result() == 1


# --- Controller and page together ---

class ShellUI(Delegate):
    def __init__(self):
        super().__init__()
        self.errors = []
        self.button_enabled = None
        self.controller = None

    def navigation_started(self):
        super().navigation_started()
        self.controller.navigation_started()

    def navigation_finished(self):
        super().navigation_finished()
        self.controller.navigation_finished()

    def show_error(self, message):
        self.errors.append(message)

    def set_script_button_enabled(self, enabled):
        self.button_enabled = enabled


def make_shell(script):
    ui = ShellUI()
    page = PageView(ui, scheduler=run_now, fetch=fake_fetch)
    ui.controller = InjectionController(WaniKaniOverrideAdapter(script), page, ui)
    return page, ui


def test_injected_script_and_css_style_the_page():
    script = (
        "var b = document.createElement('div'); b.id = 'WKO_button'; "
        "b.textContent = 'Ignore Answer'; document.body.appendChild(b);"
    )
    page, ui = make_shell(script)
    page.load(URL(REVIEW_URL))
    button = get_element_by_id(page.nodes, "WKO_button")
    assert button is not None
    assert button.style["background-color"] == "#CC0000"
    assert ui.controller.state is LoadState.INJECTED
    assert ui.button_enabled is False

def test_css_inserted_where_script_does_not_run():
    page, ui = make_shell("var injected = true;")
    page.load(URL("https://example.org/"))
    styles = [n for n in page.nodes.children[0].children if getattr(n, "tag", None) == "style"]
    assert len(styles) == 1
    assert "#WKO_button" in text_content(styles[0])
    assert page.js.run("typeof injected") == "undefined"

def test_transformed_greasemonkey_script_runs():
    script = '$ = unsafeWindow.$;\nGM_addStyle("#x {}");\nvar ran = true;\n'
    page, ui = make_shell(script)
    page.load(URL(REVIEW_URL))
    assert ui.errors == []
    assert page.js.run("ran") is True

def test_throwing_script_reports_error():
    page, ui = make_shell("throw new Error('nope');")
    page.load(URL(REVIEW_URL))
    assert len(ui.errors) == 1
    assert "nope" in ui.errors[0]
    assert not ui.controller.script_already_added


# --- Script runtime ---

def test_function_valued_result_evaluates_to_none():
    page, _, _ = make_page()
    page.load(URL("https://example.org/"))
    assert page.evaluate_javascript("window.handler = function() { return 1; }").result() is None
    assert page.js.run("window.handler()") == 1

def test_runtime_failure_still_finishes_the_load(monkeypatch):
    """Without a script runtime the page is shown and evaluations fail cleanly."""
    def broken(page):
        raise JavaScriptError("runtime unavailable")
    monkeypatch.setattr(page_module, "JSContext", broken)
    page, delegate, renderer = make_page()
    page.load(URL("https://example.org/scripted"))
    assert delegate.events == ["started", "finished"]
    assert page.js is None
    assert renderer.rendered >= 1
    assert text_content(get_element_by_id(page.nodes, "out")) == "before"
    assert isinstance(page.evaluate_javascript("1").exception(), JavaScriptError)
