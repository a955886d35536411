import pytest
from scriptable_browser.networking import URL, InvalidURLError, decode_body
from scriptable_browser.dom import HTMLParser, Element, Text, find_element, get_element_by_id
from scriptable_browser.css import CSSParser, TagSelector, DescendantSelector, page_style_rules, style, DEFAULT_STYLE_SHEET

# --- Networking Tests ---

def test_url_creation():
    """Test that URLs are parsed into scheme, host, port, and path correctly."""
    url1 = URL("http://example.com/index.html")
    assert url1.scheme == "http"
    assert url1.host == "example.com"
    assert url1.port == 80
    assert url1.path == "/index.html"

    url2 = URL("https://google.com")
    assert url2.scheme == "https"
    assert url2.port == 443
    assert url2.path == "/"

    url3 = URL("http://localhost:8080/debug")
    assert url3.host == "localhost"
    assert url3.port == 8080
    assert str(url3) == "http://localhost:8080/debug"

def test_url_rejects_bad_addresses():
    """Unparseable addresses raise InvalidURLError, which is a ValueError."""
    for bad in ["example.com", "ftp://example.com/", "http://", "http://host:port/"]:
        with pytest.raises(InvalidURLError):
            URL(bad)
    assert issubclass(InvalidURLError, ValueError)

def test_url_resolution():
    """Test resolving relative URLs against a base URL."""
    base = URL("http://example.com/dir/page.html")

    assert str(base.resolve("image.png")) == "http://example.com/dir/image.png"
    assert str(base.resolve("/home")) == "http://example.com/home"
    assert str(base.resolve("https://other.com/foo")) == "https://other.com/foo"
    assert str(base.resolve("../style.css")) == "http://example.com/style.css"
    assert str(base.resolve("//cdn.example.com/x.js")) == "http://cdn.example.com/x.js"

def test_decode_body_uses_declared_charset():
    body = "café".encode("latin-1")
    assert decode_body({"content-type": "text/html; charset=ISO-8859-1"}, body) == "café"
    assert decode_body({}, "café".encode("utf-8")) == "café"


# --- DOM Parsing Tests ---

def test_html_parser_simple():
    """Test parsing a simple HTML string into a DOM tree."""
    tree = HTMLParser("<html><body><p>Hello</p></body></html>").parse()

    assert isinstance(tree, Element)
    assert tree.tag == "html"
    body = tree.children[0]
    assert body.tag == "body"
    p = body.children[0]
    assert p.tag == "p"
    text_node = p.children[0]
    assert isinstance(text_node, Text)
    assert text_node.text == "Hello"

def test_html_parser_attributes():
    """Test that attributes are correctly parsed."""
    tree = HTMLParser('<div id="main" class="container"></div>').parse()
    div = tree.children[0].children[0]

    assert div.tag == "div"
    assert div.attributes["id"] == "main"
    assert div.attributes["class"] == "container"

def test_html_parser_keeps_script_and_style_text():
    """Script and style contents are kept verbatim, even when they contain markup."""
    html = "<head><style>p { color: red; }</style><script>if (a < b) { x = '<p>'; }</script></head><body>hi</body>"
    tree = HTMLParser(html).parse()
    style_elt = find_element(tree, "style")
    script_elt = find_element(tree, "script")
    assert style_elt.children[0].text == "p { color: red; }"
    assert script_elt.children[0].text == "if (a < b) { x = '<p>'; }"
    assert find_element(tree, "body").children[0].text == "hi"

def test_html_parser_skips_comments_and_decodes_entities():
    tree = HTMLParser("<p><!-- a > b -->Fish &amp; chips</p>").parse()
    p = find_element(tree, "p")
    assert [c.text for c in p.children] == ["Fish & chips"]

def test_get_element_by_id():
    tree = HTMLParser('<div><span id="target">x</span></div>').parse()
    assert get_element_by_id(tree, "target").tag == "span"
    assert get_element_by_id(tree, "missing") is None


# --- CSS Parsing Tests ---

def test_css_parser():
    """Test parsing simple CSS rules."""
    rules = CSSParser("body { background-color: white; } p { color: blue; }").parse()

    assert len(rules) == 2
    selector, props = rules[0]
    assert selector.tag == "body"
    assert props["background-color"] == "white"
    selector, props = rules[1]
    assert selector.tag == "p"
    assert props["color"] == "blue"

def test_css_parser_id_class_and_lists():
    """Id, class and compound selectors parse; selector lists share one body."""
    rules = CSSParser("#WKO_button, div.note { color: #FFFFFF; padding: 10px !important }").parse()
    assert len(rules) == 2
    first, props = rules[0]
    assert first.id == "WKO_button" and first.tag is None
    assert props == {"color": "#FFFFFF", "padding": "10px"}
    second, _ = rules[1]
    assert second.tag == "div" and second.classes == ("note",)
    assert first.priority > second.priority

def test_css_parser_skips_unsupported_rules():
    """Attribute selectors and pseudo-classes drop their rule but not the sheet."""
    css = 'input[type="text"]:disabled { color: red; } p { color: blue; }'
    rules = CSSParser(css).parse()
    assert len(rules) == 1
    assert rules[0][0].tag == "p"

def test_style_applies_page_style_elements():
    tree = HTMLParser(
        '<head><style>#x { color: red; } body .y { font-weight: bold; }</style></head>'
        '<body><p id="x">a</p><p class="y">b</p></body>'
    ).parse()
    rules = sorted(DEFAULT_STYLE_SHEET + page_style_rules(tree), key=lambda r: r[0].priority)
    style(tree, rules)
    assert get_element_by_id(tree, "x").style["color"] == "red"
    y = find_element(tree, "body").children[1]
    assert y.style["font-weight"] == "bold"
    assert DescendantSelector(TagSelector("body"), TagSelector.from_text(".y")).matches(y)
    assert not DescendantSelector(TagSelector("head"), TagSelector.from_text(".y")).matches(y)
