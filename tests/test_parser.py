"""Content extraction tests."""

from crawlindex.crawler.parser import (
    ContentParser, ImageRef, MAX_ALT_LENGTH, MAX_CONTENT_LENGTH, cap_text,
)

BASE_URL = "https://a.example/dir/page.html"

PAGE = """
<html>
<head><title>  Example
   Page </title><style>body { color: red }</style></head>
<body>
  <header>Site header</header>
  <nav>Home | About</nav>
  <script>var tracking = 1;</script>
  <h1>Welcome</h1>
  <p>First   paragraph.</p>
  <!-- hidden comment -->
  <a href="/about">About</a>
  <a href="other.html">Relative</a>
  <a href="https://b.example/">B</a>
  <a href="https://b.example/">B again</a>
  <a href="#top">Top</a>
  <a href="mailto:someone@a.example">Mail</a>
  <a href="javascript:void(0)">JS</a>
  <a href="https://b.example/#section">Fragment</a>
  <img src="/img/logo.png" alt="Logo">
  <img src="data:image/png;base64,AAAA" alt="inline">
  <img src="/img/logo.png" alt="Logo again">
  <footer>Copyright</footer>
</body>
</html>
"""


def test_title_is_whitespace_normalized() -> None:
    parsed = ContentParser().parse(BASE_URL, PAGE)
    assert parsed.title == "Example Page"


def test_non_content_markup_is_removed() -> None:
    parsed = ContentParser().parse(BASE_URL, PAGE)

    assert "Welcome" in parsed.content
    assert "First paragraph." in parsed.content
    for removed in ("Site header", "Home | About", "tracking", "Copyright", "hidden comment", "color: red"):
        assert removed not in parsed.content


def test_links_are_absolute_unique_and_in_page_order() -> None:
    parsed = ContentParser().parse(BASE_URL, PAGE)

    assert parsed.links == [
        "https://a.example/about",
        "https://a.example/dir/other.html",
        "https://b.example/",
        "https://b.example/#section",
    ]


def test_images_are_absolute_http_only() -> None:
    parsed = ContentParser().parse(BASE_URL, PAGE)
    assert parsed.images == [ImageRef(src="https://a.example/img/logo.png", alt="Logo")]


def test_content_is_capped_to_exact_length() -> None:
    body = "word " * 20000
    parsed = ContentParser().parse(BASE_URL, f"<html><body><p>{body}</p></body></html>")
    assert len(parsed.content) == MAX_CONTENT_LENGTH


def test_custom_content_cap() -> None:
    parsed = ContentParser(max_content_length=10).parse(
        BASE_URL, "<html><body>abcdefghijklmnopqrstuvwxyz</body></html>"
    )
    assert parsed.content == "abcdefghij"


def test_alt_text_is_capped() -> None:
    html = f'<html><body><img src="/x.png" alt="{"a" * 1000}"></body></html>'
    parsed = ContentParser().parse(BASE_URL, html)
    assert len(parsed.images[0].alt) == MAX_ALT_LENGTH


def test_missing_title() -> None:
    parsed = ContentParser().parse(BASE_URL, "<html><body>text only</body></html>")
    assert parsed.title is None
    assert parsed.content == "text only"
    assert parsed.word_count == 2


def test_cap_text() -> None:
    assert cap_text(None, 5) is None
    assert cap_text("abc", 5) == "abc"
    assert cap_text("abcdefgh", 5) == "abcde"
