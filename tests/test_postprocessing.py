from quire.postprocessing import MetaPostProcessor, escape_html, meta_tags, set_html_lang


def test_escape_html():
    assert escape_html('<a href="x">Tom & Jerry</a>') == "&lt;a href=&quot;x&quot;&gt;Tom &amp; Jerry&lt;/a&gt;"


def test_meta_tags_in_stable_order():
    tags = meta_tags(
        {
            "title": "Guide",
            "description": 'Say "hi"',
            "image": "https://example.com/cover.png",
            "keywords": ["docs", "howto"],
            "author": "Sam",
            "language": "en",
            "draft": False,
        }
    )
    assert tags == [
        "<title>Guide</title>",
        '<meta property="og:title" content="Guide">',
        '<meta name="description" content="Say &quot;hi&quot;">',
        '<meta property="og:description" content="Say &quot;hi&quot;">',
        '<meta property="og:image" content="https://example.com/cover.png">',
        '<meta name="keywords" content="docs, howto">',
        '<meta name="author" content="Sam">',
        '<meta property="og:locale" content="en">',
    ]


def test_meta_tags_skip_empty_values():
    assert meta_tags({"title": "", "keywords": [], "custom": "x"}) == []
    assert meta_tags({"keywords": "a, b"}) == ['<meta name="keywords" content="a, b">']


def test_set_html_lang():
    assert set_html_lang("<html><body></body></html>", "uk") == '<html lang="uk"><body></body></html>'
    assert (
        set_html_lang("<HTML class='dark' lang=en data-x=\"1\">", "de")
        == "<html class='dark' data-x=\"1\" lang=\"de\">"
    )
    assert set_html_lang("<p>fragment</p>", "en") == "<p>fragment</p>"


def test_post_processor_injects_before_head_end():
    processor = MetaPostProcessor()
    html = "<html><head><meta charset=\"utf-8\"></HEAD><body></body></html>"
    result = processor.process(html, {"title": "T", "language": "fr"})
    assert result == (
        '<html lang="fr"><head><meta charset="utf-8">'
        '<title>T</title><meta property="og:title" content="T">'
        '<meta property="og:locale" content="fr"></HEAD><body></body></html>'
    )


def test_post_processor_leaves_pages_without_front_matter():
    processor = MetaPostProcessor()
    html = "<html><head></head></html>"
    assert processor.process(html, None) is html
    assert processor.process(html, {}) is html
    assert processor.process("<p>no head</p>", {"title": "T"}) == "<p>no head</p>"
