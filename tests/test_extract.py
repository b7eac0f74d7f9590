from deckproxy.slides.extract import SlideEntry, extract, find_embedded_image, manifest_title

URL_A = "https://files.manuscdn.com/a.png"
URL_B = "https://files.manuscdn.com/b.jpg"


def test_images_ordered_by_slide_ids_with_outline_titles():
    manifest = {
        "slide_ids": ["a", "b"],
        "images": {"b": URL_B, "a": URL_A},
        "outline": [{"id": "a", "title": "Intro"}],
    }
    assert extract(manifest) == [
        SlideEntry(id="a", image_url=URL_A, title="Intro"),
        SlideEntry(id="b", image_url=URL_B, title="b"),
    ]


def test_images_key_order_without_slide_ids():
    manifest = {"slides": [], "images": {"s2": URL_B, "s1": URL_A}}
    assert [e.id for e in extract(manifest)] == ["s2", "s1"]


def test_missing_or_empty_urls_are_dropped():
    manifest = {
        "slide_ids": ["a", "b", "c"],
        "images": {"a": URL_A, "b": ""},
    }
    assert [e.id for e in extract(manifest)] == ["a"]


def test_outline_summary_fallback():
    manifest = {
        "slide_ids": ["a"],
        "images": {"a": URL_A},
        "outline": [{"id": "a", "title": "", "summary": "Why it matters"}],
    }
    assert extract(manifest)[0].title == "Why it matters"


def test_files_strategy_uses_embedded_src():
    manifest = {
        "files": [
            {"id": "f1", "content": '<div><img class="x" src="https://files.manuscdn.com/1.png"></div>'},
            {"id": "f2", "content": "<p>no picture here</p>"},
            {"id": "f3", "content": "<img src='https://files.manuscdn.com/3.jpg?a=1&amp;b=2'/>"},
        ],
        "outline": [{"id": "f3", "title": "Closing"}],
    }
    assert extract(manifest) == [
        SlideEntry(id="f1", image_url="https://files.manuscdn.com/1.png", title="f1"),
        SlideEntry(id="f3", image_url="https://files.manuscdn.com/3.jpg?a=1&b=2", title="Closing"),
    ]


def test_images_strategy_wins_over_files():
    manifest = {
        "files": [{"id": "f1", "content": '<img src="https://files.manuscdn.com/1.png">'}],
        "slide_ids": ["a"],
        "images": {"a": URL_A},
    }
    assert [e.id for e in extract(manifest)] == ["a"]


def test_outline_only_manifest_has_no_entries():
    assert extract({"slides": [], "outline": [{"id": "a", "title": "A"}]}) == []


def test_find_embedded_image():
    assert find_embedded_image('<img src="x.png">') == "x.png"
    assert find_embedded_image('<img SRC = "y.png">') == "y.png"
    assert find_embedded_image('<img src="">') is None
    assert find_embedded_image(None) is None
    assert find_embedded_image(12) is None


def test_manifest_title():
    assert manifest_title({"title": "  Deck  "}) == "Deck"
    assert manifest_title({"title": ""}) is None
    assert manifest_title({}) is None
