from __future__ import annotations

import pytest

from services.url_canonicalizer import (
    TRACKING_PARAMS,
    canonicalize,
    clean_url,
    display_domain,
    is_same_item,
    is_valid_url,
)


def test_canonicalize_strips_tracking_fragment_and_host_case():
    assert canonicalize("https://Shop.com/item?utm_source=ig&id=5#frag") == "https://shop.com/item?id=5"


def test_canonicalize_bare_slash_path_becomes_empty():
    assert canonicalize("https://shop.com/") == "https://shop.com"


def test_canonicalize_preserves_path_and_query_case():
    assert canonicalize("https://SHOP.com/Item/ABC?Color=Red") == "https://shop.com/Item/ABC?Color=Red"


def test_canonicalize_keeps_order_and_encoding_of_remaining_params():
    url = "https://shop.com/p?b=2&fbclid=xyz&a=hello%20world&gclid=1"
    assert canonicalize(url) == "https://shop.com/p?b=2&a=hello%20world"


def test_canonicalize_drops_question_mark_when_only_tracking_params():
    url = "https://shop.com/p?" + "&".join(f"{p}=1" for p in sorted(TRACKING_PARAMS))
    assert canonicalize(url) == "https://shop.com/p"


def test_canonicalize_only_exact_keys_are_removed():
    # "reference" and "utm" are not on the denylist
    assert canonicalize("https://shop.com/p?reference=1&utm=2&ref=3") == "https://shop.com/p?reference=1&utm=2"


def test_canonicalize_keeps_non_root_trailing_slash():
    assert canonicalize("https://shop.com/item/") == "https://shop.com/item/"


def test_canonicalize_keeps_port_and_userinfo():
    assert canonicalize("http://User@Shop.COM:8080/x") == "http://User@shop.com:8080/x"


@pytest.mark.parametrize(
    "raw",
    [
        "not a url",
        "Shop.com/item",
        "http://[::1",
        "https://shop.com:99999/x",
    ],
)
def test_canonicalize_fails_open_with_lowercased_input(raw):
    assert canonicalize(raw) == raw.lower()


@pytest.mark.parametrize(
    "url",
    [
        "https://Shop.com/item?utm_source=ig&id=5#frag",
        "https://shop.com/",
        "https://shop.com",
        "HTTP://WWW.Example.COM/?ref=home",
        "https://shop.com/p?a=1&tag=x&b=&c",
        "https://shop.com/a/b/?q=%7Euser#top",
        "not a url",
        "",
    ],
)
def test_canonicalize_is_idempotent(url):
    once = canonicalize(url)
    assert canonicalize(once) == once


def test_is_same_item_ignores_tracking_noise():
    assert is_same_item(
        "https://Shop.com/item?id=5&utm_campaign=summer#reviews",
        "https://shop.com/item?id=5",
    )
    assert not is_same_item("https://shop.com/item?id=5", "https://shop.com/item?id=6")


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://shop.com/item", True),
        ("http://shop.com", True),
        ("  https://shop.com/x  ", True),
        ("ftp://shop.com/file", False),
        ("javascript:alert(1)", False),
        ("not-a-url", False),
        ("https://", False),
        ("", False),
    ],
)
def test_is_valid_url(url, expected):
    assert is_valid_url(url) is expected


def test_clean_url_adds_https_when_missing():
    assert clean_url("  shop.com/item ") == "https://shop.com/item"
    assert clean_url("http://shop.com") == "http://shop.com"
    assert clean_url("") == ""


def test_display_domain_strips_leading_www_only():
    assert display_domain("https://www.Shop.com/item") == "shop.com"
    assert display_domain("https://shop.www.com/") == "shop.www.com"
    assert display_domain("nonsense") == "nonsense"
