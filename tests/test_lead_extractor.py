"""Tests for raw post validation and lead de-duplication."""

from __future__ import annotations

import pytest

from leadscout.exceptions import DriverError
from leadscout.extraction.lead_extractor import (
    derive_lead_id,
    extract,
    normalise_thread_url,
    parse_raw_posts,
)
from leadscout.schemas import RawPost, parse_count

URL = "https://www.threads.net/@buyer/post/ABC123"


def _raw(**kwargs) -> RawPost:
    return RawPost.model_validate(kwargs)


def test_same_thread_url_keeps_first_seen():
    first = _raw(text="Need an automation consultant", author_handle="buyer", thread_url=URL)
    second = _raw(text="Edited: need an automation consultant today", author_handle="buyer", thread_url=URL + "/")
    candidates = extract([first, second])
    assert len(candidates) == 1
    assert candidates[0].text == "Need an automation consultant"


def test_invalid_posts_are_dropped():
    posts = [
        _raw(text="", author_handle="someone"),
        _raw(text="has text", author_handle="   "),
        _raw(text="valid post", author_handle="@someone"),
    ]
    candidates = extract(posts)
    assert [c.author_handle for c in candidates] == ["someone"]


def test_order_is_preserved():
    posts = [_raw(text=f"post {i}", author_handle=f"user{i}") for i in range(5)]
    assert [c.text for c in extract(posts)] == [f"post {i}" for i in range(5)]


def test_id_uses_thread_url_when_present():
    a = derive_lead_id("one", "text one", URL)
    b = derive_lead_id("two", "text two", URL + "?utm_source=share#top")
    assert a == b
    assert a.startswith("lead-")
    assert len(a) == len("lead-") + 16


def test_id_falls_back_to_author_and_text():
    a = derive_lead_id("@Buyer", "Looking for help")
    b = derive_lead_id("buyer", "Looking for help")
    c = derive_lead_id("buyer", "Looking for something else")
    assert a == b
    assert a != c


def test_fallback_id_ignores_text_beyond_prefix():
    base = "x" * 64
    assert derive_lead_id("u", base + " (edited)") == derive_lead_id("u", base + " more")


def test_normalise_thread_url():
    assert normalise_thread_url("HTTPS://WWW.Threads.net/@a/post/1/?x=1#f") == "https://www.threads.net/@a/post/1"


def test_parse_envelope_and_bare_list():
    item = {"text": "hello", "author_handle": "u"}
    assert len(parse_raw_posts({"posts": [item]})) == 1
    assert len(parse_raw_posts([item, item])) == 2


def test_parse_rejects_unusable_payload():
    with pytest.raises(DriverError):
        parse_raw_posts("not a list")
    with pytest.raises(DriverError):
        parse_raw_posts({"items": []})


def test_parse_drops_malformed_items():
    posts = parse_raw_posts([{"text": "ok", "author_handle": "u"}, 42, {"text": ["bad"]}])
    assert len(posts) == 1


def test_nested_and_camel_case_fields():
    post = RawPost.model_validate(
        {
            "content": "  Anyone know a CRM?  ",
            "author": {"handle": "@sales_lead", "displayName": "Sam"},
            "metrics": {"likes": "1.2K", "replies": "1,024", "views": None},
            "threadUrl": URL,
            "unexpected": "ignored",
        }
    )
    assert post.text == "Anyone know a CRM?"
    assert post.author_handle == "sales_lead"
    assert post.display_name == "Sam"
    assert post.thread_url == URL
    assert post.metrics.likes == 1200
    assert post.metrics.replies == 1024
    assert post.metrics.views == 0


def test_negative_counts_become_zero():
    post = _raw(text="t", author_handle="u", likes=-5)
    assert post.metrics.likes == 0


@pytest.mark.parametrize(
    "raw, expected",
    [
        (12, 12),
        ("12", 12),
        ("1,234", 1234),
        ("4.5K", 4500),
        ("3M", 3_000_000),
        ("", None),
        ("lots", None),
        (None, None),
        (True, None),
    ],
)
def test_parse_count(raw, expected):
    assert parse_count(raw) == expected
