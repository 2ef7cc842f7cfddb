"""Unit tests for tools/profile_url.py."""
import pytest

from tools.profile_url import parse_profile_username


@pytest.mark.parametrize(
    "url,username",
    [
        ("https://www.instagram.com/john.doe/", "john.doe"),
        ("https://instagram.com/Maria_Silva", "Maria_Silva"),
        ("https://www.instagram.com/john.doe/tagged/?hl=pt", "john.doe"),
    ],
)
def test_profile_urls(url, username):
    result = parse_profile_username(url)
    assert result.ok is True
    assert result.username == username
    assert result.reason is None


@pytest.mark.parametrize(
    "url",
    [
        "https://www.instagram.com/p/Cxyz123/",
        "https://www.instagram.com/reels/abc/",
        "https://www.instagram.com/explore/",
        "https://www.instagram.com/accounts/login/",
        "https://www.instagram.com/direct/inbox/",
    ],
)
def test_non_profile_pages(url):
    result = parse_profile_username(url)
    assert result.ok is False
    assert result.reason == "Essa página não é um perfil."


def test_other_hosts_and_root_are_rejected():
    assert parse_profile_username("https://facebook.com/john").ok is False
    assert parse_profile_username("https://www.instagram.com/").ok is False


def test_invalid_username_characters():
    result = parse_profile_username("https://www.instagram.com/john-doe/")
    assert result.ok is False
    assert result.reason == "Username inválido."


@pytest.mark.parametrize("url", ["", "not a url", None])
def test_garbage_input(url):
    result = parse_profile_username(url)
    assert result.ok is False
    assert result.username is None
