"""Tests for forum login and session validation."""

import httpx
import pytest

from listingwatch.core.exceptions import FetchError, LoginFailedError
from listingwatch.scrapers.auth_manager import VBULLETIN, XENFORO, ForumAuthenticator


LOGIN_PAGE_URL = "https://www.canadiangunnutz.com/forum/login/"
LOGIN_POST_URL = "https://www.canadiangunnutz.com/forum/login/login"

LOGIN_PAGE = """
<form action="/forum/login/login" method="post">
  <input name="login"><input type="password" name="password">
  <input type="hidden" name="_xfToken" value="1700000000,abcdef">
</form>
"""


def login_transport(status=303, set_cookies=("xf_session=abc; path=/", "xf_user=42%2Cxyz; path=/")):
    posts = []

    def handler(request):
        posts.append(request)
        headers = [("set-cookie", cookie) for cookie in set_cookies]
        headers.append(("location", "/forum/"))
        return httpx.Response(status, headers=headers)

    return httpx.MockTransport(handler), posts


class TestForumLookup:
    def test_known_forum(self, stub_fetch_client):
        authenticator = ForumAuthenticator(fetch_client=stub_fetch_client())

        assert authenticator.forum_for("https://www.canadiangunnutz.com/forum/") == (
            XENFORO,
            "https://www.canadiangunnutz.com/forum",
        )

    def test_unlisted_forum_uses_adapter_type(self, stub_fetch_client):
        authenticator = ForumAuthenticator(fetch_client=stub_fetch_client())

        assert authenticator.forum_for("oldboard.example.com", "forum-vbulletin") == (
            VBULLETIN,
            "https://www.oldboard.example.com",
        )

    def test_unsupported_forum(self, stub_fetch_client):
        authenticator = ForumAuthenticator(fetch_client=stub_fetch_client())

        with pytest.raises(LoginFailedError):
            authenticator.forum_for("shop.example.com")


class TestXenForoLogin:
    @pytest.mark.asyncio
    async def test_login_returns_session_cookies(self, stub_fetch_client):
        transport, posts = login_transport()
        authenticator = ForumAuthenticator(
            fetch_client=stub_fetch_client(pages={LOGIN_PAGE_URL: LOGIN_PAGE}),
            transport=transport,
        )

        cookies = await authenticator.login("canadiangunnutz.com", "member", "secret")

        assert cookies == "xf_session=abc; xf_user=42%2Cxyz"
        [post] = posts
        assert str(post.url) == LOGIN_POST_URL
        body = post.content.decode()
        assert "_xfToken=1700000000%2Cabcdef" in body
        assert "login=member" in body
        assert post.headers["referer"] == LOGIN_PAGE_URL

    @pytest.mark.asyncio
    async def test_rejected_login(self, stub_fetch_client):
        transport, _ = login_transport(status=403)
        authenticator = ForumAuthenticator(
            fetch_client=stub_fetch_client(pages={LOGIN_PAGE_URL: LOGIN_PAGE}),
            transport=transport,
        )

        with pytest.raises(LoginFailedError):
            await authenticator.login("canadiangunnutz.com", "member", "wrong")

    @pytest.mark.asyncio
    async def test_login_without_session_cookie(self, stub_fetch_client):
        transport, _ = login_transport(set_cookies=("xf_csrf=zzz; path=/",))
        authenticator = ForumAuthenticator(
            fetch_client=stub_fetch_client(pages={LOGIN_PAGE_URL: LOGIN_PAGE}),
            transport=transport,
        )

        with pytest.raises(LoginFailedError) as exc_info:
            await authenticator.login("canadiangunnutz.com", "member", "wrong")

        assert "session cookie" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_missing_csrf_token(self, stub_fetch_client):
        transport, posts = login_transport()
        authenticator = ForumAuthenticator(
            fetch_client=stub_fetch_client(pages={LOGIN_PAGE_URL: "<form><input name='login'></form>"}),
            transport=transport,
        )

        with pytest.raises(LoginFailedError):
            await authenticator.login("canadiangunnutz.com", "member", "secret")
        assert posts == []

    @pytest.mark.asyncio
    async def test_unreachable_login_page(self, stub_fetch_client):
        authenticator = ForumAuthenticator(
            fetch_client=stub_fetch_client(pages={LOGIN_PAGE_URL: FetchError(FetchError.TIMEOUT, LOGIN_PAGE_URL)}),
            transport=login_transport()[0],
        )

        with pytest.raises(LoginFailedError):
            await authenticator.login("canadiangunnutz.com", "member", "secret")


class TestValidateSession:
    home = "https://www.canadiangunnutz.com"

    @pytest.mark.asyncio
    async def test_logout_link_means_live(self, stub_fetch_client):
        fetch_client = stub_fetch_client(pages={self.home: '<a href="/forum/logout/?t=1">Log out</a>'})

        assert await ForumAuthenticator(fetch_client=fetch_client).validate_session(
            "canadiangunnutz.com", "xf_user=1"
        )
        assert fetch_client.cookies_seen == ["xf_user=1"]

    @pytest.mark.asyncio
    async def test_login_form_means_expired(self, stub_fetch_client):
        fetch_client = stub_fetch_client(pages={self.home: LOGIN_PAGE})

        assert not await ForumAuthenticator(fetch_client=fetch_client).validate_session(
            "canadiangunnutz.com", "xf_user=1"
        )

    @pytest.mark.asyncio
    async def test_fetch_failure_means_expired(self, stub_fetch_client):
        assert not await ForumAuthenticator(fetch_client=stub_fetch_client()).validate_session(
            "canadiangunnutz.com", "xf_user=1"
        )
