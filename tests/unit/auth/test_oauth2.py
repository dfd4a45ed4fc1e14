"""
Unit tests for the OAuth2 link flow.

Tests URL construction, redirect parsing, token persistence and
link initiation.
"""

from urllib.parse import parse_qs, urlsplit

import pytest

from dropbox_babel.auth.oauth2 import (
    LINK_NONCE_KEY,
    AccessToken,
    AuthFailure,
    AuthSuccess,
    DropboxAuthManager,
    OAuth2Error,
)
from dropbox_babel.auth.platform import AppManifest, NavigationPolicy
from dropbox_babel.kernel.errors import ConfigurationError

pytestmark = pytest.mark.unit

APP_KEY = "abc123"
NONCE = "4F1C2A3B-0000-4000-8000-0123456789AB"


# =============================================================================
# OAuth2Error Tests
# =============================================================================


class TestOAuth2Error:
    """Tests for the RFC6749 error code table."""

    @pytest.mark.parametrize(
        "code,expected",
        [
            ("unauthorized_client", OAuth2Error.UNAUTHORIZED_CLIENT),
            ("access_denied", OAuth2Error.ACCESS_DENIED),
            ("unsupported_response_type", OAuth2Error.UNSUPPORTED_RESPONSE_TYPE),
            ("invalid_scope", OAuth2Error.INVALID_SCOPE),
            ("server_error", OAuth2Error.SERVER_ERROR),
            ("temporarily_unavailable", OAuth2Error.TEMPORARILY_UNAVAILABLE),
        ],
    )
    def test_known_codes(self, code, expected):
        """Test every RFC code maps to its member."""
        assert OAuth2Error.from_error_code(code) is expected

    @pytest.mark.parametrize("code", ["invalid_request", "ACCESS_DENIED", "", "unknown_thing"])
    def test_unrecognized_codes_are_unknown(self, code):
        """Test anything outside the table maps to UNKNOWN."""
        assert OAuth2Error.from_error_code(code) is OAuth2Error.UNKNOWN


# =============================================================================
# AccessToken Tests
# =============================================================================


class TestAccessToken:
    def test_str_is_token(self):
        token = AccessToken(access_token="abc", uid="123")
        assert str(token) == "abc"

    def test_immutable(self):
        token = AccessToken(access_token="abc", uid="123")
        with pytest.raises(Exception):
            token.uid = "456"


# =============================================================================
# URL Construction Tests
# =============================================================================


class TestUrls:
    """Tests for auth_url, dauth_url and redirect templates."""

    def test_redirect_templates(self, auth_manager):
        assert auth_manager.redirect_url == "db-abc123://2/token"
        assert auth_manager.dauth_redirect_url == "db-abc123://1/connect"

    def test_auth_url(self, auth_manager):
        """Test the hosted consent page URL."""
        url = auth_manager.auth_url()

        assert url == (
            "https://www.dropbox.com/1/oauth2/authorize?response_type=token"
            "&client_id=abc123&redirect_uri=db-abc123://2/token&disable_signup=true"
        )

    def test_auth_url_custom_host(self, token_store):
        manager = DropboxAuthManager(APP_KEY, host="dropbox.example.test", token_store=token_store)

        parts = urlsplit(manager.auth_url())
        assert parts.netloc == "dropbox.example.test"
        assert parts.path == "/1/oauth2/authorize"

    def test_dauth_url_with_nonce(self, auth_manager):
        url = auth_manager.dauth_url(NONCE)

        assert url == f"dbapi-2://1/connect?k=abc123&s=&state=oauth2:{NONCE}"

    def test_dauth_url_without_nonce_is_a_probe(self, auth_manager):
        assert auth_manager.dauth_url() == "dbapi-2://1/connect"

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("db-abc123://2/token#access_token=a&uid=1", True),
            ("db-abc123://1/connect?state=x", True),
            ("db-abc123://2:8080/token#access_token=a&uid=1", True),
            ("db-abc123://someone@2/token#access_token=a&uid=1", True),
            ("db-abc123://2/other#access_token=a", False),
            ("db-other://2/token#access_token=a", False),
            ("db-abc123://3/token", False),
            ("https://www.dropbox.com/1/oauth2/authorize", False),
        ],
    )
    def test_can_handle_url(self, auth_manager, url, expected):
        """Test only the two redirect templates are eligible."""
        assert auth_manager.can_handle_url(url) is expected


# =============================================================================
# Hosted-page Redirect Tests
# =============================================================================


class TestHostedRedirect:
    """Tests for fragment-style redirects (db-<key>://2/token)."""

    def test_success_stores_token(self, auth_manager, token_store):
        """Test access_token=abc&uid=123 links and persists the token."""
        result = auth_manager.handle_redirect_url("db-abc123://2/token#access_token=abc&uid=123")

        assert result == AuthSuccess(AccessToken(access_token="abc", uid="123"))
        assert token_store.get("123") == "abc"

    def test_error_with_description(self, auth_manager, token_store):
        """Test error fragments decode the description."""
        result = auth_manager.handle_redirect_url(
            "db-abc123://2/token#error=access_denied&error_description=User+cancelled"
        )

        assert result == AuthFailure(OAuth2Error.ACCESS_DENIED, "User cancelled")
        assert token_store.get_all() == []

    def test_error_description_percent_decoded(self, auth_manager):
        result = auth_manager.handle_redirect_url(
            "db-abc123://2/token#error=server_error&error_description=Try+again%2C+later%21"
        )

        assert result == AuthFailure(OAuth2Error.SERVER_ERROR, "Try again, later!")

    def test_error_without_description(self, auth_manager):
        result = auth_manager.handle_redirect_url("db-abc123://2/token#error=invalid_scope")

        assert result == AuthFailure(OAuth2Error.INVALID_SCOPE, "")

    def test_unrecognized_error_code(self, auth_manager):
        result = auth_manager.handle_redirect_url(
            "db-abc123://2/token#error=made_up&error_description=x"
        )

        assert isinstance(result, AuthFailure)
        assert result.error is OAuth2Error.UNKNOWN

    def test_query_is_ignored(self, auth_manager):
        """Test parameters are read from the fragment, not the query."""
        result = auth_manager.handle_redirect_url("db-abc123://2/token?access_token=abc&uid=123")

        assert isinstance(result, AuthFailure)
        assert result.error is OAuth2Error.UNKNOWN

    def test_foreign_url_declined(self, auth_manager, token_store):
        assert auth_manager.handle_redirect_url("https://example.com/#access_token=a&uid=1") is None
        assert token_store.get_all() == []


# =============================================================================
# Inter-app (dauth) Redirect Tests
# =============================================================================


class TestDauthRedirect:
    """Tests for db-<key>://1/connect redirects."""

    def test_matching_nonce_succeeds(self, auth_manager, defaults, token_store):
        defaults[LINK_NONCE_KEY] = NONCE

        result = auth_manager.handle_redirect_url(
            f"db-abc123://1/connect?oauth_token=x&oauth_token_secret=tok&uid=42&state=oauth2%3A{NONCE}"
        )

        assert result == AuthSuccess(AccessToken(access_token="tok", uid="42"))
        assert token_store.get("42") == "tok"

    def test_mismatched_nonce_fails(self, auth_manager, defaults, token_store):
        defaults[LINK_NONCE_KEY] = NONCE

        result = auth_manager.handle_redirect_url(
            "db-abc123://1/connect?oauth_token_secret=tok&uid=42&state=oauth2%3Aother"
        )

        assert result == AuthFailure(OAuth2Error.UNKNOWN, "Unable to verify link request")
        assert token_store.get("42") is None

    @pytest.mark.parametrize(
        "state",
        [
            None,
            f"oauth2:{NONCE}",  # only the literal %3A separator is understood
            f"oauth1%3A{NONCE}",
            f"oauth2%3A{NONCE}%3Aextra",
            "oauth2%3A",
        ],
    )
    def test_state_must_be_exact(self, auth_manager, defaults, state):
        """Test any state other than oauth2%3A<nonce> is a verification failure."""
        defaults[LINK_NONCE_KEY] = NONCE
        url = "db-abc123://1/connect?oauth_token_secret=tok&uid=42"
        if state is not None:
            url += f"&state={state}"

        result = auth_manager.handle_redirect_url(url)

        assert result == AuthFailure(OAuth2Error.UNKNOWN, "Unable to verify link request")

    def test_no_stored_nonce_fails(self, auth_manager):
        result = auth_manager.handle_redirect_url(
            "db-abc123://1/connect?oauth_token_secret=tok&uid=42&state=oauth2%3Anonce"
        )

        assert isinstance(result, AuthFailure)
        assert result.error is OAuth2Error.UNKNOWN

    def test_other_path_is_cancellation(self, auth_manager):
        """Test a 1/<other> path is treated as the user cancelling."""
        # can_handle_url only admits /connect, so call the extractor directly
        result = auth_manager._extract_from_dauth_url("db-abc123://1/cancel")

        assert result == AuthFailure(OAuth2Error.ACCESS_DENIED, "User cancelled Dropbox link")

    def test_values_are_not_percent_decoded(self, auth_manager, defaults, token_store):
        defaults[LINK_NONCE_KEY] = NONCE

        result = auth_manager.handle_redirect_url(
            f"db-abc123://1/connect?oauth_token_secret=a%2Bb&uid=42&state=oauth2%3A{NONCE}"
        )

        assert result == AuthSuccess(AccessToken(access_token="a%2Bb", uid="42"))


# =============================================================================
# Link Initiation Tests
# =============================================================================


class TestAuthorize:
    """Tests for authorize()."""

    def test_missing_url_scheme_is_fatal(self, token_store, opener, presenter):
        manager = DropboxAuthManager(
            APP_KEY,
            token_store=token_store,
            manifest=AppManifest(queries_schemes=["dbapi-2"]),
            url_opener=opener,
            presenter=presenter,
        )

        with pytest.raises(ConfigurationError) as exc_info:
            manager.authorize()

        assert exc_info.value.code == "config.url_scheme_not_registered"
        assert "db-abc123" in exc_info.value.message
        assert opener.probed == []
        assert presenter.presented == []

    def test_missing_queries_scheme_is_fatal(self, token_store, opener, presenter):
        manager = DropboxAuthManager(
            APP_KEY,
            token_store=token_store,
            manifest=AppManifest(url_schemes=["db-abc123"]),
            url_opener=opener,
            presenter=presenter,
        )

        with pytest.raises(ConfigurationError) as exc_info:
            manager.authorize()

        assert exc_info.value.code == "config.queries_scheme_not_registered"
        assert opener.probed == []

    def test_dauth_handoff(self, auth_manager, opener, presenter, defaults):
        """Test linking through the Dropbox app stores a nonce and opens dauth."""
        opener.can_open = True

        controller = auth_manager.authorize()

        assert controller is None
        assert opener.probed == ["dbapi-2://1/connect"]
        nonce = defaults[LINK_NONCE_KEY]
        assert opener.opened == [auth_manager.dauth_url(nonce)]
        assert presenter.presented == []

        query = parse_qs(urlsplit(opener.opened[0]).query, keep_blank_values=True)
        assert query == {"k": ["abc123"], "s": [""], "state": [f"oauth2:{nonce}"]}

    def test_dauth_round_trip(self, auth_manager, opener, defaults, token_store):
        opener.can_open = True
        auth_manager.authorize()
        nonce = defaults[LINK_NONCE_KEY]

        result = auth_manager.handle_redirect_url(
            f"db-abc123://1/connect?oauth_token_secret=tok&uid=7&state=oauth2%3A{nonce}"
        )

        assert isinstance(result, AuthSuccess)
        assert token_store.get("7") == "tok"

    def test_web_view_presented(self, auth_manager, presenter):
        controller = auth_manager.authorize()

        assert presenter.presented == [controller]
        assert controller.start_url == auth_manager.auth_url()

    def test_web_view_intercepts_redirect(self, auth_manager, token_store):
        """Test the embedded browser completes the flow in-process."""
        results = []
        controller = auth_manager.authorize(on_result=results.append)

        assert controller.decide_policy("https://www.dropbox.com/1/oauth2/authorize_submit") is NavigationPolicy.ALLOW
        policy = controller.decide_policy("db-abc123://2/token#access_token=abc&uid=123")

        assert policy is NavigationPolicy.CANCEL
        assert controller.dismissed is True
        assert results == [AuthSuccess(AccessToken(access_token="abc", uid="123"))]
        assert token_store.get("123") == "abc"


# =============================================================================
# Token Management Tests
# =============================================================================


class TestTokenManagement:
    def test_store_and_lookup(self, auth_manager):
        token = AccessToken(access_token="abc", uid="1")

        assert auth_manager.store_access_token(token) is True
        assert auth_manager.get_access_token("1") == token
        assert auth_manager.get_access_token("2") is None

    def test_get_all_access_tokens(self, auth_manager):
        auth_manager.store_access_token(AccessToken(access_token="a", uid="1"))
        auth_manager.store_access_token(AccessToken(access_token="b", uid="2"))

        tokens = auth_manager.get_all_access_tokens()

        assert tokens == {
            "1": AccessToken(access_token="a", uid="1"),
            "2": AccessToken(access_token="b", uid="2"),
        }
        assert auth_manager.has_stored_access_tokens() is True
        assert auth_manager.get_first_access_token() in tokens.values()

    def test_empty_store(self, auth_manager):
        assert auth_manager.has_stored_access_tokens() is False
        assert auth_manager.get_first_access_token() is None

    def test_clear_one(self, auth_manager):
        token = AccessToken(access_token="a", uid="1")
        auth_manager.store_access_token(token)

        assert auth_manager.clear_stored_access_token(token) is True
        assert auth_manager.get_access_token("1") is None

    def test_clear_all(self, auth_manager):
        auth_manager.store_access_token(AccessToken(access_token="a", uid="1"))
        auth_manager.store_access_token(AccessToken(access_token="b", uid="2"))

        assert auth_manager.clear_stored_access_tokens() is True
        assert auth_manager.get_all_access_tokens() == {}
