"""Tests for OAuth request signing, credentials and token providers."""

import base64
import hashlib
import hmac
import json
import stat

import pytest

from cloudbox_sdk.auth import (
    CredentialManager, EnvironmentTokenProvider, OAuthSigner, StaticTokenProvider,
    encode, parse_file_placeholder,
)
from cloudbox_sdk.exceptions import ConfigurationError, ValidationError
from cloudbox_sdk.models import Credentials, SignatureMethod, Token, TokenKind

BASE_URL = "https://api.test/1/"


class TestEncode:

    def test_unreserved_characters_are_kept(self):
        assert encode("AZaz09-._~") == "AZaz09-._~"

    def test_reserved_characters_are_escaped(self):
        assert encode("a b/c&d=e+f") == "a%20b%2Fc%26d%3De%2Bf"

    def test_non_ascii_is_utf8_encoded(self):
        assert encode("ü") == "%C3%BC"


class TestFilePlaceholder:

    def test_declared_filename(self):
        assert parse_file_placeholder("@/tmp/data/x.bin;filename=report.pdf") == ("/tmp/data/x.bin", "report.pdf")

    def test_basename_without_declared_filename(self):
        assert parse_file_placeholder("@/tmp/data/x.bin") == ("/tmp/data/x.bin", "x.bin")


class TestOAuthSigner:

    def test_hmac_sha1_signature(self, signer, credentials):
        request = signer.sign("get", BASE_URL, "metadata/sandbox/docs", {"list": 1}, credentials)

        expected_base = (
            "GET&https%3A%2F%2Fapi.test%2F1%2Fmetadata%2Fsandbox%2Fdocs&"
            "list%3D1%26oauth_consumer_key%3Dconsumer-key%26oauth_nonce%3Dfixednonce"
            "%26oauth_signature_method%3DHMAC-SHA1%26oauth_timestamp%3D1300000000"
            "%26oauth_token%3Dtoken-key%26oauth_version%3D1.0"
        )
        params = {k: v for k, v in request.params.items() if k != "oauth_signature"}
        assert OAuthSigner.base_string("GET", request.url, params) == expected_base

        digest = hmac.new(b"consumer-secret&token-secret", expected_base.encode(), hashlib.sha1).digest()
        assert request.signature == base64.b64encode(digest).decode()
        assert request.params["oauth_signature"] == request.signature
        assert request.method == "GET"
        assert request.url == BASE_URL + "metadata/sandbox/docs"

    def test_signing_is_deterministic(self, signer, credentials):
        params = {"path": "/photos/2011", "rev": "abc", "limit": 25}
        first = signer.sign("POST", BASE_URL, "fileops/copy", params, credentials)
        second = signer.sign("POST", BASE_URL, "fileops/copy", params, credentials)

        assert first.signature == second.signature
        assert first == second

    def test_parameter_order_does_not_matter(self, signer, credentials):
        forward = {"a": "1", "b": "2", "c": "3", "oauth_callback": "x"}
        backward = dict(reversed(list(forward.items())))

        assert (
            signer.sign("GET", BASE_URL, "search", forward, credentials).signature
            == signer.sign("GET", BASE_URL, "search", backward, credentials).signature
        )

    def test_parameters_are_sorted(self, signer, credentials):
        request = signer.sign("GET", BASE_URL, "search", {"zeta": "1", "alpha": "2"}, credentials)
        keys = [k for k in request.params if k != "oauth_signature"]

        assert keys == sorted(keys)
        assert list(request.params)[-1] == "oauth_signature"

    def test_none_values_are_dropped(self, signer, credentials):
        with_none = signer.sign("GET", BASE_URL, "search", {"q": "x", "rev": None}, credentials)
        without = signer.sign("GET", BASE_URL, "search", {"q": "x"}, credentials)

        assert "rev" not in with_none.params
        assert with_none.signature == without.signature

    def test_zero_and_empty_values_are_signed(self, signer, credentials):
        request = signer.sign("GET", BASE_URL, "search", {"offset": 0, "q": "", "flag": False}, credentials)
        without = signer.sign("GET", BASE_URL, "search", {}, credentials)

        assert request.params["offset"] == "0"
        assert request.params["q"] == ""
        assert request.params["flag"] == "0"
        assert request.signature != without.signature

    def test_file_placeholder_is_signed_as_filename(self, signer, credentials):
        placeholder = signer.sign(
            "POST", BASE_URL, "files/sandbox/",
            {"file": "@/home/me/private/x.bin;filename=report.pdf"},
            credentials,
        )
        plain = signer.sign("POST", BASE_URL, "files/sandbox/", {"file": "report.pdf"}, credentials)

        assert placeholder.signature == plain.signature
        assert placeholder.params["file"] == "@/home/me/private/x.bin;filename=report.pdf"

    def test_at_sign_outside_file_field_is_signed_verbatim(self, signer, credentials):
        literal = signer.sign("POST", BASE_URL, "files/sandbox/", {"filename": "@notes.txt"}, credentials)
        stripped = signer.sign("POST", BASE_URL, "files/sandbox/", {"filename": "notes.txt"}, credentials)
        params = {k: v for k, v in literal.params.items() if k != "oauth_signature"}

        assert "filename%3D%2540notes.txt" in OAuthSigner.base_string("POST", literal.url, params)
        assert literal.signature != stripped.signature

    def test_nonce_and_timestamp_only_for_hmac(self, credentials):
        hmac_request = OAuthSigner("HMAC-SHA1").sign("GET", BASE_URL, "account/info", None, credentials)
        plain_request = OAuthSigner("PLAINTEXT").sign("GET", BASE_URL, "account/info", None, credentials)

        assert "oauth_nonce" in hmac_request.params
        assert "oauth_timestamp" in hmac_request.params
        assert "oauth_nonce" not in plain_request.params
        assert "oauth_timestamp" not in plain_request.params

    def test_fresh_nonce_per_request(self, credentials):
        signer = OAuthSigner("HMAC-SHA1")
        first = signer.sign("GET", BASE_URL, "account/info", None, credentials)
        second = signer.sign("GET", BASE_URL, "account/info", None, credentials)

        assert first.params["oauth_nonce"] != second.params["oauth_nonce"]

    def test_plaintext_signature(self, credentials):
        request = OAuthSigner(SignatureMethod.PLAINTEXT).sign("GET", BASE_URL, "account/info", None, credentials)

        assert request.signature == "consumer-secret&token-secret"
        assert request.params["oauth_signature_method"] == "PLAINTEXT"

    def test_without_token(self):
        credentials = Credentials("key", "secret")
        request = OAuthSigner("PLAINTEXT").sign("POST", BASE_URL, "oauth/request_token", None, credentials)

        assert "oauth_token" not in request.params
        assert request.signature == "secret&"

    def test_unknown_signature_method_fails_fast(self):
        with pytest.raises(ConfigurationError):
            OAuthSigner("RSA-SHA1")

    def test_credentials_are_required(self, signer):
        with pytest.raises(ConfigurationError):
            signer.sign("GET", BASE_URL, "account/info")

    def test_query_url_carries_all_parameters(self, signer, credentials):
        request = signer.sign("PUT", BASE_URL, "chunked_upload", {"upload_id": "u 1", "offset": 0}, credentials)

        assert request.query_url.startswith(BASE_URL + "chunked_upload?")
        assert "upload_id=u%201" in request.query_url
        assert "offset=0" in request.query_url
        assert "oauth_signature=" in request.query_url
        assert request.form_fields() == request.params
        assert request.form_fields() is not request.params


class TestCredentials:

    def test_access_token_supersedes_request_token(self):
        credentials = Credentials("key", "secret").with_token(Token("req", "s1", TokenKind.REQUEST))
        authorized = credentials.with_token(Token("acc", "s2", TokenKind.ACCESS))

        assert authorized.is_authorized
        assert authorized.token_key == "acc"
        with pytest.raises(ValidationError):
            authorized.with_token(Token("req2", "s3", TokenKind.REQUEST))

    def test_access_token_can_be_rotated(self):
        credentials = Credentials("key", "secret", Token("acc", "s"))
        rotated = credentials.with_token(Token("acc2", "s2"))

        assert rotated.token_key == "acc2"
        assert credentials.token_key == "acc"

    def test_static_provider_enforces_precedence(self, credentials):
        provider = StaticTokenProvider(credentials)

        with pytest.raises(ValidationError):
            provider.set_token(Token("req", "s", TokenKind.REQUEST))
        assert provider.current_credentials() is credentials


@pytest.fixture
def clean_env(monkeypatch):
    for key in ("consumer_key", "consumer_secret", "access_token", "access_token_secret"):
        for name in (f"CLOUDBOX_{key.upper()}", f"CB_{key.upper()}", key.upper()):
            monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestCredentialManager:

    def test_reads_environment(self, clean_env, tmp_path):
        clean_env.setenv("CLOUDBOX_CONSUMER_KEY", "env-key")
        manager = CredentialManager(credential_files=[tmp_path / "missing.json"])

        assert manager.get_credential("consumer_key") == "env-key"
        assert manager.get_credential("consumer_secret", "fallback") == "fallback"

    def test_reads_credentials_file(self, clean_env, tmp_path):
        cred_file = tmp_path / "credentials.json"
        cred_file.write_text(json.dumps({"consumer_secret": "file-secret"}))
        manager = CredentialManager(credential_files=[tmp_path / "missing.json", cred_file])

        assert manager.get_credential("consumer_secret") == "file-secret"

    def test_store_persists_with_restricted_permissions(self, clean_env, tmp_path):
        cred_file = tmp_path / "nested" / "credentials.json"
        manager = CredentialManager(credential_files=[cred_file])

        manager.store_credential("access_token", "tok", persistent=True)
        manager.store_credential("access_token_secret", "sec", persistent=True)

        assert json.loads(cred_file.read_text()) == {"access_token": "tok", "access_token_secret": "sec"}
        assert stat.S_IMODE(cred_file.stat().st_mode) == 0o600


class TestEnvironmentTokenProvider:

    def test_builds_access_credentials(self, clean_env, tmp_path):
        clean_env.setenv("CLOUDBOX_CONSUMER_KEY", "k")
        clean_env.setenv("CLOUDBOX_CONSUMER_SECRET", "s")
        clean_env.setenv("CB_ACCESS_TOKEN", "t")
        clean_env.setenv("CB_ACCESS_TOKEN_SECRET", "ts")
        provider = EnvironmentTokenProvider(CredentialManager(credential_files=[tmp_path / "none.json"]))

        credentials = provider.current_credentials()

        assert credentials == Credentials("k", "s", Token("t", "ts", TokenKind.ACCESS))

    def test_missing_consumer_credentials(self, clean_env, tmp_path):
        provider = EnvironmentTokenProvider(CredentialManager(credential_files=[tmp_path / "none.json"]))

        with pytest.raises(ConfigurationError):
            provider.current_credentials()
