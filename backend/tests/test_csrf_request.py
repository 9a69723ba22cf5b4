"""Tests for request-level CSRF checks (double-submit cookie pattern)"""

import pytest
from app.services.csrf import NEW_TOKEN_HEADER, CSRFError, CSRFService
from tests.conftest import make_request


class TestCheckRequest:
    """Tests for CSRFService.check_request"""

    def setup_method(self):
        self.service = CSRFService("test-secret")
        self.issued = self.service.generate_token(origin="http://testserver")
        self.cookie = self.service.generate_cookie_value(self.issued.token)

    def _headers(self, **extra):
        headers = {
            "Host": "testserver",
            "X-CSRF-Token": self.issued.token,
            "X-Session-ID": self.issued.session_id,
            "Cookie": f"_csrf={self.cookie}",
        }
        headers.update(extra)
        return headers

    @pytest.mark.parametrize("method", ["GET", "HEAD", "OPTIONS"])
    def test_safe_methods_skip(self, method):
        result = self.service.check_request(make_request(method=method))
        assert result.valid

    @pytest.mark.parametrize(
        "path", ["/api/health", "/api/csrf", "/static/app.js", "/favicon.ico"]
    )
    def test_exempt_paths_skip(self, path):
        result = self.service.check_request(make_request(path=path))
        assert result.valid

    @pytest.mark.parametrize(
        "path", ["/api/csrf-anything", "/api/healthz-admin", "/favicon.ico.php"]
    )
    def test_lookalike_paths_checked(self, path):
        result = self.service.check_request(make_request(path=path))
        assert not result.valid
        assert result.error == CSRFError.MISSING_HEADER

    @pytest.mark.parametrize(
        "path, exempt",
        [
            ("/api/csrf", True),
            ("/api/csrf/", True),
            ("/api/csrf/rotate", True),
            ("/static/", True),
            ("/api/csrfx", False),
            ("/staticfiles/app.js", False),
        ],
    )
    def test_is_exempt_segment_boundary(self, path, exempt):
        assert self.service.is_exempt(path) is exempt

    def test_valid_request(self):
        result = self.service.check_request(make_request(headers=self._headers()))

        assert result.valid
        assert result.new_token
        assert result.new_headers == {NEW_TOKEN_HEADER: result.new_token}

    def test_same_origin_header_accepted(self):
        request = make_request(headers=self._headers(Origin="http://testserver"))
        assert self.service.check_request(request).valid

    def test_missing_header(self):
        headers = self._headers()
        del headers["X-CSRF-Token"]

        result = self.service.check_request(make_request(headers=headers))
        assert result.error == CSRFError.MISSING_HEADER

    def test_missing_cookie(self):
        headers = self._headers()
        del headers["Cookie"]

        result = self.service.check_request(make_request(headers=headers))
        assert result.error == CSRFError.MISSING_COOKIE

    def test_cookie_mismatch(self):
        other = self.service.generate_token()
        cookie = self.service.generate_cookie_value(other.token)

        result = self.service.check_request(
            make_request(headers=self._headers(Cookie=f"_csrf={cookie}"))
        )
        assert result.error == CSRFError.COOKIE_MISMATCH

    def test_missing_session(self):
        headers = self._headers()
        del headers["X-Session-ID"]

        result = self.service.check_request(make_request(headers=headers))
        assert result.error == CSRFError.TOKEN_MISSING

    def test_alternate_header_names(self):
        headers = self._headers()
        headers["X-XSRF-Token"] = headers.pop("X-CSRF-Token")
        headers["X-CSRF-Session"] = headers.pop("X-Session-ID")

        assert self.service.check_request(make_request(headers=headers)).valid

    def test_cross_origin_rejected_with_valid_token(self):
        request = make_request(headers=self._headers(Origin="https://evil.example"))

        result = self.service.check_request(request)

        assert not result.valid
        assert result.error == CSRFError.ORIGIN_MISMATCH
        # The rejected request does not spend the token
        assert self.service.check_request(make_request(headers=self._headers())).valid

    def test_opaque_origin_rejected(self):
        request = make_request(headers=self._headers(Origin="null"))
        assert self.service.check_request(request).error == CSRFError.ORIGIN_MISMATCH

    def test_expired_token(self, clock):
        service = CSRFService("test-secret", token_expiry_seconds=60, clock=clock)
        issued = service.generate_token()
        headers = {
            "Host": "testserver",
            "X-CSRF-Token": issued.token,
            "X-Session-ID": issued.session_id,
            "Cookie": f"_csrf={service.generate_cookie_value(issued.token)}",
        }
        clock.advance(61)

        result = service.check_request(make_request(headers=headers))
        assert result.error == CSRFError.TOKEN_EXPIRED
