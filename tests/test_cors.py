import unittest

from utils.cors import _is_local_origin, _origin_matches, _parse_origins


class CorsTests(unittest.TestCase):
    def test_matches_with_trailing_slash_and_case(self):
        self.assertTrue(_origin_matches("https://crm.example.com", "https://CRM.example.com/"))

    def test_matches_wildcard_subdomain(self):
        self.assertTrue(_origin_matches("https://sales.example.com", "https://*.example.com"))
        self.assertFalse(_origin_matches("https://example.com", "https://*.example.com"))

    def test_does_not_match_different_host(self):
        self.assertFalse(_origin_matches("https://evil-example.com", "https://*.example.com"))

    def test_scheme_and_port_are_enforced_when_configured(self):
        self.assertTrue(_origin_matches("https://crm.example.com:8443", "https://crm.example.com:8443"))
        self.assertFalse(_origin_matches("https://crm.example.com:8444", "https://crm.example.com:8443"))
        self.assertFalse(_origin_matches("http://crm.example.com", "https://crm.example.com"))

    def test_host_only_entry_matches_http_and_https(self):
        self.assertTrue(_origin_matches("http://example.com", "example.com"))
        self.assertTrue(_origin_matches("https://example.com", "example.com"))

    def test_local_origin(self):
        self.assertTrue(_is_local_origin("http://localhost:5173"))
        self.assertTrue(_is_local_origin("https://localhost:5173"))
        self.assertTrue(_is_local_origin("http://127.0.0.1:5173"))
        self.assertFalse(_is_local_origin("https://example.com"))

    def test_wildcard_entry_wins(self):
        self.assertEqual(_parse_origins("https://a.test, *"), ["*"])


if __name__ == "__main__":
    unittest.main()
