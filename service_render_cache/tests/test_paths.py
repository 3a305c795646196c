"""
Unit tests for action cache path canonicalization.
"""

import pytest
from unittest.mock import MagicMock

from service_render_cache.app.caching.paths import ActionCachePath, ActionCachePathBuilder, content_type_for


class TestActionCachePathBuilder:
    """Test cases for ActionCachePathBuilder.build()."""

    @pytest.fixture
    def builder(self):
        return ActionCachePathBuilder()

    def test_trailing_slash_html(self, builder):
        path = builder.build("http://example.com/lists/")

        assert path == ActionCachePath("/lists/index", None)

    def test_trailing_slash_explicit_json(self, builder):
        path = builder.build("http://example.com/lists/", explicit_format="json")

        assert path.path == "/lists/index.json"
        assert path.extension == "json"

    def test_slash_and_index_collide(self, builder):
        assert builder.build("http://example.com/lists/").path == builder.build("http://example.com/lists/index").path

    def test_negotiated_format_used_when_not_html(self, builder):
        path = builder.build("http://example.com/lists/1", negotiated_format="xml")

        assert path.path == "/lists/1.xml"
        assert path.extension == "xml"

    def test_explicit_format_wins_over_negotiated(self, builder):
        path = builder.build("http://example.com/lists/1", explicit_format="json", negotiated_format="xml")

        assert path.path == "/lists/1.json"

    def test_extension_not_duplicated(self, builder):
        path = builder.build("http://example.com/lists/1.json", explicit_format="json")

        assert path.path == "/lists/1.json"

    def test_extension_check_ignores_query(self, builder):
        path = builder.build("http://example.com/lists.json?page=2", explicit_format="json")

        assert path.path == "/lists.json?page=2"

    def test_query_kept(self, builder):
        assert builder.build("http://example.com/lists?page=2").path == "/lists?page=2"

    def test_percent_decoded(self, builder):
        path = builder.build("http://example.com/lists/a%2Fb%20c")

        assert path.path == "/lists/a/b c"

    def test_extension_percent_encoded_before_check(self, builder):
        path = builder.build("http://example.com/files/report.tar%20gz", explicit_format="tar gz")

        assert path.path == "/files/report.tar gz"

    def test_host_and_scheme_stripped(self, builder):
        assert builder.build("https://david.example.com:8443/lists/show/1").path == "/lists/show/1"

    def test_include_host(self):
        builder = ActionCachePathBuilder(include_host=True)

        assert builder.build("http://david.example.com/lists/").path == "david.example.com/lists/index"

    def test_bare_path_accepted(self, builder):
        assert builder.build("/lists/").path == "/lists/index"

    def test_fixed_mode_ignores_negotiated_format(self, builder):
        path = builder.build("http://example.com/lists/show/1", infer_extension=False, negotiated_format="json")

        assert path.path == "/lists/show/1"
        assert path.extension is None

    def test_fixed_mode_uses_explicit_format(self, builder):
        path = builder.build("http://example.com/lists/show/1", explicit_format="json", infer_extension=False)

        assert path.path == "/lists/show/1.json"


class TestForController:
    """Test cases for building paths from a controller."""

    @pytest.fixture
    def controller(self):
        controller = MagicMock()
        controller.params = {"format": "json"}
        controller.request.format = "html"
        controller.url_for.return_value = "http://example.com/lists/"
        return controller

    def test_inferring_mode_reads_format_param(self, controller):
        path = ActionCachePathBuilder().for_controller(controller)

        assert path.path == "/lists/index.json"
        controller.url_for.assert_called_once_with({})

    def test_fixed_mode_reads_options_format_only(self, controller):
        controller.url_for.return_value = "http://example.com/lists/show/1"

        path = ActionCachePathBuilder().for_controller(
            controller, {"action": "show", "id": 1}, infer_extension=False
        )

        assert path.path == "/lists/show/1"
        assert path.extension is None

    def test_write_and_expire_paths_agree(self, controller):
        controller.params = {"format": "json"}
        controller.url_for.return_value = "http://example.com/lists/show/1"
        builder = ActionCachePathBuilder()

        written = builder.for_controller(controller)
        expired = builder.for_controller(controller, {"action": "show", "id": 1, "format": "json"},
                                         infer_extension=False)

        assert written.path == expired.path == "/lists/show/1.json"


class TestContentTypeFor:
    """Test cases for content_type_for()."""

    def test_default_html(self):
        assert content_type_for(None) == "text/html"

    def test_json(self):
        assert content_type_for("json") == "application/json"

    def test_unknown_extension(self):
        assert content_type_for("no-such-format") is None


class TestQueryStrings:
    """Test cases for paths whose URL carries a query string."""

    @pytest.fixture
    def builder(self):
        return ActionCachePathBuilder()

    def test_extension_placed_before_query(self, builder):
        path = builder.build("http://example.com/lists?page=2", explicit_format="json")

        assert path.path == "/lists.json?page=2"

    def test_format_never_merges_into_query_value(self, builder):
        as_json = builder.build("http://example.com/lists?page=2", explicit_format="json")
        as_html = builder.build("http://example.com/lists?page=2.json")

        assert as_json.path != as_html.path
        assert as_html.path == "/lists?page=2.json"

    def test_trailing_slash_with_query(self, builder):
        path = builder.build("http://example.com/lists/?page=2", explicit_format="json")

        assert path.path == "/lists/index.json?page=2"

    def test_controller_requests_kept_apart(self):
        json_request = MagicMock()
        json_request.params = {"page": "2", "format": "json"}
        json_request.request.format = "html"
        json_request.url_for.return_value = "http://example.com/lists?page=2"
        html_request = MagicMock()
        html_request.params = {"page": "2.json"}
        html_request.request.format = "html"
        html_request.url_for.return_value = "http://example.com/lists?page=2.json"
        builder = ActionCachePathBuilder()

        assert builder.for_controller(json_request).path == "/lists.json?page=2"
        assert builder.for_controller(html_request).path == "/lists?page=2.json"
