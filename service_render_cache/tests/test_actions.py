"""
Unit tests for whole-response action caching.
"""

import json

import pytest

from service_render_cache.app.caching.store import MemoryFragmentStore
from service_render_cache.app.domain.controller import Controller
from service_render_cache.app.domain.request import CacheRequest
from service_render_cache.app.domain.templates import DictTemplateRenderer
from shared.metrics import MetricsCollector

TEMPLATES = {
    "layouts/application": "<html>{content}</html>",
    "lists/index": "<ul>{c.lists}</ul>",
    "lists/show": "<p>{c.list}</p>",
    "lists/archive": "<ol>{c.lists}</ol>",
}


class ListsController(Controller):
    calls = []

    async def index(self):
        self.calls.append("index")
        self.lists = "groceries,chores"

    async def show(self):
        self.calls.append("show")
        if self.params.get("format") == "json":
            return json.dumps({"id": self.params["id"]})
        self.list = f"list-{self.params['id']}"

    async def archive(self):
        self.calls.append("archive")
        self.lists = "old"

    async def feed(self):
        self.calls.append("feed")
        return f"feed-{self.params['id']}"

    async def missing(self):
        self.calls.append("missing")
        self.list = "none"
        await self.render("lists/show", status=404)

    async def preview(self):
        self.calls.append("preview")
        return "preview"


ListsController.caches_action("index", "show", "missing")
ListsController.caches_action("archive", layout=False, expires_in=3600)
ListsController.caches_action("feed", cache_path=lambda c: f"/lists/{c.params['id']}/feed")
ListsController.caches_action("preview", unless=lambda c: c.params.get("fresh") == "1")


class TestActionCaching:
    """Test cases for ActionCacheFilter through the controller pipeline."""

    @pytest.fixture(autouse=True)
    def reset_calls(self):
        ListsController.calls = []

    @pytest.fixture
    def store(self):
        return MemoryFragmentStore()

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("test_service")

    @pytest.fixture
    def renderer(self):
        return DictTemplateRenderer(TEMPLATES)

    @pytest.fixture
    def dispatch(self, store, metrics, renderer):
        async def dispatch(action, url="http://example.com/lists/", method="GET", params=None, **request_options):
            request = CacheRequest(method=method, url=url, params=params, **request_options)
            controller = ListsController(request, cache_store=store, renderer=renderer, metrics=metrics)
            await controller.process(action)
            return controller
        return dispatch

    @pytest.mark.asyncio
    async def test_miss_then_hit(self, dispatch, metrics):
        first = await dispatch("index")
        second = await dispatch("index")

        assert first.response.body == "<html><ul>groceries,chores</ul></html>"
        assert second.response.body == first.response.body
        assert second.response.content_type == "text/html"
        assert ListsController.calls == ["index"]
        assert metrics.get_sample_value("render_cache_reads_total", strategy="action", result="miss") == 1.0
        assert metrics.get_sample_value("render_cache_reads_total", strategy="action", result="hit") == 1.0
        assert metrics.get_sample_value("render_cache_writes_total", strategy="action") == 1.0

    @pytest.mark.asyncio
    async def test_slash_and_index_share_entry(self, dispatch):
        await dispatch("index", url="http://example.com/lists/")
        await dispatch("index", url="http://example.com/lists/index")

        assert ListsController.calls == ["index"]

    @pytest.mark.asyncio
    async def test_host_not_part_of_path(self, dispatch):
        await dispatch("index", url="http://a.example.com/lists/")
        await dispatch("index", url="https://b.example.com/lists/")

        assert ListsController.calls == ["index"]

    @pytest.mark.asyncio
    async def test_formats_cached_separately(self, dispatch):
        html = await dispatch("show", url="http://example.com/lists/show/1", params={"id": "1"})
        as_json = await dispatch("show", url="http://example.com/lists/show/1?format=json",
                                 params={"id": "1", "format": "json"})
        cached_json = await dispatch("show", url="http://example.com/lists/show/1?format=json",
                                     params={"id": "1", "format": "json"})

        assert html.response.body == "<html><p>list-1</p></html>"
        assert as_json.response.body == '{"id": "1"}'
        assert cached_json.response.body == '{"id": "1"}'
        assert cached_json.response.content_type == "application/json"
        assert ListsController.calls == ["show", "show"]

    @pytest.mark.asyncio
    async def test_negotiated_format_in_path(self, dispatch, store):
        await dispatch("show", url="http://example.com/lists/show/1", params={"id": "1"}, format="xml")

        assert "views//lists/show/1.xml" in store

    @pytest.mark.asyncio
    async def test_format_param_with_query(self, dispatch, store):
        await dispatch("index", url="http://example.com/lists?page=2&format=json",
                       params={"page": "2", "format": "json"})
        await dispatch("index", url="http://example.com/lists?page=2.json", params={"page": "2.json"})

        assert "views//lists.json?page=2" in store
        assert "views//lists?page=2.json" in store
        assert ListsController.calls == ["index", "index"]

    @pytest.mark.asyncio
    async def test_post_not_written(self, dispatch, store, metrics):
        controller = await dispatch("index", method="POST")

        assert controller.response.body == "<html><ul>groceries,chores</ul></html>"
        assert len(store) == 0
        assert metrics.get_sample_value("render_cache_skipped_writes_total", reason="method") == 1.0

    @pytest.mark.asyncio
    async def test_non_200_not_written(self, dispatch, store, metrics):
        first = await dispatch("missing", url="http://example.com/lists/missing")
        await dispatch("missing", url="http://example.com/lists/missing")

        assert first.response.status == 404
        assert len(store) == 0
        assert ListsController.calls == ["missing", "missing"]
        assert metrics.get_sample_value("render_cache_skipped_writes_total", reason="status") == 2.0

    @pytest.mark.asyncio
    async def test_layout_false_stores_content_only(self, dispatch, store):
        first = await dispatch("archive", url="http://example.com/lists/archive")
        second = await dispatch("archive", url="http://example.com/lists/archive")

        assert await store.read("views//lists/archive") == "<ol>old</ol>"
        assert first.response.body == "<html><ol>old</ol></html>"
        assert second.response.body == "<html><ol>old</ol></html>"
        assert second.action_has_layout is True
        assert ListsController.calls == ["archive"]

    @pytest.mark.asyncio
    async def test_store_options_forwarded(self, dispatch, store):
        await dispatch("archive", url="http://example.com/lists/archive")

        _, expires_at = store._entries["views//lists/archive"]
        assert expires_at is not None

    @pytest.mark.asyncio
    async def test_cache_path_option(self, dispatch, store):
        await dispatch("feed", url="http://example.com/lists/feed?id=7&utm=x", params={"id": "7", "utm": "x"})
        await dispatch("feed", url="http://example.com/lists/feed?id=7", params={"id": "7"})

        assert "views//lists/7/feed" in store
        assert ListsController.calls == ["feed"]

    @pytest.mark.asyncio
    async def test_unless_condition(self, dispatch, store):
        await dispatch("preview", url="http://example.com/lists/preview?fresh=1", params={"fresh": "1"})

        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_caching_disabled(self, dispatch, store):
        ListsController.perform_caching = False
        try:
            await dispatch("index")
            await dispatch("index")
        finally:
            ListsController.perform_caching = True

        assert len(store) == 0
        assert ListsController.calls == ["index", "index"]


class TestExpireAction:
    """Test cases for expire_action()."""

    @pytest.fixture
    def store(self):
        return MemoryFragmentStore()

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("test_service")

    @pytest.fixture
    def controller(self, store, metrics):
        request = CacheRequest(method="POST", url="http://example.com/lists/update/1", params={"format": "json"})
        controller = ListsController(request, cache_store=store, renderer=DictTemplateRenderer(TEMPLATES),
                                     metrics=metrics)
        controller.action_name = "update"
        return controller

    @pytest.mark.asyncio
    async def test_expire_single_action(self, controller, store, metrics):
        await store.write("views//lists/show/1", "html")
        await store.write("views//lists/show/1.json", "json")

        await controller.expire_action({"action": "show", "id": 1})

        assert "views//lists/show/1" not in store
        assert "views//lists/show/1.json" in store
        assert metrics.get_sample_value("render_cache_expirations_total") == 1.0

    @pytest.mark.asyncio
    async def test_expire_with_explicit_format(self, controller, store):
        await store.write("views//lists/show/1.json", "json")

        await controller.expire_action({"action": "show", "id": 1, "format": "json"})

        assert "views//lists/show/1.json" not in store

    @pytest.mark.asyncio
    async def test_expire_action_list(self, controller, store):
        await store.write("views//lists/index", "a")
        await store.write("views//lists/feed", "b")
        await store.write("views//lists/archive", "c")

        await controller.expire_action({"action": ["index", "feed"]})

        assert len(store) == 1
        assert "views//lists/archive" in store

    @pytest.mark.asyncio
    async def test_expire_path_string(self, controller, store):
        await store.write("views//lists/7/feed", "feed")

        await controller.expire_action("/lists/7/feed")

        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_written_entry_expired(self, store, metrics):
        renderer = DictTemplateRenderer(TEMPLATES)
        request = CacheRequest(url="http://example.com/lists/show/1", params={"id": "1"})
        reader = ListsController(request, cache_store=store, renderer=renderer, metrics=metrics)
        await reader.process("show")
        assert len(store) == 1

        await reader.expire_action({"action": "show", "id": 1})

        assert len(store) == 0
