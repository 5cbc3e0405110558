"""
Local cache tests (memory and JSON file backends).
"""

import pytest

from pharmacy.local_cache import LocalCache, session_key


def test_session_key_is_namespaced_by_id():
    assert session_key(12) == "stockTakeSession_12"


class TestMemoryBackend:
    def test_get_default(self):
        cache = LocalCache()
        assert cache.get("missing") is None
        assert cache.get("missing", []) == []

    def test_reads_are_copies(self):
        cache = LocalCache()
        cache.set("k", {"progress": {"1": {"actual_stock": 3}}})
        value = cache.get("k")
        value["progress"]["1"]["actual_stock"] = 99
        assert cache.get("k")["progress"]["1"]["actual_stock"] == 3

    def test_values_are_stored_as_json(self):
        cache = LocalCache()
        cache.set("k", {1: (1, 2)})
        assert cache.get("k") == {"1": [1, 2]}

    def test_non_json_values_are_rejected(self):
        cache = LocalCache()
        with pytest.raises(TypeError):
            cache.set("k", {"when": object()})
        assert cache.get("k") is None

    def test_remove_and_clear(self):
        cache = LocalCache()
        cache.set("a", 1)
        cache.set("b", 2)
        cache.remove("a")
        cache.remove("not-there")
        assert cache.keys() == ["b"]
        cache.clear()
        assert cache.keys() == []


class TestFileBackend:
    def test_survives_a_new_instance(self, tmp_path):
        path = tmp_path / "cache" / "progress.json"
        LocalCache(path=path).set("stockTakeSessions", [{"id": 1, "active": True}])

        assert path.exists()
        assert LocalCache(path=path).get("stockTakeSessions") == [{"id": 1, "active": True}]

    def test_empty_file_reads_as_empty(self, tmp_path):
        path = tmp_path / "progress.json"
        path.write_text("", encoding="utf-8")
        assert LocalCache(path=path).keys() == []

    def test_init_app_reads_config(self, tmp_path):
        class FakeApp:
            config = {"LOCAL_CACHE_PATH": str(tmp_path / "c.json")}
            extensions = {}

        app = FakeApp()
        cache = LocalCache(app)
        cache.set("x", 1)
        assert app.extensions["local_cache"] is cache
        assert (tmp_path / "c.json").exists()
