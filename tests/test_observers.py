"""Tests for observers: registration, propagation and unobserving."""

import pytest

from pathstate import ObserverGroup, State


class TestObserve:
    def test_registers_one_record_per_prefix(self):
        s = State()
        group = s.observe("a.b[0]", lambda new, old: None)
        assert isinstance(group, ObserverGroup)
        assert [r.observed for r in group] == ["a.b.0", "a.b", "a"]
        assert all(r.original == "a.b.0" for r in group)

    def test_fires_on_set(self):
        s = State()
        log = []
        s.observe("foo", lambda new, old: log.append(new))
        s.set("foo", "bar")
        assert log == ["bar"]

    def test_passes_previous(self):
        s = State()
        log = []
        s.observe("foo", lambda new, old: log.append((new, old)))
        s.set("foo", "bar")
        s.set("foo", "baz")
        assert log == [("bar", None), ("baz", "bar")]

    def test_only_fires_on_change(self):
        s = State()
        log = []
        s.observe("foo", lambda new, old: log.append(new))
        s.set("foo", "bar")
        s.set("foo", "bar")
        assert log == ["bar"]

    def test_silent(self):
        s = State()
        log = []
        s.observe("foo", lambda new, old: log.append(new))
        s.set("foo", "bar", True)
        assert log == []

    def test_force(self):
        s = State({"foo": "bar"})
        log = []
        s.observe("foo", lambda new, old: log.append((new, old)))
        s.set("foo", "bar", force=True)
        assert log == [("bar", "bar")]

    def test_force_ignored_when_silent(self):
        s = State({"foo": "bar"})
        log = []
        s.observe("foo", lambda new, old: log.append(new))
        s.set("foo", "bar", silent=True, force=True)
        assert log == []

    def test_init(self):
        s = State({"foo": "bar"})
        log = []
        s.observe("foo", lambda new, old: log.append((new, old)), init=True)
        assert log == [("bar", None)]

    def test_structured_values_always_notify(self):
        s = State()
        log = []
        s.observe("items", lambda new, old: log.append(new))
        s.set("items", [1])
        s.set("items", [1])
        assert log == [[1], [1]]

    def test_bracket_and_dot_spellings_are_one_keypath(self):
        s = State({"list": [1, 2]})
        log = []
        s.observe("list[1]", lambda new, old: log.append(new))
        s.set("list.1", 5)
        assert log == [5]

    def test_empty_keypath(self):
        with pytest.raises(ValueError):
            State().observe("", lambda new, old: None)


class TestDownstream:
    def test_ancestor_write_reaches_descendant(self):
        s = State()
        log = []
        s.observe("foo.bar", lambda new, old: log.append(new))
        s.set("foo", {"bar": "baz"})
        assert log == ["baz"]

    def test_unchanged_descendant_is_skipped(self):
        s = State({"foo": {"a": 1, "b": 2, "bar": "baz"}})
        log = []
        s.observe("foo.bar", lambda new, old: log.append(new))
        s.set("foo", {"c": 3, "d": 4, "bar": "baz"})
        assert log == []

    def test_deep_descendant(self):
        s = State({"a": {"b": {"c": 1}}})
        log = []
        s.observe("a.b.c", lambda new, old: log.append((new, old)))
        s.set("a", {"b": {"c": 2}})
        assert log == [(2, 1)]


class TestUpstream:
    def test_descendant_write_reaches_ancestor(self):
        s = State({"foo": {"a": 1, "b": 2, "bar": "baz"}})
        log = []
        s.observe("foo", lambda new, old: log.append(new))
        s.set("foo.bar", "boo")
        assert log == [{"a": 1, "b": 2, "bar": "boo"}]

    def test_unchanged_descendant_write_does_not_reach_ancestor(self):
        s = State({"foo": {"bar": "baz"}})
        log = []
        s.observe("foo", lambda new, old: log.append(new))
        s.set("foo.bar", "baz")
        assert log == []

    def test_all_ancestors_notified(self):
        s = State()
        log = []
        s.observe("a", lambda new, old: log.append("a"))
        s.observe("a.b", lambda new, old: log.append("a.b"))
        s.set("a.b.c", 1)
        assert log == ["a.b", "a"]

    def test_sibling_not_notified(self):
        s = State({"foo": {"x": 1, "y": 2}})
        log = []
        s.observe("foo.y", lambda new, old: log.append(new))
        s.set("foo.x", 10)
        assert log == []


class TestBatch:
    def test_each_callback_once(self):
        s = State({"foo": "bar", "bar": "baz"})
        log = []
        s.observe("foo", lambda new, old: log.append(("foo", new, old)))
        s.observe("bar", lambda new, old: log.append(("bar", new, old)))
        s.set_many({"foo": "baz", "bar": "foo"})
        assert sorted(log) == [("bar", "foo", "baz"), ("foo", "baz", "bar")]

    def test_dedup_keeps_final_value_and_first_previous(self):
        s = State({"foo": 1})
        log = []
        s.observe("foo", lambda new, old: log.append((new, old)))
        s.set_many([("foo", 2), ("foo", 3)])
        assert log == [(3, 1)]

    def test_shared_callback_fires_once(self):
        s = State()
        log = []

        def cb(new, old):
            log.append(new)

        s.observe("a", cb)
        s.observe("b", cb)
        s.set_many({"a": 1, "b": 2})
        assert log == [2]

    def test_silent_batch(self):
        s = State()
        log = []
        s.observe("a", lambda new, old: log.append(new))
        s.set_many({"a": 1}, silent=True)
        assert log == []
        assert s.get("a") == 1

    def test_callbacks_wait_for_batch_end(self):
        s = State()
        seen = []
        s.observe("a", lambda new, old: seen.append(s.get("b")))
        with s.batch():
            s.set("a", 1)
            s.set("b", 2)
            assert seen == []
        assert seen == [2]

    def test_nested_batches_flush_once(self):
        s = State()
        log = []
        s.observe("a", lambda new, old: log.append(new))
        with s.batch():
            s.set("a", 1)
            with s.batch():
                s.set("a", 2)
            assert log == []
            s.set("a", 3)
        assert log == [3]

    def test_writes_from_callbacks_during_flush(self):
        s = State()
        log = []
        s.observe("a", lambda new, old: s.set("b", new * 10))
        s.observe("b", lambda new, old: log.append(new))
        s.set_many({"a": 1})
        assert log == [10]


class TestUnobserve:
    def test_group(self):
        s = State({"foo": "bar"})
        log = []
        group = s.observe("foo", lambda new, old: log.append(new))
        s.set("foo", "baz")
        s.unobserve(group)
        s.set("foo", "bar")
        assert log == ["baz"]

    def test_cancel(self):
        s = State()
        log = []
        group = s.observe("foo.bar", lambda new, old: log.append(new))
        group.cancel()
        s.set("foo", {"bar": 1})
        assert log == []
        assert not group.active

    def test_idempotent(self):
        s = State()
        group = s.observe("a.b", lambda new, old: None)
        s.unobserve(group)
        s.unobserve(group)
        group.cancel()

    def test_single_record(self):
        s = State()
        log = []
        group = s.observe("foo.bar", lambda new, old: log.append(new))
        direct = next(r for r in group if r.is_direct)
        s.unobserve(direct)
        s.set("foo.bar", 1)
        assert log == []
        s.set("foo", {"bar": 2})
        assert log == [2]

    def test_list_of_groups(self):
        s = State()
        log = []
        groups = s.observe_many({
            "a": lambda new, old: log.append("a"),
            "b": lambda new, old: log.append("b"),
        })
        s.unobserve(groups)
        s.set_many({"a": 1, "b": 2})
        assert log == []

    def test_rejects_keypath_string(self):
        with pytest.raises(TypeError):
            State().unobserve("foo")

    def test_keypath_is_normalized(self):
        s = State({"array": [1, 2, 3]})
        log = []
        s.observe("array[0]", lambda new, old: log.append(0))
        s.observe("array[1]", lambda new, old: log.append(1))
        s.set("array[0]", 4)
        s.set("array.1", 5)
        assert log == [0, 1]
        s.unobserve_keypath("array.0")
        s.unobserve_keypath("array[1]")
        s.set("array[0]", 5)
        s.set("array.1", 6)
        assert log == [0, 1]

    def test_unobserve_all(self):
        s = State()
        log = []
        s.observe("a", lambda new, old: log.append("a"))
        s.observe("b.c", lambda new, old: log.append("b"))
        s.unobserve_all()
        s.set("a", 1)
        s.set("b", {"c": 1})
        assert log == []


class TestObserveMany:
    def test_mapping(self):
        s = State({"foo": "bar", "bar": "baz", "baz": "foo"})
        final = {}
        s.observe_many({
            "foo": lambda new, old: final.__setitem__("foo", new),
            "bar": lambda new, old: final.__setitem__("bar", new),
            "baz": lambda new, old: final.__setitem__("baz", new),
        })
        s.set_many({"foo": "baz", "bar": "foo", "baz": "bar"})
        assert final == {"foo": "baz", "bar": "foo", "baz": "bar"}


class TestObserveOnce:
    def test_fires_once(self):
        s = State()
        log = []
        assert s.observe_once("foo", lambda new, old: log.append(new)) is s
        s.set("foo", 1)
        s.set("foo", 2)
        assert log == [1]

    def test_ignores_unchanged_writes(self):
        s = State({"foo": 1})
        log = []
        s.observe_once("foo", lambda new, old: log.append(new))
        s.set("foo", 1)
        s.set("foo", 2)
        s.set("foo", 3)
        assert log == [2]

    def test_does_not_disturb_other_observers(self):
        s = State()
        log = []
        s.observe_once("foo", lambda new, old: log.append("once"))
        s.observe("foo", lambda new, old: log.append("always"))
        s.set("foo", 1)
        s.set("foo", 2)
        assert log == ["once", "always", "always"]


class TestCallbackErrors:
    def test_propagate_by_default(self):
        s = State()

        def boom(new, old):
            raise RuntimeError("boom")

        s.observe("a", boom)
        with pytest.raises(RuntimeError):
            s.set("a", 1)
        assert s.get("a") == 1

    def test_batch_dropped_after_failure(self):
        s = State()
        log = []

        def boom(new, old):
            raise RuntimeError("boom")

        s.observe("a", boom)
        s.observe("b", lambda new, old: log.append(new))
        with pytest.raises(RuntimeError):
            s.set_many({"a": 1, "b": 2})
        assert log == []
        # Queue is usable again afterwards
        s.set("b", 3)
        assert log == [3]

    def test_isolated(self, caplog):
        s = State(isolate_errors=True)
        log = []

        def boom(new, old):
            raise RuntimeError("boom")

        s.observe("a", boom)
        s.observe("b", lambda new, old: log.append(new))
        with caplog.at_level("ERROR", logger="pathstate.state"):
            s.set_many({"a": 1, "b": 2})
        assert log == [2]
        assert "failed" in caplog.text
