"""Tests for Collection."""

import math

import pytest

from nddb import Collection, CollectionOptions, UpdatePolicy
from nddb.objects import UNDEFINED


@pytest.fixture
def people():
    return Collection(
        [
            {"name": "Ann", "age": 30, "team": "red"},
            {"name": "Bob", "age": 17, "team": "blue"},
            {"name": "Cid", "age": 45, "team": "red"},
        ]
    )


class TestInsert:
    """Tests for inserting records."""

    @pytest.mark.parametrize("value", ["text", 1, 2.5, None, UNDEFINED, True])
    def test_primitives_are_ignored(self, value):
        """Test that primitive values are silently skipped."""
        db = Collection()
        db.insert(value)
        assert len(db) == 0

    def test_insert_order(self):
        """Test that records keep insertion order."""
        db = Collection()
        db.insert({"a": 1})
        db.insert([1, 2])
        assert db.fetch() == [{"a": 1}, [1, 2]]

    def test_import_db_filters(self):
        """Test that bulk import skips primitives."""
        db = Collection()
        db.import_db([{"a": 1}, "x", None, {"a": 2}])
        assert db.fetch() == [{"a": 1}, {"a": 2}]

    def test_import_db_rejects_non_list(self):
        """Test that import_db raises for a non-list argument."""
        with pytest.raises(TypeError):
            Collection().import_db(5)
        with pytest.raises(TypeError):
            Collection().import_db({"a": 1})

    def test_remove_clears_items(self, people):
        """Test that remove empties the collection."""
        assert people.remove() is people
        assert len(people) == 0

    def test_clear_needs_confirmation(self, people, caplog):
        """Test that clear does nothing without confirm."""
        assert people.clear() is False
        assert len(people) == 3
        assert "clear" in caplog.text

    def test_clear(self, people):
        """Test that clear wipes records, tags and the pending query."""
        people.tag("first", 0)
        people.select("age", ">", 1)
        assert people.clear(confirm=True) is True
        assert len(people) == 0
        assert people.tags == {}
        assert len(people.query) == 0


class TestBreed:
    """Tests for breeding."""

    def test_breed_isolation(self, people):
        """Test that inserting into a breed leaves the parent alone."""
        child = people.breed()
        child.insert({"name": "Dee"})
        assert len(people) == 3
        assert len(child) == 4

    def test_breed_shares_records(self, people):
        """Test that a breed holds the same record objects in a new list."""
        child = people.breed()
        assert child.items is not people.items
        assert child.items[0] is people.items[0]

    def test_breed_carries_configuration(self, people):
        """Test that comparators, index functions and tags are carried over."""
        people.comparator("age", lambda o1, o2: 0)
        people.index("by_name", lambda r: r["name"])
        people.tag("oldest", 2)
        child = people.breed([])
        assert "age" in child.comparators
        assert "by_name" in child.engine.index_funcs
        assert child.resolve_tag("oldest") is people.items[2]

    def test_breed_structures_are_fresh(self, people):
        """Test that materialized indexes are not shared."""
        people.index("by_name", lambda r: r["name"])
        child = people.breed([])
        assert child.get_index("by_name") is not people.get_index("by_name")
        assert len(child.get_index("by_name")) == 0
        child.insert({"name": "Dee"})
        assert "Dee" not in people.get_index("by_name")

    def test_breed_uses_factory(self):
        """Test that breeds are built by the factory."""

        class Sub(Collection):
            pass

        db = Sub([{"a": 1}])
        assert isinstance(db.breed(), Sub)
        assert isinstance(db.select("a").execute(), Sub)

    def test_clone_settings(self, people):
        """Test that clone_settings returns an independent copy."""
        settings = people.clone_settings()
        assert isinstance(settings, CollectionOptions)
        settings.tags["x"] = {}
        assert "x" not in people.tags


class TestOrdering:
    """Tests for sort, reverse and shuffle."""

    def test_sort_by_field(self, people):
        """Test sorting by one field."""
        people.sort("age")
        assert [p["age"] for p in people] == [17, 30, 45]

    def test_sort_by_field_list(self):
        """Test that a list of fields sorts lexicographically."""
        db = Collection([{"x": 1, "y": 2}, {"x": 1, "y": 1}])
        db.sort(["x", "y"])
        assert db.fetch() == [{"x": 1, "y": 1}, {"x": 1, "y": 2}]

    def test_sort_with_function(self, people):
        """Test sorting with a comparator function."""
        people.sort(lambda o1, o2: (o2["age"] > o1["age"]) - (o2["age"] < o1["age"]))
        assert [p["age"] for p in people] == [45, 30, 17]

    def test_sort_default_is_stable(self, people):
        """Test that sort() without criterion keeps the order of records."""
        before = people.fetch()
        people.sort()
        assert people.fetch() == before

    def test_sort_uses_registered_comparator(self, people):
        """Test that sort by path uses the registered comparator."""
        people.comparator("name", lambda o1, o2: (o1["name"] < o2["name"]) - (o1["name"] > o2["name"]))
        people.sort("name")
        assert [p["name"] for p in people] == ["Cid", "Bob", "Ann"]

    def test_reverse(self, people):
        """Test reversing in place."""
        people.reverse()
        assert people.get(0)["name"] == "Cid"

    def test_sort_keeps_index_positions(self, people):
        """Test that indexes follow records after sorting."""
        people.index("by_name", lambda r: r["name"])
        people.sort("age")
        assert people.get_index("by_name").get("Bob")["age"] == 17

    def test_shuffle_keeps_records(self, people):
        """Test that shuffle keeps the same records."""
        before = people.fetch()
        people.shuffle()
        assert sorted(p["name"] for p in people) == sorted(p["name"] for p in before)

    def test_auto_sort_policy(self):
        """Test that the sort policy re-sorts after every insert."""
        db = Collection(options=CollectionOptions(update=UpdatePolicy(sort=True)))
        db.global_compare = lambda o1, o2: (o1["v"] > o2["v"]) - (o1["v"] < o2["v"])
        db.insert({"v": 2})
        db.insert({"v": 1})
        assert db.fetch() == [{"v": 1}, {"v": 2}]


class TestTransform:
    """Tests for filter, each, map, limit and friends."""

    def test_filter(self, people):
        """Test that filter breeds the matching records."""
        adults = people.filter(lambda p: p["age"] >= 18)
        assert [p["name"] for p in adults] == ["Ann", "Cid"]
        assert len(people) == 3

    def test_each_forwards_arguments(self, people):
        """Test that each passes extra arguments."""
        seen = []
        people.each(lambda p, prefix: seen.append(prefix + p["name"]), "> ")
        assert seen == ["> Ann", "> Bob", "> Cid"]

    def test_map_skips_none(self, people):
        """Test that map drops None results."""
        assert people.map(lambda p: p["name"] if p["age"] > 18 else None) == ["Ann", "Cid"]

    def test_limit(self, people):
        """Test positive and negative limits."""
        assert [p["name"] for p in people.limit(2)] == ["Ann", "Bob"]
        assert [p["name"] for p in people.limit(-1)] == ["Cid"]

    def test_limit_zero_is_empty(self, people):
        """Test that limit(0) returns an empty collection."""
        assert len(people.limit(0)) == 0

    def test_exists(self, people):
        """Test deep-equality lookup."""
        assert people.exists({"name": "Bob", "age": 17, "team": "blue"})
        assert not people.exists({"name": "Bob"})

    def test_distinct(self):
        """Test removing duplicates."""
        db = Collection([{"a": 1}, {"a": 1}, {"a": 2}])
        assert db.distinct().fetch() == [{"a": 1}, {"a": 2}]

    def test_update(self, people):
        """Test that update merges fields and emits per record."""
        updated = []
        people.on("update", updated.append)
        people.update({"active": True})
        assert all(p["active"] for p in people)
        assert len(updated) == 3


class TestAggregations:
    """Tests for count, sum, mean, stddev, min and max."""

    def test_count(self, people):
        """Test counting records and fields."""
        people.insert({"name": "Dee"})
        assert people.count() == 4
        assert people.count("age") == 3

    def test_sum_mean(self, people):
        """Test sum and mean over numeric values."""
        assert people.sum("age") == 92
        assert people.mean("age") == pytest.approx(92 / 3)

    def test_stddev_is_population(self):
        """Test that stddev divides by the number of values."""
        db = Collection([{"v": v} for v in (2, 4, 4, 4, 5, 5, 7, 9)])
        assert db.stddev("v") == pytest.approx(2.0)

    def test_min_max(self, people):
        """Test min and max."""
        assert people.min("age") == 17
        assert people.max("age") == 45

    def test_non_numeric_ignored(self):
        """Test that non-numeric values are skipped."""
        db = Collection([{"v": 1}, {"v": "2"}, {"v": True}, {"v": 3}])
        assert db.sum("v") == 4
        assert db.mean("v") == 2

    def test_missing_field(self, people):
        """Test the results for a field no record has."""
        assert people.mean("missing") == 0
        assert people.min("missing") is False
        assert people.max("missing") is False
        assert people.sum("missing") is False
        assert people.stddev("missing") is False

    def test_no_field(self, people):
        """Test the results without a field."""
        assert people.sum() is False
        assert people.mean() is False
        assert people.min() is False

    def test_stddev_single_value(self):
        """Test the standard deviation of one value."""
        assert Collection([{"v": 3}]).stddev("v") == 0
        assert not math.isnan(Collection([{"v": 3}]).stddev("v"))


class TestCursor:
    """Tests for cursor-based access."""

    def test_empty_next(self):
        """Test that next on an empty collection fails and keeps the cursor."""
        db = Collection()
        assert db.next() is False
        assert db.cursor == 0

    def test_walk(self, people):
        """Test moving forward and back."""
        assert people.current()["name"] == "Ann"
        assert people.next()["name"] == "Bob"
        assert people.next()["name"] == "Cid"
        assert people.next() is False
        assert people.cursor == 2
        assert people.previous()["name"] == "Bob"

    def test_get(self, people):
        """Test absolute access."""
        assert people.get(1)["name"] == "Bob"
        assert people.get(3) is False
        assert people.get(-1) is False

    def test_first_last(self, people):
        """Test first and last move the cursor."""
        assert people.last()["name"] == "Cid"
        assert people.cursor == 2
        assert people.first()["name"] == "Ann"
        assert people.cursor == 0

    def test_first_last_with_path(self, people):
        """Test first and last over a field's values."""
        assert people.first("name") == "Ann"
        assert people.last("age") == 45

    def test_first_empty(self):
        """Test first on an empty collection."""
        assert Collection().first() is UNDEFINED
        assert Collection().last("a") is UNDEFINED

    def test_cursor_does_not_change_contents(self, people):
        """Test that moving the cursor leaves records alone."""
        people.next()
        assert len(people) == 3

    def test_pointer_policy(self):
        """Test that the pointer policy follows the last insert."""
        db = Collection(options={"update": {"pointer": True}})
        db.insert({"a": 1})
        db.insert({"a": 2})
        assert db.current() == {"a": 2}


class TestTags:
    """Tests for tags."""

    def test_tag_position(self, people):
        """Test tagging by position."""
        assert people.tag("kid", 1)["name"] == "Bob"
        assert people.resolve_tag("kid")["name"] == "Bob"

    def test_tag_invalid_position(self, people, caplog):
        """Test that an invalid position logs and fails."""
        assert people.tag("x", 10) is False
        assert people.resolve_tag("x") is UNDEFINED
        assert "Invalid position" in caplog.text

    def test_unknown_tag_is_undefined(self, people):
        """Test that a missing tag differs from a tag bound to None."""
        people.tag("nothing", None)
        assert people.resolve_tag("nothing") is None
        assert people.resolve_tag("missing") is UNDEFINED

    def test_tag_current(self, people):
        """Test that omitting the reference tags the current record."""
        people.next()
        people.tag("current")
        assert people.resolve_tag("current")["name"] == "Bob"

    def test_tag_record(self, people):
        """Test tagging a record directly."""
        record = {"name": "outside"}
        people.tag("ext", record)
        assert people.resolve_tag("ext") is record

    def test_tag_survives_sort(self, people):
        """Test that tags follow the record, not the position."""
        people.tag("ann", 0)
        people.sort("age")
        assert people.resolve_tag("ann")["name"] == "Ann"

    def test_dangling_tag(self, people):
        """Test that removing records keeps tagged references."""
        record = people.get(0)
        people.tag("first", 0)
        people.remove()
        assert people.resolve_tag("first") is record


class TestEvents:
    """Tests for on, off and emit."""

    def test_insert_event(self):
        """Test that insert notifies listeners."""
        db = Collection()
        seen = []
        db.on("insert", seen.append)
        db.insert({"a": 1})
        db.insert("ignored")
        assert seen == [{"a": 1}]

    def test_remove_event(self, people):
        """Test that remove passes the removed records."""
        removed = []
        people.on("remove", removed.append)
        records = people.fetch()
        people.remove()
        assert removed == [records]

    def test_off(self):
        """Test removing one listener or all of them."""
        db = Collection()
        seen = []
        listener = seen.append
        db.on("insert", listener)
        db.on("insert", lambda r: None)
        assert db.off("insert", listener) is True
        assert db.off("insert", listener) is False
        assert db.off("insert") is True
        db.insert({"a": 1})
        assert seen == []

    def test_on_unknown_event(self, caplog):
        """Test that an unknown event is rejected."""
        assert Collection().on("explode", lambda r: None) is False

    def test_on_requires_callable(self):
        """Test that a non-callable listener raises."""
        with pytest.raises(TypeError):
            Collection().on("insert", "not callable")

    def test_hooks_from_options(self):
        """Test listeners passed through options."""
        seen = []
        db = Collection(options={"hooks": {"insert": seen.append}})
        db.insert({"a": 1})
        assert seen == [{"a": 1}]


class TestSetOperations:
    """Tests for diff, intersect, join, concat, split, skim, keep and group_by."""

    def test_diff(self):
        """Test records not in the other collection."""
        db = Collection([{"a": 1}, {"a": 2}, {"a": 3}])
        assert db.diff([{"a": 2}]).fetch() == [{"a": 1}, {"a": 3}]
        assert db.diff(Collection([{"a": 1}])).fetch() == [{"a": 2}, {"a": 3}]

    def test_intersect(self):
        """Test records present in both."""
        db = Collection([{"a": 1}, {"a": 2}])
        assert db.intersect([{"a": 2}, {"a": 5}]).fetch() == [{"a": 2}]

    def test_empty_other_returns_self(self):
        """Test that an empty other returns the same collection."""
        db = Collection([{"a": 1}])
        assert db.diff([]) is db
        assert db.intersect(None) is db

    def test_join(self):
        """Test joining records on matching fields."""
        db = Collection(
            [
                {"id": 1, "partner": 2},
                {"id": 2, "name": "two"},
            ]
        )
        joined = db.join("partner", "id", "mate", ["name"])
        assert joined.fetch() == [{"id": 1, "partner": 2, "mate": {"name": "two"}}]
        assert "mate" not in db.get(0)

    def test_join_default_position(self):
        """Test that the joined record goes under 'joined' by default."""
        db = Collection([{"k": 1}, {"k": 1, "v": "x"}])
        assert db.join("k", "k").fetch() == [{"k": 1, "joined": {"k": 1, "v": "x"}}]

    def test_concat(self):
        """Test that concat joins every later record with the field."""
        db = Collection([{"a": 1}, {"b": 2}, {"b": 3}])
        result = db.concat("a", "b", "other")
        assert result.fetch() == [{"a": 1, "other": {"b": 2}}, {"a": 1, "other": {"b": 3}}]

    def test_join_without_keys(self):
        """Test that join without keys is empty."""
        assert len(Collection([{"a": 1}]).join("", "a")) == 0

    def test_split(self):
        """Test splitting records along an object field."""
        db = Collection([{"a": 1, "b": {"c": 2, "d": 3}}])
        assert db.split("b").fetch() == [{"a": 1, "b": {"c": 2}}, {"a": 1, "b": {"d": 3}}]

    def test_skim(self, people):
        """Test removing fields in a breed."""
        skimmed = people.skim(["age", "team"])
        assert skimmed.fetch() == [{"name": "Ann"}, {"name": "Bob"}, {"name": "Cid"}]
        assert "age" in people.get(0)
        assert people.skim(None) is people

    def test_skim_drops_empty(self):
        """Test that records with no fields left are dropped."""
        db = Collection([{"a": 1}, {"a": 2, "b": 3}])
        assert db.skim("a").fetch() == [{"b": 3}]

    def test_keep(self, people):
        """Test keeping only some fields."""
        assert people.keep("name").fetch() == [{"name": "Ann"}, {"name": "Bob"}, {"name": "Cid"}]
        assert len(people.keep(None)) == 0

    def test_split_non_mapping_records(self):
        """Test that records that are not mappings are copied whole."""
        row = [1, 2]
        db = Collection([row, {"a": {"b": 1}}])
        result = db.split("a").fetch()
        assert result == [[1, 2], {"a": {"b": 1}}]
        assert result[0] is not row

    def test_skim_keep_non_mapping_records(self):
        """Test skim and keep over records that are not mappings."""
        db = Collection([[1, 2], {"a": 1, "b": 2}])
        assert db.skim("a").fetch() == [[1, 2], {"b": 2}]
        assert db.keep("a").fetch() == [{"a": 1}]

    def test_group_by(self):
        """Test grouping by a field in first-seen order."""
        db = Collection([{"a": 1, "b": 2}, {"a": 3, "b": 4}, {"a": 5}, {"a": 6, "b": 2}])
        groups = db.group_by("b")
        assert len(groups) == 2
        assert groups[0].fetch() == [{"a": 1, "b": 2}, {"a": 6, "b": 2}]
        assert groups[1].fetch() == [{"a": 3, "b": 4}]

    def test_group_by_without_path(self, people):
        """Test that group_by without a path returns the records."""
        assert people.group_by(None) == people.items


class TestFetch:
    """Tests for fetch variants."""

    def test_fetch_is_a_copy(self, people):
        """Test that fetch returns a new list."""
        records = people.fetch()
        records.clear()
        assert len(people) == 3

    def test_fetch_values(self):
        """Test fetching the values of fields."""
        db = Collection([{"a": 1, "b": 2}, {"a": 3}])
        assert db.fetch_values("a") == {"a": [1, 3]}
        assert db.fetch_values(["a", "b"]) == {"a": [1, 3], "b": [2]}
        assert db.fetch_values() == {"a": [1, 3], "b": [2]}

    def test_fetch_sub_obj(self):
        """Test projecting records."""
        db = Collection([{"a": 1, "b": 2}, {"c": 3}])
        assert db.fetch_sub_obj("a") == [{"a": 1}]

    def test_fetch_array(self):
        """Test flattening records into value lists."""
        db = Collection([{"a": 1, "b": 2}, {"a": 3, "b": 4}, {"a": 5, "c": 6}])
        assert db.fetch_array() == [[1, 2], [3, 4], [5, 6]]
        assert db.fetch_array("a") == [[1], [3], [5]]
        assert db.fetch_array(["a", "b"]) == [[1, 2], [3, 4], [5]]

    def test_fetch_key_array(self):
        """Test flattening records into key, value lists."""
        db = Collection([{"a": 1, "b": {"c": 2}, "d": 3}])
        assert db.fetch_key_array() == [["a", 1, "b", "c", 2, "d", 3]]
        assert db.fetch_key_array("b") == [["b", "c", 2]]
        assert db.fetch_key_array("d") == [["d", 3]]
        assert db.fetch_key_array(["a", "d"]) == [["a", 1, "d", 3]]


class TestTextQueries:
    """Tests for where and find."""

    def test_find(self, people):
        """Test running a text query."""
        assert [p["name"] for p in people.find('team = "red" and age > 40')] == ["Cid"]

    def test_where_then_execute(self, people):
        """Test that where sets the pending query."""
        assert people.where("age < 18 or name in ['Cid']") is people
        assert [p["name"] for p in people.execute()] == ["Bob", "Cid"]

    def test_where_exists(self):
        """Test a bare field term."""
        db = Collection([{"a": 1}, {"b": 1}])
        assert db.find("a").fetch() == [{"a": 1}]

    def test_where_between(self, people):
        """Test range operators in text."""
        assert [p["name"] for p in people.find("age >< [17, 45]")] == ["Ann"]

    def test_where_syntax_error(self, people, caplog):
        """Test that a malformed expression returns False and logs."""
        assert people.where("age >") is False
        assert "Malformed query" in caplog.text

    def test_find_error_is_empty(self, people):
        """Test that find returns an empty collection on error."""
        assert len(people.find("age > > 3")) == 0

    def test_where_bad_range_value(self, people):
        """Test that a range operator with a scalar value is rejected."""
        assert people.where("age in 3") is False
        assert len(people.query) == 0


class TestMisc:
    """Tests for dunder methods."""

    def test_len_iter(self, people):
        """Test len and iteration."""
        assert len(people) == 3
        assert [p["name"] for p in people] == ["Ann", "Bob", "Cid"]

    def test_repr_str(self, people):
        """Test the string forms."""
        assert repr(people) == "Collection(3 items)"
        assert str(people).count("\n") == 3

    def test_options_mapping(self):
        """Test building from a plain options mapping with aliases."""
        db = Collection([{"id": 1}], {"I": {"by_id": lambda r: r["id"]}})
        assert db.get_index("by_id").get(1) == {"id": 1}
