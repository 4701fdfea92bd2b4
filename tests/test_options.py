"""Tests for collection options."""

import pytest

from nddb import Collection
from nddb.options import CollectionOptions, OptionsError, UpdatePolicy


def key(record):
    return record["id"]


class TestFromDict:
    """Tests for CollectionOptions.from_dict."""

    def test_none(self):
        """Test that None gives the defaults."""
        opts = CollectionOptions.from_dict(None)
        assert opts.update == UpdatePolicy(indexes=True, sort=False, pointer=False)
        assert opts.cursor == 0

    def test_aliases(self):
        """Test the single-letter keys."""
        opts = CollectionOptions.from_dict({"I": {"by_id": key}, "H": {"h": key}, "V": {"v": key}, "nddb_pointer": 2})
        assert opts.indexes == {"by_id": key}
        assert opts.hashes == {"h": key}
        assert opts.views == {"v": key}
        assert opts.cursor == 2

    def test_update_policy(self):
        """Test that the update mapping becomes an UpdatePolicy."""
        opts = CollectionOptions.from_dict({"update": {"sort": True}})
        assert opts.update == UpdatePolicy(indexes=True, sort=True, pointer=False)

    def test_hooks_accept_single_callable(self):
        """Test that one listener is wrapped in a list."""
        opts = CollectionOptions.from_dict({"hooks": {"insert": print}})
        assert opts.hooks == {"insert": [print]}

    def test_extra_keys_are_kept(self):
        """Test that unknown keys end up in extra."""
        opts = CollectionOptions.from_dict({"log": "x", "tags": None})
        assert opts.extra == {"log": "x"}
        assert opts.tags == {}

    @pytest.mark.parametrize(
        "data",
        [
            {"update": {"sort": "yes"}},
            {"update": {"unknown": True}},
            {"indexes": {"by_id": 3}},
            {"hooks": {"explode": print}},
            {"global_compare": "not callable"},
            {"cursor": -1},
        ],
    )
    def test_invalid(self, data):
        """Test that malformed options raise OptionsError."""
        with pytest.raises(OptionsError):
            CollectionOptions.from_dict(data)

    def test_collection_rejects_invalid(self):
        """Test that a collection validates its options."""
        with pytest.raises(OptionsError):
            Collection(options={"comparators": {"a": 1}})


class TestCopy:
    """Tests for copying options."""

    def test_copy_is_independent(self):
        """Test that containers are not shared."""
        opts = CollectionOptions(indexes={"by_id": key}, hooks={"insert": [print]})
        clone = opts.copy()
        clone.indexes["other"] = key
        clone.hooks["insert"].append(repr)
        clone.update.sort = True
        assert opts.indexes == {"by_id": key}
        assert opts.hooks == {"insert": [print]}
        assert opts.update.sort is False

    def test_collection_copies_options(self):
        """Test that a collection does not mutate the options it was given."""
        opts = CollectionOptions()
        db = Collection(options=opts)
        db.index("by_id", key)
        assert opts.indexes == {}


class TestUpdatePolicy:
    """Tests for UpdatePolicy."""

    def test_merge(self):
        """Test that merge overrides selected fields in a copy."""
        policy = UpdatePolicy()
        merged = policy.merge(indexes=False, pointer=True)
        assert merged == UpdatePolicy(indexes=False, sort=False, pointer=True)
        assert policy == UpdatePolicy()
