"""Tests for kiln.state.merge.deep_merge."""

from kiln.state.merge import deep_merge


class TestDeepMerge:
    def test_nested_fields_survive(self) -> None:
        assert deep_merge({"a": {"x": 1, "y": 2}}, {"a": {"y": 3}}) == {"a": {"x": 1, "y": 3}}

    def test_left_to_right(self) -> None:
        assert deep_merge({"a": 1}, {"a": 2}, {"a": 3}) == {"a": 3}

    def test_lists_replace(self) -> None:
        assert deep_merge({"a": [1, 2, 3]}, {"a": [9]}) == {"a": [9]}

    def test_mapping_replaces_scalar(self) -> None:
        assert deep_merge({"a": 1}, {"a": {"b": 2}}) == {"a": {"b": 2}}

    def test_inputs_untouched(self) -> None:
        base = {"a": {"x": 1}}
        override = {"a": {"y": {"z": 1}}}
        merged = deep_merge(base, override)
        merged["a"]["y"]["z"] = 2

        assert base == {"a": {"x": 1}}
        assert override == {"a": {"y": {"z": 1}}}
