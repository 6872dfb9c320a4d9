"""Tests for combination keys."""

import pytest

from storefront.domain import CombinationKey, Facet
from storefront.domain.exceptions import InvalidCombinationError


class TestCombinationKey:
    """Tests for CombinationKey value object."""

    def test_pairs_are_sorted_by_attribute(self) -> None:
        """Pairs are stored in attribute order whatever the input order."""
        key = CombinationKey.from_pairs([(5, 12), (3, 7)])
        assert key.pairs == ((3, 7), (5, 12))

    def test_mapping_order_does_not_matter(self) -> None:
        """Two maps with the same pairs give equal keys."""
        a = CombinationKey.from_mapping({1: 11, 2: 21})
        b = CombinationKey.from_mapping({2: 21, 1: 11})
        assert a == b
        assert hash(a) == hash(b)
        assert a.serialize() == b.serialize()

    def test_string_keys_are_accepted(self) -> None:
        """JSON object keys arrive as strings."""
        key = CombinationKey.from_mapping({"3": 7, "5": "12"})
        assert key.as_dict() == {3: 7, 5: 12}

    def test_non_numeric_id_rejected(self) -> None:
        """Non-numeric IDs are invalid combinations."""
        with pytest.raises(InvalidCombinationError):
            CombinationKey.from_mapping({"color": 7})

    def test_repeated_attribute_rejected(self) -> None:
        """An attribute may appear only once."""
        with pytest.raises(InvalidCombinationError):
            CombinationKey.from_pairs([(3, 7), (3, 8)])

    def test_serialize(self) -> None:
        """Serialized form lists attribute:value pairs joined by pipes."""
        key = CombinationKey.from_mapping({5: 12, 3: 7})
        assert key.serialize() == "3:7|5:12"
        assert str(key) == "3:7|5:12"

    def test_parse_inverts_serialize(self) -> None:
        """Parsing the stored form gives back the key."""
        key = CombinationKey.from_mapping({5: 12, 3: 7})
        assert CombinationKey.parse(key.serialize()) == key

    def test_simple_key(self) -> None:
        """The simple key is empty and serializes to an empty string."""
        key = CombinationKey.simple()
        assert key.is_simple
        assert key.serialize() == ""
        assert str(key) == "<simple>"
        assert CombinationKey.from_mapping(None) == key
        assert CombinationKey.from_mapping({}) == key
        assert CombinationKey.parse("") == key

    def test_restrict(self) -> None:
        """Restrict keeps only the given attributes."""
        key = CombinationKey.from_mapping({1: 11, 2: 21, 3: 31})
        assert key.restrict({1, 3}).as_dict() == {1: 11, 3: 31}
        assert key.restrict(set()).is_simple

    def test_attribute_and_value_ids(self) -> None:
        """Views expose attribute and value IDs."""
        key = CombinationKey.from_mapping({2: 21, 1: 11})
        assert key.attribute_ids == frozenset({1, 2})
        assert key.value_ids == (11, 21)
        assert len(key) == 2


class TestMatching:
    """Tests for exact set-equality matching."""

    def test_matches_in_any_order(self) -> None:
        """Row order of the group's values does not matter."""
        key = CombinationKey.from_mapping({1: 11, 2: 21})
        assert key.matches([(2, 21), (1, 11)])

    def test_subset_does_not_match(self) -> None:
        """A one-pair key does not match a two-pair group."""
        key = CombinationKey.from_mapping({1: 11})
        assert not key.matches([(1, 11), (2, 21)])

    def test_superset_does_not_match(self) -> None:
        """A two-pair key does not match a one-pair group."""
        key = CombinationKey.from_mapping({1: 11, 2: 21})
        assert not key.matches([(1, 11)])

    def test_different_value_does_not_match(self) -> None:
        """Same attributes with another value do not match."""
        key = CombinationKey.from_mapping({1: 11})
        assert not key.matches([(1, 12)])

    def test_simple_matches_only_empty(self) -> None:
        """The simple key matches only a group with no values."""
        key = CombinationKey.simple()
        assert key.matches([])
        assert not key.matches([(1, 11)])


class TestFacet:
    """Tests for Facet enum."""

    @pytest.mark.parametrize(
        ("facet", "flag"),
        [
            (Facet.PRICE, "controls_pricing"),
            (Facet.WEIGHT, "controls_weight"),
            (Facet.MEDIA, "controls_media"),
        ],
    )
    def test_binding_flag(self, facet: Facet, flag: str) -> None:
        """Each facet maps to its binding column."""
        assert facet.binding_flag == flag
