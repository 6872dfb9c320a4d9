"""Combination keys.

A combination is an unordered map of attribute id to attribute value id.
The key is its canonical form: pairs sorted by attribute id, so two maps
with the same pairs always compare, hash and serialize identically no
matter how the caller ordered them.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Self

from storefront.domain.base import ValueObject
from storefront.domain.exceptions import InvalidCombinationError

PAIR_SEPARATOR = "|"
ID_SEPARATOR = ":"


class Facet(str, Enum):
    """Independently grouped product aspects."""

    PRICE = "price"
    WEIGHT = "weight"
    MEDIA = "media"

    @property
    def binding_flag(self) -> str:
        """Name of the ProductAttribute column that marks an attribute as controlling this facet."""
        return {
            Facet.PRICE: "controls_pricing",
            Facet.WEIGHT: "controls_weight",
            Facet.MEDIA: "controls_media",
        }[self]


def _to_int(value: Any, what: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidCombinationError(f"{what} {value!r} is not an integer id") from None


@dataclass(frozen=True)
class CombinationKey(ValueObject):
    """Canonical, order-independent identity of a group or variant.

    Attributes:
        pairs: (attribute_id, attribute_value_id) pairs sorted by attribute id.
            Empty for the simple key.
    """

    pairs: tuple[tuple[int, int], ...] = ()

    def __post_init__(self) -> None:
        ordered = tuple(sorted((int(a), int(v)) for a, v in self.pairs))
        attribute_ids = [a for a, _ in ordered]
        if len(set(attribute_ids)) != len(attribute_ids):
            raise InvalidCombinationError(
                "an attribute appears more than once",
                combination=dict(ordered),
            )
        object.__setattr__(self, "pairs", ordered)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def simple(cls) -> Self:
        """Return the empty key shared by every product's simple group."""
        return cls()

    @classmethod
    def from_mapping(cls, mapping: Mapping[Any, Any] | None) -> Self:
        """Build a key from ``{attribute_id: attribute_value_id}``.

        Keys may be numeric strings since JSON object keys always are.

        Args:
            mapping: Attribute to value map, or None for the simple key.

        Returns:
            Canonical key.
        """
        if not mapping:
            return cls()
        return cls(
            pairs=tuple(
                (_to_int(attr, "attribute id"), _to_int(value, "attribute value id"))
                for attr, value in mapping.items()
            )
        )

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[int, int]]) -> Self:
        """Build a key from stored (attribute_id, attribute_value_id) rows."""
        return cls(pairs=tuple(pairs))

    @classmethod
    def parse(cls, serialized: str) -> Self:
        """Inverse of :meth:`serialize`."""
        if not serialized:
            return cls()
        pairs = []
        for chunk in serialized.split(PAIR_SEPARATOR):
            attr, _, value = chunk.partition(ID_SEPARATOR)
            pairs.append((_to_int(attr, "attribute id"), _to_int(value, "attribute value id")))
        return cls(pairs=tuple(pairs))

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def is_simple(self) -> bool:
        """True for the empty key."""
        return not self.pairs

    @property
    def attribute_ids(self) -> frozenset[int]:
        """Attribute ids present in the key."""
        return frozenset(a for a, _ in self.pairs)

    @property
    def value_ids(self) -> tuple[int, ...]:
        """Attribute value ids, in attribute order."""
        return tuple(v for _, v in self.pairs)

    def as_dict(self) -> dict[int, int]:
        """Return the key as ``{attribute_id: attribute_value_id}``."""
        return dict(self.pairs)

    def serialize(self) -> str:
        """Serialize to the stored form, e.g. ``"3:7|5:12"``; ``""`` when simple."""
        return PAIR_SEPARATOR.join(f"{a}{ID_SEPARATOR}{v}" for a, v in self.pairs)

    def restrict(self, attribute_ids: Iterable[int]) -> Self:
        """Keep only the pairs whose attribute is in ``attribute_ids``.

        Used to cut a variant's full combination down to the attributes that
        control one facet.
        """
        keep = set(attribute_ids)
        return type(self)(pairs=tuple(p for p in self.pairs if p[0] in keep))

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    def matches(self, pairs: Iterable[tuple[int, int]]) -> bool:
        """Exact, unordered set-equality against a group's value rows.

        Cardinality must agree, so a one-pair key never matches a two-pair
        group even when its pair is present there, and vice versa.
        """
        candidate = [(int(a), int(v)) for a, v in pairs]
        if len(candidate) != len(self.pairs):
            return False
        lookup = set(candidate)
        return all(pair in lookup for pair in self.pairs)

    def __len__(self) -> int:
        return len(self.pairs)

    def __str__(self) -> str:
        return self.serialize() or "<simple>"
