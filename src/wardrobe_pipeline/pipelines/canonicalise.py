"""
Attribute canonicalisation.

Maps free-form model output onto the labels stored on items: values are
lower-cased and trimmed, known aliases are mapped, and unknown values are
dropped. A field of the wrong type rejects the whole response.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

from core.errors import InvalidResponseError, Provider

SINGLE_VALUE_FIELDS = ("type", "pattern", "fabric", "fit")
LIST_FIELDS = ("colour", "season")

CANONICAL_VALUES: Dict[str, FrozenSet[str]] = {
    "type": frozenset(
        {
            "t-shirt", "shirt", "blouse", "polo", "tank-top", "sweater", "hoodie",
            "cardigan", "vest", "jeans", "trousers", "shorts", "skirt", "leggings",
            "dress", "jumpsuit", "jacket", "coat", "blazer", "sneakers", "boots",
            "heels", "sandals", "loafers", "bag", "belt", "scarf", "hat", "other",
        }
    ),
    "colour": frozenset(
        {
            "black", "white", "grey", "navy", "blue", "red", "green", "yellow",
            "orange", "pink", "purple", "brown", "beige", "cream", "gold", "silver",
        }
    ),
    "pattern": frozenset(
        {"solid", "striped", "checked", "floral", "geometric", "animal", "polka-dot", "camo"}
    ),
    "fabric": frozenset(
        {"cotton", "denim", "wool", "polyester", "silk", "linen", "leather", "knit", "fleece"}
    ),
    "season": frozenset({"spring", "summer", "autumn", "winter", "all-season"}),
    "fit": frozenset({"slim", "regular", "relaxed", "oversized", "fitted", "loose"}),
}

ALIASES: Dict[str, Dict[str, str]] = {
    "type": {
        "tshirt": "t-shirt",
        "tee": "t-shirt",
        "tank": "tank-top",
        "pants": "trousers",
        "chinos": "trousers",
        "jumper": "sweater",
        "pullover": "sweater",
        "sweatshirt": "hoodie",
        "trainers": "sneakers",
    },
    "colour": {"gray": "grey", "charcoal": "grey", "tan": "beige", "ivory": "cream"},
    "pattern": {"plain": "solid", "stripes": "striped", "plaid": "checked", "tartan": "checked"},
    "fabric": {"jersey": "knit", "suede": "leather"},
    "season": {"fall": "autumn", "all season": "all-season", "year-round": "all-season"},
    "fit": {"skinny": "slim", "baggy": "loose", "tailored": "fitted"},
}


@dataclass
class CanonicalAttributes:
    type: Optional[str] = None
    colour: List[str] = field(default_factory=list)
    pattern: Optional[str] = None
    fabric: Optional[str] = None
    season: List[str] = field(default_factory=list)
    fit: Optional[str] = None

    def has_any(self) -> bool:
        return any(asdict(self).values())

    def to_columns(self) -> Dict[str, Any]:
        """Item column values; empty lists are stored as NULL."""
        columns = asdict(self)
        for name in LIST_FIELDS:
            columns[name] = columns[name] or None
        return columns


class AttributeCanonicaliser:
    """Turns a raw model reply into CanonicalAttributes."""

    def __init__(
        self,
        canonical_values: Optional[Mapping[str, FrozenSet[str]]] = None,
        aliases: Optional[Mapping[str, Mapping[str, str]]] = None,
    ):
        self.canonical_values = dict(canonical_values or CANONICAL_VALUES)
        self.aliases = dict(aliases or ALIASES)

    def _single(self, name: str, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        normalised = value.strip().lower()
        if not normalised:
            return None
        known = self.canonical_values[name]
        aliases = self.aliases.get(name, {})
        for candidate in (normalised, normalised.replace(" ", "-"), normalised.replace("-", " ")):
            if candidate in known:
                return candidate
            if candidate in aliases:
                return aliases[candidate]
        return None

    def _list(self, name: str, values: Any) -> List[str]:
        if values is None:
            return []
        if isinstance(values, str):
            values = [values]
        result: List[str] = []
        for value in values:
            canonical = self._single(name, value)
            if canonical is not None and canonical not in result:
                result.append(canonical)
        return result

    def canonicalise(self, raw: Any) -> CanonicalAttributes:
        """
        Validate and normalise a parsed model reply.

        Raises:
            InvalidResponseError: If raw is not an object or a field has the
                wrong type
        """
        if not isinstance(raw, dict):
            raise InvalidResponseError(
                f"Attributes must be an object, got {type(raw).__name__}",
                provider=Provider.OPENAI,
            )

        for name in SINGLE_VALUE_FIELDS:
            value = raw.get(name)
            if value is not None and not isinstance(value, str):
                raise InvalidResponseError(
                    f"Invalid '{name}' field: expected string, got {type(value).__name__}",
                    provider=Provider.OPENAI,
                )
        for name in LIST_FIELDS:
            value = raw.get(name)
            if value is None or isinstance(value, str):
                continue
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise InvalidResponseError(
                    f"Invalid '{name}' field: expected list of strings",
                    provider=Provider.OPENAI,
                )

        return CanonicalAttributes(
            type=self._single("type", raw.get("type")),
            colour=self._list("colour", raw.get("colour")),
            pattern=self._single("pattern", raw.get("pattern")),
            fabric=self._single("fabric", raw.get("fabric")),
            season=self._list("season", raw.get("season")),
            fit=self._single("fit", raw.get("fit")),
        )
