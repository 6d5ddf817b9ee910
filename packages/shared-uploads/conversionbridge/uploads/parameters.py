"""Per-item parameter resolution.

Node-level parameters act as defaults; fields present on the item win.
Items may come from a list of dicts or from the rows of a DataFrame.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

import pandas as pd


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if pd.api.types.is_scalar(value):
        return bool(pd.isna(value))
    return False


@dataclass(frozen=True)
class ItemParameters:
    """Parameters of one input item.

    Attributes:
        index: Position of the item in the input.
        item: The item as received (returned in failure records).
        defaults: Node-level parameters shared by all items.
    """

    index: int
    item: Mapping[str, Any]
    defaults: Mapping[str, Any] = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        """Return an item field, falling back to the node-level default."""
        value = self.item.get(name)
        if not _is_missing(value):
            return value
        value = self.defaults.get(name)
        return default if _is_missing(value) else value

    def fields(self) -> dict[str, Any]:
        """Merged view: defaults overlaid with the item's non-missing fields."""
        merged = {k: v for k, v in self.defaults.items() if not _is_missing(v)}
        merged.update({k: v for k, v in self.item.items() if not _is_missing(v)})
        return merged

    def original(self) -> dict[str, Any]:
        return {k: (None if _is_missing(v) else v) for k, v in self.item.items()}


def to_item_parameters(
    items: pd.DataFrame | Iterable[Mapping[str, Any]],
    defaults: Mapping[str, Any] | None = None,
) -> list[ItemParameters]:
    """
    Wrap raw input items.

    Args:
        items: List of dicts, or a DataFrame with one row per item.
        defaults: Node-level parameters.

    Returns:
        One ItemParameters per item, in input order.

    Example:
        >>> df = pd.DataFrame([{"gclid": "abc", "conversion_value": 10.0}])
        >>> params = to_item_parameters(df, {"conversion_action": "987"})
        >>> params[0].fields()["conversion_action"]
        '987'
    """
    defaults = dict(defaults or {})
    if isinstance(items, pd.DataFrame):
        records: list[Mapping[str, Any]] = items.to_dict(orient="records")
    else:
        records = list(items)
    return [ItemParameters(index=i, item=record, defaults=defaults) for i, record in enumerate(records)]
