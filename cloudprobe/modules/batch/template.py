"""
Action templates.

A template is an argument vector whose parts may contain placeholders that
are filled per batch item:

    $no, $i     running index
    $azn        index of the availability zone (i % zone count)
    $az         name of the availability zone
    $val        id at index i of the first dependent pool
    $mval       id at index i of the second dependent pool
    $val<k>     id at index i of dependent pool k (0-based)
    $id         id of the resource being deleted or queried
"""

import shlex
from string import Template
from typing import Dict, List, Mapping, Optional, Sequence, Union

from ..pool import ResourcePool


class ActionTemplate:
    """Parameterized argument vector."""

    def __init__(self, parts: Union[str, Sequence[str]]):
        if isinstance(parts, str):
            parts = shlex.split(parts)
        self.parts: List[str] = list(parts)

    def bind(self, **values) -> "ActionTemplate":
        """Fill some placeholders now, leave the rest for resolve()."""
        return ActionTemplate(
            [Template(part).safe_substitute({k: str(v) for k, v in values.items()})
             for part in self.parts]
        )

    def resolve(self, context: Mapping[str, object]) -> List[str]:
        """
        Fill all placeholders.

        Raises:
            ValueError: if a placeholder has no value
        """
        values = {k: str(v) for k, v in context.items()}
        try:
            return [Template(part).substitute(values) for part in self.parts]
        except KeyError as e:
            raise ValueError(f"Unresolved placeholder {e} in '{self}'") from e

    def __add__(self, other: Union["ActionTemplate", Sequence[str]]) -> "ActionTemplate":
        extra = other.parts if isinstance(other, ActionTemplate) else list(other)
        return ActionTemplate(self.parts + extra)

    def __str__(self) -> str:
        return shlex.join(self.parts)

    def __repr__(self) -> str:
        return f"ActionTemplate({self.parts!r})"


def item_context(
    index: int,
    zones: Sequence[str],
    dependent_pools: Sequence[ResourcePool] = (),
    extra: Optional[Mapping[str, object]] = None,
) -> Dict[str, object]:
    """Placeholder values for batch item `index`."""
    zone_index = index % len(zones) if zones else 0
    context: Dict[str, object] = {
        "no": index,
        "i": index,
        "azn": zone_index,
        "az": zones[zone_index] if zones else "",
    }
    for k, pool in enumerate(dependent_pools):
        context[f"val{k}"] = pool[index].id if index < len(pool) else ""
    context["val"] = context.get("val0", "")
    context["mval"] = context.get("val1", "")
    if extra:
        context.update(extra)
    return context
