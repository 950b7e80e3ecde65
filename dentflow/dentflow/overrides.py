from __future__ import annotations

from typing import Dict, Iterator, Mapping, Optional


class SelectionOverrides(Mapping[str, int]):
    """Chosen alternative-rule index per unit key.

    ``set`` reports whether the stored choice actually changed; a change means
    every node of that unit is stale and has to be regenerated.
    """

    def __init__(self, data: Optional[Mapping[str, int]] = None):
        self._choices: Dict[str, int] = {}
        for key, index in (data or {}).items():
            self.set(key, index)

    def __getitem__(self, unit_key: str) -> int:
        return self._choices[unit_key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._choices)

    def __len__(self) -> int:
        return len(self._choices)

    def set(self, unit_key: str, rule_index: int) -> bool:
        rule_index = int(rule_index)
        if rule_index < 0:
            raise ValueError(f"rule index must be >= 0, got {rule_index}")
        previous = self._choices.get(unit_key, 0)
        self._choices[unit_key] = rule_index
        return previous != rule_index

    def discard(self, unit_key: str) -> None:
        self._choices.pop(unit_key, None)

    def clear(self) -> None:
        self._choices.clear()

    def as_dict(self) -> Dict[str, int]:
        return dict(self._choices)
