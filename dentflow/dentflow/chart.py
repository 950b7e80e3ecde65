from __future__ import annotations

import itertools
from typing import Dict, Iterable, Iterator, List, Mapping

# FDI permanent dentition, as laid out on the chart (upper row, lower row).
TEETH_NUMBERS = [
    [18, 17, 16, 15, 14, 13, 12, 11, 21, 22, 23, 24, 25, 26, 27, 28],
    [48, 47, 46, 45, 44, 43, 42, 41, 31, 32, 33, 34, 35, 36, 37, 38],
]
VALID_TEETH = frozenset(str(t) for row in TEETH_NUMBERS for t in row)
UNTIED_PREFIX = "bulk-"


class InvalidToothError(ValueError):
    pass


def is_untied(tooth: str) -> bool:
    """True for findings recorded without a specific tooth."""
    return tooth.startswith(UNTIED_PREFIX)


def validate_tooth(tooth: str) -> str:
    tooth = str(tooth).strip()
    if tooth in VALID_TEETH or (is_untied(tooth) and len(tooth) > len(UNTIED_PREFIX)):
        return tooth
    raise InvalidToothError(f"unknown tooth identifier: {tooth!r}")


def chart_order(teeth: Iterable[str]) -> List[str]:
    """FDI teeth ascending by number, then untied findings in recording order."""
    return sorted(teeth, key=lambda t: (1, 0) if is_untied(t) else (0, int(t)))


class ToothConditions:
    """Ordered mapping tooth identifier -> ordered, duplicate-free condition codes."""

    def __init__(self, data: Mapping[str, List[str]] | None = None):
        self._teeth: Dict[str, List[str]] = {}
        self._untied_seq = itertools.count(1)
        data = data or {}
        if not isinstance(data, Mapping):
            raise InvalidToothError(f"tooth conditions must be an object of tooth -> codes, got {type(data).__name__}")
        for tooth, codes in data.items():
            tooth = validate_tooth(tooth)
            if not isinstance(codes, (list, tuple)):
                raise InvalidToothError(f"conditions for tooth {tooth} must be a list of codes, got {codes!r}")
            current = self._teeth.setdefault(tooth, [])
            for code in codes:
                if code not in current:
                    current.append(code)
            if not current:
                del self._teeth[tooth]

    def __iter__(self) -> Iterator[str]:
        return iter(self._teeth)

    def __len__(self) -> int:
        return len(self._teeth)

    def __contains__(self, tooth: object) -> bool:
        return tooth in self._teeth

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ToothConditions):
            return self._teeth == other._teeth
        return NotImplemented

    def __repr__(self) -> str:
        return f"ToothConditions({self._teeth!r})"

    def codes_on(self, tooth: str) -> List[str]:
        return list(self._teeth.get(tooth, []))

    def teeth_with(self, code: str) -> List[str]:
        return [tooth for tooth, codes in self._teeth.items() if code in codes]

    def all_codes(self) -> List[str]:
        seen: List[str] = []
        for codes in self._teeth.values():
            for code in codes:
                if code not in seen:
                    seen.append(code)
        return seen

    def toggle(self, tooth: str, code: str) -> bool:
        """Add ``code`` to ``tooth`` or remove it if already present.

        Returns True when the code is now present. A tooth left without
        conditions is dropped from the chart.
        """
        tooth = validate_tooth(tooth)
        current = self._teeth.get(tooth, [])
        if code in current:
            current = [c for c in current if c != code]
            if current:
                self._teeth[tooth] = current
            else:
                self._teeth.pop(tooth, None)
            return False
        self._teeth[tooth] = current + [code]
        return True

    def add_untied(self, code: str) -> str:
        tooth = f"{UNTIED_PREFIX}{code}-{next(self._untied_seq)}"
        while tooth in self._teeth:
            tooth = f"{UNTIED_PREFIX}{code}-{next(self._untied_seq)}"
        self._teeth[tooth] = [code]
        return tooth

    def clear_tooth(self, tooth: str) -> None:
        self._teeth.pop(tooth, None)

    def clear(self) -> None:
        self._teeth.clear()

    def to_dict(self) -> Dict[str, List[str]]:
        return {tooth: list(codes) for tooth, codes in self._teeth.items()}

    @classmethod
    def from_dict(cls, data: Mapping[str, List[str]]) -> "ToothConditions":
        return cls(data)
