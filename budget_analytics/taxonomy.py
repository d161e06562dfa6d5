"""Two-level category taxonomy (parent -> ordered children).

The taxonomy is loaded once and never mutated. Every child name belongs to
exactly one parent. Classification failures are represented by the
``Taxonomy.UNCATEGORIZED`` sentinel pair rather than by ad-hoc strings at call
sites.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple


UNCATEGORIZED_LABEL = "Uncategorized"
INCOME_PARENT = "Income"
SAVINGS_PARENT = "Investment & Savings"


@dataclass(frozen=True)
class CategoryPair:
    parent: str
    child: str

    @property
    def is_uncategorized(self) -> bool:
        return self.parent == UNCATEGORIZED_LABEL and self.child == UNCATEGORIZED_LABEL


PARENT_TO_CHILDREN: Dict[str, List[str]] = {
    "Daily Food & Drinks": [
        "Breakfast",
        "Lunch",
        "Dinner",
        "Coffee",
        "Milk tea",
        "Snacks",
        "Smoothie",
        "Fruit",
        "7-Eleven",
        "Grab Food",
    ],
    "Entertainment": ["Movies", "Karaoke", "Netflix", "Ice Skating", "Pickleball", "Badminton"],
    "Essential": [
        "Rent",
        "Electricity",
        "Water",
        "Internet",
        "Laundry",
        "Dental Care",
        "Fashion",
        "Shoes",
        "Haircut",
        "Phones",
    ],
    "Transportation": ["Grab Car", "Grab Shipping", "Motorbike", "Fuel", "Parking", "Parking (fixed)"],
    SAVINGS_PARENT: ["Investments", "Gold"],
    "Personal Care": ["Personal Care (general)"],
    "Services": ["Services (general)"],
    "Others": [
        "Momo",
        "Cho vay",
        "Rút tiền",
        "Lost",
        "Occasional",
        "Các chi phí khác",
        "Shopee",
        "Tiktok",
        "Apple Store",
        "Apple Music",
        "AI",
        "Credits",
    ],
    INCOME_PARENT: [
        "Salary",
        "Main Income",
        "Thu nợ",
        "Reimbursement",
        "Refund",
        "Other Bonus",
        "Thu nhập khác",
        "Internal Transfers",
    ],
}


def _fold(name: str) -> str:
    """Case/whitespace-insensitive lookup key."""
    return " ".join(str(name).split()).casefold()


class Taxonomy:
    """Immutable parent -> children mapping with reverse lookup."""

    UNCATEGORIZED = CategoryPair(UNCATEGORIZED_LABEL, UNCATEGORIZED_LABEL)

    def __init__(self, mapping: Mapping[str, Sequence[str]], income_parent: str = INCOME_PARENT):
        parents: Dict[str, Tuple[str, ...]] = {}
        child_to_parent: Dict[str, str] = {}
        for parent, children in mapping.items():
            if not parent or not str(parent).strip():
                raise ValueError("Parent category names cannot be empty")
            ordered: List[str] = []
            for child in children:
                if child in child_to_parent:
                    raise ValueError(
                        f"Child category '{child}' appears under both "
                        f"'{child_to_parent[child]}' and '{parent}'"
                    )
                child_to_parent[child] = parent
                ordered.append(child)
            parents[parent] = tuple(ordered)

        self._parents = MappingProxyType(parents)
        self._child_to_parent = MappingProxyType(child_to_parent)
        self._folded_parents = {_fold(p): p for p in parents}
        self._folded_children = {_fold(c): c for c in child_to_parent}
        self.income_parent = income_parent

    # Queries ---------------------------------------------------------------

    @property
    def parents(self) -> Mapping[str, Tuple[str, ...]]:
        return self._parents

    def children_of(self, parent: str) -> Tuple[str, ...]:
        if parent == UNCATEGORIZED_LABEL:
            return (UNCATEGORIZED_LABEL,)
        return self._parents.get(parent, ())

    def parent_of(self, child: str) -> Optional[str]:
        return self._child_to_parent.get(child)

    def all_children(self) -> List[str]:
        return list(self._child_to_parent)

    def is_income_parent(self, parent: str) -> bool:
        return parent == self.income_parent

    def __contains__(self, child: object) -> bool:
        return child in self._child_to_parent

    def __len__(self) -> int:
        return len(self._parents)

    # Resolution ------------------------------------------------------------

    def resolve(self, parent: Optional[str], child: Optional[str]) -> Optional[CategoryPair]:
        """Return the canonical pair for ``parent``/``child`` or ``None``.

        ``parent`` may be blank, in which case ``child`` is looked up on its
        own. Matching ignores case and repeated whitespace.
        """
        child_name = self._folded_children.get(_fold(child)) if child else None
        if child_name is None:
            return None
        owner = self._child_to_parent[child_name]
        if parent and str(parent).strip():
            parent_name = self._folded_parents.get(_fold(parent))
            if parent_name != owner:
                return None
        return CategoryPair(owner, child_name)

    def resolve_path(self, path: Optional[str], separators: Iterable[str] = ("/", ">", ":")) -> Optional[CategoryPair]:
        """Resolve a combined ``"Parent/Child"`` field (or a bare child name)."""
        if path is None or not str(path).strip():
            return None
        text = str(path).strip()
        # Whole-string match first so child names containing a separator still resolve.
        direct = self.resolve(None, text)
        if direct is not None:
            return direct
        for sep in separators:
            if sep in text:
                parent, _, child = text.partition(sep)
                return self.resolve(parent.strip(), child.strip())
        return None

    # Construction ----------------------------------------------------------

    @classmethod
    def from_file(cls, path: Path) -> "Taxonomy":
        """Load a taxonomy from a JSON object of ``parent -> [children]``."""
        with Path(path).open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        if not isinstance(data, dict) or not all(isinstance(v, list) for v in data.values()):
            raise ValueError(f"Taxonomy file {path} must contain an object of parent -> list of children")
        return cls(data)


DEFAULT_TAXONOMY = Taxonomy(PARENT_TO_CHILDREN)


def load_taxonomy(path: Optional[Path] = None) -> Taxonomy:
    """Return the taxonomy at ``path`` (or ``config.TAXONOMY_PATH``), else the default."""
    from . import config

    target = path or config.TAXONOMY_PATH
    if target is None:
        return DEFAULT_TAXONOMY
    return Taxonomy.from_file(target)
