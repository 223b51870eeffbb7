from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass
class ColumnLayout:
    """Responsive table layout definition."""
    min_width: int
    columns: List[str]
    name_min: int = 16
    source_w: int = 9
    version_w: int = 10
    stars_w: int = 7
    badge_w: int = 10
    desc_min: int = 12

    def has_column(self, name: str) -> bool:
        return name in self.columns

    def _base_min_widths(self, desired: Optional[Dict[str, int]] = None) -> Dict[str, int]:
        base = {
            'mark': 2,
            'name': self.name_min,
            'source': self.source_w,
            'version': self.version_w,
            'stars': self.stars_w,
            'badge': self.badge_w,
            'desc': self.desc_min,
        }
        result: Dict[str, int] = {}
        for col in self.columns:
            width = base.get(col, 8)
            if desired and col in desired:
                width = max(width, desired[col])
            result[col] = max(1, width)
        return result

    def required_width(self, desired: Optional[Dict[str, int]] = None) -> int:
        widths = self._base_min_widths(desired)
        return sum(widths.values()) + len(self.columns) - 1

    def calculate_widths(self, term_width: int, desired: Optional[Dict[str, int]] = None) -> Dict[str, int]:
        """Compute column widths that fit into the terminal (one space between columns)."""
        separators = len(self.columns) - 1
        usable_width = max(len(self.columns), term_width - separators)
        widths = self._base_min_widths(desired)
        min_total = sum(widths.values())

        if min_total <= usable_width:
            remaining = usable_width - min_total
            flex_cols = [c for c in self.columns if c in ('name', 'desc')] or list(self.columns)
            weights = {col: (2 if col == 'desc' else 1) for col in flex_cols}
            total_weight = max(1, sum(weights.values()))
            distributed = 0
            for col in flex_cols:
                share = (remaining * weights[col]) // total_weight
                widths[col] += share
                distributed += share
            leftover = remaining - distributed
            if leftover and flex_cols:
                widths[flex_cols[-1]] += leftover
        else:
            overflow = min_total - usable_width
            min_limits = {'mark': 2, 'name': 6, 'source': 4, 'version': 4, 'stars': 3, 'badge': 4, 'desc': 4}
            for col in reversed(self.columns):
                reducible = max(0, widths[col] - min_limits.get(col, 1))
                if reducible <= 0:
                    continue
                take = min(reducible, overflow)
                widths[col] -= take
                overflow -= take
                if overflow == 0:
                    break

        return widths


class ResponsiveLayoutManager:
    """Responsive layout selector for the tool table."""

    LAYOUTS = [
        ColumnLayout(min_width=120, columns=['mark', 'name', 'source', 'version', 'stars', 'badge', 'desc'], name_min=22, desc_min=30),
        ColumnLayout(min_width=96, columns=['mark', 'name', 'source', 'version', 'badge', 'desc'], name_min=18, desc_min=20),
        ColumnLayout(min_width=72, columns=['mark', 'name', 'source', 'badge', 'desc'], name_min=16, source_w=7, desc_min=12),
        ColumnLayout(min_width=48, columns=['mark', 'name', 'source', 'badge'], name_min=14, source_w=7, badge_w=8),
        ColumnLayout(min_width=0, columns=['mark', 'name'], name_min=8),
    ]

    @classmethod
    def select_layout(cls, term_width: int) -> ColumnLayout:
        for layout in cls.LAYOUTS:
            effective_min = max(layout.min_width, layout.required_width())
            if term_width >= effective_min:
                return layout
        return cls.LAYOUTS[-1]


def detail_content_width(term_width: int) -> int:
    """Adaptive content width for overlays (help, details, README)."""
    tw = max(20, term_width)
    if tw < 80:
        base = tw - 4
    elif tw < 120:
        base = tw - 6
    else:
        base = int(tw * 0.9)
    return max(16, min(base, tw - 2, 160))
