from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Mapping


@dataclass
class ViewOptions:
    show_line_numbers: bool = True
    soft_wrap: bool = False
    passes_column_width: int = 32
    theme: str = "monokai"

    def as_settings(self) -> Dict[str, Any]:
        return asdict(self)

    def apply_settings(self, settings: Mapping[str, Any]) -> None:
        known = {item.name for item in fields(self)}
        for key, value in settings.items():
            if key in known:
                setattr(self, key, value)
