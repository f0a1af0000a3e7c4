"""
Visual style presets for hex cells.

Styles are rendering hints stacked on each cell. The renderer picks the
highest-priority entry per layer:
- base: terrain look
- mark: faction markers and fog
- interaction: selection / validation highlights
- immediately: hover feedback
"""

from dataclasses import dataclass, asdict, replace
from typing import Optional


@dataclass(frozen=True)
class VisualStyle:
    """One entry of a cell's visual-style stack."""
    layer: str
    type: str
    priority: int
    fill_color: Optional[str] = None  # RGBA hex, e.g. "#0000FF1A"
    border_color: Optional[str] = None
    show_fill: bool = True
    show_border: bool = True

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "VisualStyle":
        return cls(
            layer=data["layer"],
            type=data["type"],
            priority=int(data.get("priority", 0)),
            fill_color=data.get("fill_color"),
            border_color=data.get("border_color"),
            show_fill=data.get("show_fill", True),
            show_border=data.get("show_border", True),
        )


# Marker types that encode control ownership
CONTESTED = "contested"
FACTION_MARKER_PREFIX = "faction_"

DEFAULT_STYLES = {
    # Base layer
    "default": VisualStyle("base", "default", 1, "#0000001A", "#00000033"),
    "plain": VisualStyle("base", "plain", 1, "#FFFFFF1A", "#FFFFFF33"),
    "hill": VisualStyle("base", "hill", 1, "#00FF001A", "#FFFFFF33"),
    "mountain": VisualStyle("base", "mountain", 1, "#DEB8871A", "#FFFFFF33"),
    "water": VisualStyle("base", "water", 1, "#00FFFF1A", "#0000FF33"),
    # Mark layer
    "faction_blue": VisualStyle("mark", "faction_blue", 0, "#0000FF1A", "#FFFFFF33"),
    "faction_red": VisualStyle("mark", "faction_red", 0, "#FF00001A", "#FFFFFF33"),
    "contested": VisualStyle("mark", CONTESTED, 0, "#FFA5001A", "#FFFFFF33"),
    "invisible": VisualStyle("mark", "invisible", 1, "#000000B3", "#000000B3", show_border=False),
    # Interaction layer
    "selected": VisualStyle("interaction", "selected", 2, "#FFFF004D", "#FFFFFF33"),
    "invalid": VisualStyle("interaction", "invalid", 3, "#FF000099", "#FFFFFF33"),
    # Hover
    "hovered": VisualStyle("immediately", "hovered", 1, "#80808080", None, show_border=False),
}


def faction_marker_type(faction: str) -> str:
    return f"{FACTION_MARKER_PREFIX}{faction}"


def is_control_marker(style: VisualStyle) -> bool:
    """True for faction markers and the contested marker."""
    return style.type == CONTESTED or style.type.startswith(FACTION_MARKER_PREFIX)


def faction_marker(styles: dict[str, VisualStyle], faction: str) -> VisualStyle:
    """Get the marker preset for a faction, synthesising a grey one if absent."""
    marker_type = faction_marker_type(faction)
    preset = styles.get(marker_type)
    if preset is not None:
        return preset
    return VisualStyle("mark", marker_type, 0, "#8080801A", "#FFFFFF33")


def merge_styles(overrides: dict) -> dict[str, VisualStyle]:
    """Overlay config-supplied style fields onto the default catalogue."""
    styles = dict(DEFAULT_STYLES)
    for name, fields in (overrides or {}).items():
        base = styles.get(name)
        if base is not None:
            styles[name] = replace(base, **fields)
        else:
            styles[name] = VisualStyle.from_dict({"type": name, **fields})
    return styles
