"""
Layout presets for slide templates.
Each preset is a full template config (camelCase, as stored) that the editor
offers for quick switching; user templates start from DEFAULT_TEMPLATE_CONFIG.
"""

import copy

from slidekit.schemas import TemplateConfig

DEFAULT_TEMPLATE_CONFIG = {
    "layout": "headline_bottom",
    "safeArea": {"top": 80, "right": 80, "bottom": 120, "left": 80},
    "textZones": [
        {"id": "headline", "x": 80, "y": 720, "w": 920, "h": 260, "fontSize": 68, "fontWeight": 800, "lineHeight": 1.05, "maxLines": 3, "align": "center"},
        {"id": "body", "x": 80, "y": 560, "w": 920, "h": 140, "fontSize": 32, "fontWeight": 600, "lineHeight": 1.2, "maxLines": 2, "align": "center"},
    ],
    "overlays": {
        "gradient": {"enabled": True, "direction": "bottom", "strength": 0.5, "extent": 50, "color": "#000000", "solidSize": 25},
        "vignette": {"enabled": False, "strength": 0.2},
    },
    "chrome": {
        "showSwipe": True,
        "swipeType": "chevrons",
        "swipePosition": "bottom_center",
        "showCounter": True,
        "counterStyle": "1/8",
        "watermark": {"enabled": True, "position": "custom", "logoX": 24, "logoY": 24},
    },
    "backgroundRules": {"allowImage": True, "defaultStyle": "darken"},
}

LAYOUT_PRESETS = {
    "headline_bottom": {
        "name": "Headline Bottom",
        "description": "Big headline over the lower third, body line above it",
        "textZones": DEFAULT_TEMPLATE_CONFIG["textZones"],
    },
    "headline_center": {
        "name": "Headline Center",
        "description": "Centered headline with room for a short body below",
        "textZones": [
            {"id": "headline", "x": 80, "y": 380, "w": 920, "h": 320, "fontSize": 64, "fontWeight": 800, "lineHeight": 1.1, "maxLines": 5, "align": "center"},
            {"id": "body", "x": 80, "y": 720, "w": 920, "h": 200, "fontSize": 32, "fontWeight": 600, "lineHeight": 1.2, "maxLines": 3, "align": "center"},
        ],
    },
    "split_top_bottom": {
        "name": "Split Top / Bottom",
        "description": "Left-aligned headline on top, long body underneath",
        "textZones": [
            {"id": "headline", "x": 80, "y": 80, "w": 920, "h": 200, "fontSize": 56, "fontWeight": 800, "lineHeight": 1.1, "maxLines": 3, "align": "left"},
            {"id": "body", "x": 80, "y": 320, "w": 920, "h": 600, "fontSize": 36, "fontWeight": 600, "lineHeight": 1.25, "maxLines": 12, "align": "left"},
        ],
    },
    "headline_only": {
        "name": "Headline Only",
        "description": "One oversized headline, no body zone",
        "textZones": [
            {"id": "headline", "x": 80, "y": 340, "w": 920, "h": 400, "fontSize": 80, "fontWeight": 800, "lineHeight": 1.05, "maxLines": 4, "align": "center"},
        ],
    },
}


def get_layout_preset(layout: str) -> TemplateConfig:
    """Full template config for a layout preset."""
    if layout not in LAYOUT_PRESETS:
        raise ValueError(f"Layout '{layout}' not found. Available: {list(LAYOUT_PRESETS.keys())}")
    config = copy.deepcopy(DEFAULT_TEMPLATE_CONFIG)
    config["layout"] = layout
    config["textZones"] = copy.deepcopy(LAYOUT_PRESETS[layout]["textZones"])
    return TemplateConfig.model_validate(config)


def default_template_config() -> TemplateConfig:
    return TemplateConfig.model_validate(DEFAULT_TEMPLATE_CONFIG)


def list_layout_presets() -> list[dict]:
    """List all layout presets."""
    return [
        {
            "id": layout_id,
            "name": preset["name"],
            "description": preset["description"],
            "config": get_layout_preset(layout_id).model_dump(mode="json", by_alias=True),
        }
        for layout_id, preset in LAYOUT_PRESETS.items()
    ]
