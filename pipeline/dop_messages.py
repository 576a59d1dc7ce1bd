"""Message catalog for continuity insights and DOP shot advice.

Insights carry a stable `code` + `params`; the text is rendered here so the
engine core never bakes a language into its results. "vi" is the editor's
native locale, "en" is provided for logs and tooling.
"""

from __future__ import annotations

import config

_CATALOG: dict[str, dict[str, dict[str, str]]] = {
    "vi": {
        "same_location": {
            "message": "Bối cảnh đồng bộ: Cả hai cảnh đều nằm trong cùng một khu vực.",
            "suggestion": "Đảm bảo các chi tiết nền như tranh treo tường, vị trí đồ nội thất không thay đổi.",
        },
        "location_transition": {
            "message": 'Chuyển cảnh: Từ "{from_name}" sang "{to_name}".',
            "suggestion": "Cần một cú máy rõ ràng để giới thiệu không gian mới.",
        },
        "prop_disappeared": {
            "message": "Đạo cụ biến mất: {names} xuất hiện ở cảnh trước nhưng không có ở cảnh này.",
            "suggestion": 'Nếu nhân vật vẫn đang cầm vật này, hãy thêm vào "Product IDs" của cảnh hiện tại.',
        },
        "prop_jump": {
            "message": 'Đạo cụ "nhảy": {names} bỗng dưng xuất hiện.',
            "suggestion": (
                "Cảnh trước thiếu hành động nhân vật nhặt hoặc lấy vật này. "
                'Hãy thêm một cảnh "Mồi" hoặc sửa Script cảnh trước.'
            ),
        },
        "characters_left": {
            "message": "{names} đã rời khỏi khung hình hoặc không còn là tiêu điểm.",
        },
        "posture_change": {
            "message": "Thay đổi trạng thái: Nhân vật chuyển từ {from_state} sang {to_state}.",
            "suggestion": (
                "Hãy đảm bảo có một hành động chuyển đổi (transition action) "
                "mượt mà giữa hai trạng thái này."
            ),
        },
        "unknown_prop": {"message": "Đạo cụ"},
        "unknown_character": {"message": "Nhân vật"},
        "unknown_location": {"message": "Không xác định"},
        "shot_title": {"message": "Lời khuyên từ DOP"},
        "shot_action_closer": {"message": "Tiến gần hơn hoặc POV"},
        "shot_action_prop": {"message": "Nhấn mạnh đạo cụ"},
        "shot_action_rhythm": {"message": "Thay đổi nhịp điệu"},
        "shot_close_up": {
            "message": "Cận cảnh (Close-up)",
            "suggestion": "Để nhấn mạnh cảm xúc hoặc chi tiết đạo cụ sau hành động trước.",
        },
        "shot_wide": {
            "message": "Góc rộng (Wide Shot)",
            "suggestion": "Để thiết lập lại không gian và vị trí nhân vật trong bối cảnh.",
        },
        "shot_pov": {
            "message": "Điểm nhìn (POV)",
            "suggestion": "Cho người xem thấy chính xác những gì nhân vật đang nhìn (ví dụ: nhìn vào đạo cụ).",
        },
        "shot_ots": {
            "message": "Góc nghiêng (OTS)",
            "suggestion": "Tạo chiều sâu và sự kết nối giữa nhân vật với đối tượng/vật thể.",
        },
        "shot_reaction": {
            "message": "Cảnh phản ứng (Reaction)",
            "suggestion": "Ghi lại phản ứng của nhân vật ngay sau một sự kiện quan trọng.",
        },
        "validation_ok": {"message": "Raccord OK"},
        "validation_issues": {"message": "Lỗi Raccord"},
        "validation_minor": {"message": "Chỉ có lỗi nhỏ"},
    },
    "en": {
        "same_location": {
            "message": "Location in sync: both scenes take place in the same area.",
            "suggestion": "Keep background details such as wall art and furniture placement unchanged.",
        },
        "location_transition": {
            "message": 'Location change: from "{from_name}" to "{to_name}".',
            "suggestion": "Use a clear establishing shot to introduce the new space.",
        },
        "prop_disappeared": {
            "message": "Prop vanished: {names} appeared in the previous scene but not in this one.",
            "suggestion": 'If the character is still holding it, add it to this scene\'s "Product IDs".',
        },
        "prop_jump": {
            "message": "Prop jump: {names} suddenly appeared.",
            "suggestion": (
                "The previous scene has no action where the character picks this up. "
                "Add a setup scene or fix the previous scene's script."
            ),
        },
        "characters_left": {
            "message": "{names} left the frame or is no longer the focus.",
        },
        "posture_change": {
            "message": "State change: the character goes from {from_state} to {to_state}.",
            "suggestion": "Make sure a smooth transition action connects these two states.",
        },
        "unknown_prop": {"message": "Prop"},
        "unknown_character": {"message": "Character"},
        "unknown_location": {"message": "Unknown"},
        "shot_title": {"message": "DOP advice"},
        "shot_action_closer": {"message": "Move closer or go POV"},
        "shot_action_prop": {"message": "Emphasize the prop"},
        "shot_action_rhythm": {"message": "Change the rhythm"},
        "shot_close_up": {
            "message": "Close-up",
            "suggestion": "Emphasize emotion or prop detail after the previous action.",
        },
        "shot_wide": {
            "message": "Wide Shot",
            "suggestion": "Re-establish the space and where the characters stand in it.",
        },
        "shot_pov": {
            "message": "Point of view (POV)",
            "suggestion": "Show exactly what the character is looking at (for example the prop).",
        },
        "shot_ots": {
            "message": "Over-the-shoulder (OTS)",
            "suggestion": "Add depth and connect the character with the subject or object.",
        },
        "shot_reaction": {
            "message": "Reaction shot",
            "suggestion": "Capture the character's reaction right after an important event.",
        },
        "validation_ok": {"message": "Raccord OK"},
        "validation_issues": {"message": "Raccord issues"},
        "validation_minor": {"message": "Minor issues detected"},
    },
}

SUPPORTED_LOCALES = tuple(_CATALOG)


def resolve_locale(locale: str | None) -> str:
    """Return a supported locale, falling back to the configured default, then "vi"."""
    for candidate in (locale, config.DOP_LOCALE, "vi"):
        key = str(candidate or "").strip().lower()
        if key in _CATALOG:
            return key
    return "vi"


def render(code: str, locale: str | None = None, **params) -> tuple[str, str | None]:
    """Render (message, suggestion) for a catalog code.

    Raises KeyError for unknown codes.
    """
    entry = _CATALOG[resolve_locale(locale)][code]
    message = entry["message"].format(**params)
    suggestion = entry.get("suggestion")
    if suggestion is not None:
        suggestion = suggestion.format(**params)
    return message, suggestion


def text(code: str, locale: str | None = None) -> str:
    return render(code, locale)[0]
