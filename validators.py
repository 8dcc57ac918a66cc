import re
from typing import Optional

_ID_PATTERN = re.compile(r"^[0-9a-f]{24}$")


class IdValidator:
    """Checks the shape of store-generated document ids (24 lowercase hex chars)."""

    @staticmethod
    def normalize_id(raw: Optional[str]) -> str:
        if raw is None:
            return ""
        return str(raw).strip().lower()

    @staticmethod
    def is_valid_id(raw: Optional[str]) -> bool:
        return bool(_ID_PATTERN.match(IdValidator.normalize_id(raw)))


class TextValidator:
    """Basic text checks for titles and comments."""

    @staticmethod
    def is_non_empty(text: Optional[str]) -> bool:
        if text is None or not isinstance(text, str):
            return False
        return bool(text.strip())

    @staticmethod
    def clean(text: Optional[str]) -> str:
        if text is None:
            return ""
        return text.strip()
