"""Accent folding for name search ("Phim Hay" finds "phím hày")."""

import unicodedata

# No NFKD decomposition for these.
_EXTRA_FOLDS = str.maketrans({"đ": "d", "Đ": "D", "ø": "o", "Ø": "O", "ł": "l", "Ł": "L"})


def fold_diacritics(value: str) -> str:
    """Lowercase, strip combining marks. Non-Latin letters are kept as is."""
    decomposed = unicodedata.normalize("NFKD", value.translate(_EXTRA_FOLDS))
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).lower()
