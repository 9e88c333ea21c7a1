from .engine import (
    MorphologyEngine,
    MorphologyLoadError,
    UnsupportedWordError,
)
from .extractor import (
    STOP_CLASSES,
    LemmaExtractor,
    html_to_text,
    split_words,
)

__all__ = [
    "MorphologyEngine",
    "MorphologyLoadError",
    "UnsupportedWordError",
    "STOP_CLASSES",
    "LemmaExtractor",
    "html_to_text",
    "split_words",
]
