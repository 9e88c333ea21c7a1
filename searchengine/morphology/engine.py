import logging
import re

import pymorphy3

logger = logging.getLogger(__name__)

CYRILLIC_WORD_RE = re.compile(r"^[а-яё]+$")


class MorphologyLoadError(RuntimeError):
    pass


class UnsupportedWordError(ValueError):
    pass


class MorphologyEngine:
    """Russian morphology backed by the pymorphy3 dictionaries.

    The analyzer is loaded once and is read-only afterwards, so a single
    engine is shared by every extractor and every crawl thread.
    """

    def __init__(self, analyzer: "pymorphy3.MorphAnalyzer | None" = None) -> None:
        if analyzer is None:
            try:
                analyzer = pymorphy3.MorphAnalyzer(lang="ru")
            except Exception as exc:
                logger.exception("failed to load russian morphology dictionaries")
                raise MorphologyLoadError("failed to load russian morphology dictionaries") from exc
        self._analyzer = analyzer

    def _parse(self, word: str):
        if not CYRILLIC_WORD_RE.match(word):
            raise UnsupportedWordError(f"unsupported characters in word {word!r}")
        return self._analyzer.parse(word)

    def normalize(self, word: str) -> list[str]:
        forms: list[str] = []
        for parsed in self._parse(word):
            if parsed.normal_form not in forms:
                forms.append(parsed.normal_form)
        return forms

    def classify(self, word: str) -> list[str]:
        return [str(parsed.tag.POS or "") for parsed in self._parse(word)]
