import logging
import re
from collections import Counter

from bs4 import BeautifulSoup

from searchengine.morphology.engine import MorphologyEngine, UnsupportedWordError

logger = logging.getLogger(__name__)

SPLIT_RE = re.compile(r"[^a-zа-яё]+")
LATIN_RE = re.compile(r"^[a-z]+$")
NUMERIC_RE = re.compile(r"^[0-9]+$")

# Prepositions, conjunctions and interjections carry no search meaning.
STOP_CLASSES = {"PREP", "CONJ", "INTJ"}


def html_to_text(html: str) -> str:
    return BeautifulSoup(html or "", "html.parser").get_text(" ")


def split_words(text: str) -> list[str]:
    return SPLIT_RE.split(text.lower())


def is_skipped(word: str) -> bool:
    return not word or bool(LATIN_RE.match(word)) or bool(NUMERIC_RE.match(word))


class LemmaExtractor:
    def __init__(self, morphology: MorphologyEngine) -> None:
        self.morphology = morphology

    def _lemma(self, word: str) -> str:
        try:
            classes = self.morphology.classify(word)
            if classes and classes[0] in STOP_CLASSES:
                return ""
            forms = self.morphology.normalize(word)
        except UnsupportedWordError:
            logger.debug("skipping word=%r", word)
            return ""
        return forms[0] if forms else ""

    def extract_lemmas(self, html: str) -> Counter[str]:
        lemmas: Counter[str] = Counter()
        for word in split_words(html_to_text(html)):
            if is_skipped(word):
                continue
            lemma = self._lemma(word)
            if lemma:
                lemmas[lemma] += 1
        return lemmas

    def lemma_of(self, word: str) -> str:
        prepared = (word or "").strip().lower()
        if is_skipped(prepared):
            return ""
        return self._lemma(prepared)
