#!/usr/bin/env python3
"""moderation.py

Automated message classifier for room chat.

Every message is reduced to two comparison forms before any lookup:

    normalize   lowercase, Turkish letters folded to ASCII, letter stretches
                of 3+ cut to 2, punctuation runs turned into one space
    squish      the normalized text with all whitespace removed, so spaced
                out words ("s a t ı ş") still line up with the term lists

Terms are compiled into patterns where every letter may repeat ("satis"
matches "saatiss"), which keeps a verdict stable when letters are stretched.

Illegal-sale detection always wins over the abuse checks. The abuse checks
are flags only; a message that trips several categories is still one strike.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable


class Verdict(str, Enum):
    ILLEGAL_SALE = "illegal_sale"
    ABUSIVE = "abusive"
    CLEAN = "clean"


@dataclass(frozen=True)
class AbuseFlags:
    profanity: bool = False
    harassment: bool = False
    hate: bool = False

    @property
    def any(self) -> bool:
        return self.profanity or self.harassment or self.hate


# ────────────────────────────────────────────────────────────
# Text forms
# ────────────────────────────────────────────────────────────

_FOLD = str.maketrans({
    "ç": "c",
    "ğ": "g",
    "ı": "i",
    "ö": "o",
    "ş": "s",
    "ü": "u",
    "â": "a",
    "î": "i",
    "û": "u",
})

_STRETCH_RE = re.compile(r"([^\W\d_])\1{2,}")
_NON_ALNUM_RE = re.compile(r"[\W_]+")
_SPACE_RE = re.compile(r"\s+")


def normalize(text: str | None) -> str:
    s = str(text or "")
    # "İ".lower() yields "i" + combining dot; fold it before lowercasing.
    s = s.replace("İ", "i").lower().replace("\u0307", "")
    s = s.translate(_FOLD)
    s = _STRETCH_RE.sub(r"\1\1", s)
    s = _NON_ALNUM_RE.sub(" ", s)
    return s.strip()


def squish(text: str | None) -> str:
    return _SPACE_RE.sub("", normalize(text))


# ────────────────────────────────────────────────────────────
# Term lists
# ────────────────────────────────────────────────────────────

DRUG_TERMS = (
    "uyuşturucu", "kokain", "eroin", "esrar", "bonzai", "skunk",
    "metamfetamin", "amfetamin", "ekstazi", "extasy", "ecstasy",
    "kaptagon", "captagon", "cocaine", "heroin", "methamphetamine",
    "amphetamine", "mdma", "marijuana", "marihuana",
)

SALE_TERMS = (
    "satış", "satılık", "satıyorum", "satıyoruz", "satarım", "fiyat",
    "teslimat", "kapıda ödeme", "sipariş", "for sale", "selling", "sell",
    "price", "delivery",
)

PROFANITY_TERMS = (
    "amk", "amına", "orospu", "siktir", "sikerim", "sikeyim", "yarrak",
    "pezevenk", "gavat", "kahpe", "şerefsiz",
    "fuck", "shit", "bullshit", "motherfucker", "bitch", "asshole", "bastard",
)

# Profanity this short is also a chunk of everyday word joins ("i am in a").
SHORT_PROFANITY_LEN = 5

HARASSMENT_TERMS = (
    "gebertirim", "öldürürüm", "seni öldüreceğim", "seni bulurum",
    "kendini öldür", "evini biliyorum",
    "kill yourself", "i will kill you", "i will find you",
    "i know where you live",
)

# Contact handoff: "{telegram|whatsapp|dm}[dan/den] {ver|yaz|gel}".
CONTACT_CHANNELS = ("telegram", "whatsapp", "dm")
CONTACT_ACTIONS = ("ver", "yaz", "gel", "give", "write", "come")

# Generalized targeting phrasing; no group is named.
HATE_TARGETS = (
    "hepsi", "hepiniz", "hepsini", "sizin gibiler", "senin gibiler",
    "bunların hepsi", "all of you", "all of them", "you people",
    "your kind", "people like you",
)
HATE_CALLS = (
    "ölmeli", "gebermeli", "gebersin", "yok edilmeli", "yakılmalı",
    "temizlenmeli", "should die", "must die", "should be wiped out",
    "should be exterminated", "do not deserve to live",
)
HATE_OPENERS = ("kahrolsun", "death to", "exterminate")


def _stretchy(term: str) -> str:
    """Pattern for one squished term, each letter allowed to repeat."""
    return "".join(re.escape(ch) + "+" for ch in squish(term))


def _spaced(term: str) -> str:
    """Pattern for a short term spelled out letter by letter ("a m k")."""
    return " ".join(re.escape(ch) + "+" for ch in squish(term))


def _alternation(terms: Iterable[str]) -> str:
    parts = sorted({_stretchy(t) for t in terms if squish(t)}, key=len, reverse=True)
    return "(?:" + "|".join(parts) + ")"


def _phrase_pattern(left: Iterable[str], right: Iterable[str], joiner: str = r"\s*") -> re.Pattern:
    return re.compile(_alternation(left) + joiner + _alternation(right))


class _Terms:
    """Compiled term list.

    Terms are searched in both text forms. Terms of at most `short_len`
    letters turn up inside ordinary word joins once whitespace is dropped
    ("tamam kanka" squishes to "tamamkanka"), so those only match in the
    normalized form at the start of a word, either written together or
    spelled out one letter per word.
    """

    def __init__(self, terms: Iterable[str], short_len: int = 0) -> None:
        long_terms, short_terms = [], []
        for term in terms:
            (short_terms if len(squish(term)) <= short_len else long_terms).append(term)

        self.long_re = re.compile(_alternation(long_terms)) if long_terms else None
        self.short_re = None
        if short_terms:
            together = _alternation(short_terms)
            spaced = "|".join(sorted({_spaced(t) for t in short_terms}, key=len, reverse=True))
            self.short_re = re.compile(rf"\b(?:{together}|(?:{spaced})\b)")

    def found(self, forms: tuple[str, str]) -> bool:
        if self.long_re is not None and _found(self.long_re, forms):
            return True
        norm = forms[0]
        return bool(norm) and self.short_re is not None and self.short_re.search(norm) is not None


_DRUG = _Terms(DRUG_TERMS)
_SALE = _Terms(SALE_TERMS)
_PROFANITY = _Terms(PROFANITY_TERMS, short_len=SHORT_PROFANITY_LEN)
_HARASSMENT = _Terms(HARASSMENT_TERMS)
_CONTACT_RE = _phrase_pattern(CONTACT_CHANNELS, CONTACT_ACTIONS, joiner=r"(?:dan|den|tan|ten)?\s*")
_HATE_RES = (
    _phrase_pattern(HATE_TARGETS, HATE_CALLS),
    _phrase_pattern(HATE_OPENERS, HATE_TARGETS),
)


def _forms(text: str | None) -> tuple[str, str]:
    norm = normalize(text)
    return norm, _SPACE_RE.sub("", norm)


def _found(pattern: re.Pattern, forms: tuple[str, str]) -> bool:
    return any(pattern.search(f) for f in forms if f)


# ────────────────────────────────────────────────────────────
# Checks
# ────────────────────────────────────────────────────────────

def is_illegal_sale(text: str | None) -> bool:
    forms = _forms(text)
    if not _DRUG.found(forms):
        return False
    return _SALE.found(forms) or _found(_CONTACT_RE, forms)


def abuse_flags(text: str | None) -> AbuseFlags:
    forms = _forms(text)
    return AbuseFlags(
        profanity=_PROFANITY.found(forms),
        harassment=_HARASSMENT.found(forms),
        hate=any(_found(p, forms) for p in _HATE_RES),
    )


def classify(text: str | None) -> Verdict:
    if is_illegal_sale(text):
        return Verdict.ILLEGAL_SALE
    if abuse_flags(text).any:
        return Verdict.ABUSIVE
    return Verdict.CLEAN
