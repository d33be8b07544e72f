from __future__ import annotations

import pytest

from moderation import AbuseFlags, Verdict, abuse_flags, classify, is_illegal_sale, normalize, squish


class TestNormalize:
    def test_lowercases_and_folds_turkish_letters(self) -> None:
        assert normalize("ÇĞIİÖŞÜ çğıöşü") == "cgiiosu cgiosu"

    def test_dotted_capital_i_leaves_no_combining_mark(self) -> None:
        assert normalize("KOKAİN") == "kokain"

    def test_cuts_letter_stretches_to_two(self) -> None:
        assert normalize("saaaatııııış") == "saatiis"

    def test_digits_are_not_collapsed(self) -> None:
        assert normalize("1111") == "1111"

    def test_punctuation_runs_become_single_spaces(self) -> None:
        assert normalize("  hey!!!...you__there  ") == "hey you there"

    def test_empty_and_none(self) -> None:
        assert normalize("") == ""
        assert normalize(None) == ""

    def test_squish_removes_whitespace(self) -> None:
        assert squish("s a t ı ş") == "satis"


class TestIllegalSale:
    @pytest.mark.parametrize(
        "text",
        [
            "kokain satışı var",
            "KOKAİN SATIŞ",
            "esrar satılık, fiyat sorun",
            "cocaine for sale",
            "k o k a i n  s a t ı ş",
            "kokaiiiiin satıııış",
            "eroin var telegramdan yaz",
            "ecstasy var whatsapp'tan ver",
        ],
    )
    def test_drug_with_sale_or_contact_is_illegal(self, text: str) -> None:
        assert is_illegal_sale(text)
        assert classify(text) is Verdict.ILLEGAL_SALE

    @pytest.mark.parametrize(
        "text",
        [
            "kokain çok tehlikeli bir madde",
            "araba satılık",
            "telegramdan yaz bana",
        ],
    )
    def test_needs_both_a_drug_and_a_sale_signal(self, text: str) -> None:
        assert not is_illegal_sale(text)

    def test_sale_wins_over_profanity(self) -> None:
        assert classify("amk kokain satış") is Verdict.ILLEGAL_SALE


class TestAbuse:
    def test_profanity(self) -> None:
        flags = abuse_flags("siktir git")
        assert flags == AbuseFlags(profanity=True)
        assert flags.any

    def test_profanity_stretched_and_spaced(self) -> None:
        assert abuse_flags("s i k t i r").profanity
        assert abuse_flags("siiiiktir").profanity

    @pytest.mark.parametrize("text", ["amk", "AMK ya", "a m k", "shitty day", "f u c k off", "what bullshit"])
    def test_short_profanity_as_its_own_word(self, text: str) -> None:
        assert abuse_flags(text).profanity

    def test_harassment(self) -> None:
        assert abuse_flags("seni öldüreceğim").harassment
        assert abuse_flags("I know where you live").harassment

    def test_generalized_hate(self) -> None:
        assert abuse_flags("sizin gibiler ölmeli").hate
        assert abuse_flags("death to all of you").hate

    def test_several_categories_are_still_one_verdict(self) -> None:
        text = "siktir, seni öldüreceğim"
        flags = abuse_flags(text)
        assert flags.profanity and flags.harassment
        assert classify(text) is Verdict.ABUSIVE

    @pytest.mark.parametrize(
        "text",
        [
            "merhaba nasılsın",
            "hello everyone",
            "bugün hava çok güzel",
            "",
            "tamam kanka",
            "I am kind",
            "I am in a meeting",
            "this hit song is great",
            "rob itches his arm",
        ],
    )
    def test_clean_messages(self, text: str) -> None:
        assert not abuse_flags(text).any
        assert classify(text) is Verdict.CLEAN


class TestVerdictStability:
    @pytest.mark.parametrize(
        "text",
        ["kokain satış", "siktir git", "hello everyone", "sizin gibiler ölmeli"],
    )
    def test_casing_stretching_and_spacing_do_not_change_the_verdict(self, text: str) -> None:
        verdict = classify(text)
        stretched = "".join(ch * 4 if ch.isalpha() else ch for ch in text)
        assert classify(text.upper()) is verdict
        assert classify(stretched) is verdict
        assert classify(text.replace(" ", "")) is verdict
