# Copyright (c) 2026 Pointmatic
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.

"""Month-name tables for English and localized Takeout exports."""

from __future__ import annotations

ENGLISH_MONTHS: dict[str, int] = {
    "jan": 1, "january": 1,
    "feb": 2, "february": 2,
    "mar": 3, "march": 3,
    "apr": 4, "april": 4,
    "may": 5,
    "jun": 6, "june": 6,
    "jul": 7, "july": 7,
    "aug": 8, "august": 8,
    "sep": 9, "sept": 9, "september": 9,
    "oct": 10, "october": 10,
    "nov": 11, "november": 11,
    "dec": 12, "december": 12,
}  # fmt: skip

_FRENCH: dict[str, int] = {
    "janvier": 1, "janv": 1,
    "février": 2, "févr": 2, "fevrier": 2,
    "mars": 3,
    "avril": 4, "avr": 4,
    "mai": 5,
    "juin": 6,
    "juillet": 7, "juil": 7,
    "août": 8, "aout": 8,
    "septembre": 9,
    "octobre": 10,
    "novembre": 11,
    "décembre": 12, "déc": 12, "decembre": 12,
}  # fmt: skip

_GERMAN: dict[str, int] = {
    "januar": 1, "jänner": 1,
    "februar": 2,
    "märz": 3, "mär": 3, "maerz": 3,
    "mai": 5,
    "juni": 6,
    "juli": 7,
    "oktober": 10, "okt": 10,
    "dezember": 12, "dez": 12,
}  # fmt: skip

_SPANISH: dict[str, int] = {
    "enero": 1, "ene": 1,
    "febrero": 2,
    "marzo": 3,
    "abril": 4, "abr": 4,
    "mayo": 5,
    "junio": 6,
    "julio": 7,
    "agosto": 8, "ago": 8,
    "septiembre": 9, "setiembre": 9,
    "octubre": 10,
    "noviembre": 11,
    "diciembre": 12, "dic": 12,
}  # fmt: skip

_PORTUGUESE: dict[str, int] = {
    "janeiro": 1,
    "fevereiro": 2, "fev": 2,
    "março": 3, "marco": 3,
    "maio": 5, "mai": 5,
    "junho": 6,
    "julho": 7,
    "setembro": 9, "set": 9,
    "outubro": 10, "out": 10,
    "dezembro": 12,
}  # fmt: skip

_ITALIAN: dict[str, int] = {
    "gennaio": 1, "gen": 1,
    "febbraio": 2,
    "aprile": 4,
    "maggio": 5, "mag": 5,
    "giugno": 6, "giu": 6,
    "luglio": 7, "lug": 7,
    "settembre": 9,
    "ottobre": 10, "ott": 10,
    "dicembre": 12,
}  # fmt: skip

_DUTCH: dict[str, int] = {
    "januari": 1,
    "februari": 2,
    "maart": 3, "mrt": 3,
    "mei": 5,
    "augustus": 8,
}  # fmt: skip

LOCALIZED_MONTHS: dict[str, int] = {}
for _table in (_FRENCH, _GERMAN, _SPANISH, _PORTUGUESE, _ITALIAN, _DUTCH):
    LOCALIZED_MONTHS.update(_table)

# Day-first English ("11 August 2025") is not a Takeout shape either, so it
# is resolved by the same fallback as the localized names.
DAY_FIRST_MONTHS: dict[str, int] = {**ENGLISH_MONTHS, **LOCALIZED_MONTHS}


def lookup_month(word: str, table: dict[str, int]) -> int | None:
    """Return the 1-based month for ``word`` (case- and dot-insensitive)."""
    return table.get(word.lower().rstrip("."))
