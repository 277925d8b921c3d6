"""Status vocabularies and the mapping of legacy status labels onto them.

Every vocabulary lists the same seven pipeline stages in the same order, so a
label from one vocabulary maps onto the label at the same index in another.
"""
import re
from functools import lru_cache

VOCABULARIES: dict[str, tuple[str, ...]] = {
    "en": (
        "Planned",
        "Applied",
        "Interviewing",
        "Offer",
        "Hired",
        "Rejected",
        "On Hold",
    ),
    "de": (
        "Geplant",
        "Beworben",
        "Vorstellungsgespräch",
        "Angebot",
        "Eingestellt",
        "Abgelehnt",
        "Zurückgestellt",
    ),
}


def statuses_for(locale: str) -> list[str]:
    try:
        return list(VOCABULARIES[locale])
    except KeyError:
        raise ValueError(
            f"Unknown locale '{locale}'. Known: {', '.join(VOCABULARIES)}"
        ) from None


@lru_cache(maxsize=None)
def _legacy_pattern(label: str) -> re.Pattern:
    """Match ``label`` or any copy of it whose UTF-8 bytes were decoded as Latin-1.

    Besides the clean two-character rendering (``ä`` -> ``Ã¤``) the pattern
    accepts the lead character followed by a replacement character or by
    nothing at all, which is what survives when the second byte got lost.
    """
    parts = []
    for ch in label:
        if ord(ch) < 128:
            parts.append(re.escape(ch))
            continue
        raw = ch.encode("utf-8")
        options = {re.escape(ch)}
        for codec in ("latin-1", "cp1252"):
            options.add(re.escape(raw.decode(codec, errors="replace")))
        lead = raw[:1].decode("latin-1")
        options.add(re.escape(lead) + "[�\x80-\xff]?")
        parts.append("(?:" + "|".join(sorted(options)) + ")")
    return re.compile("".join(parts))


def is_mis_encoded(value: str) -> bool:
    return any(
        label != value and _legacy_pattern(label).fullmatch(value)
        for vocabulary in VOCABULARIES.values()
        for label in vocabulary
    )


def map_status(value: str | None, statuses: list[str]) -> str | None:
    """Translate a stored status into the active vocabulary.

    Values with no known counterpart are returned unchanged.
    """
    if value is None or value in statuses:
        return value

    for label in statuses:
        if _legacy_pattern(label).fullmatch(value):
            return label

    for vocabulary in VOCABULARIES.values():
        if len(vocabulary) != len(statuses):
            continue
        for index, label in enumerate(vocabulary):
            if _legacy_pattern(label).fullmatch(value):
                return statuses[index]

    return value
