"""Known targets (account types and credit services) and their display data."""

from __future__ import annotations

from src.eligibility.errors import UnknownTargetError
from src.models.enums import TargetType

# French display names per account type
ACCOUNT_NAMES: dict[str, str] = {
    "S01": "Compte Standard",
    "S02": "Épargne Obligatoire",
    "S03": "Caution",
    "S04": "Crédit",
    "S05": "Bwakisa Carte",
    "S06": "Amendes",
}

# French display names per credit service
SERVICE_NAMES: dict[str, str] = {
    "BOMBE": "Crédit BOMBÉ",
    "TELEMA": "Crédit TELEMA",
    "MOPAO": "Crédit MOPAO",
    "VIMBISA": "Crédit VIMBISA",
    "LIKELEMBA": "Crédit LIKÉLEMBA",
}

TARGET_NAMES: dict[TargetType, dict[str, str]] = {
    TargetType.ACCOUNT: ACCOUNT_NAMES,
    TargetType.SERVICE: SERVICE_NAMES,
}


def target_codes(target_type: TargetType) -> list[str]:
    """All codes of one target type, in display order."""
    return list(TARGET_NAMES[target_type])


def all_targets(target_type: TargetType | None = None) -> list[tuple[TargetType, str]]:
    """(type, code) pairs to evaluate — every target, or every target of one type."""
    types = [target_type] if target_type is not None else list(TargetType)
    return [(t, code) for t in types for code in target_codes(t)]


def parse_target_type(target_type: TargetType | str, target_code: str = "*") -> TargetType:
    if isinstance(target_type, TargetType):
        return target_type
    try:
        return TargetType(target_type.strip().upper())
    except ValueError:
        raise UnknownTargetError(target_type, target_code) from None


def canonical_code(target_code: str) -> str:
    """Codes are matched case-insensitively and with the accent stripped from
    BOMBÉ/LIKÉLEMBA, since the admin UI sends both spellings.
    """
    return target_code.strip().upper().replace("É", "E")


def normalize_target(target_type: TargetType | str, target_code: str) -> tuple[TargetType, str]:
    """Validate and canonicalize a (type, code) pair."""
    ttype = parse_target_type(target_type, target_code)
    code = canonical_code(target_code)
    if code not in TARGET_NAMES[ttype]:
        raise UnknownTargetError(ttype.value, target_code)
    return ttype, code


def target_name(target_type: TargetType, target_code: str) -> str:
    """Human-readable name, falling back to the raw code."""
    return TARGET_NAMES[target_type].get(target_code, target_code)


def target_url(target_type: TargetType, target_code: str) -> str:
    """Dashboard page of the account or credit product."""
    if target_type == TargetType.ACCOUNT:
        return f"/dashboard/accounts/{target_code}"
    return f"/dashboard/credit/{target_code.lower()}"


def find_target(target_code: str) -> tuple[TargetType, str]:
    """Resolve a bare code; account and service codes never collide."""
    code = canonical_code(target_code)
    for ttype, names in TARGET_NAMES.items():
        if code in names:
            return ttype, code
    raise UnknownTargetError("*", target_code)
