from src.identity.external_ids import to_external_set_id
from src.identity.locator import (
    find_by_prefixed_number,
    find_card,
    find_sets_by_total,
    search_cards_by_name,
)
from src.identity.parser import (
    BareNumber,
    NameSearch,
    ParsedInput,
    PrefixedNumber,
    SetAndNumber,
    parse_card_input,
)
from src.identity.set_codes import resolve_set_code

__all__ = [
    "BareNumber",
    "NameSearch",
    "ParsedInput",
    "PrefixedNumber",
    "SetAndNumber",
    "find_by_prefixed_number",
    "find_card",
    "find_sets_by_total",
    "parse_card_input",
    "resolve_set_code",
    "search_cards_by_name",
    "to_external_set_id",
]
