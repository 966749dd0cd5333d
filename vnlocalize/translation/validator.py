"""
Translation Validation Module

Advisory integrity checks on provider output. Findings never block a commit;
they are logged and returned with the run result.
"""

from typing import List

from vnlocalize.engines.exceptions import PlaceholderIntegrityWarning
from vnlocalize.logger import get_logger
from vnlocalize.script.masking import count_tokens, find_leaked_placeholders
from vnlocalize.script.models import DialogItem

logger = get_logger(__name__)

KIND_MISSING = "missing"
KIND_DUPLICATED = "duplicated"
KIND_LEAKED = "leaked"


def check_placeholders(item: DialogItem, masked_output: str,
                       unmasked_output: str) -> List[PlaceholderIntegrityWarning]:
    """
    Compare the tokens a provider returned against the item's placeholder map.

    Args:
        item: The dialogue item that was sent
        masked_output: Provider text for the item, before unmasking
        unmasked_output: The same text after unmasking

    Returns:
        One warning per missing, duplicated or leaked token
    """
    warnings: List[PlaceholderIntegrityWarning] = []
    counts = count_tokens(masked_output)

    for token in item.placeholder_map:
        seen = counts.get(token, 0)
        if seen == 0:
            warnings.append(PlaceholderIntegrityWarning(item.id, KIND_MISSING, token))
        elif seen > 1:
            warnings.append(PlaceholderIntegrityWarning(item.id, KIND_DUPLICATED, token))

    # Token-shaped text that is part of the source quote is not a leak
    literal = set(find_leaked_placeholders(item.quote))
    for token in find_leaked_placeholders(unmasked_output):
        if token in literal:
            continue
        warnings.append(PlaceholderIntegrityWarning(item.id, KIND_LEAKED, token))

    for warning in warnings:
        logger.warning(f"  Placeholder check: {warning}")

    return warnings
