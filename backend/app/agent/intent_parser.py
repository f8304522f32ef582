"""
Rule-based intent resolution. NO AI.

Turns free text into an (product, quantity) Intent against the current
catalog snapshot. Pure function of its inputs: no database, no network.

Product name resolution:
1. Substring pass: every catalog name (normalized) contained in the normalized
   prompt is a candidate; the longest one wins ("paracetamol 500" beats
   "paracetamol").
2. Token-overlap pass, only when pass 1 found nothing: words longer than
   2 characters shared between prompt and name; highest overlap wins,
   at least one shared word required.
3. Nothing matched: empty product name. This is a normal outcome, the policy
   gate rejects it as unresolved.
"""
import logging
import re
from typing import Iterable, Optional

from app.agent.entities import Intent, Product

logger = logging.getLogger(__name__)

# Punctuation replaced by spaces during normalization
PUNCTUATION = re.compile(r"[.,/#!$%^&*;:{}=\-_`~()?\"'\[\]\\]")
WHITESPACE = re.compile(r"\s+")
INTEGER_LITERAL = re.compile(r"\b(\d+)\b")

ORDER_WORDS = re.compile(r"(order|buy|get|need|want)", re.IGNORECASE)
DIGIT = re.compile(r"\d+")
GREETINGS = {"hi", "hello", "hey", "namaste", "thanks", "thank you"}

MIN_TOKEN_LENGTH = 3


def normalize_text(value: Optional[str]) -> str:
    """
    Lowercase, punctuation to spaces, collapse whitespace, trim.

    Examples:
        "Dolo-650, please!" -> "dolo 650 please"
        "  PARACETAMOL   XL " -> "paracetamol xl"
    """
    text = (value or "").lower()
    text = PUNCTUATION.sub(" ", text)
    return WHITESPACE.sub(" ", text).strip()


def extract_quantity(text: Optional[str]) -> int:
    """First integer literal in the raw text, default 1, never below 1."""
    match = INTEGER_LITERAL.search(text or "")
    if not match:
        return 1
    return max(1, int(match.group(1)))


def _tokens(normalized: str) -> list:
    return [t for t in normalized.split(" ") if len(t) >= MIN_TOKEN_LENGTH]


def match_by_substring(prompt_norm: str, catalog: Iterable[Product]) -> str:
    best = ""
    best_len = -1
    for product in catalog:
        norm = normalize_text(product.name)
        if not norm:
            continue
        if norm in prompt_norm and len(norm) > best_len:
            best = product.name
            best_len = len(norm)
    return best


def match_by_token_overlap(prompt_norm: str, catalog: Iterable[Product]) -> str:
    prompt_tokens = set(_tokens(prompt_norm))
    best_name = ""
    best_score = 0
    for product in catalog:
        score = sum(1 for token in _tokens(normalize_text(product.name)) if token in prompt_tokens)
        if score > best_score:
            best_score = score
            best_name = product.name
    return best_name if best_score >= 1 else ""


def resolve(text: str, catalog: Iterable[Product]) -> Intent:
    """Resolve free text into an Intent. Never raises on unmatched input."""
    products = list(catalog)
    prompt_norm = normalize_text(text)
    quantity = extract_quantity(text)

    name = match_by_substring(prompt_norm, products)
    source = "substring"
    if not name:
        name = match_by_token_overlap(prompt_norm, products)
        source = "token_overlap"

    if name:
        logger.info(f"[IntentParser] '{text[:80]}' -> product='{name}' ({source}), qty={quantity}")
    else:
        logger.info(f"[IntentParser] '{text[:80]}' -> unresolved, qty={quantity}")

    return Intent(product_name_guess=name, quantity=quantity)


def is_greeting(text: Optional[str]) -> bool:
    return (text or "").strip().lower() in GREETINGS


def looks_like_order(text: Optional[str]) -> bool:
    """
    Cheap pre-filter run before resolution.

    An order mentions an order verb (order/buy/get/need/want) or a number.
    Greetings never count as orders.
    """
    t = (text or "").strip().lower()
    if not t or is_greeting(t):
        return False
    return bool(ORDER_WORDS.search(t) or DIGIT.search(t))
