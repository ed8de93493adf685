"""Deciding whether a message warrants catalog evidence, and extracting terms."""

from __future__ import annotations

import re
from typing import List

MIN_QUERY_CHARS = 4
MIN_TERM_CHARS = 3
MAX_TERMS = 8
MAX_GREETING_WORDS = 3

# Keep price symbols; everything else that is not a word character is a separator.
PUNCTUATION_RE = re.compile(r"[^\w\s₹$€£]+", re.UNICODE)

GREETING_WORDS = {
    "hi", "hii", "hello", "hey", "hola", "yo", "namaste", "namaskar", "hlo",
    "thanks", "thank", "thx", "you", "ok", "okay", "good", "morning", "evening",
    "afternoon", "night", "bye", "goodbye", "there", "dhanyavad", "shukriya",
}

NON_SHOPPING_RE = re.compile(
    r"\b(joke|jokes|funny|riddle|poem|poetry|story|translate|translation|meaning of|"
    r"weather|temperature outside|forecast|news|headlines|cricket score|score of|"
    r"capital of|who is|who was|history of|solve|equation|homework|write code|"
    r"python|javascript|recipe|lyrics|horoscope|chutkula|mausam)\b",
    re.IGNORECASE,
)

SHOPPING_RE = re.compile(
    r"(₹|\$|\brs\.?\b|\binr\b|\bunder\b|\bbelow\b|\bbudget\b|\bprice\b|\bpriced\b|\bcost\b|"
    r"\bcheap\b|\bcheapest\b|\baffordable\b|\bbuy\b|\bpurchase\b|\border\b|\bdeal\b|\bdeals\b|"
    r"\bdiscount\b|\boffer\b|\bsale\b|\bbest\b|\brecommend\b|\bsuggest\b|\bin stock\b|"
    r"\bkharid\w*|\bsasta\b|\bsasti\b|\bkitne\b|\bkimat\b|\bdaam\b)",
    re.IGNORECASE,
)

STOP_WORDS = {
    # English function words and shopping filler.
    "the", "and", "for", "with", "are", "was", "were", "you", "your", "yours", "our",
    "can", "could", "would", "should", "will", "shall", "have", "has", "had", "this",
    "that", "these", "those", "there", "here", "what", "which", "who", "whom", "whose",
    "when", "where", "why", "how", "any", "some", "all", "not", "but", "from", "into",
    "about", "than", "then", "them", "they", "their", "its", "also", "just", "very",
    "too", "more", "most", "less", "least", "please", "show", "find", "give", "get",
    "want", "need", "looking", "look", "like", "good", "best", "better", "cheap",
    "cheapest", "buy", "purchase", "price", "prices", "priced", "cost", "under", "below",
    "above", "over", "budget", "around", "within", "between", "recommend", "suggest",
    "something", "anything", "items", "item", "product", "products", "option", "options",
    "one", "ones", "me", "mine", "does", "did", "doing", "is", "am", "be", "been",
    "available", "stock", "tell", "know", "let", "see", "much", "many",
    # Hindi (romanized) function words and filler.
    "hai", "hain", "kya", "koi", "mujhe", "muje", "chahiye", "chaiye", "wala", "wali",
    "wale", "liye", "ke", "ki", "ka", "ko", "se", "mein", "main", "aur", "bhi", "nahi",
    "nahin", "dikhao", "dikha", "batao", "bata", "kaun", "kaunsa", "konsa", "kitna",
    "kitne", "kitni", "tak", "andar", "acha", "accha", "achha", "sabse", "sasta",
    "sasti", "kuch", "yeh", "woh", "abhi", "hum", "tum", "aap", "apna", "mera", "meri",
    "plz", "pls",
}


def normalize_query(text: str) -> str:
    """Purpose: Lower-case a query and replace punctuation with spaces.
    Inputs/Outputs: Input is raw text; output is a cleaned lowercase string.
    Side Effects / State: None; pure function.
    Dependencies: Uses PUNCTUATION_RE, which keeps price symbols.
    Failure Modes: Returns an empty string for falsy input.
    If Removed: Punctuated words ("shoes?") would never match catalog text.
    Testing Notes: "Red shoes, under ₹2000!" -> "red shoes under ₹2000".
    """
    if not text:
        return ""
    cleaned = PUNCTUATION_RE.sub(" ", text.lower())
    return " ".join(cleaned.split())


def extract_search_terms(text: str) -> List[str]:
    """Purpose: Extract de-duplicated catalog search terms from a query.
    Inputs/Outputs: Input is query text; output is up to 8 terms in first-seen order.
    Side Effects / State: None; pure function.
    Dependencies: Uses normalize_query and STOP_WORDS.
    Failure Modes: None; returns [] when nothing qualifies.
    If Removed: Category and candidate queries have nothing to match on.
    Testing Notes: Re-running on " ".join(terms) returns the same list; no term is
        shorter than 3 characters.
    """
    # Dedupe on the lowercased token, which normalize_query already produced.
    terms: List[str] = []
    seen = set()
    for token in normalize_query(text).split():
        if len(token) < MIN_TERM_CHARS or token in STOP_WORDS or token in seen:
            continue
        seen.add(token)
        terms.append(token)
        if len(terms) >= MAX_TERMS:
            break
    return terms


def is_pure_greeting(text: str) -> bool:
    words = normalize_query(text).split()
    return 0 < len(words) <= MAX_GREETING_WORDS and all(word in GREETING_WORDS for word in words)


def has_shopping_vocabulary(text: str) -> bool:
    return bool(SHOPPING_RE.search(text or ""))


def should_use_catalog(text: str) -> bool:
    """Purpose: Decide whether a message warrants catalog evidence.
    Inputs/Outputs: Input is the latest user text; output is True to run the lookup.
    Side Effects / State: None; pure function.
    Dependencies: Uses is_pure_greeting, NON_SHOPPING_RE, SHOPPING_RE, extract_search_terms.
    Failure Modes: Heuristic; shopping questions phrased without any usable term or
        price vocabulary are skipped.
    If Removed: Greetings and jokes would trigger catalog queries.
    Testing Notes: "hi there" and "tell me a joke" -> False; "red shoes" -> True.
    """
    query = (text or "").strip()
    if len(query) < MIN_QUERY_CHARS:
        return False
    if is_pure_greeting(query):
        return False
    if NON_SHOPPING_RE.search(query):
        return False
    return has_shopping_vocabulary(query) or bool(extract_search_terms(query))
