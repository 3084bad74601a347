"""Pure text heuristics: significance filtering, topic scoring and title extraction.

Everything here is deterministic string/regex inspection. The only exception is
``extract_decision_title``, which may ask the generation collaborator for a
single keyword before falling back to a fixed vocabulary.
"""

from __future__ import annotations

import logging
import re
from collections import Counter

from .config import (
    DECISION_CLAUSE_WORDS,
    FILLER_PHRASES,
    LONG_MESSAGE_CHARS,
    MAX_TITLE_WORDS,
    MIN_SIGNIFICANT_CHARS,
    QUESTION_CLAUSE_WORDS,
    TRIGGER_WORDS,
)
from .generation import Generator

logger = logging.getLogger(__name__)

TOPIC_KEYWORDS: dict[str, list[str]] = {
    "technical": ["code", "function", "api", "database", "server", "implementation", "bug", "error"],
    "design": ["ui", "ux", "design", "layout", "component", "interface", "visual", "color"],
    "planning": ["plan", "strategy", "roadmap", "timeline", "milestone", "goal", "objective"],
    "research": ["research", "analysis", "study", "investigation", "explore", "examine"],
    "general": ["help", "question", "problem", "solution", "advice", "suggestion"],
}

# Category taxonomy for segment titles, checked in order
CATEGORY_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("Development", ("technical", "code", "development", "api", "bug", "function", "implement")),
    ("Design", ("design", "ui", "interface", "layout", "component", "style")),
    ("Planning", ("planning", "plan", "strategy", "roadmap", "milestone")),
    ("Research", ("research", "analysis", "study", "investigation")),
]

_BUCKET_CATEGORIES = {
    "technical": "Development",
    "design": "Design",
    "planning": "Planning",
    "research": "Research",
}

STOPWORDS = {
    "the", "and", "for", "that", "this", "with", "you", "your", "are", "was",
    "have", "has", "can", "could", "would", "should", "will", "what", "how",
    "why", "when", "where", "which", "who", "does", "did", "not", "but", "from",
    "they", "them", "their", "there", "then", "than", "into", "about", "just",
    "like", "also", "some", "any", "all", "one", "its", "it's", "i'm", "let",
    "use", "using", "here", "want", "need", "get", "make", "more", "very",
}

DECISION_TERMS = ("solution", "decided", "conclusion", "recommend")
DECISION_CONTEXT = ("therefore", "should", "implement", "choose")
DECISION_VOCABULARY = {
    "solution": "Solution",
    "conclusion": "Conclusion",
    "decided": "Decision",
    "recommend": "Recommendation",
}

KEYWORD_SCHEMA = {
    "type": "object",
    "properties": {"keyword": {"type": "string"}},
    "required": ["keyword"],
}

_FILLER_RE = re.compile(
    r"^(?:" + "|".join(re.escape(p) for p in sorted(FILLER_PHRASES, key=len, reverse=True)) + r")[\s.!?]*$",
    re.IGNORECASE,
)
_TRIGGER_RE = re.compile(r"\b(?:" + "|".join(sorted(TRIGGER_WORDS)) + r")\b", re.IGNORECASE)
_WORD_RE = re.compile(r"[a-zA-Z][a-zA-Z'+#-]*")
_QUESTION_RE = re.compile(r"[^.?!\n]*\?")
_LEADING_CLAUSE_RE = re.compile(r"[^.?!\n,;:]+")
_HOW_AUX_RE = re.compile(
    r"^(?:do|does|did|can|could|should|would|might|to)\s+(?:i|we|you|one)?\s*",
    re.IGNORECASE,
)
_DECISION_CLAUSE_RE = re.compile(
    r"\b(?:solution|decided|conclusion|recommend)\w*\b[\s,:]*"
    r"(?:(?:is|was|would be)\s+)?(?:(?:to|that|on)\s+)?([^.\n!?]+)",
    re.IGNORECASE,
)
_FENCE_LANG_RE = re.compile(r"```[ \t]*([a-zA-Z+#]+)")
_FUNCTION_RE = re.compile(r"\bfunction\s+([A-Za-z_$][\w$]*)")
_DEF_RE = re.compile(r"\bdef\s+([A-Za-z_]\w*)")
_CLASS_RE = re.compile(r"\bclass\s+([A-Za-z_]\w*)")
_COMPONENT_RE = re.compile(r"\b(?:const|let|var)\s+([A-Z]\w*)\s*=\s*(?:\([^)]*\)|\w+)\s*=>")
_CODE_KEYWORD_RE = re.compile(r"\b(?:function|def|class|import|const|return)\b")

# Ordered: first hit wins
LANGUAGE_LABELS: list[tuple[tuple[str, ...], str]] = [
    (("jsx", "tsx", "react"), "React Component"),
    (("typescript", "ts"), "TypeScript Code"),
    (("javascript", "js", "node"), "JavaScript Code"),
    (("python", "py"), "Python Code"),
    (("sql",), "SQL Query"),
    (("css", "scss"), "CSS Styles"),
    (("html",), "HTML Markup"),
    (("bash", "sh", "shell", "zsh"), "Shell Script"),
]
_PYTHON_DATA_WORDS = ("pandas", "dataframe", "numpy", "csv")


def truncate_words(text: str, max_words: int) -> str:
    words = text.split()
    return " ".join(words[:max_words])


def _capitalize(text: str) -> str:
    return text[:1].upper() + text[1:] if text else text


# -- Significance -------------------------------------------------------------

def is_significant(content: str) -> bool:
    """Return True if a message carries enough substance to be bookmarked."""
    text = content.strip()
    if len(text) < MIN_SIGNIFICANT_CHARS:
        return False
    if _FILLER_RE.match(text):
        return False
    if "?" in text or len(text) > LONG_MESSAGE_CHARS or "```" in text:
        return True
    return _TRIGGER_RE.search(text) is not None


# -- Topic buckets ------------------------------------------------------------

def score_topics(content: str) -> dict[str, float]:
    """Score content against each topic bucket (fraction of bucket words present)."""
    lowered = content.lower()
    return {
        topic: sum(1 for kw in keywords if kw in lowered) / len(keywords)
        for topic, keywords in TOPIC_KEYWORDS.items()
    }


def dominant_topic(contents: list[str]) -> str:
    totals: Counter[str] = Counter()
    for content in contents:
        totals.update(score_topics(content))
    topic, score = max(totals.items(), key=lambda kv: kv[1], default=("general", 0.0))
    return topic if score > 0 else "general"


def categorize(title: str, context: str = "") -> str:
    """Map a segment title (and optionally its text) onto the fixed category taxonomy."""
    title_words = set(_WORD_RE.findall(title.lower()))
    for category, keywords in CATEGORY_KEYWORDS:
        if any(w.startswith(kw) for w in title_words for kw in keywords):
            return category
    if context:
        return _BUCKET_CATEGORIES.get(dominant_topic([context]), "General")
    return "General"


def top_content_words(contents: list[str], limit: int = 3) -> list[str]:
    counts: Counter[str] = Counter()
    for content in contents:
        for word in _WORD_RE.findall(content.lower()):
            if len(word) > 3 and word not in STOPWORDS:
                counts[word] += 1
    # Counter.most_common keeps first-seen order for ties
    return [word for word, _ in counts.most_common(limit)]


# -- Titles -------------------------------------------------------------------

def has_code(content: str) -> bool:
    return "```" in content or len(_CODE_KEYWORD_RE.findall(content)) >= 2


def extract_question_title(content: str) -> str | None:
    """Title for a question, e.g. "How do I center a div?" -> "How to center a div"."""
    match = _QUESTION_RE.search(content)
    if not match:
        return None
    question = match.group(0).strip().rstrip("?").strip()
    if not question:
        return None

    lead, _, rest = question.partition(" ")
    lead = lead.lower()
    if lead == "how" and rest:
        clause = _HOW_AUX_RE.sub("", rest).strip() or rest
        return f"How to {truncate_words(clause, QUESTION_CLAUSE_WORDS)}"
    if lead in ("what", "why", "can", "are", "is") and rest:
        return f"{lead.capitalize()} {truncate_words(rest, QUESTION_CLAUSE_WORDS)}"

    clause = _LEADING_CLAUSE_RE.match(question)
    if not clause:
        return None
    return _capitalize(truncate_words(clause.group(0).strip(), QUESTION_CLAUSE_WORDS)) or None


def extract_code_title(content: str) -> str:
    """Title for a code-bearing message; falls back to "Code Example"."""
    for regex, suffix in ((_COMPONENT_RE, "Component"), (_CLASS_RE, "Class")):
        match = regex.search(content)
        if match:
            return f"{match.group(1)} {suffix}"
    for regex in (_FUNCTION_RE, _DEF_RE):
        match = regex.search(content)
        if match:
            return f"{match.group(1)} Function"

    lowered = content.lower()
    fence = _FENCE_LANG_RE.search(content)
    languages = {fence.group(1).lower()} if fence else set()
    languages.update(_WORD_RE.findall(lowered))
    for names, label in LANGUAGE_LABELS:
        if languages.intersection(names):
            if label == "Python Code" and any(w in lowered for w in _PYTHON_DATA_WORDS):
                return "Python Data"
            return label
    return "Code Example"


def is_decision(content: str) -> bool:
    lowered = content.lower()
    return any(t in lowered for t in DECISION_TERMS) and any(c in lowered for c in DECISION_CONTEXT)


def decision_clause(content: str) -> str | None:
    """Clause following the first decision term, or None if there is nothing usable."""
    match = _DECISION_CLAUSE_RE.search(content)
    if not match:
        return None
    words = [w for w in match.group(1).strip().split() if w.strip(",;:()\"'`")]
    if len(words) < 2:
        return None
    clause = " ".join(words[:DECISION_CLAUSE_WORDS]).strip(",;:()\"'` ")
    return _capitalize(clause) or None


def fallback_decision_title(content: str) -> str:
    lowered = content.lower()
    for term in DECISION_TERMS:
        if term in lowered:
            return DECISION_VOCABULARY[term]
    if "decision" in lowered:
        return "Decision"
    return "Key Point"


async def extract_decision_title(content: str, generator: Generator | None = None) -> str:
    """Title for a decision/conclusion message.

    Tries the clause after the trigger word, then a one-keyword request to the
    generator, then a fixed vocabulary keyed on the trigger word.
    """
    clause = decision_clause(content)
    if clause:
        return clause

    if generator is not None:
        prompt = (
            "Extract the single most important keyword or short phrase (1-3 words) "
            "describing the decision or conclusion in this message.\n"
            'Return JSON only with a top-level key named "keyword".\n\n'
            f"Message:\n{content[:1000]}"
        )
        try:
            result = await generator.generate_object(prompt, KEYWORD_SCHEMA)
        except Exception:
            logger.warning("Decision keyword extraction failed", exc_info=True)
        else:
            keyword = result.get("keyword") if isinstance(result, dict) else None
            if isinstance(keyword, str) and keyword.strip():
                return _capitalize(truncate_words(keyword.strip(), MAX_TITLE_WORDS))

    return fallback_decision_title(content)


def extract_title(content: str) -> str | None:
    """Deterministic title for any message, or None when nothing stands out."""
    if "?" in content:
        title = extract_question_title(content)
        if title:
            return title
    if has_code(content):
        return extract_code_title(content)
    if is_decision(content):
        return decision_clause(content)
    return None

