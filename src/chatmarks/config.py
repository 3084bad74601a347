"""Central configuration for paths, model settings and heuristic constants."""

import os
from pathlib import Path

# Data directory, override with CHATMARKS_DATA_DIR env var
DATA_DIR = Path(
    os.environ.get("CHATMARKS_DATA_DIR", str(Path.home() / ".chatmarks"))
)

# Database path
SQLITE_PATH = DATA_DIR / "chatmarks.db"

# Generation collaborator
LLM_MODEL = os.environ.get("CHATMARKS_MODEL", "gpt-4o-mini")
SEGMENT_MAX_TOKENS = int(os.environ.get("CHATMARKS_SEGMENT_MAX_TOKENS", "1500"))

# Significance filter
MIN_SIGNIFICANT_CHARS = 10
LONG_MESSAGE_CHARS = 60
FILLER_PHRASES = {
    "ok", "okay", "k", "thanks", "thank you", "thx", "ty", "hi", "hello",
    "hey", "yes", "no", "yep", "nope", "sure", "cool", "great", "nice",
    "got it", "perfect", "awesome",
}
TRIGGER_WORDS = {
    "how", "what", "why", "explain", "problem", "issue", "tell",
    "create", "generate", "write",
}

# Fuzzy bookmark matching
MATCH_TITLE_IN_MESSAGE = 10
MATCH_MESSAGE_IN_TITLE = 8
MATCH_DESCRIPTION_IN_MESSAGE = 5
MATCH_MESSAGE_IN_DESCRIPTION = 4
MATCH_WORD_OVERLAP = 2
MATCH_THRESHOLD = 3

# Titles
MAX_TITLE_WORDS = 10
QUESTION_CLAUSE_WORDS = 8
DECISION_CLAUSE_WORDS = 6

# Rule-based segmentation
MIN_CHUNK_SIZE = 2
MAX_CHUNK_SIZE = 8
RULE_SEGMENT_SCORE = 0.6
SUMMARY_CHARS = 150

# LLM-assisted segmentation
SEGMENT_WINDOW = 20
SEGMENT_CACHE_TTL = 30.0
TRANSCRIPT_LINE_CHARS = 300
DEFAULT_SEGMENT_CONFIDENCE = 0.7

# Key moments
MAX_KEY_MOMENTS = 2
QUESTION_MOMENT_CHARS = 50
LONG_ANSWER_CHARS = 200

# Chat context window handed to the chat model
LLM_CONTEXT_MESSAGES = 15
