# Central place for tuning constants that are not worth an env var.

# Shared quota pool for every caller of one embedding gateway
EMBEDDING_RATE_IDENTIFIER = "embedding-global"

# Lexical fallback scores (binary containment, not a relevance ranking)
FALLBACK_CONTAINS_SCORE = 0.8
FALLBACK_MISS_SCORE = 0.5

# Memory tool limits
TOOL_LIST_DEFAULT = 10
TOOL_LIST_MIN = 1
TOOL_LIST_MAX = 50
FORGET_SCAN_LIMIT = 20          # recent memories scanned by forget-by-content
FORGET_SUGGESTIONS = 5
SUGGESTION_PREVIEW_CHARS = 100

IMPORTANCE_RANK = {"low": 0, "medium": 1, "high": 2}
