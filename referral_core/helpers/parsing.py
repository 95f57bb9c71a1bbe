"""
Text helpers for provider output and for the static (no-AI) fallbacks.
"""
import json
import re
from collections import Counter
from typing import Any, Dict, List, Optional

SKILL_PATTERNS = [
    "react", "vue", "angular", "nextjs", "typescript", "javascript", "html", "css",
    "tailwind", "sass", "webpack", "vite",
    "node", "nodejs", "python", "java", "golang", "rust", "ruby", "php",
    "express", "fastapi", "django", "spring", "nestjs",
    "postgresql", "mysql", "mongodb", "redis", "elasticsearch", "dynamodb",
    "prisma", "typeorm", "sequelize",
    "aws", "gcp", "azure", "docker", "kubernetes", "terraform", "jenkins",
    "ci/cd", "github actions",
    "tensorflow", "pytorch", "pandas", "numpy", "spark", "airflow",
    "sql", "data science", "machine learning",
    "react native", "flutter", "swift", "kotlin", "ios", "android",
]

DOMAIN_KEYWORDS = {
    "frontend": ["frontend", "front-end", "react", "vue", "angular", "ui", "ux"],
    "backend": ["backend", "back-end", "api", "server", "microservices"],
    "fullstack": ["fullstack", "full-stack", "full stack"],
    "data": ["data engineer", "data science", "analytics", "etl", "pipeline"],
    "ml": ["machine learning", "ml", "deep learning", "ai", "nlp"],
    "devops": ["devops", "sre", "infrastructure", "platform", "cloud"],
    "mobile": ["mobile", "ios", "android", "react native", "flutter"],
    "product": ["product manager", "product owner", "pm"],
    "design": ["designer", "ux", "ui design", "figma"],
}

INDUSTRY_KEYWORDS = {
    "fintech": ["fintech", "financial", "banking", "payments", "trading"],
    "ecommerce": ["ecommerce", "e-commerce", "retail", "marketplace"],
    "saas": ["saas", "b2b", "enterprise software"],
    "consumer": ["consumer", "social", "gaming", "entertainment"],
    "healthcare": ["healthcare", "health", "medical", "biotech"],
    "edtech": ["edtech", "education", "learning", "training"],
}

STOPWORDS = {"about", "their", "which", "would", "could", "should", "there", "these", "where", "while", "with"}


def clean_text(x: str) -> str:
    return re.sub(r'\s+', ' ', x or "").strip()


def truncate_text(text: str, max_tokens: int) -> str:
    """Rough token budget: four characters per token."""
    max_chars = max_tokens * 4
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "..."


def safe_json(s: Optional[str], fallback: Optional[dict] = None) -> Optional[dict]:
    """Pull the outermost JSON object out of a model answer; `fallback` when there is none."""
    if not s:
        return fallback
    start = s.find("{")
    end = s.rfind("}")
    if start < 0 or end <= start:
        return fallback
    try:
        data = json.loads(s[start:end + 1])
    except json.JSONDecodeError:
        return fallback
    return data if isinstance(data, dict) else fallback


def as_text(x: Any) -> str:
    if x is None:
        return ""
    if isinstance(x, list):
        return " ".join([str(t).strip() for t in x if str(t).strip()])
    return str(x).strip()


def as_list(x: Any) -> List[str]:
    if x is None:
        return []
    if isinstance(x, str):
        parts = [p.strip() for p in x.replace(";", ",").split(",")]
        return [p for p in parts if p]
    if isinstance(x, list):
        return [str(t).strip() for t in x if str(t).strip()]
    return []


def _contains(text: str, keyword: str) -> bool:
    # word-ish boundary so "go" does not match "google"
    return re.search(rf"(?<![a-z0-9]){re.escape(keyword)}(?![a-z0-9])", text) is not None


def extract_skills_from_text(text: str, limit: int = 15) -> List[str]:
    lower = text.lower()
    found = [skill for skill in SKILL_PATTERNS if _contains(lower, skill)]
    return found[:limit]


def extract_experience_range(text: str) -> Dict[str, int]:
    patterns = [
        r"(\d+)\s*[-–]\s*(\d+)\s*(?:years?|yrs?)",
        r"(\d+)\+\s*(?:years?|yrs?)",
        r"(?:minimum|at least|min)\s*(\d+)\s*(?:years?|yrs?)",
    ]
    for pattern in patterns:
        match = re.search(pattern, text, re.IGNORECASE)
        if match:
            low = int(match.group(1))
            high = int(match.group(2)) if match.lastindex and match.lastindex >= 2 else low + 3
            return {"min": low, "max": high}
    return {"min": 0, "max": 10}


def infer_seniority_from_title(title: str) -> str:
    lower = (title or "").lower()
    checks = [
        ("intern", ["intern"]),
        ("entry", ["junior", "jr"]),
        ("senior", ["senior", "sr"]),
        ("staff", ["staff"]),
        ("principal", ["principal", "architect"]),
        ("executive", ["director", "vp", "head"]),
        ("senior", ["lead", "manager"]),
    ]
    for level, words in checks:
        if any(_contains(lower, w) for w in words):
            return level
    return "mid"


def _first_keyword_hit(text: str, table: Dict[str, List[str]], default: str) -> str:
    lower = text.lower()
    for label, keywords in table.items():
        if any(_contains(lower, kw) for kw in keywords):
            return label
    return default


def infer_domain_from_text(text: str) -> str:
    return _first_keyword_hit(text, DOMAIN_KEYWORDS, "general")


def infer_industry_from_text(text: str) -> str:
    return _first_keyword_hit(text, INDUSTRY_KEYWORDS, "technology")


def extract_keywords(text: str, limit: int = 10) -> List[str]:
    words = [w for w in re.findall(r"[a-z][a-z0-9+#.-]*", text.lower()) if len(w) > 4 and w not in STOPWORDS]
    counts = Counter(words)
    # most_common keeps first-seen order among equal counts
    return [w for w, _ in counts.most_common(limit)]


def first_sentence(text: str) -> str:
    parts = re.split(r"[.!?]", text or "", maxsplit=1)
    return parts[0].strip() if parts else ""
