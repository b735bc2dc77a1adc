"""
Layered category resolution for RSS entries.

Structural metadata outranks text heuristics. In order, the first
decisive step wins:

1. Feed folder label (exact match after label normalization)
2. Perspective host pin, then research host allowlist
3. Feed title hint (arxiv / papers with code / research)
4. Keyword scoring with minimum-score and minimum-lead thresholds,
   plus a research-over-perspectives dominance guard
5. Legacy keyword counter, else ``uncategorized``

``uncategorized`` is a deliberate outcome for low-confidence entries.
"""

import logging
import re
from dataclasses import dataclass
from urllib.parse import urlparse

from agent_pulse.categories.config import CategoryConfig
from agent_pulse.ingestion.schemas import ContentCategory

logger = logging.getLogger(__name__)

C = ContentCategory

FOLDER_LABELS: dict[str, ContentCategory] = {
    "product updates": C.PRODUCT_UPDATES,
    "productupdates": C.PRODUCT_UPDATES,
    "research papers": C.INDUSTRY_RESEARCH,
    "researchpapers": C.INDUSTRY_RESEARCH,
    "industry research": C.INDUSTRY_RESEARCH,
    "industryresearch": C.INDUSTRY_RESEARCH,
    "research": C.INDUSTRY_RESEARCH,
    "perspective pieces": C.PERSPECTIVES,
    "perspectivepieces": C.PERSPECTIVES,
    "perspectives": C.PERSPECTIVES,
}

RESEARCH_FEED_TITLE_RE = re.compile(
    r"\barxiv\b|\bpapers with code\b|\bresearch\b", re.IGNORECASE
)

# Dict order is the tie-break order for equal scores.
SCORING_PATTERNS: dict[ContentCategory, re.Pattern[str]] = {
    C.PRODUCT_UPDATES: re.compile(
        r"\b(release|launch|feature|update|changelog|version|roadmap|beta|preview)\b"
    ),
    C.INDUSTRY_RESEARCH: re.compile(
        r"\b(arxiv|study|paper|experiment|results|benchmark|dataset|method|analysis|report)\b"
    ),
    C.PERSPECTIVES: re.compile(
        r"\b(opinion|editorial|perspective|thought|view|think|believe|commentary|essay|reflection)\b"
    ),
}

LEGACY_KEYWORDS: dict[ContentCategory, tuple[str, ...]] = {
    C.PRODUCT_UPDATES: (
        "release", "launch", "feature", "update", "announcement",
        "version", "changelog", "roadmap", "beta", "preview",
    ),
    C.INDUSTRY_RESEARCH: (
        "research", "study", "analysis", "report", "data",
        "trend", "survey", "findings", "insight", "statistics",
    ),
    C.PERSPECTIVES: (
        "opinion", "perspective", "thought", "commentary", "view",
        "editorial", "essay", "reflection", "think", "believe",
    ),
}

_LEGACY_PATTERNS: dict[ContentCategory, re.Pattern[str]] = {
    category: re.compile(r"\b(" + "|".join(words) + r")\b", re.IGNORECASE)
    for category, words in LEGACY_KEYWORDS.items()
}

_LABEL_SEPARATORS_RE = re.compile(r"[\s_-]+")


@dataclass(frozen=True)
class CategoryDecision:
    """Resolved category plus the step that decided it."""

    category: ContentCategory
    reason: str


def _norm(value: str) -> str:
    value = value.strip().lower()
    return value[4:] if value.startswith("www.") else value


def normalize_folder_label(label: str | None) -> ContentCategory | None:
    """Map a feed folder label (or slug) to a category, if it is a known alias."""
    if not label or not label.strip():
        return None
    key = _LABEL_SEPARATORS_RE.sub(" ", _norm(label)).strip()
    if key in FOLDER_LABELS:
        return FOLDER_LABELS[key]
    return FOLDER_LABELS.get(key.replace(" ", ""))


def extract_host(url: str | None) -> str | None:
    """Lowercased hostname without a leading ``www.``, or None."""
    if not url:
        return None
    try:
        host = urlparse(url).hostname
    except ValueError:
        return None
    return _norm(host) if host else None


def host_matches(host: str, domains: list[str]) -> bool:
    """True if host equals a domain or is a subdomain of one."""
    for domain in domains:
        d = _norm(domain)
        if host == d or host.endswith("." + d):
            return True
    return False


def score_text(text: str) -> dict[ContentCategory, int]:
    """Count keyword hits per category in lowercased text."""
    lowered = text.lower()
    return {
        category: len(pattern.findall(lowered))
        for category, pattern in SCORING_PATTERNS.items()
    }


def infer_legacy_category(title: str | None, content: str | None, feed_title: str | None) -> ContentCategory:
    """Original keyword counter: first category with the strictly highest count."""
    text = f"{title or ''} {content or ''} {feed_title or ''}".lower()

    best = C.UNCATEGORIZED
    best_score = 0
    for category, pattern in _LEGACY_PATTERNS.items():
        score = len(pattern.findall(text))
        if score > best_score:
            best_score = score
            best = category
    return best


class CategoryResolver:
    """
    Deterministic category classifier for RSS entries.

    Usage:
        resolver = CategoryResolver()
        decision = resolver.resolve(
            url="https://arxiv.org/abs/2401.00001",
            feed_category="Research Papers",
            title="...",
            content="...",
            feed_title="arXiv cs.SE",
        )
        decision.category  # ContentCategory.INDUSTRY_RESEARCH
    """

    def __init__(self, config: CategoryConfig | None = None):
        self._config = config or CategoryConfig()

    @property
    def config(self) -> CategoryConfig:
        return self._config

    def research_dominates(self, perspective_hits: int, research_hits: int) -> bool:
        """Whether research cues are strong enough to override perspectives."""
        by_ratio = (
            perspective_hits > 0
            and research_hits >= perspective_hits * self._config.dominance_ratio
        )
        by_delta = research_hits - perspective_hits >= self._config.dominance_delta
        return by_ratio or by_delta

    def resolve(
        self,
        url: str | None,
        feed_category: str | None,
        title: str | None,
        content: str | None,
        feed_title: str | None = None,
    ) -> CategoryDecision:
        """
        Resolve the category for one entry.

        Args:
            url: Article URL
            feed_category: Aggregator folder/category title of the feed
            title: Article title
            content: Article body text
            feed_title: Title of the source feed

        Returns:
            CategoryDecision with the category and deciding step
        """
        from_folder = normalize_folder_label(feed_category)
        if from_folder is not None:
            return CategoryDecision(from_folder, "folder")

        host = extract_host(url)
        if host:
            if host_matches(host, self._config.perspective_hosts):
                return CategoryDecision(C.PERSPECTIVES, "perspective_host")
            if host_matches(host, self._config.research_hosts):
                return CategoryDecision(C.INDUSTRY_RESEARCH, "research_host")

        if feed_title and RESEARCH_FEED_TITLE_RE.search(feed_title):
            return CategoryDecision(C.INDUSTRY_RESEARCH, "feed_title")

        scores = score_text(f"{title or ''} {content or ''} {feed_title or ''}")
        # sorted() is stable, so equal scores keep SCORING_PATTERNS order
        ranked = sorted(scores.items(), key=lambda kv: kv[1], reverse=True)
        best_category, best_score = ranked[0]
        second_score = ranked[1][1]

        if best_category == C.PERSPECTIVES and self.research_dominates(
            scores[C.PERSPECTIVES], scores[C.INDUSTRY_RESEARCH]
        ):
            return CategoryDecision(C.INDUSTRY_RESEARCH, "dominance_guard")

        if (
            best_score < self._config.min_score
            or best_score - second_score < self._config.min_delta
        ):
            legacy = infer_legacy_category(title, content, feed_title)
            if legacy != C.UNCATEGORIZED:
                return CategoryDecision(legacy, "legacy")
            return CategoryDecision(C.UNCATEGORIZED, "default")

        return CategoryDecision(best_category, "keyword_score")
