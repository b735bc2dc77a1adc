"""
Category resolver configuration.

The scoring thresholds were tuned by hand against a sample of feed
entries. They are exposed as settings so they can be adjusted without a
code change; changing them alters which entries land in each dashboard
column.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CategoryConfig(BaseSettings):
    """
    Thresholds for keyword-score category resolution.

    Settings can be overridden via environment variables prefixed with CATEGORY_.

    Example:
        CATEGORY_MIN_SCORE=3
        CATEGORY_DOMINANCE_RATIO=1.5
    """

    model_config = SettingsConfigDict(
        env_prefix="CATEGORY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    min_score: int = Field(
        default=2,
        ge=0,
        description="Minimum keyword hits for the top category to be trusted",
    )
    min_delta: int = Field(
        default=2,
        ge=0,
        description="Minimum lead of the top category over the runner-up",
    )
    dominance_ratio: float = Field(
        default=1.2,
        gt=0.0,
        description="Research hits >= perspective hits * ratio overrides perspectives",
    )
    dominance_delta: int = Field(
        default=2,
        ge=0,
        description="Research hits - perspective hits >= delta overrides perspectives",
    )
    perspective_hosts: list[str] = Field(
        default_factory=lambda: ["dev.to"],
        description="Hosts pinned to perspectives (checked before research hosts)",
    )
    research_hosts: list[str] = Field(
        default_factory=lambda: [
            "arxiv.org",
            "export.arxiv.org",
            "ar5iv.org",
            "arxiv-vanity.com",
            "openreview.net",
            "aclanthology.org",
            "dl.acm.org",
            "ieeexplore.ieee.org",
            "neurips.cc",
            "iclr.cc",
            "eprint.iacr.org",
            "paperswithcode.com",
            "www.artificial-intelligence.blog",
            "xaiguy.substack.com",
        ],
        description="Hosts (and their subdomains) pinned to industry_research",
    )
