"""
models.py — Plain data classes shared by the storage layer, the API client
and the dashboard.

Every class round-trips through a plain dict so it can be persisted as JSON.
`from_dict` is tolerant: missing or mistyped fields fall back to defaults,
because whatever sits in a browser's storage may have been written by an
older version of the app.
"""

from dataclasses import dataclass
from typing import Optional


CONTRACT_REVIEW = "Contract Review"
LEGAL_RESEARCH  = "Legal Research"
RISK_ASSESSMENT = "Risk Assessment"
CUSTOM_QUERY    = "Custom Query"

ANALYSIS_TYPES = (CONTRACT_REVIEW, LEGAL_RESEARCH, RISK_ASSESSMENT, CUSTOM_QUERY)


def _text(value) -> str:
    return value if isinstance(value, str) else ""


# ─────────────────────────────────────────────────────────────────────────────
# Data classes
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class ContractData:
    """Normalised result of one analysis call."""
    analysis:     str = ""
    key_points:   str = ""
    negotiations: str = ""

    def to_dict(self) -> dict:
        return {
            "analysis":     self.analysis,
            "key_points":   self.key_points,
            "negotiations": self.negotiations,
        }

    @classmethod
    def from_dict(cls, d) -> Optional["ContractData"]:
        if not isinstance(d, dict):
            return None
        return cls(
            analysis=_text(d.get("analysis")),
            key_points=_text(d.get("key_points")),
            negotiations=_text(d.get("negotiations")),
        )


@dataclass
class ApiConfig:
    """Connection settings for the analysis service."""
    openai_api_key: str = ""

    @property
    def is_configured(self) -> bool:
        return bool(self.openai_api_key)

    def to_dict(self) -> dict:
        return {"openai_api_key": self.openai_api_key}

    @classmethod
    def from_dict(cls, d) -> Optional["ApiConfig"]:
        if not isinstance(d, dict):
            return None
        return cls(openai_api_key=_text(d.get("openai_api_key")))


@dataclass
class AnalysisType:
    """Which analysis to run. Only Custom Query carries a query text."""
    type:         str = CONTRACT_REVIEW
    custom_query: str = ""

    @property
    def is_custom(self) -> bool:
        return self.type == CUSTOM_QUERY

    def to_dict(self) -> dict:
        d = {"type": self.type}
        if self.custom_query:
            d["custom_query"] = self.custom_query
        return d

    @classmethod
    def from_dict(cls, d) -> "AnalysisType":
        if not isinstance(d, dict) or d.get("type") not in ANALYSIS_TYPES:
            return cls()
        return cls(type=d["type"], custom_query=_text(d.get("custom_query")))
