"""
# Copyright (C) 2025 Qleric
# Licensed under AGPL-3.0 - see LICENSE file
"""

import json
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from functools import wraps
from typing import Any, Dict, List, Optional, Union

from blob_cache import create_blob_cache
from model_client import ClaudeClient
from text_extractor import ContractAnalysisError, ExtractionError, TextExtractor

__all__ = [
    "ContractAnalysisError",
    "ExtractionError",
    "Tier",
    "Risk",
    "Opportunity",
    "FallbackAnalysis",
    "ContractTypeDetector",
    "ContractAnalyzer",
    "ContractAnalysisPipeline",
    "create_pipeline",
]

# -------------------------------------------------------------------------
# Prompts
# -------------------------------------------------------------------------

# Classification only needs the opening of the document
TYPE_DETECTION_MAX_CHARS = 2000

CONTRACT_TYPE_PROMPT = """Analyze this contract text and determine the type of contract it is. Provide only the contract type as a single string (e.g., "Employment", "Non-Disclosure Agreement", "Sales", "Lease", etc.). Do not include any additional explanation or text.

Contract text:
{contract_text}"""

PREMIUM_ANALYSIS_PROMPT = """Analyze the following {contract_type} contract and provide:
1. A list of at least 10 potential risks for the party receiving the contract, each with a brief explanation and severity level (low, medium, high).
2. A list of at least 10 potential opportunities or benefits for the receiving party, each with a brief explanation and impact level (low, medium, high).
3. A comprehensive summary of the contract, including key terms and conditions.
4. Any recommendations for improving the contract from the receiving party's perspective.
5. A list of key clauses in the contract.
6. An assessment of the contract's legal compliance.
7. A list of potential negotiation points.
8. The contract duration or term, if applicable.
9. A summary of termination conditions, if applicable.
10. A breakdown of any financial terms or compensation structure, if applicable.
11. Any performance metrics or KPIs mentioned, if applicable.
12. A summary of any specific clauses relevant to this type of contract (e.g., intellectual property for employment contracts, warranties for sales contracts).
13. An overall score from 1 to 100, with 100 being the highest. This score represents the overall favorability of the contract based on the identified risks and opportunities."""

PREMIUM_RESPONSE_FORMAT = """Format your response as a JSON object with the following structure:
{
  "risks": [{"risk": "Risk description", "explanation": "Brief explanation", "severity": "low|medium|high"}],
  "opportunities": [{"opportunity": "Opportunity description", "explanation": "Brief explanation", "impact": "low|medium|high"}],
  "summary": "Comprehensive summary of the contract",
  "recommendations": ["Recommendation 1", "Recommendation 2"],
  "keyClauses": ["Clause 1", "Clause 2"],
  "legalCompliance": "Legal compliance assessment",
  "negotiationPoints": ["Point 1", "Point 2"],
  "contractDuration": "Duration of the contract, if applicable",
  "terminationConditions": "Summary of termination conditions, if applicable",
  "overallScore": "Overall score from 1 to 100",
  "financialTerms": {
    "description": "Overview of financial terms",
    "details": ["Detail 1", "Detail 2"]
  },
  "performanceMetrics": ["Metric 1", "Metric 2"],
  "specificClauses": "Summary of clauses specific to this contract type"
}"""

FREE_ANALYSIS_PROMPT = """Analyze the following {contract_type} contract and provide:
1. A list of at least 5 potential risks for the party receiving the contract, each with a brief explanation.
2. A list of at least 5 potential opportunities or benefits for the receiving party, each with a brief explanation.
3. A brief summary of the contract.
4. An overall score from 1 to 100, with 100 being the highest. This score represents the overall favorability of the contract based on the identified risks and opportunities."""

FREE_RESPONSE_FORMAT = """Format your response as a JSON object with the following structure:
{
  "risks": [{"risk": "Risk description", "explanation": "Brief explanation"}],
  "opportunities": [{"opportunity": "Opportunity description", "explanation": "Brief explanation"}],
  "summary": "Brief summary of the contract",
  "overallScore": "Overall score from 1 to 100"
}"""

JSON_ONLY_INSTRUCTION = (
    "Important: Provide only the JSON object in your response, "
    "without any additional text or formatting."
)

# -------------------------------------------------------------------------
# Response parsing
# -------------------------------------------------------------------------

# Only a fence wrapping the whole response is stripped
CODE_FENCE_PATTERN = re.compile(r"```[\w+-]*[ \t]*\n?([\s\S]*?)\n?```")

RISKS_ARRAY_PATTERN = re.compile(r'"risks"\s*:\s*\[([\s\S]*?)\]')
OPPORTUNITIES_ARRAY_PATTERN = re.compile(r'"opportunities"\s*:\s*\[([\s\S]*?)\]')
# Captures stop at the first quote, escaped or not, and keep JSON escapes verbatim
RISK_PATTERN = re.compile(r'"risk"\s*:\s*"([^"]*)"')
OPPORTUNITY_PATTERN = re.compile(r'"opportunity"\s*:\s*"([^"]*)"')
EXPLANATION_PATTERN = re.compile(r'"explanation"\s*:\s*"([^"]*)"')
SUMMARY_PATTERN = re.compile(r'"summary"\s*:\s*"([^"]*)"')
# Premium responses sometimes carry the score as a bare number
OVERALL_SCORE_PATTERN = re.compile(r'"overallScore"\s*:\s*(?:"([^"]*)"|(-?\d+(?:\.\d+)?))')

UNKNOWN = "Unknown"
FALLBACK_SUMMARY = "Error analyzing contract"

# -------------------------------------------------------------------------
# Logging
# -------------------------------------------------------------------------

logging.getLogger().handlers.clear()
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s"
)
logger = logging.getLogger(__name__)

# -------------------------------------------------------------------------
# Decorators
# -------------------------------------------------------------------------

def performance_profiler(func):
    """Decorator to measure execution time with a per-call perf_counter."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.perf_counter()
        result = func(*args, **kwargs)
        end_time = time.perf_counter()

        if isinstance(result, dict):
            result.setdefault("profiling", {})
            result["profiling"].update({
                "execution_time_seconds": f"{end_time - start_time:.4f}",
            })

        return result

    return wrapper


# -------------------------------------------------------------------------
# Data Models
# -------------------------------------------------------------------------

class Tier(Enum):
    FREE = "free"
    PREMIUM = "premium"

    @classmethod
    def from_value(cls, value: Union["Tier", str, None]) -> "Tier":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            logger.warning(f"Invalid tier '{value}', defaulting to 'free'")
            return cls.FREE


@dataclass
class Risk:
    risk: str
    explanation: str
    severity: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"risk": self.risk, "explanation": self.explanation}
        if self.severity is not None:
            data["severity"] = self.severity
        return data


@dataclass
class Opportunity:
    opportunity: str
    explanation: str
    impact: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"opportunity": self.opportunity, "explanation": self.explanation}
        if self.impact is not None:
            data["impact"] = self.impact
        return data


@dataclass
class FallbackAnalysis:
    """Best-effort result recovered from a response that is not valid JSON.

    Premium-only fields are never recovered.
    """
    risks: List[Risk] = field(default_factory=list)
    opportunities: List[Opportunity] = field(default_factory=list)
    summary: str = FALLBACK_SUMMARY
    overall_score: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "risks": [r.to_dict() for r in self.risks],
            "opportunities": [o.to_dict() for o in self.opportunities],
            "summary": self.summary,
        }
        if self.overall_score is not None:
            data["overallScore"] = self.overall_score
        return data


# -------------------------------------------------------------------------
# Response helpers
# -------------------------------------------------------------------------

def strip_code_fence(text: str) -> str:
    """Unwrap a response that is entirely one fenced code block."""
    match = CODE_FENCE_PATTERN.fullmatch(text)
    return match.group(1).strip() if match else text


def _capture(pattern: re.Pattern, text: str, default: str = UNKNOWN) -> str:
    match = pattern.search(text)
    return match.group(1) if match else default


def _array_fragments(pattern: re.Pattern, text: str) -> List[str]:
    match = pattern.search(text)
    if not match:
        return []
    return [fragment for fragment in match.group(1).split("},") if fragment.strip()]


def build_fallback_analysis(text: str) -> FallbackAnalysis:
    """
    Scrape whatever structure survives in a malformed model response.

    Each sub-structure is matched independently, so a broken risks array
    does not prevent the summary from being recovered.
    """
    fallback = FallbackAnalysis()

    fallback.risks = [
        Risk(
            risk=_capture(RISK_PATTERN, fragment),
            explanation=_capture(EXPLANATION_PATTERN, fragment),
        )
        for fragment in _array_fragments(RISKS_ARRAY_PATTERN, text)
    ]

    fallback.opportunities = [
        Opportunity(
            opportunity=_capture(OPPORTUNITY_PATTERN, fragment),
            explanation=_capture(EXPLANATION_PATTERN, fragment),
        )
        for fragment in _array_fragments(OPPORTUNITIES_ARRAY_PATTERN, text)
    ]

    summary_match = SUMMARY_PATTERN.search(text)
    if summary_match:
        fallback.summary = summary_match.group(1)

    score_match = OVERALL_SCORE_PATTERN.search(text)
    if score_match:
        fallback.overall_score = score_match.group(1) if score_match.group(1) is not None else score_match.group(2)

    return fallback


def parse_analysis_response(raw_text: str) -> Any:
    """Parse the model's answer, degrading to a FallbackAnalysis dict."""
    cleaned = strip_code_fence(raw_text.strip())

    try:
        data = json.loads(cleaned)
        logger.info("Successfully parsed JSON from LLM response")
        return data
    except (json.JSONDecodeError, RecursionError) as e:
        logger.warning(f"JSON parsing failed, using fallback extraction: {e}")

    fallback = build_fallback_analysis(cleaned)
    logger.warning(
        f"Fallback analysis recovered {len(fallback.risks)} risks, "
        f"{len(fallback.opportunities)} opportunities"
    )
    return fallback.to_dict()


# -------------------------------------------------------------------------
# Detector / Analyzer
# -------------------------------------------------------------------------

class ContractTypeDetector:
    """Asks the model for a one-label classification of the contract."""

    def __init__(self, model_client):
        self.model_client = model_client

    def build_prompt(self, contract_text: str) -> str:
        return CONTRACT_TYPE_PROMPT.format(contract_text=contract_text[:TYPE_DETECTION_MAX_CHARS])

    def detect_type(self, contract_text: str) -> str:
        response = self.model_client.generate(self.build_prompt(contract_text))
        # The label is free-form model output, callers must not trust it
        contract_type = response.text.strip()
        logger.info(f"Detected contract type: {contract_type!r}")
        return contract_type


class ContractAnalyzer:
    """Tiered contract analysis using a generative model."""

    def __init__(self, model_client):
        self.model_client = model_client

    def build_prompt(self, contract_text: str, tier: Union[Tier, str], contract_type: str) -> str:
        tier = Tier.from_value(tier)

        if tier is Tier.PREMIUM:
            instructions = PREMIUM_ANALYSIS_PROMPT.format(contract_type=contract_type)
            response_format = PREMIUM_RESPONSE_FORMAT
        else:
            instructions = FREE_ANALYSIS_PROMPT.format(contract_type=contract_type)
            response_format = FREE_RESPONSE_FORMAT

        return (
            f"{instructions}\n\n"
            f"{response_format}\n\n"
            f"{JSON_ONLY_INSTRUCTION}\n\n"
            f"Contract text:\n{contract_text}"
        )

    def analyze(self, contract_text: str, tier: Union[Tier, str], contract_type: str) -> Any:
        tier = Tier.from_value(tier)
        prompt = self.build_prompt(contract_text, tier, contract_type)

        logger.info(f"Sending {tier.value} analysis request ({len(contract_text)} contract chars)...")
        response = self.model_client.generate(prompt)

        return parse_analysis_response(response.text)


# -------------------------------------------------------------------------
# Pipeline
# -------------------------------------------------------------------------

class ContractAnalysisPipeline:
    """Extract, classify and analyze a cached upload, strictly in sequence."""

    def __init__(self, extractor: TextExtractor, detector: ContractTypeDetector, analyzer: ContractAnalyzer):
        self.extractor = extractor
        self.detector = detector
        self.analyzer = analyzer

    def detect_contract_type(self, blob_key: str) -> str:
        contract_text = self.extractor.extract_text(blob_key)
        return self.detector.detect_type(contract_text)

    @performance_profiler
    def analyze(
        self,
        blob_key: str,
        tier: Union[Tier, str] = Tier.FREE,
        contract_type: Optional[str] = None,
    ) -> Dict[str, Any]:
        tier = Tier.from_value(tier)

        logger.info("=" * 80)
        logger.info(f"Starting contract analysis pipeline - Tier: {tier.value.upper()}")
        logger.info("=" * 80)

        contract_text = self.extractor.extract_text(blob_key)

        if not contract_type:
            logger.info("No contract type supplied, detecting...")
            contract_type = self.detector.detect_type(contract_text)

        analysis = self.analyzer.analyze(contract_text, tier, contract_type)

        logger.info("=" * 80)
        logger.info(f"ANALYSIS COMPLETE: {contract_type} ({tier.value})")
        logger.info("=" * 80)

        return {
            "analysis_timestamp": datetime.now().isoformat(),
            "tier": tier.value,
            "contract_type": contract_type,
            "contract_length": len(contract_text),
            "analysis": analysis,
        }


def create_pipeline(blob_cache=None, model_client=None) -> ContractAnalysisPipeline:
    """Wire the pipeline from explicit collaborators or the environment."""
    blob_cache = blob_cache if blob_cache is not None else create_blob_cache()
    model_client = model_client if model_client is not None else ClaudeClient()

    return ContractAnalysisPipeline(
        extractor=TextExtractor(blob_cache),
        detector=ContractTypeDetector(model_client),
        analyzer=ContractAnalyzer(model_client),
    )
