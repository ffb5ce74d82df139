"""
Normalizes server result payloads into the canonical two-pass AnalysisResult.
"""

import re
from typing import Any, Dict, List, Optional, Tuple

from backend.app.models.job_models import DetailedResult, Document, ProcessingMetadata
from backend.app.models.workflow_models import AnalysisResult

METADATA_PREFIX = "_"


def normalize(document: Document) -> AnalysisResult:
    """
    Map pass_1_extraction -> first_pass and pass_2_correction -> final_pass.
    Missing passes become empty dicts. Payload contents are not interpreted.
    """
    result = document.result
    if result is None:
        return AnalysisResult()
    return AnalysisResult(
        first_pass=dict(result.pass_1_extraction or {}),
        final_pass=dict(result.pass_2_correction or {}),
    )


def extract_metadata(document: Document) -> Optional[ProcessingMetadata]:
    # Only what the server reported; absent metadata stays None
    return document.processing_metadata


def merge_detailed(current: AnalysisResult, detailed: DetailedResult) -> AnalysisResult:
    """Overlay the passes present in a detailed result onto an existing one."""
    if detailed.result is None:
        return current
    return AnalysisResult(
        first_pass=dict(detailed.result.pass_1_extraction or current.first_pass),
        final_pass=dict(detailed.result.pass_2_correction or current.final_pass),
    )


def visible_entries(payload: Dict[str, Any]) -> List[Tuple[str, Any]]:
    """Entries of a payload section that should be rendered: no metadata keys, no nulls."""
    return [
        (key, value)
        for key, value in payload.items()
        if not key.startswith(METADATA_PREFIX) and value is not None
    ]


def format_field_name(field_name: str) -> str:
    # camelCase or snake_case to a readable label
    spaced = re.sub(r"([A-Z])", r" \1", field_name).replace("_", " ")
    spaced = re.sub(r"\s+", " ", spaced).strip()
    return spaced[:1].upper() + spaced[1:]
