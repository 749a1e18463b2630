"""
Crop candidate construction.

The prediction service only returns ranked crop names. Score, yield, price and
reasons are filled in by a `CandidateDetailer`; the default one produces
placeholder values derived from rank alone, so a real data source can be
swapped in later without touching the workflow.
"""
from typing import Callable, Dict, List, Sequence

from ..models import IDEAL_VALUES, CropCandidate, NutrientProfile

CandidateDetailer = Callable[[str, int], CropCandidate]


def placeholder_details(crop: str, rank: int) -> CropCandidate:
    """Deterministic stand-in details that decrease with rank."""
    suitability = 90 - rank * 10
    drift = 1 - rank * 0.05
    return CropCandidate(
        name=crop,
        suitability_score=max(0, min(100, suitability)),
        expected_yield=3.5 - rank * 0.5,
        market_price=20 - rank * 2,
        reasons=[
            f"Optimal conditions for {crop}.",
            "Good nutrient balance.",
            "Favorable market outlook.",
        ],
        reference_nutrients=NutrientProfile(
            N=IDEAL_VALUES["N"] * drift,
            P=IDEAL_VALUES["P"] * drift,
            K=IDEAL_VALUES["K"] * drift,
        ),
    )


def build_candidates(crops: Sequence[str], detailer: CandidateDetailer = placeholder_details) -> List[CropCandidate]:
    # rank order from the service is kept as-is
    return [detailer(crop, rank) for rank, crop in enumerate(crops)]


def nutrient_comparison(candidate: CropCandidate) -> List[Dict[str, float]]:
    """Candidate N/P/K next to the ideal profile, one row per nutrient."""
    actual = candidate.reference_nutrients
    return [
        {"parameter": name, "actual": getattr(actual, name), "ideal": IDEAL_VALUES[name]}
        for name in ("N", "P", "K")
    ]
