from geoquery.synthesis.recommendations import generate_recommendations
from geoquery.synthesis.result_synthesizer import (
    GeoCollection,
    Recommendations,
    ResultSynthesizer,
    SynthesizedResponse,
)

__all__ = [
    "generate_recommendations",
    "GeoCollection",
    "Recommendations",
    "ResultSynthesizer",
    "SynthesizedResponse",
]
