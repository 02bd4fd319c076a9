"""
geoquery - location-intelligence query engine.

Routes natural-language questions about places, events, weather and foot traffic
to a dependency-ordered set of phases, caches external data calls, and merges the
partial results into one structured answer with a GeoJSON FeatureCollection.
"""

__version__ = "1.0.0"
