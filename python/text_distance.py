"""
Approximate string scoring for full names (Jaro-Winkler)
"""

from rapidfuzz.distance import JaroWinkler

from config_manager import ConfigurationError

DEFAULT_THRESHOLD = 0.9


class TextDistanceScorer:
    """Jaro-Winkler similarity with an acceptance threshold"""

    def __init__(self, threshold: float = DEFAULT_THRESHOLD):
        if not isinstance(threshold, (int, float)) or not 0.0 <= threshold <= 1.0:
            raise ConfigurationError(f"jaro_winkler_threshold must be within [0, 1], got {threshold!r}")
        self.threshold = threshold

    @staticmethod
    def similarity(a: str, b: str) -> float:
        """Normalized similarity in [0, 1]; symmetric"""
        return JaroWinkler.similarity(a or '', b or '')

    def good_text_distance(self, a: str, b: str) -> bool:
        """True iff similarity strictly exceeds the threshold"""
        return self.similarity(a, b) > self.threshold
