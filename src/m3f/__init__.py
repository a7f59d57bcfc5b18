"""
M3F: posterior-predictive scoring for Mixed Membership Matrix Factorization

Scores (user, item) dyads under Gibbs samples of the topic-indexed-bias M3F model by combining
a bilinear factor term, a global offset and topic-indexed user/item offsets.
"""

__version__ = "1.0.0"

from .metrics import PredictionErrorStats
from .predict import PredictionTerms, partial_residuals, predict_dyads
from .samples import M3FSample, M3FSampleSet, load_samples
from .synthetic import generate_synthetic_dyads, generate_synthetic_samples
from .topic_offsets import add_topic_offsets, select_topic_mode, topic_offset_contribution
from .validation import M3FInputError, validate_prediction_inputs

__all__ = [
    "M3FSample",
    "M3FSampleSet",
    "load_samples",
    "PredictionTerms",
    "predict_dyads",
    "partial_residuals",
    "add_topic_offsets",
    "topic_offset_contribution",
    "select_topic_mode",
    "M3FInputError",
    "validate_prediction_inputs",
    "PredictionErrorStats",
    "generate_synthetic_samples",
    "generate_synthetic_dyads",
]
