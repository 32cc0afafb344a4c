# dubline/scoring/__init__.py
# ============================
# Confidence Scoring — Dubline
#
#   confidence.py → provider reliability × raw confidence, blended with the
#                   subtitle quality score and structural heuristics

from dubline.scoring.confidence import score, score_translation  # noqa: F401

__all__ = ["score", "score_translation"]
