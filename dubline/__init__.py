# dubline/__init__.py
# ====================
# Dubline — Bengali transcription / translation reconciliation pipeline
#
# Pipeline (per video):
#   1. Extract mono 16 kHz audio from the source video (media.py)
#   2. Recognize Bengali speech with one or more STT providers (providers/)
#   3. Reconcile provider outputs into one ordered segment set with optional
#      alternatives, validated against subtitle standards (transcription/)
#   4. Wait for the user to confirm the Bengali transcript
#   5. Batch-translate confirmed segments with provider fallback (translation/)
#   6. Render dubbing audio per target language (dubbing.py)
#
# Public API:
#   PipelineService → dubline.pipeline
