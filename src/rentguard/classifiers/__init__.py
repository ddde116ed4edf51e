"""
Signal classifiers consumed by the moderation engine.

- **base.py**: Capability interfaces (``TextClassifier``, ``ImageClassifier``,
  ``ImageBackend``) the engine depends on.
- **text_classifier.py**: Rule engine for profanity, hate speech, spam,
  off-platform contact, scams, and PII masking.
- **image_classifier.py**: Accessibility probe plus pluggable visual backend.
- **openai_backend.py**: Remote implementations backed by the OpenAI
  moderation endpoint.
"""
