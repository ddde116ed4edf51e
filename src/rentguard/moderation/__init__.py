"""
Moderation decision layer.

- **moderation_engine.py**: Orchestrates classifiers, applies the per-content-type
  policy, and writes queue/audit side effects.
- **policies.py**: The four content-type decision policies.
- **review_velocity.py**: Review-bombing detection over a short-TTL counter.
- **errors.py**: Exception types surfaced to callers.
"""
