"""
Rentguard - Content Moderation Engine for the Rental Marketplace

Rentguard decides whether user-submitted listings, profiles, messages, and
reviews are safe to publish, must be blocked outright, or must be routed to a
human moderator.

Core Components:

- **Classifiers**: Rule-based text screening and PII masking, image accessibility
  probing, and optional OpenAI moderation backends behind a fixed contract
- **Decision Engine**: Four content-type policies (listing, profile, message,
  review) that aggregate classifier flags into a single verdict
- **Review Queue**: Persistent, prioritized queue of items awaiting a moderator
- **Audit Ledger**: Append-only history of decisions and resolutions, used to
  derive a per-user risk level
- **Moderator Console**: Interactive console for triaging the queue

Usage:
    from rentguard.main import main
    main()  # Opens the database and starts the moderator console
"""

__version__ = "0.1.0"
