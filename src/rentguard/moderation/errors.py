"""Exception types raised by Rentguard."""


class RentguardError(Exception):
    """Base class for all Rentguard errors."""


class ClassifierError(RentguardError):
    """A classification backend failed or returned an unusable response.

    The decision engine always recovers from this locally by degrading the
    content to manual review; it is never propagated to ``moderate_*`` callers.
    """


class QueueItemNotFoundError(RentguardError):
    """No review queue item exists for the requested entity."""

    def __init__(self, entity_id: str, entity_type: str | None = None) -> None:
        self.entity_id = entity_id
        self.entity_type = entity_type
        scope = f"{entity_type} {entity_id}" if entity_type else entity_id
        super().__init__(f"Queue item not found for {scope}")
