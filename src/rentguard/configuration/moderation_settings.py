from typing import Any, Dict


MAX_QUEUE_PAGE_SIZE = 100


class ModerationSettings:
    """Typed accessors over the ``moderation`` section of the app config.

    Every property falls back to the production default when the key is
    missing or malformed, so an empty mapping yields a usable configuration.
    """

    def __init__(self, data: Dict[str, Any] | None = None) -> None:
        self.data: Dict[str, Any] = data or {}

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for `key` or `default` if missing."""
        return self.data.get(key, default)

    def as_dict(self) -> Dict[str, Any]:
        return self.data

    def _section(self, key: str) -> Dict[str, Any]:
        value = self.data.get(key, {})
        return value if isinstance(value, dict) else {}

    # -- classifiers ---------------------------------------------------

    @property
    def platform_domain(self) -> str:
        return str(self.data.get("platform_domain") or "rentalportal.com")

    @property
    def classifier_timeout_seconds(self) -> float:
        return float(self.data.get("classifier_timeout_seconds", 10.0))

    @property
    def image_probe_timeout_seconds(self) -> float:
        return float(self.data.get("image_probe_timeout_seconds", 5.0))

    @property
    def text_backend(self) -> str:
        return str(self.data.get("text_backend", "rules")).lower()

    @property
    def image_backend(self) -> str:
        return str(self.data.get("image_backend", "none")).lower()

    @property
    def openai_model(self) -> str:
        return str(self._section("openai").get("model", "omni-moderation-latest"))

    @property
    def openai_base_url(self) -> str | None:
        val = self._section("openai").get("base_url")
        return str(val) if val else None

    # -- review velocity -----------------------------------------------

    @property
    def review_velocity_threshold(self) -> int:
        return int(self._section("review_velocity").get("threshold", 5))

    @property
    def review_velocity_window_seconds(self) -> int:
        return int(self._section("review_velocity").get("window_seconds", 3600))

    @property
    def counter_cache_backend(self) -> str:
        return str(self._section("counter_cache").get("backend", "memory")).lower()

    @property
    def counter_cache_url(self) -> str | None:
        val = self._section("counter_cache").get("url")
        return str(val) if val else None

    # -- queue and history ---------------------------------------------

    @property
    def queue_page_size(self) -> int:
        size = int(self.data.get("queue_page_size", MAX_QUEUE_PAGE_SIZE))
        return max(1, min(size, MAX_QUEUE_PAGE_SIZE))

    @property
    def history_limit(self) -> int:
        return int(self._section("history").get("limit", 50))

    @property
    def history_window_days(self) -> int:
        return int(self._section("history").get("recent_window_days", 90))

    @property
    def risk_high_threshold(self) -> int:
        """Recent violations strictly above this value mean HIGH risk."""
        return int(self._section("history").get("risk_high_above", 3))

    @property
    def risk_medium_threshold(self) -> int:
        """Recent violations strictly above this value mean MEDIUM risk."""
        return int(self._section("history").get("risk_medium_above", 1))
