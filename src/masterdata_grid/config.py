"""Environment-driven settings for the webhook transport and the grid defaults."""

import os
from dataclasses import dataclass, field

# Seed data language ids; used when the languages table cannot be reached.
DEFAULT_LANGUAGE_IDS: dict[str, int] = {"en": 1, "de": 2, "hu": 3}

PAGE_SIZE_OPTIONS: list[int] = [10, 20, 50, 100]


def language_id_for(locale_code: str, language_ids: dict[str, int] | None = None) -> int:
    """Map a locale code to its language id, defaulting to English."""
    ids = language_ids or DEFAULT_LANGUAGE_IDS
    return ids.get(locale_code.lower(), ids.get("en", 1))


@dataclass(frozen=True)
class GridSettings:
    """Connection and display settings shared by every grid instance."""

    base_url: str = "http://localhost:5678/api/v1"
    timeout_s: float = 30.0
    api_key: str | None = None
    locales: tuple[str, ...] = ("en", "de", "hu")
    default_locale: str = "en"
    page_size: int = 20
    unknown_label: str = "Unknown"
    update_method: str = "PUT"
    language_ids: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_LANGUAGE_IDS))

    @classmethod
    def from_env(cls) -> "GridSettings":
        """Read settings from ``MASTERDATA_*`` environment variables."""
        base_url = os.getenv("MASTERDATA_API_BASE_URL", cls.base_url).rstrip("/")
        timeout_ms = int(os.getenv("MASTERDATA_API_TIMEOUT", "30000"))
        locales = tuple(
            code.strip().lower()
            for code in os.getenv("MASTERDATA_LOCALES", "en,de,hu").split(",")
            if code.strip()
        )
        update_method = os.getenv("MASTERDATA_UPDATE_METHOD", "PUT").upper()
        if update_method not in ("PUT", "POST"):
            raise ValueError(
                f"MASTERDATA_UPDATE_METHOD must be PUT or POST, got {update_method!r}"
            )
        return cls(
            base_url=base_url,
            timeout_s=timeout_ms / 1000,
            api_key=os.getenv("MASTERDATA_API_KEY") or None,
            locales=locales,
            default_locale=os.getenv("MASTERDATA_DEFAULT_LOCALE", "en").lower(),
            page_size=int(os.getenv("MASTERDATA_PAGE_SIZE", "20")),
            unknown_label=os.getenv("MASTERDATA_UNKNOWN_LABEL", "Unknown"),
            update_method=update_method,
        )
