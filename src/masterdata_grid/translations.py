"""Pushing one translation text to every supported locale.

Each locale is an upsert: update the ``(code, language_id)`` translation
and, when the backend reports it missing, create it instead.  Locales are
independent.  A locale that fails is logged and reported back; it never
aborts the others or the record update that follows.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Literal

from masterdata_grid.errors import GridError, RequestError
from masterdata_grid.models import LookupItem, RequestContext
from masterdata_grid.persistence import Persistence

logger = logging.getLogger(__name__)

TranslationAction = Literal["updated", "created", "failed"]


@dataclass(frozen=True)
class LocaleResult:
    """Outcome of the translation upsert for one locale."""

    locale_code: str
    language_id: int | None
    action: TranslationAction
    error: GridError | None = None

    @property
    def failed(self) -> bool:
        return self.action == "failed"

    def warning(self) -> str:
        return f"Translation for locale {self.locale_code!r} was not saved: {self.error}"


async def upsert_translation(
    persistence: Persistence,
    ctx: RequestContext,
    code: str,
    language_id: int,
    text: str,
) -> TranslationAction:
    """Update the translation, falling back to create when it is missing.

    Raises:
        GridError: Any failure other than a not-found on the update.
    """
    try:
        await persistence.update_translation(ctx, code, language_id, text)
        return "updated"
    except RequestError as exc:
        if not exc.is_not_found:
            raise
    await persistence.create_translation(ctx, code, language_id, text)
    return "created"


async def _propagate_one(
    persistence: Persistence,
    ctx: RequestContext,
    code: str,
    language: LookupItem,
    text: str,
) -> LocaleResult:
    try:
        action = await upsert_translation(persistence, ctx, code, language.id, text)
    except GridError as exc:
        logger.warning("Translation of %r for locale %s failed: %s", code, language.code, exc)
        return LocaleResult(language.code, language.id, "failed", exc)
    return LocaleResult(language.code, language.id, action)


async def propagate_translation(
    persistence: Persistence,
    ctx: RequestContext,
    code: str,
    text: str,
    languages: list[LookupItem],
) -> list[LocaleResult]:
    """Upsert *text* as the translation of *code* in every language.

    Languages are processed concurrently.  The result has one entry per
    language, in the order given.
    """
    results = await asyncio.gather(
        *(_propagate_one(persistence, ctx, code, language, text) for language in languages)
    )
    failed = sum(1 for r in results if r.failed)
    logger.debug("Propagated %r to %d locales (%d failed)", code, len(results), failed)
    return list(results)


async def supported_languages(
    persistence: Persistence,
    ctx: RequestContext,
    locales: tuple[str, ...],
    table: str = "languages",
) -> list[LookupItem]:
    """Resolve the supported locale codes to rows of the languages table.

    Rows are returned in the order of *locales*; codes the table does not
    know are skipped.
    """
    items = await persistence.resolve_lookup(ctx, table, ctx.locale_code)
    by_code = {item.code.lower(): item for item in items}
    return [by_code[code] for code in locales if code in by_code]
