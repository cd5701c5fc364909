from __future__ import annotations

from typing import Dict, Iterable, Optional, Tuple

from sqlalchemy import select

from backend.app.core.i18n import Lang, taxonomy_code
from backend.app.db import models
from backend.app.db.gateway import ReadOnlyGateway

LabelKey = Tuple[str, Optional[str]]


class TaxonomyLabels:
    """Resolved labels for one request; unknown codes fall back to the raw value."""

    def __init__(self, labels: Dict[Tuple[str, str], str]):
        self._labels = labels

    def label(self, domain: str, raw: Optional[str]) -> Optional[str]:
        if raw is None:
            return None
        code = taxonomy_code(domain, raw)
        if code is None:
            return raw
        return self._labels.get((domain, code), raw)


class TaxonomyResolver:
    def __init__(self, gateway: ReadOnlyGateway):
        self.gateway = gateway

    async def resolve(self, keys: Iterable[LabelKey], lang: Lang, *, trace_id: Optional[str] = None) -> TaxonomyLabels:
        wanted = set()
        for domain, raw in keys:
            code = taxonomy_code(domain, raw)
            if code is not None:
                wanted.add((domain, code))
        if not wanted:
            return TaxonomyLabels({})

        column = models.Taxonomy.ru if lang == "ru" else models.Taxonomy.en
        stmt = select(models.Taxonomy.domain, models.Taxonomy.code, column.label("label")).where(
            models.Taxonomy.domain.in_(sorted({d for d, _ in wanted})),
            models.Taxonomy.code.in_(sorted({c for _, c in wanted})),
        )
        rows = await self.gateway.execute(stmt, trace_id=trace_id)
        labels = {
            (row["domain"], row["code"]): row["label"]
            for row in rows
            if (row["domain"], row["code"]) in wanted
        }
        return TaxonomyLabels(labels)
