from __future__ import annotations

from typing import Sequence

from .collaborators import DiscardFaults, FaultRecord, FaultSink, IdentityResolver
from .concurrency import run_indexed_tasks
from .errors import ResolutionError
from .facets import Facet, Link, Mention, ScannedSpan, Tag


def link_facets(spans: Sequence[ScannedSpan]) -> list[Facet]:
    return [Facet(span=s.span, features=(Link(uri=s.text),)) for s in spans]


def tag_facets(spans: Sequence[ScannedSpan]) -> list[Facet]:
    return [Facet(span=s.span, features=(Tag(text=s.text),)) for s in spans]


class FacetResolver:
    """
    Turns scanned mentions into mention facets through an identity lookup.

    Resolution is best-effort per mention: any failure drops that mention,
    reports a fault, and leaves the other mentions untouched.
    """

    def __init__(
        self,
        identity: IdentityResolver,
        *,
        faults: FaultSink | None = None,
        max_workers: int = 1,
    ) -> None:
        self._identity = identity
        self._faults = faults or DiscardFaults()
        self._max_workers = max(1, int(max_workers))

    def resolve_mention(self, handle: str) -> str | None:
        """Return the identifier for handle, or None if it could not be resolved."""
        try:
            identifier = self._identity.lookup(handle)
            if identifier is None:
                raise ResolutionError(f"Handle not found: {handle}")
            if not isinstance(identifier, str) or not identifier.strip():
                raise ResolutionError(f"Malformed identifier for handle {handle}: {identifier!r}")
        except Exception as e:
            self._faults.fault(FaultRecord(stage="resolve_mention", input_summary=handle, cause=e))
            return None
        return identifier.strip()

    def resolve_mentions(self, spans: Sequence[ScannedSpan]) -> list[Facet]:
        """Resolve every mention span; output keeps the input order."""
        tasks = [lambda s=s: self.resolve_mention(s.text) for s in spans]
        identifiers = run_indexed_tasks(tasks, max_workers=self._max_workers)

        out: list[Facet] = []
        for span, identifier in zip(spans, identifiers):
            if identifier is None:
                continue
            out.append(Facet(span=span.span, features=(Mention(identifier=identifier),)))
        return out
