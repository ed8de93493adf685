from __future__ import annotations

from typing import List, Sequence

from .models import EvidenceSource, EvidenceTurn, Turn


def inject_evidence(turns: Sequence[Turn], evidence: str, source: EvidenceSource) -> List[Turn]:
    """Purpose: Insert an evidence turn immediately before the newest turn.
    Inputs/Outputs: Inputs are the current turns, evidence text, and its source
        ("web" or "catalog"); output is a new list.
    Side Effects / State: None; the input sequence is not modified.
    Dependencies: Uses EvidenceTurn.
    Failure Modes: Blank evidence returns an unchanged copy.
    If Removed: Web and catalog evidence never reach the model.
    Testing Notes: Injecting web then catalog yields [..., web, catalog, last].
    """
    # Position is len-1 so the latest user turn stays last.
    if not evidence.strip():
        return list(turns)
    insert_at = max(0, len(turns) - 1)
    injected = EvidenceTurn(source=source, text=evidence)
    return [*turns[:insert_at], injected, *turns[insert_at:]]
