"""
Incremental result cache persisted as a JSON file.

Entries are keyed by the content hash of a function's model together with the
facts it was verified under, so editing the function or any callee inlined
into it produces a new key. Source positions are part of the key as well.
Only complete per-function result sets are stored; the file is replaced
atomically (temp file + rename).
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ..analysis.results import ProofResult, ProofStatus
from ..builder.model import Constraint, ConstraintKind, FunctionSymbolicModel
from ..config import ENGINE_VERSION
from ..expr.codec import decode_graphs, encode_graphs, type_from_json, type_to_json, value_from_json, value_to_json
from ..expr.nodes import ExprArena, Node
from ..expr.rewrite import combined_digest
from ..inversion.results import InversionStatus
from ..ir.typed import Location, Tag
from .report import ConstraintReport, FunctionReport, InversionReport

logger = logging.getLogger("reverie.sym.diagnostics.cache")


class ResultCache:
    """Content-addressed store of ``FunctionReport``s.

    Args:
        path: JSON file backing the cache; None keeps it in memory only
    """

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path) if path else None
        self._entries: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        self._loaded = False
        self._dirty = False
        self.hits = 0
        self.misses = 0

    @staticmethod
    def key_for(model: FunctionSymbolicModel, facts: Sequence[Node] = (),
                callees: Sequence[FunctionSymbolicModel] = ()) -> str:
        """Key over the model, its entry facts, and the callees whose assumptions it must meet.

        Reports carry source positions, so a function that only moved gets a new key.
        """
        ordered = sorted(callees, key=lambda m: m.name)
        extra = [c.content_hash() for c in ordered]
        extra += [_locations_text(m) for m in [model] + ordered]
        return combined_digest(facts, model.content_hash(), *extra, ENGINE_VERSION)

    def __len__(self) -> int:
        self._ensure_loaded()
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        self._ensure_loaded()
        return key in self._entries

    def get(self, key: str, arena: ExprArena) -> Optional[FunctionReport]:
        self._ensure_loaded()
        with self._lock:
            data = self._entries.get(key)
            if data is None:
                self.misses += 1
                return None
            self.hits += 1
        return decode_report(arena, data)

    def put(self, key: str, report: FunctionReport) -> None:
        data = encode_report(report)
        self._ensure_loaded()
        with self._lock:
            self._entries[key] = data
            self._dirty = True

    def save(self) -> None:
        """Write the cache file if anything changed since the last load or save."""
        if self.path is None:
            return
        with self._lock:
            if not self._dirty:
                return
            payload = {"version": ENGINE_VERSION, "entries": self._entries}
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.",
                                            suffix=".tmp", text=True)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, sort_keys=True)
                os.replace(tmp_path, self.path)
            except Exception:
                try:
                    os.unlink(tmp_path)
                except FileNotFoundError:
                    pass
                raise
            self._dirty = False
        logger.debug("saved %d cache entries to %s", len(self._entries), self.path)

    def _ensure_loaded(self) -> None:
        with self._lock:
            if self._loaded:
                return
            self._loaded = True
            if self.path is None or not self.path.exists():
                return
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    payload = json.load(f)
            except (OSError, ValueError) as exc:
                logger.warning("ignoring unreadable cache file %s: %s", self.path, exc)
                return
            if payload.get("version") != ENGINE_VERSION:
                logger.info("cache %s was written by %s; starting fresh",
                            self.path, payload.get("version"))
                return
            self._entries = dict(payload.get("entries", {}))
            logger.debug("loaded %d cache entries from %s", len(self._entries), self.path)


# ── entry codec ───────────────────────────────────────────────────────

def _locations_text(model: FunctionSymbolicModel) -> str:
    locations = [model.location]
    locations += [c.location for c in model.assumptions + model.guarantees]
    locations += [s.location for s in model.call_sites]
    return ";".join(str(loc) for loc in locations)


def _location_to_json(loc: Optional[Location]) -> Optional[List[Any]]:
    return [loc.file, loc.line, loc.column] if loc is not None else None


def _location_from_json(data) -> Optional[Location]:
    return Location(data[0], data[1], data[2]) if data is not None else None


def encode_report(report: FunctionReport) -> Dict[str, Any]:
    roots: List[Node] = []

    def ref(node: Node) -> int:
        roots.append(node)
        return len(roots) - 1

    constraints = []
    for c in report.constraints:
        outcome = c.outcome
        constraints.append({
            "location": _location_to_json(c.location),
            "function": c.function,
            "text": c.constraint_text,
            "kind": c.kind.value,
            "status": outcome.status.value,
            "reason": outcome.reason,
            "counterexample": (
                {k: value_to_json(v) for k, v in outcome.counterexample.items()}
                if outcome.counterexample is not None else None),
            "condition": ref(c.condition),
            "callee": c.callee,
            "call_site": c.call_site,
        })

    inversion = None
    inv = report.inversion
    if inv is not None:
        inversion = {
            "function": inv.function,
            "status": inv.outcome.value,
            "reason": inv.reason,
            "leg": inv.leg,
            "failing_node": inv.failing_node,
            "location": _location_to_json(inv.location),
            "inverse": None,
        }
        m = inv.inverse
        if m is not None:
            inversion["inverse"] = {
                "name": m.name,
                "params": [ref(p) for p in m.params],
                "body": ref(m.body),
                "result_type": type_to_json(m.result_type),
                "assumptions": [{"expr": ref(a.expr), "function": a.function, "text": a.text}
                                for a in m.assumptions],
                "inlined": list(m.inlined),
                "inverse_target": m.inverse_target,
            }

    return {
        "function": report.function,
        "constraints": constraints,
        "inversion": inversion,
        "graphs": encode_graphs(roots),
    }


def decode_report(arena: ExprArena, data: Dict[str, Any]) -> FunctionReport:
    nodes = decode_graphs(arena, data["graphs"])

    constraints = []
    for c in data["constraints"]:
        cex = c["counterexample"]
        outcome = ProofResult(
            ProofStatus(c["status"]),
            counterexample={k: value_from_json(v) for k, v in cex.items()} if cex is not None else None,
            reason=c["reason"],
        )
        constraints.append(ConstraintReport(
            location=_location_from_json(c["location"]),
            function=c["function"],
            constraint_text=c["text"],
            kind=ConstraintKind(c["kind"]),
            outcome=outcome,
            condition=nodes[c["condition"]],
            callee=c["callee"],
            call_site=c["call_site"],
        ))

    inversion = None
    inv = data["inversion"]
    if inv is not None:
        inverse = None
        m = inv["inverse"]
        if m is not None:
            inverse = FunctionSymbolicModel(
                name=m["name"],
                params=tuple(nodes[i] for i in m["params"]),
                body=nodes[m["body"]],
                result_type=type_from_json(m["result_type"]),
                assumptions=tuple(
                    Constraint(ConstraintKind.ASSUMPTION, nodes[a["expr"]], a["function"], a["text"])
                    for a in m["assumptions"]),
                tag=Tag.REVERSIBLE,
                inlined=tuple(m["inlined"]),
                inverse_target=m["inverse_target"],
            )
        inversion = InversionReport(
            function=inv["function"],
            outcome=InversionStatus(inv["status"]),
            reason=inv["reason"],
            leg=inv["leg"],
            failing_node=inv["failing_node"],
            inverse=inverse,
            location=_location_from_json(inv["location"]),
        )

    return FunctionReport(data["function"], tuple(constraints), inversion, cached=True)
