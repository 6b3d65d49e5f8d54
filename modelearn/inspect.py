"""Text queries over a learner, plus the on/off toggles.

Queries only read state, except ``classifiers``, which refreshes stale
classifiers first, and the toggles when given a value.

``inspect_em(em, ['mode', '1', 'model'])`` returns the report as a string
and raises InspectError for malformed queries.
"""
from typing import List, Optional, Sequence

from .algorithms.foil import clause_str
from .em import EM
from .errors import InspectError
from .mode import ModeInfo

SUBQUERIES = ('mode', 'ptable', 'timing', 'train', 'relations', 'classifiers', 'use_em', 'use_foil', 'use_lda')
TOGGLES = ('use_em', 'use_foil', 'use_lda')


def format_table(rows: Sequence[Sequence[object]]) -> str:
    """Left-aligned columns separated by two spaces."""
    cells = [[_cell(v) for v in row] for row in rows]
    ncols = max((len(r) for r in cells), default=0)
    widths = [max((len(r[c]) for r in cells if c < len(r)), default=0) for c in range(ncols)]
    return '\n'.join('  '.join(v.ljust(widths[c]) for c, v in enumerate(r)).rstrip() for r in cells)


def _cell(v) -> str:
    if isinstance(v, float):
        return f"{v:.6g}"
    return str(v)


def _parse_int(s: str) -> Optional[int]:
    try:
        return int(s)
    except ValueError:
        return None


def inspect_em(em: EM, args: Sequence[str]) -> str:
    args = list(args)
    if not args:
        return f"modes: {em.nmodes}\n\nsubqueries: {' '.join(SUBQUERIES)}"

    query, rest = args[0], args[1:]
    if query == 'ptable':
        return format_table([[i] + list(d.mode_prob) for i, d in enumerate(em.data)])
    if query == 'train':
        return inspect_train(em, rest)
    if query == 'mode':
        if not rest:
            raise InspectError(f"Specify a mode number (0 - {em.nmodes - 1})")
        n = _parse_int(rest[0])
        if n is None or not 0 <= n < em.nmodes:
            raise InspectError("invalid mode number")
        return inspect_mode(em.modes[n], rest[1:])
    if query == 'timing':
        return em.timers.report()
    if query == 'relations':
        return inspect_relations(em, rest)
    if query == 'classifiers':
        return inspect_classifiers(em)
    if query in TOGGLES:
        return toggle(em, query, rest)
    raise InspectError(f"unknown subquery {query!r}")


def toggle(em: EM, name: str, args: List[str]) -> str:
    if not args:
        return 'on' if getattr(em, name) else 'off'
    if args[0] not in ('on', 'off'):
        raise InspectError("expecting on|off")
    setattr(em, name, args[0] == 'on')
    return f"{name} = {args[0]}"


def inspect_train(em: EM, args: List[str]) -> str:
    header: List[object] = ['N', 'CLS', '|', 'DATA']
    if not em.data:
        return format_table([header])
    start, end = 0, em.ndata - 1
    have_start = False
    objs: List[str] = []
    for a in args:
        v = _parse_int(a)
        if v is None:
            objs.append(a)
        elif not have_start:
            start, have_start = v, True
        else:
            end = v
    if start < 0 or end < start or end >= em.ndata:
        raise InspectError("invalid data range")

    rows: List[List[object]] = [header]
    cols: List[int] = []
    for i in range(start, end + 1):
        d = em.data[i]
        if i == start or d.sig_index != em.data[i - 1].sig_index:
            sig = em.sigs[d.sig_index].sig
            shown = [e for e in sig if not objs or e.name in objs]
            cols = [e.start + k for e in shown for k in range(len(e.props))]
            names: List[object] = ['', '', '|']
            props: List[object] = ['', '', '|']
            for e in shown:
                names += [e.name] + [''] * (len(e.props) - 1)
                props += list(e.props)
            rows += [names, props]
        rows.append([i, d.map_mode, '|'] + [float(d.x[c]) for c in cols] + [d.y])
    return format_table(rows)


def inspect_mode(mode: ModeInfo, args: List[str]) -> str:
    what = args[0] if args else None
    if what is None:
        kind = 'noise' if mode.noise else 'linear'
        return (f"{kind} mode, {len(mode)} members, {len(mode.sig)} objects, "
                f"stale={mode.stale} classifier_stale={mode.classifier_stale}")
    if what == 'clauses':
        rows: List[List[object]] = []
        for slot, clauses in enumerate(mode.obj_clauses):
            if not clauses:
                rows.append([slot, 'empty'])
            for k, clause in enumerate(clauses):
                rows.append([slot if k == 0 else '', clause_str(clause)])
        return format_table(rows)
    if what == 'signature':
        return ' '.join(e.type for e in mode.sig)
    if what == 'members':
        return ' '.join(str(i) for i in sorted(mode.members))
    if what == 'model':
        if mode.noise:
            return 'noise'
        terms = []
        for e in mode.sig:
            for k, prop in enumerate(e.props):
                terms.append(f"{mode.lin_coefs[e.start + k]:.6g}*{e.name}.{prop}")
        terms.append(f"{mode.lin_inter:.6g}")
        return 'y = ' + ' + '.join(terms)
    raise InspectError(f"unknown mode query {what!r}")


def inspect_relations(em: EM, args: List[str]) -> str:
    if not args:
        return '\n'.join(f"{name} ({len(rel)} tuples)" for name, rel in sorted(em.rel_tbl.items()))
    name = args[0]
    rel = em.rel_tbl.get(name)
    if rel is None:
        raise InspectError(f"no relation named {name}")
    pattern: List[Optional[int]] = []
    for a in args[1:]:
        if a == '*':
            pattern.append(None)
            continue
        v = _parse_int(a)
        if v is None:
            raise InspectError(f"invalid pattern element {a!r}")
        pattern.append(v)
    if len(pattern) > rel.arity:
        raise InspectError("pattern larger than relation arity")
    return str(rel.match(pattern))


def inspect_classifiers(em: EM) -> str:
    """Classifier of every mode pair.

    Stale classifiers are relearned first, exactly as ``EM.classify`` would,
    so this query draws from the learner's random generator and clears the
    ``classifier_stale`` flags.
    """
    em.update_classifier()
    parts = []
    for i, mode in enumerate(em.modes):
        for j, c in enumerate(mode.classifiers):
            if c is not None:
                parts.append(f"=== FOR MODES {i}/{j} ===\n{c.inspect()}")
    return '\n'.join(parts)
