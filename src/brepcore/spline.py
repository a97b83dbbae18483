"""Spline evaluation kernels.

Knot vector construction, B-spline basis functions and their derivatives,
rational (NURBS) point/derivative evaluation, de Casteljau evaluation of
Bezier control polygons, and Gauss-Legendre quadrature used for arc length.
The curve and surface classes in :mod:`brepcore.curves` and
:mod:`brepcore.surfaces` are thin wrappers around these routines.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Callable, List, Sequence, Tuple

import numpy as np

from brepcore.geom import Point, WeightedPoint, add, scale, sub


def open_uniform_knots(count: int, degree: int) -> List[float]:
    """Clamped uniform knot vector on ``[0, 1]`` for ``count`` control points."""

    if degree < 1:
        raise ValueError('degree must be >= 1')
    if count < degree + 1:
        raise ValueError(f'need at least {degree + 1} control points for degree {degree}')
    interior = count - degree - 1
    knots = [0.0] * (degree + 1)
    for i in range(1, interior + 1):
        knots.append(i / (interior + 1))
    knots.extend([1.0] * (degree + 1))
    return knots


def uniform_knots(count: int, degree: int) -> List[float]:
    """Unclamped uniform knot vector, used for periodic curves."""

    if count < degree + 1:
        raise ValueError(f'need at least {degree + 1} control points for degree {degree}')
    total = count + degree + 1
    return [i / (total - 1) for i in range(total)]


def check_knots(knots: Sequence[float], count: int, degree: int) -> None:
    """Raise ``ValueError`` unless ``knots`` fits ``count`` points of ``degree``."""

    expected = count + degree + 1
    if len(knots) != expected:
        raise ValueError(f'expected {expected} knots, got {len(knots)}')
    for a, b in zip(knots, knots[1:]):
        if b < a:
            raise ValueError('knot vector must be non-decreasing')
    if knots[count] <= knots[degree]:
        raise ValueError('knot vector has an empty active domain')


def active_range(knots: Sequence[float], degree: int) -> Tuple[float, float]:
    """The parameter domain on which the basis functions partition unity."""

    return float(knots[degree]), float(knots[len(knots) - degree - 1])


def find_span(knots: Sequence[float], degree: int, u: float) -> int:
    """Index ``k`` with ``knots[k] <= u < knots[k+1]`` inside the active domain.

    ``u`` at the domain end maps onto the last non-empty span.
    """

    n = len(knots) - degree - 2
    lo, hi = active_range(knots, degree)
    if u >= hi:
        k = n
        while k > degree and knots[k] >= knots[k + 1]:
            k -= 1
        return k
    if u <= lo:
        k = degree
        while k < n and knots[k] >= knots[k + 1]:
            k += 1
        return k
    low, high = degree, n + 1
    mid = (low + high) // 2
    while u < knots[mid] or u >= knots[mid + 1]:
        if u < knots[mid]:
            high = mid
        else:
            low = mid
        mid = (low + high) // 2
    return mid


def clamp_parameter(u: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, float(u)))


def _basis(i: int, p: int, u: float, knots: Sequence[float], span: int, order: int = 0) -> float:
    """``order``-th derivative of the basis function ``N_{i,p}`` at ``u``."""

    if p == 0:
        if order > 0:
            return 0.0
        return 1.0 if i == span else 0.0

    if order == 0:
        left = 0.0
        denom = knots[i + p] - knots[i]
        if denom != 0.0:
            left = (u - knots[i]) / denom * _basis(i, p - 1, u, knots, span)

        right = 0.0
        denom = knots[i + p + 1] - knots[i + 1]
        if denom != 0.0:
            right = (knots[i + p + 1] - u) / denom * _basis(i + 1, p - 1, u, knots, span)
        return left + right

    left = 0.0
    denom = knots[i + p] - knots[i]
    if denom != 0.0:
        left = _basis(i, p - 1, u, knots, span, order - 1) / denom

    right = 0.0
    denom = knots[i + p + 1] - knots[i + 1]
    if denom != 0.0:
        right = _basis(i + 1, p - 1, u, knots, span, order - 1) / denom
    return p * (left - right)


def basis_functions(knots: Sequence[float], degree: int, u: float, order: int = 0) -> List[Tuple[int, List[float]]]:
    """Return ``(i, [N_i, N_i', ...])`` for every basis function that is non-zero at ``u``."""

    span = find_span(knots, degree, u)
    result = []
    for i in range(span - degree, span + 1):
        values = [_basis(i, degree, u, knots, span, k) for k in range(order + 1)]
        result.append((i, values))
    return result


def rational_derivatives(ctrl: Sequence[WeightedPoint], knots: Sequence[float],
                         degree: int, u: float, order: int = 0) -> List[Point]:
    """Point and up to second derivative of a NURBS curve at ``u``."""

    if order > 2:
        raise ValueError('only derivatives up to order 2 are supported')
    dim = ctrl[0].dimension
    a = [[0.0] * dim for _ in range(order + 1)]
    w = [0.0] * (order + 1)
    for i, values in basis_functions(knots, degree, u, order):
        cp = ctrl[i]
        for k, nk in enumerate(values):
            if nk == 0.0:
                continue
            wk = nk * cp.weight
            w[k] += wk
            for axis in range(dim):
                a[k][axis] += wk * cp.point[axis]

    if w[0] == 0.0:
        return [ctrl[0].point] + [tuple([0.0] * dim)] * order

    c0 = tuple(x / w[0] for x in a[0])
    out = [c0]
    if order >= 1:
        c1 = scale(sub(tuple(a[1]), scale(c0, w[1])), 1.0 / w[0])
        out.append(c1)
    if order >= 2:
        c2 = tuple(a[2])
        c2 = sub(c2, scale(out[1], 2.0 * w[1]))
        c2 = sub(c2, scale(c0, w[2]))
        out.append(scale(c2, 1.0 / w[0]))
    return out


def de_casteljau(ctrl: Sequence[Point], t: float) -> Point:
    """Evaluate a Bezier control polygon at ``t`` in ``[0, 1]``."""

    pts = list(ctrl)
    if not pts:
        raise ValueError('Bezier control polygon is empty')
    while len(pts) > 1:
        pts = [add(scale(a, 1.0 - t), scale(b, t)) for a, b in zip(pts, pts[1:])]
    return pts[0]


def hodograph(ctrl: Sequence[Point]) -> List[Point]:
    """Control polygon of the derivative of a Bezier curve."""

    n = len(ctrl) - 1
    return [scale(sub(b, a), float(n)) for a, b in zip(ctrl, ctrl[1:])]


def bezier_derivatives(ctrl: Sequence[Point], t: float, order: int = 0) -> List[Point]:
    """Point and up to ``order`` derivatives of a Bezier curve at ``t``."""

    out = [de_casteljau(ctrl, t)]
    poly = list(ctrl)
    dim = len(ctrl[0])
    for _ in range(order):
        if len(poly) < 2:
            out.append(tuple([0.0] * dim))
            continue
        poly = hodograph(poly)
        out.append(de_casteljau(poly, t))
    return out


def split_bezier(ctrl: Sequence[Point], t: float) -> Tuple[List[Point], List[Point]]:
    """Split a Bezier control polygon at ``t`` into two polygons."""

    left = [ctrl[0]]
    right = [ctrl[-1]]
    pts = list(ctrl)
    while len(pts) > 1:
        pts = [add(scale(a, 1.0 - t), scale(b, t)) for a, b in zip(pts, pts[1:])]
        left.append(pts[0])
        right.append(pts[-1])
    right.reverse()
    return left, right


@lru_cache(maxsize=32)
def gauss_legendre(n_points: int) -> Tuple[Tuple[float, ...], Tuple[float, ...]]:
    """Gauss-Legendre points and weights on ``[-1, 1]``."""

    if n_points < 1:
        raise ValueError('n_points must be >= 1')
    xs, ws = np.polynomial.legendre.leggauss(n_points)
    return tuple(float(x) for x in xs), tuple(float(w) for w in ws)


def integrate(func: Callable[[float], float], a: float, b: float, n_points: int = 8) -> float:
    """Gauss-Legendre quadrature of ``func`` over ``[a, b]``."""

    if b <= a:
        return 0.0
    xs, ws = gauss_legendre(n_points)
    half = 0.5 * (b - a)
    mid = 0.5 * (a + b)
    return half * sum(w * func(mid + half * x) for x, w in zip(xs, ws))


def insert_knot(ctrl: Sequence[Point], knots: Sequence[float], degree: int,
                u: float) -> Tuple[List[Point], List[float]]:
    """Boehm insertion of one knot ``u``; the curve is unchanged.

    Pass homogeneous control points to refine a rational curve exactly.
    """

    k = find_span(knots, degree, u)
    new_ctrl = list(ctrl[:k - degree + 1])
    for i in range(k - degree + 1, k + 1):
        alpha = (u - knots[i]) / (knots[i + degree] - knots[i])
        alpha = max(0.0, min(1.0, alpha))
        new_ctrl.append(add(scale(ctrl[i], alpha), scale(ctrl[i - 1], 1.0 - alpha)))
    new_ctrl.extend(ctrl[k:])
    new_knots = list(knots[:k + 1]) + [float(u)] + list(knots[k + 1:])
    return new_ctrl, new_knots


def bezier_decompose(ctrl: Sequence[Point], knots: Sequence[float],
                     degree: int) -> List[List[Point]]:
    """Split a B-spline into one Bezier control polygon per knot span.

    Every distinct knot of the active domain, ends included, is raised to
    multiplicity ``degree``; the polygons then share their end points.
    """

    pts = list(ctrl)
    kv = [float(k) for k in knots]
    lo, hi = active_range(kv, degree)
    for value in sorted({k for k in kv if lo <= k <= hi}):
        while kv.count(value) < degree:
            pts, kv = insert_knot(pts, kv, degree, value)
    segments = []
    for a, _ in distinct_spans(kv, degree):
        k = find_span(kv, degree, a)
        segments.append(pts[k - degree:k + 1])
    return segments


def elevate_bezier(ctrl: Sequence[Point], degree: int) -> List[Point]:
    """Raise a Bezier control polygon to ``degree`` without changing the curve."""

    pts = list(ctrl)
    while len(pts) - 1 < degree:
        n = len(pts)
        raised = [pts[0]]
        for i in range(1, n):
            a = i / n
            raised.append(add(scale(pts[i - 1], a), scale(pts[i], 1.0 - a)))
        raised.append(pts[-1])
        pts = raised
    return pts


def distinct_spans(knots: Sequence[float], degree: int) -> List[Tuple[float, float]]:
    """Non-empty knot spans inside the active domain."""

    lo, hi = active_range(knots, degree)
    spans = []
    for a, b in zip(knots, knots[1:]):
        if b > a and a >= lo and b <= hi:
            spans.append((float(a), float(b)))
    return spans


__all__ = [
    'open_uniform_knots',
    'uniform_knots',
    'check_knots',
    'active_range',
    'find_span',
    'clamp_parameter',
    'basis_functions',
    'rational_derivatives',
    'de_casteljau',
    'hodograph',
    'bezier_derivatives',
    'split_bezier',
    'gauss_legendre',
    'integrate',
    'distinct_spans',
    'insert_knot',
    'bezier_decompose',
    'elevate_bezier',
]
