from __future__ import annotations

from collections import Counter
from threading import Lock
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from cashwise_api.models import Event, QuizAttempt


_LOCK = Lock()
_HTTP_REQUESTS: Counter[tuple[str, str, str]] = Counter()
_HTTP_LATENCY_BUCKETS_S: tuple[float, ...] = (
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
)
_HTTP_LATENCY_BINS: dict[tuple[str, str], list[int]] = {}
_HTTP_LATENCY_SUM_S: dict[tuple[str, str], float] = {}
_HTTP_LATENCY_COUNT: dict[tuple[str, str], int] = {}

# name -> labels -> value
_ENGINE_COUNTERS: dict[str, Counter[tuple[tuple[str, str], ...]]] = {}

ENGINE_COUNTER_HELP: dict[str, str] = {
    "xp_awarded": "XP granted by scoring operations.",
    "attempts": "Quiz attempt submissions by outcome.",
    "conflicts_absorbed": "Uniqueness conflicts resolved by re-reading or recomputing.",
    "challenge_claims": "Challenge claims by outcome.",
    "streak_reconciliations": "Cached streak values rewritten from the activity log.",
}


def inc_counter(name: str, amount: int = 1, **labels: str) -> None:
    key = tuple(sorted((str(k), str(v)) for k, v in labels.items()))
    with _LOCK:
        bucket = _ENGINE_COUNTERS.setdefault(str(name), Counter())
        bucket[key] += int(amount)


def counter_value(name: str, **labels: str) -> int:
    key = tuple(sorted((str(k), str(v)) for k, v in labels.items()))
    with _LOCK:
        return int(_ENGINE_COUNTERS.get(str(name), Counter()).get(key, 0))


def observe_http_request(
    *,
    path: str,
    method: str,
    status: str,
    duration_ms: float | None = None,
) -> None:
    key = (str(path), str(method), str(status))
    latency_key = (str(path), str(method))

    with _LOCK:
        _HTTP_REQUESTS[key] += 1
        if duration_ms is None:
            return
        dur_s = max(0.0, float(duration_ms) / 1000.0)
        bins = _HTTP_LATENCY_BINS.get(latency_key)
        if bins is None:
            bins = [0 for _ in range(len(_HTTP_LATENCY_BUCKETS_S) + 1)]
            _HTTP_LATENCY_BINS[latency_key] = bins

        idx = len(_HTTP_LATENCY_BUCKETS_S)
        for i, edge in enumerate(_HTTP_LATENCY_BUCKETS_S):
            if dur_s <= float(edge):
                idx = i
                break
        bins[idx] += 1
        _HTTP_LATENCY_SUM_S[latency_key] = _HTTP_LATENCY_SUM_S.get(latency_key, 0.0) + dur_s
        _HTTP_LATENCY_COUNT[latency_key] = _HTTP_LATENCY_COUNT.get(latency_key, 0) + 1


def _fmt_labels(**labels: str) -> str:
    def esc(value: str) -> str:
        return str(value).replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')

    parts = [f'{k}="{esc(v)}"' for k, v in labels.items()]
    return "{" + ",".join(parts) + "}" if parts else ""


def _render_counter(
    *,
    name: str,
    help_text: str,
    rows: Iterable[tuple[dict[str, str], int]],
) -> str:
    lines: list[str] = [
        f"# HELP {name} {help_text}",
        f"# TYPE {name} counter",
    ]
    for labels, value in rows:
        lines.append(f"{name}{_fmt_labels(**labels)} {int(value)}")
    return "\n".join(lines) + "\n"


def _render_histogram(
    *,
    name: str,
    help_text: str,
    rows: Iterable[tuple[dict[str, str], list[int], float, int]],
) -> str:
    lines: list[str] = [
        f"# HELP {name} {help_text}",
        f"# TYPE {name} histogram",
    ]
    for labels, bin_counts, sum_s, count in rows:
        cumulative = 0
        for i, edge in enumerate(_HTTP_LATENCY_BUCKETS_S):
            cumulative += int(bin_counts[i])
            lines.append(f"{name}_bucket{_fmt_labels(**labels, le=str(edge))} {cumulative}")
        cumulative += int(bin_counts[-1])
        lines.append(f"{name}_bucket{_fmt_labels(**labels, le='+Inf')} {cumulative}")
        lines.append(f"{name}_sum{_fmt_labels(**labels)} {float(sum_s):.6f}")
        lines.append(f"{name}_count{_fmt_labels(**labels)} {int(count)}")
    return "\n".join(lines) + "\n"


def render_prometheus_metrics(*, db: Session) -> str:
    with _LOCK:
        http_items = sorted(_HTTP_REQUESTS.items())
        latency_items = sorted(
            (
                key,
                list(bins),
                float(_HTTP_LATENCY_SUM_S.get(key, 0.0)),
                int(_HTTP_LATENCY_COUNT.get(key, 0)),
            )
            for key, bins in _HTTP_LATENCY_BINS.items()
        )
        engine_items = {
            name: sorted(values.items()) for name, values in _ENGINE_COUNTERS.items()
        }

    out: list[str] = [
        _render_counter(
            name="cashwise_http_requests_total",
            help_text="Total HTTP requests processed by this API process.",
            rows=[
                ({"path": path, "method": method, "status": status}, count)
                for (path, method, status), count in http_items
            ],
        ),
        _render_histogram(
            name="cashwise_http_request_duration_seconds",
            help_text="HTTP request duration (seconds) by route template and method.",
            rows=[
                ({"path": path, "method": method}, bins, sum_s, count)
                for ((path, method), bins, sum_s, count) in latency_items
            ],
        ),
    ]

    for name, help_text in ENGINE_COUNTER_HELP.items():
        out.append(
            _render_counter(
                name=f"cashwise_{name}_total",
                help_text=help_text,
                rows=[(dict(labels), value) for labels, value in engine_items.get(name, [])],
            )
        )

    attempt_rows = db.execute(
        select(QuizAttempt.passed, func.count(QuizAttempt.id)).group_by(QuizAttempt.passed)
    ).all()
    out.append(
        _render_counter(
            name="cashwise_stored_attempts_total",
            help_text="Stored quiz attempts by pass/fail.",
            rows=[
                ({"passed": "true" if passed else "false"}, int(cnt or 0))
                for (passed, cnt) in attempt_rows
            ],
        )
    )

    ev_rows = db.execute(
        select(Event.type, func.count(Event.id)).group_by(Event.type)
    ).all()
    out.append(
        _render_counter(
            name="cashwise_events_total",
            help_text="Product events by type.",
            rows=[({"type": str(t)}, int(cnt or 0)) for (t, cnt) in ev_rows],
        )
    )

    return "\n".join(out)
