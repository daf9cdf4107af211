import logging
import time
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional

logger = logging.getLogger(__name__)

_current_span: ContextVar[Optional['TraceSpan']] = ContextVar(
    'badge_trace_span', default=None
)


@dataclass
class TraceSpan:
    '''Timed unit of work. Nested spans share the root's trace via `parent`.'''

    name: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    parent: Optional['TraceSpan'] = None
    children: list['TraceSpan'] = field(default_factory=list)
    status: str = 'ok'
    started: float = field(default_factory=time.perf_counter)
    ended: Optional[float] = None

    @property
    def duration_ms(self) -> Optional[float]:
        if self.ended is None:
            return None
        return (self.ended - self.started) * 1000

    @property
    def depth(self) -> int:
        depth, node = 0, self.parent
        while node is not None:
            depth += 1
            node = node.parent
        return depth

    def set(self, key: str, value: Any) -> None:
        self.metadata[key] = value

    def fail(self, exc: BaseException) -> None:
        self.status = 'error'
        self.metadata['error'] = type(exc).__name__

    def close(self) -> None:
        self.ended = time.perf_counter()
        details = ', '.join(f'{k}={v}' for k, v in self.metadata.items())
        message = f'{self.name} {self.status} in {self.duration_ms:.2f}ms [{details}]'
        # Root spans summarize a whole call; nested ones are only useful when debugging
        if self.status == 'error':
            logger.warning(message)
        elif self.parent is None:
            logger.info(message)
        else:
            logger.debug(f'{"  " * self.depth}{message}')


@contextmanager
def trace_span(
    name: str, metadata: Optional[Dict[str, Any]] = None
) -> Iterator[TraceSpan]:
    '''Open a span nested under the current one for the duration of the block.

    Example:
        with trace_span('badges.score', {'badge_id': badge.id}) as span:
            result = scorer.score(badge, snapshot)
            span.set('progress', result.progress_percent)
    '''
    parent = _current_span.get()
    span = TraceSpan(name=name, metadata=dict(metadata or {}), parent=parent)
    if parent is not None:
        parent.children.append(span)

    token = _current_span.set(span)
    try:
        yield span
    except BaseException as exc:
        span.fail(exc)
        raise
    finally:
        _current_span.reset(token)
        span.close()


def current_span() -> Optional[TraceSpan]:
    return _current_span.get()


def annotate(key: str, value: Any) -> None:
    '''Attach metadata to the innermost open span, if any.'''
    span = current_span()
    if span is not None:
        span.set(key, value)
