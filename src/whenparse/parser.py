"""
The expression parser.

Reading an expression is a search: at every position several recognizers
may match, each giving a different reading of the rest of the text. Each
possible reading is explored as its own task on a thread pool. A branch
that reaches the end of its text and passes validation becomes one Term of
the result.

Bookkeeping per operation lives in ``_operations`` and is guarded by a
read/write lock: looking an operation up takes the read lock, adding and
removing one takes the write lock. Every sub-expression has a counter of
outstanding branches. A branch registers its children before finishing,
so a counter only reaches zero once no work is left, and whoever brings it
there reports the finished TermSelection. The last sub-expression to finish
reports the whole operation.
"""

from __future__ import annotations

import re
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, replace
from datetime import datetime, time
from typing import Callable, Optional

from whenparse.concurrency import ReadWriteLock, TaskCounter
from whenparse.errors import EmptyTerm, ExpressionError, UnparsableExpression
from whenparse.schedule import (
    OneTimeSchedule,
    RepeatedSchedule,
    Schedule,
    next_occurrence,
)
from whenparse.shared import bug_msg, log_msg
from whenparse.terms import (
    RECOGNIZERS,
    LimiterTerm,
    MultiTerm,
    SubTerm,
    Term,
    TermSelection,
)
from whenparse.validation import (
    validate_full_term,
    validate_limit_term,
    validate_partial_term,
)
from whenparse.whenparse_env import WhenparseConfig
from whenparse.words import DEFAULT_LOCALE, WordKey, alternation, tr_list

TermCallback = Callable[[uuid.UUID, int, TermSelection], None]
OperationCallback = Callable[[uuid.UUID, MultiTerm], None]


@dataclass(frozen=True)
class _Branch:
    """One partial reading: what has been read so far and where it stopped."""

    offset: int = 0
    main: tuple[SubTerm, ...] = ()
    limiter: Optional[LimiterTerm] = None
    nested: tuple[SubTerm, ...] = ()

    def closed_main(self) -> tuple[SubTerm, ...]:
        """The main Sub-Terms with any open limit wrapped up and appended."""
        if self.limiter is None:
            return self.main
        if not self.nested:
            raise EmptyTerm(f"'{self.limiter.describe()}' needs a time after it")
        main = self.main + (self.limiter.wrap(Term(self.nested)),)
        validate_partial_term(main)
        return main

    def extend(self, subterm: SubTerm, length: int) -> _Branch:
        offset = self.offset + length
        if isinstance(subterm, LimiterTerm):
            main = self.closed_main()
            validate_partial_term(main + (subterm,))
            return _Branch(offset, main, subterm, ())
        if self.limiter is not None:
            nested = self.nested + (subterm,)
            validate_limit_term(nested)
            return replace(self, offset=offset, nested=nested)
        main = self.main + (subterm,)
        validate_partial_term(main)
        return replace(self, offset=offset, main=main)


class _SubExpression:
    def __init__(self, index: int, text: str):
        self.index = index
        self.text = text
        self.pending = TaskCounter(1)
        self._lock = threading.Lock()
        self._terms: list[Term] = []
        self._stuck_at = 0
        self._rejection: Optional[ExpressionError] = None
        self._rejected_at = -1

    def add_term(self, term: Term) -> None:
        with self._lock:
            self._terms.append(term)

    def stuck(self, offset: int) -> None:
        with self._lock:
            self._stuck_at = max(self._stuck_at, offset)

    def reject(self, error: ExpressionError, offset: int) -> None:
        with self._lock:
            if offset > self._rejected_at:
                self._rejection, self._rejected_at = error, offset

    def selection(self) -> TermSelection:
        with self._lock:
            if self._terms:
                return TermSelection(self.text, self.index, tuple(self._terms))
            # report whatever got furthest into the text
            if self._rejection is not None and self._rejected_at >= self._stuck_at:
                error = self._rejection
            else:
                error = UnparsableExpression(self.text, self._stuck_at)
            return TermSelection(self.text, self.index, (), error)


class _Operation:
    def __init__(
        self,
        text: str,
        parts: list[str],
        on_term_completed: Optional[TermCallback],
        on_operation_completed: Optional[OperationCallback],
    ):
        self.text = text
        self.subexpressions = [_SubExpression(i, p) for i, p in enumerate(parts)]
        self.selections: list[Optional[TermSelection]] = [None] * len(parts)
        self.open_parts = TaskCounter(len(parts))
        self.on_term_completed = on_term_completed
        self.on_operation_completed = on_operation_completed
        self.future: Future = Future()
        self._lock = threading.Lock()
        self.failure: Optional[BaseException] = None

    def fail(self, exc: BaseException) -> None:
        with self._lock:
            if self.failure is None:
                self.failure = exc


class ExpressionParser:
    """
    Parses natural language time expressions in the background.

    >>> with ExpressionParser() as parser:
    ...     selection = parser.parse_expression("every Monday at 9:00")
    ...     schedule = parser.parse_schedule(selection[0])
    """

    def __init__(
        self,
        locale: str = DEFAULT_LOCALE,
        max_workers: int = 4,
        default_time: time = time(0),
        clock: Optional[Callable[[], datetime]] = None,
        log: bool = True,
    ):
        self.locale = locale
        self.default_time = default_time
        self._clock = clock
        self._log = log
        self._separator = re.compile(
            alternation(tr_list(WordKey.EXPRESSION_SEPARATOR, locale=locale))
        )
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="whenparse"
        )
        self._task_lock = ReadWriteLock()
        self._operations: dict[uuid.UUID, _Operation] = {}
        self._closed = False

    @classmethod
    def from_config(cls, config: WhenparseConfig, **kwargs) -> ExpressionParser:
        settings = dict(
            locale=config.parser.locale,
            max_workers=config.parser.max_workers,
            default_time=config.schedule.default_time_value,
            log=config.logging.enabled,
        )
        settings.update(kwargs)
        return cls(**settings)

    def __enter__(self) -> ExpressionParser:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        """Let running operations finish, then stop the worker threads."""
        with self._task_lock.read_locked():
            futures = [op.future for op in self._operations.values()]
        self._closed = True
        wait(futures)
        self._executor.shutdown(wait=True)

    def now(self) -> datetime:
        return self._clock() if self._clock is not None else datetime.now()

    @property
    def pending_operations(self) -> int:
        with self._task_lock.read_locked():
            return len(self._operations)

    def split(self, text: str) -> list[str]:
        """Cut input into sub-expressions; blank pieces are dropped."""
        parts = [p.strip() for p in self._separator.split(text)]
        parts = [p for p in parts if p]
        return parts or [text.strip()]

    # ─── public operations ─────────────────────────────────

    def submit_multi_expression(
        self,
        text: str,
        on_term_completed: Optional[TermCallback] = None,
        on_operation_completed: Optional[OperationCallback] = None,
        allow_multi: bool = True,
    ) -> tuple[uuid.UUID, Future]:
        """
        Start parsing ``text`` and return at once.

        ``on_term_completed(op_id, index, selection)`` is called once per
        sub-expression and ``on_operation_completed(op_id, multi_term)`` once
        at the very end, both from a worker thread. The returned future
        resolves to the same MultiTerm.
        """
        if self._closed:
            raise RuntimeError("parser is closed")
        parts = self.split(text) if allow_multi else [text.strip()]
        op_id = uuid.uuid4()
        operation = _Operation(text, parts, on_term_completed, on_operation_completed)
        with self._task_lock.write_locked():
            self._operations[op_id] = operation
        if self._log:
            log_msg(f"operation {op_id}: parsing {text!r} as {len(parts)} expression(s)")
        for index in range(len(parts)):
            self._executor.submit(self._run_branch, op_id, index, _Branch())
        return op_id, operation.future

    def parse_multi_expression(self, text: str) -> MultiTerm:
        """
        Parse ``;`` separated expressions. Parts that cannot be read carry
        their error in the result instead of failing the whole call.
        """
        _, future = self.submit_multi_expression(text)
        return future.result()

    def parse_expression(self, text: str) -> TermSelection:
        """Parse a single expression, raising its error when there is no reading."""
        _, future = self.submit_multi_expression(text, allow_multi=False)
        selection = future.result()[0]
        if selection.error is not None:
            raise selection.error
        return selection

    def parse_schedule(self, term: Term, since: Optional[datetime] = None) -> Schedule:
        since = since or self.now()
        if term.is_looped:
            schedule = RepeatedSchedule(term, since, self.default_time)
            # fails here rather than later when the schedule never fires
            schedule.next_occurrence(since)
        else:
            schedule = OneTimeSchedule(term, since, self.default_time)
        if self._log:
            log_msg(f"schedule for {term.describe()!r} since {since:%Y-%m-%d %H:%M}")
        return schedule

    def parse_snooze_time(self, term: Term, since: Optional[datetime] = None) -> datetime:
        """The single next instant for ``term``; limits are not applied."""
        since = since or self.now()
        return next_occurrence(
            term,
            since,
            strict=term.is_looped,
            default_time=self.default_time,
            bounds=(None, None),
        )

    # ─── task bookkeeping ──────────────────────────────────

    def _operation(self, op_id: uuid.UUID) -> _Operation:
        with self._task_lock.read_locked():
            return self._operations[op_id]

    def _add_tasks(self, op_id: uuid.UUID, index: int, count: int) -> None:
        self._operation(op_id).subexpressions[index].pending.add(count)

    def _complete_task(self, op_id: uuid.UUID, index: int) -> None:
        operation = self._operation(op_id)
        sub = operation.subexpressions[index]
        if sub.pending.done():
            return

        selection = sub.selection()
        operation.selections[index] = selection
        if self._log:
            outcome = f"{len(selection)} reading(s)" if selection.ok else str(selection.error)
            log_msg(f"operation {op_id}: expression {index} {sub.text!r} done, {outcome}")
        self._emit(operation, operation.on_term_completed, op_id, index, selection)

        if operation.open_parts.done():
            return
        with self._task_lock.write_locked():
            del self._operations[op_id]

        result = MultiTerm(operation.text, tuple(operation.selections))
        if self._log:
            log_msg(f"operation {op_id}: finished with {len(result.errors)} error(s)")
        self._emit(operation, operation.on_operation_completed, op_id, result)
        if operation.failure is not None:
            operation.future.set_exception(operation.failure)
        else:
            operation.future.set_result(result)

    def _emit(self, operation: _Operation, callback, *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as exc:
            bug_msg(f"callback {callback!r} raised {exc!r}")
            operation.fail(exc)

    # ─── exploration ───────────────────────────────────────

    def _run_branch(self, op_id: uuid.UUID, index: int, branch: _Branch) -> None:
        operation = self._operation(op_id)
        try:
            children = self._explore(operation.subexpressions[index], branch)
            for child in children:
                self._add_tasks(op_id, index, 1)
                try:
                    self._executor.submit(self._run_branch, op_id, index, child)
                except RuntimeError:
                    self._complete_task(op_id, index)
                    raise
        except Exception as exc:
            bug_msg(f"operation {op_id}: expression {index} failed with {exc!r}")
            operation.fail(exc)
        finally:
            self._complete_task(op_id, index)

    def _explore(self, sub: _SubExpression, branch: _Branch) -> list[_Branch]:
        remaining = sub.text[branch.offset :]
        if not remaining:
            try:
                term = validate_full_term(
                    branch.closed_main(), self.now(), self.default_time
                )
            except ExpressionError as exc:
                sub.reject(exc, len(sub.text))
            else:
                sub.add_term(term)
            return []

        children = []
        recognized = False
        for recognizer in RECOGNIZERS:
            found = recognizer.parse(remaining, self.locale)
            if found is None or found[1] == 0:
                continue
            recognized = True
            subterm, length = found
            try:
                children.append(branch.extend(subterm, length))
            except ExpressionError as exc:
                sub.reject(exc, branch.offset + length)
        if not recognized:
            sub.stuck(branch.offset)
        return children
