"""Verifier sessions: instrument, run, and compare coverage against expectations.

A session is created once per case with :func:`create`, then used for exactly one
``verify``/``check`` call. Creation runs the transform and compiles the result; the
verification run primes the coverage slot, executes, and performs every comparison,
collecting each failure rather than stopping at the first one.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from covharness import logger
from covharness.config import DEFAULT_COVERAGE_VARIABLE, debug_from_env, load_settings, resolve_transform
from covharness.engine.codec import decode_baseline
from covharness.engine.sandbox import ainvoke, compile_instrumented, default_context
from covharness.engine.transform import annotated_code, build_transform_options, run_transform
from covharness.errors import (
    AssertionMismatch,
    CompileError,
    ExecutionError,
    HarnessError,
    InvalidCoverageRecordError,
    MetadataDecodeError,
    MissingCoverageError,
    SessionStateError,
    TransformError,
    VerificationError,
)
from covharness.model.coverage import CoverageView
from covharness.model.records import (
    ExpectedCoverage,
    Failed,
    HarnessOptions,
    InstrumentationRequest,
)
from covharness.model.types import Dimension, SessionState

if TYPE_CHECKING:
    from collections.abc import Callable

    from covharness.engine.sandbox import CoverageContext
    from covharness.engine.transform import Transform

_BANNER_WIDTH = 72


def _banner(title: str = "") -> str:
    head = f"{'=' * 18} {title} " if title else ""
    return head + "=" * (_BANNER_WIDTH - len(head))


def _deep_equal(actual: Any, expected: Any) -> bool:
    """Structural equality that also requires matching types, so ``True`` is not ``1`` and ``1.0`` is not ``1``."""
    if type(actual) is not type(expected):
        return False
    if isinstance(actual, Mapping):
        return actual.keys() == expected.keys() and all(_deep_equal(actual[k], expected[k]) for k in actual)
    if isinstance(actual, list | tuple):
        return len(actual) == len(expected) and all(map(_deep_equal, actual, expected))
    return actual == expected


@dataclass(slots=True)
class VerificationReport:
    """Outcome of one verification run."""

    output: Any = None
    failures: list[HarnessError] = field(default_factory=list)
    coverage: CoverageView | None = None

    @property
    def passed(self) -> bool:
        return not self.failures

    def raise_for_failures(self) -> None:
        if self.failures:
            raise VerificationError(self.failures)


@dataclass(slots=True)
class _SessionResult:
    error: HarnessError | None
    file: str
    fn: Callable[[Any], Any] | None
    generated_code: str | None
    coverage_variable: str
    baseline: Any
    empty_coverage: dict[str, Any] | None


class Verifier:
    """One instrument/execute/verify cycle. Do not reuse across cases."""

    def __init__(self, result: _SessionResult, options: HarnessOptions, context: CoverageContext) -> None:
        self._result = result
        self._options = options
        self._context = context
        self.state = SessionState.CREATED

    # -- accessors -----------------------------------------------------------------

    @property
    def file(self) -> str:
        return self._result.file

    @property
    def coverage_variable(self) -> str:
        return self._result.coverage_variable

    @property
    def fn(self) -> Callable[[Any], Any] | None:
        return self._result.fn

    @property
    def error(self) -> HarnessError | None:
        """Transform/compile error stored for generate-only and no-coverage sessions."""
        return self._result.error

    @property
    def empty_coverage(self) -> dict[str, Any] | None:
        return self._result.empty_coverage

    def get_generated_code(self) -> str | None:
        return self._result.generated_code

    def get_coverage(self) -> Any:
        return self._context.read(self._result.coverage_variable)

    def get_file_coverage(self) -> CoverageView | None:
        """View over this file's record in the coverage slot, or ``None`` if absent."""
        cov = self.get_coverage()
        if not isinstance(cov, Mapping) or not cov:
            return None
        # transforms may normalise the path, so fall back to the only/first record
        raw = cov.get(self._result.file)
        if raw is None:
            raw = next(iter(cov.values()))
        return CoverageView.from_record(raw)

    # -- verification ----------------------------------------------------------------

    def verify(self, args: Any = None, expected_output: Any = None, expected_coverage: Any = None) -> Any:
        """Run and compare; raise :class:`VerificationError` listing every failed check."""
        report = self.check(args, expected_output, expected_coverage)
        report.raise_for_failures()
        return report.output

    async def averify(self, args: Any = None, expected_output: Any = None, expected_coverage: Any = None) -> Any:
        report = await self.acheck(args, expected_output, expected_coverage)
        report.raise_for_failures()
        return report.output

    def check(self, args: Any = None, expected_output: Any = None, expected_coverage: Any = None) -> VerificationReport:
        """Synchronous entry point; asynchronous sessions are driven with ``asyncio.run``."""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(self.acheck(args, expected_output, expected_coverage))
        msg = "check()/verify() cannot run inside an event loop; await acheck()/averify() instead"
        raise SessionStateError(msg)

    async def acheck(
        self, args: Any = None, expected_output: Any = None, expected_coverage: Any = None
    ) -> VerificationReport:
        if self.state is not SessionState.CREATED:
            msg = f"verifier session already used (state: {self.state})"
            raise SessionStateError(msg)

        expected = ExpectedCoverage.from_mapping(expected_coverage)
        report = VerificationReport()
        res = self._result

        if res.error is not None:
            report.failures.append(res.error)

        if self._options.generate_only:
            self._check_baseline(report)
            self.state = SessionState.FAILED if report.failures else SessionState.VERIFIED
            return report

        executed = False
        if res.fn is not None:
            with self._context.claim(res.coverage_variable):
                self._context.prime(res.coverage_variable, res.baseline)
                self.state = SessionState.PRIMED
                try:
                    report.output = await ainvoke(res.fn, args)
                    executed = True
                except ExecutionError as exc:
                    if not self._options.quiet:
                        logger.error("executing %s failed: %s", res.file, exc)
                    report.failures.append(exc)
                self.state = SessionState.EXECUTED
                coverage = self._file_coverage_or_failure(report)

            if executed:
                if not _deep_equal(report.output, expected_output):
                    report.failures.append(
                        AssertionMismatch(str(Dimension.OUTPUT), report.output, expected_output, "Output mismatch")
                    )
            if not self._options.no_coverage:
                if coverage is not None:
                    report.coverage = coverage
                    self._check_coverage(report, coverage, expected)
                self._check_baseline(report)

        self.state = SessionState.FAILED if report.failures else SessionState.VERIFIED
        return report

    def _file_coverage_or_failure(self, report: VerificationReport) -> CoverageView | None:
        if self._options.no_coverage:
            return None
        try:
            coverage = self.get_file_coverage()
        except InvalidCoverageRecordError as exc:
            report.failures.append(exc)
            return None
        if coverage is None:
            report.failures.append(MissingCoverageError(f"No coverage found for [{self._result.file}]"))
        return coverage

    @staticmethod
    def _compare(report: VerificationReport, dimension: Dimension, actual: Any, expected: Any, message: str) -> None:
        if actual != expected:
            report.failures.append(AssertionMismatch(str(dimension), actual, expected, message))

    def _check_coverage(self, report: VerificationReport, cov: CoverageView, expected: ExpectedCoverage) -> None:
        try:
            lines = cov.line_counts()
        except InvalidCoverageRecordError as exc:
            report.failures.append(exc)
        else:
            self._compare(report, Dimension.LINES, lines, dict(expected.lines), "Line coverage mismatch")
        self._compare(
            report, Dimension.FUNCTIONS, cov.function_counts(), dict(expected.functions), "Function coverage mismatch"
        )
        self._compare(
            report, Dimension.BRANCHES, cov.branch_counts(), dict(expected.branches), "Branch coverage mismatch"
        )
        self._compare(
            report,
            Dimension.BRANCHES_TRUE,
            cov.branch_truthiness_counts() or {},
            dict(expected.branches_true),
            "Branch truthiness coverage mismatch",
        )
        self._compare(
            report, Dimension.STATEMENTS, cov.statement_counts(), dict(expected.statements), "Statement coverage mismatch"
        )
        self._compare(
            report,
            Dimension.INPUT_SOURCE_MAP,
            cov.input_source_map,
            None if expected.input_source_map is None else dict(expected.input_source_map),
            "Input source map mismatch",
        )

    def _check_baseline(self, report: VerificationReport) -> None:
        res = self._result
        if res.generated_code is None:
            return
        try:
            initial = decode_baseline(res.generated_code)
        except MetadataDecodeError as exc:
            report.failures.append(exc)
            return
        if initial is None:
            report.failures.append(MetadataDecodeError("generated code carries no embedded coverage baseline"))
            return

        dim = str(Dimension.BASELINE)
        if initial.coverage_data != res.empty_coverage:
            report.failures.append(
                AssertionMismatch(dim, initial.coverage_data, res.empty_coverage, "Embedded baseline mismatch")
            )
        if not initial.path:
            report.failures.append(AssertionMismatch(dim, initial.path, res.file, "Embedded baseline has no path"))
        elif res.file and initial.path != res.file:
            report.failures.append(AssertionMismatch(dim, initial.path, res.file, "Embedded baseline path mismatch"))
        if initial.gcv != res.coverage_variable:
            report.failures.append(
                AssertionMismatch(dim, initial.gcv, res.coverage_variable, "Embedded coverage variable mismatch")
            )
        if not initial.hash:
            report.failures.append(AssertionMismatch(dim, initial.hash, "<non-empty hash>", "Embedded baseline has no hash"))


def _zero_state(generated_code: str | None, file_coverage: dict[str, Any] | None, *, quiet: bool) -> dict[str, Any] | None:
    """The transform's structured baseline if it returned one, else the embedded comment's."""
    if file_coverage is not None:
        return file_coverage
    try:
        initial = decode_baseline(generated_code)
    except MetadataDecodeError as exc:
        if not quiet:
            logger.warning("cannot read embedded baseline: %s", exc)
        return None
    return None if initial is None else initial.coverage_data


def create(
    code: str,
    options: Mapping[str, Any] | HarnessOptions | None = None,
    instrument_options: Mapping[str, Any] | None = None,
    input_source_map: Mapping[str, Any] | None = None,
    *,
    transform: Transform | None = None,
    context: CoverageContext | None = None,
) -> Verifier:
    """Instrument *code* and return a session ready for one ``verify`` call.

    Raises :class:`TransformError`/:class:`CompileError` straight away unless
    ``generate_only`` or ``no_coverage`` is set, in which case the error is kept on the
    session and reported by ``verify``.
    """
    opts = HarnessOptions.from_mapping(options, debug=debug_from_env())
    instrument = dict(instrument_options or {})
    if transform is None:
        settings = load_settings()
        transform = resolve_transform(settings=settings)
        default_variable = settings.coverage_variable
    else:
        default_variable = DEFAULT_COVERAGE_VARIABLE
    camel_variable = instrument.pop("coverageVariable", None)
    instrument["coverage_variable"] = instrument.get("coverage_variable") or camel_variable or default_variable
    coverage_variable = instrument["coverage_variable"]
    ctx = context if context is not None else default_context()

    request = InstrumentationRequest(
        source_code=code,
        filename=opts.file,
        input_source_map=input_source_map,
        options=build_transform_options(
            filename=opts.file,
            input_source_map=input_source_map,
            instrument_options=instrument,
            debug=opts.debug,
        ),
    )

    error: HarnessError | None = None
    generated_code: str | None = None
    file_coverage: dict[str, Any] | None = None
    fn: Callable[[Any], Any] | None = None

    result = run_transform(request, transform, quiet=opts.quiet)
    if isinstance(result, Failed):
        error = TransformError(result.message)
    else:
        generated_code = result.code
        file_coverage = result.file_coverage
        if opts.debug:
            logger.info(
                "%s\n%s\n%s\n%s\n%s",
                _banner("Original"),
                annotated_code(code),
                _banner("Generated"),
                generated_code,
                _banner(),
            )

    baseline: Any = None
    if error is None and not opts.generate_only:
        # a session still executing on this variable must not see its record wiped
        with ctx.claim(coverage_variable):
            ctx.clear(coverage_variable)
            try:
                fn = compile_instrumented(generated_code or "", opts.file, opts.mode).bind(ctx)
            except CompileError as exc:
                if not opts.quiet:
                    logger.error("compiling instrumented %s failed: %s", opts.file, exc)
                error = CompileError(f"Error compiling\n{annotated_code(code)}\n{exc}")
            baseline = ctx.snapshot(coverage_variable)

    if error is not None and not (opts.generate_only or opts.no_coverage):
        raise error

    return Verifier(
        _SessionResult(
            error=error,
            file=opts.file,
            fn=fn,
            generated_code=generated_code,
            coverage_variable=coverage_variable,
            baseline=baseline,
            empty_coverage=_zero_state(generated_code, file_coverage, quiet=opts.quiet),
        ),
        opts,
        ctx,
    )


__all__ = ["VerificationReport", "Verifier", "create"]
