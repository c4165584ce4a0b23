"""Walk a source tree and run every applicable rule over each file."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ALL_COMPLETED, FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set, Tuple

from .aggregate import HitKey, aggregate, hit_key
from .config import ProjectConfig, ScanOptions
from .matcher import Matcher, MatchTimeout, SourceFile
from .result import (
    FindingStatus,
    IOWarning,
    MatchTimeoutWarning,
    RawHit,
    ScanResult,
    ScanWarning,
)
from .rules import Rule, RuleSet
from .suppression import InlineMarker, Suppressions, parse_inline_markers, resolve
from .utils import fileio
from .utils.code import DEFAULT_IGNORES, iter_code_files

logger = logging.getLogger(__name__)


class ScanError(Exception):
    """Raised when a scan cannot start at all."""


@dataclass
class FileOutcome:
    """Everything one worker learned about one file."""

    path: str
    scanned: bool = False
    hits: List[RawHit] = field(default_factory=list)
    markers: List[InlineMarker] = field(default_factory=list)
    warnings: List[ScanWarning] = field(default_factory=list)


def scan_file(
    path: Path,
    rel_path: str,
    rules: Tuple[Rule, ...],
    matcher: Matcher,
    options: ScanOptions,
) -> FileOutcome:
    """Match ``rules`` against one file. Never raises for IO problems."""

    outcome = FileOutcome(path=rel_path)
    try:
        text = fileio.read_source_file(path, options.max_file_size)
    except fileio.SkippedFile as exc:
        logger.debug("Skipping %s: %s", rel_path, exc)
        outcome.warnings.append(IOWarning(path=rel_path, message=f"skipped: {exc}"))
        return outcome
    except OSError as exc:
        logger.debug("Cannot read %s: %s", rel_path, exc)
        reason = exc.strerror or str(exc)
        outcome.warnings.append(IOWarning(path=rel_path, message=f"cannot read file: {reason}"))
        return outcome

    outcome.scanned = True
    source = SourceFile(path=rel_path, text=text)
    deadline = time.monotonic() + options.file_timeout if options.file_timeout else None
    for position, rule in enumerate(rules):
        try:
            outcome.hits.extend(matcher.match(rule, source, deadline=deadline))
        except MatchTimeout as exc:
            remaining = len(rules) - position - 1
            message = (
                f"matching exceeded the {options.file_timeout:g}s budget at line {exc.line_number}; "
                f"results for rule {rule.id} dropped"
            )
            if remaining:
                message += f", {remaining} remaining rule(s) skipped"
            outcome.warnings.append(MatchTimeoutWarning(path=rel_path, rule_id=rule.id, message=message))
            break
    outcome.markers = parse_inline_markers(rel_path, source.lines)
    return outcome


class _Collector:
    """Single-threaded sink for worker outcomes."""

    def __init__(self) -> None:
        self.hits: List[RawHit] = []
        self.warnings: List[ScanWarning] = []
        self.suppressions = Suppressions()
        self.files_scanned = 0

    def add(self, outcome: FileOutcome) -> None:
        self.hits.extend(outcome.hits)
        self.warnings.extend(outcome.warnings)
        self.suppressions.add_markers(outcome.markers)
        if outcome.scanned:
            self.files_scanned += 1

    def drain(self, futures: Set["Future[FileOutcome]"], everything: bool) -> Set["Future[FileOutcome]"]:
        """Wait for one (or every) future and collect what finished."""

        if not futures:
            return futures
        done, remaining = wait(futures, return_when=ALL_COMPLETED if everything else FIRST_COMPLETED)
        for future in done:
            self.add(future.result())
        return remaining


def scan(
    root_path: str | Path,
    rule_set: RuleSet,
    suppression_config: Optional[ProjectConfig] = None,
    options: Optional[ScanOptions] = None,
    cancel_event: Optional[threading.Event] = None,
) -> ScanResult:
    """Scan ``root_path`` and return ordered findings plus warnings.

    Only invalid input raises (``ScanError``); per-file problems become
    warnings on the result. Setting ``cancel_event`` (or a ``KeyboardInterrupt``
    on the calling thread) stops dispatching new files, lets in-flight files
    finish, and returns a result flagged ``partial``.
    """

    started = time.monotonic()
    root = Path(root_path)
    if not root.exists():
        raise ScanError(f"scan root does not exist: {root}")
    if not root.is_dir():
        raise ScanError(f"scan root is not a directory: {root}")

    options = options or ScanOptions()
    project = suppression_config or ProjectConfig()
    cancel_event = cancel_event or threading.Event()
    enabled = rule_set.restrict(options.categories)
    rules = tuple(enabled)
    matcher = Matcher(window=options.window)
    ignore = DEFAULT_IGNORES + project.ignore + options.ignore

    logger.info(
        "Scanning %s with %d rules using %d workers", root, len(rules), options.concurrency
    )

    collector = _Collector()
    collector.suppressions.paths = project.suppress
    exhausted = False
    pending: Set["Future[FileOutcome]"] = set()
    max_in_flight = options.concurrency * 2

    with ThreadPoolExecutor(max_workers=options.concurrency, thread_name_prefix="railscan") as executor:
        try:
            for path, rel_path, applicable in _candidates(root, ignore, rules):
                if cancel_event.is_set():
                    break
                while len(pending) >= max_in_flight:
                    pending = collector.drain(pending, everything=False)
                pending.add(executor.submit(scan_file, path, rel_path, applicable, matcher, options))
            else:
                exhausted = True
        except KeyboardInterrupt:
            logger.warning("Interrupted; finishing in-flight files and returning partial results")
            cancel_event.set()
        pending = collector.drain(pending, everything=True)

    resolution = resolve(collector.hits, collector.suppressions, known_rule_ids=rule_set.ids)
    reasons: Dict[HitKey, str] = {}
    for hit, reason in resolution.suppressed:
        reasons.setdefault(hit_key(hit), reason)
    warnings = [
        warning
        for warning in collector.warnings
        if collector.suppressions.path_reason(warning.path) is None
    ]
    if len(warnings) != len(collector.warnings):
        logger.debug("Dropped %d warnings for path-suppressed files", len(collector.warnings) - len(warnings))

    result = ScanResult(
        findings=aggregate(resolution.active, enabled),
        suppressed=aggregate(
            (hit for hit, _ in resolution.suppressed),
            enabled,
            status=FindingStatus.SUPPRESSED,
            reasons=reasons,
        ),
        warnings=sorted(warnings + resolution.warnings, key=lambda warning: warning.sort_key()),
        files_scanned=collector.files_scanned,
        partial=not exhausted,
        fail_on=options.fail_on,
    )
    result.duration = time.monotonic() - started
    logger.info(
        "Scanned %d files in %.2fs: %d findings, %d suppressed, %d warnings%s",
        result.files_scanned,
        result.duration,
        len(result.findings),
        len(result.suppressed),
        len(result.warnings),
        " (partial)" if result.partial else "",
    )
    return result


def _candidates(
    root: Path,
    ignore: Tuple[str, ...],
    rules: Tuple[Rule, ...],
) -> Iterator[Tuple[Path, str, Tuple[Rule, ...]]]:
    for path, rel_path in iter_code_files(root, ignore):
        applicable = tuple(rule for rule in rules if rule.applies_to(rel_path))
        if applicable:
            yield path, rel_path, applicable
