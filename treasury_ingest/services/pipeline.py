"""Import pipeline orchestrator.

One run takes a statement file through

    Parsing -> AccountResolution -> Deduplication -> BudgetMatching
    -> TransferDetection -> Persistence -> Summary

and always leaves exactly one import log behind, whatever the outcome.
Runs for the same account are serialized from deduplication through
persistence. Claiming stored pending transfer legs crosses accounts, so
transfer detection, persistence and pending-leg completion also run under
one pipeline-wide lock.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from uuid import uuid4

from structlog.stdlib import BoundLogger

from treasury_ingest.config import Settings, settings
from treasury_ingest.logger import async_log_timing, get_logger, log_exception
from treasury_ingest.models import (
    Account,
    BudgetLine,
    ImportLog,
    ImportOutcome,
    ImportSource,
    Movement,
    MovementSource,
    MovementStatus,
    TransferState,
)
from treasury_ingest.schemas.pipeline import ErrorDetail, ImportResult
from treasury_ingest.schemas.statement import ParsedStatement, StatementFile
from treasury_ingest.services.budget_matching import MatchResult, apply_match_result, match_movement
from treasury_ingest.services.deduplication import DeduplicationService
from treasury_ingest.services.iban_matching import extract_iban_from_statement, match_account_by_iban
from treasury_ingest.services.matching_config import MatchingConfig, load_matching_config, resolve_active_config
from treasury_ingest.services.normalization import (
    MovementCandidate,
    candidate_from_movement,
    candidate_from_parsed,
)
from treasury_ingest.services.transfer_detection import (
    TransferDetectionResult,
    complete_pending_transfers,
    detect_transfers,
)
from treasury_ingest.stores.interface import ImportLogStore, StatementParser, Stores
from treasury_ingest.utils.exceptions import AccountNotFoundError, StatementParseError

logger = get_logger(__name__)


class PipelineStage(str, Enum):
    """Stages of one import run, in execution order."""

    PARSING = "parsing"
    ACCOUNT_RESOLUTION = "account_resolution"
    DEDUPLICATION = "deduplication"
    BUDGET_MATCHING = "budget_matching"
    TRANSFER_DETECTION = "transfer_detection"
    PERSISTENCE = "persistence"
    SUMMARY = "summary"


@dataclass
class ImportRequest:
    """Input of one run.

    Either ``statement`` (already parsed) or ``parser`` must be given.
    ``account_id`` skips IBAN resolution; it is how a caller resumes after
    a ``requires_account_selection`` outcome.
    """

    file: StatementFile
    parser: StatementParser | None = None
    statement: ParsedStatement | None = None
    account_id: int | None = None
    source: ImportSource = ImportSource.TREASURY_IMPORT
    user_id: str | None = None


@dataclass
class _RunContext:
    log: BoundLogger
    stage: PipelineStage = PipelineStage.PARSING


@dataclass
class ImportMessage:
    """User-facing notification derived from an import result."""

    level: str  # success | info | warning | error
    text: str


def new_batch_id() -> str:
    return f"import_{datetime.now(UTC):%Y%m%d%H%M%S}_{uuid4().hex[:8]}"


def movement_from_candidate(
    candidate: MovementCandidate,
    batch_id: str,
    source: MovementSource = MovementSource.IMPORT,
) -> Movement:
    """Build the row persisted for a fully annotated candidate."""
    return Movement(
        account_id=candidate.account_id,
        txn_date=candidate.txn_date,
        amount=candidate.amount,
        description=candidate.description,
        normalized_description=candidate.normalized_description,
        counterparty=candidate.counterparty,
        reference=candidate.reference,
        iban_detected=candidate.iban_detected,
        category_type=candidate.category_type,
        category_subtype=candidate.category_subtype,
        status=candidate.status,
        plan_match_id=candidate.plan_match_id,
        match_confidence=(
            Decimal(str(round(candidate.match_confidence, 2))) if candidate.match_confidence is not None else None
        ),
        match_reason=candidate.match_reason[:500] if candidate.match_reason else None,
        is_transfer=candidate.is_transfer,
        transfer_group_id=candidate.transfer_group_id,
        transfer_state=candidate.transfer_state,
        dedup_hash=candidate.dedup_hash,
        import_batch=batch_id,
        row_index=candidate.row_index,
        source=source,
    )


class ImportPipeline:
    """Runs statement imports against a set of stores."""

    def __init__(
        self,
        stores: Stores,
        config: MatchingConfig | None = None,
        settings_: Settings | None = None,
    ) -> None:
        self.stores = stores
        self.settings = settings_ or settings
        self._base_config = config
        self._dedup = DeduplicationService()
        self._locks: dict[int, asyncio.Lock] = {}
        self._transfer_lock = asyncio.Lock()

    def _lock_for(self, account_id: int) -> asyncio.Lock:
        lock = self._locks.get(account_id)
        if lock is None:
            lock = self._locks[account_id] = asyncio.Lock()
        return lock

    async def resolve_config(self) -> MatchingConfig:
        """Configuration for one run: explicit config, else YAML/env, then the stored active row."""
        base = self._base_config or load_matching_config(config=self.settings)
        if self._base_config is not None:
            # An explicit config is authoritative
            return base
        return await resolve_active_config(self.stores.matching_configs, base)

    async def run(self, request: ImportRequest) -> ImportResult:
        batch_id = new_batch_id()
        log = logger.bind(batch_id=batch_id, file_name=request.file.file_name)
        result = ImportResult(batch_id=batch_id, success=False, outcome=ImportOutcome.FAILED)
        ctx = _RunContext(log=log)

        async with async_log_timing("import_run", logger=log) as timing:
            try:
                statement = await self._parse(request)
                result.summary.total_rows = len(statement.movements)

                ctx.stage = PipelineStage.ACCOUNT_RESOLUTION
                account_id = await self._resolve_account(request, statement, result)
                if account_id is None:
                    log.info(
                        "Import halted: account selection required",
                        candidates=len(result.account_candidates),
                        detected_iban=result.detected_iban,
                    )
                else:
                    result.account_id = account_id
                    config = await self.resolve_config()
                    async with self._lock_for(account_id):
                        await self._process(request, statement, account_id, config, result, ctx)
            except StatementParseError as exc:
                log_exception(log, exc, "Statement parsing failed", level="warning", include_traceback=False)
                self._fail(result, f"Error al leer el archivo: {exc}")
            except AccountNotFoundError as exc:
                log_exception(log, exc, "Requested account unavailable", level="warning", include_traceback=False)
                self._fail(result, str(exc))
            except Exception as exc:
                log_exception(log, exc, "Import run failed", stage=ctx.stage.value)
                self._fail(result, f"{ctx.stage.value}: {exc}")

            await self._write_import_log(request, result, log)
            timing.update(outcome=result.outcome.value, created=result.summary.created)
        return result

    @staticmethod
    def _fail(result: ImportResult, message: str) -> None:
        result.success = False
        result.outcome = ImportOutcome.FAILED
        result.error = message
        result.error_details.append(ErrorDetail(line=0, error=message))

    async def _parse(self, request: ImportRequest) -> ParsedStatement:
        if request.statement is not None:
            return request.statement
        if request.parser is None:
            raise StatementParseError("No statement parser configured")
        try:
            return await request.parser.parse(request.file)
        except StatementParseError:
            raise
        except Exception as exc:
            raise StatementParseError(str(exc)) from exc

    async def _resolve_account(
        self,
        request: ImportRequest,
        statement: ParsedStatement,
        result: ImportResult,
    ) -> int | None:
        """Explicit account first, else IBAN resolution. None means the run must halt."""
        if request.account_id is not None:
            account = await self.stores.accounts.get_account(request.account_id)
            if account is None or not account.is_active:
                raise AccountNotFoundError(f"La cuenta {request.account_id} no existe o está inactiva")
            return account.id

        extraction = extract_iban_from_statement(statement, request.file.file_name)
        result.detected_iban = extraction.iban or (f"****{extraction.last4}" if extraction.last4 else None)
        accounts = await self.stores.accounts.get_accounts()
        match = match_account_by_iban(extraction, accounts)
        if match.requires_selection:
            result.success = False
            result.outcome = ImportOutcome.REQUIRES_ACCOUNT_SELECTION
            result.requires_account_selection = True
            result.account_candidates = match.candidates
            result.blocking_reason = match.reason
            return None

        logger.info(
            "Account resolved from IBAN",
            account_id=match.account_id,
            match_type=match.match_type,
            source=extraction.source,
            confidence=match.confidence,
        )
        return match.account_id

    async def _process(
        self,
        request: ImportRequest,
        statement: ParsedStatement,
        account_id: int,
        config: MatchingConfig,
        result: ImportResult,
        ctx: _RunContext,
    ) -> None:
        log = ctx.log
        summary = result.summary
        candidates = [
            candidate_from_parsed(parsed, account_id, row_index=index + 1)
            for index, parsed in enumerate(statement.movements)
        ]

        ctx.stage = PipelineStage.DEDUPLICATION
        stored = await self.stores.movements.get_all()
        existing_hashes = self._dedup.existing_hashes(stored, account_id=account_id)
        dedup = self._dedup.deduplicate(candidates, existing_hashes)
        for skipped in dedup.skipped:
            line = skipped.row_index or skipped.index + 1
            message = f"Faltan campos obligatorios: {', '.join(skipped.missing_fields)}"
            result.error_details.append(ErrorDetail(line=line, error=message))
            result.warnings.append(f"Línea {line}: {message}")
        summary.invalid_rows = len(dedup.skipped)
        summary.valid_rows = len(dedup.unique) + len(dedup.duplicates)
        summary.duplicates = len(dedup.duplicates)
        summary.errors = len(dedup.skipped)

        ctx.stage = PipelineStage.BUDGET_MATCHING
        await self._match_budget(dedup.unique, config, log)

        # Pending legs and group keys are read and claimed under one lock
        async with self._transfer_lock:
            ctx.stage = PipelineStage.TRANSFER_DETECTION
            transfers = await self._detect_transfers(dedup.unique, config, result, log)

            ctx.stage = PipelineStage.PERSISTENCE
            source = MovementSource.INBOX if request.source == ImportSource.INBOX_AUTO else MovementSource.IMPORT
            committed = await self._persist(dedup.unique, result, source, log)

            if len(committed) == len(dedup.unique) and transfers.completed_pending:
                try:
                    summary.completed_pending = await complete_pending_transfers(
                        transfers.completed_pending, self.stores.movements
                    )
                except Exception as exc:
                    log_exception(log, exc, "Pending transfer completion failed", level="warning")
                    summary.errors += 1
                    result.error_details.append(ErrorDetail(line=0, error=f"Transferencias pendientes: {exc}"))

        ctx.stage = PipelineStage.SUMMARY
        summary.created = len(committed)
        summary.conciliated = sum(1 for c in committed if c.status == MovementStatus.CONCILIADO)
        summary.confirmed = sum(1 for c in committed if c.status == MovementStatus.CONFIRMADO)
        summary.unplanned = sum(1 for c in committed if c.status == MovementStatus.NO_PLANIFICADO)
        summary.transfers = sum(1 for c in committed if c.is_transfer)
        summary.pending_transfers = sum(1 for c in committed if c.transfer_state == TransferState.PENDING)

        if result.error is None:
            result.success = True
            result.outcome = ImportOutcome.COMPLETED_WITH_ERRORS if summary.errors else ImportOutcome.COMPLETED

    async def _match_budget(
        self,
        movements: Sequence[MovementCandidate],
        config: MatchingConfig,
        log: BoundLogger,
    ) -> None:
        lines_by_year: dict[int, list[BudgetLine] | None] = {}
        failures: dict[int, str] = {}
        for year in sorted({m.txn_date.year for m in movements if m.txn_date}):
            try:
                budget = await self.stores.budgets.get_active_budget(year)
                lines_by_year[year] = await self.stores.budgets.get_lines(budget.id) if budget else []
            except Exception as exc:
                log_exception(log, exc, "Budget lookup failed", level="warning", year=year)
                lines_by_year[year] = None
                failures[year] = str(exc)

        for movement in movements:
            year = movement.txn_date.year
            lines = lines_by_year.get(year)
            if lines is None:
                outcome = MatchResult(
                    status=MovementStatus.NO_PLANIFICADO,
                    confidence=0.0,
                    reason=f"Budget lookup failed: {failures.get(year, 'unknown error')}",
                )
            else:
                outcome = match_movement(movement, lines, config)
            apply_match_result(movement, outcome)

    async def _detect_transfers(
        self,
        movements: Sequence[MovementCandidate],
        config: MatchingConfig,
        result: ImportResult,
        log: BoundLogger,
    ) -> TransferDetectionResult:
        """Detect transfers against a fresh read of stored legs and group keys."""
        try:
            accounts: list[Account] = await self.stores.accounts.get_accounts()
            stored = await self.stores.movements.get_all()
            pending_rows = await self.stores.movements.get_pending_transfers()
            return detect_transfers(
                movements,
                config,
                pending_legs=[candidate_from_movement(row) for row in pending_rows],
                account_ids={a.id for a in accounts if a.is_active},
                reserved_keys={m.transfer_group_id for m in stored if m.transfer_group_id},
            )
        except Exception as exc:
            # Budget statuses stand; transfers are simply not flagged
            log_exception(log, exc, "Transfer detection failed", level="warning")
            result.warnings.append(f"Detección de transferencias no disponible: {exc}")
            return TransferDetectionResult()

    async def _persist(
        self,
        movements: Sequence[MovementCandidate],
        result: ImportResult,
        source: MovementSource,
        log: BoundLogger,
    ) -> list[MovementCandidate]:
        """Add every movement; stop at the first failure. Returns what was committed."""
        committed: list[MovementCandidate] = []
        async with async_log_timing("persist_movements", logger=log, movements=len(movements)):
            for candidate in movements:
                try:
                    row = await self.stores.movements.add(
                        movement_from_candidate(candidate, result.batch_id, source)
                    )
                except Exception as exc:
                    log_exception(log, exc, "Movement persistence failed", committed=len(committed))
                    message = (
                        f"Error al guardar movimientos: {len(committed)} de {len(movements)} guardados ({exc})"
                    )
                    result.success = False
                    result.outcome = ImportOutcome.FAILED
                    result.error = message
                    result.summary.errors += 1
                    result.error_details.append(ErrorDetail(line=candidate.row_index or 0, error=str(exc)))
                    break
                candidate.id = row.id
                result.movement_ids.append(row.id)
                committed.append(candidate)
        return committed

    async def _write_import_log(self, request: ImportRequest, result: ImportResult, log: BoundLogger) -> None:
        summary = result.summary
        entry = ImportLog(
            batch_id=result.batch_id,
            file_name=request.file.file_name,
            file_size=request.file.file_size,
            imported_at=datetime.now(UTC),
            account_id=result.account_id,
            detected_iban=result.detected_iban,
            source=request.source,
            outcome=result.outcome,
            total_rows=summary.total_rows,
            valid_rows=summary.valid_rows,
            invalid_rows=summary.invalid_rows,
            created=summary.created,
            conciliated=summary.conciliated,
            unplanned=summary.unplanned,
            skipped=summary.duplicates,
            transfers=summary.transfers,
            errors=summary.errors,
            error_details=[detail.model_dump() for detail in result.error_details],
            user_id=request.user_id,
        )
        try:
            saved = await self.stores.import_logs.add(entry)
            result.import_log_id = saved.id
        except Exception as exc:
            log_exception(log, exc, "Import log write failed")
            result.warnings.append(f"No se pudo registrar el log de importación: {exc}")


def format_import_summary(result: ImportResult) -> str:
    """``Importados: N · Duplicados: M · Errores: K``."""
    summary = result.summary
    return f"Importados: {summary.created} · Duplicados: {summary.duplicates} · Errores: {summary.errors}"


def import_messages(result: ImportResult) -> list[ImportMessage]:
    """Notifications to show the user after a run."""
    if result.requires_account_selection:
        text = result.blocking_reason or "Selecciona la cuenta de destino para completar la importación"
        return [ImportMessage(level="info", text=text)]
    if not result.success:
        return [ImportMessage(level="error", text=f"Error en la importación: {result.error or 'error desconocido'}")]

    summary = result.summary
    messages = [
        ImportMessage(
            level="warning" if summary.errors else "success",
            text=format_import_summary(result),
        )
    ]
    if summary.transfers:
        messages.append(ImportMessage(level="info", text=f"{summary.transfers} transferencias internas detectadas"))
    if summary.conciliated:
        messages.append(
            ImportMessage(level="info", text=f"{summary.conciliated} movimientos conciliados automáticamente")
        )
    return messages


async def get_import_logs(store: ImportLogStore, limit: int = 50) -> list[ImportLog]:
    """Most recent import logs, newest first."""
    return await store.list_recent(limit)


__all__ = [
    "ImportMessage",
    "ImportPipeline",
    "ImportRequest",
    "PipelineStage",
    "format_import_summary",
    "get_import_logs",
    "import_messages",
    "movement_from_candidate",
]
