"""
Certificate Pipeline Module

Runs one batch end to end: read the participant file, normalize, validate,
de-duplicate, assign certificate IDs, then for each participant in order
render the certificate, store its verification record, deliver it and write
a delivery ledger line.

Processing is sequential by design: one participant at a time, with a pause
between participants to respect the mail provider's rate limits.

Error policy:
- Source, template, verification store and transport precheck failures abort
  the whole batch before any participant is processed.
- Render, verification store and delivery failures during the loop only fail
  that participant; the batch goes on.
"""

import logging
import os
import threading
import time
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .certificate_renderer import CertificateRenderer
from .config import BatchConfig
from .email_sender import EmailSender
from .errors import BatchAlreadyRunningError, LedgerError, NoValidRecordsError, RenderError
from .events import EventBus, PipelineEvent
from .excel_reader import read_rows
from .identifiers import assign_all, certificate_filename
from .ledger import STATUS_FAILED, STATUS_SUCCESS, Ledger
from .normalizer import normalize_rows
from .records import (
    BatchResult,
    BatchStatus,
    CertificateAssignment,
    DeliveryOutcome,
    ParticipantRecord,
    PipelineState,
)
from .templates import TemplateImage, load_template
from .transports import build_transport
from .validator import find_duplicates, validate_batch

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[BatchStatus], None]

PREVIEW_CERTIFICATE_ID = "PREVIEW-001"


class CertificatePipeline:
    """
    Orchestrates certificate issuance and delivery for one batch at a time.

    The pipeline instance owns its BatchStatus. Only one batch may be running
    on an instance; starting another while it runs raises
    BatchAlreadyRunningError instead of queueing.

    Args:
        transport: Mail transport; built from the configuration when omitted
        ledger: Ledger; built from the configuration when omitted
        renderer: Renderer; built from the configuration when omitted
        events: Bus that receives structured pipeline events
        sleep: Called with seconds for retry and pacing delays
        today: Supplies the issue date when the configuration does not pin one
        source_reader: Reads raw rows from the participant file
        template_loader: Loads the certificate template
    """

    def __init__(
        self,
        transport=None,
        ledger: Optional[Ledger] = None,
        renderer: Optional[CertificateRenderer] = None,
        events: Optional[EventBus] = None,
        sleep: Callable[[float], None] = time.sleep,
        today: Callable[[], date] = date.today,
        source_reader: Callable[[str], List[Dict[str, Any]]] = read_rows,
        template_loader: Callable[[str], TemplateImage] = load_template,
    ):
        self.transport = transport
        self.ledger = ledger
        self.renderer = renderer
        self.events = events or EventBus()
        self.sleep = sleep
        self.today = today
        self.source_reader = source_reader
        self.template_loader = template_loader
        self.status = BatchStatus()
        self.generated_files: List[str] = []
        self._progress_listeners: List[ProgressCallback] = []
        self._gate = threading.Lock()

    def subscribe_progress(self, listener: ProgressCallback) -> None:
        self._progress_listeners.append(listener)

    def _emit_progress(self, on_progress: Optional[ProgressCallback]) -> None:
        snapshot = self.status.snapshot()
        listeners = ([on_progress] if on_progress else []) + list(self._progress_listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception as e:
                logger.warning(f"Progress listener failed: {e}")

    def _publish(self, kind: str, message: str, level: int = logging.INFO, **data: Any) -> None:
        logger.log(level, message)
        self.events.publish(PipelineEvent(kind=kind, message=message, level=level, data=data))

    def _start(self) -> None:
        with self._gate:
            if self.status.state is PipelineState.RUNNING:
                raise BatchAlreadyRunningError("A certificate batch is already running")
            self.status.reset()
            self.status.state = PipelineState.RUNNING

    def run_batch(
        self,
        config: BatchConfig,
        on_progress: Optional[ProgressCallback] = None,
        rows: Optional[Sequence[Mapping[str, Any]]] = None,
    ) -> BatchResult:
        """
        Run one batch to completion.

        Args:
            config: Configuration snapshot for this batch
            on_progress: Called with a BatchStatus copy after every state change
            rows: Raw rows to use instead of reading config.input_path

        Returns:
            BatchResult with totals and per-participant errors

        Raises:
            BatchAlreadyRunningError: If this pipeline is already running a batch
            CertificateMailerError: Any batch-fatal error (source, validation,
                template, transport precheck)
        """
        self._start()
        self._emit_progress(on_progress)
        try:
            result = self._run(config, on_progress, rows)
        except Exception as e:
            self.status.state = PipelineState.FAILED
            self.status.error = str(e)
            self._publish("batch_failed", f"Fatal error in certificate batch: {e}", logging.ERROR)
            self._emit_progress(on_progress)
            raise

        self.status.state = PipelineState.COMPLETED
        self.status.current_name = ""
        self._emit_progress(on_progress)
        self._publish("batch_completed", "Certificate batch completed", **result.to_dict())
        return result

    def _prepare_assignments(
        self, config: BatchConfig, rows: Optional[Sequence[Mapping[str, Any]]]
    ) -> List[CertificateAssignment]:
        if rows is None:
            rows = self.source_reader(config.input_path)

        records = normalize_rows(rows, config.event_name)
        report = validate_batch(records)
        for error in report.errors:
            self.events.publish(PipelineEvent(
                kind="validation_error", message=str(error), level=logging.WARNING,
                data={"row": error.row, "rules": error.rules},
            ))
        if not report.valid:
            raise NoValidRecordsError("No valid participants found in participant file")

        participants, skipped = find_duplicates(report.valid_records)
        for duplicate in skipped:
            self.events.publish(PipelineEvent(
                kind="duplicate_skipped", message=str(duplicate), level=logging.WARNING,
                data={"email": duplicate.email},
            ))

        issued_on = config.issue_date or self.today()
        return assign_all(config.certificate_id_prefix, participants, issued_on)

    def _run(
        self,
        config: BatchConfig,
        on_progress: Optional[ProgressCallback],
        rows: Optional[Sequence[Mapping[str, Any]]],
    ) -> BatchResult:
        self._publish("batch_started", f"Starting certificate batch (Mode: {config.mode.value})", mode=config.mode.value)
        self.generated_files = []

        assignments = self._prepare_assignments(config, rows)
        self._publish("batch_prepared", f"Processing {len(assignments)} participants", total=len(assignments))

        template = self.template_loader(config.template_path)
        renderer = self.renderer or CertificateRenderer(config.font_path, config.name_max_width_ratio)
        ledger = self.ledger or Ledger.for_directories(config.log_dir, config.verification_store_path, self.events)
        ledger.check_verification_store()

        transport = None if config.is_dry_run else (self.transport or build_transport(config.email))
        sender = EmailSender(transport, config.email, sleep=self.sleep)
        sender.check_mode(config.mode)
        if not config.is_dry_run:
            sender.verify_connection()

        result = BatchResult(total=len(assignments))
        self.status.total = len(assignments)
        self._emit_progress(on_progress)

        for index, assignment in enumerate(assignments):
            is_last = index == len(assignments) - 1
            logger.info(f"[{index + 1}/{len(assignments)}] Processing {assignment.name}")
            self.status.current_name = assignment.name
            self._emit_progress(on_progress)

            outcome, reached_delivery = self._process_participant(assignment, config, template, renderer, ledger, sender)
            result.outcomes.append(outcome)
            if outcome.success:
                result.success += 1
            else:
                result.failed += 1
                result.errors.append({"participant": assignment.name, "error": outcome.error or "Unknown error"})

            self.status.processed = index + 1
            self.status.success = result.success
            self.status.failed = result.failed
            self._emit_progress(on_progress)

            if reached_delivery and not is_last and not config.is_dry_run:
                self.sleep(config.email_delay_ms / 1000)

        self.print_summary(result)
        if config.auto_cleanup and result.success > 0:
            self.cleanup_files()
        return result

    def _process_participant(
        self,
        assignment: CertificateAssignment,
        config: BatchConfig,
        template: TemplateImage,
        renderer: CertificateRenderer,
        ledger: Ledger,
        sender: EmailSender,
    ) -> Tuple[DeliveryOutcome, bool]:
        """
        Render, register and deliver one certificate.

        Returns:
            (outcome, whether the delivery step was reached)
        """
        try:
            document = renderer.render(assignment, config.layout, template, config.verification_url)
            if config.save_certificates:
                path = renderer.save_document(document, config.output_dir, certificate_filename(assignment))
                self.generated_files.append(path)
            ledger.save_verification(assignment)
        except (RenderError, LedgerError, OSError) as e:
            logger.error(f"Failed to process {assignment.name}: {e}")
            ledger.record_delivery(assignment, STATUS_FAILED, e)
            return DeliveryOutcome(participant=assignment, attempts=0, success=False, error=str(e)), False

        delivery = sender.deliver(assignment, document, config.mode)
        if delivery.success:
            ledger.record_delivery(assignment, STATUS_SUCCESS)
        else:
            logger.error(f"Failed to deliver certificate to {assignment.name}: {delivery.error}")
            ledger.record_delivery(assignment, STATUS_FAILED, delivery.error)

        outcome = DeliveryOutcome(
            participant=assignment,
            attempts=delivery.attempts,
            success=delivery.success,
            error=delivery.error,
        )
        return outcome, True

    def print_summary(self, result: BatchResult) -> None:
        logger.info("=" * 60)
        logger.info("EXECUTION SUMMARY")
        logger.info(f"Total participants: {result.total}")
        logger.info(f"Successfully processed: {result.success}")
        if result.failed > 0:
            logger.error(f"Failed: {result.failed}")
            for error in result.errors:
                logger.error(f"- {error['participant']}: {error['error']}")
        logger.info("=" * 60)

    def cleanup_files(self) -> None:
        logger.info("Cleaning up generated files...")
        for file_path in self.generated_files:
            try:
                os.remove(file_path)
                logger.info(f"Cleaned up: {file_path}")
            except OSError as e:
                logger.warning(f"Failed to cleanup {file_path}: {e}")
        self.generated_files = []

    def render_preview(self, config: BatchConfig, name: str = "John Smith", event: Optional[str] = None) -> str:
        """
        Render a sample certificate with the current layout.

        Nothing is ledgered or sent.

        Returns:
            Path of the preview PDF
        """
        template = self.template_loader(config.template_path)
        renderer = self.renderer or CertificateRenderer(config.font_path, config.name_max_width_ratio)
        assignment = CertificateAssignment(
            certificate_id=PREVIEW_CERTIFICATE_ID,
            participant=ParticipantRecord(name=name, email="", event=event or config.event_name),
        )
        document = renderer.render(assignment, config.layout, template, config.verification_url)
        preview_dir = os.path.join(os.path.dirname(os.path.normpath(config.output_dir)), "previews")
        return renderer.save_document(document, preview_dir, certificate_filename(assignment))
