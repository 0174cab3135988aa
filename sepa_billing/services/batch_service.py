"""Batch Service - upload, lifecycle and row processing of debtor files"""

import csv
import io
from pathlib import PurePath
from typing import Any, Callable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from sepa_billing.config import settings
from sepa_billing.core.exceptions import NotFoundError, ValidationError
from sepa_billing.core.logging import get_logger, mask_iban
from sepa_billing.models.batch import Batch
from sepa_billing.models.debtor import Debtor
from sepa_billing.models.enums import BatchStatus, DebtorStatus, ValidationStatus
from sepa_billing.services import storage_service
from sepa_billing.services.batch_lifecycle import resolve_record_limit, transition
from sepa_billing.services.column_detection import (
    ColumnMapping,
    DetectionResult,
    detect_columns,
    read_rows,
)
from sepa_billing.services.debtor_validation import validate_row
from sepa_billing.services.progress import effective_limit
from sepa_billing.utils.time import get_utc_now

logger = get_logger(__name__)

ALLOWED_EXTENSIONS = (".csv", ".txt")
RESULT_COLUMNS = ["validation_status", "iban_valid", "validation_errors"]

# enqueue(batch_id, record_limit)
BatchEnqueue = Callable[[UUID, int], Any]


class BatchService:
    @staticmethod
    def decode_upload(filename: str, content: bytes) -> str:
        """Check extension and size, then decode (UTF-8, BOM tolerated)."""
        if not filename or not filename.lower().endswith(ALLOWED_EXTENSIONS):
            raise ValidationError("Only CSV files are supported (.csv, .txt)")
        if not content:
            raise ValidationError("CSV file is empty or unreadable")
        if len(content) > settings.MAX_UPLOAD_BYTES:
            raise ValidationError(
                f"File exceeds maximum size of {settings.MAX_UPLOAD_BYTES // 1024} KB"
            )
        try:
            return content.decode("utf-8-sig")
        except UnicodeDecodeError:
            raise ValidationError("Invalid file encoding. Use UTF-8.")

    @staticmethod
    async def create_batch(
        db: AsyncSession,
        user_id: UUID,
        filename: str,
        content: bytes,
    ) -> Tuple[Batch, DetectionResult]:
        """Detect the file layout, store the raw file and create a pending batch."""
        text = BatchService.decode_upload(filename, content)
        detection = detect_columns(text)
        if detection.total_records > settings.MAX_BATCH_RECORDS:
            raise ValidationError(
                f"CSV exceeds maximum of {settings.MAX_BATCH_RECORDS} records",
                {"total_records": detection.total_records},
            )

        file_path = await storage_service.upload(
            f"batches/{user_id}", filename, content, content_type="text/csv"
        )
        batch = Batch(
            user_id=user_id,
            original_filename=filename,
            file_path=file_path,
            status=BatchStatus.PENDING,
            total_records=detection.total_records,
            processed_records=0,
            success_count=0,
            failed_count=0,
            credits_used=0,
            column_mapping=detection.mapping.to_dict(),
        )
        db.add(batch)
        await db.commit()
        await db.refresh(batch)

        logger.info(
            "Batch uploaded",
            extra={
                "batch_id": str(batch.id),
                "total_records": batch.total_records,
                "has_header": detection.mapping.has_header,
                "delimiter": detection.mapping.delimiter,
            },
        )
        return batch, detection

    @staticmethod
    async def get_batch(db: AsyncSession, batch_id: UUID, user_id: Optional[UUID] = None) -> Batch:
        """Load a batch; with ``user_id`` set, batches of other owners are not found."""
        query = select(Batch).where(Batch.id == batch_id)
        if user_id is not None:
            query = query.where(Batch.user_id == user_id)
        result = await db.execute(query)
        batch = result.scalar_one_or_none()
        if batch is None:
            raise NotFoundError(f"Batch {batch_id} not found")
        return batch

    @staticmethod
    async def list_batches(db: AsyncSession, user_id: Optional[UUID] = None, limit: int = 50) -> List[Batch]:
        """Most recent batches first."""
        query = select(Batch).order_by(Batch.created_at.desc()).limit(limit)
        if user_id is not None:
            query = query.where(Batch.user_id == user_id)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def start_batch(
        db: AsyncSession,
        batch_id: UUID,
        record_limit: Optional[int],
        enqueue: BatchEnqueue,
    ) -> Batch:
        """
        Move a pending batch to processing and enqueue its job.

        Raises:
            NotFoundError: unknown batch
            ConflictError: batch is not pending
            ValidationError: record_limit outside 1..total_records
        """
        batch = await BatchService.get_batch(db, batch_id)
        new_status = transition(batch.status, BatchStatus.PROCESSING)
        limit = resolve_record_limit(record_limit, batch.total_records)

        batch.status = new_status
        batch.record_limit = limit
        batch.started_at = get_utc_now()
        await db.commit()

        try:
            enqueue(batch.id, limit)
        except Exception as e:
            logger.error(
                "Failed to enqueue batch processing",
                extra={"batch_id": str(batch.id), "error": str(e)},
            )
            await BatchService.mark_failed(db, batch, f"enqueue failed: {e}")
            raise

        logger.info(
            "Batch queued for processing",
            extra={"batch_id": str(batch.id), "record_limit": limit, "total_records": batch.total_records},
        )
        return batch

    @staticmethod
    async def get_results(db: AsyncSession, batch_id: UUID) -> Tuple[str, bytes]:
        """Return (download filename, content) of a completed batch's results file."""
        batch = await BatchService.get_batch(db, batch_id)
        if batch.status != BatchStatus.COMPLETED or not batch.results_path:
            raise NotFoundError("Results not available yet", {"status": BatchStatus(batch.status).value})
        content = await storage_service.download(batch.results_path)
        stem = PurePath(batch.original_filename).stem
        return f"results_{stem}_{batch.created_at:%Y%m%d}.csv", content

    @staticmethod
    def record_row(batch: Batch, success: bool) -> None:
        batch.processed_records = (batch.processed_records or 0) + 1
        batch.credits_used = (batch.credits_used or 0) + 1
        if success:
            batch.success_count = (batch.success_count or 0) + 1
        else:
            batch.failed_count = (batch.failed_count or 0) + 1

    @staticmethod
    async def mark_completed(db: AsyncSession, batch: Batch) -> None:
        batch.status = transition(batch.status, BatchStatus.COMPLETED)
        batch.completed_at = get_utc_now()
        await db.commit()

    @staticmethod
    async def mark_failed(db: AsyncSession, batch: Batch, error: str) -> None:
        batch.status = transition(batch.status, BatchStatus.FAILED)
        batch.completed_at = get_utc_now()
        batch.meta = {**(batch.meta or {}), "error": error}
        await db.commit()

    @staticmethod
    def build_debtor(batch: Batch, row: List[str], mapping: ColumnMapping, row_number: int) -> Debtor:
        values = mapping.extract(row)
        check = validate_row(values)
        return Debtor(
            batch_id=batch.id,
            row_number=row_number,
            first_name=values["first_name"] or None,
            last_name=values["last_name"] or None,
            iban=values["iban"],
            bic=values["bic"].upper() or None,
            amount=check.amount,
            currency=settings.DEFAULT_CURRENCY,
            status=DebtorStatus.PENDING,
            validation_status=ValidationStatus.VALID if check.is_valid else ValidationStatus.INVALID,
            iban_valid=check.iban_valid,
            validation_errors=check.errors or None,
            raw_data=list(row),
        )

    @staticmethod
    async def process_batch(db: AsyncSession, batch_id: UUID) -> Batch:
        """
        Job body: turn rows into debtors up to the effective limit.

        Starts at ``processed_records`` so a redelivered job continues where
        the last commit left off instead of counting rows twice.
        """
        batch = await BatchService.get_batch(db, batch_id)
        if batch.status != BatchStatus.PROCESSING:
            logger.warning(
                "Batch not processing, skipping",
                extra={"batch_id": str(batch_id), "status": BatchStatus(batch.status).value},
            )
            return batch

        try:
            content = await storage_service.download(batch.file_path)
            mapping = ColumnMapping.from_dict(batch.column_mapping)
            all_rows = read_rows(content.decode("utf-8-sig"), mapping.delimiter)
            rows = mapping.data_rows(all_rows)
            limit = min(effective_limit(batch.total_records, batch.record_limit), len(rows))

            for index in range(batch.processed_records or 0, limit):
                debtor = BatchService.build_debtor(batch, rows[index], mapping, row_number=index + 1)
                db.add(debtor)
                if debtor.validation_status != ValidationStatus.VALID:
                    logger.debug(
                        "Row failed validation",
                        extra={"batch_id": str(batch.id), "row": index + 1, "iban": mask_iban(debtor.iban)},
                    )
                BatchService.record_row(batch, debtor.validation_status == ValidationStatus.VALID)
                if (index + 1) % settings.PROCESSING_CHUNK_SIZE == 0:
                    await db.commit()
            await db.commit()

            header = all_rows[0] if mapping.has_header else None
            batch.results_path = await BatchService.write_results(db, batch, header, mapping.delimiter)
            await BatchService.mark_completed(db, batch)
        except Exception as e:
            await db.rollback()
            await db.refresh(batch)
            logger.error(
                "Batch processing failed",
                extra={"batch_id": str(batch_id), "processed": batch.processed_records, "error": str(e)},
            )
            await BatchService.mark_failed(db, batch, str(e))
            raise

        logger.info(
            "Batch processing completed",
            extra={
                "batch_id": str(batch.id),
                "processed": batch.processed_records,
                "success": batch.success_count,
                "failed": batch.failed_count,
                "credits_used": batch.credits_used,
            },
        )
        return batch

    @staticmethod
    async def write_results(
        db: AsyncSession,
        batch: Batch,
        header: Optional[List[str]],
        delimiter: str,
    ) -> str:
        """Write original rows plus validation columns; returns the object key."""
        result = await db.execute(
            select(Debtor).where(Debtor.batch_id == batch.id).order_by(Debtor.row_number)
        )
        debtors = result.scalars().all()

        width = max([len(header or [])] + [len(d.raw_data or []) for d in debtors])
        out_header = list(header) if header else [f"column_{i + 1}" for i in range(width)]
        out_header += [""] * (width - len(out_header))

        buffer = io.StringIO()
        writer = csv.writer(buffer, delimiter=delimiter)
        writer.writerow(out_header + RESULT_COLUMNS)
        for debtor in debtors:
            raw = list(debtor.raw_data or [])
            raw += [""] * (width - len(raw))
            writer.writerow(raw + [
                ValidationStatus(debtor.validation_status).value,
                "true" if debtor.iban_valid else "false",
                "; ".join(debtor.validation_errors or []),
            ])

        return await storage_service.upload(
            "batches/results",
            f"results_{batch.id}_{get_utc_now():%Y%m%d_%H%M%S}.csv",
            buffer.getvalue().encode("utf-8"),
            content_type="text/csv",
            unique=False,
        )

    @staticmethod
    async def list_debtors(
        db: AsyncSession,
        batch_id: UUID,
        validation_status: Optional[ValidationStatus] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> Tuple[List[Debtor], int]:
        await BatchService.get_batch(db, batch_id)
        conditions = [Debtor.batch_id == batch_id, Debtor.deleted_at.is_(None)]
        if validation_status is not None:
            conditions.append(Debtor.validation_status == validation_status)

        total = await db.scalar(select(func.count()).select_from(Debtor).where(*conditions))
        result = await db.execute(
            select(Debtor)
            .where(*conditions)
            .order_by(Debtor.row_number)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total or 0
