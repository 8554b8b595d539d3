"""
Batch volume audit.

Responsibility:
    Year-end health checks on a batch: required fields, whether its
    recorded volume matches the sum of its ledger movements, whether the
    data needed for tax classification exists, whether its remaining
    volume makes sense, and whether its start date is plausible.

Architecture position:
    Engines > Guards -- pure functions.  Unlike the other guards these
    checks never raise; they return graded results for a report.  The
    caller aggregates the ledger rows (transfers, packaging, losses,
    adjustments) into a ``BatchVolumeLedger`` before calling.

Invariants enforced:
    - expected = effective initial + transfers in + merges
      - transfers out - transfer loss - bottling - bottling loss
      - kegging - kegging loss - distillation + adjustments
      - racking losses - filter losses
    - A batch created by transfer starts from zero; its volume arrives
      as a transfer in.
    - The volume discrepancy threshold is the larger of 5% of the base
      volume and 2 L.  Above it is a warning, above twice it a failure.
    - The report status is the worst status among its checks.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from cidery_kernel.domain.values import ZERO, to_date, to_decimal
from cidery_kernel.logging_config import get_logger

logger = get_logger("engines.guards.batch_audit")

THRESHOLD_FRACTION = Decimal("0.05")
THRESHOLD_FLOOR_L = Decimal("2")
BOTTLING_LOSS_MATCH_L = Decimal("2")
EARLIEST_PLAUSIBLE_YEAR = 2000


class CheckStatus(str, Enum):
    PASS = "pass"
    WARNING = "warning"
    FAIL = "fail"


_SEVERITY = {CheckStatus.PASS: 0, CheckStatus.WARNING: 1, CheckStatus.FAIL: 2}


@dataclass(frozen=True)
class AuditCheck:
    id: str
    status: CheckStatus
    message: str
    details: str | None = None


@dataclass(frozen=True)
class BatchAuditReport:
    batch_id: str
    status: CheckStatus
    checks: tuple[AuditCheck, ...]

    def check(self, check_id: str) -> AuditCheck | None:
        return next((c for c in self.checks if c.id == check_id), None)


@dataclass(frozen=True)
class BatchAuditSubject:
    """The batch fields the audit reads."""

    id: str
    initial_volume_l: Decimal
    current_volume_l: Decimal
    product_type: str | None = None
    start_date: date | datetime | None = None
    parent_batch_id: str | None = None
    vessel_id: str | None = None
    actual_abv: Decimal | None = None
    estimated_abv: Decimal | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "initial_volume_l", to_decimal(self.initial_volume_l))
        object.__setattr__(self, "current_volume_l", to_decimal(self.current_volume_l))


@dataclass(frozen=True)
class BatchVolumeLedger:
    """Summed ledger movements for one batch, all in liters."""

    transfers_in_l: Decimal = ZERO
    merges_l: Decimal = ZERO
    transfers_out_l: Decimal = ZERO
    transfer_loss_l: Decimal = ZERO
    bottling_l: Decimal = ZERO
    bottling_loss_l: Decimal = ZERO
    kegging_l: Decimal = ZERO
    kegging_loss_l: Decimal = ZERO
    distillation_l: Decimal = ZERO
    adjustments_l: Decimal = ZERO
    racking_loss_l: Decimal = ZERO
    filter_loss_l: Decimal = ZERO
    carbonation_operations: int = 0
    carbonation_finished: bool = False

    def __post_init__(self) -> None:
        for f in fields(self):
            if f.name.endswith("_l"):
                object.__setattr__(self, f.name, to_decimal(getattr(self, f.name)))

    @property
    def total_consumed_l(self) -> Decimal:
        return self.transfers_out_l + self.bottling_l + self.kegging_l + self.distillation_l


@dataclass(frozen=True)
class VolumeBalance:
    effective_initial_l: Decimal
    expected_l: Decimal
    actual_l: Decimal
    discrepancy_l: Decimal
    base_volume_l: Decimal
    threshold_l: Decimal
    status: CheckStatus


def effective_bottling_loss(
    volume_taken_l: Decimal,
    loss_l: Decimal,
    units_produced: int,
    package_size_ml: int,
) -> Decimal:
    """
    Loss to subtract for one bottle run.

    Some runs record ``volume_taken`` as product plus loss; when
    ``volume_taken`` is within 2 L of that sum the loss is already
    counted and contributes nothing further.
    """
    product_l = Decimal(units_produced or 0) * Decimal(package_size_ml or 0) / Decimal("1000")
    if abs(volume_taken_l - (product_l + loss_l)) < BOTTLING_LOSS_MATCH_L:
        return ZERO
    return loss_l


def audit_batch_volume(subject: BatchAuditSubject, ledger: BatchVolumeLedger) -> VolumeBalance:
    """Compare the recorded volume with what the ledger says it should be."""
    transfer_created = bool(subject.parent_batch_id) and ledger.transfers_in_l > 0
    initial = ZERO if transfer_created else subject.initial_volume_l

    expected = (
        initial
        + ledger.transfers_in_l
        + ledger.merges_l
        - ledger.transfers_out_l
        - ledger.transfer_loss_l
        - ledger.bottling_l
        - ledger.bottling_loss_l
        - ledger.kegging_l
        - ledger.kegging_loss_l
        - ledger.distillation_l
        + ledger.adjustments_l
        - ledger.racking_loss_l
        - ledger.filter_loss_l
    )
    discrepancy = subject.current_volume_l - expected
    base = max(initial + ledger.merges_l, ledger.transfers_in_l)
    threshold = max(base * THRESHOLD_FRACTION, THRESHOLD_FLOOR_L)

    magnitude = abs(discrepancy)
    if magnitude <= threshold:
        status = CheckStatus.PASS
    elif magnitude > threshold * 2:
        status = CheckStatus.FAIL
    else:
        status = CheckStatus.WARNING

    return VolumeBalance(
        effective_initial_l=initial,
        expected_l=expected,
        actual_l=subject.current_volume_l,
        discrepancy_l=discrepancy,
        base_volume_l=base,
        threshold_l=threshold,
        status=status,
    )


def _volume_balance_check(balance: VolumeBalance) -> AuditCheck:
    if balance.status == CheckStatus.PASS:
        return AuditCheck("volume_balance", CheckStatus.PASS, "Volume balanced within tolerance")

    sign = "+" if balance.discrepancy_l > 0 else ""
    percent = ""
    if balance.base_volume_l > 0:
        pct = abs(balance.discrepancy_l) / balance.base_volume_l * 100
        percent = f" / {pct:.1f}%"
    return AuditCheck(
        "volume_balance",
        balance.status,
        "Volume discrepancy detected",
        f"Expected {balance.expected_l:.1f}L, actual {balance.actual_l:.1f}L "
        f"({sign}{balance.discrepancy_l:.1f}L{percent})",
    )


def check_required_fields(subject: BatchAuditSubject) -> AuditCheck:
    issues = []
    if not subject.product_type:
        issues.append("Product type not set")
    if subject.start_date is None:
        issues.append("Start date not set")
    if not subject.parent_batch_id and subject.initial_volume_l <= 0:
        issues.append("Initial volume is 0 for a root batch")

    if issues:
        return AuditCheck(
            "required_fields", CheckStatus.FAIL, "Missing required fields", "; ".join(issues)
        )
    return AuditCheck("required_fields", CheckStatus.PASS, "All required fields set")


def check_classification_data(subject: BatchAuditSubject, ledger: BatchVolumeLedger) -> AuditCheck:
    issues = []
    if subject.actual_abv is None and subject.estimated_abv is None:
        issues.append("No ABV recorded (needed for tax class)")
    if ledger.carbonation_operations > 0 and not ledger.carbonation_finished:
        issues.append("Carbonation operations exist but no final CO2 volumes recorded")

    if issues:
        return AuditCheck(
            "classification_data",
            CheckStatus.WARNING,
            "Missing classification data",
            "; ".join(issues),
        )
    return AuditCheck("classification_data", CheckStatus.PASS, "Classification data complete")


def check_active_volume(subject: BatchAuditSubject, ledger: BatchVolumeLedger) -> AuditCheck:
    current = subject.current_volume_l
    if current > 0 and not subject.vessel_id:
        return AuditCheck(
            "active_volume",
            CheckStatus.WARNING,
            "Volume exists but no vessel assigned",
            f"{current:.1f}L remaining with no vessel",
        )
    if current == 0 and subject.initial_volume_l > 0 and ledger.total_consumed_l == 0:
        return AuditCheck(
            "active_volume",
            CheckStatus.WARNING,
            "Volume zeroed without tracked consumption",
            "Batch has 0L but no packaging, transfers, or distillation recorded",
        )
    return AuditCheck("active_volume", CheckStatus.PASS, "Volume state valid")


def check_date_sanity(subject: BatchAuditSubject, year: int) -> AuditCheck:
    """
    Start date against the reporting year.

    A missing start date is reported by ``check_required_fields`` only.
    """
    if subject.start_date is None:
        return AuditCheck("date_sanity", CheckStatus.PASS, "Date check deferred to required fields")

    started = to_date(subject.start_date).year
    if started > year:
        return AuditCheck(
            "date_sanity",
            CheckStatus.WARNING,
            "Start date is in a future year",
            f"Batch started in {started}, viewing year {year}",
        )
    if started < EARLIEST_PLAUSIBLE_YEAR:
        return AuditCheck(
            "date_sanity",
            CheckStatus.WARNING,
            "Start date is implausibly old",
            f"Batch started in {started}",
        )
    if started < year:
        return AuditCheck("date_sanity", CheckStatus.PASS, "Carried forward from prior year")
    return AuditCheck("date_sanity", CheckStatus.PASS, "Date within year")


def overall_status(checks: tuple[AuditCheck, ...] | list[AuditCheck]) -> CheckStatus:
    worst = CheckStatus.PASS
    for check in checks:
        if _SEVERITY[check.status] > _SEVERITY[worst]:
            worst = check.status
    return worst


def validate_batch(
    subject: BatchAuditSubject,
    ledger: BatchVolumeLedger,
    year: int,
) -> BatchAuditReport:
    """Run every audit check for one batch."""
    checks = (
        check_required_fields(subject),
        _volume_balance_check(audit_batch_volume(subject, ledger)),
        check_classification_data(subject, ledger),
        check_active_volume(subject, ledger),
        check_date_sanity(subject, year),
    )
    report = BatchAuditReport(batch_id=subject.id, status=overall_status(checks), checks=checks)
    if report.status != CheckStatus.PASS:
        logger.info(
            "batch_audit_flagged",
            extra={
                "batch_id": subject.id,
                "status": report.status.value,
                "flagged_checks": [c.id for c in checks if c.status != CheckStatus.PASS],
            },
        )
    return report
