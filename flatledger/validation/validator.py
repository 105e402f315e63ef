"""
Write-Boundary Validation

DESIGN DECISION: Records that feed matching and obligation maths are
checked before they are persisted, in two stages:

STAGE 1 - SCHEMA VALIDATION:
- Field formats (card suffix digits, date order, amounts)
- At least one matching criterion on a rule
- Runs without storage

STAGE 2 - REFERENCE VALIDATION:
- The referenced flatmate exists
- Overlapping schedules (allowed, but worth a warning)
- Needs storage

WHY HERE: The obligation calculator assumes every schedule it gets is
well formed and never re-checks. Anything malformed must be stopped at
the door, not discovered while computing balances.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them for the caller to act on.
"""

import re
from typing import Optional

from flatledger.models.expense import ExpenseMatchingRule, MatchMode
from flatledger.models.people import Flatmate, Landlord, PaymentSchedule
from flatledger.models.validation import ValidationIssue, ValidationResult
from flatledger.services.storage import DirectoryStorageInterface


CARD_SUFFIX_PATTERN = re.compile(r"^\d{4}$")


class RecordValidator:
    """
    Validates schedules, people and expense rules before they are saved.

    Stage 1: Schema validation (can run without storage)
    Stage 2: Reference validation (needs storage)
    """

    def __init__(
        self,
        directory: Optional[DirectoryStorageInterface] = None,
    ):
        """
        Initialize validator.

        Args:
            directory: Storage used for reference checks.
                       If None, stage 2 is skipped.
        """
        self._directory = directory

    # -------------------------------------------------------------------------
    # Payment schedules
    # -------------------------------------------------------------------------

    def _validate_schedule_schema(self, schedule: PaymentSchedule) -> list[ValidationIssue]:
        issues = []

        if schedule.end_date is not None and schedule.end_date <= schedule.start_date:
            issues.append(ValidationIssue(
                field="end_date",
                issue_type="invalid_range",
                message=(
                    f"End date ({schedule.end_date}) must be after "
                    f"start date ({schedule.start_date})"
                ),
                severity="error",
                suggested_fix="Leave the end date empty for an ongoing schedule",
            ))

        if schedule.weekly_amount < 0:
            issues.append(ValidationIssue(
                field="weekly_amount",
                issue_type="invalid_value",
                message="Weekly amount cannot be negative",
                severity="error",
            ))
        elif schedule.weekly_amount == 0:
            issues.append(ValidationIssue(
                field="weekly_amount",
                issue_type="suspicious_value",
                message="Weekly amount is zero; payments cannot be classified as rent",
                severity="warning",
                suggested_fix="Check the weekly amount",
            ))

        return issues

    async def _validate_schedule_references(
        self,
        schedule: PaymentSchedule,
    ) -> list[ValidationIssue]:
        issues = []

        if self._directory is None:
            return issues

        flatmate = await self._directory.get_flatmate(schedule.person_id)
        if flatmate is None:
            issues.append(ValidationIssue(
                field="person_id",
                issue_type="not_found",
                message=f"Flatmate not found: {schedule.person_id}",
                severity="error",
            ))
            return issues

        existing = await self._directory.list_schedules(person_id=schedule.person_id)
        for other in existing:
            if other.id == schedule.id:
                continue
            if _ranges_overlap(schedule, other):
                issues.append(ValidationIssue(
                    field="start_date",
                    issue_type="overlap",
                    message=(
                        f"Overlaps the schedule starting {other.start_date}; "
                        "the later-starting schedule applies during the overlap"
                    ),
                    severity="warning",
                ))

        return issues

    async def validate_schedule(self, schedule: PaymentSchedule) -> ValidationResult:
        """
        Run both stages for a payment schedule.

        Stage 2 only runs if stage 1 found no errors.
        """
        issues = self._validate_schedule_schema(schedule)
        if not any(issue.severity == "error" for issue in issues):
            issues.extend(await self._validate_schedule_references(schedule))
        return ValidationResult(record_type="schedule", issues=issues)

    # -------------------------------------------------------------------------
    # People
    # -------------------------------------------------------------------------

    def validate_flatmate(self, flatmate: Flatmate) -> ValidationResult:
        issues = []

        if flatmate.card_suffix and not CARD_SUFFIX_PATTERN.match(flatmate.card_suffix):
            issues.append(ValidationIssue(
                field="card_suffix",
                issue_type="invalid_format",
                message="Card suffix must be exactly 4 digits",
                severity="error",
                suggested_fix="Enter the last four digits of the card",
            ))

        if not flatmate.has_matching_hint:
            issues.append(ValidationIssue(
                field="matching",
                issue_type="no_hints",
                message=f"{flatmate.display_name} has no matching hints and will never be auto-matched",
                severity="warning",
                suggested_fix="Add a bank account pattern, card suffix or matching name",
            ))

        return ValidationResult(record_type="flatmate", issues=issues)

    def validate_landlord(self, landlord: Landlord) -> ValidationResult:
        issues = []
        if not landlord.has_matching_hint:
            issues.append(ValidationIssue(
                field="matching",
                issue_type="no_hints",
                message=f"{landlord.name} has no matching hints and will never be auto-matched",
                severity="warning",
                suggested_fix="Add a bank account pattern or matching name",
            ))
        return ValidationResult(record_type="landlord", issues=issues)

    # -------------------------------------------------------------------------
    # Expense rules
    # -------------------------------------------------------------------------

    def validate_rule(self, rule: ExpenseMatchingRule) -> ValidationResult:
        """
        Check an expense rule.

        A rule with no criteria is an error because it can never match.
        A bad regex is only a warning: matching falls back to substring.
        """
        issues = []
        patterns = {
            "merchant_pattern": rule.merchant_pattern,
            "description_pattern": rule.description_pattern,
            "account_pattern": rule.account_pattern,
        }
        configured = [name for name, value in patterns.items() if value]

        if not configured and not rule.source_category:
            issues.append(ValidationIssue(
                field="patterns",
                issue_type="missing",
                message="At least one matching criterion is required",
                severity="error",
                suggested_fix="Set a merchant, description, account or source category",
            ))

        if rule.is_regex:
            for name in configured:
                try:
                    re.compile(patterns[name])
                except re.error as e:
                    issues.append(ValidationIssue(
                        field=name,
                        issue_type="invalid_regex",
                        message=f"Invalid regular expression ({e}); it will be matched as plain text",
                        severity="warning",
                        suggested_fix="Fix the expression or turn off regex mode",
                    ))

        total = len(configured) + (1 if rule.source_category else 0)
        if rule.match_mode == MatchMode.ALL and total == 1:
            issues.append(ValidationIssue(
                field="match_mode",
                issue_type="redundant",
                message="'All' mode with a single criterion behaves like 'any'",
                severity="info",
            ))

        return ValidationResult(record_type="rule", issues=issues)

    def get_summary(self, result: ValidationResult) -> str:
        """Plain-text summary of a validation result."""
        if result.is_valid and not result.warnings:
            return f"{result.record_type} is valid"

        lines = []
        for issue in result.issues:
            if issue.severity == "info":
                continue
            lines.append(f"[{issue.severity}] {issue.field}: {issue.message}")
            if issue.suggested_fix:
                lines.append(f"    {issue.suggested_fix}")
        return "\n".join(lines)


def _ranges_overlap(a: PaymentSchedule, b: PaymentSchedule) -> bool:
    a_end = a.end_date
    b_end = b.end_date
    starts_before_b_ends = b_end is None or a.start_date <= b_end
    b_starts_before_a_ends = a_end is None or b.start_date <= a_end
    return starts_before_b_ends and b_starts_before_a_ends
