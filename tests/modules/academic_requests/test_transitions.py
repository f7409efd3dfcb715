"""
Unit tests for lifecycle transitions.

These tests cover:
- The request state machine
- Planning a transition (processed_at stamping, lookup resolution)
- Applying each lifecycle step and syncing the linked enrollment
- Skipping records that vanished or moved on
"""

from datetime import UTC, date, datetime
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from academic_worker.modules.academic_requests.models import AcademicRequestHistory
from academic_worker.modules.academic_requests.queries import RULES, TransitionKind
from academic_worker.modules.academic_requests.transitions import (
    VALID_STATUS_TRANSITIONS,
    InvalidStatusTransitionError,
    TransitionOutcome,
    apply_transition,
    compute_transition,
    validate_transition,
)
from academic_worker.modules.lookups import (
    EnrollmentStatus,
    LookupResolutionError,
    RequestCategory,
    RequestStatus,
)

NOW = datetime(2024, 6, 1, 0, 0, tzinfo=UTC)


@pytest.fixture
def mock_repos():
    """Patch both repositories used by apply_transition."""
    with (
        patch("academic_worker.modules.academic_requests.transitions.repository") as requests_repo,
        patch(
            "academic_worker.modules.academic_requests.transitions.enrollments_repository"
        ) as enrollments_repo,
    ):
        requests_repo.get_by_id = AsyncMock(return_value=None)
        requests_repo.save_transition = AsyncMock()
        enrollments_repo.get_by_id = AsyncMock(return_value=None)
        yield requests_repo, enrollments_repo


class TestStatusTransitions:
    """Tests for the request state machine."""

    def test_terminal_states_have_no_transitions(self):
        """AutoDroppedOut, Completed and Expired are final."""
        for status in (RequestStatus.AUTO_DROPPED_OUT, RequestStatus.COMPLETED, RequestStatus.EXPIRED):
            assert VALID_STATUS_TRANSITIONS[status] == set()

    def test_automated_edges_are_valid(self):
        """Every automated lifecycle step follows a valid edge."""
        for rule in RULES.values():
            if rule.target_status is not None:
                validate_transition(rule.required_status, rule.target_status)

    def test_invalid_edge_raises(self):
        """A step that skips a state is rejected."""
        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            validate_transition(RequestStatus.APPROVED, RequestStatus.AWAITING_RETURN)

        assert exc_info.value.current_status == RequestStatus.APPROVED
        assert exc_info.value.new_status == RequestStatus.AWAITING_RETURN
        assert "Approved -> AwaitingReturn" in str(exc_info.value)

    def test_return_confirmation_is_manual_only(self):
        """AwaitingReturn -> Completed is never taken by the worker."""
        with pytest.raises(InvalidStatusTransitionError):
            validate_transition(RequestStatus.AWAITING_RETURN, RequestStatus.COMPLETED)
        validate_transition(RequestStatus.AWAITING_RETURN, RequestStatus.COMPLETED, automated=False)


class TestComputeTransition:
    """Tests for compute_transition."""

    def test_activation_stamps_processed_at(self, lookup_table, make_request):
        """Activation sets processed_at when it was never set."""
        request = make_request(RequestStatus.APPROVED)

        plan = compute_transition(
            RULES[TransitionKind.ACTIVATE_SUSPENSION], request, RequestStatus.APPROVED, lookup_table, NOW
        )

        assert plan.to_status == RequestStatus.SUSPENDED
        assert plan.new_status_id == lookup_table.request_status_id(RequestStatus.SUSPENDED)
        assert plan.processed_at == NOW
        assert plan.enrollment_status_id == lookup_table.enrollment_status_id(EnrollmentStatus.SUSPENDED)
        assert plan.clear_class is False

    def test_earlier_processed_at_is_overwritten(self, lookup_table, make_request):
        """A request stamped at approval is stamped again when it completes."""
        request = make_request(
            RequestStatus.APPROVED,
            category=RequestCategory.DROPOUT,
            processed_at=datetime(2024, 5, 20, 9, 0, tzinfo=UTC),
        )

        plan = compute_transition(
            RULES[TransitionKind.COMPLETE_DROPOUT], request, RequestStatus.APPROVED, lookup_table, NOW
        )

        assert plan.processed_at == NOW

    def test_processed_at_never_moves_backwards(self, lookup_table, make_request):
        """A stamp later than ``now`` is left alone."""
        request = make_request(RequestStatus.APPROVED, processed_at=datetime(2024, 6, 2, tzinfo=UTC))

        plan = compute_transition(
            RULES[TransitionKind.ACTIVATE_SUSPENSION], request, RequestStatus.APPROVED, lookup_table, NOW
        )

        assert plan.processed_at is None

    def test_end_suspension_leaves_enrollment_alone(self, lookup_table, make_request):
        """Ending a suspension changes only the request."""
        request = make_request(RequestStatus.SUSPENDED)

        plan = compute_transition(
            RULES[TransitionKind.END_SUSPENSION], request, RequestStatus.SUSPENDED, lookup_table, NOW
        )

        assert plan.to_status == RequestStatus.AWAITING_RETURN
        assert plan.processed_at is None
        assert not plan.touches_enrollment

    def test_read_only_rule_raises(self, lookup_table, make_request):
        """The reminder step has nothing to compute."""
        with pytest.raises(ValueError):
            compute_transition(
                RULES[TransitionKind.RETURN_REMINDER],
                make_request(RequestStatus.SUSPENDED),
                RequestStatus.SUSPENDED,
                lookup_table,
                NOW,
            )

    def test_missing_target_lookup_raises(self, lookup_table, make_request):
        """An unmapped target status cannot be planned."""
        del lookup_table.request_statuses[RequestStatus.EXPIRED]

        with pytest.raises(LookupResolutionError):
            compute_transition(
                RULES[TransitionKind.EXPIRE_PENDING],
                make_request(RequestStatus.PENDING),
                RequestStatus.PENDING,
                lookup_table,
                NOW,
            )


class TestApplyTransition:
    """Tests for apply_transition."""

    @pytest.mark.asyncio
    async def test_activate_suspension(
        self, mock_db, lookup_table, make_request, sample_enrollment, mock_repos
    ):
        """Activation suspends both the request and its enrollment."""
        requests_repo, enrollments_repo = mock_repos
        request = make_request(RequestStatus.APPROVED, suspension_start_date=date(2024, 6, 1))
        class_id = sample_enrollment.class_id
        requests_repo.get_by_id.return_value = request
        enrollments_repo.get_by_id.return_value = sample_enrollment

        result = await apply_transition(
            mock_db, RULES[TransitionKind.ACTIVATE_SUSPENSION], request.id, lookup_table, NOW
        )

        assert result.outcome == TransitionOutcome.APPLIED
        assert request.status_id == lookup_table.request_status_id(RequestStatus.SUSPENDED)
        assert request.processed_at == NOW
        assert request.updated_at == NOW
        assert sample_enrollment.enrollment_status_id == lookup_table.enrollment_status_id(
            EnrollmentStatus.SUSPENDED
        )
        assert sample_enrollment.class_id == class_id
        requests_repo.save_transition.assert_awaited_once_with(mock_db, request, sample_enrollment, None)

    @pytest.mark.asyncio
    async def test_auto_dropout_clears_class(
        self, mock_db, lookup_table, make_request, sample_enrollment, mock_repos
    ):
        """Auto-dropout drops the enrollment and detaches it from its class."""
        requests_repo, enrollments_repo = mock_repos
        request = make_request(RequestStatus.AWAITING_RETURN, suspension_end_date=date(2024, 5, 18))
        requests_repo.get_by_id.return_value = request
        enrollments_repo.get_by_id.return_value = sample_enrollment

        result = await apply_transition(
            mock_db, RULES[TransitionKind.AUTO_DROPOUT], request.id, lookup_table, NOW
        )

        assert result.outcome == TransitionOutcome.APPLIED
        assert request.status_id == lookup_table.request_status_id(RequestStatus.AUTO_DROPPED_OUT)
        assert request.processed_at is None
        assert sample_enrollment.enrollment_status_id == lookup_table.enrollment_status_id(
            EnrollmentStatus.DROPPED
        )
        assert sample_enrollment.class_id is None
        assert sample_enrollment.updated_at == NOW

    @pytest.mark.asyncio
    async def test_complete_dropout(
        self, mock_db, lookup_table, make_request, sample_enrollment, mock_repos
    ):
        """A dropout completes, stamps processed_at and drops the enrollment."""
        requests_repo, enrollments_repo = mock_repos
        request = make_request(
            RequestStatus.APPROVED,
            category=RequestCategory.DROPOUT,
            effective_date=date(2024, 6, 1),
            processed_at=datetime(2024, 5, 20, 9, 0, tzinfo=UTC),
        )
        requests_repo.get_by_id.return_value = request
        enrollments_repo.get_by_id.return_value = sample_enrollment

        result = await apply_transition(
            mock_db, RULES[TransitionKind.COMPLETE_DROPOUT], request.id, lookup_table, NOW
        )

        assert result.outcome == TransitionOutcome.APPLIED
        assert request.status_id == lookup_table.request_status_id(RequestStatus.COMPLETED)
        assert request.processed_at == NOW
        assert sample_enrollment.class_id is None

    @pytest.mark.asyncio
    async def test_expire_pending_records_history(self, mock_db, lookup_table, make_request, mock_repos):
        """Expiry appends a history row and never touches the enrollment."""
        requests_repo, enrollments_repo = mock_repos
        request = make_request(
            RequestStatus.PENDING,
            category=None,
            effective_date=date(2024, 5, 31),
            attachment_url="https://files.test/letter.pdf",
        )
        requests_repo.get_by_id.return_value = request

        result = await apply_transition(
            mock_db, RULES[TransitionKind.EXPIRE_PENDING], request.id, lookup_table, NOW
        )

        assert result.outcome == TransitionOutcome.APPLIED
        enrollments_repo.get_by_id.assert_not_called()
        _, saved_request, saved_enrollment, history = requests_repo.save_transition.call_args.args
        assert saved_request is request
        assert saved_enrollment is None
        assert isinstance(history, AcademicRequestHistory)
        assert history.request_id == request.id
        assert history.status_id == lookup_table.request_status_id(RequestStatus.EXPIRED)
        assert history.attachment_url == "https://files.test/letter.pdf"

    @pytest.mark.asyncio
    async def test_return_reminder_is_unchanged(self, mock_db, lookup_table, make_request, mock_repos):
        """The reminder step reads the request and saves nothing."""
        requests_repo, _ = mock_repos
        request = make_request(RequestStatus.SUSPENDED, suspension_end_date=date(2024, 6, 4))
        status_id = request.status_id
        requests_repo.get_by_id.return_value = request

        result = await apply_transition(
            mock_db, RULES[TransitionKind.RETURN_REMINDER], request.id, lookup_table, NOW
        )

        assert result.outcome == TransitionOutcome.UNCHANGED
        assert result.request is request
        assert request.status_id == status_id
        requests_repo.save_transition.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_request_is_skipped(self, mock_db, lookup_table, make_request, mock_repos):
        """A request deleted since the query is skipped."""
        requests_repo, _ = mock_repos
        request = make_request(RequestStatus.SUSPENDED)

        result = await apply_transition(
            mock_db, RULES[TransitionKind.END_SUSPENSION], request.id, lookup_table, NOW
        )

        assert result.outcome == TransitionOutcome.SKIPPED
        assert result.reason == "not_found"
        requests_repo.save_transition.assert_not_called()

    @pytest.mark.asyncio
    async def test_status_changed_is_skipped(self, mock_db, lookup_table, make_request, mock_repos):
        """A request moved on by someone else is left alone."""
        requests_repo, _ = mock_repos
        request = make_request(RequestStatus.COMPLETED)
        status_id = request.status_id
        requests_repo.get_by_id.return_value = request

        result = await apply_transition(
            mock_db, RULES[TransitionKind.AUTO_DROPOUT], request.id, lookup_table, NOW
        )

        assert result.outcome == TransitionOutcome.SKIPPED
        assert result.reason == "status_changed"
        assert request.status_id == status_id
        requests_repo.save_transition.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_target_lookup_is_skipped(self, mock_db, lookup_table, make_request, mock_repos):
        """An unmapped target status skips the record instead of failing."""
        requests_repo, _ = mock_repos
        request = make_request(RequestStatus.SUSPENDED)
        requests_repo.get_by_id.return_value = request
        del lookup_table.request_statuses[RequestStatus.AWAITING_RETURN]

        result = await apply_transition(
            mock_db, RULES[TransitionKind.END_SUSPENSION], request.id, lookup_table, NOW
        )

        assert result.outcome == TransitionOutcome.SKIPPED
        assert "AwaitingReturn" in result.reason
        requests_repo.save_transition.assert_not_called()

    @pytest.mark.asyncio
    async def test_request_without_enrollment(self, mock_db, lookup_table, make_request, mock_repos):
        """A request with no linked enrollment still transitions."""
        requests_repo, enrollments_repo = mock_repos
        request = make_request(RequestStatus.APPROVED, enrollment_id=None)
        requests_repo.get_by_id.return_value = request

        result = await apply_transition(
            mock_db, RULES[TransitionKind.ACTIVATE_SUSPENSION], request.id, lookup_table, NOW
        )

        assert result.outcome == TransitionOutcome.APPLIED
        enrollments_repo.get_by_id.assert_not_called()
        requests_repo.save_transition.assert_awaited_once_with(mock_db, request, None, None)

    @pytest.mark.asyncio
    async def test_missing_enrollment_row(self, mock_db, lookup_table, make_request, mock_repos):
        """A dangling enrollment link is logged and the request still saved."""
        requests_repo, _ = mock_repos
        request = make_request(RequestStatus.AWAITING_RETURN)
        requests_repo.get_by_id.return_value = request

        result = await apply_transition(
            mock_db, RULES[TransitionKind.AUTO_DROPOUT], request.id, lookup_table, NOW
        )

        assert result.outcome == TransitionOutcome.APPLIED
        requests_repo.save_transition.assert_awaited_once_with(mock_db, request, None, None)

    @pytest.mark.asyncio
    async def test_persistence_error_propagates(self, mock_db, lookup_table, make_request, mock_repos):
        """Database errors on save are raised to the caller."""
        requests_repo, _ = mock_repos
        request = make_request(RequestStatus.SUSPENDED)
        requests_repo.get_by_id.return_value = request
        requests_repo.save_transition.side_effect = OperationalError("UPDATE", {}, Exception("down"))

        with pytest.raises(OperationalError):
            await apply_transition(
                mock_db, RULES[TransitionKind.END_SUSPENSION], request.id, lookup_table, NOW
            )
