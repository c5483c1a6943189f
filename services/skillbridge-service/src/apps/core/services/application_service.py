# services/skillbridge-service/src/apps/core/services/application_service.py
"""
Application Service

Submitting applications and the owner's decisions on them. Acceptance is a
compare-and-swap on the gig: exactly one accept can move a posted,
unassigned gig into progress; every other racer gets a ConflictError.
"""

import logging
from typing import Any, Dict, Optional, Union
from uuid import UUID

from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from shared.common.constants import XPSource
from shared.common.exceptions import ConflictError, NotFoundError, StateError, ValidationError
from shared.common.utils import Deadline, check_deadline
from shared.common.validators import validate_choice, validate_non_negative_int, validate_positive_decimal

from ..conf import engine_setting
from ..models import Gig, GigApplication
from ..events.publishers import publish_application_status_changed, publish_application_submitted
from .badge_service import schedule_badge_reevaluation
from .gig_service import GigService
from .matching_service import GigMatchingService
from .progression_service import ProgressionService

logger = logging.getLogger(__name__)


class ApplicationService:
    """Service for the gig application lifecycle."""

    FILLED_MESSAGE = 'Position has been filled'
    DECISION_STATUSES = (
        GigApplication.Status.ACCEPTED,
        GigApplication.Status.REJECTED,
        GigApplication.Status.WITHDRAWN,
    )

    def __init__(
        self,
        progression_service: Optional[ProgressionService] = None,
        matching_service: Optional[GigMatchingService] = None,
    ):
        self.progression = progression_service or ProgressionService()
        self.matching = matching_service or GigMatchingService()

    # ==========================================================================
    # Applying
    # ==========================================================================

    def add_application(
        self,
        gig: Union[Gig, UUID],
        applicant_id: UUID,
        data: Optional[Dict[str, Any]] = None,
        deadline: Optional[Deadline] = None,
    ) -> GigApplication:
        """
        Submit an application to a gig.

        Eligibility is re-checked under a lock on the gig, and the
        application counter only advances if status and count are unchanged.

        Args:
            gig: Gig or its id
            applicant_id: Worker applying
            data: Optional message, proposed_rate, estimated_duration,
                portfolio
            deadline: Optional cancellation signal

        Raises:
            NotFoundError: Unknown gig
            ConflictError: Applicant may not apply (reason in message)
        """
        data = data or {}
        proposed_rate = data.get('proposed_rate')
        if proposed_rate is not None:
            proposed_rate = validate_positive_decimal(proposed_rate, field_name='proposed_rate')
        if data.get('estimated_duration') is not None:
            validate_non_negative_int(data['estimated_duration'], 'estimated_duration')

        gig_id = gig.pk if isinstance(gig, Gig) else gig

        with transaction.atomic():
            try:
                gig = Gig.objects.select_for_update().get(pk=gig_id)
            except (Gig.DoesNotExist, ValueError):
                raise NotFoundError('Gig', gig_id)

            eligibility = self.matching.can_apply(gig, applicant_id)
            if not eligibility['can_apply']:
                logger.warning(
                    f"Application by {applicant_id} to gig {gig.id} rejected: {eligibility['reason']}"
                )
                raise ConflictError(eligibility['reason'], details={'gig_id': str(gig.id)})

            check_deadline(deadline, 'add_application')

            claimed = Gig.objects.filter(
                pk=gig.pk,
                status=Gig.Status.POSTED,
                applications_count=gig.applications_count,
            ).update(applications_count=F('applications_count') + 1)
            if not claimed:
                raise ConflictError("Gig changed while applying", details={'gig_id': str(gig.id)})

            try:
                with transaction.atomic():
                    application = GigApplication.objects.create(
                        gig=gig,
                        applicant_id=applicant_id,
                        message=(data.get('message') or '')[:500],
                        proposed_rate=proposed_rate,
                        estimated_duration=data.get('estimated_duration'),
                        portfolio=list(data.get('portfolio') or []),
                    )
            except IntegrityError:
                raise ConflictError(GigMatchingService.REASON_ALREADY_APPLIED, details={'gig_id': str(gig.id)})

            publish_application_submitted(
                gig_id=gig.id,
                application_id=application.id,
                applicant_id=applicant_id,
                client_id=gig.client_id,
            )

        logger.info(
            f"User {applicant_id} applied to gig {gig.id}",
            extra={'gig_id': str(gig.id), 'applicant_id': str(applicant_id)}
        )
        return application

    # ==========================================================================
    # Decisions
    # ==========================================================================

    def update_application_status(
        self,
        gig: Union[Gig, UUID],
        application_id: UUID,
        new_status: str,
        response_message: str = '',
        deadline: Optional[Deadline] = None,
    ) -> Dict[str, Any]:
        """
        Accept, reject or withdraw a pending application.

        Accepting assigns the gig to the applicant, moves it into progress,
        rejects every other pending application and grants the applicant
        150 XP.

        Returns:
            Dict with application, gig, rejected_count and xp_awarded

        Raises:
            ValidationError: new_status is not a decision
            NotFoundError: Unknown gig or application
            StateError: Application is no longer pending
            ConflictError: Another acceptance won the gig first
        """
        new_status = str(getattr(new_status, 'value', new_status))
        validate_choice(new_status, self.DECISION_STATUSES, 'status')

        gig = GigService.get_gig(gig)

        with transaction.atomic():
            try:
                application = GigApplication.objects.select_for_update().get(pk=application_id, gig=gig)
            except (GigApplication.DoesNotExist, ValueError):
                raise NotFoundError('Application', application_id)

            if not application.is_pending:
                logger.warning(
                    f"Application {application.id} already {application.status}; cannot move to {new_status}"
                )
                raise StateError(
                    f"Application is already {application.status}",
                    current_state=application.status
                )

            check_deadline(deadline, 'update_application_status')

            now = timezone.now()
            old_status = application.status
            rejected = []
            xp_awarded = 0

            if new_status == GigApplication.Status.ACCEPTED:
                assigned = Gig.objects.filter(
                    pk=gig.pk,
                    status=Gig.Status.POSTED,
                    assigned_to__isnull=True,
                ).update(
                    status=Gig.Status.IN_PROGRESS,
                    assigned_to=application.applicant_id,
                    assigned_at=now,
                    version=F('version') + 1,
                    updated_at=now,
                )
                if not assigned:
                    logger.warning(f"Lost acceptance race on gig {gig.id} for application {application.id}")
                    raise ConflictError(
                        "Gig is no longer open for acceptance",
                        details={'gig_id': str(gig.id), 'application_id': str(application.id)}
                    )

                rejected = list(
                    gig.applications.select_for_update()
                    .filter(status=GigApplication.Status.PENDING)
                    .exclude(pk=application.pk)
                )
                GigApplication.objects.filter(pk__in=[a.pk for a in rejected]).update(
                    status=GigApplication.Status.REJECTED,
                    response_at=now,
                    response_message=self.FILLED_MESSAGE,
                )

            application.status = new_status
            application.response_at = now
            application.response_message = response_message or ''
            application.save(update_fields=['status', 'response_at', 'response_message'])

            if new_status == GigApplication.Status.ACCEPTED:
                xp = self.progression.add_xp(
                    application.applicant_id,
                    engine_setting('GIG_ACCEPTED_XP'),
                    XPSource.GIG_ACCEPTED,
                    reason=f"Application accepted: {gig.title}",
                    reward_key=f"gig_accepted:{gig.id}",
                    deadline=deadline,
                )
                xp_awarded = xp['xp_added']
                schedule_badge_reevaluation(application.applicant_id)

            publish_application_status_changed(
                gig_id=gig.id,
                application_id=application.id,
                applicant_id=application.applicant_id,
                old_status=old_status,
                new_status=new_status,
                response_message=application.response_message,
            )
            for other in rejected:
                publish_application_status_changed(
                    gig_id=gig.id,
                    application_id=other.id,
                    applicant_id=other.applicant_id,
                    old_status=GigApplication.Status.PENDING,
                    new_status=GigApplication.Status.REJECTED,
                    response_message=self.FILLED_MESSAGE,
                )

        logger.info(
            f"Application {application.id} on gig {gig.id}: {old_status} -> {new_status}",
            extra={'gig_id': str(gig.id), 'application_id': str(application.id), 'rejected': len(rejected)}
        )
        return {
            'application': application,
            'gig': GigService.get_gig(gig.id),
            'rejected_count': len(rejected),
            'xp_awarded': xp_awarded,
        }

    def withdraw_application(
        self,
        gig: Union[Gig, UUID],
        application_id: UUID,
        applicant_id: UUID,
        deadline: Optional[Deadline] = None,
    ) -> Dict[str, Any]:
        """Withdraw the caller's own pending application."""
        application = GigApplication.objects.filter(pk=application_id).only('applicant_id').first()
        if application is None:
            raise NotFoundError('Application', application_id)
        if str(application.applicant_id) != str(applicant_id):
            raise ValidationError("Only the applicant can withdraw an application", field='applicant_id')

        return self.update_application_status(
            gig,
            application_id,
            GigApplication.Status.WITHDRAWN,
            response_message='Withdrawn by applicant',
            deadline=deadline,
        )
