# services/skillbridge-service/src/apps/core/services/gig_service.py
"""
Gig Service

Gig creation and the gig status machine. Status changes are conditional
updates keyed on the current status, so two writers racing on the same gig
cannot both succeed.
"""

import logging
import math
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, Optional, Union
from uuid import UUID

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from shared.common.constants import XPSource
from shared.common.exceptions import ConflictError, NotFoundError, StateError, ValidationError
from shared.common.utils import Deadline, check_deadline
from shared.common.validators import (
    validate_choice,
    validate_coordinates,
    validate_non_negative_int,
    validate_positive_decimal,
    validate_rating,
)

from ..conf import engine_setting
from ..models import Gig, GigApplication, GigSkill
from ..events.publishers import (
    publish_application_status_changed,
    publish_gig_cancelled,
    publish_gig_completed,
    publish_gig_posted,
)
from .badge_service import schedule_badge_reevaluation
from .progression_service import ProgressionService

logger = logging.getLogger(__name__)


class GigService:
    """Service for the gig lifecycle."""

    CANCELLED_MESSAGE = 'Gig has been cancelled'
    REQUIRED_FIELDS = ('title', 'description', 'category', 'longitude', 'latitude', 'budget_min')

    def __init__(self, progression_service: Optional[ProgressionService] = None):
        self.progression = progression_service or ProgressionService()

    # ==========================================================================
    # Creation
    # ==========================================================================

    def create_gig(self, client_id: UUID, data: Dict[str, Any], publish: bool = False) -> Gig:
        """
        Create a gig in draft, optionally posting it straight away.

        Args:
            client_id: Owner of the gig
            data: title, description, category, longitude, latitude and
                budget_min are required; budget_max, currency, budget_type,
                priority, experience_level, is_remote, tags, skills,
                max_applications, deadline, expires_at, address and city
                are optional
            publish: Post the gig after creating it

        Raises:
            ValidationError: Missing or malformed fields
        """
        missing = [name for name in self.REQUIRED_FIELDS if data.get(name) in (None, '')]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", field=missing[0])

        longitude, latitude = validate_coordinates(data['longitude'], data['latitude'])
        budget_min = validate_positive_decimal(data['budget_min'], field_name='budget_min')
        budget_max = None
        if data.get('budget_max') is not None:
            budget_max = validate_positive_decimal(data['budget_max'], field_name='budget_max')
            if budget_max < budget_min:
                raise ValidationError("budget_max cannot be below budget_min", field='budget_max')

        priority = data.get('priority', Gig.Priority.MEDIUM)
        validate_choice(priority, Gig.Priority, 'priority')
        experience_level = data.get('experience_level', Gig.ExperienceLevel.ENTRY)
        validate_choice(experience_level, Gig.ExperienceLevel, 'experience_level')
        budget_type = data.get('budget_type', Gig.BudgetType.FIXED)
        validate_choice(budget_type, Gig.BudgetType, 'budget_type')

        max_applications = data.get('max_applications', engine_setting('DEFAULT_MAX_APPLICATIONS'))
        validate_non_negative_int(max_applications, 'max_applications')

        skills = data.get('skills') or []
        for skill in skills:
            if not isinstance(skill, dict) or not str(skill.get('name', '')).strip():
                raise ValidationError("Each skill needs a name", field='skills')
            validate_choice(skill.get('level', GigSkill.Level.BEGINNER), GigSkill.Level, 'skills.level')

        with transaction.atomic():
            gig = Gig.objects.create(
                client_id=client_id,
                title=data['title'],
                description=data['description'],
                category=data['category'],
                tags=list(data.get('tags') or []),
                priority=priority,
                experience_level=experience_level,
                is_remote=bool(data.get('is_remote', False)),
                longitude=longitude,
                latitude=latitude,
                address=data.get('address', ''),
                city=data.get('city', ''),
                budget_min=budget_min,
                budget_max=budget_max,
                currency=data.get('currency', 'KES'),
                budget_type=budget_type,
                deadline=data.get('deadline'),
                expires_at=data.get('expires_at') or self._default_expiry(),
                max_applications=max_applications,
            )
            GigSkill.objects.bulk_create([
                GigSkill(
                    gig=gig,
                    name=str(skill['name']).strip(),
                    level=skill.get('level', GigSkill.Level.BEGINNER),
                    required=skill.get('required', True),
                )
                for skill in skills
            ])

            if publish:
                gig = self.post_gig(gig)

        logger.info(
            f"Created gig {gig.id} for client {client_id}",
            extra={'gig_id': str(gig.id), 'client_id': str(client_id)}
        )
        return gig

    @staticmethod
    def _default_expiry():
        return timezone.now() + timedelta(days=engine_setting('GIG_EXPIRY_DAYS'))

    # ==========================================================================
    # Status Machine
    # ==========================================================================

    def post_gig(self, gig: Union[Gig, UUID]) -> Gig:
        """draft -> posted; a missing or past expiry is reset to the default window."""
        gig = self.get_gig(gig)
        self._require_transition(gig, Gig.Status.POSTED)

        now = timezone.now()
        expires_at = gig.expires_at if gig.expires_at and gig.expires_at > now else self._default_expiry()

        with transaction.atomic():
            self._swap_status(
                gig,
                from_status=Gig.Status.DRAFT,
                posted_at=now,
                status=Gig.Status.POSTED,
                expires_at=expires_at,
            )
            publish_gig_posted(gig_id=gig.id, client_id=gig.client_id, category=gig.category)

        logger.info(f"Posted gig {gig.id}", extra={'gig_id': str(gig.id)})
        return self.get_gig(gig.id)

    def cancel_gig(self, gig: Union[Gig, UUID], reason: str = '', deadline: Optional[Deadline] = None) -> Gig:
        """
        posted -> cancelled; every pending application is rejected.

        Raises:
            StateError: Gig is not posted
            ConflictError: Gig changed concurrently
        """
        gig = self.get_gig(gig)
        self._require_transition(gig, Gig.Status.CANCELLED)

        with transaction.atomic():
            check_deadline(deadline, 'cancel_gig')
            now = timezone.now()
            self._swap_status(
                gig,
                from_status=Gig.Status.POSTED,
                status=Gig.Status.CANCELLED,
                cancelled_at=now,
                cancellation_reason=reason or '',
            )

            pending = list(gig.applications.filter(status=GigApplication.Status.PENDING))
            GigApplication.objects.filter(pk__in=[a.pk for a in pending]).update(
                status=GigApplication.Status.REJECTED,
                response_at=now,
                response_message=self.CANCELLED_MESSAGE,
            )
            for application in pending:
                publish_application_status_changed(
                    gig_id=gig.id,
                    application_id=application.id,
                    applicant_id=application.applicant_id,
                    old_status=GigApplication.Status.PENDING,
                    new_status=GigApplication.Status.REJECTED,
                    response_message=self.CANCELLED_MESSAGE,
                )
            publish_gig_cancelled(gig_id=gig.id, client_id=gig.client_id, reason=reason or '')

        logger.info(
            f"Cancelled gig {gig.id}; rejected {len(pending)} pending applications",
            extra={'gig_id': str(gig.id)}
        )
        return self.get_gig(gig.id)

    def dispute_gig(self, gig: Union[Gig, UUID], reason: str = '') -> Gig:
        gig = self.get_gig(gig)
        self._require_transition(gig, Gig.Status.DISPUTED)

        with transaction.atomic():
            self._swap_status(
                gig,
                from_status=gig.status,
                status=Gig.Status.DISPUTED,
                disputed_at=timezone.now(),
                dispute_reason=reason or '',
            )

        logger.warning(f"Gig {gig.id} disputed: {reason}", extra={'gig_id': str(gig.id)})
        return self.get_gig(gig.id)

    def complete_gig(
        self,
        gig: Union[Gig, UUID],
        client_rating: Optional[int] = None,
        client_feedback: str = '',
        worker_rating: Optional[int] = None,
        worker_feedback: str = '',
        deadline: Optional[Deadline] = None,
    ) -> Dict[str, Any]:
        """
        in-progress -> completed, crediting the assigned worker.

        The worker's gig count and rating average are updated and they
        receive max(200, floor(10% of budget_min)) XP.

        Args:
            gig: Gig or its id
            client_rating: Rating (1-5) the client gives the worker
            client_feedback: Client's comments
            worker_rating: Rating (1-5) the worker gives the client
            worker_feedback: Worker's comments
            deadline: Optional cancellation signal

        Returns:
            Dict with gig and xp_awarded

        Raises:
            ValidationError: Rating outside 1..5
            StateError: Gig is not in progress
            ConflictError: Gig changed concurrently
        """
        if client_rating is not None:
            validate_rating(client_rating, 'client_rating')
        if worker_rating is not None:
            validate_rating(worker_rating, 'worker_rating')

        gig = self.get_gig(gig)
        if gig.status != Gig.Status.IN_PROGRESS:
            logger.warning(f"Cannot complete gig {gig.id} in status {gig.status}")
            raise StateError("Only in-progress gigs can be completed", current_state=gig.status)

        xp_awarded = 0
        with transaction.atomic():
            check_deadline(deadline, 'complete_gig')
            self._swap_status(
                gig,
                from_status=Gig.Status.IN_PROGRESS,
                status=Gig.Status.COMPLETED,
                completed_at=timezone.now(),
                client_rating=client_rating,
                client_feedback=client_feedback or '',
                worker_rating=worker_rating,
                worker_feedback=worker_feedback or '',
            )

            if gig.assigned_to:
                self.progression.record_gig_completion(gig.assigned_to, client_rating)
                reward = self.completion_xp(gig.budget_min)
                xp = self.progression.add_xp(
                    gig.assigned_to,
                    reward,
                    XPSource.GIG_COMPLETION,
                    reason=f"Gig completed: {gig.title}",
                    reward_key=f"gig_completed:{gig.id}",
                    deadline=deadline,
                )
                xp_awarded = xp['xp_added']
                schedule_badge_reevaluation(gig.assigned_to)

            publish_gig_completed(
                gig_id=gig.id,
                client_id=gig.client_id,
                assigned_to=gig.assigned_to,
                xp_awarded=xp_awarded,
                client_rating=client_rating,
            )

        logger.info(
            f"Completed gig {gig.id}; awarded {xp_awarded} XP to {gig.assigned_to}",
            extra={'gig_id': str(gig.id), 'assigned_to': str(gig.assigned_to)}
        )
        return {'gig': self.get_gig(gig.id), 'xp_awarded': xp_awarded}

    @staticmethod
    def completion_xp(budget_min: Decimal) -> int:
        minimum = engine_setting('GIG_COMPLETION_MIN_XP')
        ratio = Decimal(str(engine_setting('GIG_COMPLETION_BUDGET_RATIO')))
        return max(minimum, math.floor(Decimal(budget_min) * ratio))

    # ==========================================================================
    # Helpers
    # ==========================================================================

    @staticmethod
    def get_gig(gig: Union[Gig, UUID]) -> Gig:
        gig_id = gig.pk if isinstance(gig, Gig) else gig
        try:
            return Gig.objects.get(pk=gig_id)
        except (Gig.DoesNotExist, ValueError):
            raise NotFoundError('Gig', gig_id)

    @staticmethod
    def _require_transition(gig: Gig, new_status: str) -> None:
        if not gig.can_transition_to(new_status):
            logger.warning(f"Rejected gig {gig.id} transition {gig.status} -> {new_status}")
            raise StateError(
                f"Cannot move gig from {gig.status} to {new_status}",
                current_state=gig.status
            )

    @staticmethod
    def _swap_status(gig: Gig, from_status: str, **changes) -> None:
        """
        Apply changes only if the gig is still in from_status.

        Raises:
            ConflictError: Another writer changed the gig first
        """
        updated = Gig.objects.filter(pk=gig.pk, status=from_status).update(
            version=F('version') + 1,
            updated_at=timezone.now(),
            **changes
        )
        if not updated:
            raise ConflictError(
                "Gig was modified concurrently",
                details={'gig_id': str(gig.pk), 'expected_status': str(from_status)}
            )
