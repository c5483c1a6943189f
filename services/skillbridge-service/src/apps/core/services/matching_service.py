# services/skillbridge-service/src/apps/core/services/matching_service.py
"""
Gig Matching Service

Nearby and free-text discovery of open gigs, and the can-apply predicate
that the application lifecycle re-checks at write time.
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from django.db.models import Q
from django.utils import timezone

from shared.common.utils import round_decimal
from shared.common.validators import validate_coordinates, validate_positive_decimal

from ..conf import engine_setting
from ..models import Gig, GigApplication

logger = logging.getLogger(__name__)


class GigMatchingService:
    """Service for finding gigs and checking who may apply."""

    REASON_NOT_OPEN = 'Gig is not accepting applications'
    REASON_EXPIRED = 'Gig has expired'
    REASON_OWN_GIG = 'cannot apply to own gig'
    REASON_ALREADY_APPLIED = 'Already applied to this gig'
    REASON_FULL = 'Maximum applications reached'

    # Relevance weights per matched term
    TITLE_WEIGHT = 3
    SKILL_WEIGHT = 2
    TAG_WEIGHT = 2
    DESCRIPTION_WEIGHT = 1

    SORT_DISTANCE = 'distance'

    # ==========================================================================
    # Discovery
    # ==========================================================================

    def find_nearby(
        self,
        longitude: float,
        latitude: float,
        max_distance_meters: Optional[float] = None,
        filters: Optional[Dict[str, Any]] = None,
        sort_by: Optional[str] = None,
        limit: Optional[int] = None,
        now=None,
    ) -> List[Dict[str, Any]]:
        """
        Open gigs within a radius of a point.

        Args:
            longitude: Origin longitude
            latitude: Origin latitude
            max_distance_meters: Search radius (default 10 km)
            filters: Optional category, skills, min_budget, max_budget,
                experience_level, is_remote and query
            sort_by: 'distance' to order nearest first; otherwise priority
                then recency, or relevance when a query is given
            limit: Maximum results

        Returns:
            List of dicts with gig and distance_km (two decimals), plus
            relevance when a query is given
        """
        longitude, latitude = validate_coordinates(longitude, latitude)
        if max_distance_meters is None:
            max_distance_meters = engine_setting('NEARBY_MAX_DISTANCE_METERS')
        radius_km = float(validate_positive_decimal(max_distance_meters, field_name='max_distance_meters')) / 1000

        filters = dict(filters or {})
        query = (filters.pop('query', None) or '').strip()

        queryset = self.apply_filters(Gig.objects.open(now), filters)
        pairs = queryset.prefetch_related('skills').nearest(longitude, latitude, radius_km)
        results = self._decorate(pairs, query)
        results = self._sort(results, by_relevance=bool(query), by_distance=sort_by == self.SORT_DISTANCE)

        logger.debug(
            f"find_nearby({longitude}, {latitude}, {max_distance_meters}m) -> {len(results)} gigs"
        )
        return results[:limit] if limit else results

    def search_gigs(
        self,
        query: str,
        longitude: Optional[float] = None,
        latitude: Optional[float] = None,
        radius_km: Optional[float] = None,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
        now=None,
    ) -> List[Dict[str, Any]]:
        """
        Free-text search over open gigs ranked by relevance.

        A term found in the title weighs 3, in a required skill 2, in a tag
        2 and in the description 1. With an origin, only gigs within
        radius_km are considered. Ties fall back to priority then recency.
        """
        limit = limit or engine_setting('SEARCH_RESULT_LIMIT')
        query = (query or '').strip()
        queryset = self.apply_filters(Gig.objects.open(now), filters or {}).prefetch_related('skills')

        if longitude is not None and latitude is not None:
            longitude, latitude = validate_coordinates(longitude, latitude)
            radius_km = radius_km or engine_setting('SEARCH_RADIUS_KM')
            pairs = queryset.nearest(longitude, latitude, float(radius_km))
        else:
            pairs = [(gig, None) for gig in queryset]

        results = self._sort(self._decorate(pairs, query), by_relevance=bool(query), by_distance=False)
        return results[:limit]

    def find_by_skills(
        self,
        skill_names: Iterable[str],
        longitude: Optional[float] = None,
        latitude: Optional[float] = None,
        max_distance_meters: Optional[float] = None,
        now=None,
    ) -> List[Dict[str, Any]]:
        """Open gigs requiring any of the skills; nearest first with an origin."""
        names = [name.strip() for name in skill_names if name and name.strip()]
        if not names:
            return []

        queryset = Gig.objects.open(now).filter(self._skills_q(names)).distinct().prefetch_related('skills')

        if longitude is None or latitude is None:
            return self._sort(self._decorate([(gig, None) for gig in queryset], ''), False, False)

        longitude, latitude = validate_coordinates(longitude, latitude)
        if max_distance_meters is None:
            max_distance_meters = engine_setting('NEARBY_MAX_DISTANCE_METERS')
        pairs = queryset.nearest(longitude, latitude, float(max_distance_meters) / 1000)
        return self._decorate(pairs, '')

    # ==========================================================================
    # Filtering and Ranking
    # ==========================================================================

    def apply_filters(self, queryset, filters: Dict[str, Any]):
        if filters.get('category'):
            queryset = queryset.filter(category=filters['category'])
        if filters.get('skills'):
            skills = filters['skills']
            if isinstance(skills, str):
                skills = skills.split(',')
            names = [name.strip() for name in skills if name and name.strip()]
            if names:
                queryset = queryset.filter(self._skills_q(names)).distinct()
        if filters.get('min_budget') is not None:
            queryset = queryset.filter(
                budget_min__gte=validate_positive_decimal(filters['min_budget'], field_name='min_budget')
            )
        if filters.get('max_budget') is not None:
            queryset = queryset.filter(
                budget_max__lte=validate_positive_decimal(filters['max_budget'], field_name='max_budget')
            )
        if filters.get('experience_level'):
            queryset = queryset.filter(experience_level=filters['experience_level'])
        if filters.get('is_remote') is not None:
            queryset = queryset.filter(is_remote=bool(filters['is_remote']))
        return queryset

    @staticmethod
    def _skills_q(names: List[str]) -> Q:
        condition = Q()
        for name in names:
            condition |= Q(skills__name__iexact=name)
        return condition

    def relevance(self, gig: Gig, query: str) -> int:
        """Weighted count of query terms found in the gig's text fields."""
        terms = [term for term in re.split(r'\W+', query.lower()) if term]
        if not terms:
            return 0

        title = gig.title.lower()
        description = gig.description.lower()
        skills = [skill.name.lower() for skill in gig.skills.all()]
        tags = [str(tag).lower() for tag in (gig.tags or [])]

        score = 0
        for term in terms:
            if term in title:
                score += self.TITLE_WEIGHT
            if any(term in skill for skill in skills):
                score += self.SKILL_WEIGHT
            if any(term in tag for tag in tags):
                score += self.TAG_WEIGHT
            if term in description:
                score += self.DESCRIPTION_WEIGHT
        return score

    def _decorate(self, pairs: List[Tuple[Gig, Optional[float]]], query: str) -> List[Dict[str, Any]]:
        results = []
        for gig, distance in pairs:
            result = {
                'gig': gig,
                'distance_km': float(round_decimal(distance, 2)) if distance is not None else None,
            }
            if query:
                result['relevance'] = self.relevance(gig, query)
                if result['relevance'] == 0:
                    continue
            results.append(result)
        return results

    @staticmethod
    def _sort(results: List[Dict[str, Any]], by_relevance: bool, by_distance: bool) -> List[Dict[str, Any]]:
        if by_distance:
            return sorted(results, key=lambda r: r['distance_km'])

        # Stable sorts: recency, then priority, then relevance on top
        results = sorted(results, key=lambda r: r['gig'].created_at, reverse=True)
        results.sort(key=lambda r: r['gig'].priority_rank, reverse=True)
        if by_relevance:
            results.sort(key=lambda r: r['relevance'], reverse=True)
        return results

    # ==========================================================================
    # Eligibility
    # ==========================================================================

    @classmethod
    def can_apply(cls, gig: Gig, user_id: UUID, now=None) -> Dict[str, Any]:
        """
        Whether a user may apply to a gig.

        Checks in order: gig posted, not expired, not the user's own gig, no
        existing application, below max_applications.

        Returns:
            Dict with can_apply and reason (None when allowed)
        """
        now = now or timezone.now()

        if gig.status != Gig.Status.POSTED:
            return cls._denied(cls.REASON_NOT_OPEN)
        if now >= gig.expires_at:
            return cls._denied(cls.REASON_EXPIRED)
        if str(user_id) == str(gig.client_id):
            return cls._denied(cls.REASON_OWN_GIG)
        if GigApplication.objects.filter(gig=gig, applicant_id=user_id).exists():
            return cls._denied(cls.REASON_ALREADY_APPLIED)
        if gig.applications_count >= gig.max_applications:
            return cls._denied(cls.REASON_FULL)
        return {'can_apply': True, 'reason': None}

    @staticmethod
    def _denied(reason: str) -> Dict[str, Any]:
        return {'can_apply': False, 'reason': reason}
