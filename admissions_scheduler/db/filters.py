from datetime import date
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy import or_
from sqlalchemy.sql.elements import ColumnElement

from admissions_scheduler.base.models import InterviewStatus, InterviewType
from admissions_scheduler.db.models import InterviewModel


class InterviewFilter(str, Enum):
    STATUS = "status"
    TYPE = "type"
    APPLICATION_ID = "applicationId"
    INTERVIEWER_ID = "interviewerId"
    DATE_FROM = "dateFrom"
    DATE_TO = "dateTo"


def _interviewer(value: int) -> ColumnElement:
    return or_(
        InterviewModel.primary_interviewer_id == value,
        InterviewModel.secondary_interviewer_id == value,
    )


# Each supported filter maps to exactly one parameterized predicate
_PREDICATES: Dict[InterviewFilter, Callable[[Any], ColumnElement]] = {
    InterviewFilter.STATUS: lambda v: InterviewModel.status == InterviewStatus(v),
    InterviewFilter.TYPE: lambda v: InterviewModel.type == InterviewType(v),
    InterviewFilter.APPLICATION_ID: lambda v: InterviewModel.application_id == int(v),
    InterviewFilter.INTERVIEWER_ID: lambda v: _interviewer(int(v)),
    InterviewFilter.DATE_FROM: lambda v: InterviewModel.scheduled_date >= v,
    InterviewFilter.DATE_TO: lambda v: InterviewModel.scheduled_date <= v,
}


def build_interview_predicates(filters: Mapping[InterviewFilter, Optional[Any]]) -> List[ColumnElement]:
    """Turn a filter mapping into SQLAlchemy predicates; None values are skipped."""
    return [
        _PREDICATES[key](value)
        for key, value in filters.items()
        if value is not None
    ]


def filter_cache_suffix(filters: Mapping[InterviewFilter, Optional[Any]]) -> str:
    parts = []
    for key in InterviewFilter:
        value = filters.get(key)
        if isinstance(value, date):
            value = value.isoformat()
        elif isinstance(value, Enum):
            value = value.value
        parts.append(f"{key.value}={value if value is not None else 'all'}")
    return ":".join(parts)
