# FILE: results_portal/updates.py
"""
Typed partial updates.

A field left at UNSET is not touched; ``None`` is a real value (for example
clearing ``backlog_group_id``).
"""
from dataclasses import dataclass, fields
from typing import Optional, Union


class _Unset:
    def __bool__(self):
        return False

    def __repr__(self):
        return 'UNSET'


UNSET = _Unset()


class PartialUpdate:

    @classmethod
    def from_payload(cls, payload):
        """Pick the known keys out of a JSON body, ignoring everything else."""
        payload = payload or {}
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in payload.items() if key in known})

    def changes(self):
        return {f.name: getattr(self, f.name) for f in fields(self)
                if getattr(self, f.name) is not UNSET}

    def is_empty(self):
        return not self.changes()

    def apply_to(self, instance):
        """Copy set fields onto a model instance and return the changed fields for the audit log."""
        diff = {}
        for name, value in self.changes().items():
            old = getattr(instance, name)
            if old != value:
                diff[name] = {'old': old, 'new': value}
                setattr(instance, name, value)
        return diff


@dataclass
class ResultUpdate(PartialUpdate):
    marks: Union[float, _Unset] = UNSET
    published: Union[bool, _Unset] = UNSET
    backlog_group_id: Union[Optional[int], _Unset] = UNSET


@dataclass
class CourseUpdate(PartialUpdate):
    course_code: Union[str, _Unset] = UNSET
    course_name: Union[str, _Unset] = UNSET
    year: Union[int, _Unset] = UNSET
    semester: Union[str, _Unset] = UNSET
    credits: Union[float, _Unset] = UNSET
    cgpa_weight: Union[float, _Unset] = UNSET


@dataclass
class StudentUpdate(PartialUpdate):
    name: Union[str, _Unset] = UNSET
    academic_session: Union[Optional[str], _Unset] = UNSET
    current_year: Union[int, _Unset] = UNSET
    current_semester: Union[str, _Unset] = UNSET
