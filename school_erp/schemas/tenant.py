from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, Any, List, Iterable
from datetime import date


class AcademicYear(BaseModel):
    current_year: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class TenantSettings(BaseModel):
    academic_year: Optional[AcademicYear] = None
    classes: List[str] = Field(default_factory=list)


class AcademicSettings(BaseModel):
    school_types: List[str] = Field(default_factory=list)


class Tenant(BaseModel):
    """Registry view of a school"""
    model_config = ConfigDict(from_attributes=True)

    internal_id: int
    code: str
    display_name: str
    settings: TenantSettings = Field(default_factory=TenantSettings)
    academic_settings: AcademicSettings = Field(default_factory=AcademicSettings)
    is_active: bool = True

    @classmethod
    def from_model(cls, school) -> "Tenant":
        return cls(
            internal_id=school.id,
            code=school.code,
            display_name=school.name,
            settings=TenantSettings.model_validate(school.settings or {}),
            academic_settings=AcademicSettings.model_validate(school.academic_settings or {}),
            is_active=school.is_active,
        )


class CallerContext(BaseModel):
    """
    Identity of the authenticated caller, supplied by the auth middleware.
    Reporting operations take the tenant from here, never from request input.
    """
    school_id: int
    school_code: str
    actor_id: Optional[str] = None
    role: Optional[str] = None


class TestType(BaseModel):
    __test__ = False  # not a pytest class

    name: str
    code: str
    description: Optional[str] = None
    max_marks: float = 100
    weightage: float = 1
    is_active: bool = True


DEFAULT_TEST_TYPES: List[Dict[str, Any]] = [
    {"name": "Formative Assessment 1", "code": "FA-1", "description": "First Formative Assessment", "max_marks": 20, "weightage": 0.1},
    {"name": "Formative Assessment 2", "code": "FA-2", "description": "Second Formative Assessment", "max_marks": 20, "weightage": 0.1},
    {"name": "Midterm Examination", "code": "MIDTERM", "description": "Midterm Examination", "max_marks": 80, "weightage": 0.3},
    {"name": "Summative Assessment 1", "code": "SA-1", "description": "First Summative Assessment", "max_marks": 80, "weightage": 0.3},
    {"name": "Summative Assessment 2", "code": "SA-2", "description": "Second Summative Assessment", "max_marks": 80, "weightage": 0.3},
]

DEFAULT_CLASSES: List[str] = ["LKG", "UKG"] + [str(i) for i in range(1, 13)]


class ClassTestTypeMap:
    """
    Mapping of class name to its configured test types.

    Lookups for classes without an entry go through get_or_default, which
    returns a fresh list and never inserts the key.
    """

    def __init__(self, entries: Optional[Dict[str, Iterable[Any]]] = None):
        self._entries: Dict[str, List[TestType]] = {}
        for class_name, test_types in (entries or {}).items():
            self._entries[class_name] = [TestType.model_validate(t) for t in test_types or []]

    @classmethod
    def default_for(cls, class_names: Iterable[str]) -> "ClassTestTypeMap":
        return cls({name: [dict(t) for t in DEFAULT_TEST_TYPES] for name in class_names})

    def get_or_default(self, class_name: str, default: Optional[List[TestType]] = None) -> List[TestType]:
        if class_name in self._entries:
            return list(self._entries[class_name])
        return list(default or [])

    def merge_classes(self, class_names: Iterable[str]) -> List[str]:
        """
        Add an empty entry for every class not yet configured.
        Existing entries, including ones for classes absent from class_names,
        are left untouched. Returns the names that were added.
        """
        added = []
        for class_name in class_names:
            if class_name not in self._entries:
                self._entries[class_name] = []
                added.append(class_name)
        return added

    def class_names(self) -> List[str]:
        return list(self._entries)

    def __contains__(self, class_name: str) -> bool:
        return class_name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            class_name: [t.model_dump() for t in test_types]
            for class_name, test_types in self._entries.items()
        }
