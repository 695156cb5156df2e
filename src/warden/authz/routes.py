"""Mapping of UI route keys to the operation that unlocks them.

Front ends use :meth:`RoutePermissionMap.accessible_routes` to decide which
navigation entries to show. A requirement is either ``"module:action"``,
``"authenticated"`` (any signed-in principal) or ``"public"``.
"""

from collections.abc import Iterable, Mapping
from types import MappingProxyType

from warden.authz.catalog import PermissionCatalog
from warden.authz.types import EffectivePermissions, Operation

PUBLIC = "public"
AUTHENTICATED = "authenticated"

DEFAULT_ROUTE_PERMISSIONS: Mapping[str, str] = MappingProxyType(
    {
        # Dashboards
        "adminDashboard": "user_management:read",
        "parentDashboard": "students:read",
        "studentDashboard": "lms:read",
        "teacherDashboard": "attendance_students:update",
        # User management
        "manageusers": "user_management:read",
        "rolesPermissions": "user_management:update",
        "permissions": "user_management:read",
        "deleteRequest": "user_management:delete",
        # Students
        "studentGrid": "students:read",
        "studentList": "students:read",
        "studentDetail": "students:read",
        "addStudent": "students:create",
        "editStudent": "students:update",
        "studentPromotion": "students:update",
        "studentTimeTable": "timetable:read",
        "studentLeaves": "attendance_students:read",
        "studentFees": "fees:read",
        "studentResult": "exams:read",
        "studentLibrary": "library:read",
        # Teachers
        "teacherGrid": "hr_payroll:read",
        "teacherList": "hr_payroll:read",
        "teacherDetails": "hr_payroll:read",
        "addTeacher": "hr_payroll:create",
        "editTeacher": "hr_payroll:update",
        "teacherLibrary": "library:read",
        "teacherSalary": "hr_payroll:read",
        "teacherLeaves": "attendance_staff:read",
        "teachersRoutine": "timetable:read",
        # Parents and guardians
        "parentGrid": "students:read",
        "parentList": "students:read",
        "guardiansGrid": "students:read",
        "guardiansList": "students:read",
        # Academic
        "classes": "school_config:read",
        "classRoutine": "timetable:read",
        "classTimetable": "timetable:read",
        "classSubject": "school_config:read",
        "classSection": "school_config:read",
        "classSyllabus": "lms:read",
        "classHomeWork": "lms:read",
        "sheduleClasses": "timetable:create",
        # Exams
        "exam": "exams:read",
        "examSchedule": "exams:read",
        "examResult": "exams:read",
        "examAttendance": "exams:read",
        "grade": "exams:read",
        # Fees
        "feesGroup": "fees:read",
        "feesType": "fees:read",
        "feesMaster": "fees:read",
        "feesAssign": "fees:create",
        "collectFees": "fees:create",
        "feesReport": "fees:read",
        # Library
        "libraryBooks": "library:read",
        "libraryMembers": "library:read",
        "libraryIssueBook": "library:create",
        "libraryReturn": "library:update",
        # Transport
        "transportVehicle": "transport:read",
        "transportRoutes": "transport:read",
        "transportAssignVehicle": "transport:create",
        # Hostel
        "hostelList": "hostel:read",
        "hostelRoom": "hostel:read",
        "hostelType": "hostel:read",
        # HR and staff
        "staff": "hr_payroll:read",
        "staffDetails": "hr_payroll:read",
        "addStaff": "hr_payroll:create",
        "editStaff": "hr_payroll:update",
        "departments": "hr_payroll:read",
        "designation": "hr_payroll:read",
        "payroll": "hr_payroll:read",
        "staffPayroll": "hr_payroll:read",
        "staffAttendance": "attendance_staff:read",
        "staffLeaves": "attendance_staff:read",
        "approveRequest": "hr_payroll:update",
        # Accounts
        "accountsIncome": "fees:read",
        "accountsInvoices": "fees:read",
        "accountsTransactions": "fees:read",
        "expense": "fees:read",
        "invoice": "fees:read",
        # Communication
        "events": "communication:read",
        "noticeBoard": "communication:read",
        "contactMessages": "communication:read",
        "allBlogs": "communication:read",
        "chat": "communication:read",
        "email": "communication:read",
        # Settings
        "schoolSettings": "school_config:update",
        "paymentGateways": "school_config:update",
        "smsSettings": "school_config:update",
        "emailSettings": "school_config:update",
        "backup": "technical_ops:read",
        # Reports
        "attendanceReport": "analytics:read",
        "classReport": "analytics:read",
        "studentReport": "analytics:read",
        "gradeReport": "analytics:read",
        "teacherReport": "analytics:read",
        # Personal
        "todo": AUTHENTICATED,
        "calendar": AUTHENTICATED,
        # Open
        "error404": PUBLIC,
        "error500": PUBLIC,
        "login": PUBLIC,
        "register": PUBLIC,
    }
)


class RoutePermissionMap:
    """Immutable route key to requirement mapping.

    Example:
        routes = RoutePermissionMap()
        visible = routes.accessible_routes(await engine.effective_permissions(principal))
    """

    def __init__(self, routes: Mapping[str, str] | None = None):
        source = DEFAULT_ROUTE_PERMISSIONS if routes is None else routes
        parsed: dict[str, Operation | str] = {}
        for route, requirement in source.items():
            if requirement in (PUBLIC, AUTHENTICATED):
                parsed[route] = requirement
            else:
                parsed[route] = Operation.parse(requirement)
        self._routes: Mapping[str, Operation | str] = MappingProxyType(parsed)

    def __contains__(self, route: object) -> bool:
        return route in self._routes

    def __len__(self) -> int:
        return len(self._routes)

    @property
    def routes(self) -> list[str]:
        return sorted(self._routes)

    def requirement_for(self, route: str) -> Operation | str | None:
        """The requirement of a route: an Operation, PUBLIC, AUTHENTICATED or None if unknown."""
        return self._routes.get(route)

    def is_accessible(self, route: str, effective: EffectivePermissions) -> bool:
        """Whether a signed-in principal holding ``effective`` may open ``route``.

        Any scope of the required operation unlocks the route; unknown routes
        are never accessible.
        """
        requirement = self._routes.get(route)
        if requirement is None:
            return False
        if isinstance(requirement, Operation):
            return requirement in effective
        return True

    def accessible_routes(self, effective: EffectivePermissions) -> list[str]:
        """Sorted route keys accessible with ``effective``."""
        return sorted(route for route in self._routes if self.is_accessible(route, effective))

    def operations(self) -> Iterable[Operation]:
        """Every operation referenced by a route."""
        return (r for r in self._routes.values() if isinstance(r, Operation))

    def validate(self, catalog: PermissionCatalog) -> list[str]:
        """Return the sorted route keys whose operation is not in the catalog."""
        return sorted(
            route
            for route, requirement in self._routes.items()
            if isinstance(requirement, Operation) and requirement not in catalog
        )
